"""
Rendering of storage errors as HTTP responses.

Routers let HybridStorageError propagate; the handler registered here turns
it into the standard ErrorResponse body with a status code per error kind.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..models.responses import ErrorDetail, ErrorResponse
from ..storage.errors import ErrorKind, HybridStorageError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.UNREACHABLE: 503,
    ErrorKind.UNHEALTHY: 503,
    ErrorKind.ALREADY_IN_PROGRESS: 409,
    ErrorKind.PRECONDITION_FAILED: 412,
    ErrorKind.PARTIAL_FAILURE: 207,
    ErrorKind.NOT_FOUND: 404,
}

STATUS_BY_CODE = {
    "size_exceeded": 413,
    "type_rejected": 415,
}


def status_for(error: HybridStorageError) -> int:
    if error.kind == ErrorKind.SIZE_OR_TYPE_REJECTED:
        return STATUS_BY_CODE.get(error.code, 413)
    return STATUS_BY_KIND.get(error.kind, 500)


def error_response(error: HybridStorageError) -> ErrorResponse:
    """Build the response body for a storage error."""
    return ErrorResponse(
        error=error.kind.value,
        message=error.message,
        details=[ErrorDetail(field=error.backend, message=error.message, code=error.code)],
    )


async def storage_error_handler(request: Request, exc: HybridStorageError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status_code, content=error_response(exc).model_dump())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HybridStorageError, storage_error_handler)
