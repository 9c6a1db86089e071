"""
File storage API endpoints.

This module provides the /api/storage endpoints for provider status,
preferred-provider selection, uploads, cross-provider syncs and access
to stored files.
"""

import logging
import mimetypes
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, Response, UploadFile
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from ..models.files import (
    FileUpload,
    ProviderName,
    StorageStatus,
    StoredFile,
    StoredFileResponse,
    SyncOutcome,
    SyncStatus,
)
from ..models.responses import ErrorResponse, SetPreferredRequest, SuccessResponse
from ..storage.errors import HybridStorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/storage", tags=["Storage"])


async def _read_upload(file: UploadFile, path: Optional[str]) -> FileUpload:
    content = await file.read()
    mime_type = file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = mimetypes.guess_type(path or file.filename or "")[0] or "application/octet-stream"
    try:
        return FileUpload(path=path or file.filename or "", content=content, mime_type=mime_type)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid upload: {e.errors()[0]['msg']}")


@router.get(
    "/status",
    response_model=StorageStatus,
    summary="Storage provider status",
    description="Preferred provider plus the health of every configured provider"
)
def storage_status(request: Request):
    try:
        return request.app.state.coordinator.get_status()
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error fetching storage status: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve storage status: {str(e)}")


@router.post(
    "/set-preferred",
    response_model=StorageStatus,
    responses={
        412: {"model": ErrorResponse, "description": "Provider is not configured"},
        503: {"model": ErrorResponse, "description": "Provider is unhealthy"}
    },
    summary="Set preferred provider",
    description="Use the given provider for new uploads after a fresh health check"
)
def set_preferred(body: SetPreferredRequest, request: Request):
    try:
        return request.app.state.coordinator.set_preferred(body.provider)
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error setting preferred provider: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to set preferred provider: {str(e)}")


@router.post(
    "/upload",
    response_model=StoredFile,
    status_code=201,
    responses={
        413: {"model": ErrorResponse, "description": "File exceeds the provider's size limit"},
        415: {"model": ErrorResponse, "description": "File type not accepted by the provider"},
        503: {"model": ErrorResponse, "description": "Provider unavailable"}
    },
    summary="Upload a file",
    description="Store a file's canonical copy on the given or preferred provider"
)
async def upload_file(
    request: Request,
    file: UploadFile = File(..., description="File content"),
    path: Optional[str] = Form(None, description="Logical path (defaults to the file name)"),
    provider: Optional[ProviderName] = Form(None, description="Target provider (defaults to preferred)")
):
    """
    Upload a file to one provider.

    Size and type limits are checked before any backend is contacted.
    """
    try:
        upload = await _read_upload(file, path)
        logger.info(f"Upload of {upload.path} ({upload.size_bytes} bytes) requested")
        return await run_in_threadpool(request.app.state.coordinator.store, upload, provider)
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error uploading file: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to upload file: {str(e)}")


@router.post(
    "/sync-file",
    response_model=SyncOutcome,
    responses={
        207: {"model": SyncOutcome, "description": "Some targets failed"},
        412: {"model": ErrorResponse, "description": "No target providers given"},
        503: {"model": SyncOutcome, "description": "Every target failed"}
    },
    summary="Copy a file to several providers",
    description="Write a copy of the file to every target provider; each target succeeds or fails independently"
)
async def sync_file(
    request: Request,
    response: Response,
    file: UploadFile = File(..., description="File content"),
    targets: List[ProviderName] = Form(..., description="Providers to write copies to"),
    path: Optional[str] = Form(None, description="Logical path (defaults to the file name)")
):
    try:
        upload = await _read_upload(file, path)
        outcome = await run_in_threadpool(
            request.app.state.coordinator.sync_file_across_providers, upload, targets
        )
        if outcome.status == SyncStatus.PARTIAL_FAILURE:
            response.status_code = 207
        elif outcome.status == SyncStatus.FAILED:
            response.status_code = 503
        return outcome
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error syncing file: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to sync file: {str(e)}")


@router.get(
    "/files/{path:path}",
    response_model=StoredFileResponse,
    responses={
        404: {"model": ErrorResponse, "description": "File not registered"}
    },
    summary="Look up a stored file",
    description="Registry record of a file plus a URL resolving to its canonical copy"
)
def get_file(path: str, request: Request):
    try:
        coordinator = request.app.state.coordinator
        stored_file = coordinator.get_stored_file(path)
        return StoredFileResponse(file=stored_file, url=coordinator.resolve_url(stored_file))
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error fetching file {path}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to retrieve file: {str(e)}")


@router.delete(
    "/files/{path:path}",
    response_model=SuccessResponse,
    responses={
        404: {"model": ErrorResponse, "description": "File not registered"}
    },
    summary="Delete a stored file",
    description="Delete a file from its canonical provider and drop its record"
)
def delete_file(path: str, request: Request):
    try:
        coordinator = request.app.state.coordinator
        stored_file = coordinator.get_stored_file(path)
        coordinator.delete(stored_file)
        return SuccessResponse(
            message=f"Deleted {stored_file.path}",
            data={"path": stored_file.path, "provider": stored_file.provider.value}
        )
    except (HybridStorageError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error deleting file {path}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to delete file: {str(e)}")
