"""
Error taxonomy for the hybrid storage layer.

Adapters translate raw driver exceptions (botocore, google-api-core,
SQLAlchemy, OSError) into these types at their boundary. The coordinator,
failover controller and API layer only ever see HybridStorageError
subclasses, each carrying a machine-readable kind, the backend it concerns
and a message suitable for display to an operator.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Machine-readable error kinds exposed to callers."""
    UNREACHABLE = "unreachable"
    UNHEALTHY = "unhealthy"
    ALREADY_IN_PROGRESS = "already_in_progress"
    PRECONDITION_FAILED = "precondition_failed"
    SIZE_OR_TYPE_REJECTED = "size_or_type_rejected"
    PARTIAL_FAILURE = "partial_failure"
    NOT_FOUND = "not_found"


class HybridStorageError(Exception):
    """
    Base class for all storage and failover errors.

    Args:
        message: Human-readable message suitable for direct display
        backend: Identity of the backend involved (e.g. 'cloud-a', 'backup')
        code: Operation-specific sub-kind (e.g. 'target_unavailable')
    """

    kind: ErrorKind = ErrorKind.UNHEALTHY

    def __init__(self, message: str, backend: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.backend = backend
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "backend": self.backend,
            "code": self.code,
            "message": self.message,
        }

    def __str__(self) -> str:
        if self.backend:
            return f"[{self.backend}] {self.message}"
        return self.message


class UnreachableError(HybridStorageError):
    """Network or connectivity to a backend failed."""
    kind = ErrorKind.UNREACHABLE


class BackendTimeoutError(UnreachableError):
    """A backend did not answer within the configured timeout."""
    pass


class UnhealthyError(HybridStorageError):
    """Backend is reachable but reports itself not ready."""
    kind = ErrorKind.UNHEALTHY


class AuthenticationFailedError(UnhealthyError):
    """Backend rejected the configured credentials."""
    pass


class AlreadyInProgressError(HybridStorageError):
    """A mutual-exclusion rule was violated (e.g. second migration start)."""
    kind = ErrorKind.ALREADY_IN_PROGRESS


class PreconditionFailedError(HybridStorageError):
    """The operation's preconditions do not hold."""
    kind = ErrorKind.PRECONDITION_FAILED


class SizeOrTypeRejectedError(HybridStorageError):
    """File does not meet the provider's size or MIME type constraints."""
    kind = ErrorKind.SIZE_OR_TYPE_REJECTED


class PartialFailureError(HybridStorageError):
    """Some steps of a multi-step operation succeeded and some failed."""
    kind = ErrorKind.PARTIAL_FAILURE

    def __init__(self, message: str, backend: Optional[str] = None, code: Optional[str] = None,
                 completed: Optional[list] = None):
        super().__init__(message, backend=backend, code=code)
        self.completed = completed or []


class NotFoundError(HybridStorageError):
    """The requested file or record does not exist."""
    kind = ErrorKind.NOT_FOUND
