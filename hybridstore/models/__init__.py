"""
Pydantic models for the hybrid storage coordinator

This module provides type-safe data models for API requests/responses,
data validation, and automatic OpenAPI documentation generation.
"""

from .files import (
    FileInventory,
    FileUpload,
    ProviderName,
    StorageStatus,
    StoredFile,
    StoredFileResponse,
    SyncOutcome,
    SyncRequest,
    SyncStatus,
    TargetResult,
)
from .health import (
    ActiveDatabase,
    DatabaseHealth,
    DatabaseRole,
    HealthFailure,
    HealthResult,
    InitSummary,
    SnapshotInfo,
    SnapshotKind,
    SyncSummary,
)
from .migration import CleanupSummary, MigrationState, MigrationStatus
from .responses import ErrorDetail, ErrorResponse, SuccessResponse

__all__ = [
    "FileInventory",
    "FileUpload",
    "ProviderName",
    "StorageStatus",
    "StoredFile",
    "StoredFileResponse",
    "SyncOutcome",
    "SyncRequest",
    "SyncStatus",
    "TargetResult",
    "ActiveDatabase",
    "DatabaseHealth",
    "DatabaseRole",
    "HealthFailure",
    "HealthResult",
    "InitSummary",
    "SnapshotInfo",
    "SnapshotKind",
    "SyncSummary",
    "CleanupSummary",
    "MigrationState",
    "MigrationStatus",
    "ErrorDetail",
    "ErrorResponse",
    "SuccessResponse"
]
