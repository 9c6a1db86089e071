"""
API request and response models for consistent formatting.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from .files import ProviderName
from .health import DatabaseRole


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(
        None,
        description="Backend or field that caused the error (if applicable)"
    )

    message: str = Field(
        ...,
        description="Human-readable error message"
    )

    code: Optional[str] = Field(
        None,
        description="Machine-readable error code"
    )


class ErrorResponse(BaseModel):
    """Standard error response format."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "error": "precondition_failed",
                "message": "Cannot switch to the backup database: connection refused",
                "details": [
                    {
                        "field": "backup",
                        "message": "Cannot switch to the backup database: connection refused",
                        "code": "target_unavailable"
                    }
                ]
            }
        }
    )

    success: bool = Field(
        False,
        description="Always false for error responses"
    )

    error: str = Field(
        ...,
        description="Machine-readable error kind"
    )

    message: str = Field(
        ...,
        description="Detailed error message"
    )

    details: Optional[List[ErrorDetail]] = Field(
        None,
        description="Additional error details (e.g., validation errors)"
    )

    request_id: Optional[str] = Field(
        None,
        description="Request ID for tracking and debugging"
    )


class SuccessResponse(BaseModel):
    """Standard success response format for simple operations."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "message": "Deleted transactions/42/receipt.pdf",
                "data": {
                    "path": "transactions/42/receipt.pdf",
                    "provider": "local"
                }
            }
        }
    )

    success: bool = Field(
        True,
        description="Always true for success responses"
    )

    message: str = Field(
        ...,
        description="Success message"
    )

    data: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional response data"
    )


class SwitchDatabaseRequest(BaseModel):
    target: DatabaseRole = Field(..., description="Database to make active")


class SetPreferredRequest(BaseModel):
    provider: ProviderName = Field(..., description="Provider to use for new uploads")


class MigrateRequest(BaseModel):
    """Request body for starting a bulk file migration."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {"source": "local", "destination": "cloud-b"}
        }
    )

    source: ProviderName = Field(..., description="Provider currently holding the files")
    destination: ProviderName = Field(..., description="Provider to move the files to")


class CleanupRequest(BaseModel):
    dry_run: bool = Field(False, description="Report what would change without changing anything")


class CreateSnapshotRequest(BaseModel):
    source: Optional[DatabaseRole] = Field(None, description="Database to snapshot; defaults to the active one")
    reason: str = Field("manual", max_length=100, description="Free-text note stored in the snapshot")
