"""
File and provider models for the storage coordinator.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator, ConfigDict


class ProviderName(str, Enum):
    """Closed set of file-storage providers."""
    LOCAL = "local"
    CLOUD_A = "cloud-a"
    CLOUD_B = "cloud-b"


def normalize_path(value: str) -> str:
    """Normalize a logical file path to a provider-relative key."""
    path = value.replace('\\', '/').strip().lstrip('/')
    parts = [part for part in path.split('/') if part not in ('', '.')]
    if not parts or '..' in parts:
        raise ValueError(f"Invalid file path: {value!r}")
    return '/'.join(parts)


class FileUpload(BaseModel):
    """Raw file bytes plus metadata, as handed in by a caller."""

    path: str = Field(
        ...,
        description="Logical, provider-relative key (e.g. 'transactions/42/receipt.pdf')",
        min_length=1,
        max_length=1024
    )

    content: bytes = Field(
        ...,
        description="File content",
        repr=False
    )

    mime_type: str = Field(
        "application/octet-stream",
        description="MIME type of the content"
    )

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        return normalize_path(v)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class StoredFile(BaseModel):
    """
    A file whose canonical copy lives on exactly one provider.

    Shadow copies created by cross-provider syncs are not tracked here.
    """

    path: str = Field(
        ...,
        description="Logical, provider-relative key",
        min_length=1,
        max_length=1024
    )

    provider: ProviderName = Field(
        ...,
        description="Provider holding the canonical copy"
    )

    size_bytes: int = Field(
        ...,
        description="File size in bytes",
        ge=0
    )

    mime_type: str = Field(
        "application/octet-stream",
        description="MIME type of the file"
    )

    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the canonical copy was written"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "path": "transactions/42/receipt.pdf",
                "provider": "cloud-a",
                "size_bytes": 183204,
                "mime_type": "application/pdf",
                "uploaded_at": "2024-03-15T14:30:22Z"
            }
        }
    )

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        return normalize_path(v)


class StoredFileResponse(BaseModel):
    """Stored file plus a URL that resolves to its canonical copy."""
    success: bool = Field(True)
    file: StoredFile
    url: str


class SyncRequest(BaseModel):
    """Ephemeral request to copy one file to a set of providers."""
    file: FileUpload
    target_providers: Set[ProviderName] = Field(default_factory=set)


class SyncStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class TargetResult(BaseModel):
    """Outcome of writing one copy to one provider."""

    provider: ProviderName
    success: bool
    url: Optional[str] = None
    error_kind: Optional[str] = Field(
        None,
        description="Error kind when the write failed"
    )
    message: Optional[str] = None


class SyncOutcome(BaseModel):
    """Aggregate outcome of a cross-provider sync with per-target breakdown."""

    path: str
    status: SyncStatus
    results: Dict[ProviderName, TargetResult] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "path": "transactions/42/receipt.pdf",
                "status": "partial_failure",
                "results": {
                    "cloud-a": {"provider": "cloud-a", "success": False,
                                "error_kind": "unreachable", "message": "connection refused"},
                    "cloud-b": {"provider": "cloud-b", "success": True,
                                "url": "https://storage.googleapis.com/files/transactions/42/receipt.pdf"}
                }
            }
        }
    )

    @property
    def succeeded(self) -> List[ProviderName]:
        return [name for name, result in self.results.items() if result.success]

    @property
    def failed(self) -> List[ProviderName]:
        return [name for name, result in self.results.items() if not result.success]


class StorageStatus(BaseModel):
    """Current preferred provider and live provider availability."""

    preferred: ProviderName
    available: List[ProviderName] = Field(default_factory=list)
    health_check: Dict[ProviderName, bool] = Field(default_factory=dict)


class FileInventory(BaseModel):
    """Registry counts of canonical files per provider."""

    total_files: int = Field(0, ge=0)
    by_provider: Dict[ProviderName, int] = Field(default_factory=dict)
    total_bytes: int = Field(0, ge=0)
