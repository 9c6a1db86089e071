"""
Health and database failover models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict


class HealthFailure(str, Enum):
    """Why a probe reported a backend unhealthy."""
    UNREACHABLE = "unreachable"
    AUTH = "auth"
    TIMEOUT = "timeout"
    UNHEALTHY = "unhealthy"
    ERROR = "error"


class HealthResult(BaseModel):
    """Result of probing a single backend."""

    target: str = Field(
        ...,
        description="Probe target identity (e.g. 'database:primary', 'storage:cloud-a')"
    )

    healthy: bool

    detail: Optional[str] = Field(
        None,
        description="Human-readable detail, always set when unhealthy"
    )

    failure: Optional[HealthFailure] = Field(
        None,
        description="Failure classification when unhealthy"
    )

    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    latency_ms: Optional[float] = Field(None, ge=0)


class DatabaseRole(str, Enum):
    PRIMARY = "primary"
    BACKUP = "backup"


class ActiveDatabase(str, Enum):
    PRIMARY = "primary"
    BACKUP = "backup"
    NONE = "none"


class DatabaseHealth(BaseModel):
    """Aggregate health of both databases and the active pointer."""

    primary: bool
    backup: bool
    active: ActiveDatabase

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"primary": True, "backup": False, "active": "primary"}
        }
    )


class InitSummary(BaseModel):
    """Result of initializing a database schema."""

    role: DatabaseRole
    created_tables: List[str] = Field(default_factory=list)
    already_initialized: bool = False


class SyncSummary(BaseModel):
    """Result of copying the primary database into the backup."""

    tables: Dict[str, int] = Field(
        default_factory=dict,
        description="Rows copied per table that synced successfully"
    )

    failed_tables: Dict[str, str] = Field(
        default_factory=dict,
        description="Error message per table that failed to sync"
    )

    started_at: datetime
    finished_at: datetime

    @property
    def total_rows(self) -> int:
        return sum(self.tables.values())

    @property
    def complete(self) -> bool:
        return not self.failed_tables


class SnapshotKind(str, Enum):
    """Why a snapshot was written."""
    BACKUP = "backup"
    EMERGENCY = "emergency"


class SnapshotInfo(BaseModel):
    """A JSON snapshot of one database on disk."""

    name: str = Field(..., description="File name inside the snapshot directory")

    kind: SnapshotKind

    source: DatabaseRole = Field(..., description="Database the rows were read from")

    created_at: datetime

    size_bytes: int = Field(..., ge=0)

    tables: Optional[Dict[str, int]] = Field(
        None,
        description="Rows per table; only reported for the snapshot just written"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "backup-primary-20240315T143022123456Z.json",
                "kind": "backup",
                "source": "primary",
                "created_at": "2024-03-15T14:30:22.123456Z",
                "size_bytes": 48213,
                "tables": {"stored_files": 42}
            }
        }
    )
