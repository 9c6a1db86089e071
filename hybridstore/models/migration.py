"""
Migration status and cleanup models.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from .files import ProviderName


class MigrationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class MigrationStatus(BaseModel):
    """
    Progress of the current or most recent bulk file migration.

    A running migration mutates this record in place; pollers receive
    deep copies so they always see a consistent snapshot.
    """

    total_files: int = Field(0, ge=0)
    migrated_files: int = Field(0, ge=0)
    failed_files: int = Field(0, ge=0)
    in_progress: bool = False
    errors: List[str] = Field(default_factory=list)
    last_migration: Optional[datetime] = Field(
        None,
        description="When the most recent migration finished"
    )
    state: MigrationState = MigrationState.IDLE
    source: Optional[ProviderName] = None
    destination: Optional[ProviderName] = None
    started_at: Optional[datetime] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_files": 10,
                "migrated_files": 9,
                "failed_files": 1,
                "in_progress": False,
                "errors": ["transactions/4/invoice.pdf: write to cloud-b failed"],
                "last_migration": "2024-03-15T14:30:22Z",
                "state": "completed",
                "source": "local",
                "destination": "cloud-b",
                "started_at": "2024-03-15T14:29:58Z"
            }
        }
    )

    @property
    def processed_files(self) -> int:
        return self.migrated_files + self.failed_files


class CleanupSummary(BaseModel):
    """Counts from an orphan / broken-link reconciliation pass."""

    dry_run: bool = False
    checked_records: int = 0
    repaired_links: int = 0
    removed_links: int = 0
    orphans_found: int = 0
    deleted_orphans: int = 0
    skipped: int = Field(
        0,
        description="Records or objects left alone because their state could not be verified"
    )
    errors: List[str] = Field(default_factory=list)
