"""
JSON snapshots of a database.

Snapshots are full row dumps of every managed table, written into one
directory either on demand ('backup-' files) or right before an operation
overwrites data ('emergency-' files). Only the newest snapshots are kept.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from ..models.health import SnapshotInfo, SnapshotKind
from .errors import UnhealthyError

if TYPE_CHECKING:
    from .database import DatabaseAdapter

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 30
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


class SnapshotStore:
    """
    Directory of database snapshots with count-based retention.

    File names are '<kind>-<role>-<timestamp>.json'; the timestamp sorts
    lexically, so listing and pruning never need to open the files.
    """

    def __init__(self, directory: Union[str, Path], retention: int = DEFAULT_RETENTION):
        if retention < 1:
            raise ValueError("Snapshot retention must keep at least one file")
        self.directory = Path(directory)
        self.retention = retention
        self._lock = threading.Lock()

    def write(self, adapter: "DatabaseAdapter", reason: str = "manual",
              kind: SnapshotKind = SnapshotKind.BACKUP) -> SnapshotInfo:
        """
        Dump every managed table that exists on adapter's database.

        Args:
            adapter: Database to read
            reason: Note stored in the snapshot (e.g. the operation about to run)
            kind: backup for on-demand snapshots, emergency before an overwrite

        Raises:
            UnreachableError: If the database cannot be read
            UnhealthyError: If the snapshot file cannot be written
        """
        kind = SnapshotKind(kind)
        created_at = datetime.now(timezone.utc)
        existing = set(adapter.table_names())

        rows = {}
        for table in adapter.metadata.sorted_tables:
            if table.name in existing:
                rows[table.name] = adapter.read_rows(table)

        payload = {
            "created_at": created_at.isoformat(),
            "kind": kind.value,
            "source": adapter.role.value,
            "reason": reason,
            "tables": rows,
        }
        name = f"{kind.value}-{adapter.role.value}-{created_at.strftime(TIMESTAMP_FORMAT)}.json"

        with self._lock:
            size_bytes = self._write_file(name, payload, adapter.role.value)
            self._prune_locked()

        counts = {table: len(table_rows) for table, table_rows in rows.items()}
        logger.info(
            f"Wrote {kind.value} snapshot {name} of the {adapter.role.value} database "
            f"({sum(counts.values())} rows, reason: {reason})"
        )
        return SnapshotInfo(
            name=name,
            kind=kind,
            source=adapter.role,
            created_at=created_at,
            size_bytes=size_bytes,
            tables=counts,
        )

    def _write_file(self, name: str, payload: dict, backend: str) -> int:
        target = self.directory / name
        temp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=self.directory, prefix=".tmp-", suffix=".json", delete=False, encoding="utf-8"
            ) as handle:
                temp_name = handle.name
                # default=str covers datetimes and decimals read from the database
                json.dump(payload, handle, indent=2, default=str)
            os.replace(temp_name, target)
            temp_name = None
            return target.stat().st_size
        except OSError as e:
            raise UnhealthyError(
                f"Failed to write snapshot {name} to {self.directory}: {e}",
                backend=backend,
                code="snapshot_failed",
            ) from e
        finally:
            if temp_name is not None:
                try:
                    os.unlink(temp_name)
                except OSError:
                    logger.warning(f"Could not remove temporary file {temp_name}")

    @staticmethod
    def _parse_name(path: Path) -> Optional[SnapshotInfo]:
        try:
            kind, role, stamp = path.stem.split("-", 2)
            created_at = datetime.strptime(stamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
            return SnapshotInfo(
                name=path.name,
                kind=kind,
                source=role,
                created_at=created_at,
                size_bytes=path.stat().st_size,
            )
        except (ValueError, OSError):
            return None

    def _scan(self) -> List[SnapshotInfo]:
        if not self.directory.is_dir():
            return []
        snapshots = []
        for path in self.directory.glob("*.json"):
            info = self._parse_name(path)
            if info is not None:
                snapshots.append(info)
        return sorted(snapshots, key=lambda s: s.created_at, reverse=True)

    def list(self) -> List[SnapshotInfo]:
        """Snapshots on disk, newest first."""
        with self._lock:
            return self._scan()

    def prune(self) -> List[str]:
        """Delete all but the newest retention snapshots. Returns the deleted names."""
        with self._lock:
            return self._prune_locked()

    def _prune_locked(self) -> List[str]:
        deleted = []
        for info in self._scan()[self.retention:]:
            try:
                (self.directory / info.name).unlink()
                deleted.append(info.name)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Could not delete old snapshot {info.name}: {e}")
        if deleted:
            logger.info(f"Deleted {len(deleted)} old snapshots (keeping {self.retention})")
        return deleted
