"""
Database failover controller.

Holds which database (primary or backup) is active and exposes explicit,
operator-triggered switch, initialize, sync and snapshot operations. Switching is
never automatic: the controller only makes a requested switch safe by
re-probing the target immediately before committing it.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..models.health import (
    ActiveDatabase,
    DatabaseHealth,
    DatabaseRole,
    HealthResult,
    InitSummary,
    SnapshotInfo,
    SnapshotKind,
    SyncSummary,
)
from .database import DatabaseAdapter
from .errors import HybridStorageError, PreconditionFailedError, UnreachableError
from .health import HealthMonitor
from .snapshots import SnapshotStore

logger = logging.getLogger(__name__)


class FailoverController:
    """
    Owner of the active-database pointer.

    The pointer starts unset and is adopted from the first health check that
    finds a healthy database (primary first). From then on it only changes
    through switch_to(). 'none' is never stored; get_health() reports it
    when both databases fail their probes.
    """

    def __init__(
        self,
        primary: DatabaseAdapter,
        backup: Optional[DatabaseAdapter],
        monitor: HealthMonitor,
        initial: Optional[DatabaseRole] = None,
        snapshots: Optional[SnapshotStore] = None,
    ):
        self.adapters: Dict[DatabaseRole, DatabaseAdapter] = {DatabaseRole.PRIMARY: primary}
        if backup is not None:
            self.adapters[DatabaseRole.BACKUP] = backup
        self.monitor = monitor
        self.snapshots = snapshots
        self._active: Optional[DatabaseRole] = DatabaseRole(initial) if initial else None
        self._lock = threading.Lock()

    @property
    def active(self) -> Optional[DatabaseRole]:
        """Currently designated database, without probing."""
        return self._active

    def _adapter(self, role: DatabaseRole) -> DatabaseAdapter:
        adapter = self.adapters.get(role)
        if adapter is None:
            raise PreconditionFailedError(
                f"No {role.value} database is configured",
                backend=role.value,
                code="not_configured",
            )
        return adapter

    def _probe_all(self) -> Dict[DatabaseRole, HealthResult]:
        results = self.monitor.probe_many(self.adapters.values())
        return {role: results[adapter.target_name] for role, adapter in self.adapters.items()}

    def get_health(self) -> DatabaseHealth:
        """
        Probe both databases and report the active pointer.

        Returns:
            DatabaseHealth with live probe results
        """
        probes = self._probe_all()
        primary_ok = probes[DatabaseRole.PRIMARY].healthy
        backup_ok = DatabaseRole.BACKUP in probes and probes[DatabaseRole.BACKUP].healthy

        if self._active is None and (primary_ok or backup_ok):
            with self._lock:
                if self._active is None:
                    self._active = DatabaseRole.PRIMARY if primary_ok else DatabaseRole.BACKUP
                    logger.info(f"Active database set to {self._active.value}")

        if not primary_ok and not backup_ok:
            active = ActiveDatabase.NONE
        else:
            active = ActiveDatabase(self._active.value)

        return DatabaseHealth(primary=primary_ok, backup=backup_ok, active=active)

    def switch_to(self, target: DatabaseRole) -> DatabaseHealth:
        """
        Make target the active database after a fresh health check.

        Raises:
            PreconditionFailedError: If target is not configured or fails its probe;
                the active database is unchanged
        """
        target = DatabaseRole(target)
        adapter = self._adapter(target)

        result = self.monitor.probe(adapter)
        if not result.healthy:
            logger.warning(f"Refusing to switch to {target.value} database: {result.detail}")
            raise PreconditionFailedError(
                f"Cannot switch to the {target.value} database: {result.detail}",
                backend=target.value,
                code="target_unavailable",
            )

        with self._lock:
            previous = self._active
            self._active = target

        if previous == target:
            logger.info(f"{target.value} database is already active")
        else:
            logger.info(
                f"Switched active database from {previous.value if previous else 'none'} to {target.value}"
            )
        return self.get_health()

    def initialize_backup(self) -> InitSummary:
        """Create the schema on the backup database if it is missing."""
        return self._adapter(DatabaseRole.BACKUP).initialize()

    def sync_primary_to_backup(self) -> SyncSummary:
        """
        Copy all primary data into the backup, overwriting its contents.

        Backup tables are cleared children first, then each table is copied
        parents first in its own transaction. A failed table is recorded in
        the summary and the remaining tables are still copied. With snapshots
        configured, the backup is snapshotted first and a failed snapshot
        stops the sync before anything is overwritten.

        Raises:
            PreconditionFailedError: If either database is unhealthy at sync time
            UnhealthyError: If the pre-sync snapshot cannot be written
        """
        primary = self._adapter(DatabaseRole.PRIMARY)
        backup = self._adapter(DatabaseRole.BACKUP)

        probes = self._probe_all()
        if not probes[DatabaseRole.PRIMARY].healthy:
            raise PreconditionFailedError(
                f"Cannot sync: primary database unavailable: {probes[DatabaseRole.PRIMARY].detail}",
                backend=DatabaseRole.PRIMARY.value,
                code="source_unavailable",
            )
        if not probes[DatabaseRole.BACKUP].healthy:
            raise PreconditionFailedError(
                f"Cannot sync: backup database unavailable: {probes[DatabaseRole.BACKUP].detail}",
                backend=DatabaseRole.BACKUP.value,
                code="target_unavailable",
            )

        started_at = datetime.now(timezone.utc)
        logger.info("Starting primary to backup database sync")
        if self.snapshots is not None:
            # The backup's current contents are about to be overwritten
            self.snapshots.write(backup, reason="sync primary to backup", kind=SnapshotKind.EMERGENCY)
        backup.initialize()

        tables: Dict[str, int] = {}
        failed: Dict[str, str] = {}
        # sorted_tables lists parents before children: clear children first, copy parents first
        ordered = primary.metadata.sorted_tables
        for table in reversed(ordered):
            try:
                backup.clear_table(table)
            except HybridStorageError as e:
                failed[table.name] = e.message
                logger.error(f"Failed to clear backup table {table.name}: {e.message}")

        for table in ordered:
            if table.name in failed:
                continue
            try:
                tables[table.name] = backup.copy_table_from(primary, table)
                logger.info(f"Synced table {table.name}: {tables[table.name]} rows")
            except HybridStorageError as e:
                failed[table.name] = e.message
                logger.error(f"Failed to sync table {table.name}: {e.message}")

        summary = SyncSummary(
            tables=tables,
            failed_tables=failed,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Database sync finished: {len(tables)} tables, {summary.total_rows} rows, "
            f"{len(failed)} failed"
        )
        return summary

    def _require_snapshots(self) -> SnapshotStore:
        if self.snapshots is None:
            raise PreconditionFailedError(
                "Database snapshots are not configured",
                code="snapshots_disabled",
            )
        return self.snapshots

    def create_snapshot(self, source: Optional[DatabaseRole] = None, reason: str = "manual") -> SnapshotInfo:
        """
        Write a JSON snapshot of one database.

        Args:
            source: Database to snapshot; the active database when omitted
            reason: Note stored in the snapshot

        Raises:
            PreconditionFailedError: If snapshots are not configured or the source
                fails a fresh health check
        """
        snapshots = self._require_snapshots()
        adapter = self._adapter(DatabaseRole(source)) if source else self.active_adapter()

        result = self.monitor.probe(adapter)
        if not result.healthy:
            raise PreconditionFailedError(
                f"Cannot snapshot the {adapter.role.value} database: {result.detail}",
                backend=adapter.role.value,
                code="source_unavailable",
            )
        return snapshots.write(adapter, reason=reason)

    def list_snapshots(self) -> List[SnapshotInfo]:
        """Snapshots on disk, newest first."""
        return self._require_snapshots().list()

    def active_adapter(self) -> DatabaseAdapter:
        """
        Return the adapter for the active database.

        Raises:
            UnreachableError: If no database has been healthy yet
        """
        if self._active is None:
            self.get_health()
        if self._active is None:
            raise UnreachableError(
                "No database is available: primary and backup both failed their health checks",
                code="no_active_database",
            )
        return self.adapters[self._active]
