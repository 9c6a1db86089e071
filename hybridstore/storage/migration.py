"""
Bulk file migration and storage cleanup.

A migration moves the canonical copy of every registered file from one
provider to another in a background worker thread. Per-file failures are
counted and recorded without stopping the run; only an unrecoverable
condition (source or destination no longer reachable) aborts it.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Set

from ..models.files import FileUpload, ProviderName, StoredFile
from ..models.migration import CleanupSummary, MigrationState, MigrationStatus
from .errors import (
    AlreadyInProgressError,
    ErrorKind,
    HybridStorageError,
    NotFoundError,
    PreconditionFailedError,
)
from .providers.base import ObjectStorageAdapter

if TYPE_CHECKING:
    from .registry import FileRegistry
    from .service import StorageCoordinator

logger = logging.getLogger(__name__)


class MigrationTracker:
    """
    Runs at most one migration at a time and tracks its progress.

    Cleanup shares the same exclusion: it is refused while a migration runs
    and a migration cannot start while cleanup is reconciling.
    """

    def __init__(self, coordinator: "StorageCoordinator", pause_seconds: float = 0.0):
        self.coordinator = coordinator
        self.pause_seconds = pause_seconds

        self._status = MigrationStatus()
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._cleanup_running = False

    def status(self) -> MigrationStatus:
        """Snapshot of the current or most recent migration."""
        with self._lock:
            return self._status.model_copy(deep=True)

    def _registry(self) -> "FileRegistry":
        return self.coordinator.require_registry()

    def start(self, source: ProviderName, destination: ProviderName) -> MigrationStatus:
        """
        Start moving every file whose canonical copy is on source to destination.

        Returns immediately; poll status() for progress.

        Raises:
            PreconditionFailedError: If source equals destination, either provider is
                not configured, or the destination fails a fresh probe
            AlreadyInProgressError: If a migration or cleanup is already running;
                the running migration's status is left untouched
        """
        source = ProviderName(source)
        destination = ProviderName(destination)
        if source == destination:
            raise PreconditionFailedError(
                f"Source and destination are both {source.value}",
                backend=source.value,
                code="same_provider",
            )
        registry = self._registry()
        source_adapter = self.coordinator.adapter(source)
        destination_adapter = self.coordinator.adapter(destination)

        self._ensure_idle()

        result = self.coordinator.monitor.probe(destination_adapter)
        if not result.healthy:
            raise PreconditionFailedError(
                f"Cannot migrate to {destination.value}: {result.detail}",
                backend=destination.value,
                code="destination_unavailable",
            )

        with self._lock:
            self._ensure_idle_locked()
            self._status.total_files = 0
            self._status.migrated_files = 0
            self._status.failed_files = 0
            self._status.errors = []
            self._status.in_progress = True
            self._status.state = MigrationState.RUNNING
            self._status.source = source
            self._status.destination = destination
            self._status.started_at = datetime.now(timezone.utc)
            self._cancel.clear()

            self._worker = threading.Thread(
                target=self._run,
                args=(source_adapter, destination_adapter, registry),
                name="file-migration",
                daemon=True,
            )
            self._worker.start()
            snapshot = self._status.model_copy(deep=True)

        logger.info(f"Migration from {source.value} to {destination.value} started")
        return snapshot

    def _ensure_idle(self) -> None:
        with self._lock:
            self._ensure_idle_locked()

    def _ensure_idle_locked(self) -> None:
        if self._status.in_progress:
            raise AlreadyInProgressError(
                f"A migration from {self._status.source.value} to "
                f"{self._status.destination.value} is already running",
                code="migration_running",
            )
        if self._cleanup_running:
            raise AlreadyInProgressError("Storage cleanup is running", code="cleanup_running")

    def cancel(self) -> MigrationStatus:
        """
        Ask the running migration to stop after the file it is working on.

        Raises:
            PreconditionFailedError: If no migration is running
        """
        with self._lock:
            if not self._status.in_progress:
                raise PreconditionFailedError("No migration is running", code="not_running")
            self._cancel.set()
            snapshot = self._status.model_copy(deep=True)
        logger.info("Migration cancellation requested")
        return snapshot

    def cancel_if_running(self) -> None:
        with self._lock:
            if self._status.in_progress:
                self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker finishes. Returns False on timeout."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _record_failure(self, message: str) -> None:
        with self._lock:
            self._status.failed_files += 1
            self._status.errors.append(message)

    def _run(self, source: ObjectStorageAdapter, destination: ObjectStorageAdapter,
             registry: "FileRegistry") -> None:
        final_state = MigrationState.COMPLETED
        try:
            files = registry.list(provider=source.name)
            with self._lock:
                self._status.total_files = len(files)
            logger.info(f"Migrating {len(files)} files from {source.name.value} to {destination.name.value}")

            for stored_file in files:
                if self._cancel.is_set():
                    final_state = MigrationState.CANCELLED
                    logger.warning("Migration cancelled")
                    break

                try:
                    self._migrate_file(stored_file, source, destination, registry)
                    with self._lock:
                        self._status.migrated_files += 1
                except HybridStorageError as e:
                    logger.warning(f"Failed to migrate {stored_file.path}: {e}")
                    self._record_failure(f"{stored_file.path}: {e.message}")
                    if e.kind == ErrorKind.UNREACHABLE and not self._backends_reachable(source, destination):
                        final_state = MigrationState.ABORTED
                        break

                if self.pause_seconds:
                    self._cancel.wait(self.pause_seconds)

        except HybridStorageError as e:
            final_state = MigrationState.ABORTED
            logger.error(f"Migration aborted: {e}")
            with self._lock:
                self._status.errors.append(f"Migration aborted: {e.message}")
        except Exception as e:
            final_state = MigrationState.ABORTED
            logger.error(f"Migration aborted by unexpected error: {e}", exc_info=True)
            with self._lock:
                self._status.errors.append(f"Migration aborted by unexpected error: {e}")
        finally:
            with self._lock:
                self._status.in_progress = False
                self._status.state = final_state
                self._status.last_migration = datetime.now(timezone.utc)
                summary = (
                    f"{self._status.migrated_files} migrated, {self._status.failed_files} failed "
                    f"of {self._status.total_files}"
                )
            logger.info(f"Migration {final_state.value}: {summary}")

    def _migrate_file(self, stored_file: StoredFile, source: ObjectStorageAdapter,
                      destination: ObjectStorageAdapter, registry: "FileRegistry") -> None:
        content = source.get(stored_file.path)
        upload = FileUpload(path=stored_file.path, content=content, mime_type=stored_file.mime_type)
        destination.validate(upload)
        destination.put(upload.path, upload.content, upload.mime_type)
        if not registry.update_provider(stored_file.path, destination.name):
            raise NotFoundError(
                f"Record for {stored_file.path} was removed during migration",
                code="record_removed",
            )
        logger.debug(f"Migrated {stored_file.path} to {destination.name.value}")

    def _backends_reachable(self, source: ObjectStorageAdapter, destination: ObjectStorageAdapter) -> bool:
        results = self.coordinator.monitor.probe_many([source, destination])
        for adapter in (source, destination):
            result = results[adapter.target_name]
            if not result.healthy:
                message = f"Migration aborted: {adapter.name.value} unavailable: {result.detail}"
                logger.error(message)
                with self._lock:
                    self._status.errors.append(message)
                return False
        return True

    def cleanup(self, dry_run: bool = False) -> CleanupSummary:
        """
        Reconcile registry records with the objects the providers hold.

        Records whose canonical object is confirmed missing are re-pointed at
        a surviving copy on another provider, or removed once every provider
        has been checked and none holds one.
        Objects whose path has no record at all are deleted. Anything on a
        provider that cannot be verified right now is skipped. With dry_run
        the counts are reported and nothing is changed.

        Raises:
            AlreadyInProgressError: If a migration or another cleanup is running
        """
        registry = self._registry()
        with self._lock:
            self._ensure_idle_locked()
            self._cleanup_running = True

        try:
            return self._cleanup(registry, dry_run)
        finally:
            with self._lock:
                self._cleanup_running = False

    def _cleanup(self, registry: "FileRegistry", dry_run: bool) -> CleanupSummary:
        summary = CleanupSummary(dry_run=dry_run)
        health = self.coordinator.probe_providers(fresh=True)
        healthy: Set[ProviderName] = {name for name, result in health.items() if result.healthy}

        records = registry.list()
        summary.checked_records = len(records)
        removed: Set[str] = set()

        for record in records:
            if record.provider not in healthy:
                summary.skipped += 1
                continue
            adapter = self.coordinator.adapters[record.provider]
            try:
                if adapter.exists(record.path):
                    continue
                replacement = self._find_copy(record, healthy)
            except HybridStorageError as e:
                summary.skipped += 1
                summary.errors.append(f"{record.path}: {e.message}")
                continue

            unverified = sorted(
                name.value for name in self.coordinator.adapters
                if name not in healthy and name != record.provider
            )
            if replacement is None and unverified:
                # A provider that is down may still hold the only copy
                summary.skipped += 1
                summary.errors.append(
                    f"{record.path}: missing on {record.provider.value}; "
                    f"cannot check {', '.join(unverified)}"
                )
                logger.warning(
                    f"{record.path} missing on {record.provider.value}; keeping its record "
                    f"until {', '.join(unverified)} can be checked"
                )
                continue

            if replacement is not None:
                summary.repaired_links += 1
                logger.info(f"{record.path} missing on {record.provider.value}; copy found on {replacement.value}")
                if not dry_run:
                    registry.update_provider(record.path, replacement)
            else:
                summary.removed_links += 1
                removed.add(record.path)
                logger.info(f"{record.path} missing on every reachable provider; dropping its record")
                if not dry_run:
                    registry.remove(record.path)

        known = {record.path for record in records} - removed
        for name in sorted(healthy, key=lambda p: p.value):
            adapter = self.coordinator.adapters[name]
            try:
                paths = adapter.list_paths()
            except HybridStorageError as e:
                summary.skipped += 1
                summary.errors.append(f"{name.value}: {e.message}")
                continue

            for path in paths:
                if path in known:
                    continue
                try:
                    # Re-check: the file may have been registered since the listing.
                    if registry.get(path) is not None:
                        continue
                    summary.orphans_found += 1
                    if dry_run:
                        continue
                    adapter.delete(path)
                    summary.deleted_orphans += 1
                    logger.info(f"Deleted orphan {path} from {name.value}")
                except NotFoundError:
                    continue
                except HybridStorageError as e:
                    summary.skipped += 1
                    summary.errors.append(f"{name.value}/{path}: {e.message}")

        logger.info(
            f"Cleanup {'dry run ' if dry_run else ''}finished: "
            f"{summary.repaired_links} repaired, {summary.removed_links} removed, "
            f"{summary.orphans_found} orphans found, {summary.deleted_orphans} deleted"
        )
        return summary

    def _find_copy(self, record: StoredFile, healthy: Set[ProviderName]) -> Optional[ProviderName]:
        for name in sorted(healthy, key=lambda p: p.value):
            if name == record.provider:
                continue
            if self.coordinator.adapters[name].exists(record.path):
                return name
        return None
