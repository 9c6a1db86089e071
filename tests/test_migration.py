"""
Unit tests for bulk file migration and storage cleanup.
"""

import threading

import pytest

from conftest import make_upload
from hybridstore.models.files import ProviderName, StoredFile
from hybridstore.models.migration import MigrationState
from hybridstore.storage.errors import (
    AlreadyInProgressError,
    PreconditionFailedError,
    UnreachableError,
)


def store_files(coordinator, count, provider=ProviderName.LOCAL):
    paths = []
    for index in range(1, count + 1):
        upload = make_upload(path=f"transactions/{index}/invoice.pdf", content=f"invoice {index}".encode())
        paths.append(coordinator.store(upload, provider=provider).path)
    return paths


class TestMigration:
    """Test cases for MigrationTracker.start and status."""

    def test_partial_failure_is_counted_not_fatal(self, coordinator, cloud_b, registry):
        """Test that 10 files with one transient failure end as 9 migrated and 1 failed."""
        paths = store_files(coordinator, 10)
        cloud_b.fail_puts[paths[3]] = UnreachableError("connection reset by peer", backend="cloud-b")

        started = coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_B)
        assert started.in_progress is True
        assert coordinator.migrations.wait(timeout=10)

        status = coordinator.migrations.status()
        assert status.in_progress is False
        assert status.state == MigrationState.COMPLETED
        assert status.total_files == 10
        assert status.migrated_files == 9
        assert status.failed_files == 1
        assert len(status.errors) == 1
        assert paths[3] in status.errors[0]
        assert status.last_migration is not None

        assert len(registry.list(provider=ProviderName.CLOUD_B)) == 9
        assert [f.path for f in registry.list(provider=ProviderName.LOCAL)] == [paths[3]]

    def test_counters_add_up(self, coordinator):
        store_files(coordinator, 4)
        coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_A)
        coordinator.migrations.wait(timeout=10)

        status = coordinator.migrations.status()
        assert status.total_files == 4
        assert status.migrated_files + status.failed_files == status.total_files
        assert status.processed_files == 4

    def test_second_start_rejected(self, coordinator, cloud_b):
        """Test that a concurrent start fails and leaves the running migration untouched."""
        store_files(coordinator, 3)
        gate = threading.Event()
        cloud_b.put_gate = gate
        try:
            coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_B)
            with pytest.raises(AlreadyInProgressError):
                coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_A)

            status = coordinator.migrations.status()
            assert status.in_progress is True
            assert status.source == ProviderName.LOCAL
            assert status.destination == ProviderName.CLOUD_B

            with pytest.raises(AlreadyInProgressError):
                coordinator.migrations.cleanup()
        finally:
            gate.set()
        assert coordinator.migrations.wait(timeout=10)
        assert coordinator.migrations.status().migrated_files == 3

    def test_cancel(self, coordinator, cloud_b):
        store_files(coordinator, 3)
        gate = threading.Event()
        cloud_b.put_gate = gate
        coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_B)
        assert cloud_b.put_started.wait(5)

        coordinator.migrations.cancel()
        gate.set()
        assert coordinator.migrations.wait(timeout=10)

        status = coordinator.migrations.status()
        assert status.state == MigrationState.CANCELLED
        assert status.in_progress is False
        assert status.migrated_files == 1

    def test_cancel_when_idle(self, coordinator):
        with pytest.raises(PreconditionFailedError) as exc_info:
            coordinator.migrations.cancel()
        assert exc_info.value.code == "not_running"

    def test_abort_when_destination_goes_down(self, coordinator, cloud_b):
        """Test that losing the destination aborts the run with counts as they stood."""
        store_files(coordinator, 5)
        cloud_b.down_after_puts = 2

        coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_B)
        assert coordinator.migrations.wait(timeout=10)

        status = coordinator.migrations.status()
        assert status.state == MigrationState.ABORTED
        assert status.in_progress is False
        assert status.migrated_files == 2
        assert status.failed_files == 1
        assert any("aborted" in error for error in status.errors)

    def test_start_preconditions(self, coordinator, cloud_a):
        with pytest.raises(PreconditionFailedError) as exc_info:
            coordinator.migrations.start(ProviderName.LOCAL, ProviderName.LOCAL)
        assert exc_info.value.code == "same_provider"

        cloud_a.healthy = False
        with pytest.raises(PreconditionFailedError) as exc_info:
            coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_A)
        assert exc_info.value.code == "destination_unavailable"
        assert coordinator.migrations.status().state == MigrationState.IDLE

    def test_new_run_resets_counters(self, coordinator, cloud_a):
        store_files(coordinator, 2)
        coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_A)
        coordinator.migrations.wait(timeout=10)

        coordinator.migrations.start(ProviderName.CLOUD_A, ProviderName.CLOUD_B)
        coordinator.migrations.wait(timeout=10)
        status = coordinator.migrations.status()
        assert status.total_files == 2
        assert status.migrated_files == 2
        assert status.errors == []


class TestCleanup:
    """Test cases for MigrationTracker.cleanup."""

    def test_removes_broken_links(self, coordinator, local_adapter, registry):
        stored = coordinator.store(make_upload())
        local_adapter.delete(stored.path)

        summary = coordinator.migrations.cleanup()
        assert summary.checked_records == 1
        assert summary.removed_links == 1
        assert registry.get(stored.path) is None

    def test_repairs_link_from_shadow_copy(self, coordinator, local_adapter, registry):
        """Test that a record is re-pointed at a surviving copy."""
        stored = coordinator.store(make_upload())
        coordinator.sync_file_across_providers(make_upload(), [ProviderName.CLOUD_B])
        local_adapter.delete(stored.path)

        summary = coordinator.migrations.cleanup()
        assert summary.repaired_links == 1
        assert registry.get(stored.path).provider == ProviderName.CLOUD_B

    def test_deletes_orphans_keeps_shadow_copies(self, coordinator, cloud_a):
        stored = coordinator.store(make_upload())
        coordinator.sync_file_across_providers(make_upload(), [ProviderName.CLOUD_A])
        cloud_a.objects["leftover/old.pdf"] = b"orphan"

        summary = coordinator.migrations.cleanup()
        assert summary.orphans_found == 1
        assert summary.deleted_orphans == 1
        assert "leftover/old.pdf" not in cloud_a.objects
        assert stored.path in cloud_a.objects

    def test_dry_run_changes_nothing(self, coordinator, local_adapter, cloud_a, registry):
        stored = coordinator.store(make_upload())
        local_adapter.delete(stored.path)
        cloud_a.objects["leftover/old.pdf"] = b"orphan"

        summary = coordinator.migrations.cleanup(dry_run=True)
        assert summary.dry_run is True
        assert summary.removed_links == 1
        assert summary.orphans_found == 1
        assert summary.deleted_orphans == 0
        assert registry.get(stored.path) is not None
        assert "leftover/old.pdf" in cloud_a.objects

    def test_unverifiable_records_skipped(self, coordinator, cloud_a, registry):
        """Test that records on an unreachable provider are left alone."""
        registry.record(StoredFile(path="on-cloud.pdf", provider=ProviderName.CLOUD_A, size_bytes=3))
        cloud_a.healthy = False

        summary = coordinator.migrations.cleanup()
        assert summary.skipped == 1
        assert summary.removed_links == 0
        assert registry.get("on-cloud.pdf") is not None

    def test_keeps_record_while_copy_holder_is_down(self, coordinator, local_adapter, cloud_b, registry):
        """Test that a copy on an unreachable provider survives two cleanups."""
        stored = coordinator.store(make_upload())
        coordinator.sync_file_across_providers(make_upload(), [ProviderName.CLOUD_B])
        local_adapter.delete(stored.path)
        cloud_b.healthy = False

        summary = coordinator.migrations.cleanup()
        assert summary.removed_links == 0
        assert summary.skipped == 1
        assert registry.get(stored.path) is not None

        cloud_b.healthy = True
        summary = coordinator.migrations.cleanup()
        assert summary.repaired_links == 1
        assert summary.deleted_orphans == 0
        assert registry.get(stored.path).provider == ProviderName.CLOUD_B
        assert stored.path in cloud_b.objects

    def test_migrated_source_copy_kept_until_file_deleted(self, coordinator, local_adapter, registry):
        """Test that a migration's leftover source object is only removed once its file is deleted."""
        stored = coordinator.store(make_upload())
        coordinator.migrations.start(ProviderName.LOCAL, ProviderName.CLOUD_B)
        assert coordinator.migrations.wait(timeout=10)

        summary = coordinator.migrations.cleanup()
        assert summary.orphans_found == 0
        assert local_adapter.exists(stored.path)

        coordinator.delete(registry.get(stored.path))
        summary = coordinator.migrations.cleanup()
        assert summary.deleted_orphans == 1
        assert not local_adapter.exists(stored.path)
