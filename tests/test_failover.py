"""
Unit tests for the database failover controller and the file registry.
"""

import pytest
from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, event

from hybridstore.models.files import ProviderName, StoredFile
from hybridstore.models.health import ActiveDatabase, DatabaseRole
from hybridstore.storage.database import DatabaseAdapter
from hybridstore.storage.errors import (
    NotFoundError,
    PreconditionFailedError,
    UnhealthyError,
    UnreachableError,
)
from hybridstore.storage.failover import FailoverController
from hybridstore.storage.registry import FileRegistry


def go_down(monkeypatch, adapter):
    """Make every later probe of adapter fail as unreachable."""
    def check_health():
        raise UnreachableError(f"{adapter.role.value} database is down", backend=adapter.role.value)
    monkeypatch.setattr(adapter, "check_health", check_health)


def enforce_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class TestFailoverHealth:
    """Test cases for health reporting and the active pointer."""

    def test_both_healthy_primary_active(self, failover):
        health = failover.get_health()
        assert health.primary is True
        assert health.backup is True
        assert health.active == ActiveDatabase.PRIMARY

    def test_primary_unreachable_at_startup(self, tmp_path, unreachable_db_url, backup_db, monitor):
        """Test that a dead primary at startup leaves the backup active."""
        primary = DatabaseAdapter(DatabaseRole.PRIMARY, url=unreachable_db_url, monitor=monitor)
        controller = FailoverController(primary, backup_db, monitor)

        health = controller.get_health()
        assert health.primary is False
        assert health.backup is True
        assert health.active == ActiveDatabase.BACKUP

    def test_none_only_when_both_unhealthy(self, failover, primary_db, backup_db, monkeypatch):
        go_down(monkeypatch, primary_db)
        go_down(monkeypatch, backup_db)

        health = failover.get_health()
        assert health.active == ActiveDatabase.NONE
        with pytest.raises(UnreachableError) as exc_info:
            failover.active_adapter()
        assert exc_info.value.code == "no_active_database"

    def test_no_automatic_switch(self, failover, primary_db, monkeypatch):
        """Test that an unhealthy active database is reported, not replaced."""
        assert failover.get_health().active == ActiveDatabase.PRIMARY
        go_down(monkeypatch, primary_db)

        health = failover.get_health()
        assert health.primary is False
        assert health.active == ActiveDatabase.PRIMARY


class TestFailoverSwitch:
    """Test cases for switch_to."""

    def test_switch_to_healthy_backup(self, failover):
        failover.get_health()
        health = failover.switch_to(DatabaseRole.BACKUP)
        assert health.active == ActiveDatabase.BACKUP
        assert failover.active == DatabaseRole.BACKUP

    def test_switch_to_unhealthy_target_refused(self, tmp_path, unreachable_db_url, backup_db, monitor):
        """Test that switching to an unreachable primary fails and leaves backup active."""
        primary = DatabaseAdapter(DatabaseRole.PRIMARY, url=unreachable_db_url, monitor=monitor)
        controller = FailoverController(primary, backup_db, monitor)
        assert controller.get_health().active == ActiveDatabase.BACKUP

        with pytest.raises(PreconditionFailedError) as exc_info:
            controller.switch_to(DatabaseRole.PRIMARY)
        assert exc_info.value.code == "target_unavailable"
        assert exc_info.value.backend == "primary"
        assert controller.get_health().active == ActiveDatabase.BACKUP

    def test_switch_to_active_is_noop(self, failover):
        failover.get_health()
        assert failover.switch_to(DatabaseRole.PRIMARY).active == ActiveDatabase.PRIMARY

    def test_switch_without_backup(self, primary_db, monitor):
        controller = FailoverController(primary_db, None, monitor)
        with pytest.raises(PreconditionFailedError) as exc_info:
            controller.switch_to(DatabaseRole.BACKUP)
        assert exc_info.value.code == "not_configured"
        assert controller.get_health().backup is False


class TestFailoverSync:
    """Test cases for backup initialization and primary-to-backup sync."""

    @pytest.fixture
    def business_metadata(self):
        metadata = MetaData()
        Table("accounts", metadata,
              Column("id", Integer, primary_key=True),
              Column("name", String(100), nullable=False))
        Table("transactions", metadata,
              Column("id", Integer, primary_key=True),
              Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
              Column("description", String(200)))
        return metadata

    @pytest.fixture
    def controller(self, tmp_path, monitor, business_metadata):
        primary = DatabaseAdapter(DatabaseRole.PRIMARY, url=f"sqlite:///{tmp_path / 'p.db'}",
                                  metadata=business_metadata, monitor=monitor)
        backup = DatabaseAdapter(DatabaseRole.BACKUP, url=f"sqlite:///{tmp_path / 'b.db'}",
                                 metadata=business_metadata, monitor=monitor)
        primary.initialize()
        primary.execute("INSERT INTO accounts (id, name) VALUES (1, 'Cash'), (2, 'Bank')")
        primary.execute("INSERT INTO transactions (id, account_id, description) VALUES (1, 1, 'Coffee')")
        yield FailoverController(primary, backup, monitor)
        primary.dispose()
        backup.dispose()

    def test_initialize_backup(self, controller):
        summary = controller.initialize_backup()
        assert sorted(summary.created_tables) == ["accounts", "transactions"]
        assert controller.initialize_backup().already_initialized is True

    def test_sync_copies_all_tables(self, controller):
        """Test that sync overwrites the backup with primary data."""
        backup = controller.adapters[DatabaseRole.BACKUP]
        backup.initialize()
        backup.execute("INSERT INTO accounts (id, name) VALUES (9, 'Stale')")

        summary = controller.sync_primary_to_backup()
        assert summary.complete is True
        assert summary.tables == {"accounts": 2, "transactions": 1}
        assert summary.total_rows == 3
        assert backup.execute("SELECT id, name FROM accounts ORDER BY id") == [
            {"id": 1, "name": "Cash"},
            {"id": 2, "name": "Bank"},
        ]

    def test_repeated_sync_with_foreign_keys(self, controller):
        """Test that a second sync succeeds when the backup enforces foreign keys."""
        primary = controller.adapters[DatabaseRole.PRIMARY]
        backup = controller.adapters[DatabaseRole.BACKUP]
        event.listen(backup.engine, "connect", enforce_foreign_keys)
        assert backup.execute("PRAGMA foreign_keys") == [{"foreign_keys": 1}]

        assert controller.sync_primary_to_backup().complete is True

        primary.execute("INSERT INTO transactions (id, account_id, description) VALUES (2, 2, 'Rent')")
        summary = controller.sync_primary_to_backup()
        assert summary.failed_tables == {}
        assert summary.tables == {"accounts": 2, "transactions": 2}
        assert backup.execute("SELECT id, account_id FROM transactions ORDER BY id") == [
            {"id": 1, "account_id": 1},
            {"id": 2, "account_id": 2},
        ]

    def test_sync_reports_failed_tables(self, controller, monkeypatch):
        """Test that one failing table does not stop the others."""
        backup = controller.adapters[DatabaseRole.BACKUP]
        original = backup.copy_table_from

        def copy_table_from(source, table):
            if table.name == "transactions":
                raise UnhealthyError("disk full", backend="backup")
            return original(source, table)

        monkeypatch.setattr(backup, "copy_table_from", copy_table_from)
        summary = controller.sync_primary_to_backup()
        assert summary.complete is False
        assert summary.tables == {"accounts": 2}
        assert summary.failed_tables == {"transactions": "disk full"}

    def test_sync_requires_healthy_backup(self, controller, monkeypatch):
        go_down(monkeypatch, controller.adapters[DatabaseRole.BACKUP])
        with pytest.raises(PreconditionFailedError) as exc_info:
            controller.sync_primary_to_backup()
        assert exc_info.value.code == "target_unavailable"

    def test_sync_requires_healthy_primary(self, controller, monkeypatch):
        go_down(monkeypatch, controller.adapters[DatabaseRole.PRIMARY])
        with pytest.raises(PreconditionFailedError) as exc_info:
            controller.sync_primary_to_backup()
        assert exc_info.value.code == "source_unavailable"


class TestFileRegistry:
    """Test cases for FileRegistry."""

    def test_record_and_lookup(self, registry):
        stored = StoredFile(path="transactions/1/receipt.pdf", provider=ProviderName.LOCAL,
                            size_bytes=10, mime_type="application/pdf")
        registry.record(stored)

        found = registry.get("transactions/1/receipt.pdf")
        assert found.provider == ProviderName.LOCAL
        assert found.size_bytes == 10
        assert found.uploaded_at.tzinfo is not None
        assert registry.get("missing.pdf") is None
        with pytest.raises(NotFoundError):
            registry.require("missing.pdf")

    def test_record_replaces_existing(self, registry):
        registry.record(StoredFile(path="a.txt", provider=ProviderName.LOCAL, size_bytes=1))
        registry.record(StoredFile(path="a.txt", provider=ProviderName.CLOUD_A, size_bytes=2))
        assert [f.provider for f in registry.list()] == [ProviderName.CLOUD_A]

    def test_update_list_and_inventory(self, registry):
        for index in range(3):
            registry.record(StoredFile(path=f"f{index}.txt", provider=ProviderName.LOCAL, size_bytes=5))

        assert registry.update_provider("f1.txt", ProviderName.CLOUD_B) is True
        assert registry.update_provider("missing.txt", ProviderName.CLOUD_B) is False
        assert [f.path for f in registry.list(provider=ProviderName.LOCAL)] == ["f0.txt", "f2.txt"]
        assert registry.paths() == {"f0.txt", "f1.txt", "f2.txt"}

        inventory = registry.inventory()
        assert inventory.total_files == 3
        assert inventory.total_bytes == 15
        assert inventory.by_provider == {ProviderName.LOCAL: 2, ProviderName.CLOUD_B: 1}

        assert registry.remove("f0.txt") is True
        assert registry.remove("f0.txt") is False

    def test_follows_active_database(self, registry, failover):
        """Test that records go to whichever database is active."""
        registry.record(StoredFile(path="on-primary.txt", provider=ProviderName.LOCAL, size_bytes=1))
        failover.switch_to(DatabaseRole.BACKUP)
        registry.record(StoredFile(path="on-backup.txt", provider=ProviderName.LOCAL, size_bytes=1))

        assert registry.paths() == {"on-backup.txt"}
        failover.switch_to(DatabaseRole.PRIMARY)
        assert registry.paths() == {"on-primary.txt"}
