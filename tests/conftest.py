"""
Shared fixtures: SQLite-backed databases, an in-memory object store with
failure injection, and a fully wired coordinator.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from hybridstore.models.files import FileUpload, ProviderName
from hybridstore.models.health import DatabaseRole
from hybridstore.storage.database import DatabaseAdapter
from hybridstore.storage.errors import HybridStorageError, NotFoundError, UnreachableError
from hybridstore.storage.failover import FailoverController
from hybridstore.storage.health import HealthMonitor
from hybridstore.storage.providers.base import DEFAULT_MAX_SIZE_BYTES, ObjectStorageAdapter
from hybridstore.storage.providers.filesystem import LocalStorageAdapter
from hybridstore.storage.registry import FileRegistry
from hybridstore.storage.service import StorageCoordinator


class InMemoryStorageAdapter(ObjectStorageAdapter):
    """Object store kept in a dict, standing in for a cloud provider."""

    def __init__(self, name: ProviderName, max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
                 allowed_mime_types: Optional[List[str]] = None):
        super().__init__(name, max_size_bytes, allowed_mime_types)
        self.objects: Dict[str, bytes] = {}
        self.healthy = True
        self.health_error: Optional[HybridStorageError] = None
        self.fail_puts: Dict[str, HybridStorageError] = {}
        self.put_calls: List[str] = []
        self.health_checks = 0
        self.put_gate: Optional[threading.Event] = None
        self.put_started = threading.Event()
        self.down_after_puts: Optional[int] = None

    def _down(self) -> UnreachableError:
        return UnreachableError(f"{self.name.value} is not responding", backend=self.name.value)

    def check_health(self) -> None:
        self.health_checks += 1
        if not self.healthy:
            raise self.health_error or self._down()

    def put(self, path: str, content: bytes, mime_type: str) -> None:
        self.put_calls.append(path)
        self.put_started.set()
        if self.put_gate is not None:
            self.put_gate.wait(5)
        if not self.healthy:
            raise self._down()
        if path in self.fail_puts:
            raise self.fail_puts[path]
        self.objects[path] = content
        if self.down_after_puts is not None and len(self.objects) >= self.down_after_puts:
            self.healthy = False

    def get(self, path: str) -> bytes:
        if not self.healthy:
            raise self._down()
        if path not in self.objects:
            raise NotFoundError(f"File not found on {self.name.value}: {path}", backend=self.name.value)
        return self.objects[path]

    def delete(self, path: str) -> None:
        if not self.healthy:
            raise self._down()
        if self.objects.pop(path, None) is None:
            raise NotFoundError(f"File not found on {self.name.value}: {path}", backend=self.name.value)

    def exists(self, path: str) -> bool:
        if not self.healthy:
            raise self._down()
        return path in self.objects

    def list_paths(self, prefix: str = "") -> List[str]:
        if not self.healthy:
            raise self._down()
        return sorted(path for path in self.objects if path.startswith(prefix))

    def url_for(self, path: str) -> str:
        return f"memory://{self.name.value}/{path}"


def sqlite_url(path: Path) -> str:
    return f"sqlite:///{path}"


@pytest.fixture
def monitor():
    monitor = HealthMonitor(probe_timeout_seconds=2)
    yield monitor
    monitor.shutdown()


@pytest.fixture
def primary_db(tmp_path, monitor):
    adapter = DatabaseAdapter(DatabaseRole.PRIMARY, url=sqlite_url(tmp_path / "primary.db"), monitor=monitor)
    yield adapter
    adapter.dispose()


@pytest.fixture
def backup_db(tmp_path, monitor):
    adapter = DatabaseAdapter(DatabaseRole.BACKUP, url=sqlite_url(tmp_path / "backup.db"), monitor=monitor)
    yield adapter
    adapter.dispose()


@pytest.fixture
def unreachable_db_url(tmp_path):
    """SQLite URL inside a directory that does not exist."""
    return sqlite_url(tmp_path / "missing" / "nowhere.db")


@pytest.fixture
def failover(primary_db, backup_db, monitor):
    return FailoverController(primary_db, backup_db, monitor)


@pytest.fixture
def registry(failover):
    return FileRegistry(failover)


@pytest.fixture
def local_adapter(tmp_path):
    return LocalStorageAdapter(tmp_path / "uploads")


@pytest.fixture
def cloud_a():
    return InMemoryStorageAdapter(ProviderName.CLOUD_A)


@pytest.fixture
def cloud_b():
    return InMemoryStorageAdapter(ProviderName.CLOUD_B)


@pytest.fixture
def coordinator(local_adapter, cloud_a, cloud_b, monitor, registry):
    coordinator = StorageCoordinator(
        {
            ProviderName.LOCAL: local_adapter,
            ProviderName.CLOUD_A: cloud_a,
            ProviderName.CLOUD_B: cloud_b,
        },
        monitor,
        preferred=ProviderName.LOCAL,
        registry=registry,
        health_ttl_seconds=0,
        operation_timeout_seconds=5,
    )
    yield coordinator
    coordinator.shutdown()


def make_upload(path: str = "transactions/1/receipt.pdf", content: bytes = b"%PDF-1.4 receipt",
                mime_type: str = "application/pdf") -> FileUpload:
    return FileUpload(path=path, content=content, mime_type=mime_type)
