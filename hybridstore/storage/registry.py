"""
File registry backed by the active database.

The registry holds the logical records that point business entities at
stored objects: one row per file, naming the provider that holds the
canonical copy. It always reads and writes whichever database the failover
controller currently designates as active.
"""

import logging
import threading
from datetime import timezone
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, func, insert, select, update

from ..models.files import FileInventory, ProviderName, StoredFile
from ..models.health import DatabaseRole
from .database import DatabaseAdapter
from .errors import NotFoundError
from .failover import FailoverController
from .schema import stored_files

logger = logging.getLogger(__name__)


def _row_to_stored_file(row) -> StoredFile:
    uploaded_at = row["uploaded_at"]
    if uploaded_at is not None and uploaded_at.tzinfo is None:
        uploaded_at = uploaded_at.replace(tzinfo=timezone.utc)
    return StoredFile(
        path=row["path"],
        provider=ProviderName(row["provider"]),
        size_bytes=row["size_bytes"],
        mime_type=row["mime_type"],
        uploaded_at=uploaded_at,
    )


class FileRegistry:
    """Logical file records stored in the active database."""

    def __init__(self, failover: FailoverController):
        self.failover = failover
        self._initialized: Set[DatabaseRole] = set()
        self._init_lock = threading.Lock()

    def _adapter(self) -> DatabaseAdapter:
        adapter = self.failover.active_adapter()
        if adapter.role not in self._initialized:
            with self._init_lock:
                if adapter.role not in self._initialized:
                    adapter.initialize()
                    self._initialized.add(adapter.role)
        return adapter

    def record(self, stored_file: StoredFile) -> StoredFile:
        """Insert or replace the record for stored_file.path."""
        values = {
            "path": stored_file.path,
            "provider": stored_file.provider.value,
            "size_bytes": stored_file.size_bytes,
            "mime_type": stored_file.mime_type,
            "uploaded_at": stored_file.uploaded_at,
        }
        with self._adapter().transaction() as conn:
            conn.execute(delete(stored_files).where(stored_files.c.path == stored_file.path))
            conn.execute(insert(stored_files).values(**values))
        logger.debug(f"Recorded {stored_file.path} on {stored_file.provider.value}")
        return stored_file

    def get(self, path: str) -> Optional[StoredFile]:
        with self._adapter().transaction() as conn:
            row = conn.execute(
                select(stored_files).where(stored_files.c.path == path)
            ).mappings().first()
        return _row_to_stored_file(row) if row else None

    def require(self, path: str) -> StoredFile:
        stored_file = self.get(path)
        if stored_file is None:
            raise NotFoundError(f"No file is registered at {path}", code="unknown_file")
        return stored_file

    def remove(self, path: str) -> bool:
        with self._adapter().transaction() as conn:
            result = conn.execute(delete(stored_files).where(stored_files.c.path == path))
        return result.rowcount > 0

    def update_provider(self, path: str, provider: ProviderName) -> bool:
        """Re-point a record at a different canonical provider."""
        with self._adapter().transaction() as conn:
            result = conn.execute(
                update(stored_files)
                .where(stored_files.c.path == path)
                .values(provider=ProviderName(provider).value)
            )
        return result.rowcount > 0

    def list(self, provider: Optional[ProviderName] = None) -> List[StoredFile]:
        query = select(stored_files).order_by(stored_files.c.path)
        if provider is not None:
            query = query.where(stored_files.c.provider == ProviderName(provider).value)
        with self._adapter().transaction() as conn:
            rows = conn.execute(query).mappings().all()
        return [_row_to_stored_file(row) for row in rows]

    def paths(self) -> Set[str]:
        with self._adapter().transaction() as conn:
            return set(conn.execute(select(stored_files.c.path)).scalars().all())

    def inventory(self) -> FileInventory:
        query = (
            select(
                stored_files.c.provider,
                func.count().label("files"),
                func.coalesce(func.sum(stored_files.c.size_bytes), 0).label("bytes"),
            )
            .group_by(stored_files.c.provider)
        )
        with self._adapter().transaction() as conn:
            rows = conn.execute(query).mappings().all()

        by_provider: Dict[ProviderName, int] = {}
        total_bytes = 0
        for row in rows:
            by_provider[ProviderName(row["provider"])] = row["files"]
            total_bytes += int(row["bytes"])
        return FileInventory(
            total_files=sum(by_provider.values()),
            by_provider=by_provider,
            total_bytes=total_bytes,
        )
