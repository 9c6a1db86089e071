"""
Database adapter for the primary and backup databases.

Wraps one SQLAlchemy engine per role, translates driver errors into the
storage error taxonomy and provides the schema-initialization and table-copy
primitives used by the failover controller.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import Table, create_engine, delete, insert, inspect, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
    SQLAlchemyError,
)
from sqlalchemy.sql import Executable

from ..models.health import DatabaseRole, InitSummary
from . import schema
from .errors import (
    AuthenticationFailedError,
    BackendTimeoutError,
    HybridStorageError,
    PartialFailureError,
    PreconditionFailedError,
    UnhealthyError,
    UnreachableError,
)

logger = logging.getLogger(__name__)

AUTH_MARKERS = (
    "password authentication failed",
    "authentication failed",
    "access denied",
    "permission denied",
    "no pg_hba.conf entry",
    "invalid password",
)
TIMEOUT_MARKERS = ("timeout expired", "timed out", "timeout")
QUERY_MARKERS = ("no such table", "no such column", "syntax error")


def create_database_engine(url: str, timeout_seconds: float = 5) -> Engine:
    """
    Create an engine with a bounded connect timeout for the URL's backend.

    Args:
        url: SQLAlchemy database URL
        timeout_seconds: Connect timeout handed to the driver
    """
    database_url = make_url(url)
    backend = database_url.get_backend_name()

    connect_args: Dict[str, Any] = {}
    if backend == "sqlite":
        connect_args = {"timeout": timeout_seconds, "check_same_thread": False}
    elif backend in ("postgresql", "mysql", "mariadb"):
        connect_args = {"connect_timeout": max(1, int(timeout_seconds))}

    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


class DatabaseAdapter:
    """
    One physical database in a given role (primary or backup).
    """

    def __init__(
        self,
        role: Union[DatabaseRole, str],
        url: Optional[str] = None,
        engine: Optional[Engine] = None,
        metadata=None,
        monitor=None,
        timeout_seconds: float = 5,
    ):
        """
        Initialize database adapter.

        Args:
            role: Role this database plays
            url: SQLAlchemy URL (ignored when engine is given)
            engine: Pre-built engine
            metadata: Tables managed by initialize() and copied by sync
            monitor: HealthMonitor used by is_healthy()
        """
        if engine is None and url is None:
            raise ValueError("Either url or engine is required")
        self.role = DatabaseRole(role)
        self.engine = engine if engine is not None else create_database_engine(url, timeout_seconds)
        self.metadata = metadata if metadata is not None else schema.metadata
        self.monitor = monitor

    @property
    def target_name(self) -> str:
        return f"database:{self.role.value}"

    def _translate(self, error: SQLAlchemyError, action: str) -> HybridStorageError:
        backend = self.role.value
        message = f"Failed to {action} on {backend} database: {error}"
        logger.error(message)

        if isinstance(error, (OperationalError, InterfaceError)):
            detail = str(getattr(error, "orig", None) or error).lower()
            if any(marker in detail for marker in QUERY_MARKERS):
                return PreconditionFailedError(message, backend=backend, code="query_rejected")
            if any(marker in detail for marker in AUTH_MARKERS):
                return AuthenticationFailedError(message, backend=backend)
            if any(marker in detail for marker in TIMEOUT_MARKERS):
                return BackendTimeoutError(message, backend=backend)
            return UnreachableError(message, backend=backend)
        if isinstance(error, (ProgrammingError, IntegrityError)):
            return PreconditionFailedError(message, backend=backend, code="query_rejected")
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return UnreachableError(message, backend=backend)
        return UnhealthyError(message, backend=backend)

    def check_health(self) -> None:
        """Run a trivial query on a fresh connection."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise self._translate(e, "reach database") from e

    def is_healthy(self) -> bool:
        if self.monitor is not None:
            return self.monitor.probe(self).healthy
        try:
            self.check_health()
            return True
        except HybridStorageError:
            return False

    @contextmanager
    def transaction(self):
        """Yield a connection inside a transaction, translating driver errors."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise self._translate(e, "run transaction") from e

    def execute(self, statement: Union[str, Executable], parameters: Optional[Dict[str, Any]] = None):
        """
        Forward a statement to the engine.

        Returns:
            List of row dicts for row-returning statements, rowcount otherwise
        """
        if isinstance(statement, str):
            statement = text(statement)
        with self.transaction() as conn:
            result = conn.execute(statement, parameters or {})
            if result.returns_rows:
                return [dict(row) for row in result.mappings().all()]
            return result.rowcount

    def table_names(self) -> List[str]:
        try:
            return inspect(self.engine).get_table_names()
        except SQLAlchemyError as e:
            raise self._translate(e, "inspect schema") from e

    def initialize(self) -> InitSummary:
        """
        Create every managed table that does not exist yet.

        Idempotent: an already-initialized database returns success without
        changes.

        Raises:
            UnreachableError: If the database cannot be reached
            PartialFailureError: If DDL failed after some tables were created
        """
        before = set(self.table_names())
        missing = [table.name for table in self.metadata.sorted_tables if table.name not in before]
        if not missing:
            logger.info(f"{self.role.value} database already initialized")
            return InitSummary(role=self.role, already_initialized=True)

        try:
            with self.engine.begin() as conn:
                self.metadata.create_all(conn, checkfirst=True)
        except SQLAlchemyError as e:
            error = self._translate(e, "initialize schema")
            try:
                after = set(inspect(self.engine).get_table_names())
            except SQLAlchemyError:
                raise PartialFailureError(
                    f"Schema initialization of the {self.role.value} database failed and its "
                    f"resulting state could not be verified: {error.message}",
                    backend=self.role.value,
                    code="schema_unverified",
                ) from e
            left_behind = sorted(after - before)
            if left_behind:
                raise PartialFailureError(
                    f"Schema initialization of the {self.role.value} database failed after creating "
                    f"{', '.join(left_behind)}: {error.message}",
                    backend=self.role.value,
                    code="schema_partial",
                    completed=left_behind,
                ) from e
            raise error from e

        logger.info(f"Initialized {self.role.value} database: created {', '.join(missing)}")
        return InitSummary(role=self.role, created_tables=missing)

    def read_rows(self, table: Table) -> List[Dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                return [dict(row) for row in conn.execute(select(table)).mappings()]
        except SQLAlchemyError as e:
            raise self._translate(e, f"read table {table.name}") from e

    def clear_table(self, table: Table) -> None:
        with self.transaction() as conn:
            conn.execute(delete(table))

    def copy_table_from(self, source: "DatabaseAdapter", table: Table) -> int:
        """
        Replace this database's copy of table with the source's rows.

        The delete and insert run in one transaction. Tables referencing
        this one must already be empty, or the delete violates their
        foreign keys.

        Returns:
            Number of rows copied
        """
        rows = source.read_rows(table)
        with self.transaction() as conn:
            conn.execute(delete(table))
            if rows:
                conn.execute(insert(table), rows)
        return len(rows)

    def dispose(self) -> None:
        self.engine.dispose()
