"""
Local filesystem storage adapter.

This module contains the LocalStorageAdapter that stores objects as plain
files under a root directory, writing atomically through a temporary file.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from .base import ObjectStorageAdapter, DEFAULT_MAX_SIZE_BYTES
from ...models.files import ProviderName
from ..errors import (
    AuthenticationFailedError,
    HybridStorageError,
    NotFoundError,
    PreconditionFailedError,
    UnhealthyError,
    UnreachableError,
)

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".tmp-"


class LocalStorageAdapter(ObjectStorageAdapter):
    """
    Filesystem implementation of ObjectStorageAdapter.

    Objects live at <storage_path>/<path>. Writes go to a temporary file in
    the destination directory and are moved into place with os.replace, so a
    failed write never leaves a truncated object.
    """

    def __init__(
        self,
        storage_path: Path,
        public_url_prefix: str = "/uploads",
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        allowed_mime_types: Optional[List[str]] = None,
        timeout_seconds: float = 10,
        create: bool = True,
    ):
        """
        Initialize local storage adapter.

        Args:
            storage_path: Root directory for stored objects
            public_url_prefix: URL prefix under which the root is served
            create: Create the root directory if it does not exist
        """
        super().__init__(ProviderName.LOCAL, max_size_bytes, allowed_mime_types, timeout_seconds)
        self.storage_path = Path(storage_path)
        self.public_url_prefix = public_url_prefix.rstrip('/')
        if create:
            try:
                self.storage_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                # Reported through check_health; the adapter stays usable for probing
                logger.warning(f"Could not create local storage root {self.storage_path}: {e}")

    def _resolve(self, path: str) -> Path:
        """Map a logical path to a file under the storage root."""
        root = self.storage_path.resolve()
        target = (root / path).resolve()
        try:
            target.relative_to(root)
        except ValueError:
            raise PreconditionFailedError(
                f"Path {path!r} escapes the storage root",
                backend=self.name.value,
                code="invalid_path",
            )
        return target

    def _translate(self, error: OSError, action: str, path: str) -> HybridStorageError:
        message = f"Failed to {action} {path} on local storage: {error}"
        logger.error(message)
        if isinstance(error, PermissionError):
            return AuthenticationFailedError(message, backend=self.name.value)
        if isinstance(error, FileNotFoundError) and not self.storage_path.exists():
            return UnreachableError(message, backend=self.name.value)
        return UnhealthyError(message, backend=self.name.value)

    def check_health(self) -> None:
        if not self.storage_path.exists():
            raise UnreachableError(
                f"Storage path does not exist: {self.storage_path}",
                backend=self.name.value,
            )
        if not self.storage_path.is_dir():
            raise UnhealthyError(
                f"Storage path is not a directory: {self.storage_path}",
                backend=self.name.value,
            )
        if not os.access(self.storage_path, os.R_OK | os.W_OK | os.X_OK):
            raise AuthenticationFailedError(
                f"Storage path is not writable: {self.storage_path}",
                backend=self.name.value,
            )

    def put(self, path: str, content: bytes, mime_type: str) -> None:
        target = self._resolve(path)
        temp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=TEMP_PREFIX, delete=False
            ) as handle:
                temp_name = handle.name
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, target)
            temp_name = None
            logger.debug(f"Stored {path} on local storage ({len(content)} bytes)")
        except OSError as e:
            raise self._translate(e, "write", path) from e
        finally:
            if temp_name is not None:
                try:
                    os.unlink(temp_name)
                except OSError:
                    logger.warning(f"Could not remove temporary file {temp_name}")

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            if self.storage_path.exists():
                raise NotFoundError(
                    f"File not found on local storage: {path}",
                    backend=self.name.value,
                ) from e
            raise self._translate(e, "read", path) from e
        except OSError as e:
            raise self._translate(e, "read", path) from e

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
            logger.info(f"Deleted {path} from local storage")
        except FileNotFoundError as e:
            if self.storage_path.exists():
                raise NotFoundError(
                    f"File not found on local storage: {path}",
                    backend=self.name.value,
                ) from e
            raise self._translate(e, "delete", path) from e
        except OSError as e:
            raise self._translate(e, "delete", path) from e

    def exists(self, path: str) -> bool:
        target = self._resolve(path)
        try:
            return target.is_file()
        except OSError as e:
            raise self._translate(e, "stat", path) from e

    def list_paths(self, prefix: str = "") -> List[str]:
        try:
            paths = []
            for item in self.storage_path.rglob('*'):
                if not item.is_file() or item.name.startswith(TEMP_PREFIX):
                    continue
                relative = item.relative_to(self.storage_path).as_posix()
                if relative.startswith(prefix):
                    paths.append(relative)
            return sorted(paths)
        except OSError as e:
            raise self._translate(e, "list", prefix or '/') from e

    def url_for(self, path: str) -> str:
        return f"{self.public_url_prefix}/{path}"
