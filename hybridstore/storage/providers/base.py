"""
Abstract base class for object storage adapters.

This module defines the ObjectStorageAdapter interface that every
file-storage provider (local disk, cloud-a, cloud-b) must follow.
"""

import fnmatch
from abc import ABC, abstractmethod
from typing import List, Optional

from ...models.files import FileUpload, ProviderName
from ..errors import SizeOrTypeRejectedError

DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024
DEFAULT_ALLOWED_MIME_TYPES = ["image/*", "application/*", "text/*"]


class ObjectStorageAdapter(ABC):
    """
    Abstract base class for object storage adapters.

    Adapters perform put/get/delete/url-resolve operations against one
    physical backend. Every backend failure is translated into the
    HybridStorageError taxonomy before leaving the adapter; raw transport
    exceptions never reach the coordinator.
    """

    def __init__(
        self,
        name: ProviderName,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        allowed_mime_types: Optional[List[str]] = None,
        timeout_seconds: float = 10,
    ):
        """
        Initialize common adapter settings.

        Args:
            name: Provider this adapter implements
            max_size_bytes: Largest accepted file
            allowed_mime_types: fnmatch patterns of accepted MIME types
            timeout_seconds: Upper bound for a single backend call
        """
        self.name = ProviderName(name)
        self.max_size_bytes = max_size_bytes
        self.allowed_mime_types = list(allowed_mime_types or DEFAULT_ALLOWED_MIME_TYPES)
        self.timeout_seconds = timeout_seconds

    @property
    def target_name(self) -> str:
        """Identity used by the health monitor."""
        return f"storage:{self.name.value}"

    def accepts_mime_type(self, mime_type: str) -> bool:
        mime_type = (mime_type or "").split(';')[0].strip().lower()
        return any(fnmatch.fnmatch(mime_type, pattern.lower()) for pattern in self.allowed_mime_types)

    def validate(self, upload: FileUpload) -> None:
        """
        Check an upload against this provider's constraints.

        Raises:
            SizeOrTypeRejectedError: If the file is too large or its type is not allowed
        """
        if upload.size_bytes > self.max_size_bytes:
            raise SizeOrTypeRejectedError(
                f"File {upload.path} is {upload.size_bytes} bytes; "
                f"{self.name.value} accepts at most {self.max_size_bytes} bytes",
                backend=self.name.value,
                code="size_exceeded",
            )
        if not self.accepts_mime_type(upload.mime_type):
            raise SizeOrTypeRejectedError(
                f"MIME type {upload.mime_type} is not accepted by {self.name.value}",
                backend=self.name.value,
                code="type_rejected",
            )

    @abstractmethod
    def check_health(self) -> None:
        """
        Run a lightweight existence or credential check.

        Raises:
            UnreachableError: If the backend cannot be reached
            AuthenticationFailedError: If credentials are rejected
            UnhealthyError: If the backend is reachable but not ready
        """
        pass

    @abstractmethod
    def put(self, path: str, content: bytes, mime_type: str) -> None:
        """
        Write an object, replacing any existing object at the same path.

        A failed write must not leave a partial object behind.
        """
        pass

    @abstractmethod
    def get(self, path: str) -> bytes:
        """
        Read an object.

        Raises:
            NotFoundError: If no object exists at path
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """
        Delete an object.

        Raises:
            NotFoundError: If no object exists at path
        """
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether an object exists at path."""
        pass

    @abstractmethod
    def list_paths(self, prefix: str = "") -> List[str]:
        """List the paths of all stored objects under prefix."""
        pass

    @abstractmethod
    def url_for(self, path: str) -> str:
        """Resolve a URL a client can use to fetch the object."""
        pass
