"""
Google Cloud Storage adapter (cloud provider B).

Also serves Firebase Storage buckets, which are GCS buckets underneath.
"""

import logging
from typing import Any, List, Optional

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

from .base import ObjectStorageAdapter, DEFAULT_MAX_SIZE_BYTES
from ...models.files import ProviderName
from ..errors import (
    AuthenticationFailedError,
    BackendTimeoutError,
    HybridStorageError,
    NotFoundError,
    UnhealthyError,
    UnreachableError,
)

logger = logging.getLogger(__name__)


class GCSStorageAdapter(ObjectStorageAdapter):
    """
    Google Cloud Storage implementation of ObjectStorageAdapter.

    The client is created lazily so that missing credentials show up as an
    unhealthy probe instead of preventing the service from starting.
    Library-level retries are disabled on every call.
    """

    def __init__(
        self,
        bucket: str,
        project: Optional[str] = None,
        credentials_file: Optional[str] = None,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        allowed_mime_types: Optional[List[str]] = None,
        timeout_seconds: float = 10,
        client: Any = None,
        name: ProviderName = ProviderName.CLOUD_B,
    ):
        super().__init__(name, max_size_bytes, allowed_mime_types, timeout_seconds)
        self.bucket_name = bucket
        self.project = project
        self.credentials_file = credentials_file
        self._client = client

    @property
    def client(self):
        if self._client is None:
            try:
                if self.credentials_file:
                    self._client = storage.Client.from_service_account_json(
                        self.credentials_file, project=self.project
                    )
                else:
                    self._client = storage.Client(project=self.project)
            except (auth_exceptions.GoogleAuthError, OSError, ValueError) as e:
                raise self._translate(e, "authenticate with", self.bucket_name) from e
        return self._client

    def _blob(self, path: str):
        return self.client.bucket(self.bucket_name).blob(path)

    def _translate(self, error: Exception, action: str, path: str) -> HybridStorageError:
        backend = self.name.value
        message = f"Failed to {action} {path} on {backend} (bucket {self.bucket_name}): {error}"

        if isinstance(error, gcloud_exceptions.NotFound):
            return NotFoundError(f"File not found on {backend}: {path}", backend=backend)

        logger.error(message)
        if isinstance(error, (gcloud_exceptions.Unauthorized, gcloud_exceptions.Forbidden,
                              auth_exceptions.DefaultCredentialsError,
                              auth_exceptions.RefreshError)):
            return AuthenticationFailedError(message, backend=backend)
        if isinstance(error, (gcloud_exceptions.DeadlineExceeded, gcloud_exceptions.GatewayTimeout,
                              TimeoutError)):
            return BackendTimeoutError(message, backend=backend)
        if isinstance(error, (gcloud_exceptions.ServiceUnavailable, auth_exceptions.TransportError,
                              gcloud_exceptions.RetryError, ConnectionError, OSError)):
            return UnreachableError(message, backend=backend)
        if isinstance(error, ValueError):
            return AuthenticationFailedError(message, backend=backend)
        return UnhealthyError(message, backend=backend)

    def check_health(self) -> None:
        try:
            self.client.get_bucket(self.bucket_name, timeout=self.timeout_seconds, retry=None)
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            error = self._translate(e, "reach", "bucket")
            if isinstance(error, NotFoundError):
                raise UnhealthyError(
                    f"Bucket {self.bucket_name} does not exist on {self.name.value}",
                    backend=self.name.value,
                    code="bucket_missing",
                ) from e
            raise error from e

    def put(self, path: str, content: bytes, mime_type: str) -> None:
        try:
            self._blob(path).upload_from_string(
                content,
                content_type=mime_type,
                timeout=self.timeout_seconds,
                retry=None,
            )
            logger.debug(f"Stored {path} on {self.name.value} ({len(content)} bytes)")
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            raise self._translate(e, "write", path) from e

    def get(self, path: str) -> bytes:
        try:
            return self._blob(path).download_as_bytes(timeout=self.timeout_seconds, retry=None)
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            raise self._translate(e, "read", path) from e

    def delete(self, path: str) -> None:
        try:
            self._blob(path).delete(timeout=self.timeout_seconds, retry=None)
            logger.info(f"Deleted {path} from {self.name.value}")
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            raise self._translate(e, "delete", path) from e

    def exists(self, path: str) -> bool:
        try:
            return bool(self._blob(path).exists(timeout=self.timeout_seconds, retry=None))
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            raise self._translate(e, "stat", path) from e

    def list_paths(self, prefix: str = "") -> List[str]:
        try:
            blobs = self.client.list_blobs(
                self.bucket_name,
                prefix=prefix or None,
                timeout=self.timeout_seconds,
                retry=None,
            )
            return sorted(blob.name for blob in blobs)
        except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError) as e:
            raise self._translate(e, "list", prefix or '/') from e

    def url_for(self, path: str) -> str:
        return self._blob(path).public_url
