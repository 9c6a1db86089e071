"""
S3-compatible object storage adapter (cloud provider A).

Works against AWS S3 or any S3-compatible endpoint (e.g. the storage API of
a hosted Postgres platform) through boto3.
"""

import logging
from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

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

AUTH_ERROR_CODES = {
    "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch",
    "ExpiredToken", "InvalidToken", "Unauthorized", "401", "403",
}
NOT_FOUND_ERROR_CODES = {"NoSuchKey", "NotFound", "404"}


class S3StorageAdapter(ObjectStorageAdapter):
    """S3 implementation of ObjectStorageAdapter."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        public_url: Optional[str] = None,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        allowed_mime_types: Optional[List[str]] = None,
        timeout_seconds: float = 10,
        presign_expiry_seconds: int = 3600,
        client: Any = None,
        name: ProviderName = ProviderName.CLOUD_A,
    ):
        """
        Initialize S3 adapter.

        Args:
            bucket: Bucket holding the objects
            endpoint_url: Custom endpoint for S3-compatible services
            region: Bucket region
            public_url: Base URL for public objects; presigned URLs are used when unset
            client: Pre-built boto3 S3 client (created from the environment when omitted)
        """
        super().__init__(name, max_size_bytes, allowed_mime_types, timeout_seconds)
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.public_url = public_url.rstrip('/') if public_url else None
        self.presign_expiry_seconds = presign_expiry_seconds

        if client is None:
            # Single attempt per call; retry decisions belong to the operator
            config = Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={'total_max_attempts': 1, 'mode': 'standard'},
            )
            client = boto3.client(
                's3',
                endpoint_url=endpoint_url,
                region_name=region,
                config=config,
            )
        self.client = client

    def _translate(self, error: Exception, action: str, path: str) -> HybridStorageError:
        backend = self.name.value
        message = f"Failed to {action} {path} on {backend} (bucket {self.bucket}): {error}"

        if isinstance(error, ClientError):
            code = str(error.response.get('Error', {}).get('Code', ''))
            status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
            if code in AUTH_ERROR_CODES or status in (401, 403):
                logger.error(message)
                return AuthenticationFailedError(message, backend=backend, code=code or None)
            if code == "NoSuchBucket":
                logger.error(message)
                return UnhealthyError(message, backend=backend, code="bucket_missing")
            if code in NOT_FOUND_ERROR_CODES or status == 404:
                return NotFoundError(f"File not found on {backend}: {path}", backend=backend)
            logger.error(message)
            return UnhealthyError(message, backend=backend, code=code or None)

        logger.error(message)
        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return AuthenticationFailedError(message, backend=backend)
        if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
            return BackendTimeoutError(message, backend=backend)
        return UnreachableError(message, backend=backend)

    def check_health(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            error = self._translate(e, "reach", "bucket")
            if isinstance(error, NotFoundError):
                raise UnhealthyError(
                    f"Bucket {self.bucket} does not exist on {self.name.value}",
                    backend=self.name.value,
                    code="bucket_missing",
                ) from e
            raise error from e

    def put(self, path: str, content: bytes, mime_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=content,
                ContentType=mime_type,
            )
            logger.debug(f"Stored {path} on {self.name.value} ({len(content)} bytes)")
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, "write", path) from e

    def get(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=path)
            return response['Body'].read()
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, "read", path) from e

    def delete(self, path: str) -> None:
        # delete_object succeeds for missing keys, so check first
        if not self.exists(path):
            raise NotFoundError(f"File not found on {self.name.value}: {path}", backend=self.name.value)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
            logger.info(f"Deleted {path} from {self.name.value}")
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, "delete", path) from e

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=path)
            return True
        except (BotoCoreError, ClientError) as e:
            error = self._translate(e, "stat", path)
            if isinstance(error, NotFoundError):
                return False
            raise error from e

    def list_paths(self, prefix: str = "") -> List[str]:
        try:
            paginator = self.client.get_paginator('list_objects_v2')
            paths = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get('Contents', []):
                    paths.append(item['Key'])
            return sorted(paths)
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, "list", prefix or '/') from e

    def url_for(self, path: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{path}"
        try:
            return self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': path},
                ExpiresIn=self.presign_expiry_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._translate(e, "sign URL for", path) from e
