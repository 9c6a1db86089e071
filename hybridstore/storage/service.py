"""
Storage coordinator: routing, preference and cross-provider operations.

This module provides the StorageCoordinator class that acts as the main
interface between callers and the object storage adapters. It owns the
preferred-provider pointer and the migration tracker, and keeps a short
TTL cache of provider health for status polling.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Dict, Iterable, Optional

from ..models.files import (
    FileUpload,
    ProviderName,
    StorageStatus,
    StoredFile,
    SyncOutcome,
    SyncRequest,
    SyncStatus,
    TargetResult,
    normalize_path,
)
from ..models.health import HealthResult
from .errors import (
    ErrorKind,
    HybridStorageError,
    NotFoundError,
    PreconditionFailedError,
    UnhealthyError,
)
from .health import HealthMonitor
from .migration import MigrationTracker
from .providers.base import ObjectStorageAdapter
from .registry import FileRegistry

logger = logging.getLogger(__name__)


class StorageCoordinator:
    """
    Centralized file storage service with provider preference and health caching.

    The cached health is only used for status reporting. set_preferred and
    store always probe the provider they are about to commit to.
    """

    def __init__(
        self,
        adapters: Dict[ProviderName, ObjectStorageAdapter],
        monitor: HealthMonitor,
        preferred: ProviderName = ProviderName.LOCAL,
        registry: Optional[FileRegistry] = None,
        health_ttl_seconds: float = 5,
        operation_timeout_seconds: float = 30,
        max_workers: int = 4,
        migration_pause_seconds: float = 0.0,
    ):
        """
        Initialize storage coordinator.

        Args:
            adapters: Configured adapters keyed by provider
            monitor: Health monitor used for every probe
            preferred: Initial preferred provider (must be configured)
            registry: File registry; required for migration, cleanup and path lookups
            health_ttl_seconds: Status cache TTL in seconds (0 to disable caching)
            operation_timeout_seconds: Upper bound for a cross-provider fan-out
            migration_pause_seconds: Pause between files during a migration
        """
        if not adapters:
            raise ValueError("At least one storage provider must be configured")
        self.adapters = {ProviderName(name): adapter for name, adapter in adapters.items()}
        preferred = ProviderName(preferred)
        if preferred not in self.adapters:
            raise ValueError(f"Preferred provider {preferred.value} is not configured")

        self.monitor = monitor
        self.registry = registry
        self.health_ttl_seconds = health_ttl_seconds
        self.operation_timeout_seconds = operation_timeout_seconds

        self._preferred = preferred
        self._lock = threading.Lock()
        self._cached_health: Optional[Dict[ProviderName, HealthResult]] = None
        self._cache_timestamp = 0.0
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="storage-sync")

        self.migrations = MigrationTracker(self, pause_seconds=migration_pause_seconds)

    @property
    def preferred(self) -> ProviderName:
        return self._preferred

    def adapter(self, provider: ProviderName) -> ObjectStorageAdapter:
        """
        Get the adapter for a provider.

        Raises:
            PreconditionFailedError: If the provider is not configured
        """
        provider = ProviderName(provider)
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise PreconditionFailedError(
                f"Storage provider {provider.value} is not configured",
                backend=provider.value,
                code="not_configured",
            )
        return adapter

    def _is_cache_expired(self) -> bool:
        """Check if the health cache has expired based on TTL."""
        if self.health_ttl_seconds <= 0:
            return True
        return time.time() - self._cache_timestamp > self.health_ttl_seconds

    def _refresh_health(self) -> Dict[ProviderName, HealthResult]:
        """Probe every configured provider and refresh the cache."""
        results = self.monitor.probe_many(self.adapters.values())
        health = {name: results[adapter.target_name] for name, adapter in self.adapters.items()}
        self._cached_health = health
        self._cache_timestamp = time.time()
        logger.debug(
            f"Provider health refreshed: "
            f"{', '.join(f'{name.value}={result.healthy}' for name, result in health.items())}"
        )
        return health

    def clear_cache(self) -> None:
        """Clear the health cache and reset its timestamp."""
        self._cached_health = None
        self._cache_timestamp = 0.0
        logger.debug("Provider health cache cleared")

    def get_cache_stats(self) -> dict:
        """Get health cache statistics for monitoring."""
        cache_age = time.time() - self._cache_timestamp
        return {
            "cache_age_seconds": round(cache_age, 2),
            "ttl_seconds": self.health_ttl_seconds,
            "cache_expired": self._is_cache_expired(),
            "cache_disabled": self.health_ttl_seconds <= 0,
            "cached_providers": len(self._cached_health) if self._cached_health else 0,
            "last_refresh_timestamp": self._cache_timestamp,
        }

    def probe_providers(self, fresh: bool = False) -> Dict[ProviderName, HealthResult]:
        """Health of every configured provider, from cache unless fresh or expired."""
        if fresh or self._cached_health is None or self._is_cache_expired():
            return self._refresh_health()
        return self._cached_health

    def get_status(self) -> StorageStatus:
        """
        Get preferred provider and current availability.

        Returns:
            StorageStatus with health_check entries for every configured provider
        """
        health = self.probe_providers()
        health_check = {name: result.healthy for name, result in health.items()}
        available = [name for name in ProviderName if health_check.get(name)]
        return StorageStatus(preferred=self._preferred, available=available, health_check=health_check)

    def set_preferred(self, provider: ProviderName) -> StorageStatus:
        """
        Make provider the default for new uploads.

        Raises:
            PreconditionFailedError: If the provider is not configured
            UnhealthyError: If the provider fails a fresh probe; the preference is unchanged
        """
        adapter = self.adapter(provider)
        result = self.monitor.probe(adapter)
        if not result.healthy:
            logger.warning(f"Refusing to prefer {adapter.name.value}: {result.detail}")
            raise UnhealthyError(
                f"Storage provider {adapter.name.value} is unhealthy: {result.detail}",
                backend=adapter.name.value,
                code="provider_unhealthy",
            )

        with self._lock:
            previous = self._preferred
            self._preferred = adapter.name
        self.clear_cache()

        if previous != adapter.name:
            logger.info(f"Preferred storage provider changed from {previous.value} to {adapter.name.value}")
        return self.get_status()

    def store(self, upload: FileUpload, provider: Optional[ProviderName] = None) -> StoredFile:
        """
        Write a file's canonical copy to one provider.

        Args:
            upload: File bytes and metadata
            provider: Target provider (preferred provider when omitted)

        Returns:
            StoredFile describing the canonical copy

        Raises:
            SizeOrTypeRejectedError: If the file violates the provider's limits
            UnhealthyError: If the provider fails a fresh probe
            HybridStorageError: If the write or the registry update fails
        """
        adapter = self.adapter(provider if provider is not None else self._preferred)
        adapter.validate(upload)

        result = self.monitor.probe(adapter)
        if not result.healthy:
            raise UnhealthyError(
                f"Storage provider {adapter.name.value} is unavailable: {result.detail}",
                backend=adapter.name.value,
                code="provider_unavailable",
            )

        adapter.put(upload.path, upload.content, upload.mime_type)
        stored_file = StoredFile(
            path=upload.path,
            provider=adapter.name,
            size_bytes=upload.size_bytes,
            mime_type=upload.mime_type,
        )

        if self.registry is not None:
            try:
                self.registry.record(stored_file)
            except HybridStorageError as e:
                logger.error(f"Could not record {upload.path}; removing it from {adapter.name.value}: {e}")
                try:
                    adapter.delete(upload.path)
                except HybridStorageError as cleanup_error:
                    logger.error(f"Unrecorded object {upload.path} left on {adapter.name.value}: {cleanup_error}")
                raise

        logger.info(f"Stored {upload.path} on {adapter.name.value} ({upload.size_bytes} bytes)")
        return stored_file

    def _write_copy(self, adapter: ObjectStorageAdapter, upload: FileUpload) -> TargetResult:
        try:
            adapter.validate(upload)
            adapter.put(upload.path, upload.content, upload.mime_type)
            return TargetResult(provider=adapter.name, success=True, url=adapter.url_for(upload.path))
        except HybridStorageError as e:
            return TargetResult(
                provider=adapter.name,
                success=False,
                error_kind=e.kind.value,
                message=e.message,
            )
        except Exception as e:
            logger.error(f"Unexpected error copying {upload.path} to {adapter.name.value}: {e}", exc_info=True)
            return TargetResult(
                provider=adapter.name,
                success=False,
                error_kind=ErrorKind.UNHEALTHY.value,
                message=f"Unexpected error: {e}",
            )

    def sync_file_across_providers(self, upload: FileUpload,
                                   target_providers: Iterable[ProviderName]) -> SyncOutcome:
        """
        Write a copy of a file to every target provider.

        Targets are written concurrently and independently; a failure on one
        target never prevents the others from being attempted.

        Raises:
            PreconditionFailedError: If no targets are given
        """
        request = SyncRequest(file=upload, target_providers=set(target_providers or ()))
        if not request.target_providers:
            raise PreconditionFailedError(
                "No target providers given for file sync",
                code="no_targets",
            )

        results: Dict[ProviderName, TargetResult] = {}
        futures = {}
        for provider in sorted(request.target_providers, key=lambda p: p.value):
            adapter = self.adapters.get(provider)
            if adapter is None:
                results[provider] = TargetResult(
                    provider=provider,
                    success=False,
                    error_kind=ErrorKind.PRECONDITION_FAILED.value,
                    message=f"Storage provider {provider.value} is not configured",
                )
                continue
            futures[provider] = self._executor.submit(self._write_copy, adapter, request.file)

        deadline = time.monotonic() + self.operation_timeout_seconds
        for provider, future in futures.items():
            try:
                results[provider] = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FuturesTimeoutError:
                results[provider] = TargetResult(
                    provider=provider,
                    success=False,
                    error_kind=ErrorKind.UNREACHABLE.value,
                    message=f"No answer within {self.operation_timeout_seconds}s",
                )

        succeeded = [name for name, result in results.items() if result.success]
        if len(succeeded) == len(results):
            status = SyncStatus.COMPLETE
        elif succeeded:
            status = SyncStatus.PARTIAL_FAILURE
        else:
            status = SyncStatus.FAILED

        outcome = SyncOutcome(path=request.file.path, status=status, results=results)
        if status == SyncStatus.COMPLETE:
            logger.info(f"Synced {outcome.path} to {', '.join(p.value for p in succeeded)}")
        else:
            logger.warning(
                f"Sync of {outcome.path} {status.value}: "
                f"failed on {', '.join(p.value for p in outcome.failed)}"
            )
        return outcome

    def delete(self, stored_file: StoredFile) -> None:
        """
        Delete a file from its canonical provider and drop its record.

        Shadow copies on other providers are not touched; cleanup()
        reconciles them once the record is gone.

        Raises:
            NotFoundError: If neither the object nor its record exists
        """
        adapter = self.adapter(stored_file.provider)
        try:
            adapter.delete(stored_file.path)
        except NotFoundError:
            if self.registry is None or not self.registry.remove(stored_file.path):
                raise
            logger.warning(
                f"{stored_file.path} was already missing from {adapter.name.value}; removed its record"
            )
            return

        if self.registry is not None:
            self.registry.remove(stored_file.path)
        logger.info(f"Deleted {stored_file.path} from {adapter.name.value}")

    def read(self, stored_file: StoredFile) -> bytes:
        return self.adapter(stored_file.provider).get(stored_file.path)

    def resolve_url(self, stored_file: StoredFile) -> str:
        return self.adapter(stored_file.provider).url_for(stored_file.path)

    def get_stored_file(self, path: str) -> StoredFile:
        """
        Look up the registry record for a path.

        Raises:
            PreconditionFailedError: If no registry is configured
            NotFoundError: If the path is not registered
        """
        try:
            path = normalize_path(path)
        except ValueError as e:
            raise PreconditionFailedError(str(e), code="invalid_path") from e
        return self.require_registry().require(path)

    def require_registry(self) -> FileRegistry:
        if self.registry is None:
            raise PreconditionFailedError("No file registry is configured", code="no_registry")
        return self.registry

    def shutdown(self) -> None:
        self.migrations.cancel_if_running()
        self._executor.shutdown(wait=False)
