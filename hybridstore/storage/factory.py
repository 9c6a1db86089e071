"""
Storage factory for creating adapters, controllers and the coordinator.

This module loads configuration and wires the storage layer together:
object storage adapters, database adapters, the failover controller,
the file registry and the storage coordinator.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from sqlalchemy.engine import make_url

from ..models.files import ProviderName
from ..models.health import DatabaseRole
from .database import DatabaseAdapter
from .failover import FailoverController
from .health import HealthMonitor
from .providers.base import ObjectStorageAdapter, DEFAULT_ALLOWED_MIME_TYPES
from .providers.filesystem import LocalStorageAdapter
from .registry import FileRegistry
from .service import StorageCoordinator
from .snapshots import DEFAULT_RETENTION, SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/storage.yaml")


class StorageConfigurationError(Exception):
    """Exception raised for storage configuration errors."""
    pass


@dataclass
class StorageServices:
    """Everything the API layer needs, created once at startup."""

    monitor: HealthMonitor
    failover: FailoverController
    registry: FileRegistry
    coordinator: StorageCoordinator

    def shutdown(self) -> None:
        self.coordinator.shutdown()
        self.monitor.shutdown()
        for adapter in self.failover.adapters.values():
            adapter.dispose()


def load_storage_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load storage configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to configuration file (default: config/storage.yaml)

    Returns:
        Configuration dictionary

    Raises:
        StorageConfigurationError: If configuration loading fails
    """
    try:
        if config_path is None:
            config_path = Path(os.getenv('HYBRID_CONFIG_PATH', DEFAULT_CONFIG_PATH))
        config_path = Path(config_path)

        if not config_path.exists():
            raise StorageConfigurationError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)

        if not config or 'storage' not in config:
            raise StorageConfigurationError("Invalid configuration: missing 'storage' section")

        config.setdefault('database', {})
        config.setdefault('health', {})
        config['storage'].setdefault('providers', {})

        return _apply_environment_overrides(config)

    except StorageConfigurationError:
        raise
    except yaml.YAMLError as e:
        raise StorageConfigurationError(f"YAML parsing error: {e}") from e
    except Exception as e:
        raise StorageConfigurationError(f"Configuration loading failed: {e}") from e


def _provider_section(config: Dict[str, Any], name: ProviderName) -> Dict[str, Any]:
    providers = config['storage'].setdefault('providers', {})
    if providers.get(name.value) is None:
        providers[name.value] = {}
    return providers[name.value]


def _apply_environment_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Environment variables follow the pattern: HYBRID_<SECTION>_<KEY>, plus
    DATABASE_URL and DATABASE_URL_BACKUP for the two databases.

    Args:
        config: Base configuration dictionary

    Returns:
        Configuration with environment overrides applied
    """
    preferred = os.getenv('HYBRID_PREFERRED_PROVIDER')
    if preferred:
        config['storage']['preferred'] = preferred
        logger.info(f"Preferred provider overridden by environment: {preferred}")

    local_path = os.getenv('HYBRID_LOCAL_PATH')
    if local_path:
        _provider_section(config, ProviderName.LOCAL)['path'] = local_path
        logger.info(f"Local storage path overridden by environment: {local_path}")

    max_upload = os.getenv('HYBRID_MAX_UPLOAD_MB')
    if max_upload:
        for name in ProviderName:
            _provider_section(config, name)['max_size_mb'] = float(max_upload)
        logger.info(f"Upload size limit overridden by environment: {max_upload}MB")

    # Naming a bucket enables the cloud provider
    cloud_a_bucket = os.getenv('HYBRID_CLOUD_A_BUCKET')
    if cloud_a_bucket:
        section = _provider_section(config, ProviderName.CLOUD_A)
        section['bucket'] = cloud_a_bucket
        section['enabled'] = True
        logger.info(f"cloud-a bucket overridden by environment: {cloud_a_bucket}")

    cloud_a_endpoint = os.getenv('HYBRID_CLOUD_A_ENDPOINT_URL')
    if cloud_a_endpoint:
        _provider_section(config, ProviderName.CLOUD_A)['endpoint_url'] = cloud_a_endpoint
        logger.info(f"cloud-a endpoint overridden by environment: {cloud_a_endpoint}")

    cloud_b_bucket = os.getenv('HYBRID_CLOUD_B_BUCKET')
    if cloud_b_bucket:
        section = _provider_section(config, ProviderName.CLOUD_B)
        section['bucket'] = cloud_b_bucket
        section['enabled'] = True
        logger.info(f"cloud-b bucket overridden by environment: {cloud_b_bucket}")

    cloud_b_project = os.getenv('HYBRID_CLOUD_B_PROJECT')
    if cloud_b_project:
        _provider_section(config, ProviderName.CLOUD_B)['project'] = cloud_b_project
        logger.info(f"cloud-b project overridden by environment: {cloud_b_project}")

    # Database URLs carry credentials; never log them
    primary_url = os.getenv('DATABASE_URL')
    if primary_url:
        config['database']['primary_url'] = primary_url
        logger.info("Primary database URL overridden by environment")

    backup_url = os.getenv('DATABASE_URL_BACKUP')
    if backup_url:
        config['database']['backup_url'] = backup_url
        logger.info("Backup database URL overridden by environment")

    snapshot_dir = os.getenv('HYBRID_SNAPSHOT_DIR')
    if snapshot_dir:
        config['database'].setdefault('snapshots', {})['directory'] = snapshot_dir
        logger.info(f"Snapshot directory overridden by environment: {snapshot_dir}")

    probe_timeout = os.getenv('HYBRID_PROBE_TIMEOUT_SECONDS')
    if probe_timeout:
        config['health']['probe_timeout_seconds'] = float(probe_timeout)
        logger.info(f"Probe timeout overridden by environment: {probe_timeout}s")

    cache_ttl = os.getenv('HYBRID_HEALTH_CACHE_TTL_SECONDS')
    if cache_ttl:
        config['health']['cache_ttl_seconds'] = float(cache_ttl)
        logger.info(f"Health cache TTL overridden by environment: {cache_ttl}s")

    return config


def _provider_limits(provider_config: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'max_size_bytes': int(float(provider_config.get('max_size_mb', 50)) * 1024 * 1024),
        'allowed_mime_types': provider_config.get('allowed_mime_types') or DEFAULT_ALLOWED_MIME_TYPES,
        'timeout_seconds': provider_config.get('timeout_seconds', 10),
    }


def create_storage_provider(name: ProviderName, provider_config: Dict[str, Any]) -> ObjectStorageAdapter:
    """
    Create one object storage adapter.

    Args:
        name: Provider to create
        provider_config: That provider's section of the configuration

    Returns:
        ObjectStorageAdapter instance

    Raises:
        StorageConfigurationError: If adapter creation fails
    """
    try:
        name = ProviderName(name)
        limits = _provider_limits(provider_config)

        if name == ProviderName.LOCAL:
            storage_path = Path(provider_config.get('path', 'uploads'))
            if not storage_path.is_absolute():
                storage_path = Path.cwd() / storage_path
            logger.info(f"Creating local storage adapter: path={storage_path}")
            return LocalStorageAdapter(
                storage_path,
                public_url_prefix=provider_config.get('public_url_prefix', '/uploads'),
                **limits,
            )

        if not provider_config.get('bucket'):
            raise StorageConfigurationError(f"Provider {name.value} requires a bucket")

        if name == ProviderName.CLOUD_A:
            from .providers.s3 import S3StorageAdapter

            logger.info(f"Creating cloud-a adapter: bucket={provider_config['bucket']}")
            return S3StorageAdapter(
                bucket=provider_config['bucket'],
                endpoint_url=provider_config.get('endpoint_url'),
                region=provider_config.get('region'),
                public_url=provider_config.get('public_url'),
                **limits,
            )

        from .providers.gcs import GCSStorageAdapter

        logger.info(f"Creating cloud-b adapter: bucket={provider_config['bucket']}")
        return GCSStorageAdapter(
            bucket=provider_config['bucket'],
            project=provider_config.get('project'),
            credentials_file=provider_config.get('credentials_file'),
            **limits,
        )

    except StorageConfigurationError:
        raise
    except Exception as e:
        raise StorageConfigurationError(f"Provider creation failed for {name}: {e}") from e


def create_storage_providers(config: Dict[str, Any]) -> Dict[ProviderName, ObjectStorageAdapter]:
    """Create an adapter for every enabled provider."""
    adapters: Dict[ProviderName, ObjectStorageAdapter] = {}
    providers = config['storage'].get('providers', {})
    for name in ProviderName:
        provider_config = providers.get(name.value) or {}
        if not provider_config.get('enabled', name == ProviderName.LOCAL):
            logger.info(f"Storage provider {name.value} is disabled")
            continue
        adapters[name] = create_storage_provider(name, provider_config)

    if not adapters:
        raise StorageConfigurationError("No storage provider is enabled")
    return adapters


def _ensure_sqlite_directory(url: str) -> None:
    database_url = make_url(url)
    if database_url.get_backend_name() == 'sqlite' and database_url.database not in (None, '', ':memory:'):
        Path(database_url.database).parent.mkdir(parents=True, exist_ok=True)


def create_database_adapter(role: DatabaseRole, url: str, monitor: Optional[HealthMonitor] = None,
                            timeout_seconds: float = 5) -> DatabaseAdapter:
    """
    Create a database adapter for one role.

    Raises:
        StorageConfigurationError: If the URL is invalid or its driver is missing
    """
    try:
        _ensure_sqlite_directory(url)
        logger.info(f"Creating {DatabaseRole(role).value} database adapter")
        return DatabaseAdapter(role, url=url, monitor=monitor, timeout_seconds=timeout_seconds)
    except Exception as e:
        raise StorageConfigurationError(f"Database adapter creation failed for {role}: {e}") from e


def create_failover_controller(config: Dict[str, Any], monitor: HealthMonitor) -> FailoverController:
    """Create the failover controller with its primary and optional backup database."""
    database_config = config.get('database', {})
    primary_url = database_config.get('primary_url')
    if not primary_url:
        raise StorageConfigurationError("Invalid configuration: no primary database URL")

    timeout_seconds = database_config.get('timeout_seconds', 5)
    primary = create_database_adapter(DatabaseRole.PRIMARY, primary_url, monitor, timeout_seconds)

    backup = None
    backup_url = database_config.get('backup_url')
    if backup_url:
        backup = create_database_adapter(DatabaseRole.BACKUP, backup_url, monitor, timeout_seconds)
    else:
        logger.warning("No backup database configured; failover is unavailable")

    snapshots = None
    snapshot_config = database_config.get('snapshots') or {}
    if snapshot_config.get('directory'):
        retention = snapshot_config.get('retention', DEFAULT_RETENTION)
        logger.info(f"Database snapshots in {snapshot_config['directory']} (keeping {retention})")
        try:
            snapshots = SnapshotStore(snapshot_config['directory'], retention=retention)
        except ValueError as e:
            raise StorageConfigurationError(f"Invalid snapshot configuration: {e}") from e
    else:
        logger.info("No snapshot directory configured; database snapshots are disabled")

    return FailoverController(primary, backup, monitor, snapshots=snapshots)


def create_storage_coordinator(config: Dict[str, Any], monitor: HealthMonitor,
                               registry: Optional[FileRegistry] = None,
                               adapters: Optional[Dict[ProviderName, ObjectStorageAdapter]] = None
                               ) -> StorageCoordinator:
    """
    Create storage coordinator with adapters and health caching.

    Raises:
        StorageConfigurationError: If coordinator creation fails
    """
    try:
        if adapters is None:
            adapters = create_storage_providers(config)

        storage_config = config['storage']
        health_config = config.get('health', {})
        preferred = storage_config.get('preferred', ProviderName.LOCAL.value)
        cache_ttl = health_config.get('cache_ttl_seconds', 5)

        logger.info(f"Creating storage coordinator: preferred={preferred}, health cache TTL={cache_ttl}s")

        return StorageCoordinator(
            adapters,
            monitor,
            preferred=preferred,
            registry=registry,
            health_ttl_seconds=cache_ttl,
            operation_timeout_seconds=storage_config.get('operation_timeout_seconds', 30),
            migration_pause_seconds=storage_config.get('migration', {}).get('pause_seconds', 0),
        )

    except StorageConfigurationError:
        raise
    except Exception as e:
        raise StorageConfigurationError(f"Coordinator creation failed: {e}") from e


def create_services(config: Dict[str, Any]) -> StorageServices:
    """Wire the monitor, failover controller, registry and coordinator together."""
    health_config = config.get('health', {})
    monitor = HealthMonitor(
        probe_timeout_seconds=health_config.get('probe_timeout_seconds', 5),
        max_workers=health_config.get('max_workers', 8),
    )
    failover = create_failover_controller(config, monitor)
    registry = FileRegistry(failover)
    coordinator = create_storage_coordinator(config, monitor, registry=registry)
    return StorageServices(monitor=monitor, failover=failover, registry=registry, coordinator=coordinator)


def create_default_services(config_path: Optional[Path] = None) -> StorageServices:
    """
    Create storage services with default configuration.

    This is the main entry point for creating the storage layer with
    configuration loaded from file and environment overrides.

    Raises:
        StorageConfigurationError: If configuration or creation fails
    """
    try:
        config = load_storage_config(config_path)
        return create_services(config)

    except StorageConfigurationError as e:
        logger.error(f"Failed to create default storage services: {e}")
        raise
    except Exception as e:
        logger.error(f"Failed to create default storage services: {e}")
        raise StorageConfigurationError(f"Default service creation failed: {e}") from e
