"""
Storage module for the hybrid storage coordinator

This module provides the object storage adapters, database failover,
migration tracking and the configuration system that wires them together.
"""

from .service import StorageCoordinator
from .failover import FailoverController
from .health import HealthMonitor
from .registry import FileRegistry
from .migration import MigrationTracker
from .database import DatabaseAdapter
from .snapshots import SnapshotStore
from .factory import (
    StorageConfigurationError,
    StorageServices,
    create_default_services,
    create_services,
    create_storage_provider,
    load_storage_config,
)
from .providers.base import ObjectStorageAdapter
from .providers.filesystem import LocalStorageAdapter

__all__ = [
    "StorageCoordinator",
    "FailoverController",
    "HealthMonitor",
    "FileRegistry",
    "MigrationTracker",
    "DatabaseAdapter",
    "SnapshotStore",
    "StorageConfigurationError",
    "StorageServices",
    "create_default_services",
    "create_services",
    "create_storage_provider",
    "load_storage_config",
    "ObjectStorageAdapter",
    "LocalStorageAdapter"
]
