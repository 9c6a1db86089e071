"""
Object storage adapters for the hybrid storage layer.

This package contains one adapter per supported provider: local disk,
an S3-compatible service (cloud-a) and Google Cloud Storage (cloud-b).
The cloud adapters are imported by the factory on demand so that their
SDKs are only loaded when the provider is enabled.
"""

from .base import ObjectStorageAdapter
from .filesystem import LocalStorageAdapter

__all__ = [
    "ObjectStorageAdapter",
    "LocalStorageAdapter",
]
