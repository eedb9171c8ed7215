"""Object storage adapters."""

from scene_engine.adapters.storage.base import ObjectStorage
from scene_engine.adapters.storage.local import LocalObjectStorage
from scene_engine.adapters.storage.s3 import S3ObjectStorage

__all__ = [
    "LocalObjectStorage",
    "ObjectStorage",
    "S3ObjectStorage",
]
