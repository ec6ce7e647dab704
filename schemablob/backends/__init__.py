"""
Storage Backends.

Blob store capability consumed by schemablob and its implementations.
The Azure backend lives in ``schemablob.backends.azure`` and requires the
``azure`` extra.
"""

from .base import StorageBackend
from .factory import create_backend
from .file import FileStorageBackend
from .memory import InMemoryStorageBackend

__all__ = [
    "StorageBackend",
    "InMemoryStorageBackend",
    "FileStorageBackend",
    "create_backend",
]
