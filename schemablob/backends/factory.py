"""
Storage Backend Factory

Creates the storage backend selected by configuration.
"""

from pathlib import Path

from ..core.config_manager import BackendConfig, BackendType
from .base import StorageBackend
from .file import FileStorageBackend
from .memory import InMemoryStorageBackend


def create_backend(config: BackendConfig) -> StorageBackend:
    """
    Factory function to create a storage backend from configuration.

    Args:
        config: Backend configuration

    Returns:
        Storage backend instance

    Raises:
        ValueError: If the backend type is unknown

    Example:
        ```python
        backend = create_backend(BackendConfig(type="file", path="./data"))
        storage = BlobStorage(backend)
        ```
    """
    backend_type = BackendType(config.type)

    if backend_type == BackendType.MEMORY:
        return InMemoryStorageBackend()

    elif backend_type == BackendType.FILE:
        return FileStorageBackend(Path(config.path), lock_timeout=config.lock_timeout)

    elif backend_type == BackendType.AZURE:
        # Imported lazily: azure-storage-blob is an optional dependency
        from .azure import AzureStorageBackend

        return AzureStorageBackend(
            connection_string=config.connection_string,
            account_url=config.account_url,
            credential=config.account_key,
        )

    raise ValueError(
        f"Unknown backend type: {config.type}. "
        f"Supported types: {[t.value for t in BackendType]}"
    )
