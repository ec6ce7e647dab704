"""
Abstract Storage Backend Interface.

Defines the blob store capability consumed by schemablob: containers, blobs
addressed by name, ETags assigned on every write, and conditional writes.
Implementations must make ``write_blob_if_match`` an atomic check-and-set;
it is the only linearization point for concurrent updates.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import BlobContent, BlobPage, ContainerInfo, OCTET_STREAM_CONTENT_TYPE


class StorageBackend(ABC):
    """
    Abstract base class for blob store backends.

    All implementations (in-memory, file, Azure) report failures with the
    schemablob exception hierarchy:
    - ContainerExistsError / ContainerNotFoundError
    - BlobExistsError / BlobNotFoundError
    - ConditionNotMetError when an if-match write sees another ETag
    - BackendError for transport or availability failures
    """

    @abstractmethod
    async def create_container(
        self, name: str, schema_ref: Optional[str] = None
    ) -> ContainerInfo:
        """
        Create a new container.

        Args:
            name: Container name
            schema_ref: Optional schema reference persisted with the container

        Returns:
            Created container

        Raises:
            ContainerExistsError: If the container already exists
        """
        pass

    @abstractmethod
    async def get_container(self, name: str) -> ContainerInfo:
        """
        Get container by name.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        pass

    @abstractmethod
    async def list_containers(self, prefix: Optional[str] = None) -> List[ContainerInfo]:
        """List containers, sorted by name, optionally filtered by prefix."""
        pass

    @abstractmethod
    async def delete_container(self, name: str) -> None:
        """
        Delete a container and all its blobs.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        pass

    @abstractmethod
    async def create_blob(
        self,
        container_name: str,
        blob_name: str,
        data: bytes,
        content_type: str = OCTET_STREAM_CONTENT_TYPE,
    ) -> str:
        """
        Create a blob that must not exist yet.

        Returns:
            ETag of the new blob

        Raises:
            ContainerNotFoundError: If the container does not exist
            BlobExistsError: If the blob already exists
        """
        pass

    @abstractmethod
    async def read_blob(self, container_name: str, blob_name: str) -> BlobContent:
        """
        Read blob bytes together with their ETag.

        Raises:
            ContainerNotFoundError: If the container does not exist
            BlobNotFoundError: If the blob does not exist
        """
        pass

    @abstractmethod
    async def write_blob_if_match(
        self,
        container_name: str,
        blob_name: str,
        data: bytes,
        expected_etag: str,
        content_type: str = OCTET_STREAM_CONTENT_TYPE,
    ) -> str:
        """
        Replace blob content only if its current ETag equals ``expected_etag``.

        Returns:
            New ETag

        Raises:
            ContainerNotFoundError: If the container does not exist
            BlobNotFoundError: If the blob does not exist
            ConditionNotMetError: If the blob's ETag changed
        """
        pass

    @abstractmethod
    async def delete_blob(self, container_name: str, blob_name: str) -> None:
        """
        Delete a blob.

        Raises:
            ContainerNotFoundError: If the container does not exist
            BlobNotFoundError: If the blob does not exist
        """
        pass

    @abstractmethod
    async def list_blobs(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        max_results: Optional[int] = None,
        marker: Optional[str] = None,
    ) -> BlobPage:
        """
        List one page of blobs, sorted by name.

        Args:
            container_name: Container name
            prefix: Optional name prefix filter
            max_results: Optional page size
            marker: Continuation marker returned by the previous page

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass

    async def __aenter__(self) -> "StorageBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
