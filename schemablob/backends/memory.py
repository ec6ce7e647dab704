"""
In-Memory Storage Backend

Dict-based blob store for tests and single-process use.
"""

import asyncio
import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..exceptions import (
    BlobExistsError,
    BlobNotFoundError,
    ConditionNotMetError,
    ContainerExistsError,
    ContainerNotFoundError,
)
from ..models import (
    BlobContent,
    BlobItem,
    BlobPage,
    ContainerInfo,
    ContainerNameValidator,
    OCTET_STREAM_CONTENT_TYPE,
)
from .base import StorageBackend


@dataclass
class _StoredBlob:
    data: bytes
    etag: str
    content_type: str
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryStorageBackend(StorageBackend):
    """
    In-memory storage backend for containers and blobs.

    All mutations run under a single asyncio lock, which makes the
    conditional write an atomic check-and-set.
    """

    def __init__(self):
        """Initialize the in-memory backend."""
        self._containers: Dict[str, ContainerInfo] = {}
        self._blobs: Dict[str, Dict[str, _StoredBlob]] = {}  # container_name -> {blob_name -> blob}
        self._lock = asyncio.Lock()

    def _generate_etag(self) -> str:
        """Generate a unique ETag."""
        return hashlib.md5(uuid.uuid4().bytes).hexdigest()

    def _require_container(self, name: str) -> Dict[str, _StoredBlob]:
        if name not in self._containers:
            raise ContainerNotFoundError(name)
        return self._blobs[name]

    # ============================================================================
    # Container Operations
    # ============================================================================

    async def create_container(
        self, name: str, schema_ref: Optional[str] = None
    ) -> ContainerInfo:
        ContainerNameValidator.validate_raise(name)

        async with self._lock:
            if name in self._containers:
                raise ContainerExistsError(name)

            container = ContainerInfo(
                name=name,
                schema_ref=schema_ref,
                etag=self._generate_etag(),
            )
            self._containers[name] = container
            self._blobs[name] = {}
            return container

    async def get_container(self, name: str) -> ContainerInfo:
        async with self._lock:
            if name not in self._containers:
                raise ContainerNotFoundError(name)
            return self._containers[name]

    async def list_containers(self, prefix: Optional[str] = None) -> List[ContainerInfo]:
        async with self._lock:
            containers = list(self._containers.values())

        if prefix:
            containers = [c for c in containers if c.name.startswith(prefix)]
        containers.sort(key=lambda c: c.name)
        return containers

    async def delete_container(self, name: str) -> None:
        async with self._lock:
            if name not in self._containers:
                raise ContainerNotFoundError(name)
            del self._containers[name]
            del self._blobs[name]

    # ============================================================================
    # Blob Operations
    # ============================================================================

    async def create_blob(
        self,
        container_name: str,
        blob_name: str,
        data: bytes,
        content_type: str = OCTET_STREAM_CONTENT_TYPE,
    ) -> str:
        async with self._lock:
            blobs = self._require_container(container_name)
            if blob_name in blobs:
                raise BlobExistsError(container_name, blob_name)

            etag = self._generate_etag()
            blobs[blob_name] = _StoredBlob(data=bytes(data), etag=etag, content_type=content_type)
            return etag

    async def read_blob(self, container_name: str, blob_name: str) -> BlobContent:
        async with self._lock:
            blobs = self._require_container(container_name)
            if blob_name not in blobs:
                raise BlobNotFoundError(container_name, blob_name)
            blob = blobs[blob_name]
            return BlobContent(data=blob.data, etag=blob.etag, content_type=blob.content_type)

    async def write_blob_if_match(
        self,
        container_name: str,
        blob_name: str,
        data: bytes,
        expected_etag: str,
        content_type: str = OCTET_STREAM_CONTENT_TYPE,
    ) -> str:
        async with self._lock:
            blobs = self._require_container(container_name)
            if blob_name not in blobs:
                raise BlobNotFoundError(container_name, blob_name)

            blob = blobs[blob_name]
            if blob.etag != expected_etag:
                raise ConditionNotMetError(container_name, blob_name, expected_etag)

            etag = self._generate_etag()
            blobs[blob_name] = _StoredBlob(data=bytes(data), etag=etag, content_type=content_type)
            return etag

    async def delete_blob(self, container_name: str, blob_name: str) -> None:
        async with self._lock:
            blobs = self._require_container(container_name)
            if blob_name not in blobs:
                raise BlobNotFoundError(container_name, blob_name)
            del blobs[blob_name]

    async def list_blobs(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        max_results: Optional[int] = None,
        marker: Optional[str] = None,
    ) -> BlobPage:
        async with self._lock:
            blobs = self._require_container(container_name)
            items = [
                BlobItem(
                    name=name,
                    etag=blob.etag,
                    content_length=len(blob.data),
                    content_type=blob.content_type,
                    last_modified=blob.last_modified,
                )
                for name, blob in blobs.items()
            ]

        if prefix:
            items = [b for b in items if b.name.startswith(prefix)]

        items.sort(key=lambda b: b.name)

        # Continue after the marker blob name
        if marker:
            items = [b for b in items if b.name > marker]

        next_marker = None
        if max_results and len(items) > max_results:
            items = items[:max_results]
            next_marker = items[-1].name

        return BlobPage(items=items, next_marker=next_marker)
