"""
Container

Namespace of blobs bound to an optional JSON schema. Every structured blob
created or updated through a container is validated against that schema
before anything is written.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from .backends.base import StorageBackend
from .blob import BlockBlob, DataBlockBlob, encode_document
from .exceptions import BlobNotFoundError
from .models import (
    BlobNameValidator,
    JSON_CONTENT_TYPE,
    OCTET_STREAM_CONTENT_TYPE,
    SCHEMA_BLOB_NAME,
)
from .schema import SchemaRegistry
from .update import RetryPolicy

logger = logging.getLogger(__name__)


class BlobListing:
    """
    Lazy, restartable listing of blob handles.

    Nothing is fetched until iteration starts, and every new iteration
    queries the backend again, page by page.
    """

    def __init__(
        self,
        container: "Container",
        prefix: Optional[str] = None,
        page_size: Optional[int] = None,
    ):
        self.container = container
        self.prefix = prefix or None
        self.page_size = page_size

    async def pages(self) -> AsyncIterator[List[BlockBlob]]:
        """Yield one list of handles per backend page."""
        marker = None
        while True:
            page = await self.container.backend.list_blobs(
                self.container.name,
                prefix=self.prefix,
                max_results=self.page_size,
                marker=marker,
            )
            yield [
                BlockBlob(self.container, item.name, etag=item.etag)
                for item in page.items
                if item.name != SCHEMA_BLOB_NAME
            ]
            if not page.next_marker:
                break
            marker = page.next_marker

    async def __aiter__(self) -> AsyncIterator[BlockBlob]:
        async for page in self.pages():
            for blob in page:
                yield blob

    async def to_list(self) -> List[BlockBlob]:
        """Collect every matching handle."""
        return [blob async for blob in self]


class Container:
    """
    Handle on a container.

    Obtain instances through BlobStorage.create_container or
    BlobStorage.get_container rather than constructing them directly.
    """

    def __init__(
        self,
        name: str,
        backend: StorageBackend,
        registry: SchemaRegistry,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.name = name
        self.backend = backend
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def schema(self) -> Optional[Dict[str, Any]]:
        return self.registry.get(self.name)

    @property
    def schema_ref(self) -> Optional[str]:
        return self.registry.schema_ref(self.name)

    def validate(self, document: Any) -> None:
        """
        Check a document against the container's schema.

        Raises:
            SchemaValidationError: If the document has violations
        """
        self.registry.check(document, self.name)

    async def create_data_blob(
        self, name: str, content: Any, *, cache_content: bool = False
    ) -> DataBlockBlob:
        """
        Create a structured blob holding ``content``.

        The document is validated first; an invalid document never reaches
        the backend.

        Args:
            name: Blob name
            content: JSON document
            cache_content: Keep the document in the returned handle's cache

        Returns:
            Handle on the new blob

        Raises:
            SchemaValidationError: If the document fails validation
            BlobExistsError: If the name is taken
        """
        BlobNameValidator.validate_raise(name)
        self.validate(content)

        etag = await self.backend.create_blob(
            self.name, name, encode_document(content), content_type=JSON_CONTENT_TYPE
        )
        logger.debug(f"Created data blob '{name}' in container '{self.name}'")
        return DataBlockBlob(self, name, etag=etag, cache_content=cache_content, content=content)

    async def create_block_blob(self, name: str, data: bytes) -> BlockBlob:
        """
        Create a raw blob.

        Raises:
            BlobExistsError: If the name is taken
        """
        BlobNameValidator.validate_raise(name)
        etag = await self.backend.create_blob(
            self.name, name, bytes(data), content_type=OCTET_STREAM_CONTENT_TYPE
        )
        logger.debug(f"Created block blob '{name}' in container '{self.name}'")
        return BlockBlob(self, name, etag=etag)

    def list_blobs(
        self, prefix: Optional[str] = None, page_size: Optional[int] = None
    ) -> BlobListing:
        """
        List blobs whose name starts with ``prefix`` (all blobs if empty).

        Returns a lazy listing; iterate it with ``async for`` or collect it
        with ``await listing.to_list()``.
        """
        return BlobListing(self, prefix=prefix, page_size=page_size)

    async def get_blob(self, name: str) -> BlockBlob:
        """
        Get a handle on an existing blob (name and ETag, content not loaded).

        Raises:
            BlobNotFoundError: If no such blob exists
        """
        async for blob in self.list_blobs(prefix=name):
            if blob.name == name:
                return blob
        raise BlobNotFoundError(self.name, name)

    async def get_data_blob(self, name: str, *, cache_content: bool = False) -> DataBlockBlob:
        """
        Get a handle on an existing structured blob.

        The document is loaded once, which records the ETag and seeds the
        cache when ``cache_content`` is set.

        Raises:
            BlobNotFoundError: If no such blob exists
            BlobDecodeError: If the blob does not hold JSON
        """
        if name == SCHEMA_BLOB_NAME:
            raise BlobNotFoundError(self.name, name)
        blob = DataBlockBlob(self, name, cache_content=cache_content)
        await blob.load()
        return blob

    def __repr__(self) -> str:
        return f"Container(name={self.name!r}, schema_ref={self.schema_ref!r})"
