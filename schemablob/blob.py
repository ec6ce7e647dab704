"""
Blob Handles

``Blob`` carries the identity shared by every variant: the owning container,
the blob name and the last ETag this handle observed. Two variants build on
it:

- ``BlockBlob``: raw bytes.
- ``DataBlockBlob``: a JSON document, validated against the container's
  schema on every write and optionally mirrored in a ContentCache.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Optional

from .cache import ContentCache, ContentSnapshot
from .exceptions import BlobDecodeError, SchemaValidationError
from .models import JSON_CONTENT_TYPE, SchemaViolation
from .update import Modifier, RetryPolicy, UpdateEngine

if TYPE_CHECKING:
    from .container import Container

logger = logging.getLogger(__name__)


def encode_document(document: Any) -> bytes:
    """
    Canonical JSON encoding: sorted keys, compact separators, UTF-8.

    Raises:
        SchemaValidationError: If the document is not representable as strict
            JSON (NaN, Infinity or a non-JSON type)
    """
    try:
        return json.dumps(
            document, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SchemaValidationError(
            [SchemaViolation(path="", message=f"not a JSON document: {e}")]
        ) from e


def decode_document(data: bytes, container_name: str, blob_name: str) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BlobDecodeError(
            f"Blob '{blob_name}' in container '{container_name}' does not hold a JSON document: {e}",
            details={"container_name": container_name, "blob_name": blob_name},
        ) from e


class Blob:
    """Identity and version of a stored blob."""

    kind = "blob"

    def __init__(self, container: "Container", name: str, etag: Optional[str] = None):
        self.container = container
        self.name = name
        self.etag = etag

    @property
    def backend(self):
        return self.container.backend

    async def delete(self) -> None:
        """
        Delete the blob.

        Raises:
            BlobNotFoundError: If the blob no longer exists
        """
        await self.backend.delete_blob(self.container.name, self.name)
        self.etag = None
        logger.debug(f"Deleted blob '{self.name}' from container '{self.container.name}'")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(container={self.container.name!r}, name={self.name!r}, etag={self.etag!r})"


class BlockBlob(Blob):
    """Blob holding raw bytes."""

    kind = "block"

    async def load(self) -> bytes:
        """Read the blob's bytes and record the ETag they were read under."""
        blob = await self.backend.read_blob(self.container.name, self.name)
        self.etag = blob.etag
        return blob.data


class DataBlockBlob(Blob):
    """
    Blob holding a JSON document bound to the container's schema.

    Args:
        container: Owning container
        name: Blob name
        etag: Last known ETag
        cache_content: Keep the last confirmed document in memory
        content: Document known to be current under ``etag`` (seeds the cache)
    """

    kind = "data"

    def __init__(
        self,
        container: "Container",
        name: str,
        etag: Optional[str] = None,
        cache_content: bool = False,
        content: Any = None,
    ):
        super().__init__(container, name, etag)
        self.cache: Optional[ContentCache] = ContentCache() if cache_content else None
        if self.cache is not None and etag is not None and content is not None:
            self.cache.store(content, etag)

    @property
    def cache_content(self) -> bool:
        return self.cache is not None

    @property
    def content(self) -> Any:
        """Copy of the cached document, or None when caching is disabled or nothing is cached."""
        return self.cache.content if self.cache is not None else None

    def _record(self, content: Any, etag: str) -> None:
        # ETag and cache move together
        self.etag = etag
        if self.cache is not None:
            self.cache.store(content, etag)

    async def _fetch(self) -> ContentSnapshot:
        blob = await self.backend.read_blob(self.container.name, self.name)
        content = decode_document(blob.data, self.container.name, self.name)
        return ContentSnapshot(content=content, etag=blob.etag)

    async def _commit(self, content: Any, expected_etag: str) -> str:
        return await self.backend.write_blob_if_match(
            self.container.name,
            self.name,
            encode_document(content),
            expected_etag,
            content_type=JSON_CONTENT_TYPE,
        )

    async def load(self) -> Any:
        """
        Read and decode the current document.

        Refreshes the recorded ETag and, when caching is enabled, the cache.
        The document is not re-validated: committed state was validated on write.

        Raises:
            BlobNotFoundError: If the blob does not exist
            BlobDecodeError: If the stored bytes are not JSON
        """
        snapshot = await self._fetch()
        self._record(snapshot.content, snapshot.etag)
        return snapshot.content

    async def update(self, modifier: Modifier, *, max_attempts: Optional[int] = None) -> Any:
        """
        Apply ``modifier`` to the current document and commit the result.

        The modifier receives a private copy of the document and returns the
        new document (or None after editing it in place). It may be called
        several times when concurrent writers force a retry, so it must not
        have side effects.

        Args:
            modifier: Pure transformation of the document
            max_attempts: Override of the container's retry budget

        Returns:
            The committed document

        Raises:
            SchemaValidationError: If the new document is invalid; nothing is written
            ConcurrentUpdateError: If the retry budget is exhausted
        """
        policy = self.container.retry_policy
        if max_attempts is not None:
            policy = RetryPolicy(
                max_attempts=max_attempts,
                base_delay=policy.base_delay,
                max_delay=policy.max_delay,
                jitter=policy.jitter,
            )

        engine = UpdateEngine(
            self.container.name,
            self.name,
            fetch=self._fetch,
            commit=self._commit,
            validate=self.container.validate,
            policy=policy,
        )
        initial = self.cache.snapshot() if self.cache is not None else None
        committed = await engine.run(modifier, initial=initial)
        self._record(committed.content, committed.etag)
        return committed.content

    async def delete(self) -> None:
        await super().delete()
        if self.cache is not None:
            self.cache.clear()
