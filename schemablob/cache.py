"""
Content Cache

Per-handle mirror of a data blob's last confirmed document and the ETag it
is current under. Content and ETag are always replaced together.
"""

import copy
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ContentSnapshot:
    """A document together with the ETag it was read or committed under."""
    content: Any
    etag: str


class ContentCache:
    """
    Cache owned by a single DataBlockBlob handle.

    Not shared between handles: two handles for the same remote blob cache
    independently, and a write through one does not refresh the other.
    """

    def __init__(self):
        self._entry: Optional[ContentSnapshot] = None

    @property
    def is_populated(self) -> bool:
        return self._entry is not None

    @property
    def content(self) -> Any:
        """Copy of the cached document; edits to it never reach the cache."""
        return copy.deepcopy(self._entry.content) if self._entry else None

    @property
    def etag(self) -> Optional[str]:
        return self._entry.etag if self._entry else None

    def store(self, content: Any, etag: str) -> None:
        """
        Replace the cached document and its ETag in one step.

        The document is copied, so later edits to the caller's object do not
        leak into the cache.
        """
        self._entry = ContentSnapshot(content=copy.deepcopy(content), etag=etag)

    def clear(self) -> None:
        self._entry = None

    def snapshot(self) -> Optional[ContentSnapshot]:
        """Return a deep copy of the cached entry, safe for a caller to mutate."""
        if self._entry is None:
            return None
        return ContentSnapshot(content=copy.deepcopy(self._entry.content), etag=self._entry.etag)
