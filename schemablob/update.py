"""
Optimistic Update Engine

Read-modify-write loop for data blobs:

    Load -> Transform -> Validate -> Conditional write (if-match E0)

A rejected conditional write means another writer committed first. The engine
then reloads and replays the caller's modifier against the fresh document,
up to ``RetryPolicy.max_attempts`` times. It never merges writes.

Modifiers may run more than once and must therefore be pure functions of the
document they receive.
"""

import asyncio
import copy
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .cache import ContentSnapshot
from .core.logging_config import log_with_context
from .exceptions import ConcurrentUpdateError, ConditionNotMetError, SchemaValidationError

logger = logging.getLogger(__name__)

Modifier = Callable[[Any], Any]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bound on conflicting attempts and optional backoff between them.

    With the default ``base_delay`` of 0 the engine reloads immediately after
    a conflict. A positive ``base_delay`` enables exponential backoff capped
    at ``max_delay``, with full jitter when ``jitter`` is set.
    """
    max_attempts: int = 5
    base_delay: float = 0.0
    max_delay: float = 0.5
    jitter: bool = True

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def delay(self, attempt: int) -> float:
        """Backoff before attempt ``attempt + 1`` (attempts count from 1)."""
        if self.base_delay <= 0:
            return 0.0
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay = random.uniform(0, delay)
        return delay

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        """Build a policy from an UpdateConfig section."""
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
        )


class UpdateEngine:
    """
    Drives one optimistic update.

    Args:
        container_name: Owning container, for errors and logs
        blob_name: Target blob, for errors and logs
        fetch: Reads the current document and ETag from the backend
        commit: Writes a document conditioned on an ETag, returns the new ETag;
            raises ConditionNotMetError on ETag mismatch
        validate: Raises SchemaValidationError for an invalid document
        policy: Retry policy
    """

    def __init__(
        self,
        container_name: str,
        blob_name: str,
        fetch: Callable[[], Awaitable[ContentSnapshot]],
        commit: Callable[[Any, str], Awaitable[str]],
        validate: Callable[[Any], None],
        policy: Optional[RetryPolicy] = None,
    ):
        self.container_name = container_name
        self.blob_name = blob_name
        self._fetch = fetch
        self._commit = commit
        self._validate = validate
        self.policy = policy or RetryPolicy()
        self.attempts = 0

    @staticmethod
    def apply(modifier: Modifier, content: Any) -> Any:
        """
        Run a modifier on a private copy of ``content``.

        A modifier returning None is taken to have edited its argument in place.
        """
        working = copy.deepcopy(content)
        result = modifier(working)
        return working if result is None else result

    async def run(
        self, modifier: Modifier, initial: Optional[ContentSnapshot] = None
    ) -> ContentSnapshot:
        """
        Execute the update.

        Args:
            modifier: Pure transformation from the current document to the new one
            initial: Cached snapshot to try first instead of reading the backend

        Returns:
            The committed document and its new ETag

        Raises:
            SchemaValidationError: If the modified document is invalid (no write made).
                A cached ``initial`` that fails is first checked against stored state
            ConcurrentUpdateError: If every attempt lost a conditional write race
            BlobStorageError: Any other backend failure, unchanged
        """
        current = initial
        last_etag = initial.etag if initial else None
        from_cache = initial is not None

        for attempt in range(1, self.policy.max_attempts + 1):
            self.attempts = attempt
            if current is None:
                current = await self._fetch()
            last_etag = current.etag

            updated = self.apply(modifier, current.content)
            try:
                self._validate(updated)
            except SchemaValidationError:
                if not from_cache:
                    raise
                # Only stored state can make an update invalid
                fresh = await self._fetch()
                if fresh.etag == current.etag:
                    raise
                log_with_context(
                    logger,
                    logging.DEBUG,
                    f"Cached copy of blob '{self.blob_name}' failed validation and is stale, reloaded",
                    container=self.container_name,
                    blob=self.blob_name,
                    cached_etag=current.etag,
                    etag=fresh.etag,
                )
                current = fresh
                last_etag = current.etag
                updated = self.apply(modifier, current.content)
                self._validate(updated)
            from_cache = False

            try:
                new_etag = await self._commit(updated, current.etag)
            except ConditionNotMetError:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Conditional write conflict on blob '{self.blob_name}', reloading",
                    container=self.container_name,
                    blob=self.blob_name,
                    attempt=attempt,
                    max_attempts=self.policy.max_attempts,
                    etag=current.etag,
                )
                current = None
                if attempt < self.policy.max_attempts:
                    delay = self.policy.delay(attempt)
                    if delay > 0:
                        await asyncio.sleep(delay)
                continue

            log_with_context(
                logger,
                logging.DEBUG,
                f"Committed update to blob '{self.blob_name}'",
                container=self.container_name,
                blob=self.blob_name,
                attempt=attempt,
                etag=new_etag,
            )
            return ContentSnapshot(content=updated, etag=new_etag)

        logger.error(
            f"Update of blob '{self.blob_name}' in container '{self.container_name}' "
            f"abandoned after {self.policy.max_attempts} conflicting attempts"
        )
        raise ConcurrentUpdateError(
            self.container_name,
            self.blob_name,
            attempts=self.policy.max_attempts,
            last_etag=last_etag,
        )
