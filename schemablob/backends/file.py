"""
File Storage Backend

Persistent blob store on the local filesystem, safe across processes.

**File Structure**:
```
root/
  .lock
  <container>/
    .container.json
    .lock
    blobs/
      <sha256 of blob name>.json
```

Each blob record is a single JSON file holding the blob name, ETag, content
type and base64 content, replaced atomically (temp file + ``os.replace``), so
readers never see a torn record. Check-and-set operations (create, conditional
write, delete) hold a ``portalocker`` lock on the container's lock file.

Filesystem work, lock waits included, runs in worker threads through
``asyncio.to_thread`` so a contended lock never stalls the event loop.
OS-level failures surface as ``BackendError``.
"""

import asyncio
import base64
import hashlib
import json
import logging
import os
import shutil
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import portalocker

from ..exceptions import (
    BackendError,
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

logger = logging.getLogger(__name__)

CONTAINER_FILE = ".container.json"
LOCK_FILE = ".lock"
BLOBS_DIR = "blobs"


class FileStorageBackend(StorageBackend):
    """
    Filesystem storage backend.

    Args:
        root: Directory holding one sub-directory per container
        lock_timeout: Seconds to wait for a file lock before failing
    """

    def __init__(self, root: Path, lock_timeout: float = 10.0):
        self._root = Path(root)
        self._lock_timeout = lock_timeout
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _generate_etag(self) -> str:
        """Generate a unique ETag."""
        return hashlib.md5(uuid.uuid4().bytes).hexdigest()

    def _lock(self, directory: Path):
        """Exclusive lock on ``directory/.lock``."""
        return portalocker.Lock(
            str(directory / LOCK_FILE),
            mode="a",
            timeout=self._lock_timeout,
        )

    def _container_dir(self, name: str) -> Path:
        return self._root / name

    def _require_container(self, name: str) -> Path:
        directory = self._container_dir(name)
        if not (directory / CONTAINER_FILE).exists():
            raise ContainerNotFoundError(name)
        return directory

    def _blob_path(self, container_dir: Path, blob_name: str) -> Path:
        digest = hashlib.sha256(blob_name.encode("utf-8")).hexdigest()
        return container_dir / BLOBS_DIR / f"{digest}.json"

    def _write_json(self, path: Path, data: Any) -> None:
        """
        Write JSON to file atomically.

        Writes to a temp file in the same directory, flushes it, then
        renames it over the target.
        """
        fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise BackendError(f"Corrupt storage record {path}: {e}") from e

    def _call(self, func, *args):
        try:
            return func(*args)
        except OSError as e:
            raise BackendError(f"Filesystem error: {e}") from e

    async def _run(self, func, *args):
        """Run blocking filesystem work in a worker thread."""
        return await asyncio.to_thread(self._call, func, *args)

    def _locked(self, directory: Path, func, *args):
        try:
            with self._lock(directory):
                return func(*args)
        except portalocker.LockException as e:
            raise BackendError(f"Timed out waiting for lock on {directory}") from e

    def _locked_in_container(self, container_name: str, func):
        """Run ``func(directory)`` holding the container lock."""
        directory = self._require_container(container_name)

        def checked():
            # Deleted while we waited for the lock
            self._require_container(container_name)
            return func(directory)

        return self._locked(directory, checked)

    def _blob_record(self, blob_name: str, data: bytes, etag: str, content_type: str) -> Dict[str, Any]:
        return {
            "name": blob_name,
            "etag": etag,
            "content_type": content_type,
            "last_modified": datetime.now(timezone.utc).isoformat(),
            "data": base64.b64encode(data).decode("ascii"),
        }

    # ============================================================================
    # Container Operations
    # ============================================================================

    async def create_container(
        self, name: str, schema_ref: Optional[str] = None
    ) -> ContainerInfo:
        ContainerNameValidator.validate_raise(name)

        def create() -> ContainerInfo:
            directory = self._container_dir(name)
            if (directory / CONTAINER_FILE).exists():
                raise ContainerExistsError(name)
            (directory / BLOBS_DIR).mkdir(parents=True, exist_ok=True)
            info = ContainerInfo(name=name, schema_ref=schema_ref, etag=self._generate_etag())
            self._write_json(directory / CONTAINER_FILE, info.model_dump(mode="json"))
            return info

        info = await self._run(self._locked, self._root, create)
        logger.debug(f"Created container directory {self._container_dir(name)}")
        return info

    async def get_container(self, name: str) -> ContainerInfo:
        record = await self._run(self._read_json, self._container_dir(name) / CONTAINER_FILE)
        if record is None:
            raise ContainerNotFoundError(name)
        return ContainerInfo.model_validate(record)

    async def list_containers(self, prefix: Optional[str] = None) -> List[ContainerInfo]:
        def scan() -> List[Dict[str, Any]]:
            records = []
            for directory in sorted(self._root.iterdir()):
                if not directory.is_dir():
                    continue
                if prefix and not directory.name.startswith(prefix):
                    continue
                record = self._read_json(directory / CONTAINER_FILE)
                if record is not None:
                    records.append(record)
            return records

        return [ContainerInfo.model_validate(record) for record in await self._run(scan)]

    async def delete_container(self, name: str) -> None:
        def delete() -> None:
            directory = self._require_container(name)
            shutil.rmtree(directory)

        await self._run(self._locked, self._root, delete)

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
        def create(directory: Path) -> str:
            path = self._blob_path(directory, blob_name)
            if path.exists():
                raise BlobExistsError(container_name, blob_name)
            etag = self._generate_etag()
            self._write_json(path, self._blob_record(blob_name, data, etag, content_type))
            return etag

        return await self._run(self._locked_in_container, container_name, create)

    async def read_blob(self, container_name: str, blob_name: str) -> BlobContent:
        def read() -> Optional[Dict[str, Any]]:
            directory = self._require_container(container_name)
            return self._read_json(self._blob_path(directory, blob_name))

        record = await self._run(read)
        if record is None:
            raise BlobNotFoundError(container_name, blob_name)
        return BlobContent(
            data=base64.b64decode(record["data"]),
            etag=record["etag"],
            content_type=record.get("content_type", OCTET_STREAM_CONTENT_TYPE),
        )

    async def write_blob_if_match(
        self,
        container_name: str,
        blob_name: str,
        data: bytes,
        expected_etag: str,
        content_type: str = OCTET_STREAM_CONTENT_TYPE,
    ) -> str:
        def write(directory: Path) -> str:
            path = self._blob_path(directory, blob_name)
            record = self._read_json(path)
            if record is None:
                raise BlobNotFoundError(container_name, blob_name)
            if record["etag"] != expected_etag:
                raise ConditionNotMetError(container_name, blob_name, expected_etag)
            etag = self._generate_etag()
            self._write_json(path, self._blob_record(blob_name, data, etag, content_type))
            return etag

        return await self._run(self._locked_in_container, container_name, write)

    async def delete_blob(self, container_name: str, blob_name: str) -> None:
        def delete(directory: Path) -> None:
            try:
                self._blob_path(directory, blob_name).unlink()
            except FileNotFoundError:
                raise BlobNotFoundError(container_name, blob_name) from None

        await self._run(self._locked_in_container, container_name, delete)

    async def list_blobs(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        max_results: Optional[int] = None,
        marker: Optional[str] = None,
    ) -> BlobPage:
        def scan() -> List[Dict[str, Any]]:
            directory = self._require_container(container_name)
            records = []
            for path in (directory / BLOBS_DIR).glob("*.json"):
                record = self._read_json(path)
                if record is None:
                    # Deleted between glob and read
                    continue
                records.append(record)
            return records

        items = []
        for record in await self._run(scan):
            name = record["name"]
            if prefix and not name.startswith(prefix):
                continue
            if marker and name <= marker:
                continue
            items.append(
                BlobItem(
                    name=name,
                    etag=record["etag"],
                    content_length=len(base64.b64decode(record["data"])),
                    content_type=record.get("content_type", OCTET_STREAM_CONTENT_TYPE),
                    last_modified=datetime.fromisoformat(record["last_modified"]),
                )
            )

        items.sort(key=lambda b: b.name)

        next_marker = None
        if max_results and len(items) > max_results:
            items = items[:max_results]
            next_marker = items[-1].name

        return BlobPage(items=items, next_marker=next_marker)
