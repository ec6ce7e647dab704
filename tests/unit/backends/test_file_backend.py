"""
Unit tests for the file storage backend: persistence, on-disk layout and
locking behaviour beyond the shared backend contract.
"""

import asyncio
import json
from unittest.mock import patch

import portalocker
import pytest

from schemablob.backends.file import CONTAINER_FILE, LOCK_FILE, FileStorageBackend
from schemablob.exceptions import BackendError, ConditionNotMetError, ContainerNotFoundError


@pytest.fixture
def root(tmp_path):
    return tmp_path / "store"


class TestPersistence:
    """Test state survives across backend instances."""

    @pytest.mark.asyncio
    async def test_second_instance_sees_blobs(self, root):
        """Test a new instance on the same root reads committed state."""
        first = FileStorageBackend(root)
        await first.create_container("test-container", schema_ref="urn:schema")
        etag = await first.create_blob("test-container", "b1", b'{"value":1}')

        second = FileStorageBackend(root)
        info = await second.get_container("test-container")
        blob = await second.read_blob("test-container", "b1")

        assert info.schema_ref == "urn:schema"
        assert blob.data == b'{"value":1}'
        assert blob.etag == etag

    @pytest.mark.asyncio
    async def test_conflict_across_instances(self, root):
        """Test two instances racing with one ETag: only one write commits."""
        first = FileStorageBackend(root)
        second = FileStorageBackend(root)
        await first.create_container("test-container")
        etag = await first.create_blob("test-container", "b1", b"v1")

        await first.write_blob_if_match("test-container", "b1", b"from-first", etag)
        with pytest.raises(ConditionNotMetError):
            await second.write_blob_if_match("test-container", "b1", b"from-second", etag)

        blob = await second.read_blob("test-container", "b1")
        assert blob.data == b"from-first"

    @pytest.mark.asyncio
    async def test_binary_content_round_trip(self, root):
        backend = FileStorageBackend(root)
        await backend.create_container("test-container")
        payload = bytes(range(256))
        await backend.create_blob("test-container", "bin", payload)
        assert (await backend.read_blob("test-container", "bin")).data == payload


class TestLayout:
    """Test the on-disk layout."""

    @pytest.mark.asyncio
    async def test_container_metadata_file(self, root):
        backend = FileStorageBackend(root)
        await backend.create_container("test-container", schema_ref="urn:schema")

        record = json.loads((root / "test-container" / CONTAINER_FILE).read_text())
        assert record["name"] == "test-container"
        assert record["schema_ref"] == "urn:schema"

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, root):
        backend = FileStorageBackend(root)
        await backend.create_container("test-container")
        etag = await backend.create_blob("test-container", "b1", b"v1")
        await backend.write_blob_if_match("test-container", "b1", b"v2", etag)

        leftovers = list((root / "test-container" / "blobs").glob(".tmp-*"))
        assert leftovers == []

    @pytest.mark.asyncio
    async def test_corrupt_record(self, root):
        """Test a corrupt blob record surfaces as a backend error."""
        backend = FileStorageBackend(root)
        await backend.create_container("test-container")
        await backend.create_blob("test-container", "b1", b"v1")

        record_path = next((root / "test-container" / "blobs").glob("*.json"))
        record_path.write_text("{not json")

        with pytest.raises(BackendError):
            await backend.read_blob("test-container", "b1")


class TestLocking:
    """Test lock contention handling."""

    @pytest.mark.asyncio
    async def test_lock_timeout(self, root):
        """Test a held container lock turns into a BackendError after the timeout."""
        backend = FileStorageBackend(root, lock_timeout=0.2)
        await backend.create_container("test-container")

        lock_path = root / "test-container" / LOCK_FILE
        with portalocker.Lock(str(lock_path), mode="a", timeout=1):
            with pytest.raises(BackendError):
                await backend.create_blob("test-container", "b1", b"data")

    @pytest.mark.asyncio
    async def test_lock_wait_does_not_block_event_loop(self, root):
        """Test other coroutines run while a write waits for the container lock."""
        backend = FileStorageBackend(root, lock_timeout=5)
        await backend.create_container("test-container")
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(1)
                await asyncio.sleep(0.05)

        lock = portalocker.Lock(str(root / "test-container" / LOCK_FILE), mode="a", timeout=1)
        lock.acquire()
        try:
            write = asyncio.create_task(backend.create_blob("test-container", "b1", b"data"))
            await asyncio.sleep(0.1)
            await ticker()
            assert not write.done()
        finally:
            lock.release()

        etag = await write
        assert ticks == [1, 1, 1]
        assert (await backend.read_blob("test-container", "b1")).etag == etag

    @pytest.mark.asyncio
    async def test_container_deleted_while_waiting_for_lock(self, root):
        backend = FileStorageBackend(root, lock_timeout=5)
        await backend.create_container("test-container")

        lock = portalocker.Lock(str(root / "test-container" / LOCK_FILE), mode="a", timeout=1)
        lock.acquire()
        try:
            write = asyncio.create_task(backend.create_blob("test-container", "b1", b"data"))
            await asyncio.sleep(0.2)
            await backend.delete_container("test-container")
        finally:
            lock.release()

        with pytest.raises(ContainerNotFoundError):
            await write
        assert await backend.list_containers() == []


class TestFilesystemErrors:
    """Test OS-level failures surface as backend errors."""

    @pytest.mark.asyncio
    async def test_failed_replace_is_backend_error(self, root):
        backend = FileStorageBackend(root)
        await backend.create_container("test-container")

        with patch("schemablob.backends.file.os.replace", side_effect=PermissionError("read-only")):
            with pytest.raises(BackendError) as exc_info:
                await backend.create_blob("test-container", "b1", b"data")

        assert isinstance(exc_info.value.__cause__, PermissionError)
        assert list((root / "test-container" / "blobs").iterdir()) == []

    @pytest.mark.asyncio
    async def test_unreadable_root_is_backend_error(self, root):
        backend = FileStorageBackend(root)
        with patch("pathlib.Path.iterdir", side_effect=PermissionError("denied")):
            with pytest.raises(BackendError):
                await backend.list_containers()
