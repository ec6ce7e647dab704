"""
End-to-end scenarios for schema-validated data blobs.

Each scenario runs against the in-memory and the file backend through the
public BlobStorage API.
"""

import asyncio

import pytest

from schemablob import BlobStorage, DataBlockBlob, SchemaValidationError
from schemablob.backends import FileStorageBackend, InMemoryStorageBackend

pytestmark = pytest.mark.integration

VALUE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-04/schema#",
    "title": "test json schema",
    "type": "object",
    "properties": {
        "value": {"type": "integer"},
    },
    "additionalProperties": False,
    "required": ["value"],
}


@pytest.fixture(params=["memory", "file"])
async def storage(request, tmp_path):
    """BlobStorage over each local backend."""
    if request.param == "memory":
        backend = InMemoryStorageBackend()
    else:
        backend = FileStorageBackend(tmp_path / "store")
    async with BlobStorage(backend) as blob_storage:
        yield blob_storage


@pytest.fixture
async def container(storage):
    return await storage.create_container("test-container", VALUE_SCHEMA)


class TestExampleScenarios:
    """Walk through the documented usage scenarios."""

    @pytest.mark.asyncio
    async def test_create_and_load(self, container):
        blob = await container.create_data_blob("b1", {"value": 40})

        assert isinstance(blob, DataBlockBlob)
        assert await blob.load() == {"value": 40}

    @pytest.mark.asyncio
    async def test_invalid_create_is_not_listed(self, container):
        with pytest.raises(SchemaValidationError) as exc_info:
            await container.create_data_blob("b2", {"value": "wrong value"})

        assert exc_info.value.error_code == "SchemaValidationError"
        names = [b.name for b in await container.list_blobs().to_list()]
        assert "b2" not in names

    @pytest.mark.asyncio
    async def test_update_then_load(self, container):
        blob = await container.create_data_blob("b3", {"value": 24})

        def set_value(document):
            document["value"] = 40
            return document

        assert await blob.update(set_value) == {"value": 40}
        assert await blob.load() == {"value": 40}

    @pytest.mark.asyncio
    async def test_invalid_update_keeps_remote_state(self, container):
        blob = await container.create_data_blob("b3", {"value": 24})

        with pytest.raises(SchemaValidationError):
            await blob.update(lambda d: {"value": "wrong value"})

        fresh = await container.get_data_blob("b3")
        assert await fresh.load() == {"value": 24}

    @pytest.mark.asyncio
    async def test_racing_updates_apply_sequentially(self, container):
        """Test the loser of a race replays its modifier on the winner's state."""
        await container.create_data_blob("b3", {"value": 24})
        first = await container.get_data_blob("b3", cache_content=True)
        second = await container.get_data_blob("b3", cache_content=True)
        assert first.etag == second.etag

        second_calls = []

        def add_ten(document):
            second_calls.append(document["value"])
            return {"value": document["value"] + 10}

        await first.update(lambda d: {"value": d["value"] * 2})
        result = await second.update(add_ten)

        assert second_calls == [24, 48]
        assert result == {"value": 58}
        assert await (await container.get_data_blob("b3")).load() == {"value": 58}


class TestProperties:
    """Properties that hold across operations."""

    @pytest.mark.asyncio
    async def test_concurrent_updates_lose_nothing(self, container):
        blob = await container.create_data_blob("counter", {"value": 0})
        handles = [await container.get_data_blob("counter", cache_content=True) for _ in range(4)]

        await asyncio.gather(
            *(handle.update(lambda d: {"value": d["value"] + 1}, max_attempts=10) for handle in handles)
        )

        assert await blob.load() == {"value": 4}

    @pytest.mark.asyncio
    async def test_non_commuting_updates_realize_one_order(self, container):
        await container.create_data_blob("b3", {"value": 24})
        a = await container.get_data_blob("b3", cache_content=True)
        b = await container.get_data_blob("b3", cache_content=True)

        await asyncio.gather(
            a.update(lambda d: {"value": d["value"] * 2}),
            b.update(lambda d: {"value": d["value"] + 10}),
        )

        final = await (await container.get_data_blob("b3")).load()
        assert final["value"] in (58, 68)

    @pytest.mark.asyncio
    async def test_cache_coherence(self, container):
        blob = await container.create_data_blob("b1", {"value": 1}, cache_content=True)
        assert (blob.content, blob.cache.etag) == ({"value": 1}, blob.etag)

        await blob.update(lambda d: {"value": 2})
        assert (blob.content, blob.cache.etag) == ({"value": 2}, blob.etag)

        other = await container.get_data_blob("b1")
        await other.update(lambda d: {"value": 3})

        await blob.load()
        assert blob.content == {"value": 3}
        assert blob.etag == other.etag

    @pytest.mark.asyncio
    async def test_listing_is_idempotent(self, container):
        for name in ["log-3", "log-1", "other", "log-2"]:
            await container.create_data_blob(name, {"value": 1})

        listing = container.list_blobs(prefix="log-")
        first = {b.name for b in await listing.to_list()}
        second = {b.name for b in await listing.to_list()}

        assert first == second == {"log-1", "log-2", "log-3"}

    @pytest.mark.asyncio
    async def test_round_trip_nested_document(self, storage):
        container = await storage.create_container("free-container")
        document = {"nested": {"list": [1, 2.5, "three", None, True]}, "unicode": "ünïcødé"}

        blob = await container.create_data_blob("doc", document)

        assert await blob.load() == document

    @pytest.mark.asyncio
    async def test_reopen_container_keeps_schema(self, storage, container):
        reopened = await storage.get_container("test-container")

        with pytest.raises(SchemaValidationError):
            await reopened.create_data_blob("b1", {"value": 1.5})
