"""
Unit tests for BlobStorage: container lifecycle and schema persistence.
"""

import json
from unittest.mock import patch

import pytest

from schemablob.backends.file import FileStorageBackend
from schemablob.backends.memory import InMemoryStorageBackend
from schemablob.core.config_manager import SchemaBlobConfig
from schemablob.exceptions import (
    BackendError,
    ContainerExistsError,
    ContainerNotFoundError,
    InvalidNameError,
    InvalidSchemaError,
    SchemaValidationError,
)
from schemablob.models import SCHEMA_BLOB_NAME
from schemablob.storage import BlobStorage


VALUE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-04/schema#",
    "type": "object",
    "properties": {"value": {"type": "integer"}},
    "additionalProperties": False,
    "required": ["value"],
}


@pytest.fixture
def backend():
    return InMemoryStorageBackend()


@pytest.fixture
def storage(backend):
    return BlobStorage(backend, schema_base_url="https://schemas.example.com/")


class TestCreateContainer:
    """Test container creation."""

    @pytest.mark.asyncio
    async def test_create_with_schema(self, storage, backend):
        container = await storage.create_container("test-container", VALUE_SCHEMA)

        expected_ref = "https://schemas.example.com/test-container/.schema.blob.json#"
        assert container.name == "test-container"
        assert container.schema == VALUE_SCHEMA
        assert container.schema_ref == expected_ref

        info = await backend.get_container("test-container")
        assert info.schema_ref == expected_ref
        stored = await backend.read_blob("test-container", SCHEMA_BLOB_NAME)
        assert json.loads(stored.data) == VALUE_SCHEMA

    @pytest.mark.asyncio
    async def test_create_without_schema(self, storage, backend):
        container = await storage.create_container("test-container")
        assert container.schema is None
        assert container.schema_ref is None
        assert (await backend.list_blobs("test-container")).items == []

    @pytest.mark.asyncio
    async def test_invalid_schema_creates_nothing(self, storage, backend):
        with pytest.raises(InvalidSchemaError):
            await storage.create_container("test-container", {"type": "not-a-type"})
        assert await backend.list_containers() == []

    @pytest.mark.asyncio
    async def test_invalid_name(self, storage):
        with pytest.raises(InvalidNameError):
            await storage.create_container("Bad_Name", VALUE_SCHEMA)

    @pytest.mark.asyncio
    async def test_duplicate_keeps_existing_schema(self, storage):
        """Test a failed duplicate create leaves the original binding alone."""
        container = await storage.create_container("test-container", VALUE_SCHEMA)
        with pytest.raises(ContainerExistsError):
            await storage.create_container("test-container", {"type": "array"})

        assert container.schema == VALUE_SCHEMA
        with pytest.raises(SchemaValidationError):
            await container.create_data_blob("b1", ["not", "an", "object"])

    @pytest.mark.asyncio
    async def test_failed_schema_write_removes_container(self, storage, backend):
        """Test a container is not left behind without its stored schema."""
        with patch.object(backend, "create_blob", side_effect=BackendError("disk full")):
            with pytest.raises(BackendError):
                await storage.create_container("test-container", VALUE_SCHEMA)

        assert await storage.list_containers() == []
        assert storage.registry.get("test-container") is None

        container = await storage.create_container("test-container", VALUE_SCHEMA)
        assert container.schema == VALUE_SCHEMA


class TestGetContainer:
    """Test reopening containers."""

    @pytest.mark.asyncio
    async def test_schema_rebound_by_new_storage(self, backend):
        await BlobStorage(backend).create_container("test-container", VALUE_SCHEMA)

        reopened = await BlobStorage(backend).get_container("test-container")

        assert reopened.schema == VALUE_SCHEMA
        with pytest.raises(SchemaValidationError):
            await reopened.create_data_blob("b1", {"value": "wrong value"})

    @pytest.mark.asyncio
    async def test_schema_survives_process_restart(self, tmp_path):
        root = tmp_path / "store"
        async with BlobStorage(FileStorageBackend(root)) as storage:
            container = await storage.create_container("test-container", VALUE_SCHEMA)
            ref = container.schema_ref

        async with BlobStorage(FileStorageBackend(root)) as storage:
            container = await storage.get_container("test-container")
            assert container.schema_ref == ref
            assert container.schema == VALUE_SCHEMA

    @pytest.mark.asyncio
    async def test_not_found(self, storage):
        with pytest.raises(ContainerNotFoundError):
            await storage.get_container("missing")

    @pytest.mark.asyncio
    async def test_missing_schema_blob(self, storage, backend):
        await storage.create_container("test-container", VALUE_SCHEMA)
        await backend.delete_blob("test-container", SCHEMA_BLOB_NAME)

        with pytest.raises(BackendError):
            await BlobStorage(backend).get_container("test-container")


class TestListAndDelete:
    """Test listing and deleting containers."""

    @pytest.mark.asyncio
    async def test_list_containers(self, storage):
        await storage.create_container("alpha-one", VALUE_SCHEMA)
        await storage.create_container("beta-one")

        infos = await storage.list_containers()
        assert [c.name for c in infos] == ["alpha-one", "beta-one"]
        assert infos[0].schema_ref is not None
        assert infos[1].schema_ref is None

        assert [c.name for c in await storage.list_containers(prefix="beta")] == ["beta-one"]

    @pytest.mark.asyncio
    async def test_delete_unbinds_schema(self, storage):
        await storage.create_container("test-container", VALUE_SCHEMA)
        await storage.delete_container("test-container")

        assert storage.registry.get("test-container") is None
        with pytest.raises(ContainerNotFoundError):
            await storage.get_container("test-container")

        # Recreated without schema: anything goes
        container = await storage.create_container("test-container")
        await container.create_data_blob("b1", {"value": "anything"})

    @pytest.mark.asyncio
    async def test_delete_not_found(self, storage):
        with pytest.raises(ContainerNotFoundError):
            await storage.delete_container("missing")


class TestFromConfig:
    """Test construction from configuration."""

    @pytest.mark.asyncio
    async def test_from_config(self, tmp_path):
        config = SchemaBlobConfig(
            backend={"type": "file", "path": str(tmp_path / "data")},
            update={"max_attempts": 3},
            schema_base_url="https://schemas.example.com/",
        )
        async with BlobStorage.from_config(config) as storage:
            assert isinstance(storage.backend, FileStorageBackend)
            assert storage.retry_policy.max_attempts == 3
            container = await storage.create_container("test-container", VALUE_SCHEMA)
            assert container.schema_ref.startswith("https://schemas.example.com/")

    def test_memory_config(self):
        storage = BlobStorage.from_config(SchemaBlobConfig(backend={"type": "memory"}))
        assert isinstance(storage.backend, InMemoryStorageBackend)
