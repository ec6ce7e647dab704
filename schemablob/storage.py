"""
BlobStorage

Entry point of schemablob: creates, opens and deletes containers on a
storage backend. A container's schema is persisted with the container as the
reserved blob ``.schema.blob.json`` and referenced from the container's
metadata, so any process can reopen the container with its schema bound.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .backends.base import StorageBackend
from .backends.factory import create_backend
from .blob import decode_document
from .core.config_manager import SchemaBlobConfig
from .exceptions import BlobNotFoundError, BlobStorageError, BackendError, ContainerNotFoundError
from .models import ContainerInfo, ContainerNameValidator, JSON_CONTENT_TYPE, SCHEMA_BLOB_NAME
from .container import Container
from .schema import DEFAULT_SCHEMA_BASE_URL, SchemaRegistry, SchemaValidator
from .update import RetryPolicy

logger = logging.getLogger(__name__)


class BlobStorage:
    """
    Schema-validated, optimistically concurrent JSON storage over a blob store.

    Args:
        backend: Blob store capability
        retry_policy: Default retry policy for updates
        schema_base_url: Base URL of container schema references
        validator: Schema validator, jsonschema-based by default
    """

    def __init__(
        self,
        backend: StorageBackend,
        retry_policy: Optional[RetryPolicy] = None,
        schema_base_url: str = DEFAULT_SCHEMA_BASE_URL,
        validator: Optional[SchemaValidator] = None,
    ):
        self.backend = backend
        self.retry_policy = retry_policy or RetryPolicy()
        self.registry = SchemaRegistry(validator=validator, schema_base_url=schema_base_url)

    @classmethod
    def from_config(cls, config: SchemaBlobConfig) -> "BlobStorage":
        """Build storage and its backend from configuration."""
        return cls(
            create_backend(config.backend),
            retry_policy=RetryPolicy.from_config(config.update),
            schema_base_url=config.schema_base_url,
        )

    def _container(self, name: str) -> Container:
        return Container(name, self.backend, self.registry, retry_policy=self.retry_policy)

    async def create_container(
        self, name: str, schema: Optional[Dict[str, Any]] = None
    ) -> Container:
        """
        Create a container, optionally bound to a JSON schema.

        The schema is checked before the container is created and bound before
        the handle is returned, so no blob can be created in it unvalidated.

        Args:
            name: Container name
            schema: Optional JSON schema document

        Returns:
            Handle on the new container

        Raises:
            InvalidNameError: If the name is invalid
            InvalidSchemaError: If the schema is not a valid JSON schema
            ContainerExistsError: If the name is taken
            BackendError: If the schema cannot be stored; the container is removed again
        """
        ContainerNameValidator.validate_raise(name)

        schema_ref = None
        if schema is not None:
            self.registry.check_schema(schema)
            schema_ref = self.registry.make_ref(name)

        await self.backend.create_container(name, schema_ref=schema_ref)

        if schema is not None:
            self.registry.bind(name, schema, schema_ref=schema_ref)
            try:
                await self.backend.create_blob(
                    name,
                    SCHEMA_BLOB_NAME,
                    json.dumps(schema, sort_keys=True).encode("utf-8"),
                    content_type=JSON_CONTENT_TYPE,
                )
            except BlobStorageError:
                # A container referencing a missing schema blob cannot be reopened
                logger.error(f"Failed to store schema of container '{name}', removing container")
                self.registry.unbind(name)
                await self.backend.delete_container(name)
                raise

        logger.info(
            f"Created container '{name}'"
            + (f" with schema {schema_ref}" if schema_ref else "")
        )
        return self._container(name)

    async def get_container(self, name: str) -> Container:
        """
        Open an existing container, rebinding its persisted schema.

        Raises:
            ContainerNotFoundError: If the container does not exist
            BackendError: If the container references a schema blob that is missing
        """
        info = await self.backend.get_container(name)
        if info.schema_ref:
            await self._rebind_schema(info)
        else:
            self.registry.unbind(name)
        return self._container(name)

    async def _rebind_schema(self, info: ContainerInfo) -> None:
        try:
            blob = await self.backend.read_blob(info.name, SCHEMA_BLOB_NAME)
        except BlobNotFoundError as e:
            raise BackendError(
                f"Container '{info.name}' references schema {info.schema_ref} "
                f"but '{SCHEMA_BLOB_NAME}' is missing",
                details={"container_name": info.name, "schema_ref": info.schema_ref},
            ) from e
        schema = decode_document(blob.data, info.name, SCHEMA_BLOB_NAME)
        self.registry.bind(info.name, schema, schema_ref=info.schema_ref)

    async def list_containers(self, prefix: Optional[str] = None) -> List[ContainerInfo]:
        """List containers, optionally filtered by name prefix."""
        return await self.backend.list_containers(prefix=prefix)

    async def delete_container(self, name: str) -> None:
        """
        Delete a container and all its blobs.

        Raises:
            ContainerNotFoundError: If the container does not exist
        """
        try:
            await self.backend.delete_container(name)
        except ContainerNotFoundError:
            # Stale binding from a container deleted elsewhere
            self.registry.unbind(name)
            raise
        self.registry.unbind(name)
        logger.info(f"Deleted container '{name}'")

    async def close(self) -> None:
        """Close the underlying backend."""
        await self.backend.close()

    async def __aenter__(self) -> "BlobStorage":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
