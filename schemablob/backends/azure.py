"""
Azure Blob Storage Backend

Adapter over the ``azure-storage-blob`` asyncio client. Conditional writes map
to ``If-Match`` requests; the schema reference is kept in container metadata.
"""

import logging
from typing import List, Optional

from azure.core import MatchConditions
from azure.core.exceptions import (
    AzureError,
    ResourceExistsError,
    ResourceModifiedError,
    ResourceNotFoundError,
)
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

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

SCHEMA_REF_METADATA_KEY = "schemaref"


def _container_info(props) -> ContainerInfo:
    metadata = dict(props.metadata or {})
    return ContainerInfo(
        name=props.name,
        schema_ref=metadata.pop(SCHEMA_REF_METADATA_KEY, None),
        etag=props.etag,
        last_modified=props.last_modified,
        metadata=metadata,
    )


class AzureStorageBackend(StorageBackend):
    """
    Azure Blob Storage implementation.

    Exactly one of ``connection_string`` or ``account_url`` must be given.
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        account_url: Optional[str] = None,
        credential=None,
        client: Optional[BlobServiceClient] = None,
    ):
        """
        Initialize Azure blob backend.

        Args:
            connection_string: Azure Storage connection string
            account_url: Blob service endpoint, used with ``credential``
            credential: Account key, SAS token or azure-identity credential
            client: Pre-built service client (takes precedence)
        """
        if client is not None:
            self.client = client
        elif connection_string:
            self.client = BlobServiceClient.from_connection_string(connection_string)
        elif account_url:
            self.client = BlobServiceClient(account_url=account_url, credential=credential)
        else:
            raise ValueError("AzureStorageBackend requires a connection string or an account URL")

    def _blob_error(self, error: AzureError, container_name: str, blob_name: str) -> Exception:
        """Translate an Azure SDK error raised by a blob operation."""
        if isinstance(error, ResourceNotFoundError):
            if getattr(error, "error_code", None) == "ContainerNotFound":
                return ContainerNotFoundError(container_name)
            return BlobNotFoundError(container_name, blob_name)
        if isinstance(error, ResourceExistsError):
            return BlobExistsError(container_name, blob_name)
        return BackendError(
            f"Azure request for blob '{blob_name}' in container '{container_name}' failed: {error}",
            details={"container_name": container_name, "blob_name": blob_name},
        )

    # ============================================================================
    # Container Operations
    # ============================================================================

    async def create_container(
        self, name: str, schema_ref: Optional[str] = None
    ) -> ContainerInfo:
        ContainerNameValidator.validate_raise(name)
        metadata = {SCHEMA_REF_METADATA_KEY: schema_ref} if schema_ref else None
        try:
            container_client = await self.client.create_container(name, metadata=metadata)
            props = await container_client.get_container_properties()
        except ResourceExistsError as e:
            raise ContainerExistsError(name) from e
        except AzureError as e:
            raise BackendError(f"Failed to create container '{name}': {e}") from e
        return _container_info(props)

    async def get_container(self, name: str) -> ContainerInfo:
        try:
            props = await self.client.get_container_client(name).get_container_properties()
        except ResourceNotFoundError as e:
            raise ContainerNotFoundError(name) from e
        except AzureError as e:
            raise BackendError(f"Failed to get container '{name}': {e}") from e
        return _container_info(props)

    async def list_containers(self, prefix: Optional[str] = None) -> List[ContainerInfo]:
        containers = []
        try:
            async for props in self.client.list_containers(
                name_starts_with=prefix, include_metadata=True
            ):
                containers.append(_container_info(props))
        except AzureError as e:
            raise BackendError(f"Failed to list containers: {e}") from e
        containers.sort(key=lambda c: c.name)
        return containers

    async def delete_container(self, name: str) -> None:
        try:
            await self.client.delete_container(name)
        except ResourceNotFoundError as e:
            raise ContainerNotFoundError(name) from e
        except AzureError as e:
            raise BackendError(f"Failed to delete container '{name}': {e}") from e

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
        blob_client = self.client.get_blob_client(container=container_name, blob=blob_name)
        try:
            response = await blob_client.upload_blob(
                data,
                overwrite=False,
                content_settings=ContentSettings(content_type=content_type),
            )
        except AzureError as e:
            raise self._blob_error(e, container_name, blob_name) from e
        return response["etag"]

    async def read_blob(self, container_name: str, blob_name: str) -> BlobContent:
        blob_client = self.client.get_blob_client(container=container_name, blob=blob_name)
        try:
            downloader = await blob_client.download_blob()
            data = await downloader.readall()
        except AzureError as e:
            raise self._blob_error(e, container_name, blob_name) from e
        content_settings = downloader.properties.content_settings
        return BlobContent(
            data=data,
            etag=downloader.properties.etag,
            content_type=(content_settings.content_type if content_settings else None)
            or OCTET_STREAM_CONTENT_TYPE,
        )

    async def write_blob_if_match(
        self,
        container_name: str,
        blob_name: str,
        data: bytes,
        expected_etag: str,
        content_type: str = OCTET_STREAM_CONTENT_TYPE,
    ) -> str:
        blob_client = self.client.get_blob_client(container=container_name, blob=blob_name)
        try:
            response = await blob_client.upload_blob(
                data,
                overwrite=True,
                etag=expected_etag,
                match_condition=MatchConditions.IfNotModified,
                content_settings=ContentSettings(content_type=content_type),
            )
        except ResourceModifiedError as e:
            raise ConditionNotMetError(container_name, blob_name, expected_etag) from e
        except AzureError as e:
            raise self._blob_error(e, container_name, blob_name) from e
        return response["etag"]

    async def delete_blob(self, container_name: str, blob_name: str) -> None:
        blob_client = self.client.get_blob_client(container=container_name, blob=blob_name)
        try:
            await blob_client.delete_blob()
        except AzureError as e:
            raise self._blob_error(e, container_name, blob_name) from e

    async def list_blobs(
        self,
        container_name: str,
        prefix: Optional[str] = None,
        max_results: Optional[int] = None,
        marker: Optional[str] = None,
    ) -> BlobPage:
        container_client = self.client.get_container_client(container_name)
        items = []
        try:
            pages = container_client.list_blobs(
                name_starts_with=prefix,
                results_per_page=max_results,
            ).by_page(continuation_token=marker)
            async for page in pages:
                async for props in page:
                    content_settings = props.content_settings
                    items.append(
                        BlobItem(
                            name=props.name,
                            etag=props.etag,
                            content_length=props.size or 0,
                            content_type=(content_settings.content_type if content_settings else None)
                            or OCTET_STREAM_CONTENT_TYPE,
                            last_modified=props.last_modified,
                        )
                    )
                break
        except ResourceNotFoundError as e:
            raise ContainerNotFoundError(container_name) from e
        except AzureError as e:
            raise BackendError(f"Failed to list blobs in container '{container_name}': {e}") from e

        # Azure continuation tokens are opaque; pass them through unchanged
        return BlobPage(items=items, next_marker=pages.continuation_token or None)

    async def close(self) -> None:
        await self.client.close()
