"""
SchemaBlob: schema-validated JSON documents on a blob store

Stores JSON documents as blobs, validates them against the container's JSON
schema on every write, and makes concurrent updates safe with ETag-guarded
conditional writes.
"""

__version__ = "0.1.0"

from .blob import Blob, BlockBlob, DataBlockBlob
from .cache import ContentCache, ContentSnapshot
from .container import BlobListing, Container
from .exceptions import (
    BackendError,
    BlobDecodeError,
    BlobExistsError,
    BlobNotFoundError,
    BlobStorageError,
    ConcurrentUpdateError,
    ConditionNotMetError,
    ContainerExistsError,
    ContainerNotFoundError,
    ErrorKind,
    InvalidNameError,
    InvalidSchemaError,
    SchemaValidationError,
)
from .schema import JsonSchemaValidator, SchemaRegistry
from .storage import BlobStorage
from .update import RetryPolicy, UpdateEngine

__all__ = [
    "__version__",
    # Entry point
    "BlobStorage",
    "Container",
    "BlobListing",
    # Blobs
    "Blob",
    "BlockBlob",
    "DataBlockBlob",
    "ContentCache",
    "ContentSnapshot",
    # Schemas and updates
    "SchemaRegistry",
    "JsonSchemaValidator",
    "RetryPolicy",
    "UpdateEngine",
    # Exceptions
    "ErrorKind",
    "BlobStorageError",
    "SchemaValidationError",
    "InvalidSchemaError",
    "ConcurrentUpdateError",
    "ConditionNotMetError",
    "ContainerExistsError",
    "ContainerNotFoundError",
    "BlobExistsError",
    "BlobNotFoundError",
    "InvalidNameError",
    "BlobDecodeError",
    "BackendError",
]
