"""
SchemaBlob Exception Hierarchy

Every failure raised by schemablob carries a discriminable ``kind`` drawn from
a closed enumeration, so calling code can branch without string matching.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Closed set of error kinds."""
    SCHEMA_VALIDATION = "SchemaValidationError"
    INVALID_SCHEMA = "InvalidSchema"
    CONCURRENT_UPDATE = "ConcurrentUpdate"
    CONTAINER_EXISTS = "ContainerAlreadyExists"
    CONTAINER_NOT_FOUND = "ContainerNotFound"
    BLOB_EXISTS = "BlobAlreadyExists"
    BLOB_NOT_FOUND = "BlobNotFound"
    CONDITION_NOT_MET = "ConditionNotMet"
    INVALID_NAME = "InvalidName"
    BLOB_DECODE = "BlobDecodeError"
    BACKEND = "BackendError"


class BlobStorageError(Exception):
    """
    Base exception for all schemablob errors.

    Attributes:
        message: Human-readable error message
        kind: Member of ErrorKind identifying the failure
        details: Additional context (container, blob, etag, ...)
    """

    kind: ErrorKind = ErrorKind.BACKEND

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def error_code(self) -> str:
        """String form of the error kind."""
        return self.kind.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for logs and CLI output."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


# ========== Schema Errors ==========

class SchemaValidationError(BlobStorageError):
    """Raised when a document does not satisfy the container's schema."""
    kind = ErrorKind.SCHEMA_VALIDATION

    def __init__(self, violations: List[Any], container_name: Optional[str] = None):
        self.violations = list(violations)
        summary = "; ".join(
            f"{v.path or '/'}: {v.message}" for v in self.violations
        )
        where = f" for container '{container_name}'" if container_name else ""
        super().__init__(
            f"Document failed schema validation{where}: {summary}",
            details={
                "container_name": container_name,
                "violations": [v.model_dump() for v in self.violations],
            },
        )


class InvalidSchemaError(BlobStorageError):
    """Raised when a schema document is not itself a valid JSON schema."""
    kind = ErrorKind.INVALID_SCHEMA


# ========== Concurrency Errors ==========

class ConditionNotMetError(BlobStorageError):
    """Raised by a backend when a conditional write finds a different ETag."""
    kind = ErrorKind.CONDITION_NOT_MET

    def __init__(self, container_name: str, blob_name: str, expected_etag: str):
        super().__init__(
            f"Blob '{blob_name}' in container '{container_name}' "
            f"no longer matches ETag '{expected_etag}'",
            details={
                "container_name": container_name,
                "blob_name": blob_name,
                "expected_etag": expected_etag,
            },
        )
        self.expected_etag = expected_etag


class ConcurrentUpdateError(BlobStorageError):
    """Raised when an update exhausts its retry budget under write contention."""
    kind = ErrorKind.CONCURRENT_UPDATE

    def __init__(
        self,
        container_name: str,
        blob_name: str,
        attempts: int,
        last_etag: Optional[str] = None,
    ):
        super().__init__(
            f"Gave up updating blob '{blob_name}' in container "
            f"'{container_name}' after {attempts} conflicting attempts",
            details={
                "container_name": container_name,
                "blob_name": blob_name,
                "attempts": attempts,
                "last_etag": last_etag,
            },
        )
        self.attempts = attempts
        self.last_etag = last_etag


# ========== Existence Errors ==========

class ContainerExistsError(BlobStorageError):
    """Raised when attempting to create a container that already exists."""
    kind = ErrorKind.CONTAINER_EXISTS

    def __init__(self, container_name: str):
        super().__init__(
            f"Container '{container_name}' already exists",
            details={"container_name": container_name},
        )
        self.container_name = container_name


class ContainerNotFoundError(BlobStorageError):
    """Raised when a container is not found."""
    kind = ErrorKind.CONTAINER_NOT_FOUND

    def __init__(self, container_name: str):
        super().__init__(
            f"Container '{container_name}' not found",
            details={"container_name": container_name},
        )
        self.container_name = container_name


class BlobExistsError(BlobStorageError):
    """Raised when attempting to create a blob that already exists."""
    kind = ErrorKind.BLOB_EXISTS

    def __init__(self, container_name: str, blob_name: str):
        super().__init__(
            f"Blob '{blob_name}' already exists in container '{container_name}'",
            details={"container_name": container_name, "blob_name": blob_name},
        )
        self.container_name = container_name
        self.blob_name = blob_name


class BlobNotFoundError(BlobStorageError):
    """Raised when a blob is not found."""
    kind = ErrorKind.BLOB_NOT_FOUND

    def __init__(self, container_name: str, blob_name: str):
        super().__init__(
            f"Blob '{blob_name}' not found in container '{container_name}'",
            details={"container_name": container_name, "blob_name": blob_name},
        )
        self.container_name = container_name
        self.blob_name = blob_name


# ========== Input and Transport Errors ==========

class InvalidNameError(BlobStorageError):
    """Raised when a container or blob name is invalid."""
    kind = ErrorKind.INVALID_NAME

    def __init__(self, name: str, reason: str):
        super().__init__(
            f"Invalid name '{name}': {reason}",
            details={"name": name, "reason": reason},
        )


class BlobDecodeError(BlobStorageError):
    """Raised when stored bytes of a data blob are not a JSON document."""
    kind = ErrorKind.BLOB_DECODE


class BackendError(BlobStorageError):
    """Raised when the storage backend fails for transport or availability reasons."""
    kind = ErrorKind.BACKEND
