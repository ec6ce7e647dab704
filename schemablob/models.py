"""
SchemaBlob Models

Pydantic models for containers, blob listings, blob content and schema
violations exchanged between the storage layer and its backends.
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import InvalidNameError

JSON_CONTENT_TYPE = "application/json"
OCTET_STREAM_CONTENT_TYPE = "application/octet-stream"

# Reserved blob holding the container's JSON schema
SCHEMA_BLOB_NAME = ".schema.blob.json"


class ContainerNameValidator:
    """
    Validates container names.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens only
    - Must start and end with letter or number
    - No consecutive hyphens
    """

    PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?$')
    MIN_LENGTH = 3
    MAX_LENGTH = 63

    @classmethod
    def validate(cls, name: str) -> tuple[bool, Optional[str]]:
        """
        Validate container name.

        Args:
            name: Container name to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not name:
            return False, "Container name cannot be empty"

        if len(name) < cls.MIN_LENGTH:
            return False, f"Container name must be at least {cls.MIN_LENGTH} characters"

        if len(name) > cls.MAX_LENGTH:
            return False, f"Container name must be at most {cls.MAX_LENGTH} characters"

        if not cls.PATTERN.match(name):
            return False, "Container name must contain only lowercase letters, numbers, and hyphens, and must start/end with letter or number"

        if '--' in name:
            return False, "Container name cannot contain consecutive hyphens"

        return True, None

    @classmethod
    def validate_raise(cls, name: str) -> None:
        """Validate container name and raise InvalidNameError if invalid."""
        is_valid, error = cls.validate(name)
        if not is_valid:
            raise InvalidNameError(name, error)


class BlobNameValidator:
    """Validates user blob names (1-1024 characters, not reserved)."""

    MAX_LENGTH = 1024

    @classmethod
    def validate(cls, name: str) -> tuple[bool, Optional[str]]:
        if not name:
            return False, "Blob name cannot be empty"
        if len(name) > cls.MAX_LENGTH:
            return False, f"Blob name must be at most {cls.MAX_LENGTH} characters"
        if name == SCHEMA_BLOB_NAME:
            return False, f"'{SCHEMA_BLOB_NAME}' is reserved for the container schema"
        return True, None

    @classmethod
    def validate_raise(cls, name: str) -> None:
        is_valid, error = cls.validate(name)
        if not is_valid:
            raise InvalidNameError(name, error)


class ContainerInfo(BaseModel):
    """
    Container as reported by a backend.

    The schema reference is persisted by the backend with the container.
    """

    name: str = Field(description="Container name")
    schema_ref: Optional[str] = Field(default=None, description="Reference to the bound JSON schema")
    etag: str = Field(description="Entity tag for the container")
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, str] = Field(default_factory=dict)


class BlobItem(BaseModel):
    """Listing entry: identity and version only, content is not loaded."""

    name: str = Field(description="Blob name")
    etag: str = Field(description="Entity tag for the blob")
    content_length: int = Field(default=0)
    content_type: str = Field(default=OCTET_STREAM_CONTENT_TYPE)
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BlobContent(BaseModel):
    """Raw bytes of a blob together with the ETag they were read under."""

    data: bytes
    etag: str
    content_type: str = Field(default=OCTET_STREAM_CONTENT_TYPE)

    model_config = ConfigDict(frozen=True)


class BlobPage(BaseModel):
    """One page of a blob listing."""

    items: List[BlobItem] = Field(default_factory=list)
    next_marker: Optional[str] = Field(default=None, description="Continuation marker, None on the last page")


class SchemaViolation(BaseModel):
    """A single structural violation reported by a schema validator."""

    path: str = Field(description="JSON pointer to the offending value, empty for the document root")
    message: str

    model_config = ConfigDict(frozen=True)
