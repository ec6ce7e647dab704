"""
Unit tests for the schemablob exception hierarchy.

Every error carries a kind from the closed ErrorKind enumeration.
"""

import pytest

from schemablob.exceptions import (
    BackendError,
    BlobExistsError,
    BlobNotFoundError,
    BlobStorageError,
    ConcurrentUpdateError,
    ConditionNotMetError,
    ContainerExistsError,
    ContainerNotFoundError,
    ErrorKind,
    InvalidNameError,
    SchemaValidationError,
)
from schemablob.models import SchemaViolation


class TestErrorKinds:
    """Test that each exception maps to a discriminable kind."""

    @pytest.mark.parametrize("error,kind", [
        (ContainerExistsError("c1"), ErrorKind.CONTAINER_EXISTS),
        (ContainerNotFoundError("c1"), ErrorKind.CONTAINER_NOT_FOUND),
        (BlobExistsError("c1", "b1"), ErrorKind.BLOB_EXISTS),
        (BlobNotFoundError("c1", "b1"), ErrorKind.BLOB_NOT_FOUND),
        (ConditionNotMetError("c1", "b1", "etag"), ErrorKind.CONDITION_NOT_MET),
        (ConcurrentUpdateError("c1", "b1", attempts=3), ErrorKind.CONCURRENT_UPDATE),
        (InvalidNameError("X", "uppercase"), ErrorKind.INVALID_NAME),
        (BackendError("boom"), ErrorKind.BACKEND),
    ])
    def test_kind(self, error, kind):
        """Test kind and error_code of each exception."""
        assert isinstance(error, BlobStorageError)
        assert error.kind is kind
        assert error.error_code == kind.value

    def test_schema_validation_error_code_matches_original_code(self):
        """Test the schema error exposes the 'SchemaValidationError' code."""
        error = SchemaValidationError(
            [SchemaViolation(path="/value", message="'x' is not of type 'integer'")],
            container_name="test-container",
        )
        assert error.error_code == "SchemaValidationError"
        assert error.kind == "SchemaValidationError"

    def test_schema_validation_error_carries_violations(self):
        """Test violations are kept and rendered in the message."""
        violations = [
            SchemaViolation(path="/value", message="'x' is not of type 'integer'"),
            SchemaViolation(path="", message="'value' is a required property"),
        ]
        error = SchemaValidationError(violations, container_name="test-container")

        assert error.violations == violations
        assert "/value" in error.message
        assert "test-container" in error.message
        assert error.details["violations"][0] == {
            "path": "/value",
            "message": "'x' is not of type 'integer'",
        }


class TestErrorDetails:
    """Test structured error details."""

    def test_concurrent_update_details(self):
        """Test attempts and last ETag are exposed."""
        error = ConcurrentUpdateError("c1", "b1", attempts=5, last_etag="abc")
        assert error.attempts == 5
        assert error.last_etag == "abc"
        assert error.details["attempts"] == 5

    def test_condition_not_met_details(self):
        """Test the expected ETag is exposed."""
        error = ConditionNotMetError("c1", "b1", "abc")
        assert error.expected_etag == "abc"

    def test_to_dict(self):
        """Test dictionary form used for logs and CLI output."""
        error = BlobNotFoundError("c1", "b1")
        data = error.to_dict()
        assert data["error"]["code"] == "BlobNotFound"
        assert data["error"]["details"] == {"container_name": "c1", "blob_name": "b1"}
