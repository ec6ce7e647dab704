"""
Schema Registry

Associates containers with JSON schemas and validates documents against them.
Validation is pure: it never touches the storage backend.
"""

import copy
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from jsonschema import validators
from jsonschema.exceptions import SchemaError

from .exceptions import InvalidSchemaError, SchemaValidationError
from .models import SCHEMA_BLOB_NAME, SchemaViolation

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_BASE_URL = "https://schemablob.local/schemas/"


class SchemaValidator(Protocol):
    """Structural validation capability."""

    def check_schema(self, schema: Dict[str, Any]) -> None:
        """Raise InvalidSchemaError if ``schema`` is not a usable schema."""
        ...

    def validate(self, document: Any, schema: Dict[str, Any]) -> List[SchemaViolation]:
        """Return the violations of ``document`` against ``schema`` (empty if valid)."""
        ...


def _json_pointer(path) -> str:
    """Render a jsonschema error path as a JSON pointer."""
    parts = []
    for part in path:
        parts.append(str(part).replace("~", "~0").replace("/", "~1"))
    return "/" + "/".join(parts) if parts else ""


class JsonSchemaValidator:
    """
    SchemaValidator backed by the ``jsonschema`` library.

    The draft is selected from the schema's ``$schema`` keyword, falling back
    to the latest draft supported by the installed library. Compiled
    validators are memoized per schema.
    """

    def __init__(self):
        self._compiled: Dict[str, Any] = {}

    def _compile(self, schema: Dict[str, Any]):
        key = json.dumps(schema, sort_keys=True)
        compiled = self._compiled.get(key)
        if compiled is None:
            cls = validators.validator_for(schema, default=validators.Draft202012Validator)
            try:
                cls.check_schema(schema)
            except SchemaError as e:
                raise InvalidSchemaError(
                    f"Invalid JSON schema: {e.message}",
                    details={"path": _json_pointer(e.absolute_path)},
                ) from e
            compiled = cls(schema)
            self._compiled[key] = compiled
        return compiled

    def check_schema(self, schema: Dict[str, Any]) -> None:
        if not isinstance(schema, dict):
            raise InvalidSchemaError(
                f"JSON schema must be an object, got {type(schema).__name__}"
            )
        self._compile(schema)

    def validate(self, document: Any, schema: Dict[str, Any]) -> List[SchemaViolation]:
        compiled = self._compile(schema)
        violations = [
            SchemaViolation(path=_json_pointer(error.absolute_path), message=error.message)
            for error in compiled.iter_errors(document)
        ]
        violations.sort(key=lambda v: (v.path, v.message))
        return violations


class SchemaRegistry:
    """
    Maps container names to their bound schema.

    A container without a bound schema accepts every document.
    """

    def __init__(
        self,
        validator: Optional[SchemaValidator] = None,
        schema_base_url: str = DEFAULT_SCHEMA_BASE_URL,
    ):
        self._validator = validator or JsonSchemaValidator()
        self._base_url = schema_base_url if schema_base_url.endswith("/") else schema_base_url + "/"
        self._schemas: Dict[str, Dict[str, Any]] = {}
        self._refs: Dict[str, str] = {}

    def make_ref(self, container_name: str) -> str:
        """Build the stable reference under which a container's schema is published."""
        return f"{self._base_url}{container_name}/{SCHEMA_BLOB_NAME}#"

    def check_schema(self, schema: Dict[str, Any]) -> None:
        """
        Raises:
            InvalidSchemaError: If the schema is not a valid JSON schema
        """
        self._validator.check_schema(schema)

    def bind(
        self,
        container_name: str,
        schema: Dict[str, Any],
        schema_ref: Optional[str] = None,
    ) -> str:
        """
        Bind a schema to a container.

        Args:
            container_name: Container name
            schema: JSON schema document
            schema_ref: Reference persisted earlier; a new one is derived if omitted

        Returns:
            The schema reference

        Raises:
            InvalidSchemaError: If the schema is not a valid JSON schema
        """
        self._validator.check_schema(schema)
        ref = schema_ref or self.make_ref(container_name)
        self._schemas[container_name] = copy.deepcopy(schema)
        self._refs[container_name] = ref
        logger.debug(f"Bound schema {ref} to container '{container_name}'")
        return ref

    def unbind(self, container_name: str) -> None:
        self._schemas.pop(container_name, None)
        self._refs.pop(container_name, None)

    def get(self, container_name: str) -> Optional[Dict[str, Any]]:
        """Return the schema bound to a container, if any."""
        return self._schemas.get(container_name)

    def schema_ref(self, container_name: str) -> Optional[str]:
        return self._refs.get(container_name)

    def validate(self, document: Any, container_name: str) -> List[SchemaViolation]:
        """Validate a document against the container's schema."""
        schema = self._schemas.get(container_name)
        if schema is None:
            return []
        return self._validator.validate(document, schema)

    def check(self, document: Any, container_name: str) -> None:
        """
        Validate a document and raise on failure.

        Raises:
            SchemaValidationError: If the document has violations
        """
        violations = self.validate(document, container_name)
        if violations:
            raise SchemaValidationError(violations, container_name=container_name)
