"""
JSON Schema validation for structured clinical payloads.

All errors are collected rather than failing on the first one, so a
client gets the full list back in one 422 response.
"""

from typing import Any

import jsonschema

from carehub.errors import SchemaValidationError


def validate_against_schema(data: Any, schema: dict[str, Any]) -> list[str]:
    """
    Validate data against a JSON schema.
    Returns a list of error messages (empty list = valid).
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path]):
        location = ".".join(str(p) for p in error.path)
        errors.append(f"{location}: {error.message}" if location else error.message)
    return errors


def ensure_valid(data: Any, schema: dict[str, Any], label: str) -> None:
    """Raise SchemaValidationError carrying every violation found."""
    errors = validate_against_schema(data, schema)
    if errors:
        raise SchemaValidationError(f"Invalid {label}", errors)
