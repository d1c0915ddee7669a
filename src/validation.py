"""
Schema Validation - JSON Schema (Draft 7) checks.

Resource plugins publish the schema of their declared attributes; it is
checked once at registration, and every manifest document and declared
attribute set is validated against its schema before use.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, ValidationError

logger = logging.getLogger(__name__)


def check_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Check that a plugin schema is itself a valid Draft 7 schema.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"
    return True, None


def _format_error(error: ValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    return f"{path}: {error.message}"


def schema_errors(document: Any, schema: Dict[str, Any]) -> List[str]:
    """All validation errors for a document, ordered by location."""
    validator = Draft7Validator(
        schema, format_checker=Draft7Validator.FORMAT_CHECKER
    )
    errors = sorted(
        validator.iter_errors(document),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    return [_format_error(e) for e in errors]


def validate_document(
    document: Any, schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a manifest document or attribute set against a schema.

    Returns:
        Tuple of (is_valid, error_message). The message joins every error
        as "path: message" separated by "; ".
    """
    errors = schema_errors(document, schema)
    if errors:
        logger.debug(f"Document failed validation with {len(errors)} error(s)")
        return False, "; ".join(errors)
    return True, None
