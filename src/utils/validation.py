"""
Schema validation utilities for the tutoring engine.

Every structured model response and every learning-preference update is
checked against a JSON Schema in ``schemas/`` before the engine trusts it:
- Model payloads that fail validation raise ParseFailure (retryable)
- Preference updates that fail validation raise InvalidInput (not retryable)
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from jsonschema import Draft7Validator, FormatChecker, ValidationError

try:
    from ..config import config
    from ..errors import InvalidInput, ParseFailure
except ImportError:
    from src.config import config
    from src.errors import InvalidInput, ParseFailure


class ValidationResult:
    """
    Result of a validation attempt.

    Attributes:
        valid: Whether data passed validation
        errors: List of error messages
        data: The validated data
    """

    def __init__(self, valid: bool, errors: list[str], data: Any = None):
        self.valid = valid
        self.errors = errors
        self.data = data

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.valid

    def __str__(self) -> str:
        if self.valid:
            return "✓ Validation passed"
        return f"✗ Validation failed with {len(self.errors)} error(s):\n" + "\n".join(
            f"  - {error}" for error in self.errors
        )


class SchemaValidator:
    """
    JSON Schema validator for a single schema file.

    Usage:
        validator = SchemaValidator("schemas/evaluation.schema.json")
        result = validator.validate(data)
        if not result:
            print(result.errors)
    """

    def __init__(self, schema_path: Path | str):
        """
        Initialize validator with a schema file.

        Args:
            schema_path: Path to JSON Schema file
        """
        self.schema_path = Path(schema_path)
        with open(self.schema_path, "r", encoding="utf-8") as f:
            self.schema = json.load(f)
        self.validator = Draft7Validator(self.schema, format_checker=FormatChecker())

    def validate(self, data: Any) -> ValidationResult:
        """Validate data against the schema, collecting every error."""
        errors = [self._format_error(error) for error in self.validator.iter_errors(data)]
        return ValidationResult(valid=not errors, errors=errors, data=data)

    def _format_error(self, error: ValidationError) -> str:
        """
        Convert ValidationError to human-readable message with details.

        Args:
            error: jsonschema ValidationError

        Returns:
            Formatted error message with validator and schema path
        """
        path = " -> ".join(str(p) for p in error.path) if error.path else "root"
        validator_name = getattr(error, "validator", "unknown")
        schema_path = "/".join(str(p) for p in error.schema_path)
        return (
            f"At '{path}': {error.message} "
            f"[validator={validator_name}, schema_path=/{schema_path}]"
        )


@lru_cache(maxsize=None)
def get_validator(schema_name: str, schemas_dir: Optional[str] = None) -> SchemaValidator:
    """Cached validator for ``<schemas_dir>/<schema_name>.schema.json``."""
    base = Path(schemas_dir) if schemas_dir else config.paths.schemas_dir
    return SchemaValidator(base / f"{schema_name}.schema.json")


def validate_model_payload(schema_name: str, payload: Any) -> dict:
    """
    Check a parsed model response against its schema.

    Raises:
        ParseFailure: If the payload does not match
    """
    result = get_validator(schema_name).validate(payload)
    if not result.valid:
        raise ParseFailure(
            f"Model payload failed {schema_name} schema: " + "; ".join(result.errors[:3])
        )
    return payload


def is_valid_payload(schema_name: str, payload: Any) -> bool:
    """Boolean form of validate_model_payload, used to filter list items."""
    return get_validator(schema_name).validate(payload).valid


def validate_learning_preferences(preferences: Any) -> dict:
    """
    Check a learning-preference update (camelCase keys).

    Raises:
        InvalidInput: On unknown keys or out-of-range enum values
    """
    if preferences is None:
        return {}
    result = get_validator("learning_preferences").validate(preferences)
    if not result.valid:
        raise InvalidInput("Invalid learning preferences: " + "; ".join(result.errors))
    return preferences
