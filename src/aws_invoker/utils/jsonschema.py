"""JSON Schema validation wrapper."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from jsonschema import Draft202012Validator

_ERROR_TYPES = {
    "required": "missing_required",
    "type": "invalid_type",
    "enum": "enum_violation",
    "minLength": "min_length_violation",
    "maxLength": "max_length_violation",
    "minimum": "minimum_violation",
    "maximum": "maximum_violation",
    "minItems": "min_items_violation",
    "maxItems": "max_items_violation",
    "additionalProperties": "additional_property",
    "minProperties": "union_violation",
    "maxProperties": "union_violation",
}


@dataclass
class ValidationError:
    """One schema violation, keyed by the dotted path of the offending value."""

    type: str
    message: str
    path: str | None = None
    expected: str | None = None
    got: str | None = None
    allowed_values: list[str] | None = None


def validate_payload_structured(
    schema: dict[str, object] | Draft202012Validator,
    payload: dict[str, Any],
) -> list[ValidationError]:
    validator = schema if isinstance(schema, Draft202012Validator) else Draft202012Validator(schema)
    errors: list[ValidationError] = []
    for error in validator.iter_errors(payload):
        path = ".".join(str(part) for part in error.absolute_path) if error.absolute_path else None
        expected, got, allowed = _describe(error)
        errors.append(
            ValidationError(
                type=_ERROR_TYPES.get(error.validator, "validation_error"),
                message=error.message,
                path=path,
                expected=expected,
                got=got,
                allowed_values=allowed,
            )
        )
    return errors


def _describe(error: Any) -> tuple[str | None, str | None, list[str] | None]:
    kind = error.validator
    value = error.validator_value
    instance = error.instance
    if kind == "type":
        return str(value), type(instance).__name__ if instance is not None else "null", None
    if kind == "enum":
        return None, str(instance), [str(entry) for entry in value or []]
    if kind in ("minLength", "maxLength", "minItems", "maxItems"):
        bound = "at least" if kind.startswith("min") else "at most"
        return f"{bound} {value}", f"length {len(instance)}", None
    if kind == "minimum":
        return f">= {value}", str(instance), None
    if kind == "maximum":
        return f"<= {value}", str(instance), None
    if kind == "required":
        return "field to be present", None, None
    return None, None, None


def format_structured_errors(errors: list[ValidationError]) -> dict[str, object]:
    """Group errors into missing fields, invalid values and enum choices."""
    missing: list[str] = []
    invalid: list[dict[str, object]] = []
    allowed_values: dict[str, list[str]] = {}

    for err in errors:
        if err.type == "missing_required":
            field = err.message.split("'")[1] if "'" in err.message else (err.path or "unknown")
            missing.append(f"{err.path}.{field}" if err.path else field)
            continue
        invalid.append(
            {
                "path": err.path,
                "type": err.type,
                "expected": err.expected,
                "got": err.got,
                "reason": err.message,
            }
        )
        if err.allowed_values and err.path:
            allowed_values[err.path] = err.allowed_values

    return {
        "missing": missing or None,
        "invalid": invalid or None,
        "allowedValues": allowed_values or None,
    }
