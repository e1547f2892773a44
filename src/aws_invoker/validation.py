"""Request validation against a JSON Schema generated from input shapes."""

from __future__ import annotations

import logging
from typing import Any

from jsonschema import Draft202012Validator

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import (
    ListShape,
    MapShape,
    OperationSpec,
    ScalarShape,
    ServiceDescriptor,
    StructureShape,
)
from aws_invoker.errors import ValidationFailed
from aws_invoker.protocols._scalars import FLOAT_TYPES, INTEGER_TYPES
from aws_invoker.utils.jsonschema import format_structured_errors, validate_payload_structured

logger = logging.getLogger(__name__)

SCHEMA_DIALECT = "https://json-schema.org/draft/2020-12/schema"


class SchemaGenerator:
    """Builds input schemas; structures live in ``$defs`` so cycles become refs."""

    def __init__(self, registry: ShapeRegistry) -> None:
        self._registry = registry

    def operation_input_schema(self, operation: OperationSpec) -> dict[str, object]:
        if operation.input_shape is None:
            return {
                "$schema": SCHEMA_DIALECT,
                "type": "object",
                "properties": {},
                "additionalProperties": False,
            }
        definitions: dict[str, dict[str, object]] = {}
        root = self._shape_schema(operation.input_shape, definitions)
        schema: dict[str, object] = {"$schema": SCHEMA_DIALECT, **root}
        if definitions:
            schema["$defs"] = definitions
        return schema

    def _shape_schema(self, shape_name: str, definitions: dict[str, dict[str, object]]) -> dict[str, object]:
        shape = self._registry.resolve(shape_name)
        if isinstance(shape, StructureShape):
            if shape.is_document:
                return {}
            if shape_name not in definitions:
                # Placeholder first so recursive members resolve to a ref.
                definitions[shape_name] = {}
                definitions[shape_name] = self._structure_schema(shape, definitions)
            return {"$ref": f"#/$defs/{shape_name}"}
        if isinstance(shape, ListShape):
            schema: dict[str, object] = {
                "type": "array",
                "items": self._shape_schema(shape.member.shape, definitions),
            }
            self._apply_bounds(schema, shape.traits, "minItems", "maxItems")
            return schema
        if isinstance(shape, MapShape):
            return {
                "type": "object",
                "additionalProperties": self._shape_schema(shape.value.shape, definitions),
            }
        if isinstance(shape, ScalarShape):
            return self._scalar_schema(shape)
        return {}

    def _structure_schema(
        self, shape: StructureShape, definitions: dict[str, dict[str, object]]
    ) -> dict[str, object]:
        properties: dict[str, object] = {}
        for name, member in shape.members.items():
            properties[name] = {} if member.streaming else self._shape_schema(member.shape, definitions)
        schema: dict[str, object] = {
            "type": "object",
            "properties": properties,
            "additionalProperties": False,
        }
        required = shape.required_members()
        if required:
            schema["required"] = required
        if shape.is_union:
            schema["minProperties"] = 1
            schema["maxProperties"] = 1
        return schema

    def _scalar_schema(self, shape: ScalarShape) -> dict[str, object]:
        kind = shape.type
        if kind in INTEGER_TYPES:
            schema: dict[str, object] = {"type": "integer"}
            self._apply_bounds(schema, shape.traits, "minimum", "maximum")
            return schema
        if kind in FLOAT_TYPES:
            return {"type": "number"}
        if kind == "boolean":
            return {"type": "boolean"}
        if kind in ("blob", "timestamp"):
            # bytes, streams and datetimes are accepted as given
            return {}
        schema = {"type": "string"}
        if shape.enum:
            schema["enum"] = list(shape.enum)
        self._apply_bounds(schema, shape.traits, "minLength", "maxLength")
        return schema

    def _apply_bounds(
        self, schema: dict[str, object], traits: Any, low_key: str, high_key: str
    ) -> None:
        low = traits.get("min")
        high = traits.get("max")
        if isinstance(low, int) and not isinstance(low, bool):
            schema[low_key] = low
        if isinstance(high, int) and not isinstance(high, bool):
            schema[high_key] = high


class RequestValidator:
    """Validates parameter maps for one service, caching a validator per operation."""

    def __init__(self, service: ServiceDescriptor) -> None:
        self._generator = SchemaGenerator(service.shapes)
        self._validators: dict[str, Draft202012Validator] = {}

    def schema_for(self, operation: OperationSpec) -> dict[str, object]:
        return self._generator.operation_input_schema(operation)

    def validate(self, operation: OperationSpec, params: dict[str, Any]) -> None:
        validator = self._validators.get(operation.name)
        if validator is None:
            validator = Draft202012Validator(self.schema_for(operation))
            self._validators[operation.name] = validator
        errors = validate_payload_structured(validator, params)
        if not errors:
            return
        details = format_structured_errors(errors)
        logger.debug("Validation failed for %s: %s", operation.name, details)
        first = errors[0]
        location = f" at '{first.path}'" if first.path else ""
        raise ValidationFailed(
            f"Request validation failed for {operation.name}{location}: {first.message}", details
        )
