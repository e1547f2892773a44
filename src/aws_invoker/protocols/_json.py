"""JSON encoding and decoding driven by shapes (json and rest-json)."""

from __future__ import annotations

import json
from typing import Any

from botocore.utils import parse_timestamp

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import ListShape, MapShape, Member, ScalarShape, Shape, StructureShape
from aws_invoker.errors import InvalidParameterValue, UnmarshallingError
from aws_invoker.protocols._scalars import (
    FLOAT_TYPES,
    INTEGER_TYPES,
    UNIX_FORMAT,
    coerce_boolean,
    coerce_float,
    coerce_integer,
    coerce_string,
    decode_blob,
    encode_blob,
    format_float,
    format_timestamp,
    parse_float,
    timestamp_format_for,
)
from aws_invoker.protocols.base import present_members

_MAX_DEPTH = 64


def dumps(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


def loads(body: bytes) -> Any:
    if not body or not body.strip():
        return {}
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UnmarshallingError(f"Malformed JSON response: {exc}") from exc


def encode_structure(
    registry: ShapeRegistry,
    shape: StructureShape,
    params: dict[str, Any],
    *,
    path: str = "",
    body_only: bool = False,
    depth: int = 0,
) -> dict[str, Any]:
    if shape.is_document:
        return params
    result: dict[str, Any] = {}
    for name, member, value in present_members(shape, params):
        if body_only and not member.in_body:
            continue
        member_path = f"{path}.{name}" if path else name
        result[member.serialized_name] = encode_value(
            registry, registry.resolve(member.shape), value, member_path, member, depth + 1
        )
    return result


def encode_value(
    registry: ShapeRegistry,
    shape: Shape,
    value: Any,
    path: str,
    member: Member | None = None,
    depth: int = 0,
) -> Any:
    if depth >= _MAX_DEPTH:
        raise InvalidParameterValue(f"Parameter nesting exceeds {_MAX_DEPTH} levels at '{path}'", path=path)
    if isinstance(shape, StructureShape):
        return encode_structure(registry, shape, value, path=path, depth=depth)
    if isinstance(shape, ListShape):
        item_shape = registry.resolve(shape.member.shape)
        return [
            encode_value(registry, item_shape, item, f"{path}[{index}]", None, depth + 1)
            for index, item in enumerate(value)
        ]
    if isinstance(shape, MapShape):
        value_shape = registry.resolve(shape.value.shape)
        return {
            str(key): encode_value(registry, value_shape, item, f"{path}.{key}", None, depth + 1)
            for key, item in value.items()
        }
    if isinstance(shape, ScalarShape):
        return encode_scalar(shape, value, path, member)
    return value


def encode_scalar(shape: ScalarShape, value: Any, path: str, member: Member | None = None) -> Any:
    kind = shape.type
    if kind in INTEGER_TYPES:
        return coerce_integer(value, path, kind)
    if kind in FLOAT_TYPES:
        return format_float(coerce_float(value, path))
    if kind == "boolean":
        return coerce_boolean(value, path)
    if kind == "blob":
        return encode_blob(value, path)
    if kind == "timestamp":
        return format_timestamp(value, timestamp_format_for(member, shape, UNIX_FORMAT), path)
    return coerce_string(shape, value, path)


def decode_structure(
    registry: ShapeRegistry,
    shape: StructureShape,
    data: Any,
    *,
    body_only: bool = False,
    depth: int = 0,
) -> dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    if shape.is_document:
        return data
    result: dict[str, Any] = {}
    for name, member in shape.members.items():
        if body_only and not member.in_body:
            continue
        raw = data.get(member.serialized_name)
        if raw is None:
            continue
        result[name] = decode_value(registry, registry.resolve(member.shape), raw, depth + 1)
    return result


def decode_value(registry: ShapeRegistry, shape: Shape, raw: Any, depth: int = 0) -> Any:
    if depth >= _MAX_DEPTH:
        raise UnmarshallingError(f"Response nesting exceeds {_MAX_DEPTH} levels")
    if isinstance(shape, StructureShape):
        return decode_structure(registry, shape, raw, depth=depth)
    if isinstance(shape, ListShape):
        if not isinstance(raw, list):
            return raw
        item_shape = registry.resolve(shape.member.shape)
        return [
            decode_value(registry, item_shape, item, depth + 1) if item is not None else None
            for item in raw
        ]
    if isinstance(shape, MapShape):
        if not isinstance(raw, dict):
            return raw
        value_shape = registry.resolve(shape.value.shape)
        return {
            key: decode_value(registry, value_shape, item, depth + 1) if item is not None else None
            for key, item in raw.items()
        }
    if isinstance(shape, ScalarShape):
        return decode_scalar(shape, raw)
    return raw


def decode_scalar(shape: ScalarShape, raw: Any) -> Any:
    kind = shape.type
    if kind == "timestamp":
        return parse_timestamp(raw)
    if kind == "blob" and isinstance(raw, str):
        return decode_blob(raw)
    if kind in FLOAT_TYPES and isinstance(raw, str):
        return parse_float(raw)
    if kind in INTEGER_TYPES and isinstance(raw, str):
        return int(raw)
    return raw
