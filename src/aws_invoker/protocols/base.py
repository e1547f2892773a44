"""Codec contract and the pieces every protocol shares."""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Callable
from typing import Any, Protocol
from uuid import uuid4

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import (
    ListShape,
    MapShape,
    OperationSpec,
    ScalarShape,
    ServiceDescriptor,
    Shape,
    StructureShape,
)
from aws_invoker.domain.anomalies import (
    SOURCE_SERVICE,
    category_for_error,
    make_anomaly,
)
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton
from aws_invoker.errors import (
    InvalidParameterValue,
    MissingRequiredParameter,
    UnknownParameter,
)

_MAX_WALK_DEPTH = 64


class ProtocolCodec(Protocol):
    """Strategy implemented once per wire protocol."""

    protocol: str

    def marshal(
        self, service: ServiceDescriptor, operation: OperationSpec, params: dict[str, Any]
    ) -> RequestSkeleton: ...

    def unmarshal(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]: ...


def prepare_input(
    service: ServiceDescriptor,
    operation: OperationSpec,
    params: dict[str, Any] | None,
    *,
    strict: bool = False,
) -> dict[str, Any]:
    """Check required members and fill idempotency tokens.

    With ``strict`` set, keys that are not members of their structure are
    rejected instead of being ignored.
    """
    params = dict(params or {})
    if operation.input_shape is None:
        if strict and params:
            raise UnknownParameter(sorted(params)[0], [])
        return {}

    shape = service.shapes.resolve(operation.input_shape)
    if isinstance(shape, StructureShape):
        for name, member in shape.members.items():
            if member.idempotency_token and params.get(name) is None:
                params[name] = str(uuid4())
    _check_value(service.shapes, shape, params, "", strict, 0)
    return params


def _check_value(
    registry: ShapeRegistry, shape: Shape, value: Any, path: str, strict: bool, depth: int
) -> None:
    if depth >= _MAX_WALK_DEPTH:
        raise InvalidParameterValue(
            f"Parameter nesting exceeds {_MAX_WALK_DEPTH} levels at '{path}'", path=path
        )
    if isinstance(shape, StructureShape):
        if shape.is_document:
            return
        if not isinstance(value, dict):
            raise InvalidParameterValue(
                f"Expected a mapping for '{path or 'input'}', got {type(value).__name__}",
                path=path,
            )
        for name, member in shape.members.items():
            member_path = f"{path}.{name}" if path else name
            member_value = value.get(name)
            if member_value is None:
                if member.required:
                    raise MissingRequiredParameter(member_path)
                continue
            if member.streaming:
                continue
            _check_value(
                registry, registry.resolve(member.shape), member_value, member_path, strict, depth + 1
            )
        if strict:
            for key in value:
                if key not in shape.members:
                    raise UnknownParameter(
                        f"{path}.{key}" if path else str(key), list(shape.members)
                    )
    elif isinstance(shape, ListShape):
        if not isinstance(value, (list, tuple)):
            raise InvalidParameterValue(
                f"Expected a list for '{path}', got {type(value).__name__}", path=path
            )
        item_shape = registry.resolve(shape.member.shape)
        for index, item in enumerate(value):
            if item is not None:
                _check_value(registry, item_shape, item, f"{path}[{index}]", strict, depth + 1)
    elif isinstance(shape, MapShape):
        if not isinstance(value, dict):
            raise InvalidParameterValue(
                f"Expected a mapping for '{path}', got {type(value).__name__}", path=path
            )
        value_shape = registry.resolve(shape.value.shape)
        for key, item in value.items():
            if item is not None:
                _check_value(registry, value_shape, item, f"{path}.{key}", strict, depth + 1)
    elif isinstance(shape, ScalarShape) and shape.enum and strict:
        if isinstance(value, str) and value not in shape.enum:
            raise InvalidParameterValue(
                f"Invalid value '{value}' for '{path}'. Allowed: {', '.join(shape.enum)}",
                path=path,
            )


def present_members(shape: StructureShape, params: dict[str, Any]):
    """Yield ``(name, member, value)`` for members with a non-null value."""
    for name, member in shape.members.items():
        value = params.get(name)
        if value is not None:
            yield name, member, value


def apply_checksum(request: RequestSkeleton, operation: OperationSpec) -> None:
    if not operation.checksum_required or "Content-MD5" in request.headers:
        return
    if isinstance(request.body, (bytes, bytearray)):
        digest = hashlib.md5(request.body).digest()
        request.headers["Content-MD5"] = base64.b64encode(digest).decode("ascii")


def find_error_shape(
    service: ServiceDescriptor, operation: OperationSpec, code: str | None
) -> StructureShape | None:
    if not code:
        return None
    for shape_name in operation.error_shapes:
        shape = service.shapes.get(shape_name)
        if isinstance(shape, StructureShape) and code in (shape.error_code, shape.name):
            return shape
    return None


def normalize_error_code(raw: str | None) -> str | None:
    """Strip namespaces and URL suffixes from wire error codes.

    ``aws.protocoltests#FooError:http://internal.amazon.com/`` becomes ``FooError``.
    """
    if not raw:
        return None
    code = raw.split(":", 1)[0]
    code = code.rsplit("#", 1)[-1]
    return code or None


def error_anomaly(
    response: HttpResponse,
    code: str | None,
    message: str | None,
    fields: dict[str, Any],
) -> dict[str, Any]:
    return make_anomaly(
        category_for_error(response.status, code),
        message or (f"{code} (HTTP {response.status})" if code else f"HTTP {response.status}"),
        source=SOURCE_SERVICE,
        status=response.status,
        error_code=code,
        **fields,
    )


def unmarshal_response(
    service: ServiceDescriptor,
    operation: OperationSpec,
    response: HttpResponse,
    *,
    parse_result: Callable[[ServiceDescriptor, OperationSpec, HttpResponse], dict[str, Any]],
    parse_error: Callable[[ServiceDescriptor, OperationSpec, HttpResponse], dict[str, Any]],
    embedded_error: Callable[[OperationSpec, HttpResponse], bool],
) -> dict[str, Any]:
    if response.status >= 300:
        return parse_error(service, operation, response)
    if embedded_error(operation, response):
        return parse_error(service, operation, response)
    return parse_result(service, operation, response)


def has_streaming_output(service: ServiceDescriptor, operation: OperationSpec) -> bool:
    shape = service.shapes.get(operation.output_shape)
    if not isinstance(shape, StructureShape) or shape.payload is None:
        return False
    payload_member = shape.members[shape.payload]
    payload_shape = service.shapes.get(payload_member.shape)
    if isinstance(payload_shape, ScalarShape):
        return payload_member.streaming or payload_shape.streaming or payload_shape.type == "blob"
    return False
