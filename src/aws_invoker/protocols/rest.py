"""Codecs for the ``rest-json`` and ``rest-xml`` protocols.

Both bind members to the URI, query string, headers and status code the same
way and differ only in how the body is written and read, so the binding
logic lives in module functions that take body callbacks.
"""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Callable
from typing import Any

from botocore.utils import parse_timestamp

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import (
    ListShape,
    MapShape,
    Member,
    OperationSpec,
    ScalarShape,
    ServiceDescriptor,
    StructureShape,
)
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton
from aws_invoker.errors import InvalidParameterValue, MissingRequiredParameter, UnmarshallingError
from aws_invoker.protocols import _json, _xml
from aws_invoker.protocols._scalars import (
    ISO8601_FORMAT,
    RFC822_FORMAT,
    scalar_to_text,
    text_to_scalar,
)
from aws_invoker.protocols.base import (
    apply_checksum,
    error_anomaly,
    find_error_shape,
    has_streaming_output,
    present_members,
    unmarshal_response,
)
from aws_invoker.protocols.json_rpc import json_embedded_error, parse_json_error
from aws_invoker.utils.uri import SAFE_CHARS, percent_encode

_LABEL_PATTERN = re.compile(r"\{([^}]+)\}")

# Codes used when an error response carries no body (HEAD requests).
_BODYLESS_ERROR_CODES = {
    304: "NotModified",
    400: "BadRequest",
    403: "Forbidden",
    404: "NotFound",
    412: "PreconditionFailed",
}

BodyWriter = Callable[[StructureShape, dict[str, Any], Member | None, bool], bytes | None]
BodyReader = Callable[[StructureShape, bytes, bool], dict[str, Any]]


def split_request_uri(uri: str) -> tuple[str, list[tuple[str, str]]]:
    path, _, literal_query = uri.partition("?")
    pairs: list[tuple[str, str]] = []
    if literal_query:
        for part in literal_query.split("&"):
            if part:
                key, _, value = part.partition("=")
                pairs.append((key, value))
    return path or "/", pairs


def render_path(template: str, labels: dict[str, str]) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        greedy = name.endswith("+")
        name = name.rstrip("+")
        if name not in labels:
            raise MissingRequiredParameter(name)
        return percent_encode(labels[name], safe=SAFE_CHARS + "/" if greedy else SAFE_CHARS)

    return _LABEL_PATTERN.sub(replace, template)


def build_rest_request(
    service: ServiceDescriptor,
    operation: OperationSpec,
    params: dict[str, Any],
    write_body: BodyWriter,
) -> RequestSkeleton:
    registry = service.shapes
    path_template, query = split_request_uri(operation.request_uri)
    request = RequestSkeleton(method=operation.http_method, query=query)
    labels: dict[str, str] = {}

    shape = registry.get(operation.input_shape)
    if not isinstance(shape, StructureShape):
        request.path = render_path(path_template, labels)
        return request

    body_params: dict[str, Any] = {}
    for name, member, value in present_members(shape, params):
        member_shape = registry.resolve(member.shape)
        location = member.location
        if location == "uri":
            labels[member.serialized_name] = _text(member_shape, value, name, member, ISO8601_FORMAT)
        elif location == "querystring":
            _add_query_param(registry, request.query, member, member_shape, value, name)
        elif location == "header":
            header_value = _header_text(registry, member, member_shape, value, name)
            if header_value is not None:
                request.headers[member.serialized_name] = _ascii_header(header_value, name)
        elif location == "headers":
            if not isinstance(value, dict):
                raise InvalidParameterValue(f"Expected a mapping for '{name}'", path=name)
            for key, item in value.items():
                item_path = f"{name}.{key}"
                header_name = _ascii_header(f"{member.serialized_name}{key}", item_path)
                request.headers[header_name] = _ascii_header(str(item), item_path)
        elif location == "statusCode":
            continue
        else:
            body_params[name] = value

    request.path = render_path(path_template, labels)

    if shape.payload is not None:
        payload_member = shape.members[shape.payload]
        payload_value = params.get(shape.payload)
        payload_shape = registry.resolve(payload_member.shape)
        if payload_value is None:
            request.body = b""
        elif isinstance(payload_shape, StructureShape):
            request.body = write_body(payload_shape, payload_value, payload_member, False) or b""
        elif isinstance(payload_value, str):
            request.body = payload_value.encode("utf-8")
        else:
            request.body = payload_value
    else:
        request.body = write_body(shape, body_params, None, True) or b""

    apply_checksum(request, operation)
    return request


def _text(
    shape: Any, value: Any, path: str, member: Member | None, timestamp_default: str
) -> str:
    if isinstance(shape, ScalarShape):
        return scalar_to_text(shape, value, path, member=member, timestamp_default=timestamp_default)
    raise InvalidParameterValue(f"'{path}' must be a scalar to bind outside the body", path=path)


def _add_query_param(
    registry: ShapeRegistry,
    query: list[tuple[str, str]],
    member: Member,
    shape: Any,
    value: Any,
    path: str,
) -> None:
    if isinstance(shape, ListShape):
        item_shape = registry.resolve(shape.member.shape)
        for item in value:
            query.append((member.serialized_name, _text(item_shape, item, path, None, ISO8601_FORMAT)))
    elif isinstance(shape, MapShape):
        value_shape = registry.resolve(shape.value.shape)
        existing = {key for key, _ in query}
        for key, item in value.items():
            if key in existing:
                continue
            items = item if isinstance(item, (list, tuple)) else [item]
            item_shape = (
                registry.resolve(value_shape.member.shape)
                if isinstance(value_shape, ListShape)
                else value_shape
            )
            for entry in items:
                query.append((str(key), _text(item_shape, entry, f"{path}.{key}", None, ISO8601_FORMAT)))
    else:
        query.append((member.serialized_name, _text(shape, value, path, member, ISO8601_FORMAT)))


def _ascii_header(text: str, path: str) -> str:
    if not text.isascii():
        raise InvalidParameterValue(f"Header value for '{path}' must be ASCII: {text!r}", path=path)
    return text


def _header_text(
    registry: ShapeRegistry, member: Member, shape: Any, value: Any, path: str
) -> str | None:
    if isinstance(shape, ListShape):
        item_shape = registry.resolve(shape.member.shape)
        items = [_text(item_shape, item, path, None, RFC822_FORMAT) for item in value]
        return ",".join(items) if items else None
    if member.jsonvalue or (isinstance(shape, ScalarShape) and shape.jsonvalue):
        encoded = json.dumps(value, separators=(",", ":")).encode("utf-8")
        return base64.b64encode(encoded).decode("ascii")
    return _text(shape, value, path, member, RFC822_FORMAT)


def parse_rest_result(
    service: ServiceDescriptor,
    operation: OperationSpec,
    response: HttpResponse,
    read_body: BodyReader,
) -> dict[str, Any]:
    registry = service.shapes
    shape = registry.get(operation.output_shape)
    if not isinstance(shape, StructureShape):
        return {}

    result: dict[str, Any] = {}
    for name, member in shape.members.items():
        location = member.location
        if location == "statusCode":
            result[name] = response.status
        elif location == "header":
            raw = response.header(member.serialized_name)
            if raw is not None:
                result[name] = _decode_header(registry, member, registry.resolve(member.shape), raw)
        elif location == "headers":
            prefix = member.serialized_name.lower()
            collected = {
                key[len(prefix):]: value
                for key, value in response.headers.items()
                if key.startswith(prefix)
            }
            if collected:
                result[name] = collected

    body = response.body
    if shape.payload is not None:
        payload_member = shape.members[shape.payload]
        payload_shape = registry.resolve(payload_member.shape)
        if isinstance(payload_shape, StructureShape):
            if body.strip():
                result[shape.payload] = read_body(payload_shape, body, False)
        elif isinstance(payload_shape, ScalarShape) and payload_shape.type == "string":
            if body:
                result[shape.payload] = body.decode("utf-8")
        else:
            result[shape.payload] = body
    elif body.strip():
        result.update(read_body(shape, body, True))
    return result


def _decode_header(registry: ShapeRegistry, member: Member, shape: Any, raw: str) -> Any:
    if isinstance(shape, ListShape):
        item_shape = registry.resolve(shape.member.shape)
        items = [item.strip() for item in raw.split(",")]
        if isinstance(item_shape, ScalarShape):
            return [_decode_header_scalar(member, item_shape, item) for item in items]
        return items
    if isinstance(shape, ScalarShape):
        return _decode_header_scalar(member, shape, raw)
    return raw


def _decode_header_scalar(member: Member, shape: ScalarShape, raw: str) -> Any:
    if member.jsonvalue or shape.jsonvalue:
        return json.loads(base64.b64decode(raw))
    if shape.type == "timestamp":
        return parse_timestamp(raw)
    return text_to_scalar(shape, raw)


class RestJsonCodec:
    protocol = "rest-json"
    default_error_markers: tuple[str, ...] = ()

    def __init__(self, error_markers: tuple[str, ...] | None = None) -> None:
        self.error_markers = (
            tuple(error_markers) if error_markers is not None else self.default_error_markers
        )

    def marshal(
        self, service: ServiceDescriptor, operation: OperationSpec, params: dict[str, Any]
    ) -> RequestSkeleton:
        registry = service.shapes
        wrote_json = False

        def write_body(
            shape: StructureShape, values: dict[str, Any], member: Member | None, body_only: bool
        ) -> bytes | None:
            nonlocal wrote_json
            if body_only and not any(m.in_body for m in shape.members.values()):
                return None
            wrote_json = True
            return _json.dumps(_json.encode_structure(registry, shape, values, body_only=body_only))

        request = build_rest_request(service, operation, params, write_body)
        if wrote_json and "Content-Type" not in request.headers:
            request.headers["Content-Type"] = "application/json"
        return request

    def unmarshal(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        registry = service.shapes

        def read_body(shape: StructureShape, body: bytes, body_only: bool) -> dict[str, Any]:
            return _json.decode_structure(registry, shape, _json.loads(body), body_only=body_only)

        return unmarshal_response(
            service,
            operation,
            response,
            parse_result=lambda svc, op, resp: parse_rest_result(svc, op, resp, read_body),
            parse_error=parse_json_error,
            embedded_error=lambda op, resp: (
                not has_streaming_output(service, op)
                and json_embedded_error(self.error_markers, resp)
            ),
        )


class RestXmlCodec:
    protocol = "rest-xml"
    default_error_markers: tuple[str, ...] = ("Error", "ErrorResponse")

    def __init__(self, error_markers: tuple[str, ...] | None = None) -> None:
        self.error_markers = (
            tuple(error_markers) if error_markers is not None else self.default_error_markers
        )

    def marshal(
        self, service: ServiceDescriptor, operation: OperationSpec, params: dict[str, Any]
    ) -> RequestSkeleton:
        registry = service.shapes

        def write_body(
            shape: StructureShape, values: dict[str, Any], member: Member | None, body_only: bool
        ) -> bytes | None:
            if body_only and not values:
                return None
            if member is not None:
                name = member.location_name or shape.location_name or shape.name
                namespace = member.xml_namespace or shape.xml_namespace
            else:
                name = shape.location_name or shape.name
                namespace = shape.xml_namespace
            root = _xml.encode_structure(
                registry,
                shape,
                values,
                name,
                namespace=dict(namespace) if namespace else None,
                body_only=body_only,
            )
            return _xml.to_bytes(root)

        return build_rest_request(service, operation, params, write_body)

    def unmarshal(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        registry = service.shapes

        def read_body(shape: StructureShape, body: bytes, body_only: bool) -> dict[str, Any]:
            root = _xml.parse_xml(body)
            return _xml.decode_structure(registry, shape, root, body_only=body_only)

        return unmarshal_response(
            service,
            operation,
            response,
            parse_result=lambda svc, op, resp: parse_rest_result(svc, op, resp, read_body),
            parse_error=self._parse_error,
            embedded_error=self._embedded_error_for(service),
        )

    def _embedded_error_for(
        self, service: ServiceDescriptor
    ) -> Callable[[OperationSpec, HttpResponse], bool]:
        def check(operation: OperationSpec, response: HttpResponse) -> bool:
            if not self.error_markers or has_streaming_output(service, operation):
                return False
            return _xml.root_tag(response.body) in self.error_markers

        return check

    def _parse_error(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        code: str | None = None
        message: str | None = None
        if not response.body.strip():
            code = _BODYLESS_ERROR_CODES.get(response.status, str(response.status))
            return error_anomaly(response, code, None, fields)

        try:
            root = _xml.parse_xml(response.body)
        except UnmarshallingError:
            fields["Body"] = response.body.decode("utf-8", errors="replace")
            return error_anomaly(response, None, None, fields)

        error_node = root if _xml.local_name(root.tag) == "Error" else _xml.find_child(root, "Error")
        if error_node is not None:
            envelope = _xml.element_to_dict(error_node)
            if isinstance(envelope, dict):
                fields["Error"] = envelope
                code = envelope.get("Code") or None
                message = envelope.get("Message") or None
                if envelope.get("RequestId"):
                    fields["RequestId"] = envelope["RequestId"]
            modeled = find_error_shape(service, operation, code)
            if modeled is not None:
                fields.update(_xml.decode_structure(service.shapes, modeled, error_node, body_only=True))
        request_id = _xml.find_child(root, "RequestId")
        if request_id is not None and request_id.text:
            fields["RequestId"] = request_id.text
        return error_anomaly(response, code, message, fields)
