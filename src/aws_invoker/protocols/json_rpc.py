"""Codec for the ``json`` protocol (``X-Amz-Target`` RPC over POST)."""

from __future__ import annotations

from typing import Any

from aws_invoker.descriptor.shapes import OperationSpec, ServiceDescriptor, StructureShape
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton
from aws_invoker.errors import UnmarshallingError
from aws_invoker.protocols import _json
from aws_invoker.protocols.base import (
    apply_checksum,
    error_anomaly,
    find_error_shape,
    has_streaming_output,
    normalize_error_code,
    unmarshal_response,
)


def parse_json_error(
    service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
) -> dict[str, Any]:
    """Decode the JSON error envelope shared by ``json`` and ``rest-json``."""
    fields: dict[str, Any] = {}
    body: Any = {}
    try:
        body = _json.loads(response.body)
    except UnmarshallingError:
        fields["Body"] = response.body.decode("utf-8", errors="replace")
    if not isinstance(body, dict):
        body = {}

    raw_code = response.header("x-amzn-errortype") or body.get("__type") or body.get("code")
    if raw_code is None and isinstance(body.get("Code"), str):
        raw_code = body["Code"]
    code = normalize_error_code(raw_code if isinstance(raw_code, str) else None)
    message = body.get("message") or body.get("Message") or body.get("errorMessage")

    fields.update({key: value for key, value in body.items() if key != "__type"})
    modeled = find_error_shape(service, operation, code)
    if modeled is not None:
        fields.update(_json.decode_structure(service.shapes, modeled, body, body_only=True))
    return error_anomaly(response, code, message if isinstance(message, str) else None, fields)


def json_embedded_error(markers: tuple[str, ...], response: HttpResponse) -> bool:
    if not markers or not response.body.strip():
        return False
    try:
        body = _json.loads(response.body)
    except UnmarshallingError:
        return False
    return isinstance(body, dict) and any(marker in body for marker in markers)


class JsonCodec:
    protocol = "json"
    default_error_markers: tuple[str, ...] = ()

    def __init__(self, error_markers: tuple[str, ...] | None = None) -> None:
        self.error_markers = (
            tuple(error_markers) if error_markers is not None else self.default_error_markers
        )

    def marshal(
        self, service: ServiceDescriptor, operation: OperationSpec, params: dict[str, Any]
    ) -> RequestSkeleton:
        body: dict[str, Any] = {}
        if operation.input_shape is not None:
            shape = service.shapes.resolve(operation.input_shape)
            if isinstance(shape, StructureShape):
                body = _json.encode_structure(service.shapes, shape, params)

        request = RequestSkeleton(
            method="POST",
            path=operation.request_uri or "/",
            body=_json.dumps(body),
        )
        target = f"{service.target_prefix}.{operation.name}" if service.target_prefix else operation.name
        request.headers["X-Amz-Target"] = target
        request.headers["Content-Type"] = f"application/x-amz-json-{service.json_version or '1.0'}"
        apply_checksum(request, operation)
        return request

    def unmarshal(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        return unmarshal_response(
            service,
            operation,
            response,
            parse_result=self._parse_result,
            parse_error=parse_json_error,
            embedded_error=lambda op, resp: (
                not has_streaming_output(service, op)
                and json_embedded_error(self.error_markers, resp)
            ),
        )

    def _parse_result(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        if operation.output_shape is None:
            return {}
        shape = service.shapes.resolve(operation.output_shape)
        if not isinstance(shape, StructureShape):
            return {}
        return _json.decode_structure(service.shapes, shape, _json.loads(response.body))
