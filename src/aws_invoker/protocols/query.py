"""Codecs for the ``query`` and ``ec2`` protocols.

Requests are form-encoded ``Action``/``Version`` pairs with dotted member
prefixes; responses are XML documents.
"""

from __future__ import annotations

from typing import Any
from xml.etree import ElementTree as ETree

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import (
    ListShape,
    MapShape,
    Member,
    OperationSpec,
    ScalarShape,
    ServiceDescriptor,
    Shape,
    StructureShape,
)
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton
from aws_invoker.errors import InvalidParameterValue, UnmarshallingError
from aws_invoker.protocols import _xml
from aws_invoker.protocols._scalars import scalar_to_text
from aws_invoker.protocols.base import (
    apply_checksum,
    error_anomaly,
    find_error_shape,
    has_streaming_output,
    present_members,
    unmarshal_response,
)
from aws_invoker.utils.uri import encode_query

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"

_MAX_DEPTH = 64


class QueryCodec:
    protocol = "query"
    default_error_markers: tuple[str, ...] = ("ErrorResponse",)

    def __init__(self, error_markers: tuple[str, ...] | None = None) -> None:
        self.error_markers = (
            tuple(error_markers) if error_markers is not None else self.default_error_markers
        )

    # -- marshalling --------------------------------------------------------

    def marshal(
        self, service: ServiceDescriptor, operation: OperationSpec, params: dict[str, Any]
    ) -> RequestSkeleton:
        pairs: list[tuple[str, str]] = [
            ("Action", operation.name),
            ("Version", service.api_version),
        ]
        if operation.input_shape is not None:
            shape = service.shapes.resolve(operation.input_shape)
            self._serialize(service.shapes, shape, params, "", pairs, "", None, 0)

        request = RequestSkeleton(
            method="POST",
            path=operation.request_uri or "/",
            body=encode_query(pairs).encode("utf-8"),
        )
        request.headers["Content-Type"] = FORM_CONTENT_TYPE
        apply_checksum(request, operation)
        return request

    def _serialize(
        self,
        registry: ShapeRegistry,
        shape: Shape,
        value: Any,
        prefix: str,
        pairs: list[tuple[str, str]],
        path: str,
        member: Member | None,
        depth: int,
    ) -> None:
        if depth >= _MAX_DEPTH:
            raise InvalidParameterValue(f"Parameter nesting exceeds {_MAX_DEPTH} levels at '{path}'", path=path)
        if isinstance(shape, StructureShape):
            if not isinstance(value, dict):
                raise InvalidParameterValue(f"Expected a mapping for '{path or 'input'}'", path=path)
            for name, child_member, child_value in present_members(shape, value):
                member_name = self._member_name(child_member)
                child_prefix = f"{prefix}.{member_name}" if prefix else member_name
                child_path = f"{path}.{name}" if path else name
                self._serialize(
                    registry,
                    registry.resolve(child_member.shape),
                    child_value,
                    child_prefix,
                    pairs,
                    child_path,
                    child_member,
                    depth + 1,
                )
        elif isinstance(shape, ListShape):
            self._serialize_list(registry, shape, value, prefix, pairs, path, member, depth)
        elif isinstance(shape, MapShape):
            flattened = shape.flattened or (member is not None and member.flattened)
            base = prefix if flattened else f"{prefix}.entry"
            key_suffix = shape.key.location_name or "key"
            value_suffix = shape.value.location_name or "value"
            value_shape = registry.resolve(shape.value.shape)
            for index, (key, item) in enumerate(value.items(), 1):
                pairs.append((f"{base}.{index}.{key_suffix}", str(key)))
                self._serialize(
                    registry,
                    value_shape,
                    item,
                    f"{base}.{index}.{value_suffix}",
                    pairs,
                    f"{path}.{key}",
                    None,
                    depth + 1,
                )
        elif isinstance(shape, ScalarShape):
            pairs.append((prefix, scalar_to_text(shape, value, path, member=member)))
        else:
            pairs.append((prefix, str(value)))

    def _serialize_list(
        self,
        registry: ShapeRegistry,
        shape: ListShape,
        value: Any,
        prefix: str,
        pairs: list[tuple[str, str]],
        path: str,
        member: Member | None,
        depth: int,
    ) -> None:
        if not value:
            pairs.append((prefix, ""))
            return
        if shape.flattened or (member is not None and member.flattened):
            list_prefix = prefix
            if shape.member.location_name:
                list_prefix = ".".join(prefix.split(".")[:-1] + [shape.member.location_name])
        else:
            list_prefix = f"{prefix}.{shape.member.location_name or 'member'}"
        item_shape = registry.resolve(shape.member.shape)
        for index, item in enumerate(value, 1):
            self._serialize(
                registry,
                item_shape,
                item,
                f"{list_prefix}.{index}",
                pairs,
                f"{path}[{index - 1}]",
                None,
                depth + 1,
            )

    def _member_name(self, member: Member) -> str:
        return member.serialized_name

    # -- unmarshalling ------------------------------------------------------

    def unmarshal(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        return unmarshal_response(
            service,
            operation,
            response,
            parse_result=self._parse_result,
            parse_error=self._parse_error,
            embedded_error=lambda op, resp: self._embedded_error(service, op, resp),
        )

    def _embedded_error(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> bool:
        if not self.error_markers or has_streaming_output(service, operation):
            return False
        return _xml.root_tag(response.body) in self.error_markers

    def _parse_result(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        if operation.output_shape is None or not response.body.strip():
            return {}
        shape = service.shapes.resolve(operation.output_shape)
        if not isinstance(shape, StructureShape):
            return {}
        start = _xml.parse_xml(response.body)
        if operation.result_wrapper:
            wrapped = _xml.find_child(start, operation.result_wrapper)
            if wrapped is None:
                return {}
            start = wrapped
        return _xml.decode_structure(service.shapes, shape, start)

    def _error_node(self, root: ETree.Element) -> ETree.Element | None:
        if _xml.local_name(root.tag) == "Error":
            return root
        return _xml.find_child(root, "Error")

    def _request_id(self, root: ETree.Element) -> str | None:
        node = _xml.find_child(root, "RequestId")
        return node.text if node is not None else None

    def _parse_error(
        self, service: ServiceDescriptor, operation: OperationSpec, response: HttpResponse
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        code: str | None = None
        message: str | None = None
        if response.body.strip():
            try:
                root = _xml.parse_xml(response.body)
            except UnmarshallingError:
                fields["Body"] = response.body.decode("utf-8", errors="replace")
            else:
                error_node = self._error_node(root)
                if error_node is not None:
                    envelope = _xml.element_to_dict(error_node)
                    if isinstance(envelope, dict):
                        fields["Error"] = envelope
                        code = envelope.get("Code") or None
                        message = envelope.get("Message") or None
                    modeled = find_error_shape(service, operation, code)
                    if modeled is not None:
                        fields.update(_xml.decode_structure(service.shapes, modeled, error_node))
                request_id = self._request_id(root)
                if request_id:
                    fields["RequestId"] = request_id
        return error_anomaly(response, code, message, fields)


class Ec2Codec(QueryCodec):
    """EC2 flavour of the query protocol.

    Lists are always flattened with 1-based indexes, empty lists are left
    out, and member names come from ``queryName`` or the capitalized
    ``locationName``.
    """

    protocol = "ec2"
    default_error_markers = ("Response",)

    def _member_name(self, member: Member) -> str:
        if member.query_name:
            return member.query_name
        name = member.serialized_name
        return name[:1].upper() + name[1:]

    def _serialize_list(
        self,
        registry: ShapeRegistry,
        shape: ListShape,
        value: Any,
        prefix: str,
        pairs: list[tuple[str, str]],
        path: str,
        member: Member | None,
        depth: int,
    ) -> None:
        item_shape = registry.resolve(shape.member.shape)
        for index, item in enumerate(value, 1):
            self._serialize(
                registry, item_shape, item, f"{prefix}.{index}", pairs, f"{path}[{index - 1}]", None, depth + 1
            )

    def _error_node(self, root: ETree.Element) -> ETree.Element | None:
        errors = _xml.find_child(root, "Errors")
        if errors is None:
            return super()._error_node(root)
        return _xml.find_child(errors, "Error")

    def _request_id(self, root: ETree.Element) -> str | None:
        node = _xml.find_child(root, "RequestID")
        if node is None:
            return super()._request_id(root)
        return node.text
