"""Service descriptor parser for botocore-style API definitions (JSON format)."""

from __future__ import annotations

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import (
    PROTOCOL_ALIASES,
    SCALAR_TYPES,
    SUPPORTED_PROTOCOLS,
    ListShape,
    MapShape,
    Member,
    OperationSpec,
    ScalarShape,
    ServiceDescriptor,
    Shape,
    StructureShape,
)

# Keys of a member reference that describe serialization rather than the target.
_MEMBER_STRUCTURAL_KEYS = frozenset({"shape", "location", "locationName"})


def parse_descriptor(data: dict[str, object]) -> ServiceDescriptor:
    metadata_obj = data.get("metadata")
    if not isinstance(metadata_obj, dict):
        raise ValueError("Service description is missing 'metadata'")
    metadata = metadata_obj

    endpoint_prefix = metadata.get("endpointPrefix")
    if not isinstance(endpoint_prefix, str) or not endpoint_prefix:
        raise ValueError("Service description metadata is missing 'endpointPrefix'")

    signing_name = metadata.get("signingName")
    if not isinstance(signing_name, str) or not signing_name:
        signing_name = endpoint_prefix

    api_version = metadata.get("apiVersion")

    return ServiceDescriptor(
        protocol=_select_protocol(metadata),
        endpoint_prefix=endpoint_prefix,
        signing_name=signing_name,
        api_version=api_version if isinstance(api_version, str) else "",
        operations=parse_operations(data.get("operations")),
        shapes=ShapeRegistry(parse_shapes(data.get("shapes"))),
        json_version=_optional_str(metadata.get("jsonVersion")),
        target_prefix=_optional_str(metadata.get("targetPrefix")),
        signature_version=_optional_str(metadata.get("signatureVersion")) or "v4",
        global_endpoint=_optional_str(metadata.get("globalEndpoint")),
        xml_namespace=_optional_str(metadata.get("xmlNamespace")),
        service_id=_optional_str(metadata.get("serviceId")),
    )


def _select_protocol(metadata: dict[str, object]) -> str:
    candidates: list[str] = []
    protocols = metadata.get("protocols")
    if isinstance(protocols, list):
        candidates.extend(item for item in protocols if isinstance(item, str))
    protocol = metadata.get("protocol")
    if isinstance(protocol, str):
        candidates.append(protocol)

    for candidate in candidates:
        normalized = PROTOCOL_ALIASES.get(candidate, candidate)
        if normalized in SUPPORTED_PROTOCOLS:
            return normalized
    raise ValueError(f"Unsupported protocol(s): {candidates or 'none declared'}")


def parse_operations(raw_operations: object) -> dict[str, OperationSpec]:
    operations: dict[str, OperationSpec] = {}
    if not isinstance(raw_operations, dict):
        return operations

    for name, raw in raw_operations.items():
        if not isinstance(name, str) or not isinstance(raw, dict):
            continue
        http = raw.get("http") if isinstance(raw.get("http"), dict) else {}
        endpoint = raw.get("endpoint") if isinstance(raw.get("endpoint"), dict) else {}
        raw_output = raw.get("output") if isinstance(raw.get("output"), dict) else {}

        errors: list[str] = []
        raw_errors = raw.get("errors") or []
        if isinstance(raw_errors, list):
            for entry in raw_errors:
                target = entry.get("shape") if isinstance(entry, dict) else None
                if isinstance(target, str):
                    errors.append(target)

        response_code = http.get("responseCode")
        operations[name] = OperationSpec(
            name=name,
            http_method=str(http.get("method", "POST")).upper(),
            request_uri=str(http.get("requestUri", "/")),
            input_shape=_shape_ref(raw.get("input")),
            output_shape=_shape_ref(raw_output),
            result_wrapper=_optional_str(raw_output.get("resultWrapper")),
            error_shapes=tuple(errors),
            host_prefix=_optional_str(endpoint.get("hostPrefix")),
            auth_type=_optional_str(raw.get("authtype")),
            checksum_required=bool(raw.get("httpChecksumRequired")),
            response_code=response_code if isinstance(response_code, int) else None,
            documentation=_optional_str(raw.get("documentation")),
        )
    return operations


def parse_shapes(raw_shapes: object) -> dict[str, Shape]:
    shapes: dict[str, Shape] = {}
    if not isinstance(raw_shapes, dict):
        return shapes

    for shape_name, shape_data in raw_shapes.items():
        if not isinstance(shape_name, str) or not isinstance(shape_data, dict):
            continue
        shape_type = shape_data.get("type")
        if not isinstance(shape_type, str):
            continue

        if shape_type == "structure":
            shapes[shape_name] = _parse_structure(shape_name, shape_data)
        elif shape_type == "list":
            member = _member("member", shape_data.get("member"))
            if member is None:
                continue
            shapes[shape_name] = ListShape(
                name=shape_name,
                type=shape_type,
                traits=_traits(shape_data, {"type", "member"}),
                member=member,
            )
        elif shape_type == "map":
            key = _member("key", shape_data.get("key"))
            value = _member("value", shape_data.get("value"))
            if key is None or value is None:
                continue
            shapes[shape_name] = MapShape(
                name=shape_name,
                type=shape_type,
                traits=_traits(shape_data, {"type", "key", "value"}),
                key=key,
                value=value,
            )
        elif shape_type in SCALAR_TYPES:
            enum_values: tuple[str, ...] | None = None
            raw_enum = shape_data.get("enum")
            if isinstance(raw_enum, list):
                enum_values = tuple(item for item in raw_enum if isinstance(item, str))
            shapes[shape_name] = ScalarShape(
                name=shape_name,
                type=shape_type,
                traits=_traits(shape_data, {"type", "enum"}),
                enum=enum_values,
            )
        else:
            shapes[shape_name] = Shape(
                name=shape_name, type=shape_type, traits=_traits(shape_data, {"type"})
            )

    return shapes


def _parse_structure(shape_name: str, shape_data: dict[str, object]) -> StructureShape:
    raw_required = shape_data.get("required") or []
    required = {item for item in raw_required if isinstance(item, str)} if isinstance(
        raw_required, list
    ) else set()

    members: dict[str, Member] = {}
    raw_members = shape_data.get("members") or {}
    if isinstance(raw_members, dict):
        for name, raw_member in raw_members.items():
            if not isinstance(name, str):
                continue
            member = _member(name, raw_member, required=name in required)
            if member is not None:
                members[name] = member

    payload = shape_data.get("payload")
    return StructureShape(
        name=shape_name,
        type="structure",
        traits=_traits(shape_data, {"type", "members", "required", "payload"}),
        members=members,
        payload=payload if isinstance(payload, str) and payload in members else None,
    )


def _member(name: str, raw: object, required: bool = False) -> Member | None:
    if not isinstance(raw, dict):
        return None
    target = raw.get("shape")
    if not isinstance(target, str):
        return None
    location = raw.get("location")
    location_name = raw.get("locationName")
    return Member(
        name=name,
        shape=target,
        required=required,
        location=location if isinstance(location, str) else None,
        location_name=location_name if isinstance(location_name, str) else None,
        traits={k: v for k, v in raw.items() if k not in _MEMBER_STRUCTURAL_KEYS},
    )


def _traits(shape_data: dict[str, object], structural: set[str]) -> dict[str, object]:
    return {
        key: value
        for key, value in shape_data.items()
        if key not in structural and key != "documentation"
    }


def _shape_ref(raw: object) -> str | None:
    if isinstance(raw, dict):
        target = raw.get("shape")
        if isinstance(target, str):
            return target
    return None


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) and value else None
