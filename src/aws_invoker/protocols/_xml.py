"""XML encoding and decoding driven by shapes (query, ec2 and rest-xml)."""

from __future__ import annotations

from collections import defaultdict
from typing import Any
from xml.etree import ElementTree as ETree

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import (
    ListShape,
    MapShape,
    Member,
    ScalarShape,
    Shape,
    StructureShape,
)
from aws_invoker.errors import InvalidParameterValue, UnmarshallingError
from aws_invoker.protocols._scalars import ISO8601_FORMAT, scalar_to_text, text_to_scalar
from aws_invoker.protocols.base import present_members

_MAX_DEPTH = 64


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def parse_xml(body: bytes) -> ETree.Element:
    try:
        return ETree.fromstring(body)
    except ETree.ParseError as exc:
        raise UnmarshallingError(f"Malformed XML response: {exc}") from exc


def root_tag(body: bytes) -> str | None:
    """Local name of the document element, or None when the body is not XML."""
    if not body or not body.lstrip().startswith(b"<"):
        return None
    try:
        return local_name(ETree.fromstring(body).tag)
    except ETree.ParseError:
        return None


def find_child(element: ETree.Element, name: str) -> ETree.Element | None:
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def element_to_dict(element: ETree.Element) -> dict[str, Any] | str:
    """Untyped conversion used for error envelopes that have no modeled shape."""
    children = list(element)
    if not children:
        return element.text or ""
    result: dict[str, Any] = {}
    for child in children:
        result[local_name(child.tag)] = element_to_dict(child)
    return result


def member_xml_name(registry: ShapeRegistry, member: Member) -> str:
    target = registry.resolve(member.shape)
    if isinstance(target, ListShape) and (target.flattened or member.flattened):
        return target.member.location_name or member.serialized_name
    return member.serialized_name


# -- decoding ---------------------------------------------------------------


def decode_structure(
    registry: ShapeRegistry,
    shape: StructureShape,
    element: ETree.Element,
    *,
    body_only: bool = False,
    depth: int = 0,
) -> dict[str, Any]:
    if depth >= _MAX_DEPTH:
        raise UnmarshallingError(f"Response nesting exceeds {_MAX_DEPTH} levels")
    children: dict[str, list[ETree.Element]] = defaultdict(list)
    for child in element:
        children[local_name(child.tag)].append(child)

    result: dict[str, Any] = {}
    for name, member in shape.members.items():
        if body_only and not member.in_body:
            continue
        member_shape = registry.resolve(member.shape)
        if member.xml_attribute:
            attr_value = _find_attribute(element, member.serialized_name)
            if attr_value is not None and isinstance(member_shape, ScalarShape):
                result[name] = text_to_scalar(member_shape, attr_value)
            continue

        xml_name = member_xml_name(registry, member)
        nodes = children.get(xml_name)
        if not nodes:
            continue
        flattened = member.flattened or getattr(member_shape, "flattened", False)
        if isinstance(member_shape, ListShape) and flattened:
            item_shape = registry.resolve(member_shape.member.shape)
            result[name] = [decode_value(registry, item_shape, node, depth + 1) for node in nodes]
        elif isinstance(member_shape, MapShape) and flattened:
            result[name] = _decode_map_entries(registry, member_shape, nodes, depth + 1)
        else:
            result[name] = decode_value(registry, member_shape, nodes[0], depth + 1)
    return result


def decode_value(
    registry: ShapeRegistry, shape: Shape, element: ETree.Element, depth: int = 0
) -> Any:
    if isinstance(shape, StructureShape):
        return decode_structure(registry, shape, element, depth=depth)
    if isinstance(shape, ListShape):
        item_name = shape.member.location_name or "member"
        item_shape = registry.resolve(shape.member.shape)
        return [
            decode_value(registry, item_shape, child, depth + 1)
            for child in element
            if local_name(child.tag) == item_name
        ]
    if isinstance(shape, MapShape):
        entries = [child for child in element if local_name(child.tag) == "entry"]
        return _decode_map_entries(registry, shape, entries, depth + 1)
    if isinstance(shape, ScalarShape):
        return text_to_scalar(shape, element.text or "")
    return element.text or ""


def _decode_map_entries(
    registry: ShapeRegistry, shape: MapShape, entries: list[ETree.Element], depth: int
) -> dict[str, Any]:
    key_name = shape.key.location_name or "key"
    value_name = shape.value.location_name or "value"
    value_shape = registry.resolve(shape.value.shape)
    result: dict[str, Any] = {}
    for entry in entries:
        key_node = find_child(entry, key_name)
        value_node = find_child(entry, value_name)
        if key_node is None:
            continue
        result[key_node.text or ""] = (
            decode_value(registry, value_shape, value_node, depth) if value_node is not None else None
        )
    return result


def _find_attribute(element: ETree.Element, name: str) -> str | None:
    wanted = name.split(":", 1)[-1]
    for key, value in element.attrib.items():
        if key == name or local_name(key) == wanted:
            return value
    return None


# -- encoding ---------------------------------------------------------------


def encode_structure(
    registry: ShapeRegistry,
    shape: StructureShape,
    params: dict[str, Any],
    element_name: str,
    *,
    path: str = "",
    namespace: dict[str, str] | None = None,
    body_only: bool = False,
) -> ETree.Element:
    element = ETree.Element(element_name)
    _apply_namespace(element, namespace)
    _fill_structure(registry, shape, params, element, path, body_only, 0)
    return element


def to_bytes(element: ETree.Element) -> bytes:
    return ETree.tostring(element, encoding="utf-8")


def _apply_namespace(element: ETree.Element, namespace: dict[str, str] | None) -> None:
    if not namespace or "uri" not in namespace:
        return
    prefix = namespace.get("prefix")
    attribute = f"xmlns:{prefix}" if prefix else "xmlns"
    element.set(attribute, namespace["uri"])


def _fill_structure(
    registry: ShapeRegistry,
    shape: StructureShape,
    params: dict[str, Any],
    element: ETree.Element,
    path: str,
    body_only: bool,
    depth: int,
) -> None:
    if depth >= _MAX_DEPTH:
        raise InvalidParameterValue(f"Parameter nesting exceeds {_MAX_DEPTH} levels at '{path}'", path=path)
    for name, member, value in present_members(shape, params):
        if body_only and not member.in_body:
            continue
        member_path = f"{path}.{name}" if path else name
        member_shape = registry.resolve(member.shape)
        if member.xml_attribute:
            if member.xml_namespace:
                _apply_namespace(element, dict(member.xml_namespace))
            if not isinstance(member_shape, ScalarShape):
                raise InvalidParameterValue(f"XML attribute '{member_path}' must be a scalar")
            element.set(
                member.serialized_name,
                scalar_to_text(member_shape, value, member_path, member=member),
            )
            continue

        flattened = member.flattened or getattr(member_shape, "flattened", False)
        if isinstance(member_shape, ListShape) and flattened:
            item_shape = registry.resolve(member_shape.member.shape)
            item_name = member_shape.member.location_name or member.serialized_name
            for index, item in enumerate(value):
                child = ETree.SubElement(element, item_name)
                _fill_value(registry, item_shape, item, child, f"{member_path}[{index}]", None, depth + 1)
        elif isinstance(member_shape, MapShape) and flattened:
            for key, item in value.items():
                entry = ETree.SubElement(element, member.serialized_name)
                _fill_map_entry(registry, member_shape, key, item, entry, member_path, depth + 1)
        else:
            child = ETree.SubElement(element, member.serialized_name)
            if member.xml_namespace:
                _apply_namespace(child, dict(member.xml_namespace))
            _fill_value(registry, member_shape, value, child, member_path, member, depth + 1)


def _fill_value(
    registry: ShapeRegistry,
    shape: Shape,
    value: Any,
    element: ETree.Element,
    path: str,
    member: Member | None,
    depth: int,
) -> None:
    if isinstance(shape, StructureShape):
        if not isinstance(value, dict):
            raise InvalidParameterValue(f"Expected a mapping for '{path}'", path=path)
        _fill_structure(registry, shape, value, element, path, False, depth)
    elif isinstance(shape, ListShape):
        item_shape = registry.resolve(shape.member.shape)
        item_name = shape.member.location_name or "member"
        for index, item in enumerate(value):
            child = ETree.SubElement(element, item_name)
            _fill_value(registry, item_shape, item, child, f"{path}[{index}]", None, depth + 1)
    elif isinstance(shape, MapShape):
        for key, item in value.items():
            entry = ETree.SubElement(element, "entry")
            _fill_map_entry(registry, shape, key, item, entry, path, depth + 1)
    elif isinstance(shape, ScalarShape):
        element.text = scalar_to_text(
            shape, value, path, member=member, timestamp_default=ISO8601_FORMAT
        )
    else:
        element.text = str(value)


def _fill_map_entry(
    registry: ShapeRegistry,
    shape: MapShape,
    key: Any,
    value: Any,
    entry: ETree.Element,
    path: str,
    depth: int,
) -> None:
    key_node = ETree.SubElement(entry, shape.key.location_name or "key")
    key_node.text = str(key)
    value_node = ETree.SubElement(entry, shape.value.location_name or "value")
    _fill_value(
        registry, registry.resolve(shape.value.shape), value, value_node, f"{path}.{key}", None, depth
    )
