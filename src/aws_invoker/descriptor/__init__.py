"""Service descriptors: shapes, operations and the shape registry."""

from aws_invoker.descriptor.loader import load_descriptor, load_service, resolve_descriptor_path
from aws_invoker.descriptor.parser import parse_descriptor
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

__all__ = [
    "ListShape",
    "MapShape",
    "Member",
    "OperationSpec",
    "ScalarShape",
    "ServiceDescriptor",
    "Shape",
    "ShapeRegistry",
    "StructureShape",
    "load_descriptor",
    "load_service",
    "parse_descriptor",
    "resolve_descriptor_path",
]
