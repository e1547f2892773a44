"""Shape, operation and service descriptor records."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from aws_invoker.errors import UnknownOperation

if TYPE_CHECKING:
    from aws_invoker.descriptor.registry import ShapeRegistry

SCALAR_TYPES = frozenset(
    {
        "string",
        "integer",
        "long",
        "short",
        "byte",
        "float",
        "double",
        "boolean",
        "blob",
        "timestamp",
        "bigInteger",
        "bigDecimal",
    }
)

SUPPORTED_PROTOCOLS = ("query", "ec2", "json", "rest-json", "rest-xml")

PROTOCOL_ALIASES = {"ec2-query": "ec2", "awsJson1_0": "json", "awsJson1_1": "json"}


@dataclass(frozen=True)
class Member:
    name: str
    shape: str
    required: bool = False
    location: str | None = None
    location_name: str | None = None
    traits: Mapping[str, object] = field(default_factory=dict)

    @property
    def serialized_name(self) -> str:
        return self.location_name or self.name

    @property
    def in_body(self) -> bool:
        return self.location in (None, "body")

    @property
    def streaming(self) -> bool:
        return bool(self.traits.get("streaming"))

    @property
    def timestamp_format(self) -> str | None:
        value = self.traits.get("timestampFormat")
        return value if isinstance(value, str) else None

    @property
    def xml_attribute(self) -> bool:
        return bool(self.traits.get("xmlAttribute"))

    @property
    def xml_namespace(self) -> Mapping[str, str] | None:
        value = self.traits.get("xmlNamespace")
        return value if isinstance(value, dict) else None

    @property
    def flattened(self) -> bool:
        return bool(self.traits.get("flattened"))

    @property
    def idempotency_token(self) -> bool:
        return bool(self.traits.get("idempotencyToken"))

    @property
    def host_label(self) -> bool:
        return bool(self.traits.get("hostLabel"))

    @property
    def jsonvalue(self) -> bool:
        return bool(self.traits.get("jsonvalue"))

    @property
    def query_name(self) -> str | None:
        value = self.traits.get("queryName")
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class Shape:
    name: str
    type: str
    traits: Mapping[str, object]

    @property
    def location_name(self) -> str | None:
        value = self.traits.get("locationName")
        return value if isinstance(value, str) else None

    @property
    def xml_namespace(self) -> Mapping[str, str] | None:
        value = self.traits.get("xmlNamespace")
        return value if isinstance(value, dict) else None


@dataclass(frozen=True)
class StructureShape(Shape):
    members: Mapping[str, Member]
    payload: str | None = None

    @property
    def is_exception(self) -> bool:
        return bool(self.traits.get("exception"))

    @property
    def is_union(self) -> bool:
        return bool(self.traits.get("union"))

    @property
    def is_document(self) -> bool:
        return bool(self.traits.get("document"))

    @property
    def error_code(self) -> str:
        error = self.traits.get("error")
        if isinstance(error, dict) and isinstance(error.get("code"), str):
            return error["code"]
        return self.name

    @property
    def error_status(self) -> int | None:
        error = self.traits.get("error")
        if isinstance(error, dict) and isinstance(error.get("httpStatusCode"), int):
            return error["httpStatusCode"]
        return None

    def required_members(self) -> list[str]:
        return [name for name, member in self.members.items() if member.required]


@dataclass(frozen=True)
class ListShape(Shape):
    member: Member

    @property
    def flattened(self) -> bool:
        return bool(self.traits.get("flattened"))


@dataclass(frozen=True)
class MapShape(Shape):
    key: Member
    value: Member

    @property
    def flattened(self) -> bool:
        return bool(self.traits.get("flattened"))


@dataclass(frozen=True)
class ScalarShape(Shape):
    enum: tuple[str, ...] | None = None

    @property
    def timestamp_format(self) -> str | None:
        value = self.traits.get("timestampFormat")
        return value if isinstance(value, str) else None

    @property
    def streaming(self) -> bool:
        return bool(self.traits.get("streaming"))

    @property
    def jsonvalue(self) -> bool:
        return bool(self.traits.get("jsonvalue"))


@dataclass(frozen=True)
class OperationSpec:
    name: str
    http_method: str = "POST"
    request_uri: str = "/"
    input_shape: str | None = None
    output_shape: str | None = None
    result_wrapper: str | None = None
    error_shapes: tuple[str, ...] = ()
    host_prefix: str | None = None
    auth_type: str | None = None
    checksum_required: bool = False
    response_code: int | None = None
    documentation: str | None = None


@dataclass(frozen=True)
class ServiceDescriptor:
    protocol: str
    endpoint_prefix: str
    signing_name: str
    api_version: str
    operations: Mapping[str, OperationSpec]
    shapes: "ShapeRegistry"
    json_version: str | None = None
    target_prefix: str | None = None
    signature_version: str = "v4"
    global_endpoint: str | None = None
    xml_namespace: str | None = None
    service_id: str | None = None

    def operation(self, name: str) -> OperationSpec:
        spec = self.operations.get(name)
        if spec is None:
            raise UnknownOperation(f"Unknown operation '{name}' for service '{self.endpoint_prefix}'")
        return spec
