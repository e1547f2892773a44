"""Endpoint resolution from the partition table."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import replace
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import httpx
import yaml

from aws_invoker.descriptor.registry import ShapeRegistry
from aws_invoker.descriptor.shapes import OperationSpec, ServiceDescriptor, StructureShape
from aws_invoker.endpoints.models import Endpoint, Partition, PartitionTable
from aws_invoker.errors import InvalidParameterValue, MissingRequiredParameter, NoKnownEndpoint

logger = logging.getLogger(__name__)

DEFAULT_SIGNING_REGION = "us-east-1"

_HOST_LABEL = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
_TEMPLATE_LABEL = re.compile(r"\{([^}]+)\}")


def load_partitions(path: str | None = None) -> PartitionTable:
    if path is None:
        return _packaged_partitions()
    table_path = Path(path)
    if not table_path.exists():
        raise FileNotFoundError(f"Partition file not found: {table_path}")
    with table_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return PartitionTable.from_yaml(data)


@lru_cache(maxsize=1)
def _packaged_partitions() -> PartitionTable:
    text = resources.files("aws_invoker.endpoints").joinpath("partitions.yaml").read_text(encoding="utf-8")
    return PartitionTable.from_yaml(yaml.safe_load(text) or {})


def parse_override(override: str | Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Normalize an endpoint override to ``protocol/hostname/port/path`` keys.

    Strings are treated as URLs; a bare host gets ``https``.
    """
    if override is None:
        return None
    if isinstance(override, str):
        url = httpx.URL(override if "://" in override else f"https://{override}")
        return {
            "protocol": url.scheme,
            "hostname": url.host,
            "port": url.port,
            "path": url.path if url.path not in ("", "/") else None,
        }
    return {key: value for key, value in override.items() if value is not None}


class EndpointResolver:
    def __init__(self, partitions: PartitionTable | None = None) -> None:
        self._partitions = partitions or load_partitions()

    def partition_for(self, region: str) -> Partition | None:
        return self._partitions.find(region)

    def resolve(
        self,
        service: ServiceDescriptor,
        region: str | None,
        *,
        use_dualstack: bool = False,
        use_fips: bool = False,
        use_global_endpoint: bool = False,
        override: str | Mapping[str, Any] | None = None,
    ) -> Endpoint:
        parsed = parse_override(override)
        if parsed is None:
            return self._compute(service, region, use_dualstack, use_fips, use_global_endpoint)

        hostname = parsed.get("hostname")
        computed: Endpoint | None = None
        if not hostname:
            computed = self._compute(service, region, use_dualstack, use_fips, use_global_endpoint)
            hostname = computed.host
        port = parsed.get("port")
        return Endpoint(
            scheme=parsed.get("protocol") or "https",
            host=hostname,
            port=int(port) if port is not None else None,
            path=parsed.get("path") or "/",
            signing_region=(
                parsed.get("signing_region")
                or (computed.signing_region if computed else None)
                or region
                or DEFAULT_SIGNING_REGION
            ),
            partition=computed.partition if computed else None,
        )

    def _compute(
        self,
        service: ServiceDescriptor,
        region: str | None,
        use_dualstack: bool,
        use_fips: bool,
        use_global_endpoint: bool,
    ) -> Endpoint:
        prefix = service.endpoint_prefix
        if not region:
            raise NoKnownEndpoint(f"No region configured for service '{prefix}'")
        partition = self._partitions.find(region)
        if partition is None:
            raise NoKnownEndpoint(f"No partition matches region '{region}' for service '{prefix}'")

        if region.endswith("-global"):
            use_global_endpoint = True
        global_endpoint = self._global_endpoint(service, partition, use_global_endpoint)
        if global_endpoint is not None:
            if use_fips or use_dualstack:
                logger.warning(
                    "FIPS/dualstack variants are not applied to global endpoint %s", global_endpoint.host
                )
            return global_endpoint
        if region.endswith("-global"):
            raise NoKnownEndpoint(f"Service '{prefix}' has no global endpoint in partition '{partition.name}'")

        if use_fips and not partition.supports_fips:
            logger.warning("Partition %s does not support FIPS endpoints; using the standard host", partition.name)
            use_fips = False
        if use_dualstack and not (partition.supports_dualstack and partition.dualstack_dns_suffix):
            logger.warning(
                "Partition %s does not support dualstack endpoints; using the standard host", partition.name
            )
            use_dualstack = False

        name = f"{prefix}-fips" if use_fips else prefix
        suffix = partition.dualstack_dns_suffix if use_dualstack else partition.dns_suffix
        return Endpoint(
            scheme="https",
            host=f"{name}.{region}.{suffix}",
            port=None,
            path="/",
            signing_region=region,
            partition=partition.name,
        )

    def _global_endpoint(
        self, service: ServiceDescriptor, partition: Partition, use_global_endpoint: bool
    ) -> Endpoint | None:
        entry = partition.global_endpoints.get(service.endpoint_prefix)
        if entry is not None and (use_global_endpoint or not entry.optional):
            return Endpoint(
                scheme="https",
                host=entry.hostname,
                port=None,
                path="/",
                signing_region=entry.signing_region,
                partition=partition.name,
            )
        if entry is None and service.global_endpoint and partition.name == "aws":
            return Endpoint(
                scheme="https",
                host=service.global_endpoint,
                port=None,
                path="/",
                signing_region=DEFAULT_SIGNING_REGION,
                partition=partition.name,
            )
        return None


def apply_host_prefix(
    endpoint: Endpoint,
    operation: OperationSpec,
    params: dict[str, Any],
    shapes: ShapeRegistry,
) -> Endpoint:
    """Prepend the operation's ``hostPrefix`` with ``hostLabel`` members filled in."""
    if not operation.host_prefix:
        return endpoint

    labels: dict[str, str] = {}
    shape = shapes.get(operation.input_shape)
    if isinstance(shape, StructureShape):
        for name, member in shape.members.items():
            if not member.host_label:
                continue
            value = params.get(name)
            if value is None:
                raise MissingRequiredParameter(name)
            text = str(value)
            if not _HOST_LABEL.match(text):
                raise InvalidParameterValue(f"'{name}' is not a valid host label: {text!r}", path=name)
            labels[member.serialized_name] = text

    def substitute(match: re.Match[str]) -> str:
        label = match.group(1)
        if label not in labels:
            raise MissingRequiredParameter(label)
        return labels[label]

    prefix = _TEMPLATE_LABEL.sub(substitute, operation.host_prefix)
    return replace(endpoint, host=f"{prefix}{endpoint.host}")
