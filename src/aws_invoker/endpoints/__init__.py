"""Endpoint resolution."""

from aws_invoker.endpoints.models import Endpoint, Partition, PartitionTable
from aws_invoker.endpoints.resolver import (
    EndpointResolver,
    apply_host_prefix,
    load_partitions,
    parse_override,
)

__all__ = [
    "Endpoint",
    "EndpointResolver",
    "Partition",
    "PartitionTable",
    "apply_host_prefix",
    "load_partitions",
    "parse_override",
]
