"""Partition table models."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, field_validator

from aws_invoker.domain.requests import DEFAULT_PORTS


def _ensure_list(v: Any) -> list:
    if v is None:
        return []
    return v


class GlobalEndpoint(BaseModel):
    hostname: str
    signing_region: str
    # Optional global endpoints are used only when explicitly requested.
    optional: bool = Field(default=False)


class Partition(BaseModel):
    name: str
    region_regex: str
    regions: list[str] = Field(default_factory=list)
    dns_suffix: str
    dualstack_dns_suffix: str | None = None
    supports_fips: bool = Field(default=True)
    supports_dualstack: bool = Field(default=False)
    global_endpoints: dict[str, GlobalEndpoint] = Field(default_factory=dict)

    @field_validator("regions", mode="before")
    @classmethod
    def _validate_regions(cls, v: Any) -> list:
        return _ensure_list(v)

    @field_validator("global_endpoints", mode="before")
    @classmethod
    def _validate_global_endpoints(cls, v: Any) -> dict:
        if v is None:
            return {}
        return v

    @field_validator("region_regex")
    @classmethod
    def _validate_region_regex(cls, v: str) -> str:
        re.compile(v)
        return v

    def matches(self, region: str) -> bool:
        return region in self.regions or re.match(self.region_regex, region) is not None


class PartitionTable(BaseModel):
    version: int = Field(default=1)
    partitions: list[Partition] = Field(default_factory=list)

    @field_validator("partitions", mode="before")
    @classmethod
    def _validate_partitions(cls, v: Any) -> list:
        return _ensure_list(v)

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> "PartitionTable":
        return cls.model_validate(data)

    def find(self, region: str) -> Partition | None:
        for partition in self.partitions:
            if partition.matches(region):
                return partition
        return None


@dataclass(frozen=True)
class Endpoint:
    scheme: str
    host: str
    port: int | None
    path: str
    signing_region: str
    partition: str | None = None

    @property
    def url(self) -> str:
        default_port = DEFAULT_PORTS.get(self.scheme)
        netloc = self.host if self.port in (None, default_port) else f"{self.host}:{self.port}"
        return f"{self.scheme}://{netloc}{self.path}"
