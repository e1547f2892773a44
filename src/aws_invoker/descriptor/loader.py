"""Service descriptor loader for local JSON bundles."""

from __future__ import annotations

import json
from pathlib import Path

from aws_invoker.descriptor.parser import parse_descriptor
from aws_invoker.descriptor.shapes import ServiceDescriptor


def load_descriptor(path: str | Path) -> ServiceDescriptor:
    descriptor_path = Path(path)
    if not descriptor_path.exists():
        raise FileNotFoundError(f"Service descriptor not found: {descriptor_path}")
    with descriptor_path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    return parse_descriptor(data)


def resolve_descriptor_path(base_path: str | Path, service: str) -> Path:
    """Locate ``<base>/<service>/<latest-version>/service-2.json``."""
    service_dir = Path(base_path) / service
    if not service_dir.exists():
        raise FileNotFoundError(f"No descriptors for service '{service}' under {base_path}")

    versions = sorted([p for p in service_dir.iterdir() if p.is_dir()], key=lambda p: p.name)
    if not versions:
        raise FileNotFoundError(f"No descriptor versions for service '{service}'")
    latest = versions[-1]
    candidate = latest / "service-2.json"
    if not candidate.exists():
        candidates = sorted(latest.glob("*.json"))
        if not candidates:
            raise FileNotFoundError(f"No descriptor JSON in {latest}")
        candidate = candidates[0]
    return candidate


def load_service(base_path: str | Path, service: str) -> ServiceDescriptor:
    return load_descriptor(resolve_descriptor_path(base_path, service))
