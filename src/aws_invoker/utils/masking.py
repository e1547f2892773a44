"""Redaction of credentials and signatures in diagnostic output."""

from __future__ import annotations

_MAX_REDACT_DEPTH = 20

# Substrings of lower-cased keys whose values are never logged.
SENSITIVE_KEY_MARKERS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "accesskey",
    "credential",
    "authorization",
    "signature",
)


def is_sensitive_key(key: object) -> bool:
    lowered = str(key).lower().replace("-", "").replace("_", "")
    return any(marker in lowered for marker in SENSITIVE_KEY_MARKERS)


def redact_sensitive_fields(
    value: object,
    *,
    mask: str = "***",
    depth: int = 0,
    max_depth: int = _MAX_REDACT_DEPTH,
) -> object:
    """Recursively replace values under sensitive keys in dicts and lists.

    Sub-trees deeper than ``max_depth`` are replaced with ``mask`` whole.
    """
    if depth >= max_depth:
        return mask
    if isinstance(value, dict):
        return {
            key: mask
            if is_sensitive_key(key)
            else redact_sensitive_fields(val, mask=mask, depth=depth + 1, max_depth=max_depth)
            for key, val in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [
            redact_sensitive_fields(item, mask=mask, depth=depth + 1, max_depth=max_depth)
            for item in value
        ]
    return value
