"""Percent-encoding helpers shared by codecs and the signer."""

from __future__ import annotations

from urllib.parse import quote

# RFC 3986 unreserved characters are never encoded.
SAFE_CHARS = "-._~"


def percent_encode(value: object, safe: str = SAFE_CHARS) -> str:
    if isinstance(value, bytes):
        return quote(value, safe=safe)
    return quote(str(value).encode("utf-8"), safe=safe)


def encode_query(pairs: list[tuple[str, str]]) -> str:
    return "&".join(f"{percent_encode(key)}={percent_encode(value)}" for key, value in pairs)


def join_paths(prefix: str, path: str) -> str:
    """Join an endpoint base path and an operation path with a single slash."""
    prefix = prefix.rstrip("/")
    if not path.startswith("/"):
        path = "/" + path
    return (prefix + path) or "/"
