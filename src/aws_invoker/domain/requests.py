"""Wire-level request and response values."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from aws_invoker.utils.uri import encode_query

DEFAULT_PORTS = {"https": 443, "http": 80}


@dataclass
class RequestSkeleton:
    """An HTTP request under construction.

    ``query`` is an ordered list of pairs so keys may repeat; ``headers`` is an
    ``httpx.Headers`` which is ordered, case-insensitive and multi-valued.
    ``body`` is either bytes or a raw stream handed through untouched.
    """

    method: str = "POST"
    path: str = "/"
    query: list[tuple[str, str]] = field(default_factory=list)
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Any = b""
    scheme: str = "https"
    host: str = ""
    port: int | None = None

    @property
    def netloc(self) -> str:
        if self.port is None or DEFAULT_PORTS.get(self.scheme) == self.port:
            return self.host
        return f"{self.host}:{self.port}"

    @property
    def url(self) -> str:
        url = f"{self.scheme}://{self.netloc}{self.path}"
        if self.query:
            url = f"{url}?{encode_query(self.query)}"
        return url

    def copy(self) -> "RequestSkeleton":
        return RequestSkeleton(
            method=self.method,
            path=self.path,
            query=list(self.query),
            headers=httpx.Headers(self.headers.multi_items()),
            body=self.body,
            scheme=self.scheme,
            host=self.host,
            port=self.port,
        )

    def describe(self) -> dict[str, object]:
        body = self.body
        return {
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers.items()),
            "body_length": len(body) if isinstance(body, (bytes, bytearray)) else None,
        }


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def describe(self) -> dict[str, object]:
        return {
            "status": self.status,
            "headers": dict(self.headers),
            "body_length": len(self.body),
        }


def normalize_headers(headers: Mapping[str, str] | httpx.Headers) -> dict[str, str]:
    if isinstance(headers, httpx.Headers):
        return {key: value for key, value in headers.items()}
    return {str(key).lower(): str(value) for key, value in headers.items()}
