"""httpx-backed transport."""

from __future__ import annotations

import logging

import httpx

from aws_invoker.domain.anomalies import INTERRUPTED, UNAVAILABLE
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton, normalize_headers
from aws_invoker.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class HttpxTransport:
    """Shared ``httpx.AsyncClient`` handle.

    The transport owns the client it creates and closes it on ``aclose``;
    a client passed in stays owned by the caller.
    """

    def __init__(
        self,
        *,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
        verify: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, verify=verify, follow_redirects=False)

    async def send(self, request: RequestSkeleton) -> HttpResponse:
        body = request.body
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=body if body else None,
            )
        except httpx.ConnectTimeout as exc:
            raise TransportError(f"Connection timed out: {exc}", UNAVAILABLE) from exc
        except httpx.ConnectError as exc:
            raise TransportError(f"Connection failed: {exc}", UNAVAILABLE) from exc
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timed out: {exc}", INTERRUPTED) from exc
        except (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError) as exc:
            raise TransportError(f"Connection interrupted: {exc}", INTERRUPTED) from exc
        except httpx.TransportError as exc:
            raise TransportError(f"Transport failure: {exc}", UNAVAILABLE) from exc

        logger.debug("%s %s -> %s", request.method, request.url, response.status_code)
        return HttpResponse(
            status=response.status_code,
            headers=normalize_headers(response.headers),
            body=response.content,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
