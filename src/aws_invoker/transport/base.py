"""Transport contract and a thread-backed adapter for blocking senders."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from aws_invoker.domain.requests import HttpResponse, RequestSkeleton


class Transport(Protocol):
    """Sends a finished request.

    Connection, DNS, timeout and reset failures are raised as
    ``TransportError`` with the category they map to. Any HTTP status,
    including 4xx and 5xx, is a normal return.
    """

    async def send(self, request: RequestSkeleton) -> HttpResponse: ...

    async def aclose(self) -> None: ...


class ThreadedTransport:
    """Runs a synchronous ``send`` in a worker thread.

    Cancelling the awaiting task stops waiting immediately; the blocking
    call itself finishes in the background and its result is discarded.
    """

    def __init__(
        self,
        send_fn: Callable[[RequestSkeleton], HttpResponse],
        close_fn: Callable[[], None] | None = None,
    ) -> None:
        self._send_fn = send_fn
        self._close_fn = close_fn

    async def send(self, request: RequestSkeleton) -> HttpResponse:
        return await asyncio.to_thread(self._send_fn, request)

    async def aclose(self) -> None:
        if self._close_fn is not None:
            await asyncio.to_thread(self._close_fn)
