"""Credential cache with async single-flight refresh."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from aws_invoker.credentials.providers import CredentialsProvider, CredentialTuple
from aws_invoker.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    credentials: CredentialTuple
    cached_at: datetime

    @property
    def expiration(self) -> datetime | None:
        return self.credentials.expiration

    def is_expiring_soon(self, buffer_seconds: int) -> bool:
        exp = self.expiration
        if exp is None:
            return False
        if exp.tzinfo is None:
            exp = exp.replace(tzinfo=timezone.utc)
        return exp <= utc_now() + timedelta(seconds=buffer_seconds)

    @classmethod
    def from_credentials(cls, creds: CredentialTuple) -> "CacheEntry":
        return cls(credentials=creds, cached_at=utc_now())


class CachingCredentialsProvider:
    """Wraps a provider and refreshes at most once at a time.

    Concurrent callers that find the cached tuple missing or close to
    expiry wait on the same in-flight refresh. Entries are replaced whole,
    so readers never see a partially updated tuple.
    """

    def __init__(self, provider: CredentialsProvider, refresh_buffer_seconds: int = 300) -> None:
        self._provider = provider
        self._refresh_buffer_seconds = refresh_buffer_seconds
        self._entry: CacheEntry | None = None
        self._in_flight: asyncio.Future[CredentialTuple] | None = None
        self._lock = asyncio.Lock()

    async def fetch(self) -> CredentialTuple:
        while True:
            async with self._lock:
                entry = self._entry
                if entry and not entry.is_expiring_soon(self._refresh_buffer_seconds):
                    return entry.credentials

                in_flight = self._in_flight
                if in_flight is None:
                    in_flight = asyncio.get_running_loop().create_future()
                    self._in_flight = in_flight
                    should_refresh = True
                else:
                    should_refresh = False

            if should_refresh:
                break
            try:
                return await asyncio.shield(in_flight)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                # The refreshing caller was cancelled, not this one; retry.
                if in_flight.cancelled() and task is not None and not task.cancelling():
                    continue
                raise

        try:
            creds = await self._provider.fetch()
        except BaseException as exc:
            async with self._lock:
                future, self._in_flight = self._in_flight, None
                if future and not future.done():
                    if isinstance(exc, asyncio.CancelledError):
                        future.cancel()
                    else:
                        future.set_exception(exc)
                        # Mark retrieved so a refresh nobody waited on stays quiet.
                        future.exception()
            raise

        async with self._lock:
            self._entry = CacheEntry.from_credentials(creds)
            future, self._in_flight = self._in_flight, None
            if future and not future.done():
                future.set_result(creds)

        logger.debug("Credentials refreshed (expiration=%s)", creds.expiration)
        return creds

    def invalidate(self) -> None:
        self._entry = None
