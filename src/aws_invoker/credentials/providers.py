"""Credential tuples and the providers that produce them."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import boto3
from botocore.credentials import RefreshableCredentials
from botocore.exceptions import BotoCoreError

from aws_invoker.errors import CredentialsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialTuple:
    """Immutable AWS credentials handed to the signer."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    expiration: datetime | None = None

    def __repr__(self) -> str:
        expiration = self.expiration.isoformat() if self.expiration else None
        return (
            f"CredentialTuple(access_key_id={self.access_key_id[:8]}***, "
            f"expiration={expiration})"
        )


class CredentialsProvider(Protocol):
    async def fetch(self) -> CredentialTuple: ...


class StaticCredentialsProvider:
    """Always returns the same credentials."""

    def __init__(
        self,
        access_key_id: str,
        secret_access_key: str,
        session_token: str | None = None,
    ) -> None:
        self._credentials = CredentialTuple(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            session_token=session_token,
        )

    async def fetch(self) -> CredentialTuple:
        return self._credentials


class Boto3CredentialsProvider:
    """Resolves credentials through the boto3 session chain.

    Covers environment variables, shared config profiles, container and
    instance metadata. Resolution is blocking so it runs in a worker thread.
    """

    def __init__(self, profile_name: str | None = None, session: Any = None) -> None:
        self._profile_name = profile_name
        self._session = session
        self._lock = threading.Lock()

    def _get_session(self) -> Any:
        if self._session is not None:
            return self._session

        with self._lock:
            if self._session is None:
                self._session = boto3.session.Session(profile_name=self._profile_name)
                logger.info("boto3 session initialized (profile=%s)", self._profile_name or "default")
            return self._session

    async def fetch(self) -> CredentialTuple:
        return await asyncio.to_thread(self._fetch_sync)

    def _fetch_sync(self) -> CredentialTuple:
        try:
            credentials = self._get_session().get_credentials()
            if credentials is None:
                raise CredentialsError("No AWS credentials found in the provider chain")
            frozen = credentials.get_frozen_credentials()
        except BotoCoreError as exc:
            logger.warning("Credential resolution failed: %s", exc)
            raise CredentialsError(f"Credential resolution failed: {exc}") from exc

        expiration = None
        if isinstance(credentials, RefreshableCredentials):
            # botocore exposes no public accessor for the refresh deadline.
            expiration = credentials._expiry_time
        return CredentialTuple(
            access_key_id=frozen.access_key,
            secret_access_key=frozen.secret_key,
            session_token=frozen.token,
            expiration=expiration,
        )
