"""Client values bundling a service descriptor with its collaborators."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

from aws_invoker.config import Settings, load_settings
from aws_invoker.credentials import (
    Boto3CredentialsProvider,
    CachingCredentialsProvider,
    CredentialsProvider,
)
from aws_invoker.descriptor import ServiceDescriptor, load_descriptor, parse_descriptor
from aws_invoker.domain.anomalies import InvocationOutput
from aws_invoker.endpoints import EndpointResolver
from aws_invoker.engine import invoke as _invoke
from aws_invoker.protocols import ProtocolCodec, get_codec
from aws_invoker.retry import RetryPolicy
from aws_invoker.transport.base import Transport
from aws_invoker.transport.http_client import HttpxTransport
from aws_invoker.validation import RequestValidator

logger = logging.getLogger(__name__)


def _coerce_descriptor(api: ServiceDescriptor | Mapping[str, Any] | str | Path) -> ServiceDescriptor:
    if isinstance(api, ServiceDescriptor):
        return api
    if isinstance(api, Mapping):
        return parse_descriptor(dict(api))
    return load_descriptor(api)


class Client:
    """Everything one service needs to invoke operations.

    ``api`` is a parsed descriptor, a raw ``service-2.json`` mapping or a
    path to one. Unset options fall back to the environment settings.
    A transport the client creates itself is closed by ``aclose``; one
    passed in stays owned by the caller.
    """

    def __init__(
        self,
        api: ServiceDescriptor | Mapping[str, Any] | str | Path,
        *,
        region: str | None = None,
        credentials_provider: CredentialsProvider | None = None,
        endpoint_override: str | Mapping[str, Any] | None = None,
        retry_policy: RetryPolicy | None = None,
        validate_requests: bool | None = None,
        transport: Transport | None = None,
        use_dualstack: bool | None = None,
        use_fips: bool | None = None,
        use_global_endpoint: bool = False,
        attempt_timeout: float | None = None,
        error_markers: tuple[str, ...] | None = None,
        settings: Settings | None = None,
        endpoint_resolver: EndpointResolver | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        settings = settings or load_settings()
        self._service = _coerce_descriptor(api)
        self._region = region or settings.aws.default_region
        self._codec: ProtocolCodec = get_codec(self._service.protocol, error_markers=error_markers)
        self._resolver = endpoint_resolver or EndpointResolver()
        self._endpoint_override = (
            endpoint_override if endpoint_override is not None else settings.endpoints.endpoint_url
        )
        self._use_dualstack = settings.endpoints.use_dualstack if use_dualstack is None else use_dualstack
        self._use_fips = settings.endpoints.use_fips if use_fips is None else use_fips
        self._use_global_endpoint = use_global_endpoint
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.retry.max_retries,
            base_delay=settings.retry.base_delay,
            max_backoff=settings.retry.max_backoff,
        )
        self._attempt_timeout = (
            attempt_timeout if attempt_timeout is not None else settings.execution.attempt_timeout_seconds
        )
        if validate_requests is None:
            validate_requests = settings.execution.validate_requests
        self._validator = RequestValidator(self._service) if validate_requests else None
        self._credentials_provider = credentials_provider or CachingCredentialsProvider(
            Boto3CredentialsProvider(profile_name=settings.aws.default_profile),
            refresh_buffer_seconds=settings.credentials.refresh_buffer_seconds,
        )
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport()
        self._sleep = sleep or asyncio.sleep
        self._closed = False
        logger.debug(
            "Client created for %s (protocol=%s, region=%s)",
            self._service.endpoint_prefix,
            self._service.protocol,
            self._region,
        )

    @property
    def service(self) -> ServiceDescriptor:
        return self._service

    @property
    def region(self) -> str | None:
        return self._region

    @property
    def codec(self) -> ProtocolCodec:
        return self._codec

    @property
    def resolver(self) -> EndpointResolver:
        return self._resolver

    @property
    def endpoint_override(self) -> str | Mapping[str, Any] | None:
        return self._endpoint_override

    @property
    def use_dualstack(self) -> bool:
        return self._use_dualstack

    @property
    def use_fips(self) -> bool:
        return self._use_fips

    @property
    def use_global_endpoint(self) -> bool:
        return self._use_global_endpoint

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def attempt_timeout(self) -> float | None:
        return self._attempt_timeout

    @property
    def validator(self) -> RequestValidator | None:
        return self._validator

    @property
    def credentials_provider(self) -> CredentialsProvider:
        return self._credentials_provider

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def closed(self) -> bool:
        return self._closed

    async def sleep(self, delay: float) -> None:
        await self._sleep(delay)

    def operation_names(self) -> list[str]:
        return sorted(self._service.operations)

    async def invoke(
        self,
        op: str,
        request: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> InvocationOutput:
        return await _invoke(self, op, request, timeout=timeout)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"Client(service={self._service.endpoint_prefix!r}, region={self._region!r}, "
            f"protocol={self._service.protocol!r})"
        )
