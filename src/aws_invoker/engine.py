"""Invocation engine: marshal once, then resolve, sign, send and decode per attempt."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from aws_invoker.descriptor.shapes import OperationSpec
from aws_invoker.domain.anomalies import (
    FAULT,
    INCORRECT,
    INTERRUPTED,
    SOURCE_CREDENTIALS,
    SOURCE_ENDPOINT,
    SOURCE_MARSHALLING,
    SOURCE_SIGNING,
    SOURCE_TIMEOUT,
    SOURCE_TRANSPORT,
    SOURCE_UNMARSHALLING,
    InvocationOutput,
    is_anomaly,
    make_anomaly,
)
from aws_invoker.domain.requests import HttpResponse, RequestSkeleton
from aws_invoker.endpoints import apply_host_prefix
from aws_invoker.errors import (
    CredentialsError,
    MarshallingError,
    NoKnownEndpoint,
    SigningError,
    TransportError,
    UnknownShape,
    UnmarshallingError,
    ValidationFailed,
)
from aws_invoker.protocols import prepare_input
from aws_invoker.signing import sign
from aws_invoker.utils.masking import redact_sensitive_fields
from aws_invoker.utils.time import utc_now
from aws_invoker.utils.uri import join_paths

if TYPE_CHECKING:
    from aws_invoker.client import Client

logger = logging.getLogger(__name__)

USER_AGENT = "aws-invoker/0.1.0"

VALIDATION_KEY = "validation/errors"


@dataclass
class _Attempt:
    output: dict[str, Any]
    request: RequestSkeleton | None = None
    response: HttpResponse | None = None


async def invoke(
    client: "Client",
    op: str,
    request: Mapping[str, Any] | None = None,
    *,
    timeout: float | None = None,
) -> InvocationOutput:
    """Invoke ``op`` and return its result map or an anomaly map.

    ``timeout`` is an overall deadline in seconds across every attempt and
    backoff. Unknown operation names raise ``UnknownOperation``; every other
    failure comes back as an anomaly.
    """
    service = client.service
    operation = service.operation(op)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None

    marshalled = _marshal(client, operation, request)
    if isinstance(marshalled, InvocationOutput):
        return marshalled
    params, skeleton = marshalled

    attempt = 0
    while True:
        attempt += 1
        attempt_timeout = client.attempt_timeout
        if deadline is not None:
            remaining = deadline - loop.time()
            attempt_timeout = remaining if attempt_timeout is None else min(attempt_timeout, remaining)

        result = await _run_attempt(client, operation, params, skeleton, attempt_timeout)
        metadata = {
            "http_request": result.request,
            "http_response": result.response,
            "attempts": attempt,
        }
        if not is_anomaly(result.output):
            logger.debug("%s.%s succeeded after %d attempt(s)", service.endpoint_prefix, op, attempt)
            return InvocationOutput(result.output, metadata)

        delay = client.retry_policy.should_retry(attempt, result.output)
        if delay is None:
            logger.debug(
                "%s.%s failed after %d attempt(s): %s",
                service.endpoint_prefix,
                op,
                attempt,
                result.output.get("anomaly/category"),
            )
            return InvocationOutput(result.output, metadata)

        if deadline is not None and loop.time() + delay >= deadline:
            logger.info("%s.%s deadline reached after %d attempt(s)", service.endpoint_prefix, op, attempt)
            anomaly = make_anomaly(
                INTERRUPTED,
                f"Deadline of {timeout}s exceeded after {attempt} attempt(s)",
                source=SOURCE_TIMEOUT,
                **{"anomaly/last": result.output},
            )
            return InvocationOutput(anomaly, metadata)

        logger.info(
            "Retrying %s.%s (attempt %d, category=%s, delay=%.3fs)",
            service.endpoint_prefix,
            op,
            attempt,
            result.output.get("anomaly/category"),
            delay,
        )
        await client.sleep(delay)


def _marshal(
    client: "Client", operation: OperationSpec, request: Mapping[str, Any] | None
) -> tuple[dict[str, Any], RequestSkeleton] | InvocationOutput:
    service = client.service
    try:
        params = prepare_input(service, operation, dict(request or {}))
        if client.validator is not None:
            client.validator.validate(operation, params)
        skeleton = client.codec.marshal(service, operation, params)
    except ValidationFailed as exc:
        return InvocationOutput(
            make_anomaly(
                INCORRECT,
                str(exc),
                source=SOURCE_MARSHALLING,
                error_code=exc.code,
                **{VALIDATION_KEY: exc.details},
            ),
            {"attempts": 0},
        )
    except MarshallingError as exc:
        fields = {"anomaly/path": exc.path} if exc.path else {}
        return InvocationOutput(
            make_anomaly(INCORRECT, str(exc), source=SOURCE_MARSHALLING, error_code=exc.code, **fields),
            {"attempts": 0},
        )
    except UnknownShape as exc:
        return InvocationOutput(
            make_anomaly(FAULT, str(exc), source=SOURCE_MARSHALLING, error_code=exc.code),
            {"attempts": 0},
        )
    skeleton.headers.setdefault("User-Agent", USER_AGENT)
    return params, skeleton


async def _run_attempt(
    client: "Client",
    operation: OperationSpec,
    params: dict[str, Any],
    skeleton: RequestSkeleton,
    attempt_timeout: float | None,
) -> _Attempt:
    service = client.service
    try:
        endpoint = client.resolver.resolve(
            service,
            client.region,
            use_dualstack=client.use_dualstack,
            use_fips=client.use_fips,
            use_global_endpoint=client.use_global_endpoint,
            override=client.endpoint_override,
        )
        endpoint = apply_host_prefix(endpoint, operation, params, service.shapes)
    except NoKnownEndpoint as exc:
        return _Attempt(make_anomaly(FAULT, str(exc), source=SOURCE_ENDPOINT, error_code=exc.code))
    except MarshallingError as exc:
        return _Attempt(make_anomaly(INCORRECT, str(exc), source=SOURCE_ENDPOINT, error_code=exc.code))

    request = skeleton.copy()
    request.scheme = endpoint.scheme
    request.host = endpoint.host
    request.port = endpoint.port
    if endpoint.path not in ("", "/"):
        if skeleton.path in ("", "/"):
            request.path = endpoint.path
        else:
            request.path = join_paths(endpoint.path, skeleton.path)

    if operation.auth_type != "none":
        try:
            credentials = await client.credentials_provider.fetch()
        except CredentialsError as exc:
            return _Attempt(
                make_anomaly(FAULT, str(exc), source=SOURCE_CREDENTIALS, error_code=exc.code), request
            )
        try:
            request = sign(
                request,
                credentials,
                endpoint.signing_region,
                service.signing_name,
                utc_now(),
                unsigned_payload=operation.auth_type == "v4-unsigned-body",
            )
        except SigningError as exc:
            return _Attempt(make_anomaly(FAULT, str(exc), source=SOURCE_SIGNING, error_code=exc.code), request)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Sending %s", redact_sensitive_fields(request.describe()))

    try:
        if attempt_timeout is None:
            response = await client.transport.send(request)
        else:
            response = await asyncio.wait_for(client.transport.send(request), timeout=max(attempt_timeout, 0))
    except TransportError as exc:
        logger.warning("Transport failure for %s %s: %s", request.method, request.host, exc)
        return _Attempt(
            make_anomaly(exc.category, str(exc), source=SOURCE_TRANSPORT, error_code=exc.code), request
        )
    except asyncio.TimeoutError:
        logger.warning("Attempt timed out after %.3fs for %s %s", attempt_timeout, request.method, request.host)
        return _Attempt(
            make_anomaly(INTERRUPTED, f"Attempt timed out after {attempt_timeout}s", source=SOURCE_TIMEOUT),
            request,
        )

    try:
        output = client.codec.unmarshal(service, operation, response)
    except (UnmarshallingError, ValueError) as exc:
        return _Attempt(
            make_anomaly(
                FAULT,
                f"Could not decode response: {exc}",
                source=SOURCE_UNMARSHALLING,
                status=response.status,
            ),
            request,
            response,
        )
    return _Attempt(output, request, response)
