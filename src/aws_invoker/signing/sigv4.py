"""AWS Signature Version 4 request signing."""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime

from aws_invoker.credentials.providers import CredentialTuple
from aws_invoker.domain.requests import RequestSkeleton
from aws_invoker.errors import SigningError
from aws_invoker.utils.time import amz_date
from aws_invoker.utils.uri import SAFE_CHARS, percent_encode

logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_SHA256 = hashlib.sha256(b"").hexdigest()

# Headers that intermediaries may add or rewrite.
UNSIGNED_HEADERS = frozenset({"authorization", "user-agent", "expect", "x-amzn-trace-id"})

# Signing names whose canonical path is not double-encoded.
SINGLE_ENCODE_SERVICES = frozenset({"s3", "s3-object-lambda", "s3-outposts", "s3express"})


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def payload_hash(request: RequestSkeleton, unsigned_payload: bool = False) -> str:
    body = request.body
    if unsigned_payload or not isinstance(body, (bytes, bytearray)):
        return UNSIGNED_PAYLOAD
    if not body:
        return EMPTY_SHA256
    return hashlib.sha256(body).hexdigest()


def canonical_path(path: str, signing_name: str) -> str:
    if not path:
        return "/"
    if signing_name in SINGLE_ENCODE_SERVICES:
        return path
    return percent_encode(path, safe=SAFE_CHARS + "/")


def canonical_query(pairs: list[tuple[str, str]]) -> str:
    encoded = sorted((percent_encode(key), percent_encode(value)) for key, value in pairs)
    return "&".join(f"{key}={value}" for key, value in encoded)


def canonical_headers(request: RequestSkeleton) -> tuple[str, str]:
    """Return ``(canonical header block, signed header list)``."""
    collected: dict[str, list[str]] = {"host": [request.netloc]}
    for key, value in request.headers.multi_items():
        name = key.lower()
        if name in UNSIGNED_HEADERS or name == "host":
            continue
        collected.setdefault(name, []).append(" ".join(value.split()))
    names = sorted(collected)
    block = "".join(f"{name}:{','.join(collected[name])}\n" for name in names)
    return block, ";".join(names)


def canonical_request(
    request: RequestSkeleton, signing_name: str, body_hash: str
) -> tuple[str, str]:
    headers_block, signed_headers = canonical_headers(request)
    text = "\n".join(
        [
            request.method.upper(),
            canonical_path(request.path, signing_name),
            canonical_query(request.query),
            headers_block,
            signed_headers,
            body_hash,
        ]
    )
    return text, signed_headers


def sign(
    request: RequestSkeleton,
    credentials: CredentialTuple,
    region: str,
    signing_name: str,
    timestamp: datetime,
    *,
    unsigned_payload: bool = False,
) -> RequestSkeleton:
    """Return a copy of ``request`` carrying SigV4 authentication headers.

    Only headers change: ``X-Amz-Date``, ``Authorization``, and when needed
    ``X-Amz-Security-Token`` and ``X-Amz-Content-SHA256``.
    """
    if not credentials.access_key_id or not credentials.secret_access_key:
        raise SigningError("Credentials are missing an access key id or secret access key")
    if not request.host:
        raise SigningError("Cannot sign a request without a host")
    if not region or not signing_name:
        raise SigningError("Region and signing name are required for SigV4")

    signed = request.copy()
    for name in ("Authorization", "X-Amz-Date", "X-Amz-Security-Token", "X-Amz-Content-SHA256"):
        if name in signed.headers:
            del signed.headers[name]

    request_time = amz_date(timestamp)
    date = request_time[:8]
    body_hash = payload_hash(signed, unsigned_payload)

    signed.headers["X-Amz-Date"] = request_time
    if credentials.session_token:
        signed.headers["X-Amz-Security-Token"] = credentials.session_token
    body = signed.body
    has_body = not isinstance(body, (bytes, bytearray)) or len(body) > 0
    if signing_name in SINGLE_ENCODE_SERVICES or has_body or body_hash == UNSIGNED_PAYLOAD:
        signed.headers["X-Amz-Content-SHA256"] = body_hash

    text, signed_headers = canonical_request(signed, signing_name, body_hash)
    scope = f"{date}/{region}/{signing_name}/aws4_request"
    string_to_sign = "\n".join(
        [ALGORITHM, request_time, scope, hashlib.sha256(text.encode("utf-8")).hexdigest()]
    )
    key = derive_signing_key(credentials.secret_access_key, date, region, signing_name)
    signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

    signed.headers["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    logger.debug("Signed %s %s (scope=%s, headers=%s)", signed.method, signed.path, scope, signed_headers)
    return signed
