"""Request signing."""

from aws_invoker.signing.sigv4 import (
    UNSIGNED_PAYLOAD,
    canonical_request,
    derive_signing_key,
    sign,
)

__all__ = ["UNSIGNED_PAYLOAD", "canonical_request", "derive_signing_key", "sign"]
