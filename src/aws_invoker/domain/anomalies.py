"""Anomaly values: structured failures returned instead of raised."""

from __future__ import annotations

from typing import Any

BUSY = "busy"
CONFLICT = "conflict"
FAULT = "fault"
FORBIDDEN = "forbidden"
INCORRECT = "incorrect"
INTERRUPTED = "interrupted"
NOT_FOUND = "not-found"
UNAVAILABLE = "unavailable"
UNSUPPORTED = "unsupported"

CATEGORIES = frozenset(
    {BUSY, CONFLICT, FAULT, FORBIDDEN, INCORRECT, INTERRUPTED, NOT_FOUND, UNAVAILABLE, UNSUPPORTED}
)

CATEGORY_KEY = "anomaly/category"
MESSAGE_KEY = "anomaly/message"
SOURCE_KEY = "anomaly/source"
ERROR_CODE_KEY = "anomaly/error-code"
STATUS_KEY = "http/status"

# Where an anomaly originated.
SOURCE_SERVICE = "service"
SOURCE_TRANSPORT = "transport"
SOURCE_MARSHALLING = "marshalling"
SOURCE_ENDPOINT = "endpoint"
SOURCE_CREDENTIALS = "credentials"
SOURCE_SIGNING = "signing"
SOURCE_UNMARSHALLING = "unmarshalling"
SOURCE_TIMEOUT = "timeout"

_STATUS_CATEGORIES = {
    304: CONFLICT,
    403: FORBIDDEN,
    404: NOT_FOUND,
    409: CONFLICT,
    429: BUSY,
    500: FAULT,
    501: UNSUPPORTED,
    502: UNAVAILABLE,
    503: UNAVAILABLE,
    504: UNAVAILABLE,
}

# Error codes that signal throttling regardless of the HTTP status they arrive with.
THROTTLING_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "RequestThrottledException",
        "TooManyRequestsException",
        "ProvisionedThroughputExceededException",
        "TransactionInProgressException",
        "RequestLimitExceeded",
        "BandwidthLimitExceeded",
        "LimitExceededException",
        "RequestThrottled",
        "SlowDown",
        "PriorRequestNotComplete",
        "EC2ThrottledException",
    }
)

# Error codes reported for transient server-side conditions, sometimes inside a 200 body.
TRANSIENT_ERROR_CODES = {
    "InternalError": UNAVAILABLE,
    "ServiceUnavailable": UNAVAILABLE,
    "RequestTimeout": INTERRUPTED,
    "RequestTimeoutException": INTERRUPTED,
}


class InvocationOutput(dict):
    """The value returned by an invocation.

    Behaves exactly like the result (or anomaly) dict; diagnostics such as the
    last HTTP request/response and the attempt count live on ``metadata`` and
    never take part in equality.
    """

    def __init__(self, data: dict[str, Any] | None = None, metadata: dict[str, Any] | None = None):
        super().__init__(data or {})
        self.metadata: dict[str, Any] = metadata or {}


def status_to_category(status: int) -> str | None:
    if 200 <= status < 300:
        return None
    category = _STATUS_CATEGORIES.get(status)
    if category is not None:
        return category
    if 400 <= status < 500:
        return INCORRECT
    return FAULT


def category_for_error(status: int, error_code: str | None) -> str:
    if error_code:
        if error_code in THROTTLING_ERROR_CODES:
            return BUSY
        if error_code in TRANSIENT_ERROR_CODES:
            return TRANSIENT_ERROR_CODES[error_code]
    return status_to_category(status) or FAULT


def make_anomaly(
    category: str,
    message: str,
    *,
    source: str,
    status: int | None = None,
    error_code: str | None = None,
    **fields: Any,
) -> dict[str, Any]:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown anomaly category: {category}")
    anomaly: dict[str, Any] = dict(fields)
    anomaly[CATEGORY_KEY] = category
    anomaly[MESSAGE_KEY] = message
    anomaly[SOURCE_KEY] = source
    if status is not None:
        anomaly[STATUS_KEY] = status
    if error_code is not None:
        anomaly[ERROR_CODE_KEY] = error_code
    return anomaly


def is_anomaly(value: object) -> bool:
    return isinstance(value, dict) and CATEGORY_KEY in value
