"""Scalar coercion and formatting shared by every protocol codec."""

from __future__ import annotations

import base64
import binascii
import calendar
import math
from datetime import datetime, timezone
from email.utils import formatdate

from botocore.serialize import ISO8601, ISO8601_MICRO
from botocore.utils import parse_timestamp, parse_to_aware_datetime

from aws_invoker.descriptor.shapes import Member, ScalarShape
from aws_invoker.errors import InvalidParameterValue

INTEGER_TYPES = frozenset({"integer", "long", "short", "byte", "bigInteger"})
FLOAT_TYPES = frozenset({"float", "double", "bigDecimal"})

_INTEGER_RANGES = {
    "byte": (-128, 127),
    "short": (-32768, 32767),
    "integer": (-2147483648, 2147483647),
    "long": (-9223372036854775808, 9223372036854775807),
}

ISO8601_FORMAT = "iso8601"
RFC822_FORMAT = "rfc822"
UNIX_FORMAT = "unixTimestamp"


def timestamp_format_for(member: Member | None, shape: ScalarShape, default: str) -> str:
    if member is not None and member.timestamp_format:
        return member.timestamp_format
    return shape.timestamp_format or default


def coerce_integer(value: object, path: str, type_name: str = "integer") -> int:
    if isinstance(value, bool):
        raise InvalidParameterValue(f"Expected integer for '{path}', got boolean", path=path)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        try:
            result = int(value)
        except ValueError:
            raise InvalidParameterValue(
                f"Cannot convert '{value}' to integer for '{path}'", path=path
            ) from None
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidParameterValue(
                f"Cannot convert float {value} with decimal part to integer for '{path}'",
                path=path,
            )
        result = int(value)
    else:
        raise InvalidParameterValue(
            f"Expected integer for '{path}', got {type(value).__name__}", path=path
        )

    if type_name in _INTEGER_RANGES:
        min_val, max_val = _INTEGER_RANGES[type_name]
        if result < min_val or result > max_val:
            raise InvalidParameterValue(
                f"Value {result} out of range for {type_name} '{path}' "
                f"(valid: {min_val} to {max_val})",
                path=path,
            )
    return result


def coerce_float(value: object, path: str) -> float:
    if isinstance(value, bool):
        raise InvalidParameterValue(f"Expected number for '{path}', got boolean", path=path)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise InvalidParameterValue(
                f"Cannot convert '{value}' to number for '{path}'", path=path
            ) from None
    raise InvalidParameterValue(f"Expected number for '{path}', got {type(value).__name__}", path=path)


def coerce_boolean(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lower = value.lower()
        if lower == "true":
            return True
        if lower == "false":
            return False
    raise InvalidParameterValue(f"Expected boolean for '{path}', got {value!r}", path=path)


def coerce_string(shape: ScalarShape, value: object, path: str) -> str:
    if isinstance(value, str):
        text = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        text = str(value)
    else:
        raise InvalidParameterValue(
            f"Expected string for '{path}', got {type(value).__name__}", path=path
        )
    return text


def coerce_blob(value: object, path: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise InvalidParameterValue(
        f"Expected bytes or string for blob '{path}', got {type(value).__name__}", path=path
    )


def encode_blob(value: object, path: str) -> str:
    return base64.b64encode(coerce_blob(value, path)).decode("ascii")


def coerce_timestamp(value: object, path: str) -> datetime:
    if isinstance(value, bool):
        raise InvalidParameterValue(f"Expected timestamp for '{path}', got boolean", path=path)
    try:
        return parse_to_aware_datetime(value)
    except (ValueError, TypeError) as exc:
        raise InvalidParameterValue(f"Invalid timestamp for '{path}': {value!r}", path=path) from exc


def format_timestamp(value: object, fmt: str, path: str) -> str | int | float:
    moment = coerce_timestamp(value, path).astimezone(timezone.utc)
    if fmt == UNIX_FORMAT:
        epoch = calendar.timegm(moment.timetuple()) + moment.microsecond / 1_000_000
        return int(epoch) if epoch.is_integer() else round(epoch, 3)
    if fmt == RFC822_FORMAT:
        return formatdate(calendar.timegm(moment.timetuple()), usegmt=True)
    if moment.microsecond:
        return moment.strftime(ISO8601_MICRO)
    return moment.strftime(ISO8601)


def format_float(value: float) -> str | float:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def scalar_to_text(
    shape: ScalarShape,
    value: object,
    path: str,
    *,
    member: Member | None = None,
    timestamp_default: str = ISO8601_FORMAT,
) -> str:
    """Render a scalar for text positions (query strings, headers, XML, forms)."""
    kind = shape.type
    if kind in INTEGER_TYPES:
        return str(coerce_integer(value, path, kind))
    if kind in FLOAT_TYPES:
        return str(format_float(coerce_float(value, path)))
    if kind == "boolean":
        return "true" if coerce_boolean(value, path) else "false"
    if kind == "blob":
        return encode_blob(value, path)
    if kind == "timestamp":
        fmt = timestamp_format_for(member, shape, timestamp_default)
        return str(format_timestamp(value, fmt, path))
    return coerce_string(shape, value, path)


def text_to_scalar(shape: ScalarShape, text: str) -> object:
    """Decode a scalar received as text (XML, headers)."""
    kind = shape.type
    if kind in INTEGER_TYPES:
        return int(text)
    if kind in FLOAT_TYPES:
        return parse_float(text)
    if kind == "boolean":
        return text.strip().lower() == "true"
    if kind == "blob":
        return decode_blob(text)
    if kind == "timestamp":
        return parse_timestamp(text)
    return text


def parse_float(value: object) -> float:
    if value == "NaN":
        return math.nan
    if value == "Infinity":
        return math.inf
    if value == "-Infinity":
        return -math.inf
    return float(value)  # type: ignore[arg-type]


def decode_blob(text: str) -> bytes:
    try:
        return base64.b64decode(text)
    except (binascii.Error, ValueError):
        return text.encode("utf-8")
