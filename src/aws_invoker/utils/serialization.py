"""JSON serialization of decoded results."""

from __future__ import annotations

import base64
import datetime
import decimal
import json
from typing import Any


def json_default(obj: object) -> object:
    """Fallback for values ``json`` cannot encode: timestamps, blobs and streams."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, decimal.Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return str(obj)
    if isinstance(obj, (bytes, bytearray)):
        try:
            return bytes(obj).decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(bytes(obj)).decode("ascii")
    return str(obj)


def dumps(value: Any, *, indent: int | None = 2) -> str:
    return json.dumps(value, default=json_default, indent=indent, ensure_ascii=False)
