from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer


def _decode_b64(value):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise ValueError("expected base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("invalid base64") from e


def _encode_b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; everything stored is UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Raw bytes on the Python side, standard base64 text on the wire
B64Bytes = Annotated[bytes, BeforeValidator(_decode_b64), PlainSerializer(_encode_b64, return_type=str)]

UtcDateTime = Annotated[datetime, BeforeValidator(_as_utc)]
