"""Opaque pagination cursors.

A cursor is URL-safe base64 (unpadded) of a compact JSON document. Rank
cursors pin the RankedSet kind and generation they were issued against, so
a rebuild between two page requests is detected instead of silently
shifting offsets. Time cursors continue the unranked chronological order.
"""

import base64
import binascii
import json
from datetime import datetime
from typing import Annotated

from pydantic import Field, ValidationError

from marketfeed.data_model import StrictBaseModel
from marketfeed.errors import InvalidCursorError
from marketfeed.ranker.models import RankedSetKind


class RankCursor(StrictBaseModel):
    """Position within one RankedSet generation."""

    segment: Annotated[str, Field(min_length=1)]
    source: RankedSetKind
    generation: Annotated[int, Field(ge=1)]
    offset: Annotated[int, Field(ge=0)]


class TimeCursor(StrictBaseModel):
    """Continuation key for the (updated_at DESC, item_id DESC) order."""

    segment: Annotated[str, Field(min_length=1)]
    updated_at: datetime
    item_id: Annotated[str, Field(min_length=1)]


Cursor = RankCursor | TimeCursor

_RANK_TAG = "r"
_TIME_TAG = "t"


def encode_cursor(cursor: Cursor) -> str:
    """Encode a cursor as an opaque token.

    Args:
        cursor: Cursor to encode.

    Returns:
        URL-safe token.
    """
    if isinstance(cursor, RankCursor):
        payload: dict[str, object] = {
            "v": _RANK_TAG,
            "s": cursor.segment,
            "k": cursor.source.value,
            "g": cursor.generation,
            "o": cursor.offset,
        }
    else:
        payload = {
            "v": _TIME_TAG,
            "s": cursor.segment,
            "u": cursor.updated_at.isoformat(),
            "i": cursor.item_id,
        }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_cursor(token: str) -> Cursor:
    """Decode an opaque token.

    Args:
        token: Token produced by encode_cursor.

    Returns:
        The decoded cursor.

    Raises:
        InvalidCursorError: If the token is not a well-formed cursor.
    """
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursorError("not a valid cursor token") from e

    if not isinstance(payload, dict):
        raise InvalidCursorError("not a valid cursor token")

    try:
        if payload.get("v") == _RANK_TAG:
            return RankCursor(
                segment=payload["s"],
                source=payload["k"],
                generation=payload["g"],
                offset=payload["o"],
            )
        if payload.get("v") == _TIME_TAG:
            return TimeCursor(
                segment=payload["s"],
                updated_at=payload["u"],
                item_id=payload["i"],
            )
    except (KeyError, ValidationError) as e:
        raise InvalidCursorError("cursor fields are missing or invalid") from e

    raise InvalidCursorError("unknown cursor variant")
