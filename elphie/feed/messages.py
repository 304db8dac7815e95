"""Feed message envelope codec.

Server -> client messages are JSON objects ``{"type": ..., ...}``. The payload
is ``message["data"]`` when that key is present, otherwise the whole message
(``server_default_date`` carries its fields top-level).
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Callable

from elphie.errors import MalformedMessage, UnknownMessageType

from .types import AnalysisPoint, Candle, PendingMetrics, Session, parse_points


class EventKind(str, Enum):
    """Bus channels."""

    SESSION_DEFAULT = "session_default"
    HISTORY_SNAPSHOT = "history_snapshot"
    POINT_APPENDED = "point_appended"
    PENDING_PERIOD = "pending_period"
    PENDING_METRICS = "pending_metrics"
    # Transport lifecycle (published by the feed client, never by the server)
    OPEN = "open"
    CLOSE = "close"


# Wire message type -> bus channel
MESSAGE_KINDS: dict[str, EventKind] = {
    "server_default_date": EventKind.SESSION_DEFAULT,
    "analysis_history": EventKind.HISTORY_SNAPSHOT,
    "new_analysis_point": EventKind.POINT_APPENDED,
    "pending_candle": EventKind.PENDING_PERIOD,
    "pending_metrics": EventKind.PENDING_METRICS,
}

PAYLOAD_PARSERS: dict[EventKind, Callable[[Any], Any]] = {
    EventKind.SESSION_DEFAULT: Session.from_dict,
    EventKind.HISTORY_SNAPSHOT: parse_points,
    EventKind.POINT_APPENDED: AnalysisPoint.from_dict,
    EventKind.PENDING_PERIOD: Candle.from_dict,
    EventKind.PENDING_METRICS: PendingMetrics.from_payload,
}


def decode_envelope(raw: str | bytes | dict[str, Any]) -> tuple[str, Any]:
    """Return ``(type, payload)`` for a raw transport message.

    Raises:
        MalformedMessage: not JSON, not an object, or no ``type``.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedMessage(f"message is not valid JSON: {e}") from e
    else:
        message = raw

    if not isinstance(message, dict):
        raise MalformedMessage(f"message must be a JSON object, got {type(message).__name__}")
    message_type = message.get("type")
    if not message_type or not isinstance(message_type, str):
        raise MalformedMessage("message has no 'type'")

    payload = message["data"] if "data" in message else message
    return message_type, payload


def decode_message(raw: str | bytes | dict[str, Any]) -> tuple[EventKind, Any]:
    """Decode and parse a server message into ``(kind, typed payload)``.

    Raises:
        MalformedMessage: envelope or payload failed to parse.
        UnknownMessageType: ``type`` has no bus channel.
    """
    message_type, payload = decode_envelope(raw)
    kind = MESSAGE_KINDS.get(message_type)
    if kind is None:
        raise UnknownMessageType(message_type)
    return kind, PAYLOAD_PARSERS[kind](payload)


def encode_select_date(session: Session) -> dict[str, Any]:
    """Build the client -> server ``select_date`` message."""
    msg: dict[str, Any] = {"type": "select_date", "date": session.date}
    if session.ticker:
        msg["ticker"] = session.ticker
    if session.interval:
        msg["interval"] = session.interval
    return msg
