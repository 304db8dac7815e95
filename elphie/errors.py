"""Error kinds raised at the points where feed data enters the engine.

None of these are meant to reach the chart surface: each is caught and logged
at the boundary that produced it (bus dispatch, controller handlers, the feed
client loop).
"""

from __future__ import annotations


class ElphieError(Exception):
    """Base class for feed engine errors."""


class MalformedMessage(ElphieError):
    """Payload failed to parse, lacks a ``type`` or has the wrong shape."""


class UnknownMessageType(ElphieError):
    """Envelope ``type`` is not one the engine understands."""

    def __init__(self, message_type: str):
        super().__init__(f"unknown message type: {message_type!r}")
        self.message_type = message_type


class InvalidPoint(ElphieError):
    """Point or pending period carries a non-positive OHLC field."""


class StalePendingUpdate(ElphieError):
    """Pending period is older than the last closed period."""

    def __init__(self, pending_start: int, last_closed_start: int):
        super().__init__(
            f"pending period {pending_start} is older than last closed period {last_closed_start}"
        )
        self.pending_start = pending_start
        self.last_closed_start = last_closed_start


class TransportLost(ElphieError):
    """Feed websocket closed unexpectedly."""
