"""Typed publish/subscribe bus with last-message replay.

One instance is created by the application root and handed to consumers.
Every channel remembers the last payload published on it; a handler that
subscribes after that publish is called once, immediately, with the cached
payload so a late consumer never misses the last known state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import structlog

from elphie.errors import MalformedMessage, UnknownMessageType
from elphie.utils import get_logger

from .messages import EventKind, decode_message

Handler = Callable[[Any], None]

# Replay state for these channels belongs to one connection / session.
DATA_KINDS = (
    EventKind.HISTORY_SNAPSHOT,
    EventKind.POINT_APPENDED,
    EventKind.PENDING_PERIOD,
    EventKind.PENDING_METRICS,
)


@dataclass(eq=False)
class Subscription:
    """Token returned by :meth:`SubscriptionBus.subscribe`."""

    bus: "SubscriptionBus"
    kind: EventKind
    handler: Handler
    active: bool = field(default=True)

    def unsubscribe(self) -> None:
        self.bus.unsubscribe(self)


class SubscriptionBus:
    """Per-kind handler registry with last-payload cache."""

    def __init__(self, logger: structlog.BoundLogger | None = None):
        self.logger = (logger or get_logger("feed.bus")).bind(component="bus")
        self._handlers: dict[EventKind, list[Subscription]] = {kind: [] for kind in EventKind}
        self._latest: dict[EventKind, Any] = {}

    def subscribe(self, kind: EventKind | str, handler: Handler) -> Subscription:
        kind = EventKind(kind)
        sub = Subscription(bus=self, kind=kind, handler=handler)
        self._handlers[kind].append(sub)
        if kind in self._latest:
            self._call(sub, self._latest[kind])
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if not sub.active:
            return
        sub.active = False
        subs = self._handlers.get(sub.kind, [])
        if sub in subs:
            subs.remove(sub)

    def publish(self, kind: EventKind | str, payload: Any = None) -> None:
        kind = EventKind(kind)
        self._latest[kind] = payload
        # Copy: handlers may (un)subscribe or trigger a resync while we iterate.
        for sub in list(self._handlers[kind]):
            if sub.active:
                self._call(sub, payload)

    def latest(self, kind: EventKind | str) -> Any:
        return self._latest.get(EventKind(kind))

    def has_latest(self, kind: EventKind | str) -> bool:
        return EventKind(kind) in self._latest

    def clear_cache(self, kinds: tuple[EventKind, ...] | None = None) -> None:
        """Drop replay state (all kinds by default)."""
        if kinds is None:
            self._latest.clear()
            return
        for kind in kinds:
            self._latest.pop(kind, None)

    def handler_count(self, kind: EventKind | str) -> int:
        return len(self._handlers[EventKind(kind)])

    def dispatch(self, raw: str | bytes | dict[str, Any]) -> EventKind | None:
        """Decode a raw transport message and publish it.

        Malformed messages are dropped and logged; unknown types are ignored.
        Returns the channel the message was published on, or None.
        """
        try:
            kind, payload = decode_message(raw)
        except UnknownMessageType as e:
            self.logger.debug("feed_message_unknown", message_type=e.message_type)
            return None
        except MalformedMessage as e:
            self.logger.warning("feed_message_malformed", error=str(e))
            return None
        except (ValueError, TypeError, OverflowError) as e:
            self.logger.warning("feed_message_malformed", error=str(e), error_type=type(e).__name__)
            return None

        if kind is EventKind.HISTORY_SNAPSHOT:
            self.logger.info("history_snapshot_received", points=len(payload))
        self.publish(kind, payload)
        return kind

    def _call(self, sub: Subscription, payload: Any) -> None:
        try:
            sub.handler(payload)
        except Exception as e:
            self.logger.error(
                "bus_handler_failed",
                kind=sub.kind.value,
                handler=getattr(sub.handler, "__qualname__", repr(sub.handler)),
                error=str(e),
            )
