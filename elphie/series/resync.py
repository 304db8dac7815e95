"""Resync controller: session selection and reconnect state machine.

IDLE    no snapshot applied for the selected session (awaiting one)
LOADED  the selected session's snapshot is on the chart

Selecting a session (user choice or a server-pushed default) and losing the
transport both force IDLE: the store is reset and the pending period dropped
before anything else happens. Appends and pending updates are ignored while
IDLE, so late traffic from the previous session cannot leak onto the new one.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

import structlog

from elphie.feed.bus import Subscription, SubscriptionBus
from elphie.feed.messages import EventKind
from elphie.feed.types import AnalysisPoint, Candle, PendingMetrics, Session
from elphie.utils import get_logger

from .pending import PendingAction, PendingDecision, PendingMerger
from .store import SeriesStore

SessionSender = Callable[[Session], None]


class ControllerState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"


class ResyncController:
    """Gates feed traffic into the store according to session state."""

    def __init__(
        self,
        store: SeriesStore,
        merger: PendingMerger,
        send_session: SessionSender | None = None,
        *,
        require_session: bool = False,
        logger: structlog.BoundLogger | None = None,
    ):
        self.store = store
        self.merger = merger
        self.send_session = send_session
        self.require_session = require_session
        self.logger = (logger or get_logger("series.resync")).bind(component="resync")
        self.state = ControllerState.IDLE
        self.session: Session | None = None
        self._subscriptions: list[Subscription] = []

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self, bus: SubscriptionBus) -> None:
        """Subscribe every handler to its bus channel."""
        handlers: dict[EventKind, Callable[[Any], None]] = {
            EventKind.SESSION_DEFAULT: self.on_session_default,
            EventKind.HISTORY_SNAPSHOT: self.on_history_snapshot,
            EventKind.POINT_APPENDED: self.on_point_appended,
            EventKind.PENDING_PERIOD: self.on_pending_period,
            EventKind.PENDING_METRICS: self.on_pending_metrics,
            EventKind.OPEN: lambda _payload: self.on_transport_open(),
            EventKind.CLOSE: lambda _payload: self.on_transport_lost(),
        }
        for kind, handler in handlers.items():
            self._subscriptions.append(bus.subscribe(kind, handler))

    def detach(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions.clear()

    @property
    def is_loaded(self) -> bool:
        return self.state is ControllerState.LOADED

    # ------------------------------------------------------------------
    # Session changes
    # ------------------------------------------------------------------

    def _go_idle(self) -> None:
        self.state = ControllerState.IDLE
        self.merger.discard()
        self.store.reset()

    def select_session(self, session: Session) -> None:
        """Switch to ``session``: drop all derived state, then request its history."""
        self._go_idle()
        self.session = session
        self.logger.info(
            "session_selected",
            date=session.date,
            ticker=session.ticker,
            interval=session.interval,
        )
        if self.send_session is not None:
            self.send_session(session)

    def on_session_default(self, session: Session | None) -> None:
        if session is None:
            return
        self.select_session(session)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def on_history_snapshot(self, points: list[AnalysisPoint]) -> None:
        if self.require_session and self.session is None:
            self.logger.warning("snapshot_without_session_ignored", points=len(points))
            return
        self.store.load_snapshot(points)
        self.state = ControllerState.LOADED

        pending = self.merger.current
        if pending is not None:
            self._apply_pending(pending)

    def on_point_appended(self, point: AnalysisPoint) -> None:
        if not self.is_loaded:
            self.logger.debug("append_while_idle_ignored", period_start=point.period_start)
            return
        self.store.append_point(point)
        self.merger.supersede(point)

    def on_pending_period(self, pending: Candle) -> PendingDecision | None:
        if not self.is_loaded:
            self.logger.debug("pending_while_idle_ignored", period_start=pending.period_start)
            return None
        return self._apply_pending(pending)

    def on_pending_metrics(self, metrics: PendingMetrics) -> None:
        if not self.is_loaded:
            return
        self.merger.set_metrics(metrics)

    def _apply_pending(self, pending: Candle) -> PendingDecision:
        decision = self.merger.apply_pending(pending, self.store.last_point())
        if decision.action is PendingAction.APPLY:
            self.store.apply_pending_candle(pending)
        elif decision.action is PendingAction.STALE and self.merger.current is pending:
            self.merger.clear_current()
        return decision

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------

    def on_transport_lost(self) -> None:
        """Connection dropped: wait for a fresh snapshot after reconnect."""
        if self.state is ControllerState.LOADED or len(self.store):
            self.logger.warning("transport_lost_resetting", session=self.session.date if self.session else None)
        self._go_idle()

    def on_transport_open(self) -> None:
        """Connection (re)established: ask for the last selected session again."""
        if self.session is None:
            return
        if self.state is not ControllerState.IDLE:
            self._go_idle()
        self.logger.info("session_resent", date=self.session.date)
        if self.send_session is not None:
            self.send_session(self.session)
