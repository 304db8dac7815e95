"""Pending (forming) period merger.

Guards the race between a closing period and its successor: a pending update
older than the last closed period is stale and must not repaint the chart.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from elphie.errors import InvalidPoint, StalePendingUpdate
from elphie.feed.types import AnalysisPoint, Candle, PendingMetrics
from elphie.utils import get_logger


class PendingAction(str, Enum):
    APPLY = "apply"
    STALE = "stale"
    INVALID = "invalid"


@dataclass(frozen=True)
class PendingDecision:
    action: PendingAction
    pending: Candle
    reason: str | None = None

    @property
    def applied(self) -> bool:
        return self.action is PendingAction.APPLY


def check_pending(pending: Candle, last_closed: AnalysisPoint | None) -> None:
    """Raise if the pending period must not be applied.

    Raises:
        StalePendingUpdate: pending starts before the last closed period.
        InvalidPoint: any OHLC field is non-positive.
    """
    if last_closed is not None and pending.period_start < last_closed.candle.period_start:
        raise StalePendingUpdate(pending.period_start, last_closed.candle.period_start)
    if not pending.is_valid_price():
        raise InvalidPoint(f"pending period {pending.period_start} has non-positive OHLC")


class PendingMerger:
    """Owns the single current pending period and the latest pending metrics."""

    def __init__(self, logger: structlog.BoundLogger | None = None):
        self.logger = (logger or get_logger("series.pending")).bind(component="pending")
        self._current: Candle | None = None
        self._metrics: PendingMetrics | None = None

    @property
    def current(self) -> Candle | None:
        return self._current

    @property
    def metrics(self) -> PendingMetrics | None:
        return self._metrics

    def set_metrics(self, metrics: PendingMetrics | None) -> None:
        self._metrics = metrics

    def apply_pending(self, pending: Candle, last_closed: AnalysisPoint | None) -> PendingDecision:
        """Decide whether ``pending`` may update the candle series.

        On APPLY the merger remembers ``pending`` as the current forming period;
        the caller hands it to the store.
        """
        try:
            check_pending(pending, last_closed)
        except StalePendingUpdate as e:
            self.logger.debug(
                "pending_stale_discarded",
                pending_start=e.pending_start,
                last_closed_start=e.last_closed_start,
            )
            return PendingDecision(PendingAction.STALE, pending, reason=str(e))
        except InvalidPoint as e:
            return PendingDecision(PendingAction.INVALID, pending, reason=str(e))

        self._current = pending
        return PendingDecision(PendingAction.APPLY, pending)

    def supersede(self, closed: AnalysisPoint) -> bool:
        """Drop the pending period once a closed period at or after it arrives."""
        if self._current is not None and closed.period_start >= self._current.period_start:
            self._current = None
            return True
        return False

    def clear_current(self) -> None:
        self._current = None

    def discard(self) -> None:
        """Drop the pending period and its metrics (session reset)."""
        self._current = None
        self._metrics = None
