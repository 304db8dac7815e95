"""Feed transport, message codec and subscription bus."""

from .types import AnalysisPoint, Candle, PendingMetrics, PendingPeriod, Session
from .messages import EventKind, decode_message, encode_select_date
from .bus import Subscription, SubscriptionBus
from .client import FeedClient

__all__ = [
    "AnalysisPoint",
    "Candle",
    "PendingMetrics",
    "PendingPeriod",
    "Session",
    "EventKind",
    "decode_message",
    "encode_select_date",
    "Subscription",
    "SubscriptionBus",
    "FeedClient",
]
