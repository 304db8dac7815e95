"""Tests for the feed message codec and payload types."""

import pytest

from elphie.errors import MalformedMessage, UnknownMessageType
from elphie.feed.messages import EventKind, decode_envelope, decode_message, encode_select_date
from elphie.feed.types import AnalysisPoint, Candle, PendingMetrics, Session, parse_points

from factories import wire_point


class TestEnvelope:
    def test_payload_from_data(self):
        assert decode_envelope('{"type": "analysis_history", "data": []}') == ("analysis_history", [])

    def test_payload_is_whole_message_without_data(self):
        msg = {"type": "server_default_date", "date": "2024-03-15"}
        assert decode_envelope(msg) == ("server_default_date", msg)

    def test_bytes_accepted(self):
        assert decode_envelope(b'{"type": "pending_metrics", "data": null}')[0] == "pending_metrics"

    @pytest.mark.parametrize("raw", ["nope", "[1, 2]", '{"data": 1}', '{"type": 5}', b"\xff\xfe"])
    def test_malformed(self, raw):
        with pytest.raises(MalformedMessage):
            decode_envelope(raw)


class TestDecodeMessage:
    def test_history(self):
        kind, points = decode_message({"type": "analysis_history", "data": [wire_point(60_000)]})
        assert kind is EventKind.HISTORY_SNAPSHOT
        assert points[0].candle == Candle(60_000, 10_000, 10_100, 9_900, 10_050, 1_000)

    def test_null_history_is_empty(self):
        assert decode_message({"type": "analysis_history", "data": None}) == (EventKind.HISTORY_SNAPSHOT, [])

    def test_session_default(self):
        kind, session = decode_message({"type": "server_default_date", "date": "2024-03-15", "ticker": ""})
        assert kind is EventKind.SESSION_DEFAULT
        assert session == Session(date="2024-03-15")

    def test_session_default_bad_date(self):
        with pytest.raises(MalformedMessage):
            decode_message({"type": "server_default_date", "date": "15/03/2024"})

    def test_pending_metrics(self):
        kind, metrics = decode_message({"type": "pending_metrics", "data": {"sweepAtAsk": 2}})
        assert kind is EventKind.PENDING_METRICS
        assert metrics == PendingMetrics(values={"sweepAtAsk": 2})

    def test_unknown(self):
        with pytest.raises(UnknownMessageType) as exc:
            decode_message({"type": "select_date"})
        assert exc.value.message_type == "select_date"


class TestTypes:
    def test_point_from_camel_case(self):
        point = AnalysisPoint.from_dict(
            wire_point(60_000, darkPoolSum=1_500, darkPoolVWAP=10_001, largestDarkPoolTxn=700, sweepRatio=0.25)
        )
        assert point.dark_pool_sum == 1_500
        assert point.dark_pool_vwap == 10_001
        assert point.largest_dark_pool_txn == 700
        assert point.sweep_ratio == 0.25
        assert point.has_dark_pool

    def test_point_to_dict_round_trip_shape(self):
        raw = wire_point(60_000, sweepUnknown=4)
        assert AnalysisPoint.from_dict(raw).to_dict() == raw

    @pytest.mark.parametrize(
        "raw",
        [
            "x",
            {"sweepAtBid": 1},
            {"candle": {"open": 1}},
            {"candle": {"periodStart": "soon"}},
            {"candle": {"periodStart": 1, "open": "high"}},
            {"candle": {"periodStart": 1, "open": float("nan")}},
            {"candle": {"periodStart": 1, "volume": float("inf")}},
            {"candle": {"periodStart": float("inf")}},
            {"candle": {"periodStart": 1, "close": 10**400}},
        ],
    )
    def test_point_malformed(self, raw):
        with pytest.raises(MalformedMessage):
            AnalysisPoint.from_dict(raw)

    def test_parse_points_requires_list(self):
        with pytest.raises(MalformedMessage):
            parse_points({"points": []})

    def test_session_normalizes_date(self):
        assert Session(date=" 2024-03-15 ").date == "2024-03-15"
        with pytest.raises(ValueError):
            Session(date="2024-13-01")


class TestSelectDate:
    def test_date_only(self):
        assert encode_select_date(Session(date="2024-03-15")) == {"type": "select_date", "date": "2024-03-15"}

    def test_with_ticker_and_interval(self):
        msg = encode_select_date(Session(date="2024-03-15", ticker="QQQ", interval="1m"))
        assert msg == {"type": "select_date", "date": "2024-03-15", "ticker": "QQQ", "interval": "1m"}
