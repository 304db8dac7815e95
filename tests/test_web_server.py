import json

import pytest
from fastapi.testclient import TestClient
from sse_starlette.sse import EventSourceResponse

from elphie.feed.messages import EventKind
from elphie.main import ElphieViewer
from elphie.web.server import chart_events, create_app

from factories import make_pending, make_point


@pytest.fixture
def viewer(settings):
    v = ElphieViewer(settings)
    yield v
    v.controller.detach()
    v.binder.close()
    v.index.close()


@pytest.fixture
def client(viewer):
    return TestClient(create_app(viewer))


def test_health(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["state"] == "idle"
    assert body["connected"] is False
    assert body["session"] is None


def test_series_after_snapshot(viewer, client):
    viewer.bus.publish(EventKind.HISTORY_SNAPSHOT, [make_point(60_000), make_point(120_000)])
    viewer.bus.publish(EventKind.PENDING_PERIOD, make_pending(180_000))

    body = client.get("/series").json()
    assert body["state"] == "loaded"
    assert [p["time"] for p in body["series"]["candles"]] == [60, 120, 180]
    assert body["pendingCandle"]["periodStart"] == 180_000
    assert body["pendingMetrics"] is None
    assert body["visibleRange"] == {"from": 60, "to": 420}
    assert body["options"]["candles"]["type"] == "candlestick"


def test_point_lookup(viewer, client):
    viewer.bus.publish(EventKind.HISTORY_SNAPSHOT, [make_point(60_000, sweep_at_bid=12)])

    body = client.get("/point/60").json()
    assert body["time"] == 60
    assert body["point"]["sweepAtBid"] == 12
    assert body["legend"]["sweeps"].startswith("Bid: 12")

    assert client.get("/point/61").json() == {"point": None}
    assert client.get("/point/60.0").json()["time"] == 60
    assert client.get("/point/abc").status_code == 422


def test_select_session(viewer, client, monkeypatch):
    monkeypatch.setattr(viewer.settings, "default_interval", None)
    viewer.bus.publish(EventKind.HISTORY_SNAPSHOT, [make_point(60_000)])

    response = client.post("/session", json={"date": "2024-03-15", "ticker": "SPY"})
    assert response.status_code == 200
    assert response.json()["selected"] == {"date": "2024-03-15", "ticker": "SPY", "interval": None}
    assert viewer.controller.session.ticker == "SPY"
    assert viewer.controller.state.value == "idle"
    assert len(viewer.store) == 0

    health = client.get("/healthz").json()
    assert health["session"]["date"] == "2024-03-15"


def test_select_session_rejects_bad_date(client):
    assert client.post("/session", json={"date": "03/15/2024"}).status_code == 422
    assert client.post("/session", json={}).status_code == 422


def test_select_session_uses_configured_defaults(viewer, client, monkeypatch):
    monkeypatch.setattr(viewer.settings, "default_ticker", "QQQ")
    monkeypatch.setattr(viewer.settings, "default_interval", "5m")

    body = client.post("/session", json={"date": "2024-03-15", "ticker": "SPY"}).json()
    assert body["selected"] == {"date": "2024-03-15", "ticker": "SPY", "interval": "5m"}


class _Request:
    """Stands in for the starlette request an SSE stream polls for disconnects."""

    def __init__(self, disconnect_after: int | None = None):
        self.disconnect_after = disconnect_after
        self.polls = 0

    async def is_disconnected(self) -> bool:
        self.polls += 1
        return self.disconnect_after is not None and self.polls > self.disconnect_after


@pytest.mark.anyio
async def test_events_send_state_then_chart_ops(viewer):
    stream = chart_events(viewer.surface, _Request(), ping_interval=5)

    first = await stream.__anext__()
    assert first.event == "state"
    assert json.loads(first.data)["series"]["candles"] == []

    viewer.bus.publish(EventKind.HISTORY_SNAPSHOT, [make_point(60_000)])
    events = [await stream.__anext__() for _ in range(9)]

    assert [e.event for e in events] == ["set_data"] * 8 + ["visible_range"]
    candles = next(json.loads(e.data) for e in events if json.loads(e.data)["series"] == "candles")
    assert candles["data"][0]["time"] == 60
    assert json.loads(events[-1].data)["data"] == {"from": 60, "to": 360}

    await stream.aclose()
    assert viewer.surface._listeners == []


@pytest.mark.anyio
async def test_events_end_on_disconnect(viewer):
    stream = chart_events(viewer.surface, _Request(disconnect_after=0), ping_interval=5)
    assert (await stream.__anext__()).event == "state"
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert viewer.surface._listeners == []


@pytest.mark.anyio
async def test_events_route_returns_event_stream(viewer):
    app = create_app(viewer)
    route = next(r for r in app.routes if getattr(r, "path", None) == "/events")
    response = await route.endpoint(_Request(disconnect_after=0))
    assert isinstance(response, EventSourceResponse)
    assert response.media_type == "text/event-stream"
