import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from elphie.feed.bus import SubscriptionBus
from elphie.feed.client import FeedClient
from elphie.feed.messages import EventKind
from elphie.feed.types import Session
from elphie.series.pending import PendingMerger
from elphie.series.resync import ControllerState, ResyncController
from elphie.series.store import CANDLES, SeriesStore

from factories import wire_point


async def _wait_for(predicate, timeout: float = 3.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


class TestReconnectDelay:
    def test_exponential_with_cap(self, settings, monkeypatch):
        monkeypatch.setattr(settings, "reconnect_base_delay_sec", 1.0)
        monkeypatch.setattr(settings, "reconnect_max_delay_sec", 30.0)
        assert [settings.reconnect_delay(n) for n in range(1, 8)] == [1, 2, 4, 8, 16, 30, 30]

    def test_attempt_floor(self, settings):
        assert settings.reconnect_delay(0) == settings.reconnect_delay(1)


def test_request_session_without_loop_is_deferred(settings):
    client = FeedClient(SubscriptionBus(), settings, url="ws://127.0.0.1:1/ws")
    client.request_session(Session(date="2024-03-15"))
    assert not client.connected


@pytest.mark.anyio
async def test_send_skipped_when_disconnected(settings):
    client = FeedClient(SubscriptionBus(), settings, url="ws://127.0.0.1:1/ws")
    assert await client.select_date(Session(date="2024-03-15")) is False


@pytest.mark.anyio
async def test_gives_up_after_max_attempts(settings, monkeypatch):
    monkeypatch.setattr(settings, "reconnect_base_delay_sec", 0.0)
    monkeypatch.setattr(settings, "reconnect_max_attempts", 2)
    bus = SubscriptionBus()
    closes = []
    bus.subscribe(EventKind.CLOSE, closes.append)

    # Nothing listens on port 1.
    client = FeedClient(bus, settings, url="ws://127.0.0.1:1/ws")
    await asyncio.wait_for(client.run(), timeout=5)

    assert len(closes) == 3
    assert client.connect_count == 0
    await client.stop()


@pytest.mark.anyio
async def test_session_resent_and_resync_after_drop(settings, monkeypatch):
    """Server drops the first connection; the client reconnects and asks again."""
    monkeypatch.setattr(settings, "reconnect_base_delay_sec", 0.0)
    received: list[dict] = []
    connections = 0

    async def ws_handler(request):
        nonlocal connections
        connections += 1
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            data = json.loads(msg.data)
            received.append(data)
            await ws.send_json({"type": "analysis_history", "data": [wire_point(60_000 * connections)]})
            if connections == 1:
                await ws.send_json({"type": "new_analysis_point", "data": wire_point(120_000)})
                await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/ws", ws_handler)
    server = TestServer(app)
    await server.start_server()

    bus = SubscriptionBus()
    store = SeriesStore(settings)
    client = FeedClient(bus, settings, url=str(server.make_url("/ws")))
    controller = ResyncController(store, PendingMerger(), send_session=client.request_session)
    controller.attach(bus)
    controller.select_session(Session(date="2024-03-15", ticker="SPY"))

    try:
        await client.start()
        await _wait_for(lambda: len(received) >= 2 and controller.is_loaded)

        assert received[0] == {"type": "select_date", "date": "2024-03-15", "ticker": "SPY"}
        assert received[1] == received[0]
        assert client.connect_count >= 2
        assert controller.state is ControllerState.LOADED
        # Only the second connection's snapshot survives the resync.
        await _wait_for(lambda: store.series_keys(CANDLES) == [120])
        # The dropped connection's cached append is gone.
        assert not bus.has_latest(EventKind.POINT_APPENDED)
    finally:
        await client.stop()
        await server.close()


@pytest.mark.anyio
async def test_select_date_sends_json(settings):
    client = FeedClient(SubscriptionBus(), settings, url="ws://127.0.0.1:1/ws")
    ws = MagicMock()
    ws.closed = False
    ws.send_str = AsyncMock()
    client._ws = ws

    assert await client.select_date(Session(date="2024-03-15", interval="1m")) is True
    ws.send_str.assert_awaited_once_with(
        json.dumps({"type": "select_date", "date": "2024-03-15", "interval": "1m"})
    )
