"""Websocket transport for the analytics feed.

Every received text frame is dispatched synchronously through the bus, so
handlers see messages strictly in delivery order.

An unexpected close is not fatal. The client publishes ``close`` (the resync
controller drops to IDLE), waits with exponential backoff, reconnects and
publishes ``open`` (the controller re-sends the last selected session and
waits for a fresh snapshot).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import aiohttp

from elphie.config import Settings, get_settings
from elphie.errors import TransportLost
from elphie.utils import get_logger

from .bus import DATA_KINDS, SubscriptionBus
from .messages import EventKind, encode_select_date
from .types import Session


class FeedClient:
    """aiohttp websocket client feeding a :class:`SubscriptionBus`."""

    def __init__(self, bus: SubscriptionBus, settings: Settings | None = None, url: str | None = None):
        self.bus = bus
        self.settings = settings or get_settings()
        self.url = url or self.settings.feed_ws_url
        self.logger = get_logger("feed.client")
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._pending_sends: set[asyncio.Task] = set()
        self.connect_count = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        self._running = False
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for task in list(self._pending_sends):
            task.cancel()
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def run(self) -> None:
        """Connect / read / reconnect until stopped or attempts run out."""
        self._running = True
        attempt = 0
        max_attempts = int(self.settings.reconnect_max_attempts)

        while self._running:
            try:
                await self._connect_and_read()
                attempt = 0
                if not self._running:
                    break
                raise TransportLost("feed websocket closed by server")
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, TransportLost) as e:
                if not self._running:
                    break
                self._on_transport_lost(e)

            attempt += 1
            if max_attempts > 0 and attempt > max_attempts:
                self.logger.error("feed_reconnect_gave_up", attempts=attempt - 1, url=self.url)
                break

            delay = self.settings.reconnect_delay(attempt)
            self.logger.warning("feed_reconnect_wait", attempt=attempt, wait_seconds=delay)
            await asyncio.sleep(delay)

        self._running = False

    async def _connect_and_read(self) -> None:
        session = await self._get_session()
        async with session.ws_connect(self.url, heartbeat=self.settings.ws_heartbeat_sec) as ws:
            self._ws = ws
            self.connect_count += 1
            self.logger.info("feed_connected", url=self.url, connects=self.connect_count)
            self.bus.publish(EventKind.OPEN, {"url": self.url})
            try:
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self.bus.dispatch(msg.data)
                    elif msg.type == aiohttp.WSMsgType.BINARY:
                        self.bus.dispatch(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise TransportLost(f"websocket error: {ws.exception()}")
            finally:
                self._ws = None

    def _on_transport_lost(self, error: Exception) -> None:
        self.logger.warning("feed_connection_lost", url=self.url, error=str(error))
        # Cached snapshot / points belong to the dead connection.
        self.bus.clear_cache(DATA_KINDS)
        self.bus.publish(EventKind.CLOSE, {"error": str(error)})

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_json(self, message: dict[str, Any]) -> bool:
        if not self.connected:
            self.logger.info("feed_send_skipped", message_type=message.get("type"), reason="not_connected")
            return False
        try:
            await self._ws.send_str(json.dumps(message))
            return True
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            self.logger.error("feed_send_failed", message_type=message.get("type"), error=str(e))
            return False

    async def select_date(self, session: Session) -> bool:
        return await self.send_json(encode_select_date(session))

    def request_session(self, session: Session) -> None:
        """Synchronous sender for the resync controller.

        Schedules the ``select_date`` send on the running loop; when no loop is
        running (or the socket is down) the controller's re-send on ``open``
        covers it.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.info("feed_send_deferred", date=session.date, reason="no_event_loop")
            return
        task = loop.create_task(self.select_date(session))
        self._pending_sends.add(task)
        task.add_done_callback(self._pending_sends.discard)
