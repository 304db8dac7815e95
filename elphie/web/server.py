"""HTTP bridge between the feed engine and a browser chart.

Endpoints:

* ``GET /healthz``         liveness + controller state
* ``GET /series``          every series, styling, visible range, pending state
* ``GET /point/{time}``    crosshair lookup (legend + detail panel)
* ``POST /session``        select a trading session
* ``GET /events``          SSE stream of chart operations

A browser chart loads ``/series`` once, then applies the ``set_data`` /
``update`` / ``visible_range`` operations streamed on ``/events``.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse, ServerSentEvent

from elphie import __version__
from elphie.chart.surface import ChartOp, InMemorySurface
from elphie.feed.types import Session
from elphie.utils import get_logger, timestamp_ms

if TYPE_CHECKING:
    from elphie.main import ElphieViewer


class SessionRequest(BaseModel):
    date: str = Field(..., description="Trading date, YYYY-MM-DD")
    ticker: str | None = None
    interval: str | None = None


def _parse_time_key(raw: str) -> int | float:
    try:
        value = float(raw)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid time key '{raw}'")
    return int(value) if value.is_integer() else value


_logger = get_logger("web.server")


def _queue_put_safe(q: "asyncio.Queue[dict[str, Any]]", msg: dict[str, Any]) -> None:
    """Put without blocking the feed loop; a full queue drops its oldest op."""
    try:
        q.put_nowait(msg)
    except asyncio.QueueFull:
        try:
            _ = q.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            q.put_nowait(msg)
        except asyncio.QueueFull:
            _logger.warning("sse_queue_full_drop", dropped=True)


def _ping_message() -> ServerSentEvent:
    return ServerSentEvent(event="ping", data="{}")


async def chart_events(
    surface: InMemorySurface,
    request: Request,
    *,
    ping_interval: float = 10,
    queue_size: int = 5000,
) -> AsyncIterator[ServerSentEvent]:
    """SSE events for one browser chart: full state first, then each chart op."""
    q: "asyncio.Queue[dict[str, Any]]" = asyncio.Queue(maxsize=queue_size)

    def _on_op(op: ChartOp) -> None:
        _queue_put_safe(q, op.to_dict())

    detach = surface.add_listener(_on_op)
    _logger.info("sse_connection_started")
    try:
        # Full state first so the client never applies updates to an empty chart.
        yield ServerSentEvent(
            event="state",
            data=json.dumps(surface.state(), separators=(",", ":")),
            retry=3000,
        )
        while True:
            if await request.is_disconnected():
                break
            try:
                msg = await asyncio.wait_for(q.get(), timeout=max(5, int(ping_interval)))
            except asyncio.TimeoutError:
                yield _ping_message()
                continue
            yield ServerSentEvent(event=msg["op"], data=json.dumps(msg, separators=(",", ":")))
    finally:
        detach()
        _logger.info("sse_connection_closed")


def create_app(viewer: "ElphieViewer") -> FastAPI:
    """Create the FastAPI app serving ``viewer``'s state."""

    settings = viewer.settings

    app = FastAPI(title="Elphie", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def health_check():
        controller = viewer.controller
        session = controller.session
        return {
            "status": "healthy",
            "timestamp": timestamp_ms(),
            "service": "elphie",
            "version": __version__,
            "state": controller.state.value,
            "connected": viewer.client.connected,
            "session": None
            if session is None
            else {"date": session.date, "ticker": session.ticker, "interval": session.interval},
            "historyLength": len(viewer.store),
        }

    @app.get("/series")
    async def get_series():
        pending = viewer.merger.current
        metrics = viewer.merger.metrics
        state = viewer.surface.state()
        state.update(
            {
                "state": viewer.controller.state.value,
                "pendingCandle": None if pending is None else pending.to_dict(),
                "pendingMetrics": None if metrics is None else metrics.values,
            }
        )
        return state

    @app.get("/point/{time_key}")
    async def get_point(time_key: str):
        detail = viewer.index.describe(_parse_time_key(time_key))
        if detail is None:
            return {"point": None}
        return detail

    @app.post("/session")
    async def select_session(body: SessionRequest):
        try:
            session = Session(
                date=body.date,
                ticker=body.ticker or settings.default_ticker,
                interval=body.interval or settings.default_interval,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        viewer.controller.select_session(session)
        return {"selected": {"date": session.date, "ticker": session.ticker, "interval": session.interval}}

    @app.get("/events")
    async def events(request: Request):
        return EventSourceResponse(
            chart_events(viewer.surface, request, ping_interval=settings.sse_ping_interval_sec),
            ping=settings.sse_ping_interval_sec,
            ping_message_factory=_ping_message,
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    return app
