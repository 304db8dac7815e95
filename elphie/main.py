"""Main entry point for the Elphie feed engine."""

import signal
import sys
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from elphie import __version__
from elphie.chart.binder import ChartBinder
from elphie.chart.surface import InMemorySurface
from elphie.config import Settings, get_settings
from elphie.feed.bus import SubscriptionBus
from elphie.feed.client import FeedClient
from elphie.series.index import PointIndex
from elphie.series.pending import PendingMerger
from elphie.series.resync import ResyncController
from elphie.series.store import SeriesStore
from elphie.utils import get_logger, setup_logging
from elphie.web.server import create_app


class ElphieViewer:
    """Application root: owns the bus and wires every component to it."""

    def __init__(self, settings: Settings | None = None, *, client: FeedClient | None = None):
        self.settings = settings or get_settings()
        self.logger = get_logger("viewer")

        # Transport
        self.bus = SubscriptionBus()
        self.client = client or FeedClient(self.bus, self.settings)

        # State
        self.store = SeriesStore(self.settings)
        self.merger = PendingMerger()
        self.index = PointIndex(self.store)
        self.controller = ResyncController(
            self.store,
            self.merger,
            send_session=self.client.request_session,
        )

        # Rendering
        self.surface = InMemorySurface()
        self.binder = ChartBinder(self.store, self.surface, self.settings)

        self.controller.attach(self.bus)
        self._running = False

    async def start(self) -> None:
        self.logger.info(
            "starting_viewer",
            feed_url=self.client.url,
            port=self.settings.http_port,
            version=__version__,
        )
        self._running = True
        await self.client.start()
        self.logger.info("viewer_started")

    async def stop(self) -> None:
        self.logger.info("stopping_viewer")
        self._running = False
        await self.client.stop()
        self.controller.detach()
        self.binder.close()
        self.index.close()
        self.logger.info("viewer_stopped")


# Global viewer instance
viewer: ElphieViewer | None = None


@asynccontextmanager
async def lifespan(app):
    """FastAPI lifespan context manager."""
    if viewer:
        await viewer.start()

    yield

    if viewer:
        await viewer.stop()


def main():
    """Main entry point."""
    global viewer

    setup_logging()
    logger = get_logger("main")

    settings = get_settings()

    viewer = ElphieViewer(settings)
    app = create_app(viewer)
    app.router.lifespan_context = lifespan

    def signal_handler(sig, frame):
        logger.info("shutdown_signal_received", signal=sig)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("starting_uvicorn", host=settings.http_host, port=settings.http_port)

    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        access_log=settings.debug,
    )


if __name__ == "__main__":
    main()
