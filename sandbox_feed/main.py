"""
Sandbox price feed service - FastAPI entry point.

Runs the streaming price feed client and exposes its status, snapshot and
reconnect control to the dashboard.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from sandbox_feed.config import load_settings
from sandbox_feed.observability.logs import configure_logging, setup_log_rotation
from sandbox_feed.observability.metrics import create_metrics_router
from sandbox_feed.routes_feed import router as feed_router
from sandbox_feed.services.price_feed_ws import PriceFeedClient, start_price_feed, stop_price_feed
from sandbox_feed.services.rest_seeder import RESTSnapshotSeeder

# Setup logging
configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the feed on startup, stop it on shutdown."""
    settings = load_settings()
    setup_log_rotation(settings.FEED_LOG_DIR)

    client = PriceFeedClient.from_settings(settings)
    if settings.FEED_REST_URL:
        seeder = RESTSnapshotSeeder(settings.FEED_REST_URL, token=settings.FEED_REST_TOKEN or None)
        await seeder.seed(client.store, settings.symbols)

    await start_price_feed(client)
    logger.info(f"Price feed started: url={settings.FEED_WS_URL} symbols={settings.symbols}")
    try:
        yield
    finally:
        await stop_price_feed()
        logger.info("Price feed stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Sandbox Price Feed", version="1.0", lifespan=lifespan)
    app.include_router(feed_router)
    app.include_router(create_metrics_router())
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
