"""
Price feed endpoints for the dashboard status indicator.
Exposes connection state, the price snapshot and the manual reconnect action.
"""

from fastapi import APIRouter, HTTPException, Query
from typing import Any, Dict, FrozenSet, Optional
import logging

from sandbox_feed.errors import FeedUnavailableError, ValidationError, create_http_exception
from sandbox_feed.protocols import PriceFeed
from sandbox_feed.schemas.feed import FeedStatus, PriceView, SymbolsRequest
from sandbox_feed.services.price_feed_ws import PriceFeedClient, get_price_feed
from sandbox_feed.services.protocol import normalize_symbols

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/feed", tags=["price-feed"])


def _require_feed() -> PriceFeedClient:
    client = get_price_feed()
    if client is None:
        raise create_http_exception(FeedUnavailableError())
    return client


def _status(client: PriceFeedClient) -> FeedStatus:
    health = client.get_health_metrics()
    return FeedStatus(
        state=client.connection_state.value,
        status=client.status,
        last_error=client.last_error,
        retries_exhausted=client.retries_exhausted,
        symbols=client.desired_symbols,
        retry=client.retry.as_dict(),
        diagnostics={
            "heartbeat": health["heartbeat"],
            "dispatcher": health["dispatcher"],
            "sessions": health["sessions"],
            "connect_attempts": health["connect_attempts"],
        },
    )


@router.get("/status", response_model=FeedStatus)
async def feed_status() -> FeedStatus:
    """Connection state for the status indicator."""
    return _status(_require_feed())


def _prices_view(feed: PriceFeed, wanted: Optional[FrozenSet[str]]) -> Dict[str, Any]:
    prices = {
        symbol: PriceView(**tick.to_dict()).model_dump()
        for symbol, tick in feed.price_snapshot.items()
        if wanted is None or symbol in wanted
    }
    return {
        "state": feed.connection_state.value,
        "prices": prices,
    }


@router.get("/prices")
async def feed_prices(symbols: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    """Current price snapshot, optionally filtered by a comma separated symbol list."""
    wanted = normalize_symbols(symbols.split(",")) if symbols else None
    return _prices_view(_require_feed(), wanted)


@router.post("/symbols")
async def set_symbols(body: SymbolsRequest) -> Dict[str, Any]:
    """Replace the desired symbol set."""
    client = _require_feed()
    if not normalize_symbols(body.symbols):
        raise create_http_exception(ValidationError("At least one symbol is required"))

    sent = await client.set_desired_symbols(body.symbols)
    logger.info(f"Desired symbols set via /feed/symbols: {client.desired_symbols}")
    return {
        "success": True,
        "symbols": client.desired_symbols,
        "subscribed": sent,
    }


@router.post("/reconnect")
async def reconnect_feed() -> Dict[str, Any]:
    """Manual retry action; restarts the connect cycle even after retries are exhausted."""
    client = _require_feed()
    try:
        await client.reconnect()
    except Exception as e:
        logger.error(f"Failed to reconnect feed: {e}")
        raise HTTPException(status_code=500, detail=f"Reconnect failed: {str(e)}")

    return {"success": True, "message": "Reconnect scheduled", "state": client.connection_state.value}


@router.post("/stop")
async def stop_feed() -> Dict[str, Any]:
    """Close the feed; no automatic retry until /feed/reconnect."""
    client = _require_feed()
    await client.stop()
    logger.warning("Price feed stopped via /feed/stop")
    return {"success": True, "state": client.connection_state.value}
