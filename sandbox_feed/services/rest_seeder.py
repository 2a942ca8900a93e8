"""
REST snapshot seeder.
Fills the snapshot store from the dashboard's market-data endpoint so consumers
have prices before the first stream frame arrives.
"""

import logging
import httpx
from typing import Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from sandbox_feed.errors import describe_error
from sandbox_feed.schemas.feed import PriceEntry
from sandbox_feed.services.protocol import normalize_symbols
from sandbox_feed.services.snapshot_store import SnapshotStore

logger = logging.getLogger("rest_seeder")

MARKET_DATA_PATH = "/api/sandbox/market-data"


class RESTSnapshotSeeder:
    """One-shot REST fetch merged into the snapshot with source "api"."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client
        self.last_error: Optional[str] = None

    async def seed(self, store: SnapshotStore, symbols: Iterable[str]) -> List[str]:
        """Fetch current prices for symbols and merge them; returns merged symbols."""
        wanted = sorted(normalize_symbols(symbols))
        if not wanted:
            return []

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        params = {"symbols": ",".join(wanted)}
        try:
            if self._client is not None:
                response = await self._client.get(f"{self.base_url}{MARKET_DATA_PATH}",
                                                  params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(f"{self.base_url}{MARKET_DATA_PATH}",
                                                params=params, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.last_error = describe_error(e)
            logger.error(f"[rest_seeder] Failed to fetch market data: {self.last_error}")
            return []

        if not isinstance(payload, dict) or not payload.get("success") or not isinstance(payload.get("data"), list):
            self.last_error = "Invalid API response format"
            logger.error(f"[rest_seeder] {self.last_error}")
            return []

        entries = []
        for item in payload["data"]:
            try:
                entries.append(PriceEntry.model_validate(item))
            except PydanticValidationError:
                logger.debug(f"[rest_seeder] Skipping invalid entry: {item!r}")

        merged = store.merge(entries, default_source="api")
        self.last_error = None
        logger.info(f"[rest_seeder] Seeded {len(merged)} symbols from REST: {sorted(merged)}")
        return merged
