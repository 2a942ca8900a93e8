"""
Price snapshot store with non-blocking reads.
Holds the last known price per symbol; merges are copy-on-write so a reader
always sees a complete mapping, never a half-applied update.
"""

import time
import logging
from dataclasses import dataclass
from threading import RLock
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from sandbox_feed.schemas.feed import PriceEntry

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "websocket"


@dataclass(frozen=True)
class PriceTick:
    """Last known price for one symbol."""
    symbol: str
    price: float
    change_24h: float
    observed_at: float          # epoch seconds, feed timestamp when provided
    source: str
    received_at: float          # epoch seconds, local receive time
    volume: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change24h": self.change_24h,
            "observed_at": self.observed_at,
            "source": self.source,
            "volume": self.volume,
        }


class SnapshotStore:
    """Thread-safe last-write-wins price store, single writer / many readers."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = RLock()
        self._snapshot: Mapping[str, PriceTick] = MappingProxyType({})
        self._last_update_ts = 0.0
        self._merge_count = 0

    def merge(self, entries: Iterable[PriceEntry], default_source: str = DEFAULT_SOURCE,
              received_at: Optional[float] = None) -> List[str]:
        """Merge entries by symbol; symbols not named keep their last value."""
        with self._lock:
            now = self._clock() if received_at is None else received_at
            updated: Dict[str, PriceTick] = {}
            for entry in entries:
                # Later entries for the same symbol in one batch win
                updated[entry.symbol] = PriceTick(
                    symbol=entry.symbol,
                    price=entry.price,
                    change_24h=entry.change_24h,
                    observed_at=entry.timestamp / 1000.0 if entry.timestamp is not None else now,
                    source=entry.source or default_source,
                    received_at=now,
                    volume=entry.volume,
                )
            if not updated:
                return []

            merged = dict(self._snapshot)
            merged.update(updated)
            self._snapshot = MappingProxyType(merged)
            self._last_update_ts = now
            self._merge_count += 1

        logger.debug(f"Merged prices for {sorted(updated)}")
        return list(updated)

    def snapshot(self) -> Mapping[str, PriceTick]:
        """Current immutable view (non-blocking)."""
        return self._snapshot

    def get(self, symbol: str) -> Optional[PriceTick]:
        return self._snapshot.get(symbol.strip().upper())

    def symbols(self) -> List[str]:
        return sorted(self._snapshot)

    def get_last_update_ts(self) -> float:
        """Get timestamp of last merge."""
        return self._last_update_ts

    def last_tick_s_ago(self, symbol: str) -> float:
        """Seconds since the symbol was last merged; 999.0 when never seen."""
        tick = self.get(symbol)
        if tick is None:
            return 999.0
        return self._clock() - tick.received_at

    def is_stale(self, symbol: str, max_age_sec: float = 5.0) -> bool:
        """Check if cached data is stale."""
        tick = self.get(symbol)
        if not tick:
            return True
        return (self._clock() - tick.received_at) > max_age_sec

    def clear(self) -> None:
        with self._lock:
            self._snapshot = MappingProxyType({})
            self._last_update_ts = 0.0

    def __len__(self) -> int:
        return len(self._snapshot)

    def stats(self) -> Dict[str, object]:
        return {
            "symbols": len(self._snapshot),
            "merges": self._merge_count,
            "last_update_ts": self._last_update_ts,
        }
