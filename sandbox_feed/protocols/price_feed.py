"""
Price Feed Protocol
Read side of the feed consumed by the chart, trading form and positions panel.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable
from abc import abstractmethod

from sandbox_feed.schemas.feed import ConnectionState


@runtime_checkable
class PriceFeed(Protocol):
    """Protocol for price feed access."""

    @property
    def connection_state(self) -> ConnectionState:
        """Current connection state."""
        ...

    @property
    def price_snapshot(self) -> Mapping[str, Any]:
        """Last known price per symbol."""
        ...

    @property
    def last_error(self) -> Optional[str]:
        """Most recent diagnostic message."""
        ...

    @abstractmethod
    def get_cached(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Get cached price data for symbol."""
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if feed is connected."""
        ...

    @abstractmethod
    def add_listener(self, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        """Register for state/prices/error events."""
        ...
