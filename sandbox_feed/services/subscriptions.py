"""
Subscription manager: keeps the feed's server-side symbol set equal to the
client's desired set. The protocol is declarative, so every subscribe frame
carries the complete set and no add/remove diffing happens on the wire.
"""

import logging
from typing import Any, Callable, Iterable, List, Optional

from sandbox_feed.errors import describe_error
from sandbox_feed.observability.metrics import record_frame_sent
from sandbox_feed.services.protocol import encode_subscribe, normalize_symbols

logger = logging.getLogger("price_feed.subscriptions")


class SubscriptionManager:
    """Desired symbol set plus the transport it is currently pushed to."""

    def __init__(self, symbols: Iterable[str] = (), on_error: Optional[Callable[[str], None]] = None):
        self._desired = normalize_symbols(symbols)
        self._transport: Any = None
        self._on_error = on_error
        self.subscribes_sent = 0

    @property
    def desired(self) -> frozenset:
        return self._desired

    @property
    def desired_list(self) -> List[str]:
        return sorted(self._desired)

    async def set_desired_symbols(self, symbols: Iterable[str]) -> bool:
        """
        Record the new set and push it when connected.

        Returns True when a subscribe frame went out. While disconnected the set
        is only recorded; it goes out on the next successful connect.
        """
        self._desired = normalize_symbols(symbols)
        logger.info(f"[subscriptions] Desired symbols: {self.desired_list}")
        if self._transport is None:
            return False
        return await self._send(self._transport)

    async def on_connected(self, transport: Any) -> bool:
        """New connections start with no server-side subscriptions; always resend."""
        self._transport = transport
        return await self._send(transport)

    def on_disconnected(self) -> None:
        self._transport = None

    async def _send(self, transport: Any) -> bool:
        frame = encode_subscribe(self._desired)
        try:
            await transport.send(frame)
        except Exception as e:
            # Transport is dying; the supervisor notices and resubscribes on the next session
            message = f"subscribe failed: {describe_error(e)}"
            logger.warning(f"[subscriptions] {message}")
            if self._on_error:
                self._on_error(message)
            return False
        self.subscribes_sent += 1
        record_frame_sent("subscribe")
        logger.info(f"[subscriptions] Subscribed to {len(self._desired)} symbols: {self.desired_list}")
        return True
