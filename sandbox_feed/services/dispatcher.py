"""
Message dispatcher: parses inbound frames and applies their effect.
Malformed frames are dropped and counted; they never reach the snapshot store.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from sandbox_feed.errors import FrameDecodeError
from sandbox_feed.observability.metrics import (
    record_feed_message,
    record_frame_dropped,
    record_heartbeat_rtt,
)
from sandbox_feed.services.protocol import Pong, PriceUpdate, Unknown, decode_frame
from sandbox_feed.services.snapshot_store import SnapshotStore

logger = logging.getLogger("price_feed.dispatcher")


class LivenessDiagnostics:
    """Heartbeat round-trip bookkeeping. Diagnostic only."""

    def __init__(self):
        self.last_ping_at: Optional[float] = None
        self.last_pong_at: Optional[float] = None
        self.last_rtt_ms: Optional[float] = None
        self.pings_sent = 0
        self.pongs_received = 0
        self.outstanding_pings = 0

    def ping_sent(self, at: float) -> None:
        self.last_ping_at = at
        self.pings_sent += 1
        self.outstanding_pings += 1

    def pong_received(self, at: float) -> Optional[float]:
        self.last_pong_at = at
        self.pongs_received += 1
        self.outstanding_pings = 0
        if self.last_ping_at is not None:
            self.last_rtt_ms = max(0.0, (at - self.last_ping_at) * 1000.0)
        return self.last_rtt_ms

    def reset_session(self) -> None:
        self.outstanding_pings = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "last_ping_at": self.last_ping_at,
            "last_pong_at": self.last_pong_at,
            "last_rtt_ms": round(self.last_rtt_ms, 1) if self.last_rtt_ms is not None else None,
            "pings_sent": self.pings_sent,
            "pongs_received": self.pongs_received,
            "outstanding_pings": self.outstanding_pings,
        }


class MessageDispatcher:
    """Route decoded frames to the snapshot store or liveness diagnostics."""

    def __init__(self, store: SnapshotStore, liveness: Optional[LivenessDiagnostics] = None,
                 on_prices: Optional[Callable[[List[str]], None]] = None,
                 on_error: Optional[Callable[[str], None]] = None,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.liveness = liveness or LivenessDiagnostics()
        self._on_prices = on_prices
        self._on_error = on_error
        self._clock = clock

        self.frames_received = 0
        self.frames_dropped = 0
        self.entries_rejected = 0
        self.price_updates = 0
        self.unknown_kinds: Dict[str, int] = {}
        self.last_frame_at: Optional[float] = None

    def dispatch(self, raw: Union[str, bytes]) -> None:
        """Apply one inbound frame. Never raises for bad input."""
        now = self._clock()
        self.frames_received += 1
        self.last_frame_at = now

        try:
            message = decode_frame(raw)
        except FrameDecodeError as e:
            self.frames_dropped += 1
            reason = e.details.get("reason", "unknown")
            record_frame_dropped(reason)
            logger.warning(f"[dispatcher] Dropped malformed frame ({reason}): {e.message}")
            if self._on_error:
                self._on_error(f"malformed frame: {e.message}")
            return

        if isinstance(message, PriceUpdate):
            self._handle_price_update(message, now)
        elif isinstance(message, Pong):
            self._handle_pong(now)
        elif isinstance(message, Unknown):
            self.unknown_kinds[message.kind] = self.unknown_kinds.get(message.kind, 0) + 1
            record_feed_message("unknown")
            logger.debug(f"[dispatcher] Ignoring unknown message type: {message.kind}")

    def _handle_price_update(self, message: PriceUpdate, now: float) -> None:
        record_feed_message("price_update")
        self.price_updates += 1
        if message.rejected:
            self.entries_rejected += message.rejected
            record_frame_dropped("invalid_entry")
            logger.warning(f"[dispatcher] Skipped {message.rejected} invalid price entries")

        updated = self.store.merge(message.entries, received_at=now)
        if updated and self._on_prices:
            self._on_prices(updated)

    def _handle_pong(self, now: float) -> None:
        record_feed_message("pong")
        rtt = self.liveness.pong_received(now)
        if rtt is not None:
            record_heartbeat_rtt(rtt)
        logger.debug(f"[dispatcher] Pong received (rtt={rtt}ms)")

    def stats(self) -> Dict[str, Any]:
        return {
            "frames_received": self.frames_received,
            "frames_dropped": self.frames_dropped,
            "entries_rejected": self.entries_rejected,
            "price_updates": self.price_updates,
            "unknown_kinds": dict(self.unknown_kinds),
            "last_frame_at": self.last_frame_at,
        }
