"""
Heartbeat driver: periodic ping frames while the feed is connected.
A missing pong is diagnostic; only transport close/error drives reconnection,
unless max_missed_pongs is configured.
"""

import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Optional

from sandbox_feed.observability.metrics import record_frame_sent
from sandbox_feed.services.dispatcher import LivenessDiagnostics
from sandbox_feed.services.protocol import encode_ping
from sandbox_feed.util.async_tools import cancel_and_wait

logger = logging.getLogger("price_feed.heartbeat")

HEARTBEAT_INTERVAL = 30.0  # seconds


class HeartbeatDriver:
    """Sends {"type": "ping"} every interval for one connection session."""

    def __init__(self, liveness: LivenessDiagnostics, is_connected: Callable[[], bool],
                 interval: float = HEARTBEAT_INTERVAL, max_missed_pongs: int = 0,
                 on_unresponsive: Optional[Callable[[int], Awaitable[None]]] = None,
                 clock: Callable[[], float] = time.time):
        if interval <= 0:
            raise ValueError("heartbeat interval must be positive")
        self.liveness = liveness
        self.interval = interval
        self.max_missed_pongs = max_missed_pongs
        self._is_connected = is_connected
        self._on_unresponsive = on_unresponsive
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, transport: Any) -> None:
        if self.running:
            logger.warning("[heartbeat] Already running, restarting for new transport")
            self._task.cancel()
        self.liveness.reset_session()
        self._task = asyncio.create_task(self._run(transport), name="price_feed_heartbeat")

    async def stop(self) -> None:
        task, self._task = self._task, None
        await cancel_and_wait(task)

    async def _run(self, transport: Any) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self._is_connected():
                return

            if self.max_missed_pongs and self.liveness.outstanding_pings >= self.max_missed_pongs:
                missed = self.liveness.outstanding_pings
                logger.warning(f"[heartbeat] {missed} pings unanswered, forcing reconnect")
                if self._on_unresponsive:
                    await self._on_unresponsive(missed)
                return

            now = self._clock()
            try:
                await transport.send(encode_ping(int(now * 1000)))
            except Exception as e:
                # Receive loop sees the same failure and drives reconnection
                logger.debug(f"[heartbeat] Ping send failed: {e}")
                return
            self.liveness.ping_sent(now)
            record_frame_sent("ping")
            logger.debug(f"[heartbeat] Ping sent (total: {self.liveness.pings_sent})")
