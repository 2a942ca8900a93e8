"""
Streaming price feed client.
One socket for the whole symbol set, declarative subscriptions, heartbeat and
bounded exponential reconnect. Consumers read state and the price snapshot;
network failures never propagate out of the client.
"""

import asyncio
import json
import time
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from sandbox_feed.errors import RetriesExhaustedError, describe_error
from sandbox_feed.observability.metrics import record_feed_reconnect, record_feed_state
from sandbox_feed.schemas.feed import ConnectionState
from sandbox_feed.services.backoff import RetryPolicy, RetryState
from sandbox_feed.services.dispatcher import LivenessDiagnostics, MessageDispatcher
from sandbox_feed.services.heartbeat import HEARTBEAT_INTERVAL, HeartbeatDriver
from sandbox_feed.services.snapshot_store import PriceTick, SnapshotStore
from sandbox_feed.services.subscriptions import SubscriptionManager
from sandbox_feed.util.async_tools import cancel_and_wait, timeout

logger = logging.getLogger("price_feed")

NORMAL_CLOSE = 1000
ABNORMAL_CLOSE = 1006
HEARTBEAT_TIMEOUT_CLOSE = 4000
CLOSE_TIMEOUT = 10  # seconds
RECONNECT_GRACE = 0.25  # seconds

Listener = Callable[[str, Any], None]


class PriceFeedClient:
    """Supervises one logical feed connection and exposes its state to consumers."""

    def __init__(self, url: str, symbols: Iterable[str] = (), *,
                 policy: Optional[RetryPolicy] = None,
                 heartbeat_interval: float = HEARTBEAT_INTERVAL,
                 max_missed_pongs: int = 0,
                 reconnect_grace: float = RECONNECT_GRACE,
                 connect_timeout: float = 10.0,
                 connect: Optional[Callable[..., Any]] = None,
                 store: Optional[SnapshotStore] = None,
                 clock: Callable[[], float] = time.time):
        self.url = url
        self.policy = policy or RetryPolicy()
        self.reconnect_grace = reconnect_grace
        self.connect_timeout = connect_timeout
        self._connect = connect or websockets.connect
        self._clock = clock

        # Survives reconnects: stale prices beat an empty board during an outage
        self.store = store or SnapshotStore(clock=clock)
        self.retry = RetryState(self.policy)
        self.liveness = LivenessDiagnostics()
        self.subscriptions = SubscriptionManager(symbols, on_error=self._record_error)
        self.dispatcher = MessageDispatcher(
            self.store, self.liveness,
            on_prices=self._on_prices,
            on_error=self._record_error,
            clock=clock,
        )
        self.heartbeat = HeartbeatDriver(
            self.liveness, self.is_connected,
            interval=heartbeat_interval,
            max_missed_pongs=max_missed_pongs,
            on_unresponsive=self._force_reconnect,
            clock=clock,
        )

        self.running = False
        self._state = ConnectionState.DISCONNECTED
        self._last_error: Optional[str] = None
        self._retries_exhausted = False
        self._transport: Any = None
        self._task: Optional[asyncio.Task] = None
        # Bumped by start/stop/reconnect; a session only writes while its generation is current
        self._generation = 0
        self._listeners: List[Listener] = []

        # Health metrics
        self.connect_attempts = 0
        self.sessions = 0
        self.error_count = 0

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "PriceFeedClient":
        return cls(
            settings.FEED_WS_URL,
            kwargs.pop("symbols", settings.symbols),
            policy=RetryPolicy.from_settings(settings),
            heartbeat_interval=settings.FEED_HEARTBEAT_S,
            max_missed_pongs=settings.FEED_MAX_MISSED_PONGS,
            reconnect_grace=settings.FEED_RECONNECT_GRACE_MS / 1000.0,
            connect_timeout=settings.FEED_CONNECT_TIMEOUT_S,
            **kwargs,
        )

    # Consumer-facing state

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def price_snapshot(self) -> Mapping[str, PriceTick]:
        return self.store.snapshot()

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def retries_exhausted(self) -> bool:
        return self._retries_exhausted

    @property
    def status(self) -> str:
        """Indicator text: the state value, or "failed" once retries are exhausted."""
        if self._retries_exhausted:
            return "failed"
        return self._state.value

    @property
    def desired_symbols(self) -> List[str]:
        return self.subscriptions.desired_list

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._transport is not None

    def get_cached(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Get cached price for symbol (non-blocking)."""
        tick = self.store.get(symbol)
        return tick.to_dict() if tick else None

    def last_tick_s_ago(self, symbol: str) -> float:
        return self.store.last_tick_s_ago(symbol)

    def add_listener(self, callback: Listener) -> Callable[[], None]:
        """
        Register an observer for "state", "prices" and "error" events.

        Callbacks run on the feed's event loop and must not block. Returns a
        function that removes the registration.
        """
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # Lifecycle

    async def start(self, initial_symbols: Optional[Iterable[str]] = None) -> None:
        """Start the supervisor loop."""
        if self.running:
            logger.warning("[price_feed] Client already running")
            return
        if initial_symbols is not None:
            await self.subscriptions.set_desired_symbols(initial_symbols)
        self.retry.reset()
        self.running = True
        self._spawn(delay=0.0)
        logger.info(f"[price_feed] Started feed client for symbols: {self.desired_symbols}")

    async def stop(self) -> None:
        """Close the feed with a normal code; no retry, write or frame happens afterwards."""
        self._generation += 1
        self.running = False
        self._retries_exhausted = False
        # Take the handle before cancelling; the session clears it on the way out
        transport, self._transport = self._transport, None
        task, self._task = self._task, None
        self.subscriptions.on_disconnected()
        self._apply_state(ConnectionState.DISCONNECTED)
        await cancel_and_wait(task)
        await self.heartbeat.stop()
        await self._close_transport(transport, NORMAL_CLOSE, "client stop")
        logger.info("[price_feed] Client stopped")

    async def reconnect(self) -> None:
        """Drop the current session, clear retry state and connect again after a short grace."""
        self._generation += 1
        generation = self._generation
        logger.info("[price_feed] Manual reconnect requested")

        self._retries_exhausted = False
        # Take the handle before cancelling; the session clears it on the way out
        transport, self._transport = self._transport, None
        task, self._task = self._task, None
        self.subscriptions.on_disconnected()
        self._apply_state(ConnectionState.DISCONNECTED)
        await cancel_and_wait(task)
        await self.heartbeat.stop()
        await self._close_transport(transport, NORMAL_CLOSE, "client reconnect")

        if generation != self._generation:
            # A later reconnect() or stop() took over while we were closing
            return
        self.retry.reset()
        self.running = True
        self._spawn(delay=self.reconnect_grace)

    async def set_desired_symbols(self, symbols: Iterable[str]) -> bool:
        """Replace the desired symbol set; pushed immediately when connected."""
        return await self.subscriptions.set_desired_symbols(symbols)

    # Supervisor

    def _spawn(self, delay: float) -> None:
        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation, delay), name="price_feed_supervisor")

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(self, generation: int, delay: float) -> None:
        if delay:
            await asyncio.sleep(delay)

        while self._is_current(generation):
            self._set_state(ConnectionState.CONNECTING, generation)
            self.connect_attempts += 1
            try:
                transport = await timeout(self._open(), self.connect_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[price_feed] Connect failed: {describe_error(e)}")
                if not await self._handle_failure(generation, describe_error(e)):
                    return
                continue

            if not self._is_current(generation):
                await self._close_transport(transport, NORMAL_CLOSE, "superseded")
                return

            close_code, reason = await self._run_session(generation, transport)
            if not self._is_current(generation):
                return
            if close_code == NORMAL_CLOSE:
                logger.info("[price_feed] Feed closed normally, not reconnecting")
                self.running = False
                return
            if not await self._handle_failure(generation, reason):
                return

    async def _open(self) -> Any:
        return await self._connect(self.url, ping_interval=None, close_timeout=CLOSE_TIMEOUT)

    async def _run_session(self, generation: int, transport: Any):
        """Process one connection until it closes. Returns (close_code, reason)."""
        self._transport = transport
        self.sessions += 1
        self.retry.reset()
        self._retries_exhausted = False
        self._set_state(ConnectionState.CONNECTED, generation)
        logger.info(f"[price_feed] Connected to {self.url} (session {self.sessions})")

        close_code: Optional[int] = None
        reason = "connection lost"
        try:
            await self.subscriptions.on_connected(transport)
            self.heartbeat.start(transport)

            while True:
                raw = await transport.recv()
                if not self._is_current(generation):
                    break
                try:
                    self.dispatcher.dispatch(raw)
                except Exception as e:
                    self.error_count += 1
                    logger.error(f"[price_feed] Error processing message: {e}")

        except ConnectionClosed as e:
            close_code = e.rcvd.code if e.rcvd is not None else ABNORMAL_CLOSE
            reason = f"connection closed (code {close_code})"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = describe_error(e)
        finally:
            if self._transport is transport:
                self._transport = None
            if self._is_current(generation):
                self.subscriptions.on_disconnected()
                next_state = ConnectionState.DISCONNECTED if close_code == NORMAL_CLOSE else ConnectionState.ERRORED
                self._set_state(next_state, generation)
                await self.heartbeat.stop()

        return close_code, reason

    async def _handle_failure(self, generation: int, reason: str) -> bool:
        """Record a failed session and wait out the backoff. False when the loop must end."""
        self.error_count += 1
        self._record_error(reason)
        self._set_state(ConnectionState.ERRORED, generation)

        delay = self.retry.record_failure()
        if delay is None:
            exhausted = RetriesExhaustedError(details={"attempts": self.retry.attempt_count})
            self._retries_exhausted = True
            self.running = False
            self._record_error(exhausted.message)
            logger.error(
                f"[price_feed] {exhausted.message} ({self.retry.attempt_count}), waiting for manual reconnect",
                extra={"evt": "feed_retries_exhausted", "attempts": self.retry.attempt_count},
            )
            return False

        record_feed_reconnect("error")
        logger.warning(json.dumps({
            "evt": "feed_reconnect",
            "sleep_ms": int(delay * 1000),
            "reason": reason,
            "attempt": self.retry.attempt_count,
            "max_attempts": self.retry.max_attempts,
        }))
        await asyncio.sleep(delay)
        return self._is_current(generation)

    async def _force_reconnect(self, missed: int) -> None:
        """Close an unresponsive transport abnormally so the supervisor retries."""
        transport = self._transport
        self._record_error(f"heartbeat timeout ({missed} pings unanswered)")
        await self._close_transport(transport, HEARTBEAT_TIMEOUT_CLOSE, "heartbeat timeout")

    async def _close_transport(self, transport: Any, code: int, reason: str) -> None:
        if transport is None:
            return
        try:
            await transport.close(code=code, reason=reason)
        except Exception as e:
            # Already dead handle
            logger.debug(f"[price_feed] Ignoring close error: {e}")

    # State writes

    def _set_state(self, state: ConnectionState, generation: int) -> None:
        if self._is_current(generation):
            self._apply_state(state)

    def _apply_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        record_feed_state(state.value)
        logger.info(f"[price_feed] State {previous.value} -> {state.value}")
        self._notify("state", state)

    def _record_error(self, message: str) -> None:
        self._last_error = message
        self._notify("error", message)

    def _on_prices(self, symbols: List[str]) -> None:
        self._notify("prices", symbols)

    def _notify(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners):
            try:
                callback(event, payload)
            except Exception as e:
                logger.error(f"[price_feed] Listener failed on {event}: {e}")

    def get_health_metrics(self) -> Dict[str, Any]:
        """Get feed health metrics."""
        last_update = self.store.get_last_update_ts()
        return {
            "state": self._state.value,
            "status": self.status,
            "connected": self.is_connected(),
            "last_error": self._last_error,
            "symbols": self.desired_symbols,
            "retry": self.retry.as_dict(),
            "sessions": self.sessions,
            "connect_attempts": self.connect_attempts,
            "error_count": self.error_count,
            "subscribes_sent": self.subscriptions.subscribes_sent,
            "last_update_s_ago": round(self._clock() - last_update, 1) if last_update else None,
            "heartbeat": self.liveness.as_dict(),
            "dispatcher": self.dispatcher.stats(),
            "store": self.store.stats(),
        }


# Global client instance
_feed_client: Optional[PriceFeedClient] = None


async def start_price_feed(client: PriceFeedClient) -> PriceFeedClient:
    """Install and start the global price feed client."""
    global _feed_client

    if _feed_client is not None:
        await _feed_client.stop()

    _feed_client = client
    await _feed_client.start()
    return _feed_client


async def stop_price_feed() -> None:
    """Stop the global price feed client."""
    global _feed_client

    if _feed_client is not None:
        await _feed_client.stop()
        _feed_client = None


def get_price_feed() -> Optional[PriceFeedClient]:
    """Get the global price feed client."""
    return _feed_client
