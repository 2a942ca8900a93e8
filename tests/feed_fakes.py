"""
In-memory feed transport and connector used by the client tests.
"""

import asyncio
import json
from typing import Any, Callable, List, Optional, Union

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close


class FakeTransport:
    """In-memory stand-in for a websocket connection."""

    def __init__(self):
        self.sent: List[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def recv(self) -> str:
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._shutdown(code, reason)

    # Server side helpers

    def feed(self, frame: Union[str, dict]) -> None:
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def server_close(self, code: int = 1000, reason: str = "") -> None:
        self._shutdown(code, reason)

    def drop(self) -> None:
        """Connection lost without a close frame."""
        self.closed = True
        self._inbox.put_nowait(ConnectionClosedError(None, None))

    def _shutdown(self, code: int, reason: str) -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        frame = Close(code, reason)
        exc_type = ConnectionClosedOK if code == 1000 else ConnectionClosedError
        self._inbox.put_nowait(exc_type(frame, frame, True))

    def frames(self, kind: Optional[str] = None) -> List[dict]:
        decoded = [json.loads(m) for m in self.sent]
        if kind is None:
            return decoded
        return [f for f in decoded if f.get("type") == kind]


class SlowCloseTransport(FakeTransport):
    """Transport whose closing handshake takes a while, like an unresponsive peer."""

    def __init__(self, delay: float = 0.2):
        super().__init__()
        self.delay = delay

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await asyncio.sleep(self.delay)
        self._shutdown(code, reason)


class FakeConnector:
    """Callable replacing websockets.connect; scripted outcomes, then fresh transports."""

    def __init__(self, outcomes: Optional[List[Any]] = None, fail_forever: bool = False):
        self.outcomes = list(outcomes or [])
        self.fail_forever = fail_forever
        self.attempts = 0
        self.transports: List[FakeTransport] = []
        self.urls: List[str] = []

    async def __call__(self, url: str, **kwargs) -> FakeTransport:
        self.attempts += 1
        self.urls.append(url)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
        elif self.fail_forever:
            outcome = OSError("connection refused")
        else:
            outcome = FakeTransport()
        if isinstance(outcome, BaseException):
            raise outcome
        self.transports.append(outcome)
        return outcome

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.002) -> None:
    """Poll predicate on the running loop until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(interval)


