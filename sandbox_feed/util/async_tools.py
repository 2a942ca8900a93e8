"""
Async hygiene tools: timeouts, cancellation and a deterministic clock for tests.
"""

import asyncio
import logging
import time
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class AsyncTimeoutError(Exception):
    """Raised when an async operation times out."""
    pass


async def timeout(awaitable: Awaitable[T], seconds: float) -> T:
    """
    Add a timeout to an awaitable.

    Args:
        awaitable: The coroutine to timeout
        seconds: Timeout in seconds

    Returns:
        The result of the awaitable

    Raises:
        AsyncTimeoutError: If the operation times out
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise AsyncTimeoutError(f"Operation timed out after {seconds}s")


async def cancel_and_wait(task: Optional[asyncio.Task]) -> None:
    """
    Cancel a task and wait until it has finished.

    Safe on None, finished tasks and the current task. Errors raised by the
    task while unwinding are logged, not propagated.
    """
    if task is None or task.done():
        return
    if task is asyncio.current_task():
        task.cancel()
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"[async_tools] Task '{task.get_name()}' raised while cancelling: {e}")


class DeterministicClock:
    """A deterministic clock for testing that can be frozen and advanced."""

    def __init__(self, start_time: float = 0.0):
        self._time = start_time
        self._frozen = False

    def time(self) -> float:
        """Get current time."""
        if self._frozen:
            return self._time
        return time.time()

    def __call__(self) -> float:
        return self.time()

    def freeze(self):
        """Freeze the clock at current time."""
        self._frozen = True
        self._time = time.time()

    def advance(self, seconds: float):
        """Advance the clock by the given number of seconds."""
        if not self._frozen:
            raise RuntimeError("Clock must be frozen to advance")
        self._time += seconds

    def unfreeze(self):
        """Unfreeze the clock to use real time."""
        self._frozen = False


# Global deterministic clock for tests
_deterministic_clock = DeterministicClock()


def get_deterministic_clock() -> DeterministicClock:
    """Get the global deterministic clock."""
    return _deterministic_clock
