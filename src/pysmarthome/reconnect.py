"""Exponential-backoff reconnection after an unexpected connection loss."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator

_logger = logging.getLogger(__name__)


def backoff_delays(initial: float = 1.0, maximum: float = 60.0) -> Iterator[float]:
    """Yield ``initial, 2*initial, 4*initial, ...`` capped at *maximum*, forever.

    With the defaults: 1, 2, 4, 8, 16, 32, 60, 60, ...
    """
    if initial <= 0:
        raise ValueError("initial delay must be positive")
    if maximum < initial:
        raise ValueError("maximum delay must be >= initial delay")
    delay = initial
    while True:
        yield delay
        delay = min(delay * 2, maximum)


class ReconnectScheduler:
    """Retry a connection attempt until it succeeds or is cancelled.

    There is no attempt cap: while the process is alive and no explicit
    shutdown happened, reconnection keeps going at the maximum delay.

    Parameters
    ----------
    attempt : callable
        Coroutine function performing one connection attempt. Returns
        ``True`` once the session is connected.
    initial_delay, max_delay : float
        Backoff bounds in seconds.
    sleep : callable
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        attempt: Callable[[], Awaitable[bool]],
        *,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._attempt = attempt
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin the retry loop; no-op if one is already running."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pysmarthome-reconnect")

    async def stop(self) -> None:
        """Cancel the retry loop and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        for attempt_no, delay in enumerate(backoff_delays(self._initial_delay, self._max_delay), start=1):
            _logger.debug("Reconnect attempt #%d in %.1fs", attempt_no, delay)
            await self._sleep(delay)
            try:
                connected = await self._attempt()
            except Exception:
                _logger.warning("Reconnect attempt #%d raised", attempt_no, exc_info=True)
                connected = False
            if connected:
                _logger.info("Reconnection successful after %d attempt(s)", attempt_no)
                return
            _logger.debug("Reconnect attempt #%d failed", attempt_no)
