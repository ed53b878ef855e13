"""Process-lifetime state shared across sessions: the run flag and request counter."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class RunFlag:
    """
    Cooperative shutdown signal.

    Cleared exactly once (by the signal handler or a test); every loop polls
    ``running`` once per iteration and may also await ``wait_stopped()``. Clearing
    it never interrupts an in-flight backend call.
    """

    def __init__(self) -> None:
        self._stopped: Optional[asyncio.Event] = None
        self._stop_requested = False

    def _event(self) -> asyncio.Event:
        if self._stopped is None:
            self._stopped = asyncio.Event()
            if self._stop_requested:
                self._stopped.set()
        return self._stopped

    @property
    def running(self) -> bool:
        return not self._stop_requested

    def stop(self) -> None:
        if self._stop_requested:
            return
        logger.info("Shutdown signal received")
        self._stop_requested = True
        if self._stopped is not None:
            self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._event().wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return early (False) if stopped meanwhile."""
        if not self.running:
            return False
        try:
            await asyncio.wait_for(self._event().wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


class RequestCounter:
    """Monotonic count of inference requests accepted by this process."""

    def __init__(self, start: int = 0) -> None:
        self._value = start

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> int:
        """Bump the counter and return the new value."""
        self._value += 1
        return self._value
