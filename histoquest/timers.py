"""
HistoQuest - Clock and Timer
============================

Time collaborators injected into the session state machine.

CONCEPT: Cancellable Timer
--------------------------
The per-item countdown is the only concurrent element of a session.
Instead of an ambient sleep loop, the state machine asks a Timer to call it
back once, and cancels the handle whenever the item is answered. Tests
inject a manual timer and fire callbacks by hand.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def monotonic_ms(self) -> int:
        ...


class Timer(Protocol):
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


class SystemClock:
    """Wall clock for timestamps, monotonic clock for elapsed time."""

    def now(self) -> datetime:
        # Local timezone: "today" and "this week" are the viewer's calendar
        return datetime.now().astimezone()

    def monotonic_ms(self) -> int:
        return int(time.monotonic() * 1000)


class AsyncioTimer:
    """
    Timer backed by the running asyncio event loop.

    Must be used from inside the loop (the FastAPI/Socket.IO handlers).
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        delay = max(0, delay_ms) / 1000
        logger.debug(f"Timer scheduled in {delay:.1f}s")
        return self._get_loop().call_later(delay, callback)

    def cancel(self, handle: Optional[asyncio.TimerHandle]) -> None:
        if handle is not None:
            handle.cancel()
