"""Fixed-interval driver for emptying-state refreshes.

The tracker itself never retries. This loop calls it once per interval and
simply tries again on the next tick after a failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Optional

from .core import DashboardError

LOGGER = logging.getLogger(__name__)


class IntervalRefresher:
    """Runs ``refresh`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        *,
        interval_seconds: float,
        initial_delay_seconds: float = 0.0,
    ) -> None:
        self._refresh = refresh
        self._interval = max(interval_seconds, 0.1)
        self._initial_delay = max(initial_delay_seconds, 0.0)
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self.runs = 0
        self.failures = 0

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        LOGGER.info("Emptying refresher started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        if self._initial_delay and await self._wait(self._initial_delay):
            return

        while not self._stop_event.is_set():
            self.runs += 1
            try:
                await self._refresh()
            except asyncio.CancelledError:
                raise
            except DashboardError as exc:
                self.failures += 1
                LOGGER.warning("Scheduled refresh failed: %s", exc)
            except Exception:
                self.failures += 1
                LOGGER.exception("Scheduled refresh raised unexpectedly")

            if await self._wait(self._interval):
                break

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False
