from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from .acquisition import AcquisitionOrchestrator


logger = logging.getLogger(__name__)

INITIAL_LOAD = "initial"
VISIBILITY = "visibility"
PAGE_RESTORE = "pageshow"
TIMER = "timer"


class RefreshScheduler:
    """Fire refresh cycles on start, on a fixed interval and on external events.

    Cycles are never awaited by the timer, so a hung request does not delay the
    next firing. ``stop`` only cancels the timer; in-flight cycles finish.
    """

    def __init__(
        self,
        orchestrator: AcquisitionOrchestrator,
        interval: float = 60.0,
        on_cycle_done: Optional[Callable[[], None]] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.interval = interval
        self.on_cycle_done = on_cycle_done
        self._timer: Optional[asyncio.Task] = None
        self._cycles: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        if self.running:
            return
        self.trigger(INITIAL_LOAD)
        self._timer = asyncio.ensure_future(self._tick())

    def trigger(self, reason: str) -> asyncio.Task:
        logger.debug("Refresh triggered by %s", reason)
        task = asyncio.ensure_future(self.orchestrator.run_refresh_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycle_done)
        return task

    async def stop(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        try:
            await self._timer
        except asyncio.CancelledError:
            pass
        self._timer = None

    async def drain(self) -> None:
        while self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.trigger(TIMER)

    def _cycle_done(self, task: asyncio.Task) -> None:
        self._cycles.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Refresh cycle crashed", exc_info=exc)
            return
        if self.on_cycle_done is not None:
            self.on_cycle_done()


__all__ = ["INITIAL_LOAD", "PAGE_RESTORE", "TIMER", "VISIBILITY", "RefreshScheduler"]
