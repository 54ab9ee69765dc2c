"""Wall-clock ticker for an active recording."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


def format_duration(seconds: int) -> str:
    """Render whole seconds as ``MM:SS`` (minutes are not wrapped)."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


class DurationTracker:
    """Cooperative ticker that counts elapsed seconds while running.

    ``start()`` spawns a task on the running loop; ``stop()`` cancels and
    awaits it, then resets the elapsed time to 0.  No tick fires after
    ``stop()`` returns.
    """

    def __init__(
        self,
        tick_interval: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._tick_interval = tick_interval
        self._clock = clock
        self._on_tick = on_tick
        self._origin = 0.0
        self._elapsed = 0
        self._ticks = 0
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def elapsed(self) -> int:
        """Whole seconds since ``start()`` as of the last tick."""
        return self._elapsed

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("DurationTracker is already running")
        self._origin = self._clock()
        self._elapsed = 0
        self._ticks = 0
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._elapsed = 0
        self._ticks = 0

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            self._elapsed = int(self._clock() - self._origin)
            self._ticks += 1
            if self._on_tick is not None:
                try:
                    self._on_tick(self._elapsed)
                except Exception:
                    logger.exception("duration_tick_callback_failed")
