"""
Lockout countdown scheduler.
- Recomputes the remaining lockout time on a fixed tick.
- Reports whole seconds only when the value changes.
- Fires on_expire exactly once and stops; cancel() silences it for good.
"""

from __future__ import annotations

import asyncio
import math
from typing import Callable, Optional

from photolab.utils import logger


class CountdownScheduler:
    def __init__(
        self,
        end_time: float,
        *,
        clock: Callable[[], float],
        on_tick: Callable[[int], None],
        on_expire: Callable[[], None],
        interval_s: float = 0.1,
    ) -> None:
        """
        :param end_time: lockout end, in milliseconds on ``clock``
        :param clock: returns the current time in milliseconds
        :param on_tick: called with the remaining whole seconds when that value changes
        :param on_expire: called once when the lockout has elapsed
        :param interval_s: delay between ticks in seconds
        """
        self.end_time = float(end_time)
        self.clock = clock
        self.on_tick = on_tick
        self.on_expire = on_expire
        self.interval_s = max(0.001, float(interval_s))

        self.remaining_seconds: Optional[int] = None
        self._done = False
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return not self._done

    def tick(self) -> bool:
        """Recompute the countdown; return True if another tick is needed."""
        if self._done:
            return False
        remaining = max(0.0, self.end_time - self.clock())
        seconds = math.ceil(remaining / 1000)
        if seconds != self.remaining_seconds:
            self.remaining_seconds = seconds
            self.on_tick(seconds)
        if remaining <= 0:
            self._done = True
            logger.debug("[Countdown] Lockout elapsed")
            self.on_expire()
            return False
        return True

    def start(self) -> "CountdownScheduler":
        """Run the tick loop on the running event loop."""
        if self._task is None and not self._done:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    async def _run(self) -> None:
        while self.tick():
            await asyncio.sleep(self.interval_s)

    def cancel(self) -> None:
        self._done = True
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()
