"""Interval tickers — the timers that drive a fungus.

A ticker fires its callback every ``interval`` seconds until stopped.
It does not wait for the callback's work to finish elsewhere: the
callback is expected to hand the work off (the controller just enqueues
a command), so a slow cycle never delays the next tick.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable

TickCallback = Callable[[dict[str, Any]], Awaitable[None]]


class IntervalTicker:
    """Fires on a fixed interval.

    ``max_fires`` stops the ticker after N fires (0 = unlimited).
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: TickCallback,
        max_fires: int = 0,
    ) -> None:
        self.name = name
        self._interval = interval
        self._callback = callback
        self._max_fires = max_fires
        self._fire_count = 0
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._tick_loop(), name=f"ticker:{self.name}")

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    async def _tick_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)

            if not self._running:
                break

            self._fire_count += 1
            await self._callback({
                "ticker": self.name,
                "fire_count": self._fire_count,
                "fired_at": datetime.now().isoformat(),
            })

            if self._max_fires > 0 and self._fire_count >= self._max_fires:
                self._running = False
                break

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def fire_count(self) -> int:
        return self._fire_count
