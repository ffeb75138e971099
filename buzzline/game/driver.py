from __future__ import annotations

import asyncio

from buzzline.config.settings import GameConfig
from buzzline.game.clock import Scheduler


class FrameDriver:
    """Ticks a scheduler from the asyncio loop at a fixed frame rate.

    Frame deltas come from loop time, so a slow frame produces one larger
    tick rather than a burst of small ones.
    """

    def __init__(self, scheduler: Scheduler, tick_hz: int = 30, max_frame_seconds: float = 0.25):
        if tick_hz <= 0:
            raise ValueError("tick_hz must be positive")
        self.scheduler = scheduler
        self.frame_seconds = 1.0 / tick_hz
        self.max_frame_seconds = max_frame_seconds
        self.frames = 0

    @classmethod
    def from_config(cls, scheduler: Scheduler, config: GameConfig) -> FrameDriver:
        return cls(scheduler, tick_hz=config.tick_hz)

    async def run(self, stop: asyncio.Event, max_seconds: float | None = None) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        last = started
        while not stop.is_set():
            await asyncio.sleep(self.frame_seconds)
            now = loop.time()
            self.scheduler.tick(min(now - last, self.max_frame_seconds))
            self.frames += 1
            last = now
            if max_seconds is not None and now - started >= max_seconds:
                break

    async def run_until(self, done: asyncio.Event, timeout: float) -> bool:
        """Tick until ``done`` is set; False if ``timeout`` elapsed first."""
        stop = asyncio.Event()
        ticker = asyncio.create_task(self.run(stop))
        try:
            await asyncio.wait_for(done.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            stop.set()
            await ticker
