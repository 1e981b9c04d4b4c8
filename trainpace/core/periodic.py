"""Cancellable fixed-interval callbacks on the running asyncio loop."""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Calls `callback` every `interval` seconds until stopped.

    stop() takes effect immediately: no callback runs after it returns, even
    if the loop already scheduled the next wake-up.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "periodic") -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: asyncio.Task | None = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        self._active = False
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while self._active:
            next_at += self.interval
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            if not self._active:
                return
            try:
                self.callback()
            except Exception:
                logger.exception("%s callback failed", self.name)
