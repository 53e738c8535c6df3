"""Periodic background refresh loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from dockscan.infrastructure.logger import logger


class PollLoop:
    """Calls ``fn`` every ``interval_s`` seconds until stopped.

    A failing call is logged and the loop keeps going.
    """

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        self._name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"{self._name}-poll")
        logger.debug(f"{self._name} loop started", interval_s=self._interval)

    def stop(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None
            logger.debug(f"{self._name} loop stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self._fn()
            except Exception:
                logger.exception(f"Error in {self._name} loop")
            await asyncio.sleep(self._interval)
