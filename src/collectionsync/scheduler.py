"""Periodic and on-demand push/pull cycles."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

CycleStep = Callable[[], Awaitable[object]]


class SyncScheduler:
    """Run ``push`` then ``pull`` every ``interval`` seconds or when triggered.

    The scheduler lives on the caller's event loop as a single task. There is
    no mid-cycle cancellation: :meth:`stop` lets the running cycle finish
    before the task exits.
    """

    def __init__(
        self,
        push: CycleStep,
        pull: CycleStep,
        *,
        interval: float = 3.0,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than zero")

        self._push = push
        self._pull = pull
        self.interval = float(interval)
        self._task: asyncio.Task[None] | None = None
        self._wake: asyncio.Event | None = None
        self._stopping = False
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_cycle(self) -> None:
        """Flush pending changes, then pull changes from the file store."""

        try:
            await self._push()
        except Exception:
            logger.exception("Push cycle failed")
        try:
            await self._pull()
        except Exception:
            logger.exception("Pull cycle failed")
        self.cycles += 1

    def start(self) -> None:
        """Start the background loop on the running event loop."""

        if self.running:
            return
        self._stopping = False
        self._wake = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Filesystem sync started with %.1fs interval", self.interval)

    def trigger(self) -> None:
        """Request an immediate cycle (the editor's explicit "save")."""

        if self._wake is None or not self.running:
            raise RuntimeError("scheduler is not running")
        self._wake.set()

    async def stop(self) -> None:
        """Stop the loop once the current cycle, if any, has completed."""

        task = self._task
        if task is None:
            return

        self._stopping = True
        if self._wake is not None:
            self._wake.set()
        await task
        self._task = None
        logger.info("Filesystem sync stopped")

    async def _loop(self) -> None:
        wake = self._wake or asyncio.Event()
        while not self._stopping:
            try:
                await asyncio.wait_for(wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            wake.clear()
            if self._stopping:
                break
            await self.run_cycle()


__all__ = ["SyncScheduler"]
