"""Periodic memory reclamation for the in-process window store."""

from __future__ import annotations

import asyncio
import logging

from edge_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore

logger = logging.getLogger(__name__)


class WindowStoreSweeper:
    """Background task calling ``InMemoryWindowStore.sweep`` every interval.

    Decisions never depend on this task; it only bounds memory for
    long-running processes with many distinct clients.
    """

    def __init__(self, store: InMemoryWindowStore, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._shutdown_event.clear()
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._shutdown_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("rate_limit.sweeper_stopped")

    async def _sweep_loop(self) -> None:
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                self._store.sweep()
