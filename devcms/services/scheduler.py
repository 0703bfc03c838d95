"""Recurring scheduler for Realpad sync passes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from devcms.services.sync_service import SyncOrchestrator, SyncPassReport

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Fire an orchestrator pass on a fixed interval.

    Only one pass runs at a time: a tick that fires while a pass is still in
    flight is skipped. ``stop`` lets the running pass finish within the grace
    period and cancels it afterwards.

    Args:
        orchestrator: The orchestrator whose ``run_pass`` is invoked.
        interval_seconds: Delay between the end of one tick and the next.
        grace_seconds: How long ``stop`` waits for an in-flight pass.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_seconds: float = 3600.0,
        grace_seconds: float = 30.0,
    ) -> None:
        if interval_seconds <= 0:
            msg = f"interval_seconds must be > 0, got {interval_seconds}"
            raise ValueError(msg)
        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._grace = grace_seconds
        self._pass_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether the background loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def pass_in_progress(self) -> bool:
        return self._pass_lock.locked()

    async def run_once(self, force: bool = False) -> SyncPassReport | None:
        """Run one pass now. Returns None if another pass is already running."""
        if self._pass_lock.locked():
            logger.warning("Realpad sync pass already in progress, skipping this run")
            return None
        async with self._pass_lock:
            return await self._orchestrator.run_pass(force=force)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Realpad sync pass crashed")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)

    def start(self) -> None:
        """Start the background loop. The first pass runs immediately."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="realpad-sync-scheduler")
        logger.info("Realpad sync scheduler started (interval=%gs)", self._interval)

    async def stop(self) -> None:
        """Stop the loop, waiting up to the grace period for an in-flight pass. Idempotent."""
        if self._task is None:
            return
        self._stop_event.set()
        task = self._task
        self._task = None
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._grace)
        except TimeoutError:
            logger.warning(
                "Realpad sync pass did not finish within %.1fs, cancelling", self._grace
            )
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Realpad sync scheduler stopped")
