"""Recurring background trigger for sync cycles."""

from __future__ import annotations

import asyncio
import logging

from .syncer import SnapshotSyncer, SyncFailed, SyncSkipped

LOGGER = logging.getLogger(__name__)


class SyncScheduler:
    """Runs :meth:`SnapshotSyncer.sync` every ``interval`` seconds.

    ``start`` must be called from a running event loop. Calling it again
    replaces the current timer rather than adding a second one.
    """

    def __init__(self, syncer: SnapshotSyncer, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._syncer = syncer
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="repo-snapshot-scheduler")
        LOGGER.info("Scheduled sync every %.0fs", self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                outcome = await self._syncer.sync()
            except Exception:
                LOGGER.exception("Scheduled update failed")
                continue
            if isinstance(outcome, SyncFailed):
                LOGGER.error("Scheduled update failed (%s): %s", outcome.kind.value, outcome.cause)
            elif isinstance(outcome, SyncSkipped):
                LOGGER.info("Scheduled update skipped: %s", outcome.reason)


__all__ = ["SyncScheduler"]
