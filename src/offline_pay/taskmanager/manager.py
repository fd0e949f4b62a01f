"""Task manager lifecycle — start, stop, schedule.

The ``TaskManager`` owns a set of ``CronJob`` definitions and runs each
on its own asyncio task. A handler that has started is always allowed to
finish: ``stop`` and ``unregister`` cancel a job only while it sleeps
between runs, and otherwise wait for the current run to return.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from offline_pay.metrics.collector import MeshMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    """A recurring background job."""

    handler: Callable[[], Awaitable[None]]
    period: float  # seconds
    name: str = ""


class TaskManager:
    """Manages asyncio-based cron jobs.

    Usage::

        tm = TaskManager(metrics=mesh_metrics)
        tm.register("ledger_sync", CronJob(handler=coordinator.sync, period=30))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(self, *, metrics: MeshMetrics | None = None) -> None:
        self._jobs: dict[str, CronJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._busy: set[str] = set()
        self._running = False
        self._metrics = metrics

    @property
    def is_running(self) -> bool:
        """Whether the task manager is currently running."""
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        """Registered jobs (name → CronJob)."""
        return dict(self._jobs)

    def is_busy(self, name: str) -> bool:
        """Whether *name*'s handler is executing right now."""
        return name in self._busy

    def register(self, name: str, job: CronJob) -> None:
        """Register a cron job.  Can be called before or after start().

        If the manager is already running the job is started immediately.
        Registering an existing name replaces its definition.
        """
        resolved = CronJob(handler=job.handler, period=job.period, name=name)
        self._jobs[name] = resolved
        if self._running and name not in self._tasks:
            self._tasks[name] = asyncio.create_task(self._run_loop(name))

    async def unregister(self, name: str) -> None:
        """Remove a job. An in-flight run completes first."""
        if self._jobs.pop(name, None) is None:
            return
        task = self._tasks.pop(name, None)
        if task is None:
            return
        if name not in self._busy:
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def start(self) -> None:
        """Start all registered cron jobs."""
        if self._running:
            return
        self._running = True
        for name in self._jobs:
            self._tasks[name] = asyncio.create_task(self._run_loop(name))
        logger.info("TaskManager started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Stop scheduling; cancel idle jobs and wait for running ones."""
        if not self._running:
            return
        self._running = False
        for name, task in self._tasks.items():
            if name not in self._busy:
                task.cancel()
        results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        for r in results:
            if isinstance(r, Exception) and not isinstance(r, asyncio.CancelledError):
                logger.error("Task error during shutdown: %s", r)
        self._tasks.clear()
        logger.info("TaskManager stopped")

    async def _run_loop(self, name: str) -> None:
        """Run the job named *name* every ``period`` seconds while registered."""
        while self._running:
            job = self._jobs.get(name)
            if job is None:
                break
            await asyncio.sleep(job.period)
            job = self._jobs.get(name)
            if not self._running or job is None:
                break
            self._busy.add(name)
            try:
                if self._metrics:
                    with self._metrics.track_cron(name):
                        await job.handler()
                else:
                    await job.handler()
            except Exception:
                logger.exception("Cron job %r failed", name)
            finally:
                self._busy.discard(name)
