"""
Job Scheduler
=============

Named periodic jobs on the asyncio event loop.

Each PeriodicJob wraps a blocking callable, runs it in a worker thread
(asyncio.to_thread) and carries its own "already running" guard: a run
that is triggered while the previous one is still active is skipped and
counted, never queued. Stopping a job waits a bounded grace period for
the run in progress.

Example:
    scheduler = JobScheduler()
    scheduler.add_job("upload_images", 300, uploader.upload_images)
    scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class PeriodicJob:
    """
    One named, cancellable periodic job.

    Attributes:
        name: Job name (unique within a scheduler)
        interval_sec: Delay between the end of one run and the next
        initial_delay_sec: Delay before the first run
        stop_grace_sec: How long stop() waits for a run in progress
    """

    def __init__(
        self,
        name: str,
        interval_sec: float,
        fn: Callable[[], Any],
        initial_delay_sec: float = 0.0,
        stop_grace_sec: float = 10.0,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be positive, got {interval_sec}")
        self.name = name
        self.interval_sec = interval_sec
        self.initial_delay_sec = initial_delay_sec
        self.stop_grace_sec = stop_grace_sec
        self._fn = fn

        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None

        # Metrics
        self.runs: int = 0
        self.failures: int = 0
        self.skipped_overlap: int = 0
        self.last_run_at: float = 0.0
        self.last_duration_sec: float = 0.0
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        """Whether a run is in progress."""
        return self._running

    @property
    def scheduled(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """
        Run the job now unless a run is already in progress.

        Cancelling the caller does not cancel the worker thread; the run
        keeps its metrics and running flag until the thread returns.

        Returns:
            True if the job ran and completed without raising
        """
        if self._running:
            self.skipped_overlap += 1
            logger.warning(f"Job '{self.name}' is already running, skipping")
            return False

        self._running = True
        self.last_run_at = time.time()
        run = asyncio.ensure_future(asyncio.to_thread(self._fn))
        run.add_done_callback(functools.partial(self._finish_run, time.monotonic()))
        self._inflight = run
        try:
            await asyncio.shield(run)
        except Exception:
            return False
        return True

    def _finish_run(self, started: float, run: asyncio.Future) -> None:
        self.runs += 1
        self.last_duration_sec = time.monotonic() - started
        self._running = False
        self._inflight = None
        if run.cancelled():
            return
        error = run.exception()
        if error is None:
            self.last_error = None
            return
        self.failures += 1
        self.last_error = str(error)
        logger.error(f"Job '{self.name}' failed: {error}")

    def start(self) -> asyncio.Task:
        """Schedule the job loop on the running event loop."""
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
        return self._task

    async def stop(self, grace_sec: Optional[float] = None) -> bool:
        """
        Stop the loop and wait for a run in progress.

        A worker thread cannot be interrupted, so a run still going after
        grace_sec is left to finish in the background.

        Returns:
            True if no run was left in progress
        """
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        run = self._inflight
        if run is None or run.done():
            return True

        grace = self.stop_grace_sec if grace_sec is None else grace_sec
        try:
            await asyncio.wait_for(asyncio.shield(run), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(f"Job '{self.name}' still running after {grace:.1f}s grace period")
            return False
        except Exception as e:
            # Already counted by _finish_run
            logger.debug(f"Job '{self.name}' last run ended with an error: {e}")
        return True

    async def _loop(self) -> None:
        if await self._wait(self.initial_delay_sec):
            return
        while not self._stop_event.is_set():
            await self.run_once()
            if await self._wait(self.interval_sec):
                return

    async def _wait(self, delay: float) -> bool:
        """Sleep for delay; True if stop was requested meanwhile."""
        if delay <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "interval_sec": self.interval_sec,
            "running": self._running,
            "runs": self.runs,
            "failures": self.failures,
            "skipped_overlap": self.skipped_overlap,
            "last_run_at": self.last_run_at,
            "last_duration_sec": round(self.last_duration_sec, 3),
            "last_error": self.last_error,
        }


class JobScheduler:
    """Registry of periodic jobs started and stopped together."""

    def __init__(self, stop_grace_sec: float = 10.0) -> None:
        self.stop_grace_sec = stop_grace_sec
        self._jobs: Dict[str, PeriodicJob] = {}
        self._started: bool = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def jobs(self) -> List[PeriodicJob]:
        return list(self._jobs.values())

    def get(self, name: str) -> PeriodicJob:
        return self._jobs[name]

    def add_job(
        self,
        name: str,
        interval_sec: float,
        fn: Callable[[], Any],
        initial_delay_sec: float = 0.0,
    ) -> PeriodicJob:
        """Register a job. Names must be unique."""
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already registered")
        job = PeriodicJob(
            name,
            interval_sec,
            fn,
            initial_delay_sec,
            stop_grace_sec=self.stop_grace_sec,
        )
        self._jobs[name] = job
        if self._started:
            job.start()
        logger.info(f"Registered job '{name}' every {interval_sec:.0f}s")
        return job

    def start(self) -> None:
        """Start every job loop. Must be called from the event loop."""
        if self._started:
            return
        self._started = True
        for job in self._jobs.values():
            job.start()
        logger.info(f"JobScheduler started with {len(self._jobs)} jobs")

    async def trigger(self, name: str) -> bool:
        """Run a job immediately (subject to its running guard)."""
        return await self._jobs[name].run_once()

    async def stop(self) -> bool:
        """
        Cancel every job loop and wait for runs in progress.

        Returns:
            True if every in-flight run finished within the grace period
        """
        self._started = False
        finished = await asyncio.gather(*(job.stop() for job in self._jobs.values()))
        logger.info("JobScheduler stopped")
        return all(finished)

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: job.to_dict() for name, job in self._jobs.items()}
