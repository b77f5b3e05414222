"""
Job Scheduler Tests
===================

Tests for periodic jobs, the running guard and cancellation.
"""

import asyncio
import threading

import pytest

from screenwatch.sync.scheduler import JobScheduler, PeriodicJob


class TestPeriodicJob:
    """Tests for PeriodicJob."""

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            PeriodicJob("bad", 0, lambda: None)

    def test_run_once_runs_in_worker_thread(self):
        threads = []
        job = PeriodicJob("probe", 60, lambda: threads.append(threading.current_thread()))

        assert asyncio.run(job.run_once()) is True
        assert threads and threads[0] is not threading.main_thread()
        assert job.runs == 1
        assert job.running is False

    def test_failure_counted_and_contained(self):
        def broken():
            raise RuntimeError("server gone")

        job = PeriodicJob("broken", 60, broken)

        assert asyncio.run(job.run_once()) is False
        assert job.failures == 1
        assert job.last_error == "server gone"
        assert job.to_dict()["runs"] == 1

    def test_overlapping_run_skipped(self):
        release = threading.Event()
        entered = threading.Event()
        calls = []

        def slow():
            calls.append(1)
            entered.set()
            release.wait(timeout=5)

        job = PeriodicJob("slow", 60, slow)

        async def scenario():
            first = asyncio.create_task(job.run_once())
            while not entered.is_set():
                await asyncio.sleep(0.01)
            second = await job.run_once()
            release.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert first is True
        assert second is False
        assert calls == [1]
        assert job.skipped_overlap == 1

    def test_loop_runs_until_stopped(self):
        calls = []
        job = PeriodicJob("tick", 0.01, lambda: calls.append(1))

        async def scenario():
            job.start()
            while len(calls) < 3:
                await asyncio.sleep(0.01)
            await job.stop()

        asyncio.run(asyncio.wait_for(scenario(), timeout=5))

        assert len(calls) >= 3
        assert job.scheduled is False

    def test_initial_delay_respected(self):
        calls = []
        job = PeriodicJob("late", 60, lambda: calls.append(1), initial_delay_sec=60)

        async def scenario():
            job.start()
            await asyncio.sleep(0.05)
            await job.stop()

        asyncio.run(scenario())

        assert calls == []

    def test_stop_waits_for_run_in_progress(self):
        entered = threading.Event()
        release = threading.Event()
        finished = []

        def slow():
            entered.set()
            release.wait(timeout=5)
            finished.append(1)

        job = PeriodicJob("slow", 60, slow)

        async def scenario():
            job.start()
            while not entered.is_set():
                await asyncio.sleep(0.01)
            threading.Timer(0.1, release.set).start()
            return await job.stop(grace_sec=5)

        assert asyncio.run(asyncio.wait_for(scenario(), timeout=10)) is True
        assert finished == [1]
        assert job.runs == 1
        assert job.running is False

    def test_stop_gives_up_after_grace_period(self):
        entered = threading.Event()
        release = threading.Event()

        def stuck():
            entered.set()
            release.wait(timeout=5)

        job = PeriodicJob("stuck", 60, stuck)

        async def scenario():
            job.start()
            while not entered.is_set():
                await asyncio.sleep(0.01)
            try:
                return await job.stop(grace_sec=0.05), job.running
            finally:
                release.set()

        stopped, still_running = asyncio.run(asyncio.wait_for(scenario(), timeout=10))

        assert stopped is False
        assert still_running is True
        assert job.scheduled is False

    def test_stop_after_failed_run_reports_finished(self):
        entered = threading.Event()
        release = threading.Event()

        def failing():
            entered.set()
            release.wait(timeout=5)
            raise RuntimeError("upload rejected")

        job = PeriodicJob("failing", 60, failing)

        async def scenario():
            job.start()
            while not entered.is_set():
                await asyncio.sleep(0.01)
            release.set()
            return await job.stop(grace_sec=5)

        assert asyncio.run(asyncio.wait_for(scenario(), timeout=10)) is True
        assert job.failures == 1
        assert job.last_error == "upload rejected"
        assert calls == []


class TestJobScheduler:
    """Tests for JobScheduler."""

    def test_duplicate_name_rejected(self):
        scheduler = JobScheduler()
        scheduler.add_job("a", 60, lambda: None)
        with pytest.raises(ValueError):
            scheduler.add_job("a", 60, lambda: None)

    def test_trigger_runs_named_job(self):
        calls = []
        scheduler = JobScheduler()
        scheduler.add_job("refresh", 60, lambda: calls.append("refresh"))
        scheduler.add_job("upload", 60, lambda: calls.append("upload"))

        assert asyncio.run(scheduler.trigger("upload")) is True
        assert calls == ["upload"]
        assert scheduler.to_dict()["upload"]["runs"] == 1
        assert scheduler.to_dict()["refresh"]["runs"] == 0

    def test_start_and_stop_all(self):
        calls = []
        scheduler = JobScheduler()
        scheduler.add_job("a", 60, lambda: calls.append("a"))

        async def scenario():
            scheduler.start()
            scheduler.add_job("b", 60, lambda: calls.append("b"))
            while len(calls) < 2:
                await asyncio.sleep(0.01)
            await scheduler.stop()

        asyncio.run(asyncio.wait_for(scenario(), timeout=5))

        assert sorted(calls) == ["a", "b"]
        assert scheduler.started is False
        assert all(not job.scheduled for job in scheduler.jobs)

    def test_stop_reports_unfinished_job(self):
        entered = threading.Event()
        release = threading.Event()
        scheduler = JobScheduler(stop_grace_sec=0.05)
        scheduler.add_job("quick", 60, lambda: None, initial_delay_sec=60)
        scheduler.add_job("stuck", 60, lambda: (entered.set(), release.wait(timeout=5)))

        async def scenario():
            scheduler.start()
            while not entered.is_set():
                await asyncio.sleep(0.01)
            try:
                return await scheduler.stop()
            finally:
                release.set()

        assert asyncio.run(asyncio.wait_for(scenario(), timeout=10)) is False
        assert scheduler.get("stuck").stop_grace_sec == 0.05
