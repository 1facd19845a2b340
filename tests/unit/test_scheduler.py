"""Tests for the periodic job scheduler."""

import asyncio

import pytest

from recipe_chat.scheduler import Scheduler


class TestScheduler:
    """Test job execution."""

    @pytest.mark.asyncio
    async def test_run_job_should_support_sync_and_async(self):
        """Both plain and coroutine functions can be jobs."""
        calls = []

        async def async_job():
            calls.append("async")

        scheduler = Scheduler()
        scheduler.add_job("sync", 60, lambda: calls.append("sync"))
        scheduler.add_job("async", 60, async_job)

        await scheduler.run_all()

        assert calls == ["sync", "async"]

    @pytest.mark.asyncio
    async def test_failing_job_should_not_propagate(self):
        """Job errors are logged and swallowed."""

        def broken():
            raise RuntimeError("boom")

        scheduler = Scheduler()
        scheduler.add_job("broken", 60, broken)

        await scheduler.run_job("broken")

    @pytest.mark.asyncio
    async def test_start_should_run_immediate_jobs_and_stop_cleanly(self):
        """run_immediately jobs fire on start; stop cancels every loop."""
        ran = asyncio.Event()
        scheduler = Scheduler()
        scheduler.add_job("warm", 3600, ran.set, run_immediately=True)
        scheduler.add_job("idle", 3600, lambda: None)

        scheduler.start()
        await asyncio.wait_for(ran.wait(), timeout=1)
        assert scheduler.running is True

        await scheduler.stop()
        assert scheduler.running is False
