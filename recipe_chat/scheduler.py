"""Periodic in-process jobs (sweeps and cache warm-up)."""

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass
class Job:
    name: str
    interval: float
    func: Callable[[], Any]
    run_immediately: bool = False


class Scheduler:
    """Runs registered jobs on fixed intervals as asyncio tasks.

    Jobs can also be triggered by hand with ``run_job``, which is how tests
    drive the sweeps without waiting on real time.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, Job] = {}
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def add_job(
        self, name: str, interval: float, func: Callable[[], Any], run_immediately: bool = False
    ) -> None:
        self.jobs[name] = Job(name, interval, func, run_immediately)

    async def run_job(self, name: str) -> None:
        """Run one job now. Errors are logged and never propagate."""
        job = self.jobs[name]
        try:
            result = job.func()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Scheduled job '{name}' failed")

    async def run_all(self) -> None:
        for name in self.jobs:
            await self.run_job(name)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"job:{job.name}") for job in self.jobs.values()
        ]
        logger.info(f"Scheduler started with {len(self._tasks)} jobs")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")

    async def _loop(self, job: Job) -> None:
        if job.run_immediately:
            await self.run_job(job.name)
        while True:
            await asyncio.sleep(job.interval)
            await self.run_job(job.name)
