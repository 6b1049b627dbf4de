from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

log = logging.getLogger(__name__)

Task = Callable[[], Awaitable[object]]


@dataclass
class ScheduledJob:
    name: str
    interval: float
    task: Task
    run_immediately: bool = False
    runs: int = 0


class Scheduler:
    """Periodic background jobs on the running event loop.

    Each job gets its own loop; a failing run is logged and the job keeps its cadence.
    """

    def __init__(self) -> None:
        self._jobs: list[ScheduledJob] = []
        self._tasks: list[asyncio.Task] = []

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def schedule(self, interval: float, task: Task, *, name: str | None = None, run_immediately: bool = False) -> ScheduledJob:
        if interval <= 0:
            raise ValueError("interval must be positive")
        job = ScheduledJob(
            name=name or getattr(task, "__name__", "job"),
            interval=float(interval),
            task=task,
            run_immediately=run_immediately,
        )
        self._jobs.append(job)
        if self._tasks:
            # already started: start this one right away
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"scheduler:{job.name}"))
        return job

    def start(self) -> None:
        if self._tasks:
            return
        for job in self._jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"scheduler:{job.name}"))
        log.info("scheduler_start jobs=%s", [j.name for j in self._jobs])

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info("scheduler_stop")

    async def run_once(self, job: ScheduledJob) -> None:
        try:
            await job.task()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("scheduler_task_error job=%s", job.name)
        finally:
            job.runs += 1

    async def _loop(self, job: ScheduledJob) -> None:
        if not job.run_immediately:
            await asyncio.sleep(job.interval)
        while True:
            await self.run_once(job)
            await asyncio.sleep(job.interval)
