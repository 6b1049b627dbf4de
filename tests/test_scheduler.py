import asyncio
from unittest.mock import AsyncMock

import pytest

from rentbot.core.scheduler import Scheduler


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        Scheduler().schedule(0, AsyncMock())


async def test_run_once_survives_task_errors():
    scheduler = Scheduler()
    job = scheduler.schedule(60, AsyncMock(side_effect=RuntimeError("boom")), name="broken")

    await scheduler.run_once(job)

    assert job.runs == 1


async def test_jobs_run_until_stopped():
    scheduler = Scheduler()
    ok = AsyncMock()
    broken = AsyncMock(side_effect=RuntimeError("boom"))
    scheduler.schedule(0.01, ok, name="ok", run_immediately=True)
    scheduler.schedule(0.01, broken, name="broken", run_immediately=True)

    scheduler.start()
    assert scheduler.running is True
    await asyncio.sleep(0.1)
    await scheduler.stop()

    assert scheduler.running is False
    assert ok.await_count >= 2
    assert broken.await_count >= 2
    calls = ok.await_count
    await asyncio.sleep(0.05)
    assert ok.await_count == calls


async def test_delayed_first_run():
    scheduler = Scheduler()
    task = AsyncMock()
    scheduler.schedule(10, task, name="hourly")

    scheduler.start()
    await asyncio.sleep(0.05)
    await scheduler.stop()

    task.assert_not_awaited()
    assert [j.name for j in scheduler.jobs] == ["hourly"]
