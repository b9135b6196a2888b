"""
Unit tests for the APScheduler wrapper.
"""
import asyncio

import pytest

from crm_platform.jobs.scheduler import SchedulerManager


async def sample_job():
    return "ok"


@pytest.mark.unit
def test_interval_job_requires_an_interval():
    manager = SchedulerManager()

    with pytest.raises(ValueError):
        manager.add_interval_job(sample_job, job_id="sample")


@pytest.mark.unit
def test_add_interval_job():
    manager = SchedulerManager()

    manager.add_interval_job(sample_job, job_id="sample", minutes=5)

    assert [job.id for job in manager.scheduler.get_jobs()] == ["sample"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_and_shutdown_on_running_loop():
    manager = SchedulerManager()
    manager.add_interval_job(sample_job, job_id="sample", seconds=30)

    manager.start()
    assert manager.running

    manager.shutdown()
    await asyncio.sleep(0)
    assert not manager.running


@pytest.mark.unit
def test_shutdown_when_not_running_is_harmless():
    manager = SchedulerManager()
    manager.shutdown()
    assert not manager.running
