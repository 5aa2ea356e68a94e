import pytest
from unittest.mock import AsyncMock, patch

from core.exceptions import ConfigError
from ingestion.scheduler import PipelineScheduler
from schemas.results import PipelineResult


def test_scheduler_initialization(settings):
    scheduler = PipelineScheduler(settings)
    assert scheduler.scheduler is not None
    assert scheduler.runner.settings is settings


@pytest.mark.asyncio
async def test_scheduler_job_execution(settings):
    scheduler = PipelineScheduler(settings)

    with patch.object(scheduler.runner, "run", new=AsyncMock(return_value=PipelineResult())) as mock_run:
        result = await scheduler.run_pipeline_job()

    assert mock_run.called
    assert result.ok
    options = mock_run.call_args.args[0]
    assert options.run_date is not None
    assert not options.skip


@pytest.mark.asyncio
async def test_scheduler_job_config_error(settings):
    scheduler = PipelineScheduler(settings)

    with patch.object(scheduler.runner, "run", new=AsyncMock(side_effect=ConfigError("Missing required settings"))):
        assert await scheduler.run_pipeline_job() is None


@pytest.mark.asyncio
async def test_scheduler_registers_cron_job(make_settings):
    scheduler = PipelineScheduler(make_settings(SCHEDULE_CRON="30 4 * * 1-5"))

    scheduler.start()
    try:
        job = scheduler.scheduler.get_job("pipeline_job")
        assert job is not None
        assert job.max_instances == 1
        assert "hour='4'" in str(job.trigger)
    finally:
        scheduler.stop()
