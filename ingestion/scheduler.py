import logging
from datetime import date
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from core.config import Settings, settings as default_settings
from core.exceptions import ConfigError
from ingestion.runner import PipelineOptions, PipelineRunner

logger = logging.getLogger(__name__)

class PipelineScheduler:
    def __init__(self, settings: Settings = default_settings):
        self.settings = settings
        self.scheduler = AsyncIOScheduler()
        self.runner = PipelineRunner(settings)

    async def run_pipeline_job(self):
        """Job to run the full pipeline for today's artifacts"""
        logger.info("Scheduler: Starting pipeline job")
        try:
            result = await self.runner.run(PipelineOptions(run_date=date.today()))
        except ConfigError as e:
            logger.error(f"Scheduler: pipeline not started - {e.message}")
            return None

        if result.ok:
            logger.info("Scheduler: pipeline job finished")
        else:
            logger.error(f"Scheduler: pipeline job failed (exit code {result.exit_code})")
        return result

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_pipeline_job,
            trigger=CronTrigger.from_crontab(self.settings.SCHEDULE_CRON),
            id="pipeline_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        logger.info(f"Pipeline scheduler started ({self.settings.SCHEDULE_CRON})")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Pipeline scheduler stopped")
