"""
Run the pipeline on the SCHEDULE_CRON schedule until interrupted
"""

import asyncio
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import settings  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from ingestion.scheduler import PipelineScheduler  # noqa: E402

logger = logging.getLogger(__name__)


async def serve():
    scheduler = PipelineScheduler(settings)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


if __name__ == "__main__":
    setup_logging(log_name="scheduler")
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Interrupted")
