"""Cron-style scheduling of the purge sweep."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from snipdrop.config import CDNConfig
from snipdrop.services.purge import run_purge_job
from snipdrop.storage.base import MetadataStore, StorageBackend

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "purge_expired_files"


def create_scheduler(config: CDNConfig, store: MetadataStore, storage: StorageBackend) -> AsyncIOScheduler:
    """Build (but do not start) the scheduler; the purge job never overlaps itself."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_purge_job,
        CronTrigger.from_crontab(config.purge_cron),
        args=[config, store, storage],
        id=PURGE_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Purge scheduled with cron '%s'", config.purge_cron)
    return scheduler
