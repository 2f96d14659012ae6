import logging

from apscheduler.schedulers.background import BackgroundScheduler

from lms_sync.config import settings
from lms_sync.domain.jobs import roster_sweep


scheduler = BackgroundScheduler(timezone=settings.app_timezone)
logger = logging.getLogger(__name__)


def roster_sweep_job():
    roster_sweep.execute()


def start_scheduler():
    if not settings.roster_sweep_enabled:
        logger.info('scheduler_disabled reason=roster_sweep_enabled_false')
        return
    minutes = max(1, int(settings.roster_sweep_minutes or 60))
    if not settings.job_lock_redis_url:
        logger.warning('roster_sweep_lock_process_local reason=job_lock_redis_url_unset')
    scheduler.add_job(roster_sweep_job, 'interval', minutes=minutes, id='roster_sweep', replace_existing=True)
    logger.info('scheduler_job_registered id=roster_sweep minutes=%s', minutes)

    if not scheduler.running:
        scheduler.start()


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
