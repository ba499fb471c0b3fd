import logging

from celery import shared_task

from planner.core.celery_app import celery_app  # noqa: F401  registers the app for shared_task
from planner.services.rotation_service import check_and_rotate
from planner.services.sync_service import sync_current_month, sync_yesterday
from planner.worker.runner import run_db_job, run_sync_job

logger = logging.getLogger(__name__)


@shared_task(name="planner.worker.tasks.daily_sync")
def daily_sync_job() -> dict:
    """Nightly catch-up: catalog, yesterday's sales, current month and stock."""
    logger.info("Daily sync job started")
    result = run_sync_job(sync_yesterday)
    logger.info("Daily sync job finished")
    return result


@shared_task(name="planner.worker.tasks.current_month_sync")
def current_month_sync_job(include_today: bool = False) -> dict:
    logger.info("Current month sync job started", extra={"include_today": include_today})
    return run_sync_job(lambda db, client: sync_current_month(db, client, include_today=include_today))


@shared_task(name="planner.worker.tasks.rotation_check")
def rotation_check_job(force: bool = False) -> dict:
    logger.info("Rotation check job started", extra={"force": force})
    return run_db_job(lambda db: check_and_rotate(db, force=force))
