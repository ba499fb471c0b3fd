from celery import Celery
from celery.schedules import crontab

from planner.core.config import settings

celery_app = Celery(
    "planner_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["planner.worker.tasks"],
)

celery_app.conf.task_serializer = "json"
celery_app.conf.result_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.task_default_queue = "default"
celery_app.conf.task_acks_late = True
celery_app.conf.worker_max_tasks_per_child = 100
celery_app.conf.timezone = settings.TIMEZONE
celery_app.conf.task_routes = {
    "planner.worker.tasks.*": {"queue": "sync"},
}
celery_app.conf.beat_schedule = {
    "rotation-check": {
        "task": "planner.worker.tasks.rotation_check",
        "schedule": crontab(hour=settings.DAILY_SYNC_HOUR, minute=0),
    },
    "daily-sync": {
        "task": "planner.worker.tasks.daily_sync",
        "schedule": crontab(hour=settings.DAILY_SYNC_HOUR, minute=5),
    },
}
