"""
Celery Application Entry Point

Celery configuration with a Redis broker and the beat schedule of the
unattended jobs.
"""

import logging
from typing import Any, Dict, List, Optional

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_retry

from workforce_sync.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


# Auto-discover tasks from these modules
TASK_MODULES: List[str] = [
    "workforce_sync.tasks.sync_tasks",
    "workforce_sync.tasks.monitoring_tasks",
]

CELERY_TASK_ROUTES = {
    "tasks.run_scheduled_sync": {"queue": "sync"},
    "tasks.run_sync_job": {"queue": "sync"},
    "tasks.recalculate_data_quality": {"queue": "monitoring"},
    "tasks.evaluate_alerts": {"queue": "monitoring"},
}


def build_beat_schedule(settings: Settings) -> Dict[str, Any]:
    """Daily full sync, daily data quality recalculation after it, hourly alerts."""
    sync = settings.sync
    return {
        "scheduling-sync-daily": {
            "task": "tasks.run_scheduled_sync",
            "schedule": crontab(hour=sync.cron_hour_utc, minute=sync.cron_minute),
            "options": {"queue": "sync"},
        },
        "data-quality-daily": {
            "task": "tasks.recalculate_data_quality",
            "schedule": crontab(hour=(sync.cron_hour_utc + 1) % 24, minute=sync.cron_minute),
            "options": {"queue": "monitoring"},
        },
        "alerts-hourly": {
            "task": "tasks.evaluate_alerts",
            "schedule": crontab(minute=settings.celery.alert_evaluation_minute),
            "options": {"queue": "monitoring"},
        },
    }


def create_celery_app(name: str = "workforce_sync", settings: Optional[Settings] = None) -> Celery:
    """Create and configure the Celery application."""
    settings = settings or get_settings()
    config = settings.celery

    app = Celery(name)
    app.conf.update(
        broker_url=config.broker_url,
        result_backend=config.result_backend,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone=config.timezone,
        enable_utc=True,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        task_default_queue="default",
        worker_prefetch_multiplier=1,
        result_expires=3600,
        task_track_started=True,
        task_routes=CELERY_TASK_ROUTES,
        beat_schedule=build_beat_schedule(settings),
    )
    app.autodiscover_tasks(TASK_MODULES, related_name=None)

    logger.info(f"Celery app '{name}' configured with broker: {config.broker_url}")
    return app


@task_failure.connect
def handle_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    """Log task failures for monitoring."""
    logger.error(
        f"Task {sender.name}[{task_id}] failed: {str(exception)}",
        extra={"task_name": sender.name, "task_id": task_id},
    )


@task_retry.connect
def handle_task_retry(sender=None, reason=None, **kwargs):
    logger.warning(
        f"Task {sender.name} retrying: {reason}",
        extra={"task_name": sender.name},
    )


celery_app = create_celery_app()
