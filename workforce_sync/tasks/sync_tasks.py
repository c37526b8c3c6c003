"""Background tasks for scheduling platform synchronization.

The plain functions hold the job logic; the Celery tasks below wrap them
for the worker and the beat schedule.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, Optional

from workforce_sync.database.database import get_db_context
from workforce_sync.models.sync_job_log import SyncEntityKind, SyncJobLog, SyncTrigger
from workforce_sync.services.sync_orchestrator import (
    SyncOrchestrator,
    SyncRequest,
    build_scheduling_client,
)
from workforce_sync.tasks.base import RetryConfig, background_task

logger = logging.getLogger(__name__)


# Configuration and credential errors are never retried (see RetryConfig.dont_retry_on)
SYNC_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    default_retry_delay=300,
    exponential_backoff=True,
    max_backoff_delay=1800,
)


def _summary(log: SyncJobLog) -> Dict[str, Any]:
    return {
        "job_id": str(log.id),
        "status": log.status.value,
        "total_rows": log.total_rows,
        "inserted_rows": log.inserted_rows,
        "updated_rows": log.updated_rows,
        "skipped_rows": log.skipped_rows,
        "error_rows": log.error_rows,
    }


def run_scheduled_sync_job() -> Dict[str, Any]:
    """Daily unattended full sync over the fixed cron lookback."""
    logger.info("Starting scheduled scheduling platform sync")
    with get_db_context() as session, build_scheduling_client() as client:
        log = SyncOrchestrator(session, client).run_scheduled()
        return _summary(log)


def run_sync_job(
    entity_kind: str,
    days_back: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    centre_code: Optional[str] = None,
    triggered_by: Optional[str] = None,
) -> Dict[str, Any]:
    """Manual sync enqueued from outside the request cycle."""
    request = SyncRequest(
        entity_kind=SyncEntityKind(entity_kind),
        days_back=days_back,
        start_date=date.fromisoformat(start_date) if start_date else None,
        end_date=date.fromisoformat(end_date) if end_date else None,
        centre_code=centre_code,
    )
    with get_db_context() as session, build_scheduling_client() as client:
        log = SyncOrchestrator(session, client).run(
            request,
            trigger=SyncTrigger.MANUAL,
            triggered_by=uuid.UUID(triggered_by) if triggered_by else None,
        )
        return _summary(log)


scheduled_sync_task = background_task(
    name="tasks.run_scheduled_sync",
    queue="sync",
    retry_config=SYNC_RETRY_CONFIG,
)(run_scheduled_sync_job)

sync_job_task = background_task(
    name="tasks.run_sync_job",
    queue="sync",
    retry_config=SYNC_RETRY_CONFIG,
)(run_sync_job)
