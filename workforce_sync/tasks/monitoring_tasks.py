"""Background tasks for data quality recalculation and alert evaluation."""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional

from workforce_sync.config.settings import get_settings
from workforce_sync.database.database import get_db_context
from workforce_sync.services.alert_service import AlertEvaluator
from workforce_sync.services.data_quality_service import DataQualityEngine
from workforce_sync.tasks.base import RetryConfig, background_task

logger = logging.getLogger(__name__)


MONITORING_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    default_retry_delay=120,
    exponential_backoff=True,
    max_backoff_delay=900,
)


def recalculate_data_quality(today: Optional[date] = None) -> Dict[str, Any]:
    """Recalculate issues over the configured trailing window ending today."""
    settings = get_settings().data_quality
    end = today or date.today()
    start = end - timedelta(days=settings.scheduled_window_days - 1)

    with get_db_context() as session:
        result = DataQualityEngine(session, settings).recalculate(start, end)
        summary = result.to_dict()

    if result.rule_errors:
        logger.warning(
            f"Data quality recalculation finished with {len(result.rule_errors)} failing rules",
            extra={"rule_errors": result.rule_errors},
        )
    return summary


def evaluate_alerts(today: Optional[date] = None) -> Dict[str, Any]:
    """Evaluate every active alert rule."""
    with get_db_context() as session:
        result = AlertEvaluator(session).evaluate_all(today=today)
        summary = result.to_dict()

    for outcome in result.errors:
        logger.warning(
            f"Alert rule {outcome.rule_id} reported errors",
            extra={"error": outcome.error, "dispatch_errors": outcome.dispatch_errors},
        )
    return summary


data_quality_task = background_task(
    name="tasks.recalculate_data_quality",
    queue="monitoring",
    retry_config=MONITORING_RETRY_CONFIG,
)(recalculate_data_quality)

alert_evaluation_task = background_task(
    name="tasks.evaluate_alerts",
    queue="monitoring",
    retry_config=MONITORING_RETRY_CONFIG,
)(evaluate_alerts)
