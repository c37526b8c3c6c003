"""Background tasks for scheduled synchronization and monitoring."""

from workforce_sync.tasks.monitoring_tasks import (
    evaluate_alerts,
    recalculate_data_quality,
)
from workforce_sync.tasks.sync_tasks import (
    run_scheduled_sync_job,
    run_sync_job,
)

__all__ = [
    "evaluate_alerts",
    "recalculate_data_quality",
    "run_scheduled_sync_job",
    "run_sync_job",
]
