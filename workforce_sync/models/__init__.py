"""Models package for the workforce reconciliation store."""

from workforce_sync.models.alert import (
    AlertChannel,
    AlertKind,
    AlertNotification,
    AlertOperator,
    AlertPeriod,
    AlertRule,
)
from workforce_sync.models.base import Base
from workforce_sync.models.data_quality_issue import (
    DataQualityIssue,
    IssueKind,
    IssueSeverity,
)
from workforce_sync.models.employee import (
    AbsenceEntry,
    Centre,
    Employee,
    PayrollPeriod,
    RecordSource,
    ScheduleEntry,
)
from workforce_sync.models.import_job import (
    FileKind,
    ImportJob,
    ImportJobStatus,
    ImportStrategy,
)
from workforce_sync.models.mapping_profile import MappingProfile
from workforce_sync.models.sync_job_log import (
    SyncEntityKind,
    SyncJobLog,
    SyncJobStatus,
    SyncTrigger,
)

__all__ = [
    "AbsenceEntry",
    "AlertChannel",
    "AlertKind",
    "AlertNotification",
    "AlertOperator",
    "AlertPeriod",
    "AlertRule",
    "Base",
    "Centre",
    "DataQualityIssue",
    "Employee",
    "FileKind",
    "ImportJob",
    "ImportJobStatus",
    "ImportStrategy",
    "IssueKind",
    "IssueSeverity",
    "MappingProfile",
    "PayrollPeriod",
    "RecordSource",
    "ScheduleEntry",
    "SyncEntityKind",
    "SyncJobLog",
    "SyncJobStatus",
    "SyncTrigger",
]
