"""Tests for the background task functions and their scheduling."""

from contextlib import contextmanager
from datetime import date
from unittest.mock import patch

import pytest

from workforce_sync.config.settings import Settings
from workforce_sync.models.alert import AlertKind
from workforce_sync.models.data_quality_issue import IssueKind
from workforce_sync.services.alert_service import AlertEvaluator
from workforce_sync.tasks import monitoring_tasks, sync_tasks
from workforce_sync.tasks.base import RetryConfig
from workforce_sync.tasks.celery_app import build_beat_schedule
from workforce_sync.tests.factories import add_centre, add_employee, add_schedule, build_fake_platform, json_route
from workforce_sync.utils.errors import SchedulingAuthError, SchedulingUnavailableError, ValidationError


def session_context(session):
    @contextmanager
    def _context():
        yield session
        session.flush()
    return _context


class TestRetryConfig:
    """Tests for task retry decisions."""

    def test_backoff_is_capped(self):
        """Test delays grow exponentially up to the maximum."""
        config = RetryConfig(default_retry_delay=60, backoff_factor=2.0, max_backoff_delay=300)

        assert [config.get_retry_delay(n) for n in range(4)] == [60, 120, 240, 300]

    def test_fixed_delay_without_backoff(self):
        """Test the default delay is used when backoff is disabled."""
        assert RetryConfig(default_retry_delay=30, exponential_backoff=False).get_retry_delay(5) == 30

    @pytest.mark.parametrize("exc,expected", [
        (SchedulingUnavailableError(message="timeout"), True),
        (RuntimeError("boom"), True),
        (ValidationError(message="bad config"), False),
        (SchedulingAuthError(message="expired cookie", status=401), False),
    ])
    def test_should_retry(self, exc, expected):
        """Test configuration and credential errors are never retried."""
        assert RetryConfig().should_retry(exc) is expected


class TestBeatSchedule:
    """Tests for the periodic job schedule."""

    def test_jobs_follow_sync_settings(self):
        """Test the daily sync runs at the configured hour and data quality one hour later."""
        settings = Settings()
        settings.sync.cron_hour_utc = 23

        schedule = build_beat_schedule(settings)

        assert set(schedule) == {"scheduling-sync-daily", "data-quality-daily", "alerts-hourly"}
        assert schedule["scheduling-sync-daily"]["task"] == "tasks.run_scheduled_sync"
        assert schedule["scheduling-sync-daily"]["schedule"].hour == {23}
        assert schedule["data-quality-daily"]["schedule"].hour == {0}
        assert schedule["alerts-hourly"]["options"]["queue"] == "monitoring"


# =============================================================================
# Monitoring tasks
# =============================================================================

class TestMonitoringTasks:
    """Tests for the data quality and alert jobs."""

    def test_recalculate_data_quality(self, session):
        """Test the recalculation covers the trailing window ending today."""
        add_schedule(session, add_employee(session), date(2026, 10, 5))

        with patch.object(monitoring_tasks, "get_db_context", session_context(session)):
            summary = monitoring_tasks.recalculate_data_quality(today=date(2026, 10, 19))

        assert summary["period_end"] == "2026-10-19"
        assert summary["period_start"] == "2026-09-19"
        assert summary["by_kind"][IssueKind.PLAN_SIN_REAL.value] == 1
        assert summary["rule_errors"] == {}

    def test_evaluate_alerts(self, session):
        """Test active rules are evaluated and summarized."""
        AlertEvaluator(session).create_rule("Cobertura", AlertKind.PLANIFICACION_VACIA, threshold=80.0, operator="<")

        with patch.object(monitoring_tasks, "get_db_context", session_context(session)):
            summary = monitoring_tasks.evaluate_alerts(today=date(2026, 10, 19))

        assert summary["evaluated"] == 1
        assert summary["triggered"] == 1


# =============================================================================
# Sync tasks
# =============================================================================

class TestSyncTasks:
    """Tests for the manual and scheduled sync jobs."""

    @pytest.fixture
    def platform(self):
        return build_fake_platform({
            "/api/employees": json_route([{"id": "E1", "firstName": "Ana"}]),
            "/api/assignments": json_route([]),
            "/api/absences": json_route([]),
        })

    def test_manual_job(self, session, platform):
        """Test string arguments from the queue are parsed into a sync request."""
        add_centre(session)
        session.commit()

        with patch.object(sync_tasks, "get_db_context", session_context(session)), \
                patch.object(sync_tasks, "build_scheduling_client", return_value=platform):
            summary = sync_tasks.run_sync_job(
                "employees",
                start_date="2026-10-12",
                end_date="2026-10-18",
                triggered_by="11111111-1111-1111-1111-111111111111",
            )

        assert summary["status"] == "completed"
        assert summary["inserted_rows"] == 1

    def test_scheduled_job(self, session, platform):
        """Test the unattended job runs a full sync."""
        add_centre(session)
        session.commit()

        with patch.object(sync_tasks, "get_db_context", session_context(session)), \
                patch.object(sync_tasks, "build_scheduling_client", return_value=platform):
            summary = sync_tasks.run_scheduled_sync_job()

        assert summary["status"] == "completed"
        assert summary["total_rows"] == 1

    def test_missing_credentials(self):
        """Test the job refuses to run without platform credentials."""
        with pytest.raises(ValidationError):
            sync_tasks.build_scheduling_client(Settings())
