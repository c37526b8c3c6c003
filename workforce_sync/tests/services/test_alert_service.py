"""Tests for the alert threshold evaluator."""

import uuid
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

import pytest

from workforce_sync.models.alert import (
    AlertChannel,
    AlertKind,
    AlertNotification,
    AlertOperator,
    AlertPeriod,
)
from workforce_sync.models.data_quality_issue import DataQualityIssue, IssueKind, IssueSeverity
from workforce_sync.models.employee import AbsenceEntry
from workforce_sync.services.alert_service import AlertEvaluator, period_bounds
from workforce_sync.tests.factories import add_employee, add_schedule
from workforce_sync.utils.errors import NotFoundError, ValidationError


TODAY = date(2026, 10, 19)


@pytest.fixture
def evaluator(session):
    return AlertEvaluator(session)


def seed_absenteeism(session):
    """Five 8h shifts in the last week and one 8h absence: 20% absenteeism."""
    employee = add_employee(session)
    for offset in range(5):
        add_schedule(session, employee, date(2026, 10, 13) + timedelta(days=offset))
    session.add(AbsenceEntry(employee_id=employee.id, absence_date=date(2026, 10, 14), hours=8.0))
    session.flush()
    return employee


class TestPeriodBounds:
    """Tests for rule lookback windows."""

    @pytest.mark.parametrize("period,today,expected", [
        (AlertPeriod.ULTIMO_DIA, TODAY, (date(2026, 10, 18), TODAY)),
        (AlertPeriod.ULTIMA_SEMANA, TODAY, (date(2026, 10, 12), TODAY)),
        (AlertPeriod.ULTIMO_MES, TODAY, (date(2026, 9, 19), TODAY)),
        (AlertPeriod.ULTIMO_MES, date(2026, 3, 31), (date(2026, 2, 28), date(2026, 3, 31))),
        (AlertPeriod.ULTIMO_MES, date(2026, 1, 10), (date(2025, 12, 10), date(2026, 1, 10))),
    ])
    def test_windows(self, period, today, expected):
        """Test each period ends today and month lookbacks clamp to short months."""
        assert period_bounds(period, today) == expected


# =============================================================================
# Evaluation
# =============================================================================

class TestEvaluation:
    """Tests for measuring rules and emitting notifications."""

    def test_absenteeism_over_threshold(self, session, evaluator):
        """Test a rate above the threshold emits a notification with its context."""
        seed_absenteeism(session)
        rule = evaluator.create_rule("Absentismo", AlertKind.ABSENTISMO_ALTO, threshold=10.0)

        result = evaluator.evaluate_all(TODAY)

        assert (result.evaluated, result.triggered) == (1, 1)
        [outcome] = result.outcomes
        assert outcome.value == pytest.approx(20.0)
        notification = session.get(AlertNotification, outcome.notification_id)
        assert notification.rule_id == rule.id
        assert notification.severity == IssueSeverity.CRITICA
        assert notification.detail["valor_actual"] == 20.0
        assert notification.detail["umbral"] == 10.0
        assert notification.detail["operador"] == ">"
        assert notification.detail["periodo"] == {"inicio": "2026-10-12", "fin": "2026-10-19"}
        assert notification.read is False

    def test_below_threshold_is_quiet(self, session, evaluator):
        """Test rules whose metric does not satisfy the threshold emit nothing."""
        seed_absenteeism(session)
        evaluator.create_rule("Absentismo", AlertKind.ABSENTISMO_ALTO, threshold=25.0)

        result = evaluator.evaluate_all(TODAY)

        assert result.triggered == 0
        assert evaluator.list_notifications() == []

    def test_repeated_runs_repeat_notifications(self, session, evaluator):
        """Test a rule still over its threshold fires again on the next run."""
        seed_absenteeism(session)
        evaluator.create_rule("Absentismo", AlertKind.ABSENTISMO_ALTO, threshold=10.0)

        evaluator.evaluate_all(TODAY)
        evaluator.evaluate_all(TODAY)

        assert len(evaluator.list_notifications()) == 2

    def test_empty_schedule_coverage(self, evaluator):
        """Test a window without schedules has zero coverage."""
        evaluator.create_rule("Cobertura", AlertKind.PLANIFICACION_VACIA, threshold=80.0, operator="<")

        [outcome] = evaluator.evaluate_all(TODAY).outcomes

        assert outcome.value == 0.0
        assert outcome.triggered is True
        assert evaluator.list_notifications()[0].severity == IssueSeverity.CRITICA

    def test_critical_issue_count(self, session, evaluator):
        """Test open critical issues raised inside the window are counted."""
        today = date.today()
        session.add(DataQualityIssue(
            kind=IssueKind.REAL_SIN_PLAN,
            severity=IssueSeverity.CRITICA,
            period_start=today - timedelta(days=30),
            period_end=today,
            detail={},
        ))
        session.flush()
        evaluator.create_rule("Críticas", AlertKind.DQ_CRITICA, threshold=0.0)

        [outcome] = evaluator.evaluate_all(today).outcomes

        assert outcome.value == 1.0
        assert outcome.triggered is True

    def test_measurement_failure_is_isolated(self, evaluator):
        """Test one failing rule does not stop the others."""
        failing = evaluator.create_rule("Absentismo", AlertKind.ABSENTISMO_ALTO, threshold=10.0)
        evaluator.create_rule("Cobertura", AlertKind.PLANIFICACION_VACIA, threshold=80.0, operator="<")

        with patch.object(evaluator, "_absenteeism", side_effect=RuntimeError("db down")):
            result = evaluator.evaluate_all(TODAY)

        assert result.evaluated == 2
        assert result.triggered == 1
        [error] = result.errors
        assert error.rule_id == failing.id
        assert error.error == "db down"

    def test_inactive_rules_are_skipped(self, session, evaluator):
        """Test deactivated rules are not evaluated."""
        rule = evaluator.create_rule("Cobertura", AlertKind.PLANIFICACION_VACIA, threshold=80.0, operator="<")
        rule.active = False
        session.flush()

        assert evaluator.evaluate_all(TODAY).evaluated == 0


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:
    """Tests for delivering notifications over channels."""

    def test_email_without_dispatcher_is_reported(self, session, evaluator):
        """Test a missing dispatcher is an error while the notification is still stored."""
        evaluator.create_rule(
            "Cobertura",
            AlertKind.PLANIFICACION_VACIA,
            threshold=80.0,
            operator="<",
            channels=["inapp", "email"],
            recipients=["jefa@example.com"],
        )

        [outcome] = evaluator.evaluate_all(TODAY).outcomes

        assert outcome.triggered is True
        assert outcome.dispatch_errors == ["No dispatcher configured for channel email"]
        assert session.get(AlertNotification, outcome.notification_id) is not None

    def test_dispatcher_receives_recipients(self, session):
        """Test configured dispatchers get the notification and normalized recipients."""
        dispatcher = MagicMock()
        evaluator = AlertEvaluator(session, dispatchers={AlertChannel.EMAIL: dispatcher})
        evaluator.create_rule(
            "Cobertura",
            AlertKind.PLANIFICACION_VACIA,
            threshold=80.0,
            operator="<",
            channels=["email"],
            recipients=[" Jefa@Example.com "],
        )

        [outcome] = evaluator.evaluate_all(TODAY).outcomes

        notification = session.get(AlertNotification, outcome.notification_id)
        dispatcher.dispatch.assert_called_once_with(notification, ["jefa@example.com"])
        assert outcome.dispatch_errors == []

    def test_dispatcher_failure_is_reported(self, session):
        """Test a raising dispatcher is reported per channel."""
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = ConnectionError("smtp down")
        evaluator = AlertEvaluator(session, dispatchers={AlertChannel.EMAIL: dispatcher})
        evaluator.create_rule(
            "Cobertura",
            AlertKind.PLANIFICACION_VACIA,
            threshold=80.0,
            operator="<",
            channels=["email"],
            recipients=["jefa@example.com"],
        )

        [outcome] = evaluator.evaluate_all(TODAY).outcomes

        assert outcome.triggered is True
        assert outcome.dispatch_errors == ["email: smtp down"]


# =============================================================================
# Rules and notifications
# =============================================================================

class TestRuleManagement:
    """Tests for creating rules and reading notifications."""

    @pytest.mark.parametrize("operator,expected", [
        (">", AlertOperator.GREATER_THAN),
        ("menor_que", AlertOperator.LESS_THAN),
        ("eq", AlertOperator.EQUAL_TO),
    ])
    def test_operator_aliases(self, evaluator, operator, expected):
        """Test symbols and named operators are accepted."""
        rule = evaluator.create_rule("Regla", AlertKind.COSTE_EXCESIVO, threshold=5.0, operator=operator)

        assert rule.operator == expected

    @pytest.mark.parametrize("kwargs", [
        {"name": " "},
        {"operator": ">="},
        {"channels": ["sms"]},
        {"channels": ["email"]},
        {"channels": ["email"], "recipients": ["no-es-un-email"]},
    ])
    def test_invalid_rules(self, evaluator, kwargs):
        """Test blank names, unknown operators or channels and bad recipients are rejected."""
        params = {"name": "Regla", "kind": AlertKind.COSTE_EXCESIVO, "threshold": 5.0}
        params.update(kwargs)

        with pytest.raises(ValidationError):
            evaluator.create_rule(**params)

    def test_mark_read_is_idempotent(self, evaluator):
        """Test marking twice keeps the first read time."""
        evaluator.create_rule("Cobertura", AlertKind.PLANIFICACION_VACIA, threshold=80.0, operator="<")
        evaluator.evaluate_all(TODAY)
        [notification] = evaluator.list_notifications(unread_only=True)

        first = evaluator.mark_read(notification.id)
        read_at = first.read_at
        second = evaluator.mark_read(notification.id)

        assert second.read is True
        assert second.read_at == read_at
        assert evaluator.list_notifications(unread_only=True) == []

    def test_mark_read_unknown(self, evaluator):
        """Test marking a missing notification raises NotFoundError."""
        with pytest.raises(NotFoundError):
            evaluator.mark_read(uuid.uuid4())

    def test_notifications_filtered_by_centre(self, evaluator):
        """Test notifications can be listed per centre."""
        evaluator.create_rule(
            "Cobertura C001",
            AlertKind.PLANIFICACION_VACIA,
            threshold=80.0,
            operator="<",
            centre_code="C001",
        )
        evaluator.evaluate_all(TODAY)

        assert len(evaluator.list_notifications(centre_code="C001")) == 1
        assert evaluator.list_notifications(centre_code="C002") == []
