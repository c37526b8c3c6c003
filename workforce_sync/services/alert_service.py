"""
Alert Threshold Evaluator

Evaluates active alert rules against the reconciled store and emits one
notification per rule whose metric satisfies its threshold.
"""

import logging
import uuid
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_sync.data.workforce_repository import WorkforceRepository
from workforce_sync.models.alert import (
    AlertChannel,
    AlertKind,
    AlertNotification,
    AlertOperator,
    AlertPeriod,
    AlertRule,
)
from workforce_sync.models.base import utcnow
from workforce_sync.models.data_quality_issue import IssueSeverity
from workforce_sync.utils.csv_parser import validate_email
from workforce_sync.utils.errors import ValidationError, create_not_found_error

logger = logging.getLogger(__name__)


# =============================================================================
# Dispatch
# =============================================================================

class AlertDispatcher(Protocol):
    """Delivers a stored notification over one channel."""

    def dispatch(self, notification: AlertNotification, recipients: List[str]) -> None:
        ...


def period_bounds(period: AlertPeriod, today: date) -> Tuple[date, date]:
    """Inclusive window ending today for a rule period."""
    if period is AlertPeriod.ULTIMO_DIA:
        return today - timedelta(days=1), today
    if period is AlertPeriod.ULTIMA_SEMANA:
        return today - timedelta(days=7), today

    year, month = (today.year - 1, 12) if today.month == 1 else (today.year, today.month - 1)
    day = min(today.day, monthrange(year, month)[1])
    return date(year, month, day), today


# =============================================================================
# Results
# =============================================================================

@dataclass
class Measurement:
    """A computed metric plus the context shown in the notification."""

    value: float
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleOutcome:
    rule_id: uuid.UUID
    kind: AlertKind
    value: Optional[float] = None
    triggered: bool = False
    notification_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    dispatch_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "kind": self.kind.value,
            "value": self.value,
            "triggered": self.triggered,
            "notification_id": str(self.notification_id) if self.notification_id else None,
            "error": self.error,
            "dispatch_errors": list(self.dispatch_errors),
        }


@dataclass
class EvaluationResult:
    """Outcome of one evaluation run over every active rule."""

    evaluated: int = 0
    outcomes: List[RuleOutcome] = field(default_factory=list)

    @property
    def triggered(self) -> int:
        return sum(1 for o in self.outcomes if o.triggered)

    @property
    def errors(self) -> List[RuleOutcome]:
        return [o for o in self.outcomes if o.error or o.dispatch_errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "triggered": self.triggered,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# =============================================================================
# Evaluator
# =============================================================================

class AlertEvaluator:
    """
    Evaluates alert rules and records notifications.

    Stateless between runs: a rule that keeps satisfying its threshold
    produces a new notification on every run.
    """

    def __init__(
        self,
        session: Session,
        dispatchers: Optional[Dict[AlertChannel, AlertDispatcher]] = None,
    ):
        self.session = session
        self.dispatchers = dict(dispatchers or {})
        self.repository = WorkforceRepository(session)

    def evaluate_all(self, today: Optional[date] = None) -> EvaluationResult:
        """Evaluate every active rule."""
        today = today or utcnow().date()
        rules = list(self.session.execute(
            select(AlertRule).where(AlertRule.active.is_(True)).order_by(AlertRule.created_at)
        ).scalars())

        result = EvaluationResult(evaluated=len(rules))
        for rule in rules:
            result.outcomes.append(self.evaluate_rule(rule, today))

        logger.info(
            f"Evaluated {result.evaluated} alert rules, {result.triggered} triggered",
            extra={"evaluated": result.evaluated, "triggered": result.triggered},
        )
        return result

    def evaluate_rule(self, rule: AlertRule, today: date) -> RuleOutcome:
        outcome = RuleOutcome(rule_id=rule.id, kind=rule.kind)
        start, end = period_bounds(rule.period, today)

        try:
            with self.session.begin_nested():
                measurement = self.measure(rule.kind, start, end, rule.centre_code)
        except Exception as e:
            logger.exception(
                f"Alert rule {rule.id} ({rule.kind.value}) could not be evaluated: {str(e)}",
                extra={"rule_id": str(rule.id)},
            )
            outcome.error = str(e)
            return outcome

        outcome.value = measurement.value
        if not rule.operator.compare(measurement.value, rule.threshold):
            return outcome

        notification = self._build_notification(rule, measurement, start, end)
        self.session.add(notification)
        self.session.flush()

        outcome.triggered = True
        outcome.notification_id = notification.id
        outcome.dispatch_errors = self._dispatch(rule, notification)

        logger.info(
            f"Alert rule '{rule.name}' triggered: {measurement.value:.2f} {rule.operator.value} {rule.threshold}",
            extra={"rule_id": str(rule.id), "notification_id": str(notification.id)},
        )
        return outcome

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def measure(self, kind: AlertKind, start: date, end: date, centre_code: Optional[str]) -> Measurement:
        if kind is AlertKind.ABSENTISMO_ALTO:
            return self._absenteeism(start, end, centre_code)
        if kind is AlertKind.COSTE_EXCESIVO:
            return self._cost_deviation(start, end, centre_code)
        if kind is AlertKind.DQ_CRITICA:
            return self._critical_issues(start, centre_code)
        return self._schedule_coverage(start, end, centre_code)

    def _absenteeism(self, start: date, end: date, centre_code: Optional[str]) -> Measurement:
        planned = sum(self.repository.planned_hours_by_employee(start, end, centre_code).values())
        absent = self.repository.absence_hours(start, end, centre_code)
        rate = (absent / planned * 100) if planned > 0 else 0.0
        return Measurement(value=rate, detail={
            "horas_ausencia": round(absent, 2),
            "horas_planificadas": round(planned, 2),
        })

    def _cost_deviation(self, start: date, end: date, centre_code: Optional[str]) -> Measurement:
        planned_hours = self.repository.planned_hours_by_employee(start, end, centre_code)
        payroll = self.repository.payroll_by_employee(start, end, centre_code)

        planned_cost = 0.0
        for employee_id, hours in planned_hours.items():
            totals = payroll.get(employee_id)
            rate = totals.cost_per_hour if totals is not None else None
            if rate is not None:
                planned_cost += hours * rate
        actual_cost = sum(totals.total_cost for totals in payroll.values())

        deviation = ((actual_cost - planned_cost) / planned_cost * 100) if planned_cost > 0 else 0.0
        return Measurement(value=deviation, detail={
            "costes_planificados": round(planned_cost, 2),
            "costes_reales": round(actual_cost, 2),
        })

    def _critical_issues(self, start: date, centre_code: Optional[str]) -> Measurement:
        since = datetime.combine(start, time.min, tzinfo=timezone.utc)
        count = self.repository.open_issue_count(IssueSeverity.CRITICA, since, centre_code)
        return Measurement(value=float(count), detail={"total_incidencias": count})

    def _schedule_coverage(self, start: date, end: date, centre_code: Optional[str]) -> Measurement:
        days_with_schedule = len(self.repository.schedule_days(start, end, centre_code))
        total_days = (end - start).days + 1
        coverage = (days_with_schedule / total_days * 100) if total_days > 0 else 0.0
        return Measurement(value=coverage, detail={
            "dias_con_planificacion": days_with_schedule,
            "dias_totales": total_days,
        })

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def _build_notification(
        self,
        rule: AlertRule,
        measurement: Measurement,
        start: date,
        end: date,
    ) -> AlertNotification:
        scope = rule.centre_code or "todos los centros"
        value = measurement.value

        if rule.kind is AlertKind.ABSENTISMO_ALTO:
            severity = IssueSeverity.CRITICA if value > 15 else IssueSeverity.ALTA
            title = f"Absentismo elevado en {scope}"
            message = f"La tasa de absentismo es {value:.2f}% (umbral {rule.operator.value} {rule.threshold}%)"
        elif rule.kind is AlertKind.COSTE_EXCESIVO:
            severity = IssueSeverity.CRITICA if value > 20 else IssueSeverity.ALTA
            title = f"Desviación de costes en {scope}"
            message = f"La desviación de costes es {value:.2f}% (umbral {rule.operator.value} {rule.threshold}%)"
        elif rule.kind is AlertKind.DQ_CRITICA:
            severity = IssueSeverity.CRITICA
            title = "Incidencias críticas de calidad de datos"
            message = f"Hay {int(value)} incidencias críticas sin resolver"
        else:
            severity = IssueSeverity.CRITICA if value < 50 else IssueSeverity.ALTA
            title = f"Planificación incompleta en {scope}"
            message = f"Solo el {value:.1f}% de los días tienen planificación"

        return AlertNotification(
            rule_id=rule.id,
            kind=rule.kind,
            severity=severity,
            title=title,
            message=message,
            detail={
                **measurement.detail,
                "valor_actual": round(value, 2),
                "umbral": rule.threshold,
                "operador": rule.operator.value,
                "periodo": {"inicio": start.isoformat(), "fin": end.isoformat()},
            },
            centre_code=rule.centre_code,
            channels=list(rule.channels or []),
        )

    def _dispatch(self, rule: AlertRule, notification: AlertNotification) -> List[str]:
        """Send through every enabled channel other than in-app; returns failures."""
        errors = []
        for channel in rule.enabled_channels:
            if channel is AlertChannel.INAPP:
                continue
            dispatcher = self.dispatchers.get(channel)
            if dispatcher is None:
                message = f"No dispatcher configured for channel {channel.value}"
                logger.error(message, extra={"rule_id": str(rule.id)})
                errors.append(message)
                continue
            try:
                dispatcher.dispatch(notification, list(rule.recipients or []))
            except Exception as e:
                logger.exception(
                    f"Dispatch of notification {notification.id} over {channel.value} failed: {str(e)}",
                    extra={"rule_id": str(rule.id), "channel": channel.value},
                )
                errors.append(f"{channel.value}: {str(e)}")
        return errors

    # -------------------------------------------------------------------------
    # Rules and notifications
    # -------------------------------------------------------------------------

    def create_rule(
        self,
        name: str,
        kind: AlertKind,
        threshold: float,
        operator: str = ">",
        period: AlertPeriod = AlertPeriod.ULTIMA_SEMANA,
        centre_code: Optional[str] = None,
        channels: Optional[List[str]] = None,
        recipients: Optional[List[str]] = None,
        created_by: Optional[uuid.UUID] = None,
    ) -> AlertRule:
        """
        Create an alert rule.

        Raises:
            ValidationError: On an unknown operator or channel, or an invalid recipient
        """
        if not (name or "").strip():
            raise ValidationError(message="Rule name is required")

        try:
            parsed_operator = AlertOperator.parse(operator)
        except ValueError:
            raise ValidationError(message=f"Unknown operator: {operator}")

        channel_values = channels or [AlertChannel.INAPP.value]
        try:
            parsed_channels = [AlertChannel(value) for value in channel_values]
        except ValueError:
            raise ValidationError(message=f"Unknown channel in {channel_values}")

        emails = [email.strip().lower() for email in (recipients or []) if email and email.strip()]
        for email in emails:
            is_valid, _ = validate_email(email)
            if not is_valid:
                raise ValidationError(message=f"Invalid recipient email: {email}")
        if AlertChannel.EMAIL in parsed_channels and not emails:
            raise ValidationError(message="Email channel requires at least one recipient")

        rule = AlertRule(
            name=name.strip(),
            kind=kind,
            threshold=threshold,
            operator=parsed_operator,
            period=period,
            centre_code=centre_code or None,
            channels=[c.value for c in parsed_channels],
            recipients=emails,
            created_by=created_by,
        )
        self.session.add(rule)
        self.session.flush()
        return rule

    def list_rules(self, active_only: bool = False) -> List[AlertRule]:
        query = select(AlertRule).order_by(AlertRule.created_at)
        if active_only:
            query = query.where(AlertRule.active.is_(True))
        return list(self.session.execute(query).scalars())

    def list_notifications(
        self,
        unread_only: bool = False,
        centre_code: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AlertNotification]:
        query = select(AlertNotification)
        if unread_only:
            query = query.where(AlertNotification.read.is_(False))
        if centre_code:
            query = query.where(AlertNotification.centre_code == centre_code)
        query = query.order_by(AlertNotification.created_at.desc()).limit(limit).offset(offset)
        return list(self.session.execute(query).scalars())

    def mark_read(self, notification_id: uuid.UUID) -> AlertNotification:
        """Flag a notification as read; already-read notifications are left untouched."""
        notification = self.session.get(AlertNotification, notification_id)
        if notification is None:
            raise create_not_found_error("Alert notification", notification_id)
        if not notification.read:
            notification.read = True
            notification.read_at = utcnow()
            self.session.flush()
        return notification
