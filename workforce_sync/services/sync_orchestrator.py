"""
Pull-based synchronization jobs against the scheduling platform.

A job covers one entity kind (or all of them) over a bounded lookback
window, for every syncable centre or a single one. Each job leaves exactly
one SyncJobLog that is created in ``running`` and finalized once.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from workforce_sync.config.settings import Settings, SyncSettings, get_settings
from workforce_sync.models.employee import Centre
from workforce_sync.models.import_job import ImportStrategy
from workforce_sync.models.sync_job_log import (
    SyncEntityKind,
    SyncJobLog,
    SyncJobStatus,
    SyncTrigger,
)
from workforce_sync.services.batch_reconciler import BatchReconciler, BatchResult
from workforce_sync.services.identity_store import IdentityMappingStore
from workforce_sync.services.reconcile_targets import (
    DEFAULT_ABSENCE_HOURS,
    DEFAULT_ABSENCE_TYPE,
    AbsenceRow,
    AbsenceTarget,
    EmployeeRow,
    EmployeeTarget,
    ScheduleRow,
    ScheduleTarget,
)
from workforce_sync.services.scheduling_client import SchedulingApiClient
from workforce_sync.utils.errors import (
    SchedulingApiError,
    ValidationError,
    create_not_found_error,
)

logger = logging.getLogger(__name__)


PHASES: Dict[SyncEntityKind, List[SyncEntityKind]] = {
    SyncEntityKind.EMPLOYEES: [SyncEntityKind.EMPLOYEES],
    SyncEntityKind.SCHEDULES: [SyncEntityKind.SCHEDULES],
    SyncEntityKind.ABSENCES: [SyncEntityKind.ABSENCES],
    SyncEntityKind.FULL: [
        SyncEntityKind.EMPLOYEES,
        SyncEntityKind.SCHEDULES,
        SyncEntityKind.ABSENCES,
    ],
}

# Error kinds recorded in the job log per phase
ERROR_KIND = {
    SyncEntityKind.EMPLOYEES: "employee",
    SyncEntityKind.SCHEDULES: "schedule",
    SyncEntityKind.ABSENCES: "absence",
}


class MalformedRecordError(ValueError):
    """An API record lacks the fields needed to build a row."""


# =============================================================================
# Requests
# =============================================================================

@dataclass
class SyncRequest:
    """Parameters of a synchronization job."""

    entity_kind: SyncEntityKind
    days_back: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    centre_code: Optional[str] = None

    def resolve_window(self, today: date, settings: SyncSettings) -> Tuple[date, date]:
        """
        Compute the inclusive date window of the job.

        Explicit dates win over the lookback; without either the default
        lookback applies.

        Raises:
            ValidationError: If the dates or lookback are out of bounds.
        """
        if self.start_date or self.end_date:
            if not (self.start_date and self.end_date):
                raise ValidationError(message="Both start_date and end_date are required")
            if self.start_date > self.end_date:
                raise ValidationError(message="start_date must not be after end_date")
            if (self.end_date - self.start_date).days > settings.max_days_back:
                raise ValidationError(
                    message=f"Date range cannot exceed {settings.max_days_back} days",
                )
            return self.start_date, self.end_date

        days_back = self.days_back if self.days_back is not None else settings.default_days_back
        if days_back < 1 or days_back > settings.max_days_back:
            raise ValidationError(
                message=f"days_back must be between 1 and {settings.max_days_back}",
                details={"days_back": days_back},
            )
        return today - timedelta(days=days_back), today


@dataclass
class _RunState:
    totals: BatchResult = field(default_factory=BatchResult)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    phase_results: List[Dict[str, Any]] = field(default_factory=list)
    api_calls_ok: int = 0


# =============================================================================
# Record Mapping
# =============================================================================

def _parse_api_date(value: Any) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(str(value)[:10])


def _parse_api_datetime(value: Any, day: Optional[date]) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    if len(text) <= 8 and ":" in text:
        if day is None:
            raise MalformedRecordError(f"Time '{text}' without a date")
        parsed = datetime.combine(day, time.fromisoformat(text))
    else:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def map_employee_record(record: Dict[str, Any], centre: Centre) -> EmployeeRow:
    external_id = record.get("id")
    if external_id in (None, ""):
        raise MalformedRecordError("Employee record without id")
    return EmployeeRow(
        external_scheduling_id=str(external_id),
        first_name=record.get("firstName") or record.get("name") or "Sin nombre",
        last_name=record.get("lastName") or record.get("surname") or None,
        email=record.get("email") or None,
        centre_code=centre.code,
        active_from=_parse_api_date(record.get("startDate")),
        active_to=_parse_api_date(record.get("endDate")),
    )


def map_assignment_record(record: Dict[str, Any], centre: Centre) -> ScheduleRow:
    employee_ref = record.get("employeeId")
    if employee_ref in (None, ""):
        raise MalformedRecordError("Assignment without employeeId")

    work_date = _parse_api_date(record.get("date"))
    start_time = _parse_api_datetime(record.get("startTime"), work_date)
    end_time = _parse_api_datetime(record.get("endTime"), work_date)
    if work_date is None and start_time is not None:
        work_date = start_time.date()
    if work_date is None:
        raise MalformedRecordError("Assignment without date")

    if start_time is not None and end_time is not None:
        if end_time <= start_time:
            # Shift crosses midnight
            end_time += timedelta(days=1)
        planned_hours = (end_time - start_time).total_seconds() / 3600
    elif record.get("hours") is not None:
        planned_hours = float(record["hours"])
    else:
        raise MalformedRecordError("Assignment without start/end time or hours")

    return ScheduleRow(
        employee_ref=str(employee_ref),
        work_date=work_date,
        service_id=centre.scheduling_service_id or "",
        planned_hours=round(planned_hours, 2),
        start_time=start_time,
        end_time=end_time,
        assignment_type=record.get("type") or None,
        external_id=str(record["id"]) if record.get("id") is not None else None,
    )


def map_absence_record(record: Dict[str, Any], centre: Centre) -> AbsenceRow:
    employee_ref = record.get("employeeId")
    if employee_ref in (None, ""):
        raise MalformedRecordError("Absence without employeeId")
    absence_date = _parse_api_date(record.get("date"))
    if absence_date is None:
        raise MalformedRecordError("Absence without date")

    hours = record.get("hours")
    return AbsenceRow(
        employee_ref=str(employee_ref),
        absence_date=absence_date,
        absence_type=record.get("type") or DEFAULT_ABSENCE_TYPE,
        hours=float(hours) if hours else DEFAULT_ABSENCE_HOURS,
        reason=record.get("reason") or None,
        external_id=str(record["id"]) if record.get("id") is not None else None,
    )


RECORD_MAPPERS: Dict[SyncEntityKind, Callable[[Dict[str, Any], Centre], Any]] = {
    SyncEntityKind.EMPLOYEES: map_employee_record,
    SyncEntityKind.SCHEDULES: map_assignment_record,
    SyncEntityKind.ABSENCES: map_absence_record,
}


# =============================================================================
# Orchestrator
# =============================================================================

class SyncOrchestrator:
    """Runs synchronization jobs and keeps their logs."""

    def __init__(
        self,
        session: Session,
        client: Optional[SchedulingApiClient] = None,
        settings: Optional[SyncSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.session = session
        self.client = client
        self.settings = settings or get_settings().sync
        self._today = today or (lambda: datetime.now(timezone.utc).date())
        self.identity_store = IdentityMappingStore(session)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(
        self,
        request: SyncRequest,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        triggered_by: Optional[uuid.UUID] = None,
    ) -> SyncJobLog:
        """
        Run a synchronization job to completion or cancellation.

        Raises:
            ValidationError: If the window is invalid or no centre can be synced.
        """
        if self.client is None:
            raise ValidationError(message="Scheduling platform client is not configured")
        start_date, end_date = request.resolve_window(self._today(), self.settings)
        centres = self._select_centres(request.centre_code)

        log = SyncJobLog(
            entity_kind=request.entity_kind,
            trigger_source=trigger,
            triggered_by=triggered_by,
            status=SyncJobStatus.RUNNING,
            params={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "days_back": request.days_back,
                "centre_code": request.centre_code,
            },
            errors=[],
            phase_results=[],
        )
        self.session.add(log)
        self.session.commit()

        logger.info(
            f"Starting {request.entity_kind.value} sync {log.id} for {len(centres)} centre(s) "
            f"from {start_date} to {end_date}",
            extra={"job_id": str(log.id), "trigger": trigger.value},
        )

        state = _RunState()
        try:
            for centre in centres:
                for entity in PHASES[request.entity_kind]:
                    if not self._is_running(log):
                        logger.info(f"Sync {log.id} was finalized externally, stopping")
                        return log
                    self._run_phase(log, state, centre, entity, start_date, end_date)

            if not self._is_running(log, lock=True):
                logger.info(f"Sync {log.id} was finalized externally, stopping")
                return log
        except Exception as e:
            self._abort(log, state, e)
            raise

        status = self._final_status(state)
        log.finalize(
            status,
            counters=state.totals.counters(),
            errors=state.errors,
            phase_results=state.phase_results,
        )
        self.session.commit()

        logger.info(
            f"Sync {log.id} finished as {status.value}: {state.totals.total} rows, "
            f"{state.totals.inserted} inserted, {state.totals.updated} updated, "
            f"{state.totals.errored} errors",
            extra={"job_id": str(log.id), **state.totals.counters()},
        )
        return log

    def run_scheduled(self) -> SyncJobLog:
        """Unattended daily run: full sync over the fixed cron lookback."""
        request = SyncRequest(
            entity_kind=SyncEntityKind.FULL,
            days_back=self.settings.cron_days_back,
        )
        return self.run(request, trigger=SyncTrigger.CRON)

    def cancel(self, log_id: uuid.UUID, cancelled_by: Optional[uuid.UUID] = None) -> SyncJobLog:
        """
        Mark a running job failed. The running job stops before its next chunk.

        Raises:
            NotFoundError: If the job does not exist.
            JobAlreadyFinalizedError: If the job is no longer running.
        """
        log = self.get_job(log_id)
        errors = list(log.errors or [])
        errors.append({
            "kind": "cancelled",
            "identifier": str(cancelled_by) if cancelled_by else None,
            "centre": None,
            "message": "Job cancelled by user",
        })
        log.finalize(SyncJobStatus.FAILED, errors=errors)
        self.session.flush()

        logger.info(f"Sync {log_id} cancelled", extra={"job_id": str(log_id)})
        return log

    def get_job(self, log_id: uuid.UUID) -> SyncJobLog:
        log = self.session.get(SyncJobLog, log_id)
        if log is None:
            raise create_not_found_error("SyncJobLog", log_id)
        return log

    def list_jobs(
        self,
        status: Optional[SyncJobStatus] = None,
        entity_kind: Optional[SyncEntityKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SyncJobLog]:
        """Job logs, most recent first."""
        query = select(SyncJobLog).order_by(SyncJobLog.started_at.desc())
        if status is not None:
            query = query.where(SyncJobLog.status == status)
        if entity_kind is not None:
            query = query.where(SyncJobLog.entity_kind == entity_kind)
        return list(self.session.execute(query.limit(limit).offset(offset)).scalars())

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _select_centres(self, centre_code: Optional[str]) -> List[Centre]:
        query = select(Centre).where(
            Centre.active.is_(True),
            Centre.scheduling_service_id.is_not(None),
        ).order_by(Centre.code)
        if centre_code:
            query = query.where(Centre.code == centre_code)

        centres = list(self.session.execute(query).scalars())
        if not centres:
            raise ValidationError(
                message=(
                    f"Centre {centre_code} not found or not configured for scheduling sync"
                    if centre_code
                    else "No centres configured for scheduling sync"
                ),
            )
        return centres

    def _fetch(self, entity: SyncEntityKind, centre: Centre, start: date, end: date) -> List[Dict[str, Any]]:
        if entity == SyncEntityKind.EMPLOYEES:
            return self.client.list_employees(centre.scheduling_service_id, centre.scheduling_business_id)
        if entity == SyncEntityKind.SCHEDULES:
            return self.client.list_assignments(start, end, centre.scheduling_service_id, centre.scheduling_business_id)
        return self.client.list_absences(start, end, centre.scheduling_service_id, centre.scheduling_business_id)

    def _target(self, entity: SyncEntityKind):
        if entity == SyncEntityKind.EMPLOYEES:
            return EmployeeTarget(self.identity_store)
        if entity == SyncEntityKind.SCHEDULES:
            return ScheduleTarget(self.identity_store)
        return AbsenceTarget(self.identity_store)

    def _run_phase(
        self,
        log: SyncJobLog,
        state: _RunState,
        centre: Centre,
        entity: SyncEntityKind,
        start_date: date,
        end_date: date,
    ) -> None:
        error_kind = ERROR_KIND[entity]

        try:
            records = self._fetch(entity, centre, start_date, end_date)
        except SchedulingApiError as e:
            logger.warning(
                f"Fetching {entity.value} for centre {centre.code} failed: {e.message}",
                extra={"job_id": str(log.id), "centre": centre.code},
            )
            failed = BatchResult(entity=entity.value)
            failed.record_error(0, e.message, identifier=centre.code)
            state.totals = state.totals.merge(failed)
            state.errors.append({
                "kind": f"{error_kind}_sync",
                "identifier": centre.code,
                "centre": centre.code,
                "message": e.message,
            })
            state.phase_results.append({
                "centre": centre.code,
                "entity": entity.value,
                "fetch_error": e.message,
                **failed.counters(),
            })
            self._checkpoint(log, state)
            return

        state.api_calls_ok += 1

        mapper = RECORD_MAPPERS[entity]
        malformed = BatchResult(entity=entity.value)
        rows = []
        for record in records:
            if not isinstance(record, dict):
                malformed.record_error(0, f"Expected an object record, got {type(record).__name__}")
                continue
            try:
                rows.append(mapper(record, centre))
            except (ValueError, TypeError) as e:
                identifier = record.get("id")
                malformed.record_error(0, str(e), identifier=str(identifier) if identifier is not None else None)

        def on_chunk_complete(partial: BatchResult) -> None:
            self._checkpoint(log, state, malformed.merge(partial))

        reconciler = BatchReconciler(
            self.session,
            chunk_size=self.settings.chunk_size,
            on_chunk_complete=on_chunk_complete,
        )
        result = reconciler.reconcile(
            self._target(entity),
            rows,
            ImportStrategy.UPSERT,
            should_continue=lambda: self._is_running(log),
        )
        combined = malformed.merge(result)

        state.totals = state.totals.merge(combined)
        for row_error in combined.row_errors:
            state.errors.append({
                "kind": error_kind,
                "identifier": row_error.identifier,
                "centre": centre.code,
                "message": row_error.message,
            })
        state.phase_results.append({
            "centre": centre.code,
            "entity": entity.value,
            "fetched": len(records),
            **combined.counters(),
        })
        self._checkpoint(log, state)

    # -------------------------------------------------------------------------
    # Job log bookkeeping
    # -------------------------------------------------------------------------

    def _abort(self, log: SyncJobLog, state: _RunState, exc: Exception) -> None:
        """Finalize a job interrupted by an unexpected error as failed."""
        logger.exception(
            f"Sync {log.id} aborted: {exc}",
            extra={"job_id": str(log.id)},
        )
        self.session.rollback()
        if not self._is_running(log):
            return
        log.finalize(
            SyncJobStatus.FAILED,
            counters=state.totals.counters(),
            errors=state.errors + [{"kind": "job", "message": str(exc) or type(exc).__name__}],
            phase_results=state.phase_results,
        )
        self.session.commit()

    def _is_running(self, log: SyncJobLog, lock: bool = False) -> bool:
        self.session.refresh(log, attribute_names=["status"], with_for_update=lock or None)
        return log.status == SyncJobStatus.RUNNING

    def _checkpoint(self, log: SyncJobLog, state: _RunState, in_flight: Optional[BatchResult] = None) -> None:
        """Persist progress counters while the job is still running, then commit."""
        totals = state.totals.merge(in_flight) if in_flight is not None else state.totals
        self.session.execute(
            update(SyncJobLog)
            .where(SyncJobLog.id == log.id, SyncJobLog.status == SyncJobStatus.RUNNING)
            .values(
                total_rows=totals.total,
                inserted_rows=totals.inserted,
                updated_rows=totals.updated,
                skipped_rows=totals.skipped,
                error_rows=totals.errored,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

    @staticmethod
    def _final_status(state: _RunState) -> SyncJobStatus:
        totals = state.totals
        if state.api_calls_ok == 0:
            return SyncJobStatus.FAILED
        if totals.errored > 0 and totals.succeeded == 0:
            return SyncJobStatus.FAILED
        if totals.errored > 0:
            return SyncJobStatus.PARTIAL
        return SyncJobStatus.COMPLETED


def build_scheduling_client(settings: Optional[Settings] = None) -> SchedulingApiClient:
    """
    Create a client from application settings.

    Raises:
        ValidationError: If the platform URL or session cookie is missing.
    """
    settings = settings or get_settings()
    config = settings.scheduling_api.to_client_config()
    if not config.is_configured:
        raise ValidationError(
            message="Scheduling platform credentials are not configured",
            details={"required": ["SCHEDULING_API_BASE_URL", "SCHEDULING_API_SESSION_COOKIE"]},
        )
    return SchedulingApiClient(config)
