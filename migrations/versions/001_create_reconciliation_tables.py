"""Create workforce, import, sync, data quality and alert tables.

Revision ID: 001
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Enum labels are the member names, as stored by the ORM
ENUMS = {
    "record_source": ("MANUAL", "IMPORTED", "SYNCHRONIZED"),
    "file_kind": ("RESTAURANT", "PAYROLL"),
    "import_strategy": ("INSERT", "UPSERT", "SKIP"),
    "import_job_status": ("PROCESSING", "COMPLETED", "COMPLETED_WITH_ERRORS", "FAILED"),
    "sync_entity_kind": ("EMPLOYEES", "SCHEDULES", "ABSENCES", "FULL"),
    "sync_trigger": ("MANUAL", "CRON"),
    "sync_job_status": ("RUNNING", "COMPLETED", "PARTIAL", "FAILED"),
    "dq_issue_kind": ("PLAN_SIN_REAL", "REAL_SIN_PLAN", "COSTE_ATIPICO", "EMPLEADO_SIN_CENTRO"),
    "issue_severity": ("CRITICA", "ALTA", "MEDIA", "BAJA"),
    "alert_kind": ("ABSENTISMO_ALTO", "COSTE_EXCESIVO", "DQ_CRITICA", "PLANIFICACION_VACIA"),
    "alert_operator": ("GREATER_THAN", "LESS_THAN", "EQUAL_TO"),
    "alert_period": ("ULTIMO_DIA", "ULTIMA_SEMANA", "ULTIMO_MES"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps(with_updated: bool = True):
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]
    if with_updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            )
        )
    return columns


def upgrade() -> None:
    """Create all tables with their constraints and indexes."""

    bind = op.get_bind()
    for name, labels in ENUMS.items():
        postgresql.ENUM(*labels, name=name).create(bind, checkfirst=True)

    # Centres
    op.create_table(
        "centres",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("opening_date", sa.Date, nullable=True),
        sa.Column("seating_capacity", sa.Integer, nullable=True),
        sa.Column("square_meters", sa.Numeric(10, 2), nullable=True),
        sa.Column("franchisee_name", sa.String(255), nullable=True),
        sa.Column("franchisee_email", sa.String(255), nullable=True),
        sa.Column("scheduling_service_id", sa.String(100), nullable=True),
        sa.Column("scheduling_business_id", sa.String(100), nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("source", _enum("record_source"), nullable=False, server_default="MANUAL"),
        *_timestamps(),
    )
    op.create_index("ix_centres_scheduling_service_id", "centres", ["scheduling_service_id"])

    # Employees
    op.create_table(
        "employees",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("centre_code", sa.String(50), nullable=True),
        sa.Column("external_scheduling_id", sa.String(100), nullable=True, unique=True),
        sa.Column("payroll_code", sa.String(100), nullable=True, unique=True),
        sa.Column("active_from", sa.Date, nullable=True),
        sa.Column("active_to", sa.Date, nullable=True),
        sa.Column("source", _enum("record_source"), nullable=False, server_default="MANUAL"),
        *_timestamps(),
    )
    op.create_index("ix_employees_centre_code", "employees", ["centre_code"])
    op.create_index("idx_employees_name", "employees", ["last_name", "first_name"])

    # Schedules
    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "employee_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("work_date", sa.Date, nullable=False),
        sa.Column("service_id", sa.String(100), nullable=False, server_default=""),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("planned_hours", sa.Numeric(6, 2), nullable=False, server_default="0"),
        sa.Column("assignment_type", sa.String(50), nullable=True),
        sa.Column("external_id", sa.String(100), nullable=True),
        sa.Column("source", _enum("record_source"), nullable=False, server_default="MANUAL"),
        *_timestamps(),
        sa.UniqueConstraint("employee_id", "work_date", "service_id", name="uq_schedules_natural_key"),
    )
    op.create_index("idx_schedules_work_date", "schedules", ["work_date"])

    # Absences
    op.create_table(
        "absences",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "employee_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("absence_date", sa.Date, nullable=False),
        sa.Column("absence_type", sa.String(100), nullable=False, server_default="Ausencia"),
        sa.Column("hours", sa.Numeric(6, 2), nullable=False, server_default="8"),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("external_id", sa.String(100), nullable=True),
        sa.Column("source", _enum("record_source"), nullable=False, server_default="MANUAL"),
        *_timestamps(),
        sa.UniqueConstraint("employee_id", "absence_date", "absence_type", name="uq_absences_natural_key"),
    )
    op.create_index("idx_absences_date", "absences", ["absence_date"])

    # Payroll periods
    op.create_table(
        "payrolls",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "employee_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_start", sa.Date, nullable=False),
        sa.Column("period_end", sa.Date, nullable=False),
        sa.Column("worked_hours", sa.Numeric(8, 2), nullable=False, server_default="0"),
        sa.Column("vacation_hours", sa.Numeric(8, 2), nullable=False, server_default="0"),
        sa.Column("training_hours", sa.Numeric(8, 2), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("source", _enum("record_source"), nullable=False, server_default="MANUAL"),
        *_timestamps(),
        sa.UniqueConstraint("employee_id", "period_start", "period_end", name="uq_payrolls_natural_key"),
    )
    op.create_index("idx_payrolls_period", "payrolls", ["period_start", "period_end"])

    # Import jobs
    op.create_table(
        "import_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("created_by_user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_kind", _enum("file_kind"), nullable=False),
        sa.Column("strategy", _enum("import_strategy"), nullable=False, server_default="UPSERT"),
        sa.Column("forced", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", _enum("import_job_status"), nullable=False, server_default="PROCESSING"),
        sa.Column("total_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("inserted_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("column_mapping", postgresql.JSONB, nullable=True),
        sa.Column("error_details", postgresql.JSONB, nullable=True),
        *_timestamps(with_updated=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_import_jobs_created_by_user_id", "import_jobs", ["created_by_user_id"])
    op.create_index("ix_import_jobs_status", "import_jobs", ["status"])

    # Mapping profiles
    op.create_table(
        "mapping_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("file_kind", _enum("file_kind"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("column_mappings", postgresql.JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "file_kind", "name", name="uq_mapping_profile_user_kind_name"),
    )
    op.create_index("idx_mapping_profiles_user_kind", "mapping_profiles", ["user_id", "file_kind"])

    # Sync job logs
    op.create_table(
        "sync_job_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_kind", _enum("sync_entity_kind"), nullable=False),
        sa.Column("trigger_source", _enum("sync_trigger"), nullable=False, server_default="MANUAL"),
        sa.Column("triggered_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("params", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("status", _enum("sync_job_status"), nullable=False, server_default="RUNNING"),
        sa.Column("total_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("inserted_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("errors", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("phase_results", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_sync_job_logs_started", "sync_job_logs", ["started_at"])
    op.create_index("idx_sync_job_logs_status", "sync_job_logs", ["status"])

    # Data quality issues
    op.create_table(
        "dq_issues",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", _enum("dq_issue_kind"), nullable=False),
        sa.Column("severity", _enum("issue_severity"), nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("centre_code", sa.String(50), nullable=True),
        sa.Column("period_start", sa.Date, nullable=False),
        sa.Column("period_end", sa.Date, nullable=False),
        sa.Column("detail", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("resolved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_dq_issues_employee_id", "dq_issues", ["employee_id"])
    op.create_index("ix_dq_issues_centre_code", "dq_issues", ["centre_code"])
    op.create_index("idx_dq_issues_key", "dq_issues", ["kind", "employee_id", "period_start", "period_end"])
    op.create_index("idx_dq_issues_open", "dq_issues", ["resolved", "severity"])

    # Alert rules
    op.create_table(
        "alert_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("kind", _enum("alert_kind"), nullable=False),
        sa.Column("centre_code", sa.String(50), nullable=True),
        sa.Column("threshold", sa.Float, nullable=False),
        sa.Column("operator", _enum("alert_operator"), nullable=False, server_default="GREATER_THAN"),
        sa.Column("period", _enum("alert_period"), nullable=False, server_default="ULTIMA_SEMANA"),
        sa.Column("channels", postgresql.JSONB, nullable=False, server_default='["inapp"]'),
        sa.Column("recipients", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )

    # Alert notifications
    op.create_table(
        "alert_notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("alert_rules.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("kind", _enum("alert_kind"), nullable=False),
        sa.Column("severity", _enum("issue_severity"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("detail", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("centre_code", sa.String(50), nullable=True),
        sa.Column("channels", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_index("idx_alert_notifications_unread", "alert_notifications", ["read", "created_at"])


def downgrade() -> None:
    """Drop all tables and enums."""

    op.drop_index("idx_alert_notifications_unread", table_name="alert_notifications")
    op.drop_table("alert_notifications")
    op.drop_table("alert_rules")

    op.drop_index("idx_dq_issues_open", table_name="dq_issues")
    op.drop_index("idx_dq_issues_key", table_name="dq_issues")
    op.drop_index("ix_dq_issues_centre_code", table_name="dq_issues")
    op.drop_index("ix_dq_issues_employee_id", table_name="dq_issues")
    op.drop_table("dq_issues")

    op.drop_index("idx_sync_job_logs_status", table_name="sync_job_logs")
    op.drop_index("idx_sync_job_logs_started", table_name="sync_job_logs")
    op.drop_table("sync_job_logs")

    op.drop_index("idx_mapping_profiles_user_kind", table_name="mapping_profiles")
    op.drop_table("mapping_profiles")

    op.drop_index("ix_import_jobs_status", table_name="import_jobs")
    op.drop_index("ix_import_jobs_created_by_user_id", table_name="import_jobs")
    op.drop_table("import_jobs")

    op.drop_index("idx_payrolls_period", table_name="payrolls")
    op.drop_table("payrolls")
    op.drop_index("idx_absences_date", table_name="absences")
    op.drop_table("absences")
    op.drop_index("idx_schedules_work_date", table_name="schedules")
    op.drop_table("schedules")

    op.drop_index("idx_employees_name", table_name="employees")
    op.drop_index("ix_employees_centre_code", table_name="employees")
    op.drop_table("employees")
    op.drop_index("ix_centres_scheduling_service_id", table_name="centres")
    op.drop_table("centres")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        sa.Enum(name=name).drop(bind, checkfirst=True)
