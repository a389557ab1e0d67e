"""initial schema

Revision ID: 5a1e0c2b7d31
Revises:
Create Date: 2026-09-14 10:12:41.208337

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a1e0c2b7d31'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _user_fk(name: str = "created_by_user_id") -> sa.Column:
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def _create_platform_tables() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("request_id", sa.String(64), nullable=True),
        _user_fk("actor_user_id"),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )


def _create_member_tables() -> None:
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "privileges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("description", sa.String(512), nullable=True),
        sa.Column("exclude_from_activities", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("gender", sa.String(16), nullable=False, server_default="male"),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address", sa.String(512), nullable=True),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("baptized_date", sa.Date(), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="publisher"),
        sa.Column("pioneer_status", sa.String(16), nullable=False, server_default="none"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True),
        *_timestamps(),
    )
    op.create_index("idx_members_group", "members", ["group_id"])
    op.create_index("idx_members_name", "members", ["full_name"])
    op.create_table(
        "member_privileges",
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("privilege_id", sa.Integer(), sa.ForeignKey("privileges.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "member_duties",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("assigned_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("idx_member_duties_member", "member_duties", ["member_id"])


def _create_ministry_tables() -> None:
    op.create_table(
        "field_service_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bible_studies", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("participated", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("pioneer_status", sa.String(16), nullable=False, server_default="none"),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        _user_fk("submitted_by_user_id"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("member_id", "month", name="uq_field_service_reports_member_month"),
    )
    op.create_index("idx_field_service_reports_month", "field_service_reports", ["month"])

    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("week", sa.Date(), nullable=False),
        sa.Column("meeting_type", sa.String(16), nullable=False, server_default="Midweek"),
        sa.Column("assignment_type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("source", sa.String(255), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("assignee_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assistant_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        _user_fk(),
    )
    op.create_index("idx_assignments_week", "assignments", ["week"])
    op.create_index("idx_assignments_assignee", "assignments", ["assignee_id"])

    op.create_table(
        "territories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("number", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("boundary", sa.JSON(), nullable=True),
        sa.Column("center_lat", sa.Float(), nullable=True),
        sa.Column("center_lng", sa.Float(), nullable=True),
        sa.Column("difficulty", sa.String(16), nullable=False, server_default="medium"),
        sa.Column("territory_type", sa.String(32), nullable=False, server_default="residential"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("estimated_hours", sa.Integer(), nullable=True, server_default="2"),
        sa.Column("household_count", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_worked", sa.Date(), nullable=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("territories.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        _user_fk(),
    )
    op.create_index("idx_territories_group", "territories", ["group_id"])
    op.create_index("idx_territories_parent", "territories", ["parent_id"])

    op.create_table(
        "territory_assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("territory_id", sa.Integer(), sa.ForeignKey("territories.id", ondelete="CASCADE"), nullable=False),
        sa.Column("publisher_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("returned_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="assigned"),
        sa.Column("hours_worked", sa.Integer(), nullable=True),
        sa.Column("households_visited", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_fk("assigned_by_user_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_territory_assignments_territory", "territory_assignments", ["territory_id"])
    op.create_index("idx_territory_assignments_status", "territory_assignments", ["status"])


def _create_hall_tables() -> None:
    op.create_table(
        "cleaning_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("area", sa.String(128), nullable=False),
        sa.Column("task", sa.String(255), nullable=False),
        sa.Column("frequency", sa.String(16), nullable=False, server_default="Weekly"),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="Medium"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("completed_date", sa.Date(), nullable=True),
        sa.Column("anchor_day", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("assignee_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_cleaning_tasks_due", "cleaning_tasks", ["due_date"])
    op.create_index("idx_cleaning_tasks_status", "cleaning_tasks", ["status"])

    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=False, server_default="Other"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(32), nullable=True),
        sa.Column("min_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("last_restocked", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_inventory_items_category", "inventory_items", ["category"])


def _create_financial_tables() -> None:
    op.create_table(
        "contributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("contribution_type", sa.String(64), nullable=False, server_default="worldwide-work"),
        sa.Column("method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("receipt_number", sa.String(64), nullable=False, unique=True),
        sa.Column("contribution_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_fk("recorded_by_user_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_contributions_date", "contributions", ["contribution_date"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category", sa.String(64), nullable=False, server_default="other"),
        sa.Column("description", sa.String(512), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_to", sa.String(255), nullable=True),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("rejection_reason", sa.String(512), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_fk("requested_by_user_id"),
        _user_fk("approved_by_user_id"),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_expenses_status", "expenses", ["status"])
    op.create_index("idx_expenses_payment_date", "expenses", ["payment_date"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_fk(),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("year", "month", name="uq_budgets_year_month"),
    )
    op.create_table(
        "budget_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("budgeted", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.UniqueConstraint("budget_id", "category", name="uq_budget_lines_budget_category"),
    )
    op.create_table(
        "opening_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.String(512), nullable=True),
        _user_fk("recorded_by_user_id"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("year", "month", name="uq_opening_balances_year_month"),
    )


def _create_communication_tables() -> None:
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        _user_fk("sender_user_id"),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", sa.String(16), nullable=False, server_default="direct"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("is_emergency", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_messages_sender", "messages", ["sender_user_id"])
    op.create_table(
        "message_recipients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("message_id", sa.Integer(), sa.ForeignKey("messages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("message_id", "member_id", name="uq_message_recipients_message_member"),
    )
    op.create_index("idx_message_recipients_member", "message_recipients", ["member_id"])

    op.create_table(
        "broadcasts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("audience_type", sa.String(16), nullable=False, server_default="all"),
        sa.Column("audience_ids", sa.JSON(), nullable=True),
        sa.Column("delivery_methods", sa.JSON(), nullable=True),
        sa.Column("priority", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("scheduled_for", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("sent_count", sa.Integer(), nullable=False, server_default="0"),
        _user_fk(),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_broadcasts_status", "broadcasts", ["status"])
    op.create_table(
        "broadcast_recipients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("broadcast_id", sa.Integer(), sa.ForeignKey("broadcasts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="CASCADE"), nullable=False),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("broadcast_id", "member_id", name="uq_broadcast_recipients_broadcast_member"),
    )
    op.create_index("idx_broadcast_recipients_member", "broadcast_recipients", ["member_id"])


def _create_overseer_tables() -> None:
    op.create_table(
        "overseer_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("meeting_attendance", sa.Text(), nullable=True),
        sa.Column("field_service_participation", sa.Text(), nullable=True),
        sa.Column("general_observations", sa.Text(), nullable=True),
        sa.Column("encouragement", sa.Text(), nullable=True),
        sa.Column("recommendations", sa.Text(), nullable=True),
        sa.Column("follow_up_needed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("follow_up_notes", sa.Text(), nullable=True),
        _user_fk("overseer_user_id"),
        sa.Column("overseer_name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("group_id", "month", name="uq_overseer_reports_group_month"),
    )
    op.create_index("idx_overseer_reports_month", "overseer_reports", ["month"])
    op.create_table(
        "overseer_report_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("report_id", sa.Integer(), sa.ForeignKey("overseer_reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("member_id", sa.Integer(), sa.ForeignKey("members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("present", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_study", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("participates_in_ministry", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("field_service_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_report", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("report_id", "member_id", name="uq_overseer_report_members_report_member"),
    )
    op.create_table(
        "group_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("completed_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("group_id", "month", name="uq_group_schedules_group_month"),
    )


def _create_attendance_tables() -> None:
    op.create_table(
        "meeting_attendance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("meeting_date", sa.Date(), nullable=False),
        sa.Column("meeting_type", sa.String(16), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("week", sa.Integer(), nullable=False),
        sa.Column("attendance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.String(512), nullable=True),
        _user_fk(),
        *_timestamps(),
        sa.UniqueConstraint("meeting_date", name="uq_meeting_attendance_date"),
    )
    op.create_index("idx_meeting_attendance_month", "meeting_attendance", ["month"])


def upgrade() -> None:
    """Create every table; skipped when a database was bootstrapped with init_db.py --create-tables."""
    conn = op.get_bind()
    if "users" in set(sa.inspect(conn).get_table_names()):
        return
    _create_platform_tables()
    _create_member_tables()
    _create_ministry_tables()
    _create_hall_tables()
    _create_financial_tables()
    _create_communication_tables()
    _create_overseer_tables()
    _create_attendance_tables()


_TABLES_REVERSED = (
    "meeting_attendance",
    "group_schedules",
    "overseer_report_members",
    "overseer_reports",
    "broadcast_recipients",
    "broadcasts",
    "message_recipients",
    "messages",
    "opening_balances",
    "budget_lines",
    "budgets",
    "expenses",
    "contributions",
    "inventory_items",
    "cleaning_tasks",
    "territory_assignments",
    "territories",
    "assignments",
    "field_service_reports",
    "member_duties",
    "member_privileges",
    "members",
    "privileges",
    "groups",
    "audit_events",
    "role_permissions",
    "user_roles",
    "permissions",
    "roles",
    "users",
)


def downgrade() -> None:
    for table in _TABLES_REVERSED:
        op.drop_table(table)
