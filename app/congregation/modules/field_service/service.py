from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.field_service.service_year import (
    PioneerSummary,
    ServiceYearRecord,
    build_pioneer_summary,
    build_service_year_record,
    is_month_key,
    month_label,
    month_range,
    round_half_up,
    summarize_service_years,
)
from app.congregation.modules.members.models import PIONEER_STATUSES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.field_service.models import FieldServiceReport
    from app.congregation.modules.members.models import Member

MEMBER_SCOPES = ("all", "role", "group", "privilege", "member")

ACTIVITY_STATUSES = ("excellent", "active", "low_activity", "irregular", "inactive")
SHEPHERDING_STATUSES = frozenset({"inactive", "irregular", "low_activity"})


def validate_report_payload(payload: dict) -> list[str]:
    errors = []
    if not payload.get("member_id"):
        errors.append("Member is required.")
    if not is_month_key(payload.get("month") or ""):
        errors.append("Month must be in YYYY-MM format.")
    for key, label in (("hours", "Hours"), ("bible_studies", "Bible studies")):
        val = payload.get(key)
        if val is None:
            continue
        if not isinstance(val, int) or val < 0:
            errors.append(f"{label} must be a whole number of zero or more.")
    status = payload.get("pioneer_status")
    if status and status not in PIONEER_STATUSES:
        errors.append("Unknown pioneer status.")
    return errors


def find_report(s: "Session", member_id: int, month: str) -> "FieldServiceReport | None":
    from app.congregation.modules.field_service.models import FieldServiceReport

    return (
        s.query(FieldServiceReport)
        .filter(FieldServiceReport.member_id == member_id, FieldServiceReport.month == month)
        .one_or_none()
    )


def submit_report(s: "Session", member: "Member", payload: dict, user: "User") -> "FieldServiceReport":
    from app.congregation.modules.field_service.models import FieldServiceReport

    month = (payload.get("month") or "").strip()
    if find_report(s, member.id, month):
        raise ValueError(f"A report for {month_label(month)} already exists for {member.full_name}.")

    hours = payload.get("hours") or 0
    now = datetime.utcnow()
    report = FieldServiceReport(
        member_id=member.id,
        month=month,
        hours=hours,
        bible_studies=payload.get("bible_studies") or 0,
        participated=bool(payload.get("participated")) or hours > 0,
        # Stamp the status held this month; later status changes leave the report alone.
        pioneer_status=payload.get("pioneer_status") or member.pioneer_status or "none",
        comments=(payload.get("comments") or "").strip() or None,
        submitted_at=now,
        updated_at=now,
        submitted_by_user_id=user.id,
    )
    s.add(report)
    s.flush()

    record_event(
        s,
        actor=user,
        action="field_service_report.create",
        entity_type="FieldServiceReport",
        entity_id=str(report.id),
        metadata={"member_id": member.id, "month": month, "hours": report.hours},
    )
    return report


def update_report(s: "Session", report: "FieldServiceReport", payload: dict, user: "User", reason: str | None = None) -> "FieldServiceReport":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(report, attr):
            changes[attr] = {"old": getattr(report, attr), "new": val}
            setattr(report, attr, val)

    hours = payload.get("hours")
    if hours is None:
        hours = report.hours
    _set("hours", hours)
    studies = payload.get("bible_studies")
    _set("bible_studies", report.bible_studies if studies is None else studies)
    _set("participated", bool(payload.get("participated")) or hours > 0)
    _set("pioneer_status", payload.get("pioneer_status") or report.pioneer_status)
    _set("comments", (payload.get("comments") or "").strip() or None)
    report.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="field_service_report.edit",
        entity_type="FieldServiceReport",
        entity_id=str(report.id),
        reason=reason,
        metadata={"changes": changes, "month": report.month},
    )
    return report


def delete_report(s: "Session", report: "FieldServiceReport", user: "User", reason: str | None = None) -> None:
    record_event(
        s,
        actor=user,
        action="field_service_report.delete",
        entity_type="FieldServiceReport",
        entity_id=str(report.id),
        reason=reason,
        metadata={"member_id": report.member_id, "month": report.month, "hours": report.hours},
    )
    s.delete(report)


def reports_for_member(s: "Session", member_id: int) -> list["FieldServiceReport"]:
    from app.congregation.modules.field_service.models import FieldServiceReport

    return (
        s.query(FieldServiceReport)
        .filter(FieldServiceReport.member_id == member_id)
        .order_by(FieldServiceReport.month.asc())
        .all()
    )


def reports_in_range(s: "Session", months: list[str], member_ids: list[int] | None = None) -> list["FieldServiceReport"]:
    from app.congregation.modules.field_service.models import FieldServiceReport

    if not months:
        return []
    q = s.query(FieldServiceReport).filter(FieldServiceReport.month.in_(months))
    if member_ids is not None:
        if not member_ids:
            return []
        q = q.filter(FieldServiceReport.member_id.in_(member_ids))
    return q.order_by(FieldServiceReport.month.asc(), FieldServiceReport.id.asc()).all()


def publisher_record(s: "Session", member: "Member", sy: int) -> ServiceYearRecord:
    return build_service_year_record(reports_for_member(s, member.id), sy)


def member_service_years(s: "Session", member: "Member") -> list[ServiceYearRecord]:
    return summarize_service_years(reports_for_member(s, member.id))


@dataclass
class MonthStatusRow:
    member: "Member"
    report: "FieldServiceReport | None"

    @property
    def reported(self) -> bool:
        return self.report is not None


def reports_by_month(s: "Session", month: str, group_id: int | None = None) -> list[MonthStatusRow]:
    """Every active member with the report they filed for `month` (or None)."""
    from app.congregation.modules.members.service import active_members

    members = active_members(s, group_id=group_id)
    by_member = {r.member_id: r for r in reports_in_range(s, [month], [m.id for m in members])}
    return [MonthStatusRow(member=m, report=by_member.get(m.id)) for m in members]


def pioneer_summary(s: "Session", start: str, end: str) -> PioneerSummary:
    months = month_range(start, end)
    return build_pioneer_summary(reports_in_range(s, months), months)


def select_members(s: "Session", scope: str = "all", value: str | int | None = None) -> list["Member"]:
    """Active members for a report scope: all, role, group, privilege or a single member."""
    from app.congregation.modules.members.models import Member, Privilege

    if scope not in MEMBER_SCOPES:
        raise ValueError(f"Unknown scope '{scope}'.")
    q = s.query(Member).filter(Member.is_active.is_(True))
    if scope == "role":
        q = q.filter(Member.role == str(value or ""))
    elif scope == "group":
        q = q.filter(Member.group_id == int(value or 0))
    elif scope == "privilege":
        q = q.filter(Member.privileges.any(Privilege.id == int(value or 0)))
    elif scope == "member":
        q = q.filter(Member.id == int(value or 0))
    return q.order_by(Member.full_name.asc()).all()


# --- activity summary -------------------------------------------------------


def classify_activity(months_reported: int, expected_months: int, average_hours: float) -> str:
    if months_reported == 0:
        return "inactive"
    rate = months_reported / expected_months * 100 if expected_months else 0
    if rate < 50:
        return "irregular"
    if average_hours < 1:
        return "low_activity"
    if average_hours >= 10:
        return "excellent"
    return "active"


@dataclass
class MemberActivity:
    member: "Member"
    total_hours: int
    total_bible_studies: int
    months_reported: int
    expected_months: int
    pioneer_months: int

    @property
    def reporting_rate(self) -> int:
        if not self.expected_months:
            return 0
        return round_half_up(self.months_reported / self.expected_months * 100)

    @property
    def average_hours(self) -> float:
        if not self.months_reported:
            return 0.0
        return round(self.total_hours / self.months_reported, 1)

    @property
    def status(self) -> str:
        return classify_activity(self.months_reported, self.expected_months, self.average_hours)

    @property
    def needs_shepherding(self) -> bool:
        return self.status in SHEPHERDING_STATUSES


@dataclass
class MonthTrend:
    month: str
    reporting: int = 0
    hours: int = 0
    bible_studies: int = 0

    @property
    def label(self) -> str:
        return month_label(self.month)


@dataclass
class ActivitySummary:
    months: list[str]
    members: list[MemberActivity] = field(default_factory=list)
    trends: list[MonthTrend] = field(default_factory=list)
    excluded_count: int = 0

    @property
    def total_hours(self) -> int:
        return sum(m.total_hours for m in self.members)

    @property
    def total_bible_studies(self) -> int:
        return sum(m.total_bible_studies for m in self.members)

    @property
    def average_hours(self) -> float:
        reported = sum(m.months_reported for m in self.members)
        return round(self.total_hours / reported, 1) if reported else 0.0

    @property
    def reporting_percentage(self) -> int:
        expected = sum(m.expected_months for m in self.members)
        reported = sum(m.months_reported for m in self.members)
        return round_half_up(reported / expected * 100) if expected else 0

    @property
    def status_counts(self) -> dict[str, int]:
        counts = {k: 0 for k in ACTIVITY_STATUSES}
        for m in self.members:
            counts[m.status] += 1
        return counts

    @property
    def needs_shepherding(self) -> list[MemberActivity]:
        return [m for m in self.members if m.needs_shepherding]


def build_activity_summary(members: list["Member"], reports: list, months: list[str]) -> ActivitySummary:
    """Per-member activity for `months`; members excluded from activities are skipped."""
    included = [m for m in members if not m.excluded_from_activities]
    summary = ActivitySummary(months=months, excluded_count=len(members) - len(included))
    month_set = set(months)
    by_member: dict[int, list] = {m.id: [] for m in included}
    trends = {k: MonthTrend(month=k) for k in months}
    for r in reports:
        if r.month not in month_set or r.member_id not in by_member:
            continue
        by_member[r.member_id].append(r)
        participated = bool(r.participated) or (r.hours or 0) > 0
        trend = trends[r.month]
        trend.reporting += 1 if participated else 0
        trend.hours += r.hours or 0
        trend.bible_studies += r.bible_studies or 0

    for m in included:
        rs = by_member[m.id]
        summary.members.append(
            MemberActivity(
                member=m,
                total_hours=sum(r.hours or 0 for r in rs),
                total_bible_studies=sum(r.bible_studies or 0 for r in rs),
                months_reported=len({r.month for r in rs if r.participated or (r.hours or 0) > 0}),
                expected_months=len(months),
                pioneer_months=sum(1 for r in rs if r.pioneer_status in ("regular", "special")),
            )
        )
    summary.trends = list(trends.values())
    return summary


def activity_summary(s: "Session", start: str, end: str, scope: str = "all", value: str | int | None = None) -> ActivitySummary:
    months = month_range(start, end)
    members = select_members(s, scope, value)
    reports = reports_in_range(s, months, [m.id for m in members])
    return build_activity_summary(members, reports, months)
