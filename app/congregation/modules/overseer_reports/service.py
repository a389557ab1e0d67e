from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.field_service.service import reports_in_range
from app.congregation.modules.field_service.service_year import is_month_key, month_range
from app.congregation.modules.overseer_reports.models import SCHEDULE_STATUSES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.members.models import Group
    from app.congregation.modules.overseer_reports.models import GroupSchedule, OverseerReport

TEXT_FIELDS = (
    "meeting_attendance",
    "field_service_participation",
    "general_observations",
    "encouragement",
    "recommendations",
    "follow_up_notes",
)


@dataclass
class RosterRow:
    member_id: int
    name: str
    present: bool
    has_study: bool
    participates_in_ministry: bool
    field_service_hours: int
    submitted_report: bool


def group_roster(s: "Session", group: "Group", month: str) -> list[RosterRow]:
    """Active members of the group with their field service report for the month folded in."""
    from app.congregation.modules.members.service import active_members

    members = active_members(s, group_id=group.id)
    by_member = {r.member_id: r for r in reports_in_range(s, [month], [m.id for m in members])}
    rows = []
    for m in members:
        r = by_member.get(m.id)
        hours = (r.hours or 0) if r else 0
        rows.append(
            RosterRow(
                member_id=m.id,
                name=m.full_name,
                present=False,
                has_study=bool(r and (r.bible_studies or 0) > 0),
                participates_in_ministry=bool(r and (r.participated or hours > 0)),
                field_service_hours=hours,
                submitted_report=r is not None,
            )
        )
    return rows


def validate_overseer_payload(payload: dict) -> list[str]:
    errors = []
    if not payload.get("group_id"):
        errors.append("Group is required.")
    if not is_month_key(payload.get("month") or ""):
        errors.append("Month must be in YYYY-MM format.")
    if not payload.get("visit_date"):
        errors.append("Visit date is required.")
    return errors


def find_overseer_report(s: "Session", group_id: int, month: str) -> "OverseerReport | None":
    from app.congregation.modules.overseer_reports.models import OverseerReport

    return s.query(OverseerReport).filter(OverseerReport.group_id == group_id, OverseerReport.month == month).one_or_none()


def _sync_members(s: "Session", report: "OverseerReport", group: "Group", month: str, marks: dict[int, dict]) -> None:
    """
    Syncs the report roster with the group's current members. Hours and the submitted flag
    are always re-derived from field service reports; the checkboxes come from the form.
    Existing rows are updated in place so (report, member) stays unique on flush.
    """
    from app.congregation.modules.overseer_reports.models import OverseerReportMember

    existing = {m.member_id: m for m in report.members}
    keep = []
    for row in group_roster(s, group, month):
        mark = marks.get(row.member_id) or {}
        rm = existing.get(row.member_id) or OverseerReportMember(member_id=row.member_id)
        rm.name = row.name
        rm.present = bool(mark.get("present"))
        rm.has_study = bool(mark.get("has_study", row.has_study))
        rm.participates_in_ministry = bool(mark.get("participates_in_ministry", row.participates_in_ministry))
        rm.field_service_hours = row.field_service_hours
        rm.submitted_report = row.submitted_report
        keep.append(rm)
    report.members = keep


def _upsert_schedule(s: "Session", group_id: int, month: str) -> "GroupSchedule":
    from app.congregation.modules.overseer_reports.models import GroupSchedule

    sched = s.query(GroupSchedule).filter(GroupSchedule.group_id == group_id, GroupSchedule.month == month).one_or_none()
    if sched is None:
        sched = GroupSchedule(group_id=group_id, month=month)
        s.add(sched)
    return sched


def submit_overseer_report(s: "Session", payload: dict, user: "User") -> "OverseerReport":
    from app.congregation.modules.members.models import Group
    from app.congregation.modules.overseer_reports.models import OverseerReport

    group = s.get(Group, payload["group_id"])
    if group is None:
        raise ValueError("Unknown group.")
    month = payload["month"]
    if find_overseer_report(s, group.id, month):
        raise ValueError(f"A report for {group.name} in {month} already exists.")

    report = OverseerReport(
        group_id=group.id,
        month=month,
        visit_date=payload["visit_date"],
        follow_up_needed=bool(payload.get("follow_up_needed")),
        overseer_user_id=user.id,
        overseer_name=(payload.get("overseer_name") or "").strip() or user.label,
    )
    for f in TEXT_FIELDS:
        setattr(report, f, (payload.get(f) or "").strip() or None)
    _sync_members(s, report, group, month, payload.get("marks") or {})
    s.add(report)

    sched = _upsert_schedule(s, group.id, month)
    sched.status = "completed"
    sched.completed_date = report.visit_date
    if sched.scheduled_date is None:
        sched.scheduled_date = report.visit_date
    s.flush()

    record_event(
        s,
        actor=user,
        action="overseer_report.create",
        entity_type="OverseerReport",
        entity_id=str(report.id),
        metadata={"group": group.name, "month": month, "present": report.present_count},
    )
    return report


def update_overseer_report(s: "Session", report: "OverseerReport", payload: dict, user: "User") -> "OverseerReport":
    before: dict = {}
    after: dict = {}

    def _set(attr: str, val):
        old = getattr(report, attr)
        if old != val:
            before[attr] = old
            after[attr] = val
            setattr(report, attr, val)

    if payload.get("visit_date"):
        _set("visit_date", payload["visit_date"])
    _set("follow_up_needed", bool(payload.get("follow_up_needed")))
    if "overseer_name" in payload:
        _set("overseer_name", (payload.get("overseer_name") or "").strip() or None)
    for f in TEXT_FIELDS:
        if f in payload:
            _set(f, (payload.get(f) or "").strip() or None)

    marks = payload.get("marks")
    if marks is not None:
        old_present = report.present_count
        _sync_members(s, report, report.group, report.month, marks)
        if report.present_count != old_present:
            before["present"] = old_present
            after["present"] = report.present_count

    report.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="overseer_report.update",
        entity_type="OverseerReport",
        entity_id=str(report.id),
        metadata={"before": before, "after": after},
    )
    return report


def delete_overseer_report(s: "Session", report: "OverseerReport", user: "User") -> None:
    from app.congregation.modules.overseer_reports.models import GroupSchedule

    sched = (
        s.query(GroupSchedule)
        .filter(GroupSchedule.group_id == report.group_id, GroupSchedule.month == report.month)
        .one_or_none()
    )
    if sched is not None and sched.status == "completed":
        sched.status = "scheduled" if sched.scheduled_date else "pending"
        sched.completed_date = None
    record_event(
        s,
        actor=user,
        action="overseer_report.delete",
        entity_type="OverseerReport",
        entity_id=str(report.id),
        metadata={"group_id": report.group_id, "month": report.month},
    )
    s.delete(report)


def schedule_visit(s: "Session", group_id: int, month: str, scheduled_date: date | None, user: "User", notes: str | None = None) -> "GroupSchedule":
    if not is_month_key(month):
        raise ValueError("Month must be in YYYY-MM format.")
    sched = _upsert_schedule(s, group_id, month)
    if sched.status == "completed":
        raise ValueError("This visit is already completed.")
    sched.scheduled_date = scheduled_date
    sched.status = "scheduled" if scheduled_date else "pending"
    sched.notes = (notes or "").strip() or None
    s.flush()
    record_event(
        s,
        actor=user,
        action="group_schedule.set",
        entity_type="GroupSchedule",
        entity_id=str(sched.id),
        metadata={"group_id": group_id, "month": month, "scheduled_date": scheduled_date, "status": sched.status},
    )
    return sched


@dataclass
class GridCell:
    group: "Group"
    schedule: "GroupSchedule | None"
    report: "OverseerReport | None"

    @property
    def status(self) -> str:
        if self.report is not None:
            return "completed"
        if self.schedule is not None and self.schedule.status in SCHEDULE_STATUSES:
            return self.schedule.status
        return "pending"


def month_grid(s: "Session", month: str) -> list[GridCell]:
    from app.congregation.modules.members.models import Group
    from app.congregation.modules.overseer_reports.models import GroupSchedule, OverseerReport

    groups = s.query(Group).order_by(Group.name.asc()).all()
    schedules = {x.group_id: x for x in s.query(GroupSchedule).filter(GroupSchedule.month == month).all()}
    reports = {x.group_id: x for x in s.query(OverseerReport).filter(OverseerReport.month == month).all()}
    return [GridCell(group=g, schedule=schedules.get(g.id), report=reports.get(g.id)) for g in groups]


@dataclass
class ReportAnalytics:
    report_id: int
    group_name: str
    month: str
    member_count: int
    present: int
    with_study: int
    in_ministry: int
    submitted: int
    follow_up_needed: bool

    @property
    def attendance_percent(self) -> int:
        return round(self.present / self.member_count * 100) if self.member_count else 0


def analytics(s: "Session", start: str, end: str, group_id: int | None = None) -> list[ReportAnalytics]:
    from app.congregation.modules.overseer_reports.models import OverseerReport

    q = s.query(OverseerReport).filter(OverseerReport.month.in_(month_range(start, end)))
    if group_id:
        q = q.filter(OverseerReport.group_id == group_id)
    rows = []
    for r in q.order_by(OverseerReport.month.desc(), OverseerReport.id.asc()).all():
        rows.append(
            ReportAnalytics(
                report_id=r.id,
                group_name=r.group.name,
                month=r.month,
                member_count=len(r.members),
                present=r.present_count,
                with_study=r.study_count,
                in_ministry=r.ministry_count,
                submitted=sum(1 for m in r.members if m.submitted_report),
                follow_up_needed=r.follow_up_needed,
            )
        )
    return rows
