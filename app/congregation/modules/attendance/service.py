from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Iterable

from app.congregation.audit import record_event
from app.congregation.modules.field_service.service_year import (
    month_key,
    month_label,
    month_range,
    round_half_up,
    service_year_months,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.attendance.models import MeetingAttendance


def meeting_type_for(d: date) -> str:
    """Saturday and Sunday meetings are weekend meetings; any other day counts as midweek."""
    return "weekend" if d.weekday() >= 5 else "midweek"


def week_of_month(d: date) -> int:
    return (d.day + 6) // 7


def validate_attendance_payload(payload: dict) -> list[str]:
    errors = []
    if not payload.get("meeting_date"):
        errors.append("Meeting date is required (YYYY-MM-DD).")
    val = payload.get("attendance")
    if val is None:
        errors.append("Attendance is required.")
    elif not isinstance(val, int) or val < 0:
        errors.append("Attendance must be a whole number of zero or more.")
    return errors


def find_attendance(s: "Session", meeting_date: date) -> "MeetingAttendance | None":
    from app.congregation.modules.attendance.models import MeetingAttendance

    return s.query(MeetingAttendance).filter(MeetingAttendance.meeting_date == meeting_date).one_or_none()


def record_attendance(s: "Session", payload: dict, user: "User") -> "MeetingAttendance":
    from app.congregation.modules.attendance.models import MeetingAttendance

    d: date = payload["meeting_date"]
    if find_attendance(s, d):
        raise ValueError(f"Attendance for {d.isoformat()} is already recorded.")

    now = datetime.utcnow()
    rec = MeetingAttendance(
        meeting_date=d,
        meeting_type=meeting_type_for(d),
        month=month_key(d.year, d.month),
        week=week_of_month(d),
        attendance=payload["attendance"],
        notes=(payload.get("notes") or "").strip() or None,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(rec)
    s.flush()
    record_event(
        s,
        actor=user,
        action="attendance.create",
        entity_type="MeetingAttendance",
        entity_id=str(rec.id),
        metadata={"meeting_date": d, "meeting_type": rec.meeting_type, "attendance": rec.attendance},
    )
    return rec


def update_attendance(s: "Session", rec: "MeetingAttendance", attendance: int, user: "User", notes: str | None = None) -> "MeetingAttendance":
    before = rec.attendance
    rec.attendance = attendance
    if notes is not None:
        rec.notes = notes.strip() or None
    rec.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="attendance.edit",
        entity_type="MeetingAttendance",
        entity_id=str(rec.id),
        metadata={"meeting_date": rec.meeting_date, "before": before, "after": attendance},
    )
    return rec


def delete_attendance(s: "Session", rec: "MeetingAttendance", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="attendance.delete",
        entity_type="MeetingAttendance",
        entity_id=str(rec.id),
        metadata={"meeting_date": rec.meeting_date, "attendance": rec.attendance},
    )
    s.delete(rec)


def attendance_in_months(s: "Session", months: list[str]) -> list["MeetingAttendance"]:
    from app.congregation.modules.attendance.models import MeetingAttendance

    if not months:
        return []
    return (
        s.query(MeetingAttendance)
        .filter(MeetingAttendance.month.in_(months))
        .order_by(MeetingAttendance.meeting_date.asc())
        .all()
    )


# --- monthly record ---------------------------------------------------------


@dataclass
class MeetingTotals:
    meetings: int = 0
    total: int = 0

    @property
    def average(self) -> int:
        if not self.meetings:
            return 0
        return round_half_up(self.total / self.meetings)


@dataclass
class AttendanceMonth:
    month: str
    midweek: MeetingTotals = field(default_factory=MeetingTotals)
    weekend: MeetingTotals = field(default_factory=MeetingTotals)

    @property
    def label(self) -> str:
        return month_label(self.month)


@dataclass
class AttendanceRecord:
    months: list[AttendanceMonth]

    def _average_of_averages(self, attr: str) -> int:
        # Months without a meeting of this kind do not pull the average down.
        averages = [getattr(m, attr).average for m in self.months if getattr(m, attr).meetings]
        if not averages:
            return 0
        return round_half_up(sum(averages) / len(averages))

    @property
    def midweek_average(self) -> int:
        return self._average_of_averages("midweek")

    @property
    def weekend_average(self) -> int:
        return self._average_of_averages("weekend")


def build_attendance_record(records: Iterable[Any], months: list[str]) -> AttendanceRecord:
    rows = {m: AttendanceMonth(month=m) for m in months}
    for r in records:
        row = rows.get(r.month)
        if row is None:
            continue
        totals = row.weekend if r.meeting_type == "weekend" else row.midweek
        totals.meetings += 1
        totals.total += int(r.attendance or 0)
    return AttendanceRecord(months=list(rows.values()))


def attendance_record(s: "Session", start: str, end: str) -> AttendanceRecord:
    months = month_range(start, end)
    return build_attendance_record(attendance_in_months(s, months), months)


def service_year_attendance(s: "Session", sy: int) -> AttendanceRecord:
    months = service_year_months(sy)
    return attendance_record(s, months[0], months[-1])
