from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.assignments.models import ASSIGNMENT_TYPES, MEETING_TYPES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.assignments.models import Assignment
    from app.congregation.modules.members.models import Member

# Duty names that qualify a member for each assignment type.
DUTY_ELIGIBILITY: dict[str, tuple[str, ...]] = {
    "Watchtower Reader": ("Watchtower Reader", "Watchtower Conductor"),
    "Bible Student Reader": ("Bible Reading", "Bible Student Reader"),
    "Life and Ministry": (
        "Initial Call",
        "Return Visit",
        "Bible Study",
        "Life and Ministry Chairman",
        "Spiritual Gems",
        "Living as Christians",
    ),
    "Public Talk Speaker": ("Public Talk", "Public Talk Speaker", "Public Talk Chairman"),
}


def week_start(d: date) -> date:
    """Monday of the week containing `d`."""
    return d - timedelta(days=d.weekday())


def validate_assignment_payload(payload: dict) -> list[str]:
    errors = []
    if not payload.get("week"):
        errors.append("Week is required (YYYY-MM-DD).")
    if payload.get("meeting_type") not in MEETING_TYPES:
        errors.append("Meeting type must be Midweek or Weekend.")
    if payload.get("assignment_type") not in ASSIGNMENT_TYPES:
        errors.append("Unknown assignment type.")
    if not (payload.get("title") or "").strip():
        errors.append("Title is required.")
    duration = payload.get("duration")
    if duration is not None and (not isinstance(duration, int) or duration <= 0):
        errors.append("Duration must be a positive number of minutes.")
    if payload.get("assignee_id") and payload.get("assignee_id") == payload.get("assistant_id"):
        errors.append("Assistant must be a different member than the assignee.")
    return errors


def create_assignment(s: "Session", payload: dict, user: "User") -> "Assignment":
    from app.congregation.modules.assignments.models import Assignment

    now = datetime.utcnow()
    a = Assignment(
        week=week_start(payload["week"]),
        meeting_type=payload["meeting_type"],
        assignment_type=payload["assignment_type"],
        title=(payload.get("title") or "").strip(),
        description=(payload.get("description") or "").strip() or None,
        source=(payload.get("source") or "").strip() or None,
        duration=payload.get("duration"),
        assignee_id=payload.get("assignee_id"),
        assistant_id=payload.get("assistant_id"),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(a)
    s.flush()

    record_event(
        s,
        actor=user,
        action="assignment.create",
        entity_type="Assignment",
        entity_id=str(a.id),
        metadata={"week": a.week.isoformat(), "title": a.title, "assignee_id": a.assignee_id},
    )
    return a


def update_assignment(s: "Session", a: "Assignment", payload: dict, user: "User") -> "Assignment":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(a, attr):
            changes[attr] = {"old": getattr(a, attr), "new": val}
            setattr(a, attr, val)

    _set("week", week_start(payload.get("week") or a.week))
    _set("meeting_type", payload.get("meeting_type") or a.meeting_type)
    _set("assignment_type", payload.get("assignment_type") or a.assignment_type)
    _set("title", (payload.get("title") or a.title).strip())
    _set("description", (payload.get("description") or "").strip() or None)
    _set("source", (payload.get("source") or "").strip() or None)
    _set("duration", payload.get("duration"))
    _set("assignee_id", payload.get("assignee_id"))
    _set("assistant_id", payload.get("assistant_id"))
    a.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="assignment.edit",
        entity_type="Assignment",
        entity_id=str(a.id),
        metadata={"changes": changes},
    )
    return a


def delete_assignment(s: "Session", a: "Assignment", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="assignment.delete",
        entity_type="Assignment",
        entity_id=str(a.id),
        metadata={"week": a.week.isoformat(), "title": a.title},
    )
    s.delete(a)


def assignments_for_week(s: "Session", week: date) -> list["Assignment"]:
    from app.congregation.modules.assignments.models import Assignment

    return (
        s.query(Assignment)
        .filter(Assignment.week == week_start(week))
        .order_by(Assignment.meeting_type.asc(), Assignment.id.asc())
        .all()
    )


def eligible_members(s: "Session", assignment_type: str | None) -> list["Member"]:
    """Active members holding an active duty that qualifies for `assignment_type`; all active members for unmapped types."""
    from app.congregation.modules.members.models import Member, MemberDuty

    q = s.query(Member).filter(Member.is_active.is_(True))
    duty_names = DUTY_ELIGIBILITY.get(assignment_type or "")
    if duty_names:
        q = q.filter(Member.duties.any((MemberDuty.name.in_(duty_names)) & (MemberDuty.is_active.is_(True))))
    return q.order_by(Member.full_name.asc()).all()


def import_workbook_week(s: "Session", payloads: list[dict], user: "User") -> list["Assignment"]:
    """Create assignments from workbook payloads, skipping ones already present for the week."""
    from app.congregation.modules.assignments.models import Assignment

    created = []
    for p in payloads:
        week = week_start(p["week"])
        exists = (
            s.query(Assignment.id)
            .filter(
                Assignment.week == week,
                Assignment.meeting_type == p["meeting_type"],
                Assignment.title == p["title"],
            )
            .first()
        )
        if exists:
            continue
        created.append(create_assignment(s, p, user))

    record_event(
        s,
        actor=user,
        action="assignment.import_workbook",
        entity_type="Assignment",
        entity_id="import",
        metadata={"candidates": len(payloads), "created": len(created)},
    )
    return created
