from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.territories.distribution import (
    STRATEGIES,
    centroid,
    distribute,
    group_loads,
    natural_key,
    plan_division,
)
from app.congregation.modules.territories.models import DIFFICULTIES, TERRITORY_TYPES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.members.models import Group, Member
    from app.congregation.modules.territories.models import Territory, TerritoryAssignment

DEFAULT_CHECKOUT_DAYS = 120
PRINT_HISTORY_LIMIT = 5


def validate_territory_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("number") or "").strip():
        errors.append("Territory number is required.")
    if not (payload.get("name") or "").strip():
        errors.append("Territory name is required.")
    if (payload.get("difficulty") or "medium") not in DIFFICULTIES:
        errors.append("Difficulty must be easy, medium or hard.")
    if (payload.get("territory_type") or "residential") not in TERRITORY_TYPES:
        errors.append("Unknown territory type.")
    for key, label in (("estimated_hours", "Estimated hours"), ("household_count", "Household count")):
        val = payload.get(key)
        if val is None:
            continue
        if not isinstance(val, int):
            errors.append(f"{label} must be a whole number.")
        elif val < 0:
            errors.append(f"{label} cannot be negative.")
    return errors


def _apply_boundary(t: "Territory", boundary: list | None) -> None:
    t.boundary = boundary
    center = centroid(boundary) if boundary else None
    t.center_lat = center[0] if center else None
    t.center_lng = center[1] if center else None


def create_territory(s: "Session", payload: dict, user: "User") -> "Territory":
    from app.congregation.modules.territories.models import Territory

    number = (payload.get("number") or "").strip()
    if s.query(Territory).filter(Territory.number == number).one_or_none():
        raise ValueError(f"Territory number {number} already exists.")

    now = datetime.utcnow()
    t = Territory(
        number=number,
        name=(payload.get("name") or "").strip(),
        description=(payload.get("description") or "").strip() or None,
        difficulty=payload.get("difficulty") or "medium",
        territory_type=payload.get("territory_type") or "residential",
        estimated_hours=payload.get("estimated_hours") if payload.get("estimated_hours") is not None else 2,
        household_count=payload.get("household_count"),
        notes=(payload.get("notes") or "").strip() or None,
        group_id=payload.get("group_id"),
        is_active=True,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    _apply_boundary(t, payload.get("boundary"))
    s.add(t)
    s.flush()

    record_event(
        s,
        actor=user,
        action="territory.create",
        entity_type="Territory",
        entity_id=str(t.id),
        metadata={"number": t.number, "name": t.name},
    )
    return t


def update_territory(s: "Session", t: "Territory", payload: dict, user: "User") -> "Territory":
    from app.congregation.modules.territories.models import Territory

    changes = {}

    def _set(attr: str, val):
        if val != getattr(t, attr):
            changes[attr] = {"old": getattr(t, attr), "new": val}
            setattr(t, attr, val)

    number = (payload.get("number") or t.number).strip()
    if number != t.number and s.query(Territory).filter(Territory.number == number).one_or_none():
        raise ValueError(f"Territory number {number} already exists.")
    _set("number", number)
    _set("name", (payload.get("name") or t.name).strip())
    _set("description", (payload.get("description") or "").strip() or None)
    _set("difficulty", payload.get("difficulty") or t.difficulty)
    _set("territory_type", payload.get("territory_type") or t.territory_type)
    _set("estimated_hours", payload.get("estimated_hours"))
    _set("household_count", payload.get("household_count"))
    _set("notes", (payload.get("notes") or "").strip() or None)
    _set("group_id", payload.get("group_id"))
    if "is_active" in payload:
        _set("is_active", bool(payload["is_active"]))
    if payload.get("boundary") is not None:
        changes["boundary"] = {"points": len(payload["boundary"])}
        _apply_boundary(t, payload["boundary"])
    t.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="territory.edit",
        entity_type="Territory",
        entity_id=str(t.id),
        metadata={"changes": changes},
    )
    return t


def sorted_territories(territories: list["Territory"]) -> list["Territory"]:
    return sorted(territories, key=lambda t: natural_key(t.number))


def list_territories(s: "Session", *, search: str = "", group_id: int | None = None, include_inactive: bool = False) -> list["Territory"]:
    from app.congregation.modules.territories.models import Territory

    q = s.query(Territory)
    if not include_inactive:
        q = q.filter(Territory.is_active.is_(True))
    if search:
        like = f"%{search}%"
        q = q.filter((Territory.number.ilike(like)) | (Territory.name.ilike(like)))
    if group_id:
        q = q.filter(Territory.group_id == group_id)
    return sorted_territories(q.all())


def territories_by_group(s: "Session", group_id: int) -> list["Territory"]:
    return list_territories(s, group_id=group_id)


def open_assignment(s: "Session", territory_id: int) -> "TerritoryAssignment | None":
    from app.congregation.modules.territories.models import TerritoryAssignment

    return (
        s.query(TerritoryAssignment)
        .filter(
            TerritoryAssignment.territory_id == territory_id,
            TerritoryAssignment.status.in_(("assigned", "overdue")),
        )
        .order_by(TerritoryAssignment.id.desc())
        .first()
    )


# --- check-out / return -----------------------------------------------------


def assign_territory(
    s: "Session",
    t: "Territory",
    publisher: "Member",
    user: "User",
    *,
    assigned_date: date | None = None,
    due_date: date | None = None,
    notes: str | None = None,
) -> "TerritoryAssignment":
    from app.congregation.modules.territories.models import TerritoryAssignment

    if not t.is_active:
        raise ValueError(f"Territory {t.number} is inactive.")
    if open_assignment(s, t.id):
        raise ValueError(f"Territory {t.number} is already checked out.")

    assigned_date = assigned_date or date.today()
    a = TerritoryAssignment(
        territory_id=t.id,
        publisher_id=publisher.id,
        assigned_date=assigned_date,
        due_date=due_date or assigned_date + timedelta(days=DEFAULT_CHECKOUT_DAYS),
        status="assigned",
        notes=(notes or "").strip() or None,
        assigned_by_user_id=user.id,
    )
    s.add(a)
    s.flush()

    record_event(
        s,
        actor=user,
        action="territory.assign",
        entity_type="TerritoryAssignment",
        entity_id=str(a.id),
        metadata={"territory": t.number, "publisher_id": publisher.id, "due_date": a.due_date},
    )
    return a


def return_territory(
    s: "Session",
    a: "TerritoryAssignment",
    user: "User",
    *,
    completed: bool = True,
    returned_date: date | None = None,
    hours_worked: int | None = None,
    households_visited: int | None = None,
    notes: str | None = None,
) -> "TerritoryAssignment":
    if a.status not in ("assigned", "overdue"):
        raise ValueError("This territory assignment is already closed.")
    returned_date = returned_date or date.today()
    if returned_date < a.assigned_date:
        raise ValueError("Return date cannot be before the assignment date.")
    for label, val in (("Hours worked", hours_worked), ("Households visited", households_visited)):
        if val is not None and (not isinstance(val, int) or val < 0):
            raise ValueError(f"{label} must be a whole number of zero or more.")

    a.status = "completed" if completed else "returned"
    a.returned_date = returned_date
    a.hours_worked = hours_worked
    a.households_visited = households_visited
    if notes:
        a.notes = notes.strip()
    if completed:
        a.territory.last_worked = returned_date

    record_event(
        s,
        actor=user,
        action="territory.return",
        entity_type="TerritoryAssignment",
        entity_id=str(a.id),
        metadata={"territory_id": a.territory_id, "status": a.status, "hours_worked": hours_worked},
    )
    return a


def bulk_assign(s: "Session", items: list[dict], user: "User") -> list["TerritoryAssignment"]:
    """Check out several territories at once; territories already out are skipped."""
    from app.congregation.modules.members.models import Member
    from app.congregation.modules.territories.models import Territory

    created = []
    for item in items:
        t = s.get(Territory, item["territory_id"])
        publisher = s.get(Member, item["publisher_id"])
        if not t or not publisher or not t.is_active or open_assignment(s, t.id):
            continue
        created.append(assign_territory(s, t, publisher, user, due_date=item.get("due_date")))

    record_event(
        s,
        actor=user,
        action="territory.bulk_assign",
        entity_type="TerritoryAssignment",
        entity_id="bulk",
        metadata={"requested": len(items), "created": len(created)},
    )
    return created


def mark_overdue(s: "Session", today: date | None = None) -> int:
    """Flag open assignments whose due date has passed. Returns how many changed."""
    from app.congregation.modules.territories.models import TerritoryAssignment

    today = today or date.today()
    rows = (
        s.query(TerritoryAssignment)
        .filter(TerritoryAssignment.status == "assigned", TerritoryAssignment.due_date < today)
        .all()
    )
    for a in rows:
        a.status = "overdue"
    return len(rows)


# --- groups -----------------------------------------------------------------


def assign_to_group(s: "Session", territory_ids: list[int], group: "Group", user: "User") -> int:
    from app.congregation.modules.territories.models import Territory

    if not territory_ids:
        return 0
    territories = s.query(Territory).filter(Territory.id.in_(territory_ids)).all()
    for t in territories:
        t.group_id = group.id
        t.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="territory.assign_group",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"territories": sorted(t.number for t in territories)},
    )
    return len(territories)


def distribute_to_groups(s: "Session", strategy: str, user: "User") -> dict[int, int]:
    """Spread all active territories across all groups. Returns {group_id: territory count}."""
    from app.congregation.modules.members.models import Group

    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown distribution strategy '{strategy}'.")
    groups = s.query(Group).order_by(Group.name.asc(), Group.id.asc()).all()
    if not groups:
        raise ValueError("No groups available.")
    territories = list_territories(s)

    plan = distribute(territories, [g.id for g in groups], strategy)
    now = datetime.utcnow()
    for group_id, ts in plan.items():
        for t in ts:
            t.group_id = group_id
            t.updated_at = now

    counts = {gid: len(ts) for gid, ts in plan.items()}
    record_event(
        s,
        actor=user,
        action="territory.distribute",
        entity_type="Territory",
        entity_id="distribute",
        metadata={
            "strategy": strategy,
            "territory_count": len(territories),
            "group_count": len(groups),
            "loads": {str(k): v for k, v in group_loads(plan, strategy).items()},
        },
    )
    return counts


# --- division ---------------------------------------------------------------


def divide_territory(s: "Session", t: "Territory", k: int, user: "User") -> list["Territory"]:
    from app.congregation.modules.territories.models import Territory

    if not t.is_active:
        raise ValueError(f"Territory {t.number} is inactive and cannot be divided.")
    if open_assignment(s, t.id):
        raise ValueError(f"Territory {t.number} is checked out; return it before dividing.")

    center = (t.center_lat, t.center_lng) if t.center_lat is not None and t.center_lng is not None else None
    plans = plan_division(
        t.number,
        t.name,
        t.boundary,
        k,
        estimated_hours=t.estimated_hours,
        household_count=t.household_count,
        center=center,
    )
    clash = s.query(Territory.number).filter(Territory.number.in_([p.number for p in plans])).first()
    if clash:
        raise ValueError(f"Territory number {clash[0]} already exists.")

    now = datetime.utcnow()
    children = []
    for p in plans:
        child = Territory(
            number=p.number,
            name=p.name,
            description=p.description,
            boundary=p.boundary,
            center_lat=p.center[0] if p.center else None,
            center_lng=p.center[1] if p.center else None,
            difficulty=t.difficulty,
            territory_type=t.territory_type,
            estimated_hours=p.estimated_hours,
            household_count=p.household_count,
            group_id=t.group_id,
            parent_id=t.id,
            is_active=True,
            created_at=now,
            updated_at=now,
            created_by_user_id=user.id,
        )
        s.add(child)
        children.append(child)
    t.is_active = False
    t.updated_at = now
    s.flush()

    record_event(
        s,
        actor=user,
        action="territory.divide",
        entity_type="Territory",
        entity_id=str(t.id),
        metadata={"divisions": k, "children": [c.number for c in children]},
    )
    return children


# --- reporting --------------------------------------------------------------


@dataclass
class GroupTerritoryStats:
    group_id: int | None
    group_name: str
    total: int = 0
    checked_out: int = 0
    easy: int = 0
    medium: int = 0
    hard: int = 0

    @property
    def available(self) -> int:
        return self.total - self.checked_out


def stats_by_group(s: "Session") -> list[GroupTerritoryStats]:
    from app.congregation.modules.members.models import Group
    from app.congregation.modules.territories.models import TerritoryAssignment

    open_ids = {
        tid
        for (tid,) in s.query(TerritoryAssignment.territory_id)
        .filter(TerritoryAssignment.status.in_(("assigned", "overdue")))
        .all()
    }
    stats = {g.id: GroupTerritoryStats(group_id=g.id, group_name=g.name) for g in s.query(Group).order_by(Group.name.asc()).all()}
    unassigned = GroupTerritoryStats(group_id=None, group_name="Unassigned")
    for t in list_territories(s):
        row = stats.get(t.group_id, unassigned) if t.group_id else unassigned
        row.total += 1
        row.checked_out += 1 if t.id in open_ids else 0
        if t.difficulty in DIFFICULTIES:
            setattr(row, t.difficulty, getattr(row, t.difficulty) + 1)
    out = list(stats.values())
    if unassigned.total:
        out.append(unassigned)
    return out


def print_data(s: "Session", t: "Territory") -> dict:
    from app.congregation.modules.territories.models import TerritoryAssignment

    history = (
        s.query(TerritoryAssignment)
        .filter(TerritoryAssignment.territory_id == t.id)
        .order_by(TerritoryAssignment.assigned_date.desc(), TerritoryAssignment.id.desc())
        .limit(PRINT_HISTORY_LIMIT)
        .all()
    )
    return {
        "territory": t,
        "current": open_assignment(s, t.id),
        "history": history,
    }
