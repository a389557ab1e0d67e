from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.members.models import GENDERS, MEMBER_ROLES, PIONEER_STATUSES

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.congregation.models import User
    from app.congregation.modules.members.models import Group, Member, MemberDuty, Privilege


def validate_member_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("full_name") or "").strip():
        errors.append("Full name is required.")
    if (payload.get("gender") or "male") not in GENDERS:
        errors.append("Gender must be male or female.")
    if (payload.get("role") or "publisher") not in MEMBER_ROLES:
        errors.append("Unknown role.")
    if (payload.get("pioneer_status") or "none") not in PIONEER_STATUSES:
        errors.append("Unknown pioneer status.")
    return errors


def _resolve_privileges(s: "Session", privilege_ids: list[int] | None) -> list["Privilege"]:
    from app.congregation.modules.members.models import Privilege

    if not privilege_ids:
        return []
    return s.query(Privilege).filter(Privilege.id.in_(privilege_ids)).order_by(Privilege.name.asc()).all()


def create_member(s: "Session", payload: dict, user: "User") -> "Member":
    from app.congregation.modules.members.models import Member

    now = datetime.utcnow()
    member = Member(
        full_name=(payload.get("full_name") or "").strip(),
        gender=payload.get("gender") or "male",
        email=(payload.get("email") or "").strip().lower() or None,
        phone=(payload.get("phone") or "").strip() or None,
        address=(payload.get("address") or "").strip() or None,
        dob=payload.get("dob"),
        baptized_date=payload.get("baptized_date"),
        role=payload.get("role") or "publisher",
        pioneer_status=payload.get("pioneer_status") or "none",
        group_id=payload.get("group_id"),
        user_id=payload.get("user_id"),
        notes=(payload.get("notes") or "").strip() or None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    member.privileges = _resolve_privileges(s, payload.get("privilege_ids"))
    s.add(member)
    s.flush()

    record_event(
        s,
        actor=user,
        action="member.create",
        entity_type="Member",
        entity_id=str(member.id),
        metadata={"full_name": member.full_name, "role": member.role, "group_id": member.group_id},
    )
    return member


def update_member(s: "Session", member: "Member", payload: dict, user: "User", reason: str | None = None) -> "Member":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(member, attr):
            changes[attr] = {"old": getattr(member, attr), "new": val}
            setattr(member, attr, val)

    _set("full_name", (payload.get("full_name") or member.full_name).strip())
    _set("gender", payload.get("gender") or member.gender)
    _set("email", (payload.get("email") or "").strip().lower() or None)
    _set("phone", (payload.get("phone") or "").strip() or None)
    _set("address", (payload.get("address") or "").strip() or None)
    _set("dob", payload.get("dob"))
    _set("baptized_date", payload.get("baptized_date"))
    _set("role", payload.get("role") or member.role)
    _set("pioneer_status", payload.get("pioneer_status") or member.pioneer_status)
    _set("group_id", payload.get("group_id"))
    _set("notes", (payload.get("notes") or "").strip() or None)
    if "is_active" in payload:
        _set("is_active", bool(payload.get("is_active")))
    if "privilege_ids" in payload:
        new_privs = _resolve_privileges(s, payload.get("privilege_ids"))
        old_names = sorted(p.name for p in member.privileges)
        new_names = sorted(p.name for p in new_privs)
        if old_names != new_names:
            changes["privileges"] = {"old": old_names, "new": new_names}
            member.privileges = new_privs

    member.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="member.edit",
        entity_type="Member",
        entity_id=str(member.id),
        reason=reason,
        metadata={"changes": changes},
    )
    return member


def query_members(s: "Session", *, search: str = "", group_id: int | None = None, role: str = "", include_inactive: bool = False) -> "Query":
    from app.congregation.modules.members.models import Member

    q = s.query(Member)
    if not include_inactive:
        q = q.filter(Member.is_active.is_(True))
    if search:
        like = f"%{search}%"
        q = q.filter((Member.full_name.ilike(like)) | (Member.email.ilike(like)) | (Member.phone.ilike(like)))
    if group_id:
        q = q.filter(Member.group_id == group_id)
    if role:
        q = q.filter(Member.role == role)
    return q.order_by(Member.full_name.asc())


def active_members(s: "Session", *, group_id: int | None = None) -> list["Member"]:
    return query_members(s, group_id=group_id).all()


def is_excluded_from_activities(member: "Member") -> bool:
    return member.excluded_from_activities


# --- groups -----------------------------------------------------------------


def create_group(s: "Session", name: str, user: "User") -> "Group":
    from app.congregation.modules.members.models import Group

    name = (name or "").strip()
    if not name:
        raise ValueError("Group name is required.")
    if s.query(Group).filter(Group.name == name).one_or_none():
        raise ValueError(f"Group '{name}' already exists.")
    group = Group(name=name)
    s.add(group)
    s.flush()
    record_event(s, actor=user, action="group.create", entity_type="Group", entity_id=str(group.id), metadata={"name": name})
    return group


def rename_group(s: "Session", group: "Group", name: str, user: "User") -> "Group":
    from app.congregation.modules.members.models import Group

    name = (name or "").strip()
    if not name:
        raise ValueError("Group name is required.")
    clash = s.query(Group).filter(Group.name == name, Group.id != group.id).one_or_none()
    if clash:
        raise ValueError(f"Group '{name}' already exists.")
    old = group.name
    group.name = name
    record_event(
        s,
        actor=user,
        action="group.rename",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"old": old, "new": name},
    )
    return group


def delete_group(s: "Session", group: "Group", user: "User") -> int:
    """Delete a group; its members become unassigned. Returns how many members were moved."""
    from app.congregation.modules.members.models import Member

    moved = s.query(Member).filter(Member.group_id == group.id).update({"group_id": None}, synchronize_session="fetch")
    record_event(
        s,
        actor=user,
        action="group.delete",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"name": group.name, "members_unassigned": moved},
    )
    s.delete(group)
    return moved


# --- privileges -------------------------------------------------------------


def create_privilege(s: "Session", payload: dict, user: "User") -> "Privilege":
    from app.congregation.modules.members.models import Privilege

    name = (payload.get("name") or "").strip()
    if not name:
        raise ValueError("Privilege name is required.")
    if s.query(Privilege).filter(Privilege.name == name).one_or_none():
        raise ValueError(f"Privilege '{name}' already exists.")
    priv = Privilege(
        name=name,
        description=(payload.get("description") or "").strip() or None,
        exclude_from_activities=bool(payload.get("exclude_from_activities")),
    )
    s.add(priv)
    s.flush()
    record_event(
        s,
        actor=user,
        action="privilege.create",
        entity_type="Privilege",
        entity_id=str(priv.id),
        metadata={"name": name, "exclude_from_activities": priv.exclude_from_activities},
    )
    return priv


# --- duties -----------------------------------------------------------------


def add_duty(s: "Session", member: "Member", payload: dict, user: "User") -> "MemberDuty":
    from app.congregation.modules.members.models import MemberDuty

    name = (payload.get("name") or "").strip()
    if not name:
        raise ValueError("Duty name is required.")
    for existing in member.duties:
        if existing.name.lower() == name.lower() and existing.is_active:
            raise ValueError(f"{member.full_name} already has the duty '{existing.name}'.")
    duty = MemberDuty(
        member_id=member.id,
        name=name,
        category=(payload.get("category") or "").strip() or None,
        assigned_date=payload.get("assigned_date"),
        notes=(payload.get("notes") or "").strip() or None,
        is_active=True,
    )
    s.add(duty)
    member.duties.append(duty)
    s.flush()
    record_event(
        s,
        actor=user,
        action="member_duty.add",
        entity_type="MemberDuty",
        entity_id=str(duty.id),
        metadata={"member_id": member.id, "name": name},
    )
    return duty


def remove_duty(s: "Session", duty: "MemberDuty", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="member_duty.remove",
        entity_type="MemberDuty",
        entity_id=str(duty.id),
        metadata={"member_id": duty.member_id, "name": duty.name},
    )
    s.delete(duty)
