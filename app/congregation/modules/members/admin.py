from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.congregation.audit import entity_history
from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.members.models import (
    GENDERS,
    MEMBER_ROLES,
    PIONEER_STATUSES,
    Group,
    Member,
    MemberDuty,
    Privilege,
)
from app.congregation.modules.members.service import (
    add_duty,
    create_group,
    create_member,
    create_privilege,
    delete_group,
    query_members,
    remove_duty,
    rename_group,
    update_member,
    validate_member_payload,
)
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_date, parse_id_list, parse_int

bp = Blueprint("members", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _member_payload_from_form() -> dict:
    return {
        "full_name": request.form.get("full_name"),
        "gender": (request.form.get("gender") or "male").strip(),
        "email": request.form.get("email"),
        "phone": request.form.get("phone"),
        "address": request.form.get("address"),
        "dob": parse_date(request.form.get("dob")),
        "baptized_date": parse_date(request.form.get("baptized_date")),
        "role": (request.form.get("role") or "publisher").strip(),
        "pioneer_status": (request.form.get("pioneer_status") or "none").strip(),
        "group_id": parse_int(request.form.get("group_id")),
        "notes": request.form.get("notes"),
        "privilege_ids": parse_id_list(request.form.getlist("privilege_ids")),
    }


def _form_choices(s) -> dict:
    return {
        "groups": s.query(Group).order_by(Group.name.asc()).all(),
        "privileges": s.query(Privilege).order_by(Privilege.name.asc()).all(),
        "roles": MEMBER_ROLES,
        "pioneer_statuses": PIONEER_STATUSES,
        "genders": GENDERS,
    }


@bp.get("/members")
@require_permission("members.view")
def members_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    group_id = parse_int(request.args.get("group_id"))
    role = (request.args.get("role") or "").strip()
    include_inactive = parse_bool(request.args.get("include_inactive"))
    members = query_members(s, search=search, group_id=group_id, role=role, include_inactive=include_inactive).all()
    return render_template(
        "admin/members/list.html",
        members=members,
        search=search,
        group_id=group_id,
        role=role,
        include_inactive=include_inactive,
        **_form_choices(s),
    )


@bp.get("/members/new")
@require_permission("members.edit")
def members_new_get():
    s = db_session()
    return render_template("admin/members/form.html", member=None, **_form_choices(s))


@bp.post("/members/new")
@require_permission("members.edit")
def members_new_post():
    s = db_session()
    u = _current_user()
    payload = _member_payload_from_form()
    errors = validate_member_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("members.members_new_get"))

    member = create_member(s, payload, u)
    s.commit()
    flash(f"Member {member.full_name} created.", "success")
    return redirect(url_for("members.members_detail", member_id=member.id))


@bp.get("/members/<int:member_id>")
@require_permission("members.view")
def members_detail(member_id: int):
    from app.congregation.modules.field_service.models import FieldServiceReport

    s = db_session()
    member = s.get(Member, member_id)
    if not member:
        abort(404)
    recent_reports = (
        s.query(FieldServiceReport)
        .filter(FieldServiceReport.member_id == member.id)
        .order_by(FieldServiceReport.month.desc())
        .limit(12)
        .all()
    )
    return render_template(
        "admin/members/detail.html",
        member=member,
        recent_reports=recent_reports,
        history=entity_history(s, "Member", member.id),
    )


@bp.get("/members/<int:member_id>/edit")
@require_permission("members.edit")
def members_edit_get(member_id: int):
    s = db_session()
    member = s.get(Member, member_id)
    if not member:
        abort(404)
    return render_template("admin/members/form.html", member=member, **_form_choices(s))


@bp.post("/members/<int:member_id>/edit")
@require_permission("members.edit")
def members_edit_post(member_id: int):
    s = db_session()
    u = _current_user()
    member = s.get(Member, member_id)
    if not member:
        abort(404)

    payload = _member_payload_from_form()
    payload["is_active"] = parse_bool(request.form.get("is_active"))
    errors = validate_member_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("members.members_edit_get", member_id=member_id))

    update_member(s, member, payload, u, reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Member updated.", "success")
    return redirect(url_for("members.members_detail", member_id=member_id))


@bp.post("/members/<int:member_id>/duties")
@require_permission("members.edit")
def members_duty_add(member_id: int):
    s = db_session()
    u = _current_user()
    member = s.get(Member, member_id)
    if not member:
        abort(404)
    payload = {
        "name": request.form.get("name"),
        "category": request.form.get("category"),
        "assigned_date": parse_date(request.form.get("assigned_date")),
        "notes": request.form.get("notes"),
    }
    try:
        add_duty(s, member, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("members.members_detail", member_id=member_id))
    s.commit()
    flash("Duty added.", "success")
    return redirect(url_for("members.members_detail", member_id=member_id))


@bp.post("/members/<int:member_id>/duties/<int:duty_id>/remove")
@require_permission("members.edit")
def members_duty_remove(member_id: int, duty_id: int):
    s = db_session()
    u = _current_user()
    duty = s.get(MemberDuty, duty_id)
    if not duty or duty.member_id != member_id:
        abort(404)
    remove_duty(s, duty, u)
    s.commit()
    flash("Duty removed.", "success")
    return redirect(url_for("members.members_detail", member_id=member_id))


# ============================================================================
# GROUPS + PRIVILEGES
# ============================================================================


@bp.get("/groups")
@require_permission("members.view")
def groups_list():
    s = db_session()
    groups = s.query(Group).order_by(Group.name.asc()).all()
    counts = {grp.id: sum(1 for m in grp.members if m.is_active) for grp in groups}
    return render_template("admin/members/groups.html", groups=groups, counts=counts)


@bp.post("/groups/new")
@require_permission("groups.manage")
def groups_new_post():
    s = db_session()
    u = _current_user()
    try:
        group = create_group(s, request.form.get("name") or "", u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("members.groups_list"))
    s.commit()
    flash(f"Group {group.name} created.", "success")
    return redirect(url_for("members.groups_list"))


@bp.post("/groups/<int:group_id>/rename")
@require_permission("groups.manage")
def groups_rename(group_id: int):
    s = db_session()
    u = _current_user()
    group = s.get(Group, group_id)
    if not group:
        abort(404)
    try:
        rename_group(s, group, request.form.get("name") or "", u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("members.groups_list"))
    s.commit()
    flash("Group renamed.", "success")
    return redirect(url_for("members.groups_list"))


@bp.post("/groups/<int:group_id>/delete")
@require_permission("groups.manage")
def groups_delete(group_id: int):
    s = db_session()
    u = _current_user()
    group = s.get(Group, group_id)
    if not group:
        abort(404)
    moved = delete_group(s, group, u)
    s.commit()
    flash(f"Group deleted; {moved} member(s) unassigned.", "success")
    return redirect(url_for("members.groups_list"))


@bp.get("/privileges")
@require_permission("members.view")
def privileges_list():
    s = db_session()
    privileges = s.query(Privilege).order_by(Privilege.name.asc()).all()
    return render_template("admin/members/privileges.html", privileges=privileges)


@bp.post("/privileges/new")
@require_permission("groups.manage")
def privileges_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "name": request.form.get("name"),
        "description": request.form.get("description"),
        "exclude_from_activities": parse_bool(request.form.get("exclude_from_activities")),
    }
    try:
        create_privilege(s, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("members.privileges_list"))
    s.commit()
    flash("Privilege created.", "success")
    return redirect(url_for("members.privileges_list"))
