from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.members.models import Group, Member
from app.congregation.modules.members.service import active_members
from app.congregation.modules.territories.distribution import MAX_DIVISIONS, MIN_DIVISIONS, STRATEGIES, parse_boundary
from app.congregation.modules.territories.models import DIFFICULTIES, TERRITORY_TYPES, Territory, TerritoryAssignment
from app.congregation.modules.territories.service import (
    assign_territory,
    assign_to_group,
    bulk_assign,
    create_territory,
    distribute_to_groups,
    divide_territory,
    list_territories,
    mark_overdue,
    open_assignment,
    print_data,
    return_territory,
    stats_by_group,
    update_territory,
    validate_territory_payload,
)
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_count, parse_date, parse_id_list, parse_int

bp = Blueprint("territories", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _territory_payload_from_form() -> tuple[dict, list[str]]:
    errors = []
    boundary = None
    try:
        boundary = parse_boundary(request.form.get("boundary"))
    except ValueError as e:
        errors.append(str(e))
    payload = {
        "number": request.form.get("number"),
        "name": request.form.get("name"),
        "description": request.form.get("description"),
        "difficulty": (request.form.get("difficulty") or "medium").strip(),
        "territory_type": (request.form.get("territory_type") or "residential").strip(),
        "estimated_hours": parse_count(request.form.get("estimated_hours")),
        "household_count": parse_count(request.form.get("household_count")),
        "notes": request.form.get("notes"),
        "group_id": parse_int(request.form.get("group_id")),
        "boundary": boundary,
    }
    return payload, errors + validate_territory_payload(payload)


def _form_choices(s) -> dict:
    return {
        "groups": s.query(Group).order_by(Group.name.asc()).all(),
        "difficulties": DIFFICULTIES,
        "territory_types": TERRITORY_TYPES,
    }


@bp.get("/territories")
@require_permission("territories.view")
def territories_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    group_id = parse_int(request.args.get("group_id"))
    include_inactive = parse_bool(request.args.get("include_inactive"))
    territories = list_territories(s, search=search, group_id=group_id, include_inactive=include_inactive)
    return render_template(
        "admin/territories/list.html",
        territories=territories,
        search=search,
        group_id=group_id,
        include_inactive=include_inactive,
        members=active_members(s),
        today=date.today(),
        **_form_choices(s),
    )


@bp.get("/territories/new")
@require_permission("territories.edit")
def territories_new_get():
    s = db_session()
    return render_template("admin/territories/form.html", territory=None, **_form_choices(s))


@bp.post("/territories/new")
@require_permission("territories.edit")
def territories_new_post():
    s = db_session()
    u = _current_user()
    payload, errors = _territory_payload_from_form()
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("territories.territories_new_get"))
    try:
        t = create_territory(s, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("territories.territories_new_get"))
    s.commit()
    flash(f"Territory {t.number} created.", "success")
    return redirect(url_for("territories.territories_detail", territory_id=t.id))


@bp.get("/territories/<int:territory_id>")
@require_permission("territories.view")
def territories_detail(territory_id: int):
    s = db_session()
    t = s.get(Territory, territory_id)
    if not t:
        abort(404)
    return render_template(
        "admin/territories/detail.html",
        territory=t,
        current=open_assignment(s, t.id),
        members=active_members(s),
        min_divisions=MIN_DIVISIONS,
        max_divisions=MAX_DIVISIONS,
        today=date.today(),
    )


@bp.get("/territories/<int:territory_id>/edit")
@require_permission("territories.edit")
def territories_edit_get(territory_id: int):
    s = db_session()
    t = s.get(Territory, territory_id)
    if not t:
        abort(404)
    return render_template("admin/territories/form.html", territory=t, **_form_choices(s))


@bp.post("/territories/<int:territory_id>/edit")
@require_permission("territories.edit")
def territories_edit_post(territory_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(Territory, territory_id)
    if not t:
        abort(404)
    payload, errors = _territory_payload_from_form()
    payload["is_active"] = parse_bool(request.form.get("is_active"))
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("territories.territories_edit_get", territory_id=territory_id))
    try:
        update_territory(s, t, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("territories.territories_edit_get", territory_id=territory_id))
    s.commit()
    flash("Territory updated.", "success")
    return redirect(url_for("territories.territories_detail", territory_id=territory_id))


@bp.post("/territories/<int:territory_id>/assign")
@require_permission("territories.assign")
def territories_assign(territory_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(Territory, territory_id)
    if not t:
        abort(404)
    publisher = s.get(Member, parse_int(request.form.get("publisher_id")) or 0)
    if not publisher:
        flash("Select a publisher.", "danger")
        return redirect(url_for("territories.territories_detail", territory_id=territory_id))
    try:
        assign_territory(
            s,
            t,
            publisher,
            u,
            assigned_date=parse_date(request.form.get("assigned_date")),
            due_date=parse_date(request.form.get("due_date")),
            notes=request.form.get("notes"),
        )
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("territories.territories_detail", territory_id=territory_id))
    s.commit()
    flash(f"Territory {t.number} checked out to {publisher.full_name}.", "success")
    return redirect(url_for("territories.territories_detail", territory_id=territory_id))


@bp.post("/territories/assignments/<int:assignment_id>/return")
@require_permission("territories.assign")
def territories_return(assignment_id: int):
    s = db_session()
    u = _current_user()
    a = s.get(TerritoryAssignment, assignment_id)
    if not a:
        abort(404)
    try:
        return_territory(
            s,
            a,
            u,
            completed=(request.form.get("outcome") or "completed") == "completed",
            returned_date=parse_date(request.form.get("returned_date")),
            hours_worked=parse_count(request.form.get("hours_worked")),
            households_visited=parse_count(request.form.get("households_visited")),
            notes=request.form.get("notes"),
        )
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("territories.territories_detail", territory_id=a.territory_id))
    s.commit()
    flash("Territory returned.", "success")
    return redirect(url_for("territories.territories_detail", territory_id=a.territory_id))


@bp.post("/territories/bulk-assign")
@require_permission("territories.assign")
def territories_bulk_assign():
    s = db_session()
    u = _current_user()
    territory_ids = parse_id_list(request.form.getlist("territory_ids"))
    publisher_id = parse_int(request.form.get("publisher_id"))
    if not territory_ids or not publisher_id:
        flash("Select territories and a publisher.", "danger")
        return redirect(url_for("territories.territories_list"))
    due_date = parse_date(request.form.get("due_date"))
    items = [{"territory_id": tid, "publisher_id": publisher_id, "due_date": due_date} for tid in territory_ids]
    created = bulk_assign(s, items, u)
    s.commit()
    skipped = len(items) - len(created)
    flash(f"Checked out {len(created)} territories ({skipped} skipped).", "success")
    return redirect(url_for("territories.territories_list"))


@bp.post("/territories/assign-group")
@require_permission("territories.edit")
def territories_assign_group():
    s = db_session()
    u = _current_user()
    territory_ids = parse_id_list(request.form.getlist("territory_ids"))
    group = s.get(Group, parse_int(request.form.get("group_id")) or 0)
    if not group or not territory_ids:
        flash("Select territories and a group.", "danger")
        return redirect(url_for("territories.territories_list"))
    count = assign_to_group(s, territory_ids, group, u)
    s.commit()
    flash(f"Assigned {count} territories to {group.name}.", "success")
    return redirect(url_for("territories.territories_list", group_id=group.id))


@bp.get("/territories/distribute")
@require_permission("territories.view")
def territories_distribute_get():
    s = db_session()
    return render_template("admin/territories/distribute.html", stats=stats_by_group(s), strategies=STRATEGIES)


@bp.post("/territories/distribute")
@require_permission("territories.edit")
def territories_distribute_post():
    s = db_session()
    u = _current_user()
    strategy = (request.form.get("strategy") or "equal").strip()
    try:
        counts = distribute_to_groups(s, strategy, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("territories.territories_distribute_get"))
    s.commit()
    flash(f"Distributed {sum(counts.values())} territories across {len(counts)} groups ({strategy}).", "success")
    return redirect(url_for("territories.territories_distribute_get"))


@bp.post("/territories/mark-overdue")
@require_permission("territories.assign")
def territories_mark_overdue():
    s = db_session()
    changed = mark_overdue(s)
    s.commit()
    flash(f"{changed} assignment(s) marked overdue.", "success")
    return redirect(url_for("territories.territories_list"))


@bp.post("/territories/<int:territory_id>/divide")
@require_permission("territories.edit")
def territories_divide(territory_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(Territory, territory_id)
    if not t:
        abort(404)
    k = parse_int(request.form.get("divisions"))
    if k is None:
        flash("Number of divisions is required.", "danger")
        return redirect(url_for("territories.territories_detail", territory_id=territory_id))
    try:
        children = divide_territory(s, t, k, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("territories.territories_detail", territory_id=territory_id))
    s.commit()
    flash(f"Territory {t.number} divided into {len(children)} sub-territories.", "success")
    return redirect(url_for("territories.territories_detail", territory_id=territory_id))


@bp.get("/territories/<int:territory_id>/print")
@require_permission("territories.view")
def territories_print(territory_id: int):
    s = db_session()
    t = s.get(Territory, territory_id)
    if not t:
        abort(404)
    return render_template("admin/territories/print.html", **print_data(s, t))
