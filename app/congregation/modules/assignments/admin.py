from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, abort, current_app, flash, g, jsonify, redirect, render_template, request, url_for

from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.assignments.models import ASSIGNMENT_TYPES, MEETING_TYPES, Assignment
from app.congregation.modules.assignments.service import (
    assignments_for_week,
    create_assignment,
    delete_assignment,
    eligible_members,
    import_workbook_week,
    update_assignment,
    validate_assignment_payload,
    week_start,
)
from app.congregation.modules.assignments.workbook import client_from_config, to_assignment_payloads
from app.congregation.modules.members.service import active_members
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_count, parse_date, parse_int

bp = Blueprint("assignments", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _week_arg(raw: str | None) -> date:
    return week_start(parse_date(raw) or date.today())


def _assignment_payload_from_form() -> dict:
    return {
        "week": parse_date(request.form.get("week")),
        "meeting_type": (request.form.get("meeting_type") or "").strip(),
        "assignment_type": (request.form.get("assignment_type") or "").strip(),
        "title": request.form.get("title"),
        "description": request.form.get("description"),
        "source": request.form.get("source"),
        "duration": parse_count(request.form.get("duration")),
        "assignee_id": parse_int(request.form.get("assignee_id")),
        "assistant_id": parse_int(request.form.get("assistant_id")),
    }


@bp.get("/assignments")
@require_permission("assignments.view")
def assignments_week():
    s = db_session()
    week = _week_arg(request.args.get("week"))
    items = assignments_for_week(s, week)
    return render_template(
        "admin/assignments/week.html",
        week=week,
        prev_week=week - timedelta(days=7),
        next_week=week + timedelta(days=7),
        midweek=[a for a in items if a.meeting_type == "Midweek"],
        weekend=[a for a in items if a.meeting_type == "Weekend"],
        members=active_members(s),
        assignment_types=ASSIGNMENT_TYPES,
        meeting_types=MEETING_TYPES,
    )


@bp.get("/assignments/print")
@require_permission("assignments.view")
def assignments_print():
    s = db_session()
    week = _week_arg(request.args.get("week"))
    items = assignments_for_week(s, week)
    return render_template(
        "admin/assignments/print.html",
        week=week,
        week_end=week + timedelta(days=6),
        midweek=[a for a in items if a.meeting_type == "Midweek"],
        weekend=[a for a in items if a.meeting_type == "Weekend"],
    )


@bp.get("/assignments/eligible")
@require_permission("assignments.view")
def assignments_eligible():
    s = db_session()
    members = eligible_members(s, (request.args.get("type") or "").strip())
    return jsonify({"members": [{"id": m.id, "name": m.full_name} for m in members]})


@bp.post("/assignments/new")
@require_permission("assignments.edit")
def assignments_new_post():
    s = db_session()
    u = _current_user()
    payload = _assignment_payload_from_form()
    back = url_for("assignments.assignments_week", week=(payload["week"] or date.today()).isoformat())

    errors = validate_assignment_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(back)

    a = create_assignment(s, payload, u)
    s.commit()
    flash(f"Assignment '{a.title}' created.", "success")
    return redirect(url_for("assignments.assignments_week", week=a.week.isoformat()))


@bp.get("/assignments/<int:assignment_id>/edit")
@require_permission("assignments.edit")
def assignments_edit_get(assignment_id: int):
    s = db_session()
    a = s.get(Assignment, assignment_id)
    if not a:
        abort(404)
    return render_template(
        "admin/assignments/edit.html",
        assignment=a,
        eligible=eligible_members(s, a.assignment_type),
        members=active_members(s),
        assignment_types=ASSIGNMENT_TYPES,
        meeting_types=MEETING_TYPES,
    )


@bp.post("/assignments/<int:assignment_id>/edit")
@require_permission("assignments.edit")
def assignments_edit_post(assignment_id: int):
    s = db_session()
    u = _current_user()
    a = s.get(Assignment, assignment_id)
    if not a:
        abort(404)

    payload = _assignment_payload_from_form()
    errors = validate_assignment_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("assignments.assignments_edit_get", assignment_id=assignment_id))

    update_assignment(s, a, payload, u)
    s.commit()
    flash("Assignment updated.", "success")
    return redirect(url_for("assignments.assignments_week", week=a.week.isoformat()))


@bp.post("/assignments/<int:assignment_id>/delete")
@require_permission("assignments.edit")
def assignments_delete(assignment_id: int):
    s = db_session()
    u = _current_user()
    a = s.get(Assignment, assignment_id)
    if not a:
        abort(404)
    week = a.week
    delete_assignment(s, a, u)
    s.commit()
    flash("Assignment deleted.", "success")
    return redirect(url_for("assignments.assignments_week", week=week.isoformat()))


@bp.post("/assignments/import")
@require_permission("assignments.edit")
def assignments_import():
    s = db_session()
    u = _current_user()
    week = _week_arg(request.form.get("week"))

    client = client_from_config(current_app.config)
    program = client.fetch_week(week)
    if program.is_empty:
        flash("No workbook content could be loaded for this week. Add the assignments manually.", "warning")
        return redirect(url_for("assignments.assignments_week", week=week.isoformat()))

    created = import_workbook_week(s, to_assignment_payloads(program), u)
    s.commit()
    current_app.logger.info("Workbook import for %s created %s assignment(s)", week, len(created))
    flash(f"Imported {len(created)} assignment(s) from the meeting workbook.", "success")
    return redirect(url_for("assignments.assignments_week", week=week.isoformat()))
