from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.field_service.service_year import is_month_key, previous_month_key, shift_month
from app.congregation.modules.members.models import Group
from app.congregation.modules.overseer_reports.models import OverseerReport
from app.congregation.modules.overseer_reports.service import (
    TEXT_FIELDS,
    analytics,
    delete_overseer_report,
    find_overseer_report,
    group_roster,
    month_grid,
    schedule_visit,
    submit_overseer_report,
    update_overseer_report,
    validate_overseer_payload,
)
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_date, parse_int

bp = Blueprint("overseer_reports", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _month_arg(default: str) -> str:
    raw = (request.args.get("month") or "").strip()
    if raw and not is_month_key(raw):
        flash(f"Month must be YYYY-MM; showing {default} instead.", "danger")
        return default
    return raw or default


def _marks_from_form() -> dict[int, dict]:
    marks: dict[int, dict] = {}
    for raw in request.form.getlist("member_ids"):
        mid = parse_int(raw)
        if mid is None:
            continue
        marks[mid] = {
            "present": parse_bool(request.form.get(f"present_{mid}")),
            "has_study": parse_bool(request.form.get(f"has_study_{mid}")),
            "participates_in_ministry": parse_bool(request.form.get(f"ministry_{mid}")),
        }
    return marks


def _payload_from_form() -> dict:
    payload = {
        "group_id": parse_int(request.form.get("group_id")),
        "month": (request.form.get("month") or "").strip(),
        "visit_date": parse_date(request.form.get("visit_date")),
        "overseer_name": request.form.get("overseer_name"),
        "follow_up_needed": parse_bool(request.form.get("follow_up_needed")),
        "marks": _marks_from_form(),
    }
    for f in TEXT_FIELDS:
        payload[f] = request.form.get(f)
    return payload


@bp.get("/overseer")
@require_permission("overseer.view")
def grid():
    s = db_session()
    month = _month_arg(previous_month_key())
    return render_template(
        "admin/overseer_reports/grid.html",
        month=month,
        prev_month=shift_month(month, -1),
        next_month=shift_month(month, 1),
        cells=month_grid(s, month),
    )


@bp.get("/overseer/new")
@require_permission("overseer.edit")
def reports_new_get():
    s = db_session()
    group_id = parse_int(request.args.get("group_id"))
    month = _month_arg(previous_month_key())
    group = s.get(Group, group_id) if group_id else None
    if group and find_overseer_report(s, group.id, month):
        flash(f"A report for {group.name} in {month} already exists.", "danger")
        return redirect(url_for("overseer_reports.grid", month=month))
    return render_template(
        "admin/overseer_reports/form.html",
        report=None,
        group=group,
        month=month,
        groups=s.query(Group).order_by(Group.name.asc()).all(),
        roster=group_roster(s, group, month) if group else [],
    )


@bp.post("/overseer/new")
@require_permission("overseer.edit")
def reports_new_post():
    s = db_session()
    u = _current_user()
    payload = _payload_from_form()
    errors = validate_overseer_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("overseer_reports.reports_new_get", group_id=payload["group_id"] or "", month=payload["month"]))
    try:
        report = submit_overseer_report(s, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("overseer_reports.grid", month=payload["month"]))
    s.commit()
    flash(f"Report for {report.group.name} submitted.", "success")
    return redirect(url_for("overseer_reports.reports_detail", report_id=report.id))


@bp.get("/overseer/<int:report_id>")
@require_permission("overseer.view")
def reports_detail(report_id: int):
    s = db_session()
    report = s.get(OverseerReport, report_id)
    if not report:
        abort(404)
    return render_template("admin/overseer_reports/detail.html", report=report)


@bp.get("/overseer/<int:report_id>/edit")
@require_permission("overseer.edit")
def reports_edit_get(report_id: int):
    s = db_session()
    report = s.get(OverseerReport, report_id)
    if not report:
        abort(404)
    marked = {m.member_id: m for m in report.members}
    roster = group_roster(s, report.group, report.month)
    for row in roster:
        m = marked.get(row.member_id)
        if m is not None:
            row.present = m.present
            row.has_study = m.has_study
            row.participates_in_ministry = m.participates_in_ministry
    return render_template(
        "admin/overseer_reports/form.html",
        report=report,
        group=report.group,
        month=report.month,
        groups=[report.group],
        roster=roster,
    )


@bp.post("/overseer/<int:report_id>/edit")
@require_permission("overseer.edit")
def reports_edit_post(report_id: int):
    s = db_session()
    u = _current_user()
    report = s.get(OverseerReport, report_id)
    if not report:
        abort(404)
    payload = _payload_from_form()
    payload["group_id"] = report.group_id
    payload["month"] = report.month
    errors = validate_overseer_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("overseer_reports.reports_edit_get", report_id=report_id))
    update_overseer_report(s, report, payload, u)
    s.commit()
    flash("Report updated.", "success")
    return redirect(url_for("overseer_reports.reports_detail", report_id=report_id))


@bp.post("/overseer/<int:report_id>/delete")
@require_permission("overseer.edit")
def reports_delete(report_id: int):
    s = db_session()
    u = _current_user()
    report = s.get(OverseerReport, report_id)
    if not report:
        abort(404)
    month = report.month
    delete_overseer_report(s, report, u)
    s.commit()
    flash("Report deleted.", "success")
    return redirect(url_for("overseer_reports.grid", month=month))


@bp.post("/overseer/schedule")
@require_permission("overseer.edit")
def schedule_post():
    s = db_session()
    u = _current_user()
    group_id = parse_int(request.form.get("group_id"))
    month = (request.form.get("month") or "").strip()
    if not group_id or not s.get(Group, group_id):
        flash("Group is required.", "danger")
        return redirect(url_for("overseer_reports.grid", month=month or None))
    try:
        schedule_visit(s, group_id, month, parse_date(request.form.get("scheduled_date")), u, notes=request.form.get("notes"))
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("overseer_reports.grid", month=month if is_month_key(month) else None))
    s.commit()
    flash("Visit scheduled.", "success")
    return redirect(url_for("overseer_reports.grid", month=month))


@bp.get("/overseer/analytics")
@require_permission("overseer.view")
def analytics_view():
    s = db_session()
    end_default = previous_month_key()
    start = (request.args.get("start") or "").strip() or shift_month(end_default, -5)
    end = (request.args.get("end") or "").strip() or end_default
    if not is_month_key(start) or not is_month_key(end) or start > end:
        flash("Choose a valid month range.", "danger")
        start, end = shift_month(end_default, -5), end_default
    group_id = parse_int(request.args.get("group_id"))
    return render_template(
        "admin/overseer_reports/analytics.html",
        rows=analytics(s, start, end, group_id=group_id),
        start=start,
        end=end,
        group_id=group_id,
        groups=s.query(Group).order_by(Group.name.asc()).all(),
    )
