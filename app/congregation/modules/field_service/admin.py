from __future__ import annotations

import csv
import io
from datetime import date

from flask import Blueprint, abort, flash, g, redirect, render_template, request, send_file, url_for

from app.congregation.audit import record_event
from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.field_service.models import FieldServiceReport
from app.congregation.modules.field_service.service import (
    MEMBER_SCOPES,
    activity_summary,
    delete_report,
    member_service_years,
    pioneer_summary,
    publisher_record,
    reports_by_month,
    submit_report,
    update_report,
    validate_report_payload,
)
from app.congregation.modules.field_service.service_year import (
    is_month_key,
    month_label,
    previous_month_key,
    service_year,
    service_year_label,
    service_year_months,
)
from app.congregation.modules.members.models import PIONEER_STATUSES, Group, Member, Privilege
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_count, parse_int

bp = Blueprint("field_service", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _month_arg(name: str, default: str) -> str:
    raw = (request.args.get(name) or "").strip()
    if raw and not is_month_key(raw):
        flash(f"{name} must be YYYY-MM; showing {default} instead.", "danger")
        return default
    return raw or default


def _report_payload_from_form() -> dict:
    return {
        "member_id": parse_int(request.form.get("member_id")),
        "month": (request.form.get("month") or "").strip(),
        "hours": parse_count(request.form.get("hours")),
        "bible_studies": parse_count(request.form.get("bible_studies")),
        "participated": parse_bool(request.form.get("participated")),
        "pioneer_status": (request.form.get("pioneer_status") or "").strip() or None,
        "comments": request.form.get("comments"),
    }


def _default_range() -> tuple[str, str]:
    # Current service year up to last month.
    end = previous_month_key()
    start = service_year_months(service_year(end))[0]
    return start, end


@bp.get("/reports")
@require_permission("reports.view")
def reports_list():
    s = db_session()
    month = _month_arg("month", previous_month_key())
    group_id = parse_int(request.args.get("group_id"))
    rows = reports_by_month(s, month, group_id=group_id)
    groups = s.query(Group).order_by(Group.name.asc()).all()
    return render_template(
        "admin/field_service/list.html",
        rows=rows,
        month=month,
        month_name=month_label(month),
        group_id=group_id,
        groups=groups,
        reported_count=sum(1 for r in rows if r.reported),
        pioneer_statuses=PIONEER_STATUSES,
    )


@bp.post("/reports/new")
@require_permission("reports.edit")
def reports_new_post():
    s = db_session()
    u = _current_user()
    payload = _report_payload_from_form()
    back = url_for("field_service.reports_list", month=payload["month"] or None)

    errors = validate_report_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(back)

    member = s.get(Member, payload["member_id"])
    if not member:
        flash("Member not found.", "danger")
        return redirect(back)

    try:
        submit_report(s, member, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(back)
    s.commit()
    flash(f"Report saved for {member.full_name}.", "success")
    return redirect(back)


@bp.get("/reports/<int:report_id>/edit")
@require_permission("reports.edit")
def reports_edit_get(report_id: int):
    s = db_session()
    report = s.get(FieldServiceReport, report_id)
    if not report:
        abort(404)
    return render_template("admin/field_service/edit.html", report=report, pioneer_statuses=PIONEER_STATUSES)


@bp.post("/reports/<int:report_id>/edit")
@require_permission("reports.edit")
def reports_edit_post(report_id: int):
    s = db_session()
    u = _current_user()
    report = s.get(FieldServiceReport, report_id)
    if not report:
        abort(404)

    payload = _report_payload_from_form()
    payload["member_id"] = report.member_id
    payload["month"] = report.month
    errors = validate_report_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("field_service.reports_edit_get", report_id=report_id))

    update_report(s, report, payload, u, reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Report updated.", "success")
    return redirect(url_for("field_service.reports_list", month=report.month))


@bp.post("/reports/<int:report_id>/delete")
@require_permission("reports.edit")
def reports_delete(report_id: int):
    s = db_session()
    u = _current_user()
    report = s.get(FieldServiceReport, report_id)
    if not report:
        abort(404)
    month = report.month
    delete_report(s, report, u, reason=(request.form.get("reason") or "").strip() or None)
    s.commit()
    flash("Report deleted.", "success")
    return redirect(url_for("field_service.reports_list", month=month))


@bp.get("/reports/export")
@require_permission("reports.export")
def reports_export():
    s = db_session()
    u = _current_user()
    month = _month_arg("month", previous_month_key())
    rows = reports_by_month(s, month, group_id=parse_int(request.args.get("group_id")))

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Month", "Member", "Group", "Reported", "Participated", "Hours", "Bible Studies", "Pioneer Status", "Comments"])
    for row in rows:
        r = row.report
        w.writerow(
            [
                month,
                row.member.full_name,
                row.member.group.name if row.member.group else "",
                "yes" if r else "no",
                "yes" if r and r.participated else "",
                r.hours if r else "",
                r.bible_studies if r else "",
                r.pioneer_status if r else "",
                (r.comments or "") if r else "",
            ]
        )

    record_event(
        s,
        actor=u,
        action="field_service_report.export",
        entity_type="FieldServiceReport",
        entity_id="export",
        metadata={"month": month, "row_count": len(rows)},
    )
    s.commit()

    data = out.getvalue().encode("utf-8")
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"field_service_{month}.csv",
        max_age=0,
    )


# ============================================================================
# PUBLISHER RECORD CARD
# ============================================================================


@bp.get("/members/<int:member_id>/record")
@require_permission("reports.view")
def publisher_record_view(member_id: int):
    s = db_session()
    member = s.get(Member, member_id)
    if not member:
        abort(404)

    years = member_service_years(s, member)
    sy = parse_int(request.args.get("service_year"))
    if sy is None:
        sy = years[0].service_year if years else service_year(previous_month_key())
    record = publisher_record(s, member, sy)
    template = "admin/field_service/record_print.html" if request.args.get("print") else "admin/field_service/record.html"
    return render_template(
        template,
        member=member,
        record=record,
        years=years,
        service_year=sy,
        service_year_label=service_year_label(sy),
    )


@bp.get("/members/<int:member_id>/record.csv")
@require_permission("reports.export")
def publisher_record_export(member_id: int):
    s = db_session()
    u = _current_user()
    member = s.get(Member, member_id)
    if not member:
        abort(404)
    sy = parse_int(request.args.get("service_year")) or service_year(previous_month_key())
    record = publisher_record(s, member, sy)

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Service Year", service_year_label(sy), "Publisher", member.full_name])
    w.writerow(["Month", "Participated", "Bible Studies", "Auxiliary Pioneer", "Hours", "Remarks"])
    for b in record.months:
        w.writerow(
            [
                b.label,
                "yes" if b.participated else "",
                b.bible_studies if b.reported else "",
                "yes" if b.auxiliary else "",
                b.hours if b.reported else "",
                b.comments or "",
            ]
        )
    w.writerow(["Total", record.months_reported, record.total_bible_studies, record.auxiliary_months, record.total_hours, ""])

    record_event(
        s,
        actor=u,
        action="publisher_record.export",
        entity_type="Member",
        entity_id=str(member.id),
        metadata={"service_year": sy},
    )
    s.commit()

    return send_file(
        io.BytesIO(out.getvalue().encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"publisher_record_{member.id}_{sy}.csv",
        max_age=0,
    )


# ============================================================================
# SUMMARIES
# ============================================================================


@bp.get("/reports/pioneers")
@require_permission("reports.view")
def pioneer_summary_view():
    s = db_session()
    default_start, default_end = _default_range()
    start = _month_arg("start", default_start)
    end = _month_arg("end", default_end)
    try:
        summary = pioneer_summary(s, start, end)
    except ValueError as e:
        flash(str(e), "danger")
        start, end = default_start, default_end
        summary = pioneer_summary(s, start, end)
    return render_template(
        "admin/field_service/pioneers.html",
        summary=summary,
        start=start,
        end=end,
        printable=bool(request.args.get("print")),
    )


@bp.get("/reports/summary")
@require_permission("reports.view")
def activity_summary_view():
    s = db_session()
    default_start, default_end = _default_range()
    start = _month_arg("start", default_start)
    end = _month_arg("end", default_end)
    scope = (request.args.get("scope") or "all").strip()
    value = (request.args.get("value") or "").strip() or None
    if scope not in MEMBER_SCOPES:
        flash("Unknown scope; showing all members.", "danger")
        scope, value = "all", None

    try:
        summary = activity_summary(s, start, end, scope, value)
    except ValueError as e:
        flash(str(e), "danger")
        start, end, scope, value = default_start, default_end, "all", None
        summary = activity_summary(s, start, end)

    return render_template(
        "admin/field_service/summary.html",
        summary=summary,
        start=start,
        end=end,
        scope=scope,
        value=value,
        scopes=MEMBER_SCOPES,
        groups=s.query(Group).order_by(Group.name.asc()).all(),
        privileges=s.query(Privilege).order_by(Privilege.name.asc()).all(),
        today=date.today(),
    )
