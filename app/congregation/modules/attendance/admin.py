from __future__ import annotations

import csv
import io

from flask import Blueprint, abort, flash, g, redirect, render_template, request, send_file, url_for

from app.congregation.audit import record_event
from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.attendance.models import MeetingAttendance
from app.congregation.modules.attendance.service import (
    attendance_in_months,
    attendance_record,
    delete_attendance,
    record_attendance,
    service_year_attendance,
    update_attendance,
    validate_attendance_payload,
)
from app.congregation.modules.field_service.service_year import (
    current_month_key,
    is_month_key,
    previous_month_key,
    service_year,
    service_year_label,
    shift_month,
)
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_count, parse_date, parse_int

bp = Blueprint("attendance", __name__)


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


def _service_year_arg() -> int:
    return parse_int(request.args.get("service_year")) or service_year(previous_month_key())


@bp.get("/attendance")
@require_permission("attendance.view")
def attendance_list():
    s = db_session()
    month = _month_arg(current_month_key())
    return render_template(
        "admin/attendance/list.html",
        month=month,
        prev_month=shift_month(month, -1),
        next_month=shift_month(month, 1),
        records=attendance_in_months(s, [month]),
        summary=attendance_record(s, month, month).months[0],
    )


@bp.post("/attendance/new")
@require_permission("attendance.edit")
def attendance_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "meeting_date": parse_date(request.form.get("meeting_date")),
        "attendance": parse_count(request.form.get("attendance")),
        "notes": request.form.get("notes"),
    }
    errors = validate_attendance_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("attendance.attendance_list"))
    try:
        rec = record_attendance(s, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("attendance.attendance_list", month=payload["meeting_date"].strftime("%Y-%m")))
    s.commit()
    flash(f"Attendance of {rec.attendance} recorded for the {rec.meeting_type} meeting.", "success")
    return redirect(url_for("attendance.attendance_list", month=rec.month))


@bp.post("/attendance/<int:record_id>/edit")
@require_permission("attendance.edit")
def attendance_edit_post(record_id: int):
    s = db_session()
    u = _current_user()
    rec = s.get(MeetingAttendance, record_id)
    if not rec:
        abort(404)
    payload = {"meeting_date": rec.meeting_date, "attendance": parse_count(request.form.get("attendance"))}
    errors = validate_attendance_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("attendance.attendance_list", month=rec.month))
    update_attendance(s, rec, payload["attendance"], u, notes=request.form.get("notes"))
    s.commit()
    flash("Attendance updated.", "success")
    return redirect(url_for("attendance.attendance_list", month=rec.month))


@bp.post("/attendance/<int:record_id>/delete")
@require_permission("attendance.edit")
def attendance_delete(record_id: int):
    s = db_session()
    u = _current_user()
    rec = s.get(MeetingAttendance, record_id)
    if not rec:
        abort(404)
    month = rec.month
    delete_attendance(s, rec, u)
    s.commit()
    flash("Attendance entry deleted.", "success")
    return redirect(url_for("attendance.attendance_list", month=month))


@bp.get("/attendance/record")
@require_permission("attendance.view")
def attendance_year():
    s = db_session()
    sy = _service_year_arg()
    return render_template(
        "admin/attendance/record.html",
        record=service_year_attendance(s, sy),
        service_year=sy,
        service_year_label=service_year_label(sy),
    )


@bp.get("/attendance/record.csv")
@require_permission("attendance.view")
def attendance_year_export():
    s = db_session()
    u = _current_user()
    sy = _service_year_arg()
    record = service_year_attendance(s, sy)

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Service Year", service_year_label(sy)])
    w.writerow(["Month", "Midweek Meetings", "Midweek Total", "Midweek Average", "Weekend Meetings", "Weekend Total", "Weekend Average"])
    for m in record.months:
        w.writerow(
            [
                m.label,
                m.midweek.meetings,
                m.midweek.total,
                m.midweek.average,
                m.weekend.meetings,
                m.weekend.total,
                m.weekend.average,
            ]
        )
    w.writerow(["Average", "", "", record.midweek_average, "", "", record.weekend_average])

    record_event(
        s,
        actor=u,
        action="attendance.export",
        entity_type="MeetingAttendance",
        entity_id="export",
        metadata={"service_year": sy},
    )
    s.commit()

    data = out.getvalue().encode("utf-8")
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"meeting_attendance_{sy}.csv",
        max_age=0,
    )
