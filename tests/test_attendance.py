"""Tests for meeting attendance counts and the service-year attendance record."""
from datetime import date
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import AuditEvent, Base, Role, User
from app.congregation.modules.attendance.models import MeetingAttendance
from app.congregation.modules.attendance.service import build_attendance_record, meeting_type_for, week_of_month
from scripts.init_db import seed_permissions


@pytest.mark.parametrize(
    "d,expected",
    [
        (date(2025, 3, 4), "midweek"),  # Tuesday
        (date(2025, 3, 7), "midweek"),  # Friday
        (date(2025, 3, 8), "weekend"),  # Saturday
        (date(2025, 3, 9), "weekend"),  # Sunday
        (date(2025, 3, 10), "midweek"),  # Monday
    ],
)
def test_meeting_type_for(d, expected):
    assert meeting_type_for(d) == expected


def test_week_of_month():
    assert week_of_month(date(2025, 3, 1)) == 1
    assert week_of_month(date(2025, 3, 7)) == 1
    assert week_of_month(date(2025, 3, 8)) == 2
    assert week_of_month(date(2025, 3, 31)) == 5


def _rec(month, meeting_type, attendance):
    return SimpleNamespace(month=month, meeting_type=meeting_type, attendance=attendance)


def test_attendance_record_averages():
    records = [
        _rec("2025-03", "midweek", 80),
        _rec("2025-03", "midweek", 85),
        _rec("2025-03", "weekend", 100),
        _rec("2025-03", "weekend", 103),
        _rec("2025-04", "weekend", 90),
        _rec("2025-06", "weekend", 500),
    ]
    record = build_attendance_record(records, ["2025-03", "2025-04"])
    march, april = record.months
    assert march.midweek.meetings == 2
    assert march.midweek.average == 83
    assert march.weekend.average == 102
    assert april.midweek.meetings == 0
    assert april.midweek.average == 0
    # Months without a midweek meeting are left out of the midweek average.
    assert record.midweek_average == 83
    assert record.weekend_average == 96


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        seed_permissions(s)
        s.flush()
        r = s.query(Role).filter(Role.key == "admin").one()
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        s.add(u)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-token"


def _post(client, url, data):
    return client.post(url, data={**data, "csrf_token": "test-token"}, follow_redirects=True)


def test_attendance_requires_auth(client):
    r = client.get("/admin/attendance")
    assert r.status_code in (302, 403)


def test_record_attendance_derives_meeting_and_week(app, client):
    _login(client)
    r = _post(client, "/admin/attendance/new", {"meeting_date": "2025-03-08", "attendance": "95"})
    assert b"Attendance of 95 recorded for the weekend meeting." in r.data
    assert b"March 2025" in r.data

    r = _post(client, "/admin/attendance/new", {"meeting_date": "2025-03-08", "attendance": "90"})
    assert b"Attendance for 2025-03-08 is already recorded." in r.data

    with session_scope(app) as s:
        rec = s.query(MeetingAttendance).one()
        assert rec.meeting_type == "weekend"
        assert rec.week == 2
        assert rec.month == "2025-03"
        assert rec.attendance == 95
        assert s.query(AuditEvent).filter(AuditEvent.action == "attendance.create").count() == 1


def test_record_attendance_rejects_bad_count(app, client):
    _login(client)
    r = _post(client, "/admin/attendance/new", {"meeting_date": "2025-03-04", "attendance": "ninety"})
    assert b"Attendance must be a whole number of zero or more." in r.data
    r = _post(client, "/admin/attendance/new", {"meeting_date": "", "attendance": "80"})
    assert b"Meeting date is required (YYYY-MM-DD)." in r.data
    with session_scope(app) as s:
        assert s.query(MeetingAttendance).count() == 0


def test_edit_and_delete_attendance(app, client):
    _login(client)
    _post(client, "/admin/attendance/new", {"meeting_date": "2025-03-05", "attendance": "70"})
    with session_scope(app) as s:
        record_id = s.query(MeetingAttendance).one().id

    r = _post(client, f"/admin/attendance/{record_id}/edit", {"attendance": "7.5"})
    assert b"Attendance must be a whole number of zero or more." in r.data

    r = _post(client, f"/admin/attendance/{record_id}/edit", {"attendance": "74", "notes": "Late count"})
    assert b"Attendance updated." in r.data
    with session_scope(app) as s:
        rec = s.get(MeetingAttendance, record_id)
        assert rec.attendance == 74
        assert rec.notes == "Late count"
        assert s.query(AuditEvent).filter(AuditEvent.action == "attendance.edit").count() == 1

    r = _post(client, f"/admin/attendance/{record_id}/delete", {})
    assert b"Attendance entry deleted." in r.data
    with session_scope(app) as s:
        assert s.query(MeetingAttendance).count() == 0


def test_service_year_record_and_csv(app, client):
    _login(client)
    _post(client, "/admin/attendance/new", {"meeting_date": "2024-09-04", "attendance": "60"})
    _post(client, "/admin/attendance/new", {"meeting_date": "2024-09-11", "attendance": "65"})
    _post(client, "/admin/attendance/new", {"meeting_date": "2024-09-08", "attendance": "90"})
    _post(client, "/admin/attendance/new", {"meeting_date": "2025-01-12", "attendance": "100"})

    r = client.get("/admin/attendance/record?service_year=2024")
    assert r.status_code == 200
    assert b"2024-2025" in r.data

    r = client.get("/admin/attendance/record.csv?service_year=2024")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    lines = r.data.decode("utf-8").splitlines()
    assert lines[0] == "Service Year,2024-2025"
    assert lines[2] == "September 2024,2,125,63,1,90,90"
    assert lines[6] == "January 2025,0,0,0,1,100,100"
    assert lines[-1] == "Average,,,63,,,95"
