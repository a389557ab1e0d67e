"""Tests for monthly field service reports, publisher records and summaries."""
import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import Base, Role, User
from app.congregation.modules.field_service.models import FieldServiceReport
from app.congregation.modules.field_service.service import (
    activity_summary,
    pioneer_summary,
    publisher_record,
    select_members,
    validate_report_payload,
)
from app.congregation.modules.members.models import Group, Member
from scripts.init_db import seed_permissions


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
        g = Group(name="North")
        s.add_all([u, g])
        s.flush()
        s.add_all(
            [
                Member(full_name="Anna Pioneer", gender="female", pioneer_status="regular", group_id=g.id),
                Member(full_name="Ben Publisher", gender="male", group_id=g.id),
                Member(full_name="Cara Quiet", gender="female"),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _member_id(app, name: str) -> int:
    with session_scope(app) as s:
        return s.query(Member).filter(Member.full_name == name).one().id


def _login(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-token"


def _post(client, url, data):
    return client.post(url, data={**data, "csrf_token": "test-token"}, follow_redirects=True)


def _submit(client, member_id: int, month: str, hours: str = "0", studies: str = "0", **extra):
    return _post(
        client,
        "/admin/reports/new",
        {"member_id": str(member_id), "month": month, "hours": hours, "bible_studies": studies, **extra},
    )


def test_validate_report_payload():
    errors = validate_report_payload({"member_id": None, "month": "2025-13", "hours": -1})
    assert "Member is required." in errors
    assert "Month must be in YYYY-MM format." in errors
    assert "Hours must be a whole number of zero or more." in errors
    assert validate_report_payload({"member_id": 1, "month": "2025-01", "hours": 0, "bible_studies": 0}) == []


def test_reports_require_auth(client):
    r = client.get("/admin/reports")
    assert r.status_code in (302, 403)


def test_submit_report_and_duplicate(app, client):
    _login(client)
    anna = _member_id(app, "Anna Pioneer")

    r = _submit(client, anna, "2024-10", hours="52", studies="3")
    assert b"Report saved for Anna Pioneer." in r.data

    r = _submit(client, anna, "2024-10", hours="10")
    assert b"A report for October 2024 already exists for Anna Pioneer." in r.data

    with session_scope(app) as s:
        report = s.query(FieldServiceReport).one()
        assert report.hours == 52
        # Status held at submission time is stamped on the report.
        assert report.pioneer_status == "regular"
        assert report.participated is True


def test_submit_report_rejects_non_integer_counts(app, client):
    _login(client)
    ben = _member_id(app, "Ben Publisher")

    r = _submit(client, ben, "2024-10", hours="7.5", studies="two")
    assert b"Hours must be a whole number of zero or more." in r.data
    assert b"Bible studies must be a whole number of zero or more." in r.data
    assert b"Report saved" not in r.data
    with session_scope(app) as s:
        assert s.query(FieldServiceReport).count() == 0

    _submit(client, ben, "2024-10", hours="4")
    with session_scope(app) as s:
        report_id = s.query(FieldServiceReport).one().id
    r = _post(client, f"/admin/reports/{report_id}/edit", {"hours": "abc", "bible_studies": "1", "reason": "Typo"})
    assert b"Hours must be a whole number of zero or more." in r.data
    with session_scope(app) as s:
        assert s.get(FieldServiceReport, report_id).hours == 4


def test_month_list_shows_missing_reports(app, client):
    _login(client)
    _submit(client, _member_id(app, "Ben Publisher"), "2024-11", participated="on")

    r = client.get("/admin/reports?month=2024-11")
    assert r.status_code == 200
    assert b"Ben Publisher" in r.data
    assert b"Cara Quiet" in r.data


def test_edit_report_records_reason(app, client):
    _login(client)
    ben = _member_id(app, "Ben Publisher")
    _submit(client, ben, "2024-12", hours="4")
    with session_scope(app) as s:
        report_id = s.query(FieldServiceReport).one().id

    r = _post(client, f"/admin/reports/{report_id}/edit", {"hours": "6", "bible_studies": "1", "reason": "Late slip"})
    assert b"Report updated." in r.data
    with session_scope(app) as s:
        report = s.get(FieldServiceReport, report_id)
        assert report.hours == 6
        assert report.bible_studies == 1


def test_export_month_csv(app, client):
    _login(client)
    _submit(client, _member_id(app, "Ben Publisher"), "2025-01", hours="3", participated="on")

    r = client.get("/admin/reports/export?month=2025-01")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    lines = r.data.decode("utf-8").splitlines()
    assert lines[0].startswith("Month,Member,Group,Reported")
    assert "2025-01,Ben Publisher,North,yes,yes,3,0,none," in lines
    assert any(line.startswith("2025-01,Cara Quiet,,no,") for line in lines)


def test_publisher_record_view_and_csv(app, client):
    _login(client)
    anna = _member_id(app, "Anna Pioneer")
    _submit(client, anna, "2024-09", hours="50", studies="2")
    _submit(client, anna, "2025-01", hours="55", studies="3")

    r = client.get(f"/admin/members/{anna}/record?service_year=2024")
    assert r.status_code == 200
    assert b"2024-2025" in r.data

    r = client.get(f"/admin/members/{anna}/record.csv?service_year=2024")
    lines = r.data.decode("utf-8").splitlines()
    assert lines[0] == "Service Year,2024-2025,Publisher,Anna Pioneer"
    assert lines[2].startswith("September 2024,yes,2,,50,")
    assert lines[-1] == "Total,2,5,0,105,"


def test_stamped_pioneer_status_survives_member_status_change(app, client):
    _login(client)
    anna = _member_id(app, "Anna Pioneer")
    _submit(client, anna, "2024-09", hours="50")

    with session_scope(app) as s:
        s.get(Member, anna).pioneer_status = "none"

    with session_scope(app) as s:
        member = s.get(Member, anna)
        assert member.pioneer_status == "none"
        record = publisher_record(s, member, 2024)
        assert record.pioneer_months == 1
        assert record.total_hours == 50
        ps = pioneer_summary(s, "2024-09", "2024-09")
        assert ps.regular_totals["average_count"] == 1.0
        assert ps.regular_totals["total_hours"] == 50


def test_pioneer_and_activity_summaries(app, client):
    _login(client)
    anna = _member_id(app, "Anna Pioneer")
    ben = _member_id(app, "Ben Publisher")
    _submit(client, anna, "2024-09", hours="50")
    _submit(client, anna, "2024-10", hours="48")
    _submit(client, ben, "2024-09", hours="12", participated="on", pioneer_status="auxiliary")

    with session_scope(app) as s:
        ps = pioneer_summary(s, "2024-09", "2024-10")
        assert ps.regular_totals == {"average_count": 1.0, "total_hours": 98, "total_bible_studies": 0}
        assert ps.auxiliary_totals["total_hours"] == 12

        summary = activity_summary(s, "2024-09", "2024-10")
        by_name = {m.member.full_name: m for m in summary.members}
        assert by_name["Anna Pioneer"].status == "excellent"
        assert by_name["Ben Publisher"].reporting_rate == 50
        assert by_name["Cara Quiet"].status == "inactive"
        assert [m.member.full_name for m in summary.needs_shepherding] == ["Cara Quiet"]

        group_id = s.query(Group).one().id
        assert [m.full_name for m in select_members(s, "group", group_id)] == ["Anna Pioneer", "Ben Publisher"]
        with pytest.raises(ValueError):
            select_members(s, "everyone")

    r = client.get("/admin/reports/pioneers?start=2024-09&end=2024-10")
    assert r.status_code == 200
    r = client.get("/admin/reports/summary?start=2024-09&end=2024-10&scope=all")
    assert r.status_code == 200
    assert b"Cara Quiet" in r.data
