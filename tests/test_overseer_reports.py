"""Tests for group overseer visit reports and the visit schedule grid."""
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import Base, Role, User
from app.congregation.modules.members.models import Group, Member
from app.congregation.modules.overseer_reports.models import GroupSchedule, OverseerReport
from app.congregation.modules.overseer_reports.service import analytics, schedule_visit, validate_overseer_payload
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
        s.add_all([u, g, Group(name="South")])
        s.flush()
        s.add_all(
            [
                Member(full_name="Anna North", gender="female", group_id=g.id),
                Member(full_name="Ben North", gender="male", group_id=g.id),
                Member(full_name="Old North", gender="male", group_id=g.id, is_active=False),
            ]
        )
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


def _ids(app) -> tuple[int, int, int]:
    with session_scope(app) as s:
        north = s.query(Group).filter(Group.name == "North").one().id
        anna = s.query(Member).filter(Member.full_name == "Anna North").one().id
        ben = s.query(Member).filter(Member.full_name == "Ben North").one().id
        return north, anna, ben


def _submit_visit(client, group_id: int, anna: int, ben: int, month: str = "2024-10"):
    return _post(
        client,
        "/admin/overseer/new",
        {
            "group_id": str(group_id),
            "month": month,
            "visit_date": "2024-10-20",
            "member_ids": [str(anna), str(ben)],
            f"present_{anna}": "on",
            f"has_study_{ben}": "on",
            f"ministry_{ben}": "on",
            "general_observations": "Good spirit in the group.",
            "follow_up_needed": "on",
        },
    )


def test_validate_overseer_payload():
    assert validate_overseer_payload({"group_id": None, "month": "Oct", "visit_date": None}) == [
        "Group is required.",
        "Month must be in YYYY-MM format.",
        "Visit date is required.",
    ]
    assert validate_overseer_payload({"group_id": 1, "month": "2024-10", "visit_date": date(2024, 10, 1)}) == []


def test_overseer_requires_auth(client):
    r = client.get("/admin/overseer")
    assert r.status_code in (302, 403)


def test_submit_report_completes_schedule(app, client):
    _login(client)
    north, anna, ben = _ids(app)
    _post(client, "/admin/reports/new", {"member_id": str(ben), "month": "2024-10", "hours": "5", "bible_studies": "1"})

    r = _post(client, "/admin/overseer/schedule", {"group_id": str(north), "month": "2024-10", "scheduled_date": "2024-10-15"})
    assert b"Visit scheduled." in r.data
    assert b"scheduled" in r.data

    r = _submit_visit(client, north, anna, ben)
    assert b"Report for North submitted." in r.data
    assert b"Good spirit in the group." in r.data

    with session_scope(app) as s:
        report = s.query(OverseerReport).one()
        # Inactive members are left off the roster.
        assert [m.name for m in report.members] == ["Anna North", "Ben North"]
        assert report.present_count == 1
        assert report.study_count == 1
        ben_row = report.members[1]
        assert ben_row.field_service_hours == 5
        assert ben_row.submitted_report is True
        assert report.members[0].submitted_report is False
        assert report.follow_up_needed is True
        assert report.overseer_name == "admin@example.com"

        sched = s.query(GroupSchedule).one()
        assert sched.status == "completed"
        assert sched.completed_date == date(2024, 10, 20)
        assert sched.scheduled_date == date(2024, 10, 15)

    r = client.get("/admin/overseer?month=2024-10")
    assert r.status_code == 200
    assert b"1/2 present" in r.data


def test_duplicate_report_rejected(app, client):
    _login(client)
    north, anna, ben = _ids(app)
    _submit_visit(client, north, anna, ben)

    r = _submit_visit(client, north, anna, ben)
    assert b"A report for North in 2024-10 already exists." in r.data
    with session_scope(app) as s:
        assert s.query(OverseerReport).count() == 1

    r = client.get(f"/admin/overseer/new?group_id={north}&month=2024-10", follow_redirects=True)
    assert b"A report for North in 2024-10 already exists." in r.data


def test_missing_fields_flash_errors(app, client):
    _login(client)
    r = _post(client, "/admin/overseer/new", {"month": "2024-10", "visit_date": ""})
    assert b"Group is required." in r.data
    assert b"Visit date is required." in r.data
    with session_scope(app) as s:
        assert s.query(OverseerReport).count() == 0


def test_edit_report_updates_marks(app, client):
    _login(client)
    north, anna, ben = _ids(app)
    _submit_visit(client, north, anna, ben)
    with session_scope(app) as s:
        report_id = s.query(OverseerReport).one().id

    r = client.get(f"/admin/overseer/{report_id}/edit")
    assert r.status_code == 200

    r = _post(
        client,
        f"/admin/overseer/{report_id}/edit",
        {"visit_date": "2024-10-21", "member_ids": [str(anna), str(ben)], f"present_{anna}": "on", f"present_{ben}": "on"},
    )
    assert b"Report updated." in r.data
    with session_scope(app) as s:
        report = s.get(OverseerReport, report_id)
        assert report.present_count == 2
        assert report.visit_date == date(2024, 10, 21)
        assert report.follow_up_needed is False
        assert len(report.members) == 2


def test_delete_reverts_schedule(app, client):
    _login(client)
    north, anna, ben = _ids(app)
    _post(client, "/admin/overseer/schedule", {"group_id": str(north), "month": "2024-10", "scheduled_date": "2024-10-15"})
    _submit_visit(client, north, anna, ben)
    with session_scope(app) as s:
        report_id = s.query(OverseerReport).one().id

    r = _post(client, f"/admin/overseer/{report_id}/delete", {})
    assert b"Report deleted." in r.data
    with session_scope(app) as s:
        assert s.query(OverseerReport).count() == 0
        sched = s.query(GroupSchedule).one()
        assert sched.status == "scheduled"
        assert sched.completed_date is None


def test_schedule_rejected_once_completed(app, client):
    _login(client)
    north, anna, ben = _ids(app)
    _submit_visit(client, north, anna, ben)

    r = _post(client, "/admin/overseer/schedule", {"group_id": str(north), "month": "2024-10", "scheduled_date": "2024-10-30"})
    assert b"This visit is already completed." in r.data

    with session_scope(app) as s:
        u = s.query(User).one()
        with pytest.raises(ValueError, match="YYYY-MM"):
            schedule_visit(s, north, "October", None, u)
        south = s.query(Group).filter(Group.name == "South").one()
        sched = schedule_visit(s, south.id, "2024-10", None, u)
        assert sched.status == "pending"


def test_analytics(app, client):
    _login(client)
    north, anna, ben = _ids(app)
    _submit_visit(client, north, anna, ben)

    with session_scope(app) as s:
        rows = analytics(s, "2024-09", "2024-11")
        assert len(rows) == 1
        row = rows[0]
        assert row.group_name == "North"
        assert row.member_count == 2
        assert row.attendance_percent == 50
        assert row.in_ministry == 1
        assert row.follow_up_needed is True
        assert analytics(s, "2024-11", "2024-12") == []

    r = client.get("/admin/overseer/analytics?start=2024-09&end=2024-11")
    assert r.status_code == 200
    assert b"North" in r.data

    r = client.get("/admin/overseer/analytics?start=2024-12&end=2024-01")
    assert b"Choose a valid month range." in r.data
