"""Tests for meeting assignments and the workbook import."""
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import Base, Role, User
from app.congregation.modules.assignments import admin as assignments_admin
from app.congregation.modules.assignments.models import Assignment
from app.congregation.modules.assignments.service import eligible_members, validate_assignment_payload, week_start
from app.congregation.modules.assignments.workbook import (
    BIBLE_READING,
    BIBLE_STUDY,
    WATCHTOWER_STUDY,
    WorkbookItem,
    WorkbookWeek,
)
from app.congregation.modules.members.models import Member, MemberDuty
from scripts.init_db import seed_permissions

WEEK = date(2025, 3, 3)


def test_week_start_is_monday():
    assert week_start(date(2025, 3, 6)) == WEEK
    assert week_start(date(2025, 3, 9)) == WEEK
    assert week_start(WEEK) == WEEK


def test_validate_assignment_payload():
    errors = validate_assignment_payload(
        {"week": None, "meeting_type": "Sunday", "assignment_type": "Usher", "title": "", "duration": 0, "assignee_id": 3, "assistant_id": 3}
    )
    assert errors == [
        "Week is required (YYYY-MM-DD).",
        "Meeting type must be Midweek or Weekend.",
        "Unknown assignment type.",
        "Title is required.",
        "Duration must be a positive number of minutes.",
        "Assistant must be a different member than the assignee.",
    ]
    assert "Duration must be a positive number of minutes." in validate_assignment_payload(
        {"week": None, "meeting_type": "Midweek", "assignment_type": "Life and Ministry", "title": "Reading", "duration": "4.5"}
    )


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
        reader = Member(full_name="Adam Reader", gender="male")
        reader.duties.append(MemberDuty(name="Watchtower Reader", is_active=True))
        s.add_all([u, reader, Member(full_name="Eve Student", gender="female")])
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


def test_assignments_require_auth(client):
    r = client.get("/admin/assignments")
    assert r.status_code in (302, 403)


def test_create_assignment_normalizes_week(app, client):
    _login(client)
    with session_scope(app) as s:
        reader_id = s.query(Member).filter(Member.full_name == "Adam Reader").one().id

    r = _post(
        client,
        "/admin/assignments/new",
        {
            "week": "2025-03-08",
            "meeting_type": "Weekend",
            "assignment_type": "Watchtower Reader",
            "title": "Watchtower Study",
            "assignee_id": str(reader_id),
        },
    )
    assert b"Watchtower Study" in r.data
    with session_scope(app) as s:
        a = s.query(Assignment).one()
        assert a.week == WEEK
        assert a.assignee_id == reader_id

    r = client.get("/admin/assignments?week=2025-03-05")
    assert r.status_code == 200
    assert b"Adam Reader" in r.data

    r = client.get("/admin/assignments/print?week=2025-03-05")
    assert r.status_code == 200
    assert b"Watchtower Study" in r.data


def test_eligible_members_by_duty(app, client):
    with session_scope(app) as s:
        assert [m.full_name for m in eligible_members(s, "Watchtower Reader")] == ["Adam Reader"]
        assert [m.full_name for m in eligible_members(s, "Unmapped")] == ["Adam Reader", "Eve Student"]

    _login(client)
    r = client.get("/admin/assignments/eligible?type=Watchtower+Reader")
    assert [m["name"] for m in r.json["members"]] == ["Adam Reader"]


class _FakeClient:
    def __init__(self, week: WorkbookWeek):
        self.week = week
        self.calls = []

    def fetch_week(self, week_of):
        self.calls.append(week_of)
        return self.week


def test_import_workbook_week_skips_existing(app, client, monkeypatch):
    program = WorkbookWeek(
        week_of=WEEK,
        midweek=[
            WorkbookItem(title="Bible Reading", section=BIBLE_READING, duration=4, source="Genesis 1:1-19"),
            WorkbookItem(title="Congregation Bible Study", section=BIBLE_STUDY, duration=30, source="lfb lesson 5"),
        ],
        weekend=[WorkbookItem(title="Watchtower Study", section=WATCHTOWER_STUDY, source="Study Article 12")],
    )
    fake = _FakeClient(program)
    monkeypatch.setattr(assignments_admin, "client_from_config", lambda config: fake)
    _login(client)

    r = _post(client, "/admin/assignments/import", {"week": "2025-03-05"})
    assert b"Imported 3 assignment(s) from the meeting workbook." in r.data
    assert fake.calls == [WEEK]

    r = _post(client, "/admin/assignments/import", {"week": "2025-03-05"})
    assert b"Imported 0 assignment(s) from the meeting workbook." in r.data

    with session_scope(app) as s:
        rows = s.query(Assignment).order_by(Assignment.id.asc()).all()
        assert [(a.meeting_type, a.assignment_type, a.title) for a in rows] == [
            ("Midweek", "Life and Ministry", "Bible Reading"),
            ("Midweek", "Bible Student Reader", "Congregation Bible Study"),
            ("Weekend", "Watchtower Reader", "Watchtower Study"),
        ]
        assert rows[0].source == "Genesis 1:1-19"


def test_import_empty_workbook_warns(app, client, monkeypatch):
    monkeypatch.setattr(assignments_admin, "client_from_config", lambda config: _FakeClient(WorkbookWeek(week_of=WEEK)))
    _login(client)
    r = _post(client, "/admin/assignments/import", {"week": "2025-03-03"})
    assert b"No workbook content could be loaded for this week." in r.data
    with session_scope(app) as s:
        assert s.query(Assignment).count() == 0
