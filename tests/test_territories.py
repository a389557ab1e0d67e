"""Tests for territory check-out/return, division and group distribution."""
import json
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import Base, Role, User
from app.congregation.modules.members.models import Group, Member
from app.congregation.modules.territories.models import Territory, TerritoryAssignment
from scripts.init_db import seed_permissions

SQUARE = [[-80.2, 25.7], [-80.1, 25.7], [-80.1, 25.8], [-80.2, 25.8]]


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
        s.add_all([u, Member(full_name="Tom Walker", gender="male")])
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


def _create(client, number: str, **extra):
    data = {"number": number, "name": f"Street {number}", "difficulty": "medium", "territory_type": "residential", **extra}
    return _post(client, "/admin/territories/new", data)


def _ids(app) -> tuple[int, int]:
    with session_scope(app) as s:
        t = s.query(Territory).order_by(Territory.id.asc()).first()
        m = s.query(Member).one()
        return t.id, m.id


def test_territories_require_auth(client):
    r = client.get("/admin/territories")
    assert r.status_code in (302, 403)


def test_create_territory_with_boundary(app, client):
    _login(client)
    r = _create(client, "12", boundary=json.dumps(SQUARE), household_count="60", estimated_hours="4")
    assert b"Territory 12 created." in r.data

    with session_scope(app) as s:
        t = s.query(Territory).one()
        assert t.boundary == SQUARE
        assert t.center_lat == pytest.approx(25.75)
        assert t.center_lng == pytest.approx(-80.15)

    r = _create(client, "12")
    assert b"Territory number 12 already exists." in r.data


def test_create_territory_rejects_bad_boundary(app, client):
    _login(client)
    r = _create(client, "3", boundary="[[1, 2]]")
    assert b"A boundary needs at least three points." in r.data
    with session_scope(app) as s:
        assert s.query(Territory).count() == 0


def test_create_territory_rejects_non_integer_counts(app, client):
    _login(client)
    r = _create(client, "4", estimated_hours="1.5", household_count="about 40")
    assert b"Estimated hours must be a whole number." in r.data
    assert b"Household count must be a whole number." in r.data
    with session_scope(app) as s:
        assert s.query(Territory).count() == 0


def test_assign_and_return(app, client):
    _login(client)
    _create(client, "5")
    territory_id, member_id = _ids(app)

    r = _post(client, f"/admin/territories/{territory_id}/assign", {"publisher_id": str(member_id), "assigned_date": "2025-01-10"})
    assert b"Territory 5 checked out to Tom Walker." in r.data
    r = _post(client, f"/admin/territories/{territory_id}/assign", {"publisher_id": str(member_id)})
    assert b"Territory 5 is already checked out." in r.data

    with session_scope(app) as s:
        a = s.query(TerritoryAssignment).one()
        assert a.due_date == date(2025, 5, 10)
        assignment_id = a.id

    r = _post(client, f"/admin/territories/assignments/{assignment_id}/return", {"returned_date": "2025-01-01"})
    assert b"Return date cannot be before the assignment date." in r.data
    r = _post(
        client,
        f"/admin/territories/assignments/{assignment_id}/return",
        {"returned_date": "2025-02-01", "hours_worked": "6.5"},
    )
    assert b"Hours worked must be a whole number of zero or more." in r.data
    with session_scope(app) as s:
        assert s.get(TerritoryAssignment, assignment_id).status == "assigned"

    r = _post(
        client,
        f"/admin/territories/assignments/{assignment_id}/return",
        {"outcome": "completed", "returned_date": "2025-02-01", "hours_worked": "6", "households_visited": "40"},
    )
    assert b"Territory returned." in r.data
    with session_scope(app) as s:
        a = s.get(TerritoryAssignment, assignment_id)
        assert a.status == "completed"
        assert a.hours_worked == 6
        assert s.get(Territory, territory_id).last_worked == date(2025, 2, 1)

    r = client.get(f"/admin/territories/{territory_id}/print")
    assert r.status_code == 200
    assert b"Tom Walker" in r.data


def test_mark_overdue(app, client):
    _login(client)
    _create(client, "8")
    territory_id, member_id = _ids(app)
    _post(
        client,
        f"/admin/territories/{territory_id}/assign",
        {"publisher_id": str(member_id), "assigned_date": "2020-01-01", "due_date": "2020-02-01"},
    )
    r = _post(client, "/admin/territories/mark-overdue", {})
    assert b"1 assignment(s) marked overdue." in r.data
    with session_scope(app) as s:
        assert s.query(TerritoryAssignment).one().status == "overdue"


def test_divide_territory(app, client):
    _login(client)
    _create(client, "12", boundary=json.dumps(SQUARE), household_count="100", estimated_hours="5")
    territory_id, member_id = _ids(app)

    _post(client, f"/admin/territories/{territory_id}/assign", {"publisher_id": str(member_id)})
    r = _post(client, f"/admin/territories/{territory_id}/divide", {"divisions": "3"})
    assert b"is checked out; return it before dividing." in r.data

    with session_scope(app) as s:
        assignment_id = s.query(TerritoryAssignment).one().id
    _post(client, f"/admin/territories/assignments/{assignment_id}/return", {"outcome": "returned"})

    r = _post(client, f"/admin/territories/{territory_id}/divide", {"divisions": "1"})
    assert b"Divisions must be between 2 and 26." in r.data

    r = _post(client, f"/admin/territories/{territory_id}/divide", {"divisions": "3"})
    assert b"Territory 12 divided into 3 sub-territories." in r.data

    with session_scope(app) as s:
        parent = s.get(Territory, territory_id)
        assert parent.is_active is False
        children = s.query(Territory).filter(Territory.parent_id == territory_id).order_by(Territory.number.asc()).all()
        assert [c.number for c in children] == ["12-A", "12-B", "12-C"]
        assert [c.household_count for c in children] == [34, 34, 34]
        assert all(c.estimated_hours == 2 for c in children)


def test_distribute_equal(app, client):
    _login(client)
    with session_scope(app) as s:
        s.add_all([Group(name="Alpha"), Group(name="Beta")])
    for number in ("10", "2", "1", "3"):
        _create(client, number)

    r = _post(client, "/admin/territories/distribute", {"strategy": "equal"})
    assert b"Distributed 4 territories across 2 groups (equal)." in r.data

    with session_scope(app) as s:
        alpha = s.query(Group).filter(Group.name == "Alpha").one()
        numbers = sorted(t.number for t in s.query(Territory).filter(Territory.group_id == alpha.id))
        assert numbers == ["1", "3"]

    r = _post(client, "/admin/territories/distribute", {"strategy": "random"})
    assert b"Unknown distribution strategy" in r.data

    r = client.get("/admin/territories/distribute")
    assert r.status_code == 200
    assert b"Alpha" in r.data
