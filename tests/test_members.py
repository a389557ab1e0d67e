"""Tests for the Members module (members, groups, privileges, duties)."""
import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import AuditEvent, Base, Role, User
from app.congregation.modules.members.models import Group, Member, MemberDuty, Privilege
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


def test_members_list_requires_auth(client):
    r = client.get("/admin/members")
    assert r.status_code in (302, 403)


def test_members_list_ok(client):
    _login(client)
    r = client.get("/admin/members")
    assert r.status_code == 200
    assert b"Members" in r.data


def test_member_create_and_detail(app, client):
    _login(client)
    _post(client, "/admin/groups/new", {"name": "North"})
    with session_scope(app) as s:
        group_id = s.query(Group).filter(Group.name == "North").one().id

    r = _post(
        client,
        "/admin/members/new",
        {
            "full_name": "John Smith",
            "gender": "male",
            "email": "John@Example.com",
            "role": "publisher",
            "pioneer_status": "regular",
            "group_id": str(group_id),
            "baptized_date": "2010-06-01",
        },
    )
    assert r.status_code == 200
    assert b"John Smith" in r.data

    with session_scope(app) as s:
        m = s.query(Member).filter(Member.full_name == "John Smith").one()
        assert m.email == "john@example.com"
        assert m.group_id == group_id
        assert m.is_pioneer is True
        ev = s.query(AuditEvent).filter(AuditEvent.action == "member.create").one()
        assert ev.entity_id == str(m.id)


def test_member_create_requires_name(app, client):
    _login(client)
    r = _post(client, "/admin/members/new", {"full_name": "  ", "gender": "male"})
    assert b"Full name is required." in r.data
    with session_scope(app) as s:
        assert s.query(Member).count() == 0


def test_member_edit_deactivates_and_hides_from_list(app, client):
    _login(client)
    _post(client, "/admin/members/new", {"full_name": "Mary Jones", "gender": "female"})
    with session_scope(app) as s:
        member_id = s.query(Member).one().id

    _post(
        client,
        f"/admin/members/{member_id}/edit",
        {"full_name": "Mary Jones", "gender": "female", "role": "publisher", "reason": "Moved away"},
    )
    with session_scope(app) as s:
        m = s.get(Member, member_id)
        assert m.is_active is False
        ev = s.query(AuditEvent).filter(AuditEvent.action == "member.edit").one()
        assert ev.reason == "Moved away"

    r = client.get("/admin/members")
    assert b"Mary Jones" not in r.data
    r = client.get("/admin/members?include_inactive=1")
    assert b"Mary Jones" in r.data

    r = client.get(f"/admin/members/{member_id}")
    assert b"member.edit" in r.data
    assert b"Moved away" in r.data


def test_group_duplicate_rejected(client):
    _login(client)
    _post(client, "/admin/groups/new", {"name": "South"})
    r = _post(client, "/admin/groups/new", {"name": "South"})
    assert b"already exists" in r.data


def test_group_delete_unassigns_members(app, client):
    _login(client)
    _post(client, "/admin/groups/new", {"name": "East"})
    with session_scope(app) as s:
        group_id = s.query(Group).one().id
    _post(client, "/admin/members/new", {"full_name": "Paul Brown", "gender": "male", "group_id": str(group_id)})

    r = _post(client, f"/admin/groups/{group_id}/delete", {})
    assert b"1 member(s) unassigned" in r.data
    with session_scope(app) as s:
        assert s.query(Group).count() == 0
        assert s.query(Member).one().group_id is None


def test_privilege_marks_member_excluded(app, client):
    _login(client)
    _post(client, "/admin/privileges/new", {"name": "Infirm", "exclude_from_activities": "on"})
    with session_scope(app) as s:
        priv_id = s.query(Privilege).one().id

    _post(
        client,
        "/admin/members/new",
        {"full_name": "Ruth Green", "gender": "female", "privilege_ids": str(priv_id)},
    )
    with session_scope(app) as s:
        m = s.query(Member).one()
        assert [p.name for p in m.privileges] == ["Infirm"]
        assert m.excluded_from_activities is True


def test_duty_add_and_remove(app, client):
    _login(client)
    _post(client, "/admin/members/new", {"full_name": "Mark White", "gender": "male"})
    with session_scope(app) as s:
        member_id = s.query(Member).one().id

    _post(client, f"/admin/members/{member_id}/duties", {"name": "Watchtower Reader"})
    r = _post(client, f"/admin/members/{member_id}/duties", {"name": "watchtower reader"})
    assert b"already has the duty" in r.data

    with session_scope(app) as s:
        duty = s.query(MemberDuty).one()
        duty_id = duty.id

    _post(client, f"/admin/members/{member_id}/duties/{duty_id}/remove", {})
    with session_scope(app) as s:
        assert s.query(MemberDuty).count() == 0
