import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import AuditEvent, Base, Permission, Role, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        p = Permission(key="admin.view", name="Admin: view dashboard")
        r = Role(key="admin", name="Administrator")
        r.permissions.append(p)
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        viewer = User(email="nobody@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, r, u, viewer])

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert r.json["db"] is True


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200


def test_login_and_admin_access(client):
    # Anonymous is sent to the login page
    r = client.get("/admin/")
    assert r.status_code in (302, 403)

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/admin/")
    assert r.status_code == 200


def test_login_bad_password_is_audited(app, client):
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"}, follow_redirects=True)
    assert b"Invalid credentials" in r.data
    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.entity_id == "admin@example.com"


def test_audit_trail_filters(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"}, follow_redirects=True)
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)

    r = client.get("/admin/audit?action=login_failed")
    assert r.status_code == 200
    assert b"auth.login_failed" in r.data

    r = client.get("/admin/audit?actor_email=ADMIN@example")
    assert b"auth.login_failed" not in r.data
    assert b"auth.login" in r.data

    r = client.get("/admin/audit?date_from=yesterday")
    assert b"date_from must be YYYY-MM-DD" in r.data


def test_login_ignores_offsite_next(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "pw", "next": "//evil.example.com/"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "evil.example.com" not in r.headers["Location"]


def test_missing_permission_is_forbidden(client):
    client.post("/auth/login", data={"email": "nobody@example.com", "password": "pw"}, follow_redirects=True)
    r = client.get("/admin/")
    assert r.status_code == 403


def test_post_without_csrf_token_rejected(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    r = client.post("/admin/members/new", data={"full_name": "Jane Doe"})
    assert r.status_code == 400
    assert b"CSRF" in r.data


def test_logout_clears_session(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    r = client.get("/auth/logout")
    assert r.status_code == 302
    r = client.get("/admin/")
    assert r.status_code in (302, 403)
