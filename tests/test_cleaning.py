"""Tests for cleaning tasks and inventory."""
from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import Base, Role, User
from app.congregation.modules.cleaning.models import CleaningTask, InventoryItem
from app.congregation.modules.cleaning.service import next_due_date, validate_task_payload
from scripts.init_db import seed_permissions


@pytest.mark.parametrize(
    "due,frequency,expected",
    [
        (date(2025, 3, 10), "Daily", date(2025, 3, 11)),
        (date(2025, 3, 10), "Weekly", date(2025, 3, 17)),
        (date(2025, 1, 31), "Monthly", date(2025, 2, 28)),
        (date(2024, 1, 31), "Monthly", date(2024, 2, 29)),
        (date(2025, 11, 30), "Quarterly", date(2026, 2, 28)),
        (date(2024, 2, 29), "Yearly", date(2025, 2, 28)),
    ],
)
def test_next_due_date(due, frequency, expected):
    assert next_due_date(due, frequency) == expected


def test_next_due_date_returns_to_anchor_day_after_short_month():
    feb = next_due_date(date(2025, 1, 31), "Monthly", anchor_day=31)
    assert feb == date(2025, 2, 28)
    assert next_due_date(feb, "Monthly", anchor_day=31) == date(2025, 3, 31)
    assert next_due_date(date(2025, 2, 28), "Quarterly", anchor_day=30) == date(2025, 5, 30)
    assert next_due_date(date(2027, 2, 28), "Yearly", anchor_day=29) == date(2028, 2, 29)


def test_next_due_date_unknown_frequency():
    with pytest.raises(ValueError):
        next_due_date(date(2025, 1, 1), "Fortnightly")


def test_validate_task_payload():
    errors = validate_task_payload({"area": "", "task": "Vacuum", "due_date": None, "priority": "Urgent"})
    assert "Area is required." in errors
    assert "Due date is required (YYYY-MM-DD)." in errors
    assert "Priority must be Low, Medium or High." in errors
    assert validate_task_payload({"area": "Hall", "task": "Vacuum", "due_date": date(2025, 1, 1)}) == []


def test_effective_status_overdue():
    t = CleaningTask(area="Hall", task="Mop", status="Pending", due_date=date(2025, 1, 1))
    assert t.effective_status(today=date(2025, 1, 2)) == "Overdue"
    assert t.effective_status(today=date(2025, 1, 1)) == "Pending"
    t.status = "Completed"
    assert t.effective_status(today=date(2025, 6, 1)) == "Completed"


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


def test_cleaning_requires_auth(client):
    r = client.get("/admin/cleaning")
    assert r.status_code in (302, 403)


def test_task_create_and_list(client):
    _login(client)
    r = _post(
        client,
        "/admin/cleaning/tasks/new",
        {"area": "Main Hall", "task": "Vacuum carpet", "frequency": "Weekly", "priority": "High", "due_date": "2030-01-06"},
    )
    assert r.status_code == 200
    assert b"Vacuum carpet" in r.data


def test_task_create_missing_fields(app, client):
    _login(client)
    r = _post(client, "/admin/cleaning/tasks/new", {"area": "", "task": "", "due_date": ""})
    assert b"Area is required." in r.data
    with session_scope(app) as s:
        assert s.query(CleaningTask).count() == 0


def test_task_complete_schedules_follow_up(app, client):
    _login(client)
    _post(
        client,
        "/admin/cleaning/tasks/new",
        {"area": "Restrooms", "task": "Deep clean", "frequency": "Monthly", "due_date": "2025-01-31"},
    )
    with session_scope(app) as s:
        task_id = s.query(CleaningTask).one().id

    r = _post(client, f"/admin/cleaning/tasks/{task_id}/complete", {"completed_date": "2025-02-03"})
    assert b"Task completed. Next due 2025-02-28." in r.data

    with session_scope(app) as s:
        tasks = s.query(CleaningTask).order_by(CleaningTask.id.asc()).all()
        assert len(tasks) == 2
        assert tasks[0].status == "Completed"
        assert tasks[0].completed_date == date(2025, 2, 3)
        assert tasks[1].status == "Pending"
        assert tasks[1].due_date == date(2025, 2, 28)

    r = _post(client, f"/admin/cleaning/tasks/{task_id}/complete", {"completed_date": "2025-02-04"})
    assert b"Task is already completed." in r.data

    r = _post(client, f"/admin/cleaning/tasks/{tasks[1].id}/complete", {"completed_date": "2025-02-28"})
    assert b"Task completed. Next due 2025-03-31." in r.data
    with session_scope(app) as s:
        follow_up = s.query(CleaningTask).filter(CleaningTask.status == "Pending").one()
        assert follow_up.due_date == date(2025, 3, 31)
        assert follow_up.anchor_day == 31


def test_task_complete_late_skips_past_occurrences(app, client):
    _login(client)
    _post(
        client,
        "/admin/cleaning/tasks/new",
        {"area": "Lobby", "task": "Dust", "frequency": "Weekly", "due_date": "2025-03-03"},
    )
    with session_scope(app) as s:
        task_id = s.query(CleaningTask).one().id

    _post(client, f"/admin/cleaning/tasks/{task_id}/complete", {"completed_date": "2025-03-20"})
    with session_scope(app) as s:
        follow_up = s.query(CleaningTask).filter(CleaningTask.status == "Pending").one()
        assert follow_up.due_date == date(2025, 3, 24)


def test_inventory_rejects_non_integer_quantity(app, client):
    _login(client)
    r = _post(
        client,
        "/admin/cleaning/inventory/new",
        {"name": "Soap", "category": "Cleaning Supplies", "quantity": "2.5", "min_quantity": "lots"},
    )
    assert b"Quantity must be a whole number." in r.data
    assert b"Minimum quantity must be a whole number." in r.data
    with session_scope(app) as s:
        assert s.query(InventoryItem).count() == 0


def test_inventory_restock_and_export(app, client):
    _login(client)
    _post(
        client,
        "/admin/cleaning/inventory/new",
        {"name": "Paper towels", "category": "Cleaning Supplies", "quantity": "2", "min_quantity": "5", "unit": "rolls"},
    )
    with session_scope(app) as s:
        item = s.query(InventoryItem).one()
        assert item.is_low_stock is True
        item_id = item.id

    r = client.get("/admin/cleaning/inventory?low=1")
    assert b"Paper towels" in r.data

    r = _post(client, f"/admin/cleaning/inventory/{item_id}/restock", {"amount": "0"})
    assert b"Restock amount must be greater than zero." in r.data

    _post(client, f"/admin/cleaning/inventory/{item_id}/restock", {"amount": "10"})
    with session_scope(app) as s:
        item = s.get(InventoryItem, item_id)
        assert item.quantity == 12
        assert item.last_restocked == date.today()
        assert item.is_low_stock is False

    r = client.get("/admin/cleaning/inventory/export")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    lines = r.data.decode("utf-8").splitlines()
    assert lines[0].startswith("Name,Category,Quantity")
    assert lines[1].startswith("Paper towels,Cleaning Supplies,12,rolls,5,")
