"""Tests for contributions, expenses, budgets and monthly reports."""
from datetime import date
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.congregation import create_app
from app.congregation.db import session_scope
from app.congregation.models import AuditEvent, Base, Role, User
from app.congregation.modules.financial.models import Contribution, Expense
from app.congregation.modules.financial.service import (
    budget_report,
    create_budget,
    create_expense,
    growth_percent,
    monthly_report,
    monthly_trends,
    opening_balance_for,
    period_bounds,
    record_contribution,
    set_opening_balance,
    transition_expense,
    validate_contribution_payload,
    validate_expense_payload,
)
from scripts.init_db import seed_permissions


def test_period_bounds():
    assert period_bounds(2025, 3) == (date(2025, 3, 1), date(2025, 4, 1))
    assert period_bounds(2025, 12) == (date(2025, 12, 1), date(2026, 1, 1))
    assert period_bounds(2025) == (date(2025, 1, 1), date(2026, 1, 1))
    with pytest.raises(ValueError):
        period_bounds(2025, 13)


def test_growth_percent():
    assert growth_percent(Decimal("150"), Decimal("100")) == 50.0
    assert growth_percent(Decimal("50"), Decimal("200")) == -75.0
    assert growth_percent(Decimal("50"), Decimal("0")) is None


def test_validate_payloads():
    assert "Amount must be greater than zero." in validate_contribution_payload({"amount": Decimal("0")})
    assert "Unknown contribution type." in validate_contribution_payload({"amount": Decimal("5"), "contribution_type": "tithe"})
    errors = validate_expense_payload({"description": "", "amount": None, "category": "travel"})
    assert errors == ["Description is required.", "Amount must be greater than zero.", "Unknown expense category."]


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


def _admin(s) -> User:
    return s.query(User).filter(User.email == "admin@example.com").one()


def _login(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-token"


def _post(client, url, data):
    return client.post(url, data={**data, "csrf_token": "test-token"}, follow_redirects=True)


def test_contribution_receipt_numbers_unique(app):
    with session_scope(app) as s:
        u = _admin(s)
        a = record_contribution(s, {"amount": Decimal("20.00"), "contribution_date": date(2025, 3, 2)}, u)
        b = record_contribution(s, {"amount": Decimal("30.00"), "contribution_date": date(2025, 3, 2)}, u)
        assert a.receipt_number.startswith("REC-")
        assert a.receipt_number != b.receipt_number
        # No member means the gift is recorded as anonymous.
        assert a.anonymous is True
        assert a.contributor_label == "Anonymous"


def test_expense_state_machine(app):
    with session_scope(app) as s:
        u = _admin(s)
        e = create_expense(s, {"description": "Light bulbs", "amount": Decimal("12.50"), "category": "maintenance"}, u)
        assert e.status == "pending"

        with pytest.raises(ValueError, match="Cannot move an expense from pending to paid"):
            transition_expense(s, e, "paid", u)
        with pytest.raises(ValueError, match="reason is required"):
            transition_expense(s, e, "rejected", u, reason="  ")

        transition_expense(s, e, "approved", u)
        assert e.approved_by_user_id == u.id
        assert e.approved_at is not None

        transition_expense(s, e, "paid", u, payment_date=date(2025, 3, 5))
        assert e.payment_date == date(2025, 3, 5)
        with pytest.raises(ValueError):
            transition_expense(s, e, "rejected", u, reason="Too late")
        s.flush()
        actions = [a for (a,) in s.query(AuditEvent.action).filter(AuditEvent.entity_type == "Expense").order_by(AuditEvent.id)]
        assert actions == ["expense.create", "expense.approved", "expense.paid"]


def test_monthly_report_and_opening_balance(app):
    with session_scope(app) as s:
        u = _admin(s)
        set_opening_balance(s, 2025, 1, Decimal("1000.00"), u)
        record_contribution(s, {"amount": Decimal("200.00"), "contribution_date": date(2025, 1, 15)}, u)
        record_contribution(s, {"amount": Decimal("300.00"), "contribution_date": date(2025, 2, 10)}, u)
        e = create_expense(s, {"description": "Electric bill", "amount": Decimal("150.00"), "category": "utilities"}, u)
        transition_expense(s, e, "approved", u)
        transition_expense(s, e, "paid", u, payment_date=date(2025, 2, 20))
        # Pending expenses never reduce the balance.
        create_expense(s, {"description": "Chairs", "amount": Decimal("999.00"), "category": "supplies"}, u)
        s.flush()

        assert opening_balance_for(s, 2025, 1) == Decimal("1000.00")
        assert opening_balance_for(s, 2025, 2) == Decimal("1200.00")

        report = monthly_report(s, 2025, 2)
        assert report.opening_balance == Decimal("1200.00")
        assert report.summary.total_contributions == Decimal("300.00")
        assert report.summary.total_expenses == Decimal("150.00")
        assert report.summary.pending_expenses == Decimal("999.00")
        assert report.summary.by_category == {"utilities": Decimal("150.00")}
        assert report.closing_balance == Decimal("1350.00")
        assert report.contribution_growth == 50.0

        trends = monthly_trends(s, 2025, 2, months=3)
        assert [t.key for t in trends] == ["2024-12", "2025-01", "2025-02"]
        assert [t.net for t in trends] == [Decimal("0.00"), Decimal("200.00"), Decimal("150.00")]


def test_budget_report_and_duplicate(app):
    with session_scope(app) as s:
        u = _admin(s)
        budget = create_budget(
            s,
            {"year": 2025, "month": 3, "lines": {"utilities": Decimal("200.00"), "supplies": Decimal("50.00"), "other": None}},
            u,
        )
        assert budget.label == "2025-03"
        e = create_expense(s, {"description": "Water", "amount": Decimal("50.00"), "category": "utilities"}, u)
        transition_expense(s, e, "approved", u)
        transition_expense(s, e, "paid", u, payment_date=date(2025, 3, 9))
        s.flush()

        lines = {ln.category: ln for ln in budget_report(s, budget)}
        assert set(lines) == {"utilities", "supplies"}
        assert lines["utilities"].remaining == Decimal("150.00")
        assert lines["utilities"].used_percent == 25
        assert lines["supplies"].used_percent == 0

        with pytest.raises(ValueError, match="already exists"):
            create_budget(s, {"year": 2025, "month": 3}, u)


def test_dashboard_requires_auth(client):
    r = client.get("/admin/financial")
    assert r.status_code in (302, 403)


def test_contribution_and_expense_flow(app, client):
    _login(client)
    r = _post(
        client,
        "/admin/financial/contributions/new",
        {"amount": "25.00", "contribution_type": "worldwide-work", "method": "cash", "contribution_date": "2025-03-02"},
    )
    assert b"Receipt REC-" in r.data

    r = _post(client, "/admin/financial/expenses/new", {"description": "Soap", "amount": "8.00", "category": "cleaning-supplies"})
    assert b"Expense submitted for approval." in r.data
    with session_scope(app) as s:
        expense_id = s.query(Expense).one().id

    r = _post(client, f"/admin/financial/expenses/{expense_id}/reject", {"reason": ""})
    assert b"A reason is required to reject an expense." in r.data
    _post(client, f"/admin/financial/expenses/{expense_id}/approve", {})
    _post(client, f"/admin/financial/expenses/{expense_id}/pay", {"payment_date": "2025-03-04"})
    with session_scope(app) as s:
        assert s.get(Expense, expense_id).status == "paid"

    r = client.get("/admin/financial?year=2025&month=3")
    assert r.status_code == 200

    r = client.get("/admin/financial/export?year=2025&month=3")
    assert r.status_code == 200
    body = r.data.decode("utf-8")
    assert "2025-03-02,contribution,worldwide-work" in body
    assert "2025-03-04,expense,cleaning-supplies" in body
    assert "-8.00" in body


def test_contribution_delete_requires_reason(app, client):
    _login(client)
    _post(client, "/admin/financial/contributions/new", {"amount": "10", "contribution_type": "other", "method": "cash"})
    with session_scope(app) as s:
        cid = s.query(Contribution).one().id

    r = _post(client, f"/admin/financial/contributions/{cid}/delete", {"reason": ""})
    assert b"A reason is required to delete a contribution." in r.data
    _post(client, f"/admin/financial/contributions/{cid}/delete", {"reason": "Entered twice"})
    with session_scope(app) as s:
        assert s.query(Contribution).count() == 0
