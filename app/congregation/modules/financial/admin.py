from __future__ import annotations

import csv
import io
from datetime import date

from flask import Blueprint, abort, flash, g, redirect, render_template, request, send_file, url_for

from app.congregation.audit import record_event
from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.financial.models import (
    CONTRIBUTION_TYPES,
    EXPENSE_CATEGORIES,
    EXPENSE_STATUSES,
    PAYMENT_METHODS,
    Budget,
    Contribution,
    Expense,
    OpeningBalance,
)
from app.congregation.modules.financial.service import (
    budget_report,
    contributions_between,
    create_budget,
    create_expense,
    delete_contribution,
    expenses_by_status,
    financial_summary,
    monthly_report,
    monthly_trends,
    paid_expenses_between,
    period_bounds,
    record_contribution,
    set_opening_balance,
    transition_expense,
    validate_contribution_payload,
    validate_expense_payload,
)
from app.congregation.modules.members.service import active_members
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_date, parse_decimal, parse_int

bp = Blueprint("financial", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _period_args() -> tuple[int, int | None]:
    today = date.today()
    year = parse_int(request.args.get("year")) or today.year
    raw_month = (request.args.get("month") or "").strip()
    if raw_month == "all":
        return year, None
    month = parse_int(raw_month) or today.month
    if not 1 <= month <= 12:
        flash("Month must be between 1 and 12.", "danger")
        month = today.month
    return year, month


@bp.get("/financial")
@require_permission("financial.view")
def dashboard():
    s = db_session()
    year, month = _period_args()
    summary = financial_summary(s, year, month)
    report = monthly_report(s, year, month) if month else None
    trends = monthly_trends(s, year, month or 12)
    start, end = period_bounds(year, month)
    return render_template(
        "admin/financial/dashboard.html",
        year=year,
        month=month,
        summary=summary,
        report=report,
        trends=trends,
        contributions=contributions_between(s, start, end),
        pending=expenses_by_status(s, "pending"),
        approved=expenses_by_status(s, "approved"),
        members=active_members(s),
        contribution_types=CONTRIBUTION_TYPES,
        payment_methods=PAYMENT_METHODS,
        expense_categories=EXPENSE_CATEGORIES,
    )


@bp.post("/financial/contributions/new")
@require_permission("financial.edit")
def contributions_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "member_id": parse_int(request.form.get("member_id")),
        "amount": parse_decimal(request.form.get("amount")),
        "contribution_type": (request.form.get("contribution_type") or "").strip(),
        "method": (request.form.get("method") or "").strip(),
        "anonymous": parse_bool(request.form.get("anonymous")),
        "contribution_date": parse_date(request.form.get("contribution_date")),
        "notes": request.form.get("notes"),
    }
    errors = validate_contribution_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("financial.dashboard"))
    c = record_contribution(s, payload, u)
    s.commit()
    flash(f"Contribution recorded. Receipt {c.receipt_number}.", "success")
    return redirect(url_for("financial.dashboard"))


@bp.post("/financial/contributions/<int:contribution_id>/delete")
@require_permission("financial.edit")
def contributions_delete(contribution_id: int):
    s = db_session()
    u = _current_user()
    c = s.get(Contribution, contribution_id)
    if not c:
        abort(404)
    reason = (request.form.get("reason") or "").strip()
    if not reason:
        flash("A reason is required to delete a contribution.", "danger")
        return redirect(url_for("financial.dashboard"))
    delete_contribution(s, c, u, reason=reason)
    s.commit()
    flash("Contribution deleted.", "success")
    return redirect(url_for("financial.dashboard"))


@bp.get("/financial/expenses")
@require_permission("financial.view")
def expenses_list():
    s = db_session()
    status = (request.args.get("status") or "").strip()
    if status and status not in EXPENSE_STATUSES:
        status = ""
    return render_template(
        "admin/financial/expenses.html",
        expenses=expenses_by_status(s, status or None),
        status=status,
        statuses=EXPENSE_STATUSES,
        categories=EXPENSE_CATEGORIES,
    )


@bp.post("/financial/expenses/new")
@require_permission("financial.edit")
def expenses_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "category": (request.form.get("category") or "").strip(),
        "description": request.form.get("description"),
        "amount": parse_decimal(request.form.get("amount")),
        "paid_to": request.form.get("paid_to"),
        "invoice_number": request.form.get("invoice_number"),
        "expense_date": parse_date(request.form.get("expense_date")),
        "due_date": parse_date(request.form.get("due_date")),
        "notes": request.form.get("notes"),
    }
    errors = validate_expense_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("financial.expenses_list"))
    create_expense(s, payload, u)
    s.commit()
    flash("Expense submitted for approval.", "success")
    return redirect(url_for("financial.expenses_list"))


def _transition(expense_id: int, new_status: str, **kwargs):
    s = db_session()
    u = _current_user()
    e = s.get(Expense, expense_id)
    if not e:
        abort(404)
    try:
        transition_expense(s, e, new_status, u, **kwargs)
    except ValueError as ex:
        flash(str(ex), "danger")
        return redirect(url_for("financial.expenses_list"))
    s.commit()
    flash(f"Expense marked {new_status}.", "success")
    return redirect(url_for("financial.expenses_list"))


@bp.post("/financial/expenses/<int:expense_id>/approve")
@require_permission("financial.approve")
def expenses_approve(expense_id: int):
    return _transition(expense_id, "approved")


@bp.post("/financial/expenses/<int:expense_id>/reject")
@require_permission("financial.approve")
def expenses_reject(expense_id: int):
    return _transition(expense_id, "rejected", reason=request.form.get("reason"))


@bp.post("/financial/expenses/<int:expense_id>/pay")
@require_permission("financial.approve")
def expenses_pay(expense_id: int):
    return _transition(expense_id, "paid", payment_date=parse_date(request.form.get("payment_date")))


@bp.get("/financial/budgets")
@require_permission("financial.view")
def budgets_list():
    s = db_session()
    budgets = s.query(Budget).order_by(Budget.year.desc(), Budget.month.desc()).all()
    selected = None
    lines = []
    budget_id = parse_int(request.args.get("budget_id"))
    if budget_id:
        selected = s.get(Budget, budget_id)
    elif budgets:
        selected = budgets[0]
    if selected:
        lines = budget_report(s, selected)
    balances = s.query(OpeningBalance).order_by(OpeningBalance.year.desc(), OpeningBalance.month.desc()).all()
    return render_template(
        "admin/financial/budgets.html",
        budgets=budgets,
        selected=selected,
        lines=lines,
        balances=balances,
        categories=EXPENSE_CATEGORIES,
        today=date.today(),
    )


@bp.post("/financial/budgets/new")
@require_permission("financial.edit")
def budgets_new_post():
    s = db_session()
    u = _current_user()
    payload = {
        "year": parse_int(request.form.get("year")),
        "month": parse_int(request.form.get("month")),
        "notes": request.form.get("notes"),
        "lines": {c: parse_decimal(request.form.get(f"line_{c}")) for c in EXPENSE_CATEGORIES},
    }
    try:
        budget = create_budget(s, payload, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("financial.budgets_list"))
    s.commit()
    flash(f"Budget {budget.label} created.", "success")
    return redirect(url_for("financial.budgets_list", budget_id=budget.id))


@bp.post("/financial/opening-balance")
@require_permission("financial.edit")
def opening_balance_post():
    s = db_session()
    u = _current_user()
    year = parse_int(request.form.get("year"))
    month = parse_int(request.form.get("month"))
    amount = parse_decimal(request.form.get("amount"))
    if not year or not month or amount is None:
        flash("Year, month and amount are required.", "danger")
        return redirect(url_for("financial.budgets_list"))
    try:
        set_opening_balance(s, year, month, amount, u, notes=request.form.get("notes"))
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("financial.budgets_list"))
    s.commit()
    flash(f"Opening balance for {year}-{month:02d} saved.", "success")
    return redirect(url_for("financial.budgets_list"))


@bp.get("/financial/export")
@require_permission("financial.view")
def export_csv():
    s = db_session()
    u = _current_user()
    year, month = _period_args()
    start, end = period_bounds(year, month)
    contributions = contributions_between(s, start, end)
    expenses = paid_expenses_between(s, start, end)

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Date", "Kind", "Category", "Reference", "Party", "Amount"])
    for c in contributions:
        w.writerow([c.contribution_date.isoformat(), "contribution", c.contribution_type, c.receipt_number, c.contributor_label, f"{c.amount:.2f}"])
    for e in expenses:
        w.writerow([e.payment_date.isoformat(), "expense", e.category, e.invoice_number or "", e.paid_to or "", f"-{e.amount:.2f}"])

    record_event(
        s,
        actor=u,
        action="financial.export",
        entity_type="Contribution",
        entity_id="export",
        metadata={"start": start, "end": end, "row_count": len(contributions) + len(expenses)},
    )
    s.commit()

    suffix = f"{year}{month:02d}" if month else str(year)
    return send_file(
        io.BytesIO(out.getvalue().encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"finances_{suffix}.csv",
        max_age=0,
    )
