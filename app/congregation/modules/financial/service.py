from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.financial.models import (
    CONTRIBUTION_TYPES,
    EXPENSE_CATEGORIES,
    EXPENSE_STATUSES,
    PAYMENT_METHODS,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.financial.models import Budget, Contribution, Expense, OpeningBalance

ZERO = Decimal("0.00")

# Allowed expense status moves.
EXPENSE_TRANSITIONS = {
    "pending": ("approved", "rejected"),
    "approved": ("paid", "rejected"),
    "paid": (),
    "rejected": (),
}


def period_bounds(year: int, month: int | None = None) -> tuple[date, date]:
    """[start, end) of a calendar month, or of the whole year when month is None."""
    if month is None:
        return date(year, 1, 1), date(year + 1, 1, 1)
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12.")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _prev_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def _money_sum(values) -> Decimal:
    return sum((Decimal(v or 0) for v in values), ZERO)


def growth_percent(current: Decimal, previous: Decimal) -> float | None:
    if not previous:
        return None
    return round(float((current - previous) / previous * 100), 1)


# --- contributions ----------------------------------------------------------


def validate_contribution_payload(payload: dict) -> list[str]:
    errors = []
    amount = payload.get("amount")
    if amount is None or amount <= 0:
        errors.append("Amount must be greater than zero.")
    if (payload.get("contribution_type") or "worldwide-work") not in CONTRIBUTION_TYPES:
        errors.append("Unknown contribution type.")
    if (payload.get("method") or "cash") not in PAYMENT_METHODS:
        errors.append("Unknown payment method.")
    return errors


def _receipt_number(s: "Session") -> str:
    from app.congregation.modules.financial.models import Contribution

    base = f"REC-{int(datetime.utcnow().timestamp() * 1000)}"
    candidate, n = base, 1
    while s.query(Contribution.id).filter(Contribution.receipt_number == candidate).first():
        n += 1
        candidate = f"{base}-{n}"
    return candidate


def record_contribution(s: "Session", payload: dict, user: "User") -> "Contribution":
    from app.congregation.modules.financial.models import Contribution

    anonymous = bool(payload.get("anonymous")) or not payload.get("member_id")
    c = Contribution(
        member_id=None if anonymous else payload.get("member_id"),
        amount=payload["amount"],
        contribution_type=payload.get("contribution_type") or "worldwide-work",
        method=payload.get("method") or "cash",
        anonymous=anonymous,
        receipt_number=_receipt_number(s),
        contribution_date=payload.get("contribution_date") or date.today(),
        notes=(payload.get("notes") or "").strip() or None,
        recorded_by_user_id=user.id,
    )
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="contribution.create",
        entity_type="Contribution",
        entity_id=str(c.id),
        metadata={"receipt_number": c.receipt_number, "amount": c.amount, "type": c.contribution_type},
    )
    return c


def delete_contribution(s: "Session", c: "Contribution", user: "User", reason: str | None = None) -> None:
    record_event(
        s,
        actor=user,
        action="contribution.delete",
        entity_type="Contribution",
        entity_id=str(c.id),
        reason=reason,
        metadata={"receipt_number": c.receipt_number, "amount": c.amount},
    )
    s.delete(c)


# --- expenses ---------------------------------------------------------------


def validate_expense_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("description") or "").strip():
        errors.append("Description is required.")
    amount = payload.get("amount")
    if amount is None or amount <= 0:
        errors.append("Amount must be greater than zero.")
    if (payload.get("category") or "other") not in EXPENSE_CATEGORIES:
        errors.append("Unknown expense category.")
    return errors


def create_expense(s: "Session", payload: dict, user: "User") -> "Expense":
    from app.congregation.modules.financial.models import Expense

    e = Expense(
        category=payload.get("category") or "other",
        description=(payload.get("description") or "").strip(),
        amount=payload["amount"],
        paid_to=(payload.get("paid_to") or "").strip() or None,
        invoice_number=(payload.get("invoice_number") or "").strip() or None,
        expense_date=payload.get("expense_date") or date.today(),
        due_date=payload.get("due_date"),
        status="pending",
        notes=(payload.get("notes") or "").strip() or None,
        requested_by_user_id=user.id,
    )
    s.add(e)
    s.flush()
    record_event(
        s,
        actor=user,
        action="expense.create",
        entity_type="Expense",
        entity_id=str(e.id),
        metadata={"category": e.category, "amount": e.amount},
    )
    return e


def transition_expense(
    s: "Session",
    e: "Expense",
    new_status: str,
    user: "User",
    *,
    payment_date: date | None = None,
    reason: str | None = None,
) -> "Expense":
    if new_status not in EXPENSE_STATUSES:
        raise ValueError(f"Unknown expense status '{new_status}'.")
    if new_status not in EXPENSE_TRANSITIONS.get(e.status, ()):
        raise ValueError(f"Cannot move an expense from {e.status} to {new_status}.")
    if new_status == "rejected" and not (reason or "").strip():
        raise ValueError("A reason is required to reject an expense.")

    old = e.status
    e.status = new_status
    if new_status == "approved":
        e.approved_by_user_id = user.id
        e.approved_at = datetime.utcnow()
    elif new_status == "paid":
        e.payment_date = payment_date or date.today()
    elif new_status == "rejected":
        e.rejection_reason = reason.strip()

    record_event(
        s,
        actor=user,
        action=f"expense.{new_status}",
        entity_type="Expense",
        entity_id=str(e.id),
        reason=reason,
        metadata={"old": old, "new": new_status, "amount": e.amount},
    )
    return e


# --- balances / budgets -----------------------------------------------------


def set_opening_balance(s: "Session", year: int, month: int, amount: Decimal, user: "User", notes: str | None = None) -> "OpeningBalance":
    from app.congregation.modules.financial.models import OpeningBalance

    period_bounds(year, month)
    ob = s.query(OpeningBalance).filter(OpeningBalance.year == year, OpeningBalance.month == month).one_or_none()
    old = ob.amount if ob else None
    if ob is None:
        ob = OpeningBalance(year=year, month=month, amount=amount, recorded_by_user_id=user.id)
        s.add(ob)
    else:
        ob.amount = amount
    ob.notes = (notes or "").strip() or None
    s.flush()
    record_event(
        s,
        actor=user,
        action="opening_balance.set",
        entity_type="OpeningBalance",
        entity_id=str(ob.id),
        metadata={"year": year, "month": month, "old": old, "new": amount},
    )
    return ob


def create_budget(s: "Session", payload: dict, user: "User") -> "Budget":
    from app.congregation.modules.financial.models import Budget, BudgetLine

    year = payload.get("year")
    month = payload.get("month")
    if not year:
        raise ValueError("Budget year is required.")
    period_bounds(year, month)
    exists = s.query(Budget).filter(Budget.year == year)
    exists = exists.filter(Budget.month.is_(None)) if month is None else exists.filter(Budget.month == month)
    if exists.first():
        raise ValueError("A budget for this period already exists.")

    budget = Budget(year=year, month=month, status="active", notes=(payload.get("notes") or "").strip() or None, created_by_user_id=user.id)
    for category, amount in (payload.get("lines") or {}).items():
        if category not in EXPENSE_CATEGORIES:
            raise ValueError(f"Unknown expense category '{category}'.")
        if amount is None:
            continue
        budget.lines.append(BudgetLine(category=category, budgeted=amount))
    s.add(budget)
    s.flush()
    record_event(
        s,
        actor=user,
        action="budget.create",
        entity_type="Budget",
        entity_id=str(budget.id),
        metadata={"period": budget.label, "lines": {ln.category: ln.budgeted for ln in budget.lines}},
    )
    return budget


# --- queries ----------------------------------------------------------------


def contributions_between(s: "Session", start: date, end: date) -> list["Contribution"]:
    from app.congregation.modules.financial.models import Contribution

    return (
        s.query(Contribution)
        .filter(Contribution.contribution_date >= start, Contribution.contribution_date < end)
        .order_by(Contribution.contribution_date.asc(), Contribution.id.asc())
        .all()
    )


def paid_expenses_between(s: "Session", start: date, end: date) -> list["Expense"]:
    from app.congregation.modules.financial.models import Expense

    return (
        s.query(Expense)
        .filter(Expense.status == "paid", Expense.payment_date >= start, Expense.payment_date < end)
        .order_by(Expense.payment_date.asc(), Expense.id.asc())
        .all()
    )


def expenses_by_status(s: "Session", status: str | None = None) -> list["Expense"]:
    from app.congregation.modules.financial.models import Expense

    q = s.query(Expense)
    if status:
        q = q.filter(Expense.status == status)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


@dataclass
class FinancialSummary:
    start: date
    end: date
    total_contributions: Decimal = ZERO
    total_expenses: Decimal = ZERO
    contribution_count: int = 0
    expense_count: int = 0
    pending_expenses: Decimal = ZERO
    by_type: dict[str, Decimal] = field(default_factory=dict)
    by_category: dict[str, Decimal] = field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return self.total_contributions - self.total_expenses


def financial_summary(s: "Session", year: int, month: int | None = None) -> FinancialSummary:
    start, end = period_bounds(year, month)
    contributions = contributions_between(s, start, end)
    expenses = paid_expenses_between(s, start, end)

    summary = FinancialSummary(start=start, end=end)
    summary.total_contributions = _money_sum(c.amount for c in contributions)
    summary.total_expenses = _money_sum(e.amount for e in expenses)
    summary.contribution_count = len(contributions)
    summary.expense_count = len(expenses)
    summary.pending_expenses = _money_sum(e.amount for e in expenses_by_status(s, "pending"))

    by_type: dict[str, Decimal] = OrderedDict((t, ZERO) for t in CONTRIBUTION_TYPES)
    for c in contributions:
        by_type[c.contribution_type] = by_type.get(c.contribution_type, ZERO) + c.amount
    by_category: dict[str, Decimal] = OrderedDict((k, ZERO) for k in EXPENSE_CATEGORIES)
    for e in expenses:
        by_category[e.category] = by_category.get(e.category, ZERO) + e.amount
    summary.by_type = {k: v for k, v in by_type.items() if v}
    summary.by_category = {k: v for k, v in by_category.items() if v}
    return summary


def opening_balance_for(s: "Session", year: int, month: int) -> Decimal:
    """
    Recorded opening balance for the month, else the latest earlier recorded balance
    carried forward through the net activity of the months in between.
    """
    from app.congregation.modules.financial.models import OpeningBalance

    target = year * 12 + month
    anchor = (
        s.query(OpeningBalance)
        .filter((OpeningBalance.year * 12 + OpeningBalance.month) <= target)
        .order_by(OpeningBalance.year.desc(), OpeningBalance.month.desc())
        .first()
    )
    if anchor is None:
        start = date(1900, 1, 1)
        amount = ZERO
    else:
        start = date(anchor.year, anchor.month, 1)
        amount = Decimal(anchor.amount)
    end = date(year, month, 1)
    if start >= end:
        return amount
    income = _money_sum(c.amount for c in contributions_between(s, start, end))
    spent = _money_sum(e.amount for e in paid_expenses_between(s, start, end))
    return amount + income - spent


@dataclass
class MonthlyReport:
    year: int
    month: int
    opening_balance: Decimal
    summary: FinancialSummary
    previous_contributions: Decimal

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + self.summary.balance

    @property
    def contribution_growth(self) -> float | None:
        return growth_percent(self.summary.total_contributions, self.previous_contributions)


def monthly_report(s: "Session", year: int, month: int) -> MonthlyReport:
    summary = financial_summary(s, year, month)
    py, pm = _prev_month(year, month)
    prev_start, prev_end = period_bounds(py, pm)
    previous = _money_sum(c.amount for c in contributions_between(s, prev_start, prev_end))
    return MonthlyReport(
        year=year,
        month=month,
        opening_balance=opening_balance_for(s, year, month),
        summary=summary,
        previous_contributions=previous,
    )


@dataclass
class TrendRow:
    year: int
    month: int
    contributions: Decimal
    expenses: Decimal

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def net(self) -> Decimal:
        return self.contributions - self.expenses


def monthly_trends(s: "Session", end_year: int, end_month: int, months: int = 12) -> list[TrendRow]:
    periods = []
    y, m = end_year, end_month
    for _ in range(months):
        periods.append((y, m))
        y, m = _prev_month(y, m)
    periods.reverse()

    start, _ = period_bounds(*periods[0])
    _, end = period_bounds(*periods[-1])
    contributions = contributions_between(s, start, end)
    expenses = paid_expenses_between(s, start, end)

    rows = OrderedDict(((py, pm), TrendRow(py, pm, ZERO, ZERO)) for py, pm in periods)
    for c in contributions:
        rows[(c.contribution_date.year, c.contribution_date.month)].contributions += c.amount
    for e in expenses:
        rows[(e.payment_date.year, e.payment_date.month)].expenses += e.amount
    return list(rows.values())


@dataclass
class BudgetLineReport:
    category: str
    budgeted: Decimal
    spent: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.budgeted - self.spent

    @property
    def used_percent(self) -> int:
        if not self.budgeted:
            return 0
        return int(self.spent / self.budgeted * 100)


def budget_report(s: "Session", budget: "Budget") -> list[BudgetLineReport]:
    start, end = period_bounds(budget.year, budget.month)
    spent: dict[str, Decimal] = {}
    for e in paid_expenses_between(s, start, end):
        spent[e.category] = spent.get(e.category, ZERO) + e.amount
    return [BudgetLineReport(category=ln.category, budgeted=Decimal(ln.budgeted), spent=spent.get(ln.category, ZERO)) for ln in budget.lines]
