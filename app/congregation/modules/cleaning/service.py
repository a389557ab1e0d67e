from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from app.congregation.audit import record_event
from app.congregation.modules.cleaning.models import FREQUENCIES, INVENTORY_CATEGORIES, PRIORITIES, TASK_STATUSES

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.congregation.models import User
    from app.congregation.modules.cleaning.models import CleaningTask, InventoryItem


def _add_months(d: date, months: int, day: int | None = None) -> date:
    idx = d.year * 12 + (d.month - 1) + months
    year, month = idx // 12, idx % 12 + 1
    return date(year, month, min(day or d.day, calendar.monthrange(year, month)[1]))


def next_due_date(due: date, frequency: str, anchor_day: int | None = None) -> date:
    """
    Next occurrence after `due`. Monthly and longer schedules land on `anchor_day`
    (default: the day of `due`), clamped to the length of the target month.
    """
    if frequency == "Daily":
        return due + timedelta(days=1)
    if frequency == "Weekly":
        return due + timedelta(weeks=1)
    if frequency == "Monthly":
        return _add_months(due, 1, anchor_day)
    if frequency == "Quarterly":
        return _add_months(due, 3, anchor_day)
    if frequency == "Yearly":
        return _add_months(due, 12, anchor_day)
    raise ValueError(f"Unknown frequency '{frequency}'.")


def validate_task_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("area") or "").strip():
        errors.append("Area is required.")
    if not (payload.get("task") or "").strip():
        errors.append("Task is required.")
    if not payload.get("due_date"):
        errors.append("Due date is required (YYYY-MM-DD).")
    if (payload.get("frequency") or "Weekly") not in FREQUENCIES:
        errors.append("Unknown frequency.")
    if (payload.get("priority") or "Medium") not in PRIORITIES:
        errors.append("Priority must be Low, Medium or High.")
    if (payload.get("status") or "Pending") not in TASK_STATUSES:
        errors.append("Unknown status.")
    return errors


def create_task(s: "Session", payload: dict, user: "User") -> "CleaningTask":
    from app.congregation.modules.cleaning.models import CleaningTask

    now = datetime.utcnow()
    t = CleaningTask(
        area=(payload.get("area") or "").strip(),
        task=(payload.get("task") or "").strip(),
        frequency=payload.get("frequency") or "Weekly",
        status=payload.get("status") or "Pending",
        priority=payload.get("priority") or "Medium",
        due_date=payload["due_date"],
        anchor_day=payload["due_date"].day,
        assignee_id=payload.get("assignee_id"),
        notes=(payload.get("notes") or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    s.add(t)
    s.flush()
    record_event(
        s,
        actor=user,
        action="cleaning_task.create",
        entity_type="CleaningTask",
        entity_id=str(t.id),
        metadata={"area": t.area, "task": t.task, "due_date": t.due_date},
    )
    return t


def update_task(s: "Session", t: "CleaningTask", payload: dict, user: "User") -> "CleaningTask":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(t, attr):
            changes[attr] = {"old": getattr(t, attr), "new": val}
            setattr(t, attr, val)

    _set("area", (payload.get("area") or t.area).strip())
    _set("task", (payload.get("task") or t.task).strip())
    _set("frequency", payload.get("frequency") or t.frequency)
    _set("status", payload.get("status") or t.status)
    _set("priority", payload.get("priority") or t.priority)
    _set("due_date", payload.get("due_date") or t.due_date)
    if "due_date" in changes:
        t.anchor_day = t.due_date.day
    _set("assignee_id", payload.get("assignee_id"))
    _set("notes", (payload.get("notes") or "").strip() or None)
    t.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="cleaning_task.edit",
        entity_type="CleaningTask",
        entity_id=str(t.id),
        metadata={"changes": changes},
    )
    return t


def complete_task(s: "Session", t: "CleaningTask", user: "User", completed_on: date | None = None) -> "CleaningTask | None":
    """Mark a task completed and schedule its next occurrence. Returns the follow-up task."""
    from app.congregation.modules.cleaning.models import CleaningTask

    if t.status == "Completed":
        raise ValueError("Task is already completed.")
    completed_on = completed_on or date.today()
    t.status = "Completed"
    t.completed_date = completed_on
    t.updated_at = datetime.utcnow()

    # Next occurrence is never scheduled in the past.
    anchor_day = t.anchor_day or t.due_date.day
    due = next_due_date(t.due_date, t.frequency, anchor_day)
    while due <= completed_on:
        due = next_due_date(due, t.frequency, anchor_day)
    follow_up = CleaningTask(
        area=t.area,
        task=t.task,
        frequency=t.frequency,
        status="Pending",
        priority=t.priority,
        due_date=due,
        anchor_day=anchor_day,
        assignee_id=t.assignee_id,
        notes=t.notes,
    )
    s.add(follow_up)
    s.flush()

    record_event(
        s,
        actor=user,
        action="cleaning_task.complete",
        entity_type="CleaningTask",
        entity_id=str(t.id),
        metadata={"completed_date": completed_on, "next_task_id": follow_up.id, "next_due_date": due},
    )
    return follow_up


def delete_task(s: "Session", t: "CleaningTask", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="cleaning_task.delete",
        entity_type="CleaningTask",
        entity_id=str(t.id),
        metadata={"area": t.area, "task": t.task},
    )
    s.delete(t)


def list_tasks(s: "Session", *, status: str = "", include_completed: bool = False, today: date | None = None) -> list["CleaningTask"]:
    from app.congregation.modules.cleaning.models import CleaningTask

    q = s.query(CleaningTask)
    if not include_completed and status != "Completed":
        q = q.filter(CleaningTask.status != "Completed")
    tasks = q.order_by(CleaningTask.due_date.asc(), CleaningTask.id.asc()).all()
    if status:
        tasks = [t for t in tasks if t.effective_status(today) == status]
    return tasks


# --- inventory --------------------------------------------------------------


def validate_item_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("Item name is required.")
    if (payload.get("category") or "Other") not in INVENTORY_CATEGORIES:
        errors.append("Unknown category.")
    for key, label in (("quantity", "Quantity"), ("min_quantity", "Minimum quantity")):
        val = payload.get(key)
        if val is None:
            continue
        if not isinstance(val, int):
            errors.append(f"{label} must be a whole number.")
        elif val < 0:
            errors.append(f"{label} cannot be negative.")
    cost = payload.get("cost")
    if cost is not None and cost < 0:
        errors.append("Cost cannot be negative.")
    return errors


def create_item(s: "Session", payload: dict, user: "User") -> "InventoryItem":
    from app.congregation.modules.cleaning.models import InventoryItem

    now = datetime.utcnow()
    item = InventoryItem(
        name=(payload.get("name") or "").strip(),
        category=payload.get("category") or "Other",
        quantity=payload.get("quantity") or 0,
        unit=(payload.get("unit") or "").strip() or None,
        min_quantity=payload.get("min_quantity") or 0,
        location=(payload.get("location") or "").strip() or None,
        supplier=(payload.get("supplier") or "").strip() or None,
        cost=payload.get("cost"),
        notes=(payload.get("notes") or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()
    record_event(
        s,
        actor=user,
        action="inventory_item.create",
        entity_type="InventoryItem",
        entity_id=str(item.id),
        metadata={"name": item.name, "quantity": item.quantity},
    )
    return item


def update_item(s: "Session", item: "InventoryItem", payload: dict, user: "User") -> "InventoryItem":
    changes = {}

    def _set(attr: str, val):
        if val != getattr(item, attr):
            changes[attr] = {"old": getattr(item, attr), "new": val}
            setattr(item, attr, val)

    _set("name", (payload.get("name") or item.name).strip())
    _set("category", payload.get("category") or item.category)
    if payload.get("quantity") is not None:
        _set("quantity", payload["quantity"])
    if payload.get("min_quantity") is not None:
        _set("min_quantity", payload["min_quantity"])
    _set("unit", (payload.get("unit") or "").strip() or None)
    _set("location", (payload.get("location") or "").strip() or None)
    _set("supplier", (payload.get("supplier") or "").strip() or None)
    _set("cost", payload.get("cost"))
    _set("notes", (payload.get("notes") or "").strip() or None)
    item.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="inventory_item.edit",
        entity_type="InventoryItem",
        entity_id=str(item.id),
        metadata={"changes": changes},
    )
    return item


def restock_item(s: "Session", item: "InventoryItem", amount: int, user: "User", restocked_on: date | None = None) -> "InventoryItem":
    if amount <= 0:
        raise ValueError("Restock amount must be greater than zero.")
    before = item.quantity
    item.quantity = before + amount
    item.last_restocked = restocked_on or date.today()
    item.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="inventory_item.restock",
        entity_type="InventoryItem",
        entity_id=str(item.id),
        metadata={"before": before, "after": item.quantity, "amount": amount},
    )
    return item


def list_items(s: "Session", *, search: str = "", category: str = "", low_stock_only: bool = False) -> list["InventoryItem"]:
    from app.congregation.modules.cleaning.models import InventoryItem

    q = s.query(InventoryItem)
    if search:
        like = f"%{search}%"
        q = q.filter((InventoryItem.name.ilike(like)) | (InventoryItem.location.ilike(like)))
    if category:
        q = q.filter(InventoryItem.category == category)
    if low_stock_only:
        q = q.filter(InventoryItem.quantity <= InventoryItem.min_quantity)
    return q.order_by(InventoryItem.category.asc(), InventoryItem.name.asc()).all()
