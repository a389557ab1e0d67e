from __future__ import annotations

import csv
import io
from datetime import date

from flask import Blueprint, abort, flash, g, redirect, render_template, request, send_file, url_for

from app.congregation.audit import record_event
from app.congregation.db import db_session
from app.congregation.models import User
from app.congregation.modules.cleaning.models import (
    FREQUENCIES,
    INVENTORY_CATEGORIES,
    PRIORITIES,
    TASK_STATUSES,
    CleaningTask,
    InventoryItem,
)
from app.congregation.modules.cleaning.service import (
    complete_task,
    create_item,
    create_task,
    delete_task,
    list_items,
    list_tasks,
    restock_item,
    update_item,
    update_task,
    validate_item_payload,
    validate_task_payload,
)
from app.congregation.modules.members.service import active_members
from app.congregation.rbac import require_permission
from app.congregation.utils import parse_bool, parse_count, parse_date, parse_decimal, parse_int

bp = Blueprint("cleaning", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _task_payload_from_form() -> dict:
    return {
        "area": request.form.get("area"),
        "task": request.form.get("task"),
        "frequency": (request.form.get("frequency") or "Weekly").strip(),
        "status": (request.form.get("status") or "Pending").strip(),
        "priority": (request.form.get("priority") or "Medium").strip(),
        "due_date": parse_date(request.form.get("due_date")),
        "assignee_id": parse_int(request.form.get("assignee_id")),
        "notes": request.form.get("notes"),
    }


def _item_payload_from_form() -> dict:
    return {
        "name": request.form.get("name"),
        "category": (request.form.get("category") or "Other").strip(),
        "quantity": parse_count(request.form.get("quantity")),
        "min_quantity": parse_count(request.form.get("min_quantity")),
        "unit": request.form.get("unit"),
        "location": request.form.get("location"),
        "supplier": request.form.get("supplier"),
        "cost": parse_decimal(request.form.get("cost")),
        "notes": request.form.get("notes"),
    }


def _task_choices(s) -> dict:
    return {
        "members": active_members(s),
        "frequencies": FREQUENCIES,
        "priorities": PRIORITIES,
        "statuses": TASK_STATUSES,
    }


@bp.get("/cleaning")
@require_permission("cleaning.view")
def tasks_list():
    s = db_session()
    status = (request.args.get("status") or "").strip()
    include_completed = parse_bool(request.args.get("include_completed"))
    today = date.today()
    tasks = list_tasks(s, status=status, include_completed=include_completed, today=today)
    low_stock = list_items(s, low_stock_only=True)
    return render_template(
        "admin/cleaning/tasks.html",
        tasks=tasks,
        status=status,
        include_completed=include_completed,
        low_stock=low_stock,
        today=today,
        **_task_choices(s),
    )


@bp.post("/cleaning/tasks/new")
@require_permission("cleaning.edit")
def tasks_new_post():
    s = db_session()
    u = _current_user()
    payload = _task_payload_from_form()
    errors = validate_task_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("cleaning.tasks_list"))
    t = create_task(s, payload, u)
    s.commit()
    flash(f"Task '{t.task}' created.", "success")
    return redirect(url_for("cleaning.tasks_list"))


@bp.get("/cleaning/tasks/<int:task_id>/edit")
@require_permission("cleaning.edit")
def tasks_edit_get(task_id: int):
    s = db_session()
    t = s.get(CleaningTask, task_id)
    if not t:
        abort(404)
    return render_template("admin/cleaning/task_edit.html", task=t, **_task_choices(s))


@bp.post("/cleaning/tasks/<int:task_id>/edit")
@require_permission("cleaning.edit")
def tasks_edit_post(task_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(CleaningTask, task_id)
    if not t:
        abort(404)
    payload = _task_payload_from_form()
    errors = validate_task_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("cleaning.tasks_edit_get", task_id=task_id))
    update_task(s, t, payload, u)
    s.commit()
    flash("Task updated.", "success")
    return redirect(url_for("cleaning.tasks_list"))


@bp.post("/cleaning/tasks/<int:task_id>/complete")
@require_permission("cleaning.edit")
def tasks_complete(task_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(CleaningTask, task_id)
    if not t:
        abort(404)
    try:
        follow_up = complete_task(s, t, u, completed_on=parse_date(request.form.get("completed_date")))
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("cleaning.tasks_list"))
    s.commit()
    flash(f"Task completed. Next due {follow_up.due_date.isoformat()}.", "success")
    return redirect(url_for("cleaning.tasks_list"))


@bp.post("/cleaning/tasks/<int:task_id>/delete")
@require_permission("cleaning.edit")
def tasks_delete(task_id: int):
    s = db_session()
    u = _current_user()
    t = s.get(CleaningTask, task_id)
    if not t:
        abort(404)
    delete_task(s, t, u)
    s.commit()
    flash("Task deleted.", "success")
    return redirect(url_for("cleaning.tasks_list"))


# ============================================================================
# INVENTORY
# ============================================================================


@bp.get("/cleaning/inventory")
@require_permission("cleaning.view")
def inventory_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    category = (request.args.get("category") or "").strip()
    low_only = parse_bool(request.args.get("low"))
    items = list_items(s, search=search, category=category, low_stock_only=low_only)
    return render_template(
        "admin/cleaning/inventory.html",
        items=items,
        search=search,
        category=category,
        low_only=low_only,
        categories=INVENTORY_CATEGORIES,
    )


@bp.post("/cleaning/inventory/new")
@require_permission("cleaning.edit")
def inventory_new_post():
    s = db_session()
    u = _current_user()
    payload = _item_payload_from_form()
    errors = validate_item_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("cleaning.inventory_list"))
    item = create_item(s, payload, u)
    s.commit()
    flash(f"Item '{item.name}' added.", "success")
    return redirect(url_for("cleaning.inventory_list"))


@bp.get("/cleaning/inventory/<int:item_id>/edit")
@require_permission("cleaning.edit")
def inventory_edit_get(item_id: int):
    s = db_session()
    item = s.get(InventoryItem, item_id)
    if not item:
        abort(404)
    return render_template("admin/cleaning/item_edit.html", item=item, categories=INVENTORY_CATEGORIES)


@bp.post("/cleaning/inventory/<int:item_id>/edit")
@require_permission("cleaning.edit")
def inventory_edit_post(item_id: int):
    s = db_session()
    u = _current_user()
    item = s.get(InventoryItem, item_id)
    if not item:
        abort(404)
    payload = _item_payload_from_form()
    errors = validate_item_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("cleaning.inventory_edit_get", item_id=item_id))
    update_item(s, item, payload, u)
    s.commit()
    flash("Item updated.", "success")
    return redirect(url_for("cleaning.inventory_list"))


@bp.post("/cleaning/inventory/<int:item_id>/restock")
@require_permission("cleaning.edit")
def inventory_restock(item_id: int):
    s = db_session()
    u = _current_user()
    item = s.get(InventoryItem, item_id)
    if not item:
        abort(404)
    try:
        restock_item(s, item, parse_int(request.form.get("amount")) or 0, u)
    except ValueError as e:
        flash(str(e), "danger")
        return redirect(url_for("cleaning.inventory_list"))
    s.commit()
    flash(f"{item.name} restocked to {item.quantity}.", "success")
    return redirect(url_for("cleaning.inventory_list"))


@bp.get("/cleaning/inventory/export")
@require_permission("cleaning.view")
def inventory_export():
    s = db_session()
    u = _current_user()
    items = list_items(s)

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Name", "Category", "Quantity", "Unit", "Minimum", "Low Stock", "Location", "Supplier", "Cost", "Last Restocked"])
    for i in items:
        w.writerow(
            [
                i.name,
                i.category,
                i.quantity,
                i.unit or "",
                i.min_quantity,
                "yes" if i.is_low_stock else "",
                i.location or "",
                i.supplier or "",
                f"{i.cost:.2f}" if i.cost is not None else "",
                i.last_restocked.isoformat() if i.last_restocked else "",
            ]
        )

    record_event(
        s,
        actor=u,
        action="inventory_item.export",
        entity_type="InventoryItem",
        entity_id="export",
        metadata={"row_count": len(items)},
    )
    s.commit()

    return send_file(
        io.BytesIO(out.getvalue().encode("utf-8")),
        mimetype="text/csv",
        as_attachment=True,
        download_name=f"inventory_{date.today().strftime('%Y%m%d')}.csv",
        max_age=0,
    )
