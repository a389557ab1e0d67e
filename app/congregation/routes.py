from flask import Blueprint, current_app, render_template
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.congregation.db import db_session

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Readiness probe: database reachable and schema current. Returns JSON."""
    db_ok = True
    try:
        db_session().execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        current_app.logger.warning("Health check DB error: %s", e)
        db_ok = False
    schema_ok = bool(current_app.config.get("_schema_health_ok", True))
    ok = db_ok and schema_ok
    return {"ok": ok, "db": db_ok, "schema": schema_ok}, (200 if ok else 503)


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200
