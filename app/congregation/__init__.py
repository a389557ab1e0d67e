import logging
import os
from datetime import timedelta
from decimal import Decimal

from flask import Flask, g, render_template, request, session
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.congregation.config import load_config
from app.congregation.db import init_db, teardown_db_session
from app.congregation.routes import bp as routes_bp
from app.congregation.auth import bp as auth_bp, load_current_user
from app.congregation.admin import bp as admin_bp
from app.congregation.modules.members.admin import bp as members_bp
from app.congregation.modules.field_service.admin import bp as field_service_bp
from app.congregation.modules.assignments.admin import bp as assignments_bp
from app.congregation.modules.territories.admin import bp as territories_bp
from app.congregation.modules.cleaning.admin import bp as cleaning_bp
from app.congregation.modules.financial.admin import bp as financial_bp
from app.congregation.modules.communication.admin import bp as communication_bp
from app.congregation.modules.overseer_reports.admin import bp as overseer_reports_bp
from app.congregation.modules.attendance.admin import bp as attendance_bp

# Columns whose absence means the database predates the current schema (`alembic upgrade head`).
_EXPECTED_COLUMNS = {
    "audit_events": ("client_ip",),
    "field_service_reports": ("pioneer_status",),
    "territories": ("parent_id",),
    "cleaning_tasks": ("anchor_day",),
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.congregation.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_globals() -> dict:
        from app.congregation.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {
            "csrf_token": ensure_csrf_token(),
            "has_perm": has_perm,
            "congregation_name": app.config.get("CONGREGATION_NAME") or "Congregation",
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "—"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("money")
    def _money_filter(value) -> str:
        if value is None:
            return "—"
        amount = Decimal(value)
        sign = "-" if amount < 0 else ""
        return f"{sign}${abs(amount):,.2f}"

    @app.template_filter("hours")
    def _hours_filter(value) -> str:
        if not value:
            return "0"
        if isinstance(value, float) and not value.is_integer():
            return f"{value:.1f}"
        return str(int(value))

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout carry their own rate limiting.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not str(app.config.get("DATABASE_URL") or "").strip():
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    for module_bp in (
        members_bp,
        field_service_bp,
        assignments_bp,
        territories_bp,
        cleaning_bp,
        financial_bp,
        communication_bp,
        overseer_reports_bp,
        attendance_bp,
    ):
        app.register_blueprint(module_bp, url_prefix="/admin")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    _run_schema_health_check(app)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return render_template("errors/400.html", message="Upload too large. Maximum size is 5MB."), 413

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")
    return app


def _run_schema_health_check(app: Flask) -> None:
    """
    Records schema drift in app config (shown on the dashboard and /health).
    Tables that do not exist yet are not drift; `init_db.py` or alembic creates them.
    """
    missing: list[str] = []
    try:
        insp = sa_inspect(app.extensions["sqlalchemy_engine"])
        for table, columns in _EXPECTED_COLUMNS.items():
            if not insp.has_table(table):
                continue
            present = {c["name"] for c in insp.get_columns(table)}
            missing.extend(f"{table}.{c}" for c in columns if c not in present)
    except SQLAlchemyError as e:
        app.logger.exception("Schema health check failed: %s", e)

    app.config["_schema_health_ok"] = not missing
    app.config["_schema_health_missing"] = missing
    if missing:
        app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
