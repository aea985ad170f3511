"""
WifiDesk — Hotel Guest WiFi Support Portal
Flask Application Factory.

Usage:
    from wifidesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from wifidesk.config import config
from wifidesk.models import db
from wifidesk.middleware.logging_config import configure_logging
from wifidesk.middleware.rate_limiter import init_rate_limits
from wifidesk.middleware.staff_auth import init_staff_auth
from wifidesk.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit — applied per route
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Staff guard + request timing ─────────────────────────────────────
    init_staff_auth(app)
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from wifidesk.models import wifi_request as _wifi_request_models  # noqa: F401
    from wifidesk.models import escalation as _escalation_models      # noqa: F401
    from wifidesk.models import scheduling as _scheduling_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.testing:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from wifidesk.blueprints import all_blueprints

    for bp in all_blueprints():
        app.register_blueprint(bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("escalate-requests")
    def escalate_requests_cmd():
        """Run one escalation sweep and print the result."""
        from wifidesk.services.escalation import run_sweep
        result = run_sweep()
        click.echo(json.dumps({k: v for k, v in result.items() if k != "outcomes"}))

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler (importing scheduled_jobs registers the sweep) ─────────
    from wifidesk.services import scheduled_jobs  # noqa: F401
    from wifidesk.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    if _should_start_scheduler(app):
        SchedulerService.start()

    return app


def _should_start_scheduler(app) -> bool:
    if app.testing or not app.config.get("SCHEDULER_ENABLED"):
        return False
    # Under the Werkzeug reloader only the child process runs jobs
    if app.debug and os.getenv("FLASK_RUN_FROM_CLI") and os.getenv("WERKZEUG_RUN_MAIN") != "true":
        return False
    return True
