"""
Probes for the load balancer and operators.

    GET /api/v1/health/ready   process is up
    GET /api/v1/health/live    database round-trip, mail channel, scheduler thread
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from wifidesk.models import db
from wifidesk.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _database_check() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Database probe failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    cfg = current_app.config
    checks = {
        "database": _database_check(),
        "mail": (
            {"status": "configured", "server": cfg["MAIL_SERVER"]}
            if cfg.get("MAIL_SERVER")
            else {"status": "skipped", "detail": "no MAIL_SERVER configured"}
        ),
        "scheduler": {
            "status": "running" if SchedulerService.is_running() else "stopped",
            "enabled": bool(cfg.get("SCHEDULER_ENABLED")),
        },
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
