"""
WifiDesk — Scheduler & Email Log Blueprint

Endpoints:
    GET   /api/v1/scheduler/jobs                     — registered jobs with run history
    GET   /api/v1/scheduler/jobs/<job_name>          — single job status
    POST  /api/v1/scheduler/jobs/<job_name>/trigger  — run a job now
    PATCH /api/v1/scheduler/jobs/<job_name>/toggle   — enable / disable
    GET   /api/v1/email-logs                         — outbound email audit (?status=&request_id=)
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import select

from wifidesk.blueprints import paginate_query
from wifidesk.models.scheduling import EMAIL_STATUSES, EmailLog
from wifidesk.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

scheduler_bp = Blueprint("scheduler_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULER
# ═══════════════════════════════════════════════════════════════════════════

@scheduler_bp.route("/scheduler/jobs", methods=["GET"])
def list_scheduled_jobs():
    """List all registered jobs with their status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({
        "jobs": jobs,
        "total": len(jobs),
        "running": SchedulerService.is_running(),
    })


@scheduler_bp.route("/scheduler/jobs/<job_name>", methods=["GET"])
def get_job_status(job_name):
    """Get status of a specific scheduled job."""
    job = SchedulerService.get_job_status(job_name)
    if not job:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404
    return jsonify(job)


@scheduler_bp.route("/scheduler/jobs/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Manually trigger a scheduled job."""
    result = SchedulerService.run_job(job_name)
    if result.get("status") == "error" and "Unknown job" in result.get("error", ""):
        return jsonify(result), 404
    return jsonify(result)


@scheduler_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
def toggle_job_status(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return jsonify({"error": "'enabled' field is required (true/false)"}), 400

    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return jsonify({"error": f"Job '{job_name}' not found"}), 404

    return jsonify(result)


# ═══════════════════════════════════════════════════════════════════════════
#  EMAIL LOG
# ═══════════════════════════════════════════════════════════════════════════

@scheduler_bp.route("/email-logs", methods=["GET"])
def list_email_logs():
    """List email send logs with pagination."""
    status = request.args.get("status")
    request_id = request.args.get("request_id")

    if status and status not in EMAIL_STATUSES:
        return jsonify({"error": f"Invalid status. Must be one of: {sorted(EMAIL_STATUSES)}"}), 400

    stmt = select(EmailLog)
    if status:
        stmt = stmt.where(EmailLog.status == status)
    if request_id:
        stmt = stmt.where(EmailLog.request_id == request_id)
    stmt = stmt.order_by(EmailLog.created_at.desc(), EmailLog.id.desc())

    items, total, limit, offset = paginate_query(stmt, default_limit=50)
    return jsonify({
        "items": [e.to_dict() for e in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })
