"""
WifiDesk — Escalation Blueprint

Endpoints:
    GET  /api/v1/staff/escalation-settings   — current settings (defaults if never saved)
    PUT  /api/v1/staff/escalation-settings   — validate + save recipients / thresholds
    POST /api/v1/staff/escalations/check     — run the sweep now (full result)
    POST /escalate-requests                  — scheduler hook, {success, message}
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from wifidesk.core.exceptions import StoreReadError, ValidationError
from wifidesk.services.escalation import run_sweep
from wifidesk.services.escalation_settings import (
    effective_thresholds,
    get_or_create_settings,
    update_settings,
)
from wifidesk.utils.errors import E, api_error, error_from

logger = logging.getLogger(__name__)

escalation_bp = Blueprint("escalation_bp", __name__)


@escalation_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return error_from(error)


@escalation_bp.errorhandler(StoreReadError)
def _handle_store_read(error: StoreReadError):
    logger.error("Escalation sweep aborted: %s", error)
    return jsonify({"success": False, "error": str(error)}), 500


@escalation_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in escalation_bp endpoint=%s", request.endpoint)
    return jsonify({"success": False, "error": "Internal server error"}), 500


def _settings_payload(settings) -> dict:
    pending, progress = effective_thresholds(settings)
    data = settings.to_dict()
    data["pending_threshold"] = pending
    data["progress_threshold"] = progress
    data["persisted"] = settings.id is not None
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/api/v1/staff/escalation-settings", methods=["GET"])
def get_settings():
    return jsonify(_settings_payload(get_or_create_settings()))


@escalation_bp.route("/api/v1/staff/escalation-settings", methods=["PUT"])
def put_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    settings = update_settings(
        emails=data.get("emails"),
        pending_threshold=data.get("pending_threshold"),
        progress_threshold=data.get("progress_threshold"),
    )
    return jsonify(_settings_payload(settings))


# ═════════════════════════════════════════════════════════════════════════════
# Sweep triggers
# ═════════════════════════════════════════════════════════════════════════════


@escalation_bp.route("/api/v1/staff/escalations/check", methods=["POST"])
def check_escalations():
    """Staff "check escalations now" action."""
    return jsonify(run_sweep())


@escalation_bp.route("/escalate-requests", methods=["POST"])
def escalate_requests():
    """Scheduler hook; no request body."""
    result = run_sweep()
    return jsonify({
        "success": result["success"],
        "message": result["message"],
        "escalated_count": result["escalated_count"],
    })
