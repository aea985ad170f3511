"""
WifiDesk — Request Blueprint

Guest endpoints (public):
    POST /api/v1/requests                              — submit a WiFi issue
    GET  /api/v1/requests/<tracking_id>                — tracker: request + comments
    POST /api/v1/requests/<tracking_id>/comments       — tracker comment ("Guest")

Staff endpoints (HTTP Basic when configured):
    GET  /api/v1/staff/requests                        — dashboard list (?view=&date_from=&date_to=)
    GET  /api/v1/staff/requests/stats                  — dashboard counters
    GET  /api/v1/staff/requests/<request_id>           — detail with comments
    POST /api/v1/staff/requests/<request_id>/status    — status change (+ optional comment)
    POST /api/v1/staff/requests/<request_id>/escalate  — manual escalation
    POST /api/v1/staff/requests/<request_id>/comments  — staff comment
"""

import logging
from datetime import date

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from wifidesk.blueprints import paginate_query
from wifidesk.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from wifidesk.models.wifi_request import DEVICE_TYPES, ISSUE_TYPES
from wifidesk.services import request_service
from wifidesk.services import request_store as store
from wifidesk.utils.errors import E, api_error, error_from

logger = logging.getLogger(__name__)

request_bp = Blueprint("request_bp", __name__, url_prefix="/api/v1")

_INTAKE_REQUIRED = ("name", "email", "room_number", "device_type", "issue_type")


# ── Error handlers ───────────────────────────────────────────────────────────


@request_bp.errorhandler(NotFoundError)
@request_bp.errorhandler(ValidationError)
@request_bp.errorhandler(ConflictError)
def _handle_service_error(error: Exception):
    if isinstance(error, ConflictError):
        logger.warning("Intake conflict: %s", error)
    return error_from(error)


@request_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in request_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _parse_date(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return False


def _date_range():
    """(date_from, date_to, error_response)"""
    date_from = _parse_date("date_from")
    date_to = _parse_date("date_to")
    if date_from is False or date_to is False:
        return None, None, api_error(E.VALIDATION_INVALID, "Dates must be YYYY-MM-DD")
    return date_from, date_to, None


def _optional_text(data: dict, field: str):
    """(stripped text or None, error_response) for an optional string field."""
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        return None, api_error(E.VALIDATION_INVALID, f"{field} must be a string")
    return (value or "").strip() or None, None


def _staff_fields(data: dict):
    """(user_name, comment, error_response) shared by the staff actions."""
    user_name, err = _optional_text(data, "user_name")
    if err:
        return None, None, err
    comment, err = _optional_text(data, "comment")
    if err:
        return None, None, err
    return user_name or request.headers.get("X-Staff-Name"), comment, None


def _choice_error(data: dict, field: str, choices):
    value = data[field]
    if not isinstance(value, str) or value not in choices:
        return api_error(E.VALIDATION_INVALID, f"{field} must be one of: {sorted(choices)}")
    return None


def _outcome_response(outcome):
    if not outcome.transitioned:
        return api_error(
            E.CONFLICT_STATE,
            f"Request {outcome.request_id} is no longer {outcome.previous_status}",
            details=outcome.to_dict(),
        )
    body = outcome.to_dict()
    body["partial"] = outcome.partial
    body["request"] = store.get_request_by_id(outcome.request_id).to_dict()
    return jsonify(body), 200


# ═════════════════════════════════════════════════════════════════════════════
# Guest
# ═════════════════════════════════════════════════════════════════════════════


@request_bp.route("/requests", methods=["POST"])
def create_request():
    """Submit a new WiFi support request."""
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")

    missing = [f for f in _INTAKE_REQUIRED if not str(data.get(f) or "").strip()]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    err = (_choice_error(data, "device_type", DEVICE_TYPES)
           or _choice_error(data, "issue_type", ISSUE_TYPES))
    if err:
        return err

    req = request_service.create_request(data)
    return jsonify(req.to_dict()), 201


@request_bp.route("/requests/<tracking_id>", methods=["GET"])
def track_request(tracking_id):
    """Guest tracker lookup."""
    return jsonify(request_service.get_request_with_comments(tracking_id))


@request_bp.route("/requests/<tracking_id>/comments", methods=["POST"])
def add_guest_comment(tracking_id):
    data = _json_body() or {}
    if not str(data.get("comment_text") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "comment_text is required")
    comment = request_service.add_guest_comment(tracking_id, data["comment_text"])
    return jsonify(comment.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# Staff
# ═════════════════════════════════════════════════════════════════════════════


@request_bp.route("/staff/requests", methods=["GET"])
def list_requests():
    view = request.args.get("view", "all")
    if view not in request_service.VIEWS:
        return api_error(E.VALIDATION_INVALID, f"view must be one of: {list(request_service.VIEWS)}")
    date_from, date_to, err = _date_range()
    if err:
        return err

    stmt = request_service.list_requests_query(view, date_from, date_to)
    items, total, limit, offset = paginate_query(stmt)
    return jsonify({
        "items": [r.to_dict() for r in items],
        "total": total,
        "limit": limit,
        "offset": offset,
        "view": view,
    })


@request_bp.route("/staff/requests/stats", methods=["GET"])
def request_stats():
    date_from, date_to, err = _date_range()
    if err:
        return err
    return jsonify(request_service.compute_request_stats(date_from, date_to))


@request_bp.route("/staff/requests/<request_id>", methods=["GET"])
def get_request(request_id):
    return jsonify(request_service.get_request_with_comments(request_id))


@request_bp.route("/staff/requests/<request_id>/status", methods=["POST"])
def change_status(request_id):
    """Staff status change with an optional comment."""
    data = _json_body() or {}
    status = data.get("status")
    if not status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    if not isinstance(status, str):
        return api_error(E.VALIDATION_INVALID, "status must be a string")
    user_name, comment, err = _staff_fields(data)
    if err:
        return err

    outcome = request_service.change_status(
        request_id, status, user_name=user_name, comment=comment,
    )
    return _outcome_response(outcome)


@request_bp.route("/staff/requests/<request_id>/escalate", methods=["POST"])
def escalate_request(request_id):
    """Manual escalation; sends the escalation notice to configured recipients."""
    user_name, comment, err = _staff_fields(_json_body() or {})
    if err:
        return err
    outcome = request_service.escalate_request(
        request_id, user_name=user_name, comment=comment,
    )
    return _outcome_response(outcome)


@request_bp.route("/staff/requests/<request_id>/comments", methods=["POST"])
def add_staff_comment(request_id):
    data = _json_body() or {}
    if not str(data.get("comment_text") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "comment_text is required")
    user_name, err = _optional_text(data, "user_name")
    if err:
        return err
    comment = request_service.add_staff_comment(
        request_id, user_name or request.headers.get("X-Staff-Name"), data["comment_text"],
    )
    return jsonify(comment.to_dict()), 201
