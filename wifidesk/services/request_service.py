"""
WifiDesk — Request Service

Guest intake and tracker operations plus the staff dashboard queries:
  - create_request            guest intake, always 'pending'
  - get_request_with_comments guest tracker / staff detail
  - add_guest_comment         tracker comment authored "Guest"
  - add_staff_comment         dashboard comment, defaults to "IT Staff"
  - change_status             staff status change via the lifecycle
  - escalate_request          staff manual escalation + notice
  - list_requests             dashboard views with optional date range
  - compute_request_stats     dashboard counters
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from sqlalchemy import and_, func, or_, select

from wifidesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from wifidesk.models import db
from wifidesk.models.wifi_request import (
    DEFAULT_STAFF_NAME,
    DEVICE_TYPES,
    GUEST_USER_NAME,
    ISSUE_TYPES,
    Actor,
    RequestComment,
    RequestStatus,
    WifiRequest,
)
from wifidesk.services import request_store as store
from wifidesk.services.request_lifecycle import TransitionOutcome, transition_request
from wifidesk.services.tracking_id import (
    generate_tracking_id,
    resolve_tracking_id,
    with_random_suffix,
)

logger = logging.getLogger(__name__)

VIEWS = ("all", "pending", "in-progress", "completed", "escalated")

_COMPLETED = RequestStatus.COMPLETED.value
_ESCALATED = RequestStatus.ESCALATED.value


# ═════════════════════════════════════════════════════════════════════════════
# Intake
# ═════════════════════════════════════════════════════════════════════════════


def _max_length(field: str) -> int:
    return WifiRequest.__table__.c[field].type.length


def _require_text(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    limit = _max_length(field)
    if len(value) > limit:
        raise ValidationError(
            f"{field} must be at most {limit} characters",
            details={field: "too_long"},
        )
    return value


def _require_choice(data: dict, field: str, choices) -> str:
    value = data.get(field)
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(
            f"{field} must be one of: {sorted(choices)}",
            details={field: value},
        )
    return value


def _validate_intake(data: dict) -> dict:
    name = _require_text(data, "name")
    room_number = _require_text(data, "room_number")
    email = _require_text(data, "email")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("email is invalid", details={"email": str(exc)})

    device_type = _require_choice(data, "device_type", DEVICE_TYPES)
    issue_type = _require_choice(data, "issue_type", ISSUE_TYPES)

    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise ValidationError("description must be text", details={"description": description})

    return {
        "name": name,
        "email": email,
        "room_number": room_number,
        "device_type": device_type,
        "issue_type": issue_type,
        "description": (description or "").strip() or None,
    }


def create_request(data: dict) -> WifiRequest:
    """Create a guest request in 'pending' under a freshly assigned tracking ID.

    Any ``status`` in ``data`` is ignored.

    Raises:
        ValidationError: a field is missing or invalid.
        ConflictError: (retryable) every tracking ID attempt collided.
    """
    fields = _validate_intake(data)
    max_attempts = max(1, current_app.config.get("TRACKING_ID_MAX_ATTEMPTS", 3))

    candidate = generate_tracking_id(fields["name"], fields["room_number"])
    if not candidate.strip():
        raise ValidationError(
            "name and room_number must contain letters or digits",
            details={"room_number": fields["room_number"]},
        )
    tracking_id = resolve_tracking_id(fields["name"], fields["room_number"])

    for attempt in range(1, max_attempts + 1):
        now = datetime.now(timezone.utc)
        req = WifiRequest(
            id=tracking_id,
            status=RequestStatus.PENDING.value,
            was_escalated=False,
            created_at=now,
            updated_at=now,
            **fields,
        )
        try:
            store.insert_request(req)
        except ConflictError:
            logger.info("Tracking ID %s taken (attempt %d/%d)", tracking_id, attempt, max_attempts)
            tracking_id = with_random_suffix(candidate)
            continue
        logger.info("Request created", extra={"tracking_id": req.id, "event_type": "request.created"})
        return req

    logger.warning("Could not assign a tracking ID for %s after %d attempts", candidate, max_attempts)
    raise ConflictError("WifiRequest", "id", candidate, retryable=True)


# ═════════════════════════════════════════════════════════════════════════════
# Tracker & comments
# ═════════════════════════════════════════════════════════════════════════════


def _get_or_404(request_id: str) -> WifiRequest:
    req = store.get_request_by_id(request_id)
    if req is None:
        raise NotFoundError(resource="WifiRequest", resource_id=request_id)
    return req


def get_request_with_comments(request_id: str) -> dict:
    """Request dict with its comment trail, oldest comment first."""
    req = _get_or_404(request_id)
    data = req.to_dict()
    data["comments"] = [c.to_dict() for c in store.list_comments_by_request(request_id)]
    return data


def _comment_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("comment_text is required", details={"comment_text": "required"})
    return text.strip()


def add_guest_comment(request_id: str, text: str):
    """Append a tracker comment authored "Guest"."""
    _get_or_404(request_id)
    return store.insert_comment(request_id, GUEST_USER_NAME, _comment_text(text))


def staff_name(user_name: str | None) -> str:
    """Comment author for a staff action; blank becomes "IT Staff"."""
    if user_name is not None and not isinstance(user_name, str):
        raise ValidationError("user_name must be text", details={"user_name": user_name})
    name = (user_name or "").strip() or DEFAULT_STAFF_NAME
    limit = RequestComment.__table__.c.user_name.type.length
    if len(name) > limit:
        raise ValidationError(
            f"user_name must be at most {limit} characters",
            details={"user_name": "too_long"},
        )
    return name


def add_staff_comment(request_id: str, user_name: str | None, text: str):
    """Append a dashboard comment; a blank staff name becomes "IT Staff"."""
    _get_or_404(request_id)
    return store.insert_comment(request_id, staff_name(user_name), _comment_text(text))


# ═════════════════════════════════════════════════════════════════════════════
# Staff status changes
# ═════════════════════════════════════════════════════════════════════════════


def escalate_request(request_id: str, *, user_name: str | None = None,
                     comment: str | None = None) -> TransitionOutcome:
    """Manually escalate a request and send the escalation notice."""
    name = staff_name(user_name)
    return transition_request(
        request_id,
        RequestStatus.ESCALATED,
        Actor.STAFF,
        user_name=name,
        comment=comment,
        notify_reason=f"This request was manually escalated by {name}.",
    )


def change_status(request_id: str, status, *, user_name: str | None = None,
                  comment: str | None = None) -> TransitionOutcome:
    """Staff status change. Escalation goes through escalate_request."""
    try:
        target = RequestStatus(status)
    except ValueError:
        raise ValidationError(
            f"status must be one of: {[s.value for s in RequestStatus]}",
            details={"status": status},
        )
    if target == RequestStatus.ESCALATED:
        return escalate_request(request_id, user_name=user_name, comment=comment)
    return transition_request(
        request_id,
        target,
        Actor.STAFF,
        user_name=staff_name(user_name),
        comment=comment,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard queries
# ═════════════════════════════════════════════════════════════════════════════


def _escalated_clause():
    return or_(
        WifiRequest.status == _ESCALATED,
        and_(WifiRequest.status == _COMPLETED, WifiRequest.was_escalated.is_(True)),
    )


def _view_clause(view: str):
    if view == "all":
        return or_(WifiRequest.status != _COMPLETED, WifiRequest.was_escalated.is_(True))
    if view == "escalated":
        return _escalated_clause()
    if view in ("pending", "in-progress", "completed"):
        return WifiRequest.status == view
    raise ValidationError(f"view must be one of: {list(VIEWS)}", details={"view": view})


def _date_clauses(date_from: date | None, date_to: date | None) -> list:
    clauses = []
    if date_from:
        clauses.append(WifiRequest.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to:
        end = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        clauses.append(WifiRequest.created_at < end)
    return clauses


def list_requests_query(view: str = "all", date_from: date | None = None,
                        date_to: date | None = None):
    """Select statement for a dashboard view, newest first."""
    return (
        select(WifiRequest)
        .where(_view_clause(view), *_date_clauses(date_from, date_to))
        .order_by(WifiRequest.created_at.desc(), WifiRequest.id.asc())
    )


def list_requests(view: str = "all", date_from: date | None = None,
                  date_to: date | None = None) -> list[WifiRequest]:
    return list(db.session.execute(list_requests_query(view, date_from, date_to)).scalars().all())


def compute_request_stats(date_from: date | None = None, date_to: date | None = None) -> dict:
    """Dashboard counters for the optional created_at range."""
    dates = _date_clauses(date_from, date_to)

    rows = db.session.execute(
        select(WifiRequest.status, func.count(WifiRequest.id))
        .where(*dates)
        .group_by(WifiRequest.status)
    ).all()
    by_status = {status: count for status, count in rows}

    escalated = db.session.execute(
        select(func.count(WifiRequest.id)).where(_escalated_clause(), *dates)
    ).scalar_one()
    resolved_after = db.session.execute(
        select(func.count(WifiRequest.id)).where(
            WifiRequest.status == _COMPLETED,
            WifiRequest.was_escalated.is_(True),
            *dates,
        )
    ).scalar_one()

    return {
        "total": sum(by_status.values()),
        "pending": by_status.get(RequestStatus.PENDING.value, 0),
        "in_progress": by_status.get(RequestStatus.IN_PROGRESS.value, 0),
        "completed": by_status.get(_COMPLETED, 0),
        "escalated": escalated,
        "resolved_after_escalation": resolved_after,
    }
