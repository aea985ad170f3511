"""
WifiDesk — Request Store

Persistence operations the lifecycle, intake and escalation services rely on.
Every function works on the Flask-SQLAlchemy session and commits its own
write, so a later step failing never rolls back an earlier one.

Operations:
    insert_request                    → WifiRequest | ConflictError
    get_request_by_id                 → WifiRequest | None
    update_request_status             → bool (conditional write)
    insert_comment                    → RequestComment
    list_comments_by_request          → [RequestComment] oldest first
    get_escalation_settings           → EscalationSettings | None
    save_escalation_settings          → EscalationSettings
    query_requests_by_status_and_age  → [WifiRequest]
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import FlushError

from wifidesk.core.exceptions import ConflictError
from wifidesk.models import db
from wifidesk.models.escalation import EscalationSettings
from wifidesk.models.wifi_request import RequestComment, RequestStatus, WifiRequest

logger = logging.getLogger(__name__)

# Timestamp columns the sweep may age requests by
AGE_FIELDS = {"created_at", "updated_at"}


def _status_value(status) -> str:
    return RequestStatus(status).value


# ── Requests ─────────────────────────────────────────────────────────────────


def insert_request(request: WifiRequest) -> WifiRequest:
    """Insert a new request using its explicit tracking ID.

    Raises:
        ConflictError: the ID is already taken (primary-key violation).
    """
    db.session.add(request)
    try:
        db.session.commit()
    except (IntegrityError, FlushError) as exc:
        db.session.rollback()
        logger.info("Tracking ID collision on insert", extra={"tracking_id": request.id})
        raise ConflictError("WifiRequest", "id", request.id, retryable=True) from exc
    return request


def get_request_by_id(request_id: str) -> WifiRequest | None:
    """Return the request with this tracking ID, or None."""
    return db.session.get(WifiRequest, request_id)


def update_request_status(
    request_id: str,
    new_status,
    expected_current_status=None,
    *,
    now: datetime | None = None,
) -> bool:
    """Conditionally move a request to ``new_status``.

    The UPDATE only matches when the row still has ``expected_current_status``
    (or, without an expectation, any status other than ``new_status``), so a
    concurrent writer that got there first turns this call into a no-op.
    Refreshes ``updated_at`` and sets ``was_escalated`` when escalating.

    Returns:
        True if exactly one row changed.
    """
    target = _status_value(new_status)
    now = now or datetime.now(timezone.utc)

    stmt = update(WifiRequest).where(WifiRequest.id == request_id)
    if expected_current_status is not None:
        stmt = stmt.where(WifiRequest.status == _status_value(expected_current_status))
    else:
        stmt = stmt.where(WifiRequest.status != target)

    values = {"status": target, "updated_at": now}
    if target == RequestStatus.ESCALATED.value:
        values["was_escalated"] = True

    result = db.session.execute(
        stmt.values(**values).execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def query_requests_by_status_and_age(status, field: str, cutoff: datetime) -> list[WifiRequest]:
    """Requests in ``status`` whose ``field`` timestamp is strictly before ``cutoff``."""
    if field not in AGE_FIELDS:
        raise ValueError(f"field must be one of: {sorted(AGE_FIELDS)}")
    column = getattr(WifiRequest, field)
    stmt = (
        select(WifiRequest)
        .where(WifiRequest.status == _status_value(status), column < cutoff)
        .order_by(column.asc())
    )
    return list(db.session.execute(stmt).scalars().all())


# ── Comments ─────────────────────────────────────────────────────────────────


def insert_comment(request_id: str, user_name: str, text: str) -> RequestComment:
    """Append a comment to a request and commit it."""
    comment = RequestComment(
        request_id=request_id,
        user_name=user_name,
        comment_text=text,
    )
    db.session.add(comment)
    db.session.commit()
    return comment


def list_comments_by_request(request_id: str) -> list[RequestComment]:
    """All comments of a request, oldest first."""
    stmt = (
        select(RequestComment)
        .where(RequestComment.request_id == request_id)
        .order_by(RequestComment.created_at.asc(), RequestComment.id.asc())
    )
    return list(db.session.execute(stmt).scalars().all())


# ── Escalation settings ──────────────────────────────────────────────────────


def get_escalation_settings() -> EscalationSettings | None:
    """The settings singleton (lowest id), or None when never saved."""
    stmt = select(EscalationSettings).order_by(EscalationSettings.id.asc()).limit(1)
    return db.session.execute(stmt).scalars().first()


def save_escalation_settings(
    *,
    emails: list[str],
    pending_threshold: int | None,
    progress_threshold: int | None,
) -> EscalationSettings:
    """Create the singleton on first save, update it afterwards."""
    settings = get_escalation_settings()
    if settings is None:
        settings = EscalationSettings()
        db.session.add(settings)
    settings.emails = list(emails)
    settings.pending_threshold = pending_threshold
    settings.progress_threshold = progress_threshold
    settings.updated_at = datetime.now(timezone.utc)
    db.session.commit()
    return settings
