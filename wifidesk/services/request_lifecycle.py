"""
WifiDesk — Request Lifecycle Service

Single entry point for every status change, whether a staff member or the
escalation sweep asks for it:
  - Transition validation against REQUEST_TRANSITIONS (models/wifi_request.py)
  - Conditional status write (lost races become a no-op, never a double write)
  - Optional comment, written after the status commit
  - Escalation notice for transitions into 'escalated'

Each step after the status write is best-effort; TransitionOutcome reports
which of them happened so callers can surface partial success.

Usage:
    from wifidesk.services.request_lifecycle import transition_request

    outcome = transition_request(
        "john101a", RequestStatus.IN_PROGRESS, Actor.STAFF,
        user_name="Maria", comment="Looking into it",
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from wifidesk.core.exceptions import NotFoundError, TransitionError
from wifidesk.models import db
from wifidesk.models.wifi_request import (
    Actor,
    RequestStatus,
    validate_request_transition,
)
from wifidesk.services import request_store as store
from wifidesk.services.notification import NotificationService

logger = logging.getLogger(__name__)


@dataclass
class TransitionOutcome:
    """What a single transition attempt actually did.

    ``comment_written`` and ``notified`` are None when the step was not
    requested.
    """
    request_id: str
    previous_status: str
    new_status: str
    transitioned: bool
    comment_written: bool | None = None
    notified: bool | None = None

    @property
    def partial(self) -> bool:
        return self.transitioned and self.comment_written is False

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "transitioned": self.transitioned,
            "comment_written": self.comment_written,
            "notified": self.notified,
        }


def transition_request(
    request_id: str,
    new_status,
    actor,
    *,
    user_name: str,
    comment: str | None = None,
    notify_reason: str | None = None,
    recipients: list[str] | None = None,
    expected_status=None,
    now: datetime | None = None,
) -> TransitionOutcome:
    """Move a request to ``new_status`` on behalf of ``actor``.

    Args:
        request_id: Tracking ID.
        new_status: Target RequestStatus (or its value).
        actor: Actor (or its value) asking for the change.
        user_name: Author recorded on the accompanying comment.
        comment: Optional comment text written after the status commit.
        notify_reason: When set and the target is 'escalated', send the
            escalation notice with this reason.
        recipients: Override the configured recipient list for the notice.
        expected_status: Status the caller believes the request is in; the
            stored status is used when omitted.
        now: Transition timestamp (defaults to the current UTC time).

    Returns:
        TransitionOutcome. ``transitioned`` is False when a concurrent writer
        changed the request first.

    Raises:
        NotFoundError: no request with this ID.
        TransitionError: the actor may not make this transition.
        SQLAlchemyError: the status write itself failed (session rolled back).
    """
    actor = Actor(actor)
    target = RequestStatus(new_status)
    now = now or datetime.now(timezone.utc)

    req = store.get_request_by_id(request_id)
    if req is None:
        raise NotFoundError(resource="WifiRequest", resource_id=request_id)

    current = RequestStatus(expected_status) if expected_status is not None else RequestStatus(req.status)
    extra = {"tracking_id": request_id, "event_type": f"transition.{target.value}"}

    if not validate_request_transition(actor, current, target):
        raise TransitionError(request_id, actor.value, current.value, target.value)

    try:
        changed = store.update_request_status(request_id, target, current, now=now)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Status write failed for %s", request_id, extra=extra)
        raise

    outcome = TransitionOutcome(
        request_id=request_id,
        previous_status=current.value,
        new_status=target.value,
        transitioned=changed,
    )
    if not changed:
        logger.info(
            "Request %s no longer %s; %s transition skipped",
            request_id, current.value, actor.value, extra=extra,
        )
        return outcome

    log_level = logging.WARNING if target == RequestStatus.ESCALATED else logging.INFO
    logger.log(log_level, "Request %s: %s → %s by %s", request_id, current.value,
               target.value, user_name, extra=extra)

    if comment:
        outcome.comment_written = _write_comment(request_id, user_name, comment)

    if target == RequestStatus.ESCALATED and notify_reason:
        outcome.notified = _notify(request_id, notify_reason, recipients)

    return outcome


def _write_comment(request_id: str, user_name: str, text: str) -> bool:
    try:
        store.insert_comment(request_id, user_name, text)
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Comment write failed after status change on %s", request_id,
            extra={"tracking_id": request_id, "event_type": "comment_failed"},
        )
        return False


def _notify(request_id: str, reason: str, recipients: list[str] | None) -> bool:
    try:
        req = store.get_request_by_id(request_id)
        if recipients is None:
            settings = store.get_escalation_settings()
            recipients = settings.email_list if settings else []
        return NotificationService.notify(req, recipients, reason)
    except Exception:
        db.session.rollback()
        logger.exception(
            "Escalation notice failed for %s", request_id,
            extra={"tracking_id": request_id, "event_type": "notification_failed"},
        )
        return False
