"""
WifiDesk — Escalation Sweep

Finds requests that sat in 'pending' or 'in-progress' longer than the
configured thresholds and escalates them through the request lifecycle.

Rules:
  - pending:      created_at < now - pending_threshold   → escalated
  - in-progress:  updated_at < now - progress_threshold  → escalated
  - Each candidate is processed on its own: status write, then "System"
    audit comment, then escalation notice. A failure on one candidate is
    logged and the sweep moves on.
  - The status write is conditional, so running the sweep twice (or racing
    a staff escalation) escalates each request at most once.

Called by the scheduler job, the staff "check now" action, the
POST /escalate-requests endpoint and the ``flask escalate-requests`` command.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from wifidesk.core.exceptions import StoreReadError
from wifidesk.models import db
from wifidesk.models.wifi_request import (
    SYSTEM_USER_NAME,
    Actor,
    RequestStatus,
)
from wifidesk.services import request_store as store
from wifidesk.services.escalation_settings import effective_thresholds
from wifidesk.services.request_lifecycle import transition_request

logger = logging.getLogger(__name__)

MSG_NO_RECIPIENTS = "No escalation emails configured"
MSG_NOTHING_DUE = "No requests to escalate"

# status → (timestamp column the age is measured from, wording in the audit comment)
_AGE_RULES = {
    RequestStatus.PENDING: ("created_at", "pending"),
    RequestStatus.IN_PROGRESS: ("updated_at", "in progress"),
}


def escalation_reason(status: RequestStatus, minutes: int) -> str:
    """Audit comment / notice text for an automatic escalation."""
    _, wording = _AGE_RULES[status]
    return (
        f"This request was automatically escalated because it was "
        f"{wording} for {minutes}+ minutes without resolution."
    )


def _result(message: str, *, candidates=0, outcomes=None, skipped=0, failed=0) -> dict:
    outcomes = outcomes or []
    return {
        "success": True,
        "escalated_count": sum(1 for o in outcomes if o.transitioned),
        "candidates": candidates,
        "skipped": skipped,
        "failed": failed,
        "message": message,
        "outcomes": [o.to_dict() for o in outcomes],
    }


def _load_candidates(now: datetime, pending_threshold: int, progress_threshold: int) -> list:
    """[(request_id, status, threshold_minutes)] oldest first within each status."""
    thresholds = {
        RequestStatus.PENDING: pending_threshold,
        RequestStatus.IN_PROGRESS: progress_threshold,
    }
    candidates = []
    for status, (field, _) in _AGE_RULES.items():
        minutes = thresholds[status]
        cutoff = now - timedelta(minutes=minutes)
        try:
            rows = store.query_requests_by_status_and_age(status, field, cutoff)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreReadError(f"query {status.value} requests", exc) from exc
        candidates.extend((r.id, status, minutes) for r in rows)
    return candidates


def run_sweep(now: datetime | None = None) -> dict:
    """Run one escalation sweep.

    Args:
        now: Reference time; defaults to the current UTC time.

    Returns:
        Dict with success, escalated_count, candidates, skipped, failed,
        message and the per-candidate outcomes.

    Raises:
        StoreReadError: settings or candidate query failed; nothing was written.
    """
    now = now or datetime.now(timezone.utc)

    try:
        settings = store.get_escalation_settings()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreReadError("load escalation settings", exc) from exc

    recipients = settings.email_list if settings else []
    if not recipients and not current_app.config.get("ESCALATE_WITHOUT_RECIPIENTS", False):
        logger.info("Escalation sweep skipped: no recipients configured",
                    extra={"event_type": "sweep.no_recipients"})
        return _result(MSG_NO_RECIPIENTS)

    pending_threshold, progress_threshold = effective_thresholds(settings)
    candidates = _load_candidates(now, pending_threshold, progress_threshold)
    if not candidates:
        logger.debug("Escalation sweep: nothing due")
        return _result(MSG_NOTHING_DUE)

    outcomes = []
    skipped = 0
    failed = 0
    for request_id, status, minutes in candidates:
        reason = escalation_reason(status, minutes)
        try:
            outcome = transition_request(
                request_id,
                RequestStatus.ESCALATED,
                Actor.SYSTEM,
                user_name=SYSTEM_USER_NAME,
                comment=reason,
                notify_reason=reason if recipients else None,
                recipients=recipients,
                expected_status=status,
                now=now,
            )
        except Exception:
            db.session.rollback()
            failed += 1
            logger.exception("Escalation failed for %s", request_id,
                             extra={"tracking_id": request_id, "event_type": "sweep.failed"})
            continue

        if not outcome.transitioned:
            skipped += 1
        outcomes.append(outcome)

    result = _result(
        f"Escalated {sum(1 for o in outcomes if o.transitioned)} requests",
        candidates=len(candidates),
        outcomes=outcomes,
        skipped=skipped,
        failed=failed,
    )
    logger.info(
        "Escalation sweep: %d candidates, %d escalated, %d skipped, %d failed",
        len(candidates), result["escalated_count"], skipped, failed,
        extra={"event_type": "sweep.completed"},
    )
    return result
