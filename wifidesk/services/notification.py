"""
WifiDesk — Notification Dispatch

Turns an escalated request into one email per configured recipient.
Delivery is best-effort: nothing in here raises to the caller, and the
escalation that triggered it is already committed.

Usage:
    from wifidesk.services.notification import NotificationService

    ok = NotificationService.notify(req, ["it@hotel.example"], reason)
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from wifidesk.models import db
from wifidesk.models.wifi_request import WifiRequest
from wifidesk.services.email_service import EmailService

logger = logging.getLogger(__name__)

ESCALATION_TEMPLATE = "request_escalated"


def distinct_recipients(recipients) -> list[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for addr in recipients or []:
        addr = (addr or "").strip()
        if not addr or addr.lower() in seen:
            continue
        seen.add(addr.lower())
        result.append(addr)
    return result


def build_context(request: WifiRequest, reason: str) -> dict:
    return {
        "request_id": request.id,
        "name": request.name,
        "email": request.email,
        "room_number": request.room_number,
        "issue_type": request.issue_type,
        "device_type": request.device_type,
        "description": request.description or "N/A",
        "reason": reason,
    }


class NotificationService:
    """Escalation notice dispatch over EmailService."""

    @staticmethod
    def notify(request: WifiRequest, recipients, reason: str) -> bool:
        """Send the escalation notice for ``request`` to every recipient.

        Returns:
            True only when every distinct recipient was sent to. False when
            there are no recipients, the mail channel is unconfigured, or any
            send (or its audit write) failed.
        """
        addresses = distinct_recipients(recipients)
        extra = {"tracking_id": request.id, "event_type": "notification"}
        if not addresses:
            logger.info("No recipients for escalation notice", extra=extra)
            return False

        context = build_context(request, reason)
        try:
            logs = [
                EmailService.send_from_template(
                    to_email=addr,
                    template_name=ESCALATION_TEMPLATE,
                    context=context,
                    request_id=request.id,
                )
                for addr in addresses
            ]
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not record escalation notice", extra=extra)
            return False

        if not EmailService.is_configured():
            logger.info(
                "Mail channel not configured; escalation notice for %s skipped (%d recipients)",
                request.id, len(addresses), extra=extra,
            )
            return False

        sent = sum(1 for log in logs if log is not None and log.status == "sent")
        if sent != len(addresses):
            logger.warning(
                "Escalation notice for %s reached %d of %d recipients",
                request.id, sent, len(addresses), extra=extra,
            )
            return False
        return True
