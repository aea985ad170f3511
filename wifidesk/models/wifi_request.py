"""
WifiDesk — Hotel Guest WiFi Support Portal
Request domain models.

Models:
    - WifiRequest: guest-submitted WiFi support ticket keyed by its tracking ID
    - RequestComment: append-only audit / conversation entry on a request

The status transition table lives here so the staff dashboard and the
escalation sweep consult one authority (see services/request_lifecycle.py).
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.orm import validates

from wifidesk.models import db


# ── Constants ────────────────────────────────────────────────────────────────


class RequestStatus(str, Enum):
    """Lifecycle states of a WiFi request."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ESCALATED = "escalated"


class Actor(str, Enum):
    """Who is asking for a transition."""

    GUEST = "guest"
    STAFF = "staff"
    SYSTEM = "system"


DEVICE_TYPES = {"smartphone", "laptop", "tablet", "other"}
ISSUE_TYPES = {"connect", "slow", "disconnect", "login", "other"}

SYSTEM_USER_NAME = "System"
GUEST_USER_NAME = "Guest"
DEFAULT_STAFF_NAME = "IT Staff"

# actor -> {from_status: [allowed target statuses]}
# Guests only ever create requests in 'pending'; they have no transitions.
REQUEST_TRANSITIONS = {
    Actor.GUEST: {},
    Actor.STAFF: {
        RequestStatus.PENDING:     [RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED, RequestStatus.ESCALATED],
        RequestStatus.IN_PROGRESS: [RequestStatus.COMPLETED, RequestStatus.ESCALATED],
        RequestStatus.ESCALATED:   [RequestStatus.COMPLETED],
        RequestStatus.COMPLETED:   [],
    },
    Actor.SYSTEM: {
        RequestStatus.PENDING:     [RequestStatus.ESCALATED],
        RequestStatus.IN_PROGRESS: [RequestStatus.ESCALATED],
    },
}


def validate_request_transition(actor, old_status, new_status) -> bool:
    """Return True if ``actor`` may move a request from old_status to new_status."""
    try:
        actor = Actor(actor)
        old_status = RequestStatus(old_status)
        new_status = RequestStatus(new_status)
    except ValueError:
        return False
    return new_status in REQUEST_TRANSITIONS.get(actor, {}).get(old_status, [])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── WifiRequest ──────────────────────────────────────────────────────────────


class WifiRequest(db.Model):
    """
    A guest-submitted WiFi support ticket.

    The primary key is the guest-facing tracking ID (e.g. ``john101a``),
    assigned at intake, never a server-generated key.
    """

    __tablename__ = "wifi_requests"
    __table_args__ = (
        db.Index("ix_wifi_requests_status_created", "status", "created_at"),
        db.Index("ix_wifi_requests_status_updated", "status", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True, comment="Tracking ID")
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    room_number = db.Column(db.String(50), nullable=False)
    device_type = db.Column(db.String(20), nullable=False,
                            comment="smartphone | laptop | tablet | other")
    issue_type = db.Column(db.String(20), nullable=False,
                           comment="connect | slow | disconnect | login | other")
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value, index=True,
                       comment="pending | in-progress | completed | escalated")
    was_escalated = db.Column(db.Boolean, nullable=False, default=False,
                              comment="True once the request has ever been escalated")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow,
                           onupdate=_utcnow)

    comments = db.relationship(
        "RequestComment",
        backref="request",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="[RequestComment.created_at, RequestComment.id]",
    )

    @validates("was_escalated")
    def _validate_was_escalated(self, key, value):
        if self.was_escalated and not value:
            raise ValueError(f"was_escalated cannot be cleared on request {self.id}")
        return bool(value)

    @property
    def resolved_after_escalation(self) -> bool:
        return self.status == RequestStatus.COMPLETED.value and bool(self.was_escalated)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "room_number": self.room_number,
            "device_type": self.device_type,
            "issue_type": self.issue_type,
            "description": self.description,
            "status": self.status,
            "was_escalated": bool(self.was_escalated),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<WifiRequest {self.id} [{self.status}]>"


# ── RequestComment ───────────────────────────────────────────────────────────


class RequestComment(db.Model):
    """
    Append-only comment on a request.

    Authored by the guest ("Guest"), a staff member (display name) or the
    escalation sweep ("System"). Never updated or deleted by the service layer.
    """

    __tablename__ = "request_comments"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.String(64), db.ForeignKey("wifi_requests.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_name = db.Column(db.String(150), nullable=False)
    comment_text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "user_name": self.user_name,
            "comment_text": self.comment_text,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RequestComment {self.id} on {self.request_id} by {self.user_name}>"
