"""
WifiDesk — Hotel Guest WiFi Support Portal
Escalation configuration model.

Models:
    - EscalationSettings: singleton row holding recipient emails and the
      pending / in-progress thresholds (minutes) used by the escalation sweep.
"""

from datetime import datetime, timezone

from wifidesk.models import db


DEFAULT_PENDING_THRESHOLD = 20
DEFAULT_PROGRESS_THRESHOLD = 45
MAX_THRESHOLD_MINUTES = 7 * 24 * 60


class EscalationSettings(db.Model):
    """
    Escalation configuration.

    Logically a singleton; the table does not forbid extra rows, so readers
    always take the row with the lowest id.
    """

    __tablename__ = "escalation_settings"

    id = db.Column(db.Integer, primary_key=True)
    emails = db.Column(db.JSON, nullable=True, default=list,
                       comment="Ordered list of recipient email addresses")
    pending_threshold = db.Column(db.Integer, nullable=True,
                                  comment="Minutes a request may stay pending")
    progress_threshold = db.Column(db.Integer, nullable=True,
                                   comment="Minutes a request may stay in-progress")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    @property
    def email_list(self) -> list[str]:
        """Recipient emails as strings; tolerates NULL and non-list JSON."""
        if not isinstance(self.emails, list):
            return []
        return [str(e) for e in self.emails if e]

    def to_dict(self):
        return {
            "id": self.id,
            "emails": self.email_list,
            "pending_threshold": self.pending_threshold,
            "progress_threshold": self.progress_threshold,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<EscalationSettings {self.id}: {len(self.email_list)} recipients>"
