"""
WifiDesk — Hotel Guest WiFi Support Portal
Background job and notification audit models.

Models:
    - ScheduledJob: one row per registered job (escalation_sweep), holding its
      interval, enabled flag and the outcome of the last run
    - EmailLog: one row per escalation notice per recipient
"""

from datetime import datetime, timedelta, timezone

from wifidesk.models import as_utc, db


EMAIL_STATUSES = {"queued", "sent", "failed", "skipped"}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class ScheduledJob(db.Model):
    """Persisted state of a registered background job."""

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="interval")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="{'minutes': N, 'description': ...}")
    status = db.Column(db.String(20), default="active")
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True)
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def interval_minutes(self):
        """Minutes between runs, or None for a job without an interval."""
        if self.schedule_type != "interval":
            return None
        return (self.schedule_config or {}).get("minutes") or None

    def is_due(self, now: datetime) -> bool:
        """An enabled interval job is due when it never ran or its interval elapsed."""
        minutes = self.interval_minutes
        if not self.is_enabled or not minutes:
            return False
        if self.last_run_at is None:
            return True
        return as_utc(self.last_run_at) + timedelta(minutes=minutes) <= now

    def set_enabled(self, enabled: bool) -> None:
        self.is_enabled = enabled
        self.status = "active" if enabled else "paused"

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        self.last_run_at = _utcnow()
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "interval_minutes": self.interval_minutes,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": _iso(self.last_run_at),
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} every {self.interval_minutes}m [{self.status}]>"


class EmailLog(db.Model):
    """Escalation notice audit row; written even when the mail channel is off."""

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), default="queued",
                       comment="queued, sent, failed, skipped")
    error_message = db.Column(db.Text, nullable=True)

    # Tracking ID of the escalated request; kept as plain text so the audit
    # trail survives independently of the request row
    request_id = db.Column(db.String(64), nullable=True, index=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def mark_sent(self) -> None:
        self.status = "sent"
        self.sent_at = _utcnow()
        self.error_message = None

    def mark_failed(self, error) -> None:
        self.status = "failed"
        self.error_message = str(error)[:1000]

    def mark_skipped(self, reason: str) -> None:
        self.status = "skipped"
        self.error_message = reason

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "subject": self.subject,
            "template_name": self.template_name,
            "status": self.status,
            "error_message": self.error_message,
            "request_id": self.request_id,
            "sent_at": _iso(self.sent_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<EmailLog {self.id} {self.request_id} → {self.recipient_email} [{self.status}]>"
