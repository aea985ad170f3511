"""
Tests — escalation sweep.

Covers:
    1. Threshold boundaries (created_at for pending, updated_at for in-progress)
    2. Audit comment + escalation notice per candidate
    3. Idempotence and exclusion of completed / escalated requests
    4. Zero-recipient policy (default skip, ESCALATE_WITHOUT_RECIPIENTS)
    5. Failure isolation: per-candidate errors, notification errors, store reads
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from wifidesk.core.exceptions import StoreReadError
from wifidesk.models import db
from wifidesk.models.scheduling import EmailLog
from wifidesk.models.wifi_request import RequestComment, RequestStatus, WifiRequest
from wifidesk.services import escalation
from wifidesk.services.email_service import EmailService
from wifidesk.services.escalation import run_sweep

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _ago(minutes):
    return NOW - timedelta(minutes=minutes)


def _status(request_id):
    db.session.expire_all()
    return db.session.get(WifiRequest, request_id)


# ═══════════════════════════════════════════════════════════════════════════
#  Happy path
# ═══════════════════════════════════════════════════════════════════════════

class TestSweepEscalates:

    def test_overdue_pending_request(self, make_request, make_settings):
        make_settings(pending_threshold=20)
        make_request("john101a", created_at=_ago(21))

        result = run_sweep(now=NOW)

        assert result["success"] is True
        assert result["escalated_count"] == 1
        assert result["message"] == "Escalated 1 requests"
        req = _status("john101a")
        assert req.status == "escalated"
        assert req.was_escalated is True

        comments = RequestComment.query.filter_by(request_id="john101a").all()
        assert len(comments) == 1
        assert comments[0].user_name == "System"
        assert "pending for 20+ minutes" in comments[0].comment_text

        logs = EmailLog.query.filter_by(request_id="john101a").all()
        assert [l.recipient_email for l in logs] == ["it@hotel.example"]

    def test_overdue_in_progress_request_uses_updated_at(self, make_request, make_settings):
        make_settings(progress_threshold=45)
        make_request("old1", status=RequestStatus.IN_PROGRESS,
                     created_at=_ago(300), updated_at=_ago(46))
        make_request("fresh1", status=RequestStatus.IN_PROGRESS,
                     created_at=_ago(300), updated_at=_ago(10))

        result = run_sweep(now=NOW)

        assert result["escalated_count"] == 1
        assert _status("old1").status == "escalated"
        assert _status("fresh1").status == "in-progress"
        comment = RequestComment.query.filter_by(request_id="old1").one()
        assert "in progress for 45+ minutes" in comment.comment_text

    def test_configured_thresholds_used_in_comment(self, make_request, make_settings):
        make_settings(pending_threshold=5)
        make_request("abc1", created_at=_ago(6))
        run_sweep(now=NOW)
        comment = RequestComment.query.filter_by(request_id="abc1").one()
        assert "pending for 5+ minutes" in comment.comment_text

    def test_null_thresholds_fall_back_to_defaults(self, make_request, make_settings):
        make_settings(pending_threshold=None, progress_threshold=None)
        make_request("due", created_at=_ago(21))
        make_request("not_due", created_at=_ago(19))

        result = run_sweep(now=NOW)

        assert result["escalated_count"] == 1
        assert _status("due").status == "escalated"
        assert _status("not_due").status == "pending"

    def test_boundary_is_exclusive(self, make_request, make_settings):
        make_settings(pending_threshold=20)
        make_request("edge", created_at=_ago(20))

        assert run_sweep(now=NOW)["escalated_count"] == 0
        assert run_sweep(now=NOW + timedelta(microseconds=1))["escalated_count"] == 1

    def test_outcomes_reported(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(30))

        outcome = run_sweep(now=NOW)["outcomes"][0]

        assert outcome == {
            "request_id": "abc1",
            "previous_status": "pending",
            "new_status": "escalated",
            "transitioned": True,
            "comment_written": True,
            "notified": False,
        }

    def test_notice_sent_when_mail_configured(self, app, make_request, make_settings, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.hotel.example")
        make_settings(emails=["it@hotel.example", "duty@hotel.example"])
        make_request("john101a", created_at=_ago(25))

        with patch.object(EmailService, "_send_smtp") as send:
            result = run_sweep(now=NOW)

        assert result["outcomes"][0]["notified"] is True
        assert send.call_count == 2
        kwargs = send.call_args.kwargs
        assert kwargs["subject"] == "WiFi Request Escalated - john101a"
        assert "Room: 101A" in kwargs["text_body"]
        assert "pending for 20+ minutes" in kwargs["text_body"]
        assert "Please address this request as soon as possible." in kwargs["text_body"]
        assert {l.status for l in EmailLog.query.all()} == {"sent"}


# ═══════════════════════════════════════════════════════════════════════════
#  Exclusions & idempotence
# ═══════════════════════════════════════════════════════════════════════════

class TestSweepIdempotence:

    def test_second_run_escalates_nothing(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(30))

        first = run_sweep(now=NOW)
        second = run_sweep(now=NOW)

        assert first["escalated_count"] == 1
        assert second["escalated_count"] == 0
        assert second["message"] == "No requests to escalate"
        assert RequestComment.query.count() == 1
        assert EmailLog.query.count() == 1

    def test_completed_and_escalated_are_never_candidates(self, make_request, make_settings):
        make_settings()
        make_request("done", status=RequestStatus.COMPLETED, was_escalated=True,
                     created_at=_ago(500))
        make_request("esc", status=RequestStatus.ESCALATED, was_escalated=True,
                     created_at=_ago(500))

        result = run_sweep(now=NOW)

        assert result["candidates"] == 0
        done = _status("done")
        assert done.status == "completed"
        assert done.was_escalated is True

    def test_nothing_due(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(1))
        result = run_sweep(now=NOW)
        assert result == {
            "success": True,
            "escalated_count": 0,
            "candidates": 0,
            "skipped": 0,
            "failed": 0,
            "message": "No requests to escalate",
            "outcomes": [],
        }

    def test_concurrent_escalation_is_skipped(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(30))

        real_query = escalation.store.query_requests_by_status_and_age

        def stale_query(status, field, cutoff):
            rows = real_query(status, field, cutoff)
            if rows:
                # someone else escalates between the read and the write
                escalation.store.update_request_status("abc1", RequestStatus.ESCALATED)
            return rows

        with patch.object(escalation.store, "query_requests_by_status_and_age", side_effect=stale_query):
            result = run_sweep(now=NOW)

        assert result["candidates"] == 1
        assert result["escalated_count"] == 0
        assert result["skipped"] == 1
        assert RequestComment.query.count() == 0
        assert EmailLog.query.count() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Recipient policy
# ═══════════════════════════════════════════════════════════════════════════

class TestSweepRecipients:

    @pytest.mark.parametrize("emails", [[], None])
    def test_no_recipients_skips_sweep(self, make_request, make_settings, emails):
        make_settings(emails=emails)
        make_request("abc1", created_at=_ago(60))

        result = run_sweep(now=NOW)

        assert result["success"] is True
        assert result["escalated_count"] == 0
        assert result["message"] == "No escalation emails configured"
        assert _status("abc1").status == "pending"
        assert RequestComment.query.count() == 0

    def test_no_settings_row_skips_sweep(self, make_request):
        make_request("abc1", created_at=_ago(60))
        result = run_sweep(now=NOW)
        assert result["message"] == "No escalation emails configured"
        assert _status("abc1").status == "pending"

    def test_escalate_without_recipients_switch(self, app, make_request, monkeypatch):
        monkeypatch.setitem(app.config, "ESCALATE_WITHOUT_RECIPIENTS", True)
        make_request("abc1", created_at=_ago(60))

        result = run_sweep(now=NOW)

        assert result["escalated_count"] == 1
        assert result["outcomes"][0]["notified"] is None
        assert _status("abc1").status == "escalated"
        assert RequestComment.query.count() == 1
        assert EmailLog.query.count() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Failure isolation
# ═══════════════════════════════════════════════════════════════════════════

class TestSweepFailures:

    def test_status_write_failure_skips_only_that_candidate(self, make_request, make_settings):
        make_settings()
        make_request("bad1", created_at=_ago(40))
        make_request("good1", created_at=_ago(30))

        real_update = escalation.store.update_request_status

        def flaky_update(request_id, *args, **kwargs):
            if request_id == "bad1":
                raise OperationalError("UPDATE", {}, Exception("database is locked"))
            return real_update(request_id, *args, **kwargs)

        with patch.object(escalation.store, "update_request_status", side_effect=flaky_update):
            result = run_sweep(now=NOW)

        assert result["failed"] == 1
        assert result["escalated_count"] == 1
        assert _status("bad1").status == "pending"
        assert _status("good1").status == "escalated"

    def test_comment_failure_keeps_escalation(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(30))

        with patch.object(escalation.store, "insert_comment", side_effect=SQLAlchemyError("boom")):
            result = run_sweep(now=NOW)

        assert result["escalated_count"] == 1
        assert result["outcomes"][0]["comment_written"] is False
        assert _status("abc1").status == "escalated"

    def test_notification_failure_keeps_escalation(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(30))

        with patch("wifidesk.services.request_lifecycle.NotificationService.notify",
                   side_effect=RuntimeError("mailer down")):
            result = run_sweep(now=NOW)

        assert result["escalated_count"] == 1
        assert result["outcomes"][0]["notified"] is False
        assert result["outcomes"][0]["comment_written"] is True
        assert _status("abc1").status == "escalated"

    def test_smtp_failure_is_logged_not_raised(self, app, make_request, make_settings, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_SERVER", "smtp.hotel.example")
        make_settings()
        make_request("abc1", created_at=_ago(30))

        with patch.object(EmailService, "_send_smtp", side_effect=OSError("connection refused")):
            result = run_sweep(now=NOW)

        assert result["outcomes"][0]["notified"] is False
        log = EmailLog.query.one()
        assert log.status == "failed"
        assert "connection refused" in log.error_message

    def test_settings_read_failure_is_fatal(self, make_request):
        make_request("abc1", created_at=_ago(30))
        with patch.object(escalation.store, "get_escalation_settings",
                          side_effect=OperationalError("SELECT", {}, Exception("gone"))):
            with pytest.raises(StoreReadError):
                run_sweep(now=NOW)
        assert _status("abc1").status == "pending"

    def test_candidate_query_failure_is_fatal(self, make_request, make_settings):
        make_settings()
        make_request("abc1", created_at=_ago(30))
        with patch.object(escalation.store, "query_requests_by_status_and_age",
                          side_effect=OperationalError("SELECT", {}, Exception("gone"))):
            with pytest.raises(StoreReadError):
                run_sweep(now=NOW)
        assert _status("abc1").status == "pending"
