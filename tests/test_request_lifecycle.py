"""
Tests — request store conditional writes and the lifecycle state machine.

Covers:
    1. REQUEST_TRANSITIONS table for every actor × state pair
    2. update_request_status conditional write
    3. transition_request: validation, was_escalated, comments, lost races
    4. Staff helpers: change_status / escalate_request / comments
    5. Dashboard listing by view and date range
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from wifidesk.core.exceptions import NotFoundError, TransitionError, ValidationError
from wifidesk.models import as_utc, db
from wifidesk.models.scheduling import EmailLog
from wifidesk.models.wifi_request import (
    Actor,
    RequestComment,
    RequestStatus,
    WifiRequest,
    validate_request_transition,
)
from wifidesk.services import request_service
from wifidesk.services import request_store as store
from wifidesk.services.request_lifecycle import transition_request

P, IP, C, E = (RequestStatus.PENDING, RequestStatus.IN_PROGRESS,
               RequestStatus.COMPLETED, RequestStatus.ESCALATED)

ALLOWED = {
    (Actor.STAFF, P, IP), (Actor.STAFF, P, C), (Actor.STAFF, P, E),
    (Actor.STAFF, IP, C), (Actor.STAFF, IP, E),
    (Actor.STAFF, E, C),
    (Actor.SYSTEM, P, E), (Actor.SYSTEM, IP, E),
}


def _reload(request_id):
    db.session.expire_all()
    return db.session.get(WifiRequest, request_id)


# ═══════════════════════════════════════════════════════════════════════════
#  Transition table
# ═══════════════════════════════════════════════════════════════════════════

class TestTransitionTable:

    @pytest.mark.parametrize("actor", list(Actor))
    @pytest.mark.parametrize("old", list(RequestStatus))
    @pytest.mark.parametrize("new", list(RequestStatus))
    def test_every_pair(self, actor, old, new):
        assert validate_request_transition(actor, old, new) == ((actor, old, new) in ALLOWED)

    def test_accepts_plain_strings(self):
        assert validate_request_transition("staff", "pending", "in-progress")
        assert not validate_request_transition("guest", "pending", "in-progress")

    def test_unknown_values_rejected(self):
        assert not validate_request_transition("staff", "pending", "archived")
        assert not validate_request_transition("robot", "pending", "escalated")


# ═══════════════════════════════════════════════════════════════════════════
#  Store conditional write
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateRequestStatus:

    def test_expected_status_matches(self, make_request):
        make_request("abc1")
        assert store.update_request_status("abc1", IP, P) is True
        assert _reload("abc1").status == "in-progress"

    def test_expected_status_mismatch_is_noop(self, make_request):
        make_request("abc1", status=IP)
        assert store.update_request_status("abc1", E, P) is False
        req = _reload("abc1")
        assert req.status == "in-progress"
        assert req.was_escalated is False

    def test_without_expectation_skips_same_status(self, make_request):
        make_request("abc1", status=E, was_escalated=True)
        assert store.update_request_status("abc1", E) is False

    def test_escalation_sets_flag_and_refreshes_updated_at(self, make_request):
        created = datetime.now(timezone.utc) - timedelta(hours=1)
        make_request("abc1", created_at=created)
        now = datetime.now(timezone.utc)

        assert store.update_request_status("abc1", E, P, now=now) is True
        req = _reload("abc1")
        assert req.was_escalated is True
        assert as_utc(req.updated_at) == now
        assert as_utc(req.updated_at) >= as_utc(req.created_at)

    def test_missing_request(self):
        assert store.update_request_status("nope", IP, P) is False

    def test_query_by_age_is_strict(self, make_request):
        now = datetime.now(timezone.utc)
        make_request("old", created_at=now - timedelta(minutes=30))
        make_request("edge", created_at=now - timedelta(minutes=20))
        make_request("new", created_at=now - timedelta(minutes=5))

        rows = store.query_requests_by_status_and_age(P, "created_at", now - timedelta(minutes=20))
        assert [r.id for r in rows] == ["old"]

    def test_query_rejects_unknown_field(self):
        with pytest.raises(ValueError):
            store.query_requests_by_status_and_age(P, "name", datetime.now(timezone.utc))

    def test_comments_listed_oldest_first(self, make_request):
        make_request("abc1")
        store.insert_comment("abc1", "Guest", "first")
        store.insert_comment("abc1", "IT Staff", "second")
        assert [c.comment_text for c in store.list_comments_by_request("abc1")] == ["first", "second"]


# ═══════════════════════════════════════════════════════════════════════════
#  transition_request
# ═══════════════════════════════════════════════════════════════════════════

class TestTransitionRequest:

    def test_staff_moves_pending_to_in_progress(self, make_request):
        make_request("abc1")
        outcome = transition_request("abc1", IP, Actor.STAFF, user_name="Maria")

        assert outcome.transitioned is True
        assert outcome.previous_status == "pending"
        assert outcome.new_status == "in-progress"
        assert outcome.comment_written is None
        assert _reload("abc1").status == "in-progress"

    def test_in_progress_resets_escalation_clock(self, make_request):
        created = datetime.now(timezone.utc) - timedelta(hours=2)
        make_request("abc1", created_at=created)
        now = datetime.now(timezone.utc)
        transition_request("abc1", IP, Actor.STAFF, user_name="Maria", now=now)
        assert as_utc(_reload("abc1").updated_at) == now

    def test_comment_written_after_transition(self, make_request):
        make_request("abc1")
        outcome = transition_request("abc1", C, Actor.STAFF, user_name="Maria",
                                     comment="Router restarted")
        assert outcome.comment_written is True
        comments = store.list_comments_by_request("abc1")
        assert [(c.user_name, c.comment_text) for c in comments] == [("Maria", "Router restarted")]

    def test_completed_is_terminal(self, make_request):
        make_request("abc1", status=C)
        for target in (P, IP, E):
            with pytest.raises(TransitionError):
                transition_request("abc1", target, Actor.STAFF, user_name="Maria")

    def test_guest_has_no_transitions(self, make_request):
        make_request("abc1")
        with pytest.raises(TransitionError):
            transition_request("abc1", IP, Actor.GUEST, user_name="Guest")

    def test_system_cannot_complete(self, make_request):
        make_request("abc1")
        with pytest.raises(TransitionError):
            transition_request("abc1", C, Actor.SYSTEM, user_name="System")

    def test_unknown_request(self):
        with pytest.raises(NotFoundError):
            transition_request("missing", IP, Actor.STAFF, user_name="Maria")

    def test_was_escalated_survives_completion(self, make_request):
        make_request("abc1")
        transition_request("abc1", E, Actor.STAFF, user_name="Maria")
        transition_request("abc1", C, Actor.STAFF, user_name="Maria")

        req = _reload("abc1")
        assert req.status == "completed"
        assert req.was_escalated is True
        assert req.resolved_after_escalation is True

    def test_was_escalated_cannot_be_cleared(self, make_request):
        req = make_request("abc1", status=E, was_escalated=True)
        with pytest.raises(ValueError):
            req.was_escalated = False

    def test_lost_race_is_noop(self, make_request):
        make_request("abc1", status=E, was_escalated=True)
        outcome = transition_request("abc1", E, Actor.SYSTEM, user_name="System",
                                     comment="auto", expected_status=P)

        assert outcome.transitioned is False
        assert outcome.comment_written is None
        assert RequestComment.query.count() == 0

    def test_comment_failure_keeps_transition(self, make_request):
        make_request("abc1")
        with patch("wifidesk.services.request_store.insert_comment",
                   side_effect=SQLAlchemyError("disk full")):
            outcome = transition_request("abc1", IP, Actor.STAFF, user_name="Maria",
                                         comment="On my way")

        assert outcome.transitioned is True
        assert outcome.comment_written is False
        assert outcome.partial is True
        assert _reload("abc1").status == "in-progress"

    def test_status_write_failure_propagates(self, make_request):
        make_request("abc1")
        with patch("wifidesk.services.request_store.update_request_status",
                   side_effect=SQLAlchemyError("locked")):
            with pytest.raises(SQLAlchemyError):
                transition_request("abc1", IP, Actor.STAFF, user_name="Maria")
        assert _reload("abc1").status == "pending"


# ═══════════════════════════════════════════════════════════════════════════
#  Staff helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestStaffActions:

    def test_manual_escalation_notifies_configured_recipients(self, make_request, make_settings):
        make_request("abc1")
        make_settings(emails=["it@hotel.example", "IT@hotel.example", "duty@hotel.example"])

        outcome = request_service.escalate_request("abc1", user_name="Maria")

        assert outcome.transitioned is True
        assert outcome.notified is False  # mail channel not configured in testing
        logs = EmailLog.query.order_by(EmailLog.id).all()
        assert [l.recipient_email for l in logs] == ["it@hotel.example", "duty@hotel.example"]
        assert {l.status for l in logs} == {"skipped"}
        assert all(l.request_id == "abc1" for l in logs)

    def test_change_status_to_escalated_uses_manual_escalation(self, make_request, make_settings):
        make_request("abc1")
        make_settings()
        outcome = request_service.change_status("abc1", "escalated", user_name="Maria")
        assert outcome.notified is False
        assert EmailLog.query.count() == 1

    def test_change_status_rejects_unknown_status(self, make_request):
        make_request("abc1")
        with pytest.raises(ValidationError):
            request_service.change_status("abc1", "archived")

    def test_blank_staff_name_defaults(self, make_request):
        make_request("abc1")
        comment = request_service.add_staff_comment("abc1", "  ", "Checked the AP")
        assert comment.user_name == "IT Staff"

    def test_guest_comment_author(self, make_request):
        make_request("abc1")
        comment = request_service.add_guest_comment("abc1", "Still broken")
        assert comment.user_name == "Guest"

    def test_guest_comment_unknown_request(self):
        with pytest.raises(NotFoundError):
            request_service.add_guest_comment("missing", "hello")

    def test_blank_comment_rejected(self, make_request):
        make_request("abc1")
        with pytest.raises(ValidationError):
            request_service.add_guest_comment("abc1", "   ")

    @pytest.mark.parametrize("user_name", [42, ["Maria"], {"name": "Maria"}])
    def test_non_string_staff_name_rejected(self, make_request, user_name):
        make_request("abc1")
        with pytest.raises(ValidationError):
            request_service.change_status("abc1", "in-progress", user_name=user_name)
        assert _reload("abc1").status == "pending"

    def test_staff_name_length_limit(self):
        assert request_service.staff_name("S" * 150) == "S" * 150
        with pytest.raises(ValidationError):
            request_service.staff_name("S" * 151)


# ═══════════════════════════════════════════════════════════════════════════
#  Dashboard listing
# ═══════════════════════════════════════════════════════════════════════════

class TestListRequests:

    @pytest.fixture()
    def board(self, make_request):
        now = datetime.now(timezone.utc)
        make_request("old1", created_at=now - timedelta(days=3))
        make_request("new1", created_at=now - timedelta(hours=1), status=IP)
        make_request("done1", created_at=now - timedelta(hours=2), status=C)
        make_request("esc1", created_at=now - timedelta(hours=3), status=C, was_escalated=True)
        return now

    def test_all_view_newest_first_without_plain_completed(self, board):
        assert [r.id for r in request_service.list_requests()] == ["new1", "esc1", "old1"]

    def test_status_view(self, board):
        assert [r.id for r in request_service.list_requests("completed")] == ["done1", "esc1"]

    def test_escalated_view(self, board):
        assert [r.id for r in request_service.list_requests("escalated")] == ["esc1"]

    def test_date_range(self, board):
        today = board.date()
        ids = {r.id for r in request_service.list_requests("all", date_from=today - timedelta(days=1))}
        assert "old1" not in ids

    def test_unknown_view(self):
        with pytest.raises(ValidationError):
            request_service.list_requests("archived")
