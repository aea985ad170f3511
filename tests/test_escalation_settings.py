"""
Tests — escalation settings singleton and validation.
"""

import pytest

from wifidesk.core.exceptions import ValidationError
from wifidesk.models.escalation import EscalationSettings
from wifidesk.services.escalation_settings import (
    effective_thresholds,
    get_or_create_settings,
    update_settings,
)


class TestGetOrCreateSettings:

    def test_default_is_transient(self):
        settings = get_or_create_settings()
        assert settings.id is None
        assert settings.email_list == []
        assert settings.pending_threshold == 20
        assert settings.progress_threshold == 45
        assert EscalationSettings.query.count() == 0

    def test_persist_creates_row_once(self):
        first = get_or_create_settings(persist=True)
        second = get_or_create_settings(persist=True)
        assert first.id is not None
        assert second.id == first.id
        assert EscalationSettings.query.count() == 1

    def test_first_row_wins(self, make_settings):
        first = make_settings(emails=["a@hotel.example"])
        make_settings(emails=["b@hotel.example"])
        assert get_or_create_settings().id == first.id


class TestEffectiveThresholds:

    def test_none_settings(self):
        assert effective_thresholds(None) == (20, 45)

    def test_null_columns(self, make_settings):
        settings = make_settings(pending_threshold=None, progress_threshold=30)
        assert effective_thresholds(settings) == (20, 30)

    def test_config_defaults(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "ESCALATION_DEFAULT_PENDING_THRESHOLD", 10)
        assert effective_thresholds(None) == (10, 45)


class TestUpdateSettings:

    def test_creates_singleton(self):
        settings = update_settings(emails=["it@hotel.example"], pending_threshold=15,
                                   progress_threshold=30)
        assert settings.id is not None
        assert settings.email_list == ["it@hotel.example"]
        assert (settings.pending_threshold, settings.progress_threshold) == (15, 30)
        assert settings.updated_at is not None

    def test_updates_existing_row(self, make_settings):
        existing = make_settings()
        settings = update_settings(emails=["duty@hotel.example"])
        assert settings.id == existing.id
        assert settings.email_list == ["duty@hotel.example"]
        assert settings.pending_threshold == 20
        assert EscalationSettings.query.count() == 1

    def test_partial_update_keeps_emails(self, make_settings):
        make_settings(emails=["it@hotel.example"])
        settings = update_settings(pending_threshold=5)
        assert settings.email_list == ["it@hotel.example"]
        assert settings.pending_threshold == 5

    def test_empty_list_clears_recipients(self, make_settings):
        make_settings()
        assert update_settings(emails=[]).email_list == []

    def test_strips_whitespace(self):
        settings = update_settings(emails=["  it@hotel.example "])
        assert settings.email_list == ["it@hotel.example"]

    @pytest.mark.parametrize("emails", [
        ["not-an-email"],
        ["it@hotel.example", "IT@Hotel.Example"],
        [""],
        [42],
        "it@hotel.example",
    ])
    def test_invalid_emails(self, emails):
        with pytest.raises(ValidationError) as exc_info:
            update_settings(emails=emails)
        assert "emails" in exc_info.value.details
        assert EscalationSettings.query.count() == 0

    @pytest.mark.parametrize("value", [0, -5, 10081, True, "20", 2.5])
    def test_invalid_thresholds(self, value):
        with pytest.raises(ValidationError):
            update_settings(pending_threshold=value)
        with pytest.raises(ValidationError):
            update_settings(progress_threshold=value)

    def test_max_threshold_accepted(self):
        assert update_settings(progress_threshold=10080).progress_threshold == 10080
