"""
WifiDesk — Escalation Settings

Singleton accessor and validated updates for the escalation configuration
(recipient emails and the pending / in-progress thresholds).
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from wifidesk.core.exceptions import ValidationError
from wifidesk.models import db
from wifidesk.models.escalation import (
    DEFAULT_PENDING_THRESHOLD,
    DEFAULT_PROGRESS_THRESHOLD,
    MAX_THRESHOLD_MINUTES,
    EscalationSettings,
)
from wifidesk.services import request_store as store

logger = logging.getLogger(__name__)


def _default_thresholds() -> tuple[int, int]:
    cfg = current_app.config
    return (
        cfg.get("ESCALATION_DEFAULT_PENDING_THRESHOLD", DEFAULT_PENDING_THRESHOLD),
        cfg.get("ESCALATION_DEFAULT_PROGRESS_THRESHOLD", DEFAULT_PROGRESS_THRESHOLD),
    )


def get_or_create_settings(persist: bool = False) -> EscalationSettings:
    """Return the stored settings, or a default record when none exists.

    The default has no recipients and the configured default thresholds.
    It is only written to the database when ``persist`` is true.
    """
    settings = store.get_escalation_settings()
    if settings is not None:
        return settings

    pending, progress = _default_thresholds()
    settings = EscalationSettings(
        emails=[],
        pending_threshold=pending,
        progress_threshold=progress,
    )
    if persist:
        db.session.add(settings)
        db.session.commit()
        logger.info("Created default escalation settings")
    return settings


def effective_thresholds(settings: EscalationSettings | None) -> tuple[int, int]:
    """(pending, progress) minutes, falling back to defaults for NULL columns."""
    pending, progress = _default_thresholds()
    if settings is None:
        return pending, progress
    return (
        settings.pending_threshold or pending,
        settings.progress_threshold or progress,
    )


def _validate_threshold(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    if value < 1 or value > MAX_THRESHOLD_MINUTES:
        raise ValidationError(
            f"{name} must be between 1 and {MAX_THRESHOLD_MINUTES} minutes",
            details={name: value},
        )
    return value


def _validate_emails(emails) -> list[str]:
    if not isinstance(emails, list):
        raise ValidationError("emails must be a list", details={"emails": emails})

    cleaned: list[str] = []
    seen: set[str] = set()
    for raw in emails:
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError("Each email must be a non-empty string", details={"emails": raw})
        addr = raw.strip()
        try:
            validate_email(addr, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationError(f"Invalid email address: {addr}", details={"emails": str(exc)})
        if addr.lower() in seen:
            raise ValidationError(f"Duplicate email address: {addr}", details={"emails": addr})
        seen.add(addr.lower())
        cleaned.append(addr)
    return cleaned


def update_settings(*, emails=None, pending_threshold=None, progress_threshold=None) -> EscalationSettings:
    """Validate and upsert the settings singleton.

    Arguments left as None keep their current (or default) value.

    Raises:
        ValidationError: invalid or duplicate email, threshold out of range.
    """
    current = get_or_create_settings()
    pending_default, progress_default = effective_thresholds(current)

    new_emails = _validate_emails(emails) if emails is not None else current.email_list
    new_pending = (
        _validate_threshold("pending_threshold", pending_threshold)
        if pending_threshold is not None else pending_default
    )
    new_progress = (
        _validate_threshold("progress_threshold", progress_threshold)
        if progress_threshold is not None else progress_default
    )

    settings = store.save_escalation_settings(
        emails=new_emails,
        pending_threshold=new_pending,
        progress_threshold=new_progress,
    )
    logger.info(
        "Escalation settings saved: %d recipients, pending=%dm, progress=%dm",
        len(new_emails), new_pending, new_progress,
    )
    return settings
