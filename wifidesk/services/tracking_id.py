"""
Intake — Tracking ID Generator

Generates the guest-facing tracking ID used as the request primary key:
  - Candidate:  first 4 chars of name + room number without whitespace,
                lower-cased, URL-reserved characters dropped
                (e.g. "John Doe", "101 A" → "john101a"; "Ann", "12/B" → "ann12b")
  - Collision:  candidate + "-" + random 0-99          (e.g. "john101a-42")

The suffix narrows but does not remove the chance of a clash; the primary-key
constraint on insert is the real guarantee (see request_service.create_request).
"""

import random
import re

from wifidesk.models import db
from wifidesk.models.wifi_request import WifiRequest

NAME_PREFIX_LENGTH = 4
SUFFIX_RANGE = 100

_WHITESPACE = re.compile(r"\s+")
# Dropped from IDs so every ID fits in a single URL path segment
_URL_RESERVED = re.compile(r"[/\\?#%&+;:@=$,!*'()\[\]\"<>^`{|}]+")


def generate_tracking_id(name: str, room_number: str) -> str:
    """Return the deterministic candidate ID for a guest name and room.

    An empty name gives an empty prefix; the room number alone is then the
    candidate.
    """
    prefix = _URL_RESERVED.sub("", (name or "")[:NAME_PREFIX_LENGTH]).lower()
    room = _URL_RESERVED.sub("", _WHITESPACE.sub("", room_number or "")).lower()
    return f"{prefix}{room}"


def with_random_suffix(candidate: str, rng: random.Random | None = None) -> str:
    """Append ``-<0..99>`` to a candidate ID."""
    rng = rng or random
    return f"{candidate}-{rng.randrange(SUFFIX_RANGE)}"


def tracking_id_exists(tracking_id: str) -> bool:
    """True if a request already uses this exact ID."""
    return db.session.get(WifiRequest, tracking_id) is not None


def resolve_tracking_id(name: str, room_number: str, rng: random.Random | None = None) -> str:
    """Generate a candidate and de-duplicate it against the store once.

    Returns the plain candidate when it is free, otherwise the candidate with
    a random suffix. The suffixed value is not re-checked.
    """
    candidate = generate_tracking_id(name, room_number)
    if tracking_id_exists(candidate):
        return with_random_suffix(candidate, rng)
    return candidate
