# stampchat/core/validation.py

from __future__ import annotations

import re

from stampchat.core.errors import ValidationError

ROOM_ID_MAX_LENGTH = 10
_ROOM_ID_CHARS = re.compile(r"[a-zA-Z0-9_.-]+")


def validate_room_id(raw: str | None) -> str:
    """
    Validate a user-supplied room id and return its storage key.

    Rules are applied in order: non-empty, allowed characters only
    (letters, digits, "_", "." and "-"), at most 10 characters.
    The accepted id is lower-cased; nothing else is touched.

    Raises:
        ValidationError: with reason "empty", "invalid_characters" or "too_long"
    """
    if not raw:
        raise ValidationError("room_id", "empty", "Room ID is required")
    if not _ROOM_ID_CHARS.fullmatch(raw):
        raise ValidationError(
            "room_id",
            "invalid_characters",
            "Room ID may only contain letters, digits, '_', '.' and '-'",
        )
    if len(raw) > ROOM_ID_MAX_LENGTH:
        raise ValidationError(
            "room_id",
            "too_long",
            f"Room ID must be at most {ROOM_ID_MAX_LENGTH} characters",
        )
    return raw.lower()


def require_text(field: str, value: str | None, label: str) -> str:
    """Reject None or blank input; returns the value unchanged."""
    if value is None or not value.strip():
        raise ValidationError(field, "empty", f"{label} is required")
    return value
