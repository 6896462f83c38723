"""Normalization of untrusted client input.

Nothing here raises: malformed input is clamped or defaulted so it can
enter shared state and be broadcast safely.
"""

from typing import Any

from constants import ANONYMOUS_NAME, MAX_DISPLAY_NAME_LENGTH, MAX_MESSAGE_LENGTH


def _coerce(raw: Any) -> str:
    # Falsy payloads (0, False, empty containers) count as missing
    if not raw:
        return ""
    return raw if isinstance(raw, str) else str(raw)


def normalize_display_name(raw: Any) -> str:
    """Trim, truncate to MAX_DISPLAY_NAME_LENGTH and fall back to ANONYMOUS_NAME when empty."""
    name = _coerce(raw).strip()[:MAX_DISPLAY_NAME_LENGTH]
    return name or ANONYMOUS_NAME


def normalize_message_text(raw: Any) -> str:
    """Truncate to MAX_MESSAGE_LENGTH. Surrounding whitespace is kept."""
    return _coerce(raw)[:MAX_MESSAGE_LENGTH]


def is_blank(text: str) -> bool:
    return text.strip() == ""
