"""Recipient address validation for messaging delivery.

Addresses are international phone numbers.  Everything except digits is
stripped; the remainder must be 7-15 digits without a leading zero (E.164
country codes never start with 0).
"""

from __future__ import annotations

import re

from docbrief.utils.errors import InvalidRecipientError

_NON_DIGITS_RE = re.compile(r"\D")
_MIN_DIGITS = 7
_MAX_DIGITS = 15


def normalize_recipient(raw: str) -> str:
    """Return the digits-only form of *raw*.

    Raises
    ------
    InvalidRecipientError
        If the number is too short, too long, or starts with ``0``.
    """
    digits = _NON_DIGITS_RE.sub("", raw or "")
    if not _MIN_DIGITS <= len(digits) <= _MAX_DIGITS:
        raise InvalidRecipientError(
            message=(
                f"Recipient must have {_MIN_DIGITS}-{_MAX_DIGITS} digits "
                f"including country code, got {len(digits)}"
            )
        )
    if digits.startswith("0"):
        raise InvalidRecipientError(
            message="Recipient must start with a country code, not 0"
        )
    return digits


def is_valid_recipient(raw: str) -> bool:
    try:
        normalize_recipient(raw)
    except InvalidRecipientError:
        return False
    return True


def format_for_whatsapp(raw: str) -> str:
    """Return the ``whatsapp:+<digits>`` form used by Twilio.

    Accepts numbers already in that form (the configured sender usually is).
    """
    return f"whatsapp:+{normalize_recipient(raw)}"
