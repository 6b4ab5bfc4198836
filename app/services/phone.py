from __future__ import annotations

import re

from app.services.errors import ValidationFailed

MOBILE_NUMBER_RE = re.compile(r"^[0-9]{10,15}$")


def normalize_mobile_number(raw: str | None) -> str:
    """Strip surrounding whitespace and a leading ``+``; the rest must be 10-15 digits."""
    value = str(raw or "").strip()
    if not value:
        raise ValidationFailed("Mobile number is required")
    if value.startswith("+"):
        value = value[1:]
    if not MOBILE_NUMBER_RE.fullmatch(value):
        raise ValidationFailed("Invalid mobile number format")
    return value


def mask_mobile_number(value: str | None) -> str:
    digits = str(value or "")
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]
