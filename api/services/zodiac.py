"""Calendar helpers shared by the prompt builder and the fallback generator."""

from __future__ import annotations

from datetime import date
from typing import Optional

from .constants import SIGN_START_DATES, UNKNOWN_SIGN


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def zodiac_sign(birthdate: Optional[str]) -> str:
    """Return the sun sign for a ``YYYY-MM-DD`` birthdate, or ``"Unknown"``."""

    parsed = parse_iso_date(birthdate)
    if parsed is None:
        return UNKNOWN_SIGN
    # Dates before Aquarius begins still belong to Capricorn.
    sign = SIGN_START_DATES[-1][2]
    for month, day, name in SIGN_START_DATES:
        if (parsed.month, parsed.day) >= (month, day):
            sign = name
    return sign


def locale_date_label(date_iso: str) -> str:
    """Long weekday/month label such as ``Wednesday, May 1``.

    Unparseable input is returned unchanged so the label is never empty.
    """

    parsed = parse_iso_date(date_iso)
    if parsed is None:
        return date_iso
    return f"{parsed:%A}, {parsed:%B} {parsed.day}"
