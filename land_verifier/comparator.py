"""
Field comparison primitives.

All comparisons are pure functions over optional strings. Record-level
UNKNOWN (no canonical record at all) is decided by the caller before any
of these run; a function here only ever sees two values to compare.

Normalization is deliberately narrow: trim leading/trailing whitespace and
case-fold. Inner whitespace, punctuation and diacritics are left alone, so
"12/3" and "12 / 3" do not match.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional

from .models import Outcome


def normalize(value: Optional[str]) -> str:
    """Trim and case-fold. Missing values normalize to the empty string."""
    if value is None:
        return ""
    return value.strip().casefold()


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def compare_text(extracted: Optional[str], canonical: Optional[str]) -> Outcome:
    """MATCH iff both sides are equal after trimming and case-folding."""
    if normalize(extracted) == normalize(canonical):
        return Outcome.MATCH
    return Outcome.MISMATCH


def parse_date(value: Optional[str], formats: Iterable[str]) -> date | None:
    """Parse a date with the first format that fits. Returns None on failure."""
    if is_blank(value):
        return None
    assert value is not None
    text = value.strip()
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def compare_dates(
    extracted: Optional[str],
    canonical: Optional[str],
    *,
    strict: bool = False,
    formats: Iterable[str] = (),
) -> Outcome:
    """Compare two date-of-birth values.

    The default is the legacy textual rule: "01/02/1990" and "1990-02-01"
    are a MISMATCH. With ``strict=True`` both sides are parsed and compared
    as calendar dates; if either side fails to parse we fall back to the
    textual rule rather than guessing.
    """
    if strict:
        formats = tuple(formats)
        left = parse_date(extracted, formats)
        right = parse_date(canonical, formats)
        if left is not None and right is not None:
            return Outcome.MATCH if left == right else Outcome.MISMATCH
    return compare_text(extracted, canonical)


def check_presence(value: Optional[str]) -> Outcome:
    """Presence-only check: MATCH iff the value is non-blank. Never UNKNOWN."""
    return Outcome.MISMATCH if is_blank(value) else Outcome.MATCH
