"""Canonical document keys for job records.

An advertisement number is the strongest identity the notice board offers:
``"19 / spsc / exam / 2025"`` and ``"19/SPSC/EXAM/2025"`` both become
``19_SPSC_EXAM_2025``. Rows without one fall back to a key built from the
issued date and the post name, which cannot reconcile two scrapes whose
post-name text differs.
"""

from __future__ import annotations

import re

from spscjobs.records.dates import parse_day_first

FALLBACK_PREFIX = "SPSC_"
# Placeholder advertisement numbers produced by earlier scraper versions.
_PLACEHOLDER_PREFIXES = (FALLBACK_PREFIX, "TEMP_")

_TITLE_LIMIT = 30

_WHITESPACE = re.compile(r"\s+")
_NON_ADVT_CHARS = re.compile(r"[^A-Z0-9/\-]")
_SEPARATORS = re.compile(r"[/\-]")
_NON_TITLE_CHARS = re.compile(r"[^A-Z0-9 ]")
_NON_DIGITS = re.compile(r"\D")


def is_fallback_identity(value: str | None) -> bool:
    """Return ``True`` if *value* was generated rather than scraped."""
    if not value:
        return False
    return value.strip().upper().startswith(_PLACEHOLDER_PREFIXES)


def normalize_advt_no(advt_no: str) -> str:
    cleaned = _WHITESPACE.sub("", advt_no.upper())
    cleaned = _NON_ADVT_CHARS.sub("", cleaned)
    return _SEPARATORS.sub("_", cleaned)


def fallback_identity(post_name: str | None, issued_date: str | None) -> str:
    parsed = parse_day_first(issued_date)
    if parsed is not None:
        date_part = parsed.strftime("%Y%m%d")
    else:
        date_part = _NON_DIGITS.sub("", issued_date or "") or "NODATE"

    title = _NON_TITLE_CHARS.sub("", (post_name or "").upper()).strip()
    title = _WHITESPACE.sub("_", title)[:_TITLE_LIMIT]
    return f"{FALLBACK_PREFIX}{date_part}_{title}"


def resolve_identity(
    advt_no: str | None, post_name: str | None, issued_date: str | None
) -> str:
    """Return the deterministic ``jobs`` key for a scraped posting."""
    if advt_no and advt_no.strip() and not is_fallback_identity(advt_no):
        normalized = normalize_advt_no(advt_no)
        if normalized:
            return normalized
    return fallback_identity(post_name, issued_date)
