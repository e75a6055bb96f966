"""Day-first date parsing for notice-board and PDF dates."""

from __future__ import annotations

from datetime import date, datetime

# First match wins. %d/%m also accept single digits, covering D/M/YYYY.
DAY_FIRST_FORMATS: tuple[str, ...] = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d/%m/%y",
    "%d-%m-%y",
    "%d.%m.%y",
)
ISO_FORMAT = "%Y-%m-%d"


def parse_day_first(text: str | None, *, allow_iso: bool = False) -> date | None:
    """Parse *text* as a day-first date, or return ``None``."""
    if not text:
        return None
    candidate = text.strip()
    formats = DAY_FIRST_FORMATS + ((ISO_FORMAT,) if allow_iso else ())
    for fmt in formats:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None
