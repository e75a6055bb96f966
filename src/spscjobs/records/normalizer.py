"""Turn raw scraped + parsed fields into a clean :class:`JobRecord`.

:func:`normalize` never raises: every field has a fallback so a record with
nothing but a PDF link still gets stored. Validation afterwards only logs.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Mapping

from spscjobs.models import JobRecord, JobStatus, utcnow
from spscjobs.records.dates import parse_day_first
from spscjobs.records.identity import is_fallback_identity, resolve_identity

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_URL = "https://spsc.sikkim.gov.in"
DEFAULT_DEPARTMENT = "SPSC"
DEFAULT_QUALIFICATION = "See official notification for qualification details"
PLACEHOLDER_POST_NAMES = frozenset({"", "unknown position", "position not specified"})
MISSING_POST_NAME = "Position Not Specified"
DEFAULT_DEADLINE_DAYS = 30

_POST_NAME_LIMIT = 200
_DEPARTMENT_LIMIT = 100
_QUALIFICATION_LIMIT = 1000
_ELLIPSIS = "..."

_WHITESPACE = re.compile(r"\s+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _truncate(text: str, limit: int, label: str) -> str:
    if len(text) <= limit:
        return text
    logger.warning("%s truncated to %d characters.", label, limit)
    return text[: limit - len(_ELLIPSIS)].rstrip() + _ELLIPSIS


def normalize_advt_no(advt_no: Any, now: datetime) -> str:
    cleaned = _text(advt_no).strip().upper()
    if not cleaned or is_fallback_identity(cleaned):
        # keeps the record inspectable without a real advertisement number
        return f"SPSC/{now.year}/{int(now.timestamp() * 1000)}"
    return cleaned


def normalize_post_name(post_name: Any) -> str:
    cleaned = _WHITESPACE.sub(" ", _text(post_name)).strip()
    if cleaned.lower() in PLACEHOLDER_POST_NAMES:
        return MISSING_POST_NAME
    return _truncate(cleaned, _POST_NAME_LIMIT, "Post name")


def normalize_department(department: Any, default: str = DEFAULT_DEPARTMENT) -> str:
    cleaned = _WHITESPACE.sub(" ", _text(department)).strip()
    if not cleaned:
        return default
    return cleaned[:_DEPARTMENT_LIMIT].rstrip()


def normalize_total_posts(total_posts: Any) -> int:
    if total_posts is None or total_posts == "":
        return 1
    try:
        parsed = int(str(total_posts).strip())
    except ValueError:
        parsed = 0
    if parsed < 1:
        logger.warning("Invalid total_posts %r, defaulting to 1.", total_posts)
        return 1
    return parsed


def normalize_qualification(qualification: Any) -> str:
    text = _text(qualification).strip()
    if not text:
        return DEFAULT_QUALIFICATION
    paragraphs = [
        _WHITESPACE.sub(" ", para).strip() for para in _PARAGRAPH_BREAK.split(text)
    ]
    cleaned = "\n\n".join(p for p in paragraphs if p)
    return _truncate(cleaned, _QUALIFICATION_LIMIT, "Qualification")


def normalize_last_date(last_date: Any, now: datetime) -> tuple[str, bool]:
    """Return ``(iso_date, defaulted)`` for a day-first *last_date*.

    Unknown or unparsable dates become today + 30 days so the posting stays
    visible; the deadline is then a guess.
    """
    raw = _text(last_date).strip()
    parsed = parse_day_first(raw, allow_iso=True)
    if parsed is not None:
        if parsed < now.date():
            logger.warning("Last date is in the past: %s", raw)
        return parsed.isoformat(), False
    if raw:
        logger.warning("Could not parse date %r, defaulting to +%d days.", raw, DEFAULT_DEADLINE_DAYS)
    else:
        logger.warning("No last date found, defaulting to +%d days.", DEFAULT_DEADLINE_DAYS)
    return (now.date() + timedelta(days=DEFAULT_DEADLINE_DAYS)).isoformat(), True


def normalize_issued_date(issued_date: Any) -> str | None:
    raw = _text(issued_date).strip()
    if not raw:
        return None
    parsed = parse_day_first(raw, allow_iso=True)
    return parsed.isoformat() if parsed else raw


def determine_status(last_date_iso: str, now: datetime) -> JobStatus:
    deadline = datetime.fromisoformat(last_date_iso).date()
    return JobStatus.EXPIRED if deadline < now.date() else JobStatus.ACTIVE


def validate_record(record: JobRecord) -> list[str]:
    """Return soft validation problems for *record* and log them."""
    errors: list[str] = []
    if not record.advt_no:
        errors.append("Missing advertisement number")
    if not record.post_name or len(record.post_name) < 3:
        errors.append("Invalid post name")
    if not record.pdf_url or not record.pdf_url.startswith("http"):
        errors.append("Invalid PDF URL")
    if not record.last_date:
        errors.append("Missing last date")
    if errors:
        logger.warning("Validation warnings for %s: %s", record.identity, ", ".join(errors))
    return errors


def normalize(
    raw: Mapping[str, Any],
    *,
    identity: str | None = None,
    now: datetime | None = None,
    default_department: str = DEFAULT_DEPARTMENT,
) -> JobRecord:
    """Build a :class:`JobRecord` from raw fields; never raises.

    Feeding the output's :meth:`JobRecord.to_document` back in yields the
    same record apart from ``updated_at``.
    """
    now = now or utcnow()
    stamp = now.isoformat()

    last_date, defaulted = normalize_last_date(raw.get("last_date"), now)

    metadata = dict(raw.get("metadata") or {})
    metadata.setdefault("source_url", raw.get("source_url") or DEFAULT_SOURCE_URL)
    errors = metadata.get("parsing_errors") or []
    if isinstance(errors, str):
        errors = [errors]
    metadata["parsing_errors"] = [str(e) for e in errors]
    metadata["last_date_defaulted"] = bool(metadata.get("last_date_defaulted")) or defaulted

    urls = raw.get("all_pdf_urls") or raw.get("pdf_urls") or []
    if isinstance(urls, str):
        urls = [urls]
    all_pdf_urls = [str(u) for u in urls]
    pdf_url = _text(raw.get("pdf_url")).strip() or (all_pdf_urls[0] if all_pdf_urls else "")

    record = JobRecord(
        identity=identity
        or raw.get("identity")
        or resolve_identity(raw.get("advt_no"), raw.get("post_name"), raw.get("issued_date")),
        advt_no=normalize_advt_no(raw.get("advt_no"), now),
        post_name=normalize_post_name(raw.get("post_name")),
        department=normalize_department(raw.get("department"), default_department),
        total_posts=normalize_total_posts(raw.get("total_posts")),
        qualification=normalize_qualification(raw.get("qualification")),
        issued_date=normalize_issued_date(raw.get("issued_date")),
        last_date=last_date,
        pdf_url=pdf_url,
        all_pdf_urls=all_pdf_urls,
        status=determine_status(last_date, now),
        data_complete=raw.get("data_complete") is not False,
        metadata=metadata,
        scraped_at=raw.get("scraped_at") or stamp,
        created_at=raw.get("created_at") or stamp,
        updated_at=stamp,
    )
    validate_record(record)
    return record
