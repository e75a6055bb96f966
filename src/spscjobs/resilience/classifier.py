"""Error classification: one category, one retry/alert policy per failure.

Collaborators mostly surface failures as message text (Playwright, httpx,
sqlite), so the rules match on exception types where we own them and on
message vocabulary otherwise. Rules are evaluated in order and the first
match wins; the order matters because the vocabularies overlap.
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Union

import httpx

from spscjobs.exceptions import (
    DocumentParseError,
    NavigationError,
    PersistenceError,
    StructureChangeError,
)


class ErrorType(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    STRUCTURE_CHANGE = "STRUCTURE_CHANGE"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


# ---- failure contexts ----


@dataclass(frozen=True)
class FetchContext:
    """Loading the notice board."""

    url: str = ""
    jobs_found: int | None = None
    expected_jobs: bool = False


@dataclass(frozen=True)
class DocumentParseContext:
    """Downloading or reading a job's PDF."""

    url: str = ""


@dataclass(frozen=True)
class PersistenceContext:
    """A document store read or write."""

    operation: str = ""
    retries_exhausted: bool = False


FailureContext = Union[FetchContext, DocumentParseContext, PersistenceContext]


@dataclass(frozen=True)
class Classification:
    type: ErrorType
    should_retry: bool
    max_retries: int
    should_alert: bool
    message: str


# ---- vocabularies ----

_NETWORK_TERMS = (
    "certificate",
    "ssl",
    "timeout",
    "timed out",
    "econnrefused",
    "econnreset",
    "enotfound",
    "connection refused",
    "connection reset",
    "network",
    "dns",
    "name resolution",
    "unreachable",
)
_HTTP_5XX = re.compile(r"\b5\d{2}\b")

_PARSE_TERMS = (
    "pdf text too short",
    "too small",
    "scanned",
    "empty",
    "could not extract",
    "unreadable",
)

_STRUCTURE_TERMS = (
    "no job listings found",
    "all selectors failed",
    "page structure changed",
    "table not found",
)

_PERSISTENCE_TERMS = (
    "persistence",
    "permission denied",
    "quota exceeded",
    "deadline exceeded",
    "database is locked",
)


def _mentions(message: str, terms: tuple[str, ...]) -> bool:
    return any(term in message for term in terms)


def _is_network(exc: BaseException, message: str) -> bool:
    if isinstance(exc, (httpx.TransportError, NavigationError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        # the status code is authoritative; URLs in the message may look like one
        return exc.response.status_code >= 500
    return _mentions(message, _NETWORK_TERMS) or bool(_HTTP_5XX.search(message))


def _is_parse(exc: BaseException, message: str, context: FailureContext | None) -> bool:
    # a 4xx response means the document itself is missing
    if isinstance(exc, (DocumentParseError, httpx.HTTPStatusError)):
        return True
    if isinstance(context, DocumentParseContext):
        return True
    return _mentions(message, _PARSE_TERMS)


def _is_structure(exc: BaseException, message: str, context: FailureContext | None) -> bool:
    if isinstance(exc, StructureChangeError):
        return True
    if (
        isinstance(context, FetchContext)
        and context.jobs_found == 0
        and context.expected_jobs
    ):
        return True
    return _mentions(message, _STRUCTURE_TERMS)


def _is_persistence(exc: BaseException, message: str, context: FailureContext | None) -> bool:
    if isinstance(exc, (PersistenceError, sqlite3.Error)):
        return True
    if isinstance(context, PersistenceContext):
        return True
    return _mentions(message, _PERSISTENCE_TERMS)


def classify_error(
    exc: BaseException, context: FailureContext | None = None
) -> Classification:
    """Map *exc* to exactly one :class:`ErrorType` and its policy."""
    message = str(exc).lower()

    if _is_network(exc, message):
        return Classification(
            type=ErrorType.NETWORK_ERROR,
            should_retry=True,
            max_retries=2,
            should_alert=False,
            message="Network connectivity issue",
        )

    if _is_parse(exc, message, context):
        return Classification(
            type=ErrorType.PARSE_ERROR,
            should_retry=False,
            max_retries=0,
            should_alert=False,
            message="PDF parsing failed (expected for scanned PDFs)",
        )

    if _is_structure(exc, message, context):
        return Classification(
            type=ErrorType.STRUCTURE_CHANGE,
            should_retry=False,
            max_retries=0,
            should_alert=True,
            message="Website structure changed - human intervention required",
        )

    if _is_persistence(exc, message, context):
        exhausted = isinstance(context, PersistenceContext) and context.retries_exhausted
        return Classification(
            type=ErrorType.PERSISTENCE_ERROR,
            should_retry=True,
            max_retries=3,
            should_alert=exhausted,
            message="Persistence operation failed",
        )

    return Classification(
        type=ErrorType.NETWORK_ERROR,
        should_retry=True,
        max_retries=2,
        should_alert=False,
        message="Unknown error - treating as network issue",
    )


def should_alert_for(
    classification: Classification | None,
    *,
    consecutive_zero_job_runs: int = 0,
    crashed: bool = False,
) -> bool:
    """Decide whether a human needs to hear about this.

    Scanned PDFs, incomplete records, single-record failures and isolated
    network errors never alert.
    """
    if classification is not None and classification.should_alert:
        return True
    if consecutive_zero_job_runs >= 2:
        return True
    return crashed
