"""Domain models for spscjobs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


@dataclass(frozen=True)
class RawJob:
    """One row of the notice board, as the extraction layer saw it."""

    post_name: str
    advt_no: str | None = None
    issued_date: str | None = None
    pdf_urls: tuple[str, ...] = ()
    source_url: str = ""
    scraped_at: str = field(default_factory=lambda: utcnow().isoformat())

    @property
    def primary_pdf_url(self) -> str:
        return self.pdf_urls[0] if self.pdf_urls else ""


@dataclass(frozen=True)
class ParsedDocument:
    """Field guesses pulled from a job's PDF."""

    advt_no: str | None = None
    post_name: str | None = None
    department: str | None = None
    total_posts: str | None = None
    qualification: str | None = None
    last_date: str | None = None
    data_complete: bool = True
    parsing_errors: tuple[str, ...] = ()
    extracted_at: str = field(default_factory=lambda: utcnow().isoformat())


@dataclass
class JobRecord:
    """A normalized job posting, keyed by ``identity`` in the ``jobs`` collection."""

    identity: str
    advt_no: str
    post_name: str
    department: str
    total_posts: int
    qualification: str
    issued_date: str | None
    last_date: str
    pdf_url: str
    status: JobStatus
    data_complete: bool = True
    all_pdf_urls: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    scraped_at: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def parsing_errors(self) -> list[str]:
        return list(self.metadata.get("parsing_errors", []))

    def to_document(self) -> dict[str, Any]:
        doc = asdict(self)
        doc["status"] = self.status.value
        return doc


@dataclass
class Alert:
    """A severity-tagged operational notification."""

    severity: str
    title: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())
