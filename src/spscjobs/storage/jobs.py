"""Job record persistence with forward-only enrichment."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from spscjobs.models import JobRecord, utcnow
from spscjobs.storage.base import Document, DocumentStore

logger = logging.getLogger(__name__)

JOBS_COLLECTION = "jobs"

# Fields an incomplete scrape may not overwrite on a complete record.
_STRUCTURED_FIELDS = (
    "advt_no",
    "post_name",
    "department",
    "total_posts",
    "qualification",
    "last_date",
    "status",
    "data_complete",
)


def merge_job_documents(existing: Document | None, incoming: Document, now: str) -> Document:
    """Combine a stored job with a fresh scrape of the same identity.

    ``created_at`` is kept from the first write, ``parsing_errors`` only ever
    grow, and an incomplete scrape never replaces the structured fields of a
    complete record.
    """
    incoming = dict(incoming)
    incoming["updated_at"] = now
    if existing is None:
        incoming["created_at"] = incoming.get("created_at") or now
        return incoming

    merged = dict(existing)
    downgrade = existing.get("data_complete") and not incoming.get("data_complete")
    for key, value in incoming.items():
        if key == "metadata" or (downgrade and key in _STRUCTURED_FIELDS):
            continue
        merged[key] = value
    merged["created_at"] = existing.get("created_at") or now

    old_meta = existing.get("metadata") or {}
    new_meta = incoming.get("metadata") or {}
    metadata = {**old_meta, **new_meta}
    metadata["parsing_errors"] = list(old_meta.get("parsing_errors", [])) + list(
        new_meta.get("parsing_errors", [])
    )
    if downgrade:
        metadata["last_date_defaulted"] = old_meta.get("last_date_defaulted", False)
    merged["metadata"] = metadata

    if downgrade:
        logger.info(
            "Kept complete data for %s; incoming scrape was incomplete.",
            existing.get("identity"),
        )
    return merged


class JobRepository:
    """Reads and conditionally merges documents in the ``jobs`` collection."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    def get(self, identity: str) -> Document | None:
        return self._store.get(JOBS_COLLECTION, identity)

    def exists(self, identity: str) -> bool:
        return self.get(identity) is not None

    def save(self, record: JobRecord) -> Document:
        """Persist *record* under its identity and return the stored document."""
        now = self._clock().isoformat()
        incoming = record.to_document()
        stored = self._store.modify(
            JOBS_COLLECTION,
            record.identity,
            lambda existing: merge_job_documents(existing, incoming, now),
        )
        assert stored is not None
        return stored
