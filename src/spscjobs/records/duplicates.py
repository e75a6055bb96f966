"""Duplicate detection against the ``jobs`` collection.

The check reads before the pipeline writes, so it is not atomic against a
concurrent run; the run lock is what keeps runs from overlapping. Postings
without an advertisement number go through the fallback identity and can
still be stored twice if their post-name text changes between scrapes.
"""

from __future__ import annotations

import logging

from spscjobs.records.identity import resolve_identity
from spscjobs.storage.jobs import JobRepository

logger = logging.getLogger(__name__)


class DuplicateChecker:
    """Answers "have we stored this posting already?" by identity alone."""

    def __init__(self, jobs: JobRepository, refresh_incomplete: bool = False) -> None:
        self._jobs = jobs
        self._refresh_incomplete = refresh_incomplete

    def is_duplicate(
        self, advt_no: str | None, post_name: str | None, issued_date: str | None
    ) -> bool:
        # post_name and issued_date only matter through the fallback identity.
        return self._jobs.exists(resolve_identity(advt_no, post_name, issued_date))

    def should_skip(self, identity: str) -> bool:
        """Return ``True`` if the posting at *identity* needs no further work.

        With ``refresh_incomplete`` enabled, stored records that lack PDF data
        are processed again so a later scrape can fill them in.
        """
        existing = self._jobs.get(identity)
        if existing is None:
            return False
        if self._refresh_incomplete and existing.get("data_complete") is False:
            logger.info("Re-processing incomplete record %s.", identity)
            return False
        return True
