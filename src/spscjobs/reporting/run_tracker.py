"""Run lifecycle records in the ``scraper_runs`` collection.

One document per run: created ``running``, updated through the run with
best-effort patches and atomic counters, and finalized exactly once. Metric
writes are observability only; a failing store is logged and the run goes on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from spscjobs.models import RunStatus, utcnow
from spscjobs.resilience.classifier import Classification, ErrorType
from spscjobs.storage.base import Document, DocumentStore

logger = logging.getLogger(__name__)

RUNS_COLLECTION = "scraper_runs"

COUNTER_FIELDS = frozenset(
    {"jobs_found", "jobs_inserted", "jobs_skipped", "parsing_errors_count"}
)


@dataclass
class RunContext:
    """State of one in-flight run, passed explicitly through the pipeline."""

    run_id: str
    started_at: str
    counters: dict[str, int] = field(
        default_factory=lambda: {name: 0 for name in sorted(COUNTER_FIELDS)}
    )
    network_errors: int = 0
    parse_errors: int = 0
    structure_error: bool = False
    unexpected_zero_jobs: bool = False
    jobs_processed: int = 0
    status: RunStatus = RunStatus.RUNNING
    finished_at: str | None = None

    @property
    def finalized(self) -> bool:
        return self.status.is_terminal

    def note_failure(self, classification: Classification) -> None:
        """Tally a classified failure for status derivation."""
        if classification.type is ErrorType.STRUCTURE_CHANGE:
            self.structure_error = True
        elif classification.type is ErrorType.PARSE_ERROR:
            self.parse_errors += 1
        else:
            self.network_errors += 1


def derive_status(ctx: RunContext) -> RunStatus:
    """Pick the terminal status for a run that ended without a fatal error."""
    if ctx.structure_error or ctx.unexpected_zero_jobs:
        return RunStatus.FAILED
    inserted = ctx.counters["jobs_inserted"]
    had_errors = (
        ctx.network_errors > 0
        or ctx.parse_errors > 0
        or ctx.counters["parsing_errors_count"] > 0
    )
    if inserted > 0 and had_errors:
        return RunStatus.PARTIAL
    if inserted > 0:
        return RunStatus.SUCCESS
    # Every posting already stored is a clean run with nothing new.
    if ctx.counters["jobs_found"] > 0 and ctx.counters["jobs_skipped"] == ctx.counters["jobs_found"]:
        return RunStatus.SUCCESS
    return RunStatus.FAILED


class RunTracker:
    """Creates, updates and finalizes run documents."""

    def __init__(
        self,
        store: DocumentStore,
        environment: str = "development",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._environment = environment
        self._clock = clock

    # ---- lifecycle ----

    def initialize_run(self) -> RunContext:
        started = self._clock().isoformat()
        ctx = RunContext(run_id=started, started_at=started)
        self._store.set(
            RUNS_COLLECTION,
            ctx.run_id,
            {
                "run_id": ctx.run_id,
                "started_at": started,
                "finished_at": None,
                "status": RunStatus.RUNNING.value,
                **ctx.counters,
                "fatal_error": None,
                "environment": self._environment,
            },
        )
        logger.info("Scraper run initialized: %s", ctx.run_id)
        return ctx

    def update_run_metrics(self, ctx: RunContext, patch: dict[str, Any]) -> None:
        if ctx.finalized:
            logger.debug("Ignoring metrics update for finalized run %s.", ctx.run_id)
            return
        try:
            self._store.update(RUNS_COLLECTION, ctx.run_id, patch)
        except Exception:
            logger.exception("Failed to update run metrics for %s.", ctx.run_id)
            return
        for name, value in patch.items():
            if name in COUNTER_FIELDS and isinstance(value, int):
                ctx.counters[name] = max(ctx.counters[name], value)

    def increment_counter(self, ctx: RunContext, field_name: str, amount: int = 1) -> None:
        if field_name not in COUNTER_FIELDS:
            raise ValueError(f"Unknown run counter: {field_name}")
        if ctx.finalized:
            logger.debug("Ignoring %s increment for finalized run %s.", field_name, ctx.run_id)
            return
        ctx.counters[field_name] += amount
        try:
            self._store.increment(RUNS_COLLECTION, ctx.run_id, field_name, amount)
        except Exception:
            logger.exception("Failed to increment %s for %s.", field_name, ctx.run_id)

    def finalize_run(
        self,
        ctx: RunContext,
        status: RunStatus | None = None,
        fatal_error: str | None = None,
    ) -> RunStatus:
        """Stamp the terminal status; later calls are ignored."""
        if ctx.finalized:
            logger.warning(
                "Run %s already finalized as %s; ignoring.", ctx.run_id, ctx.status.value
            )
            return ctx.status

        final = status or derive_status(ctx)
        if not final.is_terminal:
            raise ValueError("A run cannot be finalized as running.")
        ctx.status = final
        ctx.finished_at = self._clock().isoformat()
        try:
            self._store.update(
                RUNS_COLLECTION,
                ctx.run_id,
                {
                    "status": final.value,
                    "fatal_error": fatal_error,
                    "finished_at": ctx.finished_at,
                },
            )
            logger.info("Scraper run finalized: %s (%s)", ctx.run_id, final.value)
        except Exception:
            logger.exception("Failed to finalize run %s.", ctx.run_id)
        return final

    # ---- queries ----

    def get_run(self, run_id: str) -> Document | None:
        return self._store.get(RUNS_COLLECTION, run_id)

    def recent_runs(self, limit: int = 7) -> list[Document]:
        return self._store.query(
            RUNS_COLLECTION, order_by="started_at", descending=True, limit=limit
        )

    def latest_run(self) -> Document | None:
        runs = self.recent_runs(limit=1)
        return runs[0] if runs else None

    def runs_with_errors(self, limit: int = 20) -> list[Document]:
        runs = self._store.query(
            RUNS_COLLECTION,
            [("parsing_errors_count", ">", 0)],
            order_by="started_at",
            descending=True,
        )
        runs.sort(key=lambda r: r.get("parsing_errors_count", 0), reverse=True)
        return runs[:limit]

    def find_stuck_runs(self, max_duration: timedelta) -> list[Document]:
        """Runs still ``running`` long after any real run would have ended."""
        cutoff = (self._clock() - max_duration).isoformat()
        return self._store.query(
            RUNS_COLLECTION,
            [
                ("status", "==", RunStatus.RUNNING.value),
                ("finished_at", "==", None),
                ("started_at", "<", cutoff),
            ],
            order_by="started_at",
        )

    def consecutive_zero_job_runs(self, limit: int = 10) -> int:
        """Count finished runs, newest first, that found no jobs."""
        count = 0
        for run in self.recent_runs(limit=limit):
            if run.get("status") == RunStatus.RUNNING.value:
                continue
            if run.get("jobs_found", 0) != 0:
                break
            count += 1
        return count
