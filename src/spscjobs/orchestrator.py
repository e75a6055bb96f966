"""Pipeline coordinator: Gates → Listings → Identity → Parse → Normalize → Persist."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from spscjobs.discovery.notice_board import ListingSource
from spscjobs.documents.pdf_parser import DocumentParser
from spscjobs.exceptions import KillSwitchEngaged, KillSwitchUnavailable, StructureChangeError
from spscjobs.models import JobRecord, ParsedDocument, RawJob, RunStatus, utcnow
from spscjobs.records.duplicates import DuplicateChecker
from spscjobs.records.identity import resolve_identity
from spscjobs.records.normalizer import normalize
from spscjobs.reporting.alerts import AlertDispatcher
from spscjobs.reporting.console import print_banner, print_run_report
from spscjobs.reporting.run_tracker import RunContext, RunTracker
from spscjobs.resilience.classifier import (
    DocumentParseContext,
    ErrorType,
    FetchContext,
    PersistenceContext,
    classify_error,
    should_alert_for,
)
from spscjobs.resilience.retry import retry_operation
from spscjobs.safety.kill_switch import KillSwitch
from spscjobs.safety.run_lock import RunLock
from spscjobs.settings import AppSettings
from spscjobs.storage.base import DocumentStore
from spscjobs.storage.jobs import JobRepository

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class ScrapePipeline:
    """Wires together all pipeline stages and drives one scraper run."""

    def __init__(
        self,
        settings: AppSettings,
        store: DocumentStore,
        listings: ListingSource,
        documents: DocumentParser,
        alerts: AlertDispatcher,
        *,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._listings = listings
        self._documents = documents
        self._alerts = alerts
        self._clock = clock
        self._sleep = sleep
        environment = settings.mode.value
        self._jobs = JobRepository(store, clock)
        self._duplicates = DuplicateChecker(self._jobs, settings.refresh_incomplete)
        self._tracker = RunTracker(store, environment, clock)
        self._lock = RunLock(
            store, timedelta(minutes=settings.lock_ttl_minutes), clock, environment
        )
        self._kill_switch = KillSwitch(store, alerts, clock)

    async def run(self) -> int:
        """Execute one run and return the process exit code."""
        print_banner(self._settings.notifications_url)

        if not self._kill_switch.is_enabled("startup"):
            logger.error("Scraper disabled by kill switch; no run started.")
            return EXIT_OK

        with self._lock.guard() as acquired:
            if not acquired:
                return EXIT_OK
            ctx = self._tracker.initialize_run()
            return await self._run_tracked(ctx)

    # ---- run level ----

    async def _run_tracked(self, ctx: RunContext) -> int:
        try:
            await self._process_run(ctx)
        except KillSwitchEngaged as exc:
            logger.error("Run %s aborted: %s", ctx.run_id, exc)
            self._tracker.finalize_run(ctx, RunStatus.FAILED, str(exc))
            return EXIT_FAILURE
        except BaseException as exc:
            self._handle_fatal(ctx, exc)
            raise

        self._tracker.finalize_run(ctx)
        self._check_zero_job_streak()
        print_run_report(self._tracker.get_run(ctx.run_id) or {})
        return EXIT_OK

    def _handle_fatal(self, ctx: RunContext, exc: BaseException) -> None:
        if isinstance(exc, (asyncio.CancelledError, KeyboardInterrupt)):
            logger.warning("Run %s cancelled; finalizing as failed.", ctx.run_id)
            self._tracker.finalize_run(ctx, RunStatus.FAILED, "Run cancelled")
            return

        logger.error("Fatal scraper error in run %s: %s", ctx.run_id, exc, exc_info=exc)
        verdict = classify_error(exc, FetchContext(url=self._settings.notifications_url))
        ctx.note_failure(verdict)
        if verdict.type is ErrorType.STRUCTURE_CHANGE:
            self._alerts.structure_change(self._settings.notifications_url, str(exc))
        elif verdict.type is not ErrorType.NETWORK_ERROR and should_alert_for(verdict, crashed=True):
            self._alerts.crash(
                str(exc), ctx.run_id, ctx.jobs_processed, ctx.counters["jobs_found"]
            )
        self._tracker.finalize_run(ctx, RunStatus.FAILED, str(exc) or type(exc).__name__)

    def _check_zero_job_streak(self) -> None:
        try:
            streak = self._tracker.consecutive_zero_job_runs()
        except Exception:
            logger.exception("Could not read recent runs for the zero-job check.")
            return
        if should_alert_for(None, consecutive_zero_job_runs=streak):
            self._alerts.consecutive_zero_jobs(streak)

    async def _process_run(self, ctx: RunContext) -> None:
        url = self._settings.notifications_url
        self._kill_switch.ensure_enabled("navigation")
        raw_jobs = await retry_operation(
            self._listings.fetch_listings, FetchContext(url=url), sleep=self._sleep
        )
        self._tracker.update_run_metrics(ctx, {"jobs_found": len(raw_jobs)})

        if not raw_jobs:
            context = FetchContext(url=url, jobs_found=0, expected_jobs=True)
            verdict = classify_error(StructureChangeError("No usable job rows on the notice board"), context)
            ctx.unexpected_zero_jobs = True
            ctx.note_failure(verdict)
            logger.warning("No jobs found; this may indicate a problem.")
            if verdict.should_alert:
                self._alerts.structure_change(url, "Notice board rows yielded zero jobs")
            return

        total = len(raw_jobs)
        for index, raw in enumerate(raw_jobs, start=1):
            self._kill_switch.ensure_enabled("navigation")
            logger.info("Processing job %d/%d: %s", index, total, raw.post_name)
            try:
                await self._process_job(ctx, raw)
            except (KillSwitchEngaged, KillSwitchUnavailable):
                raise
            except Exception as exc:
                self._record_job_failure(ctx, raw, exc)
            ctx.jobs_processed += 1

            if index < total:
                await self._sleep(self._settings.politeness_delay)

    # ---- job level ----

    async def _process_job(self, ctx: RunContext, raw: RawJob) -> None:
        identity = resolve_identity(raw.advt_no, raw.post_name, raw.issued_date)
        if self._duplicates.should_skip(identity):
            logger.info("Skipping duplicate: %s", identity)
            self._tracker.increment_counter(ctx, "jobs_skipped")
            return

        parsed = await self._parse_document(ctx, raw, identity)
        record = normalize(
            self._build_payload(raw, parsed),
            identity=identity,
            now=self._clock(),
            default_department=self._settings.default_department,
        )

        self._kill_switch.ensure_enabled("persistence")
        await self._save(record)
        self._tracker.increment_counter(ctx, "jobs_inserted")
        if not record.data_complete:
            self._tracker.increment_counter(ctx, "parsing_errors_count")
            logger.warning("Saved incomplete record %s (link only).", identity)
        else:
            logger.info("Saved %s: %s", identity, record.post_name)

    async def _parse_document(self, ctx: RunContext, raw: RawJob, identity: str) -> ParsedDocument:
        url = raw.primary_pdf_url
        context = DocumentParseContext(url=url)
        try:
            return await retry_operation(
                lambda: self._documents.parse(url), context, sleep=self._sleep
            )
        except Exception as exc:
            verdict = classify_error(exc, context)
            ctx.note_failure(verdict)
            logger.warning(
                "PDF parsing failed for %s (%s): %s", identity, verdict.type.value, exc
            )
            return ParsedDocument(data_complete=False, parsing_errors=(str(exc),))

    def _build_payload(self, raw: RawJob, parsed: ParsedDocument) -> dict[str, Any]:
        # Listing values are cleaner than regex guesses from the PDF.
        return {
            "advt_no": raw.advt_no or parsed.advt_no,
            "post_name": raw.post_name or parsed.post_name,
            "issued_date": raw.issued_date,
            "department": parsed.department,
            "total_posts": parsed.total_posts,
            "qualification": parsed.qualification,
            "last_date": parsed.last_date,
            "pdf_url": raw.primary_pdf_url,
            "all_pdf_urls": list(raw.pdf_urls),
            "scraped_at": raw.scraped_at,
            "data_complete": parsed.data_complete,
            "metadata": {
                "source_url": raw.source_url or self._settings.notifications_url,
                "parsing_errors": list(parsed.parsing_errors),
                "extracted_at": parsed.extracted_at,
            },
        }

    async def _save(self, record: JobRecord) -> None:
        async def _write() -> None:
            self._jobs.save(record)

        try:
            await retry_operation(_write, PersistenceContext("save_job"), sleep=self._sleep)
        except Exception as exc:
            verdict = classify_error(exc, PersistenceContext("save_job", retries_exhausted=True))
            if verdict.should_alert:
                self._alerts.persistence_failure(str(exc), record.identity)
            raise

    def _record_job_failure(self, ctx: RunContext, raw: RawJob, exc: Exception) -> None:
        """Count a failed job and keep at least its PDF link."""
        verdict = classify_error(exc)
        ctx.note_failure(verdict)
        logger.warning(
            "Failed to process job %r (%s): %s", raw.post_name, verdict.type.value, exc
        )
        self._tracker.increment_counter(ctx, "parsing_errors_count")

        failed = ParsedDocument(data_complete=False, parsing_errors=(str(exc),))
        try:
            identity = resolve_identity(raw.advt_no, raw.post_name, raw.issued_date)
            record = normalize(
                self._build_payload(raw, failed),
                identity=identity,
                now=self._clock(),
                default_department=self._settings.default_department,
            )
            self._jobs.save(record)
            logger.warning("Saved partial data for %s.", identity)
        except Exception:
            logger.exception("Failed to save partial data for %r.", raw.post_name)
