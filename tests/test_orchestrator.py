"""Integration tests for the scrape pipeline (fake listings and PDFs)."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from spscjobs.exceptions import (
    DocumentParseError,
    KillSwitchUnavailable,
    NavigationError,
    PersistenceError,
    StructureChangeError,
)
from spscjobs.models import ParsedDocument, RawJob
from spscjobs.orchestrator import EXIT_FAILURE, EXIT_OK, ScrapePipeline
from spscjobs.reporting.run_tracker import RUNS_COLLECTION
from spscjobs.safety.kill_switch import KillSwitch
from spscjobs.safety.run_lock import LOCK_COLLECTION, LOCK_KEY, RunLock
from spscjobs.storage.jobs import JOBS_COLLECTION
from spscjobs.storage.sqlite_store import SQLiteDocumentStore

PDF_17 = "https://spsc.example.org/Advertisements/17.pdf"
PDF_18 = "https://spsc.example.org/Advertisements/18.pdf"

SCANNED = "PDF text too short or empty (likely scanned)"


def _listing(advt="17/SPSC/EXAM/2025", title="Under Secretary", pdf=PDF_17):
    return RawJob(
        post_name=title,
        advt_no=advt,
        issued_date="05/12/2025",
        pdf_urls=(pdf,),
        source_url="https://spsc.example.org/Notifications.html",
    )


class FakeListings:
    def __init__(self, jobs=None, error: BaseException | None = None) -> None:
        self.jobs = list(jobs or [])
        self.error = error
        self.calls = 0

    async def fetch_listings(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.jobs)


class FakeDocuments:
    def __init__(self, results: dict) -> None:
        self.results = results
        self.requested: list[str] = []

    async def parse(self, url):
        self.requested.append(url)
        result = self.results[url]
        if callable(result):
            result = result()
        if isinstance(result, BaseException):
            raise result
        return result


COMPLETE_17 = ParsedDocument(
    department="Home Department",
    total_posts="3",
    qualification="Graduate",
    last_date="31/12/2025",
)


@pytest.fixture()
def make_pipeline(settings, store, alerts, clock, sleep):
    def _make(listings, documents, **overrides):
        run_settings = settings.model_copy(update=overrides) if overrides else settings
        return ScrapePipeline(
            run_settings, store, listings, documents, alerts, clock=clock, sleep=sleep
        )

    return _make


def _runs(store):
    return store.query(RUNS_COLLECTION, order_by="started_at")


@pytest.mark.asyncio
async def test_scanned_pdf_stores_incomplete_record(make_pipeline, store, sink):
    pipeline = make_pipeline(
        FakeListings([_listing()]), FakeDocuments({PDF_17: DocumentParseError(SCANNED)})
    )
    assert await pipeline.run() == EXIT_OK

    job = store.get(JOBS_COLLECTION, "17_SPSC_EXAM_2025")
    assert job["data_complete"] is False
    assert job["status"] == "active"
    assert job["pdf_url"] == PDF_17
    assert job["advt_no"] == "17/SPSC/EXAM/2025"
    assert job["post_name"] == "Under Secretary"
    assert SCANNED in job["metadata"]["parsing_errors"]
    assert job["metadata"]["last_date_defaulted"] is True

    (run,) = _runs(store)
    assert run["jobs_found"] == 1
    assert run["jobs_inserted"] == 1
    assert run["parsing_errors_count"] == 1
    assert run["status"] == "partial"
    assert sink.alerts == []


@pytest.mark.asyncio
async def test_complete_run(make_pipeline, store, sleep, sink):
    documents = FakeDocuments({
        PDF_17: COMPLETE_17,
        PDF_18: ParsedDocument(department="Finance", last_date="15/01/2026"),
    })
    pipeline = make_pipeline(
        FakeListings([_listing(), _listing("18/SPSC/EXAM/2025", "Accountant", PDF_18)]),
        documents,
        politeness_delay=2.0,
    )
    assert await pipeline.run() == EXIT_OK

    job = store.get(JOBS_COLLECTION, "17_SPSC_EXAM_2025")
    assert job["data_complete"] is True
    assert job["department"] == "Home Department"
    assert job["total_posts"] == 3
    assert job["last_date"] == "2025-12-31"
    assert store.get(JOBS_COLLECTION, "18_SPSC_EXAM_2025")["department"] == "Finance"

    (run,) = _runs(store)
    assert run["status"] == "success"
    assert run["jobs_inserted"] == 2
    assert run["finished_at"] is not None
    assert sleep.delays == [2.0]
    assert store.get(LOCK_COLLECTION, LOCK_KEY) is None
    assert sink.alerts == []


@pytest.mark.asyncio
async def test_second_run_skips_duplicates(make_pipeline, store, clock):
    documents = FakeDocuments({PDF_17: COMPLETE_17})
    await make_pipeline(FakeListings([_listing()]), documents).run()
    clock.advance(hours=6)
    await make_pipeline(FakeListings([_listing()]), documents).run()

    assert documents.requested == [PDF_17]
    first, second = _runs(store)
    assert second["jobs_skipped"] == 1
    assert second["jobs_inserted"] == 0
    assert second["status"] == "success"


@pytest.mark.asyncio
async def test_held_lock_exits_quietly(make_pipeline, store, clock):
    RunLock(store, timedelta(minutes=30), clock).acquire()
    listings = FakeListings([_listing()])
    assert await make_pipeline(listings, FakeDocuments({})).run() == EXIT_OK
    assert listings.calls == 0
    assert _runs(store) == []


@pytest.mark.asyncio
async def test_kill_switch_at_startup(make_pipeline, store, sink):
    KillSwitch(store).disable("maintenance")
    listings = FakeListings([_listing()])
    assert await make_pipeline(listings, FakeDocuments({})).run() == EXIT_OK
    assert listings.calls == 0
    assert _runs(store) == []
    assert sink.titles == ["Scraper Disabled via Kill Switch"]


@pytest.mark.asyncio
async def test_kill_switch_mid_run(make_pipeline, store):
    def disable_then_parse():
        KillSwitch(store).disable("stop now")
        return COMPLETE_17

    pipeline = make_pipeline(
        FakeListings([_listing()]), FakeDocuments({PDF_17: disable_then_parse})
    )
    assert await pipeline.run() == EXIT_FAILURE

    assert store.get(JOBS_COLLECTION, "17_SPSC_EXAM_2025") is None
    (run,) = _runs(store)
    assert run["status"] == "failed"
    assert "Kill switch" in run["fatal_error"]
    assert store.get(LOCK_COLLECTION, LOCK_KEY) is None


@pytest.mark.asyncio
async def test_structure_change_is_fatal_and_alerts(make_pipeline, store, sink, sleep):
    listings = FakeListings(error=StructureChangeError("No job listings found - all selectors failed"))
    with pytest.raises(StructureChangeError):
        await make_pipeline(listings, FakeDocuments({})).run()

    assert listings.calls == 1
    assert sleep.delays == []
    (run,) = _runs(store)
    assert run["status"] == "failed"
    assert "all selectors failed" in run["fatal_error"]
    assert sink.titles == ["SPSC Website Structure Changed"]
    assert store.get(LOCK_COLLECTION, LOCK_KEY) is None


@pytest.mark.asyncio
async def test_site_down_retries_then_fails_without_alert(make_pipeline, store, sink, sleep):
    listings = FakeListings(error=NavigationError("SPSC website is down or unreachable: timeout"))
    with pytest.raises(NavigationError):
        await make_pipeline(listings, FakeDocuments({})).run()

    assert listings.calls == 3
    assert sleep.delays == [2, 4]
    (run,) = _runs(store)
    assert run["status"] == "failed"
    assert sink.alerts == []


@pytest.mark.asyncio
async def test_zero_jobs_fails_run_and_alerts(make_pipeline, store, sink, clock):
    assert await make_pipeline(FakeListings([]), FakeDocuments({})).run() == EXIT_OK
    (run,) = _runs(store)
    assert run["status"] == "failed"
    assert run["jobs_found"] == 0
    assert sink.titles == ["SPSC Website Structure Changed"]

    clock.advance(hours=6)
    await make_pipeline(FakeListings([]), FakeDocuments({})).run()
    assert "2 Consecutive Runs with Zero Jobs" in sink.titles


class JobsWriteFailingStore(SQLiteDocumentStore):
    def modify(self, collection, key, mutate):
        if collection == JOBS_COLLECTION:
            raise PersistenceError("Persistence modify failed: disk I/O error")
        return super().modify(collection, key, mutate)


@pytest.mark.asyncio
async def test_persistence_failure_alerts_after_retries(settings, alerts, sink, clock, sleep, tmp_path):
    store = JobsWriteFailingStore(tmp_path / "failing.db")
    try:
        pipeline = ScrapePipeline(
            settings,
            store,
            FakeListings([_listing()]),
            FakeDocuments({PDF_17: COMPLETE_17}),
            alerts,
            clock=clock,
            sleep=sleep,
        )
        assert await pipeline.run() == EXIT_OK

        assert sleep.delays == [2, 4, 8]
        assert sink.titles == ["Job Store Write Failed After Retries"]
        assert sink.alerts[0].context["identity"] == "17_SPSC_EXAM_2025"
        (run,) = _runs(store)
        assert run["jobs_inserted"] == 0
        assert run["parsing_errors_count"] == 1
        assert run["status"] == "failed"
    finally:
        store.close()


@pytest.mark.asyncio
async def test_one_bad_job_does_not_stop_the_run(make_pipeline, store):
    documents = FakeDocuments({PDF_17: COMPLETE_17, PDF_18: ValueError("unexpected layout")})
    pipeline = make_pipeline(
        FakeListings([_listing(), _listing("18/SPSC/EXAM/2025", "Accountant", PDF_18)]),
        documents,
    )
    assert await pipeline.run() == EXIT_OK

    assert store.get(JOBS_COLLECTION, "17_SPSC_EXAM_2025")["data_complete"] is True
    broken = store.get(JOBS_COLLECTION, "18_SPSC_EXAM_2025")
    assert broken["data_complete"] is False
    assert broken["metadata"]["parsing_errors"] == ["unexpected layout"]
    (run,) = _runs(store)
    assert run["status"] == "partial"


@pytest.mark.asyncio
async def test_cancellation_finalizes_run(make_pipeline, store, sink):
    pipeline = make_pipeline(
        FakeListings([_listing()]), FakeDocuments({PDF_17: asyncio.CancelledError()})
    )
    with pytest.raises(asyncio.CancelledError):
        await pipeline.run()

    (run,) = _runs(store)
    assert run["status"] == "failed"
    assert run["fatal_error"] == "Run cancelled"
    assert store.get(LOCK_COLLECTION, LOCK_KEY) is None
    assert sink.alerts == []


class ControlReadFailingStore(SQLiteDocumentStore):
    """Fails the kill-switch read once a given number of reads have succeeded."""

    def __init__(self, db_path, healthy_reads: int) -> None:
        super().__init__(db_path)
        self.healthy_reads = healthy_reads
        self.control_reads = 0

    def get(self, collection, key):
        if collection == "system_controls":
            self.control_reads += 1
            if self.control_reads > self.healthy_reads:
                raise PersistenceError("Persistence get failed: disk I/O error")
        return super().get(collection, key)


@pytest.mark.asyncio
async def test_unreadable_kill_switch_mid_run_fails_the_run(settings, alerts, sink, clock, sleep, tmp_path):
    # startup, navigation and the per-record navigation check succeed; the persistence check fails
    store = ControlReadFailingStore(tmp_path / "controls.db", healthy_reads=3)
    try:
        pipeline = ScrapePipeline(
            settings,
            store,
            FakeListings([_listing()]),
            FakeDocuments({PDF_17: COMPLETE_17}),
            alerts,
            clock=clock,
            sleep=sleep,
        )
        with pytest.raises(KillSwitchUnavailable):
            await pipeline.run()

        assert store.get(JOBS_COLLECTION, "17_SPSC_EXAM_2025") is None
        (run,) = _runs(store)
        assert run["status"] == "failed"
        assert "Kill switch unreadable (persistence)" in run["fatal_error"]
        assert run["parsing_errors_count"] == 0
        assert sink.titles == ["Scraper Crashed Mid-Run"]
        assert store.get(LOCK_COLLECTION, LOCK_KEY) is None
    finally:
        store.close()
