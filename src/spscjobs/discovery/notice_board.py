"""Scrape job rows from the SPSC notifications page.

Each field has an ordered list of selectors, most specific first, so minor
markup changes degrade to a fallback instead of breaking the run. Only when
the job table or every row selector disappears is it a structure change.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol
from urllib.parse import urljoin

from spscjobs.browser.base import BrowserAdapter
from spscjobs.exceptions import StructureChangeError
from spscjobs.models import RawJob
from spscjobs.settings import AppSettings

logger = logging.getLogger(__name__)

_TABLE_SELECTOR = "#myTable"

_ROW_SELECTORS = [
    "#myTable tbody tr.job-row",
    "table#myTable tr",
    "tr.job-row",
    "table tbody tr",
]
_TITLE_SELECTORS = [
    "a.job-title-link",
    'td a[href="/Advertisement.html"]',
    "td > div > a:first-of-type",
    "td a:first-of-type",
]
_ADVT_SELECTORS = [
    "div.ad-number a",
    "a.ad-number-link",
]
_DATE_SELECTORS = [
    "div.issued-date span.date-value",
    "span.date-value",
]
_PDF_SELECTORS = [
    'ol.pdf-links-list a[href$=".pdf"]',
    'a[href*="/Advertisements/"][href$=".pdf"]',
    'a[href$=".pdf"]',
]

_ADVT_PATTERN = re.compile(r"Advertisement No\.?\s*([A-Z0-9/\-]+)", re.IGNORECASE)
_DATE_PATTERN = re.compile(r"(\d{1,2}/\d{1,2}/\d{4})")


class ListingSource(Protocol):
    async def fetch_listings(self) -> list[RawJob]:
        """Return the raw job rows, in page order."""
        ...


def parse_advt_number(text: str) -> str | None:
    """Pull ``19/SPSC/EXAM/2025`` out of ``"Advertisement No. 19/SPSC/EXAM/2025"``."""
    match = _ADVT_PATTERN.search(text or "")
    return match.group(1) if match else None


def parse_issued_date(text: str) -> str | None:
    match = _DATE_PATTERN.search(text or "")
    return match.group(1) if match else None


def absolute_url(href: str, base_url: str) -> str:
    if href.startswith("http"):
        return href
    return urljoin(base_url + "/", href.lstrip("/"))


async def _first_text(element: Any, selectors: list[str]) -> tuple[str, str] | None:
    """Return ``(selector, text)`` for the first selector with non-empty text."""
    for selector in selectors:
        try:
            found = await element.query_selector(selector)
            if found is None:
                continue
            text = ((await found.text_content()) or "").strip()
        except Exception as exc:
            logger.debug("Selector %s failed: %s", selector, exc)
            continue
        if text:
            return selector, text
    return None


class NoticeBoardScraper:
    """Reads job rows from the notice board through a :class:`BrowserAdapter`."""

    def __init__(self, adapter: BrowserAdapter, settings: AppSettings) -> None:
        self._adapter = adapter
        self._settings = settings

    async def fetch_listings(self) -> list[RawJob]:
        """Launch the browser, collect every usable row, close the browser."""
        await self._adapter.launch(
            headless=self._settings.headless,
            timeout_ms=self._settings.navigation_timeout_ms,
        )
        try:
            url = self._settings.notifications_url
            logger.info("Navigating to %s", url)
            await self._adapter.navigate(url)

            table = await self._adapter.wait_for_selector(
                _TABLE_SELECTOR, state="attached", timeout=10_000
            )
            if table is None:
                raise StructureChangeError(
                    "Page structure changed - job table not found"
                )
            return await self._extract_jobs()
        finally:
            await self._adapter.close()

    async def _extract_jobs(self) -> list[RawJob]:
        rows: list[Any] = []
        for selector in _ROW_SELECTORS:
            try:
                rows = await self._adapter.query_all(selector)
            except Exception as exc:
                logger.warning("Selector failed: %s - %s", selector, exc)
                continue
            if rows:
                logger.info("Using job row selector %s (%d rows).", selector, len(rows))
                break

        if not rows:
            raise StructureChangeError("No job listings found - all selectors failed")

        source_url = await self._adapter.page_url()
        jobs: list[RawJob] = []
        for number, row in enumerate(rows, start=1):
            try:
                job = await self._extract_row(row, number, source_url)
            except Exception as exc:
                logger.warning("Failed to extract job from row %d: %s", number, exc)
                continue
            if job is not None:
                jobs.append(job)
        logger.info("Found %d job listings on page.", len(jobs))
        return jobs

    async def _extract_row(self, row: Any, number: int, source_url: str) -> RawJob | None:
        title = await _first_text(row, _TITLE_SELECTORS)
        if title is None:
            logger.warning("Row %d: no title found, skipping.", number)
            return None

        advt_no = None
        advt = await _first_text(row, _ADVT_SELECTORS)
        if advt is not None:
            advt_no = parse_advt_number(advt[1])
        if advt_no is None:
            logger.warning("Row %d: no advertisement number found.", number)

        issued_date = None
        date_text = await _first_text(row, _DATE_SELECTORS)
        if date_text is not None:
            issued_date = parse_issued_date(date_text[1])
        if issued_date is None:
            logger.warning("Row %d: no issued date found.", number)

        pdf_urls = await self._extract_pdf_urls(row)
        if not pdf_urls:
            logger.warning("Row %d: no PDF links found, skipping.", number)
            return None

        return RawJob(
            post_name=title[1],
            advt_no=advt_no,
            issued_date=issued_date,
            pdf_urls=tuple(pdf_urls),
            source_url=source_url,
        )

    async def _extract_pdf_urls(self, row: Any) -> list[str]:
        for selector in _PDF_SELECTORS:
            try:
                links = await row.query_selector_all(selector)
            except Exception:
                continue
            urls: list[str] = []
            for link in links:
                href = await link.get_attribute("href")
                if href:
                    urls.append(absolute_url(href.strip(), self._settings.base_url))
            if urls:
                return list(dict.fromkeys(urls))
        return []
