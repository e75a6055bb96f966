"""Download job PDFs and pull field guesses out of their text.

There is no OCR: a scanned PDF yields too little text and is reported as a
:class:`DocumentParseError`, which the pipeline turns into an incomplete
record that still links the PDF.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
from typing import Protocol

import httpx
from pdfminer.high_level import extract_text

from spscjobs.exceptions import DocumentParseError
from spscjobs.models import ParsedDocument
from spscjobs.settings import AppSettings

logger = logging.getLogger(__name__)

_USER_AGENT = "Mozilla/5.0 (compatible; SPSC-Jobs-Bot/1.0)"

_DATE = r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})"

# Each field tries its patterns in order; the first capture wins.
FIELD_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "advt_no": [
        re.compile(r"Advertisement\s+No\.?\s*[:\-]?\s*([A-Z0-9/\-]+)", re.I),
        re.compile(r"Advt\.?\s+No\.?\s*[:\-]?\s*([A-Z0-9/\-]+)", re.I),
        re.compile(r"Notification\s+No\.?\s*[:\-]?\s*([A-Z0-9/\-]+)", re.I),
        re.compile(r"No\.?\s*([A-Z0-9/\-]{5,})", re.I),
    ],
    "post_name": [
        re.compile(r"(?:Post|Position|Vacancy)\s*[:\-]?\s*([A-Za-z\s,&()]+?)(?:\n|Last\s+Date|Total)", re.I),
        re.compile(r"Name\s+of\s+Post\s*[:\-]?\s*([A-Za-z\s,&()]+?)(?:\n|Last\s+Date)", re.I),
        re.compile(r"for\s+the\s+post\s+of\s+([A-Za-z\s,&()]+?)(?:\n|Last\s+Date)", re.I),
    ],
    "last_date": [
        re.compile(r"Last\s+Date\s*[:\-]?\s*" + _DATE, re.I),
        re.compile(r"(?:on|before)\s+" + _DATE, re.I),
        re.compile(r"Closing\s+Date\s*[:\-]?\s*" + _DATE, re.I),
        re.compile(r"up\s+to\s+" + _DATE, re.I),
    ],
    "qualification": [
        re.compile(r"(?:Essential\s+)?Qualification\s*[:\-]?\s*([^\n]+(?:\n(?!\n)[^\n]+)*)", re.I),
        re.compile(r"Educational\s+Qualification\s*[:\-]?\s*([^\n]+(?:\n(?!\n)[^\n]+)*)", re.I),
        re.compile(r"Eligibility\s*[:\-]?\s*([^\n]+(?:\n(?!\n)[^\n]+)*)", re.I),
    ],
    "total_posts": [
        re.compile(r"(?:Total\s+)?(?:No\.\s+of\s+)?(?:Posts?|Vacancies)\s*[:\-]?\s*(\d+)", re.I),
        re.compile(r"(\d+)\s+(?:Posts?|Vacancies)", re.I),
        re.compile(r"Number\s+of\s+Vacancies\s*[:\-]?\s*(\d+)", re.I),
    ],
    "department": [
        re.compile(r"Department\s*[:\-]?\s*([A-Za-z\s&,]+?)(?:\n|Post)", re.I),
        re.compile(r"(?:under|in)\s+([A-Z][A-Za-z\s&,]+?)\s+Department", re.I),
    ],
}


class DocumentParser(Protocol):
    async def parse(self, url: str) -> ParsedDocument:
        """Fetch the document at *url* and return its field guesses."""
        ...


def extract_fields(text: str) -> dict[str, str | None]:
    """Match every field pattern against *text*; misses are ``None``."""
    fields: dict[str, str | None] = {}
    for name, patterns in FIELD_PATTERNS.items():
        value = None
        for pattern in patterns:
            match = pattern.search(text)
            if match and match.group(1).strip():
                value = match.group(1).strip()
                break
        fields[name] = value

    if not fields["advt_no"]:
        logger.warning("Could not extract advertisement number.")
    if not fields["last_date"]:
        logger.warning("Could not extract last date.")
    return fields


class PdfDocumentParser:
    """httpx download + pdfminer.six text extraction."""

    def __init__(self, settings: AppSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client

    def _new_client(self) -> httpx.AsyncClient:
        # Government hosts often serve broken certificate chains; this
        # client is only ever used for PDF downloads.
        return httpx.AsyncClient(
            timeout=self._settings.pdf_timeout,
            verify=False,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        )

    async def download(self, url: str) -> bytes:
        limit = self._settings.pdf_max_bytes
        client = self._client or self._new_client()
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                chunks: list[bytes] = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > limit:
                        raise DocumentParseError(f"PDF exceeds {limit} bytes: {url}")
                    chunks.append(chunk)
        finally:
            if self._client is None:
                await client.aclose()
        return b"".join(chunks)

    async def parse(self, url: str) -> ParsedDocument:
        if not url:
            raise DocumentParseError("Could not extract: no PDF link for this job")
        logger.info("Downloading PDF: %s", url)
        payload = await self.download(url)
        if len(payload) < self._settings.pdf_min_bytes:
            raise DocumentParseError("PDF file too small or empty")

        try:
            text = await asyncio.to_thread(extract_text, io.BytesIO(payload))
        except Exception as exc:
            raise DocumentParseError(f"PDF unreadable: {exc}") from exc

        if len(text.strip()) < self._settings.pdf_min_text_chars:
            raise DocumentParseError("PDF text too short or empty (likely scanned)")

        fields = extract_fields(text)
        logger.info("Extracted fields from %s: %s", url, sorted(k for k, v in fields.items() if v))
        return ParsedDocument(**fields, data_complete=True)
