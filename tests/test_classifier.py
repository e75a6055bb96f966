"""Tests for error classification and alert policy."""

from __future__ import annotations

import sqlite3

import httpx
import pytest

from spscjobs.exceptions import (
    DocumentParseError,
    NavigationError,
    PersistenceError,
    StructureChangeError,
)
from spscjobs.resilience.classifier import (
    DocumentParseContext,
    ErrorType,
    FetchContext,
    PersistenceContext,
    classify_error,
    should_alert_for,
)


@pytest.mark.parametrize(
    "message",
    [
        "net::ERR_CERT_AUTHORITY_INVALID certificate error",
        "Timeout 30000ms exceeded",
        "connect ECONNREFUSED 10.0.0.1:443",
        "getaddrinfo ENOTFOUND spsc.sikkim.gov.in",
        "Server responded with 503",
    ],
)
def test_network_vocabulary(message):
    verdict = classify_error(Exception(message))
    assert verdict.type is ErrorType.NETWORK_ERROR
    assert verdict.should_retry
    assert verdict.max_retries == 2
    assert not verdict.should_alert


def test_network_types():
    assert classify_error(httpx.ConnectError("boom")).type is ErrorType.NETWORK_ERROR
    assert classify_error(NavigationError("site down")).type is ErrorType.NETWORK_ERROR


def test_scanned_pdf_is_parse_error():
    verdict = classify_error(DocumentParseError("PDF text too short or empty (likely scanned)"))
    assert verdict.type is ErrorType.PARSE_ERROR
    assert not verdict.should_retry
    assert verdict.max_retries == 0
    assert not verdict.should_alert


def test_parse_context_claims_unknown_errors():
    verdict = classify_error(ValueError("weird"), DocumentParseContext(url="https://x/a.pdf"))
    assert verdict.type is ErrorType.PARSE_ERROR


def test_network_wins_over_parse_context():
    verdict = classify_error(Exception("Read timed out"), DocumentParseContext())
    assert verdict.type is ErrorType.NETWORK_ERROR


def test_structure_change_alerts():
    verdict = classify_error(StructureChangeError("No job listings found - all selectors failed"))
    assert verdict.type is ErrorType.STRUCTURE_CHANGE
    assert not verdict.should_retry
    assert verdict.should_alert


def test_zero_jobs_when_expected_is_structure_change():
    context = FetchContext(url="https://x", jobs_found=0, expected_jobs=True)
    assert classify_error(ValueError("nothing"), context).type is ErrorType.STRUCTURE_CHANGE


def test_persistence_alerts_only_when_exhausted():
    first = classify_error(PersistenceError("write failed"), PersistenceContext("save_job"))
    assert first.type is ErrorType.PERSISTENCE_ERROR
    assert first.should_retry
    assert first.max_retries == 3
    assert not first.should_alert

    exhausted = classify_error(
        sqlite3.OperationalError("disk I/O error"),
        PersistenceContext("save_job", retries_exhausted=True),
    )
    assert exhausted.type is ErrorType.PERSISTENCE_ERROR
    assert exhausted.should_alert


def test_unknown_defaults_to_network():
    verdict = classify_error(RuntimeError("something odd"))
    assert verdict.type is ErrorType.NETWORK_ERROR
    assert verdict.message.startswith("Unknown error")


def test_alert_policy():
    parse = classify_error(DocumentParseError("scanned"))
    structure = classify_error(StructureChangeError("table not found"))
    assert not should_alert_for(parse)
    assert should_alert_for(structure)
    assert not should_alert_for(None, consecutive_zero_job_runs=1)
    assert should_alert_for(None, consecutive_zero_job_runs=2)
    assert should_alert_for(None, crashed=True)


def test_network_wins_over_persistence_vocabulary():
    verdict = classify_error(Exception("timeout: quota exceeded"), PersistenceContext("save_job"))
    assert verdict.type is ErrorType.NETWORK_ERROR


def _status_error(code, url):
    request = httpx.Request("GET", url)
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"Error '{code}' for url '{url}'", request=request, response=response)


def test_http_status_code_beats_numbers_in_url():
    missing = classify_error(
        _status_error(404, "https://spsc.example.org/Advertisements/512.pdf"),
        DocumentParseContext(url="https://spsc.example.org/Advertisements/512.pdf"),
    )
    assert missing.type is ErrorType.PARSE_ERROR
    assert not missing.should_retry

    assert classify_error(_status_error(404, "https://x/503.pdf")).type is ErrorType.PARSE_ERROR


def test_http_5xx_status_is_network():
    verdict = classify_error(_status_error(502, "https://spsc.example.org/a.pdf"))
    assert verdict.type is ErrorType.NETWORK_ERROR
    assert verdict.should_retry
