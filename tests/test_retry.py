"""Tests for classification-driven retries."""

from __future__ import annotations

import pytest

from spscjobs.exceptions import DocumentParseError, PersistenceError
from spscjobs.resilience.classifier import PersistenceContext
from spscjobs.resilience.retry import retry_operation


class Flaky:
    def __init__(self, failures: list[BaseException], result="ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


@pytest.mark.asyncio
async def test_network_error_recovers_with_backoff(sleep):
    op = Flaky([Exception("Timeout exceeded"), Exception("ECONNRESET")])
    assert await retry_operation(op, sleep=sleep) == "ok"
    assert op.calls == 3
    assert sleep.delays == [2, 4]


@pytest.mark.asyncio
async def test_network_error_gives_up_after_two_retries(sleep):
    errors = [Exception(f"Timeout {n}") for n in range(5)]
    op = Flaky(errors)
    with pytest.raises(Exception, match="Timeout 2"):
        await retry_operation(op, sleep=sleep)
    assert op.calls == 3


@pytest.mark.asyncio
async def test_parse_error_is_not_retried(sleep):
    op = Flaky([DocumentParseError("PDF text too short or empty (likely scanned)")])
    with pytest.raises(DocumentParseError):
        await retry_operation(op, sleep=sleep)
    assert op.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_persistence_retries_three_times(sleep):
    op = Flaky([PersistenceError(f"write {n}") for n in range(4)])
    with pytest.raises(PersistenceError, match="write 3"):
        await retry_operation(op, PersistenceContext("save_job"), sleep=sleep)
    assert op.calls == 4
    assert sleep.delays == [2, 4, 8]


@pytest.mark.asyncio
async def test_success_needs_no_sleep(sleep):
    op = Flaky([], result=42)
    assert await retry_operation(op, sleep=sleep) == 42
    assert sleep.delays == []
