"""Tests for job identity resolution."""

from __future__ import annotations

from spscjobs.records.identity import (
    fallback_identity,
    is_fallback_identity,
    normalize_advt_no,
    resolve_identity,
)


def test_advt_number_spacing_and_case_collapse():
    assert resolve_identity("19 / spsc / exam / 2025", "Anything", None) == "19_SPSC_EXAM_2025"
    assert resolve_identity("19/SPSC/EXAM/2025", "Other title", "01/01/2024") == "19_SPSC_EXAM_2025"


def test_hyphens_become_underscores():
    assert normalize_advt_no("12-SPSC-ADMN-2024") == "12_SPSC_ADMN_2024"


def test_fallback_uses_date_and_title():
    assert resolve_identity(None, "Junior Engineer", "11/12/2025") == "SPSC_20251211_JUNIOR_ENGINEER"


def test_fallback_title_is_cleaned_and_capped():
    identity = fallback_identity("Assistant (Civil) Engineer, Roads & Bridges Dept.", "11/12/2025")
    title = identity.split("_", 2)[2]
    assert len(title) <= 30
    assert "(" not in identity and "&" not in identity


def test_fallback_without_date():
    assert fallback_identity("Clerk", None) == "SPSC_NODATE_CLERK"


def test_placeholder_advt_numbers_are_not_trusted():
    assert is_fallback_identity("SPSC_20251211_CLERK")
    assert is_fallback_identity("temp_123")
    assert not is_fallback_identity("17/SPSC/EXAM/2025")
    assert resolve_identity("TEMP_99", "Clerk", "11/12/2025") == "SPSC_20251211_CLERK"


def test_blank_advt_falls_back():
    assert resolve_identity("   ", "Clerk", "11/12/2025") == "SPSC_20251211_CLERK"


def test_deterministic():
    first = resolve_identity(None, "Under Secretary", "05/12/2025")
    second = resolve_identity(None, "Under Secretary", "05/12/2025")
    assert first == second
