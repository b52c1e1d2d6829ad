from __future__ import annotations

import pytest

from permit_ocr.extraction.date_normalizer import (
    build_iso_date,
    normalize_date,
    roc_to_gregorian,
)


def test_roc_year_conversion() -> None:
    assert roc_to_gregorian(114) == 2025
    assert roc_to_gregorian(79) == 1990


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("114年11月21日", "2025-11-21"),
        ("99年1月5日", "2010-01-05"),
        ("113 年 2 月 29 日", "2024-02-29"),
    ],
)
def test_bare_roc_ymd_adds_1911(raw: str, expected: str) -> None:
    assert normalize_date(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "2025-11-21",
        "民國114年11月21日",
        "中華民國 114 年 11 月 21 日",
        "114年11月21日",
        "2025年11月21日",
        "114/11/21",
        "114-11-21",
        "114.11.21",
        "2025/11/21",
    ],
)
def test_shapes_agree_on_same_date(raw: str) -> None:
    assert normalize_date(raw) == "2025-11-21"


def test_full_width_digits_are_accepted() -> None:
    assert normalize_date("民國１１４年１１月２１日") == "2025-11-21"


def test_date_found_inside_sentence() -> None:
    assert normalize_date("發文日期：中華民國114年11月21日") == "2025-11-21"


@pytest.mark.parametrize(
    "raw",
    [
        "114年13月1日",
        "114年1月32日",
        "2025-13-01",
        "1800-01-01",
        "2200-01-01",
        "1800/1/1",
        "114年2月30日",
        "民國50年1月1日",
        "not a date",
        "",
        "   ",
    ],
)
def test_invalid_dates_yield_none(raw: str) -> None:
    assert normalize_date(raw) is None


def test_non_string_input_yields_none() -> None:
    assert normalize_date(None) is None
    assert normalize_date(20251121) is None


def test_mixed_delimiters_are_rejected() -> None:
    assert normalize_date("114/11-21") is None


def test_build_iso_date_range_checks() -> None:
    assert build_iso_date(1990, 1, 1) == "1990-01-01"
    assert build_iso_date(2100, 12, 31) == "2100-12-31"
    assert build_iso_date(1989, 12, 31) is None
    assert build_iso_date(2101, 1, 1) is None
