from __future__ import annotations

from datetime import date

import pytest

from fusionops.util import DateRange, fmt_coc_date, pct_change, ratio, to_float, trailing_range, yesterday_range


def test_fmt_coc_date_drops_zero_padding():
    assert fmt_coc_date("2024-02-05") == "2/5/24"
    assert fmt_coc_date("2023-12-31") == "12/31/23"


def test_fmt_coc_date_rejects_non_iso():
    with pytest.raises(ValueError):
        fmt_coc_date("02/05/2024")


def test_date_range_parse_validates_order():
    assert DateRange.parse("2024-01-01", "2024-01-07") == DateRange("2024-01-01", "2024-01-07")
    with pytest.raises(ValueError):
        DateRange.parse("2024-01-07", "2024-01-01")
    with pytest.raises(ValueError):
        DateRange.parse("", "2024-01-01")


def test_insight_windows_end_yesterday():
    today = date(2024, 3, 10)
    assert yesterday_range(today) == DateRange("2024-03-09", "2024-03-09")
    assert trailing_range(today, 7) == DateRange("2024-03-03", "2024-03-09")


def test_numeric_helpers_absorb_garbage():
    assert to_float("12.50") == 12.5
    assert to_float("1,234.5") == 1234.5
    assert to_float("n/a") == 0.0
    assert to_float(None) == 0.0
    assert ratio(10, 0) == 0.0
    assert pct_change(30, 20) == 50.0
    assert pct_change(30, 0) is None
