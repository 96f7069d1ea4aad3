"""
Tests for the formatting utilities.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from utils.formatting import (
    compact_text,
    format_currency,
    format_currency_compact,
    format_date,
    format_duration,
    format_number,
    format_number_compact,
    format_percent,
    format_value,
    humanize_key,
    slugify,
    to_number,
)


def test_to_number_accepts_grouped_strings_and_rejects_garbage():
    assert to_number("12,345.5") == 12345.5
    assert to_number(7) == 7.0
    assert to_number(None) is None
    assert to_number("n/a") is None
    assert to_number(float("nan")) is None
    assert to_number(True) is None


def test_format_currency_regional_and_attached_symbols():
    assert format_currency(1250, "KES") == "KSh 1,250"
    assert format_currency(1250.5, "KES") == "KSh 1,250.5"
    assert format_currency(1200, "USD") == "$1,200.00"
    assert format_currency(-300, "GBP") == "-£300.00"
    assert format_currency(99, "XYZ") == "XYZ 99"
    assert format_currency(None, "KES") == "-"


def test_compact_numbers():
    assert format_number_compact(1234) == "1.2K"
    assert format_number_compact(12_345_678) == "12.3M"
    assert format_number_compact(2_000_000_000) == "2B"
    assert format_number_compact(999.5) == "999.5"
    assert format_currency_compact(12_345_678, "KES") == "KSh 12.3M"
    assert format_currency_compact(950, "KES") == "KSh 950"


def test_compact_text_keeps_prefix_and_suffix():
    assert compact_text("KSh 12,345,678") == "KSh 12.3M"
    assert compact_text("12,500 units") == "12.5K units"
    assert compact_text("87.5%") == "87.5%"
    assert compact_text("Generated") == "Generated"


def test_compact_text_leaves_years_and_dates_alone():
    assert compact_text("Collections 2024") == "Collections 2024"
    assert compact_text("2024-01-05") == "2024-01-05"
    assert compact_text("Invoice INV-10452") == "Invoice INV-10452"
    assert compact_text("12345678") == "12.3M"
    assert compact_text("Due 2024: KSh 1,260,000") == "Due 2024: KSh 1.3M"


def test_percent_and_number():
    assert format_percent(87.5) == "87.5%"
    assert format_percent(90, 0) == "90%"
    assert format_number(1234567) == "1,234,567"
    assert format_number("abc") == "-"


def test_format_date_variants():
    assert format_date("2024-03-15") == "Mar 15, 2024"
    assert format_date("2024-03") == "Mar 01, 2024"
    assert format_date("2024") == "Jan 01, 2024"
    assert format_date("not a date") == "-"
    assert format_date(None) == "-"


def test_format_duration():
    assert format_duration(0.5) == "< 1 day"
    assert format_duration(1) == "1 day"
    assert format_duration(12) == "12 days"
    assert format_duration(90) == "3 months"
    assert format_duration(730) == "2 years"


@pytest.mark.parametrize("value,fmt,expected", [
    (None, "currency", "-"),
    (np.nan, None, "-"),
    (1500, "currency", "KSh 1,500"),
    (45.25, "percent", "45.2%"),
    (1234.5, None, "1,234.5"),
    (0, "duration", "< 1 day"),
    ("Generated", "text", "Generated"),
])
def test_format_value_dispatch(value, fmt, expected):
    assert format_value(value, fmt, currency="KES") == expected


def test_humanize_and_slugify():
    assert humanize_key("collection_rate") == "Collection Rate"
    assert humanize_key("totalRevenue") == "Total Revenue"
    assert slugify("Rent Collection Report!") == "rent-collection-report"
    assert slugify("  Jane  O'Neil ") == "jane-oneil"
