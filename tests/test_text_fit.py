"""
Tests for single-line text fitting and the KPI card layout built on it.
"""

import sys
from pathlib import Path

import pytest
from reportlab.lib.units import mm

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.kpi_grid import grid_columns, layout_kpi_cards
from engine.models import KPIItem
from engine.surface import text_width
from engine.text_fit import ELLIPSIS, fit_text, truncate_to_width

BOLD = "Helvetica-Bold"


class TestFitText:
    def test_text_that_fits_is_untouched(self):
        result = fit_text("KSh 950", 200, BOLD, 13)
        assert result.text == "KSh 950"
        assert result.font_size == 13
        assert result.tier == "full"

    def test_large_currency_is_compacted_first(self):
        result = fit_text("KSh 12,345,678", 80, BOLD, 13)
        assert result.text == "KSh 12.3M"
        assert result.font_size == 13
        assert result.tier == "compact"

    @pytest.mark.parametrize("text", ["Collections 2024", "2024-01-05", "Invoice INV-10452"])
    def test_years_dates_and_references_are_not_compacted(self, text):
        result = fit_text(text, 60, "Helvetica", 10)
        assert result.tier != "compact"
        assert text.startswith(result.text.rstrip(ELLIPSIS).rstrip())

    def test_shrinks_before_truncating(self):
        natural = text_width("Occupancy Rate", "Helvetica", 10)
        result = fit_text("Occupancy Rate", natural * 0.9, "Helvetica", 10)
        assert result.tier == "shrunk"
        assert result.text == "Occupancy Rate"
        assert 8 <= result.font_size < 10
        assert text_width(result.text, "Helvetica", result.font_size) <= natural * 0.9 + 1e-6

    def test_truncates_at_the_floor(self):
        result = fit_text("Westlands Heights Apartment Block C", 60, "Helvetica", 10)
        assert result.tier == "truncated"
        assert result.font_size == 8
        assert result.text.endswith(ELLIPSIS)
        assert text_width(result.text, "Helvetica", 8) <= 60 + 1e-6

    def test_floor_never_exceeds_requested_size(self):
        result = fit_text("Collection Rate", 20, "Helvetica", 6)
        assert result.font_size == 6

    @pytest.mark.parametrize("text,width", [
        ("KSh 12,345,678", 80),
        ("KSh 12,345,678", 40),
        ("Occupancy Rate", 60),
        ("Westlands Heights Apartment Block C", 60),
    ])
    def test_fitting_a_result_again_changes_nothing(self, text, width):
        first = fit_text(text, width, BOLD, 13)
        second = fit_text(first.text, width, BOLD, first.font_size)
        assert (second.text, second.font_size) == (first.text, first.font_size)

    def test_result_always_fits(self):
        for width in (10, 25, 50, 75, 100):
            result = fit_text("KSh 1,234,567,890 collected", width, BOLD, 13)
            assert text_width(result.text, BOLD, result.font_size) <= width + 1e-6


def test_truncate_returns_empty_when_nothing_fits():
    assert truncate_to_width("Anything", 1, "Helvetica", 10) == ""


class TestKPICardLayout:
    def test_grid_columns(self):
        assert grid_columns(6, 4) == 4
        assert grid_columns(2, 4) == 2
        assert grid_columns(3, 0) == 1

    def test_cards_wrap_into_rows(self):
        kpis = [KPIItem(f"Metric {i}", i * 100, "number") for i in range(6)]
        cards = layout_kpi_cards(kpis, 400, 4, 22 * mm, 3 * mm)

        assert [(c.row, c.column) for c in cards] == [
            (0, 0), (0, 1), (0, 2), (0, 3), (1, 0), (1, 1),
        ]
        assert cards[1].x == pytest.approx(cards[0].width + 3 * mm)
        assert cards[4].y == pytest.approx(22 * mm + 3 * mm)
        assert cards[0].width == pytest.approx((400 - 3 * 3 * mm) / 4)

    def test_long_currency_value_is_compacted(self):
        kpis = [KPIItem("Total", 12345678, "currency")] + [
            KPIItem(f"Metric {i}", i, "number") for i in range(3)
        ]
        cards = layout_kpi_cards(kpis, 400, 4, 22 * mm, 3 * mm, "KES")
        assert cards[0].value.text == "KSh 12.3M"
        assert cards[0].value.font_size == 13
        assert cards[1].value.tier == "full"

    def test_labels_are_uppercased_and_fitted(self):
        cards = layout_kpi_cards([KPIItem("Units 1,500 Plus", 1)], 400, 4, 22 * mm, 3 * mm)
        assert cards[0].label.text == "UNITS 1,500 PLUS"
        assert cards[0].label.tier == "full"

        narrow = layout_kpi_cards([KPIItem("Average Monthly Collection Efficiency", 1)] * 4,
                                  200, 4, 22 * mm, 3 * mm)
        label = narrow[0].label
        assert label.tier in ("shrunk", "truncated")
        assert 5 <= label.font_size < 7

    def test_no_kpis_no_cards(self):
        assert layout_kpi_cards([], 400, 4, 22 * mm, 3 * mm) == []
