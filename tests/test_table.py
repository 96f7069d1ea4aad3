"""
Tests for the paginated table renderer.
"""

import shutil
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from reportlab.lib.units import mm

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.branding import DEFAULT_BRANDING
from engine.models import PageCursor, TableColumn
from engine.surface import PageSurface, text_width
from engine.table import (
    CONTINUED_FROM,
    EMPTY_TABLE_MESSAGE,
    HEADER_ROW_HEIGHT,
    MARKER_HEIGHT,
    NOTICE_HEIGHT,
    ROW_HEIGHT,
    format_cell,
    infer_format,
    render_table,
    resolve_columns,
    truncate_cell,
)
from engine.text_fit import ELLIPSIS

TEST_OUTPUT = Path(__file__).parent / "_test_output_table"

COLUMNS = [
    TableColumn("tenant", "Tenant"),
    TableColumn("amount", "Amount", align="right", format="currency"),
    TableColumn("status", "Status"),
]


def _rows(count):
    return [{"tenant": f"Tenant {i}", "amount": 1000 + i, "status": "paid"} for i in range(count)]


def _surface():
    return PageSurface(DEFAULT_BRANDING, "Table Test", compress=False)


class TestCells:
    def test_infer_format_from_key(self):
        assert infer_format(TableColumn("amount_paid"), 1200) == "currency"
        assert infer_format(TableColumn("collection_rate"), 85.0) == "percent"
        assert infer_format(TableColumn("due_date"), "2024-03-05") == "date"
        assert infer_format(TableColumn("status"), "paid") is None
        assert infer_format(TableColumn("amount", format="number"), 5) == "number"

    def test_format_cell(self):
        assert format_cell(1500, TableColumn("amount"), "KES") == "KSh 1,500"
        assert format_cell("2024-03-05", TableColumn("due_date")) == "Mar 05, 2024"
        assert format_cell(85, TableColumn("collection_rate")) == "85.0%"
        assert format_cell(None, TableColumn("amount")) == "-"
        assert format_cell("", TableColumn("tenant")) == "-"

    def test_format_failure_prints_placeholder(self):
        with patch("engine.table.format_value", side_effect=ValueError("bad")):
            assert format_cell(12, TableColumn("amount")) == "-"

    def test_truncate_cell_fits_width(self):
        text = truncate_cell("Westlands Heights Apartment Block C, Unit 14B", 40 * mm)
        assert text.endswith(ELLIPSIS)
        assert text_width(text, "Helvetica", 8) <= 40 * mm

    def test_resolve_columns_from_first_row(self):
        columns = resolve_columns(None, [{"tenant_name": "A", "amount": 1}])
        assert [(c.key, c.label) for c in columns] == [
            ("tenant_name", "Tenant Name"), ("amount", "Amount"),
        ]
        assert resolve_columns(COLUMNS, []) == COLUMNS
        assert resolve_columns(None, []) == []


class TestRenderTable:
    def setup_method(self):
        TEST_OUTPUT.mkdir(exist_ok=True)

    def teardown_method(self):
        if TEST_OUTPUT.exists():
            shutil.rmtree(TEST_OUTPUT)

    def test_splits_rows_across_pages_with_markers(self):
        surface = _surface()
        cursor = PageCursor(y=surface.usable_bottom - 148 * mm)

        result = render_table(surface, cursor, COLUMNS, _rows(37), DEFAULT_BRANDING,
                              currency="KES", max_rows=None)
        pdf = surface.finish()
        (TEST_OUTPUT / "table_37.pdf").write_bytes(pdf)

        assert [(p.start, p.stop) for p in result.pages] == [(0, 20), (20, 37)]
        assert result.rows_rendered == 37
        assert not result.truncated
        assert surface.page_count == 2
        assert b"17 more items" in pdf
        assert CONTINUED_FROM[1:-1].encode() in pdf
        assert b"Page 1 of 2" in pdf
        assert b"Page 2 of 2" in pdf
        assert [b.section for b in surface.page_breaks] == ["table"]

    def test_caps_rows_and_adds_notice(self):
        surface = _surface()
        cursor = PageCursor(y=surface.constraints.content_top)

        result = render_table(surface, cursor, COLUMNS, _rows(25), DEFAULT_BRANDING, max_rows=20)
        pdf = surface.finish()

        assert result.truncated
        assert result.rows_rendered == 20
        assert result.total_rows == 25
        assert len(result.pages) == 1
        assert b"Showing first 20 of 25 records" in pdf

    def test_empty_table_draws_notice(self):
        surface = _surface()
        result = render_table(surface, PageCursor(y=100), COLUMNS, [], DEFAULT_BRANDING)
        pdf = surface.finish()

        assert result.rows_rendered == 0
        assert result.pages == []
        assert EMPTY_TABLE_MESSAGE.encode() in pdf

    def test_heading_moves_with_table_near_page_bottom(self):
        surface = _surface()
        cursor = PageCursor(y=surface.usable_bottom - 20 * mm)

        result = render_table(surface, cursor, COLUMNS, _rows(5), DEFAULT_BRANDING)
        surface.finish()

        assert surface.page_breaks[0].section == "table"
        assert result.cursor.page_index == 1
        assert len(result.pages) == 1
        assert not result.pages[0].break_before

    def test_same_table_paginates_identically(self):
        plans = []
        for _ in range(2):
            surface = _surface()
            cursor = PageCursor(y=surface.usable_bottom - 97 * mm)
            result = render_table(surface, cursor, COLUMNS, _rows(64), DEFAULT_BRANDING,
                                  currency="KES", max_rows=None)
            surface.finish()
            plans.append((result.pages, [(b.section, b.required_height, b.page_index)
                                         for b in surface.page_breaks]))

        assert plans[0] == plans[1]
        assert sum(p.row_count for p in plans[0][0]) == 64

    def test_page_breaks_record_the_block_that_moved(self):
        surface = _surface()
        cursor = PageCursor(y=surface.usable_bottom - 60 * mm)
        result = render_table(surface, cursor, COLUMNS, _rows(90), DEFAULT_BRANDING, max_rows=None)
        surface.finish()

        assert len(surface.page_breaks) == len(result.pages) - 1
        for page, page_break in zip(result.pages[1:], surface.page_breaks):
            expected = HEADER_ROW_HEIGHT + page.row_count * ROW_HEIGHT + MARKER_HEIGHT
            if page.remaining:
                expected += NOTICE_HEIGHT
            assert page_break.required_height == pytest.approx(expected)
            assert page_break.required_height <= page_break.available_after
