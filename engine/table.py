"""
Paginated table renderer.

Rows are split into whole-row page slices by `plan_table_pages`; every
slice repeats the column header, slices after the first carry a
"(Continued from previous page)" marker and slices that leave rows behind
end with "Continued on next page (N more items)".  Long tables are capped
at `max_rows` with a closing "Showing first N of M records" note.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.units import mm

from config.settings import TABLE_MAX_ROWS
from engine.layout import LayoutOptimizer, TablePage, plan_table_pages
from engine.models import BrandingProfile, PageCursor, TableColumn
from engine.surface import (
    BORDER, FONT_BODY, FONT_BOLD, FONT_ITALIC, SECTION_HEADING_HEIGHT, TEXT_BODY, TEXT_DARK,
    TEXT_MUTED, PageSurface,
)
from engine.text_fit import ELLIPSIS, truncate_to_width
from utils.formatting import EMPTY, format_value, humanize_key

logger = logging.getLogger(__name__)

HEADER_ROW_HEIGHT = 8 * mm
ROW_HEIGHT = 6 * mm
MARKER_HEIGHT = 6 * mm
NOTICE_HEIGHT = 7 * mm
CELL_PADDING = 1.5 * mm
HEADER_FONT_SIZE = 9
CELL_FONT_SIZE = 8

HEADER_FILL = colors.HexColor("#F5F5F5")
ALT_ROW_FILL = colors.HexColor("#FCFCFC")

DEFAULT_TITLE = "DETAILED BREAKDOWN"
EMPTY_TABLE_MESSAGE = "No detailed data available for this reporting period"
CONTINUED_FROM = "(Continued from previous page)"

CURRENCY_KEYWORDS = (
    "amount", "rent", "balance", "revenue", "expense", "income",
    "cost", "fee", "payment", "paid", "outstanding", "potential",
)


@dataclass
class TableRenderResult:
    cursor: PageCursor
    pages: List[TablePage] = field(default_factory=list)
    rows_rendered: int = 0
    total_rows: int = 0
    truncated: bool = False


# ── Cells ────────────────────────────────────────────────────────────

def infer_format(column: TableColumn, value: Any) -> Optional[str]:
    """Column format, or one guessed from the key when none was declared."""
    if column.format:
        return column.format
    key = column.key.lower()
    if isinstance(value, str):
        return "date" if "date" in key else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if any(word in key for word in CURRENCY_KEYWORDS):
            return "currency"
        if "rate" in key or "percent" in key:
            return "percent"
    return None


def format_cell(value: Any, column: TableColumn, currency: Optional[str] = None) -> str:
    """Formatted cell text; a value that fails to format prints as "-"."""
    if value is None or value == "":
        return EMPTY
    try:
        return format_value(value, infer_format(column, value), column.decimals, currency)
    except (ValueError, TypeError, OverflowError) as exc:
        logger.warning("Cell %s=%r could not be formatted: %s", column.key, value, exc)
        return EMPTY


def char_budget(width: float, font_size: float = CELL_FONT_SIZE) -> int:
    """Rough character count that fits *width* (average glyph ≈ 0.5em)."""
    return max(1, int((width - 2 * CELL_PADDING) / (font_size * 0.5)))


def truncate_cell(text: str, width: float, font: str = FONT_BODY,
                  font_size: float = CELL_FONT_SIZE) -> str:
    text = str(text)
    budget = char_budget(width, font_size)
    if len(text) > budget:
        text = text[:max(1, budget - 1)].rstrip() + ELLIPSIS
    return truncate_to_width(text, width - 2 * CELL_PADDING, font, font_size)


def resolve_columns(columns: Optional[List[TableColumn]],
                    rows: List[Dict[str, Any]]) -> List[TableColumn]:
    """Declared columns, or one per key of the first row."""
    if columns:
        return list(columns)
    if not rows:
        return []
    return [TableColumn(key=key, label=humanize_key(key)) for key in rows[0].keys()]


# ── Rendering ────────────────────────────────────────────────────────

def render_table(surface: PageSurface, cursor: PageCursor, columns: Optional[List[TableColumn]],
                 rows: List[Dict[str, Any]], branding: BrandingProfile,
                 currency: Optional[str] = None, max_rows: Optional[int] = TABLE_MAX_ROWS,
                 title: str = DEFAULT_TITLE,
                 optimizer: Optional[LayoutOptimizer] = None) -> TableRenderResult:
    optimizer = optimizer or LayoutOptimizer(surface.constraints)
    columns = resolve_columns(columns, rows)
    total = len(rows)
    shown = rows[:max_rows] if max_rows else list(rows)
    truncated = total > len(shown)

    # Keep the heading with the header row and the first rows.
    heading = SECTION_HEADING_HEIGHT + 2 * mm
    opening = HEADER_ROW_HEIGHT + min(3, max(1, len(shown))) * ROW_HEIGHT
    if optimizer.orphan_guard(cursor.y, [heading, opening]):
        cursor = surface.new_page(cursor, "table", heading + opening)
    cursor = surface.section_heading(cursor, title)

    if not shown or not columns:
        cursor = surface.ensure_space(cursor, NOTICE_HEIGHT, "table")
        cursor = surface.notice(cursor, EMPTY_TABLE_MESSAGE)
        return TableRenderResult(cursor=cursor, total_rows=total)

    widths = optimizer.column_widths([c.label for c in columns], surface.content_width)
    pages = plan_table_pages(
        len(shown),
        first_available=surface.available(cursor),
        page_available=optimizer.page_capacity,
        header_height=HEADER_ROW_HEIGHT,
        row_height=ROW_HEIGHT,
        marker_height=MARKER_HEIGHT,
        notice_height=NOTICE_HEIGHT,
    )

    for page in pages:
        if page.break_before:
            cursor = surface.new_page(cursor, "table", _page_block_height(page))
        if page.continued:
            surface.text(surface.left, cursor.y + MARKER_HEIGHT - 2 * mm, CONTINUED_FROM,
                         FONT_ITALIC, 8, TEXT_MUTED)
            cursor = cursor.advance(MARKER_HEIGHT)
        cursor = _draw_header(surface, cursor, columns, widths)
        for index in range(page.start, page.stop):
            cursor = _draw_row(surface, cursor, columns, widths, shown[index], currency,
                               shaded=index % 2 == 1)
        if page.remaining:
            surface.text(surface.right, cursor.y + NOTICE_HEIGHT - 2.5 * mm,
                         f"Continued on next page ({page.remaining} more items)",
                         FONT_ITALIC, 8, TEXT_MUTED, align="right")
            cursor = cursor.advance(NOTICE_HEIGHT)

    if truncated:
        cursor = surface.ensure_space(cursor, NOTICE_HEIGHT, "table")
        cursor = surface.notice(cursor, f"Showing first {len(shown)} of {total} records")
        logger.info("Table truncated to %d of %d rows", len(shown), total)

    return TableRenderResult(cursor=cursor, pages=pages, rows_rendered=len(shown),
                             total_rows=total, truncated=truncated)


def _cell_x(surface: PageSurface, left: float, width: float, align: str) -> float:
    if align == "right":
        return left + width - CELL_PADDING
    if align == "center":
        return left + width / 2
    return left + CELL_PADDING


def _page_block_height(page: TablePage) -> float:
    height = HEADER_ROW_HEIGHT + page.row_count * ROW_HEIGHT
    if page.continued:
        height += MARKER_HEIGHT
    if page.remaining:
        height += NOTICE_HEIGHT
    return height


def _draw_header(surface: PageSurface, cursor: PageCursor, columns: List[TableColumn],
                 widths: List[float]) -> PageCursor:
    surface.fill_rect(surface.left, cursor.y, surface.content_width, HEADER_ROW_HEIGHT, HEADER_FILL)
    baseline = cursor.y + HEADER_ROW_HEIGHT / 2 + HEADER_FONT_SIZE * 0.35
    x = surface.left
    for column, width in zip(columns, widths):
        label = truncate_cell(column.label, width, FONT_BOLD, HEADER_FONT_SIZE)
        surface.text(_cell_x(surface, x, width, column.align), baseline, label,
                     FONT_BOLD, HEADER_FONT_SIZE, TEXT_DARK, align=column.align)
        x += width
    surface.hline(surface.left, surface.right, cursor.y + HEADER_ROW_HEIGHT, BORDER, 0.8)
    return cursor.advance(HEADER_ROW_HEIGHT)


def _draw_row(surface: PageSurface, cursor: PageCursor, columns: List[TableColumn],
              widths: List[float], row: Dict[str, Any], currency: Optional[str],
              shaded: bool) -> PageCursor:
    if shaded:
        surface.fill_rect(surface.left, cursor.y, surface.content_width, ROW_HEIGHT, ALT_ROW_FILL)
    baseline = cursor.y + ROW_HEIGHT / 2 + CELL_FONT_SIZE * 0.35
    x = surface.left
    for column, width in zip(columns, widths):
        text = truncate_cell(format_cell(row.get(column.key), column, currency), width)
        surface.text(_cell_x(surface, x, width, column.align), baseline, text,
                     FONT_BODY, CELL_FONT_SIZE, TEXT_BODY, align=column.align)
        x += width
    surface.hline(surface.left, surface.right, cursor.y + ROW_HEIGHT, BORDER, 0.3)
    return cursor.advance(ROW_HEIGHT)
