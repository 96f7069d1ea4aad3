"""
KPI grid renderer.

Cards are laid out row by row, at most `max_kpis_per_row` per row, with
card height and gutter taken from the layout density.  Card values and
labels are fitted into the card width (compact → shrink → truncate) so
long figures never overflow into a neighbour.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.units import mm

from engine.layout import LayoutOptimizer
from engine.models import BrandingProfile, KPIItem, PageCursor
from engine.surface import BORDER, FONT_BODY, FONT_BOLD, TEXT_DARK, TEXT_MUTED, PageSurface
from engine.text_fit import FittedText, fit_text

logger = logging.getLogger(__name__)

VALUE_FONT_SIZE = 13
LABEL_FONT_SIZE = 7
LABEL_MIN_FONT_SIZE = 5
CHANGE_FONT_SIZE = 7
CARD_PADDING = 3 * mm
ACCENT_BAR_WIDTH = 1.2 * mm
CARD_FILL = colors.HexColor("#FFFFFF")

TREND_GLYPHS = {"up": "▲", "down": "▼", "stable": "●"}
# ZapfDingbats code points for the same glyphs (Helvetica has none)
_DINGBATS = {"up": "s", "down": "t", "stable": "l"}
TREND_COLORS = {
    "up": colors.HexColor("#22C55E"),
    "down": colors.HexColor("#EF4444"),
    "stable": colors.HexColor("#6B7280"),
}

EMPTY_KPI_MESSAGE = "No key metrics available for this reporting period"


@dataclass(frozen=True)
class KPICardLayout:
    kpi: KPIItem
    row: int
    column: int
    x: float          # offset from the left margin
    y: float          # offset from the grid's top
    width: float
    height: float
    value: FittedText
    label: FittedText


def grid_columns(count: int, max_per_row: int) -> int:
    return max(1, min(max(1, max_per_row), count))


def layout_kpi_cards(kpis: List[KPIItem], available_width: float, max_per_row: int,
                     card_height: float, spacing: float,
                     currency: Optional[str] = None) -> List[KPICardLayout]:
    """Pure placement of every card; no drawing."""
    if not kpis:
        return []
    columns = grid_columns(len(kpis), max_per_row)
    width = (available_width - (columns - 1) * spacing) / columns
    text_width = width - 2 * CARD_PADDING - ACCENT_BAR_WIDTH

    cards = []
    for index, kpi in enumerate(kpis):
        row, column = divmod(index, columns)
        value = fit_text(kpi.display_value(currency), text_width, FONT_BOLD, VALUE_FONT_SIZE)
        label = fit_text(kpi.label.upper(), text_width, FONT_BODY, LABEL_FONT_SIZE,
                         min_font_size=LABEL_MIN_FONT_SIZE)
        if value.tier != "full":
            logger.debug("KPI %r value fitted as %s (%.1fpt)", kpi.label, value.tier, value.font_size)
        cards.append(KPICardLayout(
            kpi=kpi, row=row, column=column,
            x=column * (width + spacing), y=row * (card_height + spacing),
            width=width, height=card_height, value=value, label=label,
        ))
    return cards


def _rows(cards: List[KPICardLayout]) -> List[List[KPICardLayout]]:
    rows: List[List[KPICardLayout]] = []
    for card in cards:
        if card.row == len(rows):
            rows.append([])
        rows[card.row].append(card)
    return rows


def render_kpi_grid(surface: PageSurface, cursor: PageCursor, kpis: List[KPIItem],
                    branding: BrandingProfile, currency: Optional[str] = None,
                    optimizer: Optional[LayoutOptimizer] = None) -> PageCursor:
    layout = branding.layout
    optimizer = optimizer or LayoutOptimizer(surface.constraints)
    if not kpis:
        cursor = surface.ensure_space(cursor, 7 * mm, "kpi")
        return surface.notice(cursor, EMPTY_KPI_MESSAGE)

    metrics = optimizer.kpi_metrics(layout.layout_density, layout.kpi_style)
    cards = layout_kpi_cards(kpis, surface.content_width, layout.max_kpis_per_row,
                             metrics.card_height, metrics.spacing, currency)

    for index, row in enumerate(_rows(cards)):
        if index:
            cursor = cursor.advance(metrics.spacing)
        cursor = surface.ensure_space(cursor, metrics.card_height, "kpi")
        for card in row:
            _draw_card(surface, surface.left + card.x, cursor.y, card, layout.kpi_style)
        cursor = cursor.advance(metrics.card_height)
    return cursor


def _draw_card(surface: PageSurface, x: float, top: float, card: KPICardLayout, style: str) -> None:
    if style != "minimal":
        surface.fill_rect(x, top, card.width, card.height, CARD_FILL, stroke=BORDER)
    surface.fill_rect(x, top, ACCENT_BAR_WIDTH, card.height, surface.accent)

    text_x = x + ACCENT_BAR_WIDTH + CARD_PADDING
    label_baseline = top + CARD_PADDING + card.label.font_size
    surface.text(text_x, label_baseline, card.label.text, FONT_BODY, card.label.font_size, TEXT_MUTED)

    value_baseline = label_baseline + 2 * mm + card.value.font_size
    surface.text(text_x, value_baseline, card.value.text, FONT_BOLD, card.value.font_size, TEXT_DARK)

    trend = card.kpi.trend
    if trend in TREND_GLYPHS:
        _draw_trend(surface, x + card.width - CARD_PADDING, top + CARD_PADDING + 3 * mm, trend)

    if style == "detailed" and card.kpi.change:
        change = fit_text(f"{card.kpi.change} vs previous period",
                          card.width - 2 * CARD_PADDING - ACCENT_BAR_WIDTH,
                          FONT_BODY, CHANGE_FONT_SIZE, min_font_size=LABEL_MIN_FONT_SIZE,
                          compact=False)
        surface.text(text_x, value_baseline + 2 * mm + change.font_size, change.text,
                     FONT_BODY, change.font_size, TREND_COLORS.get(trend, TEXT_MUTED))


def _draw_trend(surface: PageSurface, right: float, baseline: float, trend: str) -> None:
    surface.text(right, baseline, _DINGBATS[trend], "ZapfDingbats", 8,
                 TREND_COLORS[trend], align="right")

