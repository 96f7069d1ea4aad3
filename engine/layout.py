"""
Layout optimizer — pure page-geometry calculations.

Nothing here touches a canvas or moves a cursor: callers ask whether a
block fits, how wide columns should be, or how a table splits across
pages, and decide for themselves what to do with the answer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from reportlab.lib.units import mm

from engine.errors import LayoutError
from engine.models import ChartSpec, LayoutConstraints
from utils.formatting import humanize_key

MIN_COLUMN_WIDTH = 20 * mm
PARTIAL_FIT_RATIO = 0.3
EXTRA_WIDTH_COLUMNS = 3
NEAR_BOTTOM_THRESHOLD = 30 * mm

# (priority, header keywords); first match wins
COLUMN_PRIORITIES: Tuple[Tuple[int, Tuple[str, ...]], ...] = (
    (10, ("name", "tenant", "property")),
    (8, ("amount", "rent", "date", "status")),
    (6, ("description", "type", "unit")),
    (3, ("id", "created", "updated")),
)
DEFAULT_COLUMN_PRIORITY = 5

# Spacing after a section, in mm, before the density multiplier
SECTION_SPACING = {"title": 8, "kpi": 6, "chart": 8, "table": 6, "text": 4}
DENSITY_MULTIPLIER = {"compact": 0.7, "standard": 1.0, "spacious": 1.5}

# Raster pixel box per density tier and the tallest it may print
CHART_PIXELS = {
    "ultra-compact": (400, 200),
    "compact": (500, 250),
    "standard": (600, 300),
    "large": (800, 400),
}
CHART_MAX_HEIGHT = {
    "ultra-compact": 65 * mm,
    "compact": 80 * mm,
    "standard": 110 * mm,
    "large": 140 * mm,
}
CHART_GUTTER = 5 * mm
PX_TO_PT = 0.75


@dataclass(frozen=True)
class KPIMetrics:
    card_height: float
    spacing: float


KPI_METRICS = {
    "compact": KPIMetrics(card_height=22 * mm, spacing=3 * mm),
    "standard": KPIMetrics(card_height=26 * mm, spacing=5 * mm),
    "spacious": KPIMetrics(card_height=32 * mm, spacing=8 * mm),
}
DETAILED_KPI_EXTRA = 5 * mm


@dataclass(frozen=True)
class TablePage:
    """One page's share of a table: rows[start:stop]."""
    start: int
    stop: int
    continued: bool          # prints "(Continued from previous page)"
    remaining: int           # rows still to come after this page
    break_before: bool       # a page break precedes this slice

    @property
    def row_count(self) -> int:
        return self.stop - self.start


def _has_keyword(header: str, keyword: str) -> bool:
    # "id" must be a whole word, otherwise "paid" and "valid" would match
    if keyword == "id":
        return "id" in humanize_key(header).lower().split()
    return keyword in header.lower()


def column_priority(header: str) -> int:
    for priority, keywords in COLUMN_PRIORITIES:
        if any(_has_keyword(str(header), k) for k in keywords):
            return priority
    return DEFAULT_COLUMN_PRIORITY


class LayoutOptimizer:
    """Fit, break and width decisions for one page geometry."""

    def __init__(self, constraints: LayoutConstraints | None = None):
        self.constraints = constraints or LayoutConstraints()

    # ── Vertical fit ─────────────────────────────────────────────────
    @property
    def usable_page_bottom(self) -> float:
        return self.constraints.usable_page_bottom

    @property
    def page_capacity(self) -> float:
        """Vertical space on a fresh continuation page."""
        return self.usable_page_bottom - self.constraints.content_top

    def available_height(self, cursor_y: float) -> float:
        return self.usable_page_bottom - cursor_y

    def will_fit(self, cursor_y: float, required_height: float,
                 allow_partial: bool = False) -> bool:
        """Exact fit unless *allow_partial*; paginating sections only
        need 30% of their height to start on this page."""
        available = self.available_height(cursor_y)
        if available >= required_height:
            return True
        return allow_partial and available >= required_height * PARTIAL_FIT_RATIO

    def is_near_page_bottom(self, cursor_y: float,
                            threshold: float = NEAR_BOTTOM_THRESHOLD) -> bool:
        return self.available_height(cursor_y) < threshold

    def orphan_guard(self, cursor_y: float, sections: Sequence[float]) -> bool:
        """True when the page should break before *sections*.

        Sections are kept together greedily; if more than one is given
        and fewer than two fit, the first would be left orphaned.
        """
        if len(sections) <= 1:
            return False
        available = self.available_height(cursor_y)
        used = 0.0
        fitting = 0
        for height in sections:
            if used + height > available:
                break
            used += height
            fitting += 1
        return fitting < 2

    def section_spacing(self, section: str, density: str = "standard") -> float:
        base = SECTION_SPACING.get(section, 5)
        return base * DENSITY_MULTIPLIER.get(density, 1.0) * mm

    # ── Horizontal allocation ────────────────────────────────────────
    def column_widths(self, headers: Sequence[str], available_width: float,
                      min_width: float = MIN_COLUMN_WIDTH) -> List[float]:
        count = len(headers)
        if count == 0:
            return []
        if count <= math.floor(available_width / min_width):
            return [available_width / count] * count

        # Too many columns for the minimum: shrink the floor so that one
        # column's worth of width is left over for the top-ranked columns.
        floor_width = available_width / (count + 1)
        ranked = sorted(range(count), key=lambda i: column_priority(headers[i]), reverse=True)
        winners = set(ranked[:EXTRA_WIDTH_COLUMNS])
        extra = (available_width - count * floor_width) / len(winners)
        return [floor_width + extra if i in winners else floor_width for i in range(count)]

    # ── Charts ───────────────────────────────────────────────────────
    @staticmethod
    def chart_pixels(tier: str) -> Tuple[int, int]:
        return CHART_PIXELS.get(tier, CHART_PIXELS["standard"])

    def chart_box(self, tier: str, width: float) -> Tuple[float, float]:
        """Printed (width, height) of a chart keeping its raster aspect."""
        px_w, px_h = self.chart_pixels(tier)
        height = min(width * px_h / px_w, CHART_MAX_HEIGHT.get(tier, CHART_MAX_HEIGHT["standard"]))
        return width, height

    def min_side_by_side_width(self, tier: str) -> float:
        # A paired chart may print at half its native raster width.
        return self.chart_pixels(tier)[0] * PX_TO_PT / 2

    def can_pack_side_by_side(self, first: ChartSpec, second: ChartSpec,
                              available_width: float, tier: str) -> bool:
        if first.is_circular or second.is_circular:
            return False
        return 2 * self.min_side_by_side_width(tier) + CHART_GUTTER <= available_width

    # ── KPI grid ─────────────────────────────────────────────────────
    @staticmethod
    def kpi_metrics(density: str, style: str = "cards") -> KPIMetrics:
        metrics = KPI_METRICS.get(density, KPI_METRICS["standard"])
        if style == "detailed":
            return KPIMetrics(metrics.card_height + DETAILED_KPI_EXTRA, metrics.spacing)
        return metrics

    def kpi_grid_height(self, count: int, columns: int, density: str,
                        style: str = "cards") -> float:
        if count <= 0:
            return 0.0
        metrics = self.kpi_metrics(density, style)
        rows = math.ceil(count / max(1, columns))
        return rows * metrics.card_height + (rows - 1) * metrics.spacing


def plan_table_pages(row_count: int, first_available: float, page_available: float,
                     header_height: float, row_height: float,
                     marker_height: float = 0.0, notice_height: float = 0.0) -> List[TablePage]:
    """Split *row_count* rows into whole-row page slices.

    *first_available* is the space left on the current page,
    *page_available* the space on a fresh page.  A slice that leaves rows
    behind reserves *notice_height* for the "(N more items)" line; slices
    after the first reserve *marker_height* for the continuation marker.
    Starting a table with fewer than three rows on a partly used page
    moves it to a fresh page instead.
    """
    if row_count <= 0:
        return []
    if page_available - header_height - marker_height - notice_height < row_height:
        raise LayoutError("Table row does not fit on an empty page")

    pages: List[TablePage] = []
    start = 0
    available = first_available
    fresh = False
    break_before = False

    while start < row_count:
        continued = bool(pages)
        overhead = header_height + (marker_height if continued else 0.0)
        remaining = row_count - start

        rows = max(0, math.floor((available - overhead) / row_height))
        if rows < remaining:
            rows = max(0, math.floor((available - overhead - notice_height) / row_height))
        rows = min(rows, remaining)

        cramped = rows < min(3, remaining) and available < header_height + 3 * row_height
        if rows == 0 or (cramped and not fresh):
            available = page_available
            fresh = True
            break_before = True
            continue

        stop = start + rows
        pages.append(TablePage(start, stop, continued, row_count - stop, break_before))
        start = stop
        available = page_available
        fresh = True
        break_before = True

    return pages
