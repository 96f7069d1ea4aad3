"""
DocumentComposer — the Document Composition Engine.

Composes a whole document in one pass onto a PageSurface: the branded
header band and title, then the body for the document type.  Reports lay
out period and summary, the KPI grid, charts (adjacent cartesian charts
paired side by side) and the paginated detail table.  Footers carrying
"Page N of M" are stamped once all pages exist.

Unsupported document types abort before any page is drawn.  A chart or
table cell that fails is replaced inline and never aborts the document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd
from reportlab.lib.units import mm

from config.settings import PDF_COMPRESS, TABLE_MAX_ROWS, TIMEZONE
from engine.base import BaseStage
from engine.branding import get_default_branding, load_logo
from engine.charts import ChartImage, ChartRasterizer, render_chart_to_image
from engine.errors import UnsupportedDocumentTypeError
from engine.kpi_grid import render_kpi_grid
from engine.layout import CHART_GUTTER, LayoutOptimizer
from engine.models import (
    BrandingProfile, ChartSpec, DocumentSpec, LayoutConstraints, PageCursor, ReportContent,
    TableColumn,
)
from engine.surface import (
    BORDER, FONT_BODY, FONT_BOLD, FONT_ITALIC, SECTION_HEADING_HEIGHT, TEXT_BODY, TEXT_DARK,
    TEXT_MUTED, WHITE, PageBreak, PageSurface, text_width, to_color,
)
from engine.table import render_table
from engine.text_fit import fit_text
from utils.formatting import format_currency, format_date, slugify, to_number, today

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("report", "invoice", "letter", "notice", "lease")
LETTER_TYPES = ("letter", "notice", "lease")

HEADER_BAND_HEIGHT = 22 * mm
LOGO_MAX_HEIGHT = 18 * mm
LOGO_MAX_WIDTH = 30 * mm
TITLE_FONT_SIZE = 20
TOTAL_BOX_HEIGHT = 12 * mm

NO_CHARTS_MESSAGE = "No chart data available for this reporting period"
VECTOR_FALLBACK_FILL = to_color("#F8FAFC")

INVOICE_COLUMNS = [
    TableColumn("description", "Description"),
    TableColumn("quantity", "Qty", "center", "number"),
    TableColumn("amount", "Amount", "right", "currency"),
]


@dataclass
class ComposeResult:
    pdf_bytes: bytes
    filename: str
    page_count: int
    charts_rendered: int = 0
    chart_failures: List[str] = field(default_factory=list)
    table_pages: int = 0
    page_breaks: List[PageBreak] = field(default_factory=list)


def build_filename(title: str, owner: Optional[str] = None,
                   when: Optional[pd.Timestamp] = None) -> str:
    """<title>_<owner or property-manager>_<MM-DD-YYYY>.pdf"""
    when = when if when is not None else pd.Timestamp.now(tz=TIMEZONE)
    owner_slug = slugify(owner) if owner else ""
    return f"{slugify(title) or 'document'}_{owner_slug or 'property-manager'}_{when.strftime('%m-%d-%Y')}.pdf"


class DocumentComposer(BaseStage):
    name = "DocumentComposer"

    def __init__(self, rasterizer: Optional[ChartRasterizer] = None,
                 constraints: Optional[LayoutConstraints] = None,
                 table_max_rows: Optional[int] = TABLE_MAX_ROWS,
                 compress: bool = PDF_COMPRESS,
                 currency: Optional[str] = None):
        super().__init__()
        self.rasterizer = rasterizer
        self.constraints = constraints or LayoutConstraints()
        self.optimizer = LayoutOptimizer(self.constraints)
        self.table_max_rows = table_max_rows
        self.compress = compress
        self.currency = currency
        self._charts: List[ChartImage] = []
        self._table_pages = 0

    def generate_document(self, document: DocumentSpec | Dict[str, Any],
                          branding: Optional[BrandingProfile] = None) -> bytes:
        return self.run({"document": document, "branding": branding}).pdf_bytes

    # ── stage entry ──────────────────────────────────────────────────
    def _execute(self, input_data: Dict[str, Any]) -> ComposeResult:
        document = input_data["document"]
        if isinstance(document, dict):
            document = DocumentSpec.from_dict(document)
        if document.type not in DOCUMENT_TYPES:
            raise UnsupportedDocumentTypeError(document.type)

        branding = input_data.get("branding") or get_default_branding()
        self._charts = []
        self._table_pages = 0

        surface = PageSurface(branding, document.title, self.constraints, self.compress)
        cursor = self._draw_title_block(surface, document.title, branding)

        content = document.content if isinstance(document.content, (dict, ReportContent)) else {}
        if document.type == "report":
            self._render_report(surface, cursor, content, branding)
        elif document.type == "invoice":
            self._render_invoice(surface, cursor, content, branding)
        elif document.type in LETTER_TYPES:
            self._render_letter(surface, cursor, content, branding)

        pdf_bytes = surface.finish()
        failures = [c.chart_id for c in self._charts if c.status == "fallback"]
        result = ComposeResult(
            pdf_bytes=pdf_bytes,
            filename=build_filename(document.title, document.owner),
            page_count=surface.page_count,
            charts_rendered=sum(1 for c in self._charts if c.ok),
            chart_failures=failures,
            table_pages=self._table_pages,
            page_breaks=list(surface.page_breaks),
        )
        for chart_id in failures:
            self._warn(f"Chart {chart_id} rendered as fallback")
        self._log(f"{document.type} '{document.title}' → {result.page_count} page(s), "
                  f"{len(pdf_bytes):,} bytes")
        self._record(pages=result.page_count, charts=len(self._charts),
                     chart_failures=len(failures), page_breaks=len(result.page_breaks))
        return result

    # ── header band & title ──────────────────────────────────────────
    def _draw_title_block(self, surface: PageSurface, title: str,
                          branding: BrandingProfile) -> PageCursor:
        top = self.constraints.margins.top
        left, right = surface.left, surface.right
        surface.fill_rect(left, top, surface.content_width, HEADER_BAND_HEIGHT, surface.primary)

        text_x = left + 5 * mm
        logo = load_logo(branding.logo_url)
        if logo and surface.image(logo, left + 3 * mm, top + (HEADER_BAND_HEIGHT - LOGO_MAX_HEIGHT) / 2,
                                  LOGO_MAX_WIDTH, LOGO_MAX_HEIGHT):
            text_x = left + LOGO_MAX_WIDTH + 6 * mm

        contact = [line for line in (branding.address, branding.phone, branding.email) if line]
        contact_width = max((text_width(line, FONT_BODY, 8) for line in contact), default=0)
        name_width = right - 5 * mm - contact_width - 4 * mm - text_x
        name = fit_text(branding.company_name, name_width, FONT_BOLD, 18, min_font_size=11,
                        compact=False)
        surface.text(text_x, top + 10 * mm, name.text, FONT_BOLD, name.font_size, WHITE)
        if branding.tagline:
            tagline = fit_text(branding.tagline, name_width, FONT_BODY, 10, compact=False)
            surface.text(text_x, top + 16 * mm, tagline.text, FONT_BODY, tagline.font_size, WHITE)
        for index, line in enumerate(contact):
            surface.text(right - 5 * mm, top + 7 * mm + index * 4 * mm, line,
                         FONT_BODY, 8, WHITE, align="right")

        cursor = PageCursor(y=top + HEADER_BAND_HEIGHT + 6 * mm)
        fitted = fit_text(title, surface.content_width, FONT_BOLD, TITLE_FONT_SIZE,
                          min_font_size=12, compact=False)
        surface.text(left, cursor.y + fitted.font_size * 0.8, fitted.text, FONT_BOLD,
                     fitted.font_size, surface.primary)
        underline = max(40 * mm, text_width(fitted.text, FONT_BOLD, fitted.font_size))
        surface.hline(left, left + min(underline, surface.content_width),
                      cursor.y + fitted.font_size + 2 * mm, surface.accent, 2)
        spacing = self.optimizer.section_spacing("title", branding.layout.layout_density)
        return cursor.advance(fitted.font_size + 2 * mm + spacing)

    def _section(self, surface: PageSurface, cursor: PageCursor, title: str,
                 first_block: float, section: str) -> PageCursor:
        """Heading kept on the same page as the first block beneath it."""
        heading = SECTION_HEADING_HEIGHT + 2 * mm
        if self.optimizer.orphan_guard(cursor.y, [heading, first_block]):
            cursor = surface.new_page(cursor, section, heading + first_block)
        return surface.section_heading(cursor, title)

    # ── report ───────────────────────────────────────────────────────
    def _render_report(self, surface: PageSurface, cursor: PageCursor,
                       content: ReportContent | Dict[str, Any], branding: BrandingProfile) -> None:
        if isinstance(content, dict):
            content = ReportContent.from_dict(content)
        layout = branding.layout
        density = layout.layout_density

        if content.period:
            surface.text(surface.left, cursor.y + 10, f"Report Period: {content.period}",
                         FONT_BODY, 10, TEXT_MUTED)
            surface.text(surface.right, cursor.y + 10, f"Generated: {today()}",
                         FONT_BODY, 10, TEXT_MUTED, align="right")
            cursor = cursor.advance(6 * mm)

        if content.summary:
            cursor = self._section(surface, cursor, "EXECUTIVE SUMMARY", 3 * 14, "text")
            cursor = surface.paragraph(cursor, content.summary, FONT_BODY, 10, TEXT_BODY)
            cursor = cursor.advance(self.optimizer.section_spacing("text", density))

        metrics = self.optimizer.kpi_metrics(density, layout.kpi_style)
        cursor = self._section(surface, cursor, "KEY PERFORMANCE INDICATORS", metrics.card_height, "kpi")
        cursor = render_kpi_grid(surface, cursor, content.kpis, branding, self.currency, self.optimizer)
        cursor = cursor.advance(self.optimizer.section_spacing("kpi", density))

        if content.include_charts:
            tier = layout.chart_dimensions
            _, first_height = self.optimizer.chart_box(tier, surface.content_width)
            cursor = self._section(surface, cursor, "VISUAL ANALYTICS",
                                   first_height if content.charts else 7 * mm, "chart")
            if content.charts:
                cursor = self._render_charts(surface, cursor, content.charts, branding)
            else:
                cursor = surface.notice(cursor, NO_CHARTS_MESSAGE)
            cursor = cursor.advance(self.optimizer.section_spacing("chart", density))

        result = render_table(surface, cursor, content.columns, content.table, branding,
                              self.currency, self.table_max_rows, optimizer=self.optimizer)
        self._table_pages = len(result.pages)

    def _render_charts(self, surface: PageSurface, cursor: PageCursor, charts: List[ChartSpec],
                       branding: BrandingProfile) -> PageCursor:
        tier = branding.layout.chart_dimensions
        width = surface.content_width
        spacing = self.optimizer.section_spacing("chart", branding.layout.layout_density)
        index = 0
        while index < len(charts):
            if index:
                cursor = cursor.advance(spacing)
            first = charts[index]
            second = charts[index + 1] if index + 1 < len(charts) else None
            if second is not None and self.optimizer.can_pack_side_by_side(first, second, width, tier):
                column = (width - CHART_GUTTER) / 2
                _, height = self.optimizer.chart_box(tier, column)
                cursor = surface.ensure_space(cursor, height, "chart")
                self._draw_chart(surface, first, branding, tier, surface.left, cursor.y, column, height)
                self._draw_chart(surface, second, branding, tier,
                                 surface.left + column + CHART_GUTTER, cursor.y, column, height)
                index += 2
            else:
                _, height = self.optimizer.chart_box(tier, width)
                cursor = surface.ensure_space(cursor, height, "chart")
                self._draw_chart(surface, first, branding, tier, surface.left, cursor.y, width, height)
                index += 1
            cursor = cursor.advance(height)
        return cursor

    def _draw_chart(self, surface: PageSurface, spec: ChartSpec, branding: BrandingProfile,
                    tier: str, x: float, top: float, width: float, height: float) -> None:
        image = render_chart_to_image(spec, branding, self.rasterizer, tier)
        self._charts.append(image)
        if image.png and surface.image(image.png, x, top, width, height):
            return
        if image.status == "rendered":
            image.status = "fallback"
        # Vector stand-in when no image could be placed.
        surface.fill_rect(x, top, width, height, VECTOR_FALLBACK_FILL, stroke=BORDER)
        surface.text(x + width / 2, top + height / 2, "Chart unavailable",
                     FONT_BOLD, 10, TEXT_MUTED, align="center")
        if spec.title:
            title = fit_text(spec.title, width - 6 * mm, FONT_BODY, 8, compact=False)
            surface.text(x + width / 2, top + height / 2 + 5 * mm, title.text,
                         FONT_BODY, title.font_size, TEXT_MUTED, align="center")

    # ── invoice ──────────────────────────────────────────────────────
    def _render_invoice(self, surface: PageSurface, cursor: PageCursor,
                        content: Dict[str, Any], branding: BrandingProfile) -> None:
        recipient = content.get("recipient") or {}
        bill_to = content.get("billTo") or content.get("bill_to") or {}
        column = surface.content_width / 2

        surface.text(surface.left, cursor.y + 9, "BILL FROM", FONT_BOLD, 9, surface.primary)
        surface.text(surface.left + column, cursor.y + 9, "BILL TO", FONT_BOLD, 9, surface.primary)
        sender = [branding.company_name, branding.address, branding.phone, branding.email]
        receiver = [bill_to.get("name") or recipient.get("name") or ""]
        receiver += str(bill_to.get("address") or recipient.get("address") or "").split("\n")
        if bill_to.get("email"):
            receiver.append(bill_to["email"])
        lines = max(len(sender), len(receiver))
        for index in range(lines):
            baseline = cursor.y + 9 + (index + 1) * 4.5 * mm
            font = FONT_BOLD if index == 0 else FONT_BODY
            if index < len(sender) and sender[index]:
                surface.text(surface.left, baseline, sender[index], font, 9, TEXT_DARK)
            if index < len(receiver) and receiver[index]:
                surface.text(surface.left + column, baseline, receiver[index], font, 9, TEXT_DARK)
        cursor = cursor.advance(9 + (lines + 1) * 4.5 * mm)

        details = [
            ("Invoice #", content.get("invoiceNumber") or content.get("invoice_number")),
            ("Issue Date", content.get("issueDate") or content.get("issue_date")),
            ("Due Date", content.get("dueDate") or content.get("due_date")),
        ]
        for label, value in details:
            if not value:
                continue
            shown = value if label == "Invoice #" else format_date(value)
            surface.text(surface.left, cursor.y + 9, f"{label}:", FONT_BOLD, 9, TEXT_MUTED)
            surface.text(surface.left + 25 * mm, cursor.y + 9, str(shown), FONT_BODY, 9, TEXT_DARK)
            cursor = cursor.advance(5 * mm)
        cursor = cursor.advance(4 * mm)

        items = [item for item in content.get("items") or [] if isinstance(item, dict)]
        rows = [
            {
                "description": item.get("description") or "",
                "quantity": item.get("quantity") or 1,
                "amount": to_number(item.get("amount")) or 0.0,
            }
            for item in items
        ]
        result = render_table(surface, cursor, INVOICE_COLUMNS, rows, branding, self.currency,
                              max_rows=None, title="INVOICE ITEMS", optimizer=self.optimizer)
        self._table_pages = len(result.pages)
        cursor = result.cursor.advance(4 * mm)

        total = to_number(content.get("total"))
        if total is None:
            total = sum(row["amount"] * (to_number(row["quantity"]) or 1) for row in rows)
        cursor = surface.ensure_space(cursor, TOTAL_BOX_HEIGHT, "invoice")
        box_x = surface.left + column
        surface.fill_rect(box_x, cursor.y, column, TOTAL_BOX_HEIGHT, surface.primary)
        baseline = cursor.y + TOTAL_BOX_HEIGHT / 2 + 4
        surface.text(box_x + 4 * mm, baseline, "TOTAL", FONT_BOLD, 12, WHITE)
        surface.text(surface.right - 4 * mm, baseline, format_currency(total, self.currency),
                     FONT_BOLD, 12, WHITE, align="right")
        cursor = cursor.advance(TOTAL_BOX_HEIGHT + 6 * mm)

        notes = content.get("notes")
        if notes:
            cursor = surface.ensure_space(cursor, 12 * mm, "text")
            surface.text(surface.left, cursor.y + 9, "Notes", FONT_BOLD, 9, surface.primary)
            surface.paragraph(cursor.advance(5 * mm), str(notes), FONT_ITALIC, 9, TEXT_BODY)

    # ── letter / notice / lease ──────────────────────────────────────
    def _render_letter(self, surface: PageSurface, cursor: PageCursor,
                       content: Dict[str, Any], branding: BrandingProfile) -> None:
        surface.text(surface.left, cursor.y + 10, today(), FONT_BODY, 10, TEXT_BODY)
        cursor = cursor.advance(10 * mm)

        recipient = content.get("recipient") or {}
        if recipient.get("name"):
            surface.text(surface.left, cursor.y + 10, str(recipient["name"]), FONT_BOLD, 10, TEXT_DARK)
            cursor = cursor.advance(5 * mm)
        for line in str(recipient.get("address") or "").split("\n"):
            if line.strip():
                surface.text(surface.left, cursor.y + 10, line.strip(), FONT_BODY, 10, TEXT_BODY)
                cursor = cursor.advance(5 * mm)
        cursor = cursor.advance(5 * mm)

        if content.get("subject"):
            cursor = surface.paragraph(cursor, f"Subject: {content['subject']}", FONT_BOLD, 11,
                                       TEXT_DARK)
            cursor = cursor.advance(4 * mm)

        body = str(content.get("body") or "")
        for block in body.split("\n"):
            if not block.strip():
                cursor = cursor.advance(4 * mm)
                continue
            cursor = surface.paragraph(cursor, block.strip(), FONT_BODY, 10, TEXT_BODY)
        cursor = cursor.advance(8 * mm)

        sender = content.get("sender") or {}
        closing = ["Sincerely,", "", str(sender.get("name") or branding.company_name)]
        if sender.get("title"):
            closing.append(str(sender["title"]))
        cursor = surface.ensure_space(cursor, len(closing) * 5 * mm, "text")
        for index, line in enumerate(closing):
            font = FONT_BOLD if index == 2 else FONT_BODY
            surface.text(surface.left, cursor.y + 10 + index * 5 * mm, line, font, 10, TEXT_DARK)
