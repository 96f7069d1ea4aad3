"""
PageSurface — the one place that talks to the ReportLab canvas.

Renderers work in points measured top-down from the page's top edge and
hand a PageCursor around; the surface flips coordinates for ReportLab,
starts new pages (drawing the running header) and records every page
break it makes.  Footers are stamped once the document is complete so
they can carry "Page N of M".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, List, Optional

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from config.settings import FONT_DIR
from engine.models import BrandingProfile, LayoutConstraints, PageCursor
from utils.formatting import today

logger = logging.getLogger(__name__)

# ── Font Registration ────────────────────────────────────────────────
FONT_BODY = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

if FONT_DIR:
    try:
        pdfmetrics.registerFont(TTFont("Inter-Regular", str(Path(FONT_DIR) / "Inter-Regular.ttf")))
        pdfmetrics.registerFont(TTFont("Inter-Bold", str(Path(FONT_DIR) / "Inter-Bold.ttf")))
        pdfmetrics.registerFont(TTFont("Inter-Italic", str(Path(FONT_DIR) / "Inter-Italic.ttf")))
        FONT_BODY, FONT_BOLD, FONT_ITALIC = "Inter-Regular", "Inter-Bold", "Inter-Italic"
    except Exception as e:
        logger.warning(f"Failed to register Inter fonts, falling back to Helvetica: {e}")

# ── Colors ───────────────────────────────────────────────────────────
TEXT_DARK = colors.HexColor("#1F2937")
TEXT_BODY = colors.HexColor("#374151")
TEXT_MUTED = colors.HexColor("#64748B")
BORDER = colors.HexColor("#E2E8F0")
FOOTER_FILL = colors.HexColor("#F8F9FB")
NOTICE_FILL = colors.HexColor("#F3F4F6")
WHITE = colors.white

SECTION_HEADING_HEIGHT = 8 * mm
NOTICE_HEIGHT = 7 * mm


def to_color(value: Optional[str], default: str = "#000000") -> colors.Color:
    try:
        return colors.HexColor(value or default)
    except (ValueError, TypeError):
        return colors.HexColor(default)


def text_width(text: str, font_name: str = FONT_BODY, font_size: float = 10) -> float:
    return pdfmetrics.stringWidth(text, font_name, font_size)


# ── Deferred footer stamping ─────────────────────────────────────────

FooterPainter = Callable[[canvas.Canvas, int, int], None]


class FooterCanvas(canvas.Canvas):
    """Canvas that holds finished pages until save() knows the page count."""

    def __init__(self, *args, footer_painter: Optional[FooterPainter] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: List[dict] = []
        self._footer_painter = footer_painter

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for number, state in enumerate(self._saved_page_states, start=1):
            self.__dict__.update(state)
            if self._footer_painter is not None:
                self._footer_painter(self, number, total)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    @property
    def page_count(self) -> int:
        return len(self._saved_page_states)


@dataclass(frozen=True)
class PageBreak:
    """A page break the surface made, and why."""
    section: str
    required_height: float
    available_after: float
    page_index: int


# ── Surface ──────────────────────────────────────────────────────────

class PageSurface:
    def __init__(self, branding: BrandingProfile, title: str,
                 constraints: Optional[LayoutConstraints] = None,
                 compress: bool = True):
        self.branding = branding
        self.title = title
        self.constraints = constraints or LayoutConstraints()
        self.buffer = BytesIO()
        self.canvas = FooterCanvas(
            self.buffer,
            pagesize=(self.constraints.page_width, self.constraints.page_height),
            pageCompression=1 if compress else 0,
            footer_painter=self._draw_footer,
        )
        self.canvas.setTitle(title)
        self.canvas.setAuthor(branding.company_name)
        self.primary = to_color(branding.primary_color)
        self.secondary = to_color(branding.secondary_color)
        self.accent = to_color(branding.layout.accent_color)
        self.page_breaks: List[PageBreak] = []

    # ── geometry ─────────────────────────────────────────────────────
    @property
    def left(self) -> float:
        return self.constraints.margins.left

    @property
    def right(self) -> float:
        return self.constraints.page_width - self.constraints.margins.right

    @property
    def content_width(self) -> float:
        return self.constraints.content_width

    @property
    def usable_bottom(self) -> float:
        return self.constraints.usable_page_bottom

    def pdf_y(self, top: float) -> float:
        return self.constraints.page_height - top

    def available(self, cursor: PageCursor) -> float:
        return self.usable_bottom - cursor.y

    # ── pagination ───────────────────────────────────────────────────
    def new_page(self, cursor: PageCursor, section: str = "",
                 required_height: float = 0.0) -> PageCursor:
        """Close the current page and return a cursor at the next page's content top.

        *required_height* is the block that did not fit, recorded as given;
        a block taller than a fresh page is logged as an overflow.
        """
        self.canvas.showPage()
        self._draw_running_header()
        top = self.constraints.content_top
        capacity = self.usable_bottom - top
        if required_height > capacity:
            logger.warning("%s block of %.1fpt exceeds page capacity %.1fpt",
                           section or "Content", required_height, capacity)
        self.page_breaks.append(PageBreak(
            section=section,
            required_height=required_height,
            available_after=capacity,
            page_index=cursor.page_index + 1,
        ))
        logger.debug("Page break before %s (needs %.1fpt)", section or "content", required_height)
        return cursor.next_page(top)

    def ensure_space(self, cursor: PageCursor, height: float, section: str = "") -> PageCursor:
        if self.available(cursor) >= height:
            return cursor
        return self.new_page(cursor, section, height)

    def finish(self) -> bytes:
        """Close the last page, stamp footers and return the PDF bytes."""
        self.canvas.showPage()
        self.canvas.save()
        return self.buffer.getvalue()

    @property
    def page_count(self) -> int:
        return self.canvas.page_count

    # ── primitives ───────────────────────────────────────────────────
    def fill_rect(self, x: float, top: float, width: float, height: float,
                  fill, stroke=None, line_width: float = 0.5) -> None:
        c = self.canvas
        c.saveState()
        c.setFillColor(fill)
        if stroke is not None:
            c.setStrokeColor(stroke)
            c.setLineWidth(line_width)
        c.rect(x, self.pdf_y(top + height), width, height,
               fill=1, stroke=1 if stroke is not None else 0)
        c.restoreState()

    def text(self, x: float, baseline: float, value: str, font: str = FONT_BODY,
             size: float = 10, color=TEXT_BODY, align: str = "left") -> None:
        c = self.canvas
        c.setFont(font, size)
        c.setFillColor(color)
        y = self.pdf_y(baseline)
        if align == "right":
            c.drawRightString(x, y, value)
        elif align == "center":
            c.drawCentredString(x, y, value)
        else:
            c.drawString(x, y, value)

    def hline(self, x1: float, x2: float, top: float, color=BORDER, width: float = 0.5) -> None:
        c = self.canvas
        c.saveState()
        c.setStrokeColor(color)
        c.setLineWidth(width)
        c.line(x1, self.pdf_y(top), x2, self.pdf_y(top))
        c.restoreState()

    def image(self, data: bytes, x: float, top: float, width: float, height: float) -> bool:
        """Draw PNG/JPEG bytes into the box; False when the bytes are unreadable."""
        try:
            reader = ImageReader(BytesIO(data))
            self.canvas.drawImage(reader, x, self.pdf_y(top + height), width, height,
                                  preserveAspectRatio=True, anchor="c", mask="auto")
        except Exception as exc:
            logger.warning("Image could not be drawn: %s", exc)
            return False
        return True

    def wrap(self, value: str, width: float, font: str = FONT_BODY, size: float = 10) -> List[str]:
        return simpleSplit(value, font, size, width)

    # ── compound blocks ──────────────────────────────────────────────
    def section_heading(self, cursor: PageCursor, title: str) -> PageCursor:
        """Full-width band in the primary color with a white bold title."""
        self.fill_rect(self.left, cursor.y, self.content_width, SECTION_HEADING_HEIGHT, self.primary)
        self.text(self.left + 3 * mm, cursor.y + SECTION_HEADING_HEIGHT - 2.6 * mm, title,
                  FONT_BOLD, 10, WHITE)
        return cursor.advance(SECTION_HEADING_HEIGHT + 2 * mm)

    def notice(self, cursor: PageCursor, message: str, height: float = NOTICE_HEIGHT) -> PageCursor:
        """Muted one-line box used for empty sections and truncation notes."""
        self.fill_rect(self.left, cursor.y, self.content_width, height, NOTICE_FILL)
        self.text(self.left + self.content_width / 2, cursor.y + height / 2 + 1.2 * mm, message,
                  FONT_ITALIC, 9, TEXT_MUTED, align="center")
        return cursor.advance(height)

    def paragraph(self, cursor: PageCursor, value: str, font: str = FONT_BODY, size: float = 10,
                  color=TEXT_BODY, leading: Optional[float] = None,
                  width: Optional[float] = None, section: str = "text") -> PageCursor:
        """Wrapped text, breaking pages between lines."""
        leading = leading or size * 1.4
        for line in self.wrap(value, width or self.content_width, font, size):
            cursor = self.ensure_space(cursor, leading, section)
            self.text(self.left, cursor.y + size, line, font, size, color)
            cursor = cursor.advance(leading)
        return cursor

    # ── page furniture ───────────────────────────────────────────────
    def _draw_running_header(self) -> None:
        m = self.constraints.margins
        baseline = m.top + 6 * mm
        self.text(self.left, baseline, self.branding.company_name, FONT_BOLD, 9, self.primary)
        self.text(self.right, baseline, self.title, FONT_BODY, 9, TEXT_MUTED, align="right")
        self.hline(self.left, self.right, baseline + 2.5 * mm, self.accent, 0.8)

    def _draw_footer(self, c: canvas.Canvas, page: int, total: int) -> None:
        b = self.branding
        top = self.usable_bottom + 2 * mm
        height = self.constraints.footer_height - 2 * mm
        y = self.pdf_y(top + height)

        c.saveState()
        c.setFillColor(FOOTER_FILL)
        c.setStrokeColor(BORDER)
        c.setLineWidth(0.5)
        c.rect(self.left, y, self.content_width, height, fill=1, stroke=0)
        c.line(self.left, y + height, self.right, y + height)

        contact = " • ".join(part for part in (b.company_name, b.phone, b.email) if part)
        c.setFillColor(TEXT_MUTED)
        c.setFont(FONT_BODY, 8)
        c.drawString(self.left + 3 * mm, y + height - 4.5 * mm, contact)
        if b.footer_text:
            c.drawString(self.left + 3 * mm, y + height - 8.5 * mm, b.footer_text)
        c.drawRightString(self.right - 3 * mm, y + height - 4.5 * mm,
                          f"Generated: {today()}")
        c.setFont(FONT_BOLD, 8)
        c.drawRightString(self.right - 3 * mm, y + height - 8.5 * mm, f"Page {page} of {total}")
        c.restoreState()
