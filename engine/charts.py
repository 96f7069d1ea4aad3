"""
Chart rasterization pipeline.

A ChartSpec becomes a Plotly figure, which is rendered to PNG by Kaleido
on a daemon thread with a bounded wait.  A chart never aborts a document:
empty data yields a "No Data Available" placeholder and any failure
(unknown type, rasterizer error, timeout, unreadable output) yields a
"Chart Unavailable" fallback image drawn with Pillow.
"""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Tuple

import plotly.graph_objects as go
import plotly.io as pio
from PIL import Image, ImageDraw, ImageFont

from config.settings import CHART_RENDER_SCALE, CHART_RENDER_TIMEOUT, CURRENCY
from engine.errors import ChartRenderError, ChartRenderTimeout
from engine.layout import CHART_PIXELS
from engine.models import CHART_TYPES, BrandingProfile, ChartSpec
from utils.formatting import currency_prefix, format_value

logger = logging.getLogger(__name__)

BRAND_PALETTE = ["#2563EB", "#22C55E", "#F59E0B", "#EF4444", "#1B365D", "#F36F21", "#6B7280"]
TITLE_COLOR = "#1B365D"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Dataset labels naming money get currency ticks and hover values
CURRENCY_SERIES_RE = re.compile(r"amount|revenue|expense|income|cost|balance|rent", re.IGNORECASE)


@dataclass
class ChartImage:
    chart_id: str
    title: str
    png: Optional[bytes]
    status: str = "rendered"      # rendered | placeholder | fallback
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "rendered"


def palette(branding: Optional[BrandingProfile] = None) -> List[str]:
    if branding is None:
        return list(BRAND_PALETTE)
    leading = [branding.primary_color, branding.secondary_color]
    return leading + [c for c in BRAND_PALETTE if c not in leading]


def _dataset_colors(dataset: Dict[str, Any]) -> Any:
    return dataset.get("background_color") or dataset.get("backgroundColor")


def is_currency_series(dataset: Dict[str, Any]) -> bool:
    return bool(CURRENCY_SERIES_RE.search(str(dataset.get("label") or "")))


def _value_format(is_currency: bool, currency: str) -> Tuple[str, str]:
    """(prefix, d3 format) for hover values; mirrors format_currency decimals."""
    if not is_currency:
        return "", ",.2~f"
    prefix = currency_prefix(currency)
    return prefix, ",.2~f" if prefix.endswith(" ") else ",.2f"


def _hovertemplate(name: str, is_currency: bool, currency: str) -> str:
    prefix, fmt = _value_format(is_currency, currency)
    return f"{name}<br>%{{x}}: {prefix}%{{y:{fmt}}}<extra></extra>"


# ── Figure building ──────────────────────────────────────────────────

def build_figure(spec: ChartSpec, branding: Optional[BrandingProfile] = None,
                 tier: str = "standard", currency: Optional[str] = None) -> go.Figure:
    if spec.type not in CHART_TYPES:
        raise ChartRenderError(f"Unsupported chart type: {spec.type!r}")

    colors = palette(branding)
    labels = spec.labels
    currency = currency or CURRENCY
    fig = go.Figure()

    if spec.is_circular:
        dataset = spec.datasets[0] if spec.datasets else {"data": []}
        values = dataset.get("data") or []
        fmt = "currency" if is_currency_series(dataset) else "number"
        slice_colors = _dataset_colors(dataset)
        if not isinstance(slice_colors, list):
            slice_colors = colors
        fig.add_trace(go.Pie(
            labels=labels,
            values=values,
            hole=0.55 if spec.type == "doughnut" else 0,
            marker=dict(colors=slice_colors[:len(values)] or None),
            sort=False,
            textinfo="percent",
            hovertext=[f"{label}: {format_value(v, fmt, currency=currency)}"
                       for label, v in zip(labels, values)],
            hoverinfo="text",
        ))
    else:
        money = [is_currency_series(d) for d in spec.datasets]
        for index, dataset in enumerate(spec.datasets):
            name = str(dataset.get("label") or f"Series {index + 1}")
            values = dataset.get("data") or []
            color = _dataset_colors(dataset) or colors[index % len(colors)]
            hover = _hovertemplate(name, money[index], currency)
            if spec.type == "bar":
                fig.add_trace(go.Bar(x=labels, y=values, name=name, marker_color=color,
                                     hovertemplate=hover))
            else:
                line_color = color if isinstance(color, str) else colors[index % len(colors)]
                trace = dict(x=labels, y=values, name=name, mode="lines+markers",
                             line=dict(color=line_color, width=2.5), hovertemplate=hover)
                if spec.type == "area":
                    trace["fill"] = "tonexty" if spec.stacked else "tozeroy"
                    if spec.stacked:
                        trace["stackgroup"] = "one"
                fig.add_trace(go.Scatter(**trace))
        fig.update_layout(barmode="stack" if spec.stacked else "group")
        # Grouped ticks ("12,000" rather than "12k"); the symbol only when
        # every series on the axis is money
        fig.update_yaxes(tickformat=",")
        if money and all(money):
            fig.update_yaxes(tickprefix=currency_prefix(currency))
        show_grid = branding.layout.show_gridlines if branding else False
        fig.update_yaxes(showgrid=show_grid, gridcolor="#E5E7EB")
        fig.update_xaxes(showgrid=False)

    width, height = CHART_PIXELS.get(tier, CHART_PIXELS["standard"])
    fig.update_layout(
        template="plotly_white",
        title=dict(text=spec.title, font=dict(size=14, color=TITLE_COLOR)),
        width=width,
        height=height,
        margin=dict(l=40, r=20, t=45, b=35),
        legend=dict(orientation="h", yanchor="bottom", y=-0.25, x=0),
        showlegend=spec.is_circular or len(spec.datasets) > 1,
        transition={"duration": 0},
    )
    return fig


# ── Rasterizers ──────────────────────────────────────────────────────

class ChartRasterizer(ABC):
    """Turns a ChartSpec into PNG bytes or raises ChartRenderError."""

    @abstractmethod
    def render(self, spec: ChartSpec, branding: Optional[BrandingProfile], tier: str) -> bytes:
        ...


class PlotlyRasterizer(ChartRasterizer):
    def __init__(self, timeout: float = CHART_RENDER_TIMEOUT, scale: float = CHART_RENDER_SCALE,
                 currency: Optional[str] = None):
        self.timeout = timeout
        self.scale = scale
        self.currency = currency

    def render(self, spec, branding, tier):
        fig = build_figure(spec, branding, tier, self.currency)
        result: Dict[str, Any] = {}

        def target():
            try:
                result["png"] = pio.to_image(fig, format="png", scale=self.scale)
            except Exception as e:
                result["error"] = e

        t = threading.Thread(target=target)
        t.daemon = True
        t.start()
        t.join(self.timeout)
        if t.is_alive():
            raise ChartRenderTimeout(f"Chart {spec.id!r} did not render within {self.timeout}s")
        if "error" in result:
            raise ChartRenderError(f"Chart {spec.id!r} failed: {result['error']}") from result["error"]
        return result["png"]


# ── Pillow images ────────────────────────────────────────────────────

def _png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _centered(draw: ImageDraw.ImageDraw, width: int, y: int, text: str, fill: str,
              font: ImageFont.ImageFont) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    draw.text(((width - (right - left)) / 2, y), text, fill=fill, font=font)


def placeholder_image(title: str, tier: str = "standard") -> bytes:
    """Light grey box reading "No Data Available"."""
    width, height = CHART_PIXELS.get(tier, CHART_PIXELS["standard"])
    image = Image.new("RGB", (width, height), "#F3F4F6")
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()
    if title:
        _centered(draw, width, 16, title, "#1B365D", font)
    _centered(draw, width, height // 2 - 6, "No Data Available", "#6B7280", font)
    return _png(image)


def fallback_image(title: str, tier: str = "standard") -> bytes:
    """Bordered card with a muted bar icon, "Chart Unavailable" and the title."""
    width, height = CHART_PIXELS.get(tier, CHART_PIXELS["standard"])
    image = Image.new("RGB", (width, height), "#F8FAFC")
    draw = ImageDraw.Draw(image)
    draw.rectangle([0, 0, width - 1, height - 1], outline="#E2E8F0", width=2)

    cx, base = width // 2, height // 2 - 10
    for offset, bar_height in ((-18, 18), (-4, 30), (10, 24)):
        draw.rectangle([cx + offset, base - bar_height, cx + offset + 10, base], fill="#CBD5E1")

    font = ImageFont.load_default()
    _centered(draw, width, base + 12, "Chart Unavailable", "#64748B", font)
    if title:
        _centered(draw, width, base + 28, title, "#94A3B8", font)
    return _png(image)


# ── Entry point ──────────────────────────────────────────────────────

def _substitute(builder: Callable[[str, str], bytes], title: str, tier: str) -> Optional[bytes]:
    try:
        return builder(title, tier)
    except Exception as exc:
        # The composer draws a vector block instead.
        logger.warning("Substitute chart image for %r failed: %s", title, exc)
        return None


def render_chart_to_image(spec: ChartSpec, branding: Optional[BrandingProfile] = None,
                          rasterizer: Optional[ChartRasterizer] = None,
                          tier: Optional[str] = None) -> ChartImage:
    """Render one chart; never raises."""
    tier = tier or (branding.layout.chart_dimensions if branding else "standard")
    if spec.type not in CHART_TYPES:
        logger.warning("Chart %s has unsupported type %r", spec.id, spec.type)
        return ChartImage(spec.id, spec.title, _substitute(fallback_image, spec.title, tier),
                          "fallback", f"Unsupported chart type: {spec.type}")
    if spec.is_empty():
        return ChartImage(spec.id, spec.title, _substitute(placeholder_image, spec.title, tier),
                          "placeholder")

    rasterizer = rasterizer or PlotlyRasterizer()
    try:
        png = rasterizer.render(spec, branding, tier)
        if not png or not png.startswith(PNG_SIGNATURE):
            raise ChartRenderError(f"Chart {spec.id!r} produced no PNG data")
    except Exception as exc:
        logger.warning("Chart %s fell back: %s", spec.id, exc)
        return ChartImage(spec.id, spec.title, _substitute(fallback_image, spec.title, tier),
                          "fallback", str(exc))
    return ChartImage(spec.id, spec.title, png)
