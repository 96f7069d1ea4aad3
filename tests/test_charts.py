"""
Tests for the chart rasterization pipeline.

Kaleido is never started: figures are inspected directly and the
rasterizer is either faked or has `pio.to_image` patched out.
"""

import sys
import threading
from io import BytesIO
from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.branding import DEFAULT_BRANDING
from engine.charts import (
    BRAND_PALETTE,
    PNG_SIGNATURE,
    PlotlyRasterizer,
    build_figure,
    fallback_image,
    palette,
    placeholder_image,
    render_chart_to_image,
)
from engine.errors import ChartRenderError, ChartRenderTimeout
from engine.layout import CHART_PIXELS
from engine.models import ChartSpec

from conftest import FakeRasterizer


def _line_chart(chart_id="collection_trend"):
    return ChartSpec(id=chart_id, title="Collected Amount", type="line", data={
        "labels": ["Jan", "Feb", "Mar"],
        "datasets": [{"label": "Collected Amount", "data": [120000, 125000, 137500]}],
    })


def _size(png):
    return Image.open(BytesIO(png)).size


class TestBuildFigure:
    def test_line_chart_uses_brand_colors_and_currency_ticks(self):
        fig = build_figure(_line_chart(), DEFAULT_BRANDING, "standard", "KES")

        assert len(fig.data) == 1
        assert fig.data[0].line.color == DEFAULT_BRANDING.primary_color
        assert fig.layout.yaxis.tickprefix == "KSh "
        assert (fig.layout.width, fig.layout.height) == CHART_PIXELS["standard"]

    def test_doughnut_has_hole(self):
        spec = ChartSpec(id="d", title="Breakdown", type="doughnut", data={
            "labels": ["Collected", "Outstanding"],
            "datasets": [{"data": [80, 20], "background_color": ["#22C55E", "#EF4444"]}],
        })
        fig = build_figure(spec)
        assert fig.data[0].hole == 0.55
        assert list(fig.data[0].marker.colors) == ["#22C55E", "#EF4444"]

    def test_stacked_bar(self):
        spec = ChartSpec(id="s", title="Units", type="bar", stacked=True, data={
            "labels": ["A", "B"],
            "datasets": [{"label": "Occupied", "data": [5, 6]},
                         {"label": "Vacant", "data": [1, 0]}],
        })
        fig = build_figure(spec)
        assert fig.layout.barmode == "stack"
        assert fig.layout.yaxis.tickprefix is None

    def test_chart_title_does_not_make_a_series_currency(self):
        spec = ChartSpec(id="o", title="Rent Trends", type="line", data={
            "labels": ["Jan", "Feb"],
            "datasets": [{"label": "Occupancy Rate (%)", "data": [91.5, 93.0]}],
        })
        fig = build_figure(spec, currency="KES")
        assert fig.layout.yaxis.tickprefix is None
        assert "KSh" not in fig.data[0].hovertemplate

    def test_plain_numbers_use_grouped_ticks(self):
        spec = ChartSpec(id="u", title="Units", type="bar", data={
            "labels": ["A", "B"],
            "datasets": [{"label": "Units", "data": [12000, 25000]}],
        })
        fig = build_figure(spec)
        assert fig.layout.yaxis.tickformat == ","
        assert fig.data[0].hovertemplate == "Units<br>%{x}: %{y:,.2~f}<extra></extra>"

    def test_currency_hover_per_series(self):
        spec = ChartSpec(id="r", title="Revenue vs Expenses", type="bar", data={
            "labels": ["Jan"],
            "datasets": [{"label": "Revenue", "data": [250000]},
                         {"label": "Expenses", "data": [90000]}],
        })
        fig = build_figure(spec, currency="KES")
        assert fig.data[0].hovertemplate == "Revenue<br>%{x}: KSh %{y:,.2~f}<extra></extra>"
        assert fig.layout.yaxis.tickprefix == "KSh "

        usd = build_figure(spec, currency="USD")
        assert "$%{y:,.2f}" in usd.data[1].hovertemplate
        assert usd.layout.yaxis.tickprefix == "$"

    def test_mixed_series_get_no_axis_symbol(self):
        spec = ChartSpec(id="m", title="Collections", type="line", data={
            "labels": ["Jan", "Feb"],
            "datasets": [{"label": "Rent Collected", "data": [120000, 130000]},
                         {"label": "Occupied Units", "data": [40, 42]}],
        })
        fig = build_figure(spec, currency="KES")
        assert fig.layout.yaxis.tickprefix is None
        assert "KSh" in fig.data[0].hovertemplate
        assert "KSh" not in fig.data[1].hovertemplate

    def test_pie_hover_follows_dataset_label(self):
        spec = ChartSpec(id="p", title="By Property", type="pie", data={
            "labels": ["Block A", "Block B"],
            "datasets": [{"label": "Amount", "data": [2500, 1500]}],
        })
        fig = build_figure(spec, currency="KES")
        assert list(fig.data[0].hovertext) == ["Block A: KSh 2,500", "Block B: KSh 1,500"]

        spec.data["datasets"][0]["label"] = "Units"
        fig = build_figure(spec, currency="KES")
        assert list(fig.data[0].hovertext) == ["Block A: 2,500", "Block B: 1,500"]

    def test_unknown_type_raises(self):
        with pytest.raises(ChartRenderError):
            build_figure(ChartSpec(id="x", title="X", type="radar"))

    def test_palette_leads_with_brand(self):
        colors = palette(DEFAULT_BRANDING)
        assert colors[:2] == [DEFAULT_BRANDING.primary_color, DEFAULT_BRANDING.secondary_color]
        assert palette() == BRAND_PALETTE


class TestRenderChartToImage:
    def test_rendered(self):
        rasterizer = FakeRasterizer()
        image = render_chart_to_image(_line_chart(), DEFAULT_BRANDING, rasterizer)

        assert image.ok
        assert image.png.startswith(PNG_SIGNATURE)
        assert rasterizer.calls == [("collection_trend", "ultra-compact")]

    def test_empty_data_gives_placeholder_without_rasterizing(self):
        rasterizer = FakeRasterizer()
        spec = ChartSpec(id="e", title="Empty", type="bar",
                         data={"labels": ["Jan"], "datasets": [{"data": [0]}]})
        image = render_chart_to_image(spec, rasterizer=rasterizer, tier="compact")

        assert image.status == "placeholder"
        assert _size(image.png) == CHART_PIXELS["compact"]
        assert rasterizer.calls == []

    def test_rasterizer_failure_gives_fallback(self):
        image = render_chart_to_image(_line_chart(), rasterizer=FakeRasterizer({"collection_trend"}))
        assert image.status == "fallback"
        assert "cannot draw" in image.error
        assert image.png.startswith(PNG_SIGNATURE)

    def test_unsupported_type_gives_fallback(self):
        spec = ChartSpec(id="r", title="Radar", type="radar",
                         data={"labels": ["a"], "datasets": [{"data": [1]}]})
        image = render_chart_to_image(spec, rasterizer=FakeRasterizer())
        assert image.status == "fallback"
        assert "radar" in image.error

    def test_non_png_output_gives_fallback(self):
        class JpegRasterizer(FakeRasterizer):
            def render(self, spec, branding, tier):
                return b"\xff\xd8\xff not a png"

        image = render_chart_to_image(_line_chart(), rasterizer=JpegRasterizer())
        assert image.status == "fallback"

    def test_substitute_failure_leaves_no_image(self):
        with patch("engine.charts.fallback_image", side_effect=OSError("no fonts")):
            image = render_chart_to_image(_line_chart(), rasterizer=FakeRasterizer({"collection_trend"}))
        assert image.status == "fallback"
        assert image.png is None


class TestPlotlyRasterizer:
    def test_returns_kaleido_bytes(self):
        with patch("engine.charts.pio.to_image", return_value=PNG_SIGNATURE + b"data") as to_image:
            png = PlotlyRasterizer(timeout=2, scale=1).render(_line_chart(), None, "standard")
        assert png == PNG_SIGNATURE + b"data"
        assert to_image.call_args[1] == {"format": "png", "scale": 1}

    def test_timeout(self):
        release = threading.Event()

        def hang(*args, **kwargs):
            release.wait(5)
            return b""

        try:
            with patch("engine.charts.pio.to_image", side_effect=hang):
                with pytest.raises(ChartRenderTimeout):
                    PlotlyRasterizer(timeout=0.1).render(_line_chart(), None, "standard")
        finally:
            release.set()

    def test_error_is_wrapped(self):
        with patch("engine.charts.pio.to_image", side_effect=RuntimeError("kaleido crashed")):
            with pytest.raises(ChartRenderError, match="kaleido crashed"):
                PlotlyRasterizer(timeout=2).render(_line_chart(), None, "standard")


def test_pillow_images_match_tier_size():
    assert _size(placeholder_image("Revenue", "large")) == CHART_PIXELS["large"]
    assert _size(fallback_image("Revenue", "ultra-compact")) == CHART_PIXELS["ultra-compact"]
