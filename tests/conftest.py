"""
Shared fixtures: a chart rasterizer that never starts a browser, and
sample query-layer payloads.
"""

import json
import sys
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.charts import ChartRasterizer
from engine.errors import ChartRenderError
from engine.layout import CHART_PIXELS

SAMPLE_RENT_COLLECTION = Path(__file__).parent / "sample_rent_collection.json"


class FakeRasterizer(ChartRasterizer):
    """Solid-color PNGs from Pillow; chart ids in *fail_ids* raise."""

    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.calls = []

    def render(self, spec, branding, tier):
        self.calls.append((spec.id, tier))
        if spec.id in self.fail_ids:
            raise ChartRenderError(f"cannot draw {spec.id}")
        buffer = BytesIO()
        Image.new("RGB", CHART_PIXELS[tier], "#2563EB").save(buffer, format="PNG")
        return buffer.getvalue()


@pytest.fixture
def fake_rasterizer():
    return FakeRasterizer()


@pytest.fixture
def rent_collection_data():
    return json.loads(SAMPLE_RENT_COLLECTION.read_text(encoding="utf-8"))
