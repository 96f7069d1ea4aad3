from .composer import DocumentComposer
from .branding import BrandingResolver
from .charts import PlotlyRasterizer, render_chart_to_image
from .layout import LayoutOptimizer
from .transformers import TransformStage, transform

__all__ = [
    "DocumentComposer",
    "BrandingResolver",
    "PlotlyRasterizer",
    "render_chart_to_image",
    "LayoutOptimizer",
    "TransformStage",
    "transform",
]
