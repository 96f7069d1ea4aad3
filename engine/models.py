"""
Data model shared by the transformers, renderers and the composer.

Inputs (ReportData, BrandingProfile, DocumentSpec) are built before
composition starts and are never mutated while a document renders.
Geometry is expressed in PDF points, measured top-down from the page's
top edge; the drawing surface flips to ReportLab's bottom-up system.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm

from config.settings import BRAND_COLOR, BRAND_LOGO_URL, BRAND_NAME, BRAND_SECONDARY_COLOR
from utils.formatting import format_value, humanize_key, to_number

CHART_TYPES = ("line", "bar", "area", "pie", "doughnut")
CIRCULAR_CHART_TYPES = ("pie", "doughnut")
TRENDS = ("up", "down", "stable")


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First non-empty value among *keys* (lets payloads use camelCase or snake_case)."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


# ── Geometry ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Margins:
    top: float = 10 * mm
    bottom: float = 8 * mm
    left: float = 12 * mm
    right: float = 12 * mm


@dataclass(frozen=True)
class LayoutConstraints:
    """Page geometry, fixed for a whole document."""
    page_width: float = A4[0]
    page_height: float = A4[1]
    margins: Margins = field(default_factory=Margins)
    header_height: float = 14 * mm       # running header on continuation pages
    footer_height: float = 16 * mm

    @property
    def content_width(self) -> float:
        return self.page_width - self.margins.left - self.margins.right

    @property
    def usable_page_bottom(self) -> float:
        return self.page_height - self.margins.bottom - self.footer_height

    @property
    def content_top(self) -> float:
        """Where content starts on every page after the first."""
        return self.margins.top + self.header_height


@dataclass(frozen=True)
class PageCursor:
    """Vertical write position; the only state that moves during composition."""
    y: float
    page_index: int = 0

    def advance(self, dy: float) -> PageCursor:
        return replace(self, y=self.y + dy)

    def next_page(self, top: float) -> PageCursor:
        return PageCursor(y=top, page_index=self.page_index + 1)


# ── Branding ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReportLayoutPreferences:
    chart_dimensions: str = "ultra-compact"   # ultra-compact | compact | standard | large
    kpi_style: str = "cards"                  # cards | minimal | detailed
    layout_density: str = "compact"           # compact | standard | spacious
    max_kpis_per_row: int = 4
    accent_color: str = "#F36F21"
    show_gridlines: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> ReportLayoutPreferences:
        data = data if isinstance(data, dict) else {}
        default = cls()
        per_row = to_number(_pick(data, "max_kpis_per_row", "maxKpisPerRow"))
        return cls(
            chart_dimensions=_pick(data, "chart_dimensions", "chartDimensions",
                                   default=default.chart_dimensions),
            kpi_style=_pick(data, "kpi_style", "kpiStyle", default=default.kpi_style),
            layout_density=_pick(data, "layout_density", "layoutDensity",
                                 default=default.layout_density),
            max_kpis_per_row=int(per_row) if per_row and per_row >= 1 else default.max_kpis_per_row,
            accent_color=_pick(data, "accent_color", "accentColor", default=default.accent_color),
            show_gridlines=bool(_pick(data, "show_gridlines", "showGridlines",
                                      default=default.show_gridlines)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chart_dimensions": self.chart_dimensions,
            "kpi_style": self.kpi_style,
            "layout_density": self.layout_density,
            "max_kpis_per_row": self.max_kpis_per_row,
            "accent_color": self.accent_color,
            "show_gridlines": self.show_gridlines,
        }


@dataclass(frozen=True)
class BrandingProfile:
    company_name: str = BRAND_NAME
    tagline: str = "Professional Property Management Solutions"
    address: str = "P.O. Box 1234, Nairobi, Kenya"
    phone: str = "+254 700 000 000"
    email: str = "info@ziratechnologies.com"
    primary_color: str = BRAND_COLOR
    secondary_color: str = BRAND_SECONDARY_COLOR
    footer_text: str = f"Powered by {BRAND_NAME} • www.ziratechnologies.com"
    logo_url: Optional[str] = BRAND_LOGO_URL or None
    website_url: Optional[str] = "www.ziratechnologies.com"
    layout: ReportLayoutPreferences = field(default_factory=ReportLayoutPreferences)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BrandingProfile:
        """Build a profile from an API/DB record; absent fields keep defaults."""
        default = cls()
        colors = data.get("colors")
        if not isinstance(colors, dict):
            colors = {}
        return cls(
            company_name=_pick(data, "company_name", "companyName", default=default.company_name),
            tagline=_pick(data, "tagline", "company_tagline", default=default.tagline),
            address=_pick(data, "address", "company_address", default=default.address),
            phone=_pick(data, "phone", "company_phone", default=default.phone),
            email=_pick(data, "email", "company_email", default=default.email),
            primary_color=_pick(data, "primary_color", "primaryColor",
                                default=colors.get("primary") or default.primary_color),
            secondary_color=_pick(data, "secondary_color", "secondaryColor",
                                  default=colors.get("secondary") or default.secondary_color),
            footer_text=_pick(data, "footer_text", "footerText", default=default.footer_text),
            logo_url=_pick(data, "logo_url", "logoUrl", default=default.logo_url),
            website_url=_pick(data, "website_url", "websiteUrl", "website",
                              default=default.website_url),
            layout=ReportLayoutPreferences.from_dict(
                _pick(data, "layout", "report_layout", "reportLayout", default={})
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_name": self.company_name,
            "tagline": self.tagline,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "primary_color": self.primary_color,
            "secondary_color": self.secondary_color,
            "footer_text": self.footer_text,
            "logo_url": self.logo_url,
            "website_url": self.website_url,
            "layout": self.layout.to_dict(),
        }


# ── Report content ───────────────────────────────────────────────────

@dataclass
class KPIItem:
    label: str
    value: Any = 0
    format: Optional[str] = None       # currency | number | percent | duration | text
    decimals: Optional[int] = None
    trend: Optional[str] = None        # up | down | stable
    change: Optional[str] = None

    def display_value(self, currency: Optional[str] = None) -> str:
        if isinstance(self.value, str):
            return self.value
        return format_value(self.value, self.format or "number", self.decimals, currency)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KPIItem:
        trend = data.get("trend")
        return cls(
            label=str(_pick(data, "label", "name", "key", default="")),
            value=data.get("value", 0),
            format=data.get("format"),
            decimals=data.get("decimals"),
            trend=trend if trend in TRENDS else None,
            change=data.get("change"),
        )


@dataclass
class ChartSpec:
    id: str
    title: str
    type: str = "bar"
    data: Dict[str, Any] = field(default_factory=dict)
    x_key: Optional[str] = None
    y_keys: List[str] = field(default_factory=list)
    stacked: bool = False
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_circular(self) -> bool:
        return self.type in CIRCULAR_CHART_TYPES

    @property
    def labels(self) -> List[Any]:
        return list(self.data.get("labels") or [])

    @property
    def datasets(self) -> List[Dict[str, Any]]:
        return [d for d in (self.data.get("datasets") or []) if isinstance(d, dict)]

    def is_empty(self) -> bool:
        """No datasets, or every value missing or zero."""
        for dataset in self.datasets:
            for value in dataset.get("data") or []:
                if to_number(value):
                    return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ChartSpec:
        return cls(
            id=str(_pick(data, "id", "title", default="chart")),
            title=str(data.get("title") or ""),
            type=str(data.get("type") or "bar"),
            data=dict(data.get("data") or {}),
            x_key=_pick(data, "x_key", "xKey"),
            y_keys=list(_pick(data, "y_keys", "yKeys", default=[])),
            stacked=bool(data.get("stacked", False)),
            options=dict(data.get("options") or {}),
        )


@dataclass
class TableColumn:
    key: str
    label: str = ""
    align: str = "left"                # left | right | center
    format: Optional[str] = None
    decimals: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TableColumn:
        key = str(data.get("key", ""))
        return cls(
            key=key,
            label=str(data.get("label") or humanize_key(key)),
            align=data.get("align") or "left",
            format=data.get("format"),
            decimals=data.get("decimals"),
        )


@dataclass
class TransformedReport:
    """Normalized {kpis, charts, table} triple produced by a transformer."""
    kpis: List[KPIItem] = field(default_factory=list)
    charts: List[ChartSpec] = field(default_factory=list)
    table: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[TableColumn] = field(default_factory=list)


@dataclass
class ReportContent:
    period: str = ""
    summary: str = ""
    kpis: List[KPIItem] = field(default_factory=list)
    charts: List[ChartSpec] = field(default_factory=list)
    table: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[TableColumn] = field(default_factory=list)
    include_charts: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ReportContent:
        return cls(
            period=str(_pick(data, "period", "reportPeriod", "report_period", default="")),
            summary=str(data.get("summary") or ""),
            kpis=[k if isinstance(k, KPIItem) else KPIItem.from_dict(k)
                  for k in data.get("kpis") or []],
            charts=[c if isinstance(c, ChartSpec) else ChartSpec.from_dict(c)
                    for c in data.get("charts") or []],
            table=[row for row in _pick(data, "table", "tableData", "table_data", default=[])
                   if isinstance(row, dict)],
            columns=[c if isinstance(c, TableColumn) else TableColumn.from_dict(c)
                     for c in data.get("columns") or []],
            include_charts=bool(_pick(data, "include_charts", "includeCharts", default=True)),
        )


@dataclass
class DocumentSpec:
    type: str
    title: str
    content: Any = field(default_factory=dict)
    owner: Optional[str] = None        # landlord / account name used in the filename

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DocumentSpec:
        return cls(
            type=str(data.get("type") or ""),
            title=str(data.get("title") or "Document"),
            content=data.get("content") or {},
            owner=_pick(data, "owner", "landlord_name", "landlordName"),
        )


@dataclass(frozen=True)
class ReportData:
    """Query-layer payload: {kpis: {key: number}, charts: {id: rows}, table: rows}."""
    kpis: Dict[str, Any] = field(default_factory=dict)
    charts: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    table: List[Dict[str, Any]] = field(default_factory=list)

    @staticmethod
    def matches(raw: Any) -> bool:
        return (
            isinstance(raw, dict)
            and isinstance(raw.get("kpis"), dict)
            and isinstance(raw.get("charts"), dict)
        )

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> ReportData:
        table = raw.get("table")
        return cls(
            kpis=dict(raw.get("kpis") or {}),
            charts={k: list(v or []) for k, v in (raw.get("charts") or {}).items()},
            table=[r for r in table if isinstance(r, dict)] if isinstance(table, list) else [],
        )

    def kpi(self, key: str) -> float:
        """KPI value by key; absent or non-numeric values read as 0."""
        number = to_number(self.kpis.get(key))
        return 0.0 if number is None else number
