"""
Centralized configuration for the report composition service.
All settings are read from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ── Paths ────────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "outputs")))
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
FONT_DIR = os.getenv("FONT_DIR", "")

# ── Server ───────────────────────────────────────────────────────────────
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
API_KEY = os.getenv("API_KEY", "")

# ── Branding ─────────────────────────────────────────────────────────────
BRAND_NAME = os.getenv("BRAND_NAME", "Zira Technologies")
BRAND_COLOR = os.getenv("BRAND_COLOR", "#1B365D")
BRAND_SECONDARY_COLOR = os.getenv("BRAND_SECONDARY_COLOR", "#64748B")
BRAND_LOGO_URL = os.getenv("BRAND_LOGO_URL", "")

BRANDING_API_URL = os.getenv("BRANDING_API_URL", "").rstrip("/")
BRANDING_API_KEY = os.getenv("BRANDING_API_KEY", "")
BRANDING_TIMEOUT = float(os.getenv("BRANDING_TIMEOUT", "5"))
BRANDING_FILE = os.getenv("BRANDING_FILE", "")
BRANDING_CACHE_TTL = int(os.getenv("BRANDING_CACHE_TTL", "900"))

# ── Locale ───────────────────────────────────────────────────────────────
CURRENCY = os.getenv("CURRENCY", "KES").upper()
TIMEZONE = os.getenv("TIMEZONE", "Africa/Nairobi")
DATE_FORMAT = os.getenv("DATE_FORMAT", "%b %d, %Y")

# ── Rendering ────────────────────────────────────────────────────────────
CHART_RENDER_TIMEOUT = float(os.getenv("CHART_RENDER_TIMEOUT", "15"))
CHART_RENDER_SCALE = float(os.getenv("CHART_RENDER_SCALE", "2"))
TABLE_MAX_ROWS = int(os.getenv("TABLE_MAX_ROWS", "20"))
PDF_COMPRESS = os.getenv("PDF_COMPRESS", "true").lower() == "true"


def is_branding_api_enabled() -> bool:
    """Check if a remote branding store is configured."""
    return bool(BRANDING_API_URL)
