"""
Branding resolver — picks the theme a document is rendered with.

Lookups are tried in priority order (tenant override → platform default →
local cache file) and the first profile found wins; when every lookup comes
back empty or fails, the hard-coded default profile is used so generation
never blocks on branding availability.  Resolved profiles are cached for
BRANDING_CACHE_TTL seconds per tenant.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from dataclasses import replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from config.settings import (
    BRANDING_API_KEY,
    BRANDING_API_URL,
    BRANDING_CACHE_TTL,
    BRANDING_FILE,
    BRANDING_TIMEOUT,
)
from engine.errors import BrandingLookupError
from engine.models import BrandingProfile, ReportLayoutPreferences

logger = logging.getLogger(__name__)

BrandingLookup = Callable[[Optional[str]], Optional[BrandingProfile]]

HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")

CHART_DIMENSIONS = ("ultra-compact", "compact", "standard", "large")
KPI_STYLES = ("cards", "minimal", "detailed")
LAYOUT_DENSITIES = ("compact", "standard", "spacious")

DEFAULT_BRANDING = BrandingProfile()


def get_default_branding() -> BrandingProfile:
    return DEFAULT_BRANDING


def validate_color(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(HEX_COLOR_RE.match(value))


def _expand_hex(value: str) -> str:
    """#abc → #AABBCC; six-digit colors are only upper-cased."""
    digits = value.lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits.upper()}"


def normalize_profile(profile: BrandingProfile) -> BrandingProfile:
    """Replace invalid colors and unknown layout options with defaults."""
    default = DEFAULT_BRANDING
    colors = {}
    for attr in ("primary_color", "secondary_color"):
        value = getattr(profile, attr)
        if validate_color(value):
            colors[attr] = _expand_hex(value)
        else:
            logger.warning("Invalid %s %r, using default", attr, value)
            colors[attr] = getattr(default, attr)

    layout = profile.layout
    base = ReportLayoutPreferences()
    layout = replace(
        layout,
        chart_dimensions=layout.chart_dimensions if layout.chart_dimensions in CHART_DIMENSIONS
        else base.chart_dimensions,
        kpi_style=layout.kpi_style if layout.kpi_style in KPI_STYLES else base.kpi_style,
        layout_density=layout.layout_density if layout.layout_density in LAYOUT_DENSITIES
        else base.layout_density,
        accent_color=_expand_hex(layout.accent_color) if validate_color(layout.accent_color)
        else base.accent_color,
    )
    return replace(profile, layout=layout, **colors)


# ── Lookups ──────────────────────────────────────────────────────────

def profile_from_record(record: Any, origin: str) -> Optional[BrandingProfile]:
    """BrandingProfile from a stored record; a malformed record is a lookup failure."""
    if not record:
        return None
    if not isinstance(record, dict):
        raise BrandingLookupError(f"{origin} branding record is not an object")
    try:
        return BrandingProfile.from_dict(record)
    except (AttributeError, TypeError, ValueError) as exc:
        raise BrandingLookupError(f"Malformed {origin} branding record: {exc}") from exc


class HttpBrandingSource:
    """Fetch a branding record from the remote branding store.

    scope="tenant" reads ``/branding/tenants/<id>`` and is skipped when no
    tenant is given; scope="platform" reads ``/branding/platform``.
    """

    def __init__(self, base_url: str, scope: str = "tenant", api_key: str = "",
                 timeout: float = BRANDING_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.scope = scope
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, tenant_id: Optional[str]) -> Optional[BrandingProfile]:
        if self.scope == "tenant":
            if not tenant_id:
                return None
            url = f"{self.base_url}/branding/tenants/{tenant_id}"
        else:
            url = f"{self.base_url}/branding/platform"

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise BrandingLookupError(f"{self.scope} branding lookup failed: {exc}") from exc

        record = payload.get("data", payload) if isinstance(payload, dict) else None
        return profile_from_record(record, self.scope)


class FileBrandingSource:
    """Last-known branding saved on disk.

    The file holds either a single profile or
    ``{"platform": {...}, "tenants": {"<id>": {...}}}``.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def __call__(self, tenant_id: Optional[str]) -> Optional[BrandingProfile]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise BrandingLookupError(f"Unreadable branding file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            return None

        if "tenants" in data or "platform" in data:
            tenants = data.get("tenants")
            record = None
            if tenant_id and isinstance(tenants, dict):
                record = tenants.get(str(tenant_id))
            record = record or data.get("platform")
        else:
            record = data
        return profile_from_record(record, f"file {self.path.name}")


def default_lookups() -> List[BrandingLookup]:
    """Lookups configured through the environment, in priority order."""
    lookups: List[BrandingLookup] = []
    if BRANDING_API_URL:
        session = requests.Session()
        lookups.append(HttpBrandingSource(BRANDING_API_URL, "tenant", BRANDING_API_KEY,
                                          session=session))
        lookups.append(HttpBrandingSource(BRANDING_API_URL, "platform", BRANDING_API_KEY,
                                          session=session))
    if BRANDING_FILE:
        lookups.append(FileBrandingSource(BRANDING_FILE))
    return lookups


# ── Resolver ─────────────────────────────────────────────────────────

class BrandingResolver:
    """Resolve a BrandingProfile through an ordered list of lookups."""

    def __init__(self, lookups: Optional[List[BrandingLookup]] = None,
                 ttl: float = BRANDING_CACHE_TTL,
                 clock: Callable[[], float] = time.monotonic):
        self.lookups = default_lookups() if lookups is None else list(lookups)
        self.ttl = ttl
        self._clock = clock
        self._cache: Dict[str, Tuple[float, BrandingProfile]] = {}

    @staticmethod
    def cache_key(tenant_id: Optional[str]) -> str:
        return f"tenant-{tenant_id}" if tenant_id else "platform"

    def resolve(self, tenant_id: Optional[str] = None) -> BrandingProfile:
        key = self.cache_key(tenant_id)
        cached = self._cache.get(key)
        now = self._clock()
        if cached and now - cached[0] < self.ttl:
            return cached[1]

        profile = self._first_profile(tenant_id) or DEFAULT_BRANDING
        profile = normalize_profile(profile)
        self._cache[key] = (now, profile)
        return profile

    def _first_profile(self, tenant_id: Optional[str]) -> Optional[BrandingProfile]:
        for lookup in self.lookups:
            try:
                profile = lookup(tenant_id)
            except BrandingLookupError as exc:
                logger.warning("Branding lookup skipped: %s", exc)
                continue
            if profile is not None:
                return profile
        logger.info("No branding found for %s, using default profile",
                    self.cache_key(tenant_id))
        return None

    def invalidate(self, tenant_id: Optional[str] = None) -> None:
        self._cache.pop(self.cache_key(tenant_id), None)

    def clear(self) -> None:
        self._cache.clear()


# ── Logo ─────────────────────────────────────────────────────────────

@lru_cache(maxsize=32)
def _fetch_logo(url: str) -> bytes:
    # Raises on failure, so lru_cache only keeps logos that loaded
    if url.startswith("data:"):
        return base64.b64decode(url.split(",", 1)[1])
    if url.startswith(("http://", "https://")):
        response = requests.get(url, timeout=BRANDING_TIMEOUT)
        response.raise_for_status()
        return response.content
    return Path(url).read_bytes()


def load_logo(url: Optional[str]) -> Optional[bytes]:
    """Logo bytes from a data URL, an http(s) URL or a local path.

    Returns None (and logs) when the logo cannot be loaded; the header is
    then drawn without it and the next document tries again.
    """
    if not url:
        return None
    try:
        return _fetch_logo(url)
    except (requests.RequestException, OSError, ValueError, IndexError) as exc:
        logger.warning("Logo %s unavailable: %s", url[:80], exc)
        return None
