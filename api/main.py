"""
FastAPI application — main entry point.

Run with:  uvicorn api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from api.middleware import RequestLoggingMiddleware
from api.routes.documents import router as documents_router
from api.routes.download import router as download_router
from api.routes.reports import router as reports_router
from config.settings import BRAND_NAME, OUTPUT_DIR, is_branding_api_enabled

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("API")
if is_branding_api_enabled():
    logger.info("Remote branding store configured")
else:
    logger.info("Using local/default branding (no branding store configured)")

# ── App ──────────────────────────────────────────────────────────────
app = FastAPI(
    title=f"{BRAND_NAME} Reports API",
    description="Compose branded, paginated PDF reports, invoices and letters "
                "from structured report data.",
    version="1.0.0",
)

# ── Middleware ───────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Static files (output downloads) ─────────────────────────────────
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/outputs", StaticFiles(directory=str(OUTPUT_DIR)), name="outputs")

# ── Routes ───────────────────────────────────────────────────────────
app.include_router(reports_router, prefix="/api", tags=["Reports"])
app.include_router(documents_router, prefix="/api", tags=["Documents"])
app.include_router(download_router, prefix="/api", tags=["Downloads"])


@app.get("/", tags=["Health"])
async def health_check():
    """Health-check endpoint."""
    return {"status": "healthy", "service": BRAND_NAME}
