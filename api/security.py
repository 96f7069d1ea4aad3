"""
API key check shared by the generation routes.

When API_KEY is unset the service is open; otherwise every protected
request must carry the key in the X-API-Key header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from config import settings


async def require_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> None:
    if not settings.API_KEY:
        return
    if x_api_key != settings.API_KEY:
        raise HTTPException(403, "Invalid API key.")
