"""
Download route — Serve generated PDFs by job ID.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from config.settings import OUTPUT_DIR

router = APIRouter()


@router.get("/download/{job_id}/{filename}")
async def download_file(job_id: str, filename: str):
    """Download a generated PDF by job_id and filename."""
    if not filename.endswith(".pdf") or "/" in filename or ".." in filename:
        raise HTTPException(400, f"Invalid filename '{filename}'.")

    file_path = OUTPUT_DIR / job_id / filename
    if not file_path.resolve().is_relative_to(OUTPUT_DIR.resolve()) or not file_path.exists():
        raise HTTPException(404, f"File not found for job '{job_id}'.")

    return FileResponse(
        path=str(file_path),
        media_type="application/pdf",
        filename=filename,
    )
