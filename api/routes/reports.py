"""
Report routes — list the registered reports and generate one from
query-layer data, returning a job summary with a download link.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.security import require_api_key
from config.settings import OUTPUT_DIR
from engine.branding import BrandingResolver
from engine.report_configs import find_report_config, list_report_configs
from orchestrator.pipeline import ReportPipeline

router = APIRouter()

_resolver = BrandingResolver()


class ReportRequest(BaseModel):
    data: Any = None
    period: Optional[str] = None
    tenant_id: Optional[str] = None
    include_charts: bool = True
    owner: Optional[str] = None
    summary: Optional[str] = None


def get_resolver() -> BrandingResolver:
    return _resolver


def get_pipeline(resolver: BrandingResolver = Depends(get_resolver)) -> ReportPipeline:
    return ReportPipeline(resolver=resolver)


@router.get("/reports")
async def list_reports():
    """Registered report configurations."""
    return {"reports": [config.to_dict() for config in list_report_configs()]}


@router.post("/reports/{report_id}", dependencies=[Depends(require_api_key)])
def generate_report(report_id: str, request: ReportRequest,
                    pipeline: ReportPipeline = Depends(get_pipeline)):
    """Run the report pipeline and return the job summary.

    The PDF is served from /api/download/<job_id>/<filename>.
    """
    if find_report_config(report_id) is None:
        raise HTTPException(404, f"Unknown report '{report_id}'.")

    result = pipeline.run(
        report_id,
        request.data,
        OUTPUT_DIR,
        period=request.period,
        tenant_id=request.tenant_id,
        include_charts=request.include_charts,
        owner=request.owner,
        summary=request.summary,
    )
    if result.status != "completed":
        raise HTTPException(500, f"Report generation failed: {'; '.join(result.errors)}")

    summary = result.summary_dict()
    summary["downloads"] = {
        "pdf_report": f"/api/download/{result.job_id}/{result.filename}",
    }
    return summary
