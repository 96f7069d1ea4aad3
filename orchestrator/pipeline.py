"""
ReportPipeline — runs report generation end to end, passing structured
outputs between stages and collecting logs/timing.

    report config → transform → summary → branding → compose → write

Usage:
    from orchestrator.pipeline import ReportPipeline
    result = ReportPipeline().run("rent-collection", raw, output_dir)
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import CURRENCY, OUTPUT_DIR
from engine.base import BaseStage
from engine.branding import BrandingResolver
from engine.charts import ChartRasterizer
from engine.composer import ComposeResult, DocumentComposer
from engine.models import DocumentSpec, ReportContent, TransformedReport
from engine.report_configs import get_report_config
from engine.transformers import TransformStage, summarize
from utils.formatting import humanize_key

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Aggregated output of one generation request."""
    job_id: str = ""
    report_id: str = ""
    status: str = "pending"
    total_duration_seconds: float = 0.0

    transformed: Optional[TransformedReport] = None
    composed: Optional[ComposeResult] = None

    file_path: str = ""
    filename: str = ""
    page_count: int = 0

    stage_logs: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def summary_dict(self) -> Dict[str, Any]:
        """Serialisable summary for API responses."""
        return {
            "job_id": self.job_id,
            "report_id": self.report_id,
            "status": self.status,
            "duration_seconds": self.total_duration_seconds,
            "filename": self.filename,
            "page_count": self.page_count,
            "kpis": len(self.transformed.kpis) if self.transformed else 0,
            "charts": len(self.transformed.charts) if self.transformed else 0,
            "rows": len(self.transformed.table) if self.transformed else 0,
            "chart_failures": self.composed.chart_failures if self.composed else [],
            "stages": self.stage_logs,
            "errors": self.errors,
        }


class ReportPipeline:
    """Execute the Transform → Compose pipeline for a registered report."""

    def __init__(self, resolver: Optional[BrandingResolver] = None,
                 rasterizer: Optional[ChartRasterizer] = None,
                 currency: str = CURRENCY):
        self.resolver = resolver or BrandingResolver()
        self.rasterizer = rasterizer
        self.currency = currency

    def run(self, report_id: str, raw: Any, output_dir: str | Path = OUTPUT_DIR,
            period: Optional[str] = None, tenant_id: Optional[str] = None,
            include_charts: bool = True, owner: Optional[str] = None,
            summary: Optional[str] = None) -> PipelineResult:
        job_id = uuid.uuid4().hex[:12]
        result = PipelineResult(job_id=job_id, report_id=report_id, status="running")
        start = time.perf_counter()

        try:
            # ── 1) Report configuration ──────────────────────────────
            config = get_report_config(report_id)

            # ── 2) Transform ─────────────────────────────────────────
            transformed: TransformedReport = self._run_stage(
                TransformStage(), {"report_type": report_id, "raw": raw}, result)
            result.transformed = transformed

            # ── 3) Content ───────────────────────────────────────────
            content = ReportContent(
                period=period or humanize_key(config.default_period),
                summary=summary or summarize(config.title, transformed.kpis, self.currency),
                kpis=transformed.kpis,
                charts=transformed.charts,
                table=transformed.table,
                columns=transformed.columns,
                include_charts=include_charts,
            )

            # ── 4) Branding ──────────────────────────────────────────
            branding = self.resolver.resolve(tenant_id)

            # ── 5) Compose ───────────────────────────────────────────
            composer = DocumentComposer(rasterizer=self.rasterizer, currency=self.currency)
            composed: ComposeResult = self._run_stage(composer, {
                "document": DocumentSpec(type="report", title=config.title,
                                         content=content, owner=owner),
                "branding": branding,
            }, result)
            result.composed = composed

            # ── 6) Write ─────────────────────────────────────────────
            path = write_pdf(composed.pdf_bytes, Path(output_dir) / job_id, composed.filename)
            result.file_path = str(path)
            result.filename = composed.filename
            result.page_count = composed.page_count
            result.status = "completed"

        except Exception as exc:
            result.status = "failed"
            result.errors.append(str(exc))
            logger.exception("Pipeline failed at job %s", job_id)

        result.total_duration_seconds = round(time.perf_counter() - start, 3)
        logger.info(
            "Pipeline %s %s in %.2fs",
            job_id, result.status, result.total_duration_seconds,
        )
        return result

    def _run_stage(self, stage: BaseStage, input_data: Any, result: PipelineResult) -> Any:
        try:
            return stage.run(input_data)
        finally:
            result.stage_logs.append(self._log_entry(stage))

    @staticmethod
    def _log_entry(stage: BaseStage) -> Dict[str, Any]:
        return stage.log.to_dict()


def write_pdf(pdf_bytes: bytes, directory: Path, filename: str) -> Path:
    """Write a finished PDF; the target name only appears once fully written."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    partial = path.with_suffix(".pdf.part")
    partial.write_bytes(pdf_bytes)
    partial.replace(path)
    return path
