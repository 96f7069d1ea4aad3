"""
Test: Full pipeline — run ReportPipeline on a sample rent-collection
payload and verify the PDF is written and the stage logs are collected.
"""

import shutil
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.base import BaseStage
from engine.branding import BrandingResolver
from engine.errors import ReportConfigError
from engine.models import BrandingProfile
from orchestrator.pipeline import ReportPipeline, write_pdf

from conftest import FakeRasterizer

TEST_OUTPUT = Path(__file__).parent / "_test_output"


class TestPipeline:
    def setup_method(self):
        if TEST_OUTPUT.exists():
            shutil.rmtree(TEST_OUTPUT)

    def teardown_method(self):
        if TEST_OUTPUT.exists():
            shutil.rmtree(TEST_OUTPUT)

    def _pipeline(self, rasterizer=None, lookups=()):
        return ReportPipeline(resolver=BrandingResolver(lookups=list(lookups)),
                              rasterizer=rasterizer or FakeRasterizer())

    def test_full_pipeline(self, rent_collection_data):
        result = self._pipeline().run("rent-collection", rent_collection_data, TEST_OUTPUT,
                                      period="March 2024", owner="Jane Doe")

        # Pipeline completed
        assert result.status == "completed", result.errors
        assert result.job_id != ""
        assert result.total_duration_seconds >= 0

        # PDF written under the job directory
        path = Path(result.file_path)
        assert path.exists(), "PDF not found"
        assert path.parent.name == result.job_id
        assert path.read_bytes().startswith(b"%PDF")
        assert result.filename.startswith("rent-collection-report_jane-doe_")
        assert not list(path.parent.glob("*.part"))
        assert result.page_count >= 1

        # Stage logs
        stages = [log["stage"] for log in result.stage_logs]
        assert stages == ["TransformStage", "DocumentComposer"]
        assert all(log["status"] == "success" for log in result.stage_logs)

    def test_summary_dict(self, rent_collection_data):
        result = self._pipeline().run("rent-collection", rent_collection_data, TEST_OUTPUT)
        summary = result.summary_dict()

        assert summary["status"] == "completed"
        assert summary["kpis"] == 4
        assert summary["charts"] == 2
        assert summary["rows"] == 3
        assert summary["chart_failures"] == []
        assert summary["filename"] == result.filename

    def test_default_summary_and_period(self, rent_collection_data):
        result = self._pipeline().run("rent-collection", rent_collection_data, TEST_OUTPUT)
        assert result.status == "completed"
        assert result.composed.page_count == result.page_count

    def test_unknown_report_fails_cleanly(self):
        result = self._pipeline().run("not-a-report", {}, TEST_OUTPUT)

        assert result.status == "failed"
        assert "not-a-report" in result.errors[0]
        assert result.file_path == ""
        assert not TEST_OUTPUT.exists() or not any(TEST_OUTPUT.iterdir())

    def test_chart_failure_still_completes(self, rent_collection_data):
        rasterizer = FakeRasterizer({"collection_trend", "collection_breakdown"})
        result = self._pipeline(rasterizer).run("rent-collection", rent_collection_data,
                                                TEST_OUTPUT)

        assert result.status == "completed"
        assert sorted(result.composed.chart_failures) == ["collection_breakdown",
                                                          "collection_trend"]
        composer_log = result.stage_logs[-1]
        assert len(composer_log["warnings"]) == 2

    def test_tenant_branding_is_used(self, rent_collection_data):
        tenant = BrandingProfile(company_name="Acme Estates")
        pipeline = self._pipeline(lookups=[lambda t: tenant if t == "t-1" else None])
        result = pipeline.run("rent-collection", rent_collection_data, TEST_OUTPUT,
                              tenant_id="t-1")
        assert result.status == "completed"
        assert pipeline.resolver.resolve("t-1").company_name == "Acme Estates"

    def test_write_pdf_replaces_atomically(self):
        path = write_pdf(b"%PDF-1.4 first", TEST_OUTPUT / "job", "a.pdf")
        path = write_pdf(b"%PDF-1.4 second", TEST_OUTPUT / "job", "a.pdf")
        assert path.read_bytes() == b"%PDF-1.4 second"
        assert [p.name for p in path.parent.iterdir()] == ["a.pdf"]


class _Stage(BaseStage):
    name = "SampleStage"

    def __init__(self, outcome):
        super().__init__()
        self.outcome = outcome

    def _execute(self, input_data):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        self._warn("one chart replaced")
        self._record(pages=self.outcome)
        return self.outcome


class TestStageLog:
    def test_success_is_recorded(self):
        stage = _Stage(3)
        assert stage.run({}) == 3

        entry = stage.log.to_dict()
        assert entry["stage"] == "SampleStage"
        assert entry["status"] == "success"
        assert entry["warnings"] == ["one chart replaced"]
        assert entry["metadata"] == {"pages": 3}
        assert entry["duration"] >= 0

    def test_generation_error_is_recorded_and_raised(self):
        stage = _Stage(ReportConfigError("no-such-report"))
        with pytest.raises(ReportConfigError):
            stage.run({})
        assert stage.log.status == "error"
        assert stage.log.errors == ["ReportConfigError: No report configuration registered "
                                    "for 'no-such-report'"]

    def test_unexpected_error_is_recorded_and_raised(self):
        stage = _Stage(KeyError("raw"))
        with pytest.raises(KeyError):
            stage.run({})
        assert stage.log.errors[0].startswith("KeyError")
