"""
Test: Document composition — reports, invoices and letters rendered to
PDF with a fake chart rasterizer.  PDFs are written uncompressed so the
drawn text can be checked in the content streams.
"""

import shutil
import sys
from pathlib import Path
from unittest.mock import patch

import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.branding import DEFAULT_BRANDING
from engine.composer import NO_CHARTS_MESSAGE, DocumentComposer, build_filename
from engine.errors import UnsupportedDocumentTypeError
from engine.kpi_grid import EMPTY_KPI_MESSAGE
from engine.models import (
    BrandingProfile, ChartSpec, DocumentSpec, KPIItem, ReportContent, ReportLayoutPreferences,
)
from engine.transformers import transform

from conftest import FakeRasterizer

TEST_OUTPUT = Path(__file__).parent / "_test_output_composer"


def _bar(chart_id):
    return ChartSpec(id=chart_id, title=chart_id.title(), type="bar", data={
        "labels": ["Jan", "Feb"], "datasets": [{"label": "Revenue", "data": [10, 12]}],
    })


def _report(content, title="Rent Collection Report"):
    return DocumentSpec(type="report", title=title, content=content, owner="Jane Doe")


class TestReportComposition:
    def setup_method(self):
        TEST_OUTPUT.mkdir(exist_ok=True)

    def teardown_method(self):
        if TEST_OUTPUT.exists():
            shutil.rmtree(TEST_OUTPUT)

    def _content(self, data, **overrides):
        transformed = transform("rent-collection", data)
        fields = dict(period="March 2024", summary="Collections improved in March.",
                      kpis=transformed.kpis, charts=transformed.charts,
                      table=transformed.table, columns=transformed.columns)
        fields.update(overrides)
        return ReportContent(**fields)

    def test_full_report(self, rent_collection_data):
        rasterizer = FakeRasterizer()
        composer = DocumentComposer(rasterizer=rasterizer, compress=False, currency="KES")
        result = composer.run({"document": _report(self._content(rent_collection_data)),
                               "branding": DEFAULT_BRANDING})
        (TEST_OUTPUT / result.filename).write_bytes(result.pdf_bytes)

        pdf = result.pdf_bytes
        assert pdf.startswith(b"%PDF")
        assert result.page_count >= 1
        assert result.charts_rendered == 2
        assert result.chart_failures == []
        assert [c[0] for c in rasterizer.calls] == ["collection_trend", "collection_breakdown"]
        for text in (b"Report Period: March 2024", b"EXECUTIVE SUMMARY",
                     b"KEY PERFORMANCE INDICATORS", b"VISUAL ANALYTICS",
                     b"DETAILED BREAKDOWN", b"Amina Odhiambo", b"Page 1 of"):
            assert text in pdf
        assert result.filename.startswith("rent-collection-report_jane-doe_")
        assert composer.log.status == "success"
        assert composer.log.metadata["charts"] == 2

    def test_failed_chart_is_replaced_not_fatal(self, rent_collection_data):
        composer = DocumentComposer(rasterizer=FakeRasterizer({"collection_trend"}),
                                    compress=False)
        result = composer.run({"document": _report(self._content(rent_collection_data))})

        assert result.chart_failures == ["collection_trend"]
        assert result.charts_rendered == 1
        assert any("collection_trend" in w for w in composer.log.warnings)
        assert b"KEY PERFORMANCE INDICATORS" in result.pdf_bytes

    def test_empty_sections_print_notices(self):
        composer = DocumentComposer(rasterizer=FakeRasterizer(), compress=False)
        pdf = composer.generate_document(_report(ReportContent(period="Q1")))

        assert EMPTY_KPI_MESSAGE.encode() in pdf
        assert NO_CHARTS_MESSAGE.encode() in pdf
        assert b"No detailed data available" in pdf

    def test_charts_can_be_left_out(self, rent_collection_data):
        rasterizer = FakeRasterizer()
        composer = DocumentComposer(rasterizer=rasterizer, compress=False)
        content = self._content(rent_collection_data, include_charts=False)
        pdf = composer.generate_document(_report(content))

        assert rasterizer.calls == []
        assert b"VISUAL ANALYTICS" not in pdf

    def test_cartesian_charts_pair_side_by_side(self):
        composer = DocumentComposer(rasterizer=FakeRasterizer(), compress=False)
        content = ReportContent(charts=[_bar("revenue"), _bar("expenses"), _bar("profit")])

        with patch.object(DocumentComposer, "_draw_chart", autospec=True) as draw:
            composer.generate_document(_report(content))

        calls = [c.args for c in draw.call_args_list]
        assert [c[2].id for c in calls] == ["revenue", "expenses", "profit"]
        # (self, surface, spec, branding, tier, x, top, width, height)
        assert calls[0][6] == calls[1][6]
        assert calls[1][5] > calls[0][5]
        assert calls[2][6] > calls[0][6]
        assert calls[2][7] > calls[0][7]

    def test_long_table_spans_pages(self):
        rows = [{"tenant": f"Tenant {i}", "amount": 1000 + i} for i in range(80)]
        composer = DocumentComposer(rasterizer=FakeRasterizer(), table_max_rows=None,
                                    compress=False)
        result = composer.run({"document": _report(ReportContent(table=rows))})

        assert result.page_count >= 2
        assert result.table_pages >= 2
        assert any(b.section == "table" for b in result.page_breaks)
        assert b"Continued from previous page" in result.pdf_bytes
        assert f"Page 2 of {result.page_count}".encode() in result.pdf_bytes

    @pytest.mark.parametrize("density,dimensions", [
        ("compact", "ultra-compact"),
        ("standard", "standard"),
        ("spacious", "large"),
    ])
    def test_every_page_break_moves_a_block_that_fits(self, density, dimensions):
        branding = BrandingProfile(layout=ReportLayoutPreferences(
            layout_density=density, chart_dimensions=dimensions, kpi_style="detailed"))
        rows = [{"tenant": f"Tenant {i}", "property": "Westlands Heights",
                 "amount": 25000 + i, "date": "2024-03-05"} for i in range(120)]
        content = ReportContent(
            period="Q1 2024",
            summary=" ".join(["Collections stayed ahead of target across the portfolio."] * 12),
            kpis=[KPIItem(f"Metric {i}", 1000 * i, "currency", change="+2.0%", trend="up")
                  for i in range(10)],
            charts=[_bar(f"chart_{i}") for i in range(7)],
            table=rows,
        )
        composer = DocumentComposer(rasterizer=FakeRasterizer(), table_max_rows=None,
                                    compress=False)
        result = composer.run({"document": _report(content), "branding": branding})

        assert result.page_count >= 3
        assert result.page_breaks
        for page_break in result.page_breaks:
            assert 0 < page_break.required_height <= page_break.available_after

    def test_default_cap_adds_truncation_notice(self):
        rows = [{"tenant": f"Tenant {i}"} for i in range(30)]
        composer = DocumentComposer(rasterizer=FakeRasterizer(), table_max_rows=20,
                                    compress=False)
        pdf = composer.generate_document(_report(ReportContent(table=rows)))
        assert b"Showing first 20 of 30 records" in pdf

    def test_detailed_kpis_show_change(self):
        branding = BrandingProfile(layout=ReportLayoutPreferences(kpi_style="detailed"))
        kpis = [KPIItem("Amount Collected", 382500, "currency", trend="up", change="+10.0%")]
        composer = DocumentComposer(rasterizer=FakeRasterizer(), compress=False)
        pdf = composer.generate_document(_report(ReportContent(kpis=kpis)), branding)
        assert b"+10.0% vs previous period" in pdf

    def test_dict_document_with_camel_case_content(self):
        composer = DocumentComposer(rasterizer=FakeRasterizer(), compress=False)
        pdf = composer.generate_document({
            "type": "report",
            "title": "Occupancy Report",
            "content": {
                "reportPeriod": "April 2024",
                "kpis": [{"label": "Occupied Units", "value": 42, "format": "number"}],
                "tableData": [{"unit": "A1", "status": "occupied"}],
            },
        })
        assert b"Report Period: April 2024" in pdf
        assert b"OCCUPIED UNITS" in pdf


class TestOtherDocuments:
    def test_invoice(self):
        composer = DocumentComposer(compress=False, currency="KES")
        result = composer.run({"document": DocumentSpec(type="invoice", title="Invoice", content={
            "invoiceNumber": "INV-0042",
            "issueDate": "2024-03-01",
            "dueDate": "2024-03-15",
            "billTo": {"name": "Amina Odhiambo", "address": "Riverside Apartments\nUnit A1"},
            "items": [
                {"description": "March rent", "quantity": 2, "amount": 1000},
                {"description": "Water", "amount": 500},
            ],
            "notes": "Pay via M-Pesa.",
        })})

        pdf = result.pdf_bytes
        for text in (b"BILL FROM", b"BILL TO", b"INV-0042", b"Mar 15, 2024",
                     b"INVOICE ITEMS", b"March rent", b"KSh 2,500", b"Pay via M-Pesa."):
            assert text in pdf
        assert result.charts_rendered == 0

    def test_letter(self):
        composer = DocumentComposer(compress=False)
        pdf = composer.generate_document(DocumentSpec(type="notice", title="Rent Increase Notice",
                                                      content={
            "recipient": {"name": "Brian Kamau", "address": "Hillview Court\nUnit B4"},
            "subject": "Rent review",
            "body": "Your rent will change from 1 May.\n\nThank you.",
            "sender": {"name": "Property Office", "title": "Manager"},
        }))
        for text in (b"Brian Kamau", b"Subject: Rent review", b"Sincerely,", b"Property Office"):
            assert text in pdf

    def test_unsupported_type_aborts(self):
        composer = DocumentComposer()
        with pytest.raises(UnsupportedDocumentTypeError):
            composer.run({"document": {"type": "spreadsheet", "title": "Sheet"}})
        assert composer.log.status == "error"


def test_build_filename():
    when = pd.Timestamp("2024-03-15")
    assert build_filename("Rent Collection Report", "Jane Doe", when) == \
        "rent-collection-report_jane-doe_03-15-2024.pdf"
    assert build_filename("Profit & Loss", None, when) == \
        "profit-loss_property-manager_03-15-2024.pdf"
