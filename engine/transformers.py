"""
Report data transformers — raw query results → {kpis, charts, table}.

One strategy per report type, kept in a closed registry.  Unknown report
types resolve to FallbackTransformer.  Payloads already in the ReportData
contract shape ({kpis: {...}, charts: {...}, table: [...]}) are handled by
ContractTransformer, driven by the report's registered configuration.

Every strategy is pure and tolerant of missing data: absent numbers read
as 0, absent series as [] and absent rows as [].
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from engine.base import BaseStage
from engine.models import ChartSpec, KPIItem, ReportData, TableColumn, TransformedReport
from engine.report_configs import ReportConfig, find_report_config
from utils.formatting import format_currency, format_percent, humanize_key, to_number, to_timestamp

logger = logging.getLogger(__name__)

SUCCESS = "#22C55E"
WARNING = "#F59E0B"
DANGER = "#EF4444"
INFO = "#3B82F6"

AGING_BUCKETS = ("Current", "1-30 Days", "31-60 Days", "61-90 Days", "90+ Days")

# Chart ids whose type is implied by the query layer's naming
CHART_TYPE_BY_ID = {
    "collection_trend": "line",
    "collection_breakdown": "doughnut",
    "monthly_trend": "line",
}

# Keys tried, in order, for the label and value of pie rows
_PIE_LABEL_KEYS = ("name", "label", "status", "category", "type", "bucket", "period")
_PIE_VALUE_KEYS = ("value", "count", "amount", "total")


# ── Helpers ──────────────────────────────────────────────────────────

def _num(value: Any) -> float:
    number = to_number(value)
    return 0.0 if number is None else number


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _rows(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [row for row in value if isinstance(row, dict)]


def _get(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _person(record: Any) -> str:
    record = _dict(record)
    name = f"{record.get('first_name') or ''} {record.get('last_name') or ''}".strip()
    return name or "N/A"


def _labels(rows: Iterable[Dict[str, Any]], key: str) -> List[str]:
    return [str(row.get(key) if row.get(key) is not None else "") for row in rows]


def _values(rows: Iterable[Dict[str, Any]], key: str) -> List[float]:
    return [_num(row.get(key)) for row in rows]


def _dataset(label: str, values: List[float], color: Any = None) -> Dict[str, Any]:
    dataset: Dict[str, Any] = {"label": label, "data": values}
    if color:
        dataset["background_color"] = color
    return dataset


def _chart(chart_id: str, title: str, chart_type: str, labels: List[Any],
           datasets: List[Dict[str, Any]], stacked: bool = False) -> ChartSpec:
    return ChartSpec(id=chart_id, title=title, type=chart_type,
                     data={"labels": labels, "datasets": datasets}, stacked=stacked)


def _series_trend(values: List[float]) -> Tuple[Optional[str], Optional[str]]:
    """Direction and % change between the last two points of a series."""
    if len(values) < 2 or not values[-2]:
        return None, None
    change = (values[-1] - values[-2]) / abs(values[-2]) * 100
    if abs(change) < 0.05:
        return "stable", "0.0%"
    return ("up" if change > 0 else "down"), f"{change:+.1f}%"


def _kpi(label: str, value: Any, fmt: str = "number", decimals: Optional[int] = None,
         series: Optional[List[float]] = None, trend: Optional[str] = None) -> KPIItem:
    change = None
    if series is not None:
        trend, change = _series_trend(series)
    return KPIItem(label=label, value=value, format=fmt, decimals=decimals,
                   trend=trend, change=change)


def _days_between(start: Any, end: Any) -> Optional[int]:
    first, last = to_timestamp(start), to_timestamp(end)
    if first is None or last is None:
        return None
    if (first.tzinfo is None) != (last.tzinfo is None):
        first, last = first.tz_localize(None), last.tz_localize(None)
    return max(0, (last - first).days)


# ── Strategy interface ───────────────────────────────────────────────

class ReportTransformer(ABC):
    """Turns one report type's raw payload into KPIs, charts and rows."""

    report_type: str = ""
    columns: List[TableColumn] = []

    @abstractmethod
    def generate_kpis(self, data: Dict[str, Any]) -> List[KPIItem]:
        ...

    def generate_charts(self, data: Dict[str, Any]) -> List[ChartSpec]:
        return []

    def format_table_data(self, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        return []

    def transform(self, data: Any) -> TransformedReport:
        data = _dict(data)
        return TransformedReport(
            kpis=self.generate_kpis(data),
            charts=self.generate_charts(data),
            table=self.format_table_data(data),
            columns=list(self.columns),
        )


def _col(key: str, label: str, align: str = "left", fmt: Optional[str] = None,
         decimals: Optional[int] = None) -> TableColumn:
    return TableColumn(key=key, label=label, align=align, format=fmt, decimals=decimals)


# ── Strategies ───────────────────────────────────────────────────────

class RentCollectionTransformer(ReportTransformer):
    report_type = "rent-collection"
    columns = [
        _col("tenant", "Tenant"), _col("property", "Property"), _col("unit", "Unit"),
        _col("amount", "Amount", "right", "currency"),
        _col("due_date", "Due Date", fmt="date"),
        _col("status", "Status", "center"),
        _col("amount_paid", "Amount Paid", "right", "currency"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        trend = _rows(data.get("monthlyTrend"))
        rate = _num(summary.get("collectionRate"))
        return [
            _kpi("Total Rent Due", _num(summary.get("totalDue")), "currency"),
            _kpi("Amount Collected", _num(summary.get("totalCollected")), "currency",
                 series=_values(trend, "collected")),
            _kpi("Outstanding Amount", _num(summary.get("outstanding")), "currency"),
            _kpi("Collection Rate", rate, "percent", 1,
                 trend=("up" if rate > 85 else "down") if rate else None),
        ]

    def generate_charts(self, data):
        summary = _dict(data.get("summary"))
        trend = _rows(data.get("monthlyTrend"))
        datasets = [_dataset("Collected Amount", _values(trend, "collected"))]
        if any("expected" in row for row in trend):
            datasets.append(_dataset("Expected Rent", _values(trend, "expected")))
        return [
            _chart("collection_trend", "Monthly Collection Trend", "line",
                   _labels(trend, "month"), datasets),
            _chart("collection_breakdown", "Collection vs Outstanding", "doughnut",
                   ["Collected", "Outstanding"],
                   [_dataset("Amount", [_num(summary.get("totalCollected")),
                                        _num(summary.get("outstanding"))], [SUCCESS, DANGER])]),
        ]

    def format_table_data(self, data):
        return [
            {
                "tenant": _person(invoice.get("tenant")),
                "property": _get(invoice, "lease", "unit", "property", "name") or "N/A",
                "unit": _get(invoice, "lease", "unit", "unit_number") or "N/A",
                "amount": _num(invoice.get("amount")),
                "due_date": invoice.get("due_date"),
                "status": invoice.get("status") or "pending",
                "amount_paid": _num(invoice.get("amount_paid")),
            }
            for invoice in _rows(data.get("invoices"))
        ]


class OutstandingBalancesTransformer(ReportTransformer):
    report_type = "outstanding-balances"
    columns = [
        _col("tenant", "Tenant"), _col("property", "Property"),
        _col("total_outstanding", "Outstanding", "right", "currency"),
        _col("days_past_due", "Days Past Due", "right", "number"),
        _col("last_payment", "Last Payment", fmt="date"),
        _col("risk_level", "Risk Level", "center"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        return [
            _kpi("Total Outstanding", _num(summary.get("totalOutstanding")), "currency"),
            _kpi("Overdue Invoices", _num(summary.get("overdueCount"))),
            _kpi("Average Balance", _num(summary.get("avgBalance")), "currency"),
            _kpi("At Risk Amount", _num(summary.get("atRiskAmount")), "currency",
                 trend="stable"),
        ]

    def generate_charts(self, data):
        aging = _dict(data.get("agingAnalysis"))
        buckets = [_num(aging.get(bucket)) for bucket in AGING_BUCKETS]
        low, medium, high = buckets[0] + buckets[1], buckets[2], buckets[3] + buckets[4]
        return [
            _chart("aging_analysis", "Aging Analysis", "bar", list(AGING_BUCKETS),
                   [_dataset("Outstanding Amount", buckets, INFO)]),
            _chart("risk_breakdown", "Risk Distribution", "pie",
                   ["Low Risk (0-30 days)", "Medium Risk (31-60 days)", "High Risk (60+ days)"],
                   [_dataset("Outstanding Amount", [low, medium, high], [SUCCESS, WARNING, DANGER])]),
        ]

    def format_table_data(self, data):
        return [
            {
                "tenant": _person(invoice.get("tenant")),
                "property": _get(invoice, "lease", "unit", "property", "name") or "N/A",
                "total_outstanding": _num(invoice.get("outstanding")),
                "days_past_due": _num(invoice.get("daysPastDue")),
                "last_payment": invoice.get("lastPaymentDate"),
                "risk_level": invoice.get("agingCategory") or "Low",
            }
            for invoice in _rows(data.get("outstandingInvoices"))
        ]


class PropertyPerformanceTransformer(ReportTransformer):
    report_type = "property-performance"
    columns = [
        _col("property_name", "Property"),
        _col("revenue", "Revenue", "right", "currency"),
        _col("expenses", "Expenses", "right", "currency"),
        _col("net_income", "Net Income", "right", "currency"),
        _col("yield", "Yield", "right", "percent", 2),
        _col("total_units", "Units", "center", "number"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        return [
            _kpi("Total Revenue", _num(summary.get("totalRevenue")), "currency"),
            _kpi("Total Expenses", _num(summary.get("totalExpenses")), "currency"),
            _kpi("Net Income", _num(summary.get("totalNetIncome")), "currency"),
            _kpi("Average Yield", _num(summary.get("avgYield")), "percent", 2),
        ]

    def generate_charts(self, data):
        properties = _rows(data.get("propertyData"))
        names = _labels(properties, "name")
        return [
            _chart("revenue_by_property", "Revenue by Property", "bar", names,
                   [_dataset("Revenue", _values(properties, "revenue"), INFO)]),
            _chart("yield_performance", "Yield Performance", "line", names,
                   [_dataset("Yield %", _values(properties, "yield"), SUCCESS)]),
        ]

    def format_table_data(self, data):
        return [
            {
                "property_name": p.get("name") or "N/A",
                "revenue": _num(p.get("revenue")),
                "expenses": _num(p.get("expenses")),
                "net_income": _num(p.get("netIncome")),
                "yield": _num(p.get("yield")),
                "total_units": _num(p.get("totalUnits")),
            }
            for p in _rows(data.get("propertyData"))
        ]


class ProfitLossTransformer(ReportTransformer):
    report_type = "profit-loss"
    columns = [
        _col("month", "Month"),
        _col("revenue", "Total Revenue", "right", "currency"),
        _col("expenses", "Operating Expenses", "right", "currency"),
        _col("net_operating_income", "Net Operating Income", "right", "currency"),
        _col("profit_margin", "Profit Margin", "right", "percent", 1),
    ]

    @staticmethod
    def _monthly(data) -> List[Dict[str, Any]]:
        return _rows(data.get("monthlyTrends")) or _rows(data.get("monthlyTrend"))

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        revenue = _num(summary.get("totalRevenue"))
        expenses = _num(summary.get("totalExpenses"))
        profit = revenue - expenses
        margin = profit / revenue * 100 if revenue > 0 else 0.0
        monthly = self._monthly(data)
        return [
            _kpi("Total Revenue", revenue, "currency", series=_values(monthly, "revenue")),
            _kpi("Total Expenses", expenses, "currency", series=_values(monthly, "expenses")),
            _kpi("Gross Profit", profit, "currency", series=_values(monthly, "profit")),
            _kpi("Profit Margin", margin, "percent", 1),
        ]

    def generate_charts(self, data):
        summary = _dict(data.get("summary"))
        monthly = self._monthly(data)
        breakdown = _rows(data.get("propertyBreakdown"))
        return [
            _chart("monthly_profit", "Monthly Profit Trend", "line", _labels(monthly, "month"),
                   [_dataset("Net Profit", _values(monthly, "profit"), SUCCESS)]),
            _chart("revenue_vs_expenses", "Revenue vs Expenses", "bar", ["Revenue", "Expenses"],
                   [_dataset("Amount", [_num(summary.get("totalRevenue")),
                                        _num(summary.get("totalExpenses"))], [SUCCESS, DANGER])]),
            _chart("revenue_by_property", "Revenue by Property", "pie",
                   _labels(breakdown, "property"),
                   [_dataset("Revenue", _values(breakdown, "revenue"))]),
        ]

    def format_table_data(self, data):
        """Monthly revenue/expense breakdown built from raw payments and expenses."""
        totals = []
        for rows, date_key, column in ((_rows(data.get("payments")), "payment_date", "revenue"),
                                       (_rows(data.get("expenses")), "expense_date", "expenses")):
            frame = pd.DataFrame(rows)
            if frame.empty or date_key not in frame:
                continue
            dates = pd.to_datetime(frame[date_key], errors="coerce", utc=True)
            amounts = pd.to_numeric(frame["amount"], errors="coerce") if "amount" in frame \
                else pd.Series(0.0, index=frame.index)
            monthly = pd.DataFrame({
                "month": dates.dt.tz_localize(None).dt.to_period("M"),
                column: amounts.fillna(0.0),
            }).dropna(subset=["month"])
            totals.append(monthly.groupby("month")[column].sum())

        if not totals:
            return []
        table = pd.concat(totals, axis=1).fillna(0.0).sort_index()
        for column in ("revenue", "expenses"):
            if column not in table:
                table[column] = 0.0

        rows = []
        for period, record in table.iterrows():
            revenue, expenses = float(record["revenue"]), float(record["expenses"])
            net = revenue - expenses
            rows.append({
                "month": period.strftime("%b %Y"),
                "revenue": revenue,
                "expenses": expenses,
                "net_operating_income": net,
                "profit_margin": net / revenue * 100 if revenue > 0 else 0.0,
            })
        return rows


class ExecutiveSummaryTransformer(ReportTransformer):
    report_type = "executive-summary"
    columns = [_col("metric", "Metric"), _col("value", "Value", "right")]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        return [
            _kpi("Total Properties", _num(summary.get("totalProperties"))),
            _kpi("Total Units", _num(summary.get("totalUnits"))),
            _kpi("Collection Rate", _num(summary.get("collectionRate")), "percent", 1),
            _kpi("Occupancy Rate", _num(summary.get("occupancyRate")), "percent", 0),
        ]

    def generate_charts(self, data):
        quarterly = _rows(data.get("revenueTrendQuarterly"))
        occupancy = _rows(data.get("occupancyBreakdown"))
        return [
            _chart("quarterly_revenue", "Quarterly Revenue Overview", "bar",
                   _labels(quarterly, "quarter"),
                   [_dataset("Revenue", _values(quarterly, "amount"), SUCCESS)]),
            _chart("occupancy_status", "Portfolio Occupancy Status", "pie",
                   _labels(occupancy, "status"),
                   [_dataset("Units", _values(occupancy, "count"), [SUCCESS, DANGER, WARNING])]),
        ]

    def format_table_data(self, data):
        summary = _dict(data.get("summary"))
        return [
            {"metric": "Total Revenue (Selected Period)",
             "value": format_currency(_num(summary.get("totalRevenue")))},
            {"metric": "Net Operating Income",
             "value": format_currency(_num(summary.get("netOperatingIncome")))},
            {"metric": "Outstanding Balances",
             "value": format_currency(_num(summary.get("outstandingBalances")))},
            {"metric": "Collection Rate",
             "value": format_percent(_num(summary.get("collectionRate")), 1)},
            {"metric": "Occupancy Rate",
             "value": format_percent(_num(summary.get("occupancyRate")), 0)},
        ]


class RevenueVsExpensesTransformer(ReportTransformer):
    report_type = "revenue-vs-expenses"
    columns = [
        _col("month", "Month"),
        _col("revenue", "Revenue", "right", "currency"),
        _col("expenses", "Expenses", "right", "currency"),
        _col("net_income", "Net Income", "right", "currency"),
        _col("margin", "Margin", "right", "percent", 1),
    ]

    def generate_kpis(self, data):
        monthly = _rows(data.get("monthlyData"))
        return [
            _kpi("Total Revenue", _num(data.get("totalRevenue")), "currency",
                 series=_values(monthly, "revenue")),
            _kpi("Total Expenses", _num(data.get("totalExpenses")), "currency",
                 series=_values(monthly, "expenses")),
            _kpi("Net Income", _num(data.get("netIncome")), "currency"),
            _kpi("Expense Ratio", _num(data.get("expenseRatio")), "percent", 1),
        ]

    def generate_charts(self, data):
        monthly = _rows(data.get("monthlyData"))
        return [
            _chart("monthly_comparison", "Monthly Revenue vs Expenses", "bar",
                   _labels(monthly, "month"),
                   [_dataset("Revenue", _values(monthly, "revenue"), SUCCESS),
                    _dataset("Expenses", _values(monthly, "expenses"), DANGER)]),
        ]

    def format_table_data(self, data):
        rows = []
        for month in _rows(data.get("monthlyData")):
            revenue, expenses = _num(month.get("revenue")), _num(month.get("expenses"))
            rows.append({
                "month": month.get("month") or "",
                "revenue": revenue,
                "expenses": expenses,
                "net_income": revenue - expenses,
                "margin": (revenue - expenses) / revenue * 100 if revenue > 0 else 0.0,
            })
        return rows


class LeaseExpiryTransformer(ReportTransformer):
    report_type = "lease-expiry"
    columns = [
        _col("tenant", "Tenant"), _col("property", "Property"), _col("unit", "Unit"),
        _col("end_date", "End Date", fmt="date"),
        _col("days_to_expiry", "Days Left", "right", "number"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        return [
            _kpi("Total Expiring (<=90d)", _num(summary.get("total"))),
            _kpi("Expiring in 30 Days", _num(summary.get("thirtyDays"))),
            _kpi("Expiring in 31-60 Days", _num(summary.get("sixtyDays"))),
            _kpi("Expiring in 61-90 Days", _num(summary.get("ninetyDays"))),
        ]

    def generate_charts(self, data):
        breakdown = _rows(data.get("expiringBreakdown"))
        labels = _labels(breakdown, "period")
        counts = _values(breakdown, "count")
        colors = [DANGER, WARNING, SUCCESS]
        return [
            _chart("expiry_timeline", "Lease Expiry Timeline", "bar", labels,
                   [_dataset("Expiring Leases", counts, colors)]),
            _chart("expiry_periods", "Expiries by Period", "doughnut", labels,
                   [_dataset("Expiring Leases", counts, colors)]),
        ]

    def format_table_data(self, data):
        now = pd.Timestamp.now()
        rows = []
        for lease in _rows(data.get("leases")):
            end = lease.get("lease_end_date")
            days = _days_between(now, end)
            rows.append({
                "tenant": _person(lease.get("tenant")),
                "property": _get(lease, "unit", "property", "name") or "N/A",
                "unit": _get(lease, "unit", "unit_number") or "N/A",
                "end_date": end,
                "days_to_expiry": days,
            })
        return rows


class OccupancyTransformer(ReportTransformer):
    report_type = "occupancy"
    columns = [
        _col("month", "Month"),
        _col("occupied_units", "Occupied", "right", "number"),
        _col("vacant_units", "Vacant", "right", "number"),
        _col("occupancy_rate", "Occupancy Rate", "right", "percent", 1),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        trend = _rows(data.get("monthlyTrend"))
        return [
            _kpi("Total Units", _num(summary.get("totalUnits"))),
            _kpi("Occupied Units", _num(summary.get("occupiedUnits"))),
            _kpi("Vacant Units", _num(summary.get("vacantUnits"))),
            _kpi("Occupancy Rate", _num(summary.get("occupancyRate")), "percent", 1,
                 series=_values(trend, "rate")),
        ]

    def generate_charts(self, data):
        trend = _rows(data.get("monthlyTrend"))
        return [
            _chart("occupancy_trend", "Occupancy Trend", "area", _labels(trend, "month"),
                   [_dataset("Occupancy Rate (%)", _values(trend, "rate"), SUCCESS)]),
        ]

    def format_table_data(self, data):
        return [
            {
                "month": m.get("month") or "",
                "occupied_units": _num(m.get("occupied")),
                "vacant_units": _num(m.get("vacant")),
                "occupancy_rate": _num(m.get("rate")),
            }
            for m in _rows(data.get("monthlyTrend"))
        ]


class ExpenseSummaryTransformer(ReportTransformer):
    report_type = "expense-summary"
    columns = [
        _col("category", "Category"),
        _col("amount", "Amount", "right", "currency"),
        _col("property", "Property"),
        _col("date", "Date", fmt="date"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        expenses = _num(summary.get("totalExpenses"))
        income = _num(summary.get("totalIncome"))
        return [
            _kpi("Total Expenses", expenses, "currency"),
            _kpi("Total Income", income, "currency"),
            _kpi("Net Income", income - expenses, "currency"),
            _kpi("Expense to Income Ratio", _num(summary.get("expenseToIncomeRatio")), "percent", 1),
        ]

    def generate_charts(self, data):
        breakdown = _rows(data.get("categoryBreakdown"))
        return [
            _chart("expense_categories", "Expenses by Category", "pie",
                   _labels(breakdown, "category"),
                   [_dataset("Expenses", _values(breakdown, "amount"))]),
        ]

    def format_table_data(self, data):
        return [
            {
                "category": expense.get("category") or "Other",
                "amount": _num(expense.get("amount")),
                "property": _get(expense, "property", "name") or "N/A",
                "date": expense.get("expense_date"),
            }
            for expense in _rows(data.get("expenses"))
        ]


class CashFlowTransformer(ReportTransformer):
    report_type = "cash-flow"
    columns = [
        _col("month", "Month"),
        _col("inflow", "Cash Inflow", "right", "currency"),
        _col("outflow", "Cash Outflow", "right", "currency"),
        _col("net_flow", "Net Cash Flow", "right", "currency"),
    ]

    @staticmethod
    def _monthly(data) -> List[Dict[str, Any]]:
        return _rows(data.get("monthlyTrends")) or _rows(data.get("monthlyTrend"))

    def generate_kpis(self, data):
        summary = _dict(data.get("summary")) or data
        monthly = self._monthly(data)
        return [
            _kpi("Cash Inflow", _num(summary.get("cashInflow")), "currency",
                 series=_values(monthly, "inflow")),
            _kpi("Cash Outflow", _num(summary.get("cashOutflow")), "currency",
                 series=_values(monthly, "outflow")),
            _kpi("Net Cash Flow", _num(summary.get("netCashFlow")), "currency"),
            _kpi("Cash Flow Margin", _num(summary.get("cashFlowMargin")), "percent", 1),
        ]

    def generate_charts(self, data):
        monthly = self._monthly(data)
        outflow = _rows(data.get("outflowByCategory"))
        return [
            _chart("cash_flow_trend", "Monthly Cash Flow Trend", "line", _labels(monthly, "month"),
                   [_dataset("Inflow", _values(monthly, "inflow"), SUCCESS),
                    _dataset("Outflow", _values(monthly, "outflow"), DANGER)]),
            _chart("outflow_by_category", "Cash Outflow by Category", "pie",
                   _labels(outflow, "category"),
                   [_dataset("Outflow", _values(outflow, "amount"))]),
        ]

    def format_table_data(self, data):
        return [
            {
                "month": trend.get("month") or "",
                "inflow": _num(trend.get("inflow")),
                "outflow": _num(trend.get("outflow")),
                "net_flow": _num(trend.get("net")),
            }
            for trend in self._monthly(data)
        ]


class MaintenanceTransformer(ReportTransformer):
    report_type = "maintenance"
    columns = [
        _col("property", "Property"), _col("tenant", "Tenant"),
        _col("category", "Category"), _col("status", "Status", "center"),
        _col("cost", "Cost", "right", "currency"),
        _col("submitted_date", "Submitted", fmt="date"),
        _col("response_days", "Days", "right", "number"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        return [
            _kpi("Total Requests", _num(summary.get("totalRequests"))),
            _kpi("Completed", _num(summary.get("completedRequests"))),
            _kpi("Avg Response Time", _num(summary.get("avgResponseTime")), "duration"),
            _kpi("Total Cost", _num(summary.get("totalCost")), "currency"),
        ]

    def generate_charts(self, data):
        monthly = _rows(data.get("monthlyTrends"))
        categories = _rows(data.get("requestsByCategory"))
        months = _labels(monthly, "month")
        return [
            _chart("monthly_requests", "Monthly Maintenance Requests", "area", months,
                   [_dataset("Requests", _values(monthly, "requests"), INFO)]),
            _chart("requests_by_category", "Requests by Category", "pie",
                   _labels(categories, "category"),
                   [_dataset("Requests", _values(categories, "count"))]),
            _chart("monthly_costs", "Monthly Maintenance Costs", "bar", months,
                   [_dataset("Cost", _values(monthly, "cost"), DANGER)]),
        ]

    def format_table_data(self, data):
        return [
            {
                "property": _get(request, "property", "name") or "N/A",
                "tenant": _person(request.get("tenant")),
                "category": request.get("category") or "Other",
                "status": request.get("status") or "Unknown",
                "cost": _num(request.get("cost")),
                "submitted_date": request.get("submitted_date"),
                "response_days": _days_between(request.get("submitted_date"),
                                               request.get("completed_date")),
            }
            for request in _rows(data.get("requests"))
        ]


class TenantTurnoverTransformer(ReportTransformer):
    report_type = "tenant-turnover"
    columns = [
        _col("tenant", "Tenant"), _col("property", "Property"),
        _col("move_out_date", "Move-out Date", fmt="date"),
        _col("reason", "Reason"),
        _col("cost", "Cost", "right", "currency"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary")) or data
        trend = _rows(data.get("monthlyTrend"))
        return [
            _kpi("Turnover Rate", _num(summary.get("turnoverRate")), "percent", 1,
                 series=_values(trend, "rate")),
            _kpi("Avg Tenure", _num(summary.get("avgTenureDays")), "duration"),
            _kpi("Turnover Cost", _num(summary.get("turnoverCost")), "currency"),
            _kpi("Retention Rate", _num(summary.get("retentionRate")), "percent", 1),
        ]

    def generate_charts(self, data):
        trend = _rows(data.get("monthlyTrend"))
        reasons = _rows(data.get("reasonBreakdown"))
        return [
            _chart("turnover_trend", "Turnover Trend", "line", _labels(trend, "month"),
                   [_dataset("Turnover Rate (%)", _values(trend, "rate"), DANGER)]),
            _chart("move_out_reasons", "Move-out Reasons", "doughnut", _labels(reasons, "reason"),
                   [_dataset("Move-outs", _values(reasons, "count"))]),
        ]

    def format_table_data(self, data):
        return [
            {
                "tenant": turnover.get("tenant_name") or "N/A",
                "property": turnover.get("property_name") or "N/A",
                "move_out_date": turnover.get("move_out_date"),
                "reason": turnover.get("reason") or "",
                "cost": _num(turnover.get("cost")),
            }
            for turnover in _rows(data.get("turnovers"))
        ]


class MarketRentTransformer(ReportTransformer):
    report_type = "market-rent"
    columns = [
        _col("unit_type", "Unit Type"),
        _col("unit_count", "Units", "center", "number"),
        _col("market_rate", "Market Rate", "right", "currency"),
        _col("our_rate", "Our Rate", "right", "currency"),
        _col("variance", "Variance", "right", "percent", 1),
        _col("annual_potential", "Annual Potential", "right", "currency"),
        _col("recommendation", "Recommendation"),
    ]

    def generate_kpis(self, data):
        summary = _dict(data.get("summary"))
        return [
            _kpi("Avg Market Rate", _num(summary.get("avgMarketRate")), "currency"),
            _kpi("Our Avg Rate", _num(summary.get("avgOurRate")), "currency"),
            _kpi("Market Position", _num(summary.get("marketPosition")), "percent", 1),
            _kpi("Annual Potential", _num(summary.get("annualRentPotential")), "currency"),
        ]

    def generate_charts(self, data):
        comparisons = _rows(data.get("comparisons"))
        trends = _rows(data.get("rentTrends"))
        unit_types = _rows(data.get("unitTypeBreakdown"))
        return [
            _chart("rent_comparison", "Rent Comparison by Unit Type", "bar",
                   _labels(comparisons, "unitType"),
                   [_dataset("Market Rate", _values(comparisons, "marketRate")),
                    _dataset("Our Rate", _values(comparisons, "ourAvgRate"))]),
            _chart("rent_trends", "Rent Trends (12 Months)", "line", _labels(trends, "month"),
                   [_dataset("Market Rate", _values(trends, "marketRate")),
                    _dataset("Our Rate", _values(trends, "ourRate"))]),
            _chart("unit_type_distribution", "Unit Type Distribution", "doughnut",
                   _labels(unit_types, "unitType"),
                   [_dataset("Units", _values(unit_types, "count"))]),
        ]

    def format_table_data(self, data):
        return [
            {
                "unit_type": comp.get("unitType") or "N/A",
                "unit_count": _num(comp.get("count")),
                "market_rate": _num(comp.get("marketRate")),
                "our_rate": _num(comp.get("ourAvgRate")),
                "variance": _num(comp.get("variance")),
                "annual_potential": _num(comp.get("totalPotential")),
                "recommendation": comp.get("recommendation") or "No recommendation",
            }
            for comp in _rows(data.get("comparisons"))
        ]


class FallbackTransformer(ReportTransformer):
    """Generic passthrough for report types without a dedicated strategy."""

    report_type = "generic"

    def generate_kpis(self, data):
        count = len(data) if isinstance(data, list) else 0
        return [
            KPIItem(label="Data Points", value=count, format="number"),
            KPIItem(label="Report Status", value="Generated", format="text"),
        ]

    def format_table_data(self, data):
        if isinstance(data, list):
            return [row if isinstance(row, dict) else {"value": row} for row in data]
        if isinstance(data, dict):
            return [data] if data else []
        return []

    def transform(self, data: Any) -> TransformedReport:
        # Unlike the typed strategies, the raw shape is kept as-is.
        return TransformedReport(
            kpis=self.generate_kpis(data),
            charts=self.generate_charts(data),
            table=self.format_table_data(data),
        )


class ContractTransformer(ReportTransformer):
    """Transformer for payloads in the ReportData contract shape.

    With a report configuration, KPIs, charts and columns follow it; without
    one, labels come from the payload keys and formats are inferred.
    """

    report_type = "contract"

    def __init__(self, config: Optional[ReportConfig] = None):
        self.config = config
        self.columns = list(config.columns) if config else []

    def generate_kpis(self, data):
        report = ReportData.from_payload(data)
        if self.config and self.config.kpis:
            return [KPIItem(label=k.label, value=report.kpi(k.key), format=k.format,
                            decimals=k.decimals) for k in self.config.kpis]
        kpis = []
        for key in report.kpis:
            lowered = key.lower()
            percent = "rate" in lowered or "percent" in lowered
            kpis.append(KPIItem(label=humanize_key(key), value=report.kpi(key),
                                format="percent" if percent else "currency",
                                decimals=1 if percent else None))
        return kpis

    def generate_charts(self, data):
        report = ReportData.from_payload(data)
        if self.config and self.config.charts:
            return [
                rows_to_chart(c.id, c.title or humanize_key(c.id), c.type,
                              report.charts.get(c.id, []), c.x_key, list(c.y_keys), c.stacked)
                for c in self.config.charts
            ]
        return [
            rows_to_chart(chart_id, humanize_key(chart_id), CHART_TYPE_BY_ID.get(chart_id, "bar"),
                          rows)
            for chart_id, rows in report.charts.items()
        ]

    def format_table_data(self, data):
        return list(ReportData.from_payload(data).table)


def rows_to_chart(chart_id: str, title: str, chart_type: str, rows: List[Dict[str, Any]],
                  x_key: Optional[str] = None, y_keys: Optional[List[str]] = None,
                  stacked: bool = False) -> ChartSpec:
    """Pivot query rows into a ChartSpec.

    Pie/doughnut rows are read as label/value pairs; other charts use
    *x_key* for categories and one dataset per *y_keys* entry (defaults to
    every numeric column of the first row).
    """
    chart_type = "doughnut" if chart_type == "donut" else chart_type
    rows = _rows(rows)
    if chart_type in ("pie", "doughnut"):
        label_key = next((k for k in _PIE_LABEL_KEYS if rows and k in rows[0]), None)
        value_key = next((k for k in _PIE_VALUE_KEYS if rows and k in rows[0]), None)
        labels = _labels(rows, label_key) if label_key else [str(i + 1) for i in range(len(rows))]
        values = _values(rows, value_key) if value_key else [0.0] * len(rows)
        return _chart(chart_id, title, chart_type, labels, [_dataset(title, values)])

    first = rows[0] if rows else {}
    x_key = x_key or next((k for k, v in first.items() if isinstance(v, str)), None)
    if not y_keys:
        y_keys = [k for k, v in first.items() if k != x_key and to_number(v) is not None
                  and not isinstance(v, str)]
    labels = _labels(rows, x_key) if x_key else [str(i + 1) for i in range(len(rows))]
    datasets = [_dataset(humanize_key(key), _values(rows, key)) for key in y_keys]
    return _chart(chart_id, title, chart_type, labels, datasets, stacked)


# ── Registry & dispatch ──────────────────────────────────────────────

TRANSFORMERS: Dict[str, ReportTransformer] = {
    t.report_type: t for t in (
        RentCollectionTransformer(),
        OutstandingBalancesTransformer(),
        PropertyPerformanceTransformer(),
        ProfitLossTransformer(),
        ExecutiveSummaryTransformer(),
        RevenueVsExpensesTransformer(),
        LeaseExpiryTransformer(),
        OccupancyTransformer(),
        ExpenseSummaryTransformer(),
        CashFlowTransformer(),
        MaintenanceTransformer(),
        TenantTurnoverTransformer(),
        MarketRentTransformer(),
    )
}

ALIASES = {
    "occupancy-report": "occupancy",
    "maintenance-report": "maintenance",
    "financial-summary": "profit-loss",
}

FALLBACK = FallbackTransformer()


def get_transformer(report_type: str, raw: Any = None) -> ReportTransformer:
    if ReportData.matches(raw):
        return ContractTransformer(find_report_config(report_type))
    transformer = TRANSFORMERS.get(ALIASES.get(report_type, report_type))
    if transformer is None:
        logger.info("No transformer for %r, using generic passthrough", report_type)
        return FALLBACK
    return transformer


def transform(report_type: str, raw: Any) -> TransformedReport:
    return get_transformer(report_type, raw).transform(raw)


def summarize(title: str, kpis: List[KPIItem], currency: Optional[str] = None,
              limit: int = 3) -> str:
    """One-sentence summary built from the leading KPIs."""
    parts = [f"{k.label}: {k.display_value(currency)}" for k in kpis[:limit]]
    if not parts:
        return f"This {title} contains no key metrics for the selected period."
    return f"This {title} shows {', '.join(parts)}."


class TransformStage(BaseStage):
    """Pipeline stage wrapping the dispatch above."""

    name = "TransformStage"

    def _execute(self, input_data: Dict[str, Any]) -> TransformedReport:
        report_type = input_data["report_type"]
        raw = input_data.get("raw")
        transformer = get_transformer(report_type, raw)
        self._log(f"{report_type} → {type(transformer).__name__}")
        result = transformer.transform(raw)
        self._record(kpis=len(result.kpis), charts=len(result.charts), rows=len(result.table))
        return result
