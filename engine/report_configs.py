"""
Registry of report configurations.

A configuration names the KPIs, charts and table columns a report shows
when its query layer returns the ReportData contract
({kpis: {...}, charts: {...}, table: [...]}).  Requesting a report id that
is not registered is a fatal error for that generation request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from engine.errors import ReportConfigError
from engine.models import TableColumn


@dataclass(frozen=True)
class KPIConfig:
    key: str
    label: str
    format: str = "number"
    decimals: Optional[int] = None


@dataclass(frozen=True)
class ChartConfig:
    id: str
    type: str
    title: str = ""
    x_key: Optional[str] = None
    y_keys: tuple = ()
    stacked: bool = False


@dataclass(frozen=True)
class ReportConfig:
    id: str
    title: str
    description: str = ""
    default_period: str = "current_period"
    query_id: str = ""
    kpis: List[KPIConfig] = field(default_factory=list)
    charts: List[ChartConfig] = field(default_factory=list)
    columns: List[TableColumn] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "default_period": self.default_period,
            "query_id": self.query_id,
            "kpis": [k.key for k in self.kpis],
            "charts": [c.id for c in self.charts],
        }


def _col(key: str, label: str, align: str = "left", fmt: Optional[str] = None,
         decimals: Optional[int] = None) -> TableColumn:
    return TableColumn(key=key, label=label, align=align, format=fmt, decimals=decimals)


_CONFIGS = [
    ReportConfig(
        id="rent-collection",
        title="Rent Collection Report",
        description="Track rent collection performance and outstanding balances",
        query_id="rent_collection",
        kpis=[
            KPIConfig("total_collected", "Total Collected", "currency"),
            KPIConfig("collection_rate", "Collection Rate", "percent", 1),
            KPIConfig("outstanding_amount", "Outstanding", "currency"),
            KPIConfig("late_payments", "Late Payments"),
        ],
        charts=[
            ChartConfig("collection_trend", "line", "Collection Trend", "month",
                        ("collected", "expected")),
            ChartConfig("payment_status", "pie", "Payment Status Distribution"),
        ],
        columns=[
            _col("payment_date", "Date", fmt="date"),
            _col("property_name", "Property"),
            _col("unit_number", "Unit"),
            _col("tenant_name", "Tenant"),
            _col("amount_due", "Amount Due", "right", "currency"),
            _col("amount_paid", "Amount Paid", "right", "currency"),
            _col("status", "Status", "center"),
        ],
    ),
    ReportConfig(
        id="financial-summary",
        title="Financial Summary",
        description="Comprehensive financial overview including income and expenses",
        default_period="last_12_months",
        query_id="financial_summary",
        kpis=[
            KPIConfig("total_income", "Total Income", "currency"),
            KPIConfig("total_expenses", "Total Expenses", "currency"),
            KPIConfig("net_profit", "Net Profit", "currency"),
            KPIConfig("profit_margin", "Profit Margin", "percent", 1),
        ],
        charts=[
            ChartConfig("income_vs_expenses", "bar", "Income vs Expenses", "month",
                        ("income", "expenses")),
            ChartConfig("expense_breakdown", "doughnut", "Expense Breakdown"),
        ],
        columns=[
            _col("category", "Category"),
            _col("type", "Type", "center"),
            _col("amount", "Amount", "right", "currency"),
            _col("percentage", "Percentage", "right", "percent"),
        ],
    ),
    ReportConfig(
        id="occupancy-report",
        title="Unit Occupancy Report",
        description="Track property occupancy rates and vacancy trends",
        query_id="occupancy_report",
        kpis=[
            KPIConfig("occupancy_rate", "Occupancy Rate", "percent", 0),
            KPIConfig("total_units", "Total Units"),
            KPIConfig("occupied_units", "Occupied Units"),
            KPIConfig("vacant_units", "Vacant Units"),
        ],
        charts=[
            ChartConfig("occupancy_trend", "area", "Occupancy Trend", "month", ("occupancy_rate",)),
            ChartConfig("property_occupancy", "bar", "Occupancy by Property", "property",
                        ("occupied", "vacant"), stacked=True),
        ],
        columns=[
            _col("property_name", "Property"),
            _col("total_units", "Total Units", "right", "number"),
            _col("occupied_units", "Occupied", "right", "number"),
            _col("occupancy_rate", "Occupancy Rate", "right", "percent", 0),
        ],
    ),
    ReportConfig(
        id="maintenance-report",
        title="Maintenance Analytics",
        description="Track maintenance requests and resolution times",
        default_period="last_6_months",
        query_id="maintenance_report",
        kpis=[
            KPIConfig("total_requests", "Total Requests"),
            KPIConfig("completed_requests", "Completed"),
            KPIConfig("avg_resolution_time", "Avg Resolution Time", "duration"),
            KPIConfig("total_cost", "Total Cost", "currency"),
        ],
        charts=[
            ChartConfig("requests_by_status", "pie", "Requests by Status"),
            ChartConfig("monthly_requests", "bar", "Monthly Requests", "month", ("requests",)),
        ],
        columns=[
            _col("created_date", "Date", fmt="date"),
            _col("property_name", "Property"),
            _col("category", "Category"),
            _col("status", "Status", "center"),
            _col("cost", "Cost", "right", "currency"),
        ],
    ),
    ReportConfig(
        id="lease-expiry",
        title="Lease Expiry Report",
        description="Track upcoming lease expirations and renewals",
        default_period="next_90_days",
        query_id="lease_expiry",
        kpis=[
            KPIConfig("expiring_leases", "Expiring Leases"),
            KPIConfig("renewal_rate", "Renewal Rate", "percent", 1),
            KPIConfig("potential_revenue_loss", "Potential Revenue Loss", "currency"),
            KPIConfig("avg_lease_duration", "Avg Lease Duration", "duration"),
        ],
        charts=[
            ChartConfig("expiry_timeline", "bar", "Lease Expiries by Month", "month", ("expiring",)),
        ],
        columns=[
            _col("lease_end_date", "Lease End Date", fmt="date"),
            _col("property_name", "Property"),
            _col("unit_number", "Unit"),
            _col("tenant_name", "Tenant"),
            _col("monthly_rent", "Monthly Rent", "right", "currency"),
            _col("days_until_expiry", "Days Left", "right", "number"),
        ],
    ),
    ReportConfig(
        id="tenant-turnover",
        title="Tenant Turnover Report",
        description="Analyze tenant retention and turnover patterns",
        default_period="last_12_months",
        query_id="tenant_turnover",
        kpis=[
            KPIConfig("turnover_rate", "Turnover Rate", "percent", 1),
            KPIConfig("avg_tenancy_duration", "Avg Tenancy Duration", "duration"),
            KPIConfig("new_tenants", "New Tenants"),
            KPIConfig("departed_tenants", "Departed Tenants"),
        ],
        charts=[
            ChartConfig("turnover_trend", "line", "Turnover Trend", "month", ("turnover_rate",)),
        ],
        columns=[
            _col("lease_end_date", "Lease End Date", fmt="date"),
            _col("property_name", "Property"),
            _col("unit_number", "Unit"),
            _col("tenant_name", "Former Tenant"),
            _col("tenancy_duration", "Tenancy Duration", "right", "duration"),
        ],
    ),
    ReportConfig(
        id="outstanding-balances",
        title="Outstanding Balances",
        description="Aging analysis of unpaid invoices and at-risk accounts",
        default_period="as_of_today",
        query_id="outstanding_balances",
        kpis=[
            KPIConfig("total_outstanding", "Total Outstanding", "currency"),
            KPIConfig("overdue_count", "Overdue Invoices"),
            KPIConfig("avg_balance", "Average Balance", "currency"),
            KPIConfig("at_risk_amount", "At Risk Amount", "currency"),
        ],
        charts=[
            ChartConfig("aging_analysis", "bar", "Aging Analysis", "aging_bucket", ("amount",)),
            ChartConfig("risk_breakdown", "doughnut", "Risk Breakdown"),
        ],
        columns=[
            _col("due_date", "Due Date", fmt="date"),
            _col("tenant_name", "Tenant"),
            _col("property_name", "Property"),
            _col("outstanding_amount", "Outstanding", "right", "currency"),
            _col("days_overdue", "Days Overdue", "right", "number"),
            _col("risk_level", "Risk Level", "center"),
        ],
    ),
    ReportConfig(
        id="property-performance",
        title="Property Performance",
        description="Revenue vs expenses analysis and yield per property",
        default_period="ytd",
        query_id="property_performance",
        kpis=[
            KPIConfig("total_revenue", "Total Revenue", "currency"),
            KPIConfig("total_expenses", "Total Expenses", "currency"),
            KPIConfig("net_income", "Net Income", "currency"),
            KPIConfig("avg_yield", "Average Yield", "percent", 2),
        ],
        charts=[
            ChartConfig("revenue_vs_expenses", "bar", "Revenue vs Expenses", "property_name",
                        ("revenue", "expenses")),
            ChartConfig("yield_comparison", "line", "Yield Comparison", "property_name", ("yield",)),
        ],
        columns=[
            _col("property_name", "Property"),
            _col("revenue", "Revenue", "right", "currency"),
            _col("expenses", "Expenses", "right", "currency"),
            _col("net_income", "Net Income", "right", "currency"),
            _col("yield", "Yield %", "right", "percent"),
        ],
    ),
    ReportConfig(
        id="profit-loss",
        title="Profit & Loss Report",
        description="Comprehensive P&L statement with revenue and expense breakdown",
        default_period="last_12_months",
        query_id="profit_loss",
        kpis=[
            KPIConfig("total_revenue", "Total Revenue", "currency"),
            KPIConfig("total_expenses", "Total Expenses", "currency"),
            KPIConfig("gross_profit", "Gross Profit", "currency"),
            KPIConfig("profit_margin", "Profit Margin", "percent", 1),
        ],
        charts=[
            ChartConfig("monthly_pnl", "bar", "Monthly Profit & Loss", "month",
                        ("revenue", "expenses", "profit")),
            ChartConfig("expense_breakdown", "pie", "Expense Breakdown"),
        ],
        columns=[
            _col("transaction_date", "Date", fmt="date"),
            _col("category", "Category"),
            _col("amount", "Amount", "right", "currency"),
            _col("percentage", "Percentage", "right", "percent"),
        ],
    ),
    ReportConfig(
        id="revenue-vs-expenses",
        title="Revenue vs Expenses",
        description="Detailed comparison of income and operational costs",
        default_period="last_12_months",
        query_id="revenue_vs_expenses",
        kpis=[
            KPIConfig("total_revenue", "Total Revenue", "currency"),
            KPIConfig("total_expenses", "Total Expenses", "currency"),
            KPIConfig("net_income", "Net Income", "currency"),
            KPIConfig("expense_ratio", "Expense Ratio", "percent", 1),
        ],
        charts=[
            ChartConfig("monthly_comparison", "line", "Monthly Comparison", "month",
                        ("revenue", "expenses")),
            ChartConfig("trend_analysis", "area", "Net Income Trend", "month", ("net_income",)),
        ],
        columns=[
            _col("month", "Month"),
            _col("revenue", "Revenue", "right", "currency"),
            _col("expenses", "Expenses", "right", "currency"),
            _col("net_income", "Net Income", "right", "currency"),
        ],
    ),
    ReportConfig(
        id="expense-summary",
        title="Expense Summary",
        description="Property maintenance and operational costs by category",
        default_period="last_12_months",
        query_id="expense_summary",
        kpis=[
            KPIConfig("total_expenses", "Total Expenses", "currency"),
            KPIConfig("maintenance_costs", "Maintenance Costs", "currency"),
            KPIConfig("operational_costs", "Operational Costs", "currency"),
            KPIConfig("expense_per_unit", "Expense per Unit", "currency"),
        ],
        charts=[
            ChartConfig("expense_categories", "pie", "Expenses by Category"),
            ChartConfig("monthly_expenses", "bar", "Monthly Expenses", "month", ("expenses",)),
        ],
        columns=[
            _col("expense_date", "Date", fmt="date"),
            _col("expense_category", "Category"),
            _col("description", "Description"),
            _col("amount", "Amount", "right", "currency"),
            _col("property_name", "Property"),
            _col("vendor", "Vendor"),
        ],
    ),
    ReportConfig(
        id="cash-flow",
        title="Cash Flow Analysis",
        description="Monthly cash inflows and outflows with projections",
        default_period="last_12_months",
        query_id="cash_flow",
        kpis=[
            KPIConfig("cash_inflow", "Cash Inflow", "currency"),
            KPIConfig("cash_outflow", "Cash Outflow", "currency"),
            KPIConfig("net_cash_flow", "Net Cash Flow", "currency"),
            KPIConfig("cash_flow_margin", "Cash Flow Margin", "percent", 1),
        ],
        charts=[
            ChartConfig("cash_flow_trend", "line", "Cash Flow Trend", "month",
                        ("inflow", "outflow", "net")),
            ChartConfig("cash_flow_breakdown", "area", "Cash Flow Breakdown", "month",
                        ("inflow", "outflow"), stacked=True),
        ],
        columns=[
            _col("month", "Month"),
            _col("inflow", "Cash Inflow", "right", "currency"),
            _col("outflow", "Cash Outflow", "right", "currency"),
            _col("net_flow", "Net Cash Flow", "right", "currency"),
        ],
    ),
    ReportConfig(
        id="market-rent",
        title="Market Rent Analysis",
        description="Rent comparison with market rates and optimization opportunities",
        query_id="market_rent",
        kpis=[
            KPIConfig("avg_market_rent", "Avg Market Rent", "currency"),
            KPIConfig("avg_current_rent", "Avg Current Rent", "currency"),
            KPIConfig("rent_variance", "Rent Variance", "percent", 1),
            KPIConfig("optimization_potential", "Optimization Potential", "currency"),
            KPIConfig("platform_avg_rent", "Platform Avg Rent", "currency"),
            KPIConfig("total_sample_size", "Sample Size"),
            KPIConfig("unit_types_analyzed", "Unit Types"),
            KPIConfig("locations_analyzed", "Locations"),
        ],
        charts=[
            ChartConfig("rent_comparison", "bar", "Current vs Market Rent", "property",
                        ("current_rent", "market_rent")),
            ChartConfig("rent_by_type", "bar", "Rent by Unit Type", "unit_type",
                        ("avg_rent", "median_rent")),
            ChartConfig("rent_by_location", "bar", "Rent by Location", "location", ("avg_rent",)),
            ChartConfig("yearly_trends", "line", "Yearly Rent Trend", "year", ("avg_rent",)),
            ChartConfig("variance_analysis", "line", "Rent Variance", "property", ("variance",)),
        ],
        columns=[
            _col("property_name", "Property"),
            _col("unit_type", "Unit Type"),
            _col("current_rent", "Current Rent", "right", "currency"),
            _col("market_rent", "Market Rent", "right", "currency"),
            _col("variance", "Variance", "right", "percent"),
        ],
    ),
    ReportConfig(
        id="executive-summary",
        title="Executive Summary Report",
        description="Comprehensive portfolio overview with key metrics and insights",
        query_id="executive_summary",
        kpis=[
            KPIConfig("total_properties", "Total Properties"),
            KPIConfig("total_units", "Total Units"),
            KPIConfig("collection_rate", "Collection Rate", "percent", 1),
            KPIConfig("occupancy_rate", "Occupancy Rate", "percent", 0),
        ],
        charts=[
            ChartConfig("portfolio_overview", "bar", "Portfolio Overview", "month",
                        ("revenue", "expenses")),
            ChartConfig("property_performance", "pie", "Revenue by Property"),
        ],
        columns=[
            _col("property_name", "Property"),
            _col("units", "Units", "center", "number"),
            _col("revenue", "Revenue", "right", "currency"),
            _col("occupancy", "Occupancy", "right", "percent", 0),
        ],
    ),
]

REPORT_CONFIGS: Dict[str, ReportConfig] = {config.id: config for config in _CONFIGS}


def find_report_config(report_id: str) -> Optional[ReportConfig]:
    return REPORT_CONFIGS.get(report_id)


def get_report_config(report_id: str) -> ReportConfig:
    """Configuration for *report_id*; raises ReportConfigError when unknown."""
    config = REPORT_CONFIGS.get(report_id)
    if config is None:
        raise ReportConfigError(report_id)
    return config


def list_report_configs() -> List[ReportConfig]:
    return list(_CONFIGS)
