"""
Reporting & Insight Engine
"""
from .advisor import FinancialAdvice, build_advice
from .aggregator import FinancialAggregator, aggregate_financials
from .costing import ProductCostIndex, attribute_cost
from .exceptions import InvalidWindow, ReportingError, UpstreamFetchFailed
from .insights import generate_insights
from .schemas import (
    AggregateSnapshot,
    ExpenseRecord,
    Insight,
    InsightReport,
    InsightSeverity,
    ProductCostRecord,
    SaleRecord,
)
from .service import FinancialAnalysis, FinancialReport, ReportingService
from .windows import DateRangePreset, ResolvedWindow, TimeWindow, resolve_window

__all__ = [
    "FinancialAdvice",
    "build_advice",
    "FinancialAggregator",
    "aggregate_financials",
    "ProductCostIndex",
    "attribute_cost",
    "InvalidWindow",
    "ReportingError",
    "UpstreamFetchFailed",
    "generate_insights",
    "AggregateSnapshot",
    "ExpenseRecord",
    "Insight",
    "InsightReport",
    "InsightSeverity",
    "ProductCostRecord",
    "SaleRecord",
    "FinancialAnalysis",
    "FinancialReport",
    "ReportingService",
    "DateRangePreset",
    "ResolvedWindow",
    "TimeWindow",
    "resolve_window",
]
