"""
Reporting Service

Request-level entry points of the engine. Each call resolves the reporting
window, fetches the three record slices concurrently through the injected
repository, then runs cost attribution, aggregation and the insight rules.

Either the full result is returned or the call raises; there are no partial
results.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

import structlog

from finance_insights.config import Settings, get_settings
from finance_insights.quality.validators import ValidationResult, audit_records

from .advisor import FinancialAdvice, build_advice
from .aggregator import FinancialAggregator, total_revenue
from .costing import ProductCostIndex
from .exceptions import UpstreamFetchFailed
from .insights import generate_insights
from .schemas import (
    AggregateSnapshot,
    CamelModel,
    ExpenseRecord,
    InsightReport,
    ProductCostRecord,
    SaleRecord,
)
from .windows import DateRangePreset, ResolvedWindow, TimeWindow, resolve_window

if TYPE_CHECKING:
    from finance_insights.database.repository import RecordRepository

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DateArg = Union[str, date, None]
RangeArg = Union[str, DateRangePreset, None]


class ReportPeriod(CamelModel):
    """Resolved reporting window as returned to callers"""
    start: datetime
    end: Optional[datetime] = None
    range: Optional[str] = None

    @classmethod
    def from_window(cls, resolved: ResolvedWindow) -> "ReportPeriod":
        return cls(
            start=resolved.current.start,
            end=resolved.current.end,
            range=resolved.preset.value if resolved.preset else None,
        )


class FinancialReport(CamelModel):
    """KPI snapshot for one window"""
    period: ReportPeriod
    snapshot: AggregateSnapshot
    unmatched_sales: int = 0


class FinancialAnalysis(CamelModel):
    """Narrative analysis for one window, with the figures it was built from"""
    period: ReportPeriod
    advice: FinancialAdvice
    snapshot: AggregateSnapshot


@dataclass(frozen=True)
class WindowRecords:
    """Record slices fetched for one request"""
    sales: List[SaleRecord]
    expenses: List[ExpenseRecord]
    products: List[ProductCostRecord]


class ReportingService:
    """
    Financial reporting over an injected record repository.

    Example:
        service = ReportingService(repository)
        report = await service.build_report("quarter")
        insights = await service.build_insights(start_date="2024-01-01", end_date="2024-03-31")
    """

    def __init__(
        self,
        repository: "RecordRepository",
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository
        self.settings = settings or get_settings()
        self.reporting = self.settings.reporting
        self.tz = self.reporting.tzinfo
        self._clock = clock or (lambda: datetime.now(self.tz))
        self.aggregator = FinancialAggregator(
            top_products_limit=self.reporting.top_products_limit,
            unknown_label=self.reporting.unknown_product_label,
            default_expense_category=self.reporting.default_expense_category,
            tz=self.tz,
        )

    # =========================================================================
    # WINDOW & FETCH
    # =========================================================================

    def resolve(
        self,
        date_range: RangeArg = None,
        start_date: DateArg = None,
        end_date: DateArg = None,
        with_previous: bool = False,
    ) -> ResolvedWindow:
        return resolve_window(
            date_range or self.reporting.default_range,
            start_date,
            end_date,
            now=self._clock(),
            tz=self.tz,
            with_previous=with_previous,
        )

    async def _fetch(self, source: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except Exception as e:
            logger.error("Record fetch failed", source=source, error=str(e), error_type=type(e).__name__)
            raise UpstreamFetchFailed(source, str(e)) from e

    async def fetch_records(self, window: TimeWindow) -> WindowRecords:
        """Fetch the three slices concurrently; the first failure cancels the others"""
        try:
            async with asyncio.TaskGroup() as group:
                sales_task = group.create_task(self._fetch("sales", self.repository.fetch_sales(window)))
                expenses_task = group.create_task(self._fetch("expenses", self.repository.fetch_expenses(window)))
                products_task = group.create_task(self._fetch("products", self.repository.fetch_products()))
        except ExceptionGroup as failures:
            # Leaves are UpstreamFetchFailed; _fetch wraps every error
            raise failures.exceptions[0]

        sales, expenses, products = sales_task.result(), expenses_task.result(), products_task.result()
        logger.info("Records fetched", sales=len(sales), expenses=len(expenses), products=len(products))
        return WindowRecords(sales=list(sales), expenses=list(expenses), products=list(products))

    def _audit(self, records: WindowRecords) -> Optional[Dict[str, ValidationResult]]:
        if not self.reporting.audit_records:
            return None
        return audit_records(records.sales, records.expenses, records.products)

    def _snapshot(self, records: WindowRecords) -> tuple:
        index = ProductCostIndex(records.products)
        unmatched = index.unmatched(records.sales)
        if unmatched:
            logger.info(
                "Sales without costed product contribute no COGS",
                count=len(unmatched),
                product_ids=sorted({str(s.product_id) for s in unmatched}),
            )
        snapshot = self.aggregator.aggregate(records.sales, records.expenses, index)
        return snapshot, len(unmatched)

    async def previous_revenue(self, resolved: ResolvedWindow, current_revenue: float) -> float:
        """
        Revenue of the comparison period.

        With a previous window, its sales are fetched and summed. Preset
        ranges without one fall back to a fixed fraction of current revenue.
        """
        if resolved.previous is not None:
            sales = await self._fetch("sales", self.repository.fetch_sales(resolved.previous))
            return total_revenue(sales)

        ratio = self.reporting.preset_previous_revenue_ratio
        logger.info(
            "Previous revenue approximated from current revenue",
            ratio=ratio,
            preset=resolved.preset.value if resolved.preset else None,
        )
        return current_revenue * ratio

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def build_report(
        self,
        date_range: RangeArg = None,
        start_date: DateArg = None,
        end_date: DateArg = None,
    ) -> FinancialReport:
        """KPI snapshot for a preset range or an explicit date pair"""
        resolved = self.resolve(date_range, start_date, end_date)
        records = await self.fetch_records(resolved.current)
        self._audit(records)
        snapshot, unmatched = self._snapshot(records)
        return FinancialReport(
            period=ReportPeriod.from_window(resolved),
            snapshot=snapshot,
            unmatched_sales=unmatched,
        )

    async def build_insights(
        self,
        date_range: RangeArg = None,
        start_date: DateArg = None,
        end_date: DateArg = None,
    ) -> InsightReport:
        """Classified insights plus severity summary for one window"""
        resolved = self.resolve(
            date_range,
            start_date,
            end_date,
            with_previous=self.reporting.compare_presets_with_previous_window,
        )
        records = await self.fetch_records(resolved.current)
        self._audit(records)
        snapshot, _ = self._snapshot(records)
        previous = await self.previous_revenue(resolved, snapshot.revenue)
        return generate_insights(
            snapshot,
            previous,
            records.expenses,
            default_expense_category=self.reporting.default_expense_category,
        )

    async def build_analysis(
        self,
        date_range: RangeArg = None,
        start_date: DateArg = None,
        end_date: DateArg = None,
    ) -> FinancialAnalysis:
        """Rule-based narrative analysis for one window"""
        resolved = self.resolve(date_range, start_date, end_date)
        records = await self.fetch_records(resolved.current)
        self._audit(records)
        snapshot, _ = self._snapshot(records)
        advice = build_advice(
            snapshot,
            records.sales,
            records.products,
            low_stock_threshold=self.reporting.low_stock_threshold,
        )
        return FinancialAnalysis(period=ReportPeriod.from_window(resolved), advice=advice, snapshot=snapshot)

    async def audit(
        self,
        date_range: RangeArg = None,
        start_date: DateArg = None,
        end_date: DateArg = None,
    ) -> Dict[str, ValidationResult]:
        """Data quality audit of one window's records, regardless of settings"""
        resolved = self.resolve(date_range, start_date, end_date)
        records = await self.fetch_records(resolved.current)
        return audit_records(records.sales, records.expenses, records.products)
