"""
Financial Aggregator

Derives the KPIs of one reporting window from already-windowed sales and
expenses plus the full product catalog:
- Revenue, COGS, operating expenses
- Gross and net profit, margins
- Top-product ranking
- Monthly trend series
- Expense breakdown by category
"""

from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from .costing import ProductCatalog, as_cost_index
from .schemas import (
    AggregateSnapshot,
    ExpenseCategoryTotal,
    ExpenseRecord,
    MonthlyTrendPoint,
    SaleRecord,
    TopProduct,
)
from .windows import MonthKey

logger = structlog.get_logger(__name__)


def percentage(part: float, whole: float) -> float:
    """``part / whole * 100``, or 0 when ``whole`` is zero"""
    if whole == 0:
        return 0.0
    return part / whole * 100


@dataclass
class ProfitTotals:
    """Headline figures for a set of sales and expenses"""
    revenue: float
    cogs: float
    operating_expenses: float

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cogs

    @property
    def net_profit(self) -> float:
        return self.gross_profit - self.operating_expenses

    @property
    def gross_margin_pct(self) -> float:
        return percentage(self.gross_profit, self.revenue)

    @property
    def net_margin_pct(self) -> float:
        return percentage(self.net_profit, self.revenue)


@dataclass
class _ProductGroup:
    name: str
    quantity: int = 0
    revenue: float = 0.0
    cogs: float = 0.0


@dataclass
class _MonthBucket:
    key: MonthKey
    revenue: float = 0.0
    operating_expenses: float = 0.0
    sales: List[SaleRecord] = field(default_factory=list)


def total_revenue(sales: Iterable[SaleRecord]) -> float:
    total = 0.0
    for sale in sales:
        total += sale.revenue
    return total


def total_expenses(expenses: Iterable[ExpenseRecord]) -> float:
    total = 0.0
    for expense in expenses:
        total += expense.amount
    return total


def expense_category_label(expense: ExpenseRecord, default_category: str = "其他") -> str:
    """Trimmed category, or ``default_category`` when blank"""
    return (expense.category or "").strip() or default_category


def expense_totals(
    expenses: Iterable[ExpenseRecord],
    default_category: str = "其他",
) -> List[ExpenseCategoryTotal]:
    """Expense totals per category in first-seen order"""
    totals: Dict[str, float] = {}
    for expense in expenses:
        category = expense_category_label(expense, default_category)
        totals[category] = totals.get(category, 0.0) + expense.amount
    return [ExpenseCategoryTotal(category=c, amount=a) for c, a in totals.items()]


class FinancialAggregator:
    """
    Aggregates one window of sales and expenses.

    The catalog passed in must be the full, unfiltered product snapshot,
    since a sold product may have been created outside the window.

    Example:
        aggregator = FinancialAggregator(top_products_limit=10)
        snapshot = aggregator.aggregate(sales, expenses, products)
    """

    def __init__(
        self,
        top_products_limit: int = 10,
        unknown_label: str = "Unknown",
        default_expense_category: str = "其他",
        tz: Optional[tzinfo] = None,
    ):
        self.top_products_limit = top_products_limit
        self.unknown_label = unknown_label
        self.default_expense_category = default_expense_category
        self.tz = tz

    def product_label(self, sale: SaleRecord) -> str:
        return sale.model or sale.product_name or self.unknown_label

    def expense_category(self, expense: ExpenseRecord) -> str:
        return expense_category_label(expense, self.default_expense_category)

    def compute_totals(
        self,
        sales: Sequence[SaleRecord],
        expenses: Sequence[ExpenseRecord],
        products: ProductCatalog,
    ) -> ProfitTotals:
        index = as_cost_index(products)
        return ProfitTotals(
            revenue=total_revenue(sales),
            cogs=index.cost_of_sales(sales),
            operating_expenses=total_expenses(expenses),
        )

    def top_products(
        self,
        sales: Sequence[SaleRecord],
        products: ProductCatalog,
    ) -> List[TopProduct]:
        """
        Rank products by revenue.

        Sales are grouped by model, then product name, then the unknown
        label. Ties keep first-seen order.
        """
        index = as_cost_index(products)
        groups: Dict[str, _ProductGroup] = {}

        for sale in sales:
            label = self.product_label(sale)
            group = groups.get(label)
            if group is None:
                group = groups[label] = _ProductGroup(name=label)
            group.quantity += sale.quantity
            group.revenue += sale.revenue
            group.cogs += index.cost_of(sale)

        ranked = sorted(groups.values(), key=lambda g: g.revenue, reverse=True)

        return [
            TopProduct(
                name=g.name,
                quantity=g.quantity,
                revenue=g.revenue,
                cogs=g.cogs,
                gross_profit=g.revenue - g.cogs,
                gross_margin_pct=percentage(g.revenue - g.cogs, g.revenue),
            )
            for g in ranked[: self.top_products_limit]
        ]

    def monthly_trend(
        self,
        sales: Sequence[SaleRecord],
        expenses: Sequence[ExpenseRecord],
        products: ProductCatalog,
    ) -> List[MonthlyTrendPoint]:
        """
        Bucket sales and expenses by calendar month.

        COGS is attributed per bucket from that month's sales only.
        Records without any timestamp are left out.
        """
        index = as_cost_index(products)
        buckets: Dict[MonthKey, _MonthBucket] = {}
        undated = 0

        def bucket_for(ts) -> _MonthBucket:
            key = MonthKey.of(ts, self.tz)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = _MonthBucket(key=key)
            return bucket

        for sale in sales:
            if sale.timestamp is None:
                undated += 1
                continue
            bucket = bucket_for(sale.timestamp)
            bucket.revenue += sale.revenue
            bucket.sales.append(sale)

        for expense in expenses:
            if expense.timestamp is None:
                undated += 1
                continue
            bucket_for(expense.timestamp).operating_expenses += expense.amount

        if undated:
            logger.warning("Undated records left out of monthly trend", count=undated)

        trend = []
        for key in sorted(buckets):
            bucket = buckets[key]
            totals = ProfitTotals(
                revenue=bucket.revenue,
                cogs=index.cost_of_sales(bucket.sales),
                operating_expenses=bucket.operating_expenses,
            )
            trend.append(
                MonthlyTrendPoint(
                    month_key=str(key),
                    revenue=totals.revenue,
                    cogs=totals.cogs,
                    operating_expenses=totals.operating_expenses,
                    gross_profit=totals.gross_profit,
                    net_profit=totals.net_profit,
                )
            )
        return trend

    def expense_breakdown(self, expenses: Sequence[ExpenseRecord]) -> List[ExpenseCategoryTotal]:
        return expense_totals(expenses, self.default_expense_category)

    def aggregate(
        self,
        sales: Sequence[SaleRecord],
        expenses: Sequence[ExpenseRecord],
        products: ProductCatalog,
    ) -> AggregateSnapshot:
        """Compute the full snapshot for one window"""
        index = as_cost_index(products)
        totals = self.compute_totals(sales, expenses, index)
        units = sum(sale.quantity for sale in sales)

        snapshot = AggregateSnapshot(
            revenue=totals.revenue,
            cogs=totals.cogs,
            operating_expenses=totals.operating_expenses,
            gross_profit=totals.gross_profit,
            net_profit=totals.net_profit,
            gross_margin_pct=totals.gross_margin_pct,
            net_margin_pct=totals.net_margin_pct,
            product_count_sold=len(sales),
            units_sold=units,
            average_transaction=totals.revenue / len(sales) if sales else 0.0,
            top_products=self.top_products(sales, index),
            monthly_trend=self.monthly_trend(sales, expenses, index),
            expense_breakdown=self.expense_breakdown(expenses),
        )

        logger.info(
            "Financial snapshot aggregated",
            sales=len(sales),
            expenses=len(expenses),
            products=len(index),
            revenue=snapshot.revenue,
            net_profit=snapshot.net_profit,
            months=len(snapshot.monthly_trend),
        )
        return snapshot


def aggregate_financials(
    sales: Sequence[SaleRecord],
    expenses: Sequence[ExpenseRecord],
    products: ProductCatalog,
    top_products_limit: int = 10,
    tz: Optional[tzinfo] = None,
) -> AggregateSnapshot:
    """
    Convenience function to aggregate one window with default labels.

    Args:
        sales: Sales already filtered to the window
        expenses: Expenses already filtered to the window
        products: Full product catalog or a ProductCostIndex
        top_products_limit: Length of the top-product ranking
        tz: Reference time zone for month boundaries

    Returns:
        AggregateSnapshot
    """
    aggregator = FinancialAggregator(top_products_limit=top_products_limit, tz=tz)
    return aggregator.aggregate(list(sales), list(expenses), products)
