"""
Record Repositories

Read contracts the reporting service fetches its three record slices
through. Sales and expenses are filtered to a window on their transaction
date; products are always returned in full.
"""

from datetime import datetime, tzinfo
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import structlog
from sqlalchemy import select

from finance_insights.reporting.schemas import ExpenseRecord, ProductCostRecord, SaleRecord
from finance_insights.reporting.windows import TimeWindow, localize

from .connection import Database
from .models import Expense, Product, Sale

logger = structlog.get_logger(__name__)


@runtime_checkable
class RecordRepository(Protocol):
    """Async read access to sales, expenses and the product catalog"""

    async def fetch_sales(self, window: TimeWindow) -> List[SaleRecord]:
        ...

    async def fetch_expenses(self, window: TimeWindow) -> List[ExpenseRecord]:
        ...

    async def fetch_products(self) -> List[ProductCostRecord]:
        ...


class InMemoryRecordRepository:
    """Repository over records already held in memory"""

    def __init__(
        self,
        sales: Iterable[SaleRecord] = (),
        expenses: Iterable[ExpenseRecord] = (),
        products: Iterable[ProductCostRecord] = (),
    ):
        self.sales: Tuple[SaleRecord, ...] = tuple(sales)
        self.expenses: Tuple[ExpenseRecord, ...] = tuple(expenses)
        self.products: Tuple[ProductCostRecord, ...] = tuple(products)

    async def fetch_sales(self, window: TimeWindow) -> List[SaleRecord]:
        return [sale for sale in self.sales if window.contains(sale.date)]

    async def fetch_expenses(self, window: TimeWindow) -> List[ExpenseRecord]:
        return [expense for expense in self.expenses if window.contains(expense.date)]

    async def fetch_products(self) -> List[ProductCostRecord]:
        return list(self.products)


class SqlRecordRepository:
    """
    Read-only repository over the ``sales``, ``expenses`` and ``products`` tables.

    Stored timestamps are naive reference-zone times, so window bounds are
    converted into that zone and stripped before querying.

    Example:
        repository = SqlRecordRepository(database, tz=ZoneInfo("Asia/Taipei"))
        sales = await repository.fetch_sales(window)
    """

    def __init__(self, database: Database, tz: Optional[tzinfo] = None):
        self.database = database
        self.tz = tz

    def _bound(self, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is not None and self.tz is not None:
            value = localize(value, self.tz)
        return value.replace(tzinfo=None)

    def _date_filters(self, column, window: TimeWindow) -> Sequence:
        filters = [column >= self._bound(window.start)]
        end = self._bound(window.end)
        if end is not None:
            filters.append(column <= end)
        return filters

    async def fetch_sales(self, window: TimeWindow) -> List[SaleRecord]:
        query = select(Sale).where(*self._date_filters(Sale.date, window)).order_by(Sale.date, Sale.id)
        async with self.database.session() as session:
            rows = (await session.execute(query)).scalars().all()
        logger.debug("Sales fetched", count=len(rows))
        return [SaleRecord.model_validate(row) for row in rows]

    async def fetch_expenses(self, window: TimeWindow) -> List[ExpenseRecord]:
        query = select(Expense).where(*self._date_filters(Expense.date, window)).order_by(Expense.date, Expense.id)
        async with self.database.session() as session:
            rows = (await session.execute(query)).scalars().all()
        logger.debug("Expenses fetched", count=len(rows))
        return [ExpenseRecord.model_validate(row) for row in rows]

    async def fetch_products(self) -> List[ProductCostRecord]:
        query = select(Product).order_by(Product.id)
        async with self.database.session() as session:
            rows = (await session.execute(query)).scalars().all()
        logger.debug("Products fetched", count=len(rows))
        return [ProductCostRecord.model_validate(row) for row in rows]
