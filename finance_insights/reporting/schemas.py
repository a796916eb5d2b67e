"""
Reporting Schemas

Input records read from storage and the result structures produced by the
engine. Records are immutable snapshots; dirty numeric fields are read as
zero instead of failing the whole computation.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from finance_insights.transformation.cleaners import (
    normalize_identifier,
    parse_timestamp,
    to_number,
    to_quantity,
)

RecordId = Union[int, str]


# =============================================================================
# INPUT RECORDS
# =============================================================================

class _Record(BaseModel):
    """Common configuration for storage rows"""

    model_config = ConfigDict(frozen=True, extra="ignore", from_attributes=True)

    @field_validator("id", mode="before", check_fields=False)
    @classmethod
    def _normalize_id(cls, v):
        return normalize_identifier(v)

    @field_validator("date", "created_at", mode="before", check_fields=False)
    @classmethod
    def _parse_timestamps(cls, v):
        return parse_timestamp(v)


class SaleRecord(_Record):
    """Sales transaction"""

    id: Optional[RecordId] = None
    date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    product_id: Optional[RecordId] = None
    product_name: Optional[str] = None
    model: Optional[str] = None
    quantity: int = 0
    unit_price: float = 0.0

    @field_validator("product_id", mode="before")
    @classmethod
    def _normalize_product_id(cls, v):
        return normalize_identifier(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v):
        return to_quantity(v)

    @field_validator("unit_price", mode="before")
    @classmethod
    def _coerce_price(cls, v):
        return to_number(v)

    @property
    def revenue(self) -> float:
        return self.unit_price * self.quantity

    @property
    def timestamp(self) -> Optional[datetime]:
        """Transaction date, falling back to the creation timestamp"""
        return self.date or self.created_at


class ExpenseRecord(_Record):
    """Operating expense; negative amounts are reversals"""

    id: Optional[RecordId] = None
    category: Optional[str] = None
    amount: float = 0.0
    date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    note: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v):
        return to_number(v)

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.date or self.created_at


class ProductCostRecord(_Record):
    """Product cost basis with optional catalog attributes"""

    id: Optional[RecordId] = None
    avg_unit_cost: float = 0.0
    name: Optional[str] = Field(default=None, validation_alias=AliasChoices("name", "product_name"))
    category: Optional[str] = None
    total_stock: int = 0

    @field_validator("avg_unit_cost", mode="before")
    @classmethod
    def _coerce_cost(cls, v):
        return to_number(v)

    @field_validator("total_stock", mode="before")
    @classmethod
    def _coerce_stock(cls, v):
        return to_quantity(v)


# =============================================================================
# RESULTS
# =============================================================================

class CamelModel(BaseModel):
    """Immutable result model serialized with camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TopProduct(CamelModel):
    """One entry of the top-product ranking"""
    name: str
    quantity: int
    revenue: float
    cogs: float
    gross_profit: float
    gross_margin_pct: float


class MonthlyTrendPoint(CamelModel):
    """One calendar-month trend bucket"""
    month_key: str
    revenue: float
    cogs: float
    operating_expenses: float
    gross_profit: float
    net_profit: float


class ExpenseCategoryTotal(CamelModel):
    """Expense total for one category"""
    category: str
    amount: float


class AggregateSnapshot(CamelModel):
    """Financial KPIs for one reporting window"""
    revenue: float
    cogs: float
    operating_expenses: float
    gross_profit: float
    net_profit: float
    gross_margin_pct: float
    net_margin_pct: float
    product_count_sold: int
    units_sold: int
    average_transaction: float
    top_products: List[TopProduct] = Field(default_factory=list)
    monthly_trend: List[MonthlyTrendPoint] = Field(default_factory=list)
    expense_breakdown: List[ExpenseCategoryTotal] = Field(default_factory=list)


class InsightSeverity(str, Enum):
    """Severity tag carried by every insight"""
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"
    DANGER = "danger"


class InsightMetrics(CamelModel):
    """Numbers backing an insight"""
    current: float
    previous: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None


class Insight(CamelModel):
    """Classified, human-readable statement about one metric"""
    severity: InsightSeverity
    category: str
    title: str
    message: str
    metrics: Optional[InsightMetrics] = None


class InsightSummary(CamelModel):
    """Insight counts per severity"""
    total: int
    success_count: int
    warning_count: int
    danger_count: int
    info_count: int


class InsightReport(CamelModel):
    """Ordered insights plus their severity summary"""
    insights: List[Insight]
    summary: InsightSummary
