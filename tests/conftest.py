"""
Test Suite Configuration
"""
from datetime import datetime, timezone
from typing import AsyncGenerator, List

import pytest

from finance_insights.config import ReportingSettings, Settings
from finance_insights.database import Database, InMemoryRecordRepository
from finance_insights.reporting.schemas import ExpenseRecord, ProductCostRecord, SaleRecord


@pytest.fixture
def test_settings() -> Settings:
    """Settings pinned to UTC so day and month boundaries are easy to reason about"""
    return Settings(
        app_env="testing",
        debug=True,
        reporting=ReportingSettings(timezone="UTC"),
    )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_products() -> List[ProductCostRecord]:
    """Catalog with a costed, an uncosted and a low-stock product"""
    return [
        ProductCostRecord(id=1, avg_unit_cost=60, name="Tee", category="Apparel", total_stock=50),
        ProductCostRecord(id=2, avg_unit_cost=0, name="Cap", category="Accessories", total_stock=5),
        ProductCostRecord(id=3, avg_unit_cost=20, name="Mug", category="Home", total_stock=3),
    ]


@pytest.fixture
def sample_sales() -> List[SaleRecord]:
    """
    Four sales over three months.

    Revenue 1530; COGS 700 (sale 3 is orphaned, sale 4 is uncosted).
    """
    return [
        SaleRecord(id=1, date="2024-01-05", product_id=1, product_name="Tee", model="Tee-Black",
                   quantity=10, unit_price=100),
        SaleRecord(id=2, date="2024-02-10", product_id=3, product_name="Mug", quantity=5, unit_price=50),
        SaleRecord(id=3, date="2024-03-01", product_id=99, product_name="Sticker", quantity=2, unit_price=80),
        SaleRecord(id=4, date="2024-03-10", product_id=2, product_name="Cap", quantity=4, unit_price=30),
    ]


@pytest.fixture
def sample_expenses() -> List[ExpenseRecord]:
    """Operating expenses totalling 170, including a reversal and a blank category"""
    return [
        ExpenseRecord(id=1, date="2024-01-10", category="Rent", amount=100),
        ExpenseRecord(id=2, date="2024-02-15", category="Marketing", amount=50),
        ExpenseRecord(id=3, date="2024-03-05", category="", amount=30),
        ExpenseRecord(id=4, date="2024-03-06", category="Marketing", amount=-10),
    ]


@pytest.fixture
def memory_repository(sample_sales, sample_expenses, sample_products) -> InMemoryRecordRepository:
    return InMemoryRecordRepository(sample_sales, sample_expenses, sample_products)


@pytest.fixture
async def test_database() -> AsyncGenerator[Database, None]:
    """In-memory sqlite database with the schema created"""
    database = Database("sqlite+aiosqlite:///:memory:", echo=False)
    await database.create_schema()
    yield database
    await database.close()
