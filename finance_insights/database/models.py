"""
Database Models

Read-side tables of the three record streams the reporting engine consumes:

- Product: cost basis and stock per product
- Sale: sales transactions, optionally linked to a product
- Expense: operating expenses by category

Timestamps are stored naive, in the reporting reference time zone.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class Product(Base):
    """
    Product cost basis.

    ``avg_unit_cost`` is the moving average purchase cost maintained by the
    inventory side; a value of 0 means the product is not costed yet.
    """
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column("product_name", String(200), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    avg_unit_cost: Mapped[float] = mapped_column(Float, default=0.0)
    total_stock: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name}', avg_unit_cost={self.avg_unit_cost})>"


class Sale(Base):
    """Sales transaction; ``product_id`` may be null or point at a deleted product"""
    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    product_id: Mapped[Optional[int]] = mapped_column(Integer)
    product_name: Mapped[Optional[str]] = mapped_column(String(200))
    model: Mapped[Optional[str]] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    unit_price: Mapped[float] = mapped_column(Float, default=0.0)
    note: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_sales_date", "date"),
        Index("ix_sales_product", "product_id"),
    )

    def __repr__(self) -> str:
        return f"<Sale(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"


class Expense(Base):
    """Operating expense; negative amounts are reversals"""
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    amount: Mapped[float] = mapped_column(Float, default=0.0)
    note: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("ix_expenses_date", "date"),
        Index("ix_expenses_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Expense(id={self.id}, category='{self.category}', amount={self.amount})>"
