"""
Database Module
"""
from .connection import Database
from .models import Base, Expense, Product, Sale
from .repository import InMemoryRecordRepository, RecordRepository, SqlRecordRepository

__all__ = [
    "Database",
    "Base",
    "Expense",
    "Product",
    "Sale",
    "InMemoryRecordRepository",
    "RecordRepository",
    "SqlRecordRepository",
]
