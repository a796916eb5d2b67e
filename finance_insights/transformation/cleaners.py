"""
Data Cleaning Module

Cleaning transformations for sales, expense and product rows.
Handles:
- Numeric coercion (missing or unparseable values become zero)
- Timestamp parsing
- Currency symbol stripping
- String trimming
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
import math
import re

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

_CURRENCY_PATTERN = r"[$€£¥,\s]|NT"


def to_number(value: Any, default: float = 0.0) -> float:
    """
    Coerce a raw field to a float.

    ``None``, blank strings, unparseable strings, NaN and booleans all
    become ``default``. Currency symbols and thousands separators are
    stripped from strings.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = re.sub(_CURRENCY_PATTERN, "", str(value))
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def to_quantity(value: Any) -> int:
    """Coerce a raw quantity to an int, truncating fractional input"""
    return int(to_number(value))


def normalize_identifier(value: Any) -> Optional[Any]:
    """Blank identifiers become ``None``; digit-only strings become ints"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return int(text)
        return text
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a record timestamp.

    Accepts datetimes, dates (midnight) and ISO-8601 strings, including a
    trailing ``Z``. Anything else yields ``None`` rather than an error.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable timestamp", value=value)
            return None
    return None


class DataCleaner:
    """
    Frame-level cleaner for raw exports of the three record streams.

    Example:
        cleaner = DataCleaner()
        sales = cleaner.clean_sales(pl.read_csv("sales.csv"))
    """

    def _trim_strings(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Trim whitespace from string columns"""
        string_cols = columns or [
            col for col, dtype in zip(df.columns, df.dtypes)
            if dtype == pl.Utf8
        ]

        for col in string_cols:
            if col in df.columns:
                df = df.with_columns(
                    pl.col(col).str.strip_chars().alias(col)
                )

        return df

    def _fill_nulls(
        self,
        df: pl.DataFrame,
        fill_values: Dict[str, Any]
    ) -> pl.DataFrame:
        """Fill null values with specified defaults"""
        for col, value in fill_values.items():
            if col in df.columns:
                df = df.with_columns(pl.col(col).fill_null(value).alias(col))

        return df

    def _normalize_currency(
        self,
        df: pl.DataFrame,
        amount_columns: List[str]
    ) -> pl.DataFrame:
        """Strip currency symbols and cast to Float64; unparseable values become null"""
        for col in amount_columns:
            if col in df.columns:
                df = df.with_columns(
                    pl.col(col)
                    .cast(pl.Utf8)
                    .str.replace_all(_CURRENCY_PATTERN, "")
                    .str.strip_chars()
                    .cast(pl.Float64, strict=False)
                    .alias(col)
                )

        return df

    def _blank_to_null(self, df: pl.DataFrame, columns: List[str]) -> pl.DataFrame:
        """Turn empty strings into nulls"""
        for col in columns:
            if col in df.columns and df.schema[col] == pl.Utf8:
                df = df.with_columns(
                    pl.when(pl.col(col) == "")
                    .then(None)
                    .otherwise(pl.col(col))
                    .alias(col)
                )
        return df

    def clean_sales(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply sales-specific cleaning transformations"""
        df = self._trim_strings(df)
        df = self._blank_to_null(df, ["product_name", "model", "date", "created_at"])
        df = self._normalize_currency(df, ["unit_price", "quantity"])
        df = self._fill_nulls(df, {"unit_price": 0.0, "quantity": 0.0})
        return df

    def clean_expenses(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply expense-specific cleaning transformations"""
        df = self._trim_strings(df)
        df = self._blank_to_null(df, ["category", "note", "date", "created_at"])
        df = self._normalize_currency(df, ["amount"])
        df = self._fill_nulls(df, {"amount": 0.0})
        return df

    def clean_products(self, df: pl.DataFrame) -> pl.DataFrame:
        """Apply product-specific cleaning transformations"""
        df = self._trim_strings(df)
        df = self._normalize_currency(df, ["avg_unit_cost", "total_stock"])
        df = self._fill_nulls(df, {"avg_unit_cost": 0.0, "total_stock": 0})
        return df


def clean_dataframe(
    df: pl.DataFrame,
    data_type: str = "generic",
) -> pl.DataFrame:
    """
    Convenience function to clean a frame based on record type.

    Args:
        df: Input DataFrame
        data_type: Type of data (sales, expenses, products, generic)

    Returns:
        Cleaned DataFrame
    """
    cleaner = DataCleaner()

    if data_type == "sales":
        return cleaner.clean_sales(df)
    elif data_type == "expenses":
        return cleaner.clean_expenses(df)
    elif data_type == "products":
        return cleaner.clean_products(df)
    else:
        return cleaner._trim_strings(df)
