"""
Data Transformation Module
"""
from .cleaners import (
    DataCleaner,
    clean_dataframe,
    normalize_identifier,
    parse_timestamp,
    to_number,
    to_quantity,
)

__all__ = [
    "DataCleaner",
    "clean_dataframe",
    "normalize_identifier",
    "parse_timestamp",
    "to_number",
    "to_quantity",
]
