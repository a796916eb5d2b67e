"""
Data Ingestion Module
"""
from .batch_loader import BatchLoader, FileFormat, FileRecordRepository, LoadResult

__all__ = [
    "BatchLoader",
    "FileFormat",
    "FileRecordRepository",
    "LoadResult",
]
