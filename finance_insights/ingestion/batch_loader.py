"""
Batch Record Loader

Loads sales, expense and product exports from CSV, JSON, JSON Lines or
Parquet files with polars, cleans them and parses them into records.

Dirty rows are kept: unparseable amounts read as zero and unparseable dates
as missing, the same policy the engine applies to stored rows.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Type, TypeVar, Union

import polars as pl
import structlog
from pydantic import BaseModel, ValidationError

from finance_insights.database.repository import InMemoryRecordRepository
from finance_insights.reporting.exceptions import UpstreamFetchFailed
from finance_insights.reporting.schemas import ExpenseRecord, ProductCostRecord, SaleRecord
from finance_insights.transformation.cleaners import DataCleaner

logger = structlog.get_logger(__name__)

PathLike = Union[str, Path]
R = TypeVar("R", bound=BaseModel)

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    PARQUET = "parquet"

    @classmethod
    def from_path(cls, path: PathLike) -> "FileFormat":
        suffix = Path(path).suffix.lower().lstrip(".")
        if suffix == "ndjson":
            return cls.JSONL
        try:
            return cls(suffix)
        except ValueError as e:
            raise ValueError(f"Unsupported file format: {Path(path).name}") from e


@dataclass
class LoadResult:
    """Parsed records of one file plus rows that could not be parsed"""
    path: str
    records: List[BaseModel] = field(default_factory=list)
    rows_failed: int = 0

    @property
    def rows_loaded(self) -> int:
        return len(self.records)


class BatchLoader:
    """
    File loader for the three record streams.

    Example:
        loader = BatchLoader()
        sales = loader.load_sales("exports/sales.csv")
    """

    def __init__(self, delimiter: str = ",", encoding: str = "utf8"):
        self.delimiter = delimiter
        self.encoding = encoding
        self.cleaner = DataCleaner()

    def read_frame(self, path: PathLike, file_format: Optional[FileFormat] = None) -> pl.DataFrame:
        """Read a file into a frame; string columns are left unparsed"""
        path = Path(path)
        file_format = file_format or FileFormat.from_path(path)

        readers: Dict[FileFormat, Callable[[Path], pl.DataFrame]] = {
            FileFormat.CSV: self._read_csv,
            FileFormat.JSON: pl.read_json,
            FileFormat.JSONL: pl.read_ndjson,
            FileFormat.PARQUET: pl.read_parquet,
        }
        df = readers[file_format](path)
        logger.debug("File read", path=str(path), format=file_format.value, rows=df.height, columns=df.columns)
        return df

    def _read_csv(self, path: Path) -> pl.DataFrame:
        return pl.read_csv(
            path,
            separator=self.delimiter,
            encoding=self.encoding,
            null_values=NULL_VALUES,
            infer_schema_length=0,
        )

    def _parse(self, df: pl.DataFrame, model: Type[R], path: PathLike) -> LoadResult:
        result = LoadResult(path=str(path))
        for row in df.iter_rows(named=True):
            try:
                result.records.append(model.model_validate(row))
            except ValidationError as e:
                result.rows_failed += 1
                logger.warning("Row skipped", path=str(path), error=str(e))

        logger.info(
            "Records loaded",
            path=str(path),
            record_type=model.__name__,
            rows_loaded=result.rows_loaded,
            rows_failed=result.rows_failed,
        )
        return result

    def load_sales(self, path: PathLike, file_format: Optional[FileFormat] = None) -> List[SaleRecord]:
        df = self.cleaner.clean_sales(self.read_frame(path, file_format))
        return self._parse(df, SaleRecord, path).records

    def load_expenses(self, path: PathLike, file_format: Optional[FileFormat] = None) -> List[ExpenseRecord]:
        df = self.cleaner.clean_expenses(self.read_frame(path, file_format))
        return self._parse(df, ExpenseRecord, path).records

    def load_products(self, path: PathLike, file_format: Optional[FileFormat] = None) -> List[ProductCostRecord]:
        df = self.cleaner.clean_products(self.read_frame(path, file_format))
        return self._parse(df, ProductCostRecord, path).records


def _load_export(source: str, load: Callable[[PathLike], List[R]], path: Optional[PathLike]) -> List[R]:
    if not path:
        return []
    try:
        return load(path)
    except (OSError, ValueError, pl.exceptions.PolarsError) as e:
        logger.error("Export load failed", source=source, path=str(path), error=str(e))
        raise UpstreamFetchFailed(source, str(e)) from e


class FileRecordRepository(InMemoryRecordRepository):
    """Record repository backed by exported files"""

    @classmethod
    def from_files(
        cls,
        sales: Optional[PathLike] = None,
        expenses: Optional[PathLike] = None,
        products: Optional[PathLike] = None,
        loader: Optional[BatchLoader] = None,
    ) -> "FileRecordRepository":
        """
        Load whichever exports are given; omitted ones are empty.

        Args:
            sales: Sales export path
            expenses: Expenses export path
            products: Product catalog export path
            loader: Loader to use (defaults to comma-separated UTF-8)

        Raises:
            UpstreamFetchFailed: an export is missing, unreadable or in an
                unsupported format
        """
        loader = loader or BatchLoader()
        return cls(
            sales=_load_export("sales", loader.load_sales, sales),
            expenses=_load_export("expenses", loader.load_expenses, expenses),
            products=_load_export("products", loader.load_products, products),
        )
