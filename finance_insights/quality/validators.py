"""
Record Audit Module

Rule-based data quality checks over the three record streams, run on polars
frames built from the parsed records.

Audits are diagnostic only: a failing check is logged and reported but never
changes the numbers a report is built from.

Features:
- Null checks
- Uniqueness checks
- Range/boundary checks
- Referential integrity checks
- Custom frame predicates
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Collection, Dict, Iterable, List, Optional, Sequence

import polars as pl
import structlog

if TYPE_CHECKING:
    from finance_insights.reporting.schemas import ExpenseRecord, ProductCostRecord, SaleRecord

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Record stream is unusable as-is
    WARNING = "warning"  # Reported, figures still computed
    INFO = "info"


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
            "failedRows": self.failed_rows,
            "totalRows": self.total_rows,
        }


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def failures(self) -> List[ValidationCheck]:
        return [check for check in self.checks if not check.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "totalChecks": self.total_checks,
            "passedChecks": self.passed_checks,
            "failedChecks": self.failed_checks,
            "warningCount": self.warning_count,
            "successRate": self.success_rate,
            "checks": [check.to_dict() for check in self.checks],
        }


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


class DataValidator:
    """
    Chainable check suite over a polars frame.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("id")
        validator.add_range_check("quantity", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Warnings fail the suite
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def __len__(self) -> int:
        return len(self._checks)

    def reset(self) -> None:
        self._checks = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        name = f"not_null_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=(
                    f"Column '{column}' has {null_count} null values"
                    if not passed else f"Column '{column}' has no null values"
                ),
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that non-null values of a column are unique"""
        name = f"unique_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            values = df[column].drop_nulls()
            duplicate_count = len(values) - values.n_unique()
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=(
                    f"Column '{column}' has {duplicate_count} duplicate values"
                    if not passed else f"Column '{column}' values are unique"
                ),
                details={"duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within an inclusive range"""
        name = f"range_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(name=name, passed=True, severity=severity, message="No range specified")

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=(
                    f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]"
                    if not passed else "All values in range"
                ),
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for non-negative (or strictly positive) values"""
        min_val = 0 if allow_zero else 0.0001
        return self.add_range_check(column, min_value=min_val, severity=severity)

    def add_referential_integrity_check(
        self,
        column: str,
        reference_values: Collection[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null value exists in ``reference_values``"""
        name = f"ref_integrity_{column}"
        references = list(reference_values)

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)

            allowed = pl.Series(column, references, dtype=df.schema[column], strict=False)
            orphans = df.filter(
                pl.col(column).is_not_null() & ~pl.col(column).is_in(pl.lit(allowed).implode())
            ).height
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=(
                    f"Column '{column}' has {orphans} orphan records"
                    if not passed else "Referential integrity maintained"
                ),
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], int],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """
        Add a custom check.

        ``check_func`` returns the number of offending rows; zero passes.
        ``message_on_fail`` may reference ``{count}``.
        """
        def check(df: pl.DataFrame) -> ValidationCheck:
            failed = int(check_func(df))
            passed = failed == 0
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail.format(count=failed),
                failed_rows=failed,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame, dataset: str = "records") -> ValidationResult:
        """
        Run all validation checks on a frame.

        Args:
            df: DataFrame to validate
            dataset: Name used in log events

        Returns:
            ValidationResult with all check results
        """
        started_at = _utcnow()
        results = []

        logger.debug("Running validation checks", dataset=dataset, checks=len(self._checks), rows=len(df))

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    "Validation check failed",
                    dataset=dataset,
                    check=result.name,
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.info(
            "Validation complete",
            dataset=dataset,
            status=status.value,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=_utcnow(),
        )


# =============================================================================
# RECORD FRAMES
# =============================================================================

def _id_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _ts_text(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


SALES_SCHEMA = {
    "id": pl.Utf8,
    "product_id": pl.Utf8,
    "label": pl.Utf8,
    "quantity": pl.Int64,
    "unit_price": pl.Float64,
    "timestamp": pl.Utf8,
}

EXPENSES_SCHEMA = {
    "id": pl.Utf8,
    "category": pl.Utf8,
    "amount": pl.Float64,
    "timestamp": pl.Utf8,
}

PRODUCTS_SCHEMA = {
    "id": pl.Utf8,
    "avg_unit_cost": pl.Float64,
    "total_stock": pl.Int64,
}


def sales_frame(sales: Iterable["SaleRecord"]) -> pl.DataFrame:
    """Sales as a frame; identifiers are compared as text"""
    rows = [
        {
            "id": _id_text(s.id),
            "product_id": _id_text(s.product_id),
            "label": s.model or s.product_name,
            "quantity": s.quantity,
            "unit_price": s.unit_price,
            "timestamp": _ts_text(s.timestamp),
        }
        for s in sales
    ]
    return pl.DataFrame(rows, schema=SALES_SCHEMA)


def expenses_frame(expenses: Iterable["ExpenseRecord"]) -> pl.DataFrame:
    rows = [
        {
            "id": _id_text(e.id),
            "category": (e.category or "").strip() or None,
            "amount": e.amount,
            "timestamp": _ts_text(e.timestamp),
        }
        for e in expenses
    ]
    return pl.DataFrame(rows, schema=EXPENSES_SCHEMA)


def products_frame(products: Iterable["ProductCostRecord"]) -> pl.DataFrame:
    rows = [
        {"id": _id_text(p.id), "avg_unit_cost": p.avg_unit_cost, "total_stock": p.total_stock}
        for p in products
    ]
    return pl.DataFrame(rows, schema=PRODUCTS_SCHEMA)


# =============================================================================
# PRE-BUILT VALIDATORS
# =============================================================================

def create_sales_validator(product_ids: Optional[Collection[str]] = None) -> DataValidator:
    """Validator for sales; ``product_ids`` enables the catalog reference check"""
    validator = (
        DataValidator()
        .add_not_null_check("id", severity=ValidationSeverity.WARNING)
        .add_unique_check("id", severity=ValidationSeverity.WARNING)
        .add_not_null_check("timestamp", severity=ValidationSeverity.WARNING)
        .add_positive_check("quantity")
        .add_positive_check("unit_price")
        .add_custom_check(
            "zero_quantity",
            lambda df: df.filter(pl.col("quantity") == 0).height,
            "{count} sales have zero quantity",
            severity=ValidationSeverity.WARNING,
        )
    )
    if product_ids is not None:
        validator.add_referential_integrity_check(
            "product_id", product_ids, severity=ValidationSeverity.WARNING
        )
    return validator


def create_expenses_validator() -> DataValidator:
    """Validator for expenses; negative amounts are reversals and allowed"""
    return (
        DataValidator()
        .add_not_null_check("id", severity=ValidationSeverity.WARNING)
        .add_unique_check("id", severity=ValidationSeverity.WARNING)
        .add_not_null_check("timestamp", severity=ValidationSeverity.WARNING)
        .add_not_null_check("category", severity=ValidationSeverity.INFO)
    )


def create_products_validator() -> DataValidator:
    """Validator for the product cost basis"""
    return (
        DataValidator()
        .add_not_null_check("id")
        .add_unique_check("id", severity=ValidationSeverity.WARNING)
        .add_positive_check("avg_unit_cost")
        .add_range_check("total_stock", min_value=0, severity=ValidationSeverity.WARNING)
        .add_custom_check(
            "uncosted_products",
            lambda df: df.filter(pl.col("avg_unit_cost") == 0).height,
            "{count} products have no average unit cost",
            severity=ValidationSeverity.WARNING,
        )
    )


def audit_records(
    sales: Sequence["SaleRecord"],
    expenses: Sequence["ExpenseRecord"],
    products: Sequence["ProductCostRecord"],
) -> Dict[str, ValidationResult]:
    """
    Audit one request's record slices.

    Args:
        sales: Sale records
        expenses: Expense records
        products: Product catalog

    Returns:
        One ValidationResult per record stream, keyed sales/expenses/products
    """
    products_df = products_frame(products)
    product_ids = products_df["id"].drop_nulls().to_list()

    return {
        "sales": create_sales_validator(product_ids).validate(sales_frame(sales), "sales"),
        "expenses": create_expenses_validator().validate(expenses_frame(expenses), "expenses"),
        "products": create_products_validator().validate(products_df, "products"),
    }
