"""
Unit Tests - Data Quality
"""
import warnings

import pytest
import polars as pl

from finance_insights.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    audit_records,
    create_products_validator,
    create_sales_validator,
    expenses_frame,
    sales_frame,
)
from finance_insights.reporting.schemas import ExpenseRecord, ProductCostRecord, SaleRecord


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.checks[0].failed_rows == 1

    def test_unique_check_ignores_nulls(self):
        """Test that missing ids are not counted as duplicates"""
        df = pl.DataFrame({"id": ["1", None, None, "2"]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].details["duplicate_count"] == 1

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        result = DataValidator().add_range_check("price", min_value=0, max_value=100).validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        assert result.checks[0].failed_rows == 2

    def test_positive_check(self):
        """Test zero is allowed unless excluded"""
        df = pl.DataFrame({"quantity": [0, 1, 2]})

        assert DataValidator().add_positive_check("quantity").validate(df).status == ValidationStatus.PASSED
        assert (
            DataValidator().add_positive_check("quantity", allow_zero=False).validate(df).status
            == ValidationStatus.FAILED
        )

    def test_referential_integrity(self):
        """Test orphan detection; nulls are not orphans"""
        df = pl.DataFrame({"product_id": ["1", "2", "99", None]})

        result = DataValidator().add_referential_integrity_check("product_id", ["1", "2"]).validate(df)

        assert result.checks[0].name == "ref_integrity_product_id"
        assert result.checks[0].failed_rows == 1

    def test_referential_integrity_without_deprecation(self):
        """Test that membership against the reference ids raises no deprecation warning"""
        df = pl.DataFrame({"product_id": ["1", "7"]})
        validator = DataValidator().add_referential_integrity_check("product_id", ["1", "2"])

        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            result = validator.validate(df)

        assert result.checks[0].failed_rows == 1

    def test_referential_integrity_empty_reference(self):
        """Test that every non-null value is an orphan against an empty catalog"""
        df = pl.DataFrame({"product_id": ["1", None]})

        result = DataValidator().add_referential_integrity_check("product_id", []).validate(df)

        assert result.checks[0].failed_rows == 1

    def test_custom_check(self):
        """Test custom check message formatting"""
        df = pl.DataFrame({"quantity": [0, 0, 3]})

        result = DataValidator().add_custom_check(
            "zero_quantity",
            lambda frame: frame.filter(pl.col("quantity") == 0).height,
            "{count} rows are empty",
            severity=ValidationSeverity.WARNING,
        ).validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.checks[0].message == "2 rows are empty"

    def test_missing_column(self):
        """Test that a missing column fails its check"""
        result = DataValidator().add_not_null_check("id").validate(pl.DataFrame({"other": [1]}))

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].message == "Column 'id' not found"

    def test_strict_mode(self):
        """Test that warnings fail the suite in strict mode"""
        df = pl.DataFrame({"id": [1, None]})

        lenient = DataValidator().add_not_null_check("id", severity=ValidationSeverity.WARNING)
        strict = DataValidator(strict_mode=True).add_not_null_check("id", severity=ValidationSeverity.WARNING)

        assert lenient.validate(df).status == ValidationStatus.PARTIAL
        assert strict.validate(df).status == ValidationStatus.FAILED

    def test_info_failures_do_not_degrade_status(self):
        """Test that INFO failures are reported but leave the suite passing"""
        df = pl.DataFrame({"category": ["Rent", None]})

        result = DataValidator().add_not_null_check("category", severity=ValidationSeverity.INFO).validate(df)

        assert result.status == ValidationStatus.PASSED
        assert len(result.failures()) == 1

    def test_success_rate(self):
        """Test success rate calculation"""
        df = pl.DataFrame({"id": [1, 2, 2]})

        result = DataValidator().add_not_null_check("id").add_unique_check("id").validate(df)

        assert result.success_rate == pytest.approx(50)
        assert DataValidator().validate(df).success_rate == 100.0


class TestRecordFrames:
    """Tests for record-to-frame conversion"""

    def test_sales_frame(self):
        """Test ids as text and label fallback"""
        sales = [
            SaleRecord(id=1, product_id=7, model="M", product_name="N", quantity=1, unit_price=5),
            SaleRecord(product_name="N", quantity=2, unit_price=5, date="2024-01-02"),
        ]

        df = sales_frame(sales)

        assert df["product_id"].to_list() == ["7", None]
        assert df["label"].to_list() == ["M", "N"]
        assert df["timestamp"].to_list() == [None, "2024-01-02T00:00:00"]

    def test_empty_frames_keep_schema(self):
        """Test that empty slices still produce typed columns"""
        df = expenses_frame([])

        assert df.height == 0
        assert df.schema["amount"] == pl.Float64

    def test_blank_category_is_null(self):
        """Test that blank categories read as missing"""
        df = expenses_frame([ExpenseRecord(category="  ", amount=1)])

        assert df["category"].to_list() == [None]


class TestPrebuiltValidators:
    """Tests for stream validators and audit_records"""

    def test_sales_validator_flags_negative_price(self):
        """Test that negative prices are errors"""
        df = sales_frame([SaleRecord(id=1, date="2024-01-01", quantity=1, unit_price=-5)])

        result = create_sales_validator().validate(df)

        assert result.status == ValidationStatus.FAILED
        assert [c.name for c in result.failures()] == ["range_unit_price"]

    def test_products_validator_flags_uncosted(self):
        """Test uncosted product warning"""
        df = pl.DataFrame(
            {"id": ["1", "2"], "avg_unit_cost": [10.0, 0.0], "total_stock": [1, 1]},
            schema={"id": pl.Utf8, "avg_unit_cost": pl.Float64, "total_stock": pl.Int64},
        )

        result = create_products_validator().validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.failures()[0].message == "1 products have no average unit cost"

    def test_audit_sample_records(self, sample_sales, sample_expenses, sample_products):
        """Test audit of the sample streams"""
        audits = audit_records(sample_sales, sample_expenses, sample_products)

        assert audits["sales"].status == ValidationStatus.PARTIAL
        assert [c.name for c in audits["sales"].failures()] == ["ref_integrity_product_id"]
        assert audits["products"].status == ValidationStatus.PARTIAL
        assert audits["expenses"].status == ValidationStatus.PASSED
        assert [c.name for c in audits["expenses"].failures()] == ["not_null_category"]

    def test_audit_empty_streams(self):
        """Test that empty streams pass"""
        audits = audit_records([], [], [])

        assert all(result.status == ValidationStatus.PASSED for result in audits.values())

    def test_to_dict(self, sample_sales, sample_expenses, sample_products):
        """Test camelCase serialization"""
        body = audit_records(sample_sales, sample_expenses, sample_products)["sales"].to_dict()

        assert body["status"] == "partial"
        assert body["warningCount"] == 1
        assert body["checks"][-1]["failedRows"] == 1

    def test_products_with_missing_ids(self):
        """Test that a catalog entry without an id is an error"""
        audits = audit_records([], [], [ProductCostRecord(avg_unit_cost=5)])

        assert audits["products"].status == ValidationStatus.FAILED
