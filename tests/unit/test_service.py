"""
Unit Tests - Reporting Service
"""
import asyncio
from datetime import datetime, timezone
from typing import List

import pytest

from finance_insights.config import ReportingSettings, Settings
from finance_insights.database import InMemoryRecordRepository
from finance_insights.reporting.exceptions import InvalidWindow, UpstreamFetchFailed
from finance_insights.reporting.schemas import InsightSeverity
from finance_insights.reporting.service import ReportingService
from finance_insights.reporting.windows import TimeWindow


class FailingRepository(InMemoryRecordRepository):
    """Repository whose expense query fails"""

    async def fetch_expenses(self, window: TimeWindow) -> List:
        raise ConnectionError("expenses table unavailable")


class StalledSalesRepository(FailingRepository):
    """Repository whose sales query hangs while the expense query fails"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sales_cancelled = False

    async def fetch_sales(self, window: TimeWindow):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.sales_cancelled = True
            raise
        return []


class RecordingRepository(InMemoryRecordRepository):
    """Repository that remembers the windows it was asked for"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sales_windows: List[TimeWindow] = []

    async def fetch_sales(self, window: TimeWindow):
        self.sales_windows.append(window)
        return await super().fetch_sales(window)


@pytest.fixture
def service(memory_repository, test_settings, fixed_now) -> ReportingService:
    return ReportingService(memory_repository, settings=test_settings, clock=lambda: fixed_now)


class TestBuildReport:
    """Tests for build_report"""

    async def test_custom_window(self, service):
        """Test a report over an explicit date range"""
        report = await service.build_report(start_date="2024-01-01", end_date="2024-03-31")

        assert report.snapshot.revenue == 1530
        assert report.snapshot.cogs == 700
        assert report.snapshot.net_profit == 660
        assert report.unmatched_sales == 2
        assert report.period.range is None
        assert report.period.start == datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def test_window_filters_records(self, service):
        """Test that only in-window records are aggregated"""
        report = await service.build_report(start_date="2024-02-01", end_date="2024-02-29")

        assert report.snapshot.revenue == 250
        assert report.snapshot.operating_expenses == 50
        assert [p.month_key for p in report.snapshot.monthly_trend] == ["2024-02"]

    async def test_preset_window(self, service):
        """Test a preset range ending at the service clock"""
        report = await service.build_report("month")

        # 2024-02-15 12:00 UTC onwards: sales 3 and 4
        assert report.snapshot.revenue == 280
        assert report.period.range == "month"
        assert report.period.end is None

    async def test_default_range_from_settings(self, memory_repository, fixed_now):
        """Test that the configured default preset is used"""
        settings = Settings(reporting=ReportingSettings(timezone="UTC", default_range="quarter"))
        service = ReportingService(memory_repository, settings=settings, clock=lambda: fixed_now)

        report = await service.build_report()

        assert report.period.range == "quarter"
        assert report.snapshot.revenue == 1530

    async def test_json_body(self, service):
        """Test camelCase JSON body"""
        report = await service.build_report(start_date="2024-01-01", end_date="2024-03-31")
        body = report.model_dump(mode="json", by_alias=True)

        assert body["unmatchedSales"] == 2
        assert body["snapshot"]["grossMarginPct"] == pytest.approx(830 / 1530 * 100)
        assert body["period"]["start"].startswith("2024-01-01T00:00:00")

    async def test_invalid_window_propagates(self, service):
        """Test that window errors surface unchanged"""
        with pytest.raises(InvalidWindow):
            await service.build_report(start_date="2024-03-01", end_date="2024-01-01")
        with pytest.raises(InvalidWindow):
            await service.build_report(start_date="2024-03-01")

    async def test_fetch_failure(self, sample_sales, sample_products, test_settings, fixed_now):
        """Test that a failed slice aborts the request with its source"""
        repository = FailingRepository(sample_sales, [], sample_products)
        service = ReportingService(repository, settings=test_settings, clock=lambda: fixed_now)

        with pytest.raises(UpstreamFetchFailed) as exc_info:
            await service.build_report("year")

        assert exc_info.value.source == "expenses"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_fetch_failure_cancels_other_reads(self, sample_products, test_settings, fixed_now):
        """Test that in-flight reads are cancelled once one slice fails"""
        repository = StalledSalesRepository([], [], sample_products)
        service = ReportingService(repository, settings=test_settings, clock=lambda: fixed_now)

        with pytest.raises(UpstreamFetchFailed) as exc_info:
            await asyncio.wait_for(service.build_report("year"), timeout=5)

        assert exc_info.value.source == "expenses"
        assert repository.sales_cancelled


class TestBuildInsights:
    """Tests for build_insights"""

    async def test_custom_window_uses_previous_window(self, sample_sales, sample_expenses, sample_products,
                                                      test_settings, fixed_now):
        """Test that explicit ranges compare against the preceding window"""
        repository = RecordingRepository(sample_sales, sample_expenses, sample_products)
        service = ReportingService(repository, settings=test_settings, clock=lambda: fixed_now)

        report = await service.build_insights(start_date="2024-03-01", end_date="2024-03-31")
        revenue = report.insights[0]

        assert len(repository.sales_windows) == 2
        # Previous window covers February: sale 2 only
        assert revenue.metrics.previous == 250
        assert revenue.metrics.current == 280
        assert revenue.severity == InsightSeverity.SUCCESS

    async def test_preset_assumes_ninety_percent_previous_revenue(self, service):
        """
        Test the preset comparison default.

        Preset ranges have no previous window, so previous revenue is taken
        as 90% of current revenue and growth always reads as about 11.1%.
        This is a documented default, not a measured comparison; see
        REPORTING_COMPARE_PRESETS_WITH_PREVIOUS_WINDOW.
        """
        report = await service.build_insights("month")
        revenue = report.insights[0]

        assert revenue.metrics.previous == pytest.approx(280 * 0.9)
        assert revenue.metrics.change_percent == pytest.approx(100 / 9)
        assert revenue.title == "營收成長強勁"

    async def test_preset_with_real_previous_window(self, memory_repository, fixed_now):
        """Test presets measured against the preceding window when enabled"""
        settings = Settings(
            reporting=ReportingSettings(timezone="UTC", compare_presets_with_previous_window=True)
        )
        service = ReportingService(memory_repository, settings=settings, clock=lambda: fixed_now)

        report = await service.build_insights("month")
        revenue = report.insights[0]

        # Previous window is 2024-01-17 12:00 to 2024-02-15 11:59:59.999
        assert revenue.metrics.previous == 250
        assert revenue.metrics.change_percent == pytest.approx(12)

    async def test_summary(self, service):
        """Test that the summary counts every insight"""
        report = await service.build_insights(start_date="2024-01-01", end_date="2024-03-31")

        assert report.summary.total == len(report.insights)
        assert report.insights[-1].category == "費用分析"


class TestBuildAnalysis:
    """Tests for build_analysis and audit"""

    async def test_analysis(self, service):
        """Test narrative analysis over a window"""
        analysis = await service.build_analysis(start_date="2024-01-01", end_date="2024-03-31")

        assert analysis.snapshot.revenue == 1530
        assert analysis.advice.analysis.startswith("財務狀況分析報告")
        assert 1 <= len(analysis.advice.recommendations) <= 5
        assert 1 <= len(analysis.advice.risks) <= 4

    async def test_audit(self, service):
        """Test the audit entry point"""
        audits = await service.audit(start_date="2024-01-01", end_date="2024-03-31")

        assert set(audits) == {"sales", "expenses", "products"}
        assert audits["sales"].failures()[0].name == "ref_integrity_product_id"

    async def test_audit_does_not_change_figures(self, memory_repository, fixed_now):
        """Test that reports are identical with and without auditing"""
        audited = ReportingService(
            memory_repository,
            settings=Settings(reporting=ReportingSettings(timezone="UTC", audit_records=True)),
            clock=lambda: fixed_now,
        )
        unaudited = ReportingService(
            memory_repository,
            settings=Settings(reporting=ReportingSettings(timezone="UTC", audit_records=False)),
            clock=lambda: fixed_now,
        )

        first = await audited.build_report("year")
        second = await unaudited.build_report("year")

        assert first == second
