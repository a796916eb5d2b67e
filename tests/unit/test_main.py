"""
Unit Tests - Command Line Entry Point
"""
import json

import pytest

from finance_insights.main import EXIT_FETCH_FAILED, EXIT_INVALID_WINDOW, EXIT_OK, build_parser, main


@pytest.fixture
def exports(tmp_path):
    sales = tmp_path / "sales.csv"
    sales.write_text(
        "id,date,product_id,product_name,quantity,unit_price\n"
        "1,2024-01-05,1,Tee,10,100\n",
        encoding="utf-8",
    )
    products = tmp_path / "products.csv"
    products.write_text("id,product_name,avg_unit_cost,total_stock\n1,Tee,60,20\n", encoding="utf-8")
    expenses = tmp_path / "expenses.csv"
    expenses.write_text("id,date,category,amount\n1,2024-01-10,Rent,100\n", encoding="utf-8")
    return ["--sales", str(sales), "--expenses", str(expenses), "--products", str(products)]


class TestCli:
    """Tests for the finance-insights command"""

    def test_parser(self):
        """Test option destinations"""
        args = build_parser().parse_args(["report", "--range", "quarter"])

        assert args.command == "report"
        assert args.date_range == "quarter"
        assert args.start_date is None

    def test_unknown_range_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["report", "--range", "decade"])

    def test_report_from_files(self, exports, capsys):
        """Test a report printed as camelCase JSON"""
        code = main(["report", *exports, "--start", "2024-01-01", "--end", "2024-01-31"])

        body = json.loads(capsys.readouterr().out)
        assert code == EXIT_OK
        assert body["snapshot"]["revenue"] == 1000
        assert body["snapshot"]["netProfit"] == 300

    def test_insights_keep_chinese_text(self, exports, capsys):
        """Test that insight text is printed unescaped"""
        main(["insights", *exports, "--start", "2024-01-01", "--end", "2024-01-31"])

        out = capsys.readouterr().out
        assert "\\u" not in out
        assert json.loads(out)["summary"]["total"] >= 1

    def test_audit(self, exports, capsys):
        """Test audit output keyed by record stream"""
        main(["audit", *exports, "--start", "2024-01-01", "--end", "2024-01-31"])

        body = json.loads(capsys.readouterr().out)
        assert set(body) == {"sales", "expenses", "products"}
        assert body["sales"]["status"] == "passed"

    def test_inverted_range(self, exports, capsys):
        """Test exit code for an end date before the start date"""
        code = main(["report", *exports, "--start", "2024-03-01", "--end", "2024-01-01"])

        assert code == EXIT_INVALID_WINDOW
        assert "error:" in capsys.readouterr().err

    def test_missing_export(self, tmp_path, capsys):
        """Test exit code when an export file cannot be read"""
        missing = str(tmp_path / "absent.csv")

        code = main(["report", "--sales", missing, "--start", "2024-01-01", "--end", "2024-01-31"])

        assert code == EXIT_FETCH_FAILED
        assert "error:" in capsys.readouterr().err

    def test_unsupported_export_format(self, tmp_path, capsys):
        """Test exit code for an export in an unknown format"""
        path = tmp_path / "sales.xlsx"
        path.write_text("not a spreadsheet", encoding="utf-8")

        code = main(["report", "--sales", str(path), "--range", "month"])

        assert code == EXIT_FETCH_FAILED
