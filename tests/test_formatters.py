"""
Unit tests for answer templates.
"""

import pytest

from sales_insights.core.models import (
    ForecastResult, MonthlyBreakdown, MonthRef, RankedEntry, RankedResult, ScalarResult
)
from sales_insights.utils.formatters import format_currency, format_result


class TestFormatCurrency:

    @pytest.mark.parametrize("amount,expected", [
        (70, "$70.00"),
        (1234.5, "$1,234.50"),
        (0, "$0.00"),
        (-200, "-$200.00"),
    ])
    def test_format_currency(self, amount, expected):
        assert format_currency(amount) == expected


class TestFormatResult:

    def test_scalar(self):
        result = ScalarResult(title="Sales for Latte in December 2024", amount=70.0, row_count=2)

        assert format_result(result) == "Sales for Latte in December 2024 were $70.00."

    def test_ranked(self):
        result = RankedResult(
            title="Top 3 performing products in December 2024",
            entries=[
                RankedEntry("Latte", 70.0, 58.33),
                RankedEntry("Mocha", 50.0, 41.67),
            ],
            total=120.0,
            limit=3,
        )

        assert format_result(result) == (
            "Top 3 performing products in December 2024:\n"
            "\n"
            "1. Latte: $70.00 (58.3% of total)\n"
            "2. Mocha: $50.00 (41.7% of total)\n"
            "\n"
            "Only 2 had sales in this period."
        )

    def test_low_performers_combined_share(self):
        result = RankedResult(
            title="Bottom 20% of products by revenue",
            entries=[RankedEntry("P1", 10.0, 5.0)],
            total=200.0,
            limit=1,
            combined_share_pct=5.0,
        )

        text = format_result(result)

        assert text.endswith("Together they account for 5.0% of total revenue ($200.00).")

    def test_store_order_value_details(self):
        result = RankedResult(
            title="Stores by average order value",
            entries=[RankedEntry(
                "Downtown", 30.0, 100.0,
                details={"order_count": 2, "items_per_order": 1.5, "revenue": 60.0},
            )],
            total=60.0,
            limit=1,
        )

        text = format_result(result)

        assert "1. Downtown: $30.00 average order value across 2 orders (1.5 items per order)" in text

    def test_forecast_from_last_year(self):
        result = ForecastResult(
            title="Projected top products for December 2024",
            month=MonthRef(year=2024, month_index=11),
            basis_label="December 2023",
            entries=[RankedEntry("Mocha", 60.0, 60.0), RankedEntry("Latte", 40.0, 40.0)],
            projected_total=100.0,
        )

        assert format_result(result) == (
            "Projected top products for December 2024:\n"
            "\n"
            "1. Mocha: $60.00 (60.0% of total)\n"
            "2. Latte: $40.00 (40.0% of total)\n"
            "\n"
            "Projected revenue: $100.00, based on December 2023."
        )

    def test_forecast_from_whole_history(self):
        result = ForecastResult(
            title="Projected top products for March 2025",
            month=MonthRef(year=2025, month_index=2),
            entries=[RankedEntry("Latte", 140.0, 56.0)],
            projected_total=73.333,
        )

        assert format_result(result).endswith(
            "Projected revenue: $73.33, based on the average month across the whole "
            "history (March 2024 has no sales)."
        )

    def test_breakdowns_have_no_template(self):
        with pytest.raises(TypeError):
            format_result(MonthlyBreakdown(title="Monthly revenue report"))
