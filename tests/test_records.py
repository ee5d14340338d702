"""
Unit tests for record parsing.
"""

import dataclasses
from datetime import datetime

import pytest

from sales_insights.core.exceptions import ParseWarning
from sales_insights.data.records import (
    COLUMNS, RecordParser, parse_currency, parse_quantity, parse_timestamp, records_from_grid
)


class TestParseCurrency:
    """Tests for currency cell parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("$1,234.50", 1234.5),
        ("70", 70.0),
        (" 12.25 ", 12.25),
        (12, 12.0),
        (3.5, 3.5),
    ])
    def test_valid_values(self, raw, expected):
        assert parse_currency(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", "nan", "inf", None, "$"])
    def test_invalid_values_return_none(self, raw):
        assert parse_currency(raw) is None

    def test_quantity_accepts_decimal_text(self):
        assert parse_quantity("2.0") == 2
        assert parse_quantity("3") == 3
        assert parse_quantity("two") is None


class TestParseTimestamp:
    """Tests for timestamp parsing and timezone handling."""

    def test_naive_timestamp_is_kept_as_local_time(self):
        assert parse_timestamp("2024-12-05 10:00:00") == datetime(2024, 12, 5, 10, 0)

    def test_aware_timestamp_defaults_to_utc(self):
        parsed = parse_timestamp("2024-12-01T02:00:00+02:00")

        assert parsed == datetime(2024, 12, 1, 0, 0)
        assert parsed.tzinfo is None

    def test_aware_timestamp_converted_to_business_timezone(self):
        # 02:00 UTC on Dec 1 is still Nov 30 in New York
        parsed = parse_timestamp("2024-12-01T02:00:00+00:00", business_tz="America/New_York")

        assert parsed == datetime(2024, 11, 30, 21, 0)

    @pytest.mark.parametrize("raw", ["", "garbage", None])
    def test_unparseable_returns_none(self, raw):
        assert parse_timestamp(raw) is None

    def test_datetime_passes_through(self):
        value = datetime(2024, 1, 2, 3, 4)
        assert parse_timestamp(value) == value


class TestRecordParser:
    """Tests for RecordParser."""

    @pytest.fixture
    def parser(self):
        return RecordParser()

    def test_parse_grid(self, parser, sample_grid):
        records = parser.parse_grid(sample_grid)

        assert len(records) == 4
        first = records[0]
        assert first.transaction_id == "T1"
        assert first.purchase_timestamp == datetime(2024, 11, 3, 9, 15)
        assert first.store_location == "Downtown"
        assert first.product_name == "Cold Brew"
        assert first.unit_price == 4.5
        assert first.quantity == 2
        assert first.discount_code is None
        assert first.line_total == 9.0
        assert records[2].discount_code == "SAVE10"
        assert parser.warnings == []

    def test_invalid_values_become_zero_with_warnings(self, parser):
        grid = [
            list(COLUMNS),
            ["T9", "garbage", "C9", "Downtown", "Cold Brew", "abc", "two", "", "oops"],
        ]

        records = parser.parse_grid(grid)

        record = records[0]
        assert record.purchase_timestamp is None
        assert record.raw_timestamp == "garbage"
        assert record.month_key is None
        assert record.unit_price == 0.0
        assert record.quantity == 0
        assert record.line_total == 0.0

        assert len(parser.warnings) == 4
        assert all(isinstance(w, ParseWarning) for w in parser.warnings)
        assert {w.column for w in parser.warnings} == {
            "Purchase_Date", "Unit_Price", "Quantity", "Line_Total"
        }
        assert all(w.row_number == 2 for w in parser.warnings)

    def test_blank_rows_are_skipped(self, parser):
        grid = [
            list(COLUMNS),
            [],
            ["", "", "", "", "", "", "", "", ""],
            ["T1", "garbage", "C1", "Downtown", "Cold Brew", "1", "1", "", "1"],
        ]

        records = parser.parse_grid(grid)

        assert len(records) == 1
        # Row numbers follow the sheet, header being row 1
        assert parser.warnings[0].row_number == 4

    def test_short_rows_are_padded(self, parser):
        grid = [list(COLUMNS), ["T1", "2024-11-03 09:15:00", "C1", "Downtown"]]

        record = parser.parse_grid(grid)[0]

        assert record.product_name == ""
        assert record.discount_code is None
        assert record.line_total == 0.0

    def test_warnings_reset_between_grids(self, parser):
        parser.parse_grid([list(COLUMNS), ["T1", "garbage", "C1", "X", "A", "1", "1", "", "1"]])
        parser.parse_grid([list(COLUMNS), ["T1", "2024-01-01", "C1", "X", "A", "1", "1", "", "1"]])

        assert parser.warnings == []

    def test_records_are_immutable(self, sample_grid):
        record = records_from_grid(sample_grid)[0]

        with pytest.raises(dataclasses.FrozenInstanceError):
            record.line_total = 100.0

    def test_month_key(self, sample_grid):
        records = records_from_grid(sample_grid)

        assert records[0].month_key == (2024, 10)
        assert records[3].month_key == (2024, 11)
