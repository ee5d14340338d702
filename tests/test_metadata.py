"""
Unit tests for the metadata indexer.
"""

from datetime import datetime

from sales_insights.data.metadata import build_metadata


class TestBuildMetadata:
    """Tests for build_metadata."""

    def test_collects_sorted_entities_and_months(self, sample_records):
        metadata = build_metadata(sample_records)

        assert metadata.products == ["Acai Bowl", "Cold Brew", "Green Smoothie", "Protein Acai Bowl"]
        assert metadata.locations == ["Airport", "Downtown"]
        assert metadata.months == ["2024-11", "2024-12"]
        assert metadata.time_range == ["November 2024", "December 2024"]
        assert metadata.row_count == 6
        assert not metadata.is_empty

    def test_drops_blank_entities(self, make_record):
        records = [
            make_record(product="", location="Downtown"),
            make_record(product="Cold Brew", location=""),
        ]

        metadata = build_metadata(records)

        assert metadata.products == ["Cold Brew"]
        assert metadata.locations == ["Downtown"]

    def test_untimed_records_count_but_add_no_month(self, make_record):
        records = [
            make_record(when=datetime(2023, 12, 1)),
            make_record(when=None),
        ]

        metadata = build_metadata(records)

        assert metadata.row_count == 2
        assert metadata.months == ["2023-12"]

    def test_months_sorted_across_years(self, make_record):
        records = [
            make_record(when=datetime(2025, 1, 3)),
            make_record(when=datetime(2024, 12, 3)),
            make_record(when=datetime(2024, 2, 3)),
        ]

        metadata = build_metadata(records)

        assert metadata.months == ["2024-02", "2024-12", "2025-01"]
        assert [ref.label for ref in metadata.month_refs] == [
            "February 2024", "December 2024", "January 2025"
        ]

    def test_empty_input_is_empty_metadata(self):
        metadata = build_metadata([])

        assert metadata.is_empty
        assert metadata.products == []
        assert metadata.months == []
