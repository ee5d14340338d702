"""
Unit tests for the recommendation engine.
"""

from datetime import datetime

import pytest

from sales_insights.agents.recommendation_engine import RecommendationEngine
from sales_insights.core.models import RecommendationAction, RecommendationType

NOV = datetime(2024, 11, 10, 12, 0)
DEC = datetime(2024, 12, 10, 12, 0)


@pytest.fixture
def engine():
    return RecommendationEngine()


class TestRecommend:
    """Tests for the composed recommendation list."""

    @pytest.fixture
    def records(self, make_record):
        return [
            make_record("P1", "S1", NOV, 300.0, "T1"),
            make_record("P2", "S2", NOV, 200.0, "T2"),
            make_record("P3", "S1", NOV, 100.0, "T3"),
            make_record("P1", "S1", DEC, 100.0, "T4"),
            make_record("P2", "S2", DEC, 50.0, "T5"),
            make_record("P3", "S2", DEC, 90.0, "T6"),
        ]

    def test_declining_products_then_store(self, engine, records):
        recommendations = engine.recommend(records)

        assert [r.type for r in recommendations[:3]] == [
            RecommendationType.PRODUCT, RecommendationType.PRODUCT, RecommendationType.STORE
        ]
        assert [r.target for r in recommendations[:3]] == ["P1", "P2", "S1"]
        assert len(recommendations) == 5
        assert [r.target for r in recommendations[3:]] == ["P3", "S2"]

    def test_product_impact_text(self, engine, records):
        first = engine.recommend(records)[0]

        assert first.action == RecommendationAction.REVERSE_DECLINE
        assert first.metric == "monthly_revenue"
        assert first.value == "$100.00"
        assert first.impact == (
            "Revenue declining 66.7% ($200.00 decrease; "
            "November 2024: $300.00 to December 2024: $100.00)"
        )

    def test_store_benchmark(self, engine, records):
        store = engine.recommend(records)[2]

        assert store.action == RecommendationAction.REVERSE_DECLINE
        assert store.benchmark == "November 2024: $400.00"

    def test_targets_are_unique(self, engine, records):
        targets = [r.target for r in engine.recommend(records)]

        assert len(targets) == len(set(targets))

    def test_respects_maximum(self, records):
        engine = RecommendationEngine(max_recommendations=2)

        assert len(engine.recommend(records)) == 2

    def test_fewer_than_two_months(self, engine, make_record):
        records = [make_record("P1", "S1", DEC, 100.0), make_record("P2", "S1", DEC, 10.0)]

        assert engine.recommend(records) == []

    def test_small_stores_fall_back_to_top_store(self, engine, make_record):
        records = [
            make_record("P1", "S1", NOV, 20.0, "T1"),
            make_record("P1", "S1", DEC, 30.0, "T2"),
        ]

        recommendations = engine.recommend(records)

        store = recommendations[0]
        assert store.action == RecommendationAction.MONITOR_PERFORMANCE
        assert store.target == "S1"
        assert store.impact == "Drives 100.0% of total revenue"
        assert recommendations[1].action == RecommendationAction.MAINTAIN_GROWTH


class TestSeasonality:
    """Tests for the seasonality note."""

    def test_opposite_pattern_last_year(self, engine, make_record):
        records = [
            make_record("P1", "S1", datetime(2023, 11, 5), 100.0, "T1"),
            make_record("P1", "S1", datetime(2023, 12, 5), 150.0, "T2"),
            make_record("P1", "S1", datetime(2024, 11, 5), 200.0, "T3"),
            make_record("P1", "S1", datetime(2024, 12, 5), 100.0, "T4"),
        ]

        product = engine.recommend(records)[0]

        assert product.target == "P1"
        assert product.note == (
            "Opposite pattern observed last year "
            "(November 2023 to December 2023 saw a 50.0% increase)"
        )

    def test_same_direction_has_no_note(self, engine, make_record):
        records = [
            make_record("P1", "S1", datetime(2023, 11, 5), 150.0, "T1"),
            make_record("P1", "S1", datetime(2023, 12, 5), 100.0, "T2"),
            make_record("P1", "S1", datetime(2024, 11, 5), 200.0, "T3"),
            make_record("P1", "S1", datetime(2024, 12, 5), 100.0, "T4"),
        ]

        product = engine.recommend(records)[0]

        assert product.note is None


class TestDiscount:
    """Tests for the discount recommendation."""

    def test_effective_discount_is_recommended(self, engine, make_record):
        records = [
            make_record("P1", "S1", NOV, 10.0, "T1"),
            make_record("P1", "S1", DEC, 10.0, "T2"),
            make_record("P1", "S1", DEC, 20.0, "T3", discount="SAVE"),
        ]

        discounts = [r for r in engine.recommend(records) if r.type == RecommendationType.DISCOUNT]

        assert len(discounts) == 1
        discount = discounts[0]
        assert discount.action == RecommendationAction.EXPAND_PROMOTION
        assert discount.target == "SAVE"
        assert discount.metric == "avg_transaction"
        assert discount.value == "$20.00"
        assert discount.benchmark == "Regular: $10.00"
        assert discount.impact == (
            "100.0% higher average transaction value (+$10.00 per transaction)"
        )

    def test_small_lift_is_not_recommended(self, engine, make_record):
        records = [
            make_record("P1", "S1", NOV, 10.0, "T1"),
            make_record("P1", "S1", DEC, 10.0, "T2"),
            make_record("P1", "S1", DEC, 11.0, "T3", discount="SAVE"),
        ]

        types = [r.type for r in engine.recommend(records)]

        assert RecommendationType.DISCOUNT not in types

    def test_to_dict_omits_empty_fields(self, engine, make_record):
        records = [
            make_record("P1", "S1", NOV, 20.0, "T1"),
            make_record("P1", "S1", DEC, 30.0, "T2"),
        ]

        data = engine.recommend(records)[0].to_dict()

        assert data["type"] == "store"
        assert data["action"] == "monitor_performance"
        assert "benchmark" not in data
        assert "note" not in data
