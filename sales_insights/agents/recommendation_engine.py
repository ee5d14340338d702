"""
Recommendation Engine for trend-based business suggestions.

Scans the full record set, compares each product's and store's two most
recent months, and composes a short ranked list: declining products first,
then one store entry, then whatever else stands out (growth, store swings,
an unusually effective discount code).
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from sales_insights.agents.aggregation_engine import growth_pct, records_to_frame
from sales_insights.core.models import (
    MonthRef,
    Recommendation,
    RecommendationAction,
    RecommendationType,
    TransactionRecord,
)
from sales_insights.utils.formatters import format_currency

logger = logging.getLogger(__name__)

# Minimum prior-month revenue for a store delta to be ranked
STORE_NOISE_FLOOR = 50.0
MAX_RECOMMENDATIONS = 5
LEADING_PRODUCTS = 2
PROMOTION_LIFT = 1.2


@dataclass
class TrendDelta:
    """Change between an entity's two most recent months of revenue."""
    entity: str
    previous_month: MonthRef
    current_month: MonthRef
    previous_value: float
    current_value: float
    note: Optional[str] = None

    @property
    def delta(self) -> float:
        return self.current_value - self.previous_value

    @property
    def pct(self) -> float:
        return growth_pct(self.current_value, self.previous_value)

    @property
    def is_declining(self) -> bool:
        return self.delta < 0

    def describe(self) -> str:
        direction = "declining" if self.is_declining else "growing"
        change = "decrease" if self.is_declining else "increase"
        return (
            f"Revenue {direction} {abs(self.pct):.1f}% "
            f"({format_currency(abs(self.delta))} {change}; "
            f"{self.previous_month.label}: {format_currency(self.previous_value)} to "
            f"{self.current_month.label}: {format_currency(self.current_value)})"
        )


class RecommendationEngine:
    """
    Engine that derives recommendations from month-over-month trends.

    Works on the whole record set independently of any question.
    """

    def __init__(
        self,
        max_recommendations: int = MAX_RECOMMENDATIONS,
        store_noise_floor: float = STORE_NOISE_FLOOR
    ):
        """
        Initialize RecommendationEngine.

        Args:
            max_recommendations: Upper bound on the composed list
            store_noise_floor: Minimum prior-month store revenue for a store delta to count
        """
        self.max_recommendations = max_recommendations
        self.store_noise_floor = store_noise_floor

    def recommend(self, records: Sequence[TransactionRecord]) -> List[Recommendation]:
        """
        Build the ranked recommendation list.

        Args:
            records: Full record set

        Returns:
            Up to max_recommendations recommendations; empty when the data
            covers fewer than two months
        """
        df = records_to_frame(records)
        timed = df.dropna(subset=["year"])
        covered = {(int(y), int(m)) for y, m in zip(timed["year"], timed["month_index"])}
        if len(covered) < 2:
            logger.info("Fewer than two months of data, no recommendations")
            return []

        product_deltas = self.trend_deltas(self.monthly_series(timed, "product_name"))
        store_deltas = self.trend_deltas(self.monthly_series(timed, "store_location"))

        declining = sorted(
            (d for d in product_deltas if d.is_declining),
            key=lambda d: (d.delta, d.entity)
        )
        growing = sorted(
            (d for d in product_deltas if d.delta > 0),
            key=lambda d: (-d.delta, d.entity)
        )
        stores = sorted(
            (d for d in store_deltas
             if d.previous_value >= self.store_noise_floor and d.delta != 0),
            key=lambda d: (-abs(d.pct), d.entity)
        )

        recommendations = [self._product_recommendation(d) for d in declining[:LEADING_PRODUCTS]]

        if stores:
            recommendations.append(self._store_recommendation(stores[0]))
        else:
            fallback = self._top_store_recommendation(df)
            if fallback is not None:
                recommendations.append(fallback)

        remaining = (
            [self._product_recommendation(d) for d in declining[LEADING_PRODUCTS:]]
            + [self._product_recommendation(d) for d in growing]
            + [self._store_recommendation(d) for d in stores[1:]]
        )
        discount = self._discount_recommendation(df)
        if discount is not None:
            remaining.append(discount)

        seen = {rec.target for rec in recommendations}
        for rec in remaining:
            if len(recommendations) >= self.max_recommendations:
                break
            if rec.target in seen:
                continue
            seen.add(rec.target)
            recommendations.append(rec)

        recommendations = recommendations[:self.max_recommendations]
        logger.info(f"Generated {len(recommendations)} recommendations")
        return recommendations

    @staticmethod
    def monthly_series(timed: pd.DataFrame, column: str) -> Dict[str, Dict[Tuple[int, int], float]]:
        """Per-entity revenue keyed by (year, month index)."""
        named = timed[timed[column] != ""]
        sums = named.groupby([column, "year", "month_index"])["line_total"].sum()
        series: Dict[str, Dict[Tuple[int, int], float]] = {}
        for (entity, year, month), amount in sums.items():
            series.setdefault(str(entity), {})[(int(year), int(month))] = float(amount)
        return series

    def trend_deltas(self, series: Dict[str, Dict[Tuple[int, int], float]]) -> List[TrendDelta]:
        """Deltas between the two most recent months of every entity with at least two."""
        deltas = []
        for entity, months in series.items():
            if len(months) < 2:
                continue
            previous_key, current_key = sorted(months)[-2:]
            delta = TrendDelta(
                entity=entity,
                previous_month=MonthRef(year=previous_key[0], month_index=previous_key[1]),
                current_month=MonthRef(year=current_key[0], month_index=current_key[1]),
                previous_value=months[previous_key],
                current_value=months[current_key],
            )
            delta.note = self.seasonality_note(delta, months)
            deltas.append(delta)
        return deltas

    @staticmethod
    def seasonality_note(delta: TrendDelta, months: Dict[Tuple[int, int], float]) -> Optional[str]:
        """
        Note when the same month pair a year earlier moved the other way.

        Informational only; it does not affect ranking.
        """
        start = delta.previous_month.shift(-12)
        end = delta.current_month.shift(-12)
        if start.key not in months or end.key not in months:
            return None

        last_year_change = growth_pct(months[end.key], months[start.key])
        if last_year_change == 0 or delta.delta == 0:
            return None
        if (last_year_change > 0) == (delta.delta > 0):
            return None

        direction = "increase" if last_year_change > 0 else "decline"
        return (
            f"Opposite pattern observed last year ({start.label} to {end.label} "
            f"saw a {abs(last_year_change):.1f}% {direction})"
        )

    @staticmethod
    def _product_recommendation(delta: TrendDelta) -> Recommendation:
        return Recommendation(
            type=RecommendationType.PRODUCT,
            action=(RecommendationAction.REVERSE_DECLINE if delta.is_declining
                    else RecommendationAction.MAINTAIN_GROWTH),
            target=delta.entity,
            metric="monthly_revenue",
            value=format_currency(delta.current_value),
            impact=delta.describe(),
            note=delta.note,
        )

    @staticmethod
    def _store_recommendation(delta: TrendDelta) -> Recommendation:
        return Recommendation(
            type=RecommendationType.STORE,
            action=(RecommendationAction.REVERSE_DECLINE if delta.is_declining
                    else RecommendationAction.MAINTAIN_GROWTH),
            target=delta.entity,
            metric="monthly_revenue",
            value=format_currency(delta.current_value),
            benchmark=f"{delta.previous_month.label}: {format_currency(delta.previous_value)}",
            impact=delta.describe(),
            note=delta.note,
        )

    @staticmethod
    def _top_store_recommendation(df: pd.DataFrame) -> Optional[Recommendation]:
        named = df[df["store_location"] != ""]
        if named.empty:
            return None
        sums = named.groupby("store_location")["line_total"].sum().reset_index()
        sums = sums.sort_values(["line_total", "store_location"], ascending=[False, True])
        top = sums.iloc[0]
        total = float(df["line_total"].sum())
        share = float(top["line_total"]) / total * 100 if total else 0.0
        return Recommendation(
            type=RecommendationType.STORE,
            action=RecommendationAction.MONITOR_PERFORMANCE,
            target=str(top["store_location"]),
            metric="total_revenue",
            value=format_currency(float(top["line_total"])),
            impact=f"Drives {share:.1f}% of total revenue",
        )

    @staticmethod
    def _discount_recommendation(df: pd.DataFrame) -> Optional[Recommendation]:
        """expand_promotion for the best code when it beats regular transactions by 20%."""
        regular = df[df["discount_code"] == ""]
        promoted = df[df["discount_code"] != ""]
        if regular.empty or promoted.empty:
            return None

        regular_average = float(regular["line_total"].mean())
        if regular_average <= 0:
            return None

        averages = promoted.groupby("discount_code")["line_total"].mean().reset_index()
        averages = averages.sort_values(["line_total", "discount_code"], ascending=[False, True])
        best = averages.iloc[0]
        best_average = float(best["line_total"])
        if best_average <= regular_average * PROMOTION_LIFT:
            return None

        lift = (best_average - regular_average) / regular_average * 100
        return Recommendation(
            type=RecommendationType.DISCOUNT,
            action=RecommendationAction.EXPAND_PROMOTION,
            target=str(best["discount_code"]),
            metric="avg_transaction",
            value=format_currency(best_average),
            benchmark=f"Regular: {format_currency(regular_average)}",
            impact=(
                f"{lift:.1f}% higher average transaction value "
                f"(+{format_currency(best_average - regular_average)} per transaction)"
            ),
        )
