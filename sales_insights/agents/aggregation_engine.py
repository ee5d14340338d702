"""
Aggregation Engine for resolved intents.

Executes an Intent against the full record set and returns a typed
AggregationResult. Every call builds a fresh DataFrame from the records, so
the engine holds no state between calls and never mutates its input.
"""

import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from sales_insights.core.models import (
    AggregationKind,
    AggregationResult,
    BucketFigure,
    DimensionBreakdown,
    ForecastResult,
    Intent,
    MonthlyBreakdown,
    MonthlyFigure,
    MonthRef,
    NoDataResult,
    RankedEntry,
    RankedResult,
    ScalarResult,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_TOP_COUNT = 3
DEFAULT_LOW_PERFORMER_PERCENT = 20.0
REPORT_TOP_PRODUCTS = 5

TIME_OF_DAY_BUCKETS = ["morning", "afternoon", "evening", "night"]
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
NO_PROMOTION = "No promotion"

FRAME_COLUMNS = [
    "transaction_id", "timestamp", "customer_id", "store_location",
    "product_name", "unit_price", "quantity", "discount_code", "line_total",
]


def growth_pct(current: float, previous: float) -> float:
    """Month-over-month growth in percent; 0 when there is no previous revenue."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def time_of_day(hour: int) -> str:
    """Bucket an hour of day: morning [6,12), afternoon [12,17), evening [17,21), else night."""
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def _share(amount: float, total: float) -> float:
    return amount / total * 100 if total else 0.0


def records_to_frame(records: Sequence[TransactionRecord]) -> pd.DataFrame:
    """
    Load records into a DataFrame with derived calendar columns.

    Rows without a valid timestamp keep NaN in year/month_index/hour and are
    left out of every time-bucketed figure.
    """
    df = pd.DataFrame(
        [
            {
                "transaction_id": r.transaction_id,
                "timestamp": r.purchase_timestamp,
                "customer_id": r.customer_id,
                "store_location": r.store_location,
                "product_name": r.product_name,
                "unit_price": r.unit_price,
                "quantity": r.quantity,
                "discount_code": r.discount_code or "",
                "line_total": r.line_total,
            }
            for r in records
        ],
        columns=FRAME_COLUMNS,
    )
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    df["line_total"] = df["line_total"].astype(float)
    df["quantity"] = df["quantity"].astype(float)
    df["year"] = df["timestamp"].dt.year
    df["month_index"] = df["timestamp"].dt.month - 1
    df["hour"] = df["timestamp"].dt.hour
    df["weekday"] = df["timestamp"].dt.day_name()
    return df


class AggregationEngine:
    """
    Engine that computes the numbers behind an answer.

    One handler per AggregationKind. Handlers return NoDataResult instead of
    raising when the selection is empty.
    """

    def __init__(self, report_top_products: int = REPORT_TOP_PRODUCTS):
        """
        Initialize AggregationEngine.

        Args:
            report_top_products: Number of top products listed in revenue reports
        """
        self.report_top_products = report_top_products
        self._handlers: Dict[AggregationKind, Callable[[Intent, pd.DataFrame], AggregationResult]] = {
            AggregationKind.PRODUCT_MONTH_TOTAL: self._product_month_total,
            AggregationKind.LOCATION_MONTH_TOTAL: self._location_month_total,
            AggregationKind.MONTHLY_BREAKDOWN: self._monthly_breakdown,
            AggregationKind.TOP_PRODUCTS: self._top_products,
            AggregationKind.LOCATION_RANKING: self._location_ranking,
            AggregationKind.REVENUE_REPORT: self._revenue_report,
            AggregationKind.LOW_PERFORMERS: self._low_performers,
            AggregationKind.STORE_ORDER_VALUE: self._store_order_value,
            AggregationKind.GENERAL_ADVICE: self._general_profile,
        }

    def execute(self, intent: Intent, records: Sequence[TransactionRecord]) -> AggregationResult:
        """
        Execute an intent against the record set.

        Args:
            intent: Resolved intent
            records: Full record set

        Returns:
            AggregationResult subclass matching the intent's kind
        """
        df = records_to_frame(records)
        handler = self._handlers[intent.aggregation_kind]
        result = handler(intent, df)
        logger.info(
            f"Executed {intent.aggregation_kind.value} over {len(df)} records: "
            f"{type(result).__name__}"
        )
        return result

    # Selection helpers

    @staticmethod
    def _in_month(df: pd.DataFrame, month: MonthRef) -> pd.Series:
        return (df["year"] == month.year) & (df["month_index"] == month.month_index)

    def _in_months(self, df: pd.DataFrame, months: Sequence[MonthRef]) -> pd.Series:
        mask = pd.Series(False, index=df.index)
        for month in months:
            mask |= self._in_month(df, month)
        return mask

    def _select(self, df: pd.DataFrame, intent: Intent, use_window: bool = True) -> pd.DataFrame:
        """Rows matching the intent's product, location and (optionally) time window."""
        mask = pd.Series(True, index=df.index)
        if intent.product_focus:
            mask &= df["product_name"] == intent.product_focus
        if intent.location_focus:
            mask &= df["store_location"] == intent.location_focus
        if use_window and intent.time_window is not None:
            mask &= self._in_months(df, intent.time_window.months())
        return df[mask]

    @staticmethod
    def _month_totals(df: pd.DataFrame) -> Dict[Tuple[int, int], float]:
        timed = df.dropna(subset=["year"])
        sums = timed.groupby(["year", "month_index"])["line_total"].sum()
        return {(int(year), int(month)): float(amount) for (year, month), amount in sums.items()}

    @staticmethod
    def _covered_months(df: pd.DataFrame) -> List[MonthRef]:
        timed = df.dropna(subset=["year"])
        keys = sorted({(int(y), int(m)) for y, m in zip(timed["year"], timed["month_index"])})
        return [MonthRef(year=year, month_index=month) for year, month in keys]

    @staticmethod
    def _ranked(df: pd.DataFrame, column: str, ascending: bool = False) -> List[Tuple[str, float]]:
        """(entity, revenue) pairs sorted by revenue, ties broken by name."""
        named = df[df[column] != ""]
        sums = named.groupby(column)["line_total"].sum().reset_index()
        sums = sums.sort_values(
            ["line_total", column], ascending=[ascending, True], kind="mergesort"
        )
        return [(str(name), float(amount)) for name, amount in zip(sums[column], sums["line_total"])]

    def _monthly_figures(self, df: pd.DataFrame, months: Sequence[MonthRef]) -> List[MonthlyFigure]:
        """Figures for the given months, each with growth against the previous calendar month."""
        totals = self._month_totals(df)
        figures = []
        for month in months:
            amount = totals.get(month.key, 0.0)
            previous = totals.get(month.shift(-1).key, 0.0)
            figures.append(MonthlyFigure(
                label=month.label,
                year=month.year,
                month_index=month.month_index,
                amount=amount,
                growth_pct=growth_pct(amount, previous),
            ))
        return figures

    def _buckets(self, df: pd.DataFrame, column: str,
                 order: Optional[List[str]] = None) -> List[BucketFigure]:
        total = float(df["line_total"].sum())
        if order is not None:
            sums = df.groupby(column)["line_total"].sum().reindex(order, fill_value=0.0)
            pairs = [(str(name), float(amount)) for name, amount in sums.items()]
        else:
            pairs = self._ranked(df, column)
        return [
            BucketFigure(bucket=name, amount=amount, pct_of_total=_share(amount, total))
            for name, amount in pairs
        ]

    # Handlers

    def _scalar(self, title: str, selection: pd.DataFrame) -> AggregationResult:
        if selection.empty:
            return NoDataResult(title=title)
        amount = float(selection["line_total"].sum())
        row_count = len(selection)
        return ScalarResult(
            title=title,
            amount=amount,
            row_count=row_count,
            average_order_value=amount / row_count,
        )

    def _product_month_total(self, intent, df):
        title = f"Sales for {intent.product_focus} in {intent.time_window.label}"
        return self._scalar(title, self._select(df, intent))

    def _location_month_total(self, intent, df):
        title = f"Sales for the {intent.location_focus} location in {intent.time_window.label}"
        return self._scalar(title, self._select(df, intent))

    def _monthly_breakdown(self, intent, df):
        focus = intent.product_focus or intent.location_focus or "All products"
        scoped = self._select(df, intent, use_window=False)
        months = intent.time_window.months() if intent.time_window else self._covered_months(scoped)
        title = f"{focus} sales by month"
        if intent.time_window:
            title = f"{focus} sales for {intent.time_window.label}"

        window_rows = scoped[self._in_months(scoped, months)]
        if window_rows.empty:
            return NoDataResult(title=title)

        # Growth for a two-month comparison is measured between the two months
        figures = self._monthly_figures(scoped, months)
        if intent.time_window and intent.time_window.is_comparison and len(figures) == 2:
            figures[1].growth_pct = growth_pct(figures[1].amount, figures[0].amount)

        return MonthlyBreakdown(
            title=title,
            months=figures,
            total=float(window_rows["line_total"].sum()),
            top_products=self._top_entries(window_rows, self.report_top_products),
        )

    def _top_entries(self, df: pd.DataFrame, limit: int) -> List[RankedEntry]:
        total = float(df["line_total"].sum())
        return [
            RankedEntry(entity=name, amount=amount, share_pct=_share(amount, total))
            for name, amount in self._ranked(df, "product_name")[:limit]
        ]

    def _top_products(self, intent, df):
        limit = intent.limit_count or DEFAULT_TOP_COUNT
        title = f"Top {limit} performing products in {intent.time_window.label}"
        selection = self._select(df, intent)
        if selection.empty:
            return NoDataResult(title=title)

        ranked = self._ranked(selection, "product_name")
        return RankedResult(
            title=title,
            entries=self._top_entries(selection, limit),
            total=float(selection["line_total"].sum()),
            limit=limit,
            candidate_count=len(ranked),
        )

    def _location_ranking(self, intent, df):
        title = f"{intent.product_focus} sales by location in {intent.time_window.label}"
        selection = self._select(df, intent)
        if selection.empty:
            return NoDataResult(title=title)

        ranked = self._ranked(selection, "store_location")
        limit = intent.limit_count or len(ranked)
        total = float(selection["line_total"].sum())
        return RankedResult(
            title=title,
            entries=[
                RankedEntry(entity=name, amount=amount, share_pct=_share(amount, total))
                for name, amount in ranked[:limit]
            ],
            total=total,
            limit=limit,
            candidate_count=len(ranked),
        )

    def _revenue_report(self, intent, df):
        scoped = self._select(df, intent, use_window=False)
        if intent.time_window is not None:
            months = intent.time_window.months()
            title = f"Revenue report for {intent.time_window.label}"
        else:
            months = self._covered_months(scoped)
            title = "Monthly revenue report"

        window_rows = scoped[self._in_months(scoped, months)]
        if window_rows.empty:
            return NoDataResult(title=title)

        return MonthlyBreakdown(
            title=title,
            months=self._monthly_figures(scoped, months),
            total=float(window_rows["line_total"].sum()),
            top_products=self._top_entries(window_rows, self.report_top_products),
        )

    def _low_performers(self, intent, df):
        selection = self._select(df, intent)
        ranked = self._ranked(selection, "product_name", ascending=True)
        if not ranked:
            return NoDataResult(title="Lowest performing products")

        if intent.limit_count and intent.share_percent is None:
            count = min(intent.limit_count, len(ranked))
            title = f"Bottom {count} products by revenue"
        else:
            percent = intent.share_percent or DEFAULT_LOW_PERFORMER_PERCENT
            count = max(1, math.ceil(len(ranked) * percent / 100))
            title = f"Bottom {percent:g}% of products by revenue"

        total = float(selection["line_total"].sum())
        bottom = ranked[:count]
        return RankedResult(
            title=title,
            entries=[
                RankedEntry(entity=name, amount=amount, share_pct=_share(amount, total))
                for name, amount in bottom
            ],
            total=total,
            limit=count,
            combined_share_pct=_share(sum(amount for _, amount in bottom), total),
            candidate_count=len(ranked),
        )

    def _store_order_value(self, intent, df):
        title = "Stores by average order value"
        if intent.time_window is not None:
            title = f"{title} in {intent.time_window.label}"
        selection = self._select(df, intent)
        selection = selection[selection["store_location"] != ""]
        if selection.empty:
            return NoDataResult(title=title)

        # Blank transaction ids cannot be joined, so each such line is its own order
        line_keys = pd.Series([f"__line_{i}" for i in selection.index], index=selection.index)
        order_key = selection["transaction_id"].where(selection["transaction_id"] != "", line_keys)
        orders = selection.assign(order_key=order_key).groupby(
            ["store_location", "order_key"]
        ).agg(order_total=("line_total", "sum"), items=("quantity", "sum"))

        stores = orders.groupby(level="store_location").agg(
            revenue=("order_total", "sum"),
            order_count=("order_total", "size"),
            average_order_value=("order_total", "mean"),
            items_per_order=("items", "mean"),
        ).reset_index()
        line_counts = selection.groupby("store_location")["line_total"].size()

        stores = stores.sort_values(
            ["average_order_value", "store_location"], ascending=[False, True], kind="mergesort"
        )
        limit = intent.limit_count or len(stores)
        total = float(selection["line_total"].sum())

        entries = []
        for row in stores.head(limit).itertuples(index=False):
            revenue = float(row.revenue)
            entries.append(RankedEntry(
                entity=str(row.store_location),
                amount=float(row.average_order_value),
                share_pct=_share(revenue, total),
                details={
                    "revenue": revenue,
                    "order_count": int(row.order_count),
                    "items_per_order": float(row.items_per_order),
                    "line_average_order_value": revenue / int(line_counts[row.store_location]),
                },
            ))

        return RankedResult(
            title=title,
            entries=entries,
            total=total,
            limit=limit,
            candidate_count=len(stores),
        )

    def _general_profile(self, intent, df):
        if intent.product_focus:
            return self.product_profile(intent, df)
        if intent.location_focus:
            return self.location_profile(intent, df)
        return self.overview(intent, df)

    # Dimension profiles

    def _profile(self, title: str, selection: pd.DataFrame, scoped: pd.DataFrame,
                 dimensions: Sequence[str]) -> AggregationResult:
        if selection.empty:
            return NoDataResult(title=title)

        total = float(selection["line_total"].sum())
        timed = selection.dropna(subset=["hour"])
        promoted = selection.assign(
            promotion=selection["discount_code"].where(selection["discount_code"] != "", NO_PROMOTION)
        )

        builders = {
            "locations": lambda: self._buckets(selection, "store_location"),
            "products": lambda: self._buckets(selection, "product_name"),
            "time_of_day": lambda: self._buckets(
                timed.assign(time_of_day=timed["hour"].map(lambda h: time_of_day(int(h)))),
                "time_of_day", order=TIME_OF_DAY_BUCKETS,
            ),
            "day_of_week": lambda: self._buckets(timed, "weekday", order=WEEKDAYS),
            "promotions": lambda: self._buckets(promoted, "promotion"),
        }

        return DimensionBreakdown(
            title=title,
            total=total,
            row_count=len(selection),
            average_order_value=total / len(selection),
            dimensions={name: builders[name]() for name in dimensions},
            monthly=self._monthly_figures(scoped, self._covered_months(selection)),
        )

    def product_profile(self, intent: Intent, df: pd.DataFrame) -> AggregationResult:
        """Performance profile of one product: where, when and with which promotions it sells."""
        scoped = df[df["product_name"] == intent.product_focus]
        selection = self._select(df, intent)
        return self._profile(
            f"Performance profile for {intent.product_focus}", selection, scoped,
            ["locations", "time_of_day", "day_of_week", "promotions"],
        )

    def location_profile(self, intent: Intent, df: pd.DataFrame) -> AggregationResult:
        """Performance profile of one store location."""
        scoped = df[df["store_location"] == intent.location_focus]
        selection = self._select(df, intent)
        return self._profile(
            f"Performance profile for the {intent.location_focus} location", selection, scoped,
            ["products", "time_of_day", "day_of_week", "promotions"],
        )

    def overview(self, intent: Intent, df: pd.DataFrame) -> AggregationResult:
        """Business-wide overview across products, locations and time."""
        selection = self._select(df, intent)
        return self._profile(
            "Business overview", selection, df,
            ["products", "locations", "time_of_day", "day_of_week", "promotions"],
        )

    # Forecast

    def forecast_month(self, month: MonthRef, records: Sequence[TransactionRecord],
                       limit: int = REPORT_TOP_PRODUCTS) -> AggregationResult:
        """
        Project a month from the same month one year earlier.

        When that month has no sales the projection uses the whole history:
        products ranked by all-time revenue and the average monthly revenue
        over the covered months.

        Args:
            month: Month to project
            records: Full record set
            limit: Number of products listed

        Returns:
            ForecastResult, or NoDataResult when there are no records
        """
        title = f"Projected top products for {month.label}"
        df = records_to_frame(records)
        if df.empty:
            return NoDataResult(title=title)

        basis = month.shift(-12)
        selection = df[self._in_month(df, basis)]

        if not selection.empty:
            basis_label = basis.label
            projected_total = float(selection["line_total"].sum())
        else:
            basis_label = None
            selection = df
            covered = self._covered_months(df)
            timed_total = float(df.dropna(subset=["year"])["line_total"].sum())
            projected_total = timed_total / len(covered) if covered else 0.0

        logger.info(
            f"Forecast for {month.label} based on {basis_label or 'overall history'}"
        )
        return ForecastResult(
            title=title,
            month=month,
            basis_label=basis_label,
            entries=self._top_entries(selection, limit),
            projected_total=projected_total,
        )
