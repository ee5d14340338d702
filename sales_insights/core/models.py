"""Data models for the Sales Insights Assistant.

This module defines the core data structures passed between the record
parser, the intent resolver, the aggregation and recommendation engines and
the narrative orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December"
]

NO_DATA_MESSAGE = "No data found for this selection."


def month_label(year: int, month_index: int) -> str:
    """Human-readable label for a zero-based month index, e.g. "December 2024"."""
    return f"{MONTH_NAMES[month_index]} {year}"


@dataclass
class Message:
    """
    Represents a single message in a conversation.

    Attributes:
        role: The role of the message sender ("user", "assistant", "system")
        content: The text content of the message
        timestamp: When the message was created
        metadata: Additional metadata about the message
    """
    role: str
    content: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionRecord:
    """
    One sold line item. An order may span several records sharing transaction_id.

    Attributes:
        transaction_id: Order identifier
        purchase_timestamp: Parsed purchase time, None when unparseable
        raw_timestamp: Timestamp text as delivered by the record source
        customer_id: Customer identifier
        store_location: Store the sale happened in
        product_name: Product sold
        unit_price: Price per unit (0 when invalid)
        quantity: Units sold (0 when invalid)
        discount_code: Discount code used, if any
        line_total: Line revenue (0 when invalid)
    """
    transaction_id: str
    purchase_timestamp: Optional[datetime]
    raw_timestamp: str
    customer_id: str
    store_location: str
    product_name: str
    unit_price: float
    quantity: int
    discount_code: Optional[str]
    line_total: float

    @property
    def month_key(self) -> Optional[Tuple[int, int]]:
        """(calendar year, zero-based month index), or None without a valid timestamp."""
        if self.purchase_timestamp is None:
            return None
        return (self.purchase_timestamp.year, self.purchase_timestamp.month - 1)


@dataclass
class DatasetMetadata:
    """
    Summary of the distinct entities and date coverage of a record set.

    Attributes:
        products: Distinct product names, sorted
        locations: Distinct store locations, sorted
        months: Covered months as ascending "YYYY-MM" keys
        time_range: "Month Year" label for each entry of months
        row_count: Number of records indexed
    """
    products: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    months: List[str] = field(default_factory=list)
    time_range: List[str] = field(default_factory=list)
    row_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    @property
    def month_refs(self) -> List["MonthRef"]:
        refs = []
        for key in self.months:
            year, month = key.split("-")
            refs.append(MonthRef(month_index=int(month) - 1, year=int(year)))
        return refs


@dataclass(frozen=True, order=True)
class MonthRef:
    """A calendar month: zero-based month index and year (orders chronologically)."""
    year: int
    month_index: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.year, self.month_index)

    @property
    def label(self) -> str:
        return month_label(self.year, self.month_index)

    def shift(self, months: int) -> "MonthRef":
        """Month `months` away from this one (negative goes back)."""
        total = self.year * 12 + self.month_index + months
        return MonthRef(month_index=total % 12, year=total // 12)


@dataclass(frozen=True)
class TimeWindow:
    """
    One month, two explicitly mentioned months, or a contiguous span.

    Attributes:
        start: First (or only) month
        end: Second month, for comparisons and spans
        contiguous: If True, every month from start to end is included
    """
    start: MonthRef
    end: Optional[MonthRef] = None
    contiguous: bool = False

    @property
    def is_comparison(self) -> bool:
        return self.end is not None and not self.contiguous

    def months(self) -> List[MonthRef]:
        """Months covered by the window, in chronological order."""
        if self.end is None:
            return [self.start]
        first, last = sorted([self.start, self.end])
        if not self.contiguous:
            return [first] if first == last else [first, last]
        months = []
        current = first
        while current <= last:
            months.append(current)
            current = current.shift(1)
        return months

    @property
    def label(self) -> str:
        months = self.months()
        if len(months) == 1:
            return months[0].label
        joiner = " to " if self.contiguous else " and "
        return f"{months[0].label}{joiner}{months[-1].label}"


class AggregationKind(str, Enum):
    """What a resolved intent asks the aggregation engine to compute."""
    PRODUCT_MONTH_TOTAL = "product_month_total"
    LOCATION_MONTH_TOTAL = "location_month_total"
    MONTHLY_BREAKDOWN = "monthly_breakdown"
    TOP_PRODUCTS = "top_products"
    LOCATION_RANKING = "location_ranking"
    REVENUE_REPORT = "revenue_report"
    LOW_PERFORMERS = "low_performers"
    STORE_ORDER_VALUE = "store_order_value"
    GENERAL_ADVICE = "general_advice"


@dataclass
class Intent:
    """
    Structured interpretation of a free-text question.

    Attributes:
        aggregation_kind: What to compute
        product_focus: Product named in the question
        location_focus: Store location named in the question
        time_window: Month(s) named in the question
        limit_count: Requested "top N"/"bottom N"
        share_percent: Requested percentage, e.g. "bottom 20%"
        confidence: How sure the resolver is (0.0 to 1.0)
        matched_by: Name of the matcher that produced this intent
    """
    aggregation_kind: AggregationKind
    product_focus: Optional[str] = None
    location_focus: Optional[str] = None
    time_window: Optional[TimeWindow] = None
    limit_count: Optional[int] = None
    share_percent: Optional[float] = None
    confidence: float = 1.0
    matched_by: str = ""


@dataclass
class AggregationResult:
    """Base class for everything the aggregation engine returns."""
    title: str


@dataclass
class NoDataResult(AggregationResult):
    """Sentinel for an empty selection. Passed to the user unchanged."""
    message: str = NO_DATA_MESSAGE


@dataclass
class ScalarResult(AggregationResult):
    """
    A single currency total.

    Attributes:
        amount: Summed line totals
        row_count: Number of matching line items
        average_order_value: amount / row_count (line-level average)
    """
    amount: float = 0.0
    row_count: int = 0
    average_order_value: float = 0.0


@dataclass
class RankedEntry:
    """One row of a ranked list."""
    entity: str
    amount: float
    share_pct: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RankedResult(AggregationResult):
    """
    Ranked (entity, amount) list bounded by a limit.

    Attributes:
        entries: Ranked entries, best first (or worst first for low performers)
        total: Total the shares are computed against
        limit: Requested size of the list
        combined_share_pct: Combined share of the listed entries, when relevant
        candidate_count: How many entities were ranked before limiting
    """
    entries: List[RankedEntry] = field(default_factory=list)
    total: float = 0.0
    limit: int = 0
    combined_share_pct: Optional[float] = None
    candidate_count: int = 0


@dataclass
class MonthlyFigure:
    """Revenue of one month with growth against the previous calendar month."""
    label: str
    year: int
    month_index: int
    amount: float
    growth_pct: float = 0.0


@dataclass
class MonthlyBreakdown(AggregationResult):
    """
    Chronological per-month breakdown with growth percentages.

    Attributes:
        months: One figure per month, oldest first
        total: Sum over the listed months
        top_products: Best-selling products within the months
    """
    months: List[MonthlyFigure] = field(default_factory=list)
    total: float = 0.0
    top_products: List[RankedEntry] = field(default_factory=list)


@dataclass
class BucketFigure:
    """Revenue of one bucket of a dimension with its share of the total."""
    bucket: str
    amount: float
    pct_of_total: float = 0.0


@dataclass
class DimensionBreakdown(AggregationResult):
    """
    Per-dimension bucket breakdown with percentage-of-total.

    Attributes:
        total: Total revenue of the selection
        row_count: Number of line items in the selection
        average_order_value: Line-level average order value
        dimensions: Dimension name -> buckets, largest first
        monthly: Monthly trend with growth for the selection
    """
    total: float = 0.0
    row_count: int = 0
    average_order_value: float = 0.0
    dimensions: Dict[str, List[BucketFigure]] = field(default_factory=dict)
    monthly: List[MonthlyFigure] = field(default_factory=list)


@dataclass
class ForecastResult(AggregationResult):
    """
    Projection of one month's revenue and top products.

    Attributes:
        month: Month being projected
        basis_label: Same month one year earlier, or None when the projection
                     falls back to the whole history
        entries: Projected top products, best first
        projected_total: Basis month revenue, or the average monthly revenue
                         over the whole history
    """
    month: Optional[MonthRef] = None
    basis_label: Optional[str] = None
    entries: List[RankedEntry] = field(default_factory=list)
    projected_total: float = 0.0


class RecommendationType(str, Enum):
    PRODUCT = "product"
    STORE = "store"
    DISCOUNT = "discount"


class RecommendationAction(str, Enum):
    REVERSE_DECLINE = "reverse_decline"
    MAINTAIN_GROWTH = "maintain_growth"
    MONITOR_PERFORMANCE = "monitor_performance"
    EXPAND_PROMOTION = "expand_promotion"


@dataclass
class Recommendation:
    """
    A ranked, trend-derived suggestion.

    Attributes:
        type: product, store or discount
        action: What to do about the target
        target: Product name, store location or discount code
        metric: Metric label the value refers to
        value: Formatted metric value
        impact: Narrative with percentage and absolute delta
        benchmark: Formatted comparison value, if any
        note: Informational seasonality note, if any
    """
    type: RecommendationType
    action: RecommendationAction
    target: str
    metric: str
    value: str
    impact: str
    benchmark: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "action": self.action.value,
            "target": self.target,
            "metric": self.metric,
            "value": self.value,
            "impact": self.impact,
        }
        if self.benchmark:
            data["benchmark"] = self.benchmark
        if self.note:
            data["note"] = self.note
        return data


@dataclass
class Response:
    """
    Represents the final response to a user question.

    Attributes:
        answer: Text shown to the user
        metadata: Additional metadata (intent, path taken, attempts, execution_time)
    """
    answer: str
    metadata: Dict[str, Any] = field(default_factory=dict)
