"""
Intent Resolver for natural language questions.

This module turns a question (plus trailing conversation turns) into a
structured Intent. Entities, months and counts are extracted once into
QuestionFeatures; an ordered list of matcher objects then gets a chance to
claim the question, and the first one that returns an Intent wins.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from sales_insights.core.models import (
    AggregationKind, DatasetMetadata, Intent, MonthRef, MONTH_NAMES, TimeWindow
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 3

MONTH_ALIASES = {
    "jan": "january", "feb": "february", "mar": "march", "apr": "april",
    "jun": "june", "jul": "july", "aug": "august", "sep": "september",
    "sept": "september", "oct": "october", "nov": "november", "dec": "december",
}

MONTH_INDEX = {name.lower(): index for index, name in enumerate(MONTH_NAMES)}

MONTH_YEAR_PATTERN = re.compile(
    r"\b(january|jan|february|feb|march|mar|april|apr|may|june|jun|july|jul|"
    r"august|aug|september|sept|sep|october|oct|november|nov|december|dec)"
    r"\.?,?\s+(\d{4})\b"
)

# "may" is left out: without a year it is far more often a verb
BARE_MONTH_PATTERN = re.compile(
    r"\b(january|february|march|april|june|july|august|september|october|november|december)\b"
)

QUARTER_PATTERN = re.compile(
    r"\b(?:q([1-4])|(first|second|third|fourth|1st|2nd|3rd|4th)\s+quarter)"
    r"(?:\s*,?\s*(?:of\s+)?(\d{4}))?\b"
)

QUARTER_ORDINALS = {
    "first": 1, "1st": 1, "second": 2, "2nd": 2,
    "third": 3, "3rd": 3, "fourth": 4, "4th": 4,
}

COUNT_PATTERN = re.compile(
    r"\b(?:top|bottom|best|worst)\s+(\d+)\b|\b(\d+)\s+(?:top|bottom|best|worst)\b"
)
PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:%|percent\b)")
WORD_PATTERN = re.compile(r"[\w&'-]+")

FOLLOW_UP_PATTERN = re.compile(
    r"\b(what about|how about|and for|same month|that month|same period|then)\b"
)

ADVICE_KEYWORDS = {
    "improve", "increase", "boost", "grow", "sales", "revenue", "performance",
    "trend", "strategy", "recommendation", "advice",
}

LOCATION_WORDS = re.compile(r"\b(location|locations|store|stores|branch|branches|shop|shops)\b")
# "which store", "best location", "store sold the most"; a bare "what" is not enough
LOCATION_RANKING_PHRASES = re.compile(
    r"\b(?:which|what|best|top|highest)\s+(?:location|store|branch|shop)s?\b"
    r"|\b(?:location|store|branch|shop)s?\s+(?:sold|sells|had|has|made)\s+the\s+most\b"
)
TOP_WORDS = re.compile(r"\b(top|best|highest)\b")
PRODUCTS_WORD = re.compile(r"\bproducts\b")
REVENUE_WORDS = re.compile(r"\b(revenue|sales|earnings|income)\b")
PERIOD_WORDS = re.compile(r"\b(quarter|quarterly)\b")
MONTHLY_WORDS = re.compile(r"\b(month|monthly|months)\b")
LOW_PERFORMER_WORDS = re.compile(r"\b(cut|eliminate|worst|bottom|lowest)\b")
PRODUCT_WORDS = re.compile(r"\b(products?|items?|menu)\b")
ORDER_VALUE_WORDS = re.compile(r"\baov\b|\baverage order value\b|\baverage order\b")
HIGHEST_WORDS = re.compile(r"\b(highest|best|top|most)\b")


def normalize(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(text.lower().split())


def match_entity(text: str, candidates: Sequence[str]) -> Optional[str]:
    """
    Find the known entity named in a normalized question.

    Substring containment first, longest name winning (so "Protein Acai Bowl"
    beats "Acai Bowl"). Without a substring hit, a candidate matches when each
    of its words appears as a whole word in the question.

    Args:
        text: Normalized question
        candidates: Known product or location names

    Returns:
        The matched name as spelled in the data, or None
    """
    matches = [c for c in candidates if c and c.lower() in text]

    if not matches:
        words = set(WORD_PATTERN.findall(text))
        for candidate in candidates:
            parts = WORD_PATTERN.findall(candidate.lower())
            if parts and all(part in words for part in parts):
                matches.append(candidate)

    if not matches:
        return None
    return sorted(matches, key=lambda c: (-len(c), c))[0]


def extract_month_years(text: str) -> List[MonthRef]:
    """All "Month YYYY" mentions, abbreviations normalized, in order of appearance."""
    refs = []
    for month, year in MONTH_YEAR_PATTERN.findall(text):
        name = MONTH_ALIASES.get(month, month)
        refs.append(MonthRef(year=int(year), month_index=MONTH_INDEX[name]))
    return refs


def extract_count(text: str, default: Optional[int] = DEFAULT_LIMIT) -> Optional[int]:
    """Integer adjacent to top/bottom/best/worst, e.g. "top 5" or "5 worst"."""
    match = COUNT_PATTERN.search(text)
    if match:
        value = int(match.group(1) or match.group(2))
        if value > 0:
            return value
    return default


def extract_percent(text: str) -> Optional[float]:
    match = PERCENT_PATTERN.search(text)
    if match:
        return float(match.group(1))
    return None


def _turn_content(turn: Any) -> str:
    if isinstance(turn, dict):
        return str(turn.get("content", ""))
    return str(getattr(turn, "content", ""))


def _turn_role(turn: Any) -> str:
    if isinstance(turn, dict):
        return str(turn.get("role", ""))
    return str(getattr(turn, "role", ""))


@dataclass
class QuestionFeatures:
    """Everything the matchers look at, extracted once per question."""
    text: str
    product: Optional[str] = None
    location: Optional[str] = None
    months: List[MonthRef] = field(default_factory=list)
    carried_month: bool = False

    def has(self, pattern) -> bool:
        return bool(pattern.search(self.text))

    @property
    def has_month(self) -> bool:
        return bool(self.months)

    @property
    def month_window(self) -> Optional[TimeWindow]:
        if not self.months:
            return None
        if len(self.months) == 1 or self.months[0] == self.months[1]:
            return TimeWindow(start=self.months[0])
        return TimeWindow(start=self.months[0], end=self.months[1])

    @property
    def asks_for_location_ranking(self) -> bool:
        return self.has(LOCATION_RANKING_PHRASES)


class IntentMatcher(ABC):
    """One rule of the resolution chain."""

    name = "matcher"
    confidence = 1.0

    @abstractmethod
    def try_resolve(self, features: QuestionFeatures,
                    metadata: DatasetMetadata) -> Optional[Intent]:
        """Return an Intent when this rule claims the question, else None."""
        pass

    def _intent(self, kind: AggregationKind, **kwargs) -> Intent:
        return Intent(
            aggregation_kind=kind,
            confidence=self.confidence,
            matched_by=self.name,
            **kwargs
        )


class ProductMonthMatcher(IntentMatcher):
    """Product + month, no location: total (or per-month breakdown for two months)."""

    name = "product_month"
    confidence = 0.95

    def try_resolve(self, features, metadata):
        if not (features.product and features.has_month) or features.location:
            return None
        # "Which store sold the most X in May 2024?" is a location ranking
        if features.asks_for_location_ranking:
            return None
        window = features.month_window
        kind = (AggregationKind.MONTHLY_BREAKDOWN if window.is_comparison
                else AggregationKind.PRODUCT_MONTH_TOTAL)
        return self._intent(kind, product_focus=features.product, time_window=window)


class LocationMonthMatcher(IntentMatcher):
    """Location + month, no product: total (or per-month breakdown for two months)."""

    name = "location_month"
    confidence = 0.95

    def try_resolve(self, features, metadata):
        if not (features.location and features.has_month) or features.product:
            return None
        window = features.month_window
        kind = (AggregationKind.MONTHLY_BREAKDOWN if window.is_comparison
                else AggregationKind.LOCATION_MONTH_TOTAL)
        return self._intent(kind, location_focus=features.location, time_window=window)


class TopProductsMatcher(IntentMatcher):
    """"Top N products in <month>" with no specific product named."""

    name = "top_products"
    confidence = 0.9

    def try_resolve(self, features, metadata):
        if features.product or not features.has_month:
            return None
        if not (features.has(TOP_WORDS) and features.has(PRODUCTS_WORD)):
            return None
        return self._intent(
            AggregationKind.TOP_PRODUCTS,
            location_focus=features.location,
            time_window=TimeWindow(start=features.months[0]),
            limit_count=extract_count(features.text),
        )


class LocationRankingMatcher(IntentMatcher):
    """Which location sold the most of a product in a given month."""

    name = "location_ranking"
    confidence = 0.9

    def try_resolve(self, features, metadata):
        if not (features.product and features.has_month):
            return None
        if not features.asks_for_location_ranking:
            return None
        return self._intent(
            AggregationKind.LOCATION_RANKING,
            product_focus=features.product,
            time_window=TimeWindow(start=features.months[0]),
            limit_count=extract_count(features.text, default=None),
        )


class RevenueReportMatcher(IntentMatcher):
    """Revenue/sales over a month or quarter."""

    name = "revenue_report"
    confidence = 0.8

    def try_resolve(self, features, metadata):
        if not features.has(REVENUE_WORDS):
            return None

        if features.has_month:
            window = features.month_window
        else:
            window = self._quarter_window(features.text, metadata)
            if window is None:
                window = self._bare_month_window(features.text, metadata)
            if window is None and features.has(PERIOD_WORDS):
                window = self._latest_quarter(metadata)
            if window is None and not (features.has(PERIOD_WORDS) or features.has(MONTHLY_WORDS)):
                return None

        return self._intent(
            AggregationKind.REVENUE_REPORT,
            product_focus=features.product,
            location_focus=features.location,
            time_window=window,
        )

    @staticmethod
    def _latest_year(metadata: DatasetMetadata, months: Sequence[int]) -> Optional[int]:
        years = [ref.year for ref in metadata.month_refs if ref.month_index in months]
        if years:
            return max(years)
        refs = metadata.month_refs
        return refs[-1].year if refs else None

    def _quarter_window(self, text, metadata) -> Optional[TimeWindow]:
        match = QUARTER_PATTERN.search(text)
        if not match:
            return None
        quarter = int(match.group(1)) if match.group(1) else QUARTER_ORDINALS[match.group(2)]
        first_month = (quarter - 1) * 3
        year = int(match.group(3)) if match.group(3) else self._latest_year(
            metadata, range(first_month, first_month + 3)
        )
        if year is None:
            return None
        return TimeWindow(
            start=MonthRef(year=year, month_index=first_month),
            end=MonthRef(year=year, month_index=first_month + 2),
            contiguous=True,
        )

    def _bare_month_window(self, text, metadata) -> Optional[TimeWindow]:
        match = BARE_MONTH_PATTERN.search(text)
        if not match:
            return None
        month_index = MONTH_INDEX[match.group(1)]
        year = self._latest_year(metadata, [month_index])
        if year is None:
            return None
        return TimeWindow(start=MonthRef(year=year, month_index=month_index))

    @staticmethod
    def _latest_quarter(metadata) -> Optional[TimeWindow]:
        refs = metadata.month_refs
        if not refs:
            return None
        last = refs[-1]
        return TimeWindow(start=last.shift(-2), end=last, contiguous=True)


class LowPerformersMatcher(IntentMatcher):
    """Products to cut: the bottom share of products by revenue."""

    name = "low_performers"
    confidence = 0.85

    def try_resolve(self, features, metadata):
        if not (features.has(LOW_PERFORMER_WORDS) and features.has(PRODUCT_WORDS)):
            return None
        percent = extract_percent(features.text)
        count = None if percent is not None else extract_count(features.text, default=None)
        return self._intent(
            AggregationKind.LOW_PERFORMERS,
            location_focus=features.location,
            time_window=features.month_window,
            share_percent=percent,
            limit_count=count,
        )


class StoreOrderValueMatcher(IntentMatcher):
    """Stores ranked by order-level average order value."""

    name = "store_order_value"
    confidence = 0.85

    def try_resolve(self, features, metadata):
        if not (features.has(LOCATION_WORDS) and features.has(ORDER_VALUE_WORDS)
                and features.has(HIGHEST_WORDS)):
            return None
        return self._intent(
            AggregationKind.STORE_ORDER_VALUE,
            time_window=features.month_window,
            limit_count=extract_count(features.text, default=None),
        )


class GeneralAdviceMatcher(IntentMatcher):
    """Catch-all: business advice and anything no other rule claimed."""

    name = "general_advice"

    def try_resolve(self, features, metadata):
        words = set(WORD_PATTERN.findall(features.text))
        is_advice = bool(words & ADVICE_KEYWORDS)
        intent = self._intent(
            AggregationKind.GENERAL_ADVICE,
            product_focus=features.product,
            location_focus=features.location,
            time_window=features.month_window,
        )
        intent.confidence = 0.6 if is_advice else 0.3
        intent.matched_by = "business_advice" if is_advice else "fallback"
        return intent


DEFAULT_MATCHERS = (
    ProductMonthMatcher,
    LocationMonthMatcher,
    TopProductsMatcher,
    LocationRankingMatcher,
    RevenueReportMatcher,
    LowPerformersMatcher,
    StoreOrderValueMatcher,
    GeneralAdviceMatcher,
)


class IntentResolver:
    """
    Resolver that converts questions into Intents.

    Runs the matchers in fixed priority order; the first one to return an
    Intent wins. The last matcher always answers, so resolution never fails:
    anything ambiguous lands on the general/advice path.
    """

    def __init__(self, matchers: Optional[Sequence[IntentMatcher]] = None):
        """
        Initialize IntentResolver.

        Args:
            matchers: Matchers in priority order (defaults to the standard chain)
        """
        self.matchers = list(matchers) if matchers is not None else [
            matcher() for matcher in DEFAULT_MATCHERS
        ]
        logger.info(f"IntentResolver initialized with {len(self.matchers)} matchers")

    def extract_features(self, question: str, metadata: DatasetMetadata,
                         conversation: Optional[Sequence[Any]] = None) -> QuestionFeatures:
        """Extract entities and months from the question."""
        text = normalize(question)
        features = QuestionFeatures(
            text=text,
            product=match_entity(text, metadata.products),
            location=match_entity(text, metadata.locations),
            months=extract_month_years(text),
        )

        if not features.months and conversation and FOLLOW_UP_PATTERN.search(text):
            carried = self._month_from_history(conversation)
            if carried:
                logger.info(f"Carrying {carried.label} over from the conversation")
                features.months = [carried]
                features.carried_month = True

        return features

    @staticmethod
    def _month_from_history(conversation: Sequence[Any]) -> Optional[MonthRef]:
        for turn in reversed(list(conversation)):
            if _turn_role(turn) != "user":
                continue
            mentions = extract_month_years(normalize(_turn_content(turn)))
            if mentions:
                return mentions[-1]
        return None

    def resolve(self, question: str, metadata: DatasetMetadata,
                conversation: Optional[Sequence[Any]] = None) -> Intent:
        """
        Resolve a question into an Intent.

        Args:
            question: User's question
            metadata: Known products, locations and months
            conversation: Prior turns, oldest first

        Returns:
            Intent from the first matcher that fires
        """
        features = self.extract_features(question, metadata, conversation)

        for matcher in self.matchers:
            intent = matcher.try_resolve(features, metadata)
            if intent is not None:
                logger.info(
                    f"Resolved intent {intent.aggregation_kind.value} via {intent.matched_by} "
                    f"(product={intent.product_focus}, location={intent.location_focus}, "
                    f"window={intent.time_window.label if intent.time_window else None})"
                )
                return intent

        # Only reachable with a custom chain that has no catch-all
        return Intent(
            aggregation_kind=AggregationKind.GENERAL_ADVICE,
            product_focus=features.product,
            location_focus=features.location,
            time_window=features.month_window,
            confidence=0.3,
            matched_by="fallback",
        )
