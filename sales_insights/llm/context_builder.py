"""
Factual context assembly for narrative generation.

The context bundle is plain text: a metadata summary, excerpts of the
aggregation result and the top recommendations. It is the only source of
figures the model is allowed to use.
"""

import logging
from typing import List, Optional, Sequence

from sales_insights.core.models import (
    AggregationResult,
    DatasetMetadata,
    DimensionBreakdown,
    MonthlyBreakdown,
    MonthlyFigure,
    RankedResult,
    Recommendation,
    ScalarResult,
)
from sales_insights.utils.formatters import format_currency, format_percent

logger = logging.getLogger(__name__)

MAX_LISTED_PRODUCTS = 25


class ContextBuilder:
    """Builds the context bundle sent with narrative prompts."""

    def __init__(self, max_recommendations: int = 3, max_buckets: int = 10):
        """
        Initialize ContextBuilder.

        Args:
            max_recommendations: Recommendations included in the bundle
            max_buckets: Buckets listed per dimension
        """
        self.max_recommendations = max_recommendations
        self.max_buckets = max_buckets

    def build(self, metadata: DatasetMetadata, result: Optional[AggregationResult],
              recommendations: Optional[Sequence[Recommendation]] = None) -> str:
        """
        Build the context bundle.

        Args:
            metadata: Dataset metadata
            result: Aggregation result for the question
            recommendations: Ranked recommendations

        Returns:
            Context text
        """
        sections = [self.metadata_section(metadata)]
        if result is not None:
            sections.append(self.result_section(result))
        if recommendations:
            sections.append(self.recommendation_section(recommendations))

        context = "\n\n".join(section for section in sections if section)
        logger.info(f"Built context bundle with {len(sections)} sections ({len(context)} chars)")
        return context

    @staticmethod
    def metadata_section(metadata: DatasetMetadata) -> str:
        lines = ["DATASET:"]
        products = metadata.products
        listed = ", ".join(products[:MAX_LISTED_PRODUCTS])
        if len(products) > MAX_LISTED_PRODUCTS:
            listed += f", and {len(products) - MAX_LISTED_PRODUCTS} more"
        lines.append(f"- Products ({len(products)}): {listed or 'none'}")
        lines.append(f"- Locations ({len(metadata.locations)}): {', '.join(metadata.locations) or 'none'}")
        if metadata.time_range:
            lines.append(f"- Date range: {metadata.time_range[0]} to {metadata.time_range[-1]}")
        lines.append(f"- Transactions: {metadata.row_count}")
        return "\n".join(lines)

    def result_section(self, result: AggregationResult) -> str:
        lines = [f"ANALYSIS: {result.title}"]

        if isinstance(result, ScalarResult):
            lines.append(f"- Total: {format_currency(result.amount)} from {result.row_count} line items")
            lines.append(f"- Average order value: {format_currency(result.average_order_value)}")
        elif isinstance(result, RankedResult):
            for position, entry in enumerate(result.entries, start=1):
                lines.append(
                    f"{position}. {entry.entity}: {format_currency(entry.amount)} "
                    f"({format_percent(entry.share_pct)})"
                )
            if result.combined_share_pct is not None:
                lines.append(f"- Combined share: {format_percent(result.combined_share_pct)}")
        elif isinstance(result, MonthlyBreakdown):
            lines.extend(self._monthly_lines(result.months))
            lines.append(f"- Total: {format_currency(result.total)}")
            if result.top_products:
                lines.append("- Top products:")
                for entry in result.top_products:
                    lines.append(
                        f"  * {entry.entity}: {format_currency(entry.amount)} "
                        f"({format_percent(entry.share_pct)})"
                    )
        elif isinstance(result, DimensionBreakdown):
            lines.append(f"- Total sales: {format_currency(result.total)}")
            lines.append(f"- Line items: {result.row_count}")
            lines.append(f"- Average order value: {format_currency(result.average_order_value)}")
            for name, buckets in result.dimensions.items():
                lines.append(f"- {name.replace('_', ' ').title()}:")
                for bucket in buckets[:self.max_buckets]:
                    lines.append(
                        f"  * {bucket.bucket}: {format_currency(bucket.amount)} "
                        f"({format_percent(bucket.pct_of_total)})"
                    )
            if result.monthly:
                lines.append("- Monthly trend:")
                lines.extend("  " + line for line in self._monthly_lines(result.monthly))

        return "\n".join(lines)

    @staticmethod
    def _monthly_lines(months: List[MonthlyFigure]) -> List[str]:
        return [
            f"- {figure.label}: {format_currency(figure.amount)} "
            f"(growth {figure.growth_pct:+.1f}% vs previous month)"
            for figure in months
        ]

    def recommendation_section(self, recommendations: Sequence[Recommendation]) -> str:
        lines = ["RECOMMENDATIONS:"]
        for rec in list(recommendations)[:self.max_recommendations]:
            line = f"- [{rec.type.value}] {rec.action.value} {rec.target}: {rec.impact}"
            if rec.note:
                line += f". Note: {rec.note}"
            lines.append(line)
        return "\n".join(lines)
