"""Fixed answer templates for results that need no narrative."""

import logging

from sales_insights.core.models import (
    AggregationResult, ForecastResult, RankedResult, ScalarResult
)

logger = logging.getLogger(__name__)


def format_currency(amount: float) -> str:
    """Format money as $1,234.56 (negative values as -$1,234.56)."""
    if amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_scalar(result: ScalarResult) -> str:
    return f"{result.title} were {format_currency(result.amount)}."


def format_ranked(result: RankedResult) -> str:
    """
    Numbered list under the result title.

    Store order-value rankings also show order count and items per order;
    low-performer lists end with the combined share of revenue.
    """
    lines = [f"{result.title}:", ""]

    for position, entry in enumerate(result.entries, start=1):
        if "order_count" in entry.details:
            lines.append(
                f"{position}. {entry.entity}: {format_currency(entry.amount)} average order value "
                f"across {entry.details['order_count']} orders "
                f"({entry.details['items_per_order']:.1f} items per order)"
            )
        else:
            lines.append(
                f"{position}. {entry.entity}: {format_currency(entry.amount)} "
                f"({format_percent(entry.share_pct)} of total)"
            )

    if result.combined_share_pct is not None:
        lines.append("")
        lines.append(
            f"Together they account for {format_percent(result.combined_share_pct)} "
            f"of total revenue ({format_currency(result.total)})."
        )
    elif result.limit and len(result.entries) < result.limit:
        lines.append("")
        lines.append(f"Only {len(result.entries)} had sales in this period.")

    return "\n".join(lines)


def format_forecast(result: ForecastResult) -> str:
    lines = [f"{result.title}:", ""]
    for position, entry in enumerate(result.entries, start=1):
        lines.append(
            f"{position}. {entry.entity}: {format_currency(entry.amount)} "
            f"({format_percent(entry.share_pct)} of total)"
        )

    lines.append("")
    if result.basis_label:
        lines.append(
            f"Projected revenue: {format_currency(result.projected_total)}, "
            f"based on {result.basis_label}."
        )
    else:
        lines.append(
            f"Projected revenue: {format_currency(result.projected_total)}, based on the "
            f"average month across the whole history ({result.month.shift(-12).label} has no sales)."
        )
    return "\n".join(lines)


def format_result(result: AggregationResult) -> str:
    """
    Render a scalar, ranked or forecast result as the final answer.

    Raises:
        TypeError: For result types that go through narrative generation
    """
    if isinstance(result, ScalarResult):
        return format_scalar(result)
    if isinstance(result, RankedResult):
        return format_ranked(result)
    if isinstance(result, ForecastResult):
        return format_forecast(result)
    raise TypeError(f"No fixed template for {type(result).__name__}")
