"""Metadata indexer: known products, locations and covered months of a record set."""

import logging
from typing import Iterable

from sales_insights.core.models import DatasetMetadata, TransactionRecord, month_label

logger = logging.getLogger(__name__)


def build_metadata(records: Iterable[TransactionRecord]) -> DatasetMetadata:
    """
    Index a record set in a single pass.

    Blank product and location values are dropped. Records without a valid
    timestamp still count as rows but add nothing to the month coverage.

    Args:
        records: Parsed transaction records

    Returns:
        DatasetMetadata; empty when there are no records
    """
    products = set()
    locations = set()
    month_keys = set()
    row_count = 0

    for record in records:
        row_count += 1
        if record.product_name:
            products.add(record.product_name)
        if record.store_location:
            locations.add(record.store_location)
        if record.month_key is not None:
            month_keys.add(record.month_key)

    ordered = sorted(month_keys)
    metadata = DatasetMetadata(
        products=sorted(products),
        locations=sorted(locations),
        months=[f"{year}-{month + 1:02d}" for year, month in ordered],
        time_range=[month_label(year, month) for year, month in ordered],
        row_count=row_count,
    )

    logger.info(
        f"Indexed {row_count} records: {len(metadata.products)} products, "
        f"{len(metadata.locations)} locations, {len(metadata.months)} months"
    )
    return metadata
