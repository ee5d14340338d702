"""
Record parsing for the transaction grid.

Turns the raw 2-D grid delivered by a record source into immutable
TransactionRecord objects. Parsing never raises for a bad cell: numbers fall
back to 0, timestamps to None, and each problem is kept as a ParseWarning.
"""

import logging
import math
from datetime import datetime
from typing import Any, List, Optional, Sequence

from dateutil import parser as date_parser
from dateutil import tz

from sales_insights.core.exceptions import ParseWarning
from sales_insights.core.models import TransactionRecord

logger = logging.getLogger(__name__)

COLUMNS = [
    "Transaction_ID",
    "Purchase_Date",
    "Customer_ID",
    "Store_Location",
    "Product_Name",
    "Unit_Price",
    "Quantity",
    "Discount_Code_Used",
    "Line_Total",
]


def parse_currency(value: Any) -> Optional[float]:
    """
    Parse a currency cell such as "$1,234.50".

    Returns:
        The amount, or None when the cell is blank or not a finite number
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace("$", "").replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_quantity(value: Any) -> Optional[int]:
    """Parse a quantity cell; "2", "2.0" and 2 all give 2."""
    number = parse_currency(value)
    if number is None:
        return None
    return int(number)


def parse_timestamp(value: Any, business_tz: Optional[str] = None) -> Optional[datetime]:
    """
    Parse a purchase timestamp.

    Naive timestamps are taken as business-local wall-clock time. Aware
    timestamps are converted to business_tz (UTC when not given) and returned
    naive, so month and hour buckets are always read in one timezone.

    Returns:
        Naive datetime, or None when the value cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError, TypeError):
            return None

    if parsed.tzinfo is not None:
        target = tz.gettz(business_tz or "UTC") or tz.UTC
        parsed = parsed.astimezone(target).replace(tzinfo=None)
    return parsed


def _cell(row: Sequence[Any], index: int) -> str:
    if index >= len(row) or row[index] is None:
        return ""
    return str(row[index]).strip()


class RecordParser:
    """
    Parser from raw grid rows to TransactionRecord objects.

    Collects one ParseWarning per unparseable timestamp or number. Warnings
    are absorbed: they never abort parsing of the remaining rows.
    """

    def __init__(self, business_tz: Optional[str] = None):
        """
        Initialize RecordParser.

        Args:
            business_tz: Timezone aware timestamps are converted to
        """
        self.business_tz = business_tz
        self.warnings: List[ParseWarning] = []

    def parse_grid(self, grid: Sequence[Sequence[Any]]) -> List[TransactionRecord]:
        """
        Parse a grid whose first row is the header.

        Args:
            grid: Header row followed by data rows

        Returns:
            One record per non-empty data row, in source order
        """
        self.warnings = []
        records = []

        for row_number, row in enumerate(grid[1:], start=2):
            if not row or not any(_cell(row, i) for i in range(len(COLUMNS))):
                continue
            records.append(self.parse_row(row, row_number))

        if self.warnings:
            logger.warning(
                f"Absorbed {len(self.warnings)} unparseable values across "
                f"{len(records)} records"
            )
        logger.info(f"Parsed {len(records)} transaction records")
        return records

    def parse_row(self, row: Sequence[Any], row_number: int = 0) -> TransactionRecord:
        """Parse a single data row."""
        raw_timestamp = _cell(row, 1)
        timestamp = parse_timestamp(raw_timestamp, self.business_tz)
        if timestamp is None:
            self._warn(row_number, "Purchase_Date", raw_timestamp)

        discount = _cell(row, 7)

        return TransactionRecord(
            transaction_id=_cell(row, 0),
            purchase_timestamp=timestamp,
            raw_timestamp=raw_timestamp,
            customer_id=_cell(row, 2),
            store_location=_cell(row, 3),
            product_name=_cell(row, 4),
            unit_price=self._number(row, 5, row_number, parse_currency, 0.0),
            quantity=self._number(row, 6, row_number, parse_quantity, 0),
            discount_code=discount or None,
            line_total=self._number(row, 8, row_number, parse_currency, 0.0),
        )

    def _number(self, row, index, row_number, parse, default):
        raw = _cell(row, index)
        value = parse(raw)
        if value is None:
            self._warn(row_number, COLUMNS[index], raw)
            return default
        return value

    def _warn(self, row_number: int, column: str, raw_value: str) -> None:
        warning = ParseWarning(row_number, column, raw_value)
        self.warnings.append(warning)
        logger.debug(str(warning))


def records_from_grid(grid: Sequence[Sequence[Any]],
                      business_tz: Optional[str] = None) -> List[TransactionRecord]:
    """Parse a grid (header row first) into transaction records."""
    return RecordParser(business_tz=business_tz).parse_grid(grid)
