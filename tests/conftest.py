"""Shared fixtures for the test suite."""

from datetime import datetime

import pytest

from sales_insights.core.models import TransactionRecord
from sales_insights.data.records import COLUMNS


def build_record(product="Cold Brew", location="Downtown", when=datetime(2024, 12, 5, 10, 0),
                 total=10.0, transaction_id="T1", quantity=1, discount=None,
                 unit_price=None, customer_id="C1"):
    """TransactionRecord with sensible defaults."""
    return TransactionRecord(
        transaction_id=transaction_id,
        purchase_timestamp=when,
        raw_timestamp=when.isoformat() if when else "not a date",
        customer_id=customer_id,
        store_location=location,
        product_name=product,
        unit_price=unit_price if unit_price is not None else total,
        quantity=quantity,
        discount_code=discount,
        line_total=total,
    )


@pytest.fixture
def make_record():
    """Factory fixture for TransactionRecord."""
    return build_record


@pytest.fixture
def sample_grid():
    """Raw grid as delivered by a record source: header row first."""
    return [
        list(COLUMNS),
        ["T1", "2024-11-03 09:15:00", "C1", "Downtown", "Cold Brew", "$4.50", "2", "", "$9.00"],
        ["T1", "2024-11-03 09:15:00", "C1", "Downtown", "Acai Bowl", "$11.00", "1", "", "$11.00"],
        ["T2", "2024-12-10 13:40:00", "C2", "Airport", "Cold Brew", "$4.50", "4", "SAVE10", "$18.00"],
        ["T3", "2024-12-21 18:05:00", "C3", "Downtown", "Protein Acai Bowl", "$13.00", "1", "", "$13.00"],
    ]


@pytest.fixture
def sample_records(make_record):
    """Two months of sales across two stores."""
    return [
        make_record("Cold Brew", "Downtown", datetime(2024, 11, 3, 9, 15), 9.0, "T1", 2),
        make_record("Acai Bowl", "Downtown", datetime(2024, 11, 3, 9, 15), 11.0, "T1", 1),
        make_record("Green Smoothie", "Airport", datetime(2024, 11, 18, 14, 0), 30.0, "T2", 3),
        make_record("Cold Brew", "Airport", datetime(2024, 12, 10, 13, 40), 18.0, "T3", 4, "SAVE10"),
        make_record("Protein Acai Bowl", "Downtown", datetime(2024, 12, 21, 18, 5), 13.0, "T4", 1),
        make_record("Acai Bowl", "Downtown", datetime(2024, 12, 22, 22, 30), 22.0, "T5", 2),
    ]
