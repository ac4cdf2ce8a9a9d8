"""Shared pytest fixtures"""

import os
from datetime import date, datetime
from pathlib import Path

import pytest

# Fixture-backed record source for every test run
os.environ.setdefault("FIXTURES_DIR", str(Path(__file__).parent / "fixtures"))

from sales_blitz.models.account import AccountProfile
from sales_blitz.models.blitz_config import BlitzConfig
from sales_blitz.models.transaction import TransactionRecord

# Reference clock for the fixture data set
RUN_TIME = datetime(2025, 12, 1, 9, 0, 0)


def _make_record(**overrides) -> TransactionRecord:
    values = {
        "organization_id": "org_test",
        "account_name": "Acme Bar",
        "product_name": "Hazy IPA",
        "order_date": date(2025, 1, 15),
        "quantity": 1.0,
        "quantity_unit": "cases",
    }
    values.update(overrides)
    return TransactionRecord(**values)


@pytest.fixture
def acme_profile():
    return AccountProfile(account_id="acc_001", account_name="Acme Bar", region="Southeast")


@pytest.fixture
def acme_records():
    """
    Acme Bar, Jan-Nov 2025: 2 cases/month for eight months, nothing in
    Sep/Oct, 0.1 cases in Nov. 40 distinct orders.
    """
    records = []
    n = 0
    for month in range(1, 9):
        for day in (3, 10, 17, 24):
            n += 1
            records.append(_make_record(order_id=f"SO-{n}", order_date=date(2025, month, day),
                                       quantity=0.5, revenue=12.0))
    for month in (9, 10):
        for day in (5, 19):
            n += 1
            records.append(_make_record(order_id=f"SO-{n}", order_date=date(2025, month, day),
                                       quantity=0, revenue=0.0))
    for day in (4, 11, 18, 21):
        n += 1
        records.append(_make_record(order_id=f"SO-{n}", order_date=date(2025, 11, day),
                                   quantity=0.025, revenue=0.6))
    return records


@pytest.fixture
def run_time():
    return RUN_TIME


@pytest.fixture
def config():
    return BlitzConfig(max_workers=4, data_source_retries=2, data_source_retry_delay=0)


@pytest.fixture
def make_record():
    """Factory for TransactionRecord with test defaults"""
    return _make_record
