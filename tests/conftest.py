"""Shared pytest fixtures for the wallet-analytics test suite.

Provides a fixed clock and a transaction factory so every test is
reproducible and independent of the wall clock.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from wallet_analytics.models import Transaction


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# 1. Clock fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def now():
    """Fixed 'current time' passed to every windowed computation."""
    return NOW


# ---------------------------------------------------------------------------
# 2. Transaction factory
# ---------------------------------------------------------------------------

def make_tx(
    days_ago,
    type_id,
    is_buy,
    unit_price,
    quantity,
    hour=12,
    type_name=None,
    location_id=60003760,
    location_name="Jita IV - Moon 4",
):
    """Build a Transaction dated *days_ago* calendar days before NOW at *hour* UTC."""
    ts = (NOW - timedelta(days=days_ago)).replace(hour=hour)
    return Transaction(
        date=ts,
        type_id=type_id,
        type_name=type_name or f"Item {type_id}",
        is_buy=is_buy,
        unit_price=float(unit_price),
        quantity=quantity,
        location_id=location_id,
        location_name=location_name,
    )


@pytest.fixture
def tx():
    """The transaction factory as a fixture."""
    return make_tx


def round_trips(daily_pnls, type_id=34, start_days_ago=None, cost=1000.0):
    """One buy at 09:00 and one sell at 15:00 per day, realizing exactly *daily_pnls*.

    Day i of the series lands ``start_days_ago - i`` days before NOW.
    """
    start = len(daily_pnls) if start_days_ago is None else start_days_ago
    txns = []
    for i, pnl in enumerate(daily_pnls):
        days_ago = start - i
        txns.append(make_tx(days_ago, type_id, True, cost, 1, hour=9))
        txns.append(make_tx(days_ago, type_id, False, cost + pnl, 1, hour=15))
    return txns


# ---------------------------------------------------------------------------
# 3. Two-item trading history
# ---------------------------------------------------------------------------

@pytest.fixture
def two_item_history():
    """Two items traded on four distinct days; 300 ISK vs 100 ISK deployed.

    Item 34 buys 1@100 on three days and sells 1@110 on three days; item 35
    alternates buys at 50 and sells at 60.
    """
    return [
        make_tx(10, 34, True, 100, 1, hour=9),
        make_tx(9, 34, True, 100, 1, hour=9),
        make_tx(9, 34, False, 110, 1, hour=15),
        make_tx(8, 34, True, 100, 1, hour=9),
        make_tx(8, 34, False, 110, 1, hour=15),
        make_tx(7, 34, False, 110, 1, hour=15),
        make_tx(10, 35, True, 50, 1, hour=9),
        make_tx(9, 35, False, 60, 1, hour=15),
        make_tx(8, 35, True, 50, 1, hour=9),
        make_tx(7, 35, False, 60, 1, hour=15),
    ]


# ---------------------------------------------------------------------------
# 4. Random return matrix
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_returns_matrix():
    """Assets x days matrix of daily P&L, seeded at 42."""
    np.random.seed(42)
    n_assets, n_days = 4, 60
    means = np.array([5.0, 2.0, -1.0, 3.0])
    stds = np.array([20.0, 10.0, 15.0, 30.0])
    return means[:, None] + stds[:, None] * np.random.randn(n_assets, n_days)
