"""Tests for wallet_analytics.analysis.portfolio -- diagnostics, optimization result, suggestions."""

import numpy as np
import pytest

from wallet_analytics.analysis.portfolio import (
    AssetStats,
    OptimizerDiagnostic,
    PortfolioOptimization,
    PortfolioOptimizer,
    generate_suggestions,
    optimize_portfolio,
)
from wallet_analytics.config import EngineConfig

from conftest import make_tx


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _asset(type_id=1, sharpe=0.5, avg=1.0, vol=1.0):
    return AssetStats(
        type_id=type_id,
        type_name=f"Item {type_id}",
        avg_daily_pnl=avg,
        volatility=vol,
        sharpe_ratio=sharpe,
        current_weight=0.0,
        total_invested=0.0,
        total_pnl=0.0,
        trading_days=5,
    )


def _many_items(n_items, days=4):
    """*n_items* items, each bought and sold on *days* days; item k deploys (k+1)*100 per buy."""
    txns = []
    for k in range(n_items):
        type_id = 100 + k
        price = (k + 1) * 100.0
        for d in range(days):
            txns.append(make_tx(20 - d, type_id, True, price, 1, hour=9))
            txns.append(make_tx(20 - d, type_id, False, price * (1.0 + 0.01 * ((d + k) % 3)), 1, hour=15))
    return txns


# ---------------------------------------------------------------------------
# Tests for diagnostics
# ---------------------------------------------------------------------------

class TestDiagnostics:

    def test_empty_transactions(self, now):
        result = PortfolioOptimizer().optimize([], lookback_days=30, now=now)

        assert isinstance(result, OptimizerDiagnostic)
        assert result.min_days_required == 3
        assert result.min_items_required == 2
        assert result.total_transactions == 0
        assert result.within_lookback == 0
        assert result.unique_days == 0
        assert result.unique_items == 0
        assert result.qualified_items == 0
        assert result.top_items == ()

    def test_nothing_in_window(self, now):
        txns = [make_tx(100, 34, True, 10, 1), make_tx(90, 34, False, 12, 1)]
        result = PortfolioOptimizer().optimize(txns, lookback_days=30, now=now)

        assert isinstance(result, OptimizerDiagnostic)
        assert result.total_transactions == 2
        assert result.within_lookback == 0
        assert "30 days" in result.reason

    def test_single_qualified_item(self, now):
        txns = [make_tx(d, 34, d % 2 == 0, 10, 1) for d in range(1, 6)]
        txns.append(make_tx(2, 35, True, 500, 1))
        result = PortfolioOptimizer().optimize(txns, lookback_days=30, now=now)

        assert isinstance(result, OptimizerDiagnostic)
        assert result.total_transactions == 6
        assert result.within_lookback == 6
        assert result.unique_days == 5
        assert result.unique_items == 2
        assert result.qualified_items == 1
        assert [i.type_id for i in result.top_items] == [34, 35]
        assert result.top_items[0].trading_days == 5
        assert result.top_items[0].transactions == 5
        assert "1 of 2 items" in result.reason
        assert "at least 3 distinct days" in result.reason
        assert "1 more needed" in result.reason

    def test_top_items_capped(self, now):
        txns = [make_tx(1, 100 + k, True, 10, 1) for k in range(15)]
        result = PortfolioOptimizer().optimize(txns, lookback_days=30, now=now)
        assert len(result.top_items) == 10

    def test_to_dict(self, now):
        d = PortfolioOptimizer().optimize([], now=now).to_dict()
        assert d["min_days_required"] == 3
        assert len(d["top_items"]) == 0
        assert d["reason"] == "no transactions supplied"


# ---------------------------------------------------------------------------
# Tests for a successful optimization
# ---------------------------------------------------------------------------

class TestOptimization:

    def test_two_items(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)

        assert isinstance(result, PortfolioOptimization)
        assert len(result.assets) == 2
        assert sum(result.current_weights) == pytest.approx(1.0)
        # ranked by capital deployed: 300 vs 100
        assert [a.type_id for a in result.assets] == [34, 35]
        assert result.current_weights == pytest.approx((0.75, 0.25))
        assert result.hhi == pytest.approx(0.75 ** 2 + 0.25 ** 2)

    def test_weights_on_simplex(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        for weights in (result.optimal_weights, result.min_var_weights):
            assert all(w >= 0 for w in weights)
            assert sum(weights) == pytest.approx(1.0, abs=1e-9)

    def test_asset_stats(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        first = result.assets[0]

        # daily cash flows over the 4 shared days: -100, +10, +10, +110
        assert first.total_invested == pytest.approx(300.0)
        assert first.total_pnl == pytest.approx(30.0)
        assert first.avg_daily_pnl == pytest.approx(7.5)
        assert first.volatility == pytest.approx(np.std([-100, 10, 10, 110], ddof=1))
        assert first.trading_days == 4
        assert first.current_weight == pytest.approx(0.75)

    def test_correlation_matrix(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        corr = np.array(result.correlation_matrix)
        assert corr.shape == (2, 2)
        np.testing.assert_allclose(np.diag(corr), 1.0)
        np.testing.assert_allclose(corr, corr.T)

    def test_sharpe_ordering(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        assert result.optimal_sharpe >= result.min_var_sharpe - 1e-12
        assert 0.0 <= result.shrinkage_intensity <= 1.0
        assert result.diversification_ratio >= 1.0 - 1e-9

    def test_frontier(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        rets = [p.ret for p in result.efficient_frontier]
        assert 1 <= len(rets) <= 30
        assert all(b > a for a, b in zip(rets, rets[1:]))

    def test_suggestions_cover_every_asset(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        assert {s.type_id for s in result.suggestions} == {34, 35}
        for s in result.suggestions:
            assert s.action in {"increase", "decrease", "hold"}
            assert s.delta_pct == pytest.approx(s.optimal_pct - s.current_pct)

    def test_asset_cap_keeps_largest(self, now):
        cfg = EngineConfig(max_optimizer_assets=3)
        result = PortfolioOptimizer(cfg).optimize(_many_items(5), lookback_days=30, now=now)
        assert [a.type_id for a in result.assets] == [104, 103, 102]

    def test_lookback_excludes_old_item(self, two_item_history, now):
        old_item = [make_tx(60 + d, 36, True, 10_000, 1) for d in range(3)]
        result = PortfolioOptimizer().optimize(two_item_history + old_item, lookback_days=30, now=now)
        assert [a.type_id for a in result.assets] == [34, 35]

    def test_order_of_input_is_irrelevant(self, two_item_history, now):
        forward = PortfolioOptimizer().optimize(two_item_history, lookback_days=30, now=now)
        backward = PortfolioOptimizer().optimize(list(reversed(two_item_history)), lookback_days=30, now=now)
        assert forward.to_dict() == backward.to_dict()

    def test_idempotent(self, two_item_history, now):
        a = optimize_portfolio(two_item_history, lookback_days=30, now=now)
        b = optimize_portfolio(two_item_history, lookback_days=30, now=now)
        assert a == b

    def test_default_lookback_is_risk_window(self, two_item_history, now):
        result = PortfolioOptimizer().optimize(two_item_history, now=now)
        assert isinstance(result, PortfolioOptimization)


# ---------------------------------------------------------------------------
# Tests for generate_suggestions
# ---------------------------------------------------------------------------

class TestSuggestions:

    def test_increase_reasons(self):
        out = generate_suggestions(
            [_asset(1, sharpe=2.0), _asset(2, sharpe=0.5)],
            [0.2, 0.2],
            [0.3, 0.3],
        )
        reasons = {s.type_id: (s.action, s.reason) for s in out}
        assert reasons[1] == ("increase", "high_sharpe")
        assert reasons[2] == ("increase", "diversification")

    def test_decrease_reasons(self):
        out = generate_suggestions(
            [
                _asset(1, sharpe=-0.5),
                _asset(2, sharpe=0.5, avg=0.05, vol=1.0),
                _asset(3, sharpe=2.0, avg=1.0, vol=1.0),
            ],
            [0.4, 0.4, 0.4],
            [0.1, 0.2, 0.3],
        )
        reasons = {s.type_id: s.reason for s in out}
        assert reasons == {1: "negative_returns", 2: "poor_risk_adjusted", 3: "overweight"}

    def test_small_moves_hold(self):
        out = generate_suggestions([_asset(1)], [0.50], [0.52])
        assert out[0].action == "hold"
        assert out[0].reason == ""

    def test_threshold_is_exclusive(self):
        out = generate_suggestions([_asset(1)], [0.50], [0.53])
        assert out[0].action == "hold"

    def test_sort_order(self):
        out = generate_suggestions(
            [_asset(1), _asset(2), _asset(3), _asset(4), _asset(5)],
            [0.30, 0.10, 0.30, 0.10, 0.20],
            [0.25, 0.30, 0.10, 0.15, 0.20],
        )
        assert [s.type_id for s in out] == [3, 1, 2, 4, 5]
        assert [s.action for s in out] == ["decrease", "decrease", "increase", "increase", "hold"]
