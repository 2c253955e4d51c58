"""Portfolio optimization over the items a trader actually trades.

Each item's daily net cash flow (sells minus buys) is treated as its return
series.  Items are ranked by capital deployed, the covariance is shrunk with
Ledoit-Wolf, and long-only minimum-variance / maximum-Sharpe allocations and
the efficient frontier are solved on the simplex.  The result is compared with
the current capital split to produce rebalancing suggestions.

When the history cannot support an optimization the optimizer returns an
``OptimizerDiagnostic`` instead of a result, so the caller can tell the user
which threshold was missed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Iterable, Union

import numpy as np
import pandas as pd

from wallet_analytics.analysis.covariance import correlation_from_covariance, ledoit_wolf_shrinkage
from wallet_analytics.analysis.optimization import (
    FrontierPoint,
    efficient_frontier,
    portfolio_sharpe,
    portfolio_variance,
    solve_max_sharpe,
    solve_min_variance,
)
from wallet_analytics.config import DEFAULT_CONFIG, EngineConfig
from wallet_analytics.models import Transaction, as_utc, utc_now
from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("portfolio")

# Weight change (percentage points) before a suggestion leaves "hold"
_REBALANCE_THRESHOLD_PCT = 3.0
_ACTION_ORDER = {"decrease": 0, "increase": 1, "hold": 2}

_FRAME_COLUMNS = ["type_id", "type_name", "day", "cash_flow", "bought"]


# ---------------------------------------------------------------------------
# Result records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetStats:
    type_id: int
    type_name: str
    avg_daily_pnl: float
    volatility: float
    sharpe_ratio: float
    current_weight: float
    total_invested: float
    total_pnl: float
    trading_days: int


@dataclass(frozen=True)
class AllocationSuggestion:
    type_id: int
    type_name: str
    action: str  # "increase", "decrease", "hold"
    current_pct: float
    optimal_pct: float
    delta_pct: float
    reason: str


@dataclass(frozen=True)
class PortfolioOptimization:
    assets: tuple[AssetStats, ...]
    correlation_matrix: tuple[tuple[float, ...], ...]
    current_weights: tuple[float, ...]
    optimal_weights: tuple[float, ...]
    min_var_weights: tuple[float, ...]
    efficient_frontier: tuple[FrontierPoint, ...]
    diversification_ratio: float
    current_sharpe: float
    optimal_sharpe: float
    min_var_sharpe: float
    hhi: float
    suggestions: tuple[AllocationSuggestion, ...]
    shrinkage_intensity: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DiagnosticItem:
    type_id: int
    type_name: str
    trading_days: int
    transactions: int


@dataclass(frozen=True)
class OptimizerDiagnostic:
    """Why an optimization could not run, with enough counts to act on it."""

    total_transactions: int = 0
    within_lookback: int = 0
    unique_days: int = 0
    unique_items: int = 0
    qualified_items: int = 0
    min_days_required: int = DEFAULT_CONFIG.min_optimizer_days
    min_items_required: int = DEFAULT_CONFIG.min_optimizer_items
    top_items: tuple[DiagnosticItem, ...] = ()
    reason: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


OptimizationOutcome = Union[PortfolioOptimization, OptimizerDiagnostic]


@dataclass(frozen=True)
class AssetCandidate:
    type_id: int
    type_name: str
    total_bought: float
    trading_days: int
    daily_returns: np.ndarray


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def generate_suggestions(
    assets: Iterable[AssetStats],
    current: Iterable[float],
    optimal: Iterable[float],
) -> list[AllocationSuggestion]:
    """Compare optimal against current weights, item by item.

    Decreases come first, then increases, then holds; within a group the
    largest move leads.
    """
    suggestions: list[AllocationSuggestion] = []
    for asset, cur_w, opt_w in zip(assets, current, optimal):
        cur_pct = float(cur_w) * 100.0
        opt_pct = float(opt_w) * 100.0
        delta = opt_pct - cur_pct

        action, reason = "hold", ""
        if delta > _REBALANCE_THRESHOLD_PCT:
            action = "increase"
            reason = "high_sharpe" if asset.sharpe_ratio > 1 else "diversification"
        elif delta < -_REBALANCE_THRESHOLD_PCT:
            action = "decrease"
            if asset.sharpe_ratio < 0:
                reason = "negative_returns"
            elif asset.volatility > 0 and asset.avg_daily_pnl / asset.volatility < 0.1:
                reason = "poor_risk_adjusted"
            else:
                reason = "overweight"

        suggestions.append(AllocationSuggestion(
            type_id=asset.type_id,
            type_name=asset.type_name,
            action=action,
            current_pct=cur_pct,
            optimal_pct=opt_pct,
            delta_pct=delta,
            reason=reason,
        ))

    suggestions.sort(key=lambda s: (_ACTION_ORDER[s.action], -abs(s.delta_pct)))
    return suggestions


# ---------------------------------------------------------------------------
# Optimizer
# ---------------------------------------------------------------------------


class PortfolioOptimizer:
    """Markowitz optimization of a trader's item portfolio from wallet history."""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    # ----- internal helpers ------------------------------------------------

    @staticmethod
    def _cash_flow_frame(transactions: list[Transaction], cutoff: datetime) -> pd.DataFrame:
        """One row per in-window transaction with its signed cash flow."""
        rows = [
            {
                "type_id": tx.type_id,
                "type_name": tx.type_name,
                "day": tx.day,
                "cash_flow": -tx.amount if tx.is_buy else tx.amount,
                "bought": tx.amount if tx.is_buy else 0.0,
            }
            for tx in transactions
            if tx.timestamp >= cutoff
        ]
        return pd.DataFrame(rows, columns=_FRAME_COLUMNS)

    @staticmethod
    def _item_summary(frame: pd.DataFrame) -> pd.DataFrame:
        return frame.groupby("type_id", sort=True).agg(
            type_name=("type_name", "first"),
            total_bought=("bought", "sum"),
            trading_days=("day", "nunique"),
            transactions=("day", "size"),
        )

    def _diagnose(
        self,
        total: int,
        frame: pd.DataFrame | None,
        items: pd.DataFrame | None,
        qualified: int,
        lookback_days: int,
    ) -> OptimizerDiagnostic:
        cfg = self.config
        top: tuple[DiagnosticItem, ...] = ()
        if items is not None and not items.empty:
            ranked = items.sort_values("trading_days", ascending=False, kind="stable")
            top = tuple(
                DiagnosticItem(
                    type_id=int(type_id),
                    type_name=str(row.type_name),
                    trading_days=int(row.trading_days),
                    transactions=int(row.transactions),
                )
                for type_id, row in ranked.head(cfg.diagnostic_top_items).iterrows()
            )

        within = 0 if frame is None else len(frame)
        if total == 0:
            reason = "no transactions supplied"
        elif within == 0:
            reason = f"none of {total} transactions fall within the last {lookback_days} days"
        else:
            reason = (
                f"{qualified} of {len(items)} items traded on at least "
                f"{cfg.min_optimizer_days} distinct days; "
                f"{cfg.min_optimizer_items - qualified} more needed"
            )

        diag = OptimizerDiagnostic(
            total_transactions=total,
            within_lookback=within,
            unique_days=0 if within == 0 else int(frame["day"].nunique()),
            unique_items=0 if items is None else len(items),
            qualified_items=qualified,
            min_days_required=cfg.min_optimizer_days,
            min_items_required=cfg.min_optimizer_items,
            top_items=top,
            reason=reason,
        )
        logger.info("Portfolio optimization not possible: %s", reason)
        return diag

    def _candidates(self, frame: pd.DataFrame, items: pd.DataFrame, days: list) -> list[AssetCandidate]:
        daily = frame.pivot_table(
            index="type_id", columns="day", values="cash_flow", aggfunc="sum", fill_value=0.0,
        ).reindex(columns=days, fill_value=0.0)

        qualified = items[items["trading_days"] >= self.config.min_optimizer_days]
        return [
            AssetCandidate(
                type_id=int(type_id),
                type_name=str(row.type_name),
                total_bought=float(row.total_bought),
                trading_days=int(row.trading_days),
                daily_returns=daily.loc[type_id].to_numpy(dtype=float),
            )
            for type_id, row in qualified.iterrows()
        ]

    @staticmethod
    def _asset_stats(
        candidates: list[AssetCandidate],
        means: np.ndarray,
        weights: np.ndarray,
        periods: int,
    ) -> list[AssetStats]:
        stats = []
        for i, c in enumerate(candidates):
            r = c.daily_returns
            vol = float(np.std(r, ddof=1)) if r.size > 1 else 0.0
            sharpe = float(means[i] / vol * np.sqrt(periods)) if vol > 0 else 0.0
            stats.append(AssetStats(
                type_id=c.type_id,
                type_name=c.type_name,
                avg_daily_pnl=float(means[i]),
                volatility=vol,
                sharpe_ratio=sharpe,
                current_weight=float(weights[i]),
                total_invested=c.total_bought,
                total_pnl=float(r.sum()),
                trading_days=c.trading_days,
            ))
        return stats

    # ----- main entry point ------------------------------------------------

    def optimize(
        self,
        transactions: Iterable[Transaction],
        lookback_days: int | None = None,
        now: datetime | None = None,
    ) -> OptimizationOutcome:
        """Optimize allocations over the last *lookback_days* of trading.

        Args:
            transactions: Wallet transactions in any order.
            lookback_days: Window length; defaults to the risk lookback.
            now: End of the window (defaults to the current UTC time).

        Returns:
            PortfolioOptimization, or OptimizerDiagnostic when fewer than
            ``min_optimizer_items`` items traded on enough distinct days.
        """
        cfg = self.config
        txns = list(transactions)
        lookback_days = cfg.portfolio_lookback_days if lookback_days is None else lookback_days

        if not txns:
            return self._diagnose(0, None, None, 0, lookback_days)

        now = as_utc(now) if now is not None else utc_now()
        cutoff = now - timedelta(days=lookback_days)

        frame = self._cash_flow_frame(txns, cutoff)
        if frame.empty:
            return self._diagnose(len(txns), frame, None, 0, lookback_days)

        items = self._item_summary(frame)
        days = sorted(frame["day"].unique())

        candidates = self._candidates(frame, items, days)
        if len(candidates) < cfg.min_optimizer_items:
            return self._diagnose(len(txns), frame, items, len(candidates), lookback_days)

        candidates.sort(key=lambda c: c.total_bought, reverse=True)
        candidates = candidates[: cfg.max_optimizer_assets]
        n = len(candidates)

        returns = np.vstack([c.daily_returns for c in candidates])
        means = returns.mean(axis=1)

        shrinkage = ledoit_wolf_shrinkage(returns, means)
        cov = shrinkage.covariance
        corr = correlation_from_covariance(cov)

        capital = np.array([c.total_bought for c in candidates])
        total_capital = float(capital.sum())
        current_w = capital / total_capital if total_capital > 0 else np.zeros(n)

        min_var_w = solve_min_variance(cov)
        optimal_w = solve_max_sharpe(means, cov)

        periods = cfg.annualization_days
        current_sharpe = portfolio_sharpe(current_w, means, cov, periods)
        optimal_sharpe = portfolio_sharpe(optimal_w, means, cov, periods)
        min_var_sharpe = portfolio_sharpe(min_var_w, means, cov, periods)

        port_var = portfolio_variance(current_w, cov)
        div_ratio = 0.0
        if port_var > 0:
            weighted_vol = float(current_w @ np.sqrt(np.clip(np.diag(cov), 0.0, None)))
            div_ratio = weighted_vol / float(np.sqrt(port_var))

        hhi = float(np.sum(current_w ** 2))
        frontier = efficient_frontier(means, cov, cfg.frontier_points)

        assets = self._asset_stats(candidates, means, current_w, periods)
        suggestions = generate_suggestions(assets, current_w, optimal_w)

        logger.info(
            "Optimized %d items over %d days (α=%.3f): Sharpe current %.2f -> optimal %.2f",
            n, len(days), shrinkage.intensity, current_sharpe, optimal_sharpe,
        )
        return PortfolioOptimization(
            assets=tuple(assets),
            correlation_matrix=tuple(tuple(float(v) for v in row) for row in corr),
            current_weights=tuple(float(v) for v in current_w),
            optimal_weights=tuple(float(v) for v in optimal_w),
            min_var_weights=tuple(float(v) for v in min_var_w),
            efficient_frontier=tuple(frontier),
            diversification_ratio=div_ratio,
            current_sharpe=current_sharpe,
            optimal_sharpe=optimal_sharpe,
            min_var_sharpe=min_var_sharpe,
            hhi=hhi,
            suggestions=tuple(suggestions),
            shrinkage_intensity=shrinkage.intensity,
        )


def optimize_portfolio(
    transactions: Iterable[Transaction],
    lookback_days: int | None = None,
    now: datetime | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> OptimizationOutcome:
    """Convenience wrapper around ``PortfolioOptimizer(config).optimize``."""
    return PortfolioOptimizer(config).optimize(transactions, lookback_days=lookback_days, now=now)
