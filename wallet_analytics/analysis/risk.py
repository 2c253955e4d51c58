"""Portfolio risk summary from realized daily P&L.

Trading histories pulled from a wallet are short and lumpy: a new character
may have a handful of active days, and a single liquidation day can dwarf the
rest.  The estimator therefore scales P&L by the median absolute day, tracks
volatility with an EWMA (RiskMetrics λ = 0.94), and switches from empirical
quantiles to a Cornish-Fisher expansion when fewer than 20 days exist.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Iterable, Mapping

import numpy as np
from scipy.stats import kurtosis, norm, skew

from wallet_analytics.analysis.fifo import realized_daily_pnl
from wallet_analytics.config import DEFAULT_CONFIG, EngineConfig
from wallet_analytics.models import Transaction
from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("risk")

_TAIL_95 = 0.05
_TAIL_99 = 0.01

# Spread below this fraction of max(1, |mean|) is rounding noise
_FLAT_SIGMA_REL = 1e-12

_SCORE_PER_STD = 40.0
_SAFE_BELOW = 30.0
_HIGH_ABOVE = 70.0


@dataclass(frozen=True)
class TailRisk:
    """Signed one-day quantiles of P&L (losses are negative)."""

    var_95: float = 0.0
    var_99: float = 0.0
    es_95: float = 0.0
    es_99: float = 0.0


@dataclass(frozen=True)
class PortfolioRiskSummary:
    """User-facing risk snapshot; VaR, ES and worst day are positive ISK losses."""

    risk_score: float
    risk_level: str
    var_95: float
    var_99: float
    es_95: float
    es_99: float
    typical_daily_pnl: float
    worst_day_loss: float
    sample_days: int
    window_days: int
    capacity_multiplier: float
    low_sample: bool
    var_99_reliable: bool

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Statistics helpers
# ---------------------------------------------------------------------------


def robust_scale(values) -> float:
    """Median of |x|; 0.0 for an empty series."""
    x = np.asarray(values, dtype=float)
    if x.size == 0:
        return 0.0
    return float(np.median(np.abs(x)))


def sample_variance(values) -> float:
    x = np.asarray(values, dtype=float)
    if x.size < 2:
        return 0.0
    return float(np.var(x, ddof=1))


def ewma_volatility(returns, decay: float = 0.94) -> float:
    """EWMA volatility seeded with the population variance of *returns*."""
    r = np.asarray(returns, dtype=float)
    if r.size < 2:
        return 0.0
    dev_sq = (r - r.mean()) ** 2
    var = float(dev_sq.mean())
    for d in dev_sq:
        var = decay * var + (1.0 - decay) * d
    return float(np.sqrt(var))


def sample_skewness(values) -> float:
    """Adjusted Fisher-Pearson skewness G1; 0.0 for n < 3, zero spread or a non-finite result."""
    x = np.asarray(values, dtype=float)
    if x.size < 3 or sample_variance(x) <= 0:
        return 0.0
    g1 = float(skew(x, bias=False))
    return g1 if np.isfinite(g1) else 0.0


def sample_excess_kurtosis(values) -> float:
    """Adjusted excess kurtosis G2; 0.0 for n < 4, zero spread or a non-finite result."""
    x = np.asarray(values, dtype=float)
    if x.size < 4 or sample_variance(x) <= 0:
        return 0.0
    g2 = float(kurtosis(x, fisher=True, bias=False))
    return g2 if np.isfinite(g2) else 0.0


def cornish_fisher_quantile(z: float, skewness: float, excess_kurtosis: float) -> float:
    """Fourth-order Cornish-Fisher adjustment of the normal quantile *z*."""
    z2 = z * z
    z3 = z2 * z
    return (
        z
        + (z2 - 1.0) * skewness / 6.0
        + (z3 - 3.0 * z) * excess_kurtosis / 24.0
        - (2.0 * z3 - 5.0 * z) * skewness * skewness / 36.0
    )


def tail_risk(pnls, low_sample_days: int = 20) -> TailRisk:
    """VaR and expected shortfall at 95% and 99%.

    With at least *low_sample_days* observations these are historical
    quantiles.  Below that, floor(0.05·n) collapses to the worst day, so the
    normal quantile is corrected for skewness and kurtosis instead and ES is
    the normal ES formula evaluated at the corrected quantile.
    """
    x = np.asarray(pnls, dtype=float)
    n = x.size
    if n == 0:
        return TailRisk()

    if n < low_sample_days:
        mu = float(x.mean())
        sigma = float(np.sqrt(sample_variance(x)))
        if sigma <= _FLAT_SIGMA_REL * max(1.0, abs(mu)):
            return TailRisk(var_95=mu, var_99=mu, es_95=mu, es_99=mu)

        g1 = sample_skewness(x)
        g2 = sample_excess_kurtosis(x)
        cf95 = cornish_fisher_quantile(float(norm.ppf(_TAIL_95)), g1, g2)
        cf99 = cornish_fisher_quantile(float(norm.ppf(_TAIL_99)), g1, g2)
        return TailRisk(
            var_95=mu + cf95 * sigma,
            var_99=mu + cf99 * sigma,
            es_95=mu - sigma * float(norm.pdf(cf95)) / _TAIL_95,
            es_99=mu - sigma * float(norm.pdf(cf99)) / _TAIL_99,
        )

    ordered = np.sort(x)
    idx95 = min(max(int(np.floor(_TAIL_95 * n)), 0), n - 1)
    idx99 = min(max(int(np.floor(_TAIL_99 * n)), 0), n - 1)
    return TailRisk(
        var_95=float(ordered[idx95]),
        var_99=float(ordered[idx99]),
        es_95=float(ordered[: idx95 + 1].mean()),
        es_99=float(ordered[: idx99 + 1].mean()),
    )


def risk_level(score: float) -> str:
    if score < _SAFE_BELOW:
        return "safe"
    if score > _HIGH_ABOVE:
        return "high"
    return "balanced"


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------


class RiskSummaryEstimator:
    """Turn a realized daily P&L series into a PortfolioRiskSummary."""

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def from_transactions(
        self,
        transactions: Iterable[Transaction],
        now: datetime | None = None,
    ) -> PortfolioRiskSummary | None:
        """FIFO-match *transactions* and summarise the risk window."""
        daily = realized_daily_pnl(transactions, self.config.portfolio_lookback_days, now=now)
        return self.estimate(daily)

    def estimate(self, daily_pnl: Mapping[date, float]) -> PortfolioRiskSummary | None:
        """Summarise *daily_pnl*; None when the sample is too small to say anything."""
        cfg = self.config
        if len(daily_pnl) < cfg.min_risk_sample_days:
            logger.info(
                "Risk summary skipped: %d P&L days, need %d",
                len(daily_pnl), cfg.min_risk_sample_days,
            )
            return None

        pnls = np.array([daily_pnl[d] for d in sorted(daily_pnl)], dtype=float)
        n = pnls.size

        typical = robust_scale(pnls)
        if typical <= 0:
            logger.info("Risk summary skipped: median absolute daily P&L is zero")
            return None

        returns = pnls / typical
        tails = tail_risk(pnls, cfg.low_sample_days)
        worst = float(pnls.min())

        vol = ewma_volatility(returns, cfg.ewma_lambda)
        score = min(max(vol * _SCORE_PER_STD, 0.0), 100.0)

        capacity = 1.0
        if score < _HIGH_ABOVE and vol > 0:
            sharpe_like = float(returns.mean()) / vol
            # Opdyke (2007): shrink small-sample Sharpe toward zero
            if n > 3:
                sharpe_like *= np.sqrt((n - 3) / n)
            if sharpe_like > 1.0:
                capacity = 2.0
            elif sharpe_like > 0.5:
                capacity = 1.5
            else:
                capacity = 1.2

        summary = PortfolioRiskSummary(
            risk_score=float(score),
            risk_level=risk_level(score),
            var_95=-tails.var_95,
            var_99=-tails.var_99,
            es_95=-tails.es_95,
            es_99=-tails.es_99,
            typical_daily_pnl=typical,
            worst_day_loss=-worst,
            sample_days=n,
            window_days=cfg.portfolio_lookback_days,
            capacity_multiplier=capacity,
            low_sample=n < cfg.low_sample_days,
            var_99_reliable=n >= cfg.min_var99_days,
        )
        logger.info(
            "Risk summary: %d days, score %.1f (%s), VaR95 %.2f",
            n, summary.risk_score, summary.risk_level, summary.var_95,
        )
        return summary


def compute_portfolio_risk(
    transactions: Iterable[Transaction],
    now: datetime | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> PortfolioRiskSummary | None:
    """Risk summary of the last ``config.portfolio_lookback_days`` of trading."""
    return RiskSummaryEstimator(config).from_transactions(transactions, now=now)
