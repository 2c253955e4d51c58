"""Long-only mean-variance optimization on the probability simplex.

Every allocation (minimum-variance, maximum-Sharpe, efficient frontier) is
produced by one primitive: projected gradient descent on

    min  w'Σw − λ·μ'w    s.t.  w ≥ 0,  Σw = 1

Each gradient step is followed by an exact Euclidean projection back onto the
simplex (Duchi et al., 2008, "Efficient projections onto the l1-ball").  The
risk-aversion parameter λ is swept over a fixed logarithmic grid to recover
the tangency portfolio and to trace the frontier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from wallet_analytics.analysis.matrix import trace
from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("optimization")

_MAX_ITER = 1000
_TOLERANCE = 1e-10

_LAMBDA_FLOOR = 0.001
_SHARPE_SCAN_STEPS = 50
_SHARPE_SCAN_CEILING = 100.0
_FRONTIER_SCAN_CEILING = 1000.0

_FRONTIER_MIN_GAP_FRACTION = 0.001
_FRONTIER_MIN_GAP_ABS = 1e-12

_ANNUALIZATION_DAYS = 365


@dataclass(frozen=True)
class FrontierPoint:
    """A point on the efficient frontier (daily std dev, expected daily return)."""

    risk: float
    ret: float


# ---------------------------------------------------------------------------
# Simplex projection
# ---------------------------------------------------------------------------


def project_onto_simplex(v) -> np.ndarray:
    """Closest point (Euclidean) to *v* on {x : x ≥ 0, Σx = 1}.

    Returns a new array; an empty input gives an empty output.
    """
    v = np.asarray(v, dtype=float)
    if v.size == 0:
        return v.copy()

    u = np.sort(v)[::-1]
    cumsum = np.cumsum(u)
    ranks = np.arange(1, v.size + 1)
    positive = np.nonzero(u - (cumsum - 1.0) / ranks > 0)[0]
    rho = int(positive[-1]) if positive.size else 0

    theta = (cumsum[rho] - 1.0) / (rho + 1)
    return np.maximum(v - theta, 0.0)


# ---------------------------------------------------------------------------
# Portfolio statistics
# ---------------------------------------------------------------------------


def portfolio_variance(weights, cov) -> float:
    w = np.asarray(weights, dtype=float)
    if w.size == 0:
        return 0.0
    return float(w @ np.asarray(cov, dtype=float) @ w)


def portfolio_return(weights, means) -> float:
    w = np.asarray(weights, dtype=float)
    if w.size == 0:
        return 0.0
    return float(w @ np.asarray(means, dtype=float))


def portfolio_sharpe(weights, means, cov, periods: int = _ANNUALIZATION_DAYS) -> float:
    """Annualized Sharpe of a daily P&L portfolio (zero risk-free rate)."""
    variance = portfolio_variance(weights, cov)
    if variance <= 0:
        return 0.0
    return portfolio_return(weights, means) / np.sqrt(variance) * np.sqrt(periods)


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------


def solve_long_only_qp(means, cov, risk_aversion: float = 0.0) -> np.ndarray:
    """Solve min w'Σw − λ·μ'w over the simplex by projected gradient descent.

    The step size 1/(2·trace(Σ)) bounds the inverse Lipschitz constant of the
    gradient, since 2·λ_max(Σ) ≤ 2·trace(Σ) and the linear term adds no
    curvature.
    """
    cov = np.asarray(cov, dtype=float)
    n = cov.shape[0] if cov.size else 0
    if n == 0:
        return np.empty(0)

    w = np.full(n, 1.0 / n)
    tr = trace(cov)
    if tr <= 0:
        return w

    mu = np.zeros(n) if means is None else np.asarray(means, dtype=float)
    step = 1.0 / (2.0 * tr)

    for iteration in range(_MAX_ITER):
        grad = 2.0 * (cov @ w) - risk_aversion * mu
        w_next = project_onto_simplex(w - step * grad)
        max_change = float(np.max(np.abs(w_next - w)))
        w = w_next
        if max_change < _TOLERANCE:
            logger.debug("QP λ=%.4g converged after %d iterations", risk_aversion, iteration + 1)
            break

    return w


def solve_min_variance(cov) -> np.ndarray:
    """Global minimum-variance long-only portfolio (λ = 0)."""
    return solve_long_only_qp(None, cov, 0.0)


def risk_aversion_grid(steps: int, ceiling: float, floor: float = _LAMBDA_FLOOR) -> np.ndarray:
    """λ = 0 followed by *steps* log-spaced values from just above *floor* to *ceiling*."""
    if steps <= 0:
        return np.zeros(1)
    t = np.arange(1, steps + 1) / steps
    return np.concatenate(([0.0], floor * (ceiling / floor) ** t))


def sweep_risk_aversion(means, cov, grid) -> Iterator[tuple[float, np.ndarray]]:
    """Yield (λ, weights) for every λ in *grid*."""
    for lam in grid:
        yield float(lam), solve_long_only_qp(means, cov, float(lam))


def solve_max_sharpe(means, cov) -> np.ndarray:
    """Tangency portfolio under the long-only constraint.

    Scans λ over 51 points from 0 to 100 and keeps the allocation with the
    highest Sharpe ratio.
    """
    means = np.asarray(means, dtype=float)
    n = means.size
    if n == 0:
        return np.empty(0)

    best_sharpe = -np.inf
    best_w: np.ndarray | None = None
    grid = risk_aversion_grid(_SHARPE_SCAN_STEPS, _SHARPE_SCAN_CEILING)
    for lam, w in sweep_risk_aversion(means, cov, grid):
        sharpe = portfolio_sharpe(w, means, cov)
        if sharpe > best_sharpe:
            best_sharpe = sharpe
            best_w = w
            logger.debug("New best Sharpe %.4f at λ=%.4g", sharpe, lam)

    if best_w is None:
        best_w = np.full(n, 1.0 / n)
    return best_w


def efficient_frontier(means, cov, num_points: int) -> list[FrontierPoint]:
    """Long-only efficient frontier traced by a λ sweep.

    Raw solutions are sorted by risk, dominated points (return not strictly
    above every lower-risk point) are dropped, points closer than 0.1% of the
    risk range are merged, and the rest is evenly downsampled to *num_points*.
    """
    means = np.asarray(means, dtype=float)
    if means.size == 0 or num_points < 2:
        return []

    grid = risk_aversion_grid(2 * num_points - 1, _FRONTIER_SCAN_CEILING)
    raw = [
        (np.sqrt(max(portfolio_variance(w, cov), 0.0)), portfolio_return(w, means))
        for _, w in sweep_risk_aversion(means, cov, grid)
    ]
    raw.sort(key=lambda p: p[0])

    undominated: list[tuple[float, float]] = []
    best_ret = -np.inf
    for risk, ret in raw:
        if ret > best_ret:
            undominated.append((risk, ret))
            best_ret = ret

    risk_range = undominated[-1][0] - undominated[0][0]
    min_gap = max(risk_range * _FRONTIER_MIN_GAP_FRACTION, _FRONTIER_MIN_GAP_ABS)

    frontier = [undominated[0]]
    for risk, ret in undominated[1:]:
        if risk - frontier[-1][0] >= min_gap:
            frontier.append((risk, ret))

    if len(frontier) > num_points:
        last = len(frontier) - 1
        frontier = [frontier[i * last // (num_points - 1)] for i in range(num_points)]

    return [FrontierPoint(risk=float(r), ret=float(m)) for r, m in frontier]
