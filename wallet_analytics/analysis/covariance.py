"""Ledoit-Wolf shrinkage covariance for short, zero-filled daily P&L series.

A sample covariance over a few weeks of data and up to twenty items is badly
conditioned.  Shrinking it toward a scaled identity (average variance on the
diagonal) with the oracle-approximating intensity of Ledoit & Wolf (2004),
"A well-conditioned estimator for large-dimensional covariance matrices",
keeps the optimizer stable without a factor model.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("covariance")

_MIN_DISTANCE = 1e-15


@dataclass(frozen=True)
class ShrinkageEstimate:
    """Shrunk covariance together with the pieces it was blended from."""

    covariance: np.ndarray
    sample: np.ndarray
    intensity: float
    target_variance: float


def sample_covariance(returns, means=None) -> np.ndarray:
    """Bessel-corrected covariance of an assets × days matrix."""
    x = np.atleast_2d(np.asarray(returns, dtype=float))
    n_days = x.shape[1]
    mu = x.mean(axis=1) if means is None else np.asarray(means, dtype=float)
    centered = x - mu[:, None]
    denom = n_days - 1 if n_days > 1 else 1
    return centered @ centered.T / denom


def ledoit_wolf_shrinkage(returns, means=None) -> ShrinkageEstimate:
    """Shrink the sample covariance of *returns* (assets × days) toward μ̄·I.

    δ² = ‖S − F‖²_F is the distance to the target and
    β² = (1/T²) Σ_k ‖z_k z_kᵀ − S‖²_F estimates the error of S; the
    intensity is α = clamp(β²/δ², 0, 1).
    """
    x = np.asarray(returns, dtype=float)
    if x.size == 0:
        empty = np.zeros((0, 0))
        return ShrinkageEstimate(covariance=empty, sample=empty, intensity=0.0, target_variance=0.0)

    x = np.atleast_2d(x)
    n_assets, n_days = x.shape
    mu = x.mean(axis=1) if means is None else np.asarray(means, dtype=float)
    centered = x - mu[:, None]

    sample = sample_covariance(x, mu)
    avg_var = float(np.trace(sample)) / n_assets
    target = avg_var * np.eye(n_assets)

    d_sq = float(np.sum((sample - target) ** 2))

    b_sq = 0.0
    if n_days > 0:
        # z_k z_kᵀ for every day k, stacked as days × assets × assets
        outer = centered.T[:, :, None] * centered.T[:, None, :]
        b_sq = float(np.sum((outer - sample) ** 2)) / (n_days * n_days)

    alpha = b_sq / d_sq if d_sq > _MIN_DISTANCE else 0.0
    alpha = min(max(alpha, 0.0), 1.0)

    shrunk = (1.0 - alpha) * sample + alpha * target
    logger.debug(
        "Ledoit-Wolf: %d assets x %d days, δ²=%.4g β²=%.4g α=%.4f",
        n_assets, n_days, d_sq, b_sq, alpha,
    )
    return ShrinkageEstimate(covariance=shrunk, sample=sample, intensity=alpha, target_variance=avg_var)


def correlation_from_covariance(cov) -> np.ndarray:
    """Display correlation; zero wherever either variance is zero."""
    cov = np.asarray(cov, dtype=float)
    if cov.size == 0:
        return np.zeros((0, 0))
    std = np.sqrt(np.clip(np.diag(cov), 0.0, None))
    denom = np.outer(std, std)
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = np.where(denom > 0, cov / denom, 0.0)
    return np.clip(corr, -1.0, 1.0)
