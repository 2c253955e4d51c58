"""Small dense linear-algebra helpers used by the optimizer and covariance code.

Portfolios are capped at a few dozen assets, so everything here works on plain
``float64`` numpy arrays without any sparse or batched machinery.
"""

from __future__ import annotations

import numpy as np

_SINGULAR_PIVOT = 1e-12


def dot_product(a, b) -> float:
    return float(np.dot(np.asarray(a, dtype=float), np.asarray(b, dtype=float)))


def mat_vec_mul(m, v) -> np.ndarray:
    m = np.asarray(m, dtype=float)
    v = np.asarray(v, dtype=float)
    if m.size == 0:
        return np.zeros(len(m))
    return m @ v


def trace(m) -> float:
    """Sum of the diagonal; 0.0 for an empty matrix."""
    m = np.asarray(m, dtype=float)
    if m.size == 0:
        return 0.0
    return float(np.trace(m))


def identity_matrix(n: int) -> np.ndarray:
    return np.eye(n)


def invert_matrix(m) -> np.ndarray | None:
    """Invert a square matrix by Gauss-Jordan elimination with partial pivoting.

    Returns None for an empty or singular matrix.  Not used by the optimizer,
    which never needs an explicit inverse.
    """
    m = np.asarray(m, dtype=float)
    if m.size == 0:
        return None
    n = m.shape[0]
    aug = np.hstack([m.copy(), np.eye(n)])

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(aug[col:, col])))
        if abs(aug[pivot_row, col]) < _SINGULAR_PIVOT:
            return None
        if pivot_row != col:
            aug[[col, pivot_row]] = aug[[pivot_row, col]]

        aug[col] /= aug[col, col]
        for row in range(n):
            if row != col:
                aug[row] -= aug[row, col] * aug[col]

    return aug[:, n:]
