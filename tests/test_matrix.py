"""Tests for wallet_analytics.analysis.matrix -- dense linear-algebra helpers."""

import numpy as np
import pytest

from wallet_analytics.analysis.matrix import (
    dot_product,
    identity_matrix,
    invert_matrix,
    mat_vec_mul,
    trace,
)


class TestBasics:

    def test_dot_product(self):
        assert dot_product([1, 2, 3], [4, 5, 6]) == pytest.approx(32.0)

    def test_mat_vec_mul(self):
        np.testing.assert_allclose(mat_vec_mul([[1, 2], [3, 4]], [1, 1]), [3.0, 7.0])

    def test_mat_vec_mul_empty(self):
        assert mat_vec_mul([], []).size == 0

    def test_trace(self):
        assert trace([[1, 9], [9, 4]]) == pytest.approx(5.0)
        assert trace(np.zeros((0, 0))) == 0.0

    def test_identity(self):
        np.testing.assert_array_equal(identity_matrix(3), np.eye(3))


class TestInvertMatrix:

    def test_known_inverse(self):
        inv = invert_matrix([[4.0, 7.0], [2.0, 6.0]])
        np.testing.assert_allclose(inv, [[0.6, -0.7], [-0.2, 0.4]])

    def test_requires_pivoting(self):
        perm = [[0.0, 1.0], [1.0, 0.0]]
        np.testing.assert_allclose(invert_matrix(perm), perm)

    def test_round_trip_random(self):
        np.random.seed(42)
        m = np.random.randn(5, 5) + 5 * np.eye(5)
        np.testing.assert_allclose(invert_matrix(m) @ m, np.eye(5), atol=1e-10)

    def test_singular(self):
        assert invert_matrix([[1.0, 2.0], [2.0, 4.0]]) is None

    def test_empty(self):
        assert invert_matrix(np.zeros((0, 0))) is None

    def test_input_not_mutated(self):
        m = np.array([[2.0, 0.0], [0.0, 4.0]])
        invert_matrix(m)
        np.testing.assert_array_equal(m, [[2.0, 0.0], [0.0, 4.0]])
