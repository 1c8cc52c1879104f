"""
Tests for the cross-product / SWEEP engine and the SVD kernels.

Validates:
    - beta, G and RSS against the normal equations
    - single-pivot sweep is undone by the reverse sweep
    - aliasing of collinear columns
    - nested fits by sweeping a subset of columns
    - numerical rank and pseudo-inverse
"""

import numpy as np
import pytest

from pyglm.core.compute.linalg import (
    cross_product,
    numerical_rank,
    pseudo_inverse,
    sweep,
    sweep_operator,
)
from pyglm.core.compute.tolerances import select_tolerance
from pyglm.core.exceptions import DimensionError, ValidationError

TOL = select_tolerance()


@pytest.fixture
def regression(rng):
    n = 50
    X = np.column_stack([np.ones(n), rng.standard_normal(n), rng.standard_normal(n)])
    y = X @ np.array([2.0, -1.0, 0.5]) + rng.standard_normal(n) * 0.3
    w = rng.uniform(0.5, 2.0, n)
    return X, y, w


# ═══════════════════════════════════════════════════════════════════════
# cross_product
# ═══════════════════════════════════════════════════════════════════════


class TestCrossProduct:

    def test_unweighted(self, regression):
        X, y, _ = regression
        Z = np.column_stack([X, y])
        np.testing.assert_allclose(cross_product(X, y), Z.T @ Z, rtol=TOL.rtol, atol=1e-10)

    def test_weighted_is_symmetric(self, regression):
        X, y, w = regression
        C = cross_product(X, y, w)
        Z = np.column_stack([X, y])
        np.testing.assert_allclose(C, Z.T @ np.diag(w) @ Z, rtol=TOL.rtol, atol=1e-10)
        np.testing.assert_array_equal(C, C.T)

    def test_length_mismatch(self, regression):
        X, y, _ = regression
        with pytest.raises(DimensionError):
            cross_product(X, y[:-1])

    def test_nan_rejected(self, regression):
        X, y, _ = regression
        y = y.copy()
        y[0] = np.nan
        with pytest.raises(ValidationError, match="non-finite"):
            cross_product(X, y)


# ═══════════════════════════════════════════════════════════════════════
# Full sweep
# ═══════════════════════════════════════════════════════════════════════


class TestSweep:

    def test_matches_normal_equations(self, regression):
        X, y, w = regression
        swept = sweep(cross_product(X, y, w), 3)

        XtWX = X.T @ (X * w[:, None])
        XtWy = X.T @ (w * y)
        beta = np.linalg.solve(XtWX, XtWy)
        rss = y @ (w * y) - beta @ XtWy

        np.testing.assert_allclose(swept.beta, beta, rtol=1e-8, atol=1e-10)
        np.testing.assert_allclose(swept.G, np.linalg.inv(XtWX), rtol=1e-8, atol=1e-10)
        np.testing.assert_allclose(swept.rss, rss, rtol=1e-8, atol=1e-10)
        assert swept.rank == 3
        assert not swept.aliased.any()

    def test_g_diagonal_non_negative(self, regression):
        X, y, _ = regression
        swept = sweep(cross_product(X, y), 3)
        assert np.all(np.diag(swept.G) >= 0)

    def test_collinear_column_aliased(self, rng):
        n = 40
        x1 = rng.standard_normal(n)
        x2 = rng.standard_normal(n)
        X = np.column_stack([np.ones(n), x1, x2, x1 + x2])
        y = 1.0 + x1 - x2 + rng.standard_normal(n) * 0.1

        swept = sweep(cross_product(X, y), 4)

        np.testing.assert_array_equal(swept.aliased, [False, False, False, True])
        assert swept.rank == 3
        assert swept.beta[3] == 0.0
        np.testing.assert_array_equal(swept.G[3], 0.0)
        np.testing.assert_array_equal(swept.G[:, 3], 0.0)

        full_rank = sweep(cross_product(X[:, :3], y), 3)
        np.testing.assert_allclose(swept.beta[:3], full_rank.beta, rtol=1e-8, atol=1e-10)
        np.testing.assert_allclose(swept.rss, full_rank.rss, rtol=1e-8, atol=1e-10)

    def test_zero_column_aliased(self, rng):
        X = np.column_stack([np.ones(10), np.zeros(10)])
        y = rng.standard_normal(10)
        swept = sweep(cross_product(X, y), 2)
        np.testing.assert_array_equal(swept.aliased, [False, True])

    def test_rss_of_exact_fit_is_zero(self):
        X = np.column_stack([np.ones(4), np.arange(4.0)])
        y = 1.0 + 2.0 * np.arange(4.0)
        swept = sweep(cross_product(X, y), 2)
        assert swept.rss == pytest.approx(0.0, abs=1e-10)
        np.testing.assert_allclose(swept.beta, [1.0, 2.0], atol=1e-10)

    def test_wrong_shape(self, regression):
        X, y, _ = regression
        with pytest.raises(DimensionError):
            sweep(cross_product(X, y), 2)


# ═══════════════════════════════════════════════════════════════════════
# Nested fits
# ═══════════════════════════════════════════════════════════════════════


class TestSubsetSweep:

    def test_subset_equals_smaller_model(self, regression):
        X, y, _ = regression
        C = cross_product(X, y)
        nested = sweep(C, 3, columns=[0, 2])
        direct = sweep(cross_product(X[:, [0, 2]], y), 2)

        np.testing.assert_allclose(nested.beta[[0, 2]], direct.beta, rtol=1e-8, atol=1e-10)
        assert nested.beta[1] == 0.0
        assert nested.rss == pytest.approx(direct.rss, rel=1e-8)
        np.testing.assert_array_equal(nested.included, [True, False, True])
        assert not nested.aliased.any()

    def test_empty_subset_is_total(self, regression):
        X, y, _ = regression
        empty = sweep(cross_product(X, y), 3, columns=[])
        assert empty.rss == pytest.approx(y @ y)
        assert empty.rank == 0

    def test_duplicate_column(self, regression):
        X, y, _ = regression
        with pytest.raises(ValidationError, match="once"):
            sweep(cross_product(X, y), 3, columns=[0, 0])

    def test_out_of_range_column(self, regression):
        X, y, _ = regression
        with pytest.raises(ValidationError, match="out of range"):
            sweep(cross_product(X, y), 3, columns=[3])


# ═══════════════════════════════════════════════════════════════════════
# Single-pivot operator
# ═══════════════════════════════════════════════════════════════════════


class TestSweepOperator:

    def test_reverse_sweep_restores(self, regression):
        X, y, _ = regression
        C = cross_product(X, y)
        for k in range(3):
            back = sweep_operator(sweep_operator(C, k), k, inverse=True)
            np.testing.assert_allclose(back, C, rtol=1e-10, atol=1e-10)

    def test_sweep_all_pivots_gives_negative_inverse(self, regression):
        X, y, _ = regression
        XtX = X.T @ X
        C = XtX.copy()
        for k in range(3):
            C = sweep_operator(C, k)
        np.testing.assert_allclose(-C, np.linalg.inv(XtX), rtol=1e-8, atol=1e-10)

    def test_input_not_modified(self, regression):
        X, y, _ = regression
        C = cross_product(X, y)
        before = C.copy()
        sweep_operator(C, 1)
        np.testing.assert_array_equal(C, before)

    def test_zero_pivot(self):
        with pytest.raises(ValidationError, match="zero"):
            sweep_operator(np.zeros((2, 2)), 0)


# ═══════════════════════════════════════════════════════════════════════
# SVD kernels
# ═══════════════════════════════════════════════════════════════════════


class TestSVD:

    def test_numerical_rank(self, rng):
        A = rng.standard_normal((6, 3))
        assert numerical_rank(A, 1e-10) == 3
        assert numerical_rank(np.column_stack([A, A[:, 0] * 2.0]), 1e-10) == 3
        assert numerical_rank(np.zeros((3, 3)), 1e-10) == 0

    def test_pseudo_inverse_full_rank(self, rng):
        A = rng.standard_normal((3, 3)) + 3.0 * np.eye(3)
        pinv = pseudo_inverse(A, 1e-8)
        assert pinv.rank == 3
        np.testing.assert_allclose(pinv.matrix, np.linalg.inv(A), rtol=1e-8, atol=1e-10)

    def test_pseudo_inverse_rank_deficient(self):
        A = np.array([[1.0, 1.0], [1.0, 1.0]])
        pinv = pseudo_inverse(A, 1e-8)
        assert pinv.rank == 1
        np.testing.assert_allclose(A @ pinv.matrix @ A, A, atol=1e-12)

    def test_empty(self):
        assert pseudo_inverse(np.zeros((0, 0)), 1e-8).rank == 0
