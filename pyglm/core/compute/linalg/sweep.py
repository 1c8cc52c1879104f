"""
Cross-product and SWEEP operator.

The augmented cross-product Z'WZ with Z = [X | y] is swept on each model
column in turn. After sweeping the estimable columns, the same matrix
holds the generalized inverse G = (X'WX)^- (negated), the coefficients
beta-hat in its last column, and the residual sum of squares in its
bottom-right cell. No separate inversion is needed and rank-deficient
designs degrade gracefully: a column whose pivot has collapsed is
marked aliased and skipped.

Sweeping only a subset of the columns fits the nested model made of
those columns; Type I and Type II sums of squares rely on that.
"""

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.tolerances import SWEEP_EPSILON
from pyglm.core.exceptions import DimensionError, ValidationError
from pyglm.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_consistent_length,
    check_finite,
    check_square,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweptMatrixInfo:
    """
    Result of sweeping an augmented cross-product matrix.

    Attributes:
        G: (p, p) generalized inverse; zero rows/columns for aliased or
           unswept parameters
        beta: (p,) coefficient estimates; 0 for aliased or unswept parameters
        rss: residual (weighted) sum of squares of the swept model
        aliased: (p,) True where the pivot collapsed (linearly dependent column)
        included: (p,) True where the column was successfully swept
    """
    G: NDArray[np.floating[Any]]
    beta: NDArray[np.floating[Any]]
    rss: float
    aliased: NDArray[np.bool_]
    included: NDArray[np.bool_]

    @property
    def p(self) -> int:
        return self.beta.shape[0]

    @property
    def rank(self) -> int:
        """Number of estimable (swept, non-aliased) parameters."""
        return int(np.sum(self.included))


def cross_product(
    X: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
    w: NDArray[np.floating[Any]] | None = None,
) -> NDArray[np.floating[Any]]:
    """
    Build the augmented cross-product matrix Z'WZ, Z = [X | y].

    Args:
        X: (n, p) design matrix
        y: (n,) response
        w: (n,) case weights, or None for unweighted

    Returns:
        (p+1, p+1) symmetric matrix
    """
    X = check_array(X, "X")
    y = check_array(y, "y")
    check_2d(X, "X")
    check_1d(y, "y")
    check_finite(X, "X")
    check_finite(y, "y")
    check_consistent_length(X, y, names=("X", "y"))
    Z = np.column_stack([X, y]).astype(np.float64)
    if w is None:
        ZtWZ = Z.T @ Z
    else:
        w = check_array(w, "w")
        check_1d(w, "w")
        check_consistent_length(X, w, names=("X", "w"))
        ZtWZ = (Z * w[:, None]).T @ Z
    # Exact symmetry keeps the swept G symmetric.
    return 0.5 * (ZtWZ + ZtWZ.T)


def _apply_sweep(C: NDArray, k: int, sign: float) -> None:
    """Sweep C on pivot k in place. sign=-1 performs the reverse sweep."""
    pivot = C[k, k]
    row = C[k, :].copy()
    col = C[:, k].copy()
    C -= np.outer(col, row) / pivot
    C[k, :] = sign * row / pivot
    C[:, k] = sign * col / pivot
    C[k, k] = -1.0 / pivot


def sweep_operator(
    C: NDArray[np.floating[Any]],
    k: int,
    *,
    inverse: bool = False,
) -> NDArray[np.floating[Any]]:
    """
    Apply a single SWEEP (or reverse SWEEP) on pivot k.

    The reverse sweep undoes a forward sweep on the same pivot, so
    sweep_operator(sweep_operator(C, k), k, inverse=True) returns C.

    Args:
        C: square matrix (not modified)
        k: pivot index
        inverse: apply the reverse sweep

    Returns:
        New swept matrix

    Raises:
        ValidationError: If the pivot is exactly zero
    """
    check_square(C, "C")
    if not 0 <= k < C.shape[0]:
        raise ValidationError(f"k: pivot {k} out of range for shape {C.shape}")
    if C[k, k] == 0.0:
        raise ValidationError(f"C: pivot {k} is zero, cannot sweep")
    out = np.array(C, dtype=np.float64, copy=True)
    _apply_sweep(out, k, -1.0 if inverse else 1.0)
    return out


def sweep(
    ZtWZ: NDArray[np.floating[Any]],
    p: int,
    *,
    columns: Sequence[int] | None = None,
    tol: float = SWEEP_EPSILON,
) -> SweptMatrixInfo:
    """
    Sweep the model columns of an augmented cross-product matrix.

    A column k is aliased when its current pivot satisfies
    |pivot| <= tol * |original diagonal|, or when the pivot is negative
    (an unswept pivot of a positive semi-definite matrix is a residual
    sum of squares, so a negative value is round-off from collinearity).

    Args:
        ZtWZ: (p+1, p+1) matrix from cross_product()
        p: number of model columns
        columns: columns to sweep, in order (default: all 0..p-1). Columns
                 not listed are left out of the fitted model.
        tol: relative pivot tolerance

    Returns:
        SweptMatrixInfo

    Raises:
        DimensionError: If ZtWZ is not (p+1, p+1)
        ValidationError: If a column is out of range or listed twice
    """
    check_square(ZtWZ, "ZtWZ")
    if ZtWZ.shape[0] != p + 1:
        raise DimensionError(
            f"ZtWZ: expected shape ({p + 1}, {p + 1}), got {ZtWZ.shape}"
        )

    order = list(range(p)) if columns is None else [int(c) for c in columns]
    if len(set(order)) != len(order):
        raise ValidationError(f"columns: each column may be swept once, got {order}")
    for k in order:
        if not 0 <= k < p:
            raise ValidationError(f"columns: index {k} out of range for p={p}")

    C = np.array(ZtWZ, dtype=np.float64, copy=True)
    original = np.abs(np.diag(C)).copy()
    aliased = np.zeros(p, dtype=bool)
    included = np.zeros(p, dtype=bool)

    for k in order:
        pivot = C[k, k]
        if original[k] == 0.0 or abs(pivot) <= tol * original[k] or pivot < 0.0:
            aliased[k] = True
            continue
        _apply_sweep(C, k, 1.0)
        included[k] = True

    G = np.zeros((p, p), dtype=np.float64)
    idx = np.flatnonzero(included)
    G[np.ix_(idx, idx)] = -C[np.ix_(idx, idx)]
    beta = np.zeros(p, dtype=np.float64)
    beta[idx] = C[idx, p]
    rss = max(float(C[p, p]), 0.0)

    if aliased.any():
        logger.debug("sweep: aliased columns %s", np.flatnonzero(aliased).tolist())

    return SweptMatrixInfo(G=G, beta=beta, rss=rss, aliased=aliased, included=included)
