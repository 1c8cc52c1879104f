"""
SVD-based rank and pseudo-inverse.

Rank is counted as the number of singular values above rtol times the
largest one. Used for rank(X) of the design and for rank(L G L') in
hypothesis tests.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyglm.core.validation import check_2d


@dataclass(frozen=True)
class PseudoInverse:
    """
    Moore-Penrose pseudo-inverse with its numerical rank.

    Attributes:
        matrix: (m, n) pseudo-inverse of an (n, m) input
        rank: number of singular values kept
    """
    matrix: NDArray[np.floating[Any]]
    rank: int


def numerical_rank(A: NDArray[np.floating[Any]], rtol: float) -> int:
    """Number of singular values of A greater than rtol * max singular value."""
    check_2d(A, "A")
    if A.size == 0:
        return 0
    s = np.linalg.svd(A, compute_uv=False)
    if s[0] <= 0.0:
        return 0
    return int(np.sum(s > rtol * s[0]))


def pseudo_inverse(A: NDArray[np.floating[Any]], rtol: float) -> PseudoInverse:
    """
    Pseudo-inverse of A from its truncated SVD.

    Args:
        A: (n, m) matrix
        rtol: relative singular-value cutoff

    Returns:
        PseudoInverse
    """
    check_2d(A, "A")
    if A.size == 0:
        return PseudoInverse(matrix=np.zeros(A.T.shape), rank=0)
    U, s, Vt = np.linalg.svd(A, full_matrices=False)
    if s[0] <= 0.0:
        return PseudoInverse(matrix=np.zeros(A.T.shape), rank=0)
    keep = s > rtol * s[0]
    inv = (Vt[keep].T / s[keep]) @ U[:, keep].T
    return PseudoInverse(matrix=inv, rank=int(np.sum(keep)))
