"""
Heteroskedasticity-consistent (sandwich) covariance, HC0-HC4.

    u_i   = w_i e_i^2
    Omega = diag(omega_i), omega_i by HC type (below)
    Cov   = G (X' sqrt(W) Omega sqrt(W) X) G

HC0  u_i
HC1  u_i n / (n - r)
HC2  u_i / (1 - h_ii)                 falls back to u_i when 1 - h_ii ~ 0
HC3  u_i / (1 - h_ii)^2               falls back to 0 when 1 - h_ii ~ 0
HC4  u_i / (1 - h_ii)^d_i,            d_i = min(4, n h_ii / r); falls back to 0

h_ii is the leverage of case i in the weighted fit: w_i x_i G x_i'.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.tolerances import NEGATIVE_VARIANCE_TOL
from pyglm.core.exceptions import ValidationError

_EPS = np.finfo(np.float64).eps


class HCType(Enum):
    HC0 = 'HC0'
    HC1 = 'HC1'
    HC2 = 'HC2'
    HC3 = 'HC3'
    HC4 = 'HC4'

    @classmethod
    def parse(cls, value: 'HCType | str') -> 'HCType':
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper()
        for member in cls:
            if member.value == key:
                return member
        raise ValidationError(
            f"robust: must be one of {[m.value for m in cls]}, got {value!r}"
        )


@dataclass(frozen=True)
class RobustCovariance:
    """
    Sandwich covariance of beta-hat.

    Attributes:
        cov: (p, p) robust covariance
        se: (p,) robust standard errors; NaN for aliased parameters or a
            diagonal that is negative beyond tolerance
        omega: (n,) diagonal of Omega
        leverage: (n,) hat-matrix diagonal
        hc_type: estimator used
    """
    cov: NDArray[np.floating[Any]]
    se: NDArray[np.floating[Any]]
    omega: NDArray[np.floating[Any]]
    leverage: NDArray[np.floating[Any]]
    hc_type: HCType


def leverage(
    X: NDArray[np.floating[Any]],
    G: NDArray[np.floating[Any]],
    w: NDArray[np.floating[Any]] | None = None,
) -> NDArray[np.floating[Any]]:
    """
    Hat-matrix diagonal h_ii = w_i x_i G x_i'.

    With case weights this is the diagonal of W^1/2 X G X' W^1/2, so the
    leverages still sum to the rank; unweighted it is x_i G x_i'.
    """
    h = np.einsum('ij,jk,ik->i', X, G, X)
    return h if w is None else w * h


def omega_diagonal(
    residuals: NDArray[np.floating[Any]],
    h: NDArray[np.floating[Any]],
    rank: int,
    hc_type: HCType | str = HCType.HC3,
    w: NDArray[np.floating[Any]] | None = None,
) -> NDArray[np.floating[Any]]:
    """Per-case Omega_ii for the chosen estimator."""
    hc_type = HCType.parse(hc_type)
    n = residuals.shape[0]
    u = residuals ** 2 if w is None else w * residuals ** 2

    if hc_type is HCType.HC0:
        return u
    if hc_type is HCType.HC1:
        return u * n / (n - rank) if n > rank else u

    one_minus_h = 1.0 - h
    ok = one_minus_h > _EPS
    safe = np.where(ok, one_minus_h, 1.0)

    if hc_type is HCType.HC2:
        return np.where(ok, u / safe, u)
    if hc_type is HCType.HC3:
        return np.where(ok, u / safe ** 2, 0.0)
    delta = np.minimum(4.0, n * h / rank) if rank > 0 else np.zeros_like(h)
    return np.where(ok, u / safe ** delta, 0.0)


def robust_covariance(
    X: NDArray[np.floating[Any]],
    residuals: NDArray[np.floating[Any]],
    G: NDArray[np.floating[Any]],
    rank: int,
    *,
    w: NDArray[np.floating[Any]] | None = None,
    aliased: NDArray[np.bool_] | None = None,
    hc_type: HCType | str = HCType.HC3,
) -> RobustCovariance:
    """
    Sandwich covariance estimate.

    Args:
        X: (n, p) design matrix
        residuals: (n,) y - X beta
        G: (p, p) generalized inverse from the sweep
        rank: number of estimable parameters
        w: (n,) case weights or None
        aliased: (p,) aliased flags; their SE is NaN
        hc_type: HC0..HC4 (default HC3)

    Returns:
        RobustCovariance
    """
    hc_type = HCType.parse(hc_type)
    h = leverage(X, G, w)
    omega = omega_diagonal(residuals, h, rank, hc_type, w)
    scale = omega if w is None else omega * w
    meat = (X * scale[:, None]).T @ X
    cov = G @ meat @ G

    diag = np.diag(cov).copy()
    se = np.where(diag < -NEGATIVE_VARIANCE_TOL, np.nan, np.sqrt(np.clip(diag, 0.0, None)))
    if aliased is not None:
        se = np.where(aliased, np.nan, se)

    return RobustCovariance(cov=cov, se=se, omega=omega, leverage=h, hc_type=hc_type)
