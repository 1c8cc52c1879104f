"""
Parameter estimate tables.

Classic table: SE = sqrt(MSE * G_ii), two-sided t test on df_error,
confidence interval at 1 - alpha, partial eta^2 = t^2 / (t^2 + df_error),
noncentrality |t|, observed power of the two-sided t test.

A parameter is redundant when it is aliased or |G_ii| < 1e-9; it is
reported with B = 0 and NaN statistics.
"""

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo
from pyglm.core.compute.tolerances import REDUNDANT_PARAMETER_TOL
from pyglm.glm._common import ParameterEstimateRow, RobustEstimateRow
from pyglm.glm._robust import RobustCovariance

NAN = float('nan')


def redundant_mask(swept: SweptMatrixInfo) -> NDArray[np.bool_]:
    return swept.aliased | ~swept.included | (np.abs(np.diag(swept.G)) < REDUNDANT_PARAMETER_TOL)


def t_power(t_value: float, df: int, alpha: float) -> float:
    """Two-sided power of a t test at noncentrality |t|."""
    if not np.isfinite(t_value) or df <= 0:
        return NAN
    t_crit = sp_stats.t.ppf(1.0 - alpha / 2.0, df)
    ncp = abs(t_value)
    return float(sp_stats.nct.sf(t_crit, df, ncp) + sp_stats.nct.cdf(-t_crit, df, ncp))


def _t_inference(b: float, se: float, df: int, alpha: float) -> tuple[float, float, float, float]:
    if not np.isfinite(se) or se <= 0.0 or df <= 0:
        return NAN, NAN, NAN, NAN
    t_val = b / se
    p_val = float(2.0 * sp_stats.t.sf(abs(t_val), df))
    half = float(sp_stats.t.ppf(1.0 - alpha / 2.0, df)) * se
    return t_val, p_val, b - half, b + half


def parameter_estimates(
    names: tuple[str, ...],
    swept: SweptMatrixInfo,
    mse: float,
    df_error: int,
    alpha: float,
) -> tuple[ParameterEstimateRow, ...]:
    redundant = redundant_mask(swept)
    rows = []
    for i, name in enumerate(names):
        if redundant[i]:
            rows.append(ParameterEstimateRow(name, 0.0, NAN, NAN, NAN, NAN, NAN, NAN, NAN, NAN, True))
            continue
        b = float(swept.beta[i])
        se = float(np.sqrt(mse * swept.G[i, i])) if mse >= 0 and df_error > 0 else NAN
        t_val, p_val, lo, hi = _t_inference(b, se, df_error, alpha)
        partial = t_val ** 2 / (t_val ** 2 + df_error) if np.isfinite(t_val) else NAN
        rows.append(ParameterEstimateRow(
            parameter=name,
            b=b,
            std_error=se,
            t_value=t_val,
            p_value=p_val,
            ci_lower=lo,
            ci_upper=hi,
            partial_eta_sq=partial,
            noncentrality=abs(t_val),
            observed_power=t_power(t_val, df_error, alpha),
            redundant=False,
        ))
    return tuple(rows)


def robust_estimates(
    names: tuple[str, ...],
    swept: SweptMatrixInfo,
    robust: RobustCovariance,
    df_error: int,
    alpha: float,
) -> tuple[RobustEstimateRow, ...]:
    redundant = redundant_mask(swept)
    rows = []
    for i, name in enumerate(names):
        if redundant[i]:
            rows.append(RobustEstimateRow(name, 0.0, NAN, NAN, NAN, NAN, NAN, True))
            continue
        b = float(swept.beta[i])
        se = float(robust.se[i])
        t_val, p_val, lo, hi = _t_inference(b, se, df_error, alpha)
        rows.append(RobustEstimateRow(name, b, se, t_val, p_val, lo, hi, False))
    return tuple(rows)
