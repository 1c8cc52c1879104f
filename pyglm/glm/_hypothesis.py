"""
Hypothesis test evaluation.

Given L (r x p), beta-hat and the generalized inverse G:

    df   = rank(L G L')                       (SVD, relative tol 1e-8)
    SS_H = (L b)' pinv(L G L') (L b)          clamped to >= 0
    F    = (SS_H / df) / MSE
    partial eta^2 = SS_H / (SS_H + SSE)
    noncentrality = F * df
    observed power from the noncentral F at the configured alpha
"""

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pyglm.core.compute.linalg.svd import pseudo_inverse
from pyglm.core.compute.tolerances import HYPOTHESIS_RANK_TOL
from pyglm.core.exceptions import RankDeficiencyError
from pyglm.glm._common import HypothesisTest

NAN = float('nan')


def hypothesis_ss(
    L: NDArray,
    beta: NDArray,
    G: NDArray,
) -> tuple[float, int]:
    """
    Sum of squares and degrees of freedom for L beta = 0.

    Returns (0.0, 0) when L G L' has numerical rank 0 (non-estimable).
    """
    L = np.atleast_2d(np.asarray(L, dtype=np.float64))
    if L.shape[0] == 0:
        return 0.0, 0
    LGL = L @ G @ L.T
    pinv = pseudo_inverse(0.5 * (LGL + LGL.T), HYPOTHESIS_RANK_TOL)
    if pinv.rank == 0:
        return 0.0, 0
    est = L @ beta
    ss = float(est @ pinv.matrix @ est)
    return max(ss, 0.0), pinv.rank


def observed_power(f_value: float, df: float, df_error: float, alpha: float) -> float:
    """Power of the F test at the observed effect: P(F' > F_crit), ncp = F * df."""
    if not np.isfinite(f_value) or df <= 0 or df_error <= 0:
        return NAN
    ncp = f_value * df
    f_crit = sp_stats.f.ppf(1.0 - alpha, df, df_error)
    if ncp <= 0.0:
        return float(alpha)
    return float(sp_stats.ncf.sf(f_crit, df, df_error, ncp))


def f_test(
    ss: float,
    df: int,
    sse: float,
    df_error: int,
    alpha: float,
) -> HypothesisTest:
    """
    F test of a hypothesis sum of squares against the model error.

    A hypothesis with df = 0 is reported with SS = 0 and NaN statistics.

    Raises:
        RankDeficiencyError: If df_error <= 0 (saturated model)
    """
    if df_error <= 0:
        raise RankDeficiencyError(
            f"no error degrees of freedom (df_error={df_error}); model is saturated",
            df_error=df_error,
        )
    if df <= 0:
        return HypothesisTest(0.0, 0, NAN, NAN, NAN, NAN, NAN, NAN)

    ms = ss / df
    mse = sse / df_error
    denom = ss + sse
    partial_eta = ss / denom if denom > 0 else NAN
    if mse <= 0.0:
        return HypothesisTest(ss, df, ms, NAN, NAN, partial_eta, NAN, NAN)

    f_val = ms / mse
    p_val = float(sp_stats.f.sf(f_val, df, df_error))
    return HypothesisTest(
        sum_sq=ss,
        df=df,
        mean_sq=ms,
        f_value=f_val,
        p_value=p_val,
        partial_eta_sq=partial_eta,
        noncentrality=f_val * df,
        observed_power=observed_power(f_val, df, df_error, alpha),
    )


def evaluate_hypothesis(
    L: NDArray,
    beta: NDArray,
    G: NDArray,
    sse: float,
    df_error: int,
    alpha: float = 0.05,
) -> HypothesisTest:
    """SS_H for L beta = 0 followed by its F test."""
    ss, df = hypothesis_ss(L, beta, G)
    return f_test(ss, df, sse, df_error, alpha)
