"""
Custom contrast (K-matrix) tests for a factor.

The contrast coefficients over the k level means are the rows of

    K = inv([1 | C])[1:]

where C is the (k, k-1) coding matrix of the requested contrast method.
Each row of K sums to zero, and K is the dual of the coding: Indicator
and Simple give level-vs-reference contrasts, Deviation gives
level-vs-grand-mean, Helmert gives level-vs-later-levels, and so on.

K is lifted to parameter space through the unweighted marginal-mean rows
of the factor, L = K M, then each row is tested with a t test and the
whole family with the hypothesis evaluator's F test.
"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo
from pyglm.core.exceptions import AliasedParameterError, SingularMatrixError
from pyglm.glm._common import ContrastEstimate, ContrastTest
from pyglm.glm._contrasts import ContrastCoding, ContrastMethod, ReferenceCategory, encode
from pyglm.glm._design_matrix import DesignMatrixInfo
from pyglm.glm._estimable import marginal_mean_rows
from pyglm.glm._hypothesis import evaluate_hypothesis

logger = logging.getLogger(__name__)

NAN = float('nan')


def contrast_coefficients(coding: ContrastCoding) -> NDArray[np.floating[Any]]:
    """(k-1, k) contrast coefficients over the level means."""
    k = coding.k
    basis = np.column_stack([np.ones(k), coding.matrix])
    try:
        inv = np.linalg.inv(basis)
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(
            f"contrast basis for {coding.method.value} coding is singular",
            matrix_name='[1 | C]',
            expected_rank=k,
        ) from e
    return inv[1:]


def check_estimable(
    l: NDArray[np.floating[Any]],
    H: NDArray[np.floating[Any]],
    names: tuple[str, ...],
    swept: SweptMatrixInfo,
) -> None:
    """Raise AliasedParameterError unless l b is estimable: l H = l with H = G X'WX."""
    scale = max(1.0, float(np.max(np.abs(l))))
    if not np.allclose(l @ H, l, rtol=0.0, atol=1e-8 * scale):
        involved = tuple(
            names[i] for i in np.flatnonzero((np.abs(l) > 0) & swept.aliased)
        )
        raise AliasedParameterError(
            f"contrast is not estimable (involves redundant parameters {list(involved)})",
            parameters=involved,
        )


def contrast_test(
    info: DesignMatrixInfo,
    swept: SweptMatrixInfo,
    XtWX: NDArray[np.floating[Any]],
    factor: str,
    *,
    method: ContrastMethod | str = ContrastMethod.DEVIATION,
    reference: ReferenceCategory | str = ReferenceCategory.LAST,
    df_error: int,
    alpha: float = 0.05,
) -> tuple[ContrastTest, tuple[str, ...]]:
    """
    Contrast estimates and the joint F test for one factor.

    Non-estimable contrasts are reported with NaN statistics and a
    warning; the joint test uses the estimable ones only.

    Returns:
        (ContrastTest, warnings)

    Raises:
        KeyError: If factor is not a coded factor of the design
    """
    detail = info.factor_details[factor]
    coding = encode(detail.levels, method=method, reference=reference, name=factor)
    K = contrast_coefficients(coding)
    L = K @ marginal_mean_rows(info, factor)
    H = swept.G @ XtWX
    mse = swept.rss / df_error if df_error > 0 else NAN
    t_crit = float(sp_stats.t.ppf(1.0 - alpha / 2.0, df_error)) if df_error > 0 else NAN

    estimates: list[ContrastEstimate] = []
    usable: list[NDArray] = []
    warnings: list[str] = []
    for label, k_row, l in zip(coding.labels, K, L):
        coefficients = tuple(float(c) for c in k_row)
        try:
            check_estimable(l, H, info.parameter_names, swept)
        except AliasedParameterError as e:
            logger.debug("contrast %s skipped: %s", label, e)
            warnings.append(f"{label}: {e}")
            estimates.append(ContrastEstimate(label, coefficients, NAN, 0.0, NAN, NAN, NAN, NAN, NAN))
            continue
        usable.append(l)
        est = float(l @ swept.beta)
        var = float(l @ swept.G @ l) * mse
        se = float(np.sqrt(var)) if np.isfinite(var) and var > 0 else NAN
        if np.isfinite(se):
            t_val = est / se
            p_val = float(2.0 * sp_stats.t.sf(abs(t_val), df_error))
            lo, hi = est - t_crit * se, est + t_crit * se
        else:
            t_val = p_val = lo = hi = NAN
        estimates.append(ContrastEstimate(label, coefficients, est, 0.0, se, t_val, p_val, lo, hi))

    L_ok = np.vstack(usable) if usable else np.zeros((0, info.p_parameters))
    test = evaluate_hypothesis(L_ok, swept.beta, swept.G, swept.rss, df_error, alpha)
    return ContrastTest(
        factor=factor,
        method=coding.method.value,
        levels=detail.levels,
        estimates=tuple(estimates),
        test=test,
    ), tuple(warnings)
