"""
Estimated marginal means (EMMs).

The EMM of a level combination is l b, where l is the design row of
that combination averaged, unweighted, over the levels of every other
factor, with covariates held at their means. Its standard error is
sqrt(l G l' MSE). A request names one factor ('A'), a factor
combination ('A*B') or the grand mean ('(OVERALL)').

For a single factor two more tables are produced:

    pairwise comparisons   every pair i < j, diff = EMM_j - EMM_i, with
                           p-values and intervals adjusted for the
                           k(k-1)/2 comparisons (LSD, Bonferroni, Sidak)
    univariate test        F test of EMM_i - EMM_last = 0, i < last

A non-estimable EMM (its row touches a redundant parameter) is reported
with NaN statistics.
"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo
from pyglm.core.exceptions import AliasedParameterError, ConfigurationError, RankDeficiencyError
from pyglm.core.validation import check_choice
from pyglm.glm._common import MarginalMean, MarginalMeans, PairwiseComparison
from pyglm.glm._design_matrix import DesignMatrixInfo
from pyglm.glm._estimable import marginal_mean_rows
from pyglm.glm._hypothesis import evaluate_hypothesis
from pyglm.glm._kmatrix import check_estimable
from pyglm.glm._terms import level_combinations

logger = logging.getLogger(__name__)

NAN = float('nan')

OVERALL = '(OVERALL)'
ADJUSTMENTS = ('lsd', 'bonferroni', 'sidak')


def parse_request(request: str, info: DesignMatrixInfo) -> tuple[str, ...]:
    """
    Factors named by an EMM request; () for the grand mean.

    Raises:
        ConfigurationError: If a name is not a coded factor of the design
    """
    request = request.strip()
    if request.upper() == OVERALL:
        return ()
    factors = tuple(part.strip() for part in request.split('*'))
    for f in factors:
        if f not in info.factor_details:
            raise ConfigurationError(
                f"marginal means requested for '{f}', which is not a coded factor "
                f"of the model (factors: {list(info.factor_details)})",
                variable=f,
            )
    return factors


def adjusted_alpha(alpha: float, m: int, adjustment: str) -> float:
    """Per-comparison significance level for m comparisons."""
    if adjustment == 'bonferroni':
        return alpha / m
    if adjustment == 'sidak':
        return 1.0 - (1.0 - alpha) ** (1.0 / m)
    return alpha


def adjust_p(p: float, m: int, adjustment: str) -> float:
    """Familywise p-value for one of m comparisons."""
    if not np.isfinite(p):
        return NAN
    if adjustment == 'bonferroni':
        return min(p * m, 1.0)
    if adjustment == 'sidak':
        return min(1.0 - (1.0 - p) ** m, 1.0)
    return p


def _pairwise(
    levels: tuple[str, ...],
    L: NDArray[np.floating[Any]],
    ok: list[bool],
    swept: SweptMatrixInfo,
    mse: float,
    df_error: int,
    alpha: float,
    adjustment: str,
) -> tuple[PairwiseComparison, ...]:
    k = len(levels)
    m = k * (k - 1) // 2
    t_crit = float(sp_stats.t.ppf(1.0 - adjusted_alpha(alpha, m, adjustment) / 2.0, df_error))

    comparisons: list[PairwiseComparison] = []
    for i in range(k):
        for j in range(i + 1, k):
            if not (ok[i] and ok[j]):
                comparisons.append(PairwiseComparison(
                    levels[i], levels[j], NAN, NAN, NAN, NAN, NAN, NAN,
                ))
                continue
            d = L[j] - L[i]
            diff = float(d @ swept.beta)
            var = float(d @ swept.G @ d) * mse
            se = float(np.sqrt(var)) if var > 0 else NAN
            t_val = diff / se if np.isfinite(se) else NAN
            p_raw = float(2.0 * sp_stats.t.sf(abs(t_val), df_error)) if np.isfinite(t_val) else NAN
            margin = t_crit * se
            comparisons.append(PairwiseComparison(
                level1=levels[i],
                level2=levels[j],
                diff=diff,
                std_error=se,
                t_value=t_val,
                p_value=adjust_p(p_raw, m, adjustment),
                ci_lower=diff - margin,
                ci_upper=diff + margin,
            ))
    return tuple(comparisons)


def marginal_means(
    info: DesignMatrixInfo,
    swept: SweptMatrixInfo,
    XtWX: NDArray[np.floating[Any]],
    request: str,
    *,
    df_error: int,
    alpha: float = 0.05,
    adjustment: str = 'lsd',
) -> tuple[MarginalMeans, tuple[str, ...]]:
    """
    Estimated marginal means for one request.

    Args:
        info: design matrix info
        swept: SWEEP results for the full model
        XtWX: (p, p) weighted cross-product of X
        request: 'A', 'A*B' or '(OVERALL)'
        df_error: error degrees of freedom
        alpha: significance level for intervals
        adjustment: 'lsd', 'bonferroni' or 'sidak' for pairwise comparisons

    Returns:
        (MarginalMeans, warnings)

    Raises:
        ConfigurationError: If the request names an unknown factor
        ValidationError: If adjustment is unknown
        RankDeficiencyError: If there are no error degrees of freedom
    """
    check_choice(adjustment, ADJUSTMENTS, 'adjustment')
    factors = parse_request(request, info)
    if df_error <= 0:
        raise RankDeficiencyError(
            f"no error degrees of freedom (df_error={df_error}); marginal means need an error term",
            df_error=df_error,
        )

    L = marginal_mean_rows(info, factors, info.covariate_means)
    combos = level_combinations([len(info.factor_details[f].levels) for f in factors])
    H = swept.G @ XtWX
    mse = swept.rss / df_error
    t_crit = float(sp_stats.t.ppf(1.0 - alpha / 2.0, df_error))
    name = '*'.join(factors) or OVERALL

    means: list[MarginalMean] = []
    ok: list[bool] = []
    warnings: list[str] = []
    for combo, l in zip(combos, L):
        levels = tuple(info.factor_details[f].levels[i] for f, i in zip(factors, combo))
        try:
            check_estimable(l, H, info.parameter_names, swept)
        except AliasedParameterError as e:
            logger.debug("marginal mean %s %s skipped: %s", name, levels, e)
            label = ', '.join(f"{f}={lv}" for f, lv in zip(factors, levels))
            warnings.append(f"marginal mean of {name} at {label} is not estimable")
            means.append(MarginalMean(levels, NAN, NAN, NAN, NAN))
            ok.append(False)
            continue
        est = float(l @ swept.beta)
        var = float(l @ swept.G @ l) * mse
        se = float(np.sqrt(var)) if var > 0 else NAN
        means.append(MarginalMean(levels, est, se, est - t_crit * se, est + t_crit * se))
        ok.append(True)

    comparisons: tuple[PairwiseComparison, ...] = ()
    test = None
    if len(factors) == 1:
        level_names = info.factor_details[factors[0]].levels
        comparisons = _pairwise(level_names, L, ok, swept, mse, df_error, alpha, adjustment)
        rows = [L[i] - L[-1] for i in range(len(L) - 1) if ok[i] and ok[-1]]
        L_test = np.vstack(rows) if rows else np.zeros((0, info.p_parameters))
        test = evaluate_hypothesis(L_test, swept.beta, swept.G, swept.rss, df_error, alpha)

    return MarginalMeans(
        factors=factors,
        covariate_means=dict(info.covariate_means),
        means=tuple(means),
        adjustment=adjustment,
        comparisons=comparisons,
        test=test,
    ), tuple(warnings)
