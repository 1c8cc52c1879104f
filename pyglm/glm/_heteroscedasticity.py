"""
Auxiliary-regression tests of constant error variance.

Each test regresses the squared residuals u = w e^2 on an auxiliary
design Z (with an intercept) and reads the statistic off that fit:

    white                   Z = predictors, squared covariates and
                            cross products between terms;  LM = n R^2
    breusch_pagan           Z = [1, y_hat];  BP = ESS / (2 sigma^4),
                            sigma^2 = RSS / n from the model fit
    modified_breusch_pagan  Z = [1, y_hat];  LM = n R^2 (Koenker)
    f_test                  Z = [1, y_hat];  F = (R^2 / df1) / ((1 - R^2) / df2)

Chi-square statistics have df = rank(Z) - 1; the F test has
df1 = rank(Z) - 1, df2 = n - rank(Z). A test without auxiliary
predictors reports NaN.
"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo
from pyglm.core.validation import check_choice
from pyglm.glm._common import HeteroscedasticityTest
from pyglm.glm._design_matrix import DesignMatrixInfo
from pyglm.glm._terms import INTERCEPT

logger = logging.getLogger(__name__)

NAN = float('nan')

HETEROSCEDASTICITY_TESTS = ('white', 'breusch_pagan', 'modified_breusch_pagan', 'f_test')

_PREDICTED = f"{INTERCEPT} + Predicted"


def auxiliary_regression(
    u: NDArray[np.floating[Any]],
    Z: NDArray[np.floating[Any]],
) -> tuple[float, float, int]:
    """
    Ordinary least squares of u on Z.

    Returns:
        (r_squared, explained SS, rank of Z)
    """
    coef, _, rank, _ = np.linalg.lstsq(Z, u, rcond=None)
    resid = u - Z @ coef
    tss = float(np.sum((u - u.mean()) ** 2))
    rss = float(resid @ resid)
    ess = tss - rss
    r2 = 0.0 if abs(tss) < 1e-12 else float(np.clip(ess / tss, 0.0, 1.0))
    return r2, ess, int(rank)


def predicted_matrix(y_hat: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """[1, y_hat], or just the intercept column when y_hat is constant."""
    ones = np.ones((y_hat.shape[0], 1), dtype=np.float64)
    if np.all(np.abs(y_hat - y_hat[0]) < 1e-9):
        return ones
    return np.column_stack([ones, y_hat])


def white_matrix(info: DesignMatrixInfo) -> tuple[NDArray[np.floating[Any]], tuple[str, ...]]:
    """
    White's auxiliary design and its column names.

    Columns: intercept, every non-intercept design column, the square of
    each column of a covariate-only term, and the product of every pair
    of columns that belong to different terms.
    """
    n = info.n_samples
    cols: list[NDArray] = [np.ones(n, dtype=np.float64)]
    names: list[str] = [INTERCEPT]
    predictors: list[tuple[int, int, bool]] = []   # (column, term position, covariate-only)
    for pos, t in enumerate(info.terms):
        if t.is_intercept:
            continue
        for j in t.columns:
            predictors.append((j, pos, not t.factors))
            cols.append(info.X[:, j])
            names.append(info.parameter_names[j])

    for i, (j1, pos1, squared) in enumerate(predictors):
        if squared:
            cols.append(info.X[:, j1] ** 2)
            names.append(f"{info.parameter_names[j1]}*{info.parameter_names[j1]}")
        for j2, pos2, _ in predictors[i + 1:]:
            if pos1 == pos2:
                continue
            cols.append(info.X[:, j1] * info.X[:, j2])
            names.append(f"{info.parameter_names[j1]}*{info.parameter_names[j2]}")
    return np.column_stack(cols), tuple(names)


def _chi_square(name: str, statistic: float, df: int, auxiliary: str) -> HeteroscedasticityTest:
    if df <= 0 or not np.isfinite(statistic):
        return HeteroscedasticityTest(name, NAN, max(df, 0), None, NAN, auxiliary)
    p = float(sp_stats.chi2.sf(statistic, df))
    return HeteroscedasticityTest(name, float(statistic), df, None, p, auxiliary)


def white_test(u: NDArray, info: DesignMatrixInfo) -> HeteroscedasticityTest:
    Z, names = white_matrix(info)
    r2, _, rank = auxiliary_regression(u, Z)
    auxiliary = ' + '.join(names)
    return _chi_square('white', u.shape[0] * r2, rank - 1, auxiliary)


def breusch_pagan_test(u: NDArray, Z: NDArray, rss: float) -> HeteroscedasticityTest:
    n = u.shape[0]
    _, ess, rank = auxiliary_regression(u, Z)
    sigma2 = rss / n if n > 0 else NAN
    if not np.isfinite(sigma2) or abs(sigma2) < 1e-12:
        return HeteroscedasticityTest('breusch_pagan', NAN, max(rank - 1, 0), None, NAN, _PREDICTED)
    return _chi_square('breusch_pagan', ess / (2.0 * sigma2 ** 2), rank - 1, _PREDICTED)


def modified_breusch_pagan_test(u: NDArray, Z: NDArray) -> HeteroscedasticityTest:
    r2, _, rank = auxiliary_regression(u, Z)
    return _chi_square('modified_breusch_pagan', u.shape[0] * r2, rank - 1, _PREDICTED)


def auxiliary_f_test(u: NDArray, Z: NDArray) -> HeteroscedasticityTest:
    n = u.shape[0]
    r2, _, rank = auxiliary_regression(u, Z)
    df1, df2 = rank - 1, n - rank
    if df1 <= 0 or df2 <= 0 or r2 >= 1.0:
        return HeteroscedasticityTest('f_test', NAN, max(df1, 0), max(df2, 0), NAN, _PREDICTED)
    f_value = (r2 / df1) / ((1.0 - r2) / df2)
    p = float(sp_stats.f.sf(f_value, df1, df2))
    return HeteroscedasticityTest('f_test', float(f_value), df1, df2, p, _PREDICTED)


def heteroscedasticity_tests(
    info: DesignMatrixInfo,
    swept: SweptMatrixInfo,
    tests: tuple[str, ...] = HETEROSCEDASTICITY_TESTS,
) -> tuple[HeteroscedasticityTest, ...]:
    """
    Run the requested tests on a fitted model.

    Squared residuals carry the case weights: u = w (y - X b)^2.

    Args:
        info: design matrix info
        swept: SWEEP results for the full model
        tests: names from HETEROSCEDASTICITY_TESTS, in output order

    Raises:
        ValidationError: If a test name is unknown
    """
    for name in tests:
        check_choice(name, HETEROSCEDASTICITY_TESTS, 'heteroscedasticity')

    y_hat = info.X @ swept.beta
    u = info.weights * (info.y - y_hat) ** 2
    Z = predicted_matrix(y_hat)
    logger.debug("heteroscedasticity tests %s on %d cases", tests, info.n_samples)

    out: list[HeteroscedasticityTest] = []
    for name in tests:
        if name == 'white':
            out.append(white_test(u, info))
        elif name == 'breusch_pagan':
            out.append(breusch_pagan_test(u, Z, swept.rss))
        elif name == 'modified_breusch_pagan':
            out.append(modified_breusch_pagan_test(u, Z))
        else:
            out.append(auxiliary_f_test(u, Z))
    return tuple(out)
