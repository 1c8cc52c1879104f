"""
Common data types for the GLM engine.

Contains the frozen parameter payloads that go inside Result[P] envelopes.
Each payload is a pure data container: no methods, no computation.
Statistics that cannot be computed are NaN, never omitted.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True)
class HypothesisTest:
    """Test of one hypothesis L beta = 0 against the model error."""
    sum_sq: float
    df: int
    mean_sq: float
    f_value: float
    p_value: float
    partial_eta_sq: float
    noncentrality: float
    observed_power: float


@dataclass(frozen=True)
class EffectTestRow:
    """One row of the tests of between-subjects effects."""
    source: str
    sum_sq: float
    df: int
    mean_sq: float
    f_value: float            # NaN for Error/Total rows
    p_value: float
    partial_eta_sq: float
    noncentrality: float
    observed_power: float


@dataclass(frozen=True)
class ParameterEstimateRow:
    """One parameter estimate (B) with its classic inference."""
    parameter: str
    b: float
    std_error: float
    t_value: float
    p_value: float
    ci_lower: float
    ci_upper: float
    partial_eta_sq: float
    noncentrality: float
    observed_power: float
    redundant: bool


@dataclass(frozen=True)
class RobustEstimateRow:
    """One parameter estimate with heteroskedasticity-consistent inference."""
    parameter: str
    b: float
    robust_se: float
    t_value: float
    p_value: float
    ci_lower: float
    ci_upper: float
    redundant: bool


@dataclass(frozen=True)
class LMatrixEntry:
    """
    One estimable-function row.

    row is aligned with the parameter list; description is in
    cell-mean notation, e.g. 'mu(A=2) - mu(A=1)'.
    """
    term: str
    label: str
    row: NDArray[np.floating[Any]]
    description: str


@dataclass(frozen=True)
class GeneralEstimableFunction:
    """L-matrix entries for every term, with the parameter list and notes."""
    parameters: tuple[str, ...]
    entries: tuple[LMatrixEntry, ...]
    notes: tuple[str, ...]


@dataclass(frozen=True)
class ContrastEstimate:
    """One contrast (row of K) for a factor."""
    label: str
    coefficients: tuple[float, ...]    # over the factor's levels
    estimate: float
    hypothesized: float
    std_error: float
    t_value: float
    p_value: float
    ci_lower: float
    ci_upper: float


@dataclass(frozen=True)
class ContrastTest:
    """Contrast results for one factor plus the joint F test of the family."""
    factor: str
    method: str
    levels: tuple[str, ...]
    estimates: tuple[ContrastEstimate, ...]
    test: HypothesisTest


@dataclass(frozen=True)
class LeveneParams:
    """Parameter payload for Levene / Brown-Forsythe test."""
    f_value: float
    p_value: float
    df_between: int
    df_within: int
    center: str                    # 'mean' or 'median'
    group_vars: dict[str, float]   # cell -> variance


@dataclass(frozen=True)
class HeteroscedasticityTest:
    """
    One auxiliary-regression test of constant error variance.

    df_denom is set for the F test only; auxiliary names the design the
    squared residuals were regressed on.
    """
    name: str
    statistic: float
    df: int
    df_denom: int | None
    p_value: float
    auxiliary: str


@dataclass(frozen=True)
class MarginalMean:
    """Estimated marginal mean of one level combination."""
    levels: tuple[str, ...]    # aligned with MarginalMeans.factors
    mean: float
    std_error: float
    ci_lower: float
    ci_upper: float


@dataclass(frozen=True)
class PairwiseComparison:
    """Difference of two marginal means, level2 - level1."""
    level1: str
    level2: str
    diff: float
    std_error: float
    t_value: float
    p_value: float             # adjusted
    ci_lower: float
    ci_upper: float


@dataclass(frozen=True)
class MarginalMeans:
    """
    Estimated marginal means for one factor, factor combination, or the
    grand mean (factors == ()).

    Pairwise comparisons and the univariate test are filled in for a
    single factor only.
    """
    factors: tuple[str, ...]
    covariate_means: dict[str, float]
    means: tuple[MarginalMean, ...]
    adjustment: str            # 'lsd', 'bonferroni' or 'sidak'
    comparisons: tuple[PairwiseComparison, ...] = ()
    test: HypothesisTest | None = None


@dataclass(frozen=True)
class GLMParams:
    """
    Parameter payload for a univariate GLM analysis.

    effects holds Corrected Model, Intercept, one row per declared term,
    Error, Total and Corrected Total (Model/Error/Total without an
    intercept).
    """
    dependent: str
    effects: tuple[EffectTestRow, ...]
    ss_type: int
    n_obs: int
    rank: int
    df_error: int
    sse: float
    mse: float
    r_squared: float
    adj_r_squared: float
    parameters: tuple[str, ...]
    coefficients: NDArray[np.floating[Any]]
    estimates: tuple[ParameterEstimateRow, ...]
    aliased: tuple[str, ...]
    design_string: str
    alpha: float
    estimable_function: GeneralEstimableFunction
    robust_estimates: tuple[RobustEstimateRow, ...] | None = None
    hc_type: str | None = None
    contrasts: tuple[ContrastTest, ...] = ()
    levene: LeveneParams | None = None
    heteroscedasticity: tuple[HeteroscedasticityTest, ...] = ()
    marginal_means: tuple[MarginalMeans, ...] = ()
