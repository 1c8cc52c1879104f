"""
GLM solver dispatch.

Public API:
    glm(data, dependent, ...) -> GLMSolution
    design_matrix(data, dependent, ...) -> DesignMatrixInfo
    levene_test(y, group, ...) -> LeveneSolution
"""

import logging
import warnings
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo, cross_product, sweep
from pyglm.core.compute.timing import Timer
from pyglm.core.datasource import DataSource
from pyglm.core.exceptions import (
    ConfigurationError,
    NumericalError,
    RankDeficiencyError,
    ValidationError,
)
from pyglm.core.result import Result
from pyglm.core.validation import check_choice, check_probability
from pyglm.glm._common import (
    ContrastTest,
    EffectTestRow,
    GLMParams,
    HeteroscedasticityTest,
    LeveneParams,
    MarginalMeans,
)
from pyglm.glm._contrasts import ContrastMethod, format_level
from pyglm.glm._design_matrix import DesignMatrixInfo, build_design_matrix
from pyglm.glm._emmeans import ADJUSTMENTS, marginal_means
from pyglm.glm._estimable import general_estimable_function
from pyglm.glm._estimates import parameter_estimates, robust_estimates
from pyglm.glm._heteroscedasticity import HETEROSCEDASTICITY_TESTS, heteroscedasticity_tests
from pyglm.glm._hypothesis import f_test
from pyglm.glm._kmatrix import contrast_test
from pyglm.glm._levene import cell_labels, levene_test_impl
from pyglm.glm._robust import HCType, robust_covariance
from pyglm.glm._ss import SumOfSquaresType, sequential_states, term_ss
from pyglm.glm._terms import INTERCEPT, design_string, term_name
from pyglm.glm.design import FactorSpec, GLMDesign, ModelSpec, parse_contrasts
from pyglm.glm.solution import GLMSolution, LeveneSolution

logger = logging.getLogger(__name__)

NAN = float('nan')


def glm(
    data: Any,
    dependent: str,
    *,
    factors: Sequence[str | FactorSpec] = (),
    covariates: Sequence[str] = (),
    interactions: Sequence[str | Sequence[str]] | None = None,
    terms: Sequence[str | Sequence[str]] | None = None,
    intercept: bool = True,
    weights: str | None = None,
    case_id: str | None = None,
    contrasts: Sequence[FactorSpec] | Mapping[str, Any] | None = None,
    ss_type: int = 3,
    alpha: float = 0.05,
    robust: HCType | str | None = None,
    contrast_tests: Sequence[str | FactorSpec] | Mapping[str, Any] | None = None,
    levene: bool | str = False,
    heteroscedasticity: bool | Sequence[str] = False,
    emmeans: str | Sequence[str] | None = None,
    emmeans_adjustment: str = 'lsd',
) -> GLMSolution:
    """
    Univariate General Linear Model.

    Fits y = X beta by weighted least squares with the SWEEP operator and
    tests every model term with Type I, II, III or IV sums of squares.

    Args:
        data: DataSource, {name: array} mapping, pandas DataFrame or
            list of record dicts
        dependent: response column
        factors: categorical predictors (names or FactorSpec)
        covariates: continuous predictors
        interactions: None for the full factorial over the factors;
            otherwise the interactions to include ("A*B" strings)
        terms: explicit custom model, overriding factors/covariates/
            interactions as the term list
        intercept: include an intercept. Default True.
        weights: case-weight column (WLS); cases with a missing or
            non-positive weight are dropped
        case_id: case-identifier column
        contrasts: per-factor contrast coding of the design matrix, as
            FactorSpec objects or {name: method} / {name: (method, reference)}
        ss_type: Type of sums of squares (1, 2, 3 or 4). Default 3.
        alpha: significance level for confidence intervals and observed
            power. Default 0.05.
        robust: HC0..HC4 to add heteroskedasticity-consistent parameter
            estimates, or None
        contrast_tests: factors to test with custom contrasts; a name
            alone uses deviation contrasts, a FactorSpec or mapping picks
            the method and reference
        levene: True (or 'mean') for Levene's test across design cells,
            'median' for the Brown-Forsythe variant
        heteroscedasticity: True for the White, Breusch-Pagan, modified
            Breusch-Pagan and F tests, or a subset of their names
            ('white', 'breusch_pagan', 'modified_breusch_pagan', 'f_test')
        emmeans: estimated marginal means to report: factor names, factor
            combinations ('A*B') or '(OVERALL)' for the grand mean
        emmeans_adjustment: multiple-comparison adjustment of the
            pairwise EMM comparisons: 'lsd' (none), 'bonferroni' or 'sidak'

    Returns:
        GLMSolution with the effects table, parameter estimates, the
        general estimable function and any requested extras

    Raises:
        ConfigurationError: Missing or unknown variables, no valid cases,
            no columns generated
        ValidationError: Invalid option values

    Examples:
        >>> result = glm(source, 'score', factors=['group'], covariates=['age'])
        >>> print(result.summary())
        >>> result.effect('group').p_value
        >>> glm(source, 'score', factors=['A', 'B'], ss_type=1, robust='HC3')
    """
    ss_type = SumOfSquaresType.parse(ss_type)
    alpha = check_probability(alpha, 'alpha')
    hc_type = HCType.parse(robust) if robust is not None else None
    levene_center = _levene_center(levene)
    hetero_tests = _heteroscedasticity_requests(heteroscedasticity)
    emm_requests = [emmeans] if isinstance(emmeans, str) else list(emmeans or ())
    emmeans_adjustment = str(emmeans_adjustment).strip().lower()
    check_choice(emmeans_adjustment, ADJUSTMENTS, 'emmeans_adjustment')

    timer = Timer()
    timer.start()
    warn_list: list[str] = []

    with timer.section('design'):
        design = _bind(
            data, dependent,
            factors=factors, covariates=covariates, interactions=interactions,
            terms=terms, intercept=intercept, weights=weights, case_id=case_id,
            contrasts=contrasts,
        )
        info = build_design_matrix(design)
    warn_list.extend(design.notes)
    for name in info.omitted_terms:
        warn_list.append(f"term '{name}' has no columns (fewer than 2 observed levels)")

    with timer.section('sweep'):
        ZtWZ = cross_product(info.X, info.y, info.w)
        swept = sweep(ZtWZ, info.p_parameters)

    n = info.n_samples
    rank = swept.rank
    df_error = n - rank
    sse = swept.rss
    mse = sse / df_error if df_error > 0 else NAN

    if swept.aliased.any():
        redundant = [info.parameter_names[i] for i in np.flatnonzero(swept.aliased)]
        warn_list.append(
            f"{len(redundant)} parameter(s) aliased and set to zero: {', '.join(redundant)}"
        )
    if df_error <= 0:
        warn_list.append(
            f"model is saturated (rank {rank} with {n} cases); no error degrees of freedom"
        )

    with timer.section('hypothesis_tests'):
        effects = _effects_table(
            ZtWZ, info, design.spec, swept, ss_type, df_error, alpha, warn_list
        )
        estimates = parameter_estimates(info.parameter_names, swept, mse, df_error, alpha)
        estimable = general_estimable_function(
            info, swept.aliased,
            ss_type=4 if ss_type is SumOfSquaresType.TYPE_IV else 3,
        )

    robust_rows = None
    if hc_type is not None:
        with timer.section('robust'):
            residuals = info.y - info.X @ swept.beta
            cov = robust_covariance(
                info.X, residuals, swept.G, rank,
                w=info.w, aliased=swept.aliased, hc_type=hc_type,
            )
            robust_rows = robust_estimates(info.parameter_names, swept, cov, df_error, alpha)

    contrast_results: list[ContrastTest] = []
    if contrast_tests:
        with timer.section('contrasts'):
            XtWX = ZtWZ[:-1, :-1]
            for fs in _contrast_requests(contrast_tests):
                if fs.name not in info.factor_details:
                    raise ConfigurationError(
                        f"contrast requested for '{fs.name}', which is not a coded factor "
                        f"of the model (factors: {list(info.factor_details)})",
                        variable=fs.name,
                    )
                try:
                    ct, ct_warnings = contrast_test(
                        info, swept, XtWX, fs.name,
                        method=fs.method, reference=fs.reference,
                        df_error=df_error, alpha=alpha,
                    )
                except NumericalError as e:
                    logger.debug("contrast test for %s failed: %s", fs.name, e)
                    warn_list.append(f"contrast test for '{fs.name}' unavailable: {e}")
                    continue
                contrast_results.append(ct)
                warn_list.extend(ct_warnings)

    levene_params: LeveneParams | None = None
    if levene_center is not None:
        with timer.section('levene'):
            levene_params = levene_test_impl(info.y, cell_labels(info), center=levene_center)

    hetero_results: tuple[HeteroscedasticityTest, ...] = ()
    if hetero_tests:
        with timer.section('heteroscedasticity'):
            hetero_results = heteroscedasticity_tests(info, swept, hetero_tests)

    emm_results: list[MarginalMeans] = []
    if emm_requests:
        with timer.section('emmeans'):
            XtWX = ZtWZ[:-1, :-1]
            for request in emm_requests:
                try:
                    emm, emm_warnings = marginal_means(
                        info, swept, XtWX, str(request),
                        df_error=df_error, alpha=alpha, adjustment=emmeans_adjustment,
                    )
                except RankDeficiencyError as e:
                    logger.debug("marginal means for %s failed: %s", request, e)
                    warn_list.append(f"marginal means for '{request}' unavailable: {e}")
                    continue
                emm_results.append(emm)
                warn_list.extend(emm_warnings)

    timer.stop()

    # R^2 is against the uncorrected total for no-intercept models
    ss_total = _corrected_total(info) if info.has_intercept else _uncorrected_total(info)
    r_squared, adj_r_squared = _r_squared(
        ss_total - sse, ss_total, n, df_error, info.has_intercept
    )

    for msg in warn_list:
        warnings.warn(msg, RuntimeWarning, stacklevel=2)

    params = GLMParams(
        dependent=design.spec.dependent,
        effects=tuple(effects),
        ss_type=int(ss_type),
        n_obs=n,
        rank=rank,
        df_error=df_error,
        sse=sse,
        mse=mse,
        r_squared=r_squared,
        adj_r_squared=adj_r_squared,
        parameters=info.parameter_names,
        coefficients=swept.beta,
        estimates=estimates,
        aliased=tuple(info.parameter_names[i] for i in np.flatnonzero(swept.aliased)),
        design_string=design_string(_declared_terms(design.spec)),
        alpha=alpha,
        estimable_function=estimable,
        robust_estimates=robust_rows,
        hc_type=None if hc_type is None else hc_type.value,
        contrasts=tuple(contrast_results),
        levene=levene_params,
        heteroscedasticity=hetero_results,
        marginal_means=tuple(emm_results),
    )

    result = Result(
        params=params,
        info={
            'ss_type': int(ss_type),
            'n_dropped': design.n_dropped,
            'omitted_terms': info.omitted_terms,
            'term_columns': info.term_column_indices,
            'case_index': info.case_index,
            '_design': info,
            '_swept': swept,
        },
        timing=timer.result(),
        backend_name='cpu',
        warnings=tuple(warn_list),
    )

    return GLMSolution(_result=result)


def design_matrix(
    data: Any,
    dependent: str,
    **spec_options: Any,
) -> DesignMatrixInfo:
    """
    Build the design matrix without fitting.

    Accepts the same data and model options as glm() (factors,
    covariates, interactions, terms, intercept, weights, case_id,
    contrasts).

    Examples:
        >>> info = design_matrix(source, 'y', factors=['Group'], covariates=['X'])
        >>> info.parameter_names
        ('Intercept', 'X', '[Group=1]', '[Group=2]')
        >>> info.term_column_indices['Group']
        (2, 3)
    """
    return build_design_matrix(_bind(data, dependent, **spec_options))


def levene_test(
    y: Any,
    group: Any,
    *,
    center: str = 'mean',
) -> LeveneSolution:
    """
    Levene's test for homogeneity of variances.

    Tests the null hypothesis that all groups have equal variances.
    center='median' gives the Brown-Forsythe variant, which is more
    robust to non-normality. Cases with a missing response or group are
    dropped.

    Args:
        y: Response variable (1D numeric array-like)
        group: Group labels (1D array-like, same length as y)
        center: 'mean' (Levene, default) or 'median' (Brown-Forsythe)

    Returns:
        LeveneSolution with F statistic, p-value, and group variances

    Examples:
        >>> result = levene_test(y, group)
        >>> result.p_value > 0.05  # Can't reject equal variances
        >>> print(result.summary())
    """
    timer = Timer()
    timer.start()

    design = GLMDesign.for_arrays(y, factors={'group': group}, interactions=[])
    labels = np.array([format_level(v) for v in design.factors['group']], dtype=object)
    levene_params = levene_test_impl(design.y, labels, center=center)

    timer.stop()

    result = Result(
        params=levene_params,
        info={'center': center, 'n_dropped': design.n_dropped},
        timing=timer.result(),
        backend_name='cpu',
        warnings=design.notes,
    )

    return LeveneSolution(_result=result)


# =====================================================================
# Internal helpers
# =====================================================================


def _as_datasource(data: Any) -> DataSource:
    if isinstance(data, DataSource):
        return data
    if isinstance(data, Mapping):
        return DataSource.from_arrays(**{str(k): v for k, v in data.items()})
    if hasattr(data, 'columns') and hasattr(data, 'dtypes'):
        return DataSource.from_dataframe(data)
    if isinstance(data, (list, tuple)):
        return DataSource.from_records(data)
    raise ValidationError(
        f"data: expected DataSource, mapping, DataFrame or records, got {type(data).__name__}"
    )


def _bind(data: Any, dependent: str, **spec_options: Any) -> GLMDesign:
    source = _as_datasource(data)
    spec = ModelSpec.build(dependent, **spec_options)
    design = GLMDesign.from_datasource(source, spec)
    logger.debug(
        "bound %d cases (%d dropped) to model %s",
        design.n, design.n_dropped, _declared_terms(spec),
    )
    return design


def _declared_terms(spec: ModelSpec) -> list[str]:
    names = [INTERCEPT] if spec.intercept else []
    return names + [term_name(t) for t in spec.terms]


def _levene_center(levene: bool | str) -> str | None:
    if levene is False or levene is None:
        return None
    if levene is True:
        return 'mean'
    center = str(levene).strip().lower()
    check_choice(center, ('mean', 'median'), 'levene')
    return center


def _heteroscedasticity_requests(requested: bool | Sequence[str]) -> tuple[str, ...]:
    if requested is False or requested is None:
        return ()
    if requested is True:
        return HETEROSCEDASTICITY_TESTS
    if isinstance(requested, str):
        requested = [requested]
    names = tuple(str(r).strip().lower() for r in requested)
    for name in names:
        check_choice(name, HETEROSCEDASTICITY_TESTS, 'heteroscedasticity')
    return names


def _contrast_requests(
    requests: Sequence[str | FactorSpec] | Mapping[str, Any],
) -> list[FactorSpec]:
    if isinstance(requests, Mapping):
        return list(parse_contrasts(requests).values())
    if isinstance(requests, str):
        requests = [requests]
    return [
        r if isinstance(r, FactorSpec) else FactorSpec(str(r), ContrastMethod.DEVIATION)
        for r in requests
    ]


def _corrected_total(info: DesignMatrixInfo) -> float:
    y, w = info.y, info.weights
    y_bar = float(np.sum(w * y) / np.sum(w))
    return float(np.sum(w * (y - y_bar) ** 2))


def _uncorrected_total(info: DesignMatrixInfo) -> float:
    y, w = info.y, info.weights
    return float(np.sum(w * y ** 2))


def _r_squared(
    ss_model: float,
    ss_total: float,
    n: int,
    df_error: int,
    has_intercept: bool,
) -> tuple[float, float]:
    if ss_total <= 0.0:
        return NAN, NAN
    r2 = float(np.clip(ss_model / ss_total, 0.0, 1.0))
    if df_error <= 0:
        return r2, NAN
    n_eff = n - 1 if has_intercept else n
    return r2, float(1.0 - (1.0 - r2) * n_eff / df_error)


def _effect_row(
    source: str,
    ss: float,
    df: int,
    sse: float,
    df_error: int,
    alpha: float,
) -> EffectTestRow:
    """Tested effect row; without error df only SS, df and MS are reported."""
    try:
        test = f_test(ss, df, sse, df_error, alpha)
    except RankDeficiencyError:
        ms = ss / df if df > 0 else NAN
        return EffectTestRow(source, ss, df, ms, NAN, NAN, NAN, NAN, NAN)
    return EffectTestRow(
        source=source,
        sum_sq=test.sum_sq,
        df=test.df,
        mean_sq=test.mean_sq,
        f_value=test.f_value,
        p_value=test.p_value,
        partial_eta_sq=test.partial_eta_sq,
        noncentrality=test.noncentrality,
        observed_power=test.observed_power,
    )


def _plain_row(source: str, ss: float, df: int, ms: float = NAN) -> EffectTestRow:
    return EffectTestRow(source, ss, df, ms, NAN, NAN, NAN, NAN, NAN)


def _effects_table(
    ZtWZ: NDArray,
    info: DesignMatrixInfo,
    spec: ModelSpec,
    swept: SweptMatrixInfo,
    ss_type: SumOfSquaresType,
    df_error: int,
    alpha: float,
    warn_list: list[str],
) -> list[EffectTestRow]:
    """
    Tests of between-subjects effects.

    Each declared term gets a row; a term whose sum of squares cannot be
    computed is reported with NaN statistics and a warning.
    """
    n = info.n_samples
    sse = swept.rss
    mse = sse / df_error if df_error > 0 else NAN
    states = sequential_states(ZtWZ, info) if ss_type is SumOfSquaresType.TYPE_I else None

    def term_row(name: str) -> EffectTestRow:
        if name in info.omitted_terms:
            return _plain_row(name, 0.0, 0)
        term_id = info.term_index(name)
        try:
            ss, df = term_ss(ZtWZ, info, swept, ss_type, term_id, states)
        except (NumericalError, np.linalg.LinAlgError) as e:
            logger.debug("sum of squares for %s failed: %s", name, e)
            warn_list.append(f"sum of squares for '{name}' could not be computed: {e}")
            return _plain_row(name, NAN, 0)
        if df == 0:
            warn_list.append(f"term '{name}' is not estimable (0 degrees of freedom)")
        return _effect_row(name, ss, df, sse, df_error, alpha)

    rows: list[EffectTestRow] = []
    if info.has_intercept:
        ss_model = max(_corrected_total(info) - sse, 0.0)
        rows.append(_effect_row('Corrected Model', ss_model, swept.rank - 1, sse, df_error, alpha))
        rows.append(term_row(INTERCEPT))
    else:
        ss_model = max(_uncorrected_total(info) - sse, 0.0)
        rows.append(_effect_row('Model', ss_model, swept.rank, sse, df_error, alpha))

    rows.extend(term_row(term_name(t)) for t in spec.terms)

    rows.append(_plain_row('Error', sse, df_error, mse))
    rows.append(_plain_row('Total', _uncorrected_total(info), n))
    if info.has_intercept:
        rows.append(_plain_row('Corrected Total', _corrected_total(info), n - 1))
    return rows
