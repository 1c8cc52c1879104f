"""
User-facing GLM solution types.

Each solution wraps a Result[Params] and provides convenient accessors
and formatted text tables.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo
from pyglm.core.result import Result
from pyglm.glm._common import (
    ContrastTest,
    EffectTestRow,
    GeneralEstimableFunction,
    GLMParams,
    HeteroscedasticityTest,
    LeveneParams,
    MarginalMeans,
    ParameterEstimateRow,
    RobustEstimateRow,
)
from pyglm.glm._design_matrix import DesignMatrixInfo

_RULE = "=" * 100
_THIN = "-" * 100

_HETERO_LABELS = {
    'white': "White Test",
    'breusch_pagan': "Breusch-Pagan Test",
    'modified_breusch_pagan': "Modified Breusch-Pagan Test",
    'f_test': "F Test",
}


# =====================================================================
# GLMSolution
# =====================================================================


@dataclass
class GLMSolution:
    """
    User-facing result for a univariate GLM analysis.

    Produced by glm().
    """
    _result: Result[GLMParams]

    @property
    def effects(self) -> tuple[EffectTestRow, ...]:
        """Tests of between-subjects effects, one row per source."""
        return self._result.params.effects

    def effect(self, source: str) -> EffectTestRow:
        """Row of the effects table by source name ('Intercept', 'A*B', 'Error', ...)."""
        for row in self.effects:
            if row.source == source:
                return row
        raise KeyError(f"no effect row named '{source}'")

    @property
    def dependent(self) -> str:
        return self._result.params.dependent

    @property
    def ss_type(self) -> int:
        return self._result.params.ss_type

    @property
    def n_obs(self) -> int:
        return self._result.params.n_obs

    @property
    def rank(self) -> int:
        return self._result.params.rank

    @property
    def df_error(self) -> int:
        return self._result.params.df_error

    @property
    def sse(self) -> float:
        return self._result.params.sse

    @property
    def mse(self) -> float:
        return self._result.params.mse

    @property
    def r_squared(self) -> float:
        return self._result.params.r_squared

    @property
    def adj_r_squared(self) -> float:
        return self._result.params.adj_r_squared

    @property
    def parameters(self) -> tuple[str, ...]:
        return self._result.params.parameters

    @property
    def coefficients(self) -> NDArray:
        return self._result.params.coefficients

    @property
    def estimates(self) -> tuple[ParameterEstimateRow, ...]:
        return self._result.params.estimates

    @property
    def robust_estimates(self) -> tuple[RobustEstimateRow, ...] | None:
        return self._result.params.robust_estimates

    @property
    def hc_type(self) -> str | None:
        return self._result.params.hc_type

    @property
    def aliased(self) -> tuple[str, ...]:
        return self._result.params.aliased

    @property
    def design_string(self) -> str:
        return self._result.params.design_string

    @property
    def estimable_function(self) -> GeneralEstimableFunction:
        return self._result.params.estimable_function

    @property
    def contrasts(self) -> tuple[ContrastTest, ...]:
        return self._result.params.contrasts

    @property
    def levene(self) -> LeveneParams | None:
        return self._result.params.levene

    @property
    def heteroscedasticity(self) -> tuple[HeteroscedasticityTest, ...]:
        return self._result.params.heteroscedasticity

    @property
    def marginal_means(self) -> tuple[MarginalMeans, ...]:
        return self._result.params.marginal_means

    @property
    def design_matrix(self) -> DesignMatrixInfo:
        return self._result.info['_design']

    @property
    def swept(self) -> SweptMatrixInfo:
        return self._result.info['_swept']

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def summary(self) -> str:
        """Tests of between-subjects effects and parameter estimates as text."""
        lines = [
            f"Tests of Between-Subjects Effects (Type {_roman(self.ss_type)} SS)",
            f"Dependent Variable: {self.dependent}",
            _RULE,
            f"{'Source':<24} {'Sum Sq':>14} {'df':>5} {'Mean Sq':>14} {'F':>10} "
            f"{'Sig.':>8} {'PartEta2':>9} {'Power':>7}",
            _THIN,
        ]
        for row in self.effects:
            lines.append(
                f"{row.source:<24} {_num(row.sum_sq, 14, 4)} {row.df:>5} "
                f"{_num(row.mean_sq, 14, 4)} {_num(row.f_value, 10, 3)} "
                f"{_num(row.p_value, 8, 3)} {_num(row.partial_eta_sq, 9, 3)} "
                f"{_num(row.observed_power, 7, 3)}"
            )
        lines.append(_THIN)
        lines.append(
            f"R Squared = {self.r_squared:.3f} "
            f"(Adjusted R Squared = {self.adj_r_squared:.3f})"
        )
        lines.append(f"Design: {self.design_string}")

        lines.extend([
            "",
            "Parameter Estimates",
            _RULE,
            f"{'Parameter':<32} {'B':>12} {'Std. Error':>12} {'t':>9} {'Sig.':>8} "
            f"{'Lower':>11} {'Upper':>11}",
            _THIN,
        ])
        for est in self.estimates:
            b = f"{0.0:>12.4f}" if est.redundant else _num(est.b, 12, 4)
            mark = "  (redundant)" if est.redundant else ""
            lines.append(
                f"{est.parameter:<32} {b} {_num(est.std_error, 12, 4)} "
                f"{_num(est.t_value, 9, 3)} {_num(est.p_value, 8, 3)} "
                f"{_num(est.ci_lower, 11, 4)} {_num(est.ci_upper, 11, 4)}{mark}"
            )

        if self.robust_estimates is not None:
            lines.extend([
                "",
                f"Parameter Estimates with Robust Standard Errors ({self.hc_type})",
                _THIN,
            ])
            for est in self.robust_estimates:
                lines.append(
                    f"{est.parameter:<32} {_num(est.b, 12, 4)} {_num(est.robust_se, 12, 4)} "
                    f"{_num(est.t_value, 9, 3)} {_num(est.p_value, 8, 3)}"
                )

        for ct in self.contrasts:
            lines.extend(["", f"Contrast Results ({ct.method}) for {ct.factor}", _THIN])
            for est in ct.estimates:
                lines.append(
                    f"{est.label:<32} {_num(est.estimate, 12, 4)} {_num(est.std_error, 12, 4)} "
                    f"{_num(est.p_value, 8, 3)}"
                )
            lines.append(
                f"Test: F({ct.test.df}, {self.df_error}) = {_num(ct.test.f_value, 0, 3).strip()}, "
                f"p = {_num(ct.test.p_value, 0, 4).strip()}"
            )

        if self.levene is not None:
            lv = self.levene
            lines.extend([
                "",
                "Levene's Test of Equality of Error Variances",
                f"F({lv.df_between}, {lv.df_within}) = {_num(lv.f_value, 0, 3).strip()}, "
                f"p = {_num(lv.p_value, 0, 4).strip()}",
            ])

        if self.heteroscedasticity:
            lines.extend(["", "Heteroscedasticity Tests", _THIN])
            for ht in self.heteroscedasticity:
                df = f"{ht.df}, {ht.df_denom}" if ht.df_denom is not None else f"{ht.df}"
                lines.append(
                    f"{_HETERO_LABELS[ht.name]:<32} {_num(ht.statistic, 12, 4)} "
                    f"{'df = ' + df:>14} {_num(ht.p_value, 8, 3)}"
                )

        for emm in self.marginal_means:
            name = '*'.join(emm.factors) or 'Grand Mean'
            lines.extend(["", f"Estimated Marginal Means: {name}", _THIN])
            for m in emm.means:
                label = ', '.join(m.levels) or 'Grand Mean'
                lines.append(
                    f"{label:<32} {_num(m.mean, 12, 4)} {_num(m.std_error, 12, 4)} "
                    f"{_num(m.ci_lower, 11, 4)} {_num(m.ci_upper, 11, 4)}"
                )
            if emm.comparisons:
                lines.append(f"Pairwise comparisons (adjustment: {emm.adjustment})")
                for c in emm.comparisons:
                    lines.append(
                        f"{c.level2 + ' - ' + c.level1:<32} {_num(c.diff, 12, 4)} "
                        f"{_num(c.std_error, 12, 4)} {_num(c.p_value, 8, 3)}"
                    )
            if emm.test is not None:
                lines.append(
                    f"Test: F({emm.test.df}, {self.df_error}) = "
                    f"{_num(emm.test.f_value, 0, 3).strip()}, "
                    f"p = {_num(emm.test.p_value, 0, 4).strip()}"
                )

        if self.warnings:
            lines.append("")
            lines.extend(f"Note: {w}" for w in self.warnings)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"GLMSolution(dependent={self.dependent!r}, type={self.ss_type}, "
            f"n={self.n_obs}, design={self.design_string!r})"
        )


# =====================================================================
# LeveneSolution
# =====================================================================


@dataclass
class LeveneSolution:
    """
    User-facing result for Levene's test.

    Produced by levene_test().
    """
    _result: Result[LeveneParams]

    @property
    def f_value(self) -> float:
        return self._result.params.f_value

    @property
    def p_value(self) -> float:
        return self._result.params.p_value

    @property
    def df_between(self) -> int:
        return self._result.params.df_between

    @property
    def df_within(self) -> int:
        return self._result.params.df_within

    @property
    def center(self) -> str:
        return self._result.params.center

    @property
    def group_vars(self) -> dict[str, float]:
        return self._result.params.group_vars

    def summary(self) -> str:
        method = "Brown-Forsythe" if self.center == 'median' else "Levene"
        return "\n".join([
            f"{method} Test for Homogeneity of Variance",
            "=" * 50,
            f"F({self.df_between}, {self.df_within}) = {self.f_value:.4f}",
            f"p-value = {self.p_value:.4e}",
        ])

    def __repr__(self) -> str:
        return f"LeveneSolution(F={self.f_value:.4f}, p={self.p_value:.4e})"


def _roman(n: int) -> str:
    return {1: 'I', 2: 'II', 3: 'III', 4: 'IV'}.get(n, str(n))


def _num(value: float, width: int, digits: int) -> str:
    if value is None or not np.isfinite(value):
        return f"{'.':>{width}}"
    return f"{value:>{width}.{digits}f}"
