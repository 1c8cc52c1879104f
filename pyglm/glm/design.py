"""
GLM model configuration and design object.

ModelSpec declares variable roles (dependent, factors with their contrast
settings, covariates, interactions, weights). GLMDesign binds a ModelSpec
to the cases of a DataSource: it applies listwise deletion and keeps
only the validated, filtered columns the design-matrix builder needs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from pyglm.core.capabilities import CAPABILITY_MATERIALIZED
from pyglm.core.datasource import DataSource
from pyglm.core.exceptions import ConfigurationError, ValidationError
from pyglm.glm._contrasts import ContrastMethod, ReferenceCategory
from pyglm.glm._terms import full_factorial, parse_term, term_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FactorSpec:
    """
    A categorical predictor and its contrast settings.

    Attributes:
        name: column name in the data source
        method: contrast coding scheme
        reference: reference category (first or last level after sorting)
    """
    name: str
    method: ContrastMethod = ContrastMethod.INDICATOR
    reference: ReferenceCategory = ReferenceCategory.LAST

    def __post_init__(self) -> None:
        object.__setattr__(self, 'method', ContrastMethod.parse(self.method))
        object.__setattr__(self, 'reference', ReferenceCategory.parse(self.reference))


@dataclass(frozen=True)
class ModelSpec:
    """
    Variable roles for one analysis.

    Create via ModelSpec.build(), which accepts plain strings.

    Attributes:
        dependent: response column
        factors: categorical predictors, in declaration order
        covariates: continuous predictors, in declaration order
        terms: model terms excluding the intercept, in column order
        intercept: include an intercept column
        weights: case-weight column, or None
        case_id: case-identifier column, or None
    """
    dependent: str
    factors: tuple[FactorSpec, ...]
    covariates: tuple[str, ...]
    terms: tuple[tuple[str, ...], ...]
    intercept: bool = True
    weights: str | None = None
    case_id: str | None = None

    @staticmethod
    def build(
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
    ) -> 'ModelSpec':
        """
        Build a validated ModelSpec.

        Args:
            dependent: response column
            factors: factor names or FactorSpec objects
            covariates: covariate names
            interactions: None for the full factorial over the factors,
                otherwise the interactions to add ("A*B" strings or
                name sequences); [] gives a main-effects model
            terms: explicit custom model (overrides the default term
                list); each entry is a name or "A*B" string
            intercept: include an intercept
            weights: case-weight column
            case_id: case-identifier column
            contrasts: per-factor overrides, as FactorSpec objects or a
                {name: method} / {name: (method, reference)} mapping

        Returns:
            ModelSpec

        Raises:
            ConfigurationError: Missing dependent, duplicated or unknown
                variables in terms
        """
        if not dependent or not str(dependent).strip():
            raise ConfigurationError("dependent variable is not specified")

        factor_specs = [f if isinstance(f, FactorSpec) else FactorSpec(str(f)) for f in factors]
        overrides = parse_contrasts(contrasts)
        factor_specs = [overrides.get(f.name, f) for f in factor_specs]
        unknown = set(overrides) - {f.name for f in factor_specs}
        if unknown:
            raise ConfigurationError(
                f"contrasts given for undeclared factors: {sorted(unknown)}",
                variable=sorted(unknown)[0],
            )

        factor_names = [f.name for f in factor_specs]
        covariate_names = [str(c) for c in covariates]
        predictors = factor_names + covariate_names
        if len(set(predictors)) != len(predictors):
            raise ConfigurationError(f"a variable is declared more than once: {predictors}")
        if dependent in predictors:
            raise ConfigurationError(
                f"dependent variable '{dependent}' is also declared as a predictor",
                variable=dependent,
            )
        for role, name in (('weights', weights), ('case_id', case_id)):
            if name is not None and (name in predictors or name == dependent):
                raise ConfigurationError(
                    f"{role} column '{name}' is also used in the model", variable=name
                )

        if terms is not None:
            model_terms = [parse_term(t) for t in terms]
            model_terms = [t for t in model_terms if t]
        else:
            model_terms = [(c,) for c in covariate_names] + [(f,) for f in factor_names]
            if interactions is None:
                model_terms.extend(full_factorial(factor_names))
            else:
                model_terms.extend(parse_term(t) for t in interactions)

        known = set(predictors)
        seen: set[frozenset[str]] = set()
        for t in model_terms:
            for comp in t:
                if comp not in known:
                    raise ConfigurationError(
                        f"term '{term_name(t)}' uses undeclared variable '{comp}'",
                        variable=comp,
                    )
            key = frozenset(t)
            if key in seen:
                raise ConfigurationError(f"term '{term_name(t)}' is declared twice")
            seen.add(key)

        return ModelSpec(
            dependent=str(dependent),
            factors=tuple(factor_specs),
            covariates=tuple(covariate_names),
            terms=tuple(model_terms),
            intercept=bool(intercept),
            weights=weights,
            case_id=case_id,
        )

    @property
    def factor_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.factors)

    def factor(self, name: str) -> FactorSpec:
        for f in self.factors:
            if f.name == name:
                return f
        raise KeyError(name)

    def used_variables(self) -> tuple[str, ...]:
        """Predictors referenced by at least one term, in declaration order."""
        used = {comp for t in self.terms for comp in t}
        return tuple(v for v in self.factor_names + self.covariates if v in used)


def parse_contrasts(
    contrasts: Sequence[FactorSpec] | Mapping[str, Any] | None,
) -> dict[str, FactorSpec]:
    """Contrast settings keyed by factor name, from FactorSpecs or a mapping."""
    if contrasts is None:
        return {}
    if isinstance(contrasts, Mapping):
        out: dict[str, FactorSpec] = {}
        for name, setting in contrasts.items():
            if isinstance(setting, FactorSpec):
                out[name] = FactorSpec(name, setting.method, setting.reference)
            elif isinstance(setting, (tuple, list)):
                out[name] = FactorSpec(name, *setting)
            else:
                out[name] = FactorSpec(name, setting)
        return out
    return {f.name: f for f in contrasts}


def _missing_mask(column: NDArray) -> NDArray[np.bool_]:
    if column.dtype == object:
        return np.array([v is None for v in column], dtype=bool)
    return np.isnan(column)


@dataclass(frozen=True)
class GLMDesign:
    """
    Validated, case-filtered data bound to a ModelSpec.

    Created via factory methods, not directly.

    Attributes:
        spec: the model configuration
        y: (n,) response
        weights: (n,) positive case weights, or None
        factors: factor name -> (n,) raw values (float64 or object labels)
        covariates: covariate name -> (n,) float64
        case_ids: (n,) identifiers, or None
        case_index: (n,) row positions in the source that were kept
        n_dropped: cases removed by listwise deletion
    """
    spec: ModelSpec
    y: NDArray[np.floating[Any]]
    weights: NDArray[np.floating[Any]] | None
    factors: dict[str, NDArray]
    covariates: dict[str, NDArray[np.floating[Any]]]
    case_ids: NDArray | None
    case_index: NDArray[np.intp]
    n_dropped: int = 0
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def n(self) -> int:
        return self.y.shape[0]

    @staticmethod
    def from_datasource(source: DataSource, spec: ModelSpec) -> 'GLMDesign':
        """
        Bind a ModelSpec to a DataSource with listwise deletion.

        A case is dropped when the dependent value, the weight or any
        variable used by a model term is missing, or when its weight is
        not positive.

        Raises:
            ConfigurationError: Unknown columns, non-numeric dependent,
                covariate or weight, or no valid cases
        """
        if not source.supports(CAPABILITY_MATERIALIZED):
            raise ConfigurationError("data source does not provide materialized columns")

        def column(name: str, role: str) -> NDArray:
            if name not in source:
                raise ConfigurationError(
                    f"{role} '{name}' not found in data (available: {sorted(source.keys())})",
                    variable=name,
                )
            return source[name]

        y_col = column(spec.dependent, 'dependent variable')
        if y_col.dtype == object:
            raise ConfigurationError(
                f"dependent variable '{spec.dependent}' is not numeric", variable=spec.dependent
            )
        keep = ~np.isnan(y_col)

        w_col = None
        if spec.weights is not None:
            w_col = column(spec.weights, 'weight variable')
            if w_col.dtype == object:
                raise ConfigurationError(
                    f"weight variable '{spec.weights}' is not numeric", variable=spec.weights
                )
            w_safe = np.where(np.isnan(w_col), 0.0, w_col)
            keep &= ~np.isnan(w_col) & (w_safe > 0.0)

        used = set(spec.used_variables())
        raw_factors: dict[str, NDArray] = {}
        for name in spec.factor_names:
            if name in used:
                col = column(name, 'factor')
                raw_factors[name] = col
                keep &= ~_missing_mask(col)

        raw_covariates: dict[str, NDArray] = {}
        for name in spec.covariates:
            if name in used:
                col = column(name, 'covariate')
                if col.dtype == object:
                    raise ConfigurationError(
                        f"covariate '{name}' is not numeric", variable=name
                    )
                raw_covariates[name] = col
                keep &= ~np.isnan(col)

        case_col = column(spec.case_id, 'case identifier') if spec.case_id is not None else None

        n_total = y_col.shape[0]
        n_kept = int(np.sum(keep))
        if n_kept == 0:
            raise ConfigurationError(
                f"no valid cases: all {n_total} cases have missing values or non-positive weights"
            )

        notes: list[str] = []
        n_dropped = n_total - n_kept
        if n_dropped:
            notes.append(f"{n_dropped} of {n_total} cases excluded (missing values or non-positive weights)")
            logger.debug("listwise deletion dropped %d of %d cases", n_dropped, n_total)

        return GLMDesign(
            spec=spec,
            y=y_col[keep].astype(np.float64),
            weights=None if w_col is None else w_col[keep].astype(np.float64),
            factors={name: col[keep] for name, col in raw_factors.items()},
            covariates={name: col[keep].astype(np.float64) for name, col in raw_covariates.items()},
            case_ids=None if case_col is None else case_col[keep],
            case_index=np.flatnonzero(keep),
            n_dropped=n_dropped,
            notes=tuple(notes),
        )

    @staticmethod
    def for_arrays(
        y: Any,
        *,
        factors: Mapping[str, Any] | None = None,
        covariates: Mapping[str, Any] | None = None,
        weights: Any = None,
        **spec_options: Any,
    ) -> 'GLMDesign':
        """
        Convenience factory from in-memory arrays.

        The response is stored under the name 'y' and weights under
        '_weights'; spec_options go to ModelSpec.build().
        """
        factors = dict(factors or {})
        covariates = dict(covariates or {})
        if 'y' in factors or 'y' in covariates:
            raise ValidationError("'y' is reserved for the response in for_arrays()")
        columns: dict[str, Any] = {'y': y, **factors, **covariates}
        weight_name = None
        if weights is not None:
            weight_name = '_weights'
            columns[weight_name] = weights
        spec = ModelSpec.build(
            'y',
            factors=list(factors),
            covariates=list(covariates),
            weights=weight_name,
            **spec_options,
        )
        return GLMDesign.from_datasource(DataSource.from_arrays(**columns), spec)
