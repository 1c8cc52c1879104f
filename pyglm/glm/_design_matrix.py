"""
Design matrix construction.

Turns a GLMDesign into a dense numeric X with contiguous per-term column
ranges, the filtered response and weights, and the parameter list.

Column layout:
    - Intercept first (if configured), then terms in declaration order
    - Factor term: the contrast-coded columns, in level order
    - Covariate term: the raw column
    - Interaction: Cartesian product of the components' columns, first
      component varying slowest; covariate components multiply in

Terms are identified by integer position; the name -> index table is only
consulted at the API boundary.
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.linalg.svd import numerical_rank
from pyglm.core.compute.tolerances import DESIGN_RANK_TOL
from pyglm.core.exceptions import ConfigurationError
from pyglm.glm._contrasts import ContrastCoding, encode_column, format_level
from pyglm.glm._terms import INTERCEPT, parameter_name, parameter_token, term_name
from pyglm.glm.design import GLMDesign

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Term:
    """
    One model term and its column range in X (inclusive bounds).

    Attributes:
        name: display name ('Intercept', 'X', 'A*B')
        components: variable names; () for the intercept
        factors: components that are contrast-coded factors
        covariates: components entering as raw numeric columns
        first_col: first column in X
        last_col: last column in X
    """
    name: str
    components: tuple[str, ...]
    factors: tuple[str, ...]
    covariates: tuple[str, ...]
    first_col: int
    last_col: int

    @property
    def n_columns(self) -> int:
        return self.last_col - self.first_col + 1

    @property
    def columns(self) -> range:
        return range(self.first_col, self.last_col + 1)

    @property
    def is_intercept(self) -> bool:
        return not self.components


@dataclass(frozen=True)
class FactorDetail:
    """
    Levels and coding of one factor as used in the design.

    Attributes:
        name: factor name
        levels: sorted unique levels
        reference_level: first level after sorting, whatever the coding's
            reference choice (with reference='first' it equals pivot_level)
        pivot_level: level the coding treats as reference (the implicit
            zero under Indicator/Simple/Deviation coding)
        coding: the contrast coefficient matrix
        level_index: (n,) per-case index into levels
    """
    name: str
    levels: tuple[str, ...]
    reference_level: str
    pivot_level: str
    coding: ContrastCoding
    level_index: NDArray[np.intp]

    @property
    def pivot_index(self) -> int:
        return self.coding.reference_index

    @property
    def non_pivot_indices(self) -> tuple[int, ...]:
        return tuple(i for i in range(len(self.levels)) if i != self.pivot_index)


@dataclass(frozen=True)
class DesignMatrixInfo:
    """
    Numeric design for one analysis.

    Attributes:
        X: (n, p) design matrix
        y: (n,) response
        w: (n,) case weights, or None
        terms: terms in column order
        parameter_names: (p) names aligned with X's columns
        factor_details: factor name -> FactorDetail (coded factors only)
        rank: numerical rank of X
        has_intercept: whether column 0 is the intercept
        omitted_terms: declared terms that produced no columns
        case_index: source row positions of the n cases
        covariate_means: covariate name -> mean over the n cases
    """
    X: NDArray[np.floating[Any]]
    y: NDArray[np.floating[Any]]
    w: NDArray[np.floating[Any]] | None
    terms: tuple[Term, ...]
    parameter_names: tuple[str, ...]
    factor_details: dict[str, FactorDetail]
    rank: int
    has_intercept: bool
    omitted_terms: tuple[str, ...]
    case_index: NDArray[np.intp]
    covariate_means: dict[str, float]

    @property
    def n_samples(self) -> int:
        return self.X.shape[0]

    @property
    def p_parameters(self) -> int:
        return self.X.shape[1]

    @property
    def weights(self) -> NDArray[np.floating[Any]]:
        """Case weights with 1.0 filled in for unweighted designs."""
        return np.ones(self.n_samples) if self.w is None else self.w

    @property
    def term_names(self) -> tuple[str, ...]:
        return tuple(t.name for t in self.terms)

    @property
    def term_column_indices(self) -> dict[str, tuple[int, int]]:
        """term name -> (first_col, last_col), inclusive."""
        return {t.name: (t.first_col, t.last_col) for t in self.terms}

    def term_index(self, name: str) -> int:
        for i, t in enumerate(self.terms):
            if t.name == name:
                return i
        raise KeyError(f"no model term named '{name}'")

    def term(self, name: str) -> Term:
        return self.terms[self.term_index(name)]

    def cell_vector(
        self,
        levels: dict[str, int],
        covariates: frozenset[str] = frozenset(),
    ) -> NDArray[np.floating[Any]]:
        """
        Design row of a factor-level cell, restricted to one covariate set.

        Terms whose covariate set differs from `covariates` get 0. For the
        others, the factor part is the Kronecker product of the coding rows
        for the cell's levels and covariates enter as 1.

        Args:
            levels: factor name -> level index for every factor the
                matching terms use
            covariates: covariate set of the hypothesis being built
        """
        v = np.zeros(self.p_parameters, dtype=np.float64)
        for t in self.terms:
            if frozenset(t.covariates) != covariates:
                continue
            part = np.ones(1, dtype=np.float64)
            for comp in t.components:
                if comp in self.factor_details:
                    part = np.kron(part, self.factor_details[comp].coding.matrix[levels[comp]])
            v[t.first_col:t.last_col + 1] = part
        return v

    def observed_cells(self, factors: tuple[str, ...]) -> set[tuple[int, ...]]:
        """Level-index combinations of the given factors that have cases."""
        if not factors:
            return {()}
        stacked = np.column_stack([self.factor_details[f].level_index for f in factors])
        return {tuple(int(v) for v in row) for row in np.unique(stacked, axis=0)}


def build_design_matrix(design: GLMDesign) -> DesignMatrixInfo:
    """
    Build the design matrix for a GLMDesign.

    A factor with fewer than 2 observed levels cannot be coded: a numeric
    factor then enters as its raw column, a label factor contributes no
    columns, and any term left without columns is omitted from the term
    map (reported in omitted_terms).

    Raises:
        ConfigurationError: If no columns are generated at all
    """
    spec = design.spec
    n = design.n

    # Per-variable columns and parameter tokens
    var_columns: dict[str, NDArray] = {}
    var_tokens: dict[str, tuple[str, ...]] = {}
    factor_details: dict[str, FactorDetail] = {}

    for fs in spec.factors:
        if fs.name not in design.factors:
            continue
        values = design.factors[fs.name]
        cols, labels, coding = encode_column(
            values, fs.name, method=fs.method, reference=fs.reference
        )
        var_columns[fs.name] = cols
        if coding is None:
            var_tokens[fs.name] = labels
            logger.debug("factor %s has < 2 levels; %d raw column(s)", fs.name, cols.shape[1])
            continue
        position = {lv: i for i, lv in enumerate(coding.levels)}
        level_index = np.array([position[format_level(v)] for v in values], dtype=np.intp)
        factor_details[fs.name] = FactorDetail(
            name=fs.name,
            levels=coding.levels,
            reference_level=coding.levels[0],
            pivot_level=coding.reference_level,
            coding=coding,
            level_index=level_index,
        )
        # '[F=level]' for level-owned columns, '[F=contrast]' otherwise
        var_tokens[fs.name] = tuple(
            parameter_token(fs.name, label[len(fs.name) + 1:-1]) for label in labels
        )

    for name in spec.covariates:
        if name in design.covariates:
            var_columns[name] = design.covariates[name].reshape(-1, 1)
            var_tokens[name] = (name,)

    blocks: list[NDArray] = []
    names: list[str] = []
    terms: list[Term] = []
    omitted: list[str] = []
    col = 0

    if spec.intercept:
        blocks.append(np.ones((n, 1), dtype=np.float64))
        names.append(INTERCEPT)
        terms.append(Term(INTERCEPT, (), (), (), 0, 0))
        col = 1

    for components in spec.terms:
        block = np.ones((n, 1), dtype=np.float64)
        tokens: list[tuple[str, ...]] = [()]
        for comp in components:
            comp_cols = var_columns[comp]
            block = np.einsum('ni,nj->nij', block, comp_cols).reshape(n, -1)
            tokens = [t + (tok,) for t in tokens for tok in var_tokens[comp]]
        if block.shape[1] == 0:
            omitted.append(term_name(components))
            continue
        k = block.shape[1]
        blocks.append(block)
        names.extend(parameter_name(t) for t in tokens)
        terms.append(Term(
            name=term_name(components),
            components=components,
            factors=tuple(c for c in components if c in factor_details),
            covariates=tuple(c for c in components if c not in factor_details),
            first_col=col,
            last_col=col + k - 1,
        ))
        col += k

    if col == 0:
        raise ConfigurationError("no columns generated for design matrix")

    X = np.hstack(blocks)
    covariate_means = {
        c: float(var_columns[c][:, 0].mean())
        for t in terms for c in t.covariates
        if var_columns[c].shape[1] == 1
    }
    if omitted:
        logger.debug("terms without columns omitted: %s", omitted)

    return DesignMatrixInfo(
        X=X,
        y=design.y,
        w=design.weights,
        terms=tuple(terms),
        parameter_names=tuple(names),
        factor_details=factor_details,
        rank=numerical_rank(X, DESIGN_RANK_TOL),
        has_intercept=spec.intercept,
        omitted_terms=tuple(omitted),
        case_index=design.case_index,
        covariate_means=covariate_means,
    )
