"""
Estimable functions (L-matrices) for Type III and Type IV hypotheses.

Each row is built from cell vectors: the design row a case in a given
factor-level cell would have, restricted to the tested term's covariate
set (see DesignMatrixInfo.cell_vector).

For a term with factors F1..Fk and a choice of non-pivot levels l1..lk,
the row is the inclusion-exclusion sum over the 2^k sub-cells obtained by
toggling each Fi between li and its pivot level, with sign
(-1)^(number of factors at pivot). The other factors that enter terms
with the same covariate set (the context) are handled one of two ways:

    averaged    unweighted average over the context's level
                combinations; these rows are the Type III/IV hypotheses
                and do not depend on the contrast coding
    pivot       context fixed at its pivot levels; these rows have
                integer coefficients under Indicator or Deviation coding
                and make up the General Estimable Function table

Type IV averages only over combinations whose 2^k sub-cells all have
cases, so empty cells never enter a hypothesis.

Special cases:
    intercept   average of all cell vectors (averaged) or the
                all-pivot cell vector (pivot)
    covariate   the covariate's own column plus its interaction columns
                at the context's cells

Rows whose own parameter column is aliased are skipped; all-zero rows
and duplicates are dropped.

Type I and Type II hypotheses are not built here: they come from
nested refits (see _ss).
"""

from itertools import product
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.tolerances import COEFFICIENT_ZERO_TOL
from pyglm.glm._common import GeneralEstimableFunction, LMatrixEntry
from pyglm.glm._design_matrix import DesignMatrixInfo, Term
from pyglm.glm._terms import design_string, level_combinations


def _context_factors(info: DesignMatrixInfo, term: Term) -> tuple[str, ...]:
    """Factors outside the term that appear in terms with the same covariate set."""
    covs = frozenset(term.covariates)
    seen: list[str] = []
    for t in info.terms:
        if frozenset(t.covariates) != covs:
            continue
        for f in t.factors:
            if f not in term.factors and f not in seen:
                seen.append(f)
    return tuple(seen)


def _cell_label(info: DesignMatrixInfo, assignment: dict[str, int], factors: tuple[str, ...]) -> str:
    parts = [f"{f}={info.factor_details[f].levels[assignment[f]]}" for f in factors]
    return f"mu({','.join(parts)})" if parts else "mu"


def _describe(
    info: DesignMatrixInfo,
    term: Term,
    chosen: tuple[int, ...],
    fixed: dict[str, int] | None = None,
) -> str:
    if term.is_intercept:
        if fixed is None:
            return "mean of cell means"
        return _cell_label(info, fixed, tuple(fixed))
    prefix = f"slope of {'*'.join(term.covariates)}: " if term.covariates else ""
    if not term.factors:
        return prefix.rstrip(': ') if prefix else term.name
    shown = term.factors + tuple(fixed or ())
    pieces: list[str] = []
    for toggles in product((False, True), repeat=len(term.factors)):
        assignment = dict(fixed or {})
        n_pivot = 0
        for f, level, at_pivot in zip(term.factors, chosen, toggles):
            if at_pivot:
                assignment[f] = info.factor_details[f].pivot_index
                n_pivot += 1
            else:
                assignment[f] = level
        sign = '-' if n_pivot % 2 else '+'
        pieces.append(f"{sign} {_cell_label(info, assignment, shown)}")
    text = ' '.join(pieces)
    return prefix + (text[2:] if text.startswith('+ ') else text)


def term_rows(
    info: DesignMatrixInfo,
    term: Term,
    aliased: NDArray[np.bool_] | None = None,
    *,
    empty_cell_aware: bool = False,
    pivot_context: bool = False,
) -> list[tuple[int, NDArray[np.floating[Any]], str]]:
    """
    L rows for one term, before zero/duplicate filtering.

    Args:
        info: design matrix info
        term: the tested term
        aliased: (p,) aliased flags from the sweep, or None
        empty_cell_aware: Type IV averaging over fully observed sub-cells
        pivot_context: fix the context factors at their pivot levels
            instead of averaging over them

    Returns:
        list of (parameter column, row, description)
    """
    covs = frozenset(term.covariates)
    context = _context_factors(info, term)
    fixed = None
    if pivot_context:
        fixed = {f: info.factor_details[f].pivot_index for f in context}
        context_combos = [tuple(fixed.values())]
    else:
        context_combos = level_combinations([len(info.factor_details[f].levels) for f in context])
    observed = info.observed_cells(term.factors + context) if empty_cell_aware else None

    chosen_sets = list(product(*(info.factor_details[f].non_pivot_indices for f in term.factors)))
    rows: list[tuple[int, NDArray, str]] = []

    for position, chosen in enumerate(chosen_sets):
        column = term.first_col + position
        if aliased is not None and column < aliased.shape[0] and aliased[column]:
            continue

        subcells = []
        for toggles in product((False, True), repeat=len(term.factors)):
            levels = []
            n_pivot = 0
            for f, level, at_pivot in zip(term.factors, chosen, toggles):
                if at_pivot:
                    levels.append(info.factor_details[f].pivot_index)
                    n_pivot += 1
                else:
                    levels.append(level)
            subcells.append((tuple(levels), -1.0 if n_pivot % 2 else 1.0))

        total = np.zeros(info.p_parameters, dtype=np.float64)
        count = 0
        for other in context_combos:
            if observed is not None and any(
                levels + other not in observed for levels, _ in subcells
            ):
                continue
            for levels, sign in subcells:
                assignment = dict(zip(term.factors, levels))
                assignment.update(zip(context, other))
                total += sign * info.cell_vector(assignment, covs)
            count += 1
        if count == 0:
            continue
        rows.append((column, total / count, _describe(info, term, chosen, fixed)))

    return rows


def _filter_rows(
    rows: list[tuple[int, NDArray, str]],
) -> list[tuple[int, NDArray, str]]:
    kept: list[tuple[int, NDArray, str]] = []
    for column, row, desc in rows:
        row = np.where(np.abs(row) < COEFFICIENT_ZERO_TOL, 0.0, row)
        if not np.any(row):
            continue
        if any(np.allclose(row, other, rtol=0.0, atol=COEFFICIENT_ZERO_TOL) for _, other, _ in kept):
            continue
        kept.append((column, row, desc))
    return kept


def term_l_matrix(
    info: DesignMatrixInfo,
    term: Term,
    aliased: NDArray[np.bool_] | None = None,
    *,
    ss_type: int = 3,
) -> NDArray[np.floating[Any]]:
    """(r, p) L-matrix testing one term; r may be 0 when nothing is estimable."""
    rows = _filter_rows(term_rows(info, term, aliased, empty_cell_aware=ss_type == 4))
    if not rows:
        return np.zeros((0, info.p_parameters), dtype=np.float64)
    return np.vstack([row for _, row, _ in rows])


def general_estimable_function(
    info: DesignMatrixInfo,
    aliased: NDArray[np.bool_] | None = None,
    *,
    ss_type: int = 3,
) -> GeneralEstimableFunction:
    """
    Estimable-function table over all terms.

    Rows hold the context factors at their pivot levels: the intercept
    row is the all-pivot cell and a main-effect row contrasts one level
    with the pivot, every other factor at pivot. Labels are 'L<k>' with
    k the 1-based parameter position of the row's own column. Rows
    repeated across terms keep their first occurrence.
    """
    entries: list[LMatrixEntry] = []
    collected: list[NDArray] = []
    for term in info.terms:
        rows = _filter_rows(term_rows(
            info, term, aliased, empty_cell_aware=ss_type == 4, pivot_context=True,
        ))
        for column, row, desc in rows:
            if any(np.allclose(row, other, rtol=0.0, atol=COEFFICIENT_ZERO_TOL) for other in collected):
                continue
            collected.append(row)
            entries.append(LMatrixEntry(term=term.name, label=f"L{column + 1}", row=row, description=desc))

    notes = [f"Design: {design_string(info.term_names)}"]
    if aliased is not None and aliased.any():
        redundant = [info.parameter_names[i] for i in np.flatnonzero(aliased)]
        notes.append(f"Redundant parameters (set to zero): {', '.join(redundant)}")
    return GeneralEstimableFunction(
        parameters=info.parameter_names,
        entries=tuple(entries),
        notes=tuple(notes),
    )


def marginal_mean_rows(
    info: DesignMatrixInfo,
    factors: str | tuple[str, ...],
    covariate_means: dict[str, float] | None = None,
) -> NDArray[np.floating[Any]]:
    """
    Rows whose product with beta gives unweighted marginal means.

    One row per level combination of `factors` (first factor varying
    slowest), averaged over the levels of every other factor. Covariates
    are held at `covariate_means`; when that is None they are held at
    zero, so terms carrying a covariate drop out.

    Returns:
        (m, p) matrix, m the number of level combinations
    """
    if isinstance(factors, str):
        factors = (factors,)
    others = [f for f in info.factor_details if f not in factors]
    combos = level_combinations([len(info.factor_details[f].levels) for f in factors])
    other_combos = level_combinations([len(info.factor_details[f].levels) for f in others])

    rows = np.zeros((len(combos), info.p_parameters), dtype=np.float64)
    for i, combo in enumerate(combos):
        for other in other_combos:
            assignment = {**dict(zip(factors, combo)), **dict(zip(others, other))}
            if covariate_means is None:
                rows[i] += info.cell_vector(assignment)
            else:
                rows[i] += _covariate_cell_vector(info, assignment, covariate_means)
        rows[i] /= len(other_combos)
    return rows


def _covariate_cell_vector(
    info: DesignMatrixInfo,
    levels: dict[str, int],
    covariate_means: dict[str, float],
) -> NDArray[np.floating[Any]]:
    v = np.zeros(info.p_parameters, dtype=np.float64)
    for t in info.terms:
        part = np.ones(1, dtype=np.float64)
        for comp in t.factors:
            part = np.kron(part, info.factor_details[comp].coding.matrix[levels[comp]])
        scale = 1.0
        for comp in t.covariates:
            scale *= covariate_means[comp]
        v[t.first_col:t.last_col + 1] = part * scale
    return v
