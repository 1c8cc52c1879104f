"""
Sums of squares for model terms.

Type I and Type II come from nested models. Each nested model is fitted
by sweeping only its terms' columns of the full cross-product matrix, so
no new design matrix is built.

Type I (Sequential):
    Terms enter one at a time in declaration order (intercept first).
    SS(term) = RSS(model before) - RSS(model after). The walk is a fold
    over immutable ModelState values.

Type II (Marginal, respects marginality):
    SS(T) = RSS(terms not containing T) - RSS(same terms + T).
    A*B contains A and B; every term contains the intercept.

Type III (Each term adjusted for all others) and Type IV (empty-cell
aware) test L beta = 0 with the L-matrices from _estimable against the
full fit.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from functools import reduce
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyglm.core.compute.linalg.sweep import SweptMatrixInfo, sweep
from pyglm.core.exceptions import ValidationError
from pyglm.glm._design_matrix import DesignMatrixInfo
from pyglm.glm._estimable import term_l_matrix
from pyglm.glm._hypothesis import hypothesis_ss
from pyglm.glm._terms import term_contains

logger = logging.getLogger(__name__)


class SumOfSquaresType(IntEnum):
    TYPE_I = 1
    TYPE_II = 2
    TYPE_III = 3
    TYPE_IV = 4

    @classmethod
    def parse(cls, value: Any) -> 'SumOfSquaresType':
        try:
            return cls(int(value))
        except (TypeError, ValueError) as e:
            raise ValidationError(f"ss_type: must be 1, 2, 3 or 4, got {value!r}") from e


@dataclass(frozen=True)
class ModelState:
    """A nested model: the term ids it includes and its sweep fit."""
    included: frozenset[int]
    fit: SweptMatrixInfo


def fit_terms(
    ZtWZ: NDArray[np.floating[Any]],
    info: DesignMatrixInfo,
    term_ids: list[int] | tuple[int, ...],
) -> SweptMatrixInfo:
    """Fit the nested model made of the given terms, in the given order."""
    columns = [c for i in term_ids for c in info.terms[i].columns]
    return sweep(ZtWZ, info.p_parameters, columns=columns)


def sequential_states(
    ZtWZ: NDArray[np.floating[Any]],
    info: DesignMatrixInfo,
) -> list[ModelState]:
    """States of the sequential walk: empty model, then one term added per step."""
    empty = ModelState(frozenset(), fit_terms(ZtWZ, info, ()))

    def step(states: list[ModelState], term_id: int) -> list[ModelState]:
        ids = sorted(states[-1].included | {term_id})
        return states + [ModelState(frozenset(ids), fit_terms(ZtWZ, info, ids))]

    return reduce(step, range(len(info.terms)), [empty])


def ss_type1(states: list[ModelState], term_id: int) -> tuple[float, int]:
    """Type I (SS, df) of a term from the sequential walk."""
    before, after = states[term_id], states[term_id + 1]
    return max(before.fit.rss - after.fit.rss, 0.0), after.fit.rank - before.fit.rank


def ss_type2(
    ZtWZ: NDArray[np.floating[Any]],
    info: DesignMatrixInfo,
    term_id: int,
) -> tuple[float, int]:
    """Type II (SS, df) of a term."""
    target = info.terms[term_id]
    base = [
        j for j, other in enumerate(info.terms)
        if j != term_id and not term_contains(other.components, target.components)
    ]
    reduced = fit_terms(ZtWZ, info, base)
    augmented = fit_terms(ZtWZ, info, base + [term_id])
    return max(reduced.rss - augmented.rss, 0.0), augmented.rank - reduced.rank


def ss_lmatrix(
    info: DesignMatrixInfo,
    swept: SweptMatrixInfo,
    term_id: int,
    ss_type: int,
) -> tuple[float, int]:
    """Type III or IV (SS, df) of a term from the full fit."""
    L = term_l_matrix(info, info.terms[term_id], swept.aliased, ss_type=ss_type)
    return hypothesis_ss(L, swept.beta, swept.G)


def term_ss(
    ZtWZ: NDArray[np.floating[Any]],
    info: DesignMatrixInfo,
    swept: SweptMatrixInfo,
    ss_type: SumOfSquaresType | int,
    term_id: int,
    states: list[ModelState] | None = None,
) -> tuple[float, int]:
    """
    (SS, df) of one term under the requested SS type.

    For Type I, pass the precomputed sequential_states() to avoid
    refitting the walk for every term.
    """
    ss_type = SumOfSquaresType.parse(ss_type)
    logger.debug("Type %d SS for term %s", ss_type, info.terms[term_id].name)
    if ss_type is SumOfSquaresType.TYPE_I:
        if states is None:
            states = sequential_states(ZtWZ, info)
        return ss_type1(states, term_id)
    if ss_type is SumOfSquaresType.TYPE_II:
        return ss_type2(ZtWZ, info, term_id)
    return ss_lmatrix(info, swept, term_id, int(ss_type))
