"""
Contrast coding for categorical factors.

Turns the k sorted levels of a factor into a (k, k-1) coefficient matrix
(one row per level, one column per model parameter) plus column labels.
A case's coded columns are the row for its level.

Schemes (k levels, reference index r = 0 for First, k-1 for Last):
    INDICATOR   reference row all 0, other levels one-hot
    SIMPLE      target level (k-1)/k, every other level -1/k
    DEVIATION   reference row all -1, other levels one-hot
    DIFFERENCE  column j: level j+1 gets (j+1)/(j+2), earlier levels
                -1/(j+2), later levels 0 (reverse Helmert)
    HELMERT     column j: level j gets (k-1-j)/(k-j), later levels
                -1/(k-j), earlier levels 0
    REPEATED    column j (1-based): levels before j get (k-j)/k, the
                rest -j/k
    POLYNOMIAL  Gram-Schmidt orthonormalized powers of 0..k-1, constant
                column dropped

DIFFERENCE, HELMERT, REPEATED and POLYNOMIAL ignore the reference choice.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

import numpy as np
from numpy.typing import NDArray

from pyglm.core.exceptions import ValidationError


class ContrastMethod(Enum):
    INDICATOR = 'indicator'
    SIMPLE = 'simple'
    DEVIATION = 'deviation'
    DIFFERENCE = 'difference'
    HELMERT = 'helmert'
    REPEATED = 'repeated'
    POLYNOMIAL = 'polynomial'

    @classmethod
    def parse(cls, value: 'ContrastMethod | str') -> 'ContrastMethod':
        """Accept an enum member or a case-insensitive name ('dummy' = indicator)."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key == 'dummy':
            key = 'indicator'
        for member in cls:
            if member.value == key:
                return member
        raise ValidationError(
            f"contrast method: must be one of {[m.value for m in cls]}, got {value!r}"
        )


class ReferenceCategory(Enum):
    FIRST = 'first'
    LAST = 'last'

    @classmethod
    def parse(cls, value: 'ReferenceCategory | str') -> 'ReferenceCategory':
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValidationError(f"reference: must be 'first' or 'last', got {value!r}")


_POLYNOMIAL_NAMES = ('Linear', 'Quadratic', 'Cubic', '4th', '5th')


@dataclass(frozen=True)
class ContrastCoding:
    """
    Coefficient matrix for one factor.

    Attributes:
        levels: sorted level labels (k)
        matrix: (k, k-1) coefficients, row i codes levels[i]
        labels: column labels, e.g. 'Group(2)', 'Dose(Linear)'
        method: coding scheme
        reference: reference choice
    """
    levels: tuple[str, ...]
    matrix: NDArray[np.floating[Any]]
    labels: tuple[str, ...]
    method: ContrastMethod
    reference: ReferenceCategory

    @property
    def k(self) -> int:
        return len(self.levels)

    @property
    def reference_index(self) -> int:
        return 0 if self.reference is ReferenceCategory.FIRST else self.k - 1

    @property
    def reference_level(self) -> str:
        return self.levels[self.reference_index]

    @property
    def coded_levels(self) -> tuple[str, ...]:
        """Levels that own a column under INDICATOR/SIMPLE/DEVIATION coding."""
        r = self.reference_index
        return tuple(lv for i, lv in enumerate(self.levels) if i != r)

    def rows_for(self, level_index: NDArray[np.integer[Any]]) -> NDArray[np.floating[Any]]:
        """Coded columns for a vector of per-case level indices."""
        return self.matrix[level_index]


def format_level(value: Any) -> str:
    """Label for a level value; integral floats print without '.0'."""
    if isinstance(value, (float, np.floating)):
        if np.isfinite(value) and float(value).is_integer():
            return str(int(value))
        return repr(float(value))
    return str(value)


def _level_sort_key(label: str) -> tuple[int, float, str]:
    try:
        return (0, float(label), label)
    except ValueError:
        return (1, 0.0, label)


def sort_levels(values: Iterable[Any]) -> list[str]:
    """
    Unique level labels in numeric-aware order.

    Labels that parse as numbers sort numerically and come before text
    labels, which sort lexicographically.
    """
    labels = {format_level(v) for v in values}
    return sorted(labels, key=_level_sort_key)


def polynomial_contrasts(k: int) -> NDArray[np.floating[Any]]:
    """
    Orthonormal polynomial contrasts for k equally spaced levels.

    Returns:
        (k, k-1) matrix; column j is the degree j+1 polynomial
    """
    if k < 2:
        raise ValidationError(f"k: polynomial contrasts need at least 2 levels, got {k}")
    x = np.arange(k, dtype=np.float64)
    x = (x - x.mean()) / x.std()

    # Degree j+1 comes from x times degree j, orthogonalized twice
    basis = [np.full(k, 1.0 / np.sqrt(k))]
    for _ in range(1, k):
        v = x * basis[-1]
        for _ in range(2):
            for prev in basis:
                v = v - float(v @ prev) * prev
        basis.append(v / np.sqrt(float(v @ v)))
    return np.column_stack(basis[1:])


def _coefficients(k: int, r: int, method: ContrastMethod) -> NDArray[np.floating[Any]]:
    m = np.zeros((k, k - 1), dtype=np.float64)

    if method in (ContrastMethod.INDICATOR, ContrastMethod.DEVIATION):
        for i in range(k):
            if i == r:
                if method is ContrastMethod.DEVIATION:
                    m[i, :] = -1.0
                continue
            m[i, i - 1 if r == 0 else i] = 1.0

    elif method is ContrastMethod.SIMPLE:
        m[:, :] = -1.0 / k
        for i in range(k):
            if i != r:
                m[i, i - 1 if r == 0 else i] = (k - 1.0) / k

    elif method is ContrastMethod.DIFFERENCE:
        for j in range(k - 1):
            target = j + 1
            m[target, j] = target / (target + 1.0)
            m[:target, j] = -1.0 / (target + 1.0)

    elif method is ContrastMethod.HELMERT:
        for j in range(k - 1):
            remaining = k - 1 - j
            m[j, j] = remaining / (remaining + 1.0)
            m[j + 1:, j] = -1.0 / (remaining + 1.0)

    elif method is ContrastMethod.REPEATED:
        for j in range(1, k):
            m[:j, j - 1] = (k - j) / k
            m[j:, j - 1] = -j / k

    else:
        m = polynomial_contrasts(k)

    return m


def _labels(
    name: str,
    levels: list[str],
    r: int,
    method: ContrastMethod,
) -> tuple[str, ...]:
    k = len(levels)
    if method in (ContrastMethod.INDICATOR, ContrastMethod.SIMPLE, ContrastMethod.DEVIATION):
        return tuple(f"{name}({lv})" for i, lv in enumerate(levels) if i != r)
    if method is ContrastMethod.DIFFERENCE:
        return tuple(f"{name}(Diff: {levels[j + 1]})" for j in range(k - 1))
    if method is ContrastMethod.HELMERT:
        return tuple(f"{name}(Helmert: {levels[j]})" for j in range(k - 1))
    if method is ContrastMethod.REPEATED:
        return tuple(f"{name}({levels[j]} vs {levels[j + 1]})" for j in range(k - 1))
    return tuple(
        f"{name}({_POLYNOMIAL_NAMES[j] if j < len(_POLYNOMIAL_NAMES) else 'Poly'})"
        for j in range(k - 1)
    )


def encode(
    levels: list[str] | tuple[str, ...],
    *,
    method: ContrastMethod | str = ContrastMethod.INDICATOR,
    reference: ReferenceCategory | str = ReferenceCategory.LAST,
    name: str = 'Var',
) -> ContrastCoding:
    """
    Build the contrast coefficient matrix for a sorted list of levels.

    Args:
        levels: sorted unique level labels (k >= 2)
        method: coding scheme
        reference: which end of the sorted levels is the reference
        name: variable name used in the column labels

    Returns:
        ContrastCoding

    Raises:
        ValidationError: If fewer than 2 levels or levels repeat
    """
    method = ContrastMethod.parse(method)
    reference = ReferenceCategory.parse(reference)
    levels = [str(lv) for lv in levels]
    k = len(levels)
    if k < 2:
        raise ValidationError(f"{name}: contrast coding needs at least 2 levels, got {k}")
    if len(set(levels)) != k:
        raise ValidationError(f"{name}: levels must be unique, got {levels}")

    r = 0 if reference is ReferenceCategory.FIRST else k - 1
    return ContrastCoding(
        levels=tuple(levels),
        matrix=_coefficients(k, r, method),
        labels=_labels(name, levels, r, method),
        method=method,
        reference=reference,
    )


def encode_column(
    values: NDArray,
    name: str,
    *,
    method: ContrastMethod | str = ContrastMethod.INDICATOR,
    reference: ReferenceCategory | str = ReferenceCategory.LAST,
) -> tuple[NDArray[np.floating[Any]], tuple[str, ...], ContrastCoding | None]:
    """
    Code a raw case column.

    With fewer than 2 distinct values no coding is possible: a numeric
    column is returned unchanged as a single column and a label column
    yields no columns at all.

    Returns:
        (columns (n, m), labels (m), coding or None)
    """
    levels = sort_levels(values)
    if len(levels) < 2:
        arr = np.asarray(values)
        if arr.dtype != object and np.issubdtype(arr.dtype, np.number):
            return arr.astype(np.float64).reshape(-1, 1), (name,), None
        return np.empty((len(arr), 0), dtype=np.float64), (), None

    coding = encode(levels, method=method, reference=reference, name=name)
    position = {lv: i for i, lv in enumerate(coding.levels)}
    index = np.array([position[format_level(v)] for v in values], dtype=np.intp)
    return coding.rows_for(index), coding.labels, coding
