"""
Model-term helpers.

A term is an ordered tuple of variable names: () is the intercept,
('X',) a covariate or factor main effect, ('A', 'B') the A*B
interaction. Names are joined with '*' for display, matching how
interactions are declared ("A*B").
"""

from itertools import combinations, product
from typing import Iterable, Sequence

from pyglm.core.exceptions import ConfigurationError

INTERCEPT = 'Intercept'


def parse_term(spec: str | Sequence[str]) -> tuple[str, ...]:
    """
    Parse "A*B*C" (or an already split sequence) into component names.

    Raises:
        ConfigurationError: On empty components or a repeated component
    """
    if isinstance(spec, str):
        if spec.strip() == INTERCEPT:
            return ()
        parts = tuple(part.strip() for part in spec.split('*'))
    else:
        parts = tuple(str(part).strip() for part in spec)
    if not parts or any(part == '' for part in parts):
        raise ConfigurationError(f"term {spec!r}: empty component")
    if len(set(parts)) != len(parts):
        raise ConfigurationError(f"term {spec!r}: a variable appears twice")
    return parts


def term_name(components: Sequence[str]) -> str:
    return '*'.join(components) if components else INTERCEPT


def full_factorial(factors: Sequence[str]) -> list[tuple[str, ...]]:
    """
    All interactions among factors, two-way first, each order in
    declaration-combination order.

        full_factorial(['A', 'B', 'C'])
        # [('A','B'), ('A','C'), ('B','C'), ('A','B','C')]
    """
    out: list[tuple[str, ...]] = []
    for size in range(2, len(factors) + 1):
        out.extend(combinations(factors, size))
    return out


def design_string(names: Iterable[str]) -> str:
    """'Intercept + X + Group + Group*X'"""
    return ' + '.join(names)


def term_contains(candidate: Sequence[str], target: Sequence[str]) -> bool:
    """
    True if candidate strictly contains target.

    A*B contains A, B and the intercept; A contains the intercept;
    nothing contains itself. Used by Type II to respect marginality.
    """
    c, t = set(candidate), set(target)
    return t < c


def parameter_token(factor: str, level: str) -> str:
    return f"[{factor}={level}]"


def parameter_name(tokens: Sequence[str]) -> str:
    """Join per-component tokens of one column, e.g. '[A=1]*[B=2]' or '[A=1]*X'."""
    return '*'.join(tokens) if tokens else INTERCEPT


def level_combinations(level_counts: Sequence[int]) -> list[tuple[int, ...]]:
    """All index combinations, first position varying slowest."""
    return list(product(*(range(k) for k in level_counts)))
