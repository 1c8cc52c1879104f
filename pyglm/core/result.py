"""
Generic result container for PyGLM computations.

Every solver returns a user-facing solution that wraps one of these
envelopes. The envelope separates the domain payload (effect tests,
parameter estimates, L-matrices) from bookkeeping: metadata, timing
and non-fatal warnings.

Design decisions:
    - Generic over parameter payload P
    - info dict for flexible metadata (ss_type, rank, aliased columns)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True); warnings are a tuple, never a list
"""

from dataclasses import dataclass, field, replace
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for GLM computations.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific payload (effect table, estimates, ...)
        info: Structured metadata (ss_type, rank, aliased parameters)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the code path that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=GLMParams(...),
        ...     info={'ss_type': 3, 'rank': 6},
        ...     timing={'total_seconds': 0.01, 'sweep': 0.002},
        ...     backend_name='cpu_sweep',
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)

    def with_warnings(self, *messages: str) -> 'Result[P]':
        """Return a copy with additional warnings appended (duplicates skipped)."""
        merged = list(self.warnings)
        for msg in messages:
            if msg not in merged:
                merged.append(msg)
        return replace(self, warnings=tuple(merged))
