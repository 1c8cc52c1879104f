"""
Shared compute infrastructure for PyGLM.

This module contains shared NUMERIC infrastructure only; model semantics
(terms, contrasts, hypotheses) live in pyglm.glm.

Submodules:
    timing: Execution timing utilities
    tolerances: Named numerical tolerances
    linalg: SWEEP operator and SVD kernels
"""

from pyglm.core.compute.timing import Timer, timed

__all__ = [
    "Timer",
    "timed",
]
