"""
Core infrastructure for PyGLM.

This module provides shared abstractions and utilities used by the
GLM engine (pyglm.glm).

Key components:
    datasource: DataSource, the case-indexed table the engine reads
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing, tolerances, SWEEP and SVD kernels
"""

from pyglm.core.datasource import DataSource
from pyglm.core.result import Result
from pyglm.core.exceptions import (
    PyGLMError,
    ValidationError,
    DimensionError,
    ConfigurationError,
    NumericalError,
    SingularMatrixError,
    AliasedParameterError,
    RankDeficiencyError,
)

__all__ = [
    # Data
    "DataSource",
    # Result
    "Result",
    # Exceptions
    "PyGLMError",
    "ValidationError",
    "DimensionError",
    "ConfigurationError",
    "NumericalError",
    "SingularMatrixError",
    "AliasedParameterError",
    "RankDeficiencyError",
]
