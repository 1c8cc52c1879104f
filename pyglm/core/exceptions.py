"""
Exception hierarchy for PyGLM.

All exceptions inherit from PyGLMError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information

Propagation:
    ConfigurationError and ValidationError abort the whole request.
    AliasedParameterError and RankDeficiencyError are raised for a single
    term or contrast; the solvers catch them and report a NaN row for that
    term only.
"""


class PyGLMError(Exception):
    """Base exception for all PyGLM errors."""
    pass


class ValidationError(PyGLMError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class ConfigurationError(ValidationError):
    """
    The model configuration cannot be turned into an analysis.

    Raised for a missing dependent variable, an unknown variable name,
    a data set with no usable cases, or a model that generates no
    design-matrix columns.

    Attributes:
        variable: Offending variable name, if the error concerns one
    """

    def __init__(self, message: str, variable: str | None = None):
        super().__init__(message)
        self.variable = variable


class NumericalError(PyGLMError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Raised when a matrix operation requires invertibility but the matrix
    is singular or numerically rank-deficient.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank (typically min(n, p))
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank


class AliasedParameterError(NumericalError):
    """
    A hypothesis involves only aliased (redundant) parameters.

    Not fatal for the analysis: the affected term or contrast is reported
    with SS = 0 and NaN statistics.

    Attributes:
        parameters: Names of the aliased parameters involved
    """

    def __init__(self, message: str, parameters: tuple[str, ...] = ()):
        super().__init__(message)
        self.parameters = tuple(parameters)


class RankDeficiencyError(NumericalError):
    """
    No error degrees of freedom remain (saturated model).

    Attributes:
        df_error: Error degrees of freedom (n - rank), <= 0
    """

    def __init__(self, message: str, df_error: int):
        super().__init__(message)
        self.df_error = df_error
