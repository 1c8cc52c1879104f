"""
PyGLM: General Linear Model design matrices and hypothesis tests.

Contrast coding, design-matrix assembly, SWEEP-based estimation,
estimable functions for Type I-IV sums of squares, and
heteroskedasticity-consistent covariance.

Submodules:
    core: DataSource, Result envelope, exceptions, numeric kernels
    glm: Univariate GLM
"""

__version__ = "0.1.0"

from pyglm import glm
from pyglm.core.datasource import DataSource

__all__ = [
    "__version__",
    "glm",
    "DataSource",
]
