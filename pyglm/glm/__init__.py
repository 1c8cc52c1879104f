"""
Univariate General Linear Model (GLM).

Public API:
    glm(data, dependent, ...) -> GLMSolution              # effects, estimates, L-matrix,
                                                          # EMMs, heteroscedasticity tests
    design_matrix(data, dependent, ...) -> DesignMatrixInfo
    levene_test(y, group, ...) -> LeveneSolution          # homogeneity of variances
"""

from pyglm.glm.solvers import (
    design_matrix,
    glm,
    levene_test,
)
from pyglm.glm.solution import (
    GLMSolution,
    LeveneSolution,
)
from pyglm.glm.design import FactorSpec, GLMDesign, ModelSpec
from pyglm.glm._contrasts import ContrastMethod, ReferenceCategory, encode
from pyglm.glm._design_matrix import DesignMatrixInfo
from pyglm.glm._robust import HCType
from pyglm.glm._ss import SumOfSquaresType

__all__ = [
    "glm",
    "design_matrix",
    "levene_test",
    "GLMSolution",
    "LeveneSolution",
    "FactorSpec",
    "GLMDesign",
    "ModelSpec",
    "ContrastMethod",
    "ReferenceCategory",
    "encode",
    "DesignMatrixInfo",
    "HCType",
    "SumOfSquaresType",
]
