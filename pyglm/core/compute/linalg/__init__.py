"""
Linear algebra kernels for PyGLM.

All functions follow these conventions:
    - NumPy arrays in, NumPy arrays out (float64)
    - Each decomposition returns a structured result dataclass
    - Inputs are never modified

Submodules:
    sweep: augmented cross-product and the SWEEP operator
    svd: SVD-based numerical rank and pseudo-inverse
"""

from pyglm.core.compute.linalg.sweep import (
    SweptMatrixInfo,
    cross_product,
    sweep,
    sweep_operator,
)
from pyglm.core.compute.linalg.svd import (
    PseudoInverse,
    numerical_rank,
    pseudo_inverse,
)

__all__ = [
    # SWEEP
    "SweptMatrixInfo",
    "cross_product",
    "sweep",
    "sweep_operator",
    # SVD
    "PseudoInverse",
    "numerical_rank",
    "pseudo_inverse",
]
