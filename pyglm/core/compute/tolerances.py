"""
Numerical tolerances used across the GLM engine.

Each constant is named by the decision it governs. Test tolerances live
in ToleranceTier objects so the suite and the engine agree on what
"equal" means.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


# Reference double-precision path
CPU_FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='cpu_fp64',
    description='CPU double precision, well-conditioned design',
)

# Ill-conditioned designs (cond(X) > 1e4)
CPU_FP64_ILL_CONDITIONED = ToleranceTier(
    rtol=1e-4,
    atol=1e-6,
    name='cpu_fp64_ill_conditioned',
    description='CPU double precision, ill-conditioned design',
)

# A sweep pivot is aliased when |pivot| <= SWEEP_EPSILON * |original diagonal|.
SWEEP_EPSILON = 1e-10

# Relative singular-value cutoff for rank(X) of the design matrix.
DESIGN_RANK_TOL = 1e-10

# Relative singular-value cutoff for rank(L G L') and its pseudo-inverse.
HYPOTHESIS_RANK_TOL = 1e-8

# |G_ii| below this marks a parameter as redundant in estimate tables.
REDUNDANT_PARAMETER_TOL = 1e-9

# Robust covariance diagonal below -NEGATIVE_VARIANCE_TOL yields SE = NaN.
NEGATIVE_VARIANCE_TOL = 1e-12

# Absolute cutoff for treating an L-matrix coefficient as zero.
COEFFICIENT_ZERO_TOL = 1e-12


def select_tolerance(is_ill_conditioned: bool = False) -> ToleranceTier:
    """Select the comparison tier for a design's conditioning."""
    if is_ill_conditioned:
        return CPU_FP64_ILL_CONDITIONED
    return CPU_FP64
