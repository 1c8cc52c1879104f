"""
Levene's test for homogeneity of error variance across design cells.

Algorithm: Transform y to |y_i - center(cell_j)|, then run one-way ANOVA
on the transformed values. center='mean' gives the original Levene test,
center='median' the Brown-Forsythe variant. Cells are the observed
combinations of factor levels.
"""

import numpy as np
from numpy.typing import NDArray
from scipy import stats as sp_stats

from pyglm.core.exceptions import ValidationError
from pyglm.core.validation import check_choice
from pyglm.glm._common import LeveneParams
from pyglm.glm._design_matrix import DesignMatrixInfo


def cell_labels(info: DesignMatrixInfo) -> NDArray:
    """Per-case cell label such as 'A=1, B=2' over all coded factors."""
    factors = list(info.factor_details)
    if not factors:
        raise ValidationError("Levene's test needs at least one factor in the model")
    labels = []
    for i in range(info.n_samples):
        parts = [
            f"{f}={info.factor_details[f].levels[info.factor_details[f].level_index[i]]}"
            for f in factors
        ]
        labels.append(', '.join(parts))
    return np.array(labels, dtype=object)


def levene_test_impl(
    y: NDArray,
    group: NDArray,
    *,
    center: str = 'mean',
) -> LeveneParams:
    """
    Compute Levene's test (or the Brown-Forsythe variant).

    Args:
        y: 1D response array
        group: 1D group labels (same length as y)
        center: 'mean' (Levene, default) or 'median' (Brown-Forsythe)

    Returns:
        LeveneParams with F statistic, p-value, and degrees of freedom
    """
    check_choice(center, ('mean', 'median'), 'center')

    group_str = np.array([str(v) for v in group])
    levels = sorted(set(group_str))
    k = len(levels)
    n = len(y)

    center_fn = np.mean if center == 'mean' else np.median
    z = np.empty(n, dtype=np.float64)
    group_vars: dict[str, float] = {}

    for level in levels:
        mask = group_str == level
        y_group = y[mask]
        z[mask] = np.abs(y_group - center_fn(y_group))
        group_vars[level] = float(np.var(y_group, ddof=1)) if len(y_group) > 1 else float('nan')

    z_grand_mean = np.mean(z)
    ss_between = 0.0
    ss_within = 0.0
    for level in levels:
        z_group = z[group_str == level]
        z_mean_j = np.mean(z_group)
        ss_between += len(z_group) * (z_mean_j - z_grand_mean) ** 2
        ss_within += np.sum((z_group - z_mean_j) ** 2)

    df_between = k - 1
    df_within = n - k

    if df_between <= 0 or df_within <= 0 or ss_within == 0:
        f_val = float('nan')
        p_val = float('nan')
    else:
        f_val = float((ss_between / df_between) / (ss_within / df_within))
        p_val = float(sp_stats.f.sf(f_val, df_between, df_within))

    return LeveneParams(
        f_value=f_val,
        p_value=p_val,
        df_between=df_between,
        df_within=df_within,
        center=center,
        group_vars=group_vars,
    )
