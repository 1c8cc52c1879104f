"""
Shared GLM fixtures: seeded data sets as {column: array} mappings.
"""

import numpy as np
import pytest

from pyglm.core.compute.linalg import cross_product, sweep
from pyglm.glm import design_matrix


def _two_way(rng, sizes):
    """A (a1, a2) x B (b1, b2, b3) with the given per-cell sizes."""
    effects_a = {'a1': 0.0, 'a2': 1.5}
    effects_b = {'b1': 0.0, 'b2': -1.0, 'b3': 2.0}
    A, B, y = [], [], []
    for (a, b), size in sizes.items():
        mu = 10.0 + effects_a[a] + effects_b[b] + (0.8 if (a, b) == ('a2', 'b3') else 0.0)
        A.extend([a] * size)
        B.extend([b] * size)
        y.extend(mu + rng.standard_normal(size))
    return {'y': np.array(y), 'A': np.array(A, dtype=object), 'B': np.array(B, dtype=object)}


@pytest.fixture
def ancova_data(rng):
    """One factor Group (1, 2, 3; 10 cases each) and one covariate X."""
    group = np.repeat([1, 2, 3], 10)
    x = rng.normal(50.0, 10.0, 30)
    y = 5.0 + 0.3 * x + np.array([0.0, 2.0, -1.0])[group - 1] + rng.standard_normal(30)
    return {'y': y, 'Group': group, 'X': x}


@pytest.fixture
def oneway_data(rng):
    """One factor with unequal group sizes and spreads."""
    group = np.array(['ctl'] * 8 + ['low'] * 12 + ['high'] * 10, dtype=object)
    y = np.concatenate([
        rng.normal(10.0, 1.0, 8),
        rng.normal(12.0, 1.0, 12),
        rng.normal(15.0, 3.0, 10),
    ])
    return {'y': y, 'group': group}


@pytest.fixture
def balanced_two_way(rng):
    sizes = {(a, b): 4 for a in ('a1', 'a2') for b in ('b1', 'b2', 'b3')}
    return _two_way(rng, sizes)


@pytest.fixture
def unbalanced_two_way(rng):
    sizes = {
        ('a1', 'b1'): 3, ('a1', 'b2'): 6, ('a1', 'b3'): 4,
        ('a2', 'b1'): 7, ('a2', 'b2'): 2, ('a2', 'b3'): 5,
    }
    return _two_way(rng, sizes)


@pytest.fixture
def empty_cell_two_way(rng):
    """Two-way layout with the (a1, b1) cell empty."""
    sizes = {
        ('a1', 'b2'): 4, ('a1', 'b3'): 5,
        ('a2', 'b1'): 4, ('a2', 'b2'): 3, ('a2', 'b3'): 6,
    }
    return _two_way(rng, sizes)


@pytest.fixture
def fit():
    """Build the design and sweep it: fit(data, 'y', **model) -> (info, ZtWZ, swept)."""
    def _fit(data, dependent='y', **model):
        info = design_matrix(data, dependent, **model)
        ZtWZ = cross_product(info.X, info.y, info.w)
        return info, ZtWZ, sweep(ZtWZ, info.p_parameters)
    return _fit
