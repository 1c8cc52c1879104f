"""
Tests for design matrix construction.

Validates:
    - column order and the term -> column-range map
    - parameter names
    - interaction columns (factor x factor, factor x covariate)
    - omitted terms and the no-columns error
    - cell vectors and observed cells
"""

import numpy as np
import pytest

from pyglm.core.exceptions import ConfigurationError
from pyglm.glm import design_matrix
from pyglm.glm._design_matrix import build_design_matrix
from pyglm.glm.design import GLMDesign


# ═══════════════════════════════════════════════════════════════════════
# Layout
# ═══════════════════════════════════════════════════════════════════════


class TestLayout:

    def test_ancova_indicator_first(self, ancova_data):
        info = design_matrix(
            ancova_data, 'y', factors=['Group'], covariates=['X'],
            contrasts={'Group': ('indicator', 'first')},
        )
        assert info.p_parameters == 4
        assert info.parameter_names == ('Intercept', 'X', '[Group=2]', '[Group=3]')
        assert info.term_column_indices == {'Intercept': (0, 0), 'X': (1, 1), 'Group': (2, 3)}
        np.testing.assert_array_equal(info.X[:, 0], 1.0)
        np.testing.assert_array_equal(info.X[:, 1], ancova_data['X'])
        np.testing.assert_array_equal(info.X[:10, 2:], 0.0)
        np.testing.assert_array_equal(info.X[10:20, 2:], [[1.0, 0.0]] * 10)
        assert info.rank == 4
        assert info.n_samples == 30

    def test_default_reference_is_last(self, ancova_data):
        info = design_matrix(ancova_data, 'y', factors=['Group'])
        assert info.parameter_names == ('Intercept', '[Group=1]', '[Group=2]')

    def test_no_intercept(self, ancova_data):
        info = design_matrix(ancova_data, 'y', factors=['Group'], intercept=False)
        assert not info.has_intercept
        assert info.term_column_indices == {'Group': (0, 1)}

    def test_factor_by_factor(self, balanced_two_way):
        info = design_matrix(balanced_two_way, 'y', factors=['A', 'B'])
        assert info.term_column_indices == {
            'Intercept': (0, 0), 'A': (1, 1), 'B': (2, 3), 'A*B': (4, 5),
        }
        assert info.parameter_names[4:] == ('[A=a1]*[B=b1]', '[A=a1]*[B=b2]')
        np.testing.assert_array_equal(info.X[:, 4], info.X[:, 1] * info.X[:, 2])
        np.testing.assert_array_equal(info.X[:, 5], info.X[:, 1] * info.X[:, 3])

    def test_factor_by_covariate(self, ancova_data):
        info = design_matrix(
            ancova_data, 'y', factors=['Group'], covariates=['X'], interactions=['Group*X'],
        )
        assert info.term_column_indices['Group*X'] == (4, 5)
        assert info.parameter_names[4:] == ('[Group=1]*X', '[Group=2]*X')
        np.testing.assert_allclose(info.X[:, 4], info.X[:, 2] * ancova_data['X'])
        term = info.term('Group*X')
        assert term.factors == ('Group',)
        assert term.covariates == ('X',)

    def test_contrast_labels_in_names(self, ancova_data):
        info = design_matrix(ancova_data, 'y', factors=['Group'], contrasts={'Group': 'polynomial'})
        assert info.parameter_names == ('Intercept', '[Group=Linear]', '[Group=Quadratic]')

    def test_weights_carried(self, ancova_data):
        data = dict(ancova_data, w=np.linspace(0.5, 2.0, 30))
        info = design_matrix(data, 'y', covariates=['X'], weights='w')
        np.testing.assert_array_equal(info.w, data['w'])
        np.testing.assert_array_equal(info.weights, data['w'])

    def test_unit_weights_when_unweighted(self, ancova_data):
        info = design_matrix(ancova_data, 'y', covariates=['X'])
        assert info.w is None
        np.testing.assert_array_equal(info.weights, 1.0)


# ═══════════════════════════════════════════════════════════════════════
# Degenerate factors
# ═══════════════════════════════════════════════════════════════════════


class TestDegenerate:

    def test_single_label_level_omitted(self):
        data = {'y': [1.0, 2.0, 3.0], 'A': ['a', 'b', 'a'], 'C': ['c', 'c', 'c']}
        info = design_matrix(data, 'y', factors=['A', 'C'])
        assert info.omitted_terms == ('C', 'A*C')
        assert info.term_names == ('Intercept', 'A')
        assert 'C' not in info.factor_details

    def test_single_numeric_level_raw(self):
        data = {'y': [1.0, 2.0, 3.0], 'A': ['a', 'b', 'a'], 'C': [7.0, 7.0, 7.0]}
        info = design_matrix(data, 'y', factors=['A', 'C'], interactions=[])
        assert info.term_column_indices['C'] == (2, 2)
        np.testing.assert_array_equal(info.X[:, 2], 7.0)
        assert info.rank == 2

    def test_no_columns(self):
        data = {'y': [1.0, 2.0], 'C': ['c', 'c']}
        with pytest.raises(ConfigurationError, match="no columns"):
            design_matrix(data, 'y', factors=['C'], intercept=False)

    def test_rank_deficient_design(self, empty_cell_two_way):
        info = design_matrix(empty_cell_two_way, 'y', factors=['A', 'B'])
        assert info.p_parameters == 6
        assert info.rank == 5
        np.testing.assert_array_equal(info.X[:, info.term('A*B').first_col], 0.0)


# ═══════════════════════════════════════════════════════════════════════
# Cells
# ═══════════════════════════════════════════════════════════════════════


class TestCells:

    def test_cell_vector_matches_design_row(self, balanced_two_way):
        info = design_matrix(balanced_two_way, 'y', factors=['A', 'B'])
        a = info.factor_details['A']
        b = info.factor_details['B']
        for i in (0, 5, 13):
            cell = {'A': int(a.level_index[i]), 'B': int(b.level_index[i])}
            np.testing.assert_array_equal(info.cell_vector(cell), info.X[i])

    def test_cell_vector_covariate_set(self, ancova_data):
        info = design_matrix(
            ancova_data, 'y', factors=['Group'], covariates=['X'], interactions=['Group*X'],
        )
        v = info.cell_vector({'Group': 0}, frozenset({'X'}))
        np.testing.assert_array_equal(v, [0, 1, 0, 0, 1, 0])

    def test_observed_cells(self, empty_cell_two_way):
        info = design_matrix(empty_cell_two_way, 'y', factors=['A', 'B'])
        cells = info.observed_cells(('A', 'B'))
        assert (0, 0) not in cells
        assert len(cells) == 5
        assert info.observed_cells(()) == {()}

    def test_factor_detail(self, ancova_data):
        info = design_matrix(
            ancova_data, 'y', factors=['Group'], contrasts={'Group': ('deviation', 'first')},
        )
        detail = info.factor_details['Group']
        assert detail.levels == ('1', '2', '3')
        assert detail.reference_level == '1'
        assert detail.pivot_level == '1'
        assert detail.pivot_index == 0
        assert detail.non_pivot_indices == (1, 2)

    def test_reference_level_is_first_sorted_under_last_pivot(self, ancova_data):
        info = design_matrix(ancova_data, 'y', factors=['Group'])
        detail = info.factor_details['Group']
        assert detail.reference_level == '1'
        assert detail.pivot_level == '3'
        assert detail.pivot_index == 2

    def test_covariate_means(self, ancova_data):
        info = design_matrix(
            ancova_data, 'y', factors=['Group'], covariates=['X'], interactions=['Group*X'],
        )
        assert set(info.covariate_means) == {'X'}
        np.testing.assert_allclose(info.covariate_means['X'], np.mean(ancova_data['X']))


class TestBuildFromDesign:

    def test_case_index_preserved(self):
        design = GLMDesign.for_arrays(
            [1.0, np.nan, 3.0, 4.0], factors={'g': ['a', 'b', 'b', 'a']}
        )
        info = build_design_matrix(design)
        np.testing.assert_array_equal(info.case_index, [0, 2, 3])
        np.testing.assert_array_equal(info.y, [1.0, 3.0, 4.0])
