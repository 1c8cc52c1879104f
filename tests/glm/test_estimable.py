"""
Tests for L-matrix construction (estimable functions).

Validates:
    - closed-form Type III rows for an ANCOVA design
    - intercept row as the average of cell vectors
    - covariate rows averaged over factor*covariate interactions
    - Type IV rows avoiding empty cells
    - aliased columns skipped, general estimable function labels
"""

import numpy as np

from pyglm.glm._estimable import (
    general_estimable_function,
    marginal_mean_rows,
    term_l_matrix,
)


def _ancova(fit, ancova_data, **model):
    return fit(
        ancova_data, 'y', factors=['Group'], covariates=['X'],
        contrasts={'Group': ('indicator', 'first')}, **model,
    )


# ═══════════════════════════════════════════════════════════════════════
# Type III
# ═══════════════════════════════════════════════════════════════════════


class TestTypeIII:

    def test_factor_rows(self, fit, ancova_data):
        info, _, swept = _ancova(fit, ancova_data)
        L = term_l_matrix(info, info.term('Group'), swept.aliased)
        np.testing.assert_allclose(L, [[0, 0, 1, 0], [0, 0, 0, 1]])

    def test_intercept_row(self, fit, ancova_data):
        info, _, swept = _ancova(fit, ancova_data)
        L = term_l_matrix(info, info.term('Intercept'), swept.aliased)
        np.testing.assert_allclose(L, [[1, 0, 1 / 3, 1 / 3]])

    def test_covariate_row(self, fit, ancova_data):
        info, _, swept = _ancova(fit, ancova_data)
        L = term_l_matrix(info, info.term('X'), swept.aliased)
        np.testing.assert_allclose(L, [[0, 1, 0, 0]])

    def test_covariate_row_with_interaction(self, fit, ancova_data):
        info, _, swept = fit(
            ancova_data, 'y', factors=['Group'], covariates=['X'], interactions=['Group*X'],
        )
        L = term_l_matrix(info, info.term('X'), swept.aliased)
        np.testing.assert_allclose(L, [[0, 1, 0, 0, 1 / 3, 1 / 3]])

    def test_interaction_row_is_double_difference(self, fit, balanced_two_way):
        info, _, swept = fit(balanced_two_way, 'y', factors=['A', 'B'])
        L = term_l_matrix(info, info.term('A*B'), swept.aliased)
        np.testing.assert_allclose(L, [[0, 0, 0, 0, 1, 0], [0, 0, 0, 0, 0, 1]])

    def test_main_effect_averages_over_interaction(self, fit, balanced_two_way):
        info, _, swept = fit(balanced_two_way, 'y', factors=['A', 'B'])
        L = term_l_matrix(info, info.term('A'), swept.aliased)
        np.testing.assert_allclose(L, [[0, 1, 0, 0, 1 / 3, 1 / 3]])

    def test_rows_annihilate_other_terms_under_deviation(self, fit, unbalanced_two_way):
        info, _, swept = fit(
            unbalanced_two_way, 'y', factors=['A', 'B'],
            contrasts={'A': 'deviation', 'B': 'deviation'},
        )
        L = term_l_matrix(info, info.term('A'), swept.aliased)
        first, last = info.term('A').first_col, info.term('A').last_col
        outside = np.ones(info.p_parameters, dtype=bool)
        outside[first:last + 1] = False
        np.testing.assert_allclose(L[:, outside], 0.0, atol=1e-12)


# ═══════════════════════════════════════════════════════════════════════
# Type IV and empty cells
# ═══════════════════════════════════════════════════════════════════════


class TestEmptyCells:

    def test_type3_row_touches_empty_cell(self, fit, empty_cell_two_way):
        info, _, swept = fit(empty_cell_two_way, 'y', factors=['A', 'B'])
        L = term_l_matrix(info, info.term('A'), swept.aliased, ss_type=3)
        np.testing.assert_allclose(L, [[0, 1, 0, 0, 1 / 3, 1 / 3]])

    def test_type4_row_avoids_empty_cell(self, fit, empty_cell_two_way):
        info, _, swept = fit(empty_cell_two_way, 'y', factors=['A', 'B'])
        L = term_l_matrix(info, info.term('A'), swept.aliased, ss_type=4)
        np.testing.assert_allclose(L, [[0, 1, 0, 0, 0, 0.5]])
        assert L[0, info.term('A*B').first_col] == 0.0

    def test_aliased_interaction_column_skipped(self, fit, empty_cell_two_way):
        info, _, swept = fit(empty_cell_two_way, 'y', factors=['A', 'B'])
        assert swept.aliased[info.term('A*B').first_col]
        for ss_type in (3, 4):
            L = term_l_matrix(info, info.term('A*B'), swept.aliased, ss_type=ss_type)
            np.testing.assert_allclose(L, [[0, 0, 0, 0, 0, 1]])

    def test_type4_equals_type3_without_empty_cells(self, fit, unbalanced_two_way):
        info, _, swept = fit(unbalanced_two_way, 'y', factors=['A', 'B'])
        for term in info.terms:
            np.testing.assert_allclose(
                term_l_matrix(info, term, swept.aliased, ss_type=4),
                term_l_matrix(info, term, swept.aliased, ss_type=3),
            )

    def test_no_aliasing_information(self, fit, balanced_two_way):
        info, _, _ = fit(balanced_two_way, 'y', factors=['A', 'B'])
        L = term_l_matrix(info, info.term('B'))
        assert L.shape == (2, info.p_parameters)


# ═══════════════════════════════════════════════════════════════════════
# General estimable function
# ═══════════════════════════════════════════════════════════════════════


class TestGeneralEstimableFunction:

    def test_labels_and_terms(self, fit, ancova_data):
        info, _, swept = _ancova(fit, ancova_data)
        gef = general_estimable_function(info, swept.aliased)
        assert gef.parameters == info.parameter_names
        assert [e.label for e in gef.entries] == ['L1', 'L2', 'L3', 'L4']
        assert [e.term for e in gef.entries] == ['Intercept', 'X', 'Group', 'Group']

    def test_descriptions(self, fit, ancova_data):
        info, _, swept = _ancova(fit, ancova_data)
        gef = general_estimable_function(info, swept.aliased)
        by_label = {e.label: e.description for e in gef.entries}
        assert by_label['L1'] == 'mu(Group=1)'
        assert by_label['L2'] == 'slope of X'
        assert by_label['L3'] == 'mu(Group=2) - mu(Group=1)'

    def test_design_note(self, fit, ancova_data):
        info, _, swept = _ancova(fit, ancova_data)
        gef = general_estimable_function(info, swept.aliased)
        assert gef.notes == ('Design: Intercept + X + Group',)

    def test_redundant_note(self, fit, empty_cell_two_way):
        info, _, swept = fit(empty_cell_two_way, 'y', factors=['A', 'B'])
        gef = general_estimable_function(info, swept.aliased)
        assert any('[A=a1]*[B=b1]' in note for note in gef.notes)
        assert 'L5' not in [e.label for e in gef.entries]

    def test_oneway_intercept_is_pivot_cell(self, fit, oneway_data):
        info, _, swept = fit(oneway_data, 'y', factors=['group'])
        gef = general_estimable_function(info, swept.aliased)
        rows = {e.label: e.row for e in gef.entries}
        np.testing.assert_array_equal(rows['L1'], [1, 0, 0])
        assert gef.entries[0].description == 'mu(group=low)'

    def test_two_way_indicator_rows_are_unit_vectors(self, fit, balanced_two_way):
        info, _, swept = fit(balanced_two_way, 'y', factors=['A', 'B'])
        gef = general_estimable_function(info, swept.aliased)
        np.testing.assert_array_equal(np.vstack([e.row for e in gef.entries]), np.eye(6))
        by_label = {e.label: e.description for e in gef.entries}
        assert by_label['L2'] == 'mu(A=a1,B=b3) - mu(A=a2,B=b3)'

    def test_deviation_rows_are_integer(self, fit, unbalanced_two_way):
        info, _, swept = fit(
            unbalanced_two_way, 'y', factors=['A', 'B'],
            contrasts={'A': 'deviation', 'B': 'deviation'},
        )
        gef = general_estimable_function(info, swept.aliased)
        L = np.vstack([e.row for e in gef.entries])
        assert L.shape == (6, 6)
        np.testing.assert_array_equal(L, np.round(L))
        np.testing.assert_array_equal(L[0], info.cell_vector({'A': 1, 'B': 2}))

    def test_hypothesis_rows_stay_averaged(self, fit, oneway_data):
        info, _, swept = fit(oneway_data, 'y', factors=['group'])
        L = term_l_matrix(info, info.term('Intercept'), swept.aliased)
        np.testing.assert_allclose(L, [[1, 1 / 3, 1 / 3]])


class TestMarginalMeans:

    def test_rows_reproduce_cell_means(self, fit, balanced_two_way):
        info, _, swept = fit(balanced_two_way, 'y', factors=['A', 'B'])
        means = marginal_mean_rows(info, 'B') @ swept.beta
        y, B = balanced_two_way['y'], balanced_two_way['B']
        expected = [y[B == b].mean() for b in ('b1', 'b2', 'b3')]
        np.testing.assert_allclose(means, expected, rtol=1e-10)
