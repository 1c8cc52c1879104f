"""
Tests for estimated marginal means.

Validates:
    - EMMs as cell-mean averages in balanced designs, and at the
      covariate mean in ANCOVA
    - the grand mean
    - pairwise comparisons with LSD, Bonferroni and Sidak adjustment
    - the univariate test matching the factor's F test
    - non-estimable EMMs over an empty cell
"""

import numpy as np
import pytest
from scipy import stats as sp_stats

from pyglm.core.exceptions import ConfigurationError, RankDeficiencyError, ValidationError
from pyglm.glm._emmeans import adjust_p, adjusted_alpha, marginal_means
from pyglm.glm._estimable import term_l_matrix
from pyglm.glm._hypothesis import evaluate_hypothesis


def _emm(fit, data, request, adjustment='lsd', **model):
    info, ZtWZ, swept = fit(data, 'y', **model)
    df_error = info.n_samples - swept.rank
    emm, warnings = marginal_means(
        info, swept, ZtWZ[:-1, :-1], request, df_error=df_error, adjustment=adjustment,
    )
    return info, swept, df_error, emm, warnings


class TestMeans:

    def test_balanced_marginal_means(self, fit, balanced_two_way):
        _, swept, df_error, emm, warnings = _emm(fit, balanced_two_way, 'A', factors=['A', 'B'])
        y, A = balanced_two_way['y'], balanced_two_way['A']
        mse = swept.rss / df_error

        assert warnings == ()
        assert emm.factors == ('A',)
        assert [m.levels for m in emm.means] == [('a1',), ('a2',)]
        np.testing.assert_allclose(
            [m.mean for m in emm.means], [y[A == a].mean() for a in ('a1', 'a2')], rtol=1e-10,
        )
        np.testing.assert_allclose(emm.means[0].std_error, np.sqrt(mse / 12), rtol=1e-10)
        half = sp_stats.t.ppf(0.975, df_error) * emm.means[0].std_error
        np.testing.assert_allclose(
            [emm.means[0].ci_lower, emm.means[0].ci_upper],
            [emm.means[0].mean - half, emm.means[0].mean + half],
        )

    def test_factor_combination_is_cell_mean(self, fit, unbalanced_two_way):
        _, _, _, emm, _ = _emm(fit, unbalanced_two_way, 'A*B', factors=['A', 'B'])
        y, A, B = unbalanced_two_way['y'], unbalanced_two_way['A'], unbalanced_two_way['B']
        assert len(emm.means) == 6
        assert emm.means[1].levels == ('a1', 'b2')
        np.testing.assert_allclose(emm.means[1].mean, y[(A == 'a1') & (B == 'b2')].mean(), rtol=1e-10)
        assert emm.comparisons == ()
        assert emm.test is None

    def test_covariate_held_at_mean(self, fit, ancova_data):
        info, swept, _, emm, _ = _emm(
            fit, ancova_data, 'Group', factors=['Group'], covariates=['X'],
        )
        beta = swept.beta
        x_bar = np.mean(ancova_data['X'])
        assert emm.covariate_means == {'X': pytest.approx(x_bar)}
        np.testing.assert_allclose(emm.means[2].mean, beta[0] + beta[1] * x_bar, rtol=1e-10)
        np.testing.assert_allclose(emm.means[0].mean, beta[0] + beta[1] * x_bar + beta[2], rtol=1e-10)

    def test_grand_mean(self, fit, balanced_two_way):
        _, _, _, emm, _ = _emm(fit, balanced_two_way, '(OVERALL)', factors=['A', 'B'])
        assert emm.factors == ()
        assert len(emm.means) == 1
        assert emm.means[0].levels == ()
        np.testing.assert_allclose(emm.means[0].mean, balanced_two_way['y'].mean(), rtol=1e-10)


class TestPairwise:

    def test_lsd(self, fit, oneway_data):
        _, swept, df_error, emm, _ = _emm(fit, oneway_data, 'group', factors=['group'])
        y, g = oneway_data['y'], oneway_data['group']
        mse = swept.rss / df_error

        assert [(c.level1, c.level2) for c in emm.comparisons] == [
            ('ctl', 'high'), ('ctl', 'low'), ('high', 'low'),
        ]
        first = emm.comparisons[0]
        np.testing.assert_allclose(first.diff, y[g == 'high'].mean() - y[g == 'ctl'].mean(), rtol=1e-10)
        np.testing.assert_allclose(first.std_error, np.sqrt(mse * (1 / 8 + 1 / 10)), rtol=1e-10)
        np.testing.assert_allclose(
            first.p_value, 2 * sp_stats.t.sf(abs(first.t_value), df_error), rtol=1e-10,
        )

    def test_bonferroni_and_sidak(self, fit, oneway_data):
        _, _, df_error, lsd, _ = _emm(fit, oneway_data, 'group', factors=['group'])
        _, _, _, bonf, _ = _emm(fit, oneway_data, 'group', 'bonferroni', factors=['group'])
        _, _, _, sidak, _ = _emm(fit, oneway_data, 'group', 'sidak', factors=['group'])

        for raw, b, s in zip(lsd.comparisons, bonf.comparisons, sidak.comparisons):
            np.testing.assert_allclose(b.p_value, min(3 * raw.p_value, 1.0), rtol=1e-10)
            np.testing.assert_allclose(s.p_value, 1 - (1 - raw.p_value) ** 3, rtol=1e-10)
            assert raw.p_value <= s.p_value <= b.p_value

        c = bonf.comparisons[0]
        half = sp_stats.t.ppf(1 - 0.05 / 3 / 2, df_error) * c.std_error
        np.testing.assert_allclose([c.ci_lower, c.ci_upper], [c.diff - half, c.diff + half])
        assert bonf.adjustment == 'bonferroni'

    def test_adjustment_helpers(self):
        assert adjusted_alpha(0.05, 5, 'bonferroni') == pytest.approx(0.01)
        assert adjusted_alpha(0.05, 5, 'sidak') == pytest.approx(1 - 0.95 ** 0.2)
        assert adjusted_alpha(0.05, 5, 'lsd') == 0.05
        assert adjust_p(0.4, 3, 'bonferroni') == 1.0
        assert np.isnan(adjust_p(float('nan'), 3, 'sidak'))

    def test_univariate_test_matches_factor_test(self, fit, oneway_data):
        info, swept, df_error, emm, _ = _emm(fit, oneway_data, 'group', factors=['group'])
        L = term_l_matrix(info, info.term('group'), swept.aliased)
        expected = evaluate_hypothesis(L, swept.beta, swept.G, swept.rss, df_error)
        assert emm.test.df == 2
        np.testing.assert_allclose(emm.test.f_value, expected.f_value, rtol=1e-9)


class TestNonEstimable:

    def test_empty_cell(self, fit, empty_cell_two_way):
        _, _, _, emm, warnings = _emm(fit, empty_cell_two_way, 'A*B', factors=['A', 'B'])
        assert np.isnan(emm.means[0].mean)
        assert np.isnan(emm.means[0].std_error)
        assert np.all(np.isfinite([m.mean for m in emm.means[1:]]))
        assert len(warnings) == 1
        assert 'A=a1, B=b1' in warnings[0]

    def test_marginal_over_empty_cell(self, fit, empty_cell_two_way):
        _, _, _, emm, warnings = _emm(fit, empty_cell_two_way, 'A', factors=['A', 'B'])
        assert np.isnan(emm.means[0].mean)
        assert np.isfinite(emm.means[1].mean)
        assert np.isnan(emm.comparisons[0].diff)
        assert emm.test.df == 0
        assert len(warnings) == 1


class TestErrors:

    def test_unknown_factor(self, fit, ancova_data):
        with pytest.raises(ConfigurationError, match="not a coded factor"):
            _emm(fit, ancova_data, 'X', factors=['Group'], covariates=['X'])

    def test_unknown_adjustment(self, fit, oneway_data):
        with pytest.raises(ValidationError, match="adjustment"):
            _emm(fit, oneway_data, 'group', 'tukey', factors=['group'])

    def test_saturated(self, fit):
        data = {'y': [1.0, 2.0, 4.0], 'g': ['a', 'b', 'c']}
        with pytest.raises(RankDeficiencyError):
            _emm(fit, data, 'g', factors=['g'])
