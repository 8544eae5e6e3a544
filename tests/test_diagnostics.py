"""Tests for waterbird_ssm.diagnostics — convergence checks and reports."""

import arviz as az
import numpy as np
import polars as pl
import pytest
from scipy import stats as sp_stats

from waterbird_ssm.diagnostics import (
    check_convergence,
    count_divergences,
    plot_burn_in_traces,
    print_diagnostics,
    print_noise_summary,
)
from waterbird_ssm.summary import precision_pearson


def _make_idata(chains=3, draws=1000, shift=0.0, n_divergent=0, seed=0):
    rng = np.random.default_rng(seed)
    offsets = np.arange(chains)[:, None] * shift
    diverging = np.zeros((chains, draws), dtype=bool)
    diverging.flat[:n_divergent] = True
    return az.from_dict(
        posterior={
            'tau_add': np.exp(1.0 + offsets + 0.1 * rng.standard_normal((chains, draws))),
            'tau_obs': np.exp(3.0 + offsets + 0.1 * rng.standard_normal((chains, draws))),
        },
        sample_stats={'diverging': diverging},
    )


class TestCheckConvergence:
    """Tests for check_convergence."""

    def test_well_mixed(self):
        report = check_convergence(_make_idata())
        assert report.converged
        assert set(report.rhat) == {'tau_add', 'tau_obs'}
        assert all(v < 1.01 for v in report.rhat.values())
        assert report.divergences == 0
        assert abs(report.precision_corr) < 0.2

    def test_unmixed_chains(self):
        report = check_convergence(_make_idata(shift=2.0))
        assert not report.converged
        assert any('R-hat' in p for p in report.problems)

    def test_low_ess(self):
        report = check_convergence(_make_idata(draws=50))
        assert any('ESS_bulk' in p for p in report.problems)

    def test_divergences_fail_check(self):
        report = check_convergence(_make_idata(n_divergent=4))
        assert report.divergences == 4
        assert '4 divergent transitions' in report.problems

    def test_thresholds_configurable(self):
        report = check_convergence(_make_idata(n_divergent=4), max_divergences=10)
        assert report.converged

    def test_correlation_matches_summary_helper(self):
        """The burn-in report and the posterior summary use the same correlation."""
        idata = _make_idata(seed=5)
        tau_add = idata.posterior['tau_add'].values.reshape(-1)
        tau_obs = idata.posterior['tau_obs'].values.reshape(-1)
        report = check_convergence(idata)
        assert report.precision_corr == precision_pearson(tau_add, tau_obs)
        assert report.precision_corr == pytest.approx(sp_stats.pearsonr(tau_add, tau_obs)[0])

    def test_constant_draws_give_nan_correlation(self):
        assert np.isnan(precision_pearson(np.ones(10), np.arange(10.0)))

    def test_no_sample_stats(self):
        idata = az.from_dict(posterior={'tau_add': np.ones((2, 10))})
        assert count_divergences(idata) == 0


class TestReports:
    """Tests for the printed reports and trace plot."""

    def test_print_diagnostics(self, capsys):
        print_diagnostics(check_convergence(_make_idata(shift=2.0)))
        out = capsys.readouterr().out
        assert 'BURN-IN DIAGNOSTICS' in out
        assert 'did not pass diagnostics' in out

    def test_print_noise_summary(self, capsys):
        noise = pl.DataFrame(
            {
                'component': ['process', 'observation'],
                'sd_median': [0.3, 0.1],
                'sd_lower': [0.2, 0.05],
                'sd_upper': [0.4, 0.2],
            }
        )
        print_noise_summary(noise)
        out = capsys.readouterr().out
        assert 'process' in out
        assert '0.3000' in out

    def test_trace_plot_saved(self, tmp_path):
        path = plot_burn_in_traces(_make_idata(), tmp_path / 'traces.png')
        assert path.exists()
