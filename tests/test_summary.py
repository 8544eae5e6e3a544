"""Tests for waterbird_ssm.summary — sample matrix, quantiles and noise summaries."""

import warnings

import arviz as az
import numpy as np
import pytest

from waterbird_ssm.errors import ConvergenceWarning
from waterbird_ssm.prepare import series_from_counts
from waterbird_ssm.summary import (
    PosteriorSamples,
    envelope_coverage,
    latent_quantiles,
    noise_summary,
    precision_correlation,
    precision_to_sd,
    sd_to_precision,
    summarize,
)


def _make_idata(n=5, chains=2, draws=400, seed=0, corr=0.0):
    """Fake posterior with x[t] ~ N(log 100, 0.1) and optionally correlated precisions."""
    rng = np.random.default_rng(seed)
    z1 = rng.standard_normal((chains, draws))
    z2 = corr * z1 + np.sqrt(1 - corr**2) * rng.standard_normal((chains, draws))
    return az.from_dict(
        posterior={
            'tau_add': np.exp(1.0 + 0.2 * z1),
            'tau_obs': np.exp(3.0 + 0.2 * z2),
            'x': np.log(100.0) + 0.1 * rng.standard_normal((chains, draws, n)),
        },
    )


class TestPosteriorSamples:
    """Tests for PosteriorSamples."""

    def test_from_idata_layout(self):
        samples = PosteriorSamples.from_idata(_make_idata(n=5, chains=2, draws=400))
        assert samples.columns[:2] == ('tau_add', 'tau_obs')
        assert samples.columns[2:] == tuple(f'x[{t}]' for t in range(1, 6))
        assert samples.values.shape == (800, 7)
        assert samples.n == 5
        assert samples.latent.shape == (800, 5)

    def test_rejects_non_positive_precision(self):
        values = np.column_stack([[1.0, -0.5], [1.0, 2.0], [0.0, 0.1]])
        with pytest.raises(ValueError, match='tau_add'):
            PosteriorSamples(columns=('tau_add', 'tau_obs', 'x[1]'), values=values).validate()

    def test_rejects_shape_mismatch(self):
        with pytest.raises(ValueError, match='shape'):
            PosteriorSamples(columns=('tau_add', 'tau_obs'), values=np.ones((3, 4))).validate()


class TestPrecisionConversion:
    """Tests for precision_to_sd / sd_to_precision."""

    def test_known_values(self):
        assert precision_to_sd(4.0) == pytest.approx(0.5)
        assert precision_to_sd(100.0) == pytest.approx(0.1)
        assert sd_to_precision(0.5) == pytest.approx(4.0)

    def test_round_trip(self):
        p = np.logspace(-3, 3, 13)
        np.testing.assert_allclose(sd_to_precision(precision_to_sd(p)), p, rtol=1e-12)

    @pytest.mark.parametrize('bad', [0.0, -1.0, np.nan])
    def test_non_positive_rejected(self, bad):
        with pytest.raises(ValueError):
            precision_to_sd(bad)
        with pytest.raises(ValueError):
            sd_to_precision(bad)


class TestLatentQuantiles:
    """Tests for latent_quantiles and envelope_coverage."""

    def test_count_scale_and_ordering(self):
        series = series_from_counts([100, 105, None, 98, 101])
        samples = PosteriorSamples.from_idata(_make_idata(n=5))
        env = latent_quantiles(samples, series)

        assert env.columns == ['t', 'date', 'count', 'lower', 'median', 'upper']
        assert env['t'].to_list() == [1, 2, 3, 4, 5]
        assert env['count'][2] is None
        assert (env['lower'] <= env['median']).all()
        assert (env['median'] <= env['upper']).all()
        # exp(N(log 100, 0.1)): median near 100, 95% band roughly [82, 122]
        assert env['median'].to_numpy() == pytest.approx(100.0, rel=0.05)
        assert env['lower'].to_numpy() == pytest.approx(100.0 * np.exp(-0.196), rel=0.05)

    def test_exact_quantiles(self):
        draws = np.log(np.arange(1.0, 101.0))
        samples = PosteriorSamples(
            columns=('tau_add', 'tau_obs', 'x[1]', 'x[2]'),
            values=np.column_stack([np.ones(100), np.ones(100), draws, draws]),
        )
        series = series_from_counts([10, 20])
        env = latent_quantiles(samples, series)
        expected = np.exp(np.quantile(draws, [0.025, 0.5, 0.975]))
        assert env.row(0)[3:] == pytest.approx(tuple(expected))

    def test_length_mismatch(self):
        samples = PosteriorSamples.from_idata(_make_idata(n=4))
        with pytest.raises(ValueError, match='latent steps'):
            latent_quantiles(samples, series_from_counts([1, 2, 3, 4, 5]))

    def test_coverage(self):
        series = series_from_counts([100, 300, None, 98, 101])
        env = latent_quantiles(PosteriorSamples.from_idata(_make_idata(n=5)), series)
        assert envelope_coverage(env) == pytest.approx(0.75)


class TestPrecisionCorrelation:
    """Tests for precision_correlation."""

    def test_weak_correlation_is_silent(self):
        samples = PosteriorSamples.from_idata(_make_idata(corr=0.0))
        with warnings.catch_warnings():
            warnings.simplefilter('error', ConvergenceWarning)
            r = precision_correlation(samples)
        assert abs(r) < 0.2

    def test_strong_correlation_warns(self):
        samples = PosteriorSamples.from_idata(_make_idata(corr=-0.95))
        with pytest.warns(ConvergenceWarning, match='identifiable'):
            r = precision_correlation(samples)
        assert r < -0.7

    def test_threshold_configurable(self):
        samples = PosteriorSamples.from_idata(_make_idata(corr=0.5))
        with pytest.warns(ConvergenceWarning):
            precision_correlation(samples, threshold=0.3)


class TestNoiseSummary:
    """Tests for noise_summary and summarize."""

    def test_rows_in_sd_units(self):
        samples = PosteriorSamples.from_idata(_make_idata())
        noise = noise_summary(samples)
        assert noise['parameter'].to_list() == ['tau_add', 'tau_obs']
        # median precision exp(1) / exp(3) -> sd exp(-0.5) / exp(-1.5)
        med = noise['sd_median'].to_numpy()
        assert med[0] == pytest.approx(np.exp(-0.5), rel=0.05)
        assert med[1] == pytest.approx(np.exp(-1.5), rel=0.05)
        assert (noise['sd_lower'] < noise['sd_upper']).all()

    def test_summarize_bundle(self):
        series = series_from_counts([100, 105, None, 98, 101])
        summary = summarize(_make_idata(), series, provisional=True)
        assert summary.provisional is True
        assert len(summary.envelope) == 5
        assert len(summary.noise) == 2
        assert np.isfinite(summary.precision_corr)
