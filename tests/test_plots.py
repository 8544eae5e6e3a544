"""Tests for waterbird_ssm.plots and waterbird_ssm.simulate."""

import numpy as np
import polars as pl
import pytest

from waterbird_ssm.plots import plot_envelope, plot_noise_posteriors
from waterbird_ssm.prepare import next_occasions
from waterbird_ssm.simulate import simulate_series
from waterbird_ssm.summary import PosteriorSamples, latent_quantiles


def _samples(n, draws=300, seed=0):
    rng = np.random.default_rng(seed)
    return PosteriorSamples(
        columns=('tau_add', 'tau_obs', *(f'x[{t}]' for t in range(1, n + 1))),
        values=np.column_stack([
            np.exp(1.0 + 0.1 * rng.standard_normal(draws)),
            np.exp(3.0 + 0.1 * rng.standard_normal(draws)),
            np.log(100.0) + 0.1 * rng.standard_normal((draws, n)),
        ]),
    ).validate()


class TestSimulateSeries:
    """Tests for simulate_series."""

    def test_shapes_and_missing(self):
        series, x = simulate_series(12, tau_add=20.0, tau_obs=50.0, missing=[3, 7], seed=1)
        assert series['n'] == 12
        assert x.shape == (12,)
        assert len(series['obs_idx']) == 10
        assert np.isnan(series['counts'][2])
        assert np.isnan(series['counts'][6])

    def test_counts_positive_integers(self):
        series, _ = simulate_series(30, tau_add=1.0, tau_obs=1.0, x1=0.0, seed=2)
        observed = series['counts'][series['obs_idx']]
        assert np.all(observed >= 1)
        assert np.all(observed == np.rint(observed))

    def test_precise_observations_track_state(self):
        series, x = simulate_series(10, tau_add=10.0, tau_obs=1e8, x1=np.log(5000.0), seed=3)
        np.testing.assert_allclose(series['y'], x, atol=1e-3)

    def test_reproducible(self):
        a, xa = simulate_series(8, 10.0, 10.0, seed=9)
        b, xb = simulate_series(8, 10.0, 10.0, seed=9)
        np.testing.assert_array_equal(xa, xb)
        np.testing.assert_array_equal(a['counts'], b['counts'])

    def test_bad_precision(self):
        with pytest.raises(ValueError):
            simulate_series(5, tau_add=0.0, tau_obs=1.0)


class TestPlots:
    """Smoke tests: figures are written to disk."""

    def test_envelope_with_forecast(self, tmp_path):
        series, _ = simulate_series(8, 10.0, 10.0, missing=[4], seed=0)
        envelope = latent_quantiles(_samples(8), series)
        last_year, last_visit = int(series['survey_year'][-1]), int(series['visit'][-1])
        occ = next_occasions(last_year, last_visit, 2)
        forecast = pl.DataFrame({
            'date': [o[2] for o in occ],
            'lower': [80.0, 70.0],
            'median': [100.0, 100.0],
            'upper': [120.0, 130.0],
        })
        path = plot_envelope(
            envelope, 'Test series', forecast=forecast,
            path=tmp_path / 'env.png', provisional=True,
        )
        assert path.exists()

    def test_noise_posteriors(self, tmp_path):
        path = plot_noise_posteriors(_samples(4), tmp_path / 'noise.png')
        assert path.exists()
