"""End-to-end fits with the real sampler.

These run NUTS and take a while; deselect with ``pytest -m 'not slow'``.
"""

import warnings

import numpy as np
import pytest

from waterbird_ssm.config import PriorConfig
from waterbird_ssm.errors import ConvergenceWarning
from waterbird_ssm.sampling import LIGHT_SAMPLER_KWARGS
from waterbird_ssm.simulate import simulate_series
from waterbird_ssm.summary import envelope_coverage
from waterbird_ssm.workflow import StateSpaceFit

pytestmark = pytest.mark.slow

# Informative priors centred on the simulation's own precisions
TAU_ADD = 11.0
TAU_OBS = 100.0
PRIORS = PriorConfig(
    a_add=100.0,
    r_add=100.0 / TAU_ADD,
    a_obs=100.0,
    r_obs=100.0 / TAU_OBS,
    x_ic=np.log(100.0),
)


@pytest.fixture(scope='module')
def simulated():
    series, x = simulate_series(
        30, tau_add=TAU_ADD, tau_obs=TAU_OBS, x1=np.log(100.0), missing=[6, 17], seed=2024
    )
    return series, x


def _fit(series, seed):
    fit = StateSpaceFit(
        series,
        priors=PRIORS,
        seed=seed,
        burn_in_kwargs=LIGHT_SAMPLER_KWARGS,
        production_kwargs=LIGHT_SAMPLER_KWARGS,
    )
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', ConvergenceWarning)
        fit.run(max_extensions=1)
    return fit


@pytest.fixture(scope='module')
def fitted(simulated):
    series, _ = simulated
    return _fit(series, seed=1)


class TestSelfConsistency:
    """Fits to data simulated from the model itself."""

    def test_fit_converges(self, fitted):
        assert not fitted.provisional

    def test_observed_counts_inside_envelope(self, fitted):
        envelope = fitted.summary.envelope
        assert len(envelope) == 30
        assert envelope['count'].null_count() == 2
        assert envelope_coverage(envelope) >= 0.9

    def test_missing_steps_are_estimated(self, fitted):
        envelope = fitted.summary.envelope
        gap = envelope.filter(envelope['count'].is_null())
        assert len(gap) == 2
        assert (gap['lower'] > 0).all()
        assert (gap['lower'] < gap['upper']).all()

    def test_noise_recovered(self, fitted):
        noise = fitted.summary.noise
        process = noise.filter(noise['parameter'] == 'tau_add')
        sd = 1.0 / np.sqrt(TAU_ADD)
        assert process['sd_lower'][0] < sd < process['sd_upper'][0]


class TestInitialisationInvariance:
    """Converged fits from different seeds agree."""

    def test_medians_agree_across_seeds(self, simulated):
        series, _ = simulated
        fit_a = _fit(series, seed=11)
        fit_b = _fit(series, seed=97)
        assert not fit_a.provisional
        assert not fit_b.provisional

        assert fit_a.initvals != fit_b.initvals
        med_a = fit_a.summary.envelope['median'].to_numpy()
        med_b = fit_b.summary.envelope['median'].to_numpy()
        np.testing.assert_allclose(med_a, med_b, rtol=0.05)
