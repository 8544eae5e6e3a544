"""Tests for waterbird_ssm.inits — bootstrap chain initialisation."""

import numpy as np
import pytest

from waterbird_ssm.inits import build_chain_inits

COUNTS = np.array([100.0, 110.0, np.nan, 95.0, 105.0, 130.0, 88.0, 120.0])


class TestBuildChainInits:
    """Tests for build_chain_inits."""

    def test_one_record_per_chain(self):
        inits = build_chain_inits(COUNTS, n_chains=4, seed=1)
        assert len(inits) == 4
        assert all(set(i) == {'tau_add', 'tau_obs'} for i in inits)

    def test_reproducible_with_seed(self):
        assert build_chain_inits(COUNTS, seed=11) == build_chain_inits(COUNTS, seed=11)

    def test_first_chain_formula(self):
        """tau_add = 1/var(diff(log r)) and tau_obs = 5/var(log r) for resample r.

        The resample spans the whole series, missing occasions included.
        """
        observed = COUNTS[np.isfinite(COUNTS)]
        rng = np.random.default_rng(3)
        resample = np.log(rng.choice(observed, size=len(COUNTS), replace=True))
        assert len(resample) == 8

        first = build_chain_inits(COUNTS, n_chains=1, seed=3)[0]
        assert first['tau_add'] == pytest.approx(1.0 / np.var(np.diff(resample), ddof=1))
        assert first['tau_obs'] == pytest.approx(5.0 / np.var(resample, ddof=1))

    def test_chains_differ(self):
        inits = build_chain_inits(COUNTS, n_chains=3, seed=5)
        keys = {(i['tau_add'], i['tau_obs']) for i in inits}
        assert len(keys) == 3

    def test_positive_and_finite(self):
        for seed in range(20):
            for init in build_chain_inits(COUNTS, seed=seed):
                assert np.isfinite(init['tau_add']) and init['tau_add'] > 0
                assert np.isfinite(init['tau_obs']) and init['tau_obs'] > 0

    def test_degenerate_resample_falls_back(self):
        """A resample with no spread gets precision 1.0 instead of inf."""
        inits = build_chain_inits(np.array([50.0, 50.0, 80.0]), n_chains=3, seed=0)
        for init in inits:
            assert np.isfinite(init['tau_add'])
            assert np.isfinite(init['tau_obs'])

    def test_too_few_observations(self):
        with pytest.raises(ValueError, match='at least 2'):
            build_chain_inits(np.array([np.nan, 12.0, np.nan]))

    def test_constant_series_cannot_give_distinct_chains(self):
        with pytest.raises(ValueError, match='distinct'):
            build_chain_inits(np.array([7.0, 7.0, 7.0]), n_chains=2, seed=0)

    def test_bad_chain_count(self):
        with pytest.raises(ValueError, match='n_chains'):
            build_chain_inits(COUNTS, n_chains=0)

    def test_log_offset_allows_zero_counts(self):
        inits = build_chain_inits(np.array([0.0, 3.0, 5.0, 2.0]), seed=2, log_offset=1.0)
        assert all(np.isfinite(i['tau_obs']) for i in inits)
