# ---------------------------------------------------------------------------
# waterbird_ssm.sampling — MCMC sampling
# ---------------------------------------------------------------------------
from __future__ import annotations

import logging

import arviz as az
import pymc as pm

from .config import N_CHAINS

logger = logging.getLogger(__name__)

# Variables tracked by the short diagnostic (burn-in) run
NOISE_VARS = ["tau_add", "tau_obs"]

# Short diagnostic run: noise precisions only
BURN_IN_SAMPLER_KWARGS: dict = dict(
    draws=1000,
    tune=1000,
    chains=N_CHAINS,
    target_accept=0.95,
    return_inferencedata=True,
)

# Default production run: every latent state retained
DEFAULT_SAMPLER_KWARGS: dict = dict(
    draws=5000,
    tune=2000,
    chains=N_CHAINS,
    target_accept=0.95,
    return_inferencedata=True,
)

# Lighter configuration for multi-site loops and tests
LIGHT_SAMPLER_KWARGS: dict = dict(
    draws=1000,
    tune=1000,
    chains=N_CHAINS,
    target_accept=0.9,
    return_inferencedata=True,
)


def sample_model(
    model: pm.Model,
    initvals: list[dict] | None = None,
    sampler_kwargs: dict | None = None,
    var_names: list[str] | None = None,
    random_seed: int | None = None,
) -> az.InferenceData:
    """Sample the model with PyMC NUTS.

    Parameters
    ----------
    model : pm.Model
        Output of :func:`waterbird_ssm.model.build_model`.
    initvals : list[dict], optional
        One initial-value record per chain (see
        :func:`waterbird_ssm.inits.build_chain_inits`).
    sampler_kwargs : dict, optional
        Override the default sampling configuration.  Use
        ``BURN_IN_SAMPLER_KWARGS`` for the diagnostic run or
        ``LIGHT_SAMPLER_KWARGS`` for loops over many sites.
    var_names : list[str], optional
        Variables to keep in the trace; ``None`` keeps everything.
    random_seed : int, optional
        Sampler seed.

    Notes
    -----
    Sampler failures propagate unchanged.  A failed run is not retried:
    chain state cannot be resumed without re-deriving initial values.
    """
    if sampler_kwargs is None:
        sampler_kwargs = DEFAULT_SAMPLER_KWARGS
    kwargs = dict(sampler_kwargs)

    if initvals is not None:
        chains = kwargs.get("chains", N_CHAINS)
        if len(initvals) != chains:
            raise ValueError(f"Got {len(initvals)} initial-value records for {chains} chains")
        kwargs["initvals"] = initvals

    logger.info(
        f"Sampling {kwargs.get('chains')} chains x {kwargs.get('draws')} draws "
        f"(tune={kwargs.get('tune')}, vars={var_names or 'all'})"
    )
    with model:
        idata = pm.sample(var_names=var_names, random_seed=random_seed, **kwargs)

    logger.info("Sampling complete")
    return idata
