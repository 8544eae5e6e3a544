# ---------------------------------------------------------------------------
# waterbird_ssm — Bayesian state-space model for waterbird survey counts
# ---------------------------------------------------------------------------
"""Log-scale random-walk state-space estimation of bi-annual waterbird
counts, with optional environmental covariates, a two-phase MCMC protocol
and credible-envelope summaries."""

from .config import (
    DATA_DIR,
    DEFAULT_PRIORS,
    OUTPUT_DIR,
    SEASONS,
    SURVEYS,
    PriorConfig,
    SeasonWindow,
    SurveyConfig,
)
from .covariates import cached_covariates, future_covariates, join_covariates
from .errors import ConvergenceWarning, DataError
from .forecast import forecast_states
from .inits import build_chain_inits
from .model import (
    LINKS,
    CovariateLink,
    ModelSpec,
    build_model,
    build_spec,
    linear_link,
    seasonal_link,
)
from .prepare import extract_series, prepare_counts, series_from_counts
from .records import (
    COUNT_SCHEMA,
    COVARIATE_SCHEMA,
    filter_counts,
    load_counts,
    load_covariates,
    validate_counts,
    validate_covariates,
)
from .sampling import (
    BURN_IN_SAMPLER_KWARGS,
    DEFAULT_SAMPLER_KWARGS,
    LIGHT_SAMPLER_KWARGS,
    sample_model,
)
from .summary import (
    PosteriorSamples,
    latent_quantiles,
    noise_summary,
    precision_correlation,
    precision_pearson,
    precision_to_sd,
    sd_to_precision,
    summarize,
)
from .workflow import FitState, StateSpaceFit

__all__ = [
    "DATA_DIR",
    "DEFAULT_PRIORS",
    "OUTPUT_DIR",
    "SEASONS",
    "SURVEYS",
    "PriorConfig",
    "SeasonWindow",
    "SurveyConfig",
    "DataError",
    "ConvergenceWarning",
    # Data
    "COUNT_SCHEMA",
    "COVARIATE_SCHEMA",
    "load_counts",
    "load_covariates",
    "filter_counts",
    "validate_counts",
    "validate_covariates",
    "prepare_counts",
    "extract_series",
    "series_from_counts",
    "join_covariates",
    "cached_covariates",
    "future_covariates",
    # Model
    "ModelSpec",
    "CovariateLink",
    "LINKS",
    "linear_link",
    "seasonal_link",
    "build_spec",
    "build_model",
    "build_chain_inits",
    # Sampling & workflow
    "sample_model",
    "BURN_IN_SAMPLER_KWARGS",
    "DEFAULT_SAMPLER_KWARGS",
    "LIGHT_SAMPLER_KWARGS",
    "FitState",
    "StateSpaceFit",
    # Summaries
    "PosteriorSamples",
    "latent_quantiles",
    "noise_summary",
    "precision_correlation",
    "precision_pearson",
    "precision_to_sd",
    "sd_to_precision",
    "summarize",
    "forecast_states",
]
