# ---------------------------------------------------------------------------
# waterbird_ssm.forecast — Forward simulation of the latent state
# ---------------------------------------------------------------------------
from __future__ import annotations

import arviz as az
import numpy as np
import polars as pl

from .config import CREDIBLE_QUANTILES, SEASONS, SeasonWindow
from .model import CovariateLink
from .prepare import next_occasions
from .summary import back_transform


def forecast_states(
    idata: az.InferenceData,
    series: dict,
    horizon: int,
    link: CovariateLink | None = None,
    future_covariates: np.ndarray | list[float] | None = None,
    seed: int | None = None,
    quantiles: tuple[float, float, float] = CREDIBLE_QUANTILES,
    seasons: tuple[SeasonWindow, ...] = SEASONS,
) -> pl.DataFrame:
    """Propagate each posterior draw *horizon* occasions past the series.

    Every draw continues from its own last latent state with its own process
    precision (and link coefficients), so the envelope carries both
    parameter and process uncertainty.

    Parameters
    ----------
    idata : az.InferenceData
        Production run holding ``x``, ``tau_add`` and any link coefficients.
    series : dict
        The fitted series (:func:`waterbird_ssm.prepare.extract_series`).
    horizon : int
        Number of future occasions.
    link : CovariateLink, optional
        The link the model was fitted with.
    future_covariates : array-like, optional
        Raw (uncentred) covariate value for each future occasion; required
        with *link*.
    seed : int, optional
        Seed for the process-noise draws.

    Returns
    -------
    pl.DataFrame
        ``step, survey_year, visit, date, lower, median, upper`` on the
        count scale.
    """
    if horizon < 1:
        raise ValueError(f"horizon must be >= 1, got {horizon}")

    post = idata.posterior
    x_last = post["x"].values[..., -1].reshape(-1)
    sigma = 1.0 / np.sqrt(post["tau_add"].values.reshape(-1))
    n_draws = len(x_last)

    occasions = next_occasions(
        int(series["survey_year"][-1]), int(series["visit"][-1]), horizon, seasons
    )

    coefs: dict[str, np.ndarray] = {}
    cov = None
    if link is not None:
        if future_covariates is None or len(future_covariates) != horizon:
            raise ValueError(f"link {link.name!r} needs {horizon} future covariate values")
        cov = np.asarray(future_covariates, dtype=float) - series.get("covariate_mean", 0.0)
        coefs = {name: post[name].values.reshape(-1) for name in link.coefficients}

    rng = np.random.default_rng(seed)
    paths = np.zeros((n_draws, horizon))
    x_prev = x_last
    for h in range(horizon):
        if link is None:
            mean = x_prev
        else:
            mean = link.fn(x_prev, cov[h], float(occasions[h][1]), coefs)
        x_prev = mean + sigma * rng.standard_normal(n_draws)
        paths[:, h] = x_prev

    q = back_transform(np.quantile(paths, quantiles, axis=0), series.get("log_offset", 0.0))
    return pl.DataFrame(
        {
            "step": np.arange(1, horizon + 1),
            "survey_year": [o[0] for o in occasions],
            "visit": [o[1] for o in occasions],
            "date": [o[2] for o in occasions],
            "lower": q[0],
            "median": q[1],
            "upper": q[2],
        }
    )
