# ---------------------------------------------------------------------------
# waterbird_ssm.simulate — Synthetic series for model checks
# ---------------------------------------------------------------------------
"""Synthetic count series drawn from the state-space model."""

from __future__ import annotations

import numpy as np

from .prepare import series_from_counts
from .summary import precision_to_sd


def simulate_series(
    n: int,
    tau_add: float,
    tau_obs: float,
    x1: float = np.log(100.0),
    missing: list[int] | None = None,
    seed: int | None = None,
    start_year: int = 2000,
) -> tuple[dict, np.ndarray]:
    """Simulate ``n`` occasions of a log-scale random walk observed with noise.

    Counts are ``exp(y_t)`` rounded to the nearest positive integer.

    Parameters
    ----------
    n : int
        Series length.
    tau_add, tau_obs : float
        Process and observation precisions.
    x1 : float
        Initial log abundance.
    missing : list[int], optional
        1-based steps to blank out.
    seed : int, optional
        Generator seed.

    Returns
    -------
    series : dict
        As returned by :func:`waterbird_ssm.prepare.extract_series`.
    x : np.ndarray
        The true latent path (log scale).
    """
    rng = np.random.default_rng(seed)
    x = np.empty(n)
    x[0] = x1
    sd_add = precision_to_sd(tau_add)
    for t in range(1, n):
        x[t] = x[t - 1] + sd_add * rng.standard_normal()
    y = x + precision_to_sd(tau_obs) * rng.standard_normal(n)

    counts = np.maximum(np.rint(np.exp(y)), 1.0)
    if missing:
        counts[np.asarray(missing, dtype=int) - 1] = np.nan
    return series_from_counts(counts, start_year=start_year), x
