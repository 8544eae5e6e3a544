# ---------------------------------------------------------------------------
# waterbird_ssm.inits — Per-chain initial values
# ---------------------------------------------------------------------------
"""Per-chain initial values from bootstrap resamples of the observed counts."""

from __future__ import annotations

import logging

import numpy as np

from .config import N_CHAINS, TAU_OBS_INIT_SCALE

logger = logging.getLogger(__name__)

MAX_INIT_ATTEMPTS = 50


def _safe_precision(numerator: float, variance: float) -> float:
    if not np.isfinite(variance) or variance <= 0:
        return 1.0
    return float(numerator / variance)


def build_chain_inits(
    counts: np.ndarray,
    n_chains: int = N_CHAINS,
    seed: int | None = None,
    log_offset: float = 0.0,
) -> list[dict[str, float]]:
    """Initial precisions for each MCMC chain.

    For every chain a bootstrap resample of the non-missing counts is drawn
    (with replacement, the same length as the full series including its
    missing occasions) and

        tau_add = 1 / var(diff(log resample))
        tau_obs = 5 / var(log resample)

    Degenerate resamples (zero or undefined variance) fall back to 1.0.
    A resample reproducing an earlier chain's values is redrawn.

    Parameters
    ----------
    counts : np.ndarray
        Raw counts for every occasion; NaN entries mark missing occasions
        and are never drawn, but still count towards the resample length.
    n_chains : int
        Number of chains.
    seed : int, optional
        Seed for the resampling generator.  Pass one for reproducible fits.
    log_offset : float
        Offset added before the log transform (as in the fitted series).

    Returns
    -------
    list[dict[str, float]]
        One ``{'tau_add', 'tau_obs'}`` record per chain.

    Raises
    ------
    ValueError
        If there are fewer than 2 observed counts or the observed values
        cannot produce *n_chains* distinct starting points.
    """
    counts = np.asarray(counts, dtype=float)
    n = len(counts)
    observed = counts[np.isfinite(counts)]
    if len(observed) < 2:
        raise ValueError(f"Need at least 2 observed counts to initialise chains, got {len(observed)}")
    if n_chains < 1:
        raise ValueError(f"n_chains must be >= 1, got {n_chains}")

    rng = np.random.default_rng(seed)
    inits: list[dict[str, float]] = []
    seen: set[tuple[float, float]] = set()
    attempts = 0
    while len(inits) < n_chains:
        attempts += 1
        if attempts > MAX_INIT_ATTEMPTS * n_chains:
            raise ValueError(
                f"Could not draw {n_chains} distinct chain initialisations from "
                f"{len(observed)} observed counts"
            )
        resample = rng.choice(observed, size=n, replace=True)
        log_rs = np.log(resample + log_offset)
        init = {
            "tau_add": _safe_precision(1.0, float(np.var(np.diff(log_rs), ddof=1))),
            "tau_obs": _safe_precision(TAU_OBS_INIT_SCALE, float(np.var(log_rs, ddof=1))),
        }
        key = (init["tau_add"], init["tau_obs"])
        # Identical starting points make R-hat meaningless; redraw
        if key in seen:
            continue
        seen.add(key)
        inits.append(init)

    logger.debug(f"Chain inits (seed={seed}): {inits}")
    return inits
