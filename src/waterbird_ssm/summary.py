# ---------------------------------------------------------------------------
# waterbird_ssm.summary — Posterior sample matrix and summary statistics
# ---------------------------------------------------------------------------
"""Reduce posterior draws to credible envelopes and noise magnitudes.

Estimation happens on the log scale; every count-scale output here is
exponentiated (and shifted back by the series' log offset).
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

import arviz as az
import numpy as np
import polars as pl
from scipy import stats as sp_stats

from .config import CREDIBLE_QUANTILES, PRECISION_CORR_THRESHOLD
from .errors import ConvergenceWarning

logger = logging.getLogger(__name__)


# =========================================================================
# Sample matrix
# =========================================================================


@dataclass(frozen=True)
class PosteriorSamples:
    """Draws pooled across chains: ``tau_add, tau_obs, x[1]..x[n]`` columns."""

    columns: tuple[str, ...]
    values: np.ndarray

    @classmethod
    def from_idata(cls, idata: az.InferenceData) -> PosteriorSamples:
        post = idata.posterior
        tau_add = post["tau_add"].values.reshape(-1)
        tau_obs = post["tau_obs"].values.reshape(-1)
        x = post["x"].values
        n = x.shape[-1]
        x = x.reshape(-1, n)
        columns = ("tau_add", "tau_obs", *(f"x[{t}]" for t in range(1, n + 1)))
        values = np.column_stack([tau_add, tau_obs, x])
        return cls(columns=columns, values=values).validate()

    @property
    def n(self) -> int:
        return len(self.columns) - 2

    @property
    def n_draws(self) -> int:
        return self.values.shape[0]

    def column(self, name: str) -> np.ndarray:
        return self.values[:, self.columns.index(name)]

    @property
    def latent(self) -> np.ndarray:
        """(draws, n) latent log-abundance."""
        return self.values[:, 2:]

    def validate(self) -> PosteriorSamples:
        if self.values.ndim != 2 or self.values.shape[1] != len(self.columns):
            raise ValueError(
                f"Sample matrix shape {self.values.shape} does not match "
                f"{len(self.columns)} columns"
            )
        latent_cols = [c for c in self.columns if c.startswith("x[")]
        if len(latent_cols) != self.n:
            raise ValueError(f"Expected {self.n} latent columns, got {len(latent_cols)}")
        for name in ("tau_add", "tau_obs"):
            col = self.column(name)
            if not np.all(col > 0):
                raise ValueError(f"{name} has {int(np.sum(~(col > 0)))} non-positive draws")
        return self


# =========================================================================
# Precision <-> standard deviation
# =========================================================================


def precision_to_sd(precision):
    """``1 / sqrt(precision)``; precision must be strictly positive."""
    p = np.asarray(precision, dtype=float)
    if np.any(~(p > 0)):
        raise ValueError("Precision must be strictly positive")
    sd = 1.0 / np.sqrt(p)
    return float(sd) if sd.ndim == 0 else sd


def sd_to_precision(sd):
    """``1 / sd**2``; inverse of :func:`precision_to_sd`."""
    s = np.asarray(sd, dtype=float)
    if np.any(~(s > 0)):
        raise ValueError("Standard deviation must be strictly positive")
    p = 1.0 / s**2
    return float(p) if p.ndim == 0 else p


# =========================================================================
# Summaries
# =========================================================================


def back_transform(log_values, log_offset: float = 0.0):
    """Log-scale values to counts."""
    return np.exp(log_values) - log_offset


def latent_quantiles(
    samples: PosteriorSamples,
    series: dict,
    quantiles: tuple[float, float, float] = CREDIBLE_QUANTILES,
) -> pl.DataFrame:
    """Per-step credible envelope of the latent state on the count scale.

    Returns
    -------
    pl.DataFrame
        ``t, date, count, lower, median, upper``; ``count`` is the observed
        value (null when missing).
    """
    if samples.n != series["n"]:
        raise ValueError(f"Samples hold {samples.n} latent steps, series has {series['n']}")

    q = np.quantile(samples.latent, quantiles, axis=0)
    q = back_transform(q, series.get("log_offset", 0.0))
    counts = series["counts"]
    return pl.DataFrame(
        {
            "t": np.arange(1, series["n"] + 1),
            "date": series["dates"],
            "count": [None if not np.isfinite(c) else float(c) for c in counts],
            "lower": q[0],
            "median": q[1],
            "upper": q[2],
        },
        schema_overrides={"count": pl.Float64},
    )


def envelope_coverage(envelope: pl.DataFrame) -> float:
    """Share of observed counts inside ``[lower, upper]``."""
    obs = envelope.filter(pl.col("count").is_not_null())
    if len(obs) == 0:
        return float("nan")
    inside = obs.filter(pl.col("count").is_between(pl.col("lower"), pl.col("upper")))
    return len(inside) / len(obs)


def precision_pearson(tau_add, tau_obs) -> float:
    """Pearson correlation of paired precision draws (NaN for constant draws)."""
    tau_add = np.asarray(tau_add, dtype=float).reshape(-1)
    tau_obs = np.asarray(tau_obs, dtype=float).reshape(-1)
    if len(tau_add) < 2 or np.ptp(tau_add) == 0 or np.ptp(tau_obs) == 0:
        return float("nan")
    r, _p = sp_stats.pearsonr(tau_add, tau_obs)
    return float(r)


def precision_correlation(
    samples: PosteriorSamples,
    threshold: float = PRECISION_CORR_THRESHOLD,
) -> float:
    """Pearson correlation of the two precision posteriors.

    Strong correlation means process and observation noise are hard to tell
    apart; a :class:`ConvergenceWarning` is emitted at ``|r| >= threshold``.
    """
    r = precision_pearson(samples.column("tau_add"), samples.column("tau_obs"))
    if abs(r) >= threshold:
        msg = (
            f"tau_add and tau_obs posteriors are strongly correlated (r = {r:+.3f}); "
            "process and observation noise may not be separately identifiable"
        )
        logger.warning(msg)
        warnings.warn(msg, ConvergenceWarning, stacklevel=2)
    return r


def noise_summary(
    samples: PosteriorSamples,
    quantiles: tuple[float, float, float] = CREDIBLE_QUANTILES,
) -> pl.DataFrame:
    """Process / observation noise as standard deviations (log scale)."""
    rows = []
    for label, name in (("process", "tau_add"), ("observation", "tau_obs")):
        sd = precision_to_sd(samples.column(name))
        lo, med, hi = np.quantile(sd, quantiles)
        rows.append(
            {
                "component": label,
                "parameter": name,
                "sd_mean": float(sd.mean()),
                "sd_lower": float(lo),
                "sd_median": float(med),
                "sd_upper": float(hi),
            }
        )
    return pl.DataFrame(rows)


@dataclass
class FitSummary:
    """Artifacts of a summarised fit."""

    envelope: pl.DataFrame
    noise: pl.DataFrame
    precision_corr: float
    provisional: bool


def summarize(
    idata: az.InferenceData,
    series: dict,
    provisional: bool = False,
) -> FitSummary:
    """Build the envelope, noise table and correlation diagnostic."""
    samples = PosteriorSamples.from_idata(idata)
    envelope = latent_quantiles(samples, series)
    noise = noise_summary(samples)
    corr = precision_correlation(samples)
    if provisional:
        logger.warning("Credible intervals are provisional: burn-in did not pass diagnostics")
    return FitSummary(
        envelope=envelope,
        noise=noise,
        precision_corr=corr,
        provisional=provisional,
    )
