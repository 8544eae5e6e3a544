# ---------------------------------------------------------------------------
# waterbird_ssm.plots — Credible envelopes and noise posteriors
# ---------------------------------------------------------------------------
from __future__ import annotations

from pathlib import Path

import matplotlib.dates as mdates
import matplotlib.pyplot as plt
import numpy as np
import polars as pl

from .config import ENVELOPE_COLOR, FORECAST_COLOR, OBSERVED_COLOR, OUTPUT_DIR
from .summary import PosteriorSamples, precision_pearson, precision_to_sd


# =========================================================================
# Latent envelope
# =========================================================================


def plot_envelope(
    envelope: pl.DataFrame,
    title: str,
    forecast: pl.DataFrame | None = None,
    path: Path | None = None,
    provisional: bool = False,
) -> Path:
    """Observed counts over the 95% latent-state envelope (and forecast)."""
    if path is None:
        path = OUTPUT_DIR / "envelope.png"

    dates = envelope["date"].to_list()
    fig, ax = plt.subplots(1, 1, figsize=(14, 6))

    ax.fill_between(dates, envelope["lower"].to_numpy(), envelope["upper"].to_numpy(),
                    alpha=0.25, color=ENVELOPE_COLOR, label="95% CI")
    ax.plot(dates, envelope["median"].to_numpy(), color=ENVELOPE_COLOR, lw=1.5,
            label="Latent abundance (median)")

    obs = envelope.filter(pl.col("count").is_not_null())
    ax.scatter(obs["date"].to_list(), obs["count"].to_numpy(), s=14, c=OBSERVED_COLOR,
               alpha=0.8, label="Observed count", zorder=5)

    if forecast is not None and len(forecast) > 0:
        f_dates = forecast["date"].to_list()
        ax.fill_between(f_dates, forecast["lower"].to_numpy(), forecast["upper"].to_numpy(),
                        alpha=0.2, color=FORECAST_COLOR, label="Forecast 95% CI")
        ax.plot(f_dates, forecast["median"].to_numpy(), color=FORECAST_COLOR, lw=1.5,
                ls="--", label="Forecast (median)")

    ax.set_ylabel("Count")
    ax.set_title(title + (" (provisional)" if provisional else ""))
    ax.legend(fontsize=8, loc="upper left")
    _year_axis(ax)

    plt.tight_layout()
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {path}")
    return path


# =========================================================================
# Noise posteriors
# =========================================================================


def plot_noise_posteriors(samples: PosteriorSamples, path: Path | None = None) -> Path:
    """Histograms of both noise sds and the tau_add / tau_obs scatter."""
    if path is None:
        path = OUTPUT_DIR / "noise_posteriors.png"

    tau_add = samples.column("tau_add")
    tau_obs = samples.column("tau_obs")

    fig, axes = plt.subplots(1, 3, figsize=(16, 4.5))

    for ax, values, label in (
        (axes[0], precision_to_sd(tau_add), "Process noise σ_add"),
        (axes[1], precision_to_sd(tau_obs), "Observation noise σ_obs"),
    ):
        ax.hist(values, bins=60, density=True, alpha=0.6, color=ENVELOPE_COLOR)
        ax.axvline(np.median(values), color="k", lw=1, ls="--",
                   label=f"median {np.median(values):.3f}")
        ax.set_xlabel("sd (log scale)")
        ax.set_title(label)
        ax.legend(fontsize=8)

    ax = axes[2]
    r = precision_pearson(tau_add, tau_obs)
    ax.scatter(tau_add, tau_obs, s=2, alpha=0.15, c=ENVELOPE_COLOR, rasterized=True)
    ax.set_xlabel("tau_add")
    ax.set_ylabel("tau_obs")
    ax.set_title(f"Precision posterior (r = {r:+.2f})")

    fig.suptitle("Noise Posteriors", fontsize=13, fontweight="bold")
    plt.tight_layout()
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {path}")
    return path


# =========================================================================
# Helpers
# =========================================================================


def _year_axis(ax) -> None:
    ax.xaxis.set_major_locator(mdates.YearLocator())
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%Y"))
