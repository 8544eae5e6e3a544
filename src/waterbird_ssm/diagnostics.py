# ---------------------------------------------------------------------------
# waterbird_ssm.diagnostics — Burn-in convergence checks and reports
# ---------------------------------------------------------------------------
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import arviz as az
import matplotlib.pyplot as plt
import numpy as np

from .config import ESS_MIN, MAX_DIVERGENCES, OUTPUT_DIR, PRECISION_CORR_THRESHOLD, RHAT_MAX
from .sampling import NOISE_VARS
from .summary import precision_pearson

logger = logging.getLogger(__name__)


# =========================================================================
# Convergence check
# =========================================================================


@dataclass
class ConvergenceReport:
    """Outcome of the burn-in diagnostics."""

    rhat: dict[str, float]
    ess_bulk: dict[str, float]
    divergences: int
    precision_corr: float
    problems: list[str] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return not self.problems


def count_divergences(idata: az.InferenceData) -> int:
    if "sample_stats" not in idata.groups() or "diverging" not in idata.sample_stats:
        return 0
    return int(idata.sample_stats["diverging"].sum().values)


def check_convergence(
    idata: az.InferenceData,
    var_names: list[str] | None = None,
    rhat_max: float = RHAT_MAX,
    ess_min: float = ESS_MIN,
    max_divergences: int = MAX_DIVERGENCES,
) -> ConvergenceReport:
    """Assess whether the diagnostic run's chains have mixed.

    A run fails when any tracked parameter has R-hat above *rhat_max*, bulk
    ESS below *ess_min*, or the sampler reported more than *max_divergences*
    divergent transitions.  The precision correlation is recorded but does
    not fail the check.
    """
    if var_names is None:
        var_names = NOISE_VARS

    summary = az.summary(idata, var_names=var_names, kind="diagnostics")
    rhat = {name: float(row["r_hat"]) for name, row in summary.iterrows()}
    ess = {name: float(row["ess_bulk"]) for name, row in summary.iterrows()}
    divs = count_divergences(idata)

    problems: list[str] = []
    for name, value in rhat.items():
        if not np.isfinite(value) or value > rhat_max:
            problems.append(f"{name}: R-hat = {value:.4f} > {rhat_max}")
    for name, value in ess.items():
        if not np.isfinite(value) or value < ess_min:
            problems.append(f"{name}: ESS_bulk = {value:.0f} < {ess_min}")
    if divs > max_divergences:
        problems.append(f"{divs} divergent transitions")

    corr = float("nan")
    if "tau_add" in idata.posterior and "tau_obs" in idata.posterior:
        corr = precision_pearson(
            idata.posterior["tau_add"].values, idata.posterior["tau_obs"].values
        )

    report = ConvergenceReport(
        rhat=rhat,
        ess_bulk=ess,
        divergences=divs,
        precision_corr=corr,
        problems=problems,
    )
    for p in problems:
        logger.warning(f"Burn-in check: {p}")
    return report


# =========================================================================
# Printed report
# =========================================================================


def print_diagnostics(report: ConvergenceReport, title: str = "BURN-IN DIAGNOSTICS") -> None:
    """Print the convergence report."""
    print("=" * 72)
    print(title)
    print("=" * 72)
    print(f"Divergences: {report.divergences}")
    print(f"{'Parameter':<12} {'R-hat':>8} {'ESS_bulk':>10}")
    print("-" * 32)
    for name in report.rhat:
        print(f"{name:<12} {report.rhat[name]:>8.4f} {report.ess_bulk[name]:>10.0f}")
    if np.isfinite(report.precision_corr):
        print(f"\ncorr(tau_add, tau_obs) = {report.precision_corr:+.3f}")
        if abs(report.precision_corr) >= PRECISION_CORR_THRESHOLD:
            print("** WARNING: process and observation noise strongly correlated")

    if report.converged:
        print(f"\nAll tracked parameters converged (R-hat <= {RHAT_MAX}, ESS_bulk >= {ESS_MIN})")
    else:
        print("\n** WARNING: burn-in did not pass diagnostics:")
        for p in report.problems:
            print(f"    {p}")


def print_noise_summary(noise) -> None:
    """Print the process / observation noise table from :func:`summary.noise_summary`."""
    print("\nNoise standard deviations (log scale, 95% CI):")
    for row in noise.iter_rows(named=True):
        print(
            f"  {row['component']:<12} σ = {row['sd_median']:.4f}  "
            f"[{row['sd_lower']:.4f}, {row['sd_upper']:.4f}]"
        )


# =========================================================================
# Trace plots
# =========================================================================


def plot_burn_in_traces(
    idata: az.InferenceData,
    path: Path | None = None,
    var_names: list[str] | None = None,
) -> Path:
    """Trace and density plots of the burn-in run's noise precisions."""
    if var_names is None:
        var_names = NOISE_VARS
    if path is None:
        path = OUTPUT_DIR / "burn_in_traces.png"

    axes = az.plot_trace(idata, var_names=var_names, compact=False)
    fig = np.asarray(axes).ravel()[0].figure
    fig.suptitle("Burn-in traces", fontsize=13, fontweight="bold")
    fig.tight_layout()
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"Saved: {path}")
    return path
