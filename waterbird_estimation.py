#!/usr/bin/env python
# ---------------------------------------------------------------------------
# waterbird_estimation.py — Thin runner for the waterbird_ssm package
# ---------------------------------------------------------------------------
"""Fit the state-space model to every configured survey series.

Usage (after ``pip install -e .``):
    python waterbird_estimation.py
"""
from __future__ import annotations

import logging

from waterbird_ssm.config import DATA_DIR, OUTPUT_DIR, SURVEYS, SurveyConfig
from waterbird_ssm.covariates import future_covariates, join_covariates
from waterbird_ssm.diagnostics import plot_burn_in_traces, print_diagnostics, print_noise_summary
from waterbird_ssm.forecast import forecast_states
from waterbird_ssm.model import LINKS
from waterbird_ssm.plots import plot_envelope, plot_noise_posteriors
from waterbird_ssm.prepare import extract_series, prepare_counts
from waterbird_ssm.records import filter_counts, load_counts, load_covariates
from waterbird_ssm.summary import PosteriorSamples
from waterbird_ssm.workflow import StateSpaceFit

FORECAST_HORIZON = 6
SEED = 42


def run_survey(cfg: SurveyConfig) -> None:
    print("\n" + "=" * 72)
    print(f"SURVEY: {cfg.name} ({cfg.taxon}, site {cfg.site})")
    print("=" * 72)

    # 1. Data ------------------------------------------------------------------
    counts = filter_counts(load_counts(DATA_DIR / cfg.counts_file), taxon=cfg.taxon, site=cfg.site)
    prepared = prepare_counts(counts, aggregate=cfg.aggregate)

    link = None
    covariates = None
    if cfg.covariate_file:
        covariates = load_covariates(DATA_DIR / cfg.covariate_file)
        prepared = join_covariates(prepared, covariates, mandatory=True)
        link = LINKS[cfg.link]()

    series = extract_series(prepared, taxon=cfg.taxon, site=cfg.site)
    print(
        f"T = {series['n']} occasions ({series['dates'][0]} → {series['dates'][-1]}), "
        f"{len(series['obs_idx'])} observed"
    )

    # 2. Burn-in and convergence check ---------------------------------------
    fit = StateSpaceFit(series, link=link, seed=SEED)
    fit.run_burn_in()
    report = fit.check_convergence()
    print_diagnostics(report)
    plot_burn_in_traces(fit.burn_in_idata, OUTPUT_DIR / f"{cfg.name}_burn_in_traces.png")
    if not report.converged:
        fit.extend_burn_in()
        report = fit.check_convergence()
        print_diagnostics(report, title="EXTENDED BURN-IN DIAGNOSTICS")

    # 3. Production and summary -----------------------------------------------
    fit.run_production()
    summary = fit.summarize()
    print_noise_summary(summary.noise)

    # 4. Forecast --------------------------------------------------------------
    future = None
    if link is not None:
        future = future_covariates(covariates, series, FORECAST_HORIZON)
    forecast = forecast_states(
        fit.idata, series, FORECAST_HORIZON, link=link, future_covariates=future, seed=SEED
    )
    print("\nForecast (count scale, 95% CI):")
    for row in forecast.iter_rows(named=True):
        print(
            f"  {str(row['date']):>12}  {row['median']:9.1f} "
            f"[{row['lower']:9.1f}, {row['upper']:9.1f}]"
        )

    # 5. Plots and InferenceData -----------------------------------------------
    plot_envelope(
        summary.envelope,
        title=f"{cfg.taxon} at {cfg.site}",
        forecast=forecast,
        path=OUTPUT_DIR / f"{cfg.name}_envelope.png",
        provisional=summary.provisional,
    )
    plot_noise_posteriors(
        PosteriorSamples.from_idata(fit.idata), OUTPUT_DIR / f"{cfg.name}_noise.png"
    )
    fit.save(OUTPUT_DIR / f"{cfg.name}_idata.nc")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    for cfg in SURVEYS:
        run_survey(cfg)

    print("\n" + "=" * 72)
    print("waterbird_ssm pipeline complete.")
    print("=" * 72)


if __name__ == "__main__":
    main()
