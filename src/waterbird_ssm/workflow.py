# ---------------------------------------------------------------------------
# waterbird_ssm.workflow — Two-phase (burn-in → production) fitting protocol
# ---------------------------------------------------------------------------
"""A fit moves through

    INITIALIZED → BURN_IN → CONVERGENCE_CHECKED → PRODUCTION → SUMMARIZED

The burn-in run tracks only the noise precisions; its diagnostics decide
whether the production run (which keeps every latent state) is trusted.  A
failed check warns and marks the summary provisional; ``extend_burn_in``
re-runs the diagnostic phase with a longer tuning period.
"""

from __future__ import annotations

import logging
import warnings
from enum import Enum
from pathlib import Path

import arviz as az

from .config import N_CHAINS, PriorConfig
from .diagnostics import ConvergenceReport, check_convergence
from .errors import ConvergenceWarning
from .inits import build_chain_inits
from .model import CovariateLink, build_model, build_spec
from .sampling import BURN_IN_SAMPLER_KWARGS, DEFAULT_SAMPLER_KWARGS, NOISE_VARS, sample_model
from .summary import FitSummary, summarize

logger = logging.getLogger(__name__)


class FitState(Enum):
    INITIALIZED = "initialized"
    BURN_IN = "burn_in"
    CONVERGENCE_CHECKED = "convergence_checked"
    PRODUCTION = "production"
    SUMMARIZED = "summarized"


class StateSpaceFit:
    """One state-space fit of one series.

    Parameters
    ----------
    series : dict
        Output of :func:`waterbird_ssm.prepare.extract_series`.
    priors : PriorConfig, optional
        Prior hyperparameters.
    link : CovariateLink, optional
        Covariate link for the covariate-augmented variant.
    n_chains : int
        Number of MCMC chains.
    seed : int, optional
        Seeds the chain initialisation and both sampler runs.
    burn_in_kwargs, production_kwargs : dict, optional
        Sampler presets; ``chains`` is overridden by *n_chains*.
    """

    def __init__(
        self,
        series: dict,
        priors: PriorConfig | None = None,
        link: CovariateLink | None = None,
        n_chains: int = N_CHAINS,
        seed: int | None = None,
        burn_in_kwargs: dict | None = None,
        production_kwargs: dict | None = None,
    ) -> None:
        self.series = series
        self.seed = seed
        self.n_chains = n_chains
        self.burn_in_kwargs = {**(burn_in_kwargs or BURN_IN_SAMPLER_KWARGS), "chains": n_chains}
        self.production_kwargs = {
            **(production_kwargs or DEFAULT_SAMPLER_KWARGS),
            "chains": n_chains,
        }

        self.spec = build_spec(series, priors=priors, link=link)
        self.model = build_model(self.spec)
        self.initvals = build_chain_inits(
            series["counts"],
            n_chains=n_chains,
            seed=seed,
            log_offset=series.get("log_offset", 0.0),
        )

        self.state = FitState.INITIALIZED
        self.burn_in_idata: az.InferenceData | None = None
        self.report: ConvergenceReport | None = None
        self.production_report: ConvergenceReport | None = None
        self.idata: az.InferenceData | None = None
        self.summary: FitSummary | None = None
        self.n_extensions = 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, *allowed: FitState) -> None:
        if self.state not in allowed:
            names = ", ".join(s.name for s in allowed)
            raise RuntimeError(f"Fit is in state {self.state.name}; expected one of: {names}")

    def _seed(self, offset: int) -> int | None:
        return None if self.seed is None else self.seed + offset

    @property
    def provisional(self) -> bool:
        """True when the last burn-in check or the production check failed."""
        if self.report is None or not self.report.converged:
            return True
        return self.production_report is not None and not self.production_report.converged

    @property
    def production_vars(self) -> list[str]:
        """Noise precisions, any link coefficients and the latent path."""
        coefs = list(self.spec.link.coefficients) if self.spec.link is not None else []
        return [*NOISE_VARS, *coefs, "x"]

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def run_burn_in(self) -> az.InferenceData:
        """Short diagnostic run tracking only the noise precisions."""
        self._require(FitState.INITIALIZED)
        self.burn_in_idata = sample_model(
            self.model,
            initvals=self.initvals,
            sampler_kwargs=self.burn_in_kwargs,
            var_names=NOISE_VARS,
            random_seed=self._seed(0),
        )
        self.state = FitState.BURN_IN
        return self.burn_in_idata

    def check_convergence(self) -> ConvergenceReport:
        """Diagnose the burn-in run; warn when it has not converged."""
        self._require(FitState.BURN_IN)
        self.report = check_convergence(self.burn_in_idata, var_names=NOISE_VARS)
        self.state = FitState.CONVERGENCE_CHECKED
        if not self.report.converged:
            warnings.warn(
                "Burn-in run has not converged ("
                + "; ".join(self.report.problems)
                + "); extend burn-in or treat intervals as provisional",
                ConvergenceWarning,
                stacklevel=2,
            )
        return self.report

    def extend_burn_in(self, factor: float = 2.0) -> az.InferenceData:
        """Repeat the diagnostic run with *factor* times the tuning and draws."""
        self._require(FitState.CONVERGENCE_CHECKED)
        kwargs = dict(self.burn_in_kwargs)
        kwargs["tune"] = int(kwargs.get("tune", 1000) * factor)
        kwargs["draws"] = int(kwargs.get("draws", 1000) * factor)
        idata = sample_model(
            self.model,
            initvals=self.initvals,
            sampler_kwargs=kwargs,
            var_names=NOISE_VARS,
            random_seed=self._seed(2 + self.n_extensions),
        )
        self.burn_in_kwargs = kwargs
        self.burn_in_idata = idata
        self.n_extensions += 1
        self.report = None
        self.state = FitState.BURN_IN
        logger.info(f"Burn-in extended (x{factor}, tune={kwargs['tune']})")
        return idata

    def run_production(self) -> az.InferenceData:
        """Long run keeping the precisions, link coefficients and every latent state.

        Production chains start from the same initial values as burn-in, so
        they tune for at least as long as the last (possibly extended)
        burn-in run.  The production draws get their own convergence check.
        """
        self._require(FitState.CONVERGENCE_CHECKED)
        if self.provisional:
            logger.warning("Running production after a failed burn-in check")

        kwargs = dict(self.production_kwargs)
        burn_in_tune = self.burn_in_kwargs.get("tune", 0)
        if kwargs.get("tune", 0) < burn_in_tune:
            logger.info(f"Production tune raised to {burn_in_tune} to match burn-in")
            kwargs["tune"] = burn_in_tune

        idata = sample_model(
            self.model,
            initvals=self.initvals,
            sampler_kwargs=kwargs,
            var_names=self.production_vars,
            random_seed=self._seed(1),
        )
        self.production_kwargs = kwargs
        self.idata = idata
        self.state = FitState.PRODUCTION

        self.production_report = check_convergence(idata, var_names=NOISE_VARS)
        if not self.production_report.converged:
            warnings.warn(
                "Production run has not converged ("
                + "; ".join(self.production_report.problems)
                + "); credible intervals are provisional",
                ConvergenceWarning,
                stacklevel=2,
            )
        return self.idata

    def summarize(self) -> FitSummary:
        """Credible envelope, noise table and precision correlation."""
        self._require(FitState.PRODUCTION)
        self.summary = summarize(self.idata, self.series, provisional=self.provisional)
        self.state = FitState.SUMMARIZED
        return self.summary

    def run(self, max_extensions: int = 1) -> FitSummary:
        """Run every phase, extending burn-in up to *max_extensions* times."""
        self.run_burn_in()
        with warnings.catch_warnings():
            # Intermediate failures are retried; only the final verdict warns
            warnings.simplefilter("ignore", ConvergenceWarning)
            self.check_convergence()
            while not self.report.converged and self.n_extensions < max_extensions:
                self.extend_burn_in()
                self.check_convergence()
        if not self.report.converged:
            warnings.warn(
                "Burn-in did not converge after "
                f"{self.n_extensions} extension(s): " + "; ".join(self.report.problems),
                ConvergenceWarning,
                stacklevel=2,
            )
        self.run_production()
        return self.summarize()

    def save(self, path: str | Path) -> Path:
        """Write the production InferenceData to netCDF."""
        self._require(FitState.PRODUCTION, FitState.SUMMARIZED)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.idata.to_netcdf(str(path))
        logger.info(f"InferenceData saved to {path}")
        return path
