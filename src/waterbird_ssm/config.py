# ---------------------------------------------------------------------------
# waterbird_ssm.config — Survey configuration and project constants
# ---------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root
DATA_DIR = BASE_DIR / "data"
OUTPUT_DIR = BASE_DIR / "output"
CACHE_DIR = BASE_DIR / ".cache"


# ---------------------------------------------------------------------------
# Survey seasons
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeasonWindow:
    """A recurring survey window within the survey year.

    Parameters
    ----------
    name : str
        Display name (``'summer'``, ``'winter'``).
    visit : int
        Within-year visit index (1-based, chronological).
    months : tuple[int, ...]
        Calendar months belonging to the window, in survey order.  A window
        may wrap the calendar year (e.g. Nov-Feb).
    anchor_month, anchor_day : int
        Date used for placeholder rows when an occasion has no record.
    """

    name: str
    visit: int
    months: tuple[int, ...]
    anchor_month: int
    anchor_day: int = 15

    def year_offset(self, month: int) -> int:
        """Calendar-year offset of *month* relative to the survey year."""
        # Months listed after a wrap (e.g. Jan after Dec) fall in the next year
        first = self.months[0]
        return 1 if month < first else 0


SEASONS: tuple[SeasonWindow, ...] = (
    SeasonWindow(name="summer", visit=1, months=(5, 6, 7, 8), anchor_month=7),
    SeasonWindow(name="winter", visit=2, months=(11, 12, 1, 2), anchor_month=1),
)


# ---------------------------------------------------------------------------
# Model constants
# ---------------------------------------------------------------------------

# Added to counts before the log transform; 0 means counts must be positive
LOG_OFFSET = 0.0

# (lower, median, upper) quantiles of the 95% credible envelope
CREDIBLE_QUANTILES: tuple[float, float, float] = (0.025, 0.5, 0.975)

# Default number of MCMC chains (>= 3 for R-hat to be informative)
N_CHAINS = 3

# Burn-in acceptance thresholds
RHAT_MAX = 1.01
ESS_MIN = 400
MAX_DIVERGENCES = 0

# |corr(tau_add, tau_obs)| at or above this is reported as an identifiability concern
PRECISION_CORR_THRESHOLD = 0.7

# Observation-precision multiplier for the bootstrap initial guess
TAU_OBS_INIT_SCALE = 5.0

# Plot colours
ENVELOPE_COLOR = "steelblue"
OBSERVED_COLOR = "darkorange"
FORECAST_COLOR = "#9467bd"


@dataclass(frozen=True)
class PriorConfig:
    """Hyperparameters of the state-space priors.

    ``tau_* ~ Gamma(a, r)`` (shape / rate) and ``x[1] ~ Normal(x_ic, tau_ic)``
    with *tau_ic* a precision.  When *x_ic* is ``None`` the builder uses the
    log of the mean observed count.
    """

    a_add: float = 1.0
    r_add: float = 1.0
    a_obs: float = 1.0
    r_obs: float = 1.0
    x_ic: float | None = None
    tau_ic: float = 100.0

    def validate(self) -> None:
        for field_name in ("a_add", "r_add", "a_obs", "r_obs", "tau_ic"):
            value = getattr(self, field_name)
            if not value > 0:
                raise ValueError(f"{field_name} must be > 0, got {value}")


DEFAULT_PRIORS = PriorConfig()


# ---------------------------------------------------------------------------
# Survey specification
# ---------------------------------------------------------------------------


@dataclass
class SurveyConfig:
    """One taxon/site series to fit.

    Parameters
    ----------
    name : str
        Display name, also used for output file names.
    counts_file : str
        CSV under ``data/`` with ``date, taxon, site, count`` columns.
    taxon : str
        Taxon identifier to select from *counts_file*.
    site : str, optional
        Site identifier; ``None`` keeps every site in the file.
    covariate_file : str, optional
        CSV under ``data/`` with ``year, month, value`` columns.  When set the
        covariate-augmented model is fitted.
    link : ``'linear'`` | ``'seasonal'``
        Covariate link used when *covariate_file* is set.
    aggregate : ``'max'`` | ``'mean'`` | ``'sum'`` | ``'first'``
        Reduction for several records in one survey occasion.
    """

    name: str
    counts_file: str
    taxon: str
    site: str | None = None
    covariate_file: str | None = None
    link: Literal["linear", "seasonal"] = "linear"
    aggregate: Literal["max", "mean", "sum", "first"] = "max"


# ---------------------------------------------------------------------------
# Active survey list — edit here to add/remove series
# ---------------------------------------------------------------------------

SURVEYS: list[SurveyConfig] = [
    SurveyConfig(
        name="common_eider",
        counts_file="waterbird_counts.csv",
        taxon="Somateria mollissima",
        site="S01",
    ),
    SurveyConfig(
        name="common_eider_nao",
        counts_file="waterbird_counts.csv",
        taxon="Somateria mollissima",
        site="S01",
        covariate_file="nao_monthly.csv",
        link="linear",
    ),
]
