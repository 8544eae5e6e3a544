# ---------------------------------------------------------------------------
# waterbird_ssm.model — State-space model specification and PyMC translation
# ---------------------------------------------------------------------------
"""Log-scale random-walk state-space model for survey counts.

    y_t ~ Normal(x_t, tau_obs)                    t observed
    x_t ~ Normal(f(x_{t-1}, c_t, v_t), tau_add)   t = 2..n
    x_1 ~ Normal(x_ic, tau_ic)
    tau_add ~ Gamma(a_add, r_add),  tau_obs ~ Gamma(a_obs, r_obs)

Normal distributions are written with precisions; ``f`` is the identity on
``x_{t-1}`` unless a :class:`CovariateLink` is supplied.  The relations are
held as plain dataclasses (:class:`ModelSpec`) and validated before being
translated into a ``pm.Model`` by :func:`build_model`.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
import pymc as pm
import pytensor
import pytensor.tensor as pt

from .config import DEFAULT_PRIORS, PriorConfig
from .errors import DataError


# =========================================================================
# Relations
# =========================================================================


@dataclass(frozen=True)
class Prior:
    """``name ~ family(*params)``; Normal params are (mean, precision),
    Gamma params are (shape, rate)."""

    name: str
    family: Literal["normal", "gamma"]
    params: tuple[float, float]


@dataclass(frozen=True)
class ObservationRelation:
    """``y_t ~ Normal(x_t, tau_obs)`` for one observed step (1-based t)."""

    t: int
    y: float


@dataclass(frozen=True)
class TransitionRelation:
    """``x_t ~ Normal(f(x_{t-1}, covariate, visit), tau_add)`` for t >= 2."""

    t: int
    covariate: float | None = None
    visit: int | None = None


@dataclass(frozen=True)
class CovariateLink:
    """Mean function of the covariate-extended transition.

    Parameters
    ----------
    name : str
        Display name.
    coefficients : dict[str, tuple[float, float]]
        Coefficient name -> Normal prior ``(mean, precision)``.
    fn : callable
        ``fn(x_prev, covariate, visit, coefs)`` returning the transition
        mean.  Must use only arithmetic so it evaluates on both pytensor
        tensors (fitting) and numpy arrays (forecasting).
    uses_visit : bool
        Whether *fn* reads the visit index.
    """

    name: str
    coefficients: dict[str, tuple[float, float]]
    fn: Callable = field(compare=False)
    uses_visit: bool = False


def linear_link(beta_precision: float = 1.0) -> CovariateLink:
    """``x_{t-1} + beta * c_t``: additive covariate effect on the log scale."""
    return CovariateLink(
        name="linear",
        coefficients={"beta": (0.0, beta_precision)},
        fn=lambda x_prev, c, v, coefs: x_prev + coefs["beta"] * c,
    )


def seasonal_link(beta_precision: float = 1.0, gamma_precision: float = 1.0) -> CovariateLink:
    """``x_{t-1} + beta * c_t + gamma * [v_t == 2]``, adding a winter offset."""
    return CovariateLink(
        name="seasonal",
        coefficients={"beta": (0.0, beta_precision), "gamma": (0.0, gamma_precision)},
        fn=lambda x_prev, c, v, coefs: x_prev + coefs["beta"] * c + coefs["gamma"] * (v - 1),
        uses_visit=True,
    )


LINKS: dict[str, Callable[[], CovariateLink]] = {
    "linear": linear_link,
    "seasonal": seasonal_link,
}


@dataclass(frozen=True)
class ModelSpec:
    """Declarative state-space model for one series."""

    n: int
    observations: tuple[ObservationRelation, ...]
    transitions: tuple[TransitionRelation, ...]
    priors: dict[str, Prior]
    link: CovariateLink | None = None

    @property
    def obs_idx(self) -> np.ndarray:
        """0-based latent index of each observation relation."""
        return np.array([r.t - 1 for r in self.observations], dtype=int)

    @property
    def y_obs(self) -> np.ndarray:
        return np.array([r.y for r in self.observations], dtype=float)

    def validate(self) -> ModelSpec:
        """Check the relation set is complete and consistent.

        Raises
        ------
        DataError
            On an unusable series (too short, no observations, missing
            covariates for the covariate-augmented variant).
        ValueError
            On a malformed specification.
        """
        if self.n < 2:
            raise DataError(f"Need at least 2 time points for the process model, got {self.n}")
        if not self.observations:
            raise DataError("Specification has no observation relations")

        obs_t = [r.t for r in self.observations]
        if len(set(obs_t)) != len(obs_t):
            raise ValueError("Duplicate observation relations")
        if min(obs_t) < 1 or max(obs_t) > self.n:
            raise ValueError(f"Observation time outside 1..{self.n}")
        if not all(np.isfinite(r.y) for r in self.observations):
            raise ValueError("Observation relations must hold finite values")

        trans_t = [r.t for r in self.transitions]
        if trans_t != list(range(2, self.n + 1)):
            raise ValueError(f"Transition relations must cover t = 2..{self.n} in order")

        required = {"x_ic", "tau_add", "tau_obs"}
        if self.link is not None:
            required |= set(self.link.coefficients)
        missing = required - set(self.priors)
        if missing:
            raise ValueError(f"Missing priors: {sorted(missing)}")
        for prior in self.priors.values():
            if prior.family == "gamma" and not (prior.params[0] > 0 and prior.params[1] > 0):
                raise ValueError(f"Gamma prior {prior.name} needs positive shape and rate")
            if prior.family == "normal" and not prior.params[1] > 0:
                raise ValueError(f"Normal prior {prior.name} needs a positive precision")

        if self.link is not None:
            no_cov = [
                r.t for r in self.transitions
                if r.covariate is None or not np.isfinite(r.covariate)
            ]
            if no_cov:
                raise DataError(
                    f"Covariate link {self.link.name!r} needs a covariate at every "
                    f"transition; missing at t = {no_cov[:5]}"
                )
            if self.link.uses_visit and any(r.visit is None for r in self.transitions):
                raise ValueError(f"Covariate link {self.link.name!r} needs visit indices")
        return self

    def data_payload(self) -> dict[str, np.ndarray | int]:
        """Numeric data keyed by the names used in the relations."""
        payload: dict[str, np.ndarray | int] = {
            "n": self.n,
            "y": self.y_obs,
            "obs_idx": self.obs_idx,
        }
        if self.link is not None:
            payload["covariate"] = np.array([r.covariate for r in self.transitions], dtype=float)
            if self.link.uses_visit:
                payload["visit"] = np.array([r.visit for r in self.transitions], dtype=float)
        return payload


# =========================================================================
# Builder
# =========================================================================


def build_spec(
    series: dict,
    priors: PriorConfig | None = None,
    link: CovariateLink | None = None,
) -> ModelSpec:
    """Build the validated relation set for a prepared series.

    Parameters
    ----------
    series : dict
        Output of :func:`waterbird_ssm.prepare.extract_series`.
    priors : PriorConfig, optional
        Hyperparameters; defaults to :data:`waterbird_ssm.config.DEFAULT_PRIORS`.
    link : CovariateLink, optional
        Enables the covariate-augmented transition; requires
        ``series['covariate']``.
    """
    if priors is None:
        priors = DEFAULT_PRIORS
    priors.validate()

    n = series["n"]
    y = series["y"]
    observations = tuple(
        ObservationRelation(t=int(i) + 1, y=float(y[i])) for i in series["obs_idx"]
    )

    covariate = series.get("covariate")
    visit = series.get("visit")
    if link is not None and covariate is None:
        raise DataError(f"Covariate link {link.name!r} requires a joined covariate column")

    transitions = tuple(
        TransitionRelation(
            t=t,
            covariate=(
                float(covariate[t - 1])
                if link is not None and np.isfinite(covariate[t - 1])
                else None
            ),
            visit=int(visit[t - 1]) if link is not None and visit is not None else None,
        )
        for t in range(2, n + 1)
    )

    if priors.x_ic is not None:
        x_ic = priors.x_ic
    else:
        counts = series["counts"][series["obs_idx"]]
        x_ic = float(np.log(np.mean(counts) + series.get("log_offset", 0.0)))

    prior_map = {
        "x_ic": Prior("x_ic", "normal", (x_ic, priors.tau_ic)),
        "tau_add": Prior("tau_add", "gamma", (priors.a_add, priors.r_add)),
        "tau_obs": Prior("tau_obs", "gamma", (priors.a_obs, priors.r_obs)),
    }
    if link is not None:
        for coef, (mean, precision) in link.coefficients.items():
            prior_map[coef] = Prior(coef, "normal", (mean, precision))

    return ModelSpec(
        n=n,
        observations=observations,
        transitions=transitions,
        priors=prior_map,
        link=link,
    ).validate()


# =========================================================================
# PyMC translation
# =========================================================================


def _precision_sigma(tau):
    return 1.0 / pt.sqrt(tau)


def build_model(spec: ModelSpec) -> pm.Model:
    """Translate a validated :class:`ModelSpec` into a PyMC model.

    Free variables: ``tau_add``, ``tau_obs``, ``eps`` (standardised state
    innovations) and any link coefficients.  The latent log-abundance path is
    the deterministic ``x`` of length ``n``.
    """
    spec.validate()
    payload = spec.data_payload()
    n = spec.n
    pri = spec.priors

    with pm.Model(coords={"time": np.arange(1, n + 1)}) as model:

        # Noise precisions
        a, r = pri["tau_add"].params
        tau_add = pm.Gamma("tau_add", alpha=a, beta=r)
        a, r = pri["tau_obs"].params
        tau_obs = pm.Gamma("tau_obs", alpha=a, beta=r)
        sigma_add = _precision_sigma(tau_add)

        # Non-centred innovations: eps[0] drives x_1, eps[1:] the transitions
        eps = pm.Normal("eps", 0, 1, shape=n)
        x_ic_mean, x_ic_tau = pri["x_ic"].params
        x1 = x_ic_mean + eps[0] / np.sqrt(x_ic_tau)

        if spec.link is None:
            x = pt.concatenate([x1.reshape((1,)), x1 + pt.cumsum(sigma_add * eps[1:])])
        else:
            link = spec.link
            coef_names = list(link.coefficients)
            coef_vars = []
            for name in coef_names:
                mean, precision = pri[name].params
                coef_vars.append(pm.Normal(name, mu=mean, sigma=1.0 / np.sqrt(precision)))

            cov = pt.as_tensor_variable(payload["covariate"])
            visit = pt.as_tensor_variable(
                payload.get("visit", np.ones(n - 1, dtype=float))
            )

            def step(e_t, c_t, v_t, x_prev, _sig, *coefs):
                mean = link.fn(x_prev, c_t, v_t, dict(zip(coef_names, coefs)))
                return mean + _sig * e_t

            x_rest, _ = pytensor.scan(
                fn=step,
                sequences=[eps[1:], cov, visit],
                outputs_info=[x1],
                non_sequences=[sigma_add, *coef_vars],
                strict=True,
            )
            x = pt.concatenate([x1.reshape((1,)), x_rest])

        pm.Deterministic("x", x, dims="time")

        # Likelihood only at observed steps; missing steps stay in the chain
        pm.Normal(
            "y_obs",
            mu=x[payload["obs_idx"]],
            sigma=_precision_sigma(tau_obs),
            observed=payload["y"],
        )

    return model
