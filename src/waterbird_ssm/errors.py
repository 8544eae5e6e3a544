"""Exceptions and warnings raised by the estimator."""

from __future__ import annotations


class DataError(ValueError):
    """Input series cannot support a fit (empty, too short, missing covariates)."""


class ConvergenceWarning(UserWarning):
    """Burn-in diagnostics or the precision posteriors look untrustworthy.

    Non-fatal: the fit continues, but its credible intervals are provisional.
    """
