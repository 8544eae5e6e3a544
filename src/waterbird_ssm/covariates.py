# ---------------------------------------------------------------------------
# waterbird_ssm.covariates — Covariate join and local covariate cache
# ---------------------------------------------------------------------------
"""Attach a monthly environmental index to prepared occasions.

The join key is ``(year, month)`` of each occasion's date.  Covariate sources
are slow external services, so :func:`cached_covariates` keeps a flat CSV
keyed by ``(year, month)`` and only calls the fetcher for years it lacks.
:func:`future_covariates` looks up the values a linked forecast needs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import numpy as np
import polars as pl

from .config import SEASONS, SeasonWindow
from .errors import DataError
from .prepare import next_occasions
from .records import COVARIATE_SCHEMA, load_covariates, validate_covariates

logger = logging.getLogger(__name__)


def join_covariates(
    prepared: pl.DataFrame,
    covariates: pl.DataFrame,
    mandatory: bool = False,
) -> pl.DataFrame:
    """Left-join covariate values onto prepared occasions.

    Parameters
    ----------
    prepared : pl.DataFrame
        Output of :func:`waterbird_ssm.prepare.prepare_counts`.
    covariates : pl.DataFrame
        Records conforming to COVARIATE_SCHEMA.
    mandatory : bool
        Raise when any occasion is left without a covariate value (the
        covariate-augmented model needs one at every step).

    Returns
    -------
    pl.DataFrame
        *prepared* with an added ``covariate`` column (null where unmatched).
    """
    validate_covariates(covariates)

    lookup = covariates.select(
        pl.col('year').cast(pl.Int32),
        pl.col('month').cast(pl.Int8),
        pl.col('value').alias('covariate'),
    )
    joined = (
        prepared.with_columns(
            pl.col('date').dt.year().cast(pl.Int32).alias('year'),
            pl.col('date').dt.month().cast(pl.Int8).alias('month'),
        )
        .join(lookup, on=['year', 'month'], how='left')
        .drop('year', 'month')
    )

    unmatched = joined.filter(pl.col('covariate').is_null())
    if len(unmatched) > 0:
        sample = unmatched.select('site', 'date').head(3).to_dicts()
        msg = f'{len(unmatched)} occasions have no covariate value. Examples: {sample}'
        if mandatory:
            raise DataError(msg)
        logger.warning(msg)

    return joined


def cached_covariates(
    cache_path: str | Path,
    fetch: Callable[[int, int], pl.DataFrame],
    start_year: int,
    end_year: int,
) -> pl.DataFrame:
    """Return covariates for ``start_year..end_year``, fetching only what is missing.

    Parameters
    ----------
    cache_path : str or Path
        CSV file holding previously fetched ``year, month, value`` rows.
    fetch : callable
        ``fetch(start_year, end_year)`` returning a COVARIATE_SCHEMA frame.
        Called at most once, for the span of years the cache lacks.
    start_year, end_year : int
        Inclusive year span required.

    Notes
    -----
    Idempotent: a second call with the same span reads only the cache.
    A year counts as cached once all 12 months are present.
    """
    cache_path = Path(cache_path)
    if cache_path.exists():
        cached = load_covariates(cache_path)
    else:
        cached = pl.DataFrame(schema=COVARIATE_SCHEMA)

    full_years = set(
        cached.group_by('year')
        .len()
        .filter(pl.col('len') == 12)['year']
        .to_list()
    )
    missing = [y for y in range(start_year, end_year + 1) if y not in full_years]

    if missing:
        logger.info(f'Fetching covariates for {min(missing)}-{max(missing)}')
        fetched = fetch(min(missing), max(missing)).select(
            [pl.col(col).cast(dtype) for col, dtype in COVARIATE_SCHEMA.items()]
        )
        validate_covariates(fetched)
        # Fresh values replace stale cached rows for the same month
        cached = (
            pl.concat([cached, fetched])
            .unique(subset=['year', 'month'], keep='last', maintain_order=True)
            .sort('year', 'month')
        )
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cached.write_csv(cache_path)
        logger.info(f'Covariate cache updated: {cache_path} ({len(cached)} rows)')

    return cached.filter(pl.col('year').is_between(start_year, end_year))


def future_covariates(
    covariates: pl.DataFrame,
    series: dict,
    horizon: int,
    seasons: tuple[SeasonWindow, ...] = SEASONS,
) -> np.ndarray:
    """Raw covariate values for the *horizon* occasions after *series*.

    Occasions are matched on the ``(year, month)`` of their date, exactly as
    :func:`join_covariates` matches fitted occasions.

    Raises
    ------
    DataError
        If any future occasion has no covariate value.
    """
    validate_covariates(covariates)
    occasions = next_occasions(
        int(series['survey_year'][-1]), int(series['visit'][-1]), horizon, seasons
    )
    lookup = {
        (int(y), int(m)): float(v)
        for y, m, v in covariates.select('year', 'month', 'value').iter_rows()
    }
    keys = [(d.year, d.month) for _yr, _v, d in occasions]
    missing = [k for k in keys if k not in lookup]
    if missing:
        raise DataError(
            f'{len(missing)} forecast occasions have no covariate value. Examples: {missing[:3]}'
        )
    return np.array([lookup[k] for k in keys])
