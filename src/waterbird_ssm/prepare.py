# ---------------------------------------------------------------------------
# waterbird_ssm.prepare — Seasonal filtering, gap filling and indexing
# ---------------------------------------------------------------------------
"""Turn irregular survey records into an evenly spaced occasion series.

Each survey year holds one occasion per season window (summer = visit 1,
winter = visit 2 by default).  Records outside the windows are discarded,
several records in one occasion are reduced to one, and occasions without a
record get a placeholder row with a null count so the time index never skips.
"""

from __future__ import annotations

import logging
from datetime import date

import numpy as np
import polars as pl

from .config import LOG_OFFSET, SEASONS, SeasonWindow
from .errors import DataError

logger = logging.getLogger(__name__)

SERIES_KEYS = ['taxon', 'site']

_AGGREGATORS = ('max', 'mean', 'sum', 'first')


def season_table(seasons: tuple[SeasonWindow, ...] = SEASONS) -> pl.DataFrame:
    """Month -> (visit, season, year offset) lookup for the season windows."""
    visits = sorted(s.visit for s in seasons)
    if visits != list(range(1, len(seasons) + 1)):
        raise ValueError(f'Season visits must be 1..{len(seasons)}, got {visits}')

    rows = []
    seen: set[int] = set()
    for s in seasons:
        for m in s.months:
            if m in seen:
                raise ValueError(f'Month {m} belongs to more than one season window')
            seen.add(m)
            rows.append(
                {
                    'month': m,
                    'visit': s.visit,
                    'season': s.name,
                    'year_offset': s.year_offset(m),
                }
            )
    return pl.DataFrame(
        rows,
        schema={
            'month': pl.Int8,
            'visit': pl.Int32,
            'season': pl.Utf8,
            'year_offset': pl.Int32,
        },
    )


def occasion_date(
    survey_year: int,
    visit: int,
    seasons: tuple[SeasonWindow, ...] = SEASONS,
) -> date:
    """Anchor date of the *visit*-th occasion in *survey_year*."""
    for s in seasons:
        if s.visit == visit:
            return date(
                survey_year + s.year_offset(s.anchor_month), s.anchor_month, s.anchor_day
            )
    raise ValueError(f'No season window with visit={visit}')


def next_occasions(
    survey_year: int,
    visit: int,
    horizon: int,
    seasons: tuple[SeasonWindow, ...] = SEASONS,
) -> list[tuple[int, int, date]]:
    """The *horizon* occasions following ``(survey_year, visit)``."""
    n_visits = len(seasons)
    ordinal = survey_year * n_visits + (visit - 1)
    out = []
    for h in range(1, horizon + 1):
        yr, v = divmod(ordinal + h, n_visits)
        out.append((yr, v + 1, occasion_date(yr, v + 1, seasons)))
    return out


def _aggregate_expr(aggregate: str) -> pl.Expr:
    count = pl.col('count')
    if aggregate == 'max':
        return count.max()
    if aggregate == 'mean':
        return count.mean()
    if aggregate == 'sum':
        # sum() of an all-null group is 0; keep it missing instead
        return pl.when(count.is_not_null().any()).then(count.sum()).otherwise(None)
    if aggregate == 'first':
        return count.sort_by('date').first()
    raise ValueError(f'aggregate must be one of {_AGGREGATORS}, got {aggregate!r}')


def prepare_counts(
    counts: pl.DataFrame,
    seasons: tuple[SeasonWindow, ...] = SEASONS,
    aggregate: str = 'max',
) -> pl.DataFrame:
    """Filter, gap-fill and index survey records.

    Parameters
    ----------
    counts : pl.DataFrame
        Records conforming to :data:`waterbird_ssm.records.COUNT_SCHEMA`.
    seasons : tuple[SeasonWindow, ...]
        Survey windows; defaults to :data:`waterbird_ssm.config.SEASONS`.
    aggregate : ``'max'`` | ``'mean'`` | ``'sum'`` | ``'first'``
        Reduction applied when one occasion has several records.

    Returns
    -------
    pl.DataFrame
        One row per expected occasion per ``(taxon, site)`` with columns
        ``taxon, site, survey_year, visit, season, date, count,
        is_placeholder, site_idx, year_idx, visit_idx, t``.  Indices are
        1-based and contiguous; rows are in chronological order.

    Raises
    ------
    DataError
        If no record with a count falls inside the season windows.
    """
    agg_expr = _aggregate_expr(aggregate)
    lookup = season_table(seasons)
    n_visits = len(seasons)

    in_window = (
        counts.with_columns(
            pl.col('date').dt.month().cast(pl.Int8).alias('month'),
            pl.col('date').dt.year().cast(pl.Int32).alias('cal_year'),
        )
        .join(lookup, on='month', how='inner')
        .with_columns((pl.col('cal_year') - pl.col('year_offset')).alias('survey_year'))
    )

    n_dropped = len(counts) - len(in_window)
    if n_dropped > 0:
        logger.warning(f'Dropped {n_dropped} records outside the season windows')

    if in_window['count'].drop_nulls().len() == 0:
        raise DataError('No usable count records inside the season windows')

    occasions = (
        in_window.group_by([*SERIES_KEYS, 'survey_year', 'visit'])
        .agg(
            pl.col('date').min(),
            agg_expr.alias('count'),
            pl.len().alias('n_records'),
        )
        .with_columns(
            (pl.col('survey_year') * n_visits + pl.col('visit') - 1)
            .cast(pl.Int64)
            .alias('ordinal')
        )
    )

    n_merged = int((occasions['n_records'] - 1).sum())
    if n_merged > 0:
        logger.info(f'Merged {n_merged} duplicate records ({aggregate})')

    # Full occasion grid between each series' first and last occasion
    grid = (
        occasions.group_by(SERIES_KEYS)
        .agg(
            pl.col('ordinal').min().alias('first'),
            pl.col('ordinal').max().alias('last'),
        )
        .with_columns(pl.int_ranges('first', pl.col('last') + 1).alias('ordinal'))
        .explode('ordinal')
        .drop('first', 'last')
        .with_columns(
            (pl.col('ordinal') // n_visits).cast(pl.Int32).alias('survey_year'),
            (pl.col('ordinal') % n_visits + 1).cast(pl.Int32).alias('visit'),
        )
    )

    anchors = pl.DataFrame(
        {
            'visit': [s.visit for s in seasons],
            'season': [s.name for s in seasons],
            'anchor_month': [s.anchor_month for s in seasons],
            'anchor_day': [s.anchor_day for s in seasons],
            'anchor_offset': [s.year_offset(s.anchor_month) for s in seasons],
        },
        schema_overrides={'visit': pl.Int32},
    )

    prepared = (
        grid.join(
            occasions.drop('survey_year', 'visit', 'n_records'),
            on=[*SERIES_KEYS, 'ordinal'],
            how='left',
        )
        .join(anchors, on='visit', how='left')
        .with_columns(
            pl.col('date').is_null().alias('is_placeholder'),
            pl.coalesce(
                pl.col('date'),
                pl.date(
                    pl.col('survey_year') + pl.col('anchor_offset'),
                    pl.col('anchor_month'),
                    pl.col('anchor_day'),
                ),
            ).alias('date'),
        )
        .with_columns(
            pl.col('site').rank('dense').cast(pl.Int32).alias('site_idx'),
            (pl.col('survey_year') - pl.col('survey_year').min().over(SERIES_KEYS) + 1)
            .cast(pl.Int32)
            .alias('year_idx'),
            pl.col('visit').alias('visit_idx'),
            (pl.col('ordinal') - pl.col('ordinal').min().over(SERIES_KEYS) + 1)
            .cast(pl.Int32)
            .alias('t'),
        )
        .sort([*SERIES_KEYS, 't'])
        .select(
            'taxon',
            'site',
            'survey_year',
            'visit',
            'season',
            'date',
            'count',
            'is_placeholder',
            'site_idx',
            'year_idx',
            'visit_idx',
            't',
        )
    )

    n_placeholder = int(prepared['is_placeholder'].sum())
    logger.info(
        f'Prepared {len(prepared)} occasions across '
        f'{prepared.select(SERIES_KEYS).n_unique()} series '
        f'({n_placeholder} gap-filled)'
    )
    return prepared


def extract_series(
    prepared: pl.DataFrame,
    taxon: str | None = None,
    site: str | None = None,
    log_offset: float = LOG_OFFSET,
    center_covariate: bool = True,
) -> dict:
    """Keyed arrays for one ``(taxon, site)`` series.

    Parameters
    ----------
    prepared : pl.DataFrame
        Output of :func:`prepare_counts`, optionally joined with covariates.
    taxon, site : str, optional
        Series to select; may be omitted when *prepared* holds a single series.
    log_offset : float
        Added to counts before taking logs.
    center_covariate : bool
        Subtract the series mean from the covariate column, if present.

    Returns
    -------
    dict
        ``frame, taxon, site, dates, n, survey_year, visit, counts, y,
        obs_idx, covariate, covariate_mean, log_offset``.  ``counts`` and
        ``y`` hold NaN at missing occasions; ``obs_idx`` indexes the rest.

    Raises
    ------
    DataError
        Fewer than 2 occasions, no observed counts, or counts that cannot be
        log-transformed with *log_offset*.
    """
    df = prepared
    if taxon is not None:
        df = df.filter(pl.col('taxon') == taxon)
    if site is not None:
        df = df.filter(pl.col('site') == site)

    keys = df.select(SERIES_KEYS).unique()
    if len(keys) == 0:
        raise DataError(f'No prepared rows for taxon={taxon!r}, site={site!r}')
    if len(keys) > 1:
        raise ValueError(
            f'{len(keys)} series present; pass taxon= and site= to choose one'
        )

    df = df.sort('t')
    n = len(df)
    if n < 2:
        raise DataError(f'Need at least 2 time points for the process model, got {n}')

    counts_arr = df['count'].cast(pl.Float64).to_numpy().astype(float)
    observed = np.isfinite(counts_arr)
    if not observed.any():
        raise DataError('Series has no non-missing counts')

    shifted = counts_arr[observed] + log_offset
    if np.any(shifted <= 0):
        raise DataError(
            f'{int(np.sum(shifted <= 0))} counts are not positive after adding '
            f'log_offset={log_offset}; raise log_offset to model zero counts'
        )

    y = np.full(n, np.nan)
    y[observed] = np.log(shifted)

    covariate = None
    covariate_mean = 0.0
    if 'covariate' in df.columns:
        covariate = df['covariate'].cast(pl.Float64).to_numpy().astype(float)
        if center_covariate and np.any(np.isfinite(covariate)):
            covariate_mean = float(np.nanmean(covariate))
            covariate = covariate - covariate_mean

    return dict(
        frame=df,
        taxon=df['taxon'][0],
        site=df['site'][0],
        dates=df['date'].to_list(),
        n=n,
        survey_year=df['survey_year'].to_numpy().astype(int),
        visit=df['visit'].to_numpy().astype(int),
        counts=counts_arr,
        y=y,
        obs_idx=np.where(observed)[0],
        covariate=covariate,
        covariate_mean=covariate_mean,
        log_offset=log_offset,
    )


def series_from_counts(
    counts: list[float | None] | np.ndarray,
    start_year: int = 2000,
    start_visit: int = 1,
    seasons: tuple[SeasonWindow, ...] = SEASONS,
    log_offset: float = LOG_OFFSET,
) -> dict:
    """Build a series dict straight from an already-regular count sequence.

    ``None``/NaN entries are missing occasions.  Dates are the anchor dates of
    consecutive occasions starting at ``(start_year, start_visit)``.
    """
    values = [None if c is None or not np.isfinite(c) else float(c) for c in counts]
    if len(values) < 2:
        raise DataError(f'Need at least 2 time points for the process model, got {len(values)}')
    first = (start_year, start_visit, occasion_date(start_year, start_visit, seasons))
    occasions = [first] + next_occasions(start_year, start_visit, len(values) - 1, seasons)
    frame = pl.DataFrame(
        {
            'taxon': ['synthetic'] * len(values),
            'site': ['synthetic'] * len(values),
            'survey_year': [o[0] for o in occasions],
            'visit': [o[1] for o in occasions],
            'date': [o[2] for o in occasions],
            'count': values,
            't': list(range(1, len(values) + 1)),
        },
        schema_overrides={
            'survey_year': pl.Int32,
            'visit': pl.Int32,
            'count': pl.Float64,
            't': pl.Int32,
        },
    )
    return extract_series(frame, log_offset=log_offset)
