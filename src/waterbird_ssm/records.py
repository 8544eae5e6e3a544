"""Count and covariate record schemas, validation and loading.

Any count source (survey database export, citizen-science download, hand-made
CSV) is accepted once it conforms to COUNT_SCHEMA; covariate sources must
conform to COVARIATE_SCHEMA.
"""

from __future__ import annotations

import logging
from pathlib import Path

import polars as pl

logger = logging.getLogger(__name__)

# One row per survey record: a count of one taxon at one site on one date.
COUNT_SCHEMA: dict[str, pl.DataType] = {
    'date': pl.Date,
    'taxon': pl.Utf8,
    'site': pl.Utf8,
    'count': pl.Float64,
}

# One row per calendar month of an environmental index.
COVARIATE_SCHEMA: dict[str, pl.DataType] = {
    'year': pl.Int32,
    'month': pl.Int32,
    'value': pl.Float64,
}

_REQUIRED_NON_NULL_COUNTS = ('date', 'taxon', 'site')


def validate_counts(df: pl.DataFrame) -> pl.DataFrame:
    """Validate that a DataFrame conforms to COUNT_SCHEMA.

    Null counts are allowed (missed surveys); negative or non-finite counts
    are not.

    Raises
    ------
    ValueError
        If any validation check fails.
    """
    missing = set(COUNT_SCHEMA) - set(df.columns)
    if missing:
        raise ValueError(f'Missing required columns: {sorted(missing)}')

    for col, expected_dtype in COUNT_SCHEMA.items():
        actual_dtype = df.schema[col]
        if actual_dtype != expected_dtype:
            raise ValueError(
                f'Column {col!r} has dtype {actual_dtype}, expected {expected_dtype}'
            )

    for col in _REQUIRED_NON_NULL_COUNTS:
        n_null = df[col].null_count()
        if n_null > 0:
            raise ValueError(f'{n_null} null values in required column {col!r}')

    counts = df['count'].drop_nulls()
    if len(counts) > 0:
        n_bad = counts.filter(counts.is_nan() | counts.is_infinite() | (counts < 0)).len()
        if n_bad > 0:
            raise ValueError(f'{n_bad} negative or non-finite count values found')

    return df


def validate_covariates(df: pl.DataFrame) -> pl.DataFrame:
    """Validate that a DataFrame conforms to COVARIATE_SCHEMA.

    Raises
    ------
    ValueError
        On missing columns, wrong dtypes, months outside 1-12 or duplicate
        ``(year, month)`` keys.
    """
    missing = set(COVARIATE_SCHEMA) - set(df.columns)
    if missing:
        raise ValueError(f'Missing required columns: {sorted(missing)}')

    for col, expected_dtype in COVARIATE_SCHEMA.items():
        actual_dtype = df.schema[col]
        if actual_dtype != expected_dtype:
            raise ValueError(
                f'Column {col!r} has dtype {actual_dtype}, expected {expected_dtype}'
            )

    bad_months = df.filter(~pl.col('month').is_between(1, 12))
    if len(bad_months) > 0:
        raise ValueError(f'{len(bad_months)} rows with month outside 1-12')

    dups = df.group_by(['year', 'month']).len().filter(pl.col('len') > 1)
    if len(dups) > 0:
        sample = dups.head(3).to_dicts()
        raise ValueError(
            f'{len(dups)} duplicate (year, month) combinations found. Examples: {sample}'
        )

    return df


def load_counts(path: str | Path) -> pl.DataFrame:
    """Read a count CSV (``date, taxon, site, count``) and validate it.

    Empty ``count`` cells become nulls.  Extra columns are dropped.
    """
    df = pl.read_csv(
        str(path),
        try_parse_dates=True,
        schema_overrides={'taxon': pl.Utf8, 'site': pl.Utf8, 'count': pl.Float64},
    )
    df = df.select(
        [pl.col(col).cast(dtype) for col, dtype in COUNT_SCHEMA.items()]
    )
    logger.info(f'Loaded {len(df)} count records from {path}')
    return validate_counts(df)


def load_covariates(path: str | Path) -> pl.DataFrame:
    """Read a covariate CSV (``year, month, value``) and validate it."""
    df = pl.read_csv(str(path)).select(
        [pl.col(col).cast(dtype) for col, dtype in COVARIATE_SCHEMA.items()]
    )
    logger.info(f'Loaded {len(df)} covariate records from {path}')
    return validate_covariates(df.sort('year', 'month'))


def filter_counts(
    df: pl.DataFrame,
    taxon: str | None = None,
    site: str | None = None,
) -> pl.DataFrame:
    """Select one taxon and/or site and sort chronologically.

    Parameters
    ----------
    df : pl.DataFrame
        Count records conforming to COUNT_SCHEMA.
    taxon, site : str, optional
        Identifiers to keep.  ``None`` keeps all values.
    """
    if taxon is not None:
        df = df.filter(pl.col('taxon') == taxon)
    if site is not None:
        df = df.filter(pl.col('site') == site)
    return df.sort('site', 'date')
