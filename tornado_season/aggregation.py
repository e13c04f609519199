"""
Aggregation of tornado tracks into daily and cumulative count tables.

The day-of-year domain is fixed at 1..366 for every year, so each year
contributes a series of the same length. Days without tornadoes are
materialized with a zero count by grouping over a categorical domain.
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from .config import SeasonConfig


def filter_tracks(
    tracks: pd.DataFrame,
    min_year: Optional[int] = None,
    min_magnitude: Optional[int] = None
) -> pd.DataFrame:
    """
    Keep tornadoes at or after min_year with magnitude at least min_magnitude.

    Unknown magnitudes (-9 in the SPC data) fall below any non-negative
    threshold and are dropped along with weaker tornadoes.
    """
    min_year = SeasonConfig.MIN_YEAR if min_year is None else min_year
    min_magnitude = SeasonConfig.MIN_MAGNITUDE if min_magnitude is None else min_magnitude

    for col in ['yr', 'mag']:
        if col not in tracks.columns:
            raise ValueError(f"Missing required column: {col}")

    mask = (tracks['yr'] >= min_year) & (tracks['mag'] >= min_magnitude)
    filtered = tracks[mask].copy()

    logger.info(
        f"Kept {len(filtered)} of {len(tracks)} tornadoes "
        f"(year >= {min_year}, magnitude >= {min_magnitude})"
    )

    if filtered.empty:
        raise ValueError(
            f"No tornadoes left after filtering (min_year={min_year}, "
            f"min_magnitude={min_magnitude})"
        )

    return filtered


def add_calendar_features(tracks: pd.DataFrame) -> pd.DataFrame:
    """Add Date, Year, Month and day-of-year (D) columns from the date column."""
    df = tracks.copy()
    df['Date'] = pd.to_datetime(df['date'])
    df['Year'] = df['Date'].dt.year
    df['Month'] = df['Date'].dt.month
    df['D'] = df['Date'].dt.dayofyear
    return df


def daily_counts(
    tracks: pd.DataFrame,
    min_year: Optional[int] = None,
    min_magnitude: Optional[int] = None
) -> pd.DataFrame:
    """
    Count qualifying tornadoes per (Year, D).

    Args:
        tracks: Raw track table with yr, date and mag columns
        min_year: Earliest year kept
        min_magnitude: Smallest magnitude kept

    Returns:
        DataFrame with Year, D and nT, 366 rows per year present after
        filtering, zero-count days included
    """
    df = add_calendar_features(filter_tracks(tracks, min_year, min_magnitude))

    years = sorted(df['Year'].unique())
    df['Year'] = pd.Categorical(df['Year'], categories=years)
    df['D'] = pd.Categorical(df['D'], categories=SeasonConfig.DOY_DOMAIN)

    counts = (
        df.groupby(['Year', 'D'], observed=False)
        .size()
        .rename('nT')
        .reset_index()
    )
    counts['Year'] = counts['Year'].astype(int)
    counts['D'] = counts['D'].astype(int)
    counts['nT'] = counts['nT'].astype(int)

    logger.info(f"Aggregated {int(counts['nT'].sum())} tornadoes into {len(counts)} year-days")

    return counts.sort_values(['Year', 'D']).reset_index(drop=True)


def cumulative_counts(daily: pd.DataFrame) -> pd.DataFrame:
    """
    Add the running count within each year and the year total.

    Adds C (cumulative count, resetting each year), TY (the year's final
    cumulative value) and Df (day of year divided by 365).
    """
    df = daily.sort_values(['Year', 'D']).reset_index(drop=True)
    by_year = df.groupby('Year')

    df['C'] = by_year['nT'].cumsum()
    df['TY'] = df.groupby('Year')['C'].transform('last')
    df['Df'] = df['D'] / SeasonConfig.DOY_NORMALIZER

    return df


def annual_counts(daily: pd.DataFrame) -> pd.DataFrame:
    """Total tornadoes per year."""
    return (
        daily.groupby('Year', as_index=False)['nT']
        .sum()
        .rename(columns={'nT': 'total'})
    )


def season_milestones(
    cumulative: pd.DataFrame,
    probs: Sequence[float] = (0.1, 0.5, 0.9)
) -> pd.DataFrame:
    """
    First day of year by which each share of the year's tornadoes occurred.

    Returns one row per year with a column per share, e.g. D10, D50, D90.
    """
    rows = []
    for year, group in cumulative.groupby('Year'):
        row = {'Year': year}
        total = group['TY'].iloc[0]
        for p in probs:
            reached = group.loc[group['C'] >= p * total, 'D']
            row[f"D{int(round(p * 100))}"] = int(reached.iloc[0]) if total > 0 else np.nan
        rows.append(row)

    return pd.DataFrame(rows)


def prepare_season_table(
    tracks: pd.DataFrame,
    min_year: Optional[int] = None,
    min_magnitude: Optional[int] = None,
    years: Optional[Sequence[int]] = None
) -> pd.DataFrame:
    """
    Run filtering, daily aggregation and the cumulative transform.

    Args:
        years: Optional subset of years to keep in the final table

    Returns:
        Cumulative count table
    """
    table = cumulative_counts(daily_counts(tracks, min_year, min_magnitude))

    if years is not None:
        table = table[table['Year'].isin(list(years))].reset_index(drop=True)
        if table.empty:
            raise ValueError(f"None of the requested years are present: {list(years)}")

    return table
