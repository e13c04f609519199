"""
Pytest configuration and fixtures for tornado season tests
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from tornado_season.aggregation import cumulative_counts, daily_counts
from tornado_season.curves import season_curve
from tornado_season.data_ingestion import simulate_tracks


@pytest.fixture
def make_tracks():
    """Factory building a track table from (date, magnitude) pairs."""
    def _make(records):
        dates = pd.to_datetime([date for date, _ in records])
        return pd.DataFrame({
            'yr': dates.year,
            'date': dates.strftime('%Y-%m-%d'),
            'mag': [mag for _, mag in records],
        })
    return _make


@pytest.fixture
def synthetic_tracks():
    """Ten years of simulated tornadoes with a two-surge season."""
    return simulate_tracks(range(2000, 2010), tornadoes_per_year=800, seed=7)


@pytest.fixture
def season_table(synthetic_tracks):
    """Cumulative count table built from the simulated tracks."""
    return cumulative_counts(daily_counts(synthetic_tracks, min_year=2000, min_magnitude=0))


@pytest.fixture
def curve_table():
    """Noiseless cumulative table following a known single-surge curve."""
    frames = []
    for year in [2001, 2002, 2003]:
        D = np.arange(1, 367)
        Df = D / 365
        C = season_curve(Df, 500.0, 0.4, 4.0)
        frames.append(pd.DataFrame({'Year': year, 'D': D, 'Df': Df, 'C': C, 'TY': C[-1]}))
    return pd.concat(frames, ignore_index=True)
