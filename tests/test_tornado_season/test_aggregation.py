"""
Tests for daily and cumulative aggregation of tornado tracks
"""

import numpy as np
import pandas as pd
import pytest

from tornado_season.aggregation import (
    add_calendar_features,
    annual_counts,
    cumulative_counts,
    daily_counts,
    filter_tracks,
    prepare_season_table,
    season_milestones,
)


class TestFilterTracks:
    """Test year and magnitude filtering"""

    def test_min_magnitude_excludes_weak_and_unknown(self, make_tracks):
        """Magnitude 0 and unknown (-9) records are dropped at min magnitude 1"""
        tracks = make_tracks([
            ('2005-04-01', 0),
            ('2005-04-01', 1),
            ('2005-04-02', 2),
            ('2005-05-10', -9),
            ('2005-05-11', 0),
            ('2005-06-01', 3),
        ])

        filtered = filter_tracks(tracks, min_year=2000, min_magnitude=1)

        assert len(filtered) == 3
        assert (filtered['mag'] >= 1).all()

    def test_aggregated_total_matches_raw_count(self, synthetic_tracks):
        """Filtered count total equals a manual count of the raw records"""
        expected = int(((synthetic_tracks['yr'] >= 2003) & (synthetic_tracks['mag'] >= 1)).sum())

        daily = daily_counts(synthetic_tracks, min_year=2003, min_magnitude=1)

        assert daily['nT'].sum() == expected
        assert daily['Year'].min() == 2003

    def test_empty_result_raises(self, make_tracks):
        """Filtering everything away is an error"""
        tracks = make_tracks([('1990-04-01', 2)])

        with pytest.raises(ValueError):
            filter_tracks(tracks, min_year=2000, min_magnitude=0)

    def test_missing_column_raises(self):
        """Tracks without a magnitude column are rejected"""
        with pytest.raises(ValueError, match="mag"):
            filter_tracks(pd.DataFrame({'yr': [2000], 'date': ['2000-01-01']}), 1990, 0)


class TestCalendarFeatures:
    """Test date-derived columns"""

    def test_day_of_year(self, make_tracks):
        """Day of year follows the calendar, including leap years"""
        tracks = make_tracks([('2004-03-01', 1), ('2005-03-01', 1), ('2005-12-31', 1)])

        df = add_calendar_features(tracks)

        assert list(df['D']) == [61, 60, 365]
        assert list(df['Month']) == [3, 3, 12]
        assert list(df['Year']) == [2004, 2005, 2005]


class TestDailyCounts:
    """Test zero-filled per-day counts"""

    def test_366_rows_per_year(self, synthetic_tracks):
        """Every year present has one row per day 1..366"""
        daily = daily_counts(synthetic_tracks, min_year=2000, min_magnitude=0)

        rows_per_year = daily.groupby('Year').size()

        assert (rows_per_year == 366).all()
        assert len(rows_per_year) == 10
        for _, group in daily.groupby('Year'):
            assert list(group['D']) == list(range(1, 367))

    def test_zero_days_filled(self, make_tracks):
        """Days without tornadoes appear with a zero count"""
        tracks = make_tracks([('2001-01-01', 1), ('2001-01-01', 1), ('2001-01-03', 1)])

        daily = daily_counts(tracks, min_year=2000, min_magnitude=0)

        assert len(daily) == 366
        assert list(daily['nT'].head(4)) == [2, 0, 1, 0]
        assert daily['nT'].sum() == 3

    def test_non_leap_year_keeps_day_366(self, make_tracks):
        """Day 366 exists with a zero count in non-leap years"""
        tracks = make_tracks([('2001-12-31', 1)])

        daily = daily_counts(tracks, min_year=2000, min_magnitude=0)

        assert daily.loc[daily['D'] == 365, 'nT'].item() == 1
        assert daily.loc[daily['D'] == 366, 'nT'].item() == 0

    def test_years_without_tornadoes_are_absent(self, make_tracks):
        """Only years present after filtering get rows"""
        tracks = make_tracks([('2001-05-01', 1), ('2003-05-01', 1)])

        daily = daily_counts(tracks, min_year=2000, min_magnitude=0)

        assert sorted(daily['Year'].unique()) == [2001, 2003]
        assert len(daily) == 2 * 366


class TestCumulativeCounts:
    """Test running counts, year totals and the day fraction"""

    def test_example_sequence(self, make_tracks):
        """Counts [2, 0, 1, 0, ...] accumulate to [2, 2, 3, 3, ...]"""
        tracks = make_tracks([('2001-01-01', 1), ('2001-01-01', 1), ('2001-01-03', 1)])

        table = cumulative_counts(daily_counts(tracks, min_year=2000, min_magnitude=0))

        assert list(table['C'].head(4)) == [2, 2, 3, 3]
        assert (table['TY'] == 3).all()
        assert table['C'].iloc[-1] == 3

    def test_non_decreasing_and_reset(self, season_table):
        """C never decreases within a year and restarts at day 1"""
        for _, group in season_table.groupby('Year'):
            assert (np.diff(group['C'].to_numpy()) >= 0).all()
            first = group.iloc[0]
            assert first['D'] == 1
            assert first['C'] == first['nT']

    def test_year_total_equals_filtered_count(self, synthetic_tracks, season_table):
        """The last cumulative value of a year is that year's tornado count"""
        expected = synthetic_tracks.groupby('yr').size()

        last = season_table.groupby('Year')['C'].last()
        totals = season_table.groupby('Year')['TY'].unique()

        for year, count in expected.items():
            assert last.loc[year] == count
            assert list(totals.loc[year]) == [count]

    def test_day_fraction(self, season_table):
        """Df is day of year over 365 and always positive"""
        assert np.allclose(season_table['Df'], season_table['D'] / 365)
        assert (season_table['Df'] > 0).all()
        assert season_table['Df'].max() == pytest.approx(366 / 365)

    def test_unsorted_input(self):
        """Rows are ordered by year and day before accumulating"""
        daily = pd.DataFrame({
            'Year': [2001, 2001, 2001, 2000, 2000],
            'D': [3, 1, 2, 2, 1],
            'nT': [5, 1, 0, 4, 2],
        })

        table = cumulative_counts(daily)

        assert list(table['C']) == [2, 6, 1, 1, 6]
        assert list(table['TY']) == [6, 6, 6, 6, 6]


class TestSummaries:
    """Test annual totals, milestones and the combined table"""

    def test_annual_counts(self, make_tracks):
        tracks = make_tracks([('2001-05-01', 1), ('2001-06-01', 1), ('2002-05-01', 1)])

        annual = annual_counts(daily_counts(tracks, min_year=2000, min_magnitude=0))

        assert list(annual['Year']) == [2001, 2002]
        assert list(annual['total']) == [2, 1]

    def test_season_milestones(self, make_tracks):
        """Milestones mark the first day each share of the season is reached"""
        tracks = make_tracks(
            [('2001-01-10', 1)] * 1 + [('2001-04-10', 1)] * 4 + [('2001-11-01', 1)] * 5
        )
        table = cumulative_counts(daily_counts(tracks, min_year=2000, min_magnitude=0))

        milestones = season_milestones(table, probs=(0.1, 0.5, 0.9))

        row = milestones.iloc[0]
        assert row['D10'] == 10
        assert row['D50'] == 100
        assert row['D90'] == 305

    def test_prepare_season_table_year_subset(self, synthetic_tracks):
        table = prepare_season_table(synthetic_tracks, 2000, 0, years=[2002, 2005])

        assert sorted(table['Year'].unique()) == [2002, 2005]
        assert len(table) == 2 * 366

    def test_prepare_season_table_unknown_years(self, synthetic_tracks):
        with pytest.raises(ValueError):
            prepare_season_table(synthetic_tracks, 2000, 0, years=[1960])
