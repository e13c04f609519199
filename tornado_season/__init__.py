"""
Tornado Season Timing Analysis.

Studies when in the calendar year US tornadoes occur, and how that timing
varies from year to year:

1. SPC tornado-track archive → zero-filled daily counts per year
2. Cumulative counts → generalized-logistic season curves (NLS, weighted GLS)
3. Year-to-year variation → Bayesian hierarchical one- and two-surge curves
"""

__version__ = "1.0.0"

from .config import SeasonConfig
from .models import ModelKind, Likelihood, PriorSpec, CurveFitResult, MCMCDiagnostics
from .data_ingestion import TornadoTrackIngester, load_tracks, simulate_tracks
from .aggregation import (
    filter_tracks,
    add_calendar_features,
    daily_counts,
    cumulative_counts,
    annual_counts,
    season_milestones,
    prepare_season_table,
)
from .curves import (
    logistic_component,
    season_curve,
    mixture_curve,
    DailyRateGLM,
    SeasonCurveFitter,
)
from .bayesian import SeasonCurveModel
from .pipeline import TornadoSeasonPipeline

__all__ = [
    'SeasonConfig',
    'ModelKind',
    'Likelihood',
    'PriorSpec',
    'CurveFitResult',
    'MCMCDiagnostics',
    'TornadoTrackIngester',
    'load_tracks',
    'simulate_tracks',
    'filter_tracks',
    'add_calendar_features',
    'daily_counts',
    'cumulative_counts',
    'annual_counts',
    'season_milestones',
    'prepare_season_table',
    'logistic_component',
    'season_curve',
    'mixture_curve',
    'DailyRateGLM',
    'SeasonCurveFitter',
    'SeasonCurveModel',
    'TornadoSeasonPipeline',
]
