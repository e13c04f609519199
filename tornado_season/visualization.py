"""
Plots of the season tables and fitted models.

All functions only read their inputs. Each returns the matplotlib figure
(and axes) and saves it when save_path is given.
"""

import math
from pathlib import Path
from typing import List, Optional

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from loguru import logger

from .bayesian import SeasonCurveModel
from .config import SeasonConfig
from .curves import DailyRateGLM, season_curve
from .models import CurveFitResult


def _save(fig, save_path: Optional[Path]):
    if save_path:
        fig.savefig(save_path, dpi=SeasonConfig.OUTPUT_CONFIG["plot_dpi"], bbox_inches='tight')
        logger.info(f"Saved plot to {save_path}")


def plot_cumulative_counts(
    table: pd.DataFrame,
    years: Optional[List[int]] = None,
    save_path: Optional[Path] = None
):
    """Observed cumulative count curve of each year."""
    sns.set_style("whitegrid")
    fig, ax = plt.subplots(figsize=(12, 6))

    data = table if years is None else table[table['Year'].isin(years)]
    sns.lineplot(data=data, x='D', y='C', hue='Year', palette='viridis', ax=ax, legend='brief')

    ax.set_xlabel('Day of Year', fontsize=12)
    ax.set_ylabel('Cumulative Tornadoes', fontsize=12)
    ax.set_title('Cumulative Tornado Counts by Year', fontsize=14, fontweight='bold')

    plt.tight_layout()
    _save(fig, save_path)

    return fig, ax


def plot_daily_rate(
    daily: pd.DataFrame,
    glm: DailyRateGLM,
    save_path: Optional[Path] = None
):
    """Mean daily count across years with the negative binomial GLM rate."""
    sns.set_style("whitegrid")
    fig, ax = plt.subplots(figsize=(12, 6))

    mean_daily = daily.groupby('D', as_index=False)['nT'].mean()
    ax.plot(mean_daily['D'], mean_daily['nT'], 'o', color='#A23B72', alpha=0.4,
            markersize=3, label='Observed (mean over years)')

    rates = glm.predict_rate()
    ax.plot(rates['D'], rates['rate'], '-', color='#2E86AB', linewidth=2,
            label='Negative binomial GLM')

    ax.set_xlabel('Day of Year', fontsize=12)
    ax.set_ylabel('Tornadoes per Day', fontsize=12)
    ax.set_title('Daily Tornado Rate over the Year', fontsize=14, fontweight='bold')
    ax.legend(loc='best', fontsize=10)

    plt.tight_layout()
    _save(fig, save_path)

    return fig, ax


def plot_curve_fit(
    table: pd.DataFrame,
    result: CurveFitResult,
    save_path: Optional[Path] = None
):
    """Observed cumulative counts with a least-squares season curve."""
    sns.set_style("whitegrid")
    fig, ax = plt.subplots(figsize=(12, 6))

    ax.scatter(table['Df'], table['C'], s=4, alpha=0.2, color='#A23B72', label='Observed')

    grid = np.linspace(table['Df'].min(), table['Df'].max(), 200)
    p = result.parameters
    ax.plot(grid, season_curve(grid, p.a, p.b, p.c), color='#2E86AB', linewidth=2,
            label=f'{result.kind.value.upper()} fit')
    ax.axvline(p.b, color='gray', linestyle='--', alpha=0.7, label='Inflection')

    ax.set_xlabel('Fraction of Year', fontsize=12)
    ax.set_ylabel('Cumulative Tornadoes', fontsize=12)
    ax.set_title('Season Curve Fit', fontsize=14, fontweight='bold')
    ax.legend(loc='best', fontsize=10)

    plt.tight_layout()
    _save(fig, save_path)

    return fig, ax


def plot_posterior_predictive(
    model: SeasonCurveModel,
    num_pp_samples: int = 100,
    save_path: Optional[Path] = None
):
    """Posterior predictive check of the cumulative counts."""
    if model.trace is None or "posterior_predictive" not in model.trace.groups():
        raise ValueError("Model has no posterior predictive samples")

    sizes = model.trace.posterior_predictive.sizes
    num_pp_samples = min(num_pp_samples, sizes["chain"] * sizes["draw"])

    ax = az.plot_ppc(model.trace, num_pp_samples=num_pp_samples)
    fig = np.ravel(ax)[0].figure
    fig.suptitle(f'Posterior Predictive Check: {model.kind.value}', fontsize=14, fontweight='bold')

    _save(fig, save_path)

    return fig, ax


def plot_trace(model: SeasonCurveModel, save_path: Optional[Path] = None):
    """Trace plot of the population-level parameters."""
    if model.trace is None:
        raise ValueError("Model has not been fit yet")

    axes = az.plot_trace(model.trace, var_names=model.parameter_names)
    fig = np.ravel(axes)[0].figure
    fig.tight_layout()

    _save(fig, save_path)

    return fig, axes


def plot_conditional_effects(
    model: SeasonCurveModel,
    by_year: bool = False,
    years: Optional[List[int]] = None,
    save_path: Optional[Path] = None
):
    """
    Fitted season curve with its credible band over the observed counts.

    With by_year, draws one facet per year using that year's parameters.
    """
    effects = model.conditional_effects(by_year=by_year, years=years)
    observed = model.data
    sns.set_style("whitegrid")

    if not by_year:
        fig, ax = plt.subplots(figsize=(12, 6))
        ax.scatter(observed['D'], observed['C'], s=4, alpha=0.2, color='#A23B72', label='Observed')
        ax.plot(effects['D'], effects['estimate'], color='#2E86AB', linewidth=2,
                label='Posterior median')
        ax.fill_between(effects['D'], effects['lower'], effects['upper'],
                        alpha=0.3, color='#2E86AB', label='Credible interval')
        ax.set_xlabel('Day of Year', fontsize=12)
        ax.set_ylabel('Cumulative Tornadoes', fontsize=12)
        ax.set_title(f'Conditional Effect of Day of Year: {model.kind.value}',
                     fontsize=14, fontweight='bold')
        ax.legend(loc='best', fontsize=10)

        plt.tight_layout()
        _save(fig, save_path)
        return fig, ax

    plot_years = list(effects['Year'].unique())
    n_cols = min(SeasonConfig.OUTPUT_CONFIG["facet_columns"], len(plot_years))
    n_rows = math.ceil(len(plot_years) / n_cols)

    fig, axes = plt.subplots(n_rows, n_cols, figsize=(3.2 * n_cols, 2.6 * n_rows),
                             sharex=True, squeeze=False)

    for ax, year in zip(axes.flat, plot_years):
        curve = effects[effects['Year'] == year]
        obs = observed[observed['Year'] == year]
        ax.plot(obs['D'], obs['C'], color='#A23B72', linewidth=1)
        ax.plot(curve['D'], curve['estimate'], color='#2E86AB', linewidth=1.5)
        ax.fill_between(curve['D'], curve['lower'], curve['upper'], alpha=0.3, color='#2E86AB')
        ax.set_title(str(year), fontsize=10)

    for ax in list(axes.flat)[len(plot_years):]:
        ax.set_visible(False)

    fig.suptitle(f'Season Curve by Year: {model.kind.value}', fontsize=14, fontweight='bold')
    fig.supxlabel('Day of Year')
    fig.supylabel('Cumulative Tornadoes')
    fig.tight_layout()

    _save(fig, save_path)

    return fig, axes
