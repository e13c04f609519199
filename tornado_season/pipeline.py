"""
Tornado Season Analysis Pipeline.

Orchestrates the analysis from the raw track archive to fitted season curves:
1. Acquire and load the SPC tornado-track shapefile
2. Aggregate to zero-filled daily counts and cumulative counts per year
3. Fit the candidate models, from the negative binomial GLM to the
   hierarchical two-surge curve
4. Plot diagnostics and write tables, summaries and a markdown report
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd
from loguru import logger

from .aggregation import (
    annual_counts,
    cumulative_counts,
    daily_counts,
    season_milestones,
)
from .bayesian import SeasonCurveModel
from .config import SeasonConfig
from .curves import DailyRateGLM, SeasonCurveFitter, inflection_day
from .data_ingestion import TornadoTrackIngester
from .models import ModelKind
from . import visualization


class TornadoSeasonPipeline:
    """
    End-to-end pipeline for the tornado season timing analysis.

    A failing model fit is logged and recorded under its name so the
    remaining models still run; failures while acquiring or aggregating the
    data stop the run.
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        data_dir: Optional[Path] = None,
        archive_url: Optional[str] = None,
        save_outputs: bool = True
    ):
        """
        Initialize pipeline.

        Args:
            output_dir: Directory for output files
            data_dir: Directory holding the downloaded archive
            archive_url: URL of the zipped shapefile (defaults to config)
            save_outputs: Whether to write tables and plots
        """
        self.output_dir = Path(output_dir or SeasonConfig.OUTPUT_DIR)
        self.save_outputs = save_outputs
        if self.save_outputs:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        self.ingester = TornadoTrackIngester(archive_url=archive_url, data_dir=data_dir)

        # Pipeline components
        self.glm = None
        self.curve_fitter = SeasonCurveFitter()
        self.bayes_models: Dict[ModelKind, SeasonCurveModel] = {}

        # Results
        self.results = {}

        logger.info(f"Initialized pipeline (output: {self.output_dir})")

    def load_data(self, force_download: bool = False) -> pd.DataFrame:
        """Download (if needed) and read the tornado track table."""
        shapefile = self.ingester.acquire(force=force_download)
        return self.ingester.ingest(shapefile)

    def run(
        self,
        tracks: Optional[pd.DataFrame] = None,
        min_year: Optional[int] = None,
        min_magnitude: Optional[int] = None,
        models: Optional[Sequence[str]] = None,
        years: Optional[Sequence[int]] = None,
        draws: Optional[int] = None,
        tune: Optional[int] = None,
        chains: Optional[int] = None,
        force_download: bool = False
    ) -> Dict:
        """
        Run the analysis.

        Args:
            tracks: Track table to use instead of downloading the archive
            min_year: Earliest year kept (default from config)
            min_magnitude: Smallest magnitude kept (default from config)
            models: Model names to fit (default: all, see ModelKind)
            years: Restrict the curve fits and year facets to these years
            draws, tune, chains: MCMC settings for the Bayesian models
            force_download: Download the archive even if already extracted

        Returns:
            Dictionary with tables and per-model results
        """
        logger.info("=" * 80)
        logger.info("TORNADO SEASON TIMING ANALYSIS")
        logger.info("=" * 80)

        start_time = datetime.now()
        kinds = self._resolve_models(models)

        # ====================================================================
        # 1. DATA
        # ====================================================================

        logger.info("\n[1/3] DATA ACQUISITION AND AGGREGATION")
        logger.info("-" * 80)

        if tracks is None:
            tracks = self.load_data(force_download=force_download)

        daily = daily_counts(tracks, min_year, min_magnitude)
        table = cumulative_counts(daily)

        fit_table = table
        if years is not None:
            fit_table = table[table['Year'].isin(list(years))].reset_index(drop=True)
            if fit_table.empty:
                raise ValueError(f"None of the requested years are present: {list(years)}")

        self.results['data'] = {
            'daily': daily,
            'cumulative': table,
            'fit_table': fit_table,
            'annual': annual_counts(daily),
            'milestones': season_milestones(table),
        }

        logger.success(
            f"✓ Aggregated {int(daily['nT'].sum())} tornadoes over "
            f"{daily['Year'].nunique()} years"
        )

        if self.save_tables:
            table.to_csv(self.output_dir / "cumulative_counts.csv", index=False)
            self.results['data']['annual'].to_csv(self.output_dir / "annual_counts.csv", index=False)
            self.results['data']['milestones'].to_csv(
                self.output_dir / "season_milestones.csv", index=False
            )
        if self.save_plots:
            self._close(visualization.plot_cumulative_counts(
                fit_table, save_path=self._plot_path("cumulative_counts")
            ))

        # ====================================================================
        # 2. MODEL FITTING
        # ====================================================================

        logger.info("\n[2/3] MODEL FITTING")
        logger.info("-" * 80)

        self.results['models'] = {}
        for kind in kinds:
            logger.info(f"Model: {kind.value}")
            try:
                if kind == ModelKind.NB_GLM:
                    outcome = self._fit_glm(daily)
                elif kind in (ModelKind.NLS, ModelKind.WGLS):
                    outcome = self._fit_least_squares(kind, fit_table)
                else:
                    outcome = self._fit_bayesian(kind, fit_table, years, draws, tune, chains)

                self.results['models'][kind.value] = outcome
                logger.success(f"✓ {kind.value} complete")

            except Exception as e:
                logger.error(f"✗ {kind.value} failed: {e}")
                self.results['models'][kind.value] = {'error': str(e)}

        # ====================================================================
        # 3. SUMMARY
        # ====================================================================

        logger.info("\n[3/3] SUMMARY")
        logger.info("-" * 80)

        elapsed = (datetime.now() - start_time).total_seconds()
        self.results['elapsed_seconds'] = elapsed

        if self.save_outputs:
            summary_path = self.output_dir / "model_summary.json"
            with open(summary_path, 'w') as f:
                json.dump(self.summary(), f, indent=2, default=str)
            logger.info(f"Saved model summary to {summary_path}")

        logger.info(f"Execution time: {elapsed:.1f} seconds")
        logger.info(f"Output directory: {self.output_dir}")
        logger.success("\n✓ Pipeline complete!")

        return self.results

    @staticmethod
    def _resolve_models(models: Optional[Sequence[str]]) -> List[ModelKind]:
        names = models or SeasonConfig.DEFAULT_MODELS
        kinds = []
        for name in names:
            try:
                kinds.append(ModelKind(name))
            except ValueError:
                valid = ", ".join(kind.value for kind in ModelKind)
                raise ValueError(f"Unknown model '{name}'. Valid models: {valid}")
        return kinds

    @property
    def save_tables(self) -> bool:
        return self.save_outputs and SeasonConfig.OUTPUT_CONFIG["save_tables"]

    @property
    def save_plots(self) -> bool:
        return self.save_outputs and SeasonConfig.OUTPUT_CONFIG["generate_plots"]

    def _plot_path(self, name: str) -> Path:
        return self.output_dir / f"{name}.{SeasonConfig.OUTPUT_CONFIG['plot_format']}"

    @staticmethod
    def _close(plot):
        plt.close(plot[0])

    def _fit_glm(self, daily: pd.DataFrame) -> Dict:
        self.glm = DailyRateGLM()
        result = self.glm.fit(daily)
        peak = self.glm.peak_day()

        logger.info(f"  Peak expected daily rate on day {peak}")

        if self.save_tables:
            self.glm.predict_rate().to_csv(self.output_dir / "nb_glm_rate.csv", index=False)
        if self.save_plots:
            self._close(visualization.plot_daily_rate(
                daily, self.glm, save_path=self._plot_path("nb_glm_rate")
            ))

        return {
            'peak_day': peak,
            'alpha': float(result.params['alpha']),
            'log_likelihood': float(result.llf),
            'aic': float(result.aic),
        }

    def _fit_least_squares(self, kind: ModelKind, table: pd.DataFrame) -> Dict:
        if kind == ModelKind.NLS:
            result = self.curve_fitter.fit_nls(table)
        else:
            result = self.curve_fitter.fit_wgls(table)

        if self.save_tables:
            result.summary().to_csv(self.output_dir / f"{kind.value}_parameters.csv", index=False)
        if self.save_plots:
            self._close(visualization.plot_curve_fit(
                table, result, save_path=self._plot_path(kind.value)
            ))

        return {
            'parameters': result.summary(),
            'inflection_day': inflection_day(result.parameters.b),
            'rmse': result.rmse,
            'variance_power': result.variance_power,
            'converged': result.converged,
        }

    def _fit_bayesian(
        self,
        kind: ModelKind,
        table: pd.DataFrame,
        years: Optional[Sequence[int]],
        draws: Optional[int],
        tune: Optional[int],
        chains: Optional[int]
    ) -> Dict:
        model = SeasonCurveModel(table, kind=kind)
        model.fit(draws=draws, tune=tune, chains=chains)
        self.bayes_models[kind] = model

        diagnostics = model.diagnose()
        summary = model.parameter_summary()

        if self.save_tables:
            summary.to_csv(self.output_dir / f"{kind.value}_parameters.csv")
        if self.save_outputs and SeasonConfig.OUTPUT_CONFIG["save_trace"]:
            model.trace.to_netcdf(str(self.output_dir / f"{kind.value}_trace.nc"))
        if self.save_plots:
            self._close(visualization.plot_posterior_predictive(
                model, save_path=self._plot_path(f"{kind.value}_ppc")
            ))
            self._close(visualization.plot_trace(
                model, save_path=self._plot_path(f"{kind.value}_trace")
            ))
            self._close(visualization.plot_conditional_effects(
                model, save_path=self._plot_path(f"{kind.value}_effects")
            ))
            if kind in SeasonCurveModel.ASYMPTOTE_RE_KINDS:
                self._close(visualization.plot_conditional_effects(
                    model, by_year=True, years=list(years) if years else None,
                    save_path=self._plot_path(f"{kind.value}_effects_by_year")
                ))

        return {
            'parameters': summary,
            'diagnostics': diagnostics,
        }

    def summary(self) -> Dict:
        """JSON-friendly summary of the fitted models."""
        out = {'models': {}}

        if 'data' in self.results:
            annual = self.results['data']['annual']
            out['years'] = [int(annual['Year'].min()), int(annual['Year'].max())]
            out['total_tornadoes'] = int(annual['total'].sum())

        for name, outcome in self.results.get('models', {}).items():
            entry = {}
            for key, value in outcome.items():
                if isinstance(value, pd.DataFrame):
                    entry[key] = value.reset_index().to_dict(orient='records')
                elif hasattr(value, '__dataclass_fields__'):
                    entry[key] = vars(value)
                else:
                    entry[key] = value
            out['models'][name] = entry

        return out

    def generate_report(self, output_path: Optional[Path] = None) -> str:
        """
        Generate markdown report.

        Args:
            output_path: Path to save report (optional)

        Returns:
            Report as markdown string
        """
        report_lines = [
            "# Tornado Season Timing Report",
            "",
            f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "---",
            "",
        ]

        if 'data' in self.results:
            annual = self.results['data']['annual']
            milestones = self.results['data']['milestones']

            report_lines.extend([
                "## 1. Data",
                "",
                f"**Years:** {annual['Year'].min()}-{annual['Year'].max()}",
                f"**Tornadoes:** {annual['total'].sum()}",
                f"**Mean per year:** {annual['total'].mean():.1f}",
                "",
                "**Median season milestones (day of year):**",
                "",
            ])
            for col in [c for c in milestones.columns if c != 'Year']:
                report_lines.append(f"- {col[1:]}% of tornadoes by day {milestones[col].median():.0f}")

            report_lines.extend(["", "---", ""])

        report_lines.extend(["## 2. Models", ""])

        for name, outcome in self.results.get('models', {}).items():
            report_lines.extend([f"### {name}", ""])

            if 'error' in outcome:
                report_lines.extend([f"**Status:** ✗ Failed - {outcome['error']}", ""])
                continue

            report_lines.append("**Status:** ✓ Success")

            if 'peak_day' in outcome:
                report_lines.extend([
                    f"- Peak daily rate on day {outcome['peak_day']}",
                    f"- Dispersion (alpha): {outcome['alpha']:.3f}",
                    f"- AIC: {outcome['aic']:.1f}",
                ])

            if 'inflection_day' in outcome:
                report_lines.append(f"- Inflection on day {outcome['inflection_day']:.0f}")
                report_lines.append(f"- RMSE: {outcome['rmse']:.2f}")
                if outcome.get('variance_power') is not None:
                    report_lines.append(f"- Variance power: {outcome['variance_power']:.2f}")

            if 'diagnostics' in outcome:
                diag = outcome['diagnostics']
                report_lines.extend([
                    "**MCMC Diagnostics:**",
                    f"- Max R-hat: {diag.rhat_max:.3f}",
                    f"- Min ESS: {diag.ess_min:.0f}",
                    f"- Divergences: {diag.n_divergences}",
                ])

            if 'parameters' in outcome:
                report_lines.extend(["", "```", outcome['parameters'].to_string(), "```"])

            report_lines.append("")

        report_md = "\n".join(report_lines)

        if output_path:
            with open(output_path, 'w') as f:
                f.write(report_md)
            logger.info(f"Saved report to {output_path}")

        return report_md
