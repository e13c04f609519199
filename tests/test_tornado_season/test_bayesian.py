"""
Tests for the Bayesian hierarchical season curve models
"""

import numpy as np
import pytest

from tornado_season.aggregation import cumulative_counts, daily_counts
from tornado_season.bayesian import SeasonCurveModel, prior_variable
from tornado_season.models import Likelihood, MCMCDiagnostics, ModelKind, PriorSpec
from tornado_season.data_ingestion import simulate_tracks


@pytest.fixture
def small_table(season_table):
    """Three years of the simulated cumulative table, thinned to every 5th day"""
    table = season_table[season_table['Year'].isin([2000, 2001, 2002])]
    return table[table['D'] % 5 == 1].reset_index(drop=True)


class TestModelConstruction:
    """Test model setup without sampling"""

    def test_rejects_frequentist_kind(self, small_table):
        with pytest.raises(ValueError, match="not a Bayesian"):
            SeasonCurveModel(small_table, kind=ModelKind.NLS)

    def test_missing_column_raises(self, small_table):
        with pytest.raises(ValueError, match="Df"):
            SeasonCurveModel(small_table.drop(columns=['Df']))

    def test_prepared_data(self, small_table):
        model = SeasonCurveModel(small_table, kind=ModelKind.BAYES_MIXTURE_RE)

        assert model.years == [2000, 2001, 2002]
        assert len(model.year_idx) == len(small_table)
        assert set(model.year_idx) == {0, 1, 2}
        assert model.priors["log_a"].mu == pytest.approx(np.log(model.mean_total))

    @pytest.mark.parametrize("kind, expected", [
        (ModelKind.BAYES_SINGLE_RE, ["log_a", "sigma_a", "b", "c", "sigma"]),
        (ModelKind.BAYES_MIXTURE, ["log_a", "b1", "c1", "b2", "c2", "w", "sigma"]),
        (ModelKind.BAYES_MIXTURE_RE, ["log_a", "sigma_a", "b1", "c1", "b2", "c2", "w", "sigma"]),
        (ModelKind.BAYES_MIXTURE_RE_SHAPE,
         ["log_a", "sigma_a", "b1", "c1", "b2", "c2", "w", "sigma_c", "sigma"]),
    ])
    def test_parameter_names(self, small_table, kind, expected):
        assert SeasonCurveModel(small_table, kind=kind).parameter_names == expected

    def test_negative_binomial_uses_phi(self, small_table):
        model = SeasonCurveModel(
            small_table,
            kind=ModelKind.BAYES_MIXTURE,
            likelihood=Likelihood.NEGATIVE_BINOMIAL
        )

        pm_model = model.build_model()

        assert model.parameter_names[-1] == "phi"
        assert "phi" in pm_model.named_vars
        assert pm_model.named_vars_to_dims["obs"] == ("obs_id",)

    @pytest.mark.parametrize("kind", [
        ModelKind.BAYES_SINGLE_RE,
        ModelKind.BAYES_MIXTURE,
        ModelKind.BAYES_MIXTURE_RE,
        ModelKind.BAYES_MIXTURE_RE_SHAPE,
    ])
    def test_build_model_variables(self, small_table, kind):
        model = SeasonCurveModel(small_table, kind=kind)
        pm_model = model.build_model()

        for name in model.parameter_names:
            assert name in pm_model.named_vars
        assert "obs" in pm_model.named_vars
        assert pm_model.named_vars_to_dims["obs"] == ("obs_id",)
        assert len(pm_model.coords["obs_id"]) == len(small_table)

        if kind in SeasonCurveModel.ASYMPTOTE_RE_KINDS:
            assert "a_year" in pm_model.named_vars
        else:
            assert "a_year" not in pm_model.named_vars

        if kind == ModelKind.BAYES_MIXTURE_RE_SHAPE:
            assert "c1_year" in pm_model.named_vars
            assert "c2_year" in pm_model.named_vars

    def test_initial_point_is_finite(self, small_table):
        pm_model = SeasonCurveModel(small_table, kind=ModelKind.BAYES_MIXTURE_RE).build_model()

        logps = pm_model.point_logps()

        assert all(np.isfinite(value) for value in logps.values())

    def test_prior_override(self, small_table):
        model = SeasonCurveModel(
            small_table,
            kind=ModelKind.BAYES_MIXTURE,
            priors={"w": {"distribution": "beta", "alpha": 8.0, "beta": 2.0}}
        )

        assert model.priors["w"].alpha == 8.0
        assert model.priors["b2"].mu == pytest.approx(0.67)

    def test_prior_variable_families(self):
        import pymc as pm

        with pm.Model() as model:
            prior_variable("x", PriorSpec.from_config(
                {"distribution": "truncated_normal", "mu": 0.25, "sigma": 0.1, "lower": 0.0, "upper": 1.0}
            ))
            prior_variable("s", PriorSpec.from_config({"distribution": "half_cauchy", "beta": 2.0}))
            prior_variable("g", PriorSpec.from_config({"distribution": "gamma", "alpha": 2.0, "beta": 1.0}))

        assert {"x", "s", "g"} <= set(model.named_vars)

    def test_results_before_fit_raise(self, small_table):
        model = SeasonCurveModel(small_table, kind=ModelKind.BAYES_SINGLE_RE)

        with pytest.raises(ValueError):
            model.diagnose()
        with pytest.raises(ValueError):
            model.parameter_summary()
        with pytest.raises(ValueError):
            model.conditional_effects()


@pytest.mark.slow
class TestSampling:
    """Short sampler runs; marked slow"""

    @pytest.fixture(scope="class")
    def fitted(self):
        tracks = simulate_tracks([2000, 2001], tornadoes_per_year=800, seed=11)
        table = cumulative_counts(daily_counts(tracks, min_year=2000, min_magnitude=0))
        table = table[table['D'] % 7 == 1].reset_index(drop=True)

        model = SeasonCurveModel(table, kind=ModelKind.BAYES_MIXTURE_RE)
        model.fit(draws=100, tune=100, chains=2, cores=1, progressbar=False)
        return model

    def test_trace_groups(self, fitted):
        groups = fitted.trace.groups()

        assert "posterior" in groups
        assert "posterior_predictive" in groups

    def test_diagnostics(self, fitted):
        diagnostics = fitted.diagnose()

        assert isinstance(diagnostics, MCMCDiagnostics)
        assert set(diagnostics.rhat_summary) == set(fitted.parameter_names)
        assert diagnostics.n_divergences >= 0

    def test_parameter_summary(self, fitted):
        summary = fitted.parameter_summary()

        assert "w" in summary.index
        assert "mean" in summary.columns

    def test_conditional_effects_population(self, fitted):
        effects = fitted.conditional_effects(grid_points=50)

        assert len(effects) == 50
        assert (effects['lower'] <= effects['estimate']).all()
        assert (effects['estimate'] <= effects['upper']).all()
        assert (np.diff(effects['estimate']) >= 0).all()

    def test_conditional_effects_by_year(self, fitted):
        effects = fitted.conditional_effects(by_year=True, grid_points=20)

        assert sorted(effects['Year'].unique()) == [2000, 2001]
        assert len(effects) == 40

    def test_conditional_effects_unknown_year(self, fitted):
        with pytest.raises(ValueError):
            fitted.conditional_effects(by_year=True, years=[1950])

    def test_year_totals(self, fitted):
        totals = fitted.year_totals()

        assert list(totals['Year']) == [2000, 2001]
        assert (totals['a_lower'] <= totals['a_upper']).all()

    def test_plots(self, fitted, tmp_path):
        import matplotlib.pyplot as plt

        from tornado_season import visualization

        for name, plot in [
            ("ppc", lambda path: visualization.plot_posterior_predictive(fitted, save_path=path)),
            ("trace", lambda path: visualization.plot_trace(fitted, save_path=path)),
            ("effects", lambda path: visualization.plot_conditional_effects(fitted, save_path=path)),
            ("by_year", lambda path: visualization.plot_conditional_effects(
                fitted, by_year=True, save_path=path)),
        ]:
            path = tmp_path / f"{name}.png"
            fig, _ = plot(path)
            plt.close(fig)
            assert path.exists(), name


@pytest.mark.slow
class TestShortSampling:
    """Fewer posterior draws than the default number of predictive curves"""

    @pytest.fixture(scope="class")
    def short_fit(self):
        tracks = simulate_tracks([2000, 2001], tornadoes_per_year=500, seed=5)
        table = cumulative_counts(daily_counts(tracks, min_year=2000, min_magnitude=0))
        table = table[table['D'] % 7 == 1].reset_index(drop=True)

        model = SeasonCurveModel(table, kind=ModelKind.BAYES_SINGLE_RE)
        model.fit(draws=30, tune=30, chains=1, cores=1, progressbar=False)
        return model

    def test_posterior_predictive_plot(self, short_fit, tmp_path):
        import matplotlib.pyplot as plt

        from tornado_season import visualization

        path = tmp_path / "ppc.png"
        fig, _ = visualization.plot_posterior_predictive(short_fit, num_pp_samples=100, save_path=path)
        plt.close(fig)

        assert path.exists()
