"""
Bayesian Hierarchical Season Curve Models.

Fits the cumulative tornado count curve with PyMC, allowing year-to-year
variation in the seasonal total and, optionally, in how sharply each surge
switches on.

Model forms:
1. Single surge with a year-level random intercept on the log asymptote
2. Two surges (early/late) with shared parameters
3. Two surges with a year-level random intercept on the log asymptote
4. Two surges with year-level random effects on the asymptote and on both
   sharpness exponents

The asymptote is the seasonal total; b, b1, b2 are inflection locations as
fractions of the year; c, c1, c2 are sharpness exponents; w is the share of
the season carried by the early surge.
"""

from typing import Dict, List, Optional

import arviz as az
import numpy as np
import pandas as pd
import pymc as pm
from loguru import logger

from .config import SeasonConfig
from .curves import logistic_component
from .models import (
    Likelihood,
    MCMCDiagnostics,
    ModelKind,
    PriorDistribution,
    PriorSpec,
)


def prior_variable(name: str, spec: PriorSpec, **kwargs):
    """Create a PyMC random variable for a prior inside a model context."""
    dist = spec.distribution

    if dist == PriorDistribution.NORMAL:
        return pm.Normal(name, mu=spec.mu, sigma=spec.sigma, **kwargs)
    if dist == PriorDistribution.TRUNCATED_NORMAL:
        return pm.TruncatedNormal(
            name, mu=spec.mu, sigma=spec.sigma,
            lower=spec.lower, upper=spec.upper, **kwargs
        )
    if dist == PriorDistribution.HALF_NORMAL:
        return pm.HalfNormal(name, sigma=spec.sigma, **kwargs)
    if dist == PriorDistribution.HALF_CAUCHY:
        return pm.HalfCauchy(name, beta=spec.beta, **kwargs)
    if dist == PriorDistribution.BETA:
        return pm.Beta(name, alpha=spec.alpha, beta=spec.beta, **kwargs)
    if dist == PriorDistribution.GAMMA:
        return pm.Gamma(name, alpha=spec.alpha, beta=spec.beta, **kwargs)

    raise ValueError(f"Unsupported prior distribution: {dist}")


class SeasonCurveModel:
    """
    Bayesian nonlinear hierarchical model of the cumulative tornado count.

    The data is the cumulative count table: one row per (Year, D) with the
    running count C and the day-of-year fraction Df.
    """

    MIXTURE_KINDS = (
        ModelKind.BAYES_MIXTURE,
        ModelKind.BAYES_MIXTURE_RE,
        ModelKind.BAYES_MIXTURE_RE_SHAPE,
    )
    ASYMPTOTE_RE_KINDS = (
        ModelKind.BAYES_SINGLE_RE,
        ModelKind.BAYES_MIXTURE_RE,
        ModelKind.BAYES_MIXTURE_RE_SHAPE,
    )

    def __init__(
        self,
        data: pd.DataFrame,
        kind: ModelKind = ModelKind.BAYES_MIXTURE_RE,
        likelihood: Optional[Likelihood] = None,
        priors: Optional[Dict[str, Dict]] = None,
        config: Optional[Dict] = None
    ):
        """
        Initialize a season curve model.

        Args:
            data: Cumulative count table with Year, D, C, TY and Df columns
            kind: Which Bayesian model form to build
            likelihood: Observation family (defaults to config)
            priors: Per-parameter prior overrides, merged over config priors
            config: Sampler configuration (defaults to SeasonConfig.BAYES_MODEL_CONFIG)
        """
        if not kind.is_bayesian:
            raise ValueError(f"{kind.value} is not a Bayesian model form")

        self.data = data.sort_values(['Year', 'D']).reset_index(drop=True)
        self.kind = kind
        self.config = config or SeasonConfig.BAYES_MODEL_CONFIG
        self.likelihood = likelihood or Likelihood(self.config["likelihood"])

        prior_config = dict(SeasonConfig.PRIOR_CONFIG)
        prior_config.update(priors or {})
        self.priors = {name: PriorSpec.from_config(spec) for name, spec in prior_config.items()}

        # Model artifacts
        self.model = None
        self.trace = None

        self._validate_data()
        self._prepare_data()

        logger.info(
            f"Initialized {self.kind.value} model with {len(self.data)} rows "
            f"over {len(self.years)} years"
        )

    def _validate_data(self):
        """Validate input data structure."""
        required_cols = ["Year", "D", "C", "Df"]

        for col in required_cols:
            if col not in self.data.columns:
                raise ValueError(f"Missing required column: {col}")

        if self.data.empty:
            raise ValueError("Cannot fit a season curve to an empty table")

        if (self.data['Df'] <= 0).any():
            raise ValueError("Df must be positive")

    def _prepare_data(self):
        """Prepare arrays and coordinates for modeling."""
        self.years = [int(year) for year in sorted(self.data['Year'].unique())]
        self.year_idx = pd.Categorical(self.data['Year'], categories=self.years).codes
        self.x = self.data['Df'].to_numpy(dtype=float)
        self.y = self.data['C'].to_numpy()

        totals = self.data.groupby('Year')['C'].max()
        self.mean_total = float(max(totals.mean(), 1.0))

        if "log_a" not in self.priors:
            self.priors["log_a"] = PriorSpec(
                distribution=PriorDistribution.NORMAL,
                mu=float(np.log(self.mean_total)),
                sigma=1.0
            )

    @property
    def is_mixture(self) -> bool:
        return self.kind in self.MIXTURE_KINDS

    @property
    def parameter_names(self) -> List[str]:
        """Names of the population-level parameters of this model form."""
        names = ["log_a"]
        if self.kind in self.ASYMPTOTE_RE_KINDS:
            names.append("sigma_a")
        if self.is_mixture:
            names.extend(["b1", "c1", "b2", "c2", "w"])
        else:
            names.extend(["b", "c"])
        if self.kind == ModelKind.BAYES_MIXTURE_RE_SHAPE:
            names.append("sigma_c")
        names.append("sigma" if self.likelihood == Likelihood.NORMAL else "phi")
        return names

    def build_model(self) -> pm.Model:
        """
        Build the hierarchical nonlinear model.

        Returns:
            PyMC model object
        """
        logger.info(f"Building {self.kind.value} model...")

        coords = {"year": self.years, "obs_id": np.arange(len(self.y))}

        with pm.Model(coords=coords) as model:
            # ================================================================
            # Asymptote (seasonal total)
            # ================================================================
            log_a = prior_variable("log_a", self.priors["log_a"])

            if self.kind in self.ASYMPTOTE_RE_KINDS:
                sigma_a = prior_variable("sigma_a", self.priors["sigma_a"])
                z_a = pm.Normal("z_a", mu=0, sigma=1, dims="year")
                a = pm.Deterministic("a_year", pm.math.exp(log_a + sigma_a * z_a), dims="year")
                a_obs = a[self.year_idx]
            else:
                a_obs = pm.math.exp(log_a)

            # ================================================================
            # Curve shape
            # ================================================================
            if self.is_mixture:
                b1 = prior_variable("b1", self.priors["b1"])
                c1 = prior_variable("c1", self.priors["c1"])
                b2 = prior_variable("b2", self.priors["b2"])
                c2 = prior_variable("c2", self.priors["c2"])
                w = prior_variable("w", self.priors["w"])

                if self.kind == ModelKind.BAYES_MIXTURE_RE_SHAPE:
                    sigma_c = prior_variable("sigma_c", self.priors["sigma_c"])
                    z_c1 = pm.Normal("z_c1", mu=0, sigma=1, dims="year")
                    z_c2 = pm.Normal("z_c2", mu=0, sigma=1, dims="year")
                    c1_year = pm.Deterministic(
                        "c1_year", c1 * pm.math.exp(sigma_c * z_c1), dims="year"
                    )
                    c2_year = pm.Deterministic(
                        "c2_year", c2 * pm.math.exp(sigma_c * z_c2), dims="year"
                    )
                    c1_obs = c1_year[self.year_idx]
                    c2_obs = c2_year[self.year_idx]
                else:
                    c1_obs, c2_obs = c1, c2

                share = (
                    w * logistic_component(self.x, b1, c1_obs)
                    + (1 - w) * logistic_component(self.x, b2, c2_obs)
                )
            else:
                b = prior_variable("b", self.priors["b"])
                c = prior_variable("c", self.priors["c"])
                share = logistic_component(self.x, b, c)

            mu = a_obs * share

            # ================================================================
            # Likelihood
            # ================================================================
            if self.likelihood == Likelihood.NORMAL:
                sigma = prior_variable("sigma", self.priors["sigma"])
                pm.Normal("obs", mu=mu, sigma=sigma, observed=self.y, dims="obs_id")
            else:
                phi = prior_variable("phi", self.priors["phi"])
                pm.NegativeBinomial(
                    "obs",
                    mu=mu,
                    alpha=phi,
                    observed=self.y.astype(int),
                    dims="obs_id"
                )

        self.model = model
        logger.info("Model built successfully")

        return model

    def fit(
        self,
        draws: Optional[int] = None,
        tune: Optional[int] = None,
        chains: Optional[int] = None,
        posterior_predictive: bool = True,
        **kwargs
    ) -> az.InferenceData:
        """
        Fit the model using MCMC.

        Args:
            draws: Number of MCMC samples (default from config)
            tune: Number of tuning steps (default from config)
            chains: Number of MCMC chains (default from config)
            posterior_predictive: Also draw posterior predictive samples
            **kwargs: Additional arguments passed to pm.sample()

        Returns:
            ArviZ InferenceData object with MCMC trace
        """
        if self.model is None:
            self.build_model()

        draws = draws or self.config["mcmc_draws"]
        tune = tune if tune is not None else self.config["mcmc_tune"]
        chains = chains or self.config["mcmc_chains"]
        kwargs.setdefault("random_seed", self.config.get("random_seed"))
        kwargs.setdefault("cores", self.config.get("mcmc_cores", 4))
        kwargs.setdefault("target_accept", self.config.get("target_accept", 0.95))

        logger.info(f"Sampling posterior: {draws} draws, {tune} tune, {chains} chains")

        with self.model:
            self.trace = pm.sample(
                draws=draws,
                tune=tune,
                chains=chains,
                return_inferencedata=True,
                **kwargs
            )

            if posterior_predictive:
                pm.sample_posterior_predictive(
                    self.trace,
                    extend_inferencedata=True,
                    random_seed=kwargs.get("random_seed")
                )

        logger.info("Sampling complete")

        return self.trace

    def diagnose(self) -> MCMCDiagnostics:
        """
        Run MCMC diagnostics on the population-level parameters.

        Returns:
            MCMCDiagnostics with R-hat, ESS, divergences and warnings
        """
        if self.trace is None:
            raise ValueError("Model has not been fit yet")

        logger.info("Running MCMC diagnostics...")

        var_names = self.parameter_names

        rhat = az.rhat(self.trace, var_names=var_names)
        ess = az.ess(self.trace, var_names=var_names)

        rhat_summary = {var: float(rhat[var].values.max()) for var in rhat.data_vars}
        ess_summary = {var: float(ess[var].values.min()) for var in ess.data_vars}
        n_divergences = int(self.trace.sample_stats["diverging"].values.sum())

        rhat_max = max(rhat_summary.values())
        ess_min = min(ess_summary.values())

        thresholds = SeasonConfig.VALIDATION_CONFIG
        warnings_list = []
        if rhat_max > thresholds["max_rhat"]:
            warnings_list.append(f"High R-hat detected: {rhat_max:.3f}")
        if ess_min < thresholds["min_ess"]:
            warnings_list.append(f"Low ESS detected: {ess_min:.0f}")
        if n_divergences > 0:
            warnings_list.append(f"{n_divergences} divergences detected")

        if warnings_list:
            logger.warning("MCMC diagnostics found issues:")
            for warning in warnings_list:
                logger.warning(f"  - {warning}")
        else:
            logger.info("MCMC diagnostics passed all checks")

        return MCMCDiagnostics(
            rhat_max=rhat_max,
            ess_min=ess_min,
            n_divergences=n_divergences,
            rhat_summary=rhat_summary,
            ess_summary=ess_summary,
            warnings=warnings_list
        )

    def parameter_summary(self) -> pd.DataFrame:
        """Posterior summary table of the population-level parameters."""
        if self.trace is None:
            raise ValueError("Model has not been fit yet")

        return az.summary(
            self.trace,
            var_names=self.parameter_names,
            hdi_prob=self.config.get("credible_interval", 0.95)
        )

    def year_totals(self) -> pd.DataFrame:
        """Posterior median and interval of each year's asymptote against its observed total."""
        if self.trace is None:
            raise ValueError("Model has not been fit yet")
        if self.kind not in self.ASYMPTOTE_RE_KINDS:
            raise ValueError(f"{self.kind.value} has no year-level asymptote")

        draws = az.extract(self.trace, var_names="a_year").transpose("year", "sample").values
        lower, upper = self._interval_bounds()
        observed = self.data.groupby('Year')['C'].max()

        return pd.DataFrame({
            'Year': self.years,
            'observed_total': observed.loc[self.years].to_numpy(),
            'a_median': np.median(draws, axis=1),
            'a_lower': np.quantile(draws, lower, axis=1),
            'a_upper': np.quantile(draws, upper, axis=1),
        })

    def _interval_bounds(self):
        ci = self.config.get("credible_interval", 0.95)
        return (1 - ci) / 2, 1 - (1 - ci) / 2

    def _draws(self, posterior, name: str, year_pos: Optional[int] = None) -> np.ndarray:
        """Posterior draws of a parameter, for one year when it varies by year."""
        year_name = f"{name}_year"
        if year_pos is not None and year_name in posterior:
            return posterior[year_name].isel(year=year_pos).values
        return posterior[name].values

    def conditional_effects(
        self,
        by_year: bool = False,
        years: Optional[List[int]] = None,
        grid_points: Optional[int] = None
    ) -> pd.DataFrame:
        """
        Expected cumulative count as Df varies.

        Population-level curves use the typical year (asymptote exp(log_a),
        population sharpness). Year-level curves use that year's parameters.

        Args:
            by_year: Return one curve per year instead of the population curve
            years: Restrict year-level curves to these years
            grid_points: Number of Df grid points (default from config)

        Returns:
            DataFrame with Df, D, estimate, lower, upper (and Year when by_year)
        """
        if self.trace is None:
            raise ValueError("Model has not been fit yet")

        grid_points = grid_points or self.config.get("effects_grid_points", 100)
        domain = SeasonConfig.DOY_DOMAIN
        days = np.linspace(domain[0], domain[-1], grid_points)
        grid = days / SeasonConfig.DOY_NORMALIZER

        posterior = az.extract(self.trace)
        lower, upper = self._interval_bounds()

        if by_year:
            wanted = years if years is not None else self.years
            positions = [(year, self.years.index(year)) for year in wanted if year in self.years]
            if not positions:
                raise ValueError(f"None of the requested years were fit: {wanted}")
        else:
            positions = [(None, None)]

        frames = []
        for year, pos in positions:
            curves = self._curve_draws(posterior, grid, pos)
            frame = pd.DataFrame({
                'Df': grid,
                'D': days,
                'estimate': np.median(curves, axis=1),
                'lower': np.quantile(curves, lower, axis=1),
                'upper': np.quantile(curves, upper, axis=1),
            })
            if year is not None:
                frame.insert(0, 'Year', year)
            frames.append(frame)

        return pd.concat(frames, ignore_index=True)

    def _curve_draws(self, posterior, grid: np.ndarray, year_pos: Optional[int]) -> np.ndarray:
        """Curve value for every grid point and posterior draw, shape (grid, draws)."""
        x = grid[:, None]

        if year_pos is not None and "a_year" in posterior:
            a = self._draws(posterior, "a", year_pos)
        else:
            a = np.exp(posterior["log_a"].values)

        if self.is_mixture:
            w = posterior["w"].values
            share = (
                w * logistic_component(x, posterior["b1"].values, self._draws(posterior, "c1", year_pos))
                + (1 - w) * logistic_component(x, posterior["b2"].values, self._draws(posterior, "c2", year_pos))
            )
        else:
            share = logistic_component(x, posterior["b"].values, posterior["c"].values)

        return a * share
