"""
Season Curves and Frequentist Fits

The cumulative tornado count over the year follows an S-shaped curve. Each
component is a generalized logistic in the day-of-year fraction Df:

    g(Df; b, c) = 1 / (1 + (b / Df) ** c)

with g = 1/2 at Df = b (inflection location) and c controlling how sharply
the season switches on. The single-surge curve is a * g(Df; b, c); the
two-surge curve mixes an early and a late component with weight w.

This module also fits:
1. A negative binomial GLM of daily counts on a B-spline of day of year
2. The single curve by nonlinear least squares
3. The single curve by weighted GLS with variance-power weights
"""

from typing import Optional

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy.optimize import curve_fit
from loguru import logger

from .config import SeasonConfig
from .models import CurveFitResult, CurveParameters, ModelKind


def logistic_component(Df, b, c):
    """Generalized-logistic share of the season completed by Df."""
    Df = np.asarray(Df, dtype=float)
    return 1.0 / (1.0 + (b / Df) ** c)


def season_curve(Df, a, b, c):
    """Single-surge cumulative count curve."""
    return a * logistic_component(Df, b, c)


def mixture_curve(Df, a, b1, c1, b2, c2, w):
    """Two-surge cumulative count curve; w is the weight of the early surge."""
    return a * (
        w * logistic_component(Df, b1, c1)
        + (1.0 - w) * logistic_component(Df, b2, c2)
    )


def inflection_day(b: float) -> float:
    """Convert an inflection location (fraction of year) to a day of year."""
    return b * SeasonConfig.DOY_NORMALIZER


class DailyRateGLM:
    """
    Negative binomial regression of daily counts on day of year.

    The dispersion parameter is estimated along with the spline
    coefficients, so the fitted rate curve carries the seasonal cycle of
    tornado occurrence.
    """

    def __init__(self, spline_df: Optional[int] = None, maxiter: Optional[int] = None):
        config = SeasonConfig.GLM_CONFIG
        self.spline_df = spline_df or config["spline_df"]
        self.maxiter = maxiter or config["maxiter"]
        self.formula = f"nT ~ bs(D, df={self.spline_df})"
        self.result = None

    def fit(self, daily: pd.DataFrame):
        """
        Fit the model to a daily count table.

        Args:
            daily: Table with nT and D columns

        Returns:
            statsmodels NegativeBinomial results
        """
        logger.info(f"Fitting negative binomial GLM: {self.formula}")

        model = smf.negativebinomial(self.formula, data=daily)
        self.result = model.fit(maxiter=self.maxiter, disp=0)

        if not self.result.mle_retvals.get("converged", True):
            logger.warning("Negative binomial GLM did not converge")

        logger.info(
            f"GLM fit: log-likelihood {self.result.llf:.1f}, "
            f"alpha {self.result.params['alpha']:.3f}"
        )
        return self.result

    def predict_rate(self, days: Optional[np.ndarray] = None) -> pd.DataFrame:
        """Expected daily count over a day-of-year grid."""
        if self.result is None:
            raise ValueError("Model has not been fit yet")

        if days is None:
            days = np.array(SeasonConfig.DOY_DOMAIN)

        grid = pd.DataFrame({'D': days})
        grid['rate'] = np.asarray(self.result.predict(grid))
        return grid

    def peak_day(self) -> int:
        """Day of year with the highest expected count."""
        rates = self.predict_rate()
        return int(rates.loc[rates['rate'].idxmax(), 'D'])


class SeasonCurveFitter:
    """
    Least-squares fits of the single-surge season curve.

    The pooled fit treats every (Year, D) row of the cumulative table as an
    observation of C at Df.
    """

    def __init__(self, config: Optional[dict] = None):
        self.config = config or SeasonConfig.CURVE_FIT_CONFIG
        self.results = {}

    def _initial_guess(self, table: pd.DataFrame) -> np.ndarray:
        return np.array([
            float(table['TY'].mean()) if 'TY' in table.columns else float(table['C'].max()),
            self.config["initial_location"],
            self.config["initial_sharpness"],
        ])

    def _curve_fit(self, x, y, p0, sigma=None):
        try:
            return curve_fit(
                season_curve,
                x,
                y,
                p0=p0,
                sigma=sigma,
                bounds=([0.0, 1e-6, 1e-6], [np.inf, 1.0, np.inf]),
                maxfev=self.config["maxfev"],
            )
        except (RuntimeError, ValueError) as e:
            raise RuntimeError(f"Season curve fit failed: {str(e)}")

    def _result(self, kind, popt, pcov, x, y, **extra) -> CurveFitResult:
        fitted = season_curve(x, *popt)
        errors = np.sqrt(np.diag(pcov))
        return CurveFitResult(
            kind=kind,
            parameters=CurveParameters(*popt),
            standard_errors=CurveParameters(*errors),
            covariance=pcov,
            fitted=fitted,
            residuals=y - fitted,
            n_obs=len(y),
            **extra
        )

    def fit_nls(self, table: pd.DataFrame) -> CurveFitResult:
        """
        Ordinary nonlinear least squares fit.

        Args:
            table: Cumulative count table with Df and C columns

        Returns:
            CurveFitResult
        """
        x = table['Df'].to_numpy(dtype=float)
        y = table['C'].to_numpy(dtype=float)

        logger.info(f"Fitting season curve by NLS on {len(y)} rows")
        popt, pcov = self._curve_fit(x, y, self._initial_guess(table))

        result = self._result(ModelKind.NLS, popt, pcov, x, y)
        self.results[ModelKind.NLS] = result

        logger.info(
            f"NLS: a={popt[0]:.1f}, b={popt[1]:.3f} (day {inflection_day(popt[1]):.0f}), "
            f"c={popt[2]:.2f}"
        )
        return result

    def fit_wgls(self, table: pd.DataFrame) -> CurveFitResult:
        """
        Weighted fit with residual variance proportional to a power of the mean.

        Var(C) = sigma^2 * mu^(2 * delta). Starting from the NLS fit, delta is
        estimated by regressing log |residual| on log fitted value, and the
        curve is refit with per-row scale mu^delta until the parameters settle.
        """
        x = table['Df'].to_numpy(dtype=float)
        y = table['C'].to_numpy(dtype=float)

        max_iter = self.config["wgls_max_iter"]
        tolerance = self.config["wgls_tolerance"]

        logger.info(f"Fitting season curve by weighted GLS on {len(y)} rows")

        popt, pcov = self._curve_fit(x, y, self._initial_guess(table))
        delta = 0.0
        converged = False
        iteration = 0

        for iteration in range(1, max_iter + 1):
            mu = season_curve(x, *popt)
            delta = variance_power(y - mu, mu)
            sigma = np.maximum(mu, 1.0) ** delta

            new_popt, pcov = self._curve_fit(x, y, popt, sigma=sigma)
            change = np.max(np.abs(new_popt - popt) / np.maximum(np.abs(popt), 1e-8))
            popt = new_popt

            if change < tolerance:
                converged = True
                break

        if not converged:
            logger.warning(f"Weighted GLS did not converge in {max_iter} iterations")

        result = self._result(
            ModelKind.WGLS, popt, pcov, x, y,
            variance_power=delta,
            iterations=iteration,
            converged=converged
        )
        self.results[ModelKind.WGLS] = result

        logger.info(
            f"WGLS: a={popt[0]:.1f}, b={popt[1]:.3f}, c={popt[2]:.2f}, "
            f"delta={delta:.2f} after {iteration} iterations"
        )
        return result


def variance_power(residuals: np.ndarray, fitted: np.ndarray) -> float:
    """
    Estimate delta in sd(residual) ~ fitted^delta.

    Uses the slope of log |residual| on log fitted value over rows with a
    nonzero residual and positive fitted value; returns 0 when fewer than
    three such rows exist.
    """
    residuals = np.asarray(residuals, dtype=float)
    fitted = np.asarray(fitted, dtype=float)

    usable = (np.abs(residuals) > 0) & (fitted > 0)
    if usable.sum() < 3 or np.ptp(np.log(fitted[usable])) == 0:
        return 0.0

    slope, _ = np.polyfit(np.log(fitted[usable]), np.log(np.abs(residuals[usable])), 1)
    return float(slope)
