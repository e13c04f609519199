"""
Configuration for the Tornado Season Timing Analysis.

This module manages all configuration settings for data acquisition,
aggregation, curve fitting and Bayesian sampling.
"""

import os
from pathlib import Path
from typing import Dict, List
from dotenv import load_dotenv
import yaml

# Load environment variables
load_dotenv()


class SeasonConfig:
    """Central configuration for the tornado season analysis."""

    # ========================================================================
    # PROJECT PATHS
    # ========================================================================
    DATA_DIR = Path(os.getenv("TORNADO_DATA_DIR", "data"))
    OUTPUT_DIR = Path(os.getenv("TORNADO_OUTPUT_DIR", "output"))

    # ========================================================================
    # DATA SOURCE
    # ========================================================================

    # SPC tornado paths, one line geometry per tornado
    TRACKS_ARCHIVE_URL = os.getenv(
        "TRACKS_ARCHIVE_URL",
        "https://www.spc.noaa.gov/gis/svrgis/zipped/1950-2018-torn-aspath.zip"
    )
    DOWNLOAD_TIMEOUT = int(os.getenv("DOWNLOAD_TIMEOUT", "120"))
    DOWNLOAD_CHUNK_SIZE = 8192

    # Columns used from the shapefile attribute table
    TRACK_COLUMNS = ["yr", "date", "mag"]

    # ========================================================================
    # AGGREGATION
    # ========================================================================
    MIN_YEAR = int(os.getenv("MIN_YEAR", "1994"))
    MIN_MAGNITUDE = int(os.getenv("MIN_MAGNITUDE", "1"))

    # Fixed day-of-year domain, same length for leap and non-leap years
    DOY_DOMAIN = list(range(1, 367))
    DOY_NORMALIZER = 365

    # ========================================================================
    # CURVE FITTING (least squares)
    # ========================================================================
    CURVE_FIT_CONFIG = {
        # Starting values for the single generalized-logistic curve
        "initial_location": 0.4,
        "initial_sharpness": 3.0,
        "maxfev": 20000,

        # Variance-power weighted refit
        "wgls_max_iter": 25,
        "wgls_tolerance": 1e-4,
    }

    # Negative binomial GLM over day of year
    GLM_CONFIG = {
        "spline_df": 8,
        "maxiter": 200,
    }

    # ========================================================================
    # BAYESIAN HIERARCHICAL MODELS
    # ========================================================================
    BAYES_MODEL_CONFIG = {
        "likelihood": os.getenv("BAYES_LIKELIHOOD", "normal"),

        # MCMC sampling parameters
        "mcmc_draws": int(os.getenv("MCMC_DRAWS", "1000")),
        "mcmc_tune": int(os.getenv("MCMC_TUNE", "1000")),
        "mcmc_chains": int(os.getenv("MCMC_CHAINS", "4")),
        "mcmc_cores": int(os.getenv("MCMC_CORES", "4")),
        "target_accept": float(os.getenv("TARGET_ACCEPT", "0.95")),
        "random_seed": 42,

        # Posterior summaries
        "credible_interval": 0.95,
        "effects_grid_points": 100,
    }

    # Named-parameter priors. Location parameters are fractions of the year.
    PRIOR_CONFIG = {
        "b": {"distribution": "truncated_normal", "mu": 0.25, "sigma": 0.1, "lower": 0.0, "upper": 1.0},
        "c": {"distribution": "truncated_normal", "mu": 1.0, "sigma": 5.0, "lower": 0.0},
        "b1": {"distribution": "truncated_normal", "mu": 0.25, "sigma": 0.1, "lower": 0.0, "upper": 1.0},
        "c1": {"distribution": "truncated_normal", "mu": 1.0, "sigma": 5.0, "lower": 0.0},
        "b2": {"distribution": "truncated_normal", "mu": 0.67, "sigma": 0.1, "lower": 0.0, "upper": 1.0},
        "c2": {"distribution": "truncated_normal", "mu": 1.0, "sigma": 5.0, "lower": 0.0},
        "w": {"distribution": "beta", "alpha": 2.0, "beta": 2.0},
        "sigma_a": {"distribution": "half_normal", "sigma": 1.0},
        "sigma_c": {"distribution": "half_normal", "sigma": 1.0},
        "sigma": {"distribution": "half_normal", "sigma": 100.0},
        "phi": {"distribution": "half_cauchy", "beta": 2.0},
    }

    # Candidate models, in order of increasing complexity
    DEFAULT_MODELS: List[str] = [
        "nb_glm",
        "nls",
        "wgls",
        "bayes_single_re",
        "bayes_mixture",
        "bayes_mixture_re",
        "bayes_mixture_re_shape",
    ]

    # ========================================================================
    # VALIDATION
    # ========================================================================
    VALIDATION_CONFIG = {
        "max_rhat": 1.01,
        "min_ess": 400,
    }

    # ========================================================================
    # OUTPUT AND REPORTING
    # ========================================================================
    OUTPUT_CONFIG = {
        "save_tables": True,
        "save_trace": False,
        "generate_plots": True,
        "plot_format": "png",
        "plot_dpi": 150,
        "facet_columns": 5,
    }

    # ========================================================================
    # LOGGING
    # ========================================================================

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
    LOG_FILE_NAME = "tornado_season.log"

    @classmethod
    def load_from_yaml(cls, config_path: str) -> Dict:
        """
        Load configuration overrides from a YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Dictionary with configuration values
        """
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    @classmethod
    def apply_overrides(cls, overrides: Dict):
        """
        Apply a mapping of overrides (e.g. from YAML) onto the class.

        Dict-valued settings are merged key by key; everything else is
        replaced. Unknown keys raise ValueError.
        """
        for key, value in overrides.items():
            attr = key.upper()
            if not hasattr(cls, attr):
                raise ValueError(f"Unknown configuration key: {key}")

            current = getattr(cls, attr)
            if isinstance(current, dict) and isinstance(value, dict):
                merged = dict(current)
                merged.update(value)
                setattr(cls, attr, merged)
            elif attr in ("DATA_DIR", "OUTPUT_DIR"):
                setattr(cls, attr, Path(value))
            else:
                setattr(cls, attr, value)

    @classmethod
    def validate_config(cls) -> bool:
        """
        Validate configuration settings.

        Returns:
            True if configuration is valid

        Raises:
            ValueError: If configuration is invalid
        """
        if cls.DOY_DOMAIN != list(range(1, 367)):
            raise ValueError("DOY_DOMAIN must be the days 1..366")

        if cls.DOY_NORMALIZER <= 0:
            raise ValueError("DOY_NORMALIZER must be positive")

        if cls.MIN_MAGNITUDE < 0 or cls.MIN_MAGNITUDE > 5:
            raise ValueError("MIN_MAGNITUDE must be between 0 and 5")

        bayes = cls.BAYES_MODEL_CONFIG
        if bayes["likelihood"] not in ("normal", "negative_binomial"):
            raise ValueError(f"Unknown likelihood: {bayes['likelihood']}")

        if bayes["mcmc_draws"] < 1 or bayes["mcmc_tune"] < 0 or bayes["mcmc_chains"] < 1:
            raise ValueError("MCMC draws and chains must be positive")

        if not 0 < bayes["target_accept"] < 1:
            raise ValueError("target_accept must be in (0, 1)")

        if not 0 < bayes["credible_interval"] < 1:
            raise ValueError("credible_interval must be in (0, 1)")

        for name, prior in cls.PRIOR_CONFIG.items():
            if "distribution" not in prior:
                raise ValueError(f"Prior for '{name}' has no distribution")

        return True

    @classmethod
    def get_model_params(cls, model_type: str) -> Dict:
        """
        Get parameters for specific model type.

        Args:
            model_type: Type of model ('curve_fit', 'glm', 'bayes', 'priors')

        Returns:
            Dictionary with model parameters
        """
        model_configs = {
            "curve_fit": cls.CURVE_FIT_CONFIG,
            "glm": cls.GLM_CONFIG,
            "bayes": cls.BAYES_MODEL_CONFIG,
            "priors": cls.PRIOR_CONFIG,
        }

        if model_type not in model_configs:
            raise ValueError(f"Unknown model type: {model_type}")

        return model_configs[model_type]

    @classmethod
    def summary(cls) -> dict:
        """Return configuration summary"""
        return {
            "data": {
                "archive_url": cls.TRACKS_ARCHIVE_URL,
                "data_dir": str(cls.DATA_DIR),
                "output_dir": str(cls.OUTPUT_DIR),
            },
            "aggregation": {
                "min_year": cls.MIN_YEAR,
                "min_magnitude": cls.MIN_MAGNITUDE,
                "doy_normalizer": cls.DOY_NORMALIZER,
            },
            "sampling": {
                "likelihood": cls.BAYES_MODEL_CONFIG["likelihood"],
                "draws": cls.BAYES_MODEL_CONFIG["mcmc_draws"],
                "tune": cls.BAYES_MODEL_CONFIG["mcmc_tune"],
                "chains": cls.BAYES_MODEL_CONFIG["mcmc_chains"],
            },
            "models": list(cls.DEFAULT_MODELS),
        }


if __name__ == "__main__":
    import json
    print("Tornado Season Configuration")
    print("=" * 60)
    print(json.dumps(SeasonConfig.summary(), indent=2))
