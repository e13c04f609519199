"""
Data Models for the Tornado Season Timing Analysis
Model kinds, prior specifications and fit result containers
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field


class ModelKind(Enum):
    """Candidate model forms, in order of increasing complexity"""
    NB_GLM = "nb_glm"
    NLS = "nls"
    WGLS = "wgls"
    BAYES_SINGLE_RE = "bayes_single_re"
    BAYES_MIXTURE = "bayes_mixture"
    BAYES_MIXTURE_RE = "bayes_mixture_re"
    BAYES_MIXTURE_RE_SHAPE = "bayes_mixture_re_shape"

    @property
    def is_bayesian(self) -> bool:
        return self.value.startswith("bayes_")


class Likelihood(Enum):
    """Observation families for the Bayesian curve models"""
    NORMAL = "normal"
    NEGATIVE_BINOMIAL = "negative_binomial"


class PriorDistribution(Enum):
    """Distributions available for named-parameter priors"""
    NORMAL = "normal"
    TRUNCATED_NORMAL = "truncated_normal"
    HALF_NORMAL = "half_normal"
    HALF_CAUCHY = "half_cauchy"
    BETA = "beta"
    GAMMA = "gamma"


class PriorSpec(BaseModel):
    """Prior belief attached to one named curve parameter"""

    distribution: PriorDistribution = Field(..., description="Distribution family")
    mu: Optional[float] = Field(None, description="Location (normal family)")
    sigma: Optional[float] = Field(None, gt=0.0, description="Scale (normal family)")
    lower: Optional[float] = Field(None, description="Lower truncation bound")
    upper: Optional[float] = Field(None, description="Upper truncation bound")
    alpha: Optional[float] = Field(None, gt=0.0, description="Shape (beta/gamma)")
    beta: Optional[float] = Field(None, gt=0.0, description="Shape (beta) or scale (half-Cauchy)")

    @classmethod
    def from_config(cls, config: Dict) -> "PriorSpec":
        """Build a prior from a configuration dict; checks required arguments."""
        spec = cls(**config)

        required = {
            PriorDistribution.NORMAL: ["mu", "sigma"],
            PriorDistribution.TRUNCATED_NORMAL: ["mu", "sigma"],
            PriorDistribution.HALF_NORMAL: ["sigma"],
            PriorDistribution.HALF_CAUCHY: ["beta"],
            PriorDistribution.BETA: ["alpha", "beta"],
            PriorDistribution.GAMMA: ["alpha", "beta"],
        }[spec.distribution]

        missing = [arg for arg in required if getattr(spec, arg) is None]
        if missing:
            raise ValueError(
                f"{spec.distribution.value} prior requires: {', '.join(missing)}"
            )

        if spec.lower is not None and spec.upper is not None and spec.lower >= spec.upper:
            raise ValueError("Prior lower bound must be below upper bound")

        return spec


@dataclass
class CurveParameters:
    """Point estimates of a generalized-logistic season curve"""
    a: float  # asymptote, the seasonal total
    b: float  # inflection location, fraction of year
    c: float  # inflection sharpness

    def as_array(self) -> np.ndarray:
        return np.array([self.a, self.b, self.c])


@dataclass
class CurveFitResult:
    """Least-squares fit of the single season curve"""
    kind: ModelKind
    parameters: CurveParameters
    standard_errors: CurveParameters
    covariance: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    n_obs: int
    variance_power: Optional[float] = None
    iterations: int = 1
    converged: bool = True

    @property
    def rmse(self) -> float:
        return float(np.sqrt(np.mean(self.residuals ** 2)))

    def summary(self) -> pd.DataFrame:
        """Parameter table with estimates and standard errors."""
        return pd.DataFrame({
            'parameter': ['a', 'b', 'c'],
            'estimate': self.parameters.as_array(),
            'std_error': self.standard_errors.as_array(),
        })


@dataclass
class MCMCDiagnostics:
    """Convergence diagnostics of a sampled model"""
    rhat_max: float
    ess_min: float
    n_divergences: int
    rhat_summary: Dict[str, float] = field(default_factory=dict)
    ess_summary: Dict[str, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.warnings
