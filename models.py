"""Common data models used across the project."""

from dataclasses import dataclass, field
from datetime import datetime
import math
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Tuple

PRICE_COLUMNS = ['open', 'high', 'low', 'close', 'adj_close', 'volume']


@dataclass(frozen=True)
class ModelSpec:
    """ARMA mean / GARCH-family variance candidate"""
    ar_order: int
    ma_order: int
    garch_order: Tuple[int, int] = (1, 1)
    vol_model: str = 'EGARCH'  # arch_model vol name
    distribution: str = 't'  # arch_model dist name, 't' is Student-t

    def __post_init__(self):
        if self.ar_order < 0 or self.ma_order < 0:
            raise ValueError(f"ARMA orders must be non-negative, got ({self.ar_order},{self.ma_order})")
        if len(self.garch_order) != 2 or min(self.garch_order) < 1:
            raise ValueError(f"Invalid GARCH order {self.garch_order}")

    @property
    def label(self) -> str:
        p, q = self.garch_order
        vol = 'eGARCH' if self.vol_model.upper() == 'EGARCH' else self.vol_model
        return f"ARMA({self.ar_order},{self.ma_order})-{vol}({p},{q})-{self.distribution}"


@dataclass(frozen=True)
class ReturnSplit:
    """Chronological train/test partition of a return series"""
    train: pd.Series
    test: pd.Series
    ratio: float

    def __len__(self):
        return len(self.train) + len(self.test)


@dataclass(frozen=True)
class TestResult:
    """Outcome of a single hypothesis test"""
    name: str
    statistic: float
    p_value: float
    alpha: float = 0.05
    details: Dict[str, Any] = field(default_factory=dict)

    __test__ = False  # not a pytest class

    @property
    def rejects_null(self) -> bool:
        return bool(self.p_value < self.alpha)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'test': self.name,
            'statistic': self.statistic,
            'p_value': self.p_value,
            'rejects_null': self.rejects_null,
        }


@dataclass(frozen=True)
class DiagnosticsReport:
    """Advisory diagnostics on prices and log returns"""
    price_stationarity: TestResult
    return_stationarity: TestResult
    normality: TestResult
    independence: TestResult
    arch_effect: TestResult
    autocorrelation: pd.DataFrame  # columns: lag, acf, pacf
    summary: Dict[str, float]

    @property
    def returns_stationary(self) -> bool:
        # ADF null is a unit root
        return self.return_stationarity.rejects_null

    @property
    def prices_stationary(self) -> bool:
        return self.price_stationarity.rejects_null

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for series, result in [('close', self.price_stationarity),
                               ('log_return', self.return_stationarity),
                               ('log_return', self.normality),
                               ('log_return', self.independence),
                               ('log_return^2', self.arch_effect)]:
            rows.append({'series': series, **result.to_dict()})
        return pd.DataFrame(rows)


@dataclass(frozen=True)
class FittedModel:
    """Result of fitting one ModelSpec. Failed fits carry score=inf."""
    spec: ModelSpec
    params: Dict[str, float]
    loglikelihood: float
    aic: float
    bic: float
    hqic: float
    score: float
    converged: bool
    n_obs: int
    n_params: int
    scale: float = 100.0
    message: str = ''
    end_date: Optional[datetime] = None
    _mean_result: Any = field(default=None, repr=False, compare=False)
    _vol_result: Any = field(default=None, repr=False, compare=False)
    _endog: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    @property
    def label(self) -> str:
        return self.spec.label

    @classmethod
    def failed(cls, spec: ModelSpec, n_obs: int, message: str,
               scale: float = 100.0) -> 'FittedModel':
        return cls(
            spec=spec,
            params={},
            loglikelihood=float('nan'),
            aic=math.inf,
            bic=math.inf,
            hqic=math.inf,
            score=math.inf,
            converged=False,
            n_obs=n_obs,
            n_params=0,
            scale=scale,
            message=message,
        )


@dataclass(frozen=True)
class ForecastResult:
    """Mean and conditional volatility forecast for steps 1..horizon"""
    spec: ModelSpec
    origin: Optional[datetime]
    steps: pd.DataFrame  # index 'step', columns: mean, volatility[, realized]

    @property
    def horizon(self) -> int:
        return len(self.steps)

    @property
    def mean(self) -> pd.Series:
        return self.steps['mean']

    @property
    def volatility(self) -> pd.Series:
        return self.steps['volatility']

    def to_frame(self) -> pd.DataFrame:
        frame = self.steps.copy()
        frame.insert(0, 'origin', self.origin)
        return frame


@dataclass(frozen=True)
class BootstrapForecast:
    """Quantile bands of bootstrap-simulated returns, cumulative returns and sigma per step"""
    spec: ModelSpec
    mode: str  # 'partial' or 'full'
    n_paths: int
    quantiles: Tuple[float, ...]
    return_bands: pd.DataFrame  # index step, one column per quantile
    sigma_bands: pd.DataFrame
    cumulative_bands: pd.DataFrame  # log return summed over steps 1..h
    n_refits: int = 0

    def band_width(self, kind: str = 'sigma', lower: Optional[float] = None,
                   upper: Optional[float] = None) -> pd.Series:
        """Width between two quantile columns for each horizon step"""
        bands = {
            'sigma': self.sigma_bands,
            'return': self.return_bands,
            'cumulative': self.cumulative_bands,
        }.get(kind)
        if bands is None:
            raise ValueError(f"Unknown band kind: {kind}")
        lower = min(self.quantiles) if lower is None else lower
        upper = max(self.quantiles) if upper is None else upper
        return bands[upper] - bands[lower]

    def to_frame(self) -> pd.DataFrame:
        returns = self.return_bands.add_prefix('return_q')
        sigma = self.sigma_bands.add_prefix('sigma_q')
        cumulative = self.cumulative_bands.add_prefix('cumulative_q')
        return pd.concat([returns, sigma, cumulative], axis=1)


@dataclass
class AnalysisReport:
    """Structured numeric output of one pipeline run"""
    ticker: str
    start: Optional[datetime]
    end: Optional[datetime]
    n_prices: int
    n_train: int
    n_test: int
    diagnostics: DiagnosticsReport
    comparison: pd.DataFrame  # indexed by model label
    selected: FittedModel
    forecast: ForecastResult
    bootstrap: Optional[BootstrapForecast] = None
    rolling: List[ForecastResult] = field(default_factory=list)
    performance: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @property
    def selected_spec(self) -> ModelSpec:
        return self.selected.spec

    def forecast_table(self) -> pd.DataFrame:
        """Forecast mean/volatility with bootstrap bands joined on step"""
        table = self.forecast.steps.copy()
        if self.bootstrap is not None:
            table = table.join(self.bootstrap.to_frame())
        return table
