"""
ARMA-GARCH modeling package for volatility analysis.
Return preparation, diagnostics, model search and forecasting.
"""

from .estimator import ArmaGarchEstimator, select_model
from .forecaster import ArmaGarchForecaster
from models import FittedModel, ForecastResult, ModelSpec

__all__ = ['ArmaGarchEstimator', 'ArmaGarchForecaster', 'select_model',
           'FittedModel', 'ForecastResult', 'ModelSpec']
