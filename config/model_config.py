"""
Default run parameters for the volatility report.
Components take these as keyword arguments, override them there.
"""

from datetime import date

from models import ModelSpec

# Run parameters
TICKER = 'AAPL'
START_DATE = date(2015, 1, 1)
END_DATE = date(2019, 12, 31)

# Data preparation
SPLIT_RATIO = 0.8
PRICE_COLUMN = 'close'

# Diagnostics
SIGNIFICANCE_LEVEL = 0.05
MAX_ACF_LAG = 20
LJUNG_BOX_LAGS = 10

# Estimation
RETURN_SCALE = 100.0  # fit on percentage returns
MIN_OBSERVATIONS = 100
MAX_ITERATIONS = 1000
INFORMATION_CRITERION = 'aic'
RANDOM_SEED = 42

# Fixed candidate grid: ARMA(p,q) mean, eGARCH(1,1) variance, Student-t errors
ARMA_ORDERS = [(0, 0), (1, 0), (0, 1), (1, 1), (2, 1), (1, 2), (2, 2), (3, 3)]
DEFAULT_MODEL_GRID = [
    ModelSpec(ar_order=p, ma_order=q, garch_order=(1, 1), vol_model='EGARCH', distribution='t')
    for p, q in ARMA_ORDERS
]

# Forecasting
FORECAST_HORIZON = 20
N_SIMULATIONS = 1000  # simulation paths behind multi-step eGARCH variance forecasts
BOOTSTRAP_PATHS = 500
BOOTSTRAP_MODE = 'partial'
BOOTSTRAP_REFITS = 10
BOOTSTRAP_QUANTILES = (0.05, 0.25, 0.5, 0.75, 0.95)
ROLLING_ROLLS = 0  # 0 disables the rolling forecast
ROLLING_WINDOW = 'moving'
