import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import pytest
import numpy as np
import pandas as pd


def make_prices(n_days: int = 1000, seed: int = 7, drift: float = 0.0003) -> pd.DataFrame:
    """Random walk with drift in log price, GARCH(1,1) volatility clustering"""
    random_state = np.random.RandomState(seed)
    omega, alpha, beta, nu = 2e-6, 0.08, 0.90, 6.0

    variance = omega / (1 - alpha - beta)
    returns = np.empty(n_days - 1)
    for t in range(n_days - 1):
        shock = np.sqrt(variance) * random_state.standard_t(nu) * np.sqrt((nu - 2) / nu)
        returns[t] = drift + shock
        variance = omega + alpha * shock ** 2 + beta * variance

    close = 100 * np.exp(np.concatenate([[0.0], np.cumsum(returns)]))
    dates = pd.bdate_range('2016-01-04', periods=n_days, name='date')
    spread = np.abs(random_state.normal(0, 0.004, n_days))
    return pd.DataFrame({
        'open': close * (1 + random_state.normal(0, 0.002, n_days)),
        'high': close * (1 + spread),
        'low': close * (1 - spread),
        'close': close,
        'adj_close': close,
        'volume': random_state.randint(1_000_000, 5_000_000, n_days).astype(float),
    }, index=dates)


@pytest.fixture(scope='session')
def synthetic_prices():
    """1000 trading days of synthetic prices"""
    return make_prices()


@pytest.fixture(scope='session')
def synthetic_returns(synthetic_prices):
    log_close = np.log(synthetic_prices['close'])
    returns = log_close.diff().iloc[1:]
    returns.name = 'log_return'
    return returns


@pytest.fixture
def yahoo_frame(synthetic_prices):
    """Prices laid out the way yfinance.download returns them"""
    frame = synthetic_prices.rename(columns={
        'open': 'Open', 'high': 'High', 'low': 'Low', 'close': 'Close',
        'adj_close': 'Adj Close', 'volume': 'Volume',
    })
    frame.columns = pd.MultiIndex.from_product([frame.columns, ['TEST']], names=['Price', 'Ticker'])
    frame.index.name = 'Date'
    return frame
