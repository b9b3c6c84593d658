import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
import pandas as pd
from unittest.mock import patch

from data_manager import PriceLoader, PriceValidator, load_prices_csv
from data_manager.data_loader import normalize_prices
from errors import DataUnavailable
from models import PRICE_COLUMNS


def test_normalize_yahoo_layout(yahoo_frame):
    prices = normalize_prices(yahoo_frame)

    assert list(prices.columns) == PRICE_COLUMNS
    assert prices.index.name == 'date'
    assert prices.index.is_monotonic_increasing
    assert prices.index.tz is None


def test_fetch_inclusive_range(yahoo_frame):
    """End date is inclusive although the provider treats it as exclusive"""
    calls = []

    def provider(ticker, start, end):
        calls.append((ticker, start, end))
        return yahoo_frame

    loader = PriceLoader(provider=provider)
    prices = loader.fetch('TEST', '2016-03-01', '2016-06-30')

    ticker, start, end = calls[0]
    assert ticker == 'TEST'
    assert start == pd.Timestamp('2016-03-01')
    assert end == pd.Timestamp('2016-07-01')

    assert prices.index[0] == pd.Timestamp('2016-03-01')
    assert prices.index[-1] == pd.Timestamp('2016-06-30')
    assert (prices['close'] > 0).all()


def test_fetch_default_provider_uses_yfinance(yahoo_frame):
    with patch('data_manager.data_loader.yf.download', return_value=yahoo_frame) as download:
        prices = PriceLoader().fetch('TEST', '2016-01-04', '2016-12-30')

    assert download.call_count == 1
    kwargs = download.call_args.kwargs
    assert kwargs['interval'] == '1d'
    assert kwargs['end'] == '2016-12-31'
    assert len(prices) > 200


def test_fetch_empty_result():
    loader = PriceLoader(provider=lambda ticker, start, end: pd.DataFrame())
    with pytest.raises(DataUnavailable, match="No price data"):
        loader.fetch('NOTATICKER', '2020-01-01', '2020-12-31')


def test_fetch_provider_error():
    def provider(ticker, start, end):
        raise ConnectionError("network unreachable")

    with pytest.raises(DataUnavailable, match="network unreachable"):
        PriceLoader(provider=provider).fetch('AAPL', '2020-01-01', '2020-12-31')


@pytest.mark.parametrize("ticker, start, end", [
    ('', '2020-01-01', '2020-12-31'),
    ('   ', '2020-01-01', '2020-12-31'),
    ('AAPL', '2021-01-01', '2020-12-31'),
])
def test_fetch_invalid_request(ticker, start, end):
    loader = PriceLoader(provider=lambda *args: pytest.fail("provider should not be called"))
    with pytest.raises(DataUnavailable):
        loader.fetch(ticker, start, end)


def test_fetch_rejects_non_positive_close(synthetic_prices):
    broken = synthetic_prices.copy()
    broken.iloc[10, broken.columns.get_loc('close')] = -1.0

    loader = PriceLoader(provider=lambda *args: broken)
    with pytest.raises(DataUnavailable, match="non-positive"):
        loader.fetch('TEST', '2016-01-01', '2019-12-31')


def test_fetch_rejects_non_numeric_prices(synthetic_prices):
    broken = synthetic_prices.iloc[:50].copy()
    broken['close'] = broken['close'].astype(object)
    broken.iloc[5, broken.columns.get_loc('close')] = 'n/a'

    loader = PriceLoader(provider=lambda *args: broken)
    with pytest.raises(DataUnavailable, match="Non-numeric"):
        loader.fetch('TEST', '2016-01-01', '2016-12-31')


def test_validator_reports_issues(synthetic_prices):
    validator = PriceValidator()
    is_valid, issues = validator.validate(synthetic_prices)
    assert is_valid
    assert issues == []

    broken = synthetic_prices.iloc[:50].copy()
    broken.iloc[5, broken.columns.get_loc('close')] = np.nan
    broken.iloc[7, broken.columns.get_loc('high')] = 1.0
    broken = pd.concat([broken, broken.iloc[[3]]])

    is_valid, issues = validator.validate(broken)
    assert not is_valid
    text = "\n".join(issues)
    assert "missing values" in text
    assert "high < low" in text
    assert "duplicate dates" in text
    assert "not sorted" in text


def test_validator_missing_column(synthetic_prices):
    is_valid, issues = PriceValidator().validate(synthetic_prices.drop(columns=['close']))
    assert not is_valid
    assert "Missing required columns" in issues[0]


def test_load_prices_csv(tmp_path, synthetic_prices):
    path = tmp_path / "prices.csv"
    synthetic_prices.iloc[:100].to_csv(path)

    prices = load_prices_csv(path)
    assert len(prices) == 100
    assert list(prices.columns) == PRICE_COLUMNS
    np.testing.assert_allclose(prices['close'].values, synthetic_prices['close'].values[:100])

    with pytest.raises(DataUnavailable):
        load_prices_csv(tmp_path / "missing.csv")


if __name__ == '__main__':
    pytest.main([__file__])
