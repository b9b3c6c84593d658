"""
Price data loader for daily equity OHLCV series.
"""

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Optional, Union

import pandas as pd
import yfinance as yf

from data_manager.data_validator import PriceValidator
from errors import DataUnavailable
from models import PRICE_COLUMNS

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime, pd.Timestamp]

# Provider contract: (ticker, start, end_exclusive) -> raw OHLCV frame
Provider = Callable[[str, pd.Timestamp, pd.Timestamp], pd.DataFrame]

COLUMN_ALIASES = {
    'open': 'open',
    'high': 'high',
    'low': 'low',
    'close': 'close',
    'adj close': 'adj_close',
    'adj_close': 'adj_close',
    'adjclose': 'adj_close',
    'volume': 'volume',
}


def yfinance_provider(ticker: str, start: pd.Timestamp, end: pd.Timestamp) -> pd.DataFrame:
    """Download daily bars from Yahoo Finance, end date exclusive"""
    return yf.download(
        ticker,
        start=start.strftime('%Y-%m-%d'),
        end=end.strftime('%Y-%m-%d'),
        interval='1d',
        auto_adjust=False,
        progress=False,
    )


def normalize_prices(raw: pd.DataFrame) -> pd.DataFrame:
    """Flatten provider columns to snake case OHLCV indexed by naive dates"""
    df = raw.copy()

    # yfinance returns (field, ticker) MultiIndex columns
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)

    if 'date' in [str(c).lower() for c in df.columns]:
        date_col = next(c for c in df.columns if str(c).lower() == 'date')
        df = df.set_index(date_col)

    df = df.rename(columns=lambda c: COLUMN_ALIASES.get(str(c).strip().lower(), str(c).strip().lower()))
    df = df[[c for c in PRICE_COLUMNS if c in df.columns]]

    df.index = pd.to_datetime(df.index)
    if df.index.tz is not None:
        df.index = df.index.tz_localize(None)
    df.index = df.index.normalize()
    df.index.name = 'date'

    df = df.astype(float)
    df = df.dropna(subset=[c for c in ['close'] if c in df.columns])
    return df.sort_index()


class PriceLoader:
    """Fetches and validates a daily PriceSeries for one ticker."""

    def __init__(self, provider: Optional[Provider] = None,
                 validator: Optional[PriceValidator] = None):
        self.provider = provider or yfinance_provider
        self.validator = validator or PriceValidator()
        self.logger = logging.getLogger('data_manager.loader')

    def fetch(self, ticker: str, start: DateLike, end: DateLike) -> pd.DataFrame:
        """
        Fetch daily prices for ticker over the inclusive range [start, end]

        Raises:
            DataUnavailable: unknown ticker, provider failure or invalid data
        """
        if not ticker or not str(ticker).strip():
            raise DataUnavailable("Ticker symbol must be a non-empty string")

        start, end = pd.Timestamp(start), pd.Timestamp(end)
        if start > end:
            raise DataUnavailable(f"Invalid date range: start {start:%Y-%m-%d} > end {end:%Y-%m-%d}")

        self.logger.info(f"Fetching {ticker} prices from {start:%Y-%m-%d} to {end:%Y-%m-%d}")
        try:
            raw = self.provider(ticker, start, end + timedelta(days=1))
        except Exception as e:
            self.logger.error(f"Provider failed for {ticker}: {str(e)}")
            raise DataUnavailable(f"Provider failed for {ticker}: {e}") from e

        if raw is None or raw.empty:
            raise DataUnavailable(f"No price data returned for {ticker}")

        prices = self._normalize(raw, ticker)
        prices = prices.loc[(prices.index >= start) & (prices.index <= end)]
        self._check(prices, ticker)

        self.logger.info(
            f"Loaded {len(prices)} rows for {ticker}: "
            f"{prices.index[0]:%Y-%m-%d} to {prices.index[-1]:%Y-%m-%d}"
        )
        return prices

    def _normalize(self, raw: pd.DataFrame, source: str) -> pd.DataFrame:
        try:
            return normalize_prices(raw)
        except (ValueError, TypeError) as e:
            self.logger.error(f"{source}: cannot convert prices: {str(e)}")
            raise DataUnavailable(f"Non-numeric or malformed price data for {source}: {e}") from e

    def _check(self, prices: pd.DataFrame, source: str):
        is_valid, issues = self.validator.validate(prices)
        if not is_valid:
            for issue in issues:
                self.logger.warning(f"{source}: {issue}")
            raise DataUnavailable(f"Invalid price data for {source}: " + "; ".join(issues))


def load_prices_csv(file_path: Union[str, Path], validator: Optional[PriceValidator] = None) -> pd.DataFrame:
    """Load a previously exported OHLCV CSV into a validated PriceSeries"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise DataUnavailable(f"Price file not found: {file_path}")

    raw = pd.read_csv(file_path)
    if raw.empty:
        raise DataUnavailable(f"Price file is empty: {file_path}")

    loader = PriceLoader(provider=None, validator=validator)
    prices = loader._normalize(raw, str(file_path))
    loader._check(prices, str(file_path))
    logger.info(f"Loaded {len(prices)} rows from {file_path}")
    return prices
