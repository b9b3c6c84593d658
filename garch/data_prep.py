"""
Prepare log returns and the chronological train/test split for estimation.
"""

import logging
import math

import numpy as np
import pandas as pd

from errors import InsufficientData
from models import ReturnSplit

logger = logging.getLogger(__name__)


def to_log_returns(prices: pd.DataFrame, column: str = 'close') -> pd.Series:
    """
    Convert a price series to daily log returns.

    Args:
        prices: PriceSeries frame (or a bare price Series)
        column: Price column to use when a frame is given

    Returns:
        Series named 'log_return', one row shorter than prices
    """
    price = prices[column] if isinstance(prices, pd.DataFrame) else prices
    if len(price) < 2:
        raise InsufficientData(f"Need at least 2 prices to compute returns, got {len(price)}")
    if (price <= 0).any():
        raise ValueError("Prices must be strictly positive for log returns")

    log_price = np.log(price.astype(float))
    returns = log_price.diff().iloc[1:]
    returns.name = 'log_return'

    zero_returns = returns[returns == 0]
    if not zero_returns.empty:
        logger.warning(f"Found {len(zero_returns)} zero returns (unchanged close)")

    return returns


def split_returns(returns: pd.Series, ratio: float = 0.8) -> ReturnSplit:
    """
    Chronological split, the boundary index is floor(ratio * len)

    Raises:
        ValueError: ratio outside (0, 1)
        InsufficientData: either side of the split would be empty
    """
    if not 0 < ratio < 1:
        raise ValueError(f"Split ratio must be in (0, 1), got {ratio}")

    boundary = int(math.floor(ratio * len(returns)))
    if boundary == 0 or boundary == len(returns):
        raise InsufficientData(
            f"Split of {len(returns)} returns at ratio {ratio} leaves an empty partition"
        )

    split = ReturnSplit(
        train=returns.iloc[:boundary],
        test=returns.iloc[boundary:],
        ratio=ratio,
    )
    logger.info(
        f"Split {len(returns)} returns: train={len(split.train)} "
        f"({split.train.index[0]} to {split.train.index[-1]}), test={len(split.test)}"
    )
    return split
