"""
Validation of daily OHLCV price series.
"""

import pandas as pd
import numpy as np
from typing import List, Tuple

from models import PRICE_COLUMNS


class PriceValidator:
    """Validates a daily price frame before returns are computed."""

    def __init__(self, required_columns: List[str] = None):
        self.required_columns = required_columns or ['close']

        # Reasonable bounds for daily equity data
        self.validation_bounds = {
            'price': {'min': 0, 'max': 1e7},
            'volume': {'min': 0, 'max': np.inf},
        }

    def validate(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """
        Validates the price DataFrame.

        Args:
            df: DataFrame indexed by date with OHLCV columns

        Returns:
            Tuple of (is_valid, list_of_issues)
        """
        issues = []

        if df is None or df.empty:
            return False, ["Price data is empty"]

        missing_cols = [col for col in self.required_columns if col not in df.columns]
        if missing_cols:
            issues.append(f"Missing required columns: {missing_cols}")
            return False, issues

        issues.extend(self._validate_index(df.index))

        # Missing values in required columns
        for col in self.required_columns:
            missing_count = df[col].isna().sum()
            if missing_count > 0:
                issues.append(f"Column {col} has {missing_count} missing values")

        # Prices must be strictly positive for log returns
        for col in [c for c in PRICE_COLUMNS if c in df.columns and c != 'volume']:
            non_positive = df[col][df[col] <= 0]
            if not non_positive.empty:
                issues.append(
                    f"{col}: {len(non_positive)} non-positive prices "
                    f"(first occurrence at {non_positive.index[0]})"
                )
            issues.extend(self._validate_bounds(
                df[col],
                self.validation_bounds['price']['min'],
                self.validation_bounds['price']['max'],
                f"{col} price"
            ))

        if 'volume' in df.columns:
            issues.extend(self._validate_bounds(
                df['volume'],
                self.validation_bounds['volume']['min'],
                self.validation_bounds['volume']['max'],
                "volume"
            ))

        if 'high' in df.columns and 'low' in df.columns:
            inverted = df[df['high'] < df['low']]
            if not inverted.empty:
                issues.append(
                    f"high < low on {len(inverted)} rows "
                    f"(first occurrence at {inverted.index[0]})"
                )

        return len(issues) == 0, issues

    def _validate_index(self, index: pd.Index) -> List[str]:
        """Dates must be unique and strictly increasing."""
        issues = []
        if not isinstance(index, pd.DatetimeIndex):
            issues.append(f"Index must be a DatetimeIndex, got {type(index).__name__}")
            return issues

        duplicates = index[index.duplicated()]
        if len(duplicates) > 0:
            issues.append(
                f"{len(duplicates)} duplicate dates (first occurrence at {duplicates[0]})"
            )
        if not index.is_monotonic_increasing:
            issues.append("Dates are not sorted in increasing order")
        return issues

    def _validate_bounds(self, series: pd.Series, min_val: float, max_val: float, name: str) -> List[str]:
        """Validates that values fall within expected bounds."""
        issues = []

        below_min = series[series < min_val]
        if not below_min.empty:
            issues.append(
                f"{name}: {len(below_min)} values below minimum of {min_val} "
                f"(first occurrence at index {below_min.index[0]})"
            )

        above_max = series[series > max_val]
        if not above_max.empty:
            issues.append(
                f"{name}: {len(above_max)} values above maximum of {max_val} "
                f"(first occurrence at index {above_max.index[0]})"
            )

        return issues
