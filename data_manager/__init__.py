"""
Data management package for the volatility report.
Handles price acquisition and validation.
"""

from .data_loader import PriceLoader, load_prices_csv
from .data_validator import PriceValidator

__all__ = ['PriceLoader', 'PriceValidator', 'load_prices_csv']
