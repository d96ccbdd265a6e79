"""
Candle series handling and price data providers
"""

from .candles import Candle, candles_to_frame, normalize_frame, validate_candles
from .providers import (
    DataFrameProvider,
    PriceDataProvider,
    YahooFinanceProvider,
    fetch_with_retry,
    resample_candles,
)

__all__ = [
    'Candle',
    'candles_to_frame',
    'normalize_frame',
    'validate_candles',
    'PriceDataProvider',
    'DataFrameProvider',
    'YahooFinanceProvider',
    'fetch_with_retry',
    'resample_candles',
]
