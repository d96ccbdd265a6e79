"""
Price data providers

The engine only needs fetch_candles(symbol, timeframe, limit) returning a
candle series or raising ProviderUnavailableError. Retries live here too and
are always scoped to a single timeframe.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

import pandas as pd
import yfinance as yf
from loguru import logger

from ..errors import InvalidCandleError, ProviderUnavailableError
from ..models import Timeframe
from .candles import OHLCV_COLUMNS, normalize_frame


class PriceDataProvider(ABC):
    """Source of OHLCV candles for one symbol/timeframe pair"""

    @abstractmethod
    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> pd.DataFrame:
        """Return up to `limit` most recent candles, oldest first"""


class DataFrameProvider(PriceDataProvider):
    """
    Replays in-memory frames keyed by timeframe

    Useful for tests, caches and replay files. A frame registered under None
    is served for any timeframe without its own entry.
    """

    def __init__(self, frames: Mapping, symbol: Optional[str] = None):
        self.symbol = symbol
        self.frames: Dict[Optional[Timeframe], pd.DataFrame] = {}
        for key, frame in frames.items():
            tf = None if key is None else Timeframe.parse(key)
            self.frames[tf] = frame

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> pd.DataFrame:
        if self.symbol is not None and symbol != self.symbol:
            raise ProviderUnavailableError(symbol, timeframe.value, f"no data for symbol {symbol}")
        frame = self.frames.get(timeframe, self.frames.get(None))
        if frame is None:
            raise ProviderUnavailableError(symbol, timeframe.value, "no frame registered")
        return frame.tail(limit).copy()


class YahooFinanceProvider(PriceDataProvider):
    """yfinance backed provider; downloads run in a worker thread"""

    # timeframe -> (yfinance interval, lookback period, resample rule)
    INTERVALS = {
        Timeframe.M1: ('1m', '7d', None),
        Timeframe.M5: ('5m', '60d', None),
        Timeframe.M15: ('15m', '60d', None),
        Timeframe.M30: ('30m', '60d', None),
        Timeframe.H1: ('60m', '730d', None),
        Timeframe.H4: ('60m', '730d', '4h'),
        Timeframe.D1: ('1d', '2y', None),
        Timeframe.W1: ('1wk', '10y', None),
    }

    def __init__(self, symbol_mapping: Optional[Dict[str, str]] = None):
        self.symbol_mapping = symbol_mapping or {}

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> pd.DataFrame:
        return await asyncio.to_thread(self._download, symbol, timeframe, limit)

    def _download(self, symbol: str, timeframe: Timeframe, limit: int) -> pd.DataFrame:
        interval, period, rule = self.INTERVALS[timeframe]
        ticker_symbol = self.symbol_mapping.get(symbol, symbol)
        logger.debug(f"Downloading {ticker_symbol} interval={interval} period={period}")

        try:
            data = yf.Ticker(ticker_symbol).history(period=period, interval=interval)
        except Exception as e:
            raise ProviderUnavailableError(symbol, timeframe.value, f"yfinance error: {e}") from e

        if data is None or data.empty:
            raise ProviderUnavailableError(symbol, timeframe.value, "empty response")

        try:
            frame = normalize_frame(data[[c for c in data.columns if str(c).lower() in OHLCV_COLUMNS]])
        except InvalidCandleError as e:
            raise ProviderUnavailableError(symbol, timeframe.value, str(e)) from e

        if rule:
            frame = resample_candles(frame, rule)
        return frame.tail(limit)


def resample_candles(df: pd.DataFrame, rule: str) -> pd.DataFrame:
    """Resample a candle series to a coarser interval (e.g. 1h -> 4h)"""
    if df.empty:
        return df
    agg_dict = {
        'open': 'first',
        'high': 'max',
        'low': 'min',
        'close': 'last',
        'volume': 'sum'
    }
    resampled = df.resample(rule).agg(agg_dict).dropna()
    resampled.index.name = 'timestamp'
    return resampled


async def fetch_with_retry(
    provider,
    symbol: str,
    timeframe: Timeframe,
    limit: int,
    max_retries: int = 2,
    backoff: float = 0.5,
    max_backoff: float = 8.0,
) -> pd.DataFrame:
    """
    Fetch candles with bounded retries and exponential backoff

    Synchronous providers (plain fetch_candles) are run in a worker thread.
    After max_retries + 1 failed attempts a ProviderUnavailableError carrying
    the attempt count is raised. Cancellation is never retried.
    """
    attempts = max_retries + 1
    last_error: Optional[Exception] = None

    for attempt in range(1, attempts + 1):
        try:
            if inspect.iscoroutinefunction(provider.fetch_candles):
                return await provider.fetch_candles(symbol, timeframe, limit)
            return await asyncio.to_thread(provider.fetch_candles, symbol, timeframe, limit)
        except ProviderUnavailableError as e:
            last_error = e
            reason = e.reason
        except (ConnectionError, TimeoutError, OSError) as e:
            last_error = e
            reason = str(e) or type(e).__name__

        if attempt < attempts:
            wait_time = min(backoff * (2 ** (attempt - 1)), max_backoff)
            logger.warning(
                f"Fetch {symbol} [{timeframe.value}] failed (attempt {attempt}/{attempts}): "
                f"{reason}; retrying in {wait_time:.2f}s"
            )
            await asyncio.sleep(wait_time)

    logger.error(f"Fetch {symbol} [{timeframe.value}] failed after {attempts} attempt(s)")
    reason = last_error.reason if isinstance(last_error, ProviderUnavailableError) else str(last_error)
    raise ProviderUnavailableError(symbol, timeframe.value, reason, attempts=attempts) from last_error
