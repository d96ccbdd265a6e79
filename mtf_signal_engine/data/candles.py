"""
Candle series construction and OHLCV validation

A candle series is a DataFrame with a DatetimeIndex named 'timestamp' and
lowercase columns open, high, low, close, volume.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from ..errors import InvalidCandleError

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


@dataclass(frozen=True)
class Candle:
    timestamp: pd.Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Build a candle series from Candle records"""
    rows = [
        {
            'timestamp': pd.Timestamp(c.timestamp),
            'open': c.open,
            'high': c.high,
            'low': c.low,
            'close': c.close,
            'volume': c.volume,
        }
        for c in candles
    ]
    if not rows:
        return empty_frame()
    return normalize_frame(pd.DataFrame(rows))


def empty_frame() -> pd.DataFrame:
    frame = pd.DataFrame(columns=OHLCV_COLUMNS, dtype=float)
    frame.index = pd.DatetimeIndex([], name='timestamp')
    return frame


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Standardize column names and index

    Accepts provider-style capitalised columns (Open, High, ...) or lowercase
    ones, with timestamps either in the index or in a timestamp/date column.
    Volume defaults to 0 when the source has none.
    """
    data = df.copy()
    data.columns = [str(col).strip().lower() for col in data.columns]

    for time_col in ('timestamp', 'datetime', 'date'):
        if time_col in data.columns:
            data = data.set_index(time_col)
            break

    missing = [col for col in ('open', 'high', 'low', 'close') if col not in data.columns]
    if missing:
        raise InvalidCandleError(f"missing columns {missing}", count=len(data))
    if 'volume' not in data.columns:
        data['volume'] = 0.0

    # unparseable cells become NaN and are rejected by validate_candles
    data = data[OHLCV_COLUMNS].apply(pd.to_numeric, errors="coerce").astype(float)
    data.index = pd.DatetimeIndex(pd.to_datetime(data.index), name='timestamp')
    return data


def validate_candles(
    df: pd.DataFrame,
    policy: str = "drop",
    timeframe: Optional[str] = None,
) -> Tuple[pd.DataFrame, int]:
    """
    Enforce OHLCV invariants on a candle series

    Invariants: low <= open, close <= high, volume >= 0, finite values, and
    strictly increasing timestamps.

    Args:
        df: Candle series (any column style accepted by normalize_frame)
        policy: 'drop' removes offending candles, 'strict' raises
        timeframe: Label used in log and error messages

    Returns:
        (clean series, number of rejected candles)
    """
    data = normalize_frame(df)
    if data.empty:
        return data, 0

    values = data[OHLCV_COLUMNS].to_numpy()
    finite = np.isfinite(values).all(axis=1)
    body_low = data[['open', 'close']].min(axis=1)
    body_high = data[['open', 'close']].max(axis=1)
    ohlc_ok = (data['low'] <= body_low) & (body_high <= data['high'])
    volume_ok = data['volume'] >= 0

    valid = pd.Series(finite, index=data.index) & ohlc_ok & volume_ok

    # Timestamps must increase strictly against the last accepted candle
    last_ts = None
    ordered = []
    for ts, ok in zip(data.index, valid):
        if ok and (last_ts is None or ts > last_ts):
            ordered.append(True)
            last_ts = ts
        else:
            ordered.append(False)
    keep = np.array(ordered, dtype=bool)

    rejected = int((~keep).sum())
    if rejected:
        where = f" [{timeframe}]" if timeframe else ""
        if policy == "strict":
            raise InvalidCandleError(
                "OHLCV invariant violated (low <= open/close <= high, volume >= 0, increasing time)",
                count=rejected,
                timeframe=timeframe,
            )
        logger.warning(f"Rejected {rejected} invalid candle(s){where} of {len(data)}")

    return data[keep], rejected
