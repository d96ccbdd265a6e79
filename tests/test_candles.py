import asyncio

import numpy as np
import pandas as pd
import pytest

from conftest import FlakyProvider, make_frame, rising
from mtf_signal_engine.data import (
    Candle,
    DataFrameProvider,
    candles_to_frame,
    fetch_with_retry,
    normalize_frame,
    resample_candles,
    validate_candles,
)
from mtf_signal_engine.errors import InvalidCandleError, ProviderUnavailableError
from mtf_signal_engine.models import Timeframe


def test_normalize_accepts_capitalised_columns():
    raw = pd.DataFrame(
        {
            'Date': pd.date_range("2024-01-01", periods=3, freq="D"),
            'Open': [1.0, 2.0, 3.0],
            'High': [1.5, 2.5, 3.5],
            'Low': [0.5, 1.5, 2.5],
            'Close': [1.2, 2.2, 3.2],
        }
    )
    frame = normalize_frame(raw)
    assert list(frame.columns) == ['open', 'high', 'low', 'close', 'volume']
    assert frame.index.name == 'timestamp'
    assert (frame['volume'] == 0).all()


def test_normalize_rejects_missing_columns():
    with pytest.raises(InvalidCandleError):
        normalize_frame(pd.DataFrame({'close': [1.0, 2.0]}))


def test_candles_to_frame_round_trip():
    candles = [
        Candle(pd.Timestamp("2024-01-01 09:15"), 100, 101, 99, 100.5, 10),
        Candle(pd.Timestamp("2024-01-01 09:20"), 100.5, 102, 100, 101.5, 12),
    ]
    frame = candles_to_frame(candles)
    assert len(frame) == 2
    assert frame['close'].tolist() == [100.5, 101.5]


def test_validate_drops_invalid_candles():
    frame = rising(10)
    frame.iloc[3, frame.columns.get_loc('low')] = frame['close'].iloc[3] + 5   # low above close
    frame.iloc[5, frame.columns.get_loc('volume')] = -1                        # negative volume
    frame.iloc[7, frame.columns.get_loc('high')] = np.nan

    clean, rejected = validate_candles(frame, policy="drop")
    assert rejected == 3
    assert len(clean) == 7
    assert frame.index[3] not in clean.index


def test_validate_drops_non_increasing_timestamps():
    frame = rising(5)
    duplicated = pd.concat([frame, frame.iloc[[2]]])
    clean, rejected = validate_candles(duplicated)
    assert rejected == 1
    assert clean.index.is_monotonic_increasing
    assert clean.index.is_unique


def test_validate_strict_raises():
    frame = rising(10)
    frame.iloc[2, frame.columns.get_loc('high')] = frame['open'].iloc[2] - 3
    with pytest.raises(InvalidCandleError) as exc:
        validate_candles(frame, policy="strict", timeframe="5m")
    assert exc.value.count == 1
    assert exc.value.timeframe == "5m"


def test_unparseable_cells_are_rejected():
    frame = rising(20)
    frame['close'] = frame['close'].astype(object)
    frame.iloc[10, frame.columns.get_loc('close')] = "n/a"

    clean, rejected = validate_candles(frame, policy="drop")
    assert rejected == 1
    assert len(clean) == 19
    assert frame.index[10] not in clean.index
    assert clean['close'].dtype == float

    with pytest.raises(InvalidCandleError):
        validate_candles(frame, policy="strict")


def test_resample_hourly_to_four_hours():
    frame = make_frame(np.arange(1, 9, dtype=float), freq="1h", start="2024-01-01 00:00")
    four_hour = resample_candles(frame, "4h")
    assert len(four_hour) == 2
    first = four_hour.iloc[0]
    assert first['open'] == 1.0 and first['close'] == 4.0
    assert first['high'] == 4.0 and first['low'] == 1.0
    assert first['volume'] == 4000.0


async def test_dataframe_provider_serves_tail():
    provider = DataFrameProvider({"1h": rising(60)})
    frame = await provider.fetch_candles("X", Timeframe.H1, 25)
    assert len(frame) == 25

    with pytest.raises(ProviderUnavailableError):
        await provider.fetch_candles("X", Timeframe.D1, 25)


async def test_retry_succeeds_after_two_failures():
    provider = FlakyProvider(rising(40), failures=2)
    frame = await fetch_with_retry(provider, "X", Timeframe.M5, 40, max_retries=2, backoff=0)
    assert len(frame) == 40
    assert provider.calls["5m"] == 3


async def test_retry_gives_up_after_max_retries_plus_one():
    provider = FlakyProvider(rising(40), always_fail={"5m"})
    with pytest.raises(ProviderUnavailableError) as exc:
        await fetch_with_retry(provider, "X", Timeframe.M5, 40, max_retries=3, backoff=0)
    assert exc.value.attempts == 4
    assert provider.calls["5m"] == 4


async def test_retry_runs_sync_providers_in_thread():
    class SyncProvider:
        def fetch_candles(self, symbol, timeframe, limit):
            return rising(limit)

    frame = await fetch_with_retry(SyncProvider(), "X", Timeframe.D1, 30, max_retries=0)
    assert len(frame) == 30


async def test_retry_does_not_swallow_cancellation():
    class Hanging:
        async def fetch_candles(self, symbol, timeframe, limit):
            await asyncio.sleep(30)

    task = asyncio.create_task(fetch_with_retry(Hanging(), "X", Timeframe.M1, 10, backoff=0))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
