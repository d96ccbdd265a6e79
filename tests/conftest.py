import asyncio

import numpy as np
import pandas as pd
import pytest

from mtf_signal_engine.config import EngineConfig
from mtf_signal_engine.data import DataFrameProvider
from mtf_signal_engine.errors import ProviderUnavailableError
from mtf_signal_engine.models import (
    SignalDirection,
    Timeframe,
    TimeframeSignal,
    TimeframeStatus,
    TrendAssessment,
    TrendDirection,
    TrendQuality,
)


def make_frame(closes, opens=None, highs=None, lows=None, volume=1000.0, freq="1h", start="2024-01-01"):
    closes = np.asarray(closes, dtype=float)
    opens = closes if opens is None else np.asarray(opens, dtype=float)
    highs = np.maximum(opens, closes) if highs is None else np.asarray(highs, dtype=float)
    lows = np.minimum(opens, closes) if lows is None else np.asarray(lows, dtype=float)
    index = pd.date_range(start=start, periods=len(closes), freq=freq, name="timestamp")
    return pd.DataFrame(
        {
            "open": opens,
            "high": highs,
            "low": lows,
            "close": closes,
            "volume": np.full(len(closes), volume) if np.isscalar(volume) else np.asarray(volume, dtype=float),
        },
        index=index,
    )


def rising(n=60, start_price=100.0):
    """Each close is the previous + 1, constant volume"""
    closes = start_price + np.arange(n, dtype=float)
    return make_frame(closes, opens=closes - 0.5, highs=closes + 0.5, lows=closes - 1.0)


def falling(n=60, start_price=200.0):
    closes = start_price - np.arange(n, dtype=float)
    return make_frame(closes, opens=closes + 0.5, highs=closes + 1.0, lows=closes - 0.5)


def flat(n=60, price=100.0):
    return make_frame(np.full(n, price))


def wave(n=120):
    """Oscillating series with a mild upward drift, producing pivots"""
    i = np.arange(n, dtype=float)
    closes = 100 + 5 * np.sin(i / 3.0) + 0.05 * i
    prev = np.concatenate([[closes[0]], closes[:-1]])
    opens = (prev + closes) / 2
    highs = np.maximum(opens, closes) + 0.3
    lows = np.minimum(opens, closes) - 0.3
    volume = 1000 + 200 * np.cos(i / 5.0)
    return make_frame(closes, opens=opens, highs=highs, lows=lows, volume=volume)


_SIGNAL_FOR_TREND = {
    TrendDirection.BULLISH: SignalDirection.BUY,
    TrendDirection.BEARISH: SignalDirection.SELL,
    TrendDirection.SIDEWAYS: SignalDirection.HOLD,
}


def make_signal(timeframe, trend=TrendDirection.BULLISH, strength=0.8, levels=(), confluences=(),
                divergences=(), last_close=100.0, as_of="2024-01-03", direction=None, indicators=None):
    """Valid TimeframeSignal built by hand for aggregation tests"""
    return TimeframeSignal(
        timeframe=Timeframe.parse(timeframe),
        status=TimeframeStatus.COMPLETE,
        indicators=indicators,
        trend=TrendAssessment(trend, strength, 45.0 * strength, TrendQuality.STRONG),
        levels=tuple(levels),
        patterns=(),
        direction=direction or _SIGNAL_FOR_TREND[trend],
        strength=strength,
        confluences=tuple(confluences),
        divergences=tuple(divergences),
        last_close=last_close,
        as_of=pd.Timestamp(as_of),
        candle_count=60,
    )


class FlakyProvider:
    """Fails a fixed number of times per timeframe before serving a frame"""

    def __init__(self, frame, failures=0, always_fail=()):
        self.frame = frame
        self.failures = failures
        self.always_fail = set(always_fail)
        self.calls = {}

    async def fetch_candles(self, symbol, timeframe, limit):
        count = self.calls.get(timeframe.value, 0) + 1
        self.calls[timeframe.value] = count
        if timeframe.value in self.always_fail or count <= self.failures:
            raise ProviderUnavailableError(symbol, timeframe.value, "upstream outage")
        return self.frame.tail(limit).copy()


class SlowProvider:
    """Never answers in time"""

    def __init__(self):
        self.cancelled = 0

    async def fetch_candles(self, symbol, timeframe, limit):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


@pytest.fixture
def config():
    return EngineConfig(FETCH_BACKOFF_SEC=0.0, FETCH_MAX_RETRIES=2)


@pytest.fixture
def rising_frame():
    return rising()


@pytest.fixture
def falling_frame():
    return falling()


@pytest.fixture
def flat_frame():
    return flat()


@pytest.fixture
def wave_frame():
    return wave()


@pytest.fixture
def short_frame():
    return rising(n=3)


@pytest.fixture
def replay_provider(rising_frame):
    return DataFrameProvider({None: rising_frame})
