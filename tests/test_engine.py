import asyncio
import json

import pytest

from conftest import FlakyProvider, SlowProvider, falling, rising
from mtf_signal_engine import (
    AnalysisDepth,
    AnalysisFailedError,
    AnalysisStatus,
    DataFrameProvider,
    SignalDirection,
    TechnicalAnalysisEngine,
    Timeframe,
    TimeframeStatus,
    TrendDirection,
)
from mtf_signal_engine.config import EngineConfig

ALL_TIMEFRAMES = ["1m", "5m", "15m", "1h", "4h", "1d"]


async def test_rising_series_scenario(config, replay_provider):
    engine = TechnicalAnalysisEngine(replay_provider, config)
    analysis = await engine.analyze("TEST", ALL_TIMEFRAMES)

    assert list(analysis.timeframes) == ALL_TIMEFRAMES
    for signal in analysis.timeframes.values():
        assert signal.direction is SignalDirection.BUY
    assert analysis.overall_trend.alignment_score == 1.0
    assert analysis.overall_trend.bullish_ratio == 1.0
    assert analysis.overall_trend.long_term is TrendDirection.BULLISH
    assert analysis.overall_trend.short_term is TrendDirection.BULLISH
    assert analysis.current_price == 159.0
    assert analysis.degraded_timeframes == ()
    assert analysis.status is AnalysisStatus.PARTIAL      # SMA-200 fallback


async def test_flat_series_scenario(config, flat_frame):
    engine = TechnicalAnalysisEngine(DataFrameProvider({None: flat_frame}), config)
    analysis = await engine.analyze("FLAT", ["15m", "1h", "1d"])

    for signal in analysis.timeframes.values():
        assert signal.indicators.momentum.rsi == 50.0
        assert signal.indicators.volatility.bb_width == 0.0
        assert signal.direction is SignalDirection.HOLD
    assert analysis.overall_trend.dominant is TrendDirection.SIDEWAYS


async def test_one_failed_timeframe_is_isolated(config):
    frames = {"5m": rising(), "15m": rising(), "1h": rising(), "1d": falling()}
    provider = DataFrameProvider(frames)       # nothing registered for 4h
    engine = TechnicalAnalysisEngine(provider, config)

    analysis = await engine.analyze("TEST", ["5m", "15m", "1h", "4h", "1d"])

    assert len(analysis.valid_signals) == 4
    degraded = analysis.timeframes["4h"]
    assert degraded.status is TimeframeStatus.DEGRADED
    assert degraded.failure_reason
    assert degraded.indicators is None
    assert analysis.degraded_timeframes == ("4h",)
    assert analysis.status is AnalysisStatus.DEGRADED
    assert analysis.is_degraded
    # 3 of the 4 valid slots are bullish; the placeholder is not counted
    assert analysis.overall_trend.alignment_score == pytest.approx(0.75)
    assert analysis.overall_trend.valid_timeframes == 4
    assert analysis.overall_trend.total_timeframes == 5
    assert any("4h" in risk for risk in analysis.setup_quality.risk_factors)


async def test_retry_recovers_a_timeframe(rising_frame):
    provider = FlakyProvider(rising_frame, failures=2)
    engine = TechnicalAnalysisEngine(provider, EngineConfig(FETCH_BACKOFF_SEC=0.0, FETCH_MAX_RETRIES=2))

    analysis = await engine.analyze("TEST", ["1h"])

    assert analysis.timeframes["1h"].is_valid
    assert provider.calls == {"1h": 3}


async def test_always_failing_timeframe_is_degraded_after_retries(rising_frame):
    provider = FlakyProvider(rising_frame, always_fail={"5m"})
    engine = TechnicalAnalysisEngine(provider, EngineConfig(FETCH_BACKOFF_SEC=0.0, FETCH_MAX_RETRIES=2))

    analysis = await engine.analyze("TEST", ["5m", "1h"])

    assert provider.calls["5m"] == 3
    assert provider.calls["1h"] == 1
    assert analysis.timeframes["5m"].status is TimeframeStatus.DEGRADED
    assert analysis.timeframes["1h"].is_valid


async def test_all_timeframes_failing_raises(rising_frame, config):
    provider = FlakyProvider(rising_frame, always_fail={"5m", "1h"})
    engine = TechnicalAnalysisEngine(provider, config)

    with pytest.raises(AnalysisFailedError) as exc:
        await engine.analyze("TEST", ["5m", "1h"])
    assert set(exc.value.failures) == {"5m", "1h"}


async def test_short_series_degrades_every_slot_and_fails(config, short_frame):
    engine = TechnicalAnalysisEngine(DataFrameProvider({None: short_frame}), config)
    with pytest.raises(AnalysisFailedError):
        await engine.analyze("TEST", ["5m", "1h"])


async def test_cancellation_propagates(config):
    provider = SlowProvider()
    engine = TechnicalAnalysisEngine(provider, config)

    task = asyncio.create_task(engine.analyze("TEST", ["5m", "1h", "1d"]))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert provider.cancelled == 3


async def test_timeout_returns_nothing_partial(config):
    engine = TechnicalAnalysisEngine(SlowProvider(), config)
    with pytest.raises(asyncio.TimeoutError):
        await engine.analyze("TEST", ["5m"], timeout=0.05)


async def test_analysis_is_idempotent(config, wave_frame):
    engine = TechnicalAnalysisEngine(DataFrameProvider({None: wave_frame}), config)

    first = await engine.analyze("WAVE", ["15m", "1h", "1d"])
    second = await engine.analyze("WAVE", ["15m", "1h", "1d"])

    assert first == second
    assert json.dumps(first.to_dict(), sort_keys=True) == json.dumps(second.to_dict(), sort_keys=True)


def test_timeframes_are_deduplicated_and_ordered(config, replay_provider):
    engine = TechnicalAnalysisEngine(replay_provider, config)
    assert engine.normalize_timeframes(["1d", "5m", Timeframe.M5, "60m"]) == [
        Timeframe.M5, Timeframe.H1, Timeframe.D1,
    ]


def test_analyze_sync_and_basic_depth(config, replay_provider):
    engine = TechnicalAnalysisEngine(replay_provider, config)
    analysis = engine.analyze_sync("TEST", ["1h"], depth=AnalysisDepth.BASIC)

    assert analysis.depth is AnalysisDepth.BASIC
    assert analysis.timeframes["1h"].indicators.ichimoku is None


def test_analyze_frames_without_provider(config, wave_frame):
    engine = TechnicalAnalysisEngine(config=config)
    analysis = engine.analyze_frames("WAVE", {"1h": wave_frame, "1d": wave_frame})

    assert set(analysis.timeframes) == {"1h", "1d"}
    assert analysis.as_of == wave_frame.index[-1]
    payload = analysis.to_dict()
    assert payload["symbol"] == "WAVE"
    assert payload["timeframes"]["1h"]["timeframe"] == "1h"
    json.dumps(payload)


class BrokenTimeframeProvider(DataFrameProvider):
    """Serves frames but raises an unexpected error for one timeframe"""

    def __init__(self, frame, broken):
        super().__init__({None: frame})
        self.broken = broken

    async def fetch_candles(self, symbol, timeframe, limit):
        if timeframe.value == self.broken:
            raise RuntimeError("upstream returned garbage")
        return await super().fetch_candles(symbol, timeframe, limit)


async def test_unexpected_provider_error_degrades_one_timeframe(config, rising_frame):
    engine = TechnicalAnalysisEngine(BrokenTimeframeProvider(rising_frame, "4h"), config)

    analysis = await engine.analyze("TEST", ["5m", "15m", "1h", "4h", "1d"])

    assert len(analysis.valid_signals) == 4
    broken = analysis.timeframes["4h"]
    assert broken.status is TimeframeStatus.DEGRADED
    assert broken.failure_reason == "RuntimeError: upstream returned garbage"
    assert analysis.degraded_timeframes == ("4h",)
    assert analysis.overall_trend.alignment_score == 1.0


async def test_unparseable_candle_is_dropped_not_fatal(config):
    bad = rising()
    bad['close'] = bad['close'].astype(object)
    bad.iloc[10, bad.columns.get_loc('close')] = "n/a"
    provider = DataFrameProvider({"15m": rising(), "1h": rising(), "4h": bad, "1d": rising()})

    analysis = await TechnicalAnalysisEngine(provider, config).analyze("TEST", ["15m", "1h", "4h", "1d"])

    four_hour = analysis.timeframes["4h"]
    assert four_hour.is_valid
    assert four_hour.rejected_candles == 1
    assert four_hour.status is TimeframeStatus.PARTIAL
    assert analysis.degraded_timeframes == ()


def test_unexpected_pipeline_error_degrades_one_timeframe(config, wave_frame, monkeypatch):
    engine = TechnicalAnalysisEngine(config=config)
    run = engine.pipeline.run

    def failing_on_daily(frame, tf, depth=AnalysisDepth.COMPREHENSIVE):
        if tf is Timeframe.D1:
            raise KeyError("close")
        return run(frame, tf, depth)

    monkeypatch.setattr(engine.pipeline, "run", failing_on_daily)
    analysis = engine.analyze_frames("WAVE", {"1h": wave_frame, "1d": wave_frame})

    assert analysis.timeframes["1h"].is_valid
    assert analysis.timeframes["1d"].failure_reason == "KeyError: 'close'"
    assert analysis.degraded_timeframes == ("1d",)


def test_analysis_snapshot_is_read_only(config, wave_frame):
    analysis = TechnicalAnalysisEngine(config=config).analyze_frames("WAVE", {"1h": wave_frame})

    with pytest.raises(TypeError):
        analysis.timeframes["1d"] = analysis.timeframes["1h"]
    with pytest.raises(TypeError):
        analysis.setup_quality.factors["alignment"] = 30.0
    with pytest.raises(TypeError):
        analysis.timeframes["1h"].indicators.moving_averages.sma[20] = 0.0
    assert isinstance(analysis.to_dict()["setup_quality"]["factors"], dict)
