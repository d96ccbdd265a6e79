import numpy as np
import pandas as pd
import pytest

from conftest import make_frame
from mtf_signal_engine.config import EngineConfig
from mtf_signal_engine.intelligence import LevelDetector, consolidate_levels
from mtf_signal_engine.models import LevelKind, LevelSignificance, SupportResistanceLevel


@pytest.fixture
def spiky_frame():
    n = 30
    opens = np.full(n, 95.0)
    closes = np.full(n, 95.0)
    highs = np.full(n, 96.0)
    lows = np.full(n, 94.0)

    closes[10], highs[10] = 104.0, 105.0        # pivot high
    closes[20], highs[20] = 104.0, 104.8        # retest within 0.5%
    closes[15], lows[15] = 86.0, 85.0           # pivot low at the series low
    closes[25], lows[25] = 91.0, 90.0           # pivot low far from the extreme
    return make_frame(closes, opens=opens, highs=highs, lows=lows)


def test_detect_pivots(spiky_frame):
    highs, lows = LevelDetector(EngineConfig()).detect_pivots(spiky_frame)
    assert highs == [10, 20]
    assert lows == [15, 25]


def test_touches_count_later_candles_within_tolerance(spiky_frame):
    touches, last = LevelDetector(EngineConfig()).count_touches(spiky_frame, 10, 105.0)
    assert touches == 2
    assert last == spiky_frame.index[20]


def test_detect_scores_and_merges(spiky_frame):
    levels = LevelDetector(EngineConfig()).detect(spiky_frame, "1h")
    assert len(levels) == 3

    resistance = levels[0]
    assert resistance.kind is LevelKind.RESISTANCE
    assert resistance.price == pytest.approx(104.9)
    assert resistance.touch_count == 3
    # max(3, 1) + 2 members - 1
    assert resistance.strength == 4
    assert resistance.significance is LevelSignificance.MAJOR
    assert resistance.last_tested == spiky_frame.index[20]
    assert resistance.timeframes == ("1h",)

    supports = {round(l.price, 2): l for l in levels if l.kind is LevelKind.SUPPORT}
    assert supports[85.0].significance is LevelSignificance.MAJOR
    assert supports[85.0].strength == 1
    assert supports[90.0].significance is LevelSignificance.MINOR


def test_strength_is_capped_at_ten():
    n = 40
    closes = np.full(n, 100.0)
    highs = np.full(n, 100.6)
    highs[5] = 101.0                              # pivot, every later candle is within 0.5%
    levels = LevelDetector(EngineConfig()).detect(make_frame(closes, highs=highs, lows=closes - 0.6))
    top = levels[0]
    assert top.touch_count == n - 5
    assert top.strength == 10


def test_consolidated_levels_are_never_within_tolerance(wave_frame):
    config = EngineConfig()
    levels = LevelDetector(config).detect(wave_frame, "15m")
    assert levels
    prices = sorted(l.price for l in levels)
    for lower, upper in zip(prices, prices[1:]):
        assert (upper - lower) > lower * config.LEVEL_MERGE_TOLERANCE_PCT
    assert all(1 <= l.strength <= 10 for l in levels)


def _level(price, strength=3, kind=LevelKind.SUPPORT, significance=LevelSignificance.MAJOR, tf="1h"):
    return SupportResistanceLevel(
        price=price,
        strength=strength,
        touch_count=(strength + 1) // 2,
        last_tested=pd.Timestamp("2024-01-01"),
        kind=kind,
        significance=significance,
        timeframes=(tf,),
    )


def test_cross_timeframe_major_levels_become_critical():
    merged = consolidate_levels(
        [_level(100.0, tf="1h"), _level(100.5, tf="1d"), _level(120.0, significance=LevelSignificance.MINOR)],
        tolerance_pct=0.01,
        top_n=5,
        promote_critical=True,
    )
    by_price = {round(l.price, 2): l for l in merged}
    assert by_price[100.25].significance is LevelSignificance.CRITICAL
    assert by_price[100.25].timeframes == ("1d", "1h")
    assert by_price[120.0].significance is LevelSignificance.MINOR


def test_consolidation_keeps_top_n_by_strength():
    levels = [_level(100.0 + 10 * i, strength=i + 1) for i in range(8)]
    kept = consolidate_levels(levels, tolerance_pct=0.01, top_n=3)
    assert [l.strength for l in kept] == [8, 7, 6]
