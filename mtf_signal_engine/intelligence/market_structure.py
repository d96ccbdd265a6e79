"""
Market structure flags
Higher-highs/higher-lows structure, ATR volatility regime, VWAP position,
volume confirmation and proximity to critical levels.
"""

from typing import Optional

import pandas as pd

from ..config import CONFIG, EngineConfig
from ..models import (
    CriticalLevels,
    MarketStructureFlags,
    StructureTrend,
    TimeframeSignal,
    VolatilityRegime,
)


def detect_structure_trend(candles: pd.DataFrame, lookback: int = 5) -> StructureTrend:
    """
    Detect if the market is making higher highs/lows (bullish) or lower
    highs/lows (bearish) over the last `lookback` candles.
    """
    if candles is None or len(candles) < lookback or lookback < 2:
        return StructureTrend.UNKNOWN

    recent = candles.tail(lookback)
    highs = recent['high'].values
    lows = recent['low'].values
    needed = max(1, lookback - 2)

    higher_highs = sum(1 for i in range(1, len(highs)) if highs[i] > highs[i - 1])
    higher_lows = sum(1 for i in range(1, len(lows)) if lows[i] > lows[i - 1])
    lower_highs = sum(1 for i in range(1, len(highs)) if highs[i] < highs[i - 1])
    lower_lows = sum(1 for i in range(1, len(lows)) if lows[i] < lows[i - 1])

    if higher_highs >= needed and higher_lows >= needed:
        return StructureTrend.HIGHER_HIGHS_LOWS
    if lower_highs >= needed and lower_lows >= needed:
        return StructureTrend.LOWER_HIGHS_LOWS
    return StructureTrend.CHOPPY


def classify_volatility(atr: Optional[float], price: float, config: EngineConfig = CONFIG) -> VolatilityRegime:
    """Bucket ATR / price into quiet, normal, high or extreme"""
    if atr is None or price <= 0:
        return VolatilityRegime.UNKNOWN
    atr_ratio = atr / price
    if atr_ratio < config.VOLATILITY_QUIET_ATR_RATIO:
        return VolatilityRegime.QUIET
    if atr_ratio < config.VOLATILITY_NORMAL_ATR_RATIO:
        return VolatilityRegime.NORMAL
    if atr_ratio < config.VOLATILITY_HIGH_ATR_RATIO:
        return VolatilityRegime.HIGH
    return VolatilityRegime.EXTREME


def build_market_structure(
    reference: TimeframeSignal,
    structure_candles: Optional[pd.DataFrame],
    current_price: float,
    critical_levels: CriticalLevels,
    config: EngineConfig = CONFIG,
) -> MarketStructureFlags:
    """
    Args:
        reference: Signal of the timeframe that supplies the current price
        structure_candles: Candles of the longest valid timeframe
        current_price: Latest close
        critical_levels: Consolidated cross-timeframe levels
    """
    indicators = reference.indicators
    atr = indicators.volatility.atr if indicators else None
    vwap = indicators.volume.vwap if indicators else None

    near = config.NEAR_LEVEL_PCT * current_price
    near_support = any(
        0 <= current_price - level.price <= near for level in critical_levels.supports
    )
    near_resistance = any(
        0 <= level.price - current_price <= near for level in critical_levels.resistances
    )

    return MarketStructureFlags(
        structure_trend=detect_structure_trend(structure_candles, config.STRUCTURE_LOOKBACK),
        volatility_regime=classify_volatility(atr, current_price, config),
        price_above_vwap=None if vwap is None else current_price > vwap,
        volume_confirmed=reference.volume_confirmed,
        near_support=near_support,
        near_resistance=near_resistance,
        reference_timeframe=reference.timeframe.value,
    )
