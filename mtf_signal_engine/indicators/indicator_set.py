"""
Builds one IndicatorSet per candle series

Indicators that cannot be computed at their configured window either fall
back to a shorter one (SMA only, flagged in `degraded`) or abstain (value None,
flagged in `unavailable`). Nothing is ever fabricated.
"""

import math
from typing import Callable, List, Optional

import pandas as pd
from loguru import logger

from ..config import CONFIG, EngineConfig
from ..errors import InsufficientDataError
from ..models import (
    AnalysisDepth,
    IchimokuCloud,
    IndicatorSet,
    MACDValues,
    MomentumIndicators,
    MovingAverages,
    TrendStrengthIndicators,
    VolatilityIndicators,
    VolumeIndicators,
    VolumeProfile,
)
from .advanced import calculate_ichimoku, calculate_volume_profile
from .technical import TechnicalIndicators as TI


def last_value(series: Optional[pd.Series], offset: int = 1) -> Optional[float]:
    """Value `offset` positions from the end, None when missing or NaN"""
    if series is None or len(series) < offset:
        return None
    value = series.iloc[-offset]
    if value is None or pd.isna(value) or not math.isfinite(float(value)):
        return None
    return float(value)


class _Collector:
    """Runs indicator functions and records abstentions"""

    def __init__(self):
        self.unavailable: List[str] = []
        self.degraded: List[str] = []

    def attempt(self, name: str, fn: Callable):
        try:
            return fn()
        except InsufficientDataError as e:
            logger.debug(f"{name} abstained: {e}")
            self.unavailable.append(name)
            return None


def build_indicator_set(
    df: pd.DataFrame,
    config: EngineConfig = CONFIG,
    depth: AnalysisDepth = AnalysisDepth.COMPREHENSIVE,
) -> IndicatorSet:
    """
    Compute every indicator family at the last candle of `df`

    Args:
        df: Validated candle series
        config: Engine configuration (windows and periods)
        depth: COMPREHENSIVE adds Ichimoku and the volume profile

    Returns:
        IndicatorSet with degraded/unavailable indicator names
    """
    c = _Collector()
    close = df['close']
    n = len(df)

    # Moving averages
    sma_values = {}
    sma_windows = {}
    for period in config.SMA_PERIODS:
        period = int(period)
        window = period
        if n < period:
            if n >= config.SMA_FALLBACK_MIN:
                window = n
                c.degraded.append(f"sma_{period}")
                logger.debug(f"SMA({period}) falling back to window {n}")
            else:
                c.unavailable.append(f"sma_{period}")
                sma_values[period] = None
                continue
        sma_values[period] = last_value(TI.calculate_sma(close, window))
        sma_windows[period] = window

    ema_fast = c.attempt("ema_fast", lambda: TI.calculate_ema(close, config.EMA_FAST))
    ema_slow = c.attempt("ema_slow", lambda: TI.calculate_ema(close, config.EMA_SLOW))
    moving_averages = MovingAverages(
        sma=sma_values,
        sma_windows=sma_windows,
        ema_fast=last_value(ema_fast),
        ema_slow=last_value(ema_slow),
        ema_fast_period=config.EMA_FAST,
        ema_slow_period=config.EMA_SLOW,
    )

    # Momentum
    rsi = c.attempt("rsi", lambda: TI.calculate_rsi(close, config.RSI_PERIOD, config.RSI_NEUTRAL))
    stoch = c.attempt(
        "stochastic", lambda: TI.calculate_stochastic(df, config.STOCH_K_PERIOD, config.STOCH_D_PERIOD)
    ) or {}
    momentum = MomentumIndicators(
        rsi=last_value(rsi),
        stoch_k=last_value(stoch.get('k')),
        stoch_d=last_value(stoch.get('d')),
    )

    macd = c.attempt(
        "macd", lambda: TI.calculate_macd(close, config.MACD_FAST, config.MACD_SLOW, config.MACD_SIGNAL)
    ) or {}
    macd_values = MACDValues(
        macd=last_value(macd.get('macd')),
        signal=last_value(macd.get('signal')),
        histogram=last_value(macd.get('histogram')),
        prev_histogram=last_value(macd.get('histogram'), offset=2),
    )

    # Trend strength
    adx = c.attempt("adx", lambda: TI.calculate_adx(df, config.ADX_PERIOD)) or {}
    aroon = c.attempt("aroon", lambda: TI.calculate_aroon(df, config.AROON_PERIOD)) or {}
    trend_strength = TrendStrengthIndicators(
        adx=last_value(adx.get('adx')),
        plus_di=last_value(adx.get('plus_di')),
        minus_di=last_value(adx.get('minus_di')),
        aroon_up=last_value(aroon.get('up')),
        aroon_down=last_value(aroon.get('down')),
    )

    # Volatility
    atr = c.attempt("atr", lambda: TI.calculate_atr(df, config.ATR_PERIOD))
    bands = c.attempt(
        "bollinger", lambda: TI.calculate_bollinger_bands(close, config.BB_PERIOD, config.BB_STD_DEV)
    ) or {}
    volatility = VolatilityIndicators(
        atr=last_value(atr),
        bb_upper=last_value(bands.get('upper')),
        bb_middle=last_value(bands.get('middle')),
        bb_lower=last_value(bands.get('lower')),
        bb_width=last_value(bands.get('width')),
    )

    # Volume
    obv = c.attempt("obv", lambda: TI.calculate_obv(df))
    volume_sma = c.attempt("volume_sma", lambda: TI.calculate_volume_sma(df, config.VOLUME_MA_PERIOD))
    vwap = c.attempt("vwap", lambda: TI.calculate_vwap(df))
    if vwap is not None and n and float(df['volume'].clip(lower=0).sum()) == 0:
        c.degraded.append("vwap")
    volume = VolumeIndicators(
        obv=last_value(obv),
        volume_sma=last_value(volume_sma),
        vwap=last_value(vwap),
        last_volume=last_value(df['volume']),
    )

    ichimoku = None
    profile = None
    if depth is AnalysisDepth.COMPREHENSIVE:
        cloud = c.attempt(
            "ichimoku",
            lambda: calculate_ichimoku(
                df, config.ICHIMOKU_CONVERSION, config.ICHIMOKU_BASE, config.ICHIMOKU_SPAN_B
            ),
        )
        if cloud is not None:
            ichimoku = IchimokuCloud(
                conversion_line=last_value(cloud['conversion']),
                base_line=last_value(cloud['base']),
                leading_span_a=last_value(cloud['span_a']),
                leading_span_b=last_value(cloud['span_b']),
            )
        vp = c.attempt(
            "volume_profile",
            lambda: calculate_volume_profile(df, config.VOLUME_PROFILE_BINS, config.VALUE_AREA_PCT),
        )
        if vp is not None:
            profile = VolumeProfile(
                point_of_control=vp['poc'],
                value_area_high=vp['value_area_high'],
                value_area_low=vp['value_area_low'],
            )

    return IndicatorSet(
        moving_averages=moving_averages,
        momentum=momentum,
        macd=macd_values,
        trend_strength=trend_strength,
        volatility=volatility,
        volume=volume,
        ichimoku=ichimoku,
        volume_profile=profile,
        degraded=tuple(c.degraded),
        unavailable=tuple(c.unavailable),
        candle_count=n,
    )
