"""
Trend Analyzer
Fits a least-squares line to recent closes and classifies direction,
strength and quality, then checks the indicator set for confirmation.
"""

import math
from typing import List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from ..config import CONFIG, EngineConfig
from ..models import (
    IndicatorSet,
    MACDValues,
    MomentumState,
    TrendAssessment,
    TrendDirection,
    TrendQuality,
)


class TrendAnalyzer:
    """Linear-regression trend classification for one candle series"""

    def __init__(self, config: EngineConfig = CONFIG):
        self.config = config

    def fit(self, closes: pd.Series):
        """
        Regression over the last TREND_LOOKBACK closes

        The slope is normalised by the mean absolute close-to-close change of
        the same window before conversion to an angle, so a series moving by
        its typical step every candle sits at 45 degrees.

        Returns:
            (raw slope, angle in degrees, r squared)
        """
        window = closes.iloc[-self.config.TREND_LOOKBACK:].to_numpy(dtype=float)
        if len(window) < 2:
            return 0.0, 0.0, 0.0

        x = np.arange(len(window), dtype=float)
        slope, intercept = np.polyfit(x, window, 1)

        fitted = slope * x + intercept
        ss_res = float(((window - fitted) ** 2).sum())
        ss_tot = float(((window - window.mean()) ** 2).sum())
        r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

        step = float(np.abs(np.diff(window)).mean())
        if step <= 0 or abs(slope) < 1e-12:
            return 0.0, 0.0, r_squared
        angle = math.degrees(math.atan(slope / step))
        return float(slope), angle, r_squared

    def analyze(self, df: pd.DataFrame, indicators: Optional[IndicatorSet] = None) -> TrendAssessment:
        slope, angle, r_squared = self.fit(df['close'])

        if angle > self.config.TREND_SIDEWAYS_ANGLE:
            direction = TrendDirection.BULLISH
        elif angle < -self.config.TREND_SIDEWAYS_ANGLE:
            direction = TrendDirection.BEARISH
        else:
            direction = TrendDirection.SIDEWAYS

        strength = min(abs(angle) / 45.0, 1.0)
        if strength > self.config.TREND_STRONG:
            quality = TrendQuality.STRONG
        elif strength > self.config.TREND_MODERATE:
            quality = TrendQuality.MODERATE
        else:
            quality = TrendQuality.WEAK

        confirming, divergences = self._confirmations(direction, indicators)

        logger.debug(
            f"Trend {direction.value} angle={angle:.1f} strength={strength:.2f} "
            f"confirming={confirming} divergences={divergences}"
        )
        return TrendAssessment(
            direction=direction,
            strength=strength,
            slope_angle=angle,
            quality=quality,
            confirming_signals=tuple(confirming),
            divergences=tuple(divergences),
            slope=slope,
            r_squared=r_squared,
        )

    def _confirmations(self, direction: TrendDirection, indicators: Optional[IndicatorSet]):
        confirming: List[str] = []
        divergences: List[str] = []
        if indicators is None:
            return confirming, divergences

        adx = indicators.trend_strength.adx
        if direction is TrendDirection.SIDEWAYS:
            if adx is not None and adx < self.config.ADX_TREND_THRESHOLD:
                confirming.append("adx_ranging")
            return confirming, divergences

        bullish = direction is TrendDirection.BULLISH

        ma = indicators.moving_averages
        if ma.ema_fast is not None and ma.ema_slow is not None and ma.ema_fast != ma.ema_slow:
            above = ma.ema_fast > ma.ema_slow
            name = "ema_fast_above_slow" if above else "ema_fast_below_slow"
            (confirming if above == bullish else divergences).append(name)

        rsi = indicators.momentum.rsi
        if rsi is not None and rsi != 50:
            above = rsi > 50
            name = "rsi_above_50" if above else "rsi_below_50"
            (confirming if above == bullish else divergences).append(name)

        if adx is not None and adx > self.config.ADX_TREND_THRESHOLD:
            confirming.append("adx_trending")

        return confirming, divergences

    @staticmethod
    def momentum_state(macd: MACDValues) -> MomentumState:
        """Direction of the MACD histogram over its last two values"""
        if macd.histogram is None or macd.prev_histogram is None:
            return MomentumState.NEUTRAL
        if macd.histogram > macd.prev_histogram:
            return MomentumState.INCREASING
        if macd.histogram < macd.prev_histogram:
            return MomentumState.DECREASING
        return MomentumState.NEUTRAL
