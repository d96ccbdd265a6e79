"""
Timeframe Signal Fuser
Pure scoring function turning one timeframe's indicators, trend and patterns
into a buy/sell/hold decision with a named record of every contribution.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from loguru import logger

from ..config import CONFIG, EngineConfig
from ..models import (
    IndicatorSet,
    PatternMatch,
    PatternPolarity,
    SignalContribution,
    SignalDirection,
    TrendAssessment,
    TrendDirection,
    TrendQuality,
)


@dataclass(frozen=True)
class FusedSignal:
    direction: SignalDirection
    strength: float
    score: float                            # signed accumulator before clamping
    confluences: Tuple[str, ...]
    divergences: Tuple[str, ...]
    contributions: Tuple[SignalContribution, ...]


class TimeframeSignalFuser:
    """Weighted evidence accumulator; holds no state between calls"""

    def __init__(self, config: EngineConfig = CONFIG):
        self.config = config
        self.weights = config.FUSION

    def fuse(
        self,
        indicators: IndicatorSet,
        trend: TrendAssessment,
        patterns: Sequence[PatternMatch],
    ) -> FusedSignal:
        w = self.weights
        contributions: List[SignalContribution] = []

        def add(name: str, weight: float, source: str):
            contributions.append(SignalContribution(name, weight, source))

        # EMA ordering
        ma = indicators.moving_averages
        if ma.ema_fast is not None and ma.ema_slow is not None:
            if ma.ema_fast > ma.ema_slow:
                add("ema_fast_above_slow", w.EMA_BULLISH, "ema")
            elif ma.ema_fast < ma.ema_slow:
                add("ema_fast_below_slow", w.EMA_BEARISH, "ema")

        # RSI band
        rsi = indicators.momentum.rsi
        if rsi is not None:
            if rsi < self.config.RSI_OVERSOLD:
                add("rsi_oversold_reversal", w.RSI_OVERSOLD, "rsi")
            elif rsi > self.config.RSI_OVERBOUGHT:
                add("rsi_overbought", w.RSI_OVERBOUGHT, "rsi")
            else:
                add("rsi_healthy_range", w.RSI_HEALTHY, "rsi")

        # Strong trend
        if trend.quality is TrendQuality.STRONG:
            if trend.direction is TrendDirection.BULLISH:
                add("strong_bullish_trend", w.TREND_STRONG_BULLISH, "trend")
            elif trend.direction is TrendDirection.BEARISH:
                add("strong_bearish_trend", w.TREND_STRONG_BEARISH, "trend")

        # Pattern polarity majority
        bullish = sum(1 for p in patterns if p.polarity is PatternPolarity.BULLISH)
        bearish = sum(1 for p in patterns if p.polarity is PatternPolarity.BEARISH)
        if bullish > bearish:
            add("bullish_pattern_majority", w.PATTERN_MAJORITY, "patterns")
        elif bearish > bullish:
            add("bearish_pattern_majority", -w.PATTERN_MAJORITY, "patterns")

        score = sum(c.weight for c in contributions)
        if score > w.BUY_THRESHOLD:
            direction = SignalDirection.BUY
        elif score < w.SELL_THRESHOLD:
            direction = SignalDirection.SELL
        else:
            direction = SignalDirection.HOLD

        # Confluence = agrees with the fused direction (positive unless selling)
        bullish_side = direction is not SignalDirection.SELL
        confluences = tuple(
            c.name for c in contributions if c.weight != 0 and (c.weight > 0) == bullish_side
        )
        divergences = tuple(
            c.name for c in contributions if c.weight != 0 and (c.weight > 0) != bullish_side
        )

        strength = min(max(abs(score), 0.0), 1.0)
        logger.debug(f"Fused score={score:+.2f} -> {direction.value} ({', '.join(c.name for c in contributions)})")
        return FusedSignal(
            direction=direction,
            strength=strength,
            score=score,
            confluences=confluences,
            divergences=divergences,
            contributions=tuple(contributions),
        )
