"""
Per-timeframe pipeline: validate -> indicators -> trend / levels / patterns -> fuse

Pure and synchronous; each call owns its candle series and shares nothing
with other timeframes.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

import pandas as pd
from loguru import logger

from ..config import CONFIG, EngineConfig
from ..data.candles import validate_candles
from ..errors import InsufficientDataError
from ..indicators import build_indicator_set
from ..models import AnalysisDepth, Timeframe, TimeframeSignal, TimeframeStatus
from .level_detector import LevelDetector
from .pattern_recognizer import PatternRecognizer
from .signal_fuser import TimeframeSignalFuser
from .trend_analyzer import TrendAnalyzer


@dataclass(frozen=True, eq=False)
class PipelineResult:
    signal: TimeframeSignal
    candles: pd.DataFrame                   # validated series the signal was built from


def _unique(*groups: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for group in groups:
        for name in group:
            if name not in seen:
                seen.append(name)
    return tuple(seen)


class TimeframePipeline:
    """Runs the full single-timeframe analysis chain"""

    def __init__(self, config: EngineConfig = CONFIG):
        self.config = config
        self.trend_analyzer = TrendAnalyzer(config)
        self.level_detector = LevelDetector(config)
        self.pattern_recognizer = PatternRecognizer(config)
        self.fuser = TimeframeSignalFuser(config)

    def run(
        self,
        df: pd.DataFrame,
        timeframe: Timeframe,
        depth: AnalysisDepth = AnalysisDepth.COMPREHENSIVE,
    ) -> PipelineResult:
        """
        Analyze one candle series

        Raises:
            InvalidCandleError: invalid candles under the strict policy
            InsufficientDataError: fewer than MIN_CANDLES valid candles
        """
        tf = timeframe.value
        candles, rejected = validate_candles(df, self.config.CANDLE_POLICY, timeframe=tf)
        if len(candles) < self.config.MIN_CANDLES:
            raise InsufficientDataError(f"timeframe {tf}", self.config.MIN_CANDLES, len(candles))

        indicators = build_indicator_set(candles, self.config, depth)
        trend = self.trend_analyzer.analyze(candles, indicators)
        levels = self.level_detector.detect(candles, tf)
        patterns = self.pattern_recognizer.detect(candles, tf)
        fused = self.fuser.fuse(indicators, trend, patterns)

        vol = indicators.volume
        volume_confirmed = (
            vol.last_volume is not None
            and vol.volume_sma is not None
            and vol.volume_sma > 0
            and vol.last_volume > vol.volume_sma
        )
        status = TimeframeStatus.COMPLETE
        if not indicators.is_complete or rejected:
            status = TimeframeStatus.PARTIAL

        logger.debug(
            f"[{tf}] {len(candles)} candles -> {fused.direction.value} "
            f"strength={fused.strength:.2f} trend={trend.direction.value} status={status.value}"
        )
        signal = TimeframeSignal(
            timeframe=timeframe,
            status=status,
            indicators=indicators,
            trend=trend,
            levels=levels,
            patterns=patterns,
            direction=fused.direction,
            strength=fused.strength,
            confluences=_unique(fused.confluences, trend.confirming_signals),
            divergences=_unique(fused.divergences, trend.divergences),
            contributions=fused.contributions,
            momentum=self.trend_analyzer.momentum_state(indicators.macd),
            volume_confirmed=volume_confirmed,
            last_close=float(candles['close'].iloc[-1]),
            as_of=pd.Timestamp(candles.index[-1]),
            candle_count=len(candles),
            rejected_candles=rejected,
        )
        return PipelineResult(signal=signal, candles=candles)
