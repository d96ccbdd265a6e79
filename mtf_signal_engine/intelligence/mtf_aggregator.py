"""
Cross-Timeframe Aggregator
Joins independent timeframe signals into one ComprehensiveAnalysis:
horizon majority votes, alignment, consolidated critical levels, pivots,
Fibonacci retracements, market structure and the setup score.

Degraded timeframes keep their placeholder slot in the output but never enter
vote or alignment denominators.
"""

from collections import Counter
from dataclasses import replace
from typing import List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from ..config import CONFIG, EngineConfig
from ..errors import AnalysisFailedError
from ..indicators import TechnicalIndicators
from ..models import (
    AnalysisDepth,
    AnalysisStatus,
    ComprehensiveAnalysis,
    CriticalLevels,
    FibonacciLevels,
    Horizon,
    LevelKind,
    OverallTrend,
    PivotPoints,
    Timeframe,
    TimeframeSignal,
    TimeframeStatus,
    TrendDirection,
)
from .level_detector import consolidate_levels
from .market_structure import build_market_structure
from .setup_scorer import SetupQualityScorer


def majority_direction(directions: Sequence[TrendDirection]) -> TrendDirection:
    """Plurality vote; empty input or a tie at the top is sideways"""
    counts = Counter(directions).most_common()
    if not counts:
        return TrendDirection.SIDEWAYS
    if len(counts) > 1 and counts[0][1] == counts[1][1]:
        return TrendDirection.SIDEWAYS
    return counts[0][0]


class CrossTimeframeAggregator:
    """Consensus across the per-timeframe results of one analysis request"""

    def __init__(self, config: EngineConfig = CONFIG, scorer: Optional[SetupQualityScorer] = None):
        self.config = config
        self.scorer = scorer or SetupQualityScorer(config)

    def overall_trend(self, signals: Sequence[TimeframeSignal], total: int) -> OverallTrend:
        """
        Horizon votes and alignment over valid slots only

        Alignment is the share of the largest group agreeing on one direction.
        When two groups tie for the top the dominant direction is sideways but
        alignment still reports the tied share (2 bullish, 2 bearish, 1 sideways
        gives sideways with alignment 0.4).
        """
        valid = [s for s in signals if s.is_valid]

        def bucket(horizon: Horizon) -> TrendDirection:
            return majority_direction([s.trend.direction for s in valid if s.timeframe.horizon is horizon])

        directions = [s.trend.direction for s in valid]
        dominant = majority_direction(directions)
        n = len(valid)
        counts = Counter(directions)
        agreeing = max(counts.values()) if counts else 0
        return OverallTrend(
            short_term=bucket(Horizon.SHORT),
            medium_term=bucket(Horizon.MEDIUM),
            long_term=bucket(Horizon.LONG),
            dominant=dominant,
            alignment_score=agreeing / n if n else 0.0,
            bullish_ratio=sum(1 for d in directions if d is TrendDirection.BULLISH) / n if n else 0.0,
            average_strength=float(np.mean([s.trend.strength for s in valid])) if n else 0.0,
            valid_timeframes=n,
            total_timeframes=total,
        )

    def critical_levels(
        self,
        signals: Sequence[TimeframeSignal],
        current_price: float,
        reference_candles: Optional[pd.DataFrame],
        dominant: TrendDirection,
    ) -> CriticalLevels:
        """
        Merge every timeframe's levels, re-labelled relative to the current
        price, then add pivots and Fibonacci retracements from the recent
        high/low window of the longest valid timeframe
        """
        pooled = []
        for s in signals:
            for level in s.levels:
                if level.price > current_price:
                    level = replace(level, kind=LevelKind.RESISTANCE)
                elif level.price < current_price:
                    level = replace(level, kind=LevelKind.SUPPORT)
                pooled.append(level)

        merged = consolidate_levels(
            pooled,
            tolerance_pct=self.config.LEVEL_MERGE_TOLERANCE_PCT,
            top_n=self.config.CRITICAL_LEVEL_TOP_N,
            promote_critical=True,
        )

        pivots = None
        fibonacci = None
        if reference_candles is not None and not reference_candles.empty:
            window = reference_candles.tail(self.config.FIB_LOOKBACK)
            high = float(window['high'].max())
            low = float(window['low'].min())
            close = float(window['close'].iloc[-1])
            pivots = PivotPoints(**TechnicalIndicators.calculate_pivot_points(high, low, close))

            from_high = dominant is TrendDirection.BULLISH
            fib = TechnicalIndicators.calculate_fibonacci_levels(
                high, low, self.config.FIB_RATIOS, from_high=from_high
            )
            fibonacci = FibonacciLevels(
                swing_high=high,
                swing_low=low,
                measured_from=TrendDirection.BULLISH if from_high else TrendDirection.BEARISH,
                levels=tuple((float(ratio), float(price)) for ratio, price in fib.items()),
            )

        return CriticalLevels(levels=merged, pivots=pivots, fibonacci=fibonacci)

    def aggregate(
        self,
        symbol: str,
        signals: Mapping[Timeframe, TimeframeSignal],
        candles: Mapping[Timeframe, pd.DataFrame],
        depth: AnalysisDepth = AnalysisDepth.COMPREHENSIVE,
    ) -> ComprehensiveAnalysis:
        """
        Join all timeframe results; every slot must be terminal (valid or placeholder)

        Raises:
            AnalysisFailedError: no timeframe produced a valid signal
        """
        ordered: List[TimeframeSignal] = [signals[tf] for tf in sorted(signals, key=lambda t: t.minutes)]
        valid = [s for s in ordered if s.is_valid]
        degraded = tuple(s.timeframe.value for s in ordered if not s.is_valid)

        if not valid:
            failures = {s.timeframe.value: s.failure_reason or "unavailable" for s in ordered}
            logger.error(f"{symbol}: every timeframe failed ({len(failures)})")
            raise AnalysisFailedError(symbol, failures)

        shortest, longest = valid[0], valid[-1]
        current_price = float(shortest.last_close)
        overall = self.overall_trend(ordered, total=len(ordered))
        levels = self.critical_levels(valid, current_price, candles.get(longest.timeframe), overall.dominant)
        structure = build_market_structure(
            shortest, candles.get(longest.timeframe), current_price, levels, self.config
        )
        setup = self.scorer.score(valid, overall, levels, current_price, degraded)

        if degraded:
            status = AnalysisStatus.DEGRADED
        elif any(s.status is TimeframeStatus.PARTIAL for s in valid):
            status = AnalysisStatus.PARTIAL
        else:
            status = AnalysisStatus.COMPLETE

        as_of = max(s.as_of for s in valid if s.as_of is not None)
        if degraded:
            logger.warning(f"{symbol}: degraded timeframes {list(degraded)}")
        logger.info(
            f"{symbol}: {overall.dominant.value} alignment={overall.alignment_score:.2f} "
            f"setup={setup.score:.1f} ({setup.grade.value}) status={status.value}"
        )

        return ComprehensiveAnalysis(
            symbol=symbol,
            depth=depth,
            status=status,
            as_of=as_of,
            current_price=current_price,
            timeframes={s.timeframe.value: s for s in ordered},
            overall_trend=overall,
            critical_levels=levels,
            setup_quality=setup,
            market_structure=structure,
            degraded_timeframes=degraded,
        )
