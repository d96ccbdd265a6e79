"""
Support/Resistance Level Detector

Algorithm:
1. Detect pivot highs (resistance) and pivot lows (support) with a symmetric window
2. Count later candles that come back within the touch tolerance of each pivot
3. Score strength from touches, mark levels near the series extremes as major
4. Merge levels within the merge tolerance and keep the strongest N
"""

from collections import Counter
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from ..config import CONFIG, EngineConfig
from ..models import LevelKind, LevelSignificance, SupportResistanceLevel


class LevelDetector:
    """Detects pivot based support/resistance levels for one candle series"""

    def __init__(self, config: EngineConfig = CONFIG):
        self.config = config

    def detect_pivots(self, df: pd.DataFrame) -> Tuple[List[int], List[int]]:
        """
        Pivot high: high strictly above every high within PIVOT_WINDOW candles on
        each side. Pivot low: the mirror on lows.

        Returns:
            (pivot high positions, pivot low positions)
        """
        highs = df['high'].to_numpy(dtype=float)
        lows = df['low'].to_numpy(dtype=float)
        w = self.config.PIVOT_WINDOW

        pivot_highs, pivot_lows = [], []
        for i in range(w, len(df) - w):
            left_h, right_h = highs[i - w:i], highs[i + 1:i + w + 1]
            if highs[i] > left_h.max() and highs[i] > right_h.max():
                pivot_highs.append(i)
            left_l, right_l = lows[i - w:i], lows[i + 1:i + w + 1]
            if lows[i] < left_l.min() and lows[i] < right_l.min():
                pivot_lows.append(i)

        return pivot_highs, pivot_lows

    def count_touches(self, df: pd.DataFrame, position: int, level: float):
        """
        Touches of a level: the pivot candle itself plus every later candle whose
        high/low range reaches within LEVEL_TOUCH_TOLERANCE_PCT of it

        Returns:
            (touch count, timestamp of the last touch)
        """
        band = level * self.config.LEVEL_TOUCH_TOLERANCE_PCT
        later = df.iloc[position + 1:]
        touched = (later['low'] <= level + band) & (later['high'] >= level - band)
        touches = 1 + int(touched.sum())
        last = later.index[touched.to_numpy()][-1] if touched.any() else df.index[position]
        return touches, pd.Timestamp(last)

    def detect(self, df: pd.DataFrame, timeframe: Optional[str] = None) -> Tuple[SupportResistanceLevel, ...]:
        """
        Detect and consolidate levels for one timeframe

        Args:
            df: Validated candle series
            timeframe: Label recorded on each level

        Returns:
            Up to LEVEL_TOP_N consolidated levels, strongest first
        """
        if df.empty:
            return ()

        pivot_highs, pivot_lows = self.detect_pivots(df)
        series_high = float(df['high'].max())
        series_low = float(df['low'].min())
        major_pct = self.config.LEVEL_MAJOR_PCT
        tf_label = (timeframe,) if timeframe else ()

        levels = []
        for kind, positions, column, extreme in (
            (LevelKind.RESISTANCE, pivot_highs, 'high', series_high),
            (LevelKind.SUPPORT, pivot_lows, 'low', series_low),
        ):
            for pos in positions:
                price = float(df[column].iloc[pos])
                touches, last_tested = self.count_touches(df, pos, price)
                near_extreme = extreme != 0 and abs(price - extreme) / abs(extreme) <= major_pct
                levels.append(
                    SupportResistanceLevel(
                        price=price,
                        strength=min(10, 2 * touches - 1),
                        touch_count=touches,
                        last_tested=last_tested,
                        kind=kind,
                        significance=LevelSignificance.MAJOR if near_extreme else LevelSignificance.MINOR,
                        timeframes=tf_label,
                    )
                )

        logger.debug(
            f"[{timeframe}] {len(pivot_highs)} pivot highs, {len(pivot_lows)} pivot lows"
        )
        return consolidate_levels(
            levels,
            tolerance_pct=self.config.LEVEL_MERGE_TOLERANCE_PCT,
            top_n=self.config.LEVEL_TOP_N,
        )


def consolidate_levels(
    levels: Iterable[SupportResistanceLevel],
    tolerance_pct: float = 0.01,
    top_n: int = 10,
    promote_critical: bool = False,
) -> Tuple[SupportResistanceLevel, ...]:
    """
    Merge levels within a relative tolerance and keep the strongest

    Levels are sorted by price and merged greedily against the running cluster
    mean. A merged level averages price, sums touches, takes
    strength = min(10, max strength + members - 1), the latest last_tested,
    the majority kind and the highest significance. With promote_critical, a
    major cluster seen on two or more timeframes becomes critical.

    Returns:
        Up to top_n levels ordered by strength, then touches, then price
    """
    ordered = sorted(levels, key=lambda l: l.price)
    if not ordered:
        return ()

    clusters: List[List[SupportResistanceLevel]] = [[ordered[0]]]
    for level in ordered[1:]:
        mean = float(np.mean([l.price for l in clusters[-1]]))
        if abs(level.price - mean) <= abs(mean) * tolerance_pct:
            clusters[-1].append(level)
        else:
            clusters.append([level])

    merged = [_merge_cluster(cluster, promote_critical) for cluster in clusters]
    merged.sort(key=lambda l: (-l.strength, -l.touch_count, l.price))
    return tuple(merged[:top_n])


def _merge_cluster(cluster: List[SupportResistanceLevel], promote_critical: bool) -> SupportResistanceLevel:
    if len(cluster) == 1 and not promote_critical:
        return cluster[0]

    kinds = Counter(l.kind for l in cluster)
    strongest = max(cluster, key=lambda l: (l.strength, l.touch_count))
    if kinds[LevelKind.SUPPORT] == kinds[LevelKind.RESISTANCE]:
        kind = strongest.kind
    else:
        kind = kinds.most_common(1)[0][0]

    significance = max((l.significance for l in cluster), key=lambda s: s.rank)
    timeframes = tuple(sorted({tf for l in cluster for tf in l.timeframes}))
    if promote_critical and significance is LevelSignificance.MAJOR and len(timeframes) >= 2:
        significance = LevelSignificance.CRITICAL

    tested = [l.last_tested for l in cluster if l.last_tested is not None]
    return SupportResistanceLevel(
        price=float(np.mean([l.price for l in cluster])),
        strength=min(10, max(l.strength for l in cluster) + len(cluster) - 1),
        touch_count=sum(l.touch_count for l in cluster),
        last_tested=max(tested) if tested else None,
        kind=kind,
        significance=significance,
        timeframes=timeframes,
    )
