"""
Pattern Recognizer
Minimal catalogue: directional close runs, doji / bullish / bearish candles
and two-candle engulfing formations on the latest candles.
"""

from typing import List, Optional, Tuple

import pandas as pd
from loguru import logger

from ..config import CONFIG, EngineConfig
from ..models import PatternKind, PatternMatch, PatternPolarity


class PatternRecognizer:
    """Detects simple formations ending at the last candle"""

    def __init__(self, config: EngineConfig = CONFIG):
        self.config = config

    def detect(self, df: pd.DataFrame, timeframe: str = "") -> Tuple[PatternMatch, ...]:
        if df.empty:
            return ()

        matches: List[PatternMatch] = []
        run = self._directional_run(df, timeframe)
        if run is not None:
            matches.append(run)
        matches.append(self._single_candle(df, timeframe))
        engulfing = self._engulfing(df, timeframe)
        if engulfing is not None:
            matches.append(engulfing)

        logger.debug(f"[{timeframe}] patterns: {[m.name.value for m in matches]}")
        return tuple(matches)

    def _directional_run(self, df: pd.DataFrame, timeframe: str) -> Optional[PatternMatch]:
        """
        PATTERN_RUN_LENGTH or more consecutive higher (lower) closes

        Target is a measured move of the run's length from the last close;
        invalidation is the close the run started from.
        """
        closes = df['close'].to_numpy(dtype=float)
        needed = self.config.PATTERN_RUN_LENGTH
        if len(closes) < needed + 1:
            return None

        up = down = 0
        for i in range(len(closes) - 1, 0, -1):
            if closes[i] > closes[i - 1] and down == 0:
                up += 1
            elif closes[i] < closes[i - 1] and up == 0:
                down += 1
            else:
                break

        length = max(up, down)
        if length < needed:
            return None

        start = float(closes[-length - 1])
        last = float(closes[-1])
        confidence = min(1.0, length / (2.0 * needed))
        if up:
            return PatternMatch(
                name=PatternKind.ASCENDING_TREND,
                polarity=PatternPolarity.BULLISH,
                confidence=confidence,
                timeframe=timeframe,
                target=last + (last - start),
                invalidation=start,
            )
        return PatternMatch(
            name=PatternKind.DESCENDING_TREND,
            polarity=PatternPolarity.BEARISH,
            confidence=confidence,
            timeframe=timeframe,
            target=last - (start - last),
            invalidation=start,
        )

    def _single_candle(self, df: pd.DataFrame, timeframe: str) -> PatternMatch:
        candle = df.iloc[-1]
        body = abs(candle['close'] - candle['open'])
        price_range = candle['high'] - candle['low']
        ratio = body / price_range if price_range > 0 else 0.0

        if price_range <= 0 or ratio < self.config.DOJI_BODY_RATIO:
            confidence = 1.0 - ratio / self.config.DOJI_BODY_RATIO if price_range > 0 else 1.0
            return PatternMatch(PatternKind.DOJI, PatternPolarity.DOJI, float(confidence), timeframe)
        if candle['close'] > candle['open']:
            return PatternMatch(
                PatternKind.BULLISH_CANDLE, PatternPolarity.BULLISH, float(ratio), timeframe,
                invalidation=float(candle['low']),
            )
        return PatternMatch(
            PatternKind.BEARISH_CANDLE, PatternPolarity.BEARISH, float(ratio), timeframe,
            invalidation=float(candle['high']),
        )

    def _engulfing(self, df: pd.DataFrame, timeframe: str) -> Optional[PatternMatch]:
        if len(df) < 2:
            return None
        prev, cur = df.iloc[-2], df.iloc[-1]
        prev_body = abs(prev['close'] - prev['open'])
        cur_body = abs(cur['close'] - cur['open'])
        if cur_body <= prev_body or prev_body == 0:
            return None

        confidence = float(min(1.0, 0.5 + 0.5 * (1.0 - prev_body / cur_body)))
        if (prev['close'] < prev['open'] and cur['close'] > cur['open']
                and cur['open'] <= prev['close'] and cur['close'] >= prev['open']):
            return PatternMatch(
                PatternKind.BULLISH_ENGULFING, PatternPolarity.BULLISH, confidence, timeframe,
                invalidation=float(min(cur['low'], prev['low'])),
            )
        if (prev['close'] > prev['open'] and cur['close'] < cur['open']
                and cur['open'] >= prev['close'] and cur['close'] <= prev['open']):
            return PatternMatch(
                PatternKind.BEARISH_ENGULFING, PatternPolarity.BEARISH, confidence, timeframe,
                invalidation=float(max(cur['high'], prev['high'])),
            )
        return None
