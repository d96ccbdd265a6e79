"""
Data model for the multi-timeframe analysis engine

Every record is a frozen dataclass; sequences are tuples and unavailable
numbers are None (never NaN), so two analyses of the same candles compare equal.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd


class Horizon(Enum):
    SHORT = "short_term"
    MEDIUM = "medium_term"
    LONG = "long_term"


class Timeframe(Enum):
    """Candle sampling interval"""
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1w"

    @property
    def minutes(self) -> int:
        return _TIMEFRAME_MINUTES[self]

    @property
    def horizon(self) -> Horizon:
        if self.minutes < 60:
            return Horizon.SHORT
        if self.minutes < 1440:
            return Horizon.MEDIUM
        return Horizon.LONG

    @classmethod
    def parse(cls, value) -> "Timeframe":
        """Accept a Timeframe, its value, or a common alias ('60m', 'daily', '1D')"""
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        alias = _TIMEFRAME_ALIASES.get(key.lower(), key.lower())
        for member in cls:
            if member.value == alias:
                return member
        raise ValueError(f"Unknown timeframe: {value!r}")


_TIMEFRAME_MINUTES = {
    Timeframe.M1: 1,
    Timeframe.M5: 5,
    Timeframe.M15: 15,
    Timeframe.M30: 30,
    Timeframe.H1: 60,
    Timeframe.H4: 240,
    Timeframe.D1: 1440,
    Timeframe.W1: 10080,
}

_TIMEFRAME_ALIASES = {
    "1min": "1m", "5min": "5m", "15min": "15m", "30min": "30m",
    "60m": "1h", "60min": "1h", "1hr": "1h", "240m": "4h",
    "d": "1d", "daily": "1d", "1day": "1d", "w": "1w", "weekly": "1w", "1wk": "1w",
}


class AnalysisDepth(Enum):
    BASIC = "basic"
    COMPREHENSIVE = "comprehensive"


class TrendDirection(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    SIDEWAYS = "sideways"


class TrendQuality(Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class SignalDirection(Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class MomentumState(Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    NEUTRAL = "neutral"


class LevelKind(Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"


class LevelSignificance(Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {"minor": 0, "major": 1, "critical": 2}[self.value]


class PatternPolarity(Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"
    DOJI = "doji"


class PatternKind(Enum):
    ASCENDING_TREND = "ascending_trend"
    DESCENDING_TREND = "descending_trend"
    DOJI = "doji"
    BULLISH_CANDLE = "bullish_candle"
    BEARISH_CANDLE = "bearish_candle"
    BULLISH_ENGULFING = "bullish_engulfing"
    BEARISH_ENGULFING = "bearish_engulfing"


class TimeframeStatus(Enum):
    COMPLETE = "complete"       # every indicator computed at its configured window
    PARTIAL = "partial"         # some indicators fell back or abstained
    DEGRADED = "degraded"       # pipeline failed, slot is a placeholder


class AnalysisStatus(Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    DEGRADED = "degraded"


class StructureTrend(Enum):
    HIGHER_HIGHS_LOWS = "bullish_structure"
    LOWER_HIGHS_LOWS = "bearish_structure"
    CHOPPY = "choppy_structure"
    UNKNOWN = "unknown"


class VolatilityRegime(Enum):
    QUIET = "quiet"
    NORMAL = "normal"
    HIGH = "high"
    EXTREME = "extreme"
    UNKNOWN = "unknown"


class SetupGrade(Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    EXCELLENT = "excellent"


class TradeSide(Enum):
    LONG = "long"
    SHORT = "short"


# ---------------------------------------------------------------------------
# Indicator families
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MovingAverages:
    sma: Mapping[int, Optional[float]]      # requested period -> value
    sma_windows: Mapping[int, int]          # requested period -> window actually used
    ema_fast: Optional[float]
    ema_slow: Optional[float]
    ema_fast_period: int
    ema_slow_period: int

    def __post_init__(self):
        _freeze(self, "sma", "sma_windows")


@dataclass(frozen=True)
class MomentumIndicators:
    rsi: Optional[float]
    stoch_k: Optional[float]
    stoch_d: Optional[float]


@dataclass(frozen=True)
class MACDValues:
    macd: Optional[float]
    signal: Optional[float]
    histogram: Optional[float]
    prev_histogram: Optional[float]


@dataclass(frozen=True)
class TrendStrengthIndicators:
    adx: Optional[float]
    plus_di: Optional[float]
    minus_di: Optional[float]
    aroon_up: Optional[float]
    aroon_down: Optional[float]


@dataclass(frozen=True)
class VolatilityIndicators:
    atr: Optional[float]
    bb_upper: Optional[float]
    bb_middle: Optional[float]
    bb_lower: Optional[float]
    bb_width: Optional[float]


@dataclass(frozen=True)
class VolumeIndicators:
    obv: Optional[float]
    volume_sma: Optional[float]
    vwap: Optional[float]
    last_volume: Optional[float]


@dataclass(frozen=True)
class IchimokuCloud:
    conversion_line: float
    base_line: float
    leading_span_a: float
    leading_span_b: float


@dataclass(frozen=True)
class VolumeProfile:
    point_of_control: float
    value_area_high: float
    value_area_low: float


@dataclass(frozen=True)
class IndicatorSet:
    """All indicator values for one candle series at its last candle"""
    moving_averages: MovingAverages
    momentum: MomentumIndicators
    macd: MACDValues
    trend_strength: TrendStrengthIndicators
    volatility: VolatilityIndicators
    volume: VolumeIndicators
    ichimoku: Optional[IchimokuCloud] = None
    volume_profile: Optional[VolumeProfile] = None
    degraded: Tuple[str, ...] = ()          # computed on a shorter window than configured
    unavailable: Tuple[str, ...] = ()       # abstained for lack of data
    candle_count: int = 0

    @property
    def is_complete(self) -> bool:
        return not self.degraded and not self.unavailable


# ---------------------------------------------------------------------------
# Analyzer outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrendAssessment:
    direction: TrendDirection
    strength: float                         # 0-1
    slope_angle: float                      # degrees, normalised slope
    quality: TrendQuality
    confirming_signals: Tuple[str, ...] = ()
    divergences: Tuple[str, ...] = ()
    slope: float = 0.0                      # raw price units per candle
    r_squared: float = 0.0

    @classmethod
    def neutral(cls) -> "TrendAssessment":
        return cls(TrendDirection.SIDEWAYS, 0.0, 0.0, TrendQuality.WEAK)


@dataclass(frozen=True)
class SupportResistanceLevel:
    price: float
    strength: int                           # 1-10
    touch_count: int
    last_tested: Optional[pd.Timestamp]
    kind: LevelKind
    significance: LevelSignificance
    timeframes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PatternMatch:
    name: PatternKind
    polarity: PatternPolarity
    confidence: float                       # 0-1
    timeframe: str
    target: Optional[float] = None
    invalidation: Optional[float] = None


@dataclass(frozen=True)
class SignalContribution:
    name: str
    weight: float
    source: str


@dataclass(frozen=True)
class TimeframeSignal:
    """Fused evidence for one timeframe, independent of all others"""
    timeframe: Timeframe
    status: TimeframeStatus
    indicators: Optional[IndicatorSet]
    trend: TrendAssessment
    levels: Tuple[SupportResistanceLevel, ...]
    patterns: Tuple[PatternMatch, ...]
    direction: SignalDirection
    strength: float                         # 0-1
    confluences: Tuple[str, ...] = ()
    divergences: Tuple[str, ...] = ()
    contributions: Tuple[SignalContribution, ...] = ()
    momentum: MomentumState = MomentumState.NEUTRAL
    volume_confirmed: bool = False
    last_close: Optional[float] = None
    as_of: Optional[pd.Timestamp] = None
    candle_count: int = 0
    rejected_candles: int = 0
    failure_reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.status is not TimeframeStatus.DEGRADED

    @classmethod
    def placeholder(cls, timeframe: Timeframe, reason: str) -> "TimeframeSignal":
        """Neutral, explicitly degraded slot for a timeframe whose pipeline failed"""
        return cls(
            timeframe=timeframe,
            status=TimeframeStatus.DEGRADED,
            indicators=None,
            trend=TrendAssessment.neutral(),
            levels=(),
            patterns=(),
            direction=SignalDirection.HOLD,
            strength=0.0,
            failure_reason=reason,
        )


@dataclass(frozen=True)
class OverallTrend:
    short_term: TrendDirection
    medium_term: TrendDirection
    long_term: TrendDirection
    dominant: TrendDirection
    alignment_score: float                  # 0-1, share of the largest agreeing group
    bullish_ratio: float                    # 0-1, share bullish
    average_strength: float
    valid_timeframes: int
    total_timeframes: int


@dataclass(frozen=True)
class PivotPoints:
    pivot: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float
    top_central: float
    bottom_central: float

    def supports(self) -> Tuple[float, ...]:
        return (self.s1, self.s2, self.s3)

    def resistances(self) -> Tuple[float, ...]:
        return (self.r1, self.r2, self.r3)


@dataclass(frozen=True)
class FibonacciLevels:
    swing_high: float
    swing_low: float
    measured_from: TrendDirection           # bullish: down from the high
    levels: Tuple[Tuple[float, float], ...]  # (ratio, price)


@dataclass(frozen=True)
class CriticalLevels:
    levels: Tuple[SupportResistanceLevel, ...]
    pivots: Optional[PivotPoints] = None
    fibonacci: Optional[FibonacciLevels] = None

    @property
    def supports(self) -> Tuple[SupportResistanceLevel, ...]:
        return tuple(l for l in self.levels if l.kind is LevelKind.SUPPORT)

    @property
    def resistances(self) -> Tuple[SupportResistanceLevel, ...]:
        return tuple(l for l in self.levels if l.kind is LevelKind.RESISTANCE)


@dataclass(frozen=True)
class SetupQuality:
    score: float                            # 0-100
    grade: SetupGrade
    side: TradeSide
    entry_price: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    take_profit_2: Optional[float]
    risk_reward_ratio: float
    win_probability: float                  # <= 0.85
    factors: Mapping[str, float] = field(default_factory=dict)
    entry_triggers: Tuple[str, ...] = ()
    exit_conditions: Tuple[str, ...] = ()
    risk_factors: Tuple[str, ...] = ()
    level_source: str = "none"              # levels | minor_levels | pivots | atr | none

    def __post_init__(self):
        _freeze(self, "factors")


@dataclass(frozen=True)
class MarketStructureFlags:
    structure_trend: StructureTrend
    volatility_regime: VolatilityRegime
    price_above_vwap: Optional[bool]
    volume_confirmed: bool
    near_support: bool
    near_resistance: bool
    reference_timeframe: Optional[str] = None


@dataclass(frozen=True)
class ComprehensiveAnalysis:
    """The engine's sole output, an immutable snapshot of one analysis call"""
    symbol: str
    depth: AnalysisDepth
    status: AnalysisStatus
    as_of: Optional[pd.Timestamp]
    current_price: float
    timeframes: Mapping[str, TimeframeSignal]
    overall_trend: OverallTrend
    critical_levels: CriticalLevels
    setup_quality: SetupQuality
    market_structure: MarketStructureFlags
    degraded_timeframes: Tuple[str, ...] = ()

    def __post_init__(self):
        _freeze(self, "timeframes")

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_timeframes)

    @property
    def valid_signals(self) -> Dict[str, TimeframeSignal]:
        return {tf: s for tf, s in self.timeframes.items() if s.is_valid}

    def to_dict(self) -> Dict:
        """JSON-ready deep copy for downstream consumers"""
        return _serialize(self)


def _freeze(record, *names):
    """Replace mapping fields of a frozen record with read-only views"""
    for name in names:
        object.__setattr__(record, name, MappingProxyType(dict(getattr(record, name))))


def _serialize(value):
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _serialize(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(_serialize(k)): _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, float):
        return round(value, 10)
    return value
