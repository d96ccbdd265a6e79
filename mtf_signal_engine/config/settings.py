"""
Engine Configuration
All tunable windows, thresholds and scoring weights for the analysis engine.

The fusion and setup weights are empirical policy values, not validated
constants: override them per deployment through EngineConfig or MTF_* env vars.
"""

import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Dict, Optional

from dotenv import load_dotenv
from loguru import logger

from ..errors import ConfigurationError


@dataclass
class FusionWeights:
    """Per-timeframe signal fusion contributions and decision thresholds"""

    EMA_BULLISH: float = 0.20           # fast EMA above slow EMA
    EMA_BEARISH: float = -0.10          # fast EMA below slow EMA
    RSI_HEALTHY: float = 0.10           # RSI inside oversold/overbought band
    RSI_OVERSOLD: float = 0.15          # oversold, bullish reversal note
    RSI_OVERBOUGHT: float = -0.10
    TREND_STRONG_BULLISH: float = 0.30
    TREND_STRONG_BEARISH: float = -0.20
    PATTERN_MAJORITY: float = 0.10      # applied with the majority's sign

    BUY_THRESHOLD: float = 0.30         # accumulated strength > threshold => buy
    SELL_THRESHOLD: float = -0.20       # accumulated strength < threshold => sell


@dataclass
class SetupWeights:
    """Setup quality scoring weights (points out of 100)"""

    ALIGNMENT: float = 30.0
    TREND_STRENGTH: float = 25.0
    CONFLUENCE: float = 20.0
    RISK_REWARD: float = 25.0

    CONFLUENCE_CAP: int = 10            # confluences beyond this add nothing
    RISK_REWARD_TARGET: float = 3.0     # reward/risk that earns the full RR term

    WIN_PROBABILITY_BASE: float = 0.35
    WIN_PROBABILITY_SLOPE: float = 0.50
    WIN_PROBABILITY_CAP: float = 0.85

    # Fallback distances when no level qualifies (daily ATR multipliers)
    ATR_STOP_MULTIPLIER: float = 1.5
    ATR_TARGET_MULTIPLIER: float = 2.5

    MAX_RISK_FACTORS: int = 6


@dataclass
class EngineConfig:
    """Main engine configuration"""

    # Timeframes & data
    TIMEFRAMES: list = None
    CANDLE_LIMIT: int = 250
    MIN_CANDLES: int = 30               # below this a timeframe is degraded
    CANDLE_POLICY: str = "drop"         # 'drop' invalid candles or 'strict' raise

    # Provider retries (per timeframe, never across timeframes)
    FETCH_MAX_RETRIES: int = 2
    FETCH_BACKOFF_SEC: float = 0.5
    FETCH_BACKOFF_MAX_SEC: float = 8.0
    ANALYSIS_TIMEOUT_SEC: Optional[float] = None

    # Moving averages
    SMA_PERIODS: list = None
    SMA_FALLBACK_MIN: int = 20          # shortest window accepted as a fallback
    EMA_FAST: int = 12
    EMA_SLOW: int = 26

    # Momentum
    RSI_PERIOD: int = 14
    RSI_OVERBOUGHT: float = 70.0
    RSI_OVERSOLD: float = 30.0
    RSI_NEUTRAL: float = 50.0           # reported for a window with no movement
    STOCH_K_PERIOD: int = 14
    STOCH_D_PERIOD: int = 3
    MACD_FAST: int = 12
    MACD_SLOW: int = 26
    MACD_SIGNAL: int = 9

    # Trend strength
    ADX_PERIOD: int = 14
    ADX_TREND_THRESHOLD: float = 25.0
    AROON_PERIOD: int = 25

    # Volatility & volume
    ATR_PERIOD: int = 14
    BB_PERIOD: int = 20
    BB_STD_DEV: float = 2.0
    VOLUME_MA_PERIOD: int = 20

    # Comprehensive-depth extensions
    ICHIMOKU_CONVERSION: int = 9
    ICHIMOKU_BASE: int = 26
    ICHIMOKU_SPAN_B: int = 52
    VOLUME_PROFILE_BINS: int = 24
    VALUE_AREA_PCT: float = 0.70

    # Trend analyzer
    TREND_LOOKBACK: int = 20
    TREND_SIDEWAYS_ANGLE: float = 10.0  # |angle| below this is sideways
    TREND_STRONG: float = 0.7
    TREND_MODERATE: float = 0.4

    # Level detector
    PIVOT_WINDOW: int = 2
    LEVEL_TOUCH_TOLERANCE_PCT: float = 0.005
    LEVEL_MAJOR_PCT: float = 0.02
    LEVEL_MERGE_TOLERANCE_PCT: float = 0.01
    LEVEL_TOP_N: int = 10
    CRITICAL_LEVEL_TOP_N: int = 5

    # Pattern recognizer
    PATTERN_RUN_LENGTH: int = 5
    DOJI_BODY_RATIO: float = 0.3

    # Cross-timeframe levels & structure
    FIB_LOOKBACK: int = 50
    FIB_RATIOS: list = None
    NEAR_LEVEL_PCT: float = 0.01
    STRUCTURE_LOOKBACK: int = 5
    VOLATILITY_QUIET_ATR_RATIO: float = 0.003
    VOLATILITY_NORMAL_ATR_RATIO: float = 0.009
    VOLATILITY_HIGH_ATR_RATIO: float = 0.020

    # Scoring policy
    FUSION: FusionWeights = field(default_factory=FusionWeights)
    SETUP: SetupWeights = field(default_factory=SetupWeights)

    # Logging
    LOG_LEVEL: str = "INFO"

    def __post_init__(self):
        """Initialize list defaults and reject unusable values"""
        if self.TIMEFRAMES is None:
            self.TIMEFRAMES = ["1m", "5m", "15m", "1h", "4h", "1d"]
        if self.SMA_PERIODS is None:
            self.SMA_PERIODS = [20, 50, 200]
        if self.FIB_RATIOS is None:
            self.FIB_RATIOS = [0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0]
        self.validate()

    def validate(self):
        if self.CANDLE_POLICY not in ("drop", "strict"):
            raise ConfigurationError(f"CANDLE_POLICY must be 'drop' or 'strict', got {self.CANDLE_POLICY!r}")
        if not self.TIMEFRAMES:
            raise ConfigurationError("TIMEFRAMES must name at least one timeframe")

        windows = {
            "EMA_FAST": self.EMA_FAST, "EMA_SLOW": self.EMA_SLOW, "RSI_PERIOD": self.RSI_PERIOD,
            "STOCH_K_PERIOD": self.STOCH_K_PERIOD, "STOCH_D_PERIOD": self.STOCH_D_PERIOD,
            "MACD_FAST": self.MACD_FAST, "MACD_SLOW": self.MACD_SLOW, "MACD_SIGNAL": self.MACD_SIGNAL,
            "ADX_PERIOD": self.ADX_PERIOD, "AROON_PERIOD": self.AROON_PERIOD,
            "ATR_PERIOD": self.ATR_PERIOD, "BB_PERIOD": self.BB_PERIOD,
            "VOLUME_MA_PERIOD": self.VOLUME_MA_PERIOD, "TREND_LOOKBACK": self.TREND_LOOKBACK,
            "PIVOT_WINDOW": self.PIVOT_WINDOW, "PATTERN_RUN_LENGTH": self.PATTERN_RUN_LENGTH,
            "CANDLE_LIMIT": self.CANDLE_LIMIT, "MIN_CANDLES": self.MIN_CANDLES,
        }
        for name, value in windows.items():
            if int(value) < 1:
                raise ConfigurationError(f"{name} must be a positive window, got {value}")
        if any(int(p) < 1 for p in self.SMA_PERIODS):
            raise ConfigurationError(f"SMA_PERIODS must be positive, got {self.SMA_PERIODS}")
        if self.EMA_FAST >= self.EMA_SLOW:
            raise ConfigurationError("EMA_FAST must be shorter than EMA_SLOW")
        if self.MACD_FAST >= self.MACD_SLOW:
            raise ConfigurationError("MACD_FAST must be shorter than MACD_SLOW")
        if not 0 <= self.RSI_OVERSOLD < self.RSI_OVERBOUGHT <= 100:
            raise ConfigurationError("RSI thresholds must satisfy 0 <= oversold < overbought <= 100")
        if self.FETCH_MAX_RETRIES < 0:
            raise ConfigurationError("FETCH_MAX_RETRIES cannot be negative")
        if self.SETUP.CONFLUENCE_CAP < 1 or self.SETUP.RISK_REWARD_TARGET <= 0:
            raise ConfigurationError("CONFLUENCE_CAP and RISK_REWARD_TARGET must be positive")
        if self.SETUP.WIN_PROBABILITY_CAP > 0.85:
            raise ConfigurationError("WIN_PROBABILITY_CAP cannot exceed 0.85")

    @property
    def longest_sma(self) -> int:
        return max(int(p) for p in self.SMA_PERIODS)

    def with_overrides(self, **overrides) -> "EngineConfig":
        """Return a copy with the given fields replaced"""
        return replace(self, **overrides)

    def to_dict(self) -> Dict:
        """Export config as dictionary"""
        return asdict(self)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, prefix: str = "MTF_") -> "EngineConfig":
        """
        Build a config from MTF_* environment variables (after loading .env)

        Scalars are cast to the type of their default; list fields take comma
        separated values, e.g. MTF_TIMEFRAMES=15m,1h,1d
        """
        load_dotenv(env_file)
        defaults = cls()
        overrides = {}

        for f in fields(cls):
            raw = os.getenv(f"{prefix}{f.name}")
            if raw is None or f.name in ("FUSION", "SETUP"):
                continue
            current = getattr(defaults, f.name)
            try:
                overrides[f.name] = _cast_env_value(raw, current)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {prefix}{f.name}: {raw!r}") from e

        fusion = _nested_overrides(FusionWeights, f"{prefix}FUSION_")
        setup = _nested_overrides(SetupWeights, f"{prefix}SETUP_")
        if fusion:
            overrides["FUSION"] = fusion
        if setup:
            overrides["SETUP"] = setup

        if overrides:
            logger.debug(f"Config overrides from environment: {sorted(overrides)}")
        return replace(defaults, **overrides)


def _cast_env_value(raw: str, current):
    if isinstance(current, list):
        items = [item.strip() for item in raw.split(",") if item.strip()]
        if current and isinstance(current[0], (int, float)):
            kind = type(current[0])
            return [kind(item) for item in items]
        return items
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float) or current is None:
        return float(raw)
    return raw


def _nested_overrides(kind, prefix: str):
    base = kind()
    values = {}
    for f in fields(kind):
        raw = os.getenv(f"{prefix}{f.name}")
        if raw is not None:
            try:
                values[f.name] = _cast_env_value(raw, getattr(base, f.name))
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {prefix}{f.name}: {raw!r}") from e
    return replace(base, **values) if values else None


# Singleton instance
CONFIG = EngineConfig()
