"""
Error taxonomy for the technical analysis engine

- InsufficientDataError: series shorter than an indicator's minimum window
- ProviderUnavailableError: candle fetch failed for one timeframe
- InvalidCandleError: OHLCV invariant violation under the strict policy
- AnalysisFailedError: every requested timeframe failed
"""

from typing import Dict, Optional


class TechnicalAnalysisError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(TechnicalAnalysisError):
    """Invalid engine configuration value"""


class InsufficientDataError(TechnicalAnalysisError):
    """Raised when a series is shorter than an indicator needs"""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {indicator}: need {required} candles, have {available}"
        )


class ProviderUnavailableError(TechnicalAnalysisError):
    """Raised when candles for a symbol/timeframe cannot be fetched"""

    def __init__(self, symbol: str, timeframe: str, reason: str, attempts: int = 1):
        self.symbol = symbol
        self.timeframe = timeframe
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Price data unavailable for {symbol} [{timeframe}] after {attempts} attempt(s): {reason}"
        )


class InvalidCandleError(TechnicalAnalysisError):
    """Raised when candles break OHLCV invariants and the policy is strict"""

    def __init__(self, reason: str, count: int = 1, timeframe: Optional[str] = None):
        self.reason = reason
        self.count = count
        self.timeframe = timeframe
        where = f" [{timeframe}]" if timeframe else ""
        super().__init__(f"{count} invalid candle(s){where}: {reason}")


class AnalysisFailedError(TechnicalAnalysisError):
    """Raised when no timeframe could be analyzed"""

    def __init__(self, symbol: str, failures: Dict[str, str]):
        self.symbol = symbol
        self.failures = dict(failures)
        detail = "; ".join(f"{tf}: {reason}" for tf, reason in self.failures.items())
        super().__init__(f"Analysis failed for {symbol}, all timeframes unavailable ({detail})")
