"""
Multi-timeframe technical analysis and signal fusion engine
"""

from .config import CONFIG, EngineConfig, FusionWeights, SetupWeights
from .data import DataFrameProvider, PriceDataProvider, YahooFinanceProvider
from .engine import TechnicalAnalysisEngine
from .errors import (
    AnalysisFailedError,
    ConfigurationError,
    InsufficientDataError,
    InvalidCandleError,
    ProviderUnavailableError,
    TechnicalAnalysisError,
)
from .models import (
    AnalysisDepth,
    AnalysisStatus,
    ComprehensiveAnalysis,
    SignalDirection,
    Timeframe,
    TimeframeSignal,
    TimeframeStatus,
    TrendDirection,
)

__version__ = "0.1.0"

__all__ = [
    'CONFIG',
    'EngineConfig',
    'FusionWeights',
    'SetupWeights',
    'TechnicalAnalysisEngine',
    'PriceDataProvider',
    'DataFrameProvider',
    'YahooFinanceProvider',
    'TechnicalAnalysisError',
    'ConfigurationError',
    'InsufficientDataError',
    'InvalidCandleError',
    'ProviderUnavailableError',
    'AnalysisFailedError',
    'AnalysisDepth',
    'AnalysisStatus',
    'ComprehensiveAnalysis',
    'SignalDirection',
    'Timeframe',
    'TimeframeSignal',
    'TimeframeStatus',
    'TrendDirection',
]
