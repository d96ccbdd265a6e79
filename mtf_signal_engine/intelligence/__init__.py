"""
Analysis layers: trend, levels, patterns, fusion, aggregation and setup scoring
"""

from .level_detector import LevelDetector, consolidate_levels
from .market_structure import build_market_structure, classify_volatility, detect_structure_trend
from .mtf_aggregator import CrossTimeframeAggregator, majority_direction
from .pattern_recognizer import PatternRecognizer
from .setup_scorer import SetupQualityScorer, classify_setup_grade
from .signal_fuser import FusedSignal, TimeframeSignalFuser
from .timeframe_pipeline import PipelineResult, TimeframePipeline
from .trend_analyzer import TrendAnalyzer

__all__ = [
    'TrendAnalyzer',
    'LevelDetector',
    'consolidate_levels',
    'PatternRecognizer',
    'TimeframeSignalFuser',
    'FusedSignal',
    'TimeframePipeline',
    'PipelineResult',
    'CrossTimeframeAggregator',
    'majority_direction',
    'build_market_structure',
    'classify_volatility',
    'detect_structure_trend',
    'SetupQualityScorer',
    'classify_setup_grade',
]
