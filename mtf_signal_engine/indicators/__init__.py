"""
Indicator calculator
"""

from .advanced import calculate_ichimoku, calculate_volume_profile
from .indicator_set import build_indicator_set, last_value
from .technical import TechnicalIndicators

__all__ = [
    'TechnicalIndicators',
    'build_indicator_set',
    'last_value',
    'calculate_ichimoku',
    'calculate_volume_profile',
]
