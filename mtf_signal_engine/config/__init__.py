"""
Engine configuration
"""

from .settings import CONFIG, EngineConfig, FusionWeights, SetupWeights

__all__ = ['CONFIG', 'EngineConfig', 'FusionWeights', 'SetupWeights']
