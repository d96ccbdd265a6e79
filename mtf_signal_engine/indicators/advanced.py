"""
Extended indicator families computed only at comprehensive depth
"""

from typing import Dict

import numpy as np
import pandas as pd

from ..errors import InsufficientDataError


def calculate_ichimoku(
    data: pd.DataFrame,
    conversion_period: int = 9,
    base_period: int = 26,
    span_b_period: int = 52
) -> Dict[str, pd.Series]:
    """
    Ichimoku cloud lines (unshifted, i.e. the values projected from each candle)

    Returns:
        Dictionary with 'conversion', 'base', 'span_a' and 'span_b' series
    """
    required = max(conversion_period, base_period, span_b_period)
    if len(data) < required:
        raise InsufficientDataError("Ichimoku", required, len(data))

    def _midpoint(period):
        return (data['high'].rolling(window=period).max() + data['low'].rolling(window=period).min()) / 2

    conversion = _midpoint(conversion_period)
    base = _midpoint(base_period)
    return {
        'conversion': conversion,
        'base': base,
        'span_a': (conversion + base) / 2,
        'span_b': _midpoint(span_b_period),
    }


def calculate_volume_profile(
    data: pd.DataFrame,
    bins: int = 24,
    value_area_pct: float = 0.70
) -> Dict[str, float]:
    """
    Volume-by-price profile over the series

    Volume is bucketed by typical price; the value area grows from the point
    of control toward the heavier neighbouring bin until it holds
    value_area_pct of the total. Without any volume each candle weighs 1.

    Returns:
        Dictionary with 'poc', 'value_area_high' and 'value_area_low'
    """
    if len(data) < 2:
        raise InsufficientDataError("VolumeProfile", 2, len(data))

    typical = ((data['high'] + data['low'] + data['close']) / 3).to_numpy(dtype=float)
    weights = data['volume'].clip(lower=0).to_numpy(dtype=float)
    if weights.sum() <= 0:
        weights = np.ones(len(typical))

    low, high = float(data['low'].min()), float(data['high'].max())
    if high <= low:
        return {'poc': low, 'value_area_high': high, 'value_area_low': low}

    edges = np.linspace(low, high, bins + 1)
    hist, _ = np.histogram(typical, bins=edges, weights=weights)
    centers = (edges[:-1] + edges[1:]) / 2

    poc_idx = int(np.argmax(hist))
    target = hist.sum() * value_area_pct
    lo = hi = poc_idx
    covered = hist[poc_idx]
    while covered < target and (lo > 0 or hi < bins - 1):
        below = hist[lo - 1] if lo > 0 else -1.0
        above = hist[hi + 1] if hi < bins - 1 else -1.0
        if above >= below:
            hi += 1
            covered += hist[hi]
        else:
            lo -= 1
            covered += hist[lo]

    return {
        'poc': float(centers[poc_idx]),
        'value_area_high': float(edges[hi + 1]),
        'value_area_low': float(edges[lo]),
    }
