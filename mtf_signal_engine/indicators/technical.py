"""
Technical indicators module
Implements SMA, EMA, RSI, Stochastic, MACD, ADX, Aroon, ATR, Bollinger Bands,
OBV, VWAP and classic/CPR pivot points over a candle series.

Every function is pure and raises InsufficientDataError when the series is
shorter than the indicator's minimum length instead of returning a shorter
window silently.
"""

from typing import Dict, List

import numpy as np
import pandas as pd
from loguru import logger

from ..errors import InsufficientDataError


def _require(indicator: str, data, required: int):
    available = len(data)
    if available < required:
        raise InsufficientDataError(indicator, required, available)


class TechnicalIndicators:
    """Class containing all technical indicator calculations"""

    @staticmethod
    def calculate_sma(data: pd.Series, period: int) -> pd.Series:
        """
        Calculate Simple Moving Average

        Args:
            data: Price series (typically close prices)
            period: SMA period

        Returns:
            SMA series (NaN until `period` values are available)
        """
        _require(f"SMA({period})", data, period)
        return data.rolling(window=period, min_periods=period).mean()

    @staticmethod
    def calculate_ema(data: pd.Series, period: int) -> pd.Series:
        """
        Calculate Exponential Moving Average

        Multiplier is 2/(period+1) and the first value is the simple average of
        the first `period` points. Leading NaNs (e.g. a MACD line) are skipped.

        Args:
            data: Price series
            period: EMA period

        Returns:
            EMA series aligned with the input index
        """
        first_valid = data.first_valid_index()
        values = data.loc[first_valid:] if first_valid is not None else data.iloc[0:0]
        _require(f"EMA({period})", values, period)

        arr = values.to_numpy(dtype=float)
        out = np.full(len(arr), np.nan)
        multiplier = 2.0 / (period + 1)
        out[period - 1] = arr[:period].mean()
        for i in range(period, len(arr)):
            out[i] = (arr[i] - out[i - 1]) * multiplier + out[i - 1]

        return pd.Series(out, index=values.index).reindex(data.index)

    @staticmethod
    def calculate_multiple_ema(data: pd.Series, periods: List[int]) -> pd.DataFrame:
        """Calculate several EMAs at once, one column per period"""
        return pd.DataFrame(
            {f'ema_{period}': TechnicalIndicators.calculate_ema(data, period) for period in periods}
        )

    @staticmethod
    def calculate_rsi(data: pd.Series, period: int = 14, neutral: float = 50.0) -> pd.Series:
        """
        Calculate Relative Strength Index using Wilder's smoothing method

        The first averages are simple means of the first `period` changes,
        subsequent ones are (prev * (period - 1) + current) / period.
        RSI is 100 when the average loss is zero, and `neutral` when there was
        no movement at all.

        Args:
            data: Price series
            period: RSI period (default 14)
            neutral: Value reported for a window with no gains and no losses

        Returns:
            RSI series
        """
        _require(f"RSI({period})", data, period + 1)

        delta = data.diff().to_numpy(dtype=float)
        gains = np.where(delta > 0, delta, 0.0)
        losses = np.where(delta < 0, -delta, 0.0)

        rsi = np.full(len(data), np.nan)
        avg_gain = gains[1:period + 1].mean()
        avg_loss = losses[1:period + 1].mean()

        def _value(gain, loss):
            if loss == 0:
                return neutral if gain == 0 else 100.0
            rs = gain / loss
            return 100.0 - (100.0 / (1.0 + rs))

        rsi[period] = _value(avg_gain, avg_loss)
        for i in range(period + 1, len(data)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            rsi[i] = _value(avg_gain, avg_loss)

        return pd.Series(rsi, index=data.index)

    @staticmethod
    def calculate_stochastic(
        data: pd.DataFrame,
        k_period: int = 14,
        d_period: int = 3
    ) -> Dict[str, pd.Series]:
        """
        Calculate Stochastic Oscillator

        %K = (close - lowest low) / (highest high - lowest low) * 100 over
        k_period candles (50 when the range is zero); %D is the SMA of %K.

        Returns:
            Dictionary with 'k' and 'd' series
        """
        _require(f"Stochastic({k_period},{d_period})", data, k_period + d_period - 1)

        lowest_low = data['low'].rolling(window=k_period).min()
        highest_high = data['high'].rolling(window=k_period).max()
        price_range = highest_high - lowest_low

        k = ((data['close'] - lowest_low) / price_range.replace(0, np.nan)) * 100
        k = k.where(price_range != 0, 50.0).where(price_range.notna())
        d = k.rolling(window=d_period).mean()

        return {'k': k, 'd': d}

    @staticmethod
    def calculate_macd(
        data: pd.Series,
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9
    ) -> Dict[str, pd.Series]:
        """
        Calculate MACD (Moving Average Convergence Divergence)

        Args:
            data: Price series
            fast_period: Fast EMA period
            slow_period: Slow EMA period
            signal_period: Signal line EMA period

        Returns:
            Dictionary with 'macd', 'signal' and 'histogram' series
        """
        _require(f"MACD({fast_period},{slow_period},{signal_period})", data, slow_period + signal_period - 1)

        ema_fast = TechnicalIndicators.calculate_ema(data, fast_period)
        ema_slow = TechnicalIndicators.calculate_ema(data, slow_period)

        macd_line = ema_fast - ema_slow
        signal_line = TechnicalIndicators.calculate_ema(macd_line, signal_period)
        histogram = macd_line - signal_line

        return {
            'macd': macd_line,
            'signal': signal_line,
            'histogram': histogram
        }

    @staticmethod
    def calculate_true_range(data: pd.DataFrame) -> pd.Series:
        """True range; the first candle has no previous close and is NaN"""
        prev_close = data['close'].shift(1)
        tr1 = data['high'] - data['low']
        tr2 = (data['high'] - prev_close).abs()
        tr3 = (data['low'] - prev_close).abs()
        true_range = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1, skipna=False)
        return true_range

    @staticmethod
    def calculate_atr(data: pd.DataFrame, period: int = 14) -> pd.Series:
        """
        Calculate Average True Range (ATR)
        Simple average of the last `period` true ranges.

        Args:
            data: DataFrame with OHLC data
            period: ATR period (default 14)

        Returns:
            ATR series
        """
        _require(f"ATR({period})", data, period + 1)
        true_range = TechnicalIndicators.calculate_true_range(data)
        return true_range.rolling(window=period, min_periods=period).mean()

    @staticmethod
    def calculate_adx(data: pd.DataFrame, period: int = 14) -> Dict[str, pd.Series]:
        """
        Calculate ADX with +DI / -DI using Wilder's smoothing

        TR, +DM and -DM are smoothed with the first value being the sum of the
        first `period` readings; ADX starts as the mean of the first `period`
        DX values. A zero DI sum gives DX 0 and a zero smoothed TR gives DI 0.

        Returns:
            Dictionary with 'adx', 'plus_di' and 'minus_di' series
        """
        _require(f"ADX({period})", data, 2 * period)

        high = data['high'].to_numpy(dtype=float)
        low = data['low'].to_numpy(dtype=float)
        close = data['close'].to_numpy(dtype=float)
        n = len(data)

        tr = np.zeros(n)
        plus_dm = np.zeros(n)
        minus_dm = np.zeros(n)
        for i in range(1, n):
            tr[i] = max(high[i] - low[i], abs(high[i] - close[i - 1]), abs(low[i] - close[i - 1]))
            up_move = high[i] - high[i - 1]
            down_move = low[i - 1] - low[i]
            plus_dm[i] = up_move if up_move > down_move and up_move > 0 else 0.0
            minus_dm[i] = down_move if down_move > up_move and down_move > 0 else 0.0

        plus_di = np.full(n, np.nan)
        minus_di = np.full(n, np.nan)
        dx = np.full(n, np.nan)

        s_tr = tr[1:period + 1].sum()
        s_plus = plus_dm[1:period + 1].sum()
        s_minus = minus_dm[1:period + 1].sum()
        for i in range(period, n):
            if i > period:
                s_tr = s_tr - s_tr / period + tr[i]
                s_plus = s_plus - s_plus / period + plus_dm[i]
                s_minus = s_minus - s_minus / period + minus_dm[i]
            p_di = 100.0 * s_plus / s_tr if s_tr > 0 else 0.0
            m_di = 100.0 * s_minus / s_tr if s_tr > 0 else 0.0
            plus_di[i] = p_di
            minus_di[i] = m_di
            di_sum = p_di + m_di
            dx[i] = 100.0 * abs(p_di - m_di) / di_sum if di_sum > 0 else 0.0

        adx = np.full(n, np.nan)
        first = 2 * period - 1
        adx[first] = dx[period:first + 1].mean()
        for i in range(first + 1, n):
            adx[i] = (adx[i - 1] * (period - 1) + dx[i]) / period

        return {
            'adx': pd.Series(adx, index=data.index),
            'plus_di': pd.Series(plus_di, index=data.index),
            'minus_di': pd.Series(minus_di, index=data.index),
        }

    @staticmethod
    def calculate_aroon(data: pd.DataFrame, period: int = 25) -> Dict[str, pd.Series]:
        """
        Calculate Aroon Up / Down

        Up = 100 * (period - candles since highest high) / period over the last
        period + 1 candles; the most recent extreme wins ties.

        Returns:
            Dictionary with 'up' and 'down' series
        """
        _require(f"Aroon({period})", data, period + 1)
        window = period + 1

        def _since_extreme(values, pick):
            pos = len(values) - 1 - pick(values[::-1])
            return 100.0 * pos / period

        up = data['high'].rolling(window=window).apply(lambda x: _since_extreme(x, np.argmax), raw=True)
        down = data['low'].rolling(window=window).apply(lambda x: _since_extreme(x, np.argmin), raw=True)
        return {'up': up, 'down': down}

    @staticmethod
    def calculate_bollinger_bands(
        data: pd.Series,
        period: int = 20,
        std_dev: float = 2.0
    ) -> Dict[str, pd.Series]:
        """
        Calculate Bollinger Bands (population standard deviation)

        Returns:
            Dictionary with 'upper', 'middle', 'lower' and 'width' series;
            width = (upper - lower) / middle * 100, 0 when middle is 0
        """
        _require(f"Bollinger({period})", data, period)

        middle = data.rolling(window=period).mean()
        std = data.rolling(window=period).std(ddof=0).clip(lower=0)
        unchanged = data.rolling(window=period).max() == data.rolling(window=period).min()
        std = std.mask(unchanged, 0.0)
        upper = middle + std_dev * std
        lower = middle - std_dev * std
        width = ((upper - lower) / middle.replace(0, np.nan) * 100).where(middle != 0, 0.0)
        width = width.where(middle.notna())

        return {'upper': upper, 'middle': middle, 'lower': lower, 'width': width}

    @staticmethod
    def calculate_obv(data: pd.DataFrame) -> pd.Series:
        """On-Balance Volume starting from 0 at the first candle"""
        _require("OBV", data, 2)
        direction = np.sign(data['close'].diff()).fillna(0)
        return (direction * data['volume']).cumsum()

    @staticmethod
    def calculate_volume_sma(data: pd.DataFrame, period: int = 20) -> pd.Series:
        _require(f"VolumeSMA({period})", data, period)
        return data['volume'].rolling(window=period).mean()

    @staticmethod
    def calculate_vwap(data: pd.DataFrame) -> pd.Series:
        """
        Calculate Volume Weighted Average Price over the whole series

        Points with no cumulative volume yet fall back to the running mean of
        the typical price (H+L+C)/3.
        """
        _require("VWAP", data, 1)

        typical_price = (data['high'] + data['low'] + data['close']) / 3
        volume = data['volume'].clip(lower=0)
        cumulative_volume = volume.cumsum()
        cumulative_pv = (typical_price * volume).cumsum()

        vwap = cumulative_pv / cumulative_volume.replace(0, np.nan)
        fallback = typical_price.expanding().mean()
        if (cumulative_volume == 0).any():
            logger.debug("VWAP: no volume for part of the series, using typical price mean")
        return vwap.where(cumulative_volume > 0, fallback)

    @staticmethod
    def calculate_pivot_points(high: float, low: float, close: float) -> Dict[str, float]:
        """
        Calculate classic pivot points with the Central Pivot Range

        Args:
            high: Reference period high
            low: Reference period low
            close: Reference period close

        Returns:
            Dictionary with pivot, r1-r3, s1-s3, top_central and bottom_central
        """
        pivot = (high + low + close) / 3
        bc = (high + low) / 2
        tc = (pivot - bc) + pivot

        return {
            'pivot': pivot,
            'r1': 2 * pivot - low,
            'r2': pivot + (high - low),
            'r3': high + 2 * (pivot - low),
            's1': 2 * pivot - high,
            's2': pivot - (high - low),
            's3': low - 2 * (high - pivot),
            'top_central': max(tc, bc),
            'bottom_central': min(tc, bc),
        }

    @staticmethod
    def calculate_fibonacci_levels(
        swing_high: float,
        swing_low: float,
        ratios: List[float],
        from_high: bool = True
    ) -> Dict[float, float]:
        """
        Fibonacci retracement prices between a swing high and low

        With from_high the 0 ratio sits at the high and retracements are
        measured downward (bullish context); otherwise upward from the low.
        """
        span = swing_high - swing_low
        if from_high:
            return {ratio: swing_high - span * ratio for ratio in ratios}
        return {ratio: swing_low + span * ratio for ratio in ratios}
