"""
Technical Analysis Engine
Entry point for multi-timeframe analysis of one symbol.

Each timeframe runs as its own asyncio task (fetch with retry, then the pure
pipeline); the aggregator joins only once every task has reached a terminal
state. A failed timeframe becomes a flagged placeholder; all failing raises.
"""

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from loguru import logger

from .config import CONFIG, EngineConfig
from .data.providers import PriceDataProvider, fetch_with_retry
from .errors import InsufficientDataError, InvalidCandleError, ProviderUnavailableError
from .intelligence import CrossTimeframeAggregator, TimeframePipeline
from .models import AnalysisDepth, ComprehensiveAnalysis, Timeframe, TimeframeSignal

# Errors that degrade a single timeframe instead of the whole request
TIMEFRAME_ERRORS = (ProviderUnavailableError, InsufficientDataError, InvalidCandleError)

SlotResult = Tuple[Timeframe, TimeframeSignal, Optional[pd.DataFrame]]


class TechnicalAnalysisEngine:
    """Runs the per-timeframe pipelines concurrently and aggregates them"""

    def __init__(self, provider: Optional[PriceDataProvider] = None, config: EngineConfig = CONFIG):
        self.provider = provider
        self.config = config
        self.pipeline = TimeframePipeline(config)
        self.aggregator = CrossTimeframeAggregator(config)

    def normalize_timeframes(self, timeframes: Optional[Iterable] = None) -> List[Timeframe]:
        """Parse, de-duplicate and order timeframes from shortest to longest"""
        requested = self.config.TIMEFRAMES if timeframes is None else timeframes
        parsed = {Timeframe.parse(tf) for tf in requested}
        if not parsed:
            raise ValueError("At least one timeframe is required")
        return sorted(parsed, key=lambda tf: tf.minutes)

    async def analyze(
        self,
        symbol: str,
        timeframes: Optional[Iterable] = None,
        depth: AnalysisDepth = AnalysisDepth.COMPREHENSIVE,
        timeout: Optional[float] = None,
    ) -> ComprehensiveAnalysis:
        """
        Analyze a symbol across timeframes

        Args:
            symbol: Instrument symbol understood by the provider
            timeframes: Timeframe members or strings (default: config TIMEFRAMES)
            depth: BASIC skips the Ichimoku / volume profile extensions
            timeout: Overall deadline in seconds (default: ANALYSIS_TIMEOUT_SEC)

        Raises:
            AnalysisFailedError: every timeframe failed
            asyncio.TimeoutError: the deadline passed; nothing partial is returned
        """
        if self.provider is None:
            raise ProviderUnavailableError(symbol, "*", "no price data provider configured")

        tfs = self.normalize_timeframes(timeframes)
        depth = AnalysisDepth(depth)
        timeout = self.config.ANALYSIS_TIMEOUT_SEC if timeout is None else timeout
        logger.info(f"Analyzing {symbol} on {[tf.value for tf in tfs]} ({depth.value})")

        run = self._gather(symbol, tfs, depth)
        if timeout:
            return await asyncio.wait_for(run, timeout)
        return await run

    def analyze_sync(self, symbol: str, timeframes: Optional[Iterable] = None,
                     depth: AnalysisDepth = AnalysisDepth.COMPREHENSIVE,
                     timeout: Optional[float] = None) -> ComprehensiveAnalysis:
        """Blocking wrapper around analyze() for synchronous callers"""
        return asyncio.run(self.analyze(symbol, timeframes, depth, timeout))

    def analyze_frames(
        self,
        symbol: str,
        frames: Mapping,
        depth: AnalysisDepth = AnalysisDepth.COMPREHENSIVE,
    ) -> ComprehensiveAnalysis:
        """Run the pure pipeline over already fetched frames keyed by timeframe"""
        depth = AnalysisDepth(depth)
        results = [
            self._run_pipeline(symbol, Timeframe.parse(tf), frame, depth)
            for tf, frame in frames.items()
        ]
        return self._aggregate(symbol, results, depth)

    async def _gather(self, symbol: str, tfs: List[Timeframe], depth: AnalysisDepth) -> ComprehensiveAnalysis:
        tasks = [
            asyncio.create_task(self._analyze_timeframe(symbol, tf, depth), name=f"{symbol}:{tf.value}")
            for tf in tfs
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return self._aggregate(symbol, results, depth)

    async def _analyze_timeframe(self, symbol: str, tf: Timeframe, depth: AnalysisDepth) -> SlotResult:
        try:
            frame = await fetch_with_retry(
                self.provider,
                symbol,
                tf,
                self.config.CANDLE_LIMIT,
                max_retries=self.config.FETCH_MAX_RETRIES,
                backoff=self.config.FETCH_BACKOFF_SEC,
                max_backoff=self.config.FETCH_BACKOFF_MAX_SEC,
            )
        except ProviderUnavailableError as e:
            logger.error(f"{symbol} [{tf.value}] degraded: {e}")
            return tf, TimeframeSignal.placeholder(tf, str(e)), None
        except Exception as e:
            logger.exception(f"{symbol} [{tf.value}] provider raised unexpectedly")
            return tf, TimeframeSignal.placeholder(tf, f"{type(e).__name__}: {e}"), None
        return await asyncio.to_thread(self._run_pipeline, symbol, tf, frame, depth)

    def _run_pipeline(self, symbol: str, tf: Timeframe, frame: pd.DataFrame, depth: AnalysisDepth) -> SlotResult:
        try:
            result = self.pipeline.run(frame, tf, depth)
        except TIMEFRAME_ERRORS as e:
            logger.warning(f"{symbol} [{tf.value}] degraded: {e}")
            return tf, TimeframeSignal.placeholder(tf, str(e)), None
        except Exception as e:
            logger.exception(f"{symbol} [{tf.value}] pipeline raised unexpectedly")
            return tf, TimeframeSignal.placeholder(tf, f"{type(e).__name__}: {e}"), None
        return tf, result.signal, result.candles

    def _aggregate(self, symbol: str, results: Iterable[SlotResult], depth: AnalysisDepth) -> ComprehensiveAnalysis:
        signals: Dict[Timeframe, TimeframeSignal] = {}
        candles: Dict[Timeframe, pd.DataFrame] = {}
        for tf, signal, frame in results:
            signals[tf] = signal
            if frame is not None:
                candles[tf] = frame
        return self.aggregator.aggregate(symbol, signals, candles, depth)
