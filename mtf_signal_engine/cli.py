"""
Multi-timeframe analysis from the command line

Usage:
  mtf-analyze ^NSEI
  mtf-analyze AAPL --timeframes 15m 1h 1d --depth basic --json
"""

import argparse
import asyncio
import json
import sys

import pandas as pd
from loguru import logger

from .config import EngineConfig
from .data import YahooFinanceProvider
from .engine import TechnicalAnalysisEngine
from .errors import TechnicalAnalysisError
from .models import AnalysisDepth, ComprehensiveAnalysis, Timeframe
from .utils import setup_logger


def format_summary(analysis: ComprehensiveAnalysis) -> str:
    """Human readable report of one analysis"""
    rows = []
    for tf, signal in analysis.timeframes.items():
        rows.append({
            'Timeframe': tf,
            'Status': signal.status.value,
            'Trend': signal.trend.direction.value,
            'Signal': signal.direction.value,
            'Strength': round(signal.strength, 2),
            'Momentum': signal.momentum.value,
            'Close': signal.last_close,
        })

    overall = analysis.overall_trend
    setup = analysis.setup_quality
    lines = [
        "=" * 70,
        f"{analysis.symbol} @ {analysis.current_price:,.2f}  ({analysis.status.value}, as of {analysis.as_of})",
        "=" * 70,
        pd.DataFrame(rows).to_string(index=False),
        "",
        f"Trend  short={overall.short_term.value} medium={overall.medium_term.value} "
        f"long={overall.long_term.value} | alignment {overall.alignment_score:.0%}",
        f"Setup  {setup.side.value.upper()} score {setup.score:.1f} ({setup.grade.value}) "
        f"RR {setup.risk_reward_ratio:.2f} win {setup.win_probability:.0%}",
    ]
    if setup.stop_loss is not None and setup.take_profit is not None:
        lines.append(
            f"       entry {setup.entry_price:,.2f} stop {setup.stop_loss:,.2f} "
            f"target {setup.take_profit:,.2f} (from {setup.level_source})"
        )
    for level in analysis.critical_levels.levels:
        lines.append(
            f"Level  {level.kind.value:<10} {level.price:,.2f} strength {level.strength} "
            f"touches {level.touch_count} {level.significance.value}"
        )
    for risk in setup.risk_factors:
        lines.append(f"Risk   {risk}")
    return "\n".join(lines)


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(description='Multi-timeframe technical analysis')
    parser.add_argument('symbol', type=str, help='Ticker symbol, e.g. ^NSEI or AAPL')
    parser.add_argument(
        '--timeframes',
        nargs='+',
        default=None,
        help='Timeframes to analyze (default: MTF_TIMEFRAMES or 1m 5m 15m 1h 4h 1d)'
    )
    parser.add_argument(
        '--depth',
        choices=[d.value for d in AnalysisDepth],
        default=AnalysisDepth.COMPREHENSIVE.value,
    )
    parser.add_argument('--limit', type=int, default=None, help='Candles per timeframe')
    parser.add_argument('--timeout', type=float, default=None, help='Overall deadline in seconds')
    parser.add_argument('--env-file', type=str, default=None, help='Path to a .env file')
    parser.add_argument('--log-level', type=str, default=None)
    parser.add_argument('--json', action='store_true', help='Print the analysis as JSON')

    args = parser.parse_args(argv)

    try:
        config = EngineConfig.from_env(args.env_file)
        if args.limit:
            config = config.with_overrides(CANDLE_LIMIT=args.limit)
        timeframes = [Timeframe.parse(tf) for tf in args.timeframes] if args.timeframes else None
    except (TechnicalAnalysisError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logger(args.log_level or config.LOG_LEVEL)
    engine = TechnicalAnalysisEngine(YahooFinanceProvider(), config)

    try:
        analysis = engine.analyze_sync(
            args.symbol,
            timeframes=timeframes,
            depth=AnalysisDepth(args.depth),
            timeout=args.timeout,
        )
    except TechnicalAnalysisError as e:
        logger.error(f"✗ Analysis failed: {e}")
        return 1
    except asyncio.TimeoutError:
        logger.error(f"✗ Analysis of {args.symbol} timed out after {args.timeout}s")
        return 1

    if args.json:
        print(json.dumps(analysis.to_dict(), indent=2))
    else:
        print(format_summary(analysis))
    return 0


if __name__ == '__main__':
    sys.exit(main())
