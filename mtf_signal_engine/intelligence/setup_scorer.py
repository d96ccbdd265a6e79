"""
Setup Quality Scorer
Turns the aggregated multi-timeframe state into a 0-100 score, a trade side,
concrete entry / stop / target prices and the risk factors behind the score.

Score = alignment (30) + average trend strength (25)
      + capped confluence count (20) + reward/risk (25)
All weights live in SetupWeights and are policy values, not tuned constants.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from ..config import CONFIG, EngineConfig
from ..models import (
    CriticalLevels,
    LevelSignificance,
    OverallTrend,
    SetupGrade,
    SetupQuality,
    SignalDirection,
    TimeframeSignal,
    TradeSide,
    TrendDirection,
)


@dataclass(frozen=True)
class TradeLevels:
    stop_loss: Optional[float]
    take_profit: Optional[float]
    take_profit_2: Optional[float]
    source: str


def classify_setup_grade(score: float) -> SetupGrade:
    """
    Classify setup quality based on the composite score (0-100).
    """
    if score >= 85:
        return SetupGrade.EXCELLENT
    elif score >= 65:
        return SetupGrade.STRONG
    elif score >= 40:
        return SetupGrade.MODERATE
    else:
        return SetupGrade.WEAK


class SetupQualityScorer:

    def __init__(self, config: EngineConfig = CONFIG):
        self.config = config
        self.weights = config.SETUP

    def choose_side(self, overall: OverallTrend, signals: Sequence[TimeframeSignal]) -> TradeSide:
        if overall.dominant is TrendDirection.BULLISH:
            return TradeSide.LONG
        if overall.dominant is TrendDirection.BEARISH:
            return TradeSide.SHORT
        buys = sum(1 for s in signals if s.direction is SignalDirection.BUY)
        sells = sum(1 for s in signals if s.direction is SignalDirection.SELL)
        return TradeSide.SHORT if sells > buys else TradeSide.LONG

    def resolve_levels(
        self,
        side: TradeSide,
        price: float,
        levels: CriticalLevels,
        atr: Optional[float],
    ) -> TradeLevels:
        """
        Stop and targets from the nearest qualifying levels

        Major and critical levels are tried first, then every consolidated
        level, then classic pivots, then ATR multiples; a source is only used
        when it provides both a stop and a first target on the correct sides
        of price.
        """
        major = [l.price for l in levels.levels if l.significance.rank >= LevelSignificance.MAJOR.rank]
        for prices, source in ((major, "levels"), ([l.price for l in levels.levels], "minor_levels")):
            below = sorted((p for p in prices if p < price), reverse=True)
            above = sorted(p for p in prices if p > price)
            found = self._pick(side, below, above)
            if found:
                return TradeLevels(*found, source=source)

        if levels.pivots is not None:
            p = levels.pivots
            points = {p.pivot, p.r1, p.r2, p.r3, p.s1, p.s2, p.s3, p.top_central, p.bottom_central}
            below = sorted((x for x in points if x < price), reverse=True)
            above = sorted(x for x in points if x > price)
            found = self._pick(side, below, above)
            if found:
                return TradeLevels(*found, source="pivots")

        if atr is not None and atr > 0:
            stop_dist = self.weights.ATR_STOP_MULTIPLIER * atr
            target_dist = self.weights.ATR_TARGET_MULTIPLIER * atr
            sign = 1 if side is TradeSide.LONG else -1
            return TradeLevels(
                stop_loss=price - sign * stop_dist,
                take_profit=price + sign * target_dist,
                take_profit_2=price + sign * 2 * target_dist,
                source="atr",
            )

        return TradeLevels(None, None, None, source="none")

    @staticmethod
    def _pick(side: TradeSide, below: List[float], above: List[float]):
        stops, targets = (below, above) if side is TradeSide.LONG else (above, below)
        if not stops or not targets:
            return None
        second = targets[1] if len(targets) > 1 else None
        return stops[0], targets[0], second

    def score(
        self,
        signals: Sequence[TimeframeSignal],
        overall: OverallTrend,
        levels: CriticalLevels,
        current_price: float,
        degraded_timeframes: Sequence[str] = (),
    ) -> SetupQuality:
        """
        Args:
            signals: Valid timeframe signals, shortest timeframe first
            overall: Cross-timeframe trend summary
            levels: Consolidated critical levels, pivots and Fibonacci
            current_price: Entry reference price
            degraded_timeframes: Timeframes that failed and were excluded
        """
        w = self.weights
        side = self.choose_side(overall, signals)
        atr = signals[-1].indicators.volatility.atr if signals and signals[-1].indicators else None
        trade = self.resolve_levels(side, current_price, levels, atr)

        risk_reward = 0.0
        if trade.stop_loss is not None and trade.take_profit is not None:
            risk = abs(current_price - trade.stop_loss)
            reward = abs(trade.take_profit - current_price)
            risk_reward = reward / risk if risk > 0 else 0.0

        confluence_count = sum(len(s.confluences) for s in signals)
        factors = {
            "alignment": w.ALIGNMENT * overall.alignment_score,
            "trend_strength": w.TREND_STRENGTH * overall.average_strength,
            "confluence": w.CONFLUENCE * min(confluence_count, w.CONFLUENCE_CAP) / w.CONFLUENCE_CAP,
            "risk_reward": w.RISK_REWARD * min(risk_reward / w.RISK_REWARD_TARGET, 1.0),
        }
        score = min(max(sum(factors.values()), 0.0), 100.0)
        win_probability = min(
            w.WIN_PROBABILITY_CAP, w.WIN_PROBABILITY_BASE + w.WIN_PROBABILITY_SLOPE * score / 100.0
        )

        logger.debug(
            f"Setup {side.value} score={score:.1f} rr={risk_reward:.2f} levels from {trade.source}"
        )
        return SetupQuality(
            score=score,
            grade=classify_setup_grade(score),
            side=side,
            entry_price=current_price,
            stop_loss=trade.stop_loss,
            take_profit=trade.take_profit,
            take_profit_2=trade.take_profit_2,
            risk_reward_ratio=risk_reward,
            win_probability=win_probability,
            factors=factors,
            entry_triggers=self._entry_triggers(side, current_price, trade, signals),
            exit_conditions=self._exit_conditions(side, trade),
            risk_factors=self._risk_factors(side, signals, overall, degraded_timeframes),
            level_source=trade.source,
        )

    @staticmethod
    def _entry_triggers(side, price, trade, signals) -> Tuple[str, ...]:
        wanted = SignalDirection.BUY if side is TradeSide.LONG else SignalDirection.SELL
        triggers = [f"{side.value} entry near {price:.2f}"]
        if trade.stop_loss is not None:
            relation = "above" if side is TradeSide.LONG else "below"
            triggers.append(f"price holds {relation} {trade.stop_loss:.2f}")
        agreeing = [s.timeframe.value for s in signals if s.direction is wanted]
        if agreeing:
            triggers.append(f"{wanted.value} signal on {', '.join(agreeing)}")
        confirmed = [s.timeframe.value for s in signals if s.volume_confirmed]
        if confirmed:
            triggers.append(f"volume above average on {', '.join(confirmed)}")
        return tuple(triggers)

    @staticmethod
    def _exit_conditions(side, trade) -> Tuple[str, ...]:
        exits = []
        if trade.stop_loss is not None:
            exits.append(f"stop loss at {trade.stop_loss:.2f}")
        if trade.take_profit is not None:
            exits.append(f"take profit at {trade.take_profit:.2f}")
        if trade.take_profit_2 is not None:
            exits.append(f"second target at {trade.take_profit_2:.2f}")
        opposite = TrendDirection.BEARISH if side is TradeSide.LONG else TrendDirection.BULLISH
        exits.append(f"dominant trend turns {opposite.value}")
        return tuple(exits)

    def _risk_factors(self, side, signals, overall, degraded_timeframes) -> Tuple[str, ...]:
        risks = [f"{tf} data unavailable" for tf in degraded_timeframes]
        if overall.alignment_score < 0.5:
            risks.append(f"low timeframe alignment ({overall.alignment_score:.0%})")

        opposing = SignalDirection.SELL if side is TradeSide.LONG else SignalDirection.BUY
        for s in signals:
            if s.direction is opposing:
                risks.append(f"{s.timeframe.value} signals {opposing.value} against {side.value} setup")
        for s in signals:
            risks.extend(f"{s.timeframe.value}: {name}" for name in s.divergences)

        return tuple(risks[:self.weights.MAX_RISK_FACTORS])
