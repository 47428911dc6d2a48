"""
SSQ Strategy Generators
=======================
Rule-based ("statistical") predictions built from the hot/warm/cold and
high-omission pools of a ComprehensiveAnalysis.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from loguru import logger

from ssq_engine.analytics_engine import ComprehensiveAnalysis
from ssq_engine.models import (
    METHOD_STATISTICAL,
    RED_COUNT,
    RED_MAX,
    PredictionCandidate,
)

MIN_PREDICTIONS = 1
MAX_PREDICTIONS = 10
OVERFLOW_CONFIDENCE = 0.6
OVERFLOW_LABEL = 'balanced'


@dataclass(frozen=True)
class StrategyDefinition:
    """How many numbers a strategy draws from each pool, and its fixed confidence."""
    name: str
    hot: int
    warm: int
    cold: int
    high_omission: int
    confidence: float
    reasoning: str


STRATEGY_REGISTRY = (
    StrategyDefinition('conservative', 4, 1, 1, 0, 0.70,
                       "Built mostly from hot numbers with the highest frequency, "
                       "favouring the smaller prize tiers"),
    StrategyDefinition('balanced', 2, 2, 1, 1, 0.65,
                       "Balances hot, warm, cold and high-omission numbers "
                       "across large and small prize chances"),
    StrategyDefinition('aggressive', 1, 1, 2, 2, 0.55,
                       "Leans on cold and long-absent numbers chasing the top tiers "
                       "at a lower hit rate"),
    StrategyDefinition('balanced_hot', 3, 2, 0, 1, 0.68,
                       "Hot-leaning mix with warm support and one overdue number"),
    StrategyDefinition('conservative_hot', 5, 0, 1, 0, 0.72,
                       "Almost entirely hot numbers with a single cold hedge"),
)


def get_strategy(name: str) -> StrategyDefinition:
    for strategy in STRATEGY_REGISTRY:
        if strategy.name == name:
            return strategy
    raise KeyError(f"Unknown strategy: {name}")


@dataclass
class StatisticalPredictionResult:
    predictions: List[PredictionCandidate]
    deterministic: bool
    strategy_weights: Dict[str, float] = field(default_factory=dict)


class StatisticalPredictor:
    """Generates predictions by cycling the named strategies of the registry"""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def predict(self, analysis: ComprehensiveAnalysis, num_predictions: int = 5,
                deterministic: bool = False,
                strategy_weights: Optional[Dict[str, float]] = None,
                period: Optional[str] = None) -> StatisticalPredictionResult:
        """
        Generate `num_predictions` candidates.

        Args:
            analysis: Window statistics
            num_predictions: 1-10
            deterministic: Pad missing numbers in ascending order instead of sampling
            strategy_weights: Carried through as metadata only
            period: Target period stamped on every candidate

        Raises:
            ValueError: num_predictions outside 1-10
        """
        if not MIN_PREDICTIONS <= num_predictions <= MAX_PREDICTIONS:
            raise ValueError(f"num_predictions must be between {MIN_PREDICTIONS} and "
                             f"{MAX_PREDICTIONS}, got {num_predictions}")

        blue_pool = analysis.frequency.blue_balls
        predictions = []
        for i in range(num_predictions):
            strategy = STRATEGY_REGISTRY[i % len(STRATEGY_REGISTRY)]
            overflow = i >= len(STRATEGY_REGISTRY)

            red_balls = self.select_balls(analysis, strategy, deterministic)
            predictions.append(PredictionCandidate(
                red_balls=red_balls,
                blue_ball=blue_pool[i % len(blue_pool)],
                confidence=OVERFLOW_CONFIDENCE if overflow else strategy.confidence,
                strategy=OVERFLOW_LABEL if overflow else strategy.name,
                reasoning=(f"Supplementary prediction reusing the {strategy.name} pool mix"
                           if overflow else strategy.reasoning),
                sources=[METHOD_STATISTICAL],
                period=period,
            ))

        logger.info(f"Generated {len(predictions)} statistical predictions "
                    f"(deterministic={deterministic})")
        return StatisticalPredictionResult(
            predictions=predictions,
            deterministic=deterministic,
            strategy_weights=dict(strategy_weights or {}),
        )

    def select_balls(self, analysis: ComprehensiveAnalysis, strategy: StrategyDefinition,
                     deterministic: bool) -> List[int]:
        """
        Take the first N entries of each pool (skipping numbers already chosen),
        then pad to six from the rest of 1-33.
        """
        pools = (
            (analysis.frequency.hot_numbers, strategy.hot),
            (analysis.frequency.warm_numbers, strategy.warm),
            (analysis.frequency.cold_numbers, strategy.cold),
            (analysis.omission.high_omission, strategy.high_omission),
        )
        chosen: List[int] = []
        for pool, count in pools:
            for number in pool[:count]:
                if number not in chosen:
                    chosen.append(number)

        chosen = chosen[:RED_COUNT]
        missing = RED_COUNT - len(chosen)
        if missing > 0:
            remaining = [n for n in range(1, RED_MAX + 1) if n not in chosen]
            if deterministic:
                chosen.extend(remaining[:missing])
            else:
                picks = self.rng.choice(remaining, size=missing, replace=False)
                chosen.extend(int(n) for n in picks)

        return sorted(chosen)
