"""
SSQ Walk-Forward Backtester
===========================

Replays history: for every target draw after a warm-up, only the draws
strictly before it are analysed, the statistical and ML predictors are run
(the ML predictor once per candidate weight vector, each vector saved
as one profile for the whole run), and each prediction is
evaluated against the target and recorded in the tracker. The tracker then
reports win rates and the best-performing weight profile.
"""

import configparser
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from loguru import logger

from ssq_engine.analytics_engine import AnalyticsEngine
from ssq_engine.config import get_min_periods, load_config
from ssq_engine.loader import InMemoryDrawHistory
from ssq_engine.ml_predictor import FeatureWeightedPredictor
from ssq_engine.models import DrawRecord, EvaluationRecord, FeatureWeightProfile, FeatureWeights
from ssq_engine.prediction_evaluator import PredictionEvaluator
from ssq_engine.strategy_generators import StatisticalPredictor
from ssq_engine.winning_tracker import WinningRateStats, WinningTracker

DEFAULT_WEIGHT_CANDIDATES = (
    FeatureWeights(),
    FeatureWeights(0.4, 0.1, 0.3, 0.1, 0.1),
    FeatureWeights(0.2, 0.3, 0.1, 0.2, 0.2),
)


@dataclass
class BacktestReport:
    targets: int
    evaluations: List[EvaluationRecord] = field(default_factory=list)
    winning_rates: Dict[str, WinningRateStats] = field(default_factory=dict)
    optimal_weights: Optional[FeatureWeightProfile] = None
    method_weights: Dict[str, float] = field(default_factory=dict)

    @property
    def average_score(self) -> float:
        if not self.evaluations:
            return 0.0
        return float(np.mean([e.score for e in self.evaluations]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'targets': self.targets,
            'evaluations': len(self.evaluations),
            'averageScore': round(self.average_score, 2),
            'winningRates': {m: s.to_dict() for m, s in self.winning_rates.items()},
            'optimalWeights': self.optimal_weights.to_dict() if self.optimal_weights else None,
            'methodWeights': self.method_weights,
        }


class Backtester:
    """Walk-forward evaluation of the statistical and ML predictors."""

    def __init__(self, records: Sequence[DrawRecord], tracker: WinningTracker,
                 config: Optional[configparser.ConfigParser] = None,
                 rng: Optional[np.random.Generator] = None,
                 scope: str = 'backtest',
                 weight_candidates: Sequence[FeatureWeights] = DEFAULT_WEIGHT_CANDIDATES):
        self.config = config or load_config()
        self.history = InMemoryDrawHistory(records)
        self.tracker = tracker
        self.scope = scope
        self.weight_candidates = [w.normalized() for w in weight_candidates]

        rng = rng if rng is not None else np.random.default_rng()
        self.analytics = AnalyticsEngine(self.history, self.config)
        self.statistical = StatisticalPredictor(rng=rng)
        self.ml = FeatureWeightedPredictor(rng=rng,
                                           pool_size=self.config.getint("ml", "pool_size", fallback=12))
        self.evaluator = PredictionEvaluator()
        self.min_periods = get_min_periods(self.config)

    def run(self, window: Optional[int] = None, warmup: Optional[int] = None,
            max_targets: Optional[int] = None) -> BacktestReport:
        """
        Args:
            window: Draws analysed before each target (defaults to all earlier draws)
            warmup: Index of the first target (defaults to the minimum window)
            max_targets: Only replay the most recent N targets

        Returns:
            BacktestReport with every evaluation and the tracker's conclusions
        """
        draws = self.history.chronological()
        warmup = max(warmup or self.min_periods, self.min_periods)
        if window is not None and window < self.min_periods:
            raise ValueError(f"window must be at least {self.min_periods}, got {window}")

        target_indexes = list(range(warmup, len(draws)))
        if max_targets is not None:
            target_indexes = target_indexes[-max_targets:]

        logger.info(f"Backtest started: {len(target_indexes)} targets, window={window or 'all'}, "
                    f"{len(self.weight_candidates)} weight candidates")

        report = BacktestReport(targets=len(target_indexes))
        profile_ids = []
        if target_indexes:
            profile_ids = [self.tracker.save_weight_profile(weights, scope=self.scope)
                           for weights in self.weight_candidates]
        for position, index in enumerate(target_indexes, start=1):
            target = draws[index]
            start = 0 if window is None else max(0, index - window)
            training = draws[start:index]
            report.evaluations.extend(self._replay_target(training, target, profile_ids))

            if position % 10 == 0 or position == len(target_indexes):
                logger.info(f"Backtest progress: {position}/{len(target_indexes)} targets")

        if target_indexes:
            periods = len(target_indexes)
            report.winning_rates = self.tracker.get_winning_rates(periods, self.scope)
            report.optimal_weights = self.tracker.get_optimal_weights(periods, self.scope)
            report.method_weights = self.tracker.get_method_weights(periods, self.scope)

        logger.info(f"Backtest finished: {len(report.evaluations)} evaluations, "
                    f"average score {report.average_score:.2f}")
        return report

    def _replay_target(self, training: List[DrawRecord], target: DrawRecord,
                       profile_ids: List[int]) -> List[EvaluationRecord]:
        analysis = self.analytics.analyze_draws(training)
        evaluations = []

        statistical = self.statistical.predict(analysis, num_predictions=5, period=target.period)
        for candidate in statistical.predictions:
            evaluations.append(self.evaluator.evaluate(candidate, target))

        for weights, profile_id in zip(self.weight_candidates, profile_ids):
            ml = self.ml.predict(analysis, weights, num_predictions=5, period=target.period)
            for candidate in ml.predictions:
                evaluations.append(self.evaluator.evaluate(candidate, target,
                                                           weight_profile_id=profile_id))

        self.tracker.track_evaluations(evaluations, scope=self.scope)
        return evaluations
