"""
SSQ Ensemble Prediction Engine
==============================
Runs the statistical, ML and AI predictors over one analysis window and
merges their candidates into a final set of five.

The AI predictor runs on a worker thread (its own call is bounded by a
timeout) while the statistical and ML predictors run on the caller's thread.
"""

import concurrent.futures
import configparser
import dataclasses
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import numpy as np
from loguru import logger

from ssq_engine.ai_predictor import AIPredictionResult, ExternalReasoningPredictor
from ssq_engine.analytics_engine import AnalyticsEngine, ComprehensiveAnalysis
from ssq_engine.config import get_feature_weights, load_config
from ssq_engine.exceptions import ExternalReasoningError
from ssq_engine.loader import DrawHistoryProvider
from ssq_engine.ml_predictor import FeatureWeightedPredictor, MLPredictionResult
from ssq_engine.models import (
    METHOD_STATISTICAL,
    RED_COUNT,
    RED_MAX,
    FeatureWeights,
    PredictionCandidate,
)
from ssq_engine.period_utils import calculate_next_period
from ssq_engine.reasoning_service import ReasoningService
from ssq_engine.strategy_generators import StatisticalPredictionResult, StatisticalPredictor
from ssq_engine.winning_tracker import BASE_METHOD_WEIGHTS, WinningTracker

ENSEMBLE_SIZE = 5
SUPPLEMENTARY_SCORE = 0.5
SUPPLEMENTARY_CONFIDENCE = 0.6


@dataclass
class EnsemblePrediction:
    predictions: List[PredictionCandidate]
    period: str
    analysis: ComprehensiveAnalysis
    statistical: StatisticalPredictionResult
    ml: MLPredictionResult
    ai: Optional[AIPredictionResult] = None
    method_weights: Dict[str, float] = field(default_factory=dict)
    feature_weights: FeatureWeights = field(default_factory=FeatureWeights)
    weight_profile_id: Optional[int] = None

    @property
    def strategies(self) -> List[str]:
        methods = [METHOD_STATISTICAL]
        if self.ai is not None:
            methods.append('ai')
        methods.append('ml')
        return methods

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period': self.period,
            'predictions': [p.to_dict() for p in self.predictions],
            'metadata': {
                'totalPeriods': self.analysis.total_periods,
                'latestPeriod': self.analysis.latest_period,
                'strategies': self.strategies,
                'methodWeights': self.method_weights,
                'featureWeights': self.feature_weights.as_dict(),
                'weightProfileId': self.weight_profile_id,
                'aiFallback': self.ai.fallback if self.ai else None,
            },
        }


class PredictionEngine:
    """Ensemble of the statistical, ML and AI predictors."""

    def __init__(self, provider: DrawHistoryProvider,
                 tracker: Optional[WinningTracker] = None,
                 reasoning_service: Optional[ReasoningService] = None,
                 config: Optional[configparser.ConfigParser] = None,
                 rng: Optional[np.random.Generator] = None,
                 scope: Optional[str] = None):
        self.config = config or load_config()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.tracker = tracker
        self.scope = scope

        self.analytics = AnalyticsEngine(provider, self.config)
        self.statistical = StatisticalPredictor(rng=self.rng)
        self.ml = FeatureWeightedPredictor(
            rng=self.rng, pool_size=self.config.getint("ml", "pool_size", fallback=12))
        self.ai = ExternalReasoningPredictor(service=reasoning_service, config=self.config,
                                             ranker=self.ml)

        self.default_weights = get_feature_weights(self.config)
        self.tracker_periods = self.config.getint("tracker", "default_periods", fallback=50)
        self.deterministic = self.config.getboolean("statistical", "deterministic", fallback=False)
        logger.info(f"PredictionEngine initialized (tracker={'on' if tracker else 'off'}, "
                    f"ai_service={'on' if reasoning_service else 'off'})")

    def predict(self, periods: Optional[int] = None,
                feature_weights: Optional[FeatureWeights] = None,
                include_ai: bool = True,
                temperature: Optional[float] = None,
                max_tokens: Optional[int] = None) -> EnsemblePrediction:
        """
        Generate the ensemble prediction for the next undrawn period.

        Args:
            periods: Analysis window (config default when None)
            feature_weights: ML weights; the tracker's optimal profile (or the
                configured [ml] weights) when None
            include_ai: Run the AI predictor
            temperature: AI sampling hint
            max_tokens: AI response length hint

        Raises:
            InsufficientHistoryError: window below minimum or not enough stored draws
        """
        records, analysis = self.analytics.load_and_analyze(periods)
        target_period = calculate_next_period(analysis.latest_period)
        logger.info(f"Generating ensemble prediction for period {target_period}")

        weights = (feature_weights or self._optimal_feature_weights()).normalized()
        profile_id = self._save_profile(weights, target_period)
        method_weights = self._method_weights()

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            ai_future = None
            if include_ai:
                ai_future = executor.submit(self.ai.predict, records, analysis, temperature,
                                            max_tokens, None, target_period)

            statistical = self.statistical.predict(
                analysis, num_predictions=ENSEMBLE_SIZE, deterministic=self.deterministic,
                period=target_period)
            ml = self.ml.predict(analysis, weights, num_predictions=ENSEMBLE_SIZE,
                                 period=target_period)

            ai_result = None
            if ai_future is not None:
                try:
                    ai_result = ai_future.result()
                except ExternalReasoningError as e:
                    logger.warning(f"AI prediction failed, continuing with statistical and ML: {e.message}")
        finally:
            executor.shutdown(wait=False)

        predictions = self.merge_predictions(analysis, statistical, ml, ai_result,
                                             method_weights, target_period)

        logger.info(f"Ensemble prediction complete ({len(predictions)} predictions, "
                    f"ai={'yes' if ai_result else 'no'})")
        return EnsemblePrediction(
            predictions=predictions,
            period=target_period,
            analysis=analysis,
            statistical=statistical,
            ml=ml,
            ai=ai_result,
            method_weights=method_weights,
            feature_weights=weights,
            weight_profile_id=profile_id,
        )

    def _optimal_feature_weights(self) -> FeatureWeights:
        if self.tracker is None:
            return self.default_weights
        try:
            profile = self.tracker.get_optimal_weights(self.tracker_periods, self.scope)
        except sqlite3.Error as e:
            logger.warning(f"Could not read optimal weights, using defaults: {e}")
            return self.default_weights
        return profile.weights if profile.profile_id is not None else self.default_weights

    def _method_weights(self) -> Dict[str, float]:
        if self.tracker is None:
            return dict(BASE_METHOD_WEIGHTS)
        try:
            return self.tracker.get_method_weights(self.tracker_periods, self.scope)
        except sqlite3.Error as e:
            logger.warning(f"Could not read method weights, using defaults: {e}")
            return dict(BASE_METHOD_WEIGHTS)

    def _save_profile(self, weights: FeatureWeights, period: str) -> Optional[int]:
        if self.tracker is None:
            return None
        try:
            return self.tracker.save_weight_profile(weights, period=period, scope=self.scope)
        except sqlite3.Error as e:
            logger.warning(f"Could not save weight profile for {period}: {e}")
            return None

    def merge_predictions(self, analysis: ComprehensiveAnalysis,
                          statistical: StatisticalPredictionResult,
                          ml: MLPredictionResult,
                          ai: Optional[AIPredictionResult],
                          method_weights: Dict[str, float],
                          period: Optional[str] = None) -> List[PredictionCandidate]:
        """
        Score = confidence x method weight; duplicates (same reds and blue) keep
        the first occurrence (ai, then ml, then statistical); scores are blended
        with the share of hot and high-omission numbers; top five are kept and
        padded with supplementary picks.
        """
        scored = []
        for result, method in ((ai, 'ai'), (ml, 'ml'), (statistical, METHOD_STATISTICAL)):
            if result is None:
                continue
            weight = method_weights.get(method, BASE_METHOD_WEIGHTS.get(method, 0.0))
            for candidate in result.predictions:
                scored.append((candidate.confidence * weight, candidate))

        hot = set(analysis.frequency.hot_numbers)
        high_omission = set(analysis.omission.high_omission)

        seen: Set = set()
        unique = []
        for score, candidate in scored:
            if candidate.key() in seen:
                continue
            seen.add(candidate.key())

            hot_share = sum(1 for n in candidate.red_balls if n in hot) / RED_COUNT
            omission_share = sum(1 for n in candidate.red_balls if n in high_omission) / RED_COUNT
            rescored = score * 0.6 + (hot_share * 0.2 + omission_share * 0.2) * 0.4
            merged = dataclasses.replace(
                candidate,
                confidence=min(1.0, candidate.confidence + (hot_share + omission_share) * 0.1),
            )
            unique.append((rescored, merged))

        unique.sort(key=lambda item: -item[0])
        top = [candidate for _, candidate in unique[:ENSEMBLE_SIZE]]

        while len(top) < ENSEMBLE_SIZE:
            top.append(self.supplementary_prediction(analysis, top, period))
            logger.debug("Padded ensemble with a supplementary prediction")
        return top

    def supplementary_prediction(self, analysis: ComprehensiveAnalysis,
                                 existing: List[PredictionCandidate],
                                 period: Optional[str] = None) -> PredictionCandidate:
        """Hot numbers not used by the existing picks, padded at random."""
        used = {n for candidate in existing for n in candidate.red_balls}
        red_balls = [n for n in analysis.frequency.hot_numbers if n not in used][:RED_COUNT]

        missing = RED_COUNT - len(red_balls)
        if missing > 0:
            remaining = [n for n in range(1, RED_MAX + 1) if n not in used and n not in red_balls]
            if len(remaining) < missing:
                remaining = [n for n in range(1, RED_MAX + 1) if n not in red_balls]
            red_balls.extend(int(n) for n in self.rng.choice(remaining, size=missing, replace=False))

        blue_pool = analysis.frequency.blue_balls
        return PredictionCandidate(
            red_balls=red_balls,
            blue_ball=blue_pool[len(existing) % len(blue_pool)],
            confidence=SUPPLEMENTARY_CONFIDENCE,
            strategy='balanced',
            reasoning="Supplementary prediction based on frequency analysis",
            sources=[METHOD_STATISTICAL],
            features={'supplementary_score': SUPPLEMENTARY_SCORE},
            period=period,
        )
