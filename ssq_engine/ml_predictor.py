"""
SSQ Feature-Weighted Predictor
==============================

The "ml" method: every red number gets a linear score from normalized
features, turned into a probability with a steep sigmoid, and predictions
are sampled from the top-scored pool.

Features per red number:
- frequency: count / max count in the window
- omission: current omission / max current omission
- hot, cold, high_omission: band membership indicators (0 or 1)
- zone: 0.33 / 0.66 / 1.0 (informational, not weighted)

probability = 1 / (1 + exp(-5 * score))
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
from loguru import logger

from ssq_engine.analytics_engine import ComprehensiveAnalysis
from ssq_engine.models import (
    METHOD_ML,
    RED_COUNT,
    RED_MAX,
    FeatureWeights,
    PredictionCandidate,
)
from ssq_engine.statistical_core import ZONES, SMALL_MAX

SIGMOID_STEEPNESS = 5.0
DEFAULT_POOL_SIZE = 12
MAX_SAMPLE_ATTEMPTS = 10

# Weight tilts applied on top of the caller weights, one per prediction
BASE_PROFILE = FeatureWeights()
ML_PROFILES: Tuple[Tuple[str, FeatureWeights], ...] = (
    ('conservative', FeatureWeights(0.4, 0.1, 0.3, 0.1, 0.1)),
    ('balanced', FeatureWeights(0.3, 0.2, 0.2, 0.15, 0.15)),
    ('aggressive', FeatureWeights(0.2, 0.3, 0.1, 0.2, 0.2)),
    ('balanced', FeatureWeights(0.3, 0.2, 0.2, 0.15, 0.15)),
    ('conservative', FeatureWeights(0.4, 0.1, 0.3, 0.1, 0.1)),
)


@dataclass
class NumberScore:
    """Score of a single red number under one weight vector"""
    number: int
    score: float
    probability: float
    features: Dict[str, float] = field(default_factory=dict)


@dataclass
class MLPredictionResult:
    predictions: List[PredictionCandidate]
    feature_importance: Dict[str, float]
    weights: FeatureWeights = field(default_factory=FeatureWeights)


def apply_profile(weights: FeatureWeights, profile: FeatureWeights) -> FeatureWeights:
    """Tilt `weights` by the profile's deviation from the base vector: w * (1 + (p - base))."""
    return FeatureWeights(**{
        name: getattr(weights, name) * (1 + (getattr(profile, name) - getattr(BASE_PROFILE, name)))
        for name in FeatureWeights.FIELDS
    })


def zone_feature(number: int) -> float:
    if number <= ZONES['zone1'][1]:
        return 0.33
    if number <= ZONES['zone2'][1]:
        return 0.66
    return 1.0


def determine_strategy(features: Dict[str, float]) -> str:
    """Label from sub-scores: mostly hot -> conservative, mostly overdue -> aggressive."""
    if features.get('hot_score', 0.0) > 0.6:
        return 'conservative'
    if features.get('omission_score', 0.0) > 0.5:
        return 'aggressive'
    return 'balanced'


def calculate_distribution_score(red_balls: List[int]) -> float:
    """
    How close a ticket is to an even spread: 2/2/2 zones, 3/3 odd-even and 3/3 small-large.

    Returns:
        zone * 0.4 + odd_even * 0.3 + size * 0.3, 1.0 for a perfect spread
    """
    zone_counts = [sum(1 for n in red_balls if low <= n <= high) for low, high in ZONES.values()]
    zone_score = 1 - sum(abs(count - 2) for count in zone_counts) / 6

    odd = sum(1 for n in red_balls if n % 2 == 1)
    odd_even_score = 1 - abs(odd - (len(red_balls) - odd)) / 6

    small = sum(1 for n in red_balls if n <= SMALL_MAX)
    size_score = 1 - abs(small - (len(red_balls) - small)) / 6

    return zone_score * 0.4 + odd_even_score * 0.3 + size_score * 0.3


class FeatureWeightedPredictor:
    """Weighted-feature scoring with top-K pool sampling"""

    def __init__(self, rng: Optional[np.random.Generator] = None, pool_size: int = DEFAULT_POOL_SIZE):
        if not RED_COUNT <= pool_size <= RED_MAX:
            raise ValueError(f"pool_size must be between {RED_COUNT} and {RED_MAX}, got {pool_size}")
        self.rng = rng if rng is not None else np.random.default_rng()
        self.pool_size = pool_size

    @staticmethod
    def extract_features(analysis: ComprehensiveAnalysis) -> Dict[int, Dict[str, float]]:
        """Normalized feature vector for every red number."""
        frequency = analysis.frequency
        omission = analysis.omission
        max_count = max(int(frequency.red_counts.max()), 1)
        max_current = max(int(omission.red_current.max()), 1)

        hot = set(frequency.hot_numbers)
        cold = set(frequency.cold_numbers)
        high = set(omission.high_omission)

        return {
            number: {
                'frequency': frequency.red_count(number) / max_count,
                'omission': omission.current_omission(number) / max_current,
                'hot': 1.0 if number in hot else 0.0,
                'cold': 1.0 if number in cold else 0.0,
                'high_omission': 1.0 if number in high else 0.0,
                'zone': zone_feature(number),
            }
            for number in range(1, RED_MAX + 1)
        }

    def rank_numbers(self, analysis: ComprehensiveAnalysis,
                     weights: Optional[FeatureWeights] = None,
                     profile: Optional[FeatureWeights] = None) -> List[NumberScore]:
        """
        All 33 red numbers ordered by probability (ties by ascending number).

        Args:
            analysis: Window statistics
            weights: Caller weights; normalized here (negative weights rejected)
            profile: Optional tilt applied after normalization
        """
        used_weights = (weights or FeatureWeights()).normalized()
        if profile is not None:
            used_weights = apply_profile(used_weights, profile)
        weight_map = used_weights.as_dict()

        scores = []
        for number, features in self.extract_features(analysis).items():
            score = sum(features[name] * weight for name, weight in weight_map.items())
            probability = 1.0 / (1.0 + np.exp(-SIGMOID_STEEPNESS * score))
            scores.append(NumberScore(number=number, score=float(score),
                                      probability=float(probability), features=features))

        # sorted() is stable, and scores are built in ascending number order
        return sorted(scores, key=lambda s: -s.probability)

    def predict(self, analysis: ComprehensiveAnalysis,
                feature_weights: Optional[FeatureWeights] = None,
                num_predictions: int = 5,
                period: Optional[str] = None) -> MLPredictionResult:
        """
        Generate `num_predictions` candidates, one weight profile each.

        Args:
            analysis: Window statistics
            feature_weights: Caller weights (defaults 0.3/0.2/0.2/0.15/0.15)
            num_predictions: Number of candidates
            period: Target period stamped on every candidate

        Returns:
            MLPredictionResult with predictions and the normalized weights used
        """
        if num_predictions < 1:
            raise ValueError(f"num_predictions must be positive, got {num_predictions}")

        weights = (feature_weights or FeatureWeights()).normalized()
        blue_pool = analysis.frequency.blue_balls
        features_by_number = self.extract_features(analysis)

        predictions = []
        seen: Set[Tuple[int, ...]] = set()
        for i in range(num_predictions):
            _, profile = ML_PROFILES[i % len(ML_PROFILES)]
            ranked = self.rank_numbers(analysis, weights, profile)
            red_balls = self._sample_from_pool(ranked, seen)
            seen.add(tuple(red_balls))

            probabilities = {s.number: s.probability for s in ranked}
            sub_scores = {
                'hot_score': float(np.mean([features_by_number[n]['hot'] for n in red_balls])),
                'omission_score': float(np.mean([features_by_number[n]['omission'] for n in red_balls])),
                'distribution_score': calculate_distribution_score(red_balls),
            }
            predictions.append(PredictionCandidate(
                red_balls=red_balls,
                blue_ball=blue_pool[i % len(blue_pool)],
                confidence=float(np.mean([probabilities[n] for n in red_balls])),
                strategy=determine_strategy(sub_scores),
                reasoning=(f"Feature-weighted model: hot score {sub_scores['hot_score']:.2f}, "
                           f"omission score {sub_scores['omission_score']:.2f}, "
                           f"distribution score {sub_scores['distribution_score']:.2f}"),
                sources=[METHOD_ML],
                features=sub_scores,
                period=period,
            ))

        logger.info(f"Generated {len(predictions)} ML predictions (pool={self.pool_size})")
        return MLPredictionResult(
            predictions=predictions,
            feature_importance=weights.as_dict(),
            weights=weights,
        )

    def _sample_from_pool(self, ranked: List[NumberScore], seen: Set[Tuple[int, ...]]) -> List[int]:
        """Six numbers from the top-K pool with probability proportional to score."""
        pool = ranked[:self.pool_size]
        numbers = np.array([s.number for s in pool])
        # small floor keeps zero-score numbers drawable
        weights = np.array([max(s.score, 0.0) for s in pool]) + 1e-6
        p = weights / weights.sum()

        red_balls: List[int] = []
        for attempt in range(MAX_SAMPLE_ATTEMPTS):
            red_balls = sorted(int(n) for n in self.rng.choice(numbers, size=RED_COUNT, replace=False, p=p))
            if tuple(red_balls) not in seen:
                return red_balls
            logger.debug(f"Sampled a repeated set {red_balls}, resampling (attempt {attempt + 1})")
        return red_balls
