"""
Tests for PredictionEngine
==========================
Ensemble of the statistical, ML and AI predictors with merging and padding.
"""

import json
from unittest.mock import MagicMock

import pytest

from ssq_engine.exceptions import ExternalReasoningError, InsufficientHistoryError
from ssq_engine.ml_predictor import MLPredictionResult
from ssq_engine.models import FeatureWeights, PredictionCandidate
from ssq_engine.period_utils import calculate_next_period
from ssq_engine.prediction_engine import PredictionEngine
from ssq_engine.strategy_generators import StatisticalPredictionResult
from ssq_engine.winning_tracker import BASE_METHOD_WEIGHTS

AI_RESPONSE = json.dumps({
    "predictions": [
        {"redBalls": ["01", "05", "12", "18", "25", "31"], "blueBall": "08", "confidence": 0.9,
         "reasoning": "r", "strategy": "balanced"},
    ],
    "analysis": "ok",
})


def _assert_valid(predictions):
    assert len(predictions) == 5
    for prediction in predictions:
        assert prediction.is_valid()
        assert prediction.red_balls == sorted(prediction.red_balls)


class TestPredict:

    def test_without_ai(self, provider, config, rng):
        engine = PredictionEngine(provider, config=config, rng=rng)
        result = engine.predict(periods=30, include_ai=False)

        _assert_valid(result.predictions)
        assert result.ai is None
        assert result.strategies == ['statistical', 'ml']
        assert result.period == calculate_next_period(result.analysis.latest_period)
        assert all(p.period == result.period for p in result.predictions)
        assert result.method_weights == BASE_METHOD_WEIGHTS
        assert result.weight_profile_id is None

    def test_keys_are_unique(self, provider, config, rng):
        result = PredictionEngine(provider, config=config, rng=rng).predict(periods=30, include_ai=False)
        assert len({p.key() for p in result.predictions}) == 5

    def test_with_ai_service(self, provider, config, rng):
        service = MagicMock()
        service.generate.return_value = AI_RESPONSE
        engine = PredictionEngine(provider, reasoning_service=service, config=config, rng=rng)

        result = engine.predict(periods=30)

        _assert_valid(result.predictions)
        assert result.ai is not None
        assert result.ai.fallback is False
        assert result.strategies == ['statistical', 'ai', 'ml']
        service.generate.assert_called_once()

    def test_ai_failure_without_fallback_is_skipped(self, provider, config, rng):
        config['ai']['use_fallback'] = 'false'
        service = MagicMock()
        service.generate.side_effect = ExternalReasoningError("HTTP 500")
        engine = PredictionEngine(provider, reasoning_service=service, config=config, rng=rng)

        result = engine.predict(periods=30)

        assert result.ai is None
        _assert_valid(result.predictions)

    def test_ai_without_service_uses_fallback(self, provider, config, rng):
        result = PredictionEngine(provider, config=config, rng=rng).predict(periods=30)
        assert result.ai is not None
        assert result.ai.fallback is True
        assert result.to_dict()['metadata']['aiFallback'] is True

    def test_window_below_minimum(self, provider, config, rng):
        with pytest.raises(InsufficientHistoryError):
            PredictionEngine(provider, config=config, rng=rng).predict(periods=5)

    def test_explicit_feature_weights(self, provider, config, rng):
        weights = FeatureWeights(4, 1, 3, 1, 1)
        result = PredictionEngine(provider, config=config, rng=rng).predict(
            periods=30, feature_weights=weights, include_ai=False)
        assert result.feature_weights == weights.normalized()
        assert result.ml.feature_importance == pytest.approx(weights.normalized().as_dict())

    def test_tracker_profile_saved(self, provider, config, rng, tracker):
        engine = PredictionEngine(provider, tracker=tracker, config=config, rng=rng)
        result = engine.predict(periods=30, include_ai=False)

        assert result.weight_profile_id is not None
        profile = tracker.get_weight_profile(result.weight_profile_id)
        assert profile.period == result.period
        assert profile.weights.as_dict() == pytest.approx(FeatureWeights().as_dict())

    def test_to_dict(self, provider, config, rng):
        data = PredictionEngine(provider, config=config, rng=rng).predict(periods=30, include_ai=False).to_dict()
        assert len(data['predictions']) == 5
        assert data['metadata']['totalPeriods'] == 30
        assert data['metadata']['aiFallback'] is None
        assert all(len(p['redBalls']) == 6 for p in data['predictions'])


class TestMergePredictions:

    def _candidate(self, red_balls, blue_ball, confidence, source):
        return PredictionCandidate(red_balls, blue_ball, confidence, 'balanced', 'r', [source])

    def test_duplicates_keep_first_source_and_pad(self, provider, config, rng, analysis):
        engine = PredictionEngine(provider, config=config, rng=rng)
        statistical = StatisticalPredictionResult(
            predictions=[self._candidate([1, 2, 3, 4, 5, 6], 1, 0.7, 'statistical')],
            deterministic=False,
        )
        ml = MLPredictionResult(
            predictions=[self._candidate([1, 2, 3, 4, 5, 6], 1, 0.6, 'ml')],
            feature_importance={},
        )

        merged = engine.merge_predictions(analysis, statistical, ml, None, BASE_METHOD_WEIGHTS, '2024061')

        assert len(merged) == 5
        assert len({p.key() for p in merged}) == 5
        assert merged[0].sources == ['ml']
        assert [p.strategy for p in merged[1:]] == ['balanced'] * 4
        assert all(p.features.get('supplementary_score') == 0.5 for p in merged[1:])
        assert all(p.period == '2024061' for p in merged[1:])

    def test_higher_weighted_score_ranks_first(self, provider, config, rng, analysis):
        engine = PredictionEngine(provider, config=config, rng=rng)
        low = self._candidate([1, 2, 3, 4, 5, 6], 1, 0.2, 'statistical')
        high = self._candidate([7, 8, 9, 10, 11, 12], 2, 0.9, 'statistical')
        merged = engine.merge_predictions(
            analysis,
            StatisticalPredictionResult([low, high], deterministic=True),
            MLPredictionResult([], {}),
            None,
            {'statistical': 1.0, 'ml': 0.0, 'ai': 0.0},
        )
        assert merged[0].red_balls == [7, 8, 9, 10, 11, 12]

    def test_confidence_boost_is_capped(self, provider, config, rng, analysis):
        engine = PredictionEngine(provider, config=config, rng=rng)
        hot = analysis.frequency.hot_numbers[:6]
        candidate = self._candidate(hot, 1, 0.98, 'ml')
        merged = engine.merge_predictions(
            analysis,
            StatisticalPredictionResult([], deterministic=False),
            MLPredictionResult([candidate], {}),
            None,
            BASE_METHOD_WEIGHTS,
        )
        assert merged[0].confidence == 1.0
        # the input candidate is left untouched
        assert candidate.confidence == 0.98
