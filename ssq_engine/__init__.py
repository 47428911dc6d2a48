"""
SSQ Engine - Double Color Ball Analysis, Prediction & Evaluation
================================================================

- Frequency, omission, distribution and pattern statistics
- Statistical, feature-weighted (ML) and external-reasoning (AI) predictors
- Ensemble merging of the three prediction sets
- Prize evaluation, win-rate tracking and weight optimization
- Walk-forward backtesting
"""

__version__ = "1.0.0"

from .models import (
    DrawRecord,
    PredictionCandidate,
    EvaluationRecord,
    FeatureWeights,
    FeatureWeightProfile,
)

from .exceptions import (
    EngineError,
    InsufficientHistoryError,
    InvalidDrawRecordError,
    ExternalReasoningError,
    EvaluationTargetMissingError,
)

from .loader import InMemoryDrawHistory, parse_draw_records, load_draws_from_csv
from .analytics_engine import AnalyticsEngine, ComprehensiveAnalysis
from .strategy_generators import StatisticalPredictor, STRATEGY_REGISTRY
from .ml_predictor import FeatureWeightedPredictor
from .ai_predictor import ExternalReasoningPredictor
from .prediction_evaluator import PredictionEvaluator
from .prize_calculator import calculate_prize_level
from .winning_tracker import WinningTracker
from .prediction_engine import PredictionEngine
from .backtester import Backtester

__all__ = [
    # Data model
    'DrawRecord',
    'PredictionCandidate',
    'EvaluationRecord',
    'FeatureWeights',
    'FeatureWeightProfile',

    # Errors
    'EngineError',
    'InsufficientHistoryError',
    'InvalidDrawRecordError',
    'ExternalReasoningError',
    'EvaluationTargetMissingError',

    # Analysis
    'InMemoryDrawHistory',
    'parse_draw_records',
    'load_draws_from_csv',
    'AnalyticsEngine',
    'ComprehensiveAnalysis',

    # Predictors
    'StatisticalPredictor',
    'STRATEGY_REGISTRY',
    'FeatureWeightedPredictor',
    'ExternalReasoningPredictor',
    'PredictionEngine',

    # Evaluation
    'PredictionEvaluator',
    'calculate_prize_level',
    'WinningTracker',
    'Backtester',
]
