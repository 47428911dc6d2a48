"""
SSQ External Reasoning Predictor
================================

The "ai" method: the recent draws and a statistics summary are sent to an
external reasoning service, which answers with JSON predictions. Individual
picks are repaired when invalid and the set is padded to five.

Any failure (no service, disabled, timeout, transport error, malformed JSON)
switches to a deterministic fallback derived from the feature-weighted
ranking when fallback is enabled, and raises ExternalReasoningError otherwise.
"""

import concurrent.futures
import configparser
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ssq_engine.analytics_engine import ComprehensiveAnalysis
from ssq_engine.config import load_config
from ssq_engine.exceptions import ExternalReasoningError
from ssq_engine.ml_predictor import ML_PROFILES, FeatureWeightedPredictor
from ssq_engine.models import (
    BLUE_MAX,
    BLUE_MIN,
    METHOD_AI,
    RED_COUNT,
    RED_MAX,
    RED_MIN,
    DrawRecord,
    FeatureWeights,
    PredictionCandidate,
    format_balls,
    parse_ball,
)
from ssq_engine.reasoning_service import ReasoningService, strip_code_fences

AI_PREDICTION_COUNT = 5
FALLBACK_CONFIDENCE = 0.6
REPAIRED_CONFIDENCE = 0.5

STRATEGY_ALIASES = {
    '保守型': 'conservative',
    '平衡型': 'balanced',
    '激进型': 'aggressive',
}
KNOWN_STRATEGIES = ('conservative', 'balanced', 'aggressive')

FALLBACK_RECOMMENDATIONS = [
    "Focus on combinations of hot and warm numbers",
    "Consider a few high-omission numbers due to return",
    "Keep the zone, odd/even and small/large split balanced",
]


class AIPick(BaseModel):
    """One prediction as returned by the reasoning service (values unvalidated)."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    red_balls: List[Any] = Field(default_factory=list, alias='redBalls')
    blue_ball: Any = Field(default=None, alias='blueBall')
    confidence: Any = None
    reasoning: Optional[str] = None
    strategy: Optional[str] = None


class AIResponsePayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    predictions: List[AIPick] = Field(default_factory=list)
    analysis: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)


@dataclass
class AIPredictionResult:
    predictions: List[PredictionCandidate]
    analysis: str
    recommendations: List[str] = field(default_factory=list)
    fallback: bool = False
    error: Optional[str] = None


def normalize_strategy(label: Optional[str]) -> str:
    if not label:
        return 'balanced'
    text = label.strip()
    text = STRATEGY_ALIASES.get(text, text.lower())
    return text if text in KNOWN_STRATEGIES else 'balanced'


class ExternalReasoningPredictor:
    """Predictions from an external reasoning service with a deterministic fallback"""

    def __init__(self, service: Optional[ReasoningService] = None,
                 config: Optional[configparser.ConfigParser] = None,
                 ranker: Optional[FeatureWeightedPredictor] = None):
        self.service = service
        self.config = config or load_config()
        self.ranker = ranker or FeatureWeightedPredictor()

        self.enabled = self.config.getboolean("ai", "enabled", fallback=True)
        self.use_fallback = self.config.getboolean("ai", "use_fallback", fallback=True)
        self.timeout_seconds = self.config.getfloat("ai", "timeout_seconds", fallback=30.0)
        self.temperature = self.config.getfloat("ai", "temperature", fallback=0.7)
        self.max_tokens = self.config.getint("ai", "max_tokens", fallback=2000)
        self.history_in_prompt = self.config.getint("ai", "history_in_prompt", fallback=20)

    def predict(self, history: Sequence[DrawRecord], analysis: ComprehensiveAnalysis,
                temperature: Optional[float] = None, max_tokens: Optional[int] = None,
                use_fallback: Optional[bool] = None, period: Optional[str] = None) -> AIPredictionResult:
        """
        Ask the reasoning service for five predictions.

        Args:
            history: Draws in chronological order (oldest first)
            analysis: Statistics over the same window
            temperature: Sampling temperature hint (config default 0.7)
            max_tokens: Response length hint (config default 2000)
            use_fallback: Overrides the configured fallback switch
            period: Target period stamped on every candidate

        Raises:
            ExternalReasoningError: the call failed and fallback is disabled
        """
        use_fallback = self.use_fallback if use_fallback is None else use_fallback
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens

        try:
            if not self.enabled:
                raise ExternalReasoningError("AI predictions are disabled")
            if self.service is None:
                raise ExternalReasoningError("No reasoning service configured")

            prompt = self.build_prompt(history, analysis)
            logger.info(f"Calling reasoning service ({len(history)} draws, "
                        f"timeout={self.timeout_seconds}s)")
            text = self._call_with_timeout(prompt, temperature, max_tokens)
            payload = self.parse_response(text)
            result = self._to_result(payload, analysis, period)
            logger.info(f"AI analysis complete ({len(result.predictions)} predictions)")
            return result

        except ExternalReasoningError as e:
            e.periods = analysis.total_periods
            if not use_fallback:
                logger.error(f"AI prediction failed and fallback is disabled: {e.message}")
                raise
            logger.warning(f"AI prediction failed, using fallback: {e.message}")
            result = self.generate_fallback(analysis, period)
            result.error = e.message
            return result

    def _call_with_timeout(self, prompt: str, temperature: float, max_tokens: int) -> str:
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.service.generate, prompt, temperature, max_tokens,
                                 self.timeout_seconds)
        try:
            return future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise ExternalReasoningError(
                f"Reasoning service timed out after {self.timeout_seconds}s", cause=e) from e
        except ExternalReasoningError:
            raise
        except Exception as e:
            raise ExternalReasoningError(f"Reasoning service failed: {e}", cause=e) from e
        finally:
            # never wait on a hung call
            executor.shutdown(wait=False)

    def build_prompt(self, history: Sequence[DrawRecord], analysis: ComprehensiveAnalysis) -> str:
        """Prompt with the most recent draws and a statistics summary."""
        recent = [record.to_dict() for record in list(history)[-self.history_in_prompt:]]

        frequency = analysis.frequency
        omission = analysis.omission
        distribution = analysis.distribution
        patterns = analysis.patterns
        summary = {
            'frequency': {
                'hotNumbers': format_balls(frequency.hot_numbers[:10]),
                'coldNumbers': format_balls(frequency.cold_numbers[:10]),
                'warmNumbers': format_balls(frequency.warm_numbers[:10]),
                'blueBalls': format_balls(frequency.blue_balls[:5]),
            },
            'omission': {
                'highOmission': format_balls(omission.high_omission[:10]),
                'lowOmission': format_balls(omission.low_omission[:10]),
            },
            'distribution': {
                'zoneDistribution': distribution.zone_distribution,
                'oddEvenRatio': distribution.odd_even_ratio,
                'sizeRatio': distribution.size_ratio,
                'sumRange': distribution.sum_range,
                'spanRange': distribution.span_range,
            },
            'patterns': {
                'consecutiveFrequency': patterns.consecutive_frequency,
                'consecutivePairs': [format_balls(p['numbers']) for p in patterns.consecutive_pairs[:5]],
                'combinations': [format_balls(p['numbers']) for p in patterns.combination_patterns[:5]],
            },
        }

        return f"""You are a senior lottery data analyst who finds patterns in historical draws.

## Historical draws (most recent {len(recent)})
{json.dumps(recent, indent=2)}

## Statistical analysis
{json.dumps(summary, indent=2)}

## Task
Analyse the data above (patterns, trends, per-number probability, overall judgement)
and generate {AI_PREDICTION_COUNT} predictions. Each prediction has:
- 6 red balls (01-33), no duplicates
- 1 blue ball (01-16)
- the reasoning behind it
- a confidence between 0 and 1
- a strategy: conservative, balanced or aggressive

## Output format
Return ONLY a JSON object:
{{
  "predictions": [
    {{
      "redBalls": ["01", "05", "12", "18", "25", "31"],
      "blueBall": "08",
      "confidence": 0.75,
      "reasoning": "Hot numbers combined with omission rebound...",
      "strategy": "balanced"
    }}
  ],
  "analysis": "Overall analysis...",
  "recommendations": ["Recommendation 1", "Recommendation 2"]
}}
"""

    @staticmethod
    def parse_response(text: str) -> AIResponsePayload:
        """
        Raises:
            ExternalReasoningError: not JSON, wrong shape, or no predictions
        """
        json_text = strip_code_fences(text)
        try:
            payload = AIResponsePayload.model_validate(json.loads(json_text))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse reasoning response: {e}")
            logger.debug(f"Response text: {json_text[:500]}")
            raise ExternalReasoningError(f"Malformed JSON in reasoning response: {e}", cause=e) from e
        except ValidationError as e:
            logger.error(f"Reasoning response has an invalid structure: {e}")
            raise ExternalReasoningError("Invalid structure in reasoning response", cause=e) from e

        if not payload.predictions:
            raise ExternalReasoningError("Reasoning response contained no predictions")
        return payload

    def _to_result(self, payload: AIResponsePayload, analysis: ComprehensiveAnalysis,
                   period: Optional[str]) -> AIPredictionResult:
        predictions = []
        for index, pick in enumerate(payload.predictions[:AI_PREDICTION_COUNT]):
            predictions.append(self.repair_pick(pick, analysis, index, period))

        if len(predictions) < AI_PREDICTION_COUNT:
            logger.warning(f"Reasoning service returned {len(predictions)} predictions, "
                           f"padding to {AI_PREDICTION_COUNT}")
            padding = self.generate_fallback(analysis, period).predictions
            for candidate in padding[len(predictions):]:
                candidate.sources = [METHOD_AI]
                candidate.confidence = REPAIRED_CONFIDENCE
                candidate.reasoning = "Supplementary prediction generated from the statistical analysis"
                predictions.append(candidate)

        return AIPredictionResult(
            predictions=predictions,
            analysis=payload.analysis or "Analysis based on historical draw statistics",
            recommendations=list(payload.recommendations),
        )

    def repair_pick(self, pick: AIPick, analysis: ComprehensiveAnalysis, index: int,
                    period: Optional[str] = None) -> PredictionCandidate:
        """Keep valid values, replace invalid ones from the analysis pools."""
        red_balls = self._valid_red_balls(pick.red_balls)
        if len(red_balls) != RED_COUNT:
            logger.warning(f"Prediction {index + 1}: {len(red_balls)} valid red balls, padding from pools")
            red_balls = self.fill_red_balls(analysis, red_balls)

        blue_ball = self._valid_number(pick.blue_ball, BLUE_MIN, BLUE_MAX)
        if blue_ball is None:
            logger.warning(f"Prediction {index + 1}: invalid blue ball {pick.blue_ball!r}, "
                           f"using the most frequent")
            blue_ball = analysis.frequency.blue_balls[0]

        confidence = pick.confidence
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) \
                or not 0 <= confidence <= 1:
            confidence = REPAIRED_CONFIDENCE

        return PredictionCandidate(
            red_balls=red_balls,
            blue_ball=blue_ball,
            confidence=float(confidence),
            strategy=normalize_strategy(pick.strategy),
            reasoning=pick.reasoning or "External reasoning prediction",
            sources=[METHOD_AI],
            period=period,
        )

    @classmethod
    def _valid_red_balls(cls, values: List[Any]) -> List[int]:
        valid: List[int] = []
        for value in values:
            number = cls._valid_number(value, RED_MIN, RED_MAX)
            if number is not None and number not in valid:
                valid.append(number)
        return valid[:RED_COUNT]

    @staticmethod
    def _valid_number(value: Any, low: int, high: int) -> Optional[int]:
        if value is None:
            return None
        try:
            number = parse_ball(value)
        except ValueError:
            return None
        return number if low <= number <= high else None

    @staticmethod
    def fill_red_balls(analysis: ComprehensiveAnalysis, existing: List[int]) -> List[int]:
        """Pad to six with a 2 hot / 2 warm / 1 cold / 1 high-omission mix, then ascending."""
        result = list(existing)
        frequency = analysis.frequency
        pools = (
            (frequency.hot_numbers, 2),
            (frequency.warm_numbers, 2),
            (frequency.cold_numbers, 1),
            (analysis.omission.high_omission, 1),
        )
        for pool, count in pools:
            for number in [n for n in pool if n not in result][:count]:
                if len(result) < RED_COUNT:
                    result.append(number)

        for number in range(RED_MIN, RED_MAX + 1):
            if len(result) >= RED_COUNT:
                break
            if number not in result:
                result.append(number)
        return sorted(result)

    def generate_fallback(self, analysis: ComprehensiveAnalysis,
                          period: Optional[str] = None) -> AIPredictionResult:
        """
        Deterministic predictions from the feature-weighted ranking: prediction i
        takes ranked positions i..i+5 under the i-th weight profile.
        """
        logger.info("Using fallback predictions derived from the statistical analysis")
        blue_pool = analysis.frequency.blue_balls
        weights = FeatureWeights()

        predictions = []
        for i in range(AI_PREDICTION_COUNT):
            strategy, profile = ML_PROFILES[i % len(ML_PROFILES)]
            ranked = self.ranker.rank_numbers(analysis, weights, profile)
            red_balls = [s.number for s in ranked[i:i + RED_COUNT]]
            predictions.append(PredictionCandidate(
                red_balls=red_balls,
                blue_ball=blue_pool[i % len(blue_pool)],
                confidence=FALLBACK_CONFIDENCE,
                strategy=strategy,
                reasoning=f"Fallback {strategy} prediction combining frequency and omission analysis",
                sources=[METHOD_AI],
                features={'fallback': 1.0},
                period=period,
            ))

        return AIPredictionResult(
            predictions=predictions,
            analysis="Fallback prediction based on statistical analysis (reasoning service unavailable)",
            recommendations=list(FALLBACK_RECOMMENDATIONS),
            fallback=True,
        )
