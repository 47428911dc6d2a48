"""
SSQ Prediction Evaluator
========================

Compares predictions with actual draws: red/blue hits, official prize tier,
accuracy and score, plus a short failure analysis with suggestions.
Accuracy and scoring are identical for every prediction method.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ssq_engine.exceptions import EvaluationTargetMissingError
from ssq_engine.loader import DrawHistoryProvider
from ssq_engine.models import DrawRecord, EvaluationRecord, PredictionCandidate, RED_COUNT
from ssq_engine.prize_calculator import calculate_prize
from ssq_engine.statistical_core import ZONES

RED_ACCURACY_WEIGHT = 0.8
BLUE_ACCURACY_WEIGHT = 0.2

PRIZE_BONUS = {0: 0, 6: 10, 5: 20, 4: 30, 3: 50, 2: 80, 1: 100}


@dataclass
class FailureAnalysis:
    reason: str
    suggestions: List[str] = field(default_factory=list)
    category: str = 'number_selection'  # number_selection | distribution | pattern | strategy


def calculate_accuracy(red_hits: int, blue_hit: bool) -> float:
    return red_hits / RED_COUNT * RED_ACCURACY_WEIGHT + (1.0 if blue_hit else 0.0) * BLUE_ACCURACY_WEIGHT


def calculate_score(red_hits: int, blue_hit: bool, prize_level: int) -> float:
    """10 per red hit, 20 for the blue ball, plus a tier bonus."""
    return float(red_hits * 10 + (20 if blue_hit else 0) + PRIZE_BONUS.get(prize_level, 0))


class PredictionEvaluator:
    """Evaluates predictions against actual drawing results."""

    def evaluate(self, candidate: PredictionCandidate, draw: DrawRecord,
                 method: Optional[str] = None,
                 weight_profile_id: Optional[int] = None) -> EvaluationRecord:
        """
        Args:
            candidate: The prediction
            draw: The actual draw
            method: Overrides the candidate's primary source
            weight_profile_id: Feature weight profile the candidate was generated with

        Returns:
            EvaluationRecord for the (prediction, draw) pair
        """
        actual = set(draw.red_balls)
        picked = sorted(set(candidate.red_balls))
        matched = [n for n in picked if n in actual]
        missed = [n for n in picked if n not in actual]
        red_hits = len(matched)
        blue_hit = candidate.blue_ball == draw.blue_ball

        level, name, _ = calculate_prize(red_hits, blue_hit)

        return EvaluationRecord(
            prediction_id=candidate.candidate_id,
            period=draw.period,
            red_balls_hit=red_hits,
            blue_ball_hit=blue_hit,
            prize_level=level,
            prize_name=name,
            accuracy=calculate_accuracy(red_hits, blue_hit),
            score=calculate_score(red_hits, blue_hit, level),
            method=method or candidate.method,
            strategy=candidate.strategy,
            matched_red=matched,
            missed_red=missed,
            weight_profile_id=weight_profile_id,
        )

    def evaluate_for_period(self, candidate: PredictionCandidate, provider: DrawHistoryProvider,
                            period: Optional[str] = None, method: Optional[str] = None,
                            weight_profile_id: Optional[int] = None) -> EvaluationRecord:
        """
        Evaluate against the stored draw of `period` (defaults to the candidate's period).

        Raises:
            EvaluationTargetMissingError: the draw is not known yet
        """
        target = period or candidate.period
        draw = provider.find_by_period(target) if target else None
        if draw is None:
            logger.warning(f"No actual draw for period {target}, evaluation skipped")
            raise EvaluationTargetMissingError(str(target), method=method or candidate.method)
        return self.evaluate(candidate, draw, method=method, weight_profile_id=weight_profile_id)

    def evaluate_batch(self, candidates: Sequence[PredictionCandidate],
                       draw: DrawRecord) -> List[EvaluationRecord]:
        records = [self.evaluate(candidate, draw) for candidate in candidates]
        winners = sum(1 for r in records if r.is_winning)
        logger.info(f"Evaluated {len(records)} predictions for period {draw.period}: {winners} winning")
        return records

    def analyze_failure(self, candidate: PredictionCandidate, draw: DrawRecord,
                        evaluation: EvaluationRecord) -> FailureAnalysis:
        """Explain a miss (or a partial win) and suggest what to adjust."""
        suggestions: List[str] = []
        reasons: List[str] = []
        category = 'number_selection'

        if evaluation.prize_level == 0:
            if evaluation.red_balls_hit <= 2:
                reasons.append("Too few red balls matched, number selection is far off")
                suggestions.extend([
                    "Rebalance the weights of hot and cold numbers",
                    "Pay more attention to omission values",
                    "Check that the number distribution is reasonable",
                ])
            elif evaluation.red_balls_hit <= 4:
                reasons.append("A moderate number of red balls matched, close to a prize")
                suggestions.extend([
                    "Refine the combination to raise the hit rate",
                    "Use a more balanced number distribution",
                ])

            if not evaluation.blue_ball_hit:
                reasons.append("blue ball missed")
                suggestions.extend([
                    "Improve the blue ball selection strategy",
                    "Follow the historical blue ball frequency",
                ])

            distribution_issue = self._distribution_issue(candidate.red_balls, draw.red_balls)
            if distribution_issue:
                reasons.append(distribution_issue)
                category = 'distribution'
                suggestions.extend([
                    "Adjust the zone distribution",
                    "Tune the odd/even and small/large ratios",
                ])
        else:
            reasons.append(f"Won the {evaluation.prize_name}, with room for improvement")
            category = 'strategy'
            if evaluation.red_balls_hit < RED_COUNT:
                suggestions.append("Raise the red ball hit rate further")
            if not evaluation.blue_ball_hit and evaluation.prize_level != 1:
                suggestions.append("Improve the blue ball choice to reach a higher tier")

        return FailureAnalysis(
            reason="; ".join(reasons) or "The prediction needs refinement",
            suggestions=suggestions or ["Keep refining the prediction strategy"],
            category=category,
        )

    @staticmethod
    def _zone_counts(red_balls: Sequence[int]) -> Dict[str, int]:
        return {name: sum(1 for n in red_balls if low <= n <= high)
                for name, (low, high) in ZONES.items()}

    def _distribution_issue(self, predicted: Sequence[int], actual: Sequence[int]) -> Optional[str]:
        predicted_zones = self._zone_counts(predicted)
        actual_zones = self._zone_counts(actual)
        zone_diff = sum(abs(predicted_zones[z] - actual_zones[z]) for z in ZONES)
        if zone_diff > 3:
            return "zone distribution deviates strongly"

        predicted_odd = sum(1 for n in predicted if n % 2 == 1)
        actual_odd = sum(1 for n in actual if n % 2 == 1)
        if abs(predicted_odd - actual_odd) > 2:
            return "odd/even ratio deviates strongly"
        return None
