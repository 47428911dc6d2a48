"""
SSQ Engine - Statistical Core Module
====================================

Descriptive statistics over a window of draws.

Components:
- FrequencyAnalyzer: Occurrence counts and hot/warm/cold bands
- OmissionAnalyzer: Current, maximum and average gaps per number
- DistributionAnalyzer: Zones, odd/even, small/large, sum and span
- PatternAnalyzer: Consecutive numbers, recurring combinations, periodicity

Every analyzer takes a chronological DataFrame (oldest first) with columns
[period, draw_date, r1..r6, blue], as produced by loader.draws_to_dataframe().
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from ssq_engine.exceptions import InsufficientHistoryError
from ssq_engine.loader import RED_COLUMNS
from ssq_engine.models import BLUE_MAX, RED_MAX, format_ball, format_balls

ZONES = {
    'zone1': (1, 11),
    'zone2': (12, 22),
    'zone3': (23, 33),
}
SMALL_MAX = 16


def band_size(total: int, ratio: float) -> int:
    """Size of the top/bottom band, e.g. ceil(33 * 0.3) = 10."""
    return int(math.ceil(total * ratio))


def stable_rank(values: np.ndarray, descending: bool = True) -> List[int]:
    """
    Numbers (1-indexed) ordered by value; ties keep ascending numeric order.
    """
    keys = -values if descending else values
    return [int(i + 1) for i in np.argsort(keys, kind='stable')]


def _red_matrix(draws_df: pd.DataFrame) -> np.ndarray:
    if draws_df.empty:
        raise InsufficientHistoryError(0, available=0)
    return draws_df[RED_COLUMNS].to_numpy(dtype=int)


def _blue_vector(draws_df: pd.DataFrame) -> np.ndarray:
    return draws_df['blue'].to_numpy(dtype=int)


def _number_pairs(counter: Counter, limit: int) -> List[Dict[str, Any]]:
    ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [{'numbers': list(numbers), 'count': count} for numbers, count in ordered[:limit]]


@dataclass
class FrequencyResult:
    """Container for frequency analysis results"""
    red_counts: np.ndarray   # Shape: (33,)
    blue_counts: np.ndarray  # Shape: (16,)
    red_ranking: List[int]
    blue_ranking: List[int]
    hot_numbers: List[int]
    warm_numbers: List[int]
    cold_numbers: List[int]
    last_appeared: Dict[int, Optional[str]]
    periods: int

    @property
    def blue_balls(self) -> List[int]:
        """Blue numbers ordered by frequency (default blue-ball source)."""
        return self.blue_ranking

    def red_count(self, number: int) -> int:
        return int(self.red_counts[number - 1])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'redFrequency': {format_ball(n): self.red_count(n) for n in range(1, RED_MAX + 1)},
            'blueFrequency': {format_ball(n): int(self.blue_counts[n - 1]) for n in range(1, BLUE_MAX + 1)},
            'hotNumbers': format_balls(self.hot_numbers),
            'warmNumbers': format_balls(self.warm_numbers),
            'coldNumbers': format_balls(self.cold_numbers),
            'blueBalls': format_balls(self.blue_ranking),
            'periods': self.periods,
        }


class FrequencyAnalyzer:
    """
    Counts how often each number was drawn and splits the red numbers into
    hot (top band), cold (bottom band) and warm (the rest).
    """

    def __init__(self, band_ratio: float = 0.3):
        self.band_ratio = band_ratio

    def analyze(self, draws_df: pd.DataFrame) -> FrequencyResult:
        reds = _red_matrix(draws_df)
        blues = _blue_vector(draws_df)

        red_counts = np.bincount(reds.ravel(), minlength=RED_MAX + 1)[1:]
        blue_counts = np.bincount(blues, minlength=BLUE_MAX + 1)[1:]

        red_ranking = stable_rank(red_counts)
        band = band_size(RED_MAX, self.band_ratio)
        hot = red_ranking[:band]
        cold = red_ranking[-band:]
        warm = red_ranking[band:RED_MAX - band]

        periods_list = draws_df['period'].tolist()
        last_appeared: Dict[int, Optional[str]] = {n: None for n in range(1, RED_MAX + 1)}
        for period, row in zip(periods_list, reds):
            for number in row:
                last_appeared[int(number)] = period

        logger.debug(f"Frequency analysis complete (periods={len(reds)}, hot={hot[:3]}...)")

        return FrequencyResult(
            red_counts=red_counts,
            blue_counts=blue_counts,
            red_ranking=red_ranking,
            blue_ranking=stable_rank(blue_counts),
            hot_numbers=hot,
            warm_numbers=warm,
            cold_numbers=cold,
            last_appeared=last_appeared,
            periods=len(reds),
        )


@dataclass
class OmissionResult:
    """Container for omission (gap) analysis results"""
    red_current: np.ndarray  # Shape: (33,) - draws since last appearance
    red_max: np.ndarray
    red_avg: np.ndarray
    blue_current: np.ndarray  # Shape: (16,)
    blue_max: np.ndarray
    blue_avg: np.ndarray
    high_omission: List[int]
    low_omission: List[int]
    periods: int

    def current_omission(self, number: int) -> int:
        return int(self.red_current[number - 1])

    def max_omission(self, number: int) -> int:
        return int(self.red_max[number - 1])

    def avg_omission(self, number: int) -> float:
        return float(self.red_avg[number - 1])

    def to_dict(self) -> Dict[str, Any]:
        red = {
            format_ball(n): {
                'currentOmission': self.current_omission(n),
                'maxOmission': self.max_omission(n),
                'avgOmission': round(self.avg_omission(n), 2),
            }
            for n in range(1, RED_MAX + 1)
        }
        blue = {
            format_ball(n): {
                'currentOmission': int(self.blue_current[n - 1]),
                'maxOmission': int(self.blue_max[n - 1]),
                'avgOmission': round(float(self.blue_avg[n - 1]), 2),
            }
            for n in range(1, BLUE_MAX + 1)
        }
        return {
            'redOmission': red,
            'blueOmission': blue,
            'highOmission': format_balls(self.high_omission),
            'lowOmission': format_balls(self.low_omission),
            'periods': self.periods,
        }


class OmissionAnalyzer:
    """
    Gap analysis walking the window oldest -> newest.

    Gaps for a number are the draw counts before its first appearance, strictly
    between consecutive appearances, and after its last appearance (the
    current omission). A number absent from the whole window has the single
    gap `periods`.
    """

    def __init__(self, band_ratio: float = 0.3):
        self.band_ratio = band_ratio

    def analyze(self, draws_df: pd.DataFrame) -> OmissionResult:
        reds = _red_matrix(draws_df)
        blues = _blue_vector(draws_df)
        periods = len(reds)

        red_current, red_max, red_avg = self._gap_statistics(
            [set(int(n) for n in row) for row in reds], RED_MAX)
        blue_current, blue_max, blue_avg = self._gap_statistics(
            [{int(b)} for b in blues], BLUE_MAX)

        band = band_size(RED_MAX, self.band_ratio)
        high = stable_rank(red_current)[:band]
        low = stable_rank(red_current, descending=False)[:band]

        logger.debug(f"Omission analysis complete (periods={periods}, high={high[:3]}...)")

        return OmissionResult(
            red_current=red_current,
            red_max=red_max,
            red_avg=red_avg,
            blue_current=blue_current,
            blue_max=blue_max,
            blue_avg=blue_avg,
            high_omission=high,
            low_omission=low,
            periods=periods,
        )

    @staticmethod
    def _gap_statistics(draw_sets: List[set], max_number: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        periods = len(draw_sets)
        current = np.zeros(max_number, dtype=int)
        maximum = np.zeros(max_number, dtype=int)
        average = np.zeros(max_number, dtype=float)

        for number in range(1, max_number + 1):
            positions = [idx for idx, drawn in enumerate(draw_sets) if number in drawn]
            if not positions:
                gaps = [periods]
                current[number - 1] = periods
            else:
                gaps = [positions[0]]
                gaps.extend(b - a - 1 for a, b in zip(positions, positions[1:]))
                tail = periods - 1 - positions[-1]
                gaps.append(tail)
                current[number - 1] = tail
            maximum[number - 1] = max(gaps)
            average[number - 1] = float(np.mean(gaps))

        return current, maximum, average


@dataclass
class DistributionResult:
    """Container for distribution analysis results"""
    zone_counts: Dict[str, int]
    zone_distribution: Dict[str, float]
    odd_even_ratio: Dict[str, float]
    size_ratio: Dict[str, float]
    sum_range: Dict[str, float]
    span_range: Dict[str, float]
    periods: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zoneCounts': dict(self.zone_counts),
            'zoneDistribution': dict(self.zone_distribution),
            'oddEvenRatio': dict(self.odd_even_ratio),
            'sizeRatio': dict(self.size_ratio),
            'sumRange': dict(self.sum_range),
            'spanRange': dict(self.span_range),
            'periods': self.periods,
        }


class DistributionAnalyzer:
    """Zone / odd-even / small-large fractions over all balls, sum and span over draws."""

    def analyze(self, draws_df: pd.DataFrame) -> DistributionResult:
        reds = _red_matrix(draws_df)
        total_balls = reds.size

        zone_counts = {
            name: int(((reds >= low) & (reds <= high)).sum())
            for name, (low, high) in ZONES.items()
        }
        zone_distribution = {name: count / total_balls for name, count in zone_counts.items()}

        odd = int((reds % 2 == 1).sum())
        small = int((reds <= SMALL_MAX).sum())

        sums = reds.sum(axis=1)
        spans = reds.max(axis=1) - reds.min(axis=1)

        return DistributionResult(
            zone_counts=zone_counts,
            zone_distribution=zone_distribution,
            odd_even_ratio={'odd': odd / total_balls, 'even': (total_balls - odd) / total_balls},
            size_ratio={'small': small / total_balls, 'large': (total_balls - small) / total_balls},
            sum_range=self._range(sums),
            span_range=self._range(spans),
            periods=len(reds),
        )

    @staticmethod
    def _range(values: np.ndarray) -> Dict[str, float]:
        return {
            'min': int(values.min()),
            'max': int(values.max()),
            'average': float(values.mean()),
        }


@dataclass
class PatternResult:
    """Container for pattern analysis results"""
    consecutive_frequency: float
    consecutive_pairs: List[Dict[str, Any]]
    triple_consecutive: List[Dict[str, Any]]
    combination_patterns: List[Dict[str, Any]]
    same_tail_groups: List[Dict[str, Any]]
    span_patterns: List[Dict[str, Any]]
    periodic_patterns: List[Dict[str, Any]]
    weekday_pattern: Dict[int, List[int]] = field(default_factory=dict)
    month_pattern: Dict[int, List[int]] = field(default_factory=dict)
    periods: int = 0

    def to_dict(self) -> Dict[str, Any]:
        def numbers(entries):
            return [dict(entry, numbers=format_balls(entry['numbers'])) for entry in entries]

        return {
            'consecutiveNumbers': {
                'frequency': self.consecutive_frequency,
                'patterns': numbers(self.consecutive_pairs),
            },
            'tripleConsecutive': numbers(self.triple_consecutive),
            'combinationPatterns': numbers(self.combination_patterns),
            'sameTailNumbers': numbers(self.same_tail_groups),
            'spanPatterns': list(self.span_patterns),
            'periodicPatterns': [
                dict(p, numbers=format_balls(p['numbers'])) for p in self.periodic_patterns
            ],
            'weekdayPattern': {str(k): v for k, v in self.weekday_pattern.items()},
            'monthPattern': {str(k): v for k, v in self.month_pattern.items()},
            'periods': self.periods,
        }


class PatternAnalyzer:
    """
    Structural patterns in the red balls.

    Combination patterns are red subsets of size 2..max_combination_size that
    occur in at least two distinct draws, ordered by count desc, size desc,
    then numerically.
    """

    def __init__(self, max_combination_size: int = 3, combination_limit: int = 20,
                 periodic_min_confidence: float = 0.5, list_limit: int = 10):
        if max_combination_size < 2:
            raise ValueError("max_combination_size must be at least 2")
        self.max_combination_size = max_combination_size
        self.combination_limit = combination_limit
        self.periodic_min_confidence = periodic_min_confidence
        self.list_limit = list_limit

    def analyze(self, draws_df: pd.DataFrame) -> PatternResult:
        reds = np.sort(_red_matrix(draws_df), axis=1)
        draws = [tuple(int(n) for n in row) for row in reds]

        pair_counter: Counter = Counter()
        triple_counter: Counter = Counter()
        draws_with_consecutive = 0
        for draw in draws:
            has_pair = False
            for a, b in zip(draw, draw[1:]):
                if b - a == 1:
                    pair_counter[(a, b)] += 1
                    has_pair = True
            for a, b, c in zip(draw, draw[1:], draw[2:]):
                if b - a == 1 and c - b == 1:
                    triple_counter[(a, b, c)] += 1
            if has_pair:
                draws_with_consecutive += 1

        result = PatternResult(
            consecutive_frequency=draws_with_consecutive / len(draws),
            consecutive_pairs=_number_pairs(pair_counter, self.combination_limit),
            triple_consecutive=_number_pairs(triple_counter, self.list_limit),
            combination_patterns=self._combination_patterns(draws),
            same_tail_groups=self._same_tail_groups(draws),
            span_patterns=self._span_patterns(draws),
            periodic_patterns=self._periodic_patterns(draws),
            weekday_pattern=self._calendar_pattern(draws_df, draws, 'weekday'),
            month_pattern=self._calendar_pattern(draws_df, draws, 'month'),
            periods=len(draws),
        )
        logger.debug(f"Pattern analysis complete (consecutive={result.consecutive_frequency:.2f}, "
                     f"combinations={len(result.combination_patterns)})")
        return result

    def _combination_patterns(self, draws: List[Tuple[int, ...]]) -> List[Dict[str, Any]]:
        counter: Counter = Counter()
        for draw in draws:
            for size in range(2, self.max_combination_size + 1):
                counter.update(combinations(draw, size))

        recurring = [(combo, count) for combo, count in counter.items() if count >= 2]
        recurring.sort(key=lambda item: (-item[1], -len(item[0]), item[0]))
        return [{'numbers': list(combo), 'count': count}
                for combo, count in recurring[:self.combination_limit]]

    def _same_tail_groups(self, draws: List[Tuple[int, ...]]) -> List[Dict[str, Any]]:
        counter: Counter = Counter()
        for draw in draws:
            groups: Dict[int, List[int]] = {}
            for number in draw:
                groups.setdefault(number % 10, []).append(number)
            for group in groups.values():
                if len(group) >= 2:
                    counter[tuple(group)] += 1
        return _number_pairs(counter, self.list_limit)

    def _span_patterns(self, draws: List[Tuple[int, ...]]) -> List[Dict[str, Any]]:
        counter = Counter(draw[-1] - draw[0] for draw in draws)
        ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
        return [{'span': span, 'count': count} for span, count in ordered[:self.list_limit]]

    def _periodic_patterns(self, draws: List[Tuple[int, ...]]) -> List[Dict[str, Any]]:
        """
        Numbers that reappear at regular intervals.

        Needs >= 3 appearances; period = rounded mean interval,
        confidence = 1 - coefficient of variation of the intervals.
        """
        patterns = []
        for number in range(1, RED_MAX + 1):
            positions = [idx for idx, draw in enumerate(draws) if number in draw]
            if len(positions) < 3:
                continue
            intervals = np.diff(positions)
            mean = float(intervals.mean())
            cv = float(intervals.std()) / mean if mean > 0 else 1.0
            confidence = float(np.clip(1.0 - cv, 0.0, 1.0))
            if confidence >= self.periodic_min_confidence:
                patterns.append({
                    'numbers': [number],
                    'period': int(round(mean)),
                    'confidence': round(confidence, 4),
                })
        patterns.sort(key=lambda p: (-p['confidence'], p['numbers'][0]))
        return patterns

    @staticmethod
    def _calendar_pattern(draws_df: pd.DataFrame, draws: List[Tuple[int, ...]],
                          attribute: str) -> Dict[int, List[int]]:
        """Distinct red numbers seen per weekday (Monday=0) or per month."""
        dates = pd.to_datetime(draws_df['draw_date'])
        keys = dates.dt.weekday if attribute == 'weekday' else dates.dt.month
        pattern: Dict[int, set] = {}
        for key, draw in zip(keys.tolist(), draws):
            pattern.setdefault(int(key), set()).update(draw)
        return {key: sorted(numbers) for key, numbers in sorted(pattern.items())}
