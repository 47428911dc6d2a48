"""
Tests for statistical_core.py analyzers

Focus: counting invariants, omission boundaries, band partitioning and the
structural pattern detectors on small hand-built windows.
"""

import numpy as np
import pytest

from ssq_engine.exceptions import InsufficientHistoryError
from ssq_engine.loader import draws_to_dataframe
from ssq_engine.models import DrawRecord
from ssq_engine.statistical_core import (
    DistributionAnalyzer,
    FrequencyAnalyzer,
    OmissionAnalyzer,
    PatternAnalyzer,
    band_size,
    stable_rank,
)


def _window(rows):
    """rows: (reds, blue) tuples, oldest first, two days apart."""
    records = [
        DrawRecord.create(f"2024{i + 1:03d}", f"2024-01-{i * 2 + 2:02d}", reds, blue)
        for i, (reds, blue) in enumerate(rows)
    ]
    return draws_to_dataframe(records)


@pytest.fixture
def small_window():
    return _window([
        ([1, 2, 3, 4, 5, 6], 1),
        ([1, 7, 8, 9, 10, 11], 2),
        ([2, 3, 12, 13, 14, 15], 1),
        ([1, 3, 20, 21, 22, 30], 3),
    ])


class TestHelpers:

    def test_band_size_rounds_up(self):
        assert band_size(33, 0.3) == 10
        assert band_size(16, 0.3) == 5

    def test_stable_rank_keeps_numeric_order_on_ties(self):
        values = np.array([2, 5, 5, 1])
        assert stable_rank(values) == [2, 3, 1, 4]
        assert stable_rank(values, descending=False) == [4, 1, 2, 3]


class TestFrequencyAnalyzer:

    def test_counts_sum_to_draw_sizes(self, history):
        df = draws_to_dataframe(history)
        result = FrequencyAnalyzer().analyze(df)
        assert int(result.red_counts.sum()) == len(history) * 6
        assert int(result.blue_counts.sum()) == len(history)
        assert result.periods == len(history)

    def test_bands_partition_all_red_numbers(self, history):
        result = FrequencyAnalyzer().analyze(draws_to_dataframe(history))
        assert len(result.hot_numbers) == 10
        assert len(result.cold_numbers) == 10
        assert len(result.warm_numbers) == 13
        combined = result.hot_numbers + result.warm_numbers + result.cold_numbers
        assert sorted(combined) == list(range(1, 34))
        assert result.red_ranking == combined

    def test_hot_counts_dominate_cold_counts(self, history):
        result = FrequencyAnalyzer().analyze(draws_to_dataframe(history))
        assert min(result.red_count(n) for n in result.hot_numbers) >= \
            max(result.red_count(n) for n in result.cold_numbers)

    def test_number_in_every_draw_is_hot(self, synthetic_draws):
        result = FrequencyAnalyzer().analyze(draws_to_dataframe(synthetic_draws))
        assert 1 in result.hot_numbers
        assert result.red_ranking[0] == 1
        assert result.red_count(1) == 10

    def test_last_appeared(self, small_window):
        result = FrequencyAnalyzer().analyze(small_window)
        assert result.last_appeared[1] == '2024004'
        assert result.last_appeared[7] == '2024002'
        assert result.last_appeared[33] is None

    def test_blue_ranking(self, small_window):
        result = FrequencyAnalyzer().analyze(small_window)
        assert result.blue_balls[:3] == [1, 2, 3]
        assert len(result.blue_balls) == 16

    def test_to_dict_formats_numbers(self, small_window):
        data = FrequencyAnalyzer().analyze(small_window).to_dict()
        assert data['redFrequency']['01'] == 3
        assert data['hotNumbers'][0] == '01'

    def test_empty_window_rejected(self):
        with pytest.raises(InsufficientHistoryError):
            FrequencyAnalyzer().analyze(draws_to_dataframe([]))


class TestOmissionAnalyzer:

    def test_number_in_every_draw_has_zero_omission(self, synthetic_draws):
        result = OmissionAnalyzer().analyze(draws_to_dataframe(synthetic_draws))
        assert result.current_omission(1) == 0
        assert result.max_omission(1) == 0
        assert result.avg_omission(1) == 0.0

    def test_latest_draw_numbers_have_zero_current(self, history):
        result = OmissionAnalyzer().analyze(draws_to_dataframe(history))
        for number in history[-1].red_balls:
            assert result.current_omission(number) == 0
        assert int(result.blue_current[history[-1].blue_ball - 1]) == 0

    def test_absent_number_has_full_window_omission(self, small_window):
        result = OmissionAnalyzer().analyze(small_window)
        assert result.current_omission(33) == 4
        assert result.max_omission(33) == 4
        assert result.avg_omission(33) == 4.0
        # 14 numbers are never drawn; ties keep ascending order
        assert result.high_omission[0] == 16

    def test_gaps_include_head_between_and_tail(self, small_window):
        result = OmissionAnalyzer().analyze(small_window)
        # number 2 drawn at positions 0 and 2 of 4: gaps 0, 1, 1
        assert result.current_omission(2) == 1
        assert result.max_omission(2) == 1
        assert result.avg_omission(2) == pytest.approx(2 / 3)
        # number 12 drawn only at position 2: gaps 2, 1
        assert result.max_omission(12) == 2
        assert result.avg_omission(12) == pytest.approx(1.5)

    def test_low_omission_starts_with_latest_draw(self, small_window):
        result = OmissionAnalyzer().analyze(small_window)
        assert result.low_omission[:6] == [1, 3, 20, 21, 22, 30]
        assert len(result.high_omission) == 10

    def test_blue_omission(self, small_window):
        result = OmissionAnalyzer().analyze(small_window)
        assert int(result.blue_current[2]) == 0   # blue 3 in the latest draw
        assert int(result.blue_current[0]) == 1   # blue 1 one draw earlier
        assert int(result.blue_current[15]) == 4  # blue 16 never drawn


class TestDistributionAnalyzer:

    def test_fractions_sum_to_one(self, history):
        result = DistributionAnalyzer().analyze(draws_to_dataframe(history))
        assert sum(result.zone_distribution.values()) == pytest.approx(1.0)
        assert result.odd_even_ratio['odd'] + result.odd_even_ratio['even'] == pytest.approx(1.0)
        assert result.size_ratio['small'] + result.size_ratio['large'] == pytest.approx(1.0)
        assert sum(result.zone_counts.values()) == len(history) * 6

    def test_sum_and_span(self):
        df = _window([([1, 2, 3, 4, 5, 6], 1), ([28, 29, 30, 31, 32, 33], 2)])
        result = DistributionAnalyzer().analyze(df)
        assert result.sum_range == {'min': 21, 'max': 183, 'average': 102.0}
        assert result.span_range == {'min': 5, 'max': 5, 'average': 5.0}
        assert result.zone_counts == {'zone1': 6, 'zone2': 0, 'zone3': 6}
        assert result.size_ratio['small'] == pytest.approx(0.5)
        assert result.odd_even_ratio['odd'] == pytest.approx(0.5)


class TestPatternAnalyzer:

    def test_consecutive_numbers(self, small_window):
        result = PatternAnalyzer().analyze(small_window)
        # every draw in the window has at least one adjacent pair
        assert result.consecutive_frequency == 1.0
        pairs = {tuple(p['numbers']): p['count'] for p in result.consecutive_pairs}
        assert pairs[(2, 3)] == 2
        assert pairs[(20, 21)] == 1
        triples = {tuple(p['numbers']) for p in result.triple_consecutive}
        assert (1, 2, 3) in triples
        assert (20, 21, 22) in triples

    def test_combination_patterns_require_two_draws(self, small_window):
        result = PatternAnalyzer().analyze(small_window)
        assert all(p['count'] >= 2 for p in result.combination_patterns)
        top = result.combination_patterns[0]
        # (1, 3) and (2, 3) occur twice; the triple (1, 2, 3) only once
        assert top['count'] == 2
        combos = [tuple(p['numbers']) for p in result.combination_patterns]
        assert (1, 3) in combos
        assert (2, 3) in combos
        assert (1, 2, 3) not in combos

    def test_combination_order_prefers_larger_sets_on_equal_count(self):
        df = _window([
            ([1, 2, 3, 10, 20, 30], 1),
            ([1, 2, 3, 11, 21, 31], 2),
        ])
        result = PatternAnalyzer().analyze(df)
        assert result.combination_patterns[0] == {'numbers': [1, 2, 3], 'count': 2}
        assert result.combination_patterns[1] == {'numbers': [1, 2], 'count': 2}

    def test_combination_limit(self, history):
        result = PatternAnalyzer(combination_limit=5).analyze(draws_to_dataframe(history))
        assert len(result.combination_patterns) <= 5

    def test_same_tail_and_span(self):
        df = _window([([1, 11, 21, 5, 6, 8], 1), ([1, 11, 2, 3, 4, 33], 2)])
        result = PatternAnalyzer().analyze(df)
        groups = {tuple(g['numbers']): g['count'] for g in result.same_tail_groups}
        assert groups[(1, 11, 21)] == 1
        assert groups[(1, 11)] == 1
        assert groups[(3, 33)] == 1
        spans = {p['span']: p['count'] for p in result.span_patterns}
        assert spans == {20: 1, 32: 1}

    def test_periodic_pattern_for_regular_number(self, synthetic_draws):
        result = PatternAnalyzer().analyze(draws_to_dataframe(synthetic_draws))
        by_number = {p['numbers'][0]: p for p in result.periodic_patterns}
        assert by_number[1]['period'] == 1
        assert by_number[1]['confidence'] == 1.0
        assert all(p['confidence'] >= 0.5 for p in result.periodic_patterns)

    def test_calendar_patterns(self, small_window):
        result = PatternAnalyzer().analyze(small_window)
        assert set(result.month_pattern) == {1}
        assert result.month_pattern[1][0] == 1
        assert sum(len(v) for v in result.weekday_pattern.values()) >= len(result.month_pattern[1])

    def test_max_combination_size_validated(self):
        with pytest.raises(ValueError):
            PatternAnalyzer(max_combination_size=1)

    def test_to_dict_formats_numbers(self, small_window):
        data = PatternAnalyzer().analyze(small_window).to_dict()
        assert data['consecutiveNumbers']['frequency'] == 1.0
        assert all(isinstance(n, str) for p in data['combinationPatterns'] for n in p['numbers'])
