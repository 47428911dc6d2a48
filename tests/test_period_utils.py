from datetime import date

import pytest

from ssq_engine.period_utils import (
    calculate_next_period,
    current_draw_date,
    format_period,
    next_drawing_date,
    parse_period,
)


class TestPeriodKeys:

    def test_parse_period(self):
        assert parse_period('2024153') == (2024, 153)

    @pytest.mark.parametrize("value", ['202401', '2024AB1', '', '20240011'])
    def test_parse_period_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_period(value)

    def test_format_period_zero_pads(self):
        assert format_period(2025, 7) == '2025007'

    @pytest.mark.parametrize("sequence", [0, 1000])
    def test_format_period_rejects_out_of_range_sequence(self, sequence):
        with pytest.raises(ValueError):
            format_period(2025, sequence)


class TestNextPeriod:

    def test_increments_within_year(self):
        assert calculate_next_period('2024150', today=date(2024, 12, 20)) == '2024151'

    def test_last_sequence_of_the_year_has_no_successor(self):
        assert calculate_next_period('2024998', today=date(2024, 12, 30)) == '2024999'
        with pytest.raises(ValueError):
            calculate_next_period('2024999', today=date(2024, 12, 30))

    def test_rolls_over_to_new_year(self):
        assert calculate_next_period('2024153', today=date(2025, 1, 2)) == '2025001'

    def test_no_draws_starts_the_year(self):
        assert calculate_next_period(None, today=date(2025, 3, 1)) == '2025001'

    def test_defaults_to_today(self):
        assert calculate_next_period(None) == format_period(current_draw_date().year, 1)


class TestDrawingDays:

    @pytest.mark.parametrize("reference,expected", [
        (date(2024, 1, 1), date(2024, 1, 2)),   # Monday -> Tuesday
        (date(2024, 1, 2), date(2024, 1, 4)),   # Tuesday -> Thursday
        (date(2024, 1, 4), date(2024, 1, 7)),   # Thursday -> Sunday
        (date(2024, 1, 7), date(2024, 1, 9)),   # Sunday -> Tuesday
    ])
    def test_next_drawing_date(self, reference, expected):
        assert next_drawing_date(reference) == expected
