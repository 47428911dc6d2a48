import pytest

from ssq_engine.prize_calculator import PRIZE_NAMES, calculate_prize, calculate_prize_level


class TestPrizeLevel:

    @pytest.mark.parametrize("red_hits,blue_hit,expected", [
        (6, True, 1),
        (6, False, 2),
        (5, True, 3),
        (5, False, 4),
        (4, True, 4),
        (4, False, 5),
        (3, True, 5),
        (3, False, 0),
        (2, True, 6),
        (1, True, 6),
        (0, True, 6),
        (2, False, 0),
        (1, False, 0),
        (0, False, 0),
    ])
    def test_official_table(self, red_hits, blue_hit, expected):
        assert calculate_prize_level(red_hits, blue_hit) == expected

    @pytest.mark.parametrize("red_hits", [-1, 7])
    def test_out_of_range_hits(self, red_hits):
        with pytest.raises(ValueError):
            calculate_prize_level(red_hits, False)


class TestCalculatePrize:

    def test_first_prize(self):
        level, name, amount = calculate_prize(6, True)
        assert level == 1
        assert name == PRIZE_NAMES[1]
        assert amount > 0

    def test_no_prize(self):
        assert calculate_prize(2, False) == (0, "No Prize", 0.0)

    def test_fixed_sixth_prize(self):
        assert calculate_prize(0, True) == (6, "Sixth Prize", 5.0)
