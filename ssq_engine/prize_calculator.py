from typing import Dict, Tuple

PRIZE_NAMES: Dict[int, str] = {
    0: "No Prize",
    1: "First Prize",
    2: "Second Prize",
    3: "Third Prize",
    4: "Fourth Prize",
    5: "Fifth Prize",
    6: "Sixth Prize",
}

# Fixed amounts in CNY; tiers 1 and 2 float with the pool
PRIZE_AMOUNTS: Dict[int, float] = {
    0: 0.0,
    1: 5000000.0,
    2: 100000.0,
    3: 3000.0,
    4: 200.0,
    5: 10.0,
    6: 5.0,
}


def calculate_prize_level(red_hits: int, blue_hit: bool) -> int:
    """
    Official double-color-ball prize tier; the first matching rule wins.

    Args:
        red_hits: Number of red balls matched (0-6)
        blue_hit: Whether the blue ball matched

    Returns:
        Tier 1-6, or 0 for no prize
    """
    if not 0 <= red_hits <= 6:
        raise ValueError(f"red_hits must be between 0 and 6, got {red_hits}")

    if red_hits == 6 and blue_hit:
        return 1
    elif red_hits == 6:
        return 2
    elif red_hits == 5 and blue_hit:
        return 3
    elif red_hits == 5 or (red_hits == 4 and blue_hit):
        return 4
    elif red_hits == 4 or (red_hits == 3 and blue_hit):
        return 5
    elif blue_hit:
        return 6
    else:
        return 0


def calculate_prize(red_hits: int, blue_hit: bool) -> Tuple[int, str, float]:
    """
    Returns:
        Tuple of (prize_level, prize_name, nominal_amount)
    """
    level = calculate_prize_level(red_hits, blue_hit)
    return level, PRIZE_NAMES[level], PRIZE_AMOUNTS[level]
