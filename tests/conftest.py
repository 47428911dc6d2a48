import configparser
import os
import sys
from datetime import date, timedelta

import numpy as np
import pytest

# Ensure repository root is on sys.path so `import ssq_engine.*` works during tests
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from ssq_engine.analytics_engine import AnalyticsEngine  # noqa: E402
from ssq_engine.loader import InMemoryDrawHistory  # noqa: E402
from ssq_engine.models import DrawRecord  # noqa: E402
from ssq_engine.winning_tracker import WinningTracker  # noqa: E402

# Tuesday; draws then fall on Tue/Thu/Sun
FIRST_DRAW_DATE = date(2024, 1, 2)
DAY_STEPS = (2, 3, 2)

TEST_CONFIG = {
    'analysis': {
        'default_periods': '30',
        'min_periods': '10',
        'band_ratio': '0.3',
        'combination_max_size': '3',
        'combination_limit': '20',
        'periodic_min_confidence': '0.5',
    },
    'statistical': {'deterministic': 'false'},
    'ml': {'pool_size': '12'},
    'ai': {
        'enabled': 'true',
        'use_fallback': 'true',
        'timeout_seconds': '2',
        'temperature': '0.7',
        'max_tokens': '2000',
        'history_in_prompt': '20',
    },
    'tracker': {'default_periods': '50'},
}


def build_draws(count, seed=0, always=None, year=2024):
    """Deterministic synthetic draws; `always` is forced into every draw."""
    rng = np.random.default_rng(seed)
    records = []
    draw_date = FIRST_DRAW_DATE
    for index in range(count):
        reds = [int(n) for n in rng.choice(np.arange(1, 34), size=6, replace=False)]
        if always is not None and always not in reds:
            reds[0] = always
        blue = int(rng.integers(1, 17))
        records.append(DrawRecord.create(f"{year}{index + 1:03d}", draw_date, reds, blue))
        draw_date += timedelta(days=DAY_STEPS[index % len(DAY_STEPS)])
    return records


@pytest.fixture
def make_draws():
    return build_draws


@pytest.fixture
def config():
    parser = configparser.ConfigParser()
    parser.read_dict(TEST_CONFIG)
    return parser


@pytest.fixture
def synthetic_draws():
    """10 draws with number 1 in every one of them."""
    return build_draws(10, seed=7, always=1)


@pytest.fixture
def history():
    return build_draws(60, seed=42)


@pytest.fixture
def provider(history):
    return InMemoryDrawHistory(history)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def analysis(provider, config):
    return AnalyticsEngine(provider, config).comprehensive_analysis(30)


@pytest.fixture
def tracker(tmp_path):
    return WinningTracker(str(tmp_path / "tracker.db"))
