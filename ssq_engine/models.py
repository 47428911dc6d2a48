"""
SSQ Engine Data Model
=====================

Draw records, prediction candidates, evaluation records and feature weights.

Numbers are plain integers inside the engine (red 1-33, blue 1-16) and are
formatted as zero-padded two-digit strings only when leaving it
(to_dict(), prompts, reasoning text).
"""

import re
import uuid
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ssq_engine.exceptions import InvalidDrawRecordError

RED_MIN, RED_MAX = 1, 33
BLUE_MIN, BLUE_MAX = 1, 16
RED_COUNT = 6
PERIOD_PATTERN = re.compile(r"^\d{7}$")

METHOD_STATISTICAL = 'statistical'
METHOD_AI = 'ai'
METHOD_ML = 'ml'
METHOD_COMPREHENSIVE = 'comprehensive'
KNOWN_METHODS = (METHOD_STATISTICAL, METHOD_AI, METHOD_ML, METHOD_COMPREHENSIVE)

BallLike = Union[int, str]


def camel_case(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def format_ball(number: int) -> str:
    """Format a ball number as a two-digit string ('01'..'33')."""
    return f"{int(number):02d}"


def format_balls(numbers: Iterable[int]) -> List[str]:
    return [format_ball(n) for n in numbers]


def parse_ball(value: BallLike) -> int:
    """Parse an int or a (zero-padded) numeric string into an int."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid ball value: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError(f"Invalid ball value: {value!r}")
    return int(text)


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # pandas Timestamp and similar expose to_pydatetime()
    if hasattr(value, 'to_pydatetime'):
        return value.to_pydatetime().date()
    return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()


@dataclass(frozen=True)
class DrawRecord:
    """One official draw: 6 unique red balls (1-33) and one blue ball (1-16)."""
    period: str
    draw_date: date
    red_balls: Tuple[int, ...]
    blue_ball: int

    @classmethod
    def create(cls, period: Any, draw_date: Any, red_balls: Iterable[BallLike],
               blue_ball: BallLike) -> "DrawRecord":
        """
        Build a validated record.

        Raises:
            InvalidDrawRecordError: malformed period, wrong red count or domain,
                duplicated red balls, blue ball out of domain, bad date.
        """
        period_str = str(period).strip()
        if not PERIOD_PATTERN.match(period_str):
            raise InvalidDrawRecordError(f"Period must be 7 digits, got {period!r}",
                                         period=period_str)

        try:
            reds = [parse_ball(b) for b in red_balls]
            blue = parse_ball(blue_ball)
        except (TypeError, ValueError) as e:
            raise InvalidDrawRecordError(f"Unparsable ball value: {e}", period=period_str) from e

        if len(reds) != RED_COUNT:
            raise InvalidDrawRecordError(f"Expected {RED_COUNT} red balls, got {len(reds)}",
                                         period=period_str)
        if len(set(reds)) != RED_COUNT:
            raise InvalidDrawRecordError(f"Duplicated red balls: {reds}", period=period_str)
        if any(n < RED_MIN or n > RED_MAX for n in reds):
            raise InvalidDrawRecordError(f"Red balls out of range {RED_MIN}-{RED_MAX}: {reds}",
                                         period=period_str)
        if blue < BLUE_MIN or blue > BLUE_MAX:
            raise InvalidDrawRecordError(f"Blue ball out of range {BLUE_MIN}-{BLUE_MAX}: {blue}",
                                         period=period_str)

        try:
            parsed_date = _parse_date(draw_date)
        except (TypeError, ValueError) as e:
            raise InvalidDrawRecordError(f"Invalid draw date {draw_date!r}", period=period_str) from e

        return cls(period=period_str, draw_date=parsed_date,
                   red_balls=tuple(sorted(reds)), blue_ball=blue)

    @property
    def year(self) -> int:
        return int(self.period[:4])

    @property
    def sequence(self) -> int:
        return int(self.period[4:])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'period': self.period,
            'date': self.draw_date.isoformat(),
            'redBalls': format_balls(self.red_balls),
            'blueBall': format_ball(self.blue_ball),
        }


@dataclass
class PredictionCandidate:
    """A single predicted ticket produced by one of the predictors."""
    red_balls: List[int]
    blue_ball: int
    confidence: float
    strategy: str
    reasoning: str
    sources: List[str]
    features: Dict[str, float] = field(default_factory=dict)
    period: Optional[str] = None
    candidate_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        self.red_balls = sorted(int(n) for n in self.red_balls)
        self.blue_ball = int(self.blue_ball)
        self.confidence = float(min(1.0, max(0.0, self.confidence)))

    @property
    def method(self) -> str:
        """Primary source used for evaluation aggregation."""
        return self.sources[0] if self.sources else METHOD_COMPREHENSIVE

    def is_valid(self) -> bool:
        return (
            len(self.red_balls) == RED_COUNT
            and len(set(self.red_balls)) == RED_COUNT
            and all(RED_MIN <= n <= RED_MAX for n in self.red_balls)
            and BLUE_MIN <= self.blue_ball <= BLUE_MAX
        )

    def key(self) -> Tuple[Tuple[int, ...], int]:
        return tuple(self.red_balls), self.blue_ball

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.candidate_id,
            'period': self.period,
            'redBalls': format_balls(self.red_balls),
            'blueBall': format_ball(self.blue_ball),
            'confidence': round(self.confidence, 4),
            'strategy': self.strategy,
            'reasoning': self.reasoning,
            'sources': list(self.sources),
            'features': {camel_case(name): value for name, value in self.features.items()},
        }


@dataclass
class EvaluationRecord:
    """Outcome of comparing one prediction with one actual draw."""
    prediction_id: str
    period: str
    red_balls_hit: int
    blue_ball_hit: bool
    prize_level: int
    prize_name: str
    accuracy: float
    score: float
    method: str
    strategy: str = ''
    matched_red: List[int] = field(default_factory=list)
    missed_red: List[int] = field(default_factory=list)
    weight_profile_id: Optional[int] = None

    @property
    def is_winning(self) -> bool:
        return self.prize_level != 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['matched_red'] = format_balls(self.matched_red)
        data['missed_red'] = format_balls(self.missed_red)
        return data


@dataclass(frozen=True)
class FeatureWeights:
    """Relative importance of the per-number features used by the ML predictor."""
    frequency: float = 0.3
    omission: float = 0.2
    hot: float = 0.2
    cold: float = 0.15
    high_omission: float = 0.15

    FIELDS = ('frequency', 'omission', 'hot', 'cold', 'high_omission')

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FeatureWeights":
        """Accepts snake_case or the camelCase 'highOmission' key."""
        if not data:
            return cls()
        values = dict(data)
        if 'highOmission' in values and 'high_omission' not in values:
            values['high_omission'] = values.pop('highOmission')
        unknown = set(values) - set(cls.FIELDS)
        if unknown:
            raise ValueError(f"Unknown feature weights: {sorted(unknown)}")
        defaults = cls()
        return cls(**{name: float(values.get(name, getattr(defaults, name))) for name in cls.FIELDS})

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in self.FIELDS}

    def normalized(self) -> "FeatureWeights":
        """
        Return a copy scaled to sum to 1.0.

        Raises:
            ValueError: a weight is negative or all weights are zero.
        """
        values = self.as_dict()
        negative = [name for name, value in values.items() if value < 0]
        if negative:
            raise ValueError(f"Feature weights must be non-negative: {negative}")
        total = sum(values.values())
        if total <= 0:
            raise ValueError("At least one feature weight must be positive")
        return FeatureWeights(**{name: value / total for name, value in values.items()})


@dataclass
class FeatureWeightProfile:
    """A weight vector used by a method for a target period, with its realized win rate."""
    profile_id: Optional[int]
    weights: FeatureWeights
    method: str = METHOD_ML
    period: Optional[str] = None
    scope: Optional[str] = None
    created_at: Optional[str] = None
    win_rate: float = 0.0
    evaluations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'profile_id': self.profile_id,
            'weights': self.weights.as_dict(),
            'method': self.method,
            'period': self.period,
            'scope': self.scope,
            'created_at': self.created_at,
            'win_rate': self.win_rate,
            'evaluations': self.evaluations,
        }
