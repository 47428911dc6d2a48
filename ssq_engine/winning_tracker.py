"""
SSQ Winning Tracker
===================

Persists evaluation outcomes and feature-weight profiles in SQLite and
derives from them:
- win rates per method over the most recent evaluated periods
- the ML weight profile with the highest historical win rate
- ensemble weights per method tilted by relative win rate

The "optimal" weights are a historical-maximum lookup, not a learned model.
"""

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from loguru import logger

from ssq_engine.config import get_db_path
from ssq_engine.models import (
    KNOWN_METHODS,
    METHOD_AI,
    METHOD_COMPREHENSIVE,
    METHOD_ML,
    METHOD_STATISTICAL,
    EvaluationRecord,
    FeatureWeightProfile,
    FeatureWeights,
)

DEFAULT_PERIODS = 50
BASE_METHOD_WEIGHTS = {METHOD_AI: 0.4, METHOD_ML: 0.3, METHOD_STATISTICAL: 0.3}
METHOD_WEIGHT_MIN = 0.1
METHOD_WEIGHT_MAX = 0.6
WEIGHT_KEY_DIGITS = 6

SCHEMA = """
CREATE TABLE IF NOT EXISTS prediction_evaluations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prediction_id TEXT NOT NULL,
    period TEXT NOT NULL,
    scope TEXT,
    method TEXT NOT NULL,
    strategy TEXT,
    red_balls_hit INTEGER NOT NULL,
    blue_ball_hit INTEGER NOT NULL,
    prize_level INTEGER NOT NULL,
    accuracy REAL NOT NULL,
    score REAL NOT NULL,
    weight_profile_id INTEGER,
    created_at TEXT DEFAULT (datetime('now')),
    UNIQUE (prediction_id, period),
    FOREIGN KEY (weight_profile_id) REFERENCES feature_weight_profiles(id)
);

CREATE INDEX IF NOT EXISTS idx_evaluations_period ON prediction_evaluations(period);
CREATE INDEX IF NOT EXISTS idx_evaluations_scope ON prediction_evaluations(scope);

CREATE TABLE IF NOT EXISTS feature_weight_profiles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    method TEXT NOT NULL DEFAULT 'ml',
    period TEXT,
    scope TEXT,
    frequency REAL NOT NULL,
    omission REAL NOT NULL,
    hot REAL NOT NULL,
    cold REAL NOT NULL,
    high_omission REAL NOT NULL,
    created_at TEXT DEFAULT (datetime('now'))
);
"""


@dataclass
class WinningRateStats:
    total: int = 0
    winning: int = 0
    rate: float = 0.0
    prize_distribution: Dict[int, int] = field(default_factory=lambda: {level: 0 for level in range(7)})

    def to_dict(self) -> Dict:
        return {
            'total': self.total,
            'winning': self.winning,
            'rate': self.rate,
            'prizeDistribution': {f"level{k}": v for k, v in self.prize_distribution.items()},
        }


def _recency(row) -> Tuple[str, int]:
    # created_at has second resolution, id breaks the remaining ties
    return row[3] or "", row[0]


def get_db_connection(db_path: str) -> sqlite3.Connection:
    """
    Open the tracker database with WAL and a busy timeout.

    Raises:
        sqlite3.Error: If database connection fails
    """
    try:
        conn = sqlite3.connect(db_path, timeout=30)
    except sqlite3.Error as e:
        logger.error(f"Error connecting to database at {db_path}: {e}")
        raise

    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.execute("PRAGMA foreign_keys=ON")
    except sqlite3.Error as e:
        logger.warning(f"Could not apply connection pragmas on {db_path}: {e}")
    return conn


class WinningTracker:
    """Evaluation history and weight optimization backed by SQLite."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        self.initialize()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = get_db_connection(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        with self._connection() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Winning tracker schema ready at {self.db_path}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def track_evaluation(self, record: EvaluationRecord, scope: Optional[str] = None) -> int:
        """Store one evaluation; re-evaluating the same (prediction, period) replaces it."""
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR REPLACE INTO prediction_evaluations
                    (prediction_id, period, scope, method, strategy, red_balls_hit,
                     blue_ball_hit, prize_level, accuracy, score, weight_profile_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (record.prediction_id, record.period, scope, record.method, record.strategy,
                 record.red_balls_hit, int(record.blue_ball_hit), record.prize_level,
                 record.accuracy, record.score, record.weight_profile_id),
            )
            row_id = cursor.lastrowid

        logger.info(f"Tracked evaluation {record.prediction_id[:8]} for period {record.period} "
                    f"(method={record.method}, red={record.red_balls_hit}, "
                    f"blue={record.blue_ball_hit}, prize={record.prize_level})")
        return row_id

    def track_evaluations(self, records: Iterable[EvaluationRecord], scope: Optional[str] = None) -> int:
        count = 0
        for record in records:
            self.track_evaluation(record, scope)
            count += 1
        return count

    def save_weight_profile(self, weights: FeatureWeights, period: Optional[str] = None,
                            scope: Optional[str] = None, method: str = METHOD_ML) -> int:
        """Store the (normalized) weights a method used for a target period."""
        normalized = weights.normalized()
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO feature_weight_profiles
                    (method, period, scope, frequency, omission, hot, cold, high_omission)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (method, period, scope, normalized.frequency, normalized.omission,
                 normalized.hot, normalized.cold, normalized.high_omission),
            )
            profile_id = cursor.lastrowid
        logger.debug(f"Saved weight profile {profile_id} for period {period} ({normalized.as_dict()})")
        return profile_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _scope_clause(scope: Optional[str], column: str = "scope") -> Tuple[str, List]:
        if scope is None:
            return "", []
        return f" AND {column} = ?", [scope]

    def _recent_periods(self, conn: sqlite3.Connection, periods: int, scope: Optional[str]) -> List[str]:
        scope_sql, params = self._scope_clause(scope)
        rows = conn.execute(
            f"SELECT DISTINCT period FROM prediction_evaluations WHERE 1=1{scope_sql} "
            f"ORDER BY period DESC LIMIT ?",
            params + [periods],
        ).fetchall()
        return [row[0] for row in rows]

    def get_weight_profile(self, profile_id: int) -> Optional[FeatureWeightProfile]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, method, period, scope, frequency, omission, hot, cold, high_omission, "
                "created_at FROM feature_weight_profiles WHERE id = ?",
                (profile_id,),
            ).fetchone()
        if row is None:
            return None
        return FeatureWeightProfile(
            profile_id=row[0],
            method=row[1],
            period=row[2],
            scope=row[3],
            weights=FeatureWeights(*row[4:9]),
            created_at=row[9],
        )

    def get_winning_rates(self, periods: int = DEFAULT_PERIODS,
                          scope: Optional[str] = None) -> Dict[str, WinningRateStats]:
        """
        Win rate (prize_level != 0) per method over the most recent `periods`
        evaluated periods. Unknown methods are folded into 'comprehensive'.
        """
        if scope is None:
            logger.debug("No scope given, aggregating evaluations of every scope")

        stats = {method: WinningRateStats() for method in KNOWN_METHODS}
        with self._connection() as conn:
            window = self._recent_periods(conn, periods, scope)
            if not window:
                return stats

            scope_sql, params = self._scope_clause(scope)
            placeholders = ",".join("?" for _ in window)
            rows = conn.execute(
                f"SELECT method, prize_level FROM prediction_evaluations "
                f"WHERE period IN ({placeholders}){scope_sql}",
                window + params,
            ).fetchall()

        for method, prize_level in rows:
            key = method if method in stats else METHOD_COMPREHENSIVE
            if key != method:
                logger.debug(f"Unknown method '{method}' counted as {METHOD_COMPREHENSIVE}")
            stat = stats[key]
            stat.total += 1
            level = int(prize_level or 0)
            if level != 0:
                stat.winning += 1
            stat.prize_distribution[level] = stat.prize_distribution.get(level, 0) + 1

        for stat in stats.values():
            stat.rate = stat.winning / stat.total if stat.total else 0.0

        logger.info(f"Winning rates over {len(window)} periods: "
                    + ", ".join(f"{m}={s.rate:.3f} ({s.winning}/{s.total})" for m, s in stats.items()))
        return stats

    def get_optimal_weights(self, periods: int = DEFAULT_PERIODS,
                            scope: Optional[str] = None) -> FeatureWeightProfile:
        """
        ML weights with the highest win rate within the window.

        Profiles sharing a weight vector are pooled before ranking, and the
        most recent profile of the winning vector is returned. Ties go to the
        most recently saved vector; defaults are returned when no profile has
        evaluations in the window.
        """
        with self._connection() as conn:
            window = self._recent_periods(conn, periods, scope)
            if not window:
                logger.info("No evaluations yet, using default feature weights")
                return FeatureWeightProfile(profile_id=None, weights=FeatureWeights(), scope=scope)

            placeholders = ",".join("?" for _ in window)
            scope_sql, params = self._scope_clause(scope, column="p.scope")
            rows = conn.execute(
                f"""
                SELECT p.id, p.period, p.scope, p.created_at,
                       p.frequency, p.omission, p.hot, p.cold, p.high_omission,
                       COUNT(e.id) AS evaluations,
                       SUM(CASE WHEN e.prize_level != 0 THEN 1 ELSE 0 END) AS winning
                FROM feature_weight_profiles p
                JOIN prediction_evaluations e ON e.weight_profile_id = p.id
                WHERE p.method = ? AND e.period IN ({placeholders}){scope_sql}
                GROUP BY p.id
                """,
                [METHOD_ML] + window + params,
            ).fetchall()

        if not rows:
            logger.info("No ML weight profile evaluated in the window, using default feature weights")
            return FeatureWeightProfile(profile_id=None, weights=FeatureWeights(), scope=scope)

        # Profiles saved with the same weight vector are one configuration
        groups: Dict[Tuple[float, ...], Dict] = {}
        for row in rows:
            key = tuple(round(float(w), WEIGHT_KEY_DIGITS) for w in row[4:9])
            group = groups.setdefault(key, {'evaluations': 0, 'winning': 0, 'latest': row})
            group['evaluations'] += row[9]
            group['winning'] += row[10] or 0
            if _recency(row) > _recency(group['latest']):
                group['latest'] = row

        def rank(group):
            return group['winning'] / group['evaluations'], _recency(group['latest'])

        best = max(groups.values(), key=rank)
        latest = best['latest']
        win_rate = best['winning'] / best['evaluations']
        profile = FeatureWeightProfile(
            profile_id=latest[0],
            weights=FeatureWeights(*latest[4:9]),
            method=METHOD_ML,
            period=latest[1],
            scope=latest[2],
            created_at=latest[3],
            win_rate=win_rate,
            evaluations=best['evaluations'],
        )
        logger.info(f"Optimal weights from profile {profile.profile_id} "
                    f"(win rate {win_rate:.3f} over {profile.evaluations} evaluations)")
        return profile

    def get_method_weights(self, periods: int = DEFAULT_PERIODS,
                           scope: Optional[str] = None) -> Dict[str, float]:
        """
        Ensemble weights per method: base 0.4/0.3/0.3 tilted by
        (rate - avg) / avg, clamped to [0.1, 0.6] and normalized.
        """
        rates = self.get_winning_rates(periods, scope)
        avg_rate = sum(rates[m].rate for m in KNOWN_METHODS) / len(KNOWN_METHODS)
        if avg_rate == 0:
            return dict(BASE_METHOD_WEIGHTS)

        adjusted = {}
        for method, base in BASE_METHOD_WEIGHTS.items():
            boost = (rates[method].rate - avg_rate) / avg_rate
            adjusted[method] = max(METHOD_WEIGHT_MIN, min(METHOD_WEIGHT_MAX, base * (1 + boost * 0.5)))

        total = sum(adjusted.values())
        weights = {method: value / total for method, value in adjusted.items()}
        logger.info(f"Method weights: {weights}")
        return weights
