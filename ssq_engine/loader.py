"""
SSQ Engine Draw Loader
======================

Draw-history access for the engine:
- DrawHistoryProvider protocol (the store is owned by the caller)
- InMemoryDrawHistory for scripts, backtests and tests
- Bulk parsing with skip-and-count of invalid rows
- CSV import and DataFrame conversion
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import pandas as pd
from loguru import logger

from ssq_engine.exceptions import InvalidDrawRecordError
from ssq_engine.models import DrawRecord

RED_COLUMNS = ['r1', 'r2', 'r3', 'r4', 'r5', 'r6']
DATAFRAME_COLUMNS = ['period', 'draw_date'] + RED_COLUMNS + ['blue']


class DrawHistoryProvider(Protocol):
    """Read-only access to stored draws."""

    def find_recent(self, count: int) -> List[DrawRecord]:
        """Most recent `count` draws, newest first."""
        ...

    def find_by_period(self, period: str) -> Optional[DrawRecord]:
        ...

    def count(self) -> int:
        ...


class InMemoryDrawHistory:
    """DrawHistoryProvider over a list of records (any order in, sorted by period)."""

    def __init__(self, records: Iterable[DrawRecord]):
        self._records = sorted(records, key=lambda r: r.period)
        self._by_period = {r.period: r for r in self._records}
        if len(self._by_period) != len(self._records):
            logger.warning("Duplicate periods in draw history; keeping the last occurrence")
            self._records = sorted(self._by_period.values(), key=lambda r: r.period)

    def find_recent(self, count: int) -> List[DrawRecord]:
        if count <= 0:
            return []
        return list(reversed(self._records[-count:]))

    def find_by_period(self, period: str) -> Optional[DrawRecord]:
        return self._by_period.get(str(period))

    def count(self) -> int:
        return len(self._records)

    def chronological(self) -> List[DrawRecord]:
        return list(self._records)

    def before(self, period: str) -> "InMemoryDrawHistory":
        """History restricted to draws strictly before `period` (no future leakage)."""
        return InMemoryDrawHistory(r for r in self._records if r.period < period)


@dataclass
class LoadResult:
    """Outcome of a bulk import: valid records plus the skip count and reasons."""
    records: List[DrawRecord] = field(default_factory=list)
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


def _split_balls(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [part for part in re.split(r"[\s,;|-]+", str(value).strip()) if part]


def _row_to_record(row: Dict[str, Any]) -> DrawRecord:
    if 'red_balls' in row and row['red_balls'] is not None:
        reds = _split_balls(row['red_balls'])
    else:
        reds = [row.get(col) for col in RED_COLUMNS]
        if any(v is None or (isinstance(v, float) and pd.isna(v)) for v in reds):
            raise InvalidDrawRecordError("Missing red ball columns", period=str(row.get('period')))
        reds = [int(v) if isinstance(v, float) else v for v in reds]

    blue = row.get('blue_ball', row.get('blue'))
    if isinstance(blue, float):
        if pd.isna(blue):
            raise InvalidDrawRecordError("Missing blue ball", period=str(row.get('period')))
        blue = int(blue)
    draw_date = row.get('draw_date', row.get('date'))
    return DrawRecord.create(row.get('period'), draw_date, reds, blue)


def parse_draw_records(rows: Iterable[Dict[str, Any]]) -> LoadResult:
    """
    Validate raw rows, skipping and counting the invalid ones.

    Accepted keys: period, date|draw_date, red_balls (list or delimited string)
    or r1..r6, blue|blue_ball.
    """
    result = LoadResult()
    for index, row in enumerate(rows):
        try:
            result.records.append(_row_to_record(row))
        except (InvalidDrawRecordError, TypeError, ValueError) as e:
            result.skipped += 1
            period = row.get('period') if isinstance(row, dict) else None
            result.errors.append({'index': index, 'period': period, 'error': str(e)})
            logger.warning(f"Skipping invalid draw record #{index} (period={period}): {e}")

    logger.info(f"Parsed {len(result.records)} draw records, skipped {result.skipped}")
    return result


def load_draws_from_csv(path: str) -> LoadResult:
    """Read draws from a CSV file; period is read as text to keep leading zeros."""
    df = pd.read_csv(path, dtype={'period': str})
    logger.info(f"Loaded {len(df)} rows from {path}")
    return parse_draw_records(df.to_dict(orient='records'))


def draws_to_dataframe(records: Sequence[DrawRecord]) -> pd.DataFrame:
    """Chronological (oldest first) DataFrame with period, draw_date, r1..r6, blue."""
    if not records:
        return pd.DataFrame(columns=DATAFRAME_COLUMNS)

    rows = []
    for record in sorted(records, key=lambda r: r.period):
        row = {'period': record.period, 'draw_date': pd.Timestamp(record.draw_date)}
        for col, ball in zip(RED_COLUMNS, record.red_balls):
            row[col] = ball
        row['blue'] = record.blue_ball
        rows.append(row)

    return pd.DataFrame(rows, columns=DATAFRAME_COLUMNS).reset_index(drop=True)
