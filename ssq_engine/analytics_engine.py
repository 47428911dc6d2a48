"""
SSQ Analytics Engine
====================
Runs the four analyzers over one validated window of draws and bundles
the results into a ComprehensiveAnalysis.
"""

import configparser
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from ssq_engine.config import get_min_periods, load_config
from ssq_engine.exceptions import InsufficientHistoryError, InvalidDrawRecordError
from ssq_engine.loader import DrawHistoryProvider, draws_to_dataframe
from ssq_engine.models import DrawRecord
from ssq_engine.statistical_core import (
    DistributionAnalyzer,
    DistributionResult,
    FrequencyAnalyzer,
    FrequencyResult,
    OmissionAnalyzer,
    OmissionResult,
    PatternAnalyzer,
    PatternResult,
)


@dataclass
class ComprehensiveAnalysis:
    """The four analyzer results computed over the same window."""
    frequency: FrequencyResult
    omission: OmissionResult
    distribution: DistributionResult
    patterns: PatternResult
    total_periods: int
    latest_period: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'frequency': self.frequency.to_dict(),
            'omission': self.omission.to_dict(),
            'distribution': self.distribution.to_dict(),
            'patterns': self.patterns.to_dict(),
            'totalPeriods': self.total_periods,
            'latestPeriod': self.latest_period,
        }


class AnalyticsEngine:
    """Window validation and analysis over a DrawHistoryProvider"""

    def __init__(self, provider: DrawHistoryProvider,
                 config: Optional[configparser.ConfigParser] = None):
        self.provider = provider
        self.config = config or load_config()

        self.min_periods = get_min_periods(self.config)
        self.default_periods = self.config.getint("analysis", "default_periods", fallback=100)
        band_ratio = self.config.getfloat("analysis", "band_ratio", fallback=0.3)

        self.frequency_analyzer = FrequencyAnalyzer(band_ratio=band_ratio)
        self.omission_analyzer = OmissionAnalyzer(band_ratio=band_ratio)
        self.distribution_analyzer = DistributionAnalyzer()
        self.pattern_analyzer = PatternAnalyzer(
            max_combination_size=self.config.getint("analysis", "combination_max_size", fallback=3),
            combination_limit=self.config.getint("analysis", "combination_limit", fallback=20),
            periodic_min_confidence=self.config.getfloat("analysis", "periodic_min_confidence",
                                                         fallback=0.5),
        )
        logger.info(f"AnalyticsEngine initialized (min_periods={self.min_periods}, "
                    f"default_periods={self.default_periods})")

    def validate_window(self, periods: int) -> None:
        """
        Reject windows below the minimum before any analyzer runs.

        Raises:
            InsufficientHistoryError: periods < min_periods
        """
        if periods is None or int(periods) < self.min_periods:
            logger.warning(f"Rejected analysis window of {periods} periods (minimum {self.min_periods})")
            raise InsufficientHistoryError(periods, minimum=self.min_periods)

    def load_window(self, periods: Optional[int] = None) -> Tuple[List[DrawRecord], pd.DataFrame]:
        """
        Most recent `periods` draws, chronological, plus their DataFrame.

        Raises:
            InsufficientHistoryError: window below minimum or store holds fewer draws
            InvalidDrawRecordError: the store returned a corrupt record
        """
        periods = self.default_periods if periods is None else periods
        self.validate_window(periods)

        recent = self.provider.find_recent(periods)
        if len(recent) < periods:
            logger.error(f"Requested {periods} periods but the store returned {len(recent)}")
            raise InsufficientHistoryError(periods, minimum=self.min_periods, available=len(recent))

        records = [self._ensure_valid(record) for record in reversed(recent)]
        return records, draws_to_dataframe(records)

    @staticmethod
    def _ensure_valid(record: Any) -> DrawRecord:
        if not isinstance(record, DrawRecord):
            raise InvalidDrawRecordError(f"Store returned a non-draw object: {type(record).__name__}",
                                         raw=record)
        # Re-validating guards against records built without create()
        return DrawRecord.create(record.period, record.draw_date, record.red_balls, record.blue_ball)

    def comprehensive_analysis(self, periods: Optional[int] = None) -> ComprehensiveAnalysis:
        """Run every analyzer over the most recent `periods` draws."""
        records, draws_df = self.load_window(periods)
        return self._analyze(records, draws_df)

    def load_and_analyze(self, periods: Optional[int] = None) -> Tuple[List[DrawRecord], ComprehensiveAnalysis]:
        """Window (chronological) and its analysis, loading the store once."""
        records, draws_df = self.load_window(periods)
        return records, self._analyze(records, draws_df)

    def analyze_draws(self, records: Sequence[DrawRecord]) -> ComprehensiveAnalysis:
        """Run every analyzer over an explicit set of draws (e.g. a backtest window)."""
        self.validate_window(len(records))
        ordered = sorted(records, key=lambda r: r.period)
        return self._analyze(ordered, draws_to_dataframe(ordered))

    def _analyze(self, records: List[DrawRecord], draws_df: pd.DataFrame) -> ComprehensiveAnalysis:
        analysis = ComprehensiveAnalysis(
            frequency=self.frequency_analyzer.analyze(draws_df),
            omission=self.omission_analyzer.analyze(draws_df),
            distribution=self.distribution_analyzer.analyze(draws_df),
            patterns=self.pattern_analyzer.analyze(draws_df),
            total_periods=len(records),
            latest_period=records[-1].period if records else None,
        )
        logger.info(f"Comprehensive analysis complete ({analysis.total_periods} periods, "
                    f"latest={analysis.latest_period})")
        return analysis

    def analyze_frequency(self, periods: Optional[int] = None) -> FrequencyResult:
        _, draws_df = self.load_window(periods)
        return self.frequency_analyzer.analyze(draws_df)

    def analyze_omission(self, periods: Optional[int] = None) -> OmissionResult:
        _, draws_df = self.load_window(periods)
        return self.omission_analyzer.analyze(draws_df)

    def analyze_distribution(self, periods: Optional[int] = None) -> DistributionResult:
        _, draws_df = self.load_window(periods)
        return self.distribution_analyzer.analyze(draws_df)

    def identify_patterns(self, periods: Optional[int] = None) -> PatternResult:
        _, draws_df = self.load_window(periods)
        return self.pattern_analyzer.analyze(draws_df)
