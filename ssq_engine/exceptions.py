"""
SSQ Engine Exceptions
=====================

Error taxonomy shared by the analyzers, predictors and evaluators.
Every error keeps the context a caller needs to log or display it
(period, requested window size, method) without re-deriving state.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, period: Optional[str] = None,
                 periods: Optional[int] = None, method: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.period = period
        self.periods = periods
        self.method = method

    @property
    def context(self) -> Dict[str, Any]:
        return {
            'error': type(self).__name__,
            'message': self.message,
            'period': self.period,
            'periods': self.periods,
            'method': self.method,
        }


class InsufficientHistoryError(EngineError, ValueError):
    """Raised when the analysis window is below the minimum or the store holds too few draws."""

    def __init__(self, periods: int, minimum: int = 10, available: Optional[int] = None,
                 method: Optional[str] = None):
        if available is not None and available < periods:
            message = (f"Insufficient history: {periods} periods requested, "
                       f"only {available} draws available")
        else:
            message = f"Insufficient history: at least {minimum} periods required, got {periods}"
        super().__init__(message, periods=periods, method=method)
        self.minimum = minimum
        self.available = available

    @property
    def context(self) -> Dict[str, Any]:
        ctx = super().context
        ctx.update({'minimum': self.minimum, 'available': self.available})
        return ctx


class InvalidDrawRecordError(EngineError, ValueError):
    """Raised for a malformed draw record (period, red ball set or blue ball)."""

    def __init__(self, message: str, period: Optional[str] = None, raw: Any = None):
        super().__init__(message, period=period)
        self.raw = raw


class ExternalReasoningError(EngineError):
    """
    Raised when the external reasoning service fails (timeout, transport,
    malformed payload) and fallback is disabled. Callers own the retry policy.
    """

    def __init__(self, message: str, method: str = 'ai', periods: Optional[int] = None,
                 retryable: bool = True, cause: Optional[BaseException] = None):
        super().__init__(message, periods=periods, method=method)
        self.retryable = retryable
        self.cause = cause

    @property
    def context(self) -> Dict[str, Any]:
        ctx = super().context
        ctx['retryable'] = self.retryable
        return ctx


class EvaluationTargetMissingError(EngineError, LookupError):
    """Raised when no actual draw exists yet for the period being evaluated."""

    def __init__(self, period: str, method: Optional[str] = None):
        super().__init__(f"No actual draw result available for period {period}",
                         period=period, method=method)
