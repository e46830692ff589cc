from __future__ import annotations


class ValuationError(RuntimeError):
    """Base class for failures surfaced by the valuation core."""


class InsufficientDataError(ValuationError):
    """The price series is too short to value the token yet."""


class InsufficientMonthlyDataError(InsufficientDataError):
    pass


class UnexpectedReturnCountError(InsufficientDataError):
    """Internal consistency check on the monthly return count."""


class SourceUnavailableError(ValuationError):
    """An upstream price or chain source failed. Callers may retry."""

    def __init__(self, source: str, symbol: str, message: str) -> None:
        super().__init__(f"{source} unavailable for {symbol}: {message}")
        self.source = source
        self.symbol = symbol


class CacheDegradedError(ValuationError):
    """Cache transport failure. Always absorbed as a cache miss."""


class TokenNotFoundError(ValuationError):
    def __init__(self, symbol: str) -> None:
        super().__init__(f"Token {symbol} not found or not active")
        self.symbol = symbol


__all__ = [
    "CacheDegradedError",
    "InsufficientDataError",
    "InsufficientMonthlyDataError",
    "SourceUnavailableError",
    "TokenNotFoundError",
    "UnexpectedReturnCountError",
    "ValuationError",
]
