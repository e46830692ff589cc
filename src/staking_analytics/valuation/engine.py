from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from ..errors import (
    InsufficientDataError,
    InsufficientMonthlyDataError,
    UnexpectedReturnCountError,
)
from ..timeutils import utcnow
from .models import PricePoint, ValuationRemark, ValuationResult

logger = logging.getLogger("staking.valuation.engine")


def _to_series(values: Iterable[float]) -> pd.Series:
    return pd.Series(list(values), dtype="float64")


def _sorted_ascending(series: Sequence[PricePoint]) -> list[PricePoint]:
    return sorted(series, key=lambda point: point.timestamp)


def _sorted_descending(series: Sequence[PricePoint]) -> list[PricePoint]:
    return sorted(series, key=lambda point: point.timestamp, reverse=True)


class ValuationEngine:
    """
    Pure valuation math over a daily price series.

    APR is the sum of twelve month-over-month deltas of chunked average
    prices, expressed in absolute price units (not a percentage). Stability
    is an inverse coefficient of variation of daily returns. The valuation
    remark compares the latest price to an expected price built from the
    last month's average plus half of the average monthly delta.
    """

    min_apr_points: int = 360
    months: int = 12
    last_month_window: int = 30
    fair_value_tolerance: float = 0.001
    significant_threshold: float = 0.01

    def monthly_averages(self, series: Sequence[PricePoint]) -> list[float]:
        ordered = _sorted_ascending(series)
        days_to_use = min(len(ordered), self.min_apr_points)
        chunk_size = days_to_use // self.months
        if chunk_size <= 0:
            return []
        prices = _to_series(point.price for point in ordered[:days_to_use])
        averages: list[float] = []
        for start in range(0, days_to_use, chunk_size):
            end = min(start + chunk_size, days_to_use)
            chunk = prices.iloc[start:end]
            if chunk.empty:
                continue
            averages.append(float(chunk.mean()))
        return averages

    def calculate_apr(self, series: Sequence[PricePoint], symbol: str) -> float:
        if len(series) < self.min_apr_points:
            raise InsufficientDataError(
                f"insufficient price data for APR calculation of {symbol}: "
                f"{len(series)} points, need {self.min_apr_points}"
            )

        averages = self.monthly_averages(series)
        for month, average in enumerate(averages, start=1):
            logger.debug("Token %s: month %d average = %.6f", symbol, month, average)
        if len(averages) < 2:
            raise InsufficientMonthlyDataError(f"insufficient monthly data for APR calculation of {symbol}")

        returns = [0.0]
        returns.extend(current - previous for previous, current in zip(averages, averages[1:]))
        if len(returns) != self.months:
            raise UnexpectedReturnCountError(
                f"expected {self.months} monthly returns for {symbol}, got {len(returns)}"
            )

        apr = float(sum(returns))
        logger.debug(
            "Token %s: %d monthly averages, %d monthly returns, total price change=%.6f",
            symbol,
            len(averages),
            len(returns),
            apr,
        )
        return apr

    def daily_returns(self, series: Sequence[PricePoint]) -> list[float]:
        ordered = _sorted_ascending(series)
        returns: list[float] = []
        for previous, current in zip(ordered, ordered[1:]):
            if previous.price > 0:
                returns.append(current.price / previous.price - 1)
        return returns

    def calculate_stability(self, daily_returns: Sequence[float]) -> float:
        if len(daily_returns) < 2:
            return 1.0
        values = np.asarray(daily_returns, dtype="float64")
        mean = float(values.mean())
        std_dev = float(values.std(ddof=0))
        if mean == 0:
            return 0.0
        return 1.0 / (1.0 + std_dev / abs(mean))

    def classify_valuation(self, current_price: float, expected_price: float) -> ValuationRemark:
        if expected_price == 0:
            return ValuationRemark.UNKNOWN
        deviation = (current_price - expected_price) / expected_price
        if deviation <= -self.significant_threshold:
            return ValuationRemark.VERY_UNDERVALUED
        if deviation < -self.fair_value_tolerance:
            return ValuationRemark.UNDERVALUED
        if deviation <= self.fair_value_tolerance:
            return ValuationRemark.FAIR_VALUE
        if deviation < self.significant_threshold:
            return ValuationRemark.OVERVALUED
        return ValuationRemark.VERY_OVERVALUED

    def expected_price(self, apr: float, last_month_average: float) -> float:
        average_monthly_return = apr / self.months
        return average_monthly_return / 2.0 + last_month_average

    def current_price(self, series: Sequence[PricePoint]) -> float:
        if not series:
            return 0.0
        # max() keeps the first-seen sample when timestamps tie
        return max(series, key=lambda point: point.timestamp).price

    def last_month_average(self, series: Sequence[PricePoint]) -> float:
        if len(series) < self.last_month_window:
            return self.current_price(series)
        recent = _sorted_descending(series)[: self.last_month_window]
        return float(_to_series(point.price for point in recent).mean())

    def compute_valuation(
        self,
        symbol: str,
        series: Sequence[PricePoint],
        tvl: float,
        *,
        now: datetime | None = None,
    ) -> ValuationResult:
        apr = self.calculate_apr(series, symbol)
        stability = self.calculate_stability(self.daily_returns(series))
        current_price = self.current_price(series)
        expected = self.expected_price(apr, self.last_month_average(series))
        remarks = self.classify_valuation(current_price, expected)
        return ValuationResult(
            symbol=symbol,
            price=current_price,
            apr=apr,
            stability=stability,
            tvl=tvl,
            remarks=remarks,
            computed_at=now or utcnow(),
        )


__all__ = ["ValuationEngine"]
