from __future__ import annotations

from datetime import datetime, timezone

import pytest

from staking_analytics.errors import InsufficientDataError
from staking_analytics.valuation import PricePoint, ValuationEngine, ValuationRemark
from utils.fakes import DAY_MS, START_MS, rising_series


def test_calculate_apr_matches_hand_computed_fixture() -> None:
    engine = ValuationEngine()
    series = list(reversed(rising_series(360)))

    apr = engine.calculate_apr(series, "wstETH")

    # chunk 1 averages 1 + 0.001 * 14.5, chunk 12 averages 1 + 0.001 * 344.5
    assert apr == pytest.approx(1.3445 - 1.0145, abs=1e-9)
    assert apr == pytest.approx(0.33, abs=1e-9)


def test_calculate_apr_rejects_short_series() -> None:
    engine = ValuationEngine()
    full = rising_series(359)
    for count in range(0, 360):
        with pytest.raises(InsufficientDataError):
            engine.calculate_apr(full[:count], "rETH")


def test_calculate_apr_uses_oldest_360_points() -> None:
    engine = ValuationEngine()
    base = rising_series(360)
    extended = base + [PricePoint(timestamp=START_MS + (360 + i) * DAY_MS, price=50.0) for i in range(40)]

    assert engine.calculate_apr(extended, "rETH") == pytest.approx(engine.calculate_apr(base, "rETH"))


def test_monthly_averages_has_twelve_chunks() -> None:
    averages = ValuationEngine().monthly_averages(rising_series(360))

    assert len(averages) == 12
    assert averages[0] == pytest.approx(1.0145)
    assert averages[-1] == pytest.approx(1.3445)


def test_calculate_stability_constant_series_is_zero() -> None:
    engine = ValuationEngine()
    flat = [PricePoint(timestamp=START_MS + i * DAY_MS, price=1.05) for i in range(50)]

    returns = engine.daily_returns(flat)

    assert all(value == 0.0 for value in returns)
    assert engine.calculate_stability(returns) == 0.0


@pytest.mark.parametrize("returns", [[], [0.02]])
def test_calculate_stability_with_too_few_returns(returns: list[float]) -> None:
    assert ValuationEngine().calculate_stability(returns) == 1.0


def test_calculate_stability_inverse_coefficient_of_variation() -> None:
    # mean 0.02, population std 0.01 -> 1 / (1 + 0.5)
    assert ValuationEngine().calculate_stability([0.01, 0.03]) == pytest.approx(2 / 3)


def test_daily_returns_skip_non_positive_previous_price() -> None:
    series = [
        PricePoint(timestamp=3, price=3.0),
        PricePoint(timestamp=1, price=0.0),
        PricePoint(timestamp=0, price=1.0),
        PricePoint(timestamp=2, price=2.0),
    ]

    assert ValuationEngine().daily_returns(series) == pytest.approx([-1.0, 0.5])


@pytest.mark.parametrize(
    ("current", "expected", "remark"),
    [
        (100.0, 100.0, ValuationRemark.FAIR_VALUE),
        (102.0, 100.0, ValuationRemark.VERY_OVERVALUED),
        (99.95, 100.0, ValuationRemark.FAIR_VALUE),
        (0.0, 0.0, ValuationRemark.UNKNOWN),
        (5.0, 0.0, ValuationRemark.UNKNOWN),
        (99.0, 100.0, ValuationRemark.VERY_UNDERVALUED),
        (99.5, 100.0, ValuationRemark.UNDERVALUED),
        (100.5, 100.0, ValuationRemark.OVERVALUED),
        (101.0, 100.0, ValuationRemark.VERY_OVERVALUED),
        (90.0, 100.0, ValuationRemark.VERY_UNDERVALUED),
    ],
)
def test_classify_valuation_bands(current: float, expected: float, remark: ValuationRemark) -> None:
    assert ValuationEngine().classify_valuation(current, expected) is remark


def test_current_price_takes_latest_and_first_seen_on_ties() -> None:
    engine = ValuationEngine()
    series = [
        PricePoint(timestamp=10, price=1.0),
        PricePoint(timestamp=30, price=3.0),
        PricePoint(timestamp=30, price=4.0),
        PricePoint(timestamp=20, price=2.0),
    ]

    assert engine.current_price(series) == 3.0


def test_last_month_average_falls_back_to_current_price() -> None:
    engine = ValuationEngine()
    series = rising_series(10)

    assert engine.last_month_average(series) == pytest.approx(1.009)
    assert engine.last_month_average(rising_series(60)) == pytest.approx(1.0 + 0.001 * 44.5)


def test_compute_valuation_on_rising_series() -> None:
    engine = ValuationEngine()
    now = datetime(2025, 3, 1, tzinfo=timezone.utc)
    series = list(reversed(rising_series(360)))

    result = engine.compute_valuation("wstETH", series, 1234.5, now=now)

    assert result.symbol == "wstETH"
    assert result.price == pytest.approx(1.359)
    assert result.apr == pytest.approx(0.33)
    assert 0.0 < result.stability < 1.0
    assert result.tvl == 1234.5
    # expected = 0.33 / 12 / 2 + 1.3445 = 1.35825, deviation ~ +0.055%
    assert engine.expected_price(result.apr, 1.3445) == pytest.approx(1.35825)
    assert result.remarks is ValuationRemark.FAIR_VALUE
    assert result.computed_at == now


def test_compute_valuation_is_idempotent_and_leaves_input_untouched() -> None:
    engine = ValuationEngine()
    series = list(reversed(rising_series(365)))
    snapshot = list(series)

    first = engine.compute_valuation("rETH", series, 10.0)
    second = engine.compute_valuation("rETH", series, 10.0)

    assert series == snapshot
    assert (first.apr, first.stability, first.remarks, first.price) == (
        second.apr,
        second.stability,
        second.remarks,
        second.price,
    )


def test_compute_valuation_propagates_insufficient_data() -> None:
    with pytest.raises(InsufficientDataError):
        ValuationEngine().compute_valuation("pufETH", rising_series(100), 0.0)


def test_compute_valuation_flags_recent_drop_as_undervalued() -> None:
    engine = ValuationEngine()
    series = [PricePoint(timestamp=START_MS + i * DAY_MS, price=1.0) for i in range(360)]
    series.append(PricePoint(timestamp=START_MS + 360 * DAY_MS, price=0.95))

    result = engine.compute_valuation("METH", series, 0.0)

    assert result.price == 0.95
    assert result.remarks is ValuationRemark.VERY_UNDERVALUED
