# tests/test_trend_estimator.py

"""Tests for least-squares trends and seasonal change."""

import random

import pytest

from lakewq.core.errors import DivisionByZero, InsufficientData
from lakewq.core.series_builder import STATUS_NO_DATA, STATUS_OK, PeriodRecord
from lakewq.core.trend_estimator import TrendEstimator

YEARS = range(2008, 2019)


def _record(period, x, value):
    if value is None:
        return PeriodRecord(period, "season", x, STATUS_NO_DATA)
    return PeriodRecord(period, "season", x, STATUS_OK, metrics={"secchi_depth": value})


class TestFit:
    def test_perfect_line(self):
        result = TrendEstimator().fit([(x, 3 * x + 2) for x in YEARS])
        assert result.slope == pytest.approx(3.0)
        assert result.intercept == pytest.approx(2.0, abs=1e-6)
        assert result.decade_trend == pytest.approx(30.0)
        assert result.r_squared == pytest.approx(1.0)
        assert result.n == 11
        assert result.direction == "Increasing"

    def test_order_independent(self):
        points = [(x, 0.5 * x - 3 + (x % 3) * 0.1) for x in YEARS]
        shuffled = points[:]
        random.Random(7).shuffle(shuffled)
        a = TrendEstimator().fit(points)
        b = TrendEstimator().fit(shuffled)
        assert a.slope == b.slope
        assert a.intercept == b.intercept

    def test_missing_values_excluded_not_zero(self):
        points = [(x, 3 * x + 2) for x in YEARS]
        points[4] = (points[4][0], None)
        points[7] = (points[7][0], float("nan"))
        result = TrendEstimator().fit(points)
        assert result.slope == pytest.approx(3.0)
        assert result.n == 9

    def test_needs_two_distinct_x(self):
        with pytest.raises(InsufficientData):
            TrendEstimator().fit([(2010, 1.0)])
        with pytest.raises(InsufficientData):
            TrendEstimator().fit([(2010, 1.0), (2010, 2.0), (2011, None)])

    def test_two_points(self):
        result = TrendEstimator().fit([(2010, 1.0), (2012, 2.0)])
        assert result.slope == pytest.approx(0.5)
        assert result.decade_trend == pytest.approx(5.0)
        assert result.kendall_tau is None

    def test_decreasing_with_kendall(self):
        result = TrendEstimator().fit([(x, 100 - 2 * x + (0.3 if x % 2 else -0.3)) for x in YEARS])
        assert result.direction == "Decreasing"
        assert result.kendall_tau < -0.8
        assert result.p_value < 0.05

    def test_noisy_flat_series_not_significant(self):
        values = [1.0, 1.4, 0.8, 1.3, 0.9, 1.2, 1.0, 0.7, 1.3, 1.1, 0.9]
        result = TrendEstimator().fit(list(zip(YEARS, values)))
        assert result.direction == "No significant trend"

    def test_fit_records_skips_gaps(self):
        records = [_record(str(y), float(y), None if y == 2012 else 0.1 * y) for y in YEARS]
        result = TrendEstimator().fit_records(records, "secchi_depth")
        assert result.slope == pytest.approx(0.1)
        assert result.metric == "secchi_depth"

    def test_fit_many_maps_insufficient_to_none(self):
        records = [_record(str(y), float(y), 1.0 * y) for y in YEARS]
        results = TrendEstimator().fit_many(records, ["secchi_depth", "turbidity"])
        assert results["secchi_depth"].slope == pytest.approx(1.0)
        assert results["turbidity"] is None


class TestSeasonalChange:
    def test_first_to_last_populated(self):
        records = [
            _record("aug2016", 2016.58, 0.2336),
            _record("dec2016", 2016.92, None),
            _record("mar2017", 2017.17, 0.8885),
        ]
        change = TrendEstimator().seasonal_change(records, "secchi_depth")
        assert change.first_period == "aug2016"
        assert change.last_period == "mar2017"
        assert change.change == pytest.approx(0.6549)
        assert change.percent_change == pytest.approx(280.35, abs=0.01)

    def test_zero_first_value(self):
        records = [_record("a", 1, 0.0), _record("b", 2, 1.0)]
        with pytest.raises(DivisionByZero):
            TrendEstimator().seasonal_change(records, "secchi_depth")

    def test_needs_two_populated(self):
        records = [_record("a", 1, 0.5), _record("b", 2, None)]
        with pytest.raises(InsufficientData):
            TrendEstimator().seasonal_change(records, "secchi_depth")
