# lakewq/core/trend_estimator.py

"""Least-squares trends and seasonal change for period series."""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from lakewq.core.errors import DivisionByZero, InsufficientData

logger = logging.getLogger(__name__)

Point = Tuple[float, Optional[float]]


@dataclass(frozen=True)
class TrendResult:
    slope: float
    intercept: float
    decade_trend: float
    n: int
    r_squared: Optional[float] = None
    p_value: Optional[float] = None
    kendall_tau: Optional[float] = None
    kendall_p: Optional[float] = None
    direction: str = "Stable"
    metric: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class SeasonalChange:
    metric: str
    first_period: str
    last_period: str
    first_value: float
    last_value: float
    change: float
    percent_change: float

    def to_dict(self) -> Dict:
        return asdict(self)


def _finite(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


class TrendEstimator:
    """Ordinary least squares of a metric against period index (year)."""

    def __init__(self, significance: float = 0.1):
        self.significance = significance

    def fit(self, series: Iterable[Point], metric: str = "") -> TrendResult:
        """Fit ``y = slope * x + intercept``; missing y values are excluded.

        Points are sorted by x first, so the result does not depend on input order.
        """
        points = sorted(
            (float(x), y) for x, y in ((x, _finite(y)) for x, y in series) if y is not None
        )
        if len({x for x, _ in points}) < 2:
            raise InsufficientData(
                f"trend needs at least 2 distinct periods with values, got {len(points)} point(s)"
            )

        x = np.array([p[0] for p in points])
        y = np.array([p[1] for p in points])
        fit = stats.linregress(x, y)
        r_squared = float(fit.rvalue ** 2) if math.isfinite(fit.rvalue) else None
        p_value = float(fit.pvalue) if math.isfinite(fit.pvalue) else None

        tau = tau_p = None
        if len(points) >= 3 and np.ptp(y) > 0:
            tau, tau_p = stats.kendalltau(x, y)
            tau, tau_p = _finite(tau), _finite(tau_p)

        slope = float(fit.slope)
        result = TrendResult(
            slope=slope,
            intercept=float(fit.intercept),
            decade_trend=slope * 10,
            n=len(points),
            r_squared=r_squared,
            p_value=p_value,
            kendall_tau=tau,
            kendall_p=tau_p,
            direction=self._direction(slope, p_value),
            metric=metric,
        )
        logger.debug("Trend %s: slope=%.4g/yr over %d points", metric or "-", slope, len(points))
        return result

    def fit_records(self, records, metric: str) -> TrendResult:
        """Fit a metric from PeriodRecords (gaps are skipped)."""
        return self.fit([(r.x, r.value(metric)) for r in records], metric=metric)

    def fit_many(self, records, metrics: Sequence[str]) -> Dict[str, Optional[TrendResult]]:
        """Trends per metric; a metric without enough data maps to None."""
        records = list(records)
        results: Dict[str, Optional[TrendResult]] = {}
        for metric in metrics:
            try:
                results[metric] = self.fit_records(records, metric)
            except InsufficientData as exc:
                logger.warning("No trend for %s: %s", metric, exc)
                results[metric] = None
        return results

    def seasonal_change(self, records, metric: str) -> SeasonalChange:
        """Change between the first and last populated records, in input order."""
        populated: List = [r for r in records if _finite(r.value(metric)) is not None]
        if len(populated) < 2:
            raise InsufficientData(f"seasonal change of {metric} needs 2 populated periods")
        first, last = populated[0], populated[-1]
        first_value, last_value = float(first.value(metric)), float(last.value(metric))
        if first_value == 0:
            raise DivisionByZero(f"{metric} is zero in {first.period}; percent change undefined")
        change = last_value - first_value
        return SeasonalChange(
            metric=metric,
            first_period=first.period,
            last_period=last.period,
            first_value=first_value,
            last_value=last_value,
            change=change,
            percent_change=change / first_value * 100,
        )

    def _direction(self, slope: float, p_value: Optional[float]) -> str:
        if p_value is not None and p_value > self.significance:
            return "No significant trend"
        if slope > 0:
            return "Increasing"
        if slope < 0:
            return "Decreasing"
        return "Stable"
