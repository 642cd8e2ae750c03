# lakewq/core/zonal_reducer.py

"""Zonal statistics of a raster band over a vector geometry."""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

from lakewq.core.errors import DivisionByZero, PixelBudgetExceeded
from lakewq.core.raster import Raster

logger = logging.getLogger(__name__)


class Statistic(str, Enum):
    MEAN = "mean"
    STD = "std"
    CV = "cv"


@dataclass(frozen=True)
class ReductionPlan:
    requested_scale_m: float
    scale_m: float
    factor: int
    implied_pixels: float
    coarsened: bool


class ZonalReducer:
    """Reduces a band to mean / standard deviation / coefficient of variation.

    The pixel count implied by ``geometry.area / scale_m**2`` is checked against
    the budget before any sampling. Over budget, best-effort mode coarsens the
    scale until it fits; otherwise the call fails immediately.
    Standard deviation is the population form (ddof=0).
    """

    def plan(
        self,
        raster: Raster,
        geometry: BaseGeometry,
        scale_m: float,
        pixel_budget: float,
        best_effort: bool,
    ) -> ReductionPlan:
        if scale_m <= 0:
            raise ValueError("scale_m must be positive")
        implied = geometry.area / (scale_m * scale_m)
        effective = scale_m
        coarsened = False
        if implied > pixel_budget:
            if not best_effort:
                raise PixelBudgetExceeded(implied, pixel_budget, scale_m)
            effective = scale_m * math.sqrt(implied / pixel_budget)
            coarsened = True
            logger.debug(
                "Best effort: coarsening reduction scale from %.1f m to %.1f m",
                scale_m,
                effective,
            )

        ratio = effective / raster.grid.pixel_size
        factor = math.ceil(ratio) if coarsened else round(ratio)
        return ReductionPlan(
            requested_scale_m=scale_m,
            scale_m=effective,
            factor=max(1, int(factor)),
            implied_pixels=implied,
            coarsened=coarsened,
        )

    def sample(
        self,
        raster: Raster,
        geometry: BaseGeometry,
        plan: ReductionPlan,
        band: Optional[str] = None,
    ) -> np.ndarray:
        """Valid values inside ``geometry`` at the planned resolution."""
        single = raster.select(band) if band is not None else raster
        name = single.band_names[0] if len(single.band_names) == 1 else None
        if name is None:
            raise ValueError(f"raster has bands {raster.band_names}; choose one with band=")
        xs, ys = single.grid.pixel_centers()
        inside = single.update_mask(shapely.contains_xy(geometry, xs, ys))
        values = inside.coarsen(plan.factor).band(name)
        return values[~np.isnan(values)]

    def reduce(
        self,
        raster: Raster,
        geometry: BaseGeometry,
        statistic: Union[Statistic, str],
        scale_m: float,
        pixel_budget: float = 1e9,
        best_effort: bool = False,
        band: Optional[str] = None,
    ) -> Optional[float]:
        """Scalar statistic, or None when no valid sample lies inside ``geometry``."""
        statistic = Statistic(statistic)
        plan = self.plan(raster, geometry, scale_m, pixel_budget, best_effort)
        values = self.sample(raster, geometry, plan, band)
        if values.size == 0:
            return None
        return _statistic(values, statistic)

    def spatial_stats(
        self,
        raster: Raster,
        geometry: BaseGeometry,
        scale_m: float,
        pixel_budget: float = 1e9,
        best_effort: bool = False,
        band: Optional[str] = None,
    ) -> Optional[Dict[str, Optional[float]]]:
        """Mean, std and CV from one sampling pass; CV is None for a zero mean."""
        plan = self.plan(raster, geometry, scale_m, pixel_budget, best_effort)
        values = self.sample(raster, geometry, plan, band)
        if values.size == 0:
            return None
        try:
            cv: Optional[float] = _statistic(values, Statistic.CV)
        except DivisionByZero as exc:
            logger.debug("CV unavailable: %s", exc)
            cv = None
        return {
            "mean": _statistic(values, Statistic.MEAN),
            "std": _statistic(values, Statistic.STD),
            "cv": cv,
            "count": int(values.size),
            "scale_m": plan.scale_m,
        }


def _statistic(values: np.ndarray, statistic: Statistic) -> float:
    if statistic is Statistic.MEAN:
        return float(np.mean(values))
    if statistic is Statistic.STD:
        return float(np.std(values))
    mean = float(np.mean(values))
    if mean == 0:
        raise DivisionByZero("Coefficient of variation is undefined for a zero mean")
    return float(np.std(values)) / mean * 100
