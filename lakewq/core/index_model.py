# lakewq/core/index_model.py

"""Registry of calibrated linear band-math water-quality models."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from lakewq.config.lake_config import Season, coefficients_for
from lakewq.core.raster import Raster

logger = logging.getLogger(__name__)

BandFunc = Callable[[Mapping[str, np.ndarray]], np.ndarray]


def _safe_divide(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """Elementwise ratio; zero denominators yield no-data (NaN)."""
    out = np.full(np.broadcast(numerator, denominator).shape, np.nan)
    np.divide(numerator, denominator, out=out, where=denominator != 0)
    return out


# Band combinations

def red(b):
    return b["red"]


def nir(b):
    return b["nir"]


def nir_red_ratio(b):
    return _safe_divide(b["nir"], b["red"])


def normalized_red_nir(b):
    return _safe_divide(b["red"] - b["nir"], b["red"] + b["nir"])


def red_plus_nir(b):
    return b["red"] + b["nir"]


@dataclass(frozen=True)
class LinearIndexModel:
    """``output = coefficient * combination(bands) + intercept``, optionally clamped."""

    name: str
    output_band: str
    combination: BandFunc
    inputs: Tuple[str, ...]
    coefficient: float = 1.0
    intercept: float = 0.0
    bounds: Optional[Tuple[float, float]] = None
    seasonal: bool = False
    description: str = ""

    def formula(self, coefficient: float, intercept: float) -> str:
        return f"{self.output_band} = {coefficient} * {self.combination.__name__}({', '.join(self.inputs)}) + {intercept}"


DEFAULT_MODELS = (
    LinearIndexModel(
        "turbidity", "Turbidity", red, ("red",), 0.85, 15.6,
        description="Empirical red-band turbidity (NTU)",
    ),
    LinearIndexModel(
        "chlorophyll", "Chlorophyll", nir_red_ratio, ("red", "nir"), 23.4, 1.8,
        description="NIR/red ratio chlorophyll-a (Gitelson et al., 1993)",
    ),
    LinearIndexModel(
        "water_index", "WaterIndex", normalized_red_nir, ("red", "nir"), 1.0, 0.0,
        bounds=(-1.0, 1.0), description="Modified normalized difference water index",
    ),
    LinearIndexModel(
        "suspended_solids", "SuspendedSolids", red_plus_nir, ("red", "nir"), 0.67, 12.3,
        description="Red+NIR suspended solids index",
    ),
    LinearIndexModel(
        "secchi_depth", "Secchi_Depth_m", nir, ("nir",),
        bounds=(0.0, 5.0), seasonal=True,
        description="Season-calibrated NIR Secchi depth (m)",
    ),
)


class IndexModel:
    """Named linear models applied to reflectance composites."""

    def __init__(self, models=DEFAULT_MODELS):
        self._models: Dict[str, LinearIndexModel] = {}
        for model in models:
            self.register(model)

    def register(self, model: LinearIndexModel) -> None:
        self._models[model.name] = model

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._models)

    def get(self, name: str) -> LinearIndexModel:
        try:
            return self._models[name]
        except KeyError:
            raise KeyError(f"Unknown index model {name!r}; known: {self.names}") from None

    def compute(
        self,
        model_name: str,
        raster: Raster,
        season: Union[str, Season, None] = None,
    ) -> Raster:
        """Single-band derived raster tagged with the coefficients used."""
        model = self.get(model_name)
        provenance = {"model": model.name}
        if model.seasonal:
            calibration = coefficients_for(season)
            coefficient, intercept = calibration.slope, calibration.intercept
            provenance.update(
                season=str(season.value if isinstance(season, Season) else season),
                R2=calibration.r2,
                field_samples=calibration.n,
                season_type=calibration.season_label,
            )
        else:
            coefficient, intercept = model.coefficient, model.intercept

        inputs = {name: raster.band(name) for name in model.inputs}
        with np.errstate(invalid="ignore", divide="ignore"):
            values = model.combination(inputs) * coefficient + intercept
        values = np.where(np.isfinite(values), values, np.nan)
        if model.bounds is not None:
            values = np.clip(values, *model.bounds)

        provenance.update(
            coefficient=coefficient,
            intercept=intercept,
            formula=model.formula(coefficient, intercept),
            bounds=list(model.bounds) if model.bounds else None,
        )
        return Raster(
            bands={model.output_band: values},
            grid=raster.grid,
            timestamp=raster.timestamp,
            properties={**raster.properties, **provenance},
        )

    def compute_all(self, raster: Raster, season: Union[str, Season, None] = None) -> Dict[str, Raster]:
        """Every non-seasonal model, plus seasonal ones when ``season`` is given."""
        return {
            name: self.compute(name, raster, season)
            for name, model in self._models.items()
            if not model.seasonal or season is not None
        }
