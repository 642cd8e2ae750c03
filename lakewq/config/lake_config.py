# lakewq/config/lake_config.py

"""Static configuration for the Lake Tana MODIS water-quality analysis."""

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from lakewq.core.errors import ConfigError, UnknownSeasonWarning

logger = logging.getLogger(__name__)

# === Study area ===

LAKE_NAME = "Lake Tana"
BOUNDARY_ASSET = "projects/water-hyacinth/assets/Lake_Tana_2017"
BOUNDARY_NAME_FIELD = "Name"
ANALYSIS_CRS = "EPSG:32637"  # UTM zone 37N

BUFFER_M = 1000
AREA_TOLERANCE_M = 100

# === MODIS surface reflectance (MOD09Q1, 8-day, 250 m) ===

LEGACY_DATASET = "MODIS/MOD09Q1"
CURRENT_DATASET = "MODIS/006/MOD09Q1"
DATASET_MIGRATION_YEAR = 2015

BAND_MAP = {"sur_refl_b01": "red", "sur_refl_b02": "nir"}
REFLECTANCE_SCALE = 0.0001
MODIS_FILL_VALUE = -28672

# === Reduction scales and pixel budgets ===

LAKE_STATS_SCALE_M = 500
COARSE_PIXEL_BUDGET = 1e7
ANNUAL_SCALE_M = 250
FINE_PIXEL_BUDGET = 1e9
EXPORT_SCALE_M = 250

YEAR_START = 2008
YEAR_END = 2018


# === Calibration ===

@dataclass(frozen=True)
class CalibrationCoefficients:
    """Field-calibrated linear model SD = slope * NIR + intercept."""

    slope: float
    intercept: float
    r2: float
    n: int
    season_label: str

    @property
    def formula(self) -> str:
        return f"SD = {self.slope} * NIR + {self.intercept}"


class Season(str, Enum):
    AUG2016 = "aug2016"
    DEC2016 = "dec2016"
    MAR2017 = "mar2017"


SECCHI_CALIBRATION: Dict[Season, CalibrationCoefficients] = {
    Season.AUG2016: CalibrationCoefficients(-1.51, 0.35, 0.67, 100, "Rainy"),
    Season.DEC2016: CalibrationCoefficients(-12.57, 0.85, 0.77, 100, "Dry"),
    Season.MAR2017: CalibrationCoefficients(-3.93, 1.05, 0.73, 100, "Post-rainy"),
}

UNCALIBRATED = CalibrationCoefficients(-5.0, 1.0, 0.0, 0, "General")

SEASON_ALIASES = {
    "rainy": Season.AUG2016,
    "aug": Season.AUG2016,
    "dry": Season.DEC2016,
    "dec": Season.DEC2016,
    "post-rainy": Season.MAR2017,
    "mar": Season.MAR2017,
}


def resolve_season(season: Union[str, Season, None]) -> Optional[Season]:
    if season is None:
        return None
    if isinstance(season, Season):
        return season
    key = str(season).strip().lower()
    try:
        return Season(key)
    except ValueError:
        return SEASON_ALIASES.get(key)


def coefficients_for(season: Union[str, Season, None]) -> CalibrationCoefficients:
    """Secchi coefficients for a season; unknown labels degrade to UNCALIBRATED."""
    resolved = resolve_season(season)
    if resolved is None:
        message = f"No calibration for season {season!r}; using uncalibrated coefficients"
        warnings.warn(message, UnknownSeasonWarning, stacklevel=2)
        logger.warning(message)
        return UNCALIBRATED
    return SECCHI_CALIBRATION[resolved]


# === Seasonal campaigns ===

@dataclass(frozen=True)
class SeasonDefinition:
    year: int
    month: int
    name: str
    label: str

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ConfigError(f"month out of range for season {self.name!r}: {self.month}")


SEASONS: Tuple[SeasonDefinition, ...] = (
    SeasonDefinition(2016, 8, "aug2016", "August 2016 (Rainy season)"),
    SeasonDefinition(2016, 12, "dec2016", "December 2016 (Dry season)"),
    SeasonDefinition(2017, 3, "mar2017", "March 2017 (Post-rainy)"),
)


# === Water clarity classes (Secchi depth, metres) ===

WATER_CLARITY_CLASSES = (
    (float("-inf"), 1, "Very Turbid"),
    (0.3, 2, "Turbid"),
    (0.6, 3, "Moderate"),
    (0.9, 4, "Clear"),
    (1.2, 5, "Very Clear"),
)


# === Runtime settings ===

@dataclass(frozen=True)
class AnalysisSettings:
    buffer_m: float = BUFFER_M
    area_tolerance_m: float = AREA_TOLERANCE_M
    analysis_crs: str = ANALYSIS_CRS
    lake_stats_scale_m: float = LAKE_STATS_SCALE_M
    coarse_pixel_budget: float = COARSE_PIXEL_BUDGET
    coarse_best_effort: bool = True
    annual_scale_m: float = ANNUAL_SCALE_M
    fine_pixel_budget: float = FINE_PIXEL_BUDGET
    fine_best_effort: bool = False
    export_scale_m: float = EXPORT_SCALE_M
    year_start: int = YEAR_START
    year_end: int = YEAR_END
    max_workers: int = 1
    # wait allowed per result join, counted from when that join starts
    period_timeout_s: Optional[float] = None
    seasons: Tuple[SeasonDefinition, ...] = field(default=SEASONS)

    @property
    def years(self) -> range:
        return range(self.year_start, self.year_end + 1)


_FLOAT_KEYS = (
    "buffer_m", "area_tolerance_m", "lake_stats_scale_m", "coarse_pixel_budget",
    "annual_scale_m", "fine_pixel_budget", "export_scale_m",
)
_INT_KEYS = ("year_start", "year_end", "max_workers")
_BOOL_KEYS = ("coarse_best_effort", "fine_best_effort")


def load_settings(cfg: Optional[Mapping[str, Any]] = None) -> AnalysisSettings:
    """Merge the ``analysis`` and ``seasons`` config sections over the defaults."""
    cfg = cfg or {}
    analysis = cfg.get("analysis") or {}
    values: Dict[str, Any] = {}
    try:
        for key in _FLOAT_KEYS:
            if key in analysis:
                values[key] = float(analysis[key])
        for key in _INT_KEYS:
            if key in analysis:
                values[key] = int(analysis[key])
        for key in _BOOL_KEYS:
            if key in analysis:
                if not isinstance(analysis[key], bool):
                    raise ConfigError(f"analysis.{key} must be a boolean")
                values[key] = analysis[key]
        if "analysis_crs" in analysis:
            values["analysis_crs"] = str(analysis["analysis_crs"])
        if analysis.get("period_timeout_s") is not None:
            values["period_timeout_s"] = float(analysis["period_timeout_s"])
        if cfg.get("seasons"):
            values["seasons"] = tuple(
                SeasonDefinition(int(s["year"]), int(s["month"]), str(s["name"]), str(s.get("label", s["name"])))
                for s in cfg["seasons"]
            )
    except (TypeError, ValueError, KeyError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"Invalid analysis configuration: {exc}") from exc

    settings = AnalysisSettings(**values)
    if settings.year_end < settings.year_start:
        raise ConfigError("analysis.year_end must not precede analysis.year_start")
    if settings.max_workers < 1:
        raise ConfigError("analysis.max_workers must be >= 1")
    return settings
