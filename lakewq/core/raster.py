# lakewq/core/raster.py

"""Immutable numpy-backed rasters and time-stamped raster sequences.

No-data is represented as NaN in float64 band arrays. Every transform returns a
new Raster; band arrays are stored read-only.
"""

import json
import math
import warnings
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

import numpy as np
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

DateLike = Union[date, datetime, str]


def as_datetime(value: DateLike) -> datetime:
    """Normalise a date, datetime or ISO string to a naive datetime."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return datetime.fromisoformat(value).replace(tzinfo=None)
    raise TypeError(f"Unsupported date value: {value!r}")


@dataclass(frozen=True)
class GridSpec:
    """North-up grid of square pixels in a projected CRS (metres)."""

    x_origin: float
    y_origin: float
    pixel_size: float
    width: int
    height: int
    crs: str = "EPSG:32637"

    def __post_init__(self):
        if self.pixel_size <= 0:
            raise ValueError("pixel_size must be positive")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("grid must have at least one pixel")

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return (
            self.x_origin,
            self.y_origin - self.height * self.pixel_size,
            self.x_origin + self.width * self.pixel_size,
            self.y_origin,
        )

    @property
    def pixel_area_m2(self) -> float:
        return self.pixel_size * self.pixel_size

    def footprint(self) -> BaseGeometry:
        return box(*self.bounds)

    def pixel_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        xs = self.x_origin + (np.arange(self.width) + 0.5) * self.pixel_size
        ys = self.y_origin - (np.arange(self.height) + 0.5) * self.pixel_size
        return np.meshgrid(xs, ys)

    def coarsen(self, factor: int) -> "GridSpec":
        return GridSpec(
            x_origin=self.x_origin,
            y_origin=self.y_origin,
            pixel_size=self.pixel_size * factor,
            width=math.ceil(self.width / factor),
            height=math.ceil(self.height / factor),
            crs=self.crs,
        )


def _block_nanmean(values: np.ndarray, factor: int) -> np.ndarray:
    height, width = values.shape
    padded_h = math.ceil(height / factor) * factor
    padded_w = math.ceil(width / factor) * factor
    padded = np.full((padded_h, padded_w), np.nan)
    padded[:height, :width] = values
    blocks = padded.reshape(padded_h // factor, factor, padded_w // factor, factor)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        return np.nanmean(blocks, axis=(1, 3))


@dataclass(frozen=True, eq=False)
class Raster:
    """A named set of co-registered bands over one grid."""

    bands: Mapping[str, np.ndarray]
    grid: GridSpec
    timestamp: Optional[datetime] = None
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.bands:
            raise ValueError("a raster needs at least one band")
        frozen = {}
        for name, values in self.bands.items():
            arr = np.array(values, dtype=np.float64, copy=True)
            if arr.shape != self.grid.shape:
                raise ValueError(
                    f"band {name!r} has shape {arr.shape}, grid expects {self.grid.shape}"
                )
            arr.setflags(write=False)
            frozen[name] = arr
        object.__setattr__(self, "bands", MappingProxyType(frozen))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
        if self.timestamp is not None:
            object.__setattr__(self, "timestamp", as_datetime(self.timestamp))

    def __repr__(self) -> str:
        return (
            f"Raster(bands={list(self.bands)}, shape={self.grid.shape}, "
            f"pixel_size={self.grid.pixel_size:g}, timestamp={self.timestamp})"
        )

    @property
    def band_names(self) -> Tuple[str, ...]:
        return tuple(self.bands)

    def band(self, name: Optional[str] = None) -> np.ndarray:
        if name is None:
            if len(self.bands) != 1:
                raise ValueError(f"raster has bands {self.band_names}; name one")
            return next(iter(self.bands.values()))
        try:
            return self.bands[name]
        except KeyError:
            raise KeyError(f"band {name!r} not in {self.band_names}") from None

    def _replace(self, bands: Optional[Dict[str, np.ndarray]] = None, grid=None, **props) -> "Raster":
        properties = dict(self.properties)
        properties.update(props)
        return Raster(
            bands=bands if bands is not None else dict(self.bands),
            grid=grid or self.grid,
            timestamp=self.timestamp,
            properties=properties,
        )

    def select(self, *names: str) -> "Raster":
        return self._replace({n: self.band(n) for n in names})

    def rename(self, mapping: Mapping[str, str]) -> "Raster":
        return self._replace({mapping.get(n, n): v for n, v in self.bands.items()})

    def add_bands(self, other: "Raster", overwrite: bool = False) -> "Raster":
        if other.grid != self.grid:
            raise ValueError("cannot add bands from a raster on a different grid")
        bands = dict(self.bands)
        for name, values in other.bands.items():
            if name in bands and not overwrite:
                raise ValueError(f"band {name!r} already present")
            bands[name] = values
        return self._replace(bands)

    def with_properties(self, **props) -> "Raster":
        return self._replace(**props)

    def map_bands(self, func: Callable[[np.ndarray], np.ndarray]) -> "Raster":
        return self._replace({n: func(v) for n, v in self.bands.items()})

    def update_mask(self, mask: np.ndarray) -> "Raster":
        """Set samples where ``mask`` is False to no-data."""
        mask = np.asarray(mask, dtype=bool)
        return self._replace({n: np.where(mask, v, np.nan) for n, v in self.bands.items()})

    def valid_count(self, name: Optional[str] = None) -> int:
        return int(np.count_nonzero(~np.isnan(self.band(name))))

    def coarsen(self, factor: int) -> "Raster":
        """Block-average to a grid ``factor`` times coarser, ignoring no-data."""
        if factor < 1:
            raise ValueError("factor must be >= 1")
        if factor == 1:
            return self
        bands = {n: _block_nanmean(v, factor) for n, v in self.bands.items()}
        return self._replace(bands, grid=self.grid.coarsen(factor))


class RasterSequence:
    """Ordered collection of time-stamped rasters sharing a band layout."""

    def __init__(self, rasters: Iterable[Raster] = ()):
        self._rasters = tuple(rasters)

    def __len__(self) -> int:
        return len(self._rasters)

    def __iter__(self) -> Iterator[Raster]:
        return iter(self._rasters)

    def __getitem__(self, index: int) -> Raster:
        return self._rasters[index]

    def __repr__(self) -> str:
        return f"RasterSequence(size={len(self)})"

    def size(self) -> int:
        return len(self._rasters)

    def is_empty(self) -> bool:
        return not self._rasters

    def filter_date(self, start: DateLike, end: DateLike) -> "RasterSequence":
        """Keep rasters with ``start <= timestamp < end``."""
        start_dt, end_dt = as_datetime(start), as_datetime(end)
        return RasterSequence(
            r for r in self._rasters
            if r.timestamp is not None and start_dt <= r.timestamp < end_dt
        )

    def filter_bounds(self, geometry: BaseGeometry) -> "RasterSequence":
        return RasterSequence(r for r in self._rasters if r.grid.footprint().intersects(geometry))

    def map(self, func: Callable[[Raster], Raster]) -> "RasterSequence":
        return RasterSequence(func(r) for r in self._rasters)

    def sorted_by_time(self) -> "RasterSequence":
        return RasterSequence(
            sorted(self._rasters, key=lambda r: r.timestamp or datetime.min)
        )


def save_npz(raster: Raster, path) -> None:
    """Write a raster with its grid, timestamp and properties to ``.npz``."""
    payload = {f"band:{name}": values for name, values in raster.bands.items()}
    payload["grid"] = np.array(json.dumps(asdict(raster.grid)))
    payload["timestamp"] = np.array(raster.timestamp.isoformat() if raster.timestamp else "")
    payload["properties"] = np.array(json.dumps(dict(raster.properties), default=str))
    np.savez_compressed(path, **payload)


def load_npz(path) -> Raster:
    with np.load(path, allow_pickle=False) as data:
        bands = {key[len("band:"):]: data[key] for key in data.files if key.startswith("band:")}
        grid = GridSpec(**json.loads(str(data["grid"])))
        stamp = str(data["timestamp"]) if "timestamp" in data.files else ""
        props = json.loads(str(data["properties"])) if "properties" in data.files else {}
    return Raster(bands=bands, grid=grid, timestamp=as_datetime(stamp) if stamp else None, properties=props)
