# lakewq/core/compositor.py

"""Reflectance scaling, median compositing and clipping."""

import logging
import warnings
from typing import Mapping, Optional

import numpy as np
import shapely
from shapely.geometry.base import BaseGeometry

from lakewq.config.lake_config import BAND_MAP, MODIS_FILL_VALUE, REFLECTANCE_SCALE
from lakewq.core.errors import EmptyRasterSequence
from lakewq.core.raster import Raster, RasterSequence

logger = logging.getLogger(__name__)


class Compositor:
    """Turns raw MOD09Q1 images into one clipped, denoised reflectance composite."""

    def __init__(
        self,
        band_map: Mapping[str, str] = BAND_MAP,
        scale: float = REFLECTANCE_SCALE,
        fill_value: Optional[float] = MODIS_FILL_VALUE,
    ):
        self.band_map = dict(band_map)
        self.scale = scale
        self.fill_value = fill_value

    def preprocess(self, raster: Raster) -> Raster:
        """Scale raw integer bands to reflectance and rename them (e.g. ``nir``).

        Fill values become no-data. Timestamp and properties carry over.
        """
        bands = {}
        for raw_name, name in self.band_map.items():
            values = raster.band(raw_name)
            if self.fill_value is not None:
                values = np.where(values == self.fill_value, np.nan, values)
            bands[name] = values * self.scale
        return Raster(
            bands=bands,
            grid=raster.grid,
            timestamp=raster.timestamp,
            properties=raster.properties,
        )

    def composite(self, sequence: RasterSequence) -> Raster:
        """Per-pixel median across the sequence, ignoring no-data samples."""
        if sequence.is_empty():
            raise EmptyRasterSequence("Cannot composite an empty raster sequence")
        first = sequence[0]
        for raster in sequence:
            if raster.grid != first.grid:
                raise ValueError("All rasters in a composite must share one grid")
            if set(raster.band_names) != set(first.band_names):
                raise ValueError("All rasters in a composite must share one band layout")

        bands = {}
        with warnings.catch_warnings():
            # all-NaN pixels stay no-data
            warnings.simplefilter("ignore", category=RuntimeWarning)
            for name in first.band_names:
                stack = np.stack([r.band(name) for r in sequence])
                bands[name] = np.nanmedian(stack, axis=0)

        times = [r.timestamp for r in sequence if r.timestamp is not None]
        properties = {"image_count": sequence.size()}
        if times:
            properties["time_start"] = min(times).isoformat()
            properties["time_end"] = max(times).isoformat()
        return Raster(bands=bands, grid=first.grid, timestamp=min(times) if times else None, properties=properties)

    def clip(self, raster: Raster, geometry: BaseGeometry) -> Raster:
        """Mask samples whose pixel centre falls outside ``geometry``."""
        xs, ys = raster.grid.pixel_centers()
        return raster.update_mask(shapely.contains_xy(geometry, xs, ys))

    def build(self, sequence: RasterSequence, geometry: BaseGeometry) -> Raster:
        """preprocess + composite + clip."""
        return self.clip(self.composite(sequence.map(self.preprocess)), geometry)
