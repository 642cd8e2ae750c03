# lakewq/data_processing/etl/modis_extractor.py

"""MOD09Q1 rasters and lake boundaries from Google Earth Engine."""

import logging
import math
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import ee
import numpy as np
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry
from tqdm import tqdm

from lakewq.config.lake_config import ANALYSIS_CRS, BAND_MAP, BOUNDARY_NAME_FIELD, MODIS_FILL_VALUE
from lakewq.core.errors import SourceUnavailable
from lakewq.core.raster import GridSpec, Raster, RasterSequence
from lakewq.core.spatial_domain import BaseBoundarySource
from lakewq.data_processing.etl.base_extractor import BaseRasterSource

logger = logging.getLogger(__name__)

RETRYABLE_MESSAGES = ("Too many concurrent", "Quota exceeded", "Computation timed out")


def grid_for_bounds(bounds: BaseGeometry, pixel_size: float, crs: str = ANALYSIS_CRS) -> GridSpec:
    """Pixel-aligned grid covering ``bounds`` (coordinates in ``crs``)."""
    minx, miny, maxx, maxy = bounds.bounds
    x0 = math.floor(minx / pixel_size) * pixel_size
    y0 = math.ceil(maxy / pixel_size) * pixel_size
    width = max(1, math.ceil((maxx - x0) / pixel_size))
    height = max(1, math.ceil((y0 - miny) / pixel_size))
    return GridSpec(x0, y0, pixel_size, width, height, crs)


def pixel_request(expression, grid: GridSpec) -> Dict[str, Any]:
    """``ee.data.computePixels`` request body for ``grid``."""
    return {
        "expression": expression,
        "fileFormat": "NUMPY_NDARRAY",
        "grid": {
            "dimensions": {"width": grid.width, "height": grid.height},
            "affineTransform": {
                "scaleX": grid.pixel_size,
                "shearX": 0,
                "translateX": grid.x_origin,
                "shearY": 0,
                "scaleY": -grid.pixel_size,
                "translateY": grid.y_origin,
            },
            "crsCode": grid.crs,
        },
    }


def with_retry(operation: Callable[[], Any], operation_name: str = "GEE operation", max_retries: int = 3):
    """Run an Earth Engine call, backing off on quota / concurrency errors."""
    for attempt in range(max_retries):
        try:
            return operation()
        except ee.EEException as exc:
            retryable = any(msg in str(exc) for msg in RETRYABLE_MESSAGES)
            if not retryable or attempt == max_retries - 1:
                raise SourceUnavailable(f"{operation_name} failed: {exc}") from exc
            wait_time = 2 ** attempt
            logger.warning("%s: rate limit hit, retrying in %ds", operation_name, wait_time)
            time.sleep(wait_time)
    raise SourceUnavailable(f"{operation_name} failed after {max_retries} attempts")


class _EarthEngineClient:
    def __init__(self, project: Optional[str] = None):
        self.project = project or os.getenv("LAKEWQ_EE_PROJECT") or os.getenv("EE_PROJECT")
        self._initialized = False

    def _init_ee(self):
        if self._initialized:
            return
        try:
            if self.project:
                ee.Initialize(project=self.project)
            else:
                ee.Initialize()
        except ee.EEException as exc:
            raise SourceUnavailable(
                f"Earth Engine not initialised ({exc}); run `earthengine authenticate` "
                "or set LAKEWQ_EE_PROJECT"
            ) from exc
        self._initialized = True
        logger.info("Earth Engine initialized successfully")


class EarthEngineRasterSource(_EarthEngineClient, BaseRasterSource):
    """Fetches raw MOD09Q1 images as numpy rasters on a fixed analysis grid."""

    def __init__(
        self,
        project: Optional[str] = None,
        bands: Sequence[str] = tuple(BAND_MAP),
        pixel_size_m: float = 250.0,
        crs: str = ANALYSIS_CRS,
        fill_value: float = MODIS_FILL_VALUE,
        max_retries: int = 3,
        progress: bool = True,
    ):
        super().__init__(project)
        self.bands = list(bands)
        self.pixel_size_m = pixel_size_m
        self.crs = crs
        self.fill_value = fill_value
        self.max_retries = max_retries
        self.progress = progress

    def extract(
        self, dataset_id: str, start: datetime, end: datetime, bounds: BaseGeometry
    ) -> RasterSequence:
        self._init_ee()
        region = ee.Geometry(mapping(bounds), self.crs, False)
        collection = (
            ee.ImageCollection(dataset_id)
            .filterDate(start.strftime("%Y-%m-%d"), end.strftime("%Y-%m-%d"))
            .filterBounds(region)
            .sort("system:time_start")
        )
        listing = with_retry(
            lambda: ee.Dictionary({
                "index": collection.aggregate_array("system:index"),
                "time": collection.aggregate_array("system:time_start"),
            }).getInfo(),
            f"list {dataset_id}",
            self.max_retries,
        )
        grid = grid_for_bounds(bounds, self.pixel_size_m, self.crs)
        rasters = []
        items = list(zip(listing["index"], listing["time"]))
        for index, millis in tqdm(items, desc=dataset_id, disable=not self.progress):
            image = ee.Image(f"{dataset_id}/{index}").select(self.bands).unmask(self.fill_value)
            pixels = with_retry(
                lambda image=image: ee.data.computePixels(pixel_request(image, grid)),
                f"fetch {dataset_id}/{index}",
                self.max_retries,
            )
            rasters.append(Raster(
                bands={b: np.asarray(pixels[b], dtype=np.float64) for b in self.bands},
                grid=grid,
                timestamp=datetime.fromtimestamp(millis / 1000, tz=timezone.utc).replace(tzinfo=None),
                properties={"system:index": index, "dataset_id": dataset_id},
            ))
        logger.info(
            "Fetched %d image(s) from %s", len(rasters), dataset_id,
            extra={"dataset_id": dataset_id, "image_count": len(rasters)},
        )
        return RasterSequence(rasters)


class EarthEngineBoundarySource(_EarthEngineClient, BaseBoundarySource):
    """Boundary polygons from an Earth Engine table asset."""

    def __init__(self, project: Optional[str] = None, name_field: str = BOUNDARY_NAME_FIELD, max_retries: int = 3):
        super().__init__(project)
        self.name_field = name_field
        self.crs = "EPSG:4326"
        self.max_retries = max_retries

    def features(self, asset_id: str, name: Optional[str] = None) -> List[Dict[str, Any]]:
        self._init_ee()
        collection = ee.FeatureCollection(asset_id)
        if name is not None:
            collection = collection.filter(ee.Filter.eq(self.name_field, name))
        info = with_retry(collection.getInfo, f"load boundary {asset_id}", self.max_retries)
        return info.get("features", [])
