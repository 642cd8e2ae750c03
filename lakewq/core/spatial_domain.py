# lakewq/core/spatial_domain.py

"""Lake boundary geometry: loading, area, buffering, bounding box, reprojection."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import shapely
from pyproj import CRS, Transformer
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform, unary_union

from lakewq.config.lake_config import BOUNDARY_NAME_FIELD
from lakewq.core.errors import BoundaryNotFound

logger = logging.getLogger(__name__)

METRES_PER_DEGREE = 111_320.0


@dataclass(frozen=True)
class AreaMeasurement:
    square_metres: float
    tolerance_m: float

    @property
    def km2(self) -> float:
        return self.square_metres / 1e6


class BaseBoundarySource(ABC):
    """Collaborator returning polygon features for an asset id or path."""

    crs: str = "EPSG:4326"
    name_field: str = BOUNDARY_NAME_FIELD

    @abstractmethod
    def features(self, asset_id: str, name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return GeoJSON-like features, optionally filtered by ``name_field == name``."""


class GeoJSONBoundarySource(BaseBoundarySource):
    """Reads boundary polygons from a GeoJSON file."""

    def __init__(self, name_field: str = BOUNDARY_NAME_FIELD, crs: str = "EPSG:4326"):
        self.name_field = name_field
        self.crs = crs

    def features(self, asset_id: str, name: Optional[str] = None) -> List[Dict[str, Any]]:
        path = Path(asset_id)
        if not path.exists():
            raise BoundaryNotFound(f"Boundary file not found: {asset_id}")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if data.get("type") == "FeatureCollection":
            feats = data.get("features", [])
        elif data.get("type") == "Feature":
            feats = [data]
        else:
            feats = [{"type": "Feature", "geometry": data, "properties": {}}]

        if name is not None:
            feats = [
                f for f in feats
                if (f.get("properties") or {}).get(self.name_field) == name
            ]
        return feats


class SpatialDomain:
    """Immutable lake boundary with derived buffer, bounding box and area."""

    def __init__(self, geometry: BaseGeometry, crs: str = "EPSG:4326", name: Optional[str] = None):
        if geometry.is_empty:
            raise BoundaryNotFound("Boundary geometry is empty")
        self._geometry = geometry
        self.crs = crs
        self.name = name
        self._crs = CRS.from_user_input(crs)

    def __repr__(self) -> str:
        return f"SpatialDomain(name={self.name!r}, crs={self.crs!r}, type={self._geometry.geom_type})"

    @classmethod
    def load(cls, source: BaseBoundarySource, asset_id: str, name: Optional[str] = None) -> "SpatialDomain":
        feats = source.features(asset_id, name)
        if not feats:
            raise BoundaryNotFound(
                f"No boundary features in {asset_id!r}"
                + (f" with {source.name_field}={name!r}" if name else "")
            )
        geometry = unary_union([shape(f["geometry"]) for f in feats])
        logger.info("Loaded boundary %s (%d feature(s))", asset_id, len(feats))
        return cls(geometry, crs=source.crs, name=name or asset_id)

    @property
    def geometry(self) -> BaseGeometry:
        return self._geometry

    @property
    def is_geographic(self) -> bool:
        return self._crs.is_geographic

    def area(self, tolerance_m: float = 100) -> AreaMeasurement:
        """Area in m²; geographic boundaries are densified to ``tolerance_m`` first."""
        return AreaMeasurement(self._measure(self._geometry, tolerance_m), tolerance_m)

    def bounding_box(self) -> BaseGeometry:
        return box(*self._geometry.bounds)

    def bounding_box_area(self, tolerance_m: float = 100) -> AreaMeasurement:
        return AreaMeasurement(self._measure(self.bounding_box(), tolerance_m), tolerance_m)

    def buffer(self, distance_m: float) -> BaseGeometry:
        if not self.is_geographic:
            return self._geometry.buffer(distance_m)
        local = self._local_crs("aeqd")
        forward = Transformer.from_crs(self._crs, local, always_xy=True)
        back = Transformer.from_crs(local, self._crs, always_xy=True)
        buffered = transform(forward.transform, self._geometry).buffer(distance_m)
        return transform(back.transform, buffered)

    def project(self, crs: str) -> "SpatialDomain":
        target = CRS.from_user_input(crs)
        if target == self._crs:
            return self
        transformer = Transformer.from_crs(self._crs, target, always_xy=True)
        return SpatialDomain(transform(transformer.transform, self._geometry), crs=crs, name=self.name)

    def _measure(self, geometry: BaseGeometry, tolerance_m: float) -> float:
        if tolerance_m <= 0:
            raise ValueError("tolerance_m must be positive")
        if not self.is_geographic:
            return float(geometry.area)
        dense = shapely.segmentize(geometry, max_segment_length=tolerance_m / METRES_PER_DEGREE)
        transformer = Transformer.from_crs(self._crs, self._local_crs("laea"), always_xy=True)
        return float(transform(transformer.transform, dense).area)

    def _local_crs(self, proj: str) -> CRS:
        centroid = self._geometry.centroid
        return CRS.from_proj4(
            f"+proj={proj} +lat_0={centroid.y} +lon_0={centroid.x} +datum=WGS84 +units=m +no_defs"
        )
