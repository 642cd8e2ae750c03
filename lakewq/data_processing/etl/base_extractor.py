from abc import ABC, abstractmethod
from datetime import datetime

from shapely.geometry.base import BaseGeometry

from lakewq.core.raster import RasterSequence


class BaseRasterSource(ABC):
    @abstractmethod
    def extract(
        self, dataset_id: str, start: datetime, end: datetime, bounds: BaseGeometry
    ) -> RasterSequence:
        """
        Rasters of ``dataset_id`` with ``start <= time < end`` intersecting ``bounds``,
        ordered by acquisition time. Band values are raw (unscaled) reflectance.
        """
