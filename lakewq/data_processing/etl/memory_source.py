# lakewq/data_processing/etl/memory_source.py

"""Raster source backed by rasters held in memory or stored as ``.npz`` files."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

from shapely.geometry.base import BaseGeometry

from lakewq.core.raster import Raster, RasterSequence, load_npz
from lakewq.data_processing.etl.base_extractor import BaseRasterSource

logger = logging.getLogger(__name__)


class InMemoryRasterSource(BaseRasterSource):
    """Serves pre-loaded raster collections keyed by dataset id."""

    def __init__(self, collections: Mapping[str, Iterable[Raster]]):
        self._collections: Dict[str, RasterSequence] = {
            dataset_id: RasterSequence(rasters).sorted_by_time()
            for dataset_id, rasters in collections.items()
        }

    @property
    def dataset_ids(self) -> List[str]:
        return sorted(self._collections)

    def extract(
        self, dataset_id: str, start: datetime, end: datetime, bounds: BaseGeometry
    ) -> RasterSequence:
        collection = self._collections.get(dataset_id)
        if collection is None:
            logger.warning("Dataset %s not loaded; returning empty sequence", dataset_id)
            return RasterSequence()
        return collection.filter_date(start, end).filter_bounds(bounds)

    @classmethod
    def from_directory(cls, root) -> "InMemoryRasterSource":
        """Load ``root/<dataset id path>/*.npz``; e.g. ``root/MODIS/006/MOD09Q1/a.npz``."""
        root = Path(root)
        if not root.is_dir():
            raise FileNotFoundError(f"Raster directory not found: {root}")
        collections: Dict[str, List[Raster]] = {}
        for path in sorted(root.rglob("*.npz")):
            dataset_id = path.parent.relative_to(root).as_posix()
            collections.setdefault(dataset_id, []).append(load_npz(path))
        logger.info(
            "Loaded %d raster(s) across %d dataset(s) from %s",
            sum(len(v) for v in collections.values()),
            len(collections),
            root,
        )
        return cls(collections)
