# lakewq/core/dataset_selector.py

"""Year-to-dataset mapping and date/bounds filtered raster selection."""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Tuple

from shapely.geometry.base import BaseGeometry

from lakewq.config.lake_config import CURRENT_DATASET, DATASET_MIGRATION_YEAR, LEGACY_DATASET
from lakewq.core.raster import DateLike, RasterSequence, as_datetime
from lakewq.data_processing.etl.base_extractor import BaseRasterSource

logger = logging.getLogger(__name__)


def month_window(year: int, month: int) -> Tuple[date, date]:
    """First and last day (inclusive) of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def year_window(year: int) -> Tuple[date, date]:
    """1 January to 31 December (inclusive)."""
    return date(year, 1, 1), date(year, 12, 31)


class DatasetSelector:
    """Picks the processing collection for a year and filters its rasters."""

    def __init__(
        self,
        source: BaseRasterSource,
        legacy_dataset: str = LEGACY_DATASET,
        current_dataset: str = CURRENT_DATASET,
        migration_year: int = DATASET_MIGRATION_YEAR,
    ):
        self.source = source
        self.legacy_dataset = legacy_dataset
        self.current_dataset = current_dataset
        self.migration_year = migration_year

    def dataset_id_for(self, year: int) -> str:
        return self.current_dataset if year >= self.migration_year else self.legacy_dataset

    def select_sequence(
        self,
        dataset_id: str,
        start_date: DateLike,
        end_date: DateLike,
        spatial_bound: BaseGeometry,
    ) -> RasterSequence:
        """Rasters acquired from ``start_date`` through ``end_date``, both inclusive.

        ``end_date`` is a calendar day (typically the last day of a month); every
        acquisition on that day is included. An empty sequence is a valid result.
        """
        start = as_datetime(start_date)
        end = as_datetime(end_date)
        end_exclusive = datetime(end.year, end.month, end.day) + timedelta(days=1)
        if end_exclusive <= start:
            raise ValueError(f"end date {end_date} precedes start date {start_date}")

        sequence = self.source.extract(dataset_id, start, end_exclusive, spatial_bound)
        logger.debug(
            "Selected %d image(s) from %s for %s..%s",
            sequence.size(),
            dataset_id,
            start.date(),
            end.date(),
            extra={"dataset_id": dataset_id, "image_count": sequence.size()},
        )
        return sequence
