# lakewq/core/classifier.py

"""Ordered threshold classification of continuous rasters."""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from lakewq.config.lake_config import WATER_CLARITY_CLASSES
from lakewq.core.errors import InvalidClassBoundaries
from lakewq.core.raster import Raster

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassRule:
    threshold: float
    class_id: int
    label: str = ""


class ClassBoundaries:
    """Lower-inclusive thresholds, lowest first.

    Class ``i`` covers ``[threshold_i, threshold_{i+1})``; the top class covers
    ``[threshold_n, inf)``. Thresholds and class ids must be strictly increasing.
    """

    def __init__(self, rules: Iterable[Sequence]):
        parsed = []
        for rule in rules:
            if isinstance(rule, ClassRule):
                parsed.append(rule)
            else:
                threshold, class_id, *rest = rule
                parsed.append(ClassRule(float(threshold), int(class_id), rest[0] if rest else ""))
        if not parsed:
            raise InvalidClassBoundaries("at least one class rule is required")
        for prev, cur in zip(parsed, parsed[1:]):
            if not cur.threshold > prev.threshold:
                raise InvalidClassBoundaries(
                    f"thresholds must be strictly increasing: {prev.threshold} then {cur.threshold}"
                )
            if not cur.class_id > prev.class_id:
                raise InvalidClassBoundaries(
                    f"class ids must be strictly increasing: {prev.class_id} then {cur.class_id}"
                )
        self.rules: Tuple[ClassRule, ...] = tuple(parsed)

    @classmethod
    def water_clarity(cls) -> "ClassBoundaries":
        return cls(WATER_CLARITY_CLASSES)

    def __len__(self) -> int:
        return len(self.rules)

    def __repr__(self) -> str:
        return f"ClassBoundaries({[(r.threshold, r.class_id) for r in self.rules]})"

    def intervals(self) -> List[Tuple[float, float, ClassRule]]:
        uppers = [r.threshold for r in self.rules[1:]] + [math.inf]
        return [(r.threshold, hi, r) for r, hi in zip(self.rules, uppers)]

    def label_for(self, class_id: int) -> str:
        for rule in self.rules:
            if rule.class_id == class_id:
                return rule.label
        raise KeyError(class_id)


class Classifier:
    """Single-pass classification; the first matching interval wins.

    Intervals are disjoint, so priority only matters for malformed input, which
    ClassBoundaries rejects. Samples below the lowest threshold or without data
    stay no-data.
    """

    def __init__(self, output_band: str = "Water_Clarity_Class"):
        self.output_band = output_band

    def classify(
        self,
        raster: Raster,
        boundaries: Optional[ClassBoundaries] = None,
        band: Optional[str] = None,
    ) -> Raster:
        boundaries = boundaries or ClassBoundaries.water_clarity()
        values = raster.band(band)
        conditions = []
        for lo, hi, _ in boundaries.intervals():
            with np.errstate(invalid="ignore"):
                conditions.append((values >= lo) & (values < hi))
        class_ids = [float(r.class_id) for r in boundaries.rules]
        classes = np.select(conditions, class_ids, default=np.nan)
        return Raster(
            bands={self.output_band: classes},
            grid=raster.grid,
            timestamp=raster.timestamp,
            properties={
                **raster.properties,
                "classification": "first_match",
                "class_labels": {str(r.class_id): r.label for r in boundaries.rules},
            },
        )

    def class_areas(
        self,
        classified: Raster,
        boundaries: Optional[ClassBoundaries] = None,
    ) -> List[Dict]:
        """Pixel count, km² and share of classified pixels per class."""
        boundaries = boundaries or ClassBoundaries.water_clarity()
        values = classified.band(self.output_band)
        total = int(np.count_nonzero(~np.isnan(values)))
        pixel_km2 = classified.grid.pixel_area_m2 / 1e6
        rows = []
        for rule in boundaries.rules:
            count = int(np.count_nonzero(values == rule.class_id))
            rows.append({
                "class_id": rule.class_id,
                "label": rule.label,
                "pixel_count": count,
                "area_km2": count * pixel_km2,
                "percent": (count / total * 100) if total else 0.0,
            })
        return rows
