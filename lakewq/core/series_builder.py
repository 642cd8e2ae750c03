# lakewq/core/series_builder.py

"""Per-period pipeline runs (seasons or years) assembled into a gap-aware series."""

import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from lakewq.config.lake_config import AnalysisSettings, SeasonDefinition
from lakewq.core.compositor import Compositor
from lakewq.core.dataset_selector import DatasetSelector, month_window, year_window
from lakewq.core.errors import DivisionByZero, EmptyRasterSequence, LakeWQError
from lakewq.core.index_model import IndexModel
from lakewq.core.raster import Raster
from lakewq.core.spatial_domain import SpatialDomain
from lakewq.core.zonal_reducer import Statistic, ZonalReducer
from lakewq.observability.error_tracking import ErrorTracker
from lakewq.observability.logger import SpanContext, get_trace_id

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NO_DATA = "no_data"
STATUS_NO_RESULT = "no_result"
STATUS_ERROR = "error"

SEASONAL_METRICS = (
    "red", "nir", "secchi_depth", "secchi_depth_std", "secchi_depth_cv",
    "turbidity", "turbidity_std", "turbidity_cv",
)
ANNUAL_METRICS = (
    "red", "nir", "turbidity", "turbidity_std", "turbidity_cv",
    "water_index", "chlorophyll", "suspended_solids",
)


@dataclass(frozen=True)
class PeriodRecord:
    """Outcome of one period: populated metrics or an explicit gap."""

    period: str
    kind: str
    x: float
    status: str
    metrics: Mapping[str, Optional[float]] = field(default_factory=dict)
    dataset_id: str = ""
    image_count: int = 0
    calibration: Optional[Mapping[str, Any]] = None
    message: str = ""
    rasters: Mapping[str, Raster] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_gap(self) -> bool:
        return self.status != STATUS_OK

    def value(self, metric: str) -> Optional[float]:
        return self.metrics.get(metric)

    def raster(self, name: str) -> Optional[Raster]:
        return self.rasters.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "kind": self.kind,
            "status": self.status,
            "dataset_id": self.dataset_id,
            "image_count": self.image_count,
            "metrics": dict(self.metrics),
            "calibration": dict(self.calibration) if self.calibration else None,
            "message": self.message,
        }


def _default_metrics(kind: str) -> Tuple[str, ...]:
    return SEASONAL_METRICS if kind == "season" else ANNUAL_METRICS


class PeriodSeries(Sequence[PeriodRecord]):
    """Records in input period order; gaps stay in place."""

    def __init__(self, records: Iterable[PeriodRecord] = ()):
        self._records: Tuple[PeriodRecord, ...] = tuple(records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __iter__(self) -> Iterator[PeriodRecord]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"PeriodSeries(periods={[r.period for r in self._records]}, gaps={len(self.gaps())})"

    def populated(self) -> List[PeriodRecord]:
        return [r for r in self._records if not r.is_gap]

    def gaps(self) -> List[PeriodRecord]:
        return [r for r in self._records if r.is_gap]

    def get(self, period: str) -> Optional[PeriodRecord]:
        return next((r for r in self._records if r.period == period), None)

    def points(self, metric: str) -> List[Tuple[float, Optional[float]]]:
        """``(x, value)`` pairs for every period; gaps carry ``None``."""
        return [(r.x, r.value(metric)) for r in self._records]

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for r in self._records:
            row = {"period": r.period, "status": r.status, "image_count": r.image_count}
            row.update(r.metrics)
            rows.append(row)
        return pd.DataFrame(rows)

    def to_table(self, metrics: Optional[Iterable[str]] = None) -> pd.DataFrame:
        """Long-form ``period, metric, value`` table for export; gaps get ``None`` values."""
        rows = []
        for r in self._records:
            names = metrics if metrics is not None else (r.metrics.keys() or _default_metrics(r.kind))
            for name in names:
                rows.append({"period": r.period, "metric": name, "value": r.value(name), "status": r.status})
        return pd.DataFrame(rows, columns=["period", "metric", "value", "status"])


class SeriesBuilder:
    """Runs select → composite → index → reduce for each period independently.

    A period that fails with a pipeline error (empty sequence, pixel budget,
    unusable boundary) becomes a gap record; other exceptions propagate.
    With ``max_workers > 1`` periods run on a thread pool and are joined in
    input order.
    """

    def __init__(
        self,
        domain: SpatialDomain,
        selector: DatasetSelector,
        compositor: Optional[Compositor] = None,
        index_model: Optional[IndexModel] = None,
        reducer: Optional[ZonalReducer] = None,
        settings: Optional[AnalysisSettings] = None,
        tracker: Optional[ErrorTracker] = None,
        max_workers: Optional[int] = None,
    ):
        self.settings = settings or AnalysisSettings()
        self.domain = domain.project(self.settings.analysis_crs)
        self.selector = selector
        self.compositor = compositor or Compositor()
        self.index_model = index_model or IndexModel()
        self.reducer = reducer or ZonalReducer()
        self.tracker = tracker if tracker is not None else ErrorTracker()
        self.max_workers = max_workers or self.settings.max_workers
        self.search_bound = self.domain.buffer(self.settings.buffer_m)

    # Public API

    def build_seasonal(self, season_defs: Optional[Iterable[SeasonDefinition]] = None) -> PeriodSeries:
        season_defs = list(season_defs if season_defs is not None else self.settings.seasons)
        tasks = [
            (s.name, "season", s.year + (s.month - 1) / 12, lambda s=s: self._seasonal_period(s))
            for s in season_defs
        ]
        return self._run(tasks)

    def build_annual(self, years: Optional[Iterable[int]] = None) -> PeriodSeries:
        years = list(years if years is not None else self.settings.years)
        tasks = [
            (str(y), "year", float(y), lambda y=y: self._annual_period(y))
            for y in years
        ]
        return self._run(tasks)

    # Period execution

    def _run(self, tasks: List[Tuple[str, str, float, Callable[[], PeriodRecord]]]) -> PeriodSeries:
        # each join waits up to the timeout from when it starts, so later periods
        # also get the time spent joining earlier ones
        timeout = self.settings.period_timeout_s
        if self.max_workers <= 1 and timeout is None:
            return PeriodSeries(self._guarded(label, kind, x, func) for label, kind, x, func in tasks)

        records = []
        timed_out = False
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="period")
        try:
            futures = [
                pool.submit(contextvars.copy_context().run, self._guarded, label, kind, x, func)
                for label, kind, x, func in tasks
            ]
            for (label, kind, x, _), future in zip(tasks, futures):
                try:
                    records.append(future.result(timeout=timeout))
                except FutureTimeout:
                    # a running computation cannot be interrupted; its result is discarded
                    timed_out = True
                    future.cancel()
                    exc = TimeoutError(f"period {label} exceeded {timeout:g}s")
                    self.tracker.record("series_builder", exc, period=label, trace_id=get_trace_id())
                    records.append(PeriodRecord(label, kind, x, STATUS_ERROR, message=str(exc)))
        finally:
            pool.shutdown(wait=not timed_out, cancel_futures=timed_out)
        return PeriodSeries(records)

    def _guarded(self, label: str, kind: str, x: float, func: Callable[[], PeriodRecord]) -> PeriodRecord:
        with SpanContext(f"{kind} {label}", component="series_builder", period=label):
            try:
                record = func()
            except EmptyRasterSequence as exc:
                logger.warning(
                    "No data for %s %s: %s", kind, label, exc,
                    extra={"period": label, "status": STATUS_NO_DATA},
                )
                return PeriodRecord(label, kind, x, STATUS_NO_DATA, message=str(exc))
            except LakeWQError as exc:
                self.tracker.record("series_builder", exc, period=label, trace_id=get_trace_id())
                return PeriodRecord(label, kind, x, STATUS_ERROR, message=f"{type(exc).__name__}: {exc}")

        if record.status == STATUS_OK:
            logger.info(
                "%s %s: %d image(s) composited", kind.capitalize(), label, record.image_count,
                extra={"period": label, "status": record.status, "image_count": record.image_count},
            )
        else:
            logger.warning(
                "%s %s produced no result: %s", kind.capitalize(), label, record.message,
                extra={"period": label, "status": record.status},
            )
        return record

    def _composite(self, label: str, year: int, start, end) -> Tuple[str, Raster]:
        dataset_id = self.selector.dataset_id_for(year)
        sequence = self.selector.select_sequence(dataset_id, start, end, self.search_bound)
        if sequence.is_empty():
            raise EmptyRasterSequence(f"no {dataset_id} images for {label} ({start}..{end})")
        return dataset_id, self.compositor.build(sequence, self.domain.geometry)

    def _seasonal_period(self, season: SeasonDefinition) -> PeriodRecord:
        start, end = month_window(season.year, season.month)
        dataset_id, composite = self._composite(season.name, season.year, start, end)
        indices = self.index_model.compute_all(composite, season.name)
        secchi = indices["secchi_depth"]

        s = self.settings
        reduce = self._reduce_fn(s.lake_stats_scale_m, s.coarse_pixel_budget, s.coarse_best_effort)
        metrics = {
            "red": reduce(composite, Statistic.MEAN, "red"),
            "nir": reduce(composite, Statistic.MEAN, "nir"),
            "secchi_depth": reduce(secchi, Statistic.MEAN, "Secchi_Depth_m"),
            "secchi_depth_std": reduce(secchi, Statistic.STD, "Secchi_Depth_m"),
            "secchi_depth_cv": self._cv(reduce, secchi, "Secchi_Depth_m"),
        }
        # turbidity statistics at the fine scale, like the annual series
        turbidity = self.reducer.spatial_stats(
            indices["turbidity"], self.domain.geometry, s.annual_scale_m,
            s.fine_pixel_budget, s.fine_best_effort, band="Turbidity",
        ) or {}
        metrics.update(
            turbidity=turbidity.get("mean"),
            turbidity_std=turbidity.get("std"),
            turbidity_cv=turbidity.get("cv"),
        )
        calibration = {
            k: secchi.properties[k]
            for k in ("season", "coefficient", "intercept", "R2", "field_samples", "season_type")
        }
        return self._record(
            season.name, "season", season.year + (season.month - 1) / 12,
            metrics, "secchi_depth", dataset_id, composite,
            rasters={"composite": composite, **indices},
            calibration=calibration,
        )

    def _annual_period(self, year: int) -> PeriodRecord:
        start, end = year_window(year)
        dataset_id, composite = self._composite(str(year), year, start, end)
        indices = self.index_model.compute_all(composite)

        s = self.settings
        reduce = self._reduce_fn(s.annual_scale_m, s.fine_pixel_budget, s.fine_best_effort)
        metrics = {
            "red": reduce(composite, Statistic.MEAN, "red"),
            "nir": reduce(composite, Statistic.MEAN, "nir"),
            "turbidity": reduce(indices["turbidity"], Statistic.MEAN, "Turbidity"),
            "turbidity_std": reduce(indices["turbidity"], Statistic.STD, "Turbidity"),
            "turbidity_cv": self._cv(reduce, indices["turbidity"], "Turbidity"),
            "water_index": reduce(indices["water_index"], Statistic.MEAN, "WaterIndex"),
            "chlorophyll": reduce(indices["chlorophyll"], Statistic.MEAN, "Chlorophyll"),
            "suspended_solids": reduce(indices["suspended_solids"], Statistic.MEAN, "SuspendedSolids"),
        }
        return self._record(
            str(year), "year", float(year), metrics, "turbidity", dataset_id, composite,
            rasters={"composite": composite, **indices},
        )

    def _reduce_fn(self, scale_m: float, budget: float, best_effort: bool):
        geometry = self.domain.geometry

        def reduce(raster: Raster, statistic: Statistic, band: str) -> Optional[float]:
            return self.reducer.reduce(raster, geometry, statistic, scale_m, budget, best_effort, band=band)
        return reduce

    @staticmethod
    def _cv(reduce, raster: Raster, band: str) -> Optional[float]:
        try:
            return reduce(raster, Statistic.CV, band)
        except DivisionByZero as exc:
            logger.debug("CV of %s unavailable: %s", band, exc)
            return None

    @staticmethod
    def _record(
        label: str,
        kind: str,
        x: float,
        metrics: Dict[str, Optional[float]],
        primary: str,
        dataset_id: str,
        composite: Raster,
        rasters: Dict[str, Raster],
        calibration: Optional[Dict[str, Any]] = None,
    ) -> PeriodRecord:
        image_count = int(composite.properties.get("image_count", 0))
        if metrics.get(primary) is None:
            return PeriodRecord(
                label, kind, x, STATUS_NO_RESULT, metrics=metrics, dataset_id=dataset_id,
                image_count=image_count, calibration=calibration,
                message=f"no valid {primary} samples inside the lake boundary",
            )
        return PeriodRecord(
            label, kind, x, STATUS_OK, metrics=metrics, dataset_id=dataset_id,
            image_count=image_count, calibration=calibration, rasters=rasters,
        )
