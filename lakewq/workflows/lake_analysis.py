"""
Lake analysis workflow: seasonal Secchi campaigns + multi-year trends.

Builds the seasonal and annual period series, fits trends, computes the
seasonal Secchi change and classifies water clarity. When field campaign
samples are given, satellite Secchi depth is compared with the measured depth
per season. Returns a JSON-serialisable summary; exports are submitted to
the sink without waiting for them.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from lakewq.config.lake_config import AnalysisSettings
from lakewq.core.classifier import Classifier
from lakewq.core.dataset_selector import DatasetSelector
from lakewq.core.errors import DivisionByZero, InsufficientData
from lakewq.core.series_builder import PeriodSeries, SeriesBuilder
from lakewq.core.spatial_domain import SpatialDomain
from lakewq.core.trend_estimator import TrendEstimator
from lakewq.data_processing.etl.base_extractor import BaseRasterSource
from lakewq.field_data.insitu_loader import FieldDataset
from lakewq.observability.error_tracking import ErrorTracker
from lakewq.observability.logger import traced
from lakewq.reporting.export import LocalExportSink

logger = logging.getLogger(__name__)

TREND_METRICS = ("turbidity", "water_index")


def _first_with_raster(series: PeriodSeries, name: str):
    return next((r for r in series.populated() if r.raster(name) is not None), None)


def _field_comparison(series: PeriodSeries, field_data: FieldDataset) -> List[Dict[str, Any]]:
    """Satellite Secchi under each campaign's sample points vs the measured depth."""
    rows = []
    for record in series.populated():
        season_type = (record.calibration or {}).get("season_type")
        if not season_type:
            continue
        samples = field_data.filter_by_season(season_type)
        if not len(samples) or "secchi_depth" not in samples.parameters:
            continue
        satellite = samples.sample_raster(record.raster("secchi_depth"), band="Secchi_Depth_m")
        measured = samples.frame.set_index("sample_id")["secchi_depth"]
        paired = pd.DataFrame({"satellite": satellite, "field": measured}).dropna()
        row = {
            "period": record.period,
            "season_type": season_type,
            "samples": len(samples),
            "matched": len(paired),
            "field_mean": None,
            "satellite_mean": None,
            "bias": None,
        }
        if len(paired):
            row["field_mean"] = float(paired["field"].mean())
            row["satellite_mean"] = float(paired["satellite"].mean())
            row["bias"] = row["satellite_mean"] - row["field_mean"]
        rows.append(row)
    return rows


def _seasonal_summary(series: PeriodSeries, estimator: TrendEstimator, classifier: Classifier) -> Dict[str, Any]:
    out: Dict[str, Any] = {"records": [r.to_dict() for r in series]}
    try:
        out["secchi_change"] = estimator.seasonal_change(series, "secchi_depth").to_dict()
    except (InsufficientData, DivisionByZero) as exc:
        logger.warning("Seasonal Secchi change unavailable: %s", exc)
        out["secchi_change"] = None

    record = _first_with_raster(series, "secchi_depth")
    if record is None:
        out["clarity_classes"] = None
    else:
        classified = classifier.classify(record.raster("secchi_depth"), band="Secchi_Depth_m")
        out["clarity_classes"] = {
            "period": record.period,
            "classes": classifier.class_areas(classified),
        }
    return out


@traced("lake_analysis")
def run_lake_analysis(
    domain: SpatialDomain,
    source: BaseRasterSource,
    settings: Optional[AnalysisSettings] = None,
    sink: Optional[LocalExportSink] = None,
    seasonal: bool = True,
    annual: bool = True,
    years: Optional[Iterable[int]] = None,
    tracker: Optional[ErrorTracker] = None,
    field_data: Optional[FieldDataset] = None,
) -> Dict[str, Any]:
    settings = settings or AnalysisSettings()
    tracker = tracker if tracker is not None else ErrorTracker()
    builder = SeriesBuilder(domain, DatasetSelector(source), settings=settings, tracker=tracker)
    estimator = TrendEstimator()
    classifier = Classifier()

    area = domain.area(settings.area_tolerance_m)
    bbox_area = domain.bounding_box_area(settings.area_tolerance_m)
    logger.info("Lake area %.2f km² (bounding box %.2f km²)", area.km2, bbox_area.km2)

    summary: Dict[str, Any] = {
        "lake": domain.name,
        "area_km2": area.km2,
        "bounding_box_area_km2": bbox_area.km2,
        "area_tolerance_m": area.tolerance_m,
    }

    seasonal_series = builder.build_seasonal() if seasonal else PeriodSeries()
    if seasonal:
        summary["seasonal"] = _seasonal_summary(seasonal_series, estimator, classifier)

    if field_data is not None:
        summary["field"] = {
            **field_data.stats(),
            "samples_per_km2": field_data.sampling_density(area.km2) if area.km2 > 0 else None,
            "secchi_comparison": _field_comparison(seasonal_series, field_data),
        }

    annual_series = builder.build_annual(years) if annual else PeriodSeries()
    if annual:
        trends = estimator.fit_many(annual_series, TREND_METRICS)
        summary["annual"] = {
            "records": [r.to_dict() for r in annual_series],
            "trends": {m: (t.to_dict() if t else None) for m, t in trends.items()},
        }

    if sink is not None:
        trends = summary.get("annual", {}).get("trends", {})
        summary["exports"] = _submit_exports(sink, builder, seasonal_series, annual_series, trends, settings)

    summary["errors"] = tracker.get_summary()
    return summary


def _submit_exports(
    sink: LocalExportSink,
    builder: SeriesBuilder,
    seasonal_series: PeriodSeries,
    annual_series: PeriodSeries,
    trends: Dict[str, Optional[Dict[str, Any]]],
    settings: AnalysisSettings,
):
    tasks = []
    if len(seasonal_series):
        tasks.append(sink.export_table(seasonal_series.to_table(), "seasonal_metrics"))
        for record in seasonal_series.populated():
            tasks.append(sink.export_raster(
                record.raster("secchi_depth"),
                f"secchi_{record.period}",
                region=builder.domain.geometry,
                scale_m=settings.export_scale_m,
            ))
            tasks.append(sink.export_raster(
                record.raster("turbidity"),
                f"turbidity_{record.period}",
                region=builder.domain.geometry,
                scale_m=settings.export_scale_m,
            ))
    if len(annual_series):
        tasks.append(sink.export_table(
            annual_series.to_table(),
            "annual_metrics",
            metadata={"years": [r.period for r in annual_series]},
        ))
    trend_rows = _trend_rows(trends, annual_series)
    if trend_rows:
        tasks.append(sink.export_table(trend_rows, "trend_analysis"))
    return [t.description for t in tasks]


def _trend_rows(trends: Dict[str, Optional[Dict[str, Any]]], annual_series: PeriodSeries) -> List[Dict[str, Any]]:
    """One row per fitted metric, with the populated year range it covers."""
    rows = []
    for metric, trend in trends.items():
        if trend is None:
            continue
        years = [r.period for r in annual_series.populated() if r.value(metric) is not None]
        rows.append({
            "parameter": metric,
            "slope": trend["slope"],
            "intercept": trend["intercept"],
            "decade_trend": trend["decade_trend"],
            "r_squared": trend["r_squared"],
            "p_value": trend["p_value"],
            "direction": trend["direction"],
            "n": trend["n"],
            "period": f"{years[0]}-{years[-1]}" if years else "",
        })
    return rows
