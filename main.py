import argparse
import json
import sys
from pathlib import Path

from lakewq.config.lake_config import BOUNDARY_ASSET, LAKE_NAME, load_settings
from lakewq.core.errors import LakeWQError
from lakewq.core.spatial_domain import GeoJSONBoundarySource, SpatialDomain
from lakewq.data_processing.etl.memory_source import InMemoryRasterSource
from lakewq.field_data.insitu_loader import load_field_data
from lakewq.observability.logger import setup_logging
from lakewq.reporting.export import LocalExportSink
from lakewq.shared.config import get_config, get_earthengine_config, get_export_config, get_logging_config
from lakewq.shared.paths import RASTER_DIR
from lakewq.workflows.lake_analysis import run_lake_analysis


def _build_sources(args, ee_cfg):
    if args.source == "earthengine":
        from lakewq.data_processing.etl.modis_extractor import (
            EarthEngineBoundarySource,
            EarthEngineRasterSource,
        )

        project = ee_cfg.get("project")
        boundary_source = (
            GeoJSONBoundarySource() if args.boundary.endswith(".geojson")
            else EarthEngineBoundarySource(project=project)
        )
        return boundary_source, EarthEngineRasterSource(project=project)

    return GeoJSONBoundarySource(), InMemoryRasterSource.from_directory(args.data_dir)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the lake water-quality analysis")
    parser.add_argument("--boundary", default=BOUNDARY_ASSET, help="Boundary asset id or GeoJSON path")
    parser.add_argument("--name", default=None, help=f"Boundary feature name (e.g. '{LAKE_NAME}')")
    parser.add_argument("--source", choices=["earthengine", "npz"], default="npz", help="Raster source")
    parser.add_argument("--data-dir", default=str(RASTER_DIR), help="Directory of .npz rasters (npz source)")
    parser.add_argument("--seasonal", action=argparse.BooleanOptionalAction, default=True,
                        help="Run the seasonal campaign analysis")
    parser.add_argument("--annual", nargs=2, type=int, metavar=("START", "END"),
                        help="Year range for the trend analysis (inclusive)")
    parser.add_argument("--no-annual", action="store_true", help="Skip the multi-year analysis")
    parser.add_argument("--workers", type=int, help="Periods processed concurrently")
    parser.add_argument("--field-data", metavar="PATH", help="In-situ samples (CSV or parquet) to compare against")
    parser.add_argument("--export", metavar="DIR", help="Export tables and rasters to DIR")
    parser.add_argument("--log-level", help="Logging level (default from config)")
    parser.add_argument("--plain-logs", action="store_true", help="Human-readable instead of JSON logs")
    args = parser.parse_args()

    cfg = get_config()
    log_cfg = get_logging_config()
    setup_logging(
        args.log_level or log_cfg.get("level", "INFO"),
        structured=not args.plain_logs and log_cfg.get("structured", True),
    )

    if args.workers is not None:
        cfg = {**cfg, "analysis": {**cfg.get("analysis", {}), "max_workers": args.workers}}
    if args.annual:
        start, end = args.annual
        cfg = {**cfg, "analysis": {**cfg.get("analysis", {}), "year_start": start, "year_end": end}}

    try:
        settings = load_settings(cfg)
        boundary_source, raster_source = _build_sources(args, get_earthengine_config())
        domain = SpatialDomain.load(boundary_source, args.boundary, args.name)
        field_data = load_field_data(args.field_data) if args.field_data else None
        export_cfg = get_export_config()
        sink = (
            LocalExportSink(Path(args.export), prefix=export_cfg.get("prefix", "lake_tana"))
            if args.export else None
        )
        result = run_lake_analysis(
            domain,
            raster_source,
            settings,
            sink=sink,
            seasonal=args.seasonal,
            annual=not args.no_annual,
            field_data=field_data,
        )
        if sink is not None:
            sink.wait_all()
            result["export_tasks"] = sink.summary()
    except (LakeWQError, FileNotFoundError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
