# tests/test_workflow.py

"""End-to-end lake analysis over in-memory MODIS rasters."""

import json
from datetime import datetime

import pandas as pd
import pytest
from pyproj import Transformer

from lakewq.config.lake_config import CURRENT_DATASET, LEGACY_DATASET, AnalysisSettings
from lakewq.data_processing.etl.memory_source import InMemoryRasterSource
from lakewq.field_data.insitu_loader import FieldDataset
from lakewq.reporting.export import LocalExportSink
from lakewq.workflows.lake_analysis import run_lake_analysis


@pytest.fixture
def source(make_raw):
    return InMemoryRasterSource({
        CURRENT_DATASET: [
            make_raw(datetime(2016, 8, 5), red=900, nir=771),
            make_raw(datetime(2016, 12, 3), red=600, nir=300),
            make_raw(datetime(2017, 3, 6), red=700, nir=411),
        ],
        LEGACY_DATASET: [
            make_raw(datetime(2010, 5, 1), red=500, nir=400),
            make_raw(datetime(2011, 5, 1), red=600, nir=400),
            make_raw(datetime(2012, 5, 1), red=700, nir=400),
        ],
    })


@pytest.fixture
def summary(square_domain, source, quiet_tracker):
    return run_lake_analysis(
        square_domain, source, settings=AnalysisSettings(),
        years=[2010, 2011, 2012, 2013], tracker=quiet_tracker,
    )


class TestLakeAnalysis:
    def test_area(self, summary):
        assert summary["lake"] == "Test Lake"
        assert summary["area_km2"] == pytest.approx(16.0)
        assert summary["bounding_box_area_km2"] == pytest.approx(16.0)

    def test_seasonal_secchi(self, summary):
        records = {r["period"]: r for r in summary["seasonal"]["records"]}
        assert records["aug2016"]["metrics"]["secchi_depth"] == pytest.approx(0.233579)
        assert records["dec2016"]["metrics"]["secchi_depth"] == pytest.approx(-12.57 * 0.03 + 0.85)
        assert records["mar2017"]["calibration"]["season_type"] == "Post-rainy"

    def test_seasonal_change(self, summary):
        change = summary["seasonal"]["secchi_change"]
        assert change["first_period"] == "aug2016"
        assert change["last_period"] == "mar2017"
        assert change["change"] == pytest.approx(0.654898, abs=1e-6)
        assert change["percent_change"] == pytest.approx(280.37, abs=0.05)

    def test_clarity_classes_from_first_season(self, summary):
        clarity = summary["seasonal"]["clarity_classes"]
        assert clarity["period"] == "aug2016"
        very_turbid = clarity["classes"][0]
        assert very_turbid["label"] == "Very Turbid"
        assert very_turbid["pixel_count"] == 256
        assert very_turbid["percent"] == pytest.approx(100.0)

    def test_annual_gap_and_trend(self, summary):
        statuses = [r["status"] for r in summary["annual"]["records"]]
        assert statuses == ["ok", "ok", "ok", "no_data"]
        turbidity = summary["annual"]["trends"]["turbidity"]
        assert turbidity["n"] == 3
        assert turbidity["slope"] == pytest.approx(0.85 * 0.01)
        assert turbidity["decade_trend"] == pytest.approx(0.085)
        assert turbidity["direction"] == "Increasing"
        assert summary["annual"]["trends"]["water_index"]["slope"] > 0

    def test_summary_is_json_serialisable(self, summary):
        json.dumps(summary)
        assert summary["errors"]["total_errors"] == 0

    def test_seasonal_turbidity_in_records(self, summary):
        aug = summary["seasonal"]["records"][0]
        assert aug["metrics"]["turbidity"] == pytest.approx(0.85 * 0.09 + 15.6)

    def test_errors_are_scoped_to_each_run(self, square_domain, source):
        settings = AnalysisSettings(fine_pixel_budget=1)
        first = run_lake_analysis(square_domain, source, settings=settings, seasonal=False, years=[2010])
        second = run_lake_analysis(square_domain, source, settings=settings, seasonal=False, years=[2010])
        assert first["errors"]["total_errors"] == 1
        assert second["errors"]["total_errors"] == 1

    def test_seasonal_only(self, square_domain, source, quiet_tracker):
        out = run_lake_analysis(square_domain, source, annual=False, tracker=quiet_tracker)
        assert "annual" not in out
        assert len(out["seasonal"]["records"]) == 3


class TestExports:
    def test_tables_and_rasters_written(self, square_domain, source, quiet_tracker, tmp_path):
        sink = LocalExportSink(tmp_path)
        out = run_lake_analysis(
            square_domain, source, sink=sink, years=[2010, 2011], tracker=quiet_tracker,
        )
        assert sink.wait_all(timeout=30)
        assert "table:seasonal_metrics" in out["exports"]
        assert "raster:secchi_aug2016" in out["exports"]
        assert (tmp_path / "lake_tana_seasonal_metrics.csv").exists()
        assert (tmp_path / "lake_tana_annual_metrics_metadata.json").exists()
        assert (tmp_path / "lake_tana_secchi_mar2017.npz").exists()
        assert (tmp_path / "lake_tana_turbidity_aug2016.npz").exists()

    def test_trend_table_exported(self, square_domain, source, quiet_tracker, tmp_path):
        sink = LocalExportSink(tmp_path)
        out = run_lake_analysis(
            square_domain, source, sink=sink, seasonal=False, years=[2010, 2011, 2012, 2013], tracker=quiet_tracker,
        )
        assert sink.wait_all(timeout=30)
        assert "table:trend_analysis" in out["exports"]
        trends = pd.read_csv(tmp_path / "lake_tana_trend_analysis.csv")
        assert list(trends["parameter"]) == ["turbidity", "water_index"]
        turbidity = trends.iloc[0]
        assert turbidity["slope"] == pytest.approx(0.0085)
        assert turbidity["decade_trend"] == pytest.approx(0.085)
        assert turbidity["period"] == "2010-2012"


class TestFieldComparison:
    @pytest.fixture
    def field_data(self):
        to_geographic = Transformer.from_crs("EPSG:32637", "EPSG:4326", always_xy=True)
        points = {"AUG_001": (1100, 2900), "AUG_002": (3100, 600), "DEC_001": (2000, 2000)}
        rows = []
        for sample_id, (x, y) in points.items():
            lon, lat = to_geographic.transform(x, y)
            rows.append({
                "sample_id": sample_id,
                "campaign": "August 2016" if sample_id.startswith("AUG") else "December 2016",
                "latitude": lat,
                "longitude": lon,
                "secchi_depth": {"AUG_001": 0.5, "AUG_002": 0.4, "DEC_001": 1.2}[sample_id],
            })
        return FieldDataset(pd.DataFrame(rows))

    def test_satellite_vs_field_secchi(self, square_domain, source, quiet_tracker, field_data):
        out = run_lake_analysis(square_domain, source, annual=False, tracker=quiet_tracker, field_data=field_data)
        field = out["field"]
        assert field["total_samples"] == 3
        assert field["samples_per_km2"] == pytest.approx(3 / 16)

        comparison = {row["period"]: row for row in field["secchi_comparison"]}
        assert set(comparison) == {"aug2016", "dec2016"}
        aug = comparison["aug2016"]
        assert aug["matched"] == 2
        assert aug["field_mean"] == pytest.approx(0.45)
        assert aug["satellite_mean"] == pytest.approx(0.233579)
        assert aug["bias"] == pytest.approx(0.233579 - 0.45)
        json.dumps(out)
