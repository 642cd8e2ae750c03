# tests/test_compositor.py

"""Tests for reflectance scaling, median compositing and clipping."""

from datetime import datetime

import numpy as np
import pytest
from shapely.geometry import box

from lakewq.config.lake_config import MODIS_FILL_VALUE
from lakewq.core.compositor import Compositor
from lakewq.core.errors import EmptyRasterSequence
from lakewq.core.raster import GridSpec, RasterSequence


class TestPreprocess:
    def test_scales_and_renames(self, make_raw):
        out = Compositor().preprocess(make_raw("2016-08-05", red=771, nir=2500))
        assert out.band_names == ("red", "nir")
        assert out.band("red")[0, 0] == pytest.approx(0.0771)
        assert out.band("nir")[0, 0] == pytest.approx(0.25)

    def test_preserves_timestamp(self, make_raw):
        out = Compositor().preprocess(make_raw("2016-08-05"))
        assert out.timestamp == datetime(2016, 8, 5)

    def test_fill_value_becomes_no_data(self, make_raw, grid):
        nir = np.full(grid.shape, 400.0)
        nir[0, 0] = MODIS_FILL_VALUE
        out = Compositor().preprocess(make_raw("2016-08-05", nir=nir))
        assert np.isnan(out.band("nir")[0, 0])
        assert out.valid_count("nir") == grid.width * grid.height - 1


class TestComposite:
    def test_identical_inputs_are_returned_unchanged(self, make_raw):
        compositor = Compositor()
        single = compositor.preprocess(make_raw("2016-08-05", red=612, nir=433))
        seq = RasterSequence([make_raw(f"2016-08-{d:02d}", red=612, nir=433) for d in (5, 13, 21, 29)])
        out = compositor.composite(seq.map(compositor.preprocess))
        for band in ("red", "nir"):
            np.testing.assert_allclose(out.band(band), single.band(band))
        assert out.properties["image_count"] == 4

    def test_median_rejects_cloud_outlier(self, make_raw):
        compositor = Compositor()
        seq = RasterSequence([
            make_raw("2016-08-05", nir=400),
            make_raw("2016-08-13", nir=410),
            make_raw("2016-08-21", nir=9000),
        ])
        out = compositor.composite(seq.map(compositor.preprocess))
        assert out.band("nir")[3, 3] == pytest.approx(0.041)

    def test_no_data_samples_are_skipped(self, make_raw, grid):
        compositor = Compositor()
        cloudy = np.full(grid.shape, float(MODIS_FILL_VALUE))
        seq = RasterSequence([make_raw("2016-08-05", nir=cloudy), make_raw("2016-08-13", nir=500)])
        out = compositor.composite(seq.map(compositor.preprocess))
        assert out.band("nir")[0, 0] == pytest.approx(0.05)

    def test_time_range_properties(self, make_raw):
        seq = RasterSequence([make_raw("2016-08-13"), make_raw("2016-08-05")])
        out = Compositor().composite(seq)
        assert out.properties["time_start"] == "2016-08-05T00:00:00"
        assert out.properties["time_end"] == "2016-08-13T00:00:00"

    def test_empty_sequence_fails(self):
        with pytest.raises(EmptyRasterSequence):
            Compositor().composite(RasterSequence())

    def test_mismatched_grids_rejected(self, make_raw):
        other = GridSpec(0, 4000, 500, 8, 8)
        seq = RasterSequence([make_raw("2016-08-05"), make_raw("2016-08-13", grid_spec=other)])
        with pytest.raises(ValueError):
            Compositor().composite(seq)


class TestClip:
    def test_outside_becomes_no_data(self, make_reflectance):
        clipped = Compositor().clip(make_reflectance(), box(0, 0, 2000, 4000))
        nir = clipped.band("nir")
        assert not np.isnan(nir[:, :8]).any()
        assert np.isnan(nir[:, 8:]).all()

    def test_build_runs_all_steps(self, make_raw):
        seq = RasterSequence([make_raw("2016-08-05", nir=771)])
        out = Compositor().build(seq, box(0, 0, 1000, 1000))
        assert out.valid_count("nir") == 16
        assert np.nanmean(out.band("nir")) == pytest.approx(0.0771)
