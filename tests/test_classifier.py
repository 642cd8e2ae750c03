# tests/test_classifier.py

"""Tests for water-clarity classification."""

import numpy as np
import pytest

from lakewq.core.classifier import ClassBoundaries, Classifier
from lakewq.core.errors import InvalidClassBoundaries
from lakewq.core.raster import Raster


def _secchi(grid, values):
    flat = np.full(grid.width * grid.height, np.nan)
    flat[: len(values)] = values
    return Raster({"Secchi_Depth_m": flat.reshape(grid.shape)}, grid)


class TestClassify:
    def test_below_first_threshold_is_very_turbid(self, grid):
        out = Classifier().classify(_secchi(grid, [0.25]))
        assert out.band()[0, 0] == 1

    def test_threshold_inclusive_on_lower_edge(self, grid):
        out = Classifier().classify(_secchi(grid, [0.3, 0.6, 0.9, 1.2]))
        assert list(out.band()[0, :4]) == [2, 3, 4, 5]

    def test_just_below_threshold(self, grid):
        out = Classifier().classify(_secchi(grid, [0.2999, 0.5999, 0.8999, 1.1999]))
        assert list(out.band()[0, :4]) == [1, 2, 3, 4]

    def test_top_class_is_open_ended(self, grid):
        out = Classifier().classify(_secchi(grid, [4.9, 100.0]))
        assert list(out.band()[0, :2]) == [5, 5]

    def test_no_data_stays_no_data(self, grid):
        out = Classifier().classify(_secchi(grid, [0.5]))
        assert np.isnan(out.band()[5, 5])

    def test_custom_boundaries_leave_low_values_unclassified(self, grid):
        boundaries = ClassBoundaries([(0.0, 1, "low"), (1.0, 2, "high")])
        out = Classifier().classify(_secchi(grid, [-0.5, 0.5, 1.5]), boundaries)
        assert np.isnan(out.band()[0, 0])
        assert list(out.band()[0, 1:3]) == [1, 2]

    def test_labels_in_properties(self, grid):
        out = Classifier().classify(_secchi(grid, [0.5]))
        assert out.properties["class_labels"]["1"] == "Very Turbid"
        assert out.properties["classification"] == "first_match"


class TestClassBoundaries:
    def test_non_increasing_thresholds_rejected(self):
        with pytest.raises(InvalidClassBoundaries):
            ClassBoundaries([(0.3, 1), (0.3, 2)])

    def test_non_increasing_ids_rejected(self):
        with pytest.raises(InvalidClassBoundaries):
            ClassBoundaries([(0.1, 2), (0.3, 1)])

    def test_empty_rejected(self):
        with pytest.raises(InvalidClassBoundaries):
            ClassBoundaries([])

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            ClassBoundaries([(1.0, 1), (0.5, 2)])

    def test_intervals(self):
        intervals = ClassBoundaries.water_clarity().intervals()
        assert intervals[1][:2] == (0.3, 0.6)
        assert intervals[-1][1] == float("inf")


class TestClassAreas:
    def test_counts_and_area(self, grid):
        classifier = Classifier()
        classified = classifier.classify(_secchi(grid, [0.1, 0.1, 0.7, 1.5]))
        rows = {r["class_id"]: r for r in classifier.class_areas(classified)}
        assert rows[1]["pixel_count"] == 2
        assert rows[1]["area_km2"] == pytest.approx(2 * 0.0625)
        assert rows[1]["percent"] == pytest.approx(50.0)
        assert rows[2]["pixel_count"] == 0
        assert rows[5]["label"] == "Very Clear"
