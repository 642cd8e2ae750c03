# tests/conftest.py

import sys
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest
from shapely.geometry import box

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def grid():
    """4 km x 4 km UTM 37N grid of 250 m pixels."""
    from lakewq.core.raster import GridSpec

    return GridSpec(x_origin=0.0, y_origin=4000.0, pixel_size=250.0, width=16, height=16, crs="EPSG:32637")


@pytest.fixture
def square_domain():
    from lakewq.core.spatial_domain import SpatialDomain

    return SpatialDomain(box(0, 0, 4000, 4000), crs="EPSG:32637", name="Test Lake")


@pytest.fixture
def make_raw(grid):
    """Factory for raw MOD09Q1-style rasters (integer-scaled red / NIR)."""
    from lakewq.core.raster import Raster

    def _make(when, red=500.0, nir=400.0, grid_spec=None):
        g = grid_spec or grid
        return Raster(
            bands={
                "sur_refl_b01": np.broadcast_to(np.asarray(red, dtype=float), g.shape),
                "sur_refl_b02": np.broadcast_to(np.asarray(nir, dtype=float), g.shape),
            },
            grid=g,
            timestamp=when if isinstance(when, datetime) else datetime.fromisoformat(when),
        )

    return _make


@pytest.fixture
def make_reflectance(grid):
    """Factory for scaled reflectance rasters with ``red`` / ``nir`` bands."""
    from lakewq.core.raster import Raster

    def _make(red=0.05, nir=0.04, grid_spec=None):
        g = grid_spec or grid
        return Raster(
            bands={
                "red": np.broadcast_to(np.asarray(red, dtype=float), g.shape),
                "nir": np.broadcast_to(np.asarray(nir, dtype=float), g.shape),
            },
            grid=g,
        )

    return _make


@pytest.fixture
def quiet_tracker():
    from lakewq.observability.error_tracking import ErrorTracker

    return ErrorTracker()
