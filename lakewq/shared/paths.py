# lakewq/shared/paths.py

"""Centralized path definitions for the lake water-quality pipeline."""

from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DATA_DIR = PROJECT_ROOT / "data"
RASTER_DIR = DATA_DIR / "rasters"
FIELD_DATA_DIR = DATA_DIR / "field"

OUTPUT_DIR = PROJECT_ROOT / "outputs"
