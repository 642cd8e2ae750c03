# lakewq/field_data/insitu_loader.py

"""In-situ samples from the Aug 2016 / Dec 2016 / Mar 2017 field campaigns."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd
from pyproj import Transformer

from lakewq.core.raster import Raster
from lakewq.shared.paths import FIELD_DATA_DIR

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["sample_id", "campaign", "latitude", "longitude"]

PARAMETERS = {
    "chlorophyll_a": "mg/m³",
    "secchi_depth": "m",
    "total_nitrogen": "mg/L",
    "total_phosphorus": "mg/L",
    "tds": "mg/L",
    "ph": "pH units",
    "temperature": "°C",
}

CAMPAIGN_SEASONS = {
    "August 2016": "Rainy",
    "December 2016": "Dry",
    "March 2017": "Post-Rainy",
}

COORDINATE_BOUNDS = {
    "latitude": (-90, 90),
    "longitude": (-180, 180),
}


def load_field_data(path: Union[str, Path]) -> "FieldDataset":
    """Read samples from CSV or parquet; bare file names resolve under ``FIELD_DATA_DIR``."""
    path = Path(path)
    if not path.exists() and not path.is_absolute():
        path = FIELD_DATA_DIR / path
    if not path.exists():
        raise FileNotFoundError(f"Field data not found: {path}")
    if path.suffix.lower() == ".parquet":
        df = pd.read_parquet(path)
    elif path.suffix.lower() == ".csv":
        df = pd.read_csv(path)
    else:
        raise ValueError(f"Unsupported field data format: {path.suffix}")
    logger.info("Loaded %d field sample(s) from %s", len(df), path.name)
    return FieldDataset(df)


class FieldDataset:
    """Validated table of field samples, one row per sample."""

    def __init__(self, df: pd.DataFrame):
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Field data missing required columns: {missing}")
        df = df.copy()
        if "season" not in df.columns:
            df["season"] = None
        df["season"] = df["season"].fillna(df["campaign"].map(CAMPAIGN_SEASONS))

        for col, (lo, hi) in COORDINATE_BOUNDS.items():
            df[col] = pd.to_numeric(df[col], errors="coerce")
            invalid = ~df[col].between(lo, hi)
            if invalid.any():
                logger.warning("Dropping %d sample(s) with invalid %s", int(invalid.sum()), col)
                df = df[~invalid]
        for param in PARAMETERS:
            if param in df.columns:
                df[param] = pd.to_numeric(df[param], errors="coerce")
        self._df = df.reset_index(drop=True)

    def __len__(self) -> int:
        return len(self._df)

    @property
    def frame(self) -> pd.DataFrame:
        return self._df.copy()

    @property
    def campaigns(self) -> List[str]:
        return sorted(self._df["campaign"].dropna().unique().tolist())

    @property
    def parameters(self) -> List[str]:
        return [p for p in PARAMETERS if p in self._df.columns]

    def filter_by_campaign(self, campaign: str) -> "FieldDataset":
        return FieldDataset(self._df[self._df["campaign"] == campaign])

    def filter_by_season(self, season: str) -> "FieldDataset":
        mask = self._df["season"].astype(str).str.lower() == season.lower()
        return FieldDataset(self._df[mask])

    def parameter_stats(self, parameter: str) -> Dict[str, Optional[float]]:
        if parameter not in self._df.columns:
            raise KeyError(f"Unknown field parameter {parameter!r}")
        values = self._df[parameter].dropna()
        if values.empty:
            return {"count": 0, "mean": None, "std": None, "min": None, "max": None}
        return {
            "count": int(values.count()),
            "mean": float(values.mean()),
            "std": float(values.std()) if len(values) > 1 else 0.0,
            "min": float(values.min()),
            "max": float(values.max()),
        }

    def stats(self) -> Dict[str, Any]:
        return {
            "total_samples": len(self),
            "campaigns": self.campaigns,
            "parameters": {p: self.parameter_stats(p) for p in self.parameters},
        }

    def summary_table(self) -> pd.DataFrame:
        """Parameter / value / unit rows describing the campaigns."""
        rows = [
            {"parameter": "Total Samples", "value": str(len(self)), "unit": "samples"},
            {"parameter": "Sampling Campaigns", "value": str(len(self.campaigns)), "unit": "campaigns"},
        ]
        for param in self.parameters:
            s = self.parameter_stats(param)
            if s["count"]:
                rows.append({
                    "parameter": f"{param} range",
                    "value": f"{s['min']:g}-{s['max']:g}",
                    "unit": PARAMETERS[param],
                })
        return pd.DataFrame(rows, columns=["parameter", "value", "unit"])

    def sampling_density(self, area_km2: float) -> float:
        """Samples per km² of lake surface."""
        if area_km2 <= 0:
            raise ValueError("area_km2 must be positive")
        return len(self) / area_km2

    def sample_raster(self, raster: Raster, band: Optional[str] = None) -> pd.Series:
        """Raster value under each sample (NaN outside the grid or on no-data)."""
        grid = raster.grid
        transformer = Transformer.from_crs("EPSG:4326", grid.crs, always_xy=True)
        xs, ys = transformer.transform(self._df["longitude"].to_numpy(), self._df["latitude"].to_numpy())
        cols = np.floor((np.asarray(xs) - grid.x_origin) / grid.pixel_size).astype(int)
        rows = np.floor((grid.y_origin - np.asarray(ys)) / grid.pixel_size).astype(int)
        inside = (cols >= 0) & (cols < grid.width) & (rows >= 0) & (rows < grid.height)

        values = np.full(len(self._df), np.nan)
        data = raster.band(band)
        values[inside] = data[rows[inside], cols[inside]]
        return pd.Series(values, index=self._df["sample_id"], name=band or raster.band_names[0])
