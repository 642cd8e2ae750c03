# lakewq/reporting/export.py

"""Local export sink: tables to CSV/JSON, rasters to ``.npz``, run in background tasks."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
import shapely
from shapely.geometry.base import BaseGeometry

from lakewq.core.raster import Raster, save_npz
from lakewq.shared.paths import OUTPUT_DIR

logger = logging.getLogger(__name__)

TableLike = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


class ExportTask:
    """A fire-and-forget export; callers may ``wait()`` but are never required to."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    def __init__(self, description: str, work: Callable[[], List[Path]]):
        self.description = description
        self.state = self.PENDING
        self.outputs: List[Path] = []
        self.error: Optional[BaseException] = None
        self._work = work
        self._thread = threading.Thread(target=self._run, name=f"export-{description}", daemon=True)

    def __repr__(self) -> str:
        return f"ExportTask({self.description!r}, state={self.state})"

    def start(self) -> "ExportTask":
        self._thread.start()
        return self

    def _run(self):
        self.state = self.RUNNING
        try:
            self.outputs = self._work()
        except (OSError, ValueError, TypeError) as exc:
            self.error = exc
            self.state = self.FAILED
            logger.error("Export %s failed: %s", self.description, exc, extra={"status": "failed"})
            return
        self.state = self.COMPLETED
        logger.info("Export %s completed: %s", self.description, ", ".join(p.name for p in self.outputs))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until finished; True when completed successfully."""
        self._thread.join(timeout)
        return self.state == self.COMPLETED

    def result(self, timeout: Optional[float] = None) -> List[Path]:
        """Output paths, re-raising the export error if the task failed."""
        self._thread.join(timeout)
        if self.error is not None:
            raise self.error
        return list(self.outputs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "state": self.state,
            "outputs": [str(p) for p in self.outputs],
            "error": str(self.error) if self.error else None,
        }


class LocalExportSink:
    """Persists tables and rasters under ``output_dir``."""

    def __init__(self, output_dir: Union[str, Path] = OUTPUT_DIR, prefix: str = "lake_tana"):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.tasks: List[ExportTask] = []

    def _path(self, name: str, suffix: str) -> Path:
        return self.output_dir / f"{self.prefix}_{name}{suffix}"

    def export_table(
        self,
        table: TableLike,
        name: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> ExportTask:
        """Write ``<name>.csv``, ``<name>.json`` and ``<name>_metadata.json``."""
        df = table.copy() if isinstance(table, pd.DataFrame) else pd.DataFrame(list(table))

        def work() -> List[Path]:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            csv_path = self._path(name, ".csv")
            json_path = self._path(name, ".json")
            meta_path = self._path(name, "_metadata.json")
            df.to_csv(csv_path, index=False)
            df.to_json(json_path, orient="records", indent=2)
            meta = {
                "name": name,
                "rows": len(df),
                "columns": list(df.columns),
                "exported_at": datetime.now().isoformat(),
                **(metadata or {}),
            }
            with open(meta_path, "w", encoding="utf-8") as f:
                json.dump(meta, f, indent=2, default=str)
            return [csv_path, json_path, meta_path]

        return self._submit(f"table:{name}", work)

    def export_raster(
        self,
        raster: Raster,
        name: str,
        region: Optional[BaseGeometry] = None,
        scale_m: Optional[float] = None,
    ) -> ExportTask:
        """Write a raster clipped to ``region`` at roughly ``scale_m`` resolution."""
        out = raster
        if region is not None:
            xs, ys = out.grid.pixel_centers()
            out = out.update_mask(shapely.contains_xy(region, xs, ys))
        if scale_m is not None:
            factor = max(1, int(round(scale_m / out.grid.pixel_size)))
            out = out.coarsen(factor)
        out = out.with_properties(
            export_scale_m=out.grid.pixel_size,
            export_name=name,
            valid_fraction=valid_fraction(out),
        )

        def work() -> List[Path]:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self._path(name, ".npz")
            save_npz(out, path)
            return [path]

        return self._submit(f"raster:{name}", work)

    def _submit(self, description: str, work: Callable[[], List[Path]]) -> ExportTask:
        task = ExportTask(description, work)
        self.tasks.append(task)
        logger.info("Submitted export %s", description)
        return task.start()

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        return all(task.wait(timeout) for task in self.tasks)

    def summary(self) -> List[Dict[str, Any]]:
        return [task.to_dict() for task in self.tasks]


def valid_fraction(raster: Raster) -> float:
    """Share of samples with data across all bands."""
    stacked = np.stack(list(raster.bands.values()))
    return float(np.mean(~np.isnan(stacked)))
