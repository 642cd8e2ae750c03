# lakewq/observability/error_tracking.py

"""Error tracking and aggregation for per-period pipeline failures."""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class PeriodError:
    component: str
    period: str
    error_type: str
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    trace_id: str = ""
    recoverable: bool = True


class ErrorTracker:
    """Tracks errors across pipeline periods and provides aggregated diagnostics."""

    def __init__(self, max_history: int = 500):
        self._errors: List[PeriodError] = []
        self._counts: Dict[str, int] = defaultdict(int)
        self._max_history = max_history
        self._lock = threading.Lock()

    def record(
        self,
        component: str,
        error: Exception,
        period: str = "",
        trace_id: str = "",
        recoverable: bool = True,
    ) -> PeriodError:
        entry = PeriodError(
            component=component,
            period=str(period),
            error_type=type(error).__name__,
            message=str(error)[:500],
            trace_id=trace_id,
            recoverable=recoverable,
        )
        with self._lock:
            self._errors.append(entry)
            self._counts[f"{component}:{entry.error_type}"] += 1
            if len(self._errors) > self._max_history:
                del self._errors[:-self._max_history]
        logger.warning(
            "Error recorded: %s in %s (period %s): %s",
            entry.error_type,
            component,
            entry.period or "-",
            entry.message[:100],
            extra={"period": entry.period, "error_type": entry.error_type},
        )
        return entry

    @property
    def errors(self) -> List[PeriodError]:
        with self._lock:
            return list(self._errors)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            errors = list(self._errors)
            counts = dict(self._counts)
        return {
            "total_errors": len(errors),
            "by_component": _component_breakdown(errors),
            "by_type": counts,
            "recent": [
                {
                    "component": e.component,
                    "period": e.period,
                    "type": e.error_type,
                    "message": e.message[:80],
                    "time": e.timestamp,
                }
                for e in errors[-10:]
            ],
        }

    def clear(self):
        with self._lock:
            self._errors.clear()
            self._counts.clear()


def _component_breakdown(errors: List[PeriodError]) -> Dict[str, int]:
    breakdown: Dict[str, int] = defaultdict(int)
    for e in errors:
        breakdown[e.component] += 1
    return dict(breakdown)

