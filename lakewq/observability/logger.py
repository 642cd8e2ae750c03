# lakewq/observability/logger.py

"""Structured logging with trace/span propagation for pipeline runs."""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from functools import wraps

# Trace context propagation
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")
_span_id: ContextVar[str] = ContextVar("span_id", default="")
_component: ContextVar[str] = ContextVar("component", default="")

EXTRA_FIELDS = (
    "duration_ms",
    "status",
    "period",
    "dataset_id",
    "error_type",
    "image_count",
)


def new_trace_id() -> str:
    return uuid.uuid4().hex[:16]


def new_span_id() -> str:
    return uuid.uuid4().hex[:8]


def set_trace_context(trace_id: str, component: str = "") -> None:
    _trace_id.set(trace_id)
    _component.set(component)


def get_trace_id() -> str:
    return _trace_id.get()


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter with trace context."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": _trace_id.get(""),
            "span_id": _span_id.get(""),
            "component": _component.get(""),
        }
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Merge extra fields
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)
        return json.dumps(log_entry, default=str)


def setup_logging(level=logging.INFO, structured: bool = True) -> None:
    """Configure root logger with structured or human-readable output."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
        )
    root.addHandler(handler)


def traced(component: str):
    """Decorator that adds trace context and timing to a function."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            trace = _trace_id.get() or new_trace_id()
            _trace_id.set(trace)
            _span_id.set(new_span_id())
            _component.set(component)
            logger = logging.getLogger(component)
            start = time.monotonic()
            logger.info("Starting %s", func.__name__, extra={"status": "started"})
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                duration = (time.monotonic() - start) * 1000
                logger.error(
                    "Failed %s after %.0fms: %s",
                    func.__name__,
                    duration,
                    exc,
                    extra={
                        "status": "failed",
                        "duration_ms": round(duration),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                raise
            duration = (time.monotonic() - start) * 1000
            logger.info(
                "Completed %s in %.0fms",
                func.__name__,
                duration,
                extra={"status": "completed", "duration_ms": round(duration)},
            )
            return result
        return wrapper
    return decorator


class SpanContext:
    """Context manager for creating trace spans."""

    def __init__(self, name: str, component: str = "", **fields):
        self.name = name
        self.component = component
        self.fields = fields
        self.start_time = 0.0
        self.logger = logging.getLogger(component or "lakewq")

    def __enter__(self):
        self.start_time = time.monotonic()
        _span_id.set(new_span_id())
        if not _trace_id.get():
            _trace_id.set(new_trace_id())
        if self.component:
            _component.set(self.component)
        self.logger.info(
            "Span started: %s", self.name, extra={"status": "started", **self.fields}
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (time.monotonic() - self.start_time) * 1000
        if exc_type:
            self.logger.error(
                "Span failed: %s (%.0fms)",
                self.name,
                duration,
                extra={
                    "status": "failed",
                    "duration_ms": round(duration),
                    "error_type": exc_type.__name__,
                    **self.fields,
                },
            )
        else:
            self.logger.info(
                "Span completed: %s (%.0fms)",
                self.name,
                duration,
                extra={"status": "completed", "duration_ms": round(duration), **self.fields},
            )
        return False
