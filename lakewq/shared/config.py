# lakewq/shared/config.py

"""Centralized configuration loaded from config.yaml + environment variables."""

import os
from functools import lru_cache
from typing import Any, Dict

from dotenv import load_dotenv

from lakewq.shared.paths import PROJECT_ROOT
from lakewq.shared.utils.config_loader import load_config

CONFIG_PATH = PROJECT_ROOT / "config.yaml"

load_dotenv()


@lru_cache(maxsize=1)
def get_config() -> Dict[str, Any]:
    """Load and return the global pipeline configuration."""
    if CONFIG_PATH.exists():
        cfg = load_config(str(CONFIG_PATH))
    else:
        cfg = {}

    # Override with environment variables where applicable
    if os.getenv("LAKEWQ_LOG_LEVEL"):
        cfg.setdefault("logging", {})["level"] = os.getenv("LAKEWQ_LOG_LEVEL")
    if os.getenv("LAKEWQ_EE_PROJECT"):
        cfg.setdefault("earthengine", {})["project"] = os.getenv("LAKEWQ_EE_PROJECT")
    if os.getenv("LAKEWQ_MAX_WORKERS"):
        cfg.setdefault("analysis", {})["max_workers"] = int(os.getenv("LAKEWQ_MAX_WORKERS"))

    return cfg


def get_analysis_config() -> Dict[str, Any]:
    return get_config().get("analysis", {})


def get_logging_config() -> Dict[str, Any]:
    return get_config().get("logging", {})


def get_earthengine_config() -> Dict[str, Any]:
    return get_config().get("earthengine", {})


def get_export_config() -> Dict[str, Any]:
    return get_config().get("export", {})
