# tests/test_shared.py

"""Tests for shared infrastructure: paths, config loading, analysis settings."""

import pytest

from lakewq.config.lake_config import SEASONS, AnalysisSettings, SeasonDefinition, load_settings
from lakewq.core.errors import ConfigError
from lakewq.shared import config as shared_config
from lakewq.shared.paths import DATA_DIR, OUTPUT_DIR, PROJECT_ROOT, RASTER_DIR
from lakewq.shared.utils.config_loader import load_config


class TestPaths:
    def test_project_root_exists(self):
        assert PROJECT_ROOT.exists()

    def test_project_root_contains_lakewq(self):
        assert (PROJECT_ROOT / "lakewq").is_dir()

    def test_data_dir_relative_to_root(self):
        assert DATA_DIR == PROJECT_ROOT / "data"
        assert RASTER_DIR == DATA_DIR / "rasters"
        assert OUTPUT_DIR == PROJECT_ROOT / "outputs"


class TestConfigLoader:
    def test_yaml(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("analysis:\n  year_start: 2010\n")
        assert load_config(str(path)) == {"analysis": {"year_start": 2010}}

    def test_json(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text('{"logging": {"level": "DEBUG"}}')
        assert load_config(str(path))["logging"]["level"] == "DEBUG"

    def test_empty_file_is_empty_dict(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "cfg.ini"
        path.write_text("[x]")
        with pytest.raises(ValueError):
            load_config(str(path))


class TestGetConfig:
    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("analysis:\n  max_workers: 1\nlogging:\n  level: INFO\n")
        monkeypatch.setattr(shared_config, "CONFIG_PATH", path)
        monkeypatch.setenv("LAKEWQ_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LAKEWQ_MAX_WORKERS", "4")
        shared_config.get_config.cache_clear()
        try:
            assert shared_config.get_logging_config()["level"] == "DEBUG"
            assert shared_config.get_analysis_config()["max_workers"] == 4
        finally:
            shared_config.get_config.cache_clear()

    def test_missing_config_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(shared_config, "CONFIG_PATH", tmp_path / "absent.yaml")
        for var in ("LAKEWQ_LOG_LEVEL", "LAKEWQ_EE_PROJECT", "LAKEWQ_MAX_WORKERS"):
            monkeypatch.delenv(var, raising=False)
        shared_config.get_config.cache_clear()
        try:
            assert shared_config.get_config() == {}
            assert shared_config.get_export_config() == {}
        finally:
            shared_config.get_config.cache_clear()

    def test_project_config_file_loads(self):
        cfg = load_config(str(PROJECT_ROOT / "config.yaml"))
        settings = load_settings(cfg)
        assert settings == AnalysisSettings()


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings.lake_stats_scale_m == 500
        assert settings.coarse_pixel_budget == 1e7
        assert settings.coarse_best_effort is True
        assert settings.annual_scale_m == 250
        assert settings.fine_pixel_budget == 1e9
        assert settings.fine_best_effort is False
        assert list(settings.years) == list(range(2008, 2019))
        assert settings.seasons == SEASONS

    def test_overrides_and_seasons(self):
        settings = load_settings({
            "analysis": {"year_start": "2010", "max_workers": 3, "unknown_key": 1},
            "seasons": [{"year": 2016, "month": 8, "name": "aug2016"}],
        })
        assert settings.year_start == 2010
        assert settings.max_workers == 3
        assert settings.seasons == (SeasonDefinition(2016, 8, "aug2016", "aug2016"),)

    def test_bad_type(self):
        with pytest.raises(ConfigError):
            load_settings({"analysis": {"buffer_m": "wide"}})

    def test_bool_must_be_bool(self):
        with pytest.raises(ConfigError):
            load_settings({"analysis": {"coarse_best_effort": "yes"}})

    def test_inverted_year_range(self):
        with pytest.raises(ConfigError):
            load_settings({"analysis": {"year_start": 2018, "year_end": 2008}})

    def test_bad_month(self):
        with pytest.raises(ConfigError):
            load_settings({"seasons": [{"year": 2016, "month": 13, "name": "x"}]})

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            load_settings({"analysis": {"max_workers": 0}})
