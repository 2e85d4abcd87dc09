"""
Unit tests for settings and YAML config loading.
"""

import pytest

from request_bot_detection.config import (
    BotDetectionSettings,
    Settings,
    get_settings,
    load_route_manifest,
    load_yaml_file,
)


class TestBotDetectionSettings:
    """Tests for detection thresholds."""

    def test_defaults_are_valid(self, settings):
        assert settings.validate() == []
        assert settings.window_seconds == 3600
        assert settings.min_requests_for_analysis == 5
        assert settings.suspicious_referers == []

    def test_default_tables_are_copies(self):
        """Mutating one instance's tables does not leak into another."""
        first = BotDetectionSettings()
        first.suspicious_device_patterns["android"]["devices"].append("Nexus")

        assert "Nexus" not in BotDetectionSettings().suspicious_device_patterns[
            "android"
        ]["devices"]

    def test_from_dict_overrides(self):
        result = BotDetectionSettings.from_dict(
            {"window_seconds": "600", "suspicious_referers": ["indeed"]}
        )

        assert result.window_seconds == 600
        assert result.suspicious_referers == ["indeed"]
        assert result.entropy_threshold == 4.5

    def test_from_dict_lowercases_device_pattern_keys(self):
        """OS names are matched lower-cased, so config keys are normalized."""
        result = BotDetectionSettings.from_dict(
            {
                "suspicious_device_patterns": {
                    "Android": {
                        "versions": ["4.4"],
                        "devices": ["GT-I9300"],
                        "max_requests_per_minute": 10,
                    }
                }
            }
        )

        assert list(result.suspicious_device_patterns) == ["android"]
        assert result.validate() == []

    def test_validation_errors(self):
        errors = BotDetectionSettings(
            window_seconds=0,
            suspicious_frequency_multiplier=1.5,
            suspicious_device_patterns={"android": {"versions": ["4.4"]}},
        ).validate()

        assert any("window_seconds" in e for e in errors)
        assert any("suspicious_frequency_multiplier" in e for e in errors)
        assert any("missing 'devices'" in e for e in errors)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BOT_DETECTION_MIN_REQUESTS", "8")
        monkeypatch.setenv("BOT_DETECTION_SUSPICIOUS_REFERERS", "indeed, jobboard ,")
        monkeypatch.setenv("BOT_DETECTION_ENTROPY_THRESHOLD", "not-a-number")

        result = BotDetectionSettings.from_env()

        assert result.min_requests_for_analysis == 8
        assert result.suspicious_referers == ["indeed", "jobboard"]
        assert result.entropy_threshold == 4.5

    def test_round_trips_through_dict(self):
        original = BotDetectionSettings(burst_max_interval=1.0)

        assert BotDetectionSettings.from_dict(original.to_dict()) == original


class TestSettings:
    """Tests for application settings."""

    def test_from_dict(self):
        result = Settings.from_dict(
            {
                "storage": {"sqlite_db_path": "/tmp/x.db"},
                "routes": {"manifest_path": "routes.yaml"},
                "bot_detection": {"min_requests_for_analysis": 3},
            }
        )

        assert result.sqlite_db_path == "/tmp/x.db"
        assert result.route_manifest_path == "routes.yaml"
        assert result.bot_detection.min_requests_for_analysis == 3

    def test_unsupported_backend(self):
        assert Settings(storage_backend="postgres").validate() == [
            "Only SQLite backend is supported in this version"
        ]

    def test_get_settings_from_yaml(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("storage:\n  sqlite_db_path: data/test.db\n")

        result = get_settings(str(config))

        assert result.sqlite_db_path == "data/test.db"
        assert get_settings(str(config)) is result

    def test_get_settings_falls_back_to_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SQLITE_DB_PATH", "env.db")

        result = get_settings(str(tmp_path / "missing.yaml"))

        assert result.sqlite_db_path == "env.db"

    def test_invalid_yaml_falls_back_to_env(self, tmp_path, monkeypatch):
        config = tmp_path / "config.yaml"
        config.write_text("- just\n- a list\n")
        monkeypatch.setenv("SQLITE_DB_PATH", "env.db")

        assert get_settings(str(config)).sqlite_db_path == "env.db"


class TestConfigLoader:
    """Tests for YAML file loading."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_yaml_file(path) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("key: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_yaml_file(path)

    def test_route_manifest_must_be_a_list(self, tmp_path):
        path = tmp_path / "routes.yaml"
        path.write_text("routes:\n  blog: {}\n")

        with pytest.raises(ValueError, match="must be a list"):
            load_route_manifest(path)

    def test_route_manifest_without_routes(self, tmp_path):
        path = tmp_path / "routes.yaml"
        path.write_text("other: 1\n")

        assert load_route_manifest(path) == []
