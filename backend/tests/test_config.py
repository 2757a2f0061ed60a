"""Tests for configuration loading and validation."""

import pytest

from miningstats.services.config import ConfigService, ConfigValidationException, Settings
from miningstats.services.freshness import FreshnessPolicy


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return ConfigService(config_path=str(path))


class TestLoading:

    def test_missing_file_uses_defaults(self, tmp_path):
        service = ConfigService(config_path=str(tmp_path / "absent.yaml"))
        assert service.load_and_validate() == {}

        settings = service.settings(environ={})
        assert settings.storage_backend == "file"
        assert settings.http_timeout_seconds == 8.0
        assert settings.policy("coins") == FreshnessPolicy.from_hours(4, 24)
        assert settings.policy("hardware") == FreshnessPolicy.from_hours(168, 720)
        assert settings.nownodes_api_key is None

    def test_empty_file(self, tmp_path):
        assert write_config(tmp_path, "").load_and_validate() == {}

    def test_path_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MININGSTATS_CONFIG", str(tmp_path / "custom.yaml"))
        assert ConfigService().config_path == str(tmp_path / "custom.yaml")

    def test_full_config(self, tmp_path):
        service = write_config(tmp_path, """
server:
  name: stats-eu
logging:
  level: DEBUG
storage:
  backend: database
  database_url: sqlite+aiosqlite:///./test.db
http:
  timeout_seconds: 3
cache:
  background_refresh: true
  coins:
    fresh_hours: 2
    expired_hours: 12
credentials:
  nownodes_api_key: from-file
ingestion:
  secret: s3cret
coins:
  LTC:
    block_reward: 3.125
""")
        service.load_and_validate()
        settings = service.settings(environ={"NOWNODES_API_KEY": "from-env"})

        assert settings.service_name == "stats-eu"
        assert settings.log_level == "DEBUG"
        assert settings.storage_backend == "database"
        assert settings.http_timeout_seconds == 3
        assert settings.background_refresh is True
        assert settings.policy("coins") == FreshnessPolicy.from_hours(2, 12)
        assert settings.policy("pools") == FreshnessPolicy.from_hours(24, 168)
        assert settings.nownodes_api_key == "from-file"
        assert settings.ingestion_secret == "s3cret"
        assert settings.registry().get("LTC").block_reward == 3.125
        assert service.get("storage.backend") == "database"
        assert service.get("storage.missing", "x") == "x"


class TestSecrets:

    def test_environment_fallback(self, tmp_path):
        service = write_config(tmp_path, "credentials:\n  nownodes_api_key: ''\n")
        service.load_and_validate()
        settings = service.settings(environ={
            "NOWNODES_API_KEY": "n-env",
            "MINERSTAT_API_KEY": "m-env",
            "CRON_SECRET": "c-env",
        })

        assert settings.nownodes_api_key == "n-env"
        assert settings.minerstat_api_key == "m-env"
        assert settings.ingestion_secret == "c-env"

    def test_blank_environment_is_unset(self, tmp_path):
        service = ConfigService(config_path=str(tmp_path / "absent.yaml"))
        service.load_and_validate()
        assert service.settings(environ={"CRON_SECRET": ""}).ingestion_secret is None


class TestValidation:

    @pytest.mark.parametrize("text, path", [
        ("unknown_section: 1", "unknown_section"),
        ("storage:\n  backend: redis", "storage.backend"),
        ("http:\n  timeout_seconds: 0", "http.timeout_seconds"),
        ("http:\n  timeout_seconds: fast", "http.timeout_seconds"),
        ("cache:\n  background_refresh: 1", "cache.background_refresh"),
        ("cache:\n  coins:\n    fresh_hours: 8\n    expired_hours: 2", "cache.coins"),
        ("cache:\n  pools:\n    expired_hours: 1", "cache.pools"),
        ("coins:\n  FOO:\n    block_reward: 1", "coins.FOO"),
        ("coins:\n  BTC:\n    algorithm: scrypt", "coins.BTC.algorithm"),
        ("logging:\n  level: LOUD", "logging.level"),
    ])
    def test_invalid_values(self, tmp_path, text, path):
        with pytest.raises(ConfigValidationException) as exc_info:
            write_config(tmp_path, text).load_and_validate()
        assert path in [error.path for error in exc_info.value.errors]

    def test_boolean_is_not_a_number(self, tmp_path):
        with pytest.raises(ConfigValidationException):
            write_config(tmp_path, "http:\n  timeout_seconds: true").load_and_validate()

    def test_all_errors_reported(self, tmp_path):
        with pytest.raises(ConfigValidationException) as exc_info:
            write_config(tmp_path, "storage:\n  backend: redis\nhttp:\n  timeout_seconds: 500").load_and_validate()
        assert len(exc_info.value.errors) == 2

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigValidationException) as exc_info:
            write_config(tmp_path, "storage: [unclosed").load_and_validate()
        assert "Invalid YAML" in str(exc_info.value)

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ConfigValidationException):
            write_config(tmp_path, "- a\n- b").load_and_validate()


def test_settings_defaults_are_independent():
    first, second = Settings(), Settings()
    first.tiers["coins"].fresh_hours = 99
    assert second.tiers["coins"].fresh_hours == 4
