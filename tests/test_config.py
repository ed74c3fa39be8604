"""Tests for configuration module."""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

import switchyard.config as config_module
from switchyard.config import (
    Settings,
    _load_config_file,
    configure_logging,
    get_settings,
    reset_settings,
)


class TestSettingsDefaults:
    def test_policy_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.news_api_key is None
        assert settings.cache_backend == "memory"
        assert settings.ttl_weather == 1800
        assert settings.ttl_news == 3600
        assert settings.ttl_currency == 21600
        assert settings.session_limit == 50
        assert settings.user_limit == 100
        assert settings.address_limit == 500
        assert settings.block_seconds == 300
        assert settings.statistical_threshold == 0.6
        assert settings.classifier_weight == 0.7
        assert settings.entity_weight == 0.3

    def test_ttl_for_known_and_unknown_subtypes(self) -> None:
        settings = Settings()

        assert settings.ttl_for("weather") == 1800
        assert settings.ttl_for("time") == 0
        assert settings.ttl_for("horoscope") == 0


class TestSettingsFromEnvironment:
    def test_news_key_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SWITCHYARD_NEWS_API_KEY", "news_test_key")

        settings = Settings()

        assert settings.news_api_key is not None
        assert settings.news_api_key.get_secret_value() == "news_test_key"
        assert settings.has_news_credentials() is True

    def test_limits_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SWITCHYARD_SESSION_LIMIT", "5")
        monkeypatch.setenv("SWITCHYARD_CACHE_BACKEND", "redis")

        settings = Settings()

        assert settings.session_limit == 5
        assert settings.cache_backend == "redis"


class TestSettingsFromConfigFile:
    def test_load_from_config_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text('news_api_key = "file_key"\nttl_weather = 60\n')

        config_data = _load_config_file(config_file)

        assert config_data == {"news_api_key": "file_key", "ttl_weather": 60}

    def test_missing_config_file_returns_empty(self, tmp_path: Path) -> None:
        assert _load_config_file(tmp_path / "nope.toml") == {}

    def test_invalid_config_file_returns_empty(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text("this is = = not toml")

        assert _load_config_file(config_file) == {}

    def test_settings_use_config_file_values(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text("ttl_weather = 60\nsession_limit = 7\n")
        monkeypatch.setattr(config_module, "CONFIG_FILE_PATH", config_file)

        settings = Settings()

        assert settings.ttl_weather == 60
        assert settings.session_limit == 7

    def test_env_overrides_config_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text("session_limit = 7\n")
        monkeypatch.setattr(config_module, "CONFIG_FILE_PATH", config_file)
        monkeypatch.setenv("SWITCHYARD_SESSION_LIMIT", "9")

        assert Settings().session_limit == 9


class TestSettingsRepr:
    def test_repr_masks_secrets(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SWITCHYARD_NEWS_API_KEY", "super_secret_value")

        settings = Settings()

        assert "super_secret_value" not in repr(settings)
        assert "super_secret_value" not in str(settings)
        assert "news_api_key=SecretStr('**********')" in repr(settings)


class TestSingleton:
    def test_get_settings_returns_same_instance(self) -> None:
        assert get_settings() is get_settings()

    def test_reset_settings_creates_new_instance(self) -> None:
        first = get_settings()
        reset_settings()

        assert get_settings() is not first


class TestConfigureLogging:
    def test_quiets_httpx(self) -> None:
        configure_logging("DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
