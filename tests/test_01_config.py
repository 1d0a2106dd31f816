"""
Tests for configuration validation and defaults.

Tests cover:
- RelayConfig.from_settings() - all sections
- Defaults class values and provider defaults
- ConfigValidationError on invalid values
- String log level coercion ("DEBUG" -> 4)
- Environment variable overrides
- load_settings_or_default() fallback
"""

import pytest

from tts_relay.core.config import (
    ConfigValidationError,
    Defaults,
    RelayConfig,
    Settings,
    load_settings,
    load_settings_or_default,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_storage_defaults(self):
        assert Defaults.STORAGE_BASE_DIR == "./temp-storage"
        assert Defaults.STORAGE_MAX_FILE_SIZE == 50 * 1024 * 1024

    def test_content_limit(self):
        assert Defaults.MAX_CONTENT_LENGTH == 2000

    def test_audio_defaults(self):
        assert Defaults.AUDIO_VOLUME == 75
        assert Defaults.AUDIO_PLAYBACK_SPEED == 1.0
        assert (Defaults.AUDIO_MIN_SPEED, Defaults.AUDIO_MAX_SPEED) == (0.8, 1.5)

    def test_provider_chain_defaults(self):
        """Known providers keep their failover order and attempt timeouts."""
        d = Defaults.PROVIDER_DEFAULTS
        assert d["ttsmp3"] == {"priority": 1.5, "timeout_s": 20.0}
        assert d["google"] == {"priority": 2, "timeout_s": 3.0}
        assert d["voicerss"] == {"priority": 3, "timeout_s": 30.0}
        assert d["mock"]["priority"] == 10


class TestFromSettings:
    """Tests for RelayConfig.from_settings()."""

    def test_empty_settings_use_defaults(self):
        config = Settings(raw={}).get_config()
        assert config.storage.base_dir == Defaults.STORAGE_BASE_DIR
        assert config.orchestrator.max_content_length == 2000
        assert config.cleanup.enabled is True
        assert config.logging.level == 2
        assert config.server.is_development is False

    def test_every_known_provider_gets_an_entry(self):
        config = Settings(raw={}).get_config()
        assert set(config.providers) == {"ttsmp3", "google", "voicerss", "mock"}
        assert config.providers["google"].timeout_s == 3.0
        assert config.providers["google"].api_key == ""

    def test_provider_overrides(self):
        raw = {"providers": {"google": {"api_key": "k", "priority": 0.5}, "mock": {"enabled": False}}}
        config = Settings(raw=raw).get_config()
        assert config.providers["google"].api_key == "k"
        assert config.providers["google"].priority == 0.5
        assert config.providers["mock"].enabled is False

    def test_unknown_provider_is_kept_for_the_factory(self):
        config = Settings(raw={"providers": {"acme": {"timeout_s": 4}}}).get_config()
        assert config.providers["acme"].timeout_s == 4.0
        assert config.providers["acme"].priority == 100.0

    def test_empty_yaml_sections(self):
        """`storage:` with no body parses as None and must not crash."""
        config = Settings(raw={"storage": None, "providers": None, "cleanup": None}).get_config()
        assert config.storage.max_file_size == Defaults.STORAGE_MAX_FILE_SIZE

    def test_public_base_url_trailing_slash_removed(self):
        config = Settings(raw={"server": {"public_base_url": "https://tts.example.com/"}}).get_config()
        assert config.server.public_base_url == "https://tts.example.com"

    def test_development_environment(self):
        config = Settings(raw={"server": {"environment": "development"}}).get_config()
        assert config.server.is_development is True

    @pytest.mark.parametrize("name,expected", [("DEBUG", 4), ("verbose", 3), ("INFO", 2), ("minimal", 1)])
    def test_string_log_levels(self, name, expected):
        config = Settings(raw={"logging": {"level": name}}).get_config()
        assert config.logging.level == expected


class TestValidation:
    """ConfigValidationError on out-of-range values."""

    @pytest.mark.parametrize("raw", [
        {"storage": {"max_file_size": 0}},
        {"orchestrator": {"probe_timeout_s": 0}},
        {"orchestrator": {"max_content_length": -1}},
        {"providers": {"google": {"timeout_s": 0}}},
        {"cleanup": {"interval_s": 0}},
        {"cleanup": {"storage_max_age_hours": -1}},
        {"logging": {"level": 9}},
    ])
    def test_invalid_values_rejected(self, raw):
        with pytest.raises(ConfigValidationError):
            RelayConfig.from_settings(Settings(raw=raw))

    def test_error_names_the_field(self):
        with pytest.raises(ConfigValidationError, match="cleanup.interval_s"):
            Settings(raw={"cleanup": {"interval_s": -5}}).get_config()


class TestLoadSettings:
    """YAML loading and environment overrides."""

    def test_load_yaml(self, tmp_path):
        p = tmp_path / "settings.yaml"
        p.write_text("storage:\n  base_dir: /data/audio\nserver:\n  environment: dev\n", encoding="utf-8")
        config = load_settings(str(p)).get_config()
        assert config.storage.base_dir == "/data/audio"
        assert config.server.environment == "dev"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_missing_file_falls_back_to_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TTS_RELAY_STORAGE_DIR", raising=False)
        config = load_settings_or_default(str(tmp_path / "nope.yaml")).get_config()
        assert config.storage.base_dir == Defaults.STORAGE_BASE_DIR

    def test_env_overrides(self, tmp_path, monkeypatch):
        p = tmp_path / "settings.yaml"
        p.write_text("storage:\n  base_dir: ./from-yaml\n", encoding="utf-8")
        monkeypatch.setenv("TTS_RELAY_STORAGE_DIR", "/from/env")
        monkeypatch.setenv("GOOGLE_TTS_API_KEY", "secret")
        monkeypatch.setenv("TTS_RELAY_ENV", "development")

        config = load_settings(str(p)).get_config()
        assert config.storage.base_dir == "/from/env"
        assert config.providers["google"].api_key == "secret"
        assert config.server.is_development is True

    def test_bad_integer_env_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TTS_RELAY_MAX_FILE_SIZE", "lots")
        with pytest.raises(ConfigValidationError):
            load_settings_or_default(str(tmp_path / "nope.yaml"))
