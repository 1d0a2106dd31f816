"""
Configuration Management for tts-relay.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (TTS_RELAY_STORAGE_DIR, GOOGLE_TTS_API_KEY, etc.)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    storage:
      base_dir: ./temp-storage
      max_file_size: 52428800

    orchestrator:
      probe_timeout_s: 2.0

    providers:
      google:
        api_key: "..."
        timeout_s: 3.0
      mock:
        enabled: false

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """
    Raised when configuration validation fails.

    This exception is thrown when a configuration value is outside
    acceptable bounds or of the wrong type.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    All default values are defined here to ensure consistency across
    the codebase. These values are used when no override is provided
    via YAML config or environment variables.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Storage Settings
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./temp-storage"     # Audio blobs + sidecar metadata
    STORAGE_MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MiB ceiling per audio file

    # ─────────────────────────────────────────────────────────────────────────
    # Orchestrator
    # ─────────────────────────────────────────────────────────────────────────
    MAX_CONTENT_LENGTH = 2000       # Characters accepted per conversion
    PROBE_TIMEOUT_S = 2.0           # Availability probe budget (all providers)

    # ─────────────────────────────────────────────────────────────────────────
    # Audio Settings
    # ─────────────────────────────────────────────────────────────────────────
    AUDIO_VOLUME = 75               # 0-100
    AUDIO_PLAYBACK_SPEED = 1.0      # 0.8-1.5
    AUDIO_MIN_SPEED = 0.8
    AUDIO_MAX_SPEED = 1.5

    # ─────────────────────────────────────────────────────────────────────────
    # Providers (name -> priority, attempt timeout)
    # ─────────────────────────────────────────────────────────────────────────
    PROVIDER_DEFAULTS: Dict[str, Dict[str, Any]] = {
        "ttsmp3": {"priority": 1.5, "timeout_s": 20.0},
        "google": {"priority": 2, "timeout_s": 3.0},
        "voicerss": {"priority": 3, "timeout_s": 30.0},
        "mock": {"priority": 10, "timeout_s": 5.0},
    }
    PROVIDER_TIMEOUT_S = 10.0       # Fallback for providers without defaults

    # ─────────────────────────────────────────────────────────────────────────
    # Cleanup
    # ─────────────────────────────────────────────────────────────────────────
    CLEANUP_ENABLED = True
    CLEANUP_INTERVAL_S = 3600           # Sweep once an hour
    CLEANUP_STATUS_MAX_AGE_MINUTES = 60 # Conversion status retention
    CLEANUP_STORAGE_MAX_AGE_HOURS = 24  # Audio file retention

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 60     # Characters to show in text preview
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG

    # ─────────────────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────────────────
    SERVER_ENVIRONMENT = "production"   # "development" exposes tracebacks
    SERVER_PUBLIC_BASE_URL = ""         # Prefix for returned audio URLs


@dataclass
class StorageConfig:
    """
    Disk storage configuration for generated audio.

    Audio survives restarts; the in-memory conversion table does not.
    """
    base_dir: str = Defaults.STORAGE_BASE_DIR
    max_file_size: int = Defaults.STORAGE_MAX_FILE_SIZE


@dataclass
class OrchestratorConfig:
    """Limits for the conversion orchestrator."""
    max_content_length: int = Defaults.MAX_CONTENT_LENGTH
    probe_timeout_s: float = Defaults.PROBE_TIMEOUT_S


@dataclass
class ProviderConfig:
    """
    Per-provider configuration.

    priority orders the failover chain (lower first); timeout_s bounds a
    single conversion attempt.
    """
    name: str
    enabled: bool = True
    priority: float = 100.0
    timeout_s: float = Defaults.PROVIDER_TIMEOUT_S
    api_key: str = ""
    base_url: Optional[str] = None


@dataclass
class CleanupConfig:
    """Background sweep schedule and retention windows."""
    enabled: bool = Defaults.CLEANUP_ENABLED
    interval_s: float = Defaults.CLEANUP_INTERVAL_S
    status_max_age_minutes: float = Defaults.CLEANUP_STATUS_MAX_AGE_MINUTES
    storage_max_age_hours: float = Defaults.CLEANUP_STORAGE_MAX_AGE_HOURS


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Conversion lifecycle, provider outcomes (default)
        3 = VERBOSE: Probe results, per-attempt timing
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServerConfig:
    """HTTP layer settings."""
    environment: str = Defaults.SERVER_ENVIRONMENT
    public_base_url: str = Defaults.SERVER_PUBLIC_BASE_URL

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev")


@dataclass
class RelayConfig:
    """
    Validated configuration for the whole service.

    This is the main configuration object created from Settings.
    It validates all values and provides typed access to configuration.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = RelayConfig.from_settings(settings)
        print(config.storage.base_dir)  # Typed access
    """
    storage: StorageConfig = field(default_factory=StorageConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RelayConfig":
        """
        Create RelayConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated RelayConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Storage configuration
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            base_dir=str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
            max_file_size=int(storage_raw.get("max_file_size", Defaults.STORAGE_MAX_FILE_SIZE)),
        )
        cls._validate_positive("storage.max_file_size", storage.max_file_size)

        # ─────────────────────────────────────────────────────────────────────
        # Orchestrator configuration
        # ─────────────────────────────────────────────────────────────────────
        orch_raw = raw.get("orchestrator", {}) or {}
        orchestrator = OrchestratorConfig(
            max_content_length=int(orch_raw.get("max_content_length", Defaults.MAX_CONTENT_LENGTH)),
            probe_timeout_s=float(orch_raw.get("probe_timeout_s", Defaults.PROBE_TIMEOUT_S)),
        )
        cls._validate_positive("orchestrator.max_content_length", orchestrator.max_content_length)
        cls._validate_positive("orchestrator.probe_timeout_s", orchestrator.probe_timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Provider configuration (known providers always get an entry)
        # ─────────────────────────────────────────────────────────────────────
        providers_raw = raw.get("providers", {}) or {}
        providers: Dict[str, ProviderConfig] = {}
        names = list(Defaults.PROVIDER_DEFAULTS) + [n for n in providers_raw if n not in Defaults.PROVIDER_DEFAULTS]
        for name in names:
            defaults = Defaults.PROVIDER_DEFAULTS.get(name, {})
            p_raw = providers_raw.get(name, {}) or {}
            cfg = ProviderConfig(
                name=name,
                enabled=bool(p_raw.get("enabled", True)),
                priority=float(p_raw.get("priority", defaults.get("priority", 100.0))),
                timeout_s=float(p_raw.get("timeout_s", defaults.get("timeout_s", Defaults.PROVIDER_TIMEOUT_S))),
                api_key=str(p_raw.get("api_key") or ""),
                base_url=p_raw.get("base_url"),
            )
            cls._validate_positive(f"providers.{name}.timeout_s", cfg.timeout_s)
            providers[name] = cfg

        # ─────────────────────────────────────────────────────────────────────
        # Cleanup configuration
        # ─────────────────────────────────────────────────────────────────────
        cleanup_raw = raw.get("cleanup", {}) or {}
        cleanup = CleanupConfig(
            enabled=bool(cleanup_raw.get("enabled", Defaults.CLEANUP_ENABLED)),
            interval_s=float(cleanup_raw.get("interval_s", Defaults.CLEANUP_INTERVAL_S)),
            status_max_age_minutes=float(
                cleanup_raw.get("status_max_age_minutes", Defaults.CLEANUP_STATUS_MAX_AGE_MINUTES)
            ),
            storage_max_age_hours=float(
                cleanup_raw.get("storage_max_age_hours", Defaults.CLEANUP_STORAGE_MAX_AGE_HOURS)
            ),
        )
        cls._validate_positive("cleanup.interval_s", cleanup.interval_s)
        cls._validate_non_negative("cleanup.status_max_age_minutes", cleanup.status_max_age_minutes)
        cls._validate_non_negative("cleanup.storage_max_age_hours", cleanup.storage_max_age_hours)

        # ─────────────────────────────────────────────────────────────────────
        # Logging configuration
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # Handle string log levels (e.g., "INFO", "DEBUG")
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        # ─────────────────────────────────────────────────────────────────────
        # Server configuration
        # ─────────────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {}) or {}
        server = ServerConfig(
            environment=str(server_raw.get("environment", Defaults.SERVER_ENVIRONMENT)),
            public_base_url=str(server_raw.get("public_base_url") or "").rstrip("/"),
        )

        return cls(
            storage=storage,
            orchestrator=orchestrator,
            providers=providers,
            cleanup=cleanup,
            logging=logging_cfg,
            server=server,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within a range [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_config() to get a validated RelayConfig.

    Attributes:
        raw: Dictionary of raw configuration values.
    """
    raw: Dict[str, Any]

    def get_config(self) -> RelayConfig:
        """
        Get validated RelayConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return RelayConfig.from_settings(self)


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return raw[name] as a dict, replacing an empty YAML section."""
    section = raw.get(name) or {}
    raw[name] = section
    return section


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    storage_dir = os.getenv("TTS_RELAY_STORAGE_DIR")
    if storage_dir:
        _section(raw, "storage")["base_dir"] = storage_dir

    max_size = os.getenv("TTS_RELAY_MAX_FILE_SIZE")
    if max_size:
        try:
            _section(raw, "storage")["max_file_size"] = int(max_size)
        except ValueError:
            raise ConfigValidationError(f"TTS_RELAY_MAX_FILE_SIZE must be an integer, got {max_size!r}")

    env = os.getenv("TTS_RELAY_ENV")
    if env:
        _section(raw, "server")["environment"] = env

    # Provider credentials usually come from the environment, not the YAML
    for name, var in (("google", "GOOGLE_TTS_API_KEY"), ("voicerss", "VOICERSS_API_KEY")):
        key = os.getenv(var)
        if key:
            providers = _section(raw, "providers")
            entry = providers.get(name) or {}
            entry["api_key"] = key
            providers[name] = entry


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - TTS_RELAY_STORAGE_DIR: storage.base_dir
        - TTS_RELAY_MAX_FILE_SIZE: storage.max_file_size
        - TTS_RELAY_ENV: server.environment
        - GOOGLE_TTS_API_KEY: providers.google.api_key
        - VOICERSS_API_KEY: providers.voicerss.api_key

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    _apply_env_overrides(raw)
    return Settings(raw=raw)


def load_settings_or_default(path: Optional[str] = None) -> Settings:
    """
    Load settings, falling back to built-in defaults when the file is absent.

    The path defaults to $TTS_RELAY_SETTINGS or config/settings.yaml.
    """
    path = path or os.getenv("TTS_RELAY_SETTINGS", "config/settings.yaml")
    try:
        return load_settings(path)
    except FileNotFoundError:
        raw: Dict[str, Any] = {}
        _apply_env_overrides(raw)
        return Settings(raw=raw)
