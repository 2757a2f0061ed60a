"""Configuration management and validation service."""

import os
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field

import yaml

from ..models.database import DEFAULT_DATABASE_URL
from .coin_registry import COIN_TABLE, CoinRegistry
from .freshness import FreshnessPolicy
from .logging_service import DEFAULT_LOG_FORMAT

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "MININGSTATS_CONFIG"

# Secrets may live in the YAML file or in the environment
SECRET_ENV_FALLBACKS = {
    "nownodes_api_key": "NOWNODES_API_KEY",
    "minerstat_api_key": "MINERSTAT_API_KEY",
    "ingestion_secret": "CRON_SECRET",
}

CACHE_KEYS = ("mining_stats", "prices", "coins", "pools", "hardware")

DEFAULT_TIERS = {
    "mining_stats": (1, 6),
    "prices": (2, 24),
    "coins": (4, 24),
    "pools": (24, 168),
    "hardware": (168, 720),
}


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    path: str
    message: str


class ConfigValidationException(Exception):
    """Raised when config validation fails."""

    def __init__(self, errors: List[ConfigValidationError]):
        self.errors = errors
        messages = [f"{e.path}: {e.message}" for e in errors]
        super().__init__("Configuration validation failed:\n" + "\n".join(messages))


_TIER_SCHEMA = {
    "type": "dict",
    "properties": {
        "fresh_hours": {"type": "float", "min": 0.01},
        "expired_hours": {"type": "float", "min": 0.01},
    },
}

CONFIG_SCHEMA = {
    "server": {
        "type": "dict",
        "properties": {
            "name": {"type": "str"},
            "version": {"type": "str"},
        }
    },
    "logging": {
        "type": "dict",
        "properties": {
            "level": {"type": "str", "options": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
            "format": {"type": "str"},
            "ingestion_log_dir": {"type": "str"},
        }
    },
    "storage": {
        "type": "dict",
        "properties": {
            "backend": {"type": "str", "options": ["file", "memory", "database"]},
            "cache_dir": {"type": "str"},
            "database_url": {"type": "str"},
        }
    },
    "http": {
        "type": "dict",
        "properties": {
            "timeout_seconds": {"type": "float", "min": 0.1, "max": 120},
        }
    },
    "cache": {
        "type": "dict",
        "properties": dict(
            {"background_refresh": {"type": "bool"}},
            **{key: _TIER_SCHEMA for key in CACHE_KEYS}
        ),
    },
    "credentials": {
        "type": "dict",
        "properties": {
            "nownodes_api_key": {"type": "str"},
            "minerstat_api_key": {"type": "str"},
        }
    },
    "ingestion": {
        "type": "dict",
        "properties": {
            "secret": {"type": "str"},
        }
    },
    # Per-coin constant overrides, keyed by symbol
    "coins": {
        "type": "dict",
        "keys": list(COIN_TABLE),
        "values": {
            "type": "dict",
            "properties": {
                "block_reward": {"type": "float", "min": 0},
                "block_time": {"type": "float", "min": 0.01},
            },
        },
    },
}


@dataclass
class TierSettings:
    """Freshness boundaries for one cache key, in hours."""
    fresh_hours: float
    expired_hours: float

    def policy(self) -> FreshnessPolicy:
        return FreshnessPolicy.from_hours(self.fresh_hours, self.expired_hours)


def _default_tiers() -> Dict[str, TierSettings]:
    return {key: TierSettings(*hours) for key, hours in DEFAULT_TIERS.items()}


@dataclass
class Settings:
    """Typed view over the validated configuration."""
    service_name: str = "miningstats"
    version: str = "1.0.0"
    log_level: str = "INFO"
    log_format: str = DEFAULT_LOG_FORMAT
    ingestion_log_dir: str = "logs"
    storage_backend: str = "file"
    cache_dir: str = str(Path(tempfile.gettempdir()) / "miningstats")
    database_url: str = DEFAULT_DATABASE_URL
    http_timeout_seconds: float = 8.0
    background_refresh: bool = False
    tiers: Dict[str, TierSettings] = field(default_factory=_default_tiers)
    nownodes_api_key: Optional[str] = None
    minerstat_api_key: Optional[str] = None
    ingestion_secret: Optional[str] = None
    coin_overrides: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def policy(self, key: str) -> FreshnessPolicy:
        return self.tiers[key].policy()

    def registry(self) -> CoinRegistry:
        return CoinRegistry().with_overrides(self.coin_overrides)


class ConfigService:
    """Service for loading and validating configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config service.

        Args:
            config_path: Path to config file. If None, uses $MININGSTATS_CONFIG
                or config.yaml in the backend directory.
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_PATH_ENV)
        if config_path is None:
            backend_dir = Path(__file__).parent.parent.parent
            config_path = str(backend_dir / "config.yaml")

        self.config_path = config_path
        self._config: Dict[str, Any] = {}

    def load_and_validate(self) -> Dict[str, Any]:
        """Load and validate the configuration file.

        Returns:
            Validated configuration dictionary (empty when no file exists).

        Raises:
            ConfigValidationException: If validation fails.
        """
        if not os.path.exists(self.config_path):
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._config = {}
            return self._config

        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationException([
                ConfigValidationError(path="", message=f"Invalid YAML syntax: {e}")
            ])

        self._config = self.validate(config if config is not None else {})
        logger.info(f"Configuration loaded and validated from {self.config_path}")
        return self._config

    def validate(self, config: Any) -> Dict[str, Any]:
        """Validate an already-parsed config mapping.

        Raises:
            ConfigValidationException: If validation fails.
        """
        if not isinstance(config, dict):
            raise ConfigValidationException([ConfigValidationError(
                path="",
                message=f"Config must be a dictionary, got {type(config).__name__}"
            )])

        errors = self._validate_properties(config, CONFIG_SCHEMA, "")
        errors.extend(self._validate_tiers(config))
        if errors:
            raise ConfigValidationException(errors)
        return config

    def _validate_properties(
        self,
        data: Dict[str, Any],
        properties: Dict[str, Any],
        path: str
    ) -> List[ConfigValidationError]:
        errors = []
        for key, value in data.items():
            current_path = f"{path}.{key}" if path else key
            if key not in properties:
                errors.append(ConfigValidationError(current_path, f"Unknown configuration key '{key}'"))
                continue
            errors.extend(self._validate_value(value, properties[key], current_path))
        return errors

    def _validate_value(self, value: Any, schema: Dict[str, Any], path: str) -> List[ConfigValidationError]:
        expected_type = schema.get("type")

        if expected_type == "dict":
            if not isinstance(value, dict):
                return [ConfigValidationError(path, f"Expected dict, got {type(value).__name__}")]
            if "properties" in schema:
                return self._validate_properties(value, schema["properties"], path)
            errors = []
            for key, item in value.items():
                item_path = f"{path}.{key}"
                if "keys" in schema and key not in schema["keys"]:
                    errors.append(ConfigValidationError(item_path, f"Unknown key '{key}'"))
                    continue
                errors.extend(self._validate_value(item, schema["values"], item_path))
            return errors

        type_map = {
            "str": str,
            "float": (int, float),
            "bool": bool,
        }
        expected = type_map[expected_type]
        # bool is an int subclass; do not accept it for numbers
        if not isinstance(value, expected) or (expected_type == "float" and isinstance(value, bool)):
            return [ConfigValidationError(path, f"Expected {expected_type}, got {type(value).__name__}")]

        errors = []
        if expected_type == "float":
            if "min" in schema and value < schema["min"]:
                errors.append(ConfigValidationError(path, f"Value {value} is below minimum {schema['min']}"))
            if "max" in schema and value > schema["max"]:
                errors.append(ConfigValidationError(path, f"Value {value} is above maximum {schema['max']}"))
        if "options" in schema and value not in schema["options"]:
            errors.append(ConfigValidationError(
                path, f"Value '{value}' not in allowed options: {schema['options']}"
            ))
        return errors

    def _validate_tiers(self, config: Dict[str, Any]) -> List[ConfigValidationError]:
        errors = []
        cache = config.get("cache")
        if not isinstance(cache, dict):
            return errors
        for key in CACHE_KEYS:
            tier = cache.get(key)
            if not isinstance(tier, dict):
                continue
            default_fresh, default_expired = DEFAULT_TIERS[key]
            fresh = tier.get("fresh_hours", default_fresh)
            expired = tier.get("expired_hours", default_expired)
            if isinstance(fresh, (int, float)) and isinstance(expired, (int, float)) and expired < fresh:
                errors.append(ConfigValidationError(
                    f"cache.{key}", f"expired_hours ({expired}) is below fresh_hours ({fresh})"
                ))
        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Dot-notation key (e.g., "storage.backend")
            default: Default value if not found
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def settings(self, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build typed settings from the loaded config plus environment secrets."""
        environ = os.environ if environ is None else environ
        defaults = Settings()

        tiers = _default_tiers()
        for key in CACHE_KEYS:
            tiers[key] = TierSettings(
                fresh_hours=self.get(f"cache.{key}.fresh_hours", tiers[key].fresh_hours),
                expired_hours=self.get(f"cache.{key}.expired_hours", tiers[key].expired_hours),
            )

        secrets = {
            "nownodes_api_key": self.get("credentials.nownodes_api_key"),
            "minerstat_api_key": self.get("credentials.minerstat_api_key"),
            "ingestion_secret": self.get("ingestion.secret"),
        }
        for name, env_name in SECRET_ENV_FALLBACKS.items():
            if not secrets[name]:
                secrets[name] = environ.get(env_name) or None

        return Settings(
            service_name=self.get("server.name", defaults.service_name),
            version=self.get("server.version", defaults.version),
            log_level=self.get("logging.level", defaults.log_level),
            log_format=self.get("logging.format", defaults.log_format),
            ingestion_log_dir=self.get("logging.ingestion_log_dir", defaults.ingestion_log_dir),
            storage_backend=self.get("storage.backend", defaults.storage_backend),
            cache_dir=self.get("storage.cache_dir", defaults.cache_dir),
            database_url=self.get("storage.database_url", defaults.database_url),
            http_timeout_seconds=self.get("http.timeout_seconds", defaults.http_timeout_seconds),
            background_refresh=self.get("cache.background_refresh", defaults.background_refresh),
            tiers=tiers,
            coin_overrides=dict(self.get("coins", {})),
            **secrets,
        )
