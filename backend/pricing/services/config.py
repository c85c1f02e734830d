"""Configuration management and validation service."""

import os
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)


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


def _section(**properties) -> Dict[str, Any]:
    return {"type": "dict", "properties": properties}


def _num(kind: str, minimum: float, maximum: Optional[float] = None) -> Dict[str, Any]:
    rule = {"type": kind, "min": minimum}
    if maximum is not None:
        rule["max"] = maximum
    return rule


STR = {"type": "str"}

RATE_LIMIT_SCHEMA = _section(
    burst_limit=_num("int", 1),
    burst_window_seconds=_num("float", 0),
    requests_per_minute=_num("int", 1),
    requests_per_hour=_num("int", 1),
)

# Every key is optional; anything missing takes the PricingSettings default
CONFIG_SCHEMA = {
    "server": _section(host=STR, port=_num("int", 1, 65535), debug={"type": "bool"}),
    "database": _section(url=STR),
    "pricing": _section(
        api_url=STR,
        auth_token=STR,
        service_key=STR,
        api_timeout_seconds=_num("float", 0),
        max_retries=_num("int", 1),
        base_retry_delay_seconds=_num("float", 0),
        max_retry_delay_seconds=_num("float", 0),
        retry_multiplier=_num("float", 1),
        fresh_threshold_seconds=_num("float", 0),
        stale_threshold_seconds=_num("float", 0),
        max_stale_age_seconds=_num("float", 0),
        historical_average_days=_num("int", 1),
        historical_average_limit=_num("int", 1),
        history_retention_days=_num("int", 1),
        batch_size=_num("int", 1),
        batch_delay_seconds=_num("float", 0),
        refresh_interval_seconds=_num("int", 1),
    ),
    # Keyed by upstream service key
    "rate_limits": {"type": "dict", "values": RATE_LIMIT_SCHEMA},
    "logging": _section(
        level={"type": "str", "options": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        format=STR,
        file=STR,
    ),
}

_SCALAR_TYPES = {
    "str": str,
    "int": int,
    "float": (int, float),
    "bool": bool,
}


@dataclass
class RateLimitConfig:
    """Admission limits for one upstream service."""
    burst_limit: int = 10
    burst_window_seconds: float = 10.0
    requests_per_minute: int = 100
    requests_per_hour: int = 1000


DEFAULT_RATE_LIMITS = {
    "GOOGLE_SCRIPT": RateLimitConfig(burst_limit=10, requests_per_minute=100, requests_per_hour=1000),
}


@dataclass
class PricingSettings:
    """Tunables for the price pipeline. Durations are in seconds."""
    api_url: str = "https://script.google.com/macros/s/quotes/exec"
    auth_token: Optional[str] = None
    service_key: str = "GOOGLE_SCRIPT"
    api_timeout_seconds: float = 30.0

    # Retry
    max_retries: int = 3
    base_retry_delay_seconds: float = 1.0
    max_retry_delay_seconds: float = 10.0
    retry_multiplier: float = 2.0

    # Staleness tiers
    fresh_threshold_seconds: float = 60 * 60
    stale_threshold_seconds: float = 24 * 60 * 60
    max_stale_age_seconds: float = 7 * 24 * 60 * 60

    # Historical average fallback
    historical_average_days: int = 30
    historical_average_limit: int = 100
    history_retention_days: int = 365

    # Bulk refresh
    batch_size: int = 10
    batch_delay_seconds: float = 1.0
    refresh_interval_seconds: int = 60 * 60

    rate_limits: Dict[str, RateLimitConfig] = field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS)
    )


class ConfigService:
    """Loads the YAML config, validates it and turns it into PricingSettings."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config service.

        Args:
            config_path: Path to config file. If None, uses PRICING_CONFIG or
                backend/config.yaml.
        """
        if config_path is None:
            config_path = os.environ.get("PRICING_CONFIG")
        if config_path is None:
            backend_dir = Path(__file__).parent.parent.parent
            config_path = str(backend_dir / "config.yaml")

        self.config_path = config_path
        self._config: Dict[str, Any] = {}

    def load_and_validate(self) -> Dict[str, Any]:
        """Load and validate the configuration file.

        A missing file is not an error; every setting has a default.

        Raises:
            ConfigValidationException: With every problem found, not just the first.
        """
        if not os.path.exists(self.config_path):
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._config = {}
            return self._config

        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationException([
                ConfigValidationError(path="", message=f"Invalid YAML syntax: {e}")
            ])

        if not isinstance(config, dict):
            raise ConfigValidationException([
                ConfigValidationError(
                    path="",
                    message=f"Config must be a dictionary, got {type(config).__name__}",
                )
            ])

        errors = self._check_mapping(config, CONFIG_SCHEMA, "")
        if errors:
            raise ConfigValidationException(errors)

        self._config = config
        logger.info(f"Configuration loaded and validated from {self.config_path}")
        return config

    def _check_mapping(
        self,
        data: Dict[str, Any],
        properties: Dict[str, Any],
        path: str,
    ) -> List[ConfigValidationError]:
        errors = []
        for key, value in data.items():
            key_path = f"{path}.{key}" if path else key
            rule = properties.get(key)
            if rule is None:
                errors.append(ConfigValidationError(key_path, f"Unknown configuration key '{key}'"))
            else:
                errors.extend(self._check_value(value, rule, key_path))
        return errors

    def _check_value(self, value: Any, rule: Dict[str, Any], path: str) -> List[ConfigValidationError]:
        kind = rule["type"]

        if kind == "dict":
            if not isinstance(value, dict):
                return [ConfigValidationError(path, f"Expected dict, got {type(value).__name__}")]
            if "properties" in rule:
                return self._check_mapping(value, rule["properties"], path)
            errors = []
            for key, item in value.items():
                errors.extend(self._check_value(item, rule["values"], f"{path}.{key}"))
            return errors

        # bool is an int subclass; reject it for numeric fields
        numeric = kind in ("int", "float")
        if not isinstance(value, _SCALAR_TYPES[kind]) or (numeric and isinstance(value, bool)):
            return [ConfigValidationError(path, f"Expected {kind}, got {type(value).__name__}")]

        errors = []
        if numeric and value < rule["min"]:
            errors.append(ConfigValidationError(path, f"Value {value} is below minimum {rule['min']}"))
        if numeric and "max" in rule and value > rule["max"]:
            errors.append(ConfigValidationError(path, f"Value {value} is above maximum {rule['max']}"))
        if "options" in rule and value not in rule["options"]:
            errors.append(ConfigValidationError(
                path, f"Value '{value}' not in allowed options: {rule['options']}"
            ))
        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Dot-notation key (e.g., "pricing.batch_size")
            default: Default value if not found
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def pricing_settings(self) -> PricingSettings:
        """Build PricingSettings from the loaded config, falling back to defaults."""
        settings = PricingSettings()

        for name, value in (self.get("pricing") or {}).items():
            setattr(settings, name, value)

        for service_key, limits in (self.get("rate_limits") or {}).items():
            base = DEFAULT_RATE_LIMITS.get(service_key, RateLimitConfig())
            settings.rate_limits[service_key] = RateLimitConfig(
                burst_limit=limits.get("burst_limit", base.burst_limit),
                burst_window_seconds=limits.get("burst_window_seconds", base.burst_window_seconds),
                requests_per_minute=limits.get("requests_per_minute", base.requests_per_minute),
                requests_per_hour=limits.get("requests_per_hour", base.requests_per_hour),
            )

        return settings


# Global config service instance
config_service = ConfigService()
