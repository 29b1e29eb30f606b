"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/coinwatch.db"


@dataclass
class PriceSourceConfig:
    """CoinGecko configuration."""

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: Optional[str] = None
    timeout_seconds: float = 10.0
    vs_currency: str = "usd"


@dataclass
class TelegramConfig:
    """Telegram bot configuration."""

    bot_token: str = ""
    poll_timeout_seconds: int = 30
    parse_mode: str = "HTML"


@dataclass
class ScheduleConfig:
    """Alert check schedule configuration."""

    alert_check_seconds: float = 60


@dataclass
class HealthConfig:
    """Health endpoint configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    require_coin_map: bool = False


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    price_source: PriceSourceConfig = field(default_factory=PriceSourceConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _section(config_dict: dict[str, Any], name: str) -> dict[str, Any]:
    """Get a section as a dict, treating a missing or empty section as {}."""
    section = config_dict.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigValidationError(f"Section '{name}' must be a mapping")
    # Empty strings left by unset ${VARS} fall back to defaults
    return {k: v for k, v in section.items() if v != ""}


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    # Check database path is provided
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    # Check alert interval
    schedule = config_dict.get("schedule") or {}
    interval = schedule.get("alert_check_seconds", ScheduleConfig.alert_check_seconds)
    try:
        interval = float(interval)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"Invalid alert_check_seconds: {interval}")
    if interval <= 0:
        raise ConfigValidationError("alert_check_seconds must be positive")

    # Check price timeout
    price_source = config_dict.get("price_source") or {}
    timeout = price_source.get("timeout_seconds", PriceSourceConfig.timeout_seconds)
    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"Invalid timeout_seconds: {timeout}")
    if timeout <= 0:
        raise ConfigValidationError("timeout_seconds must be positive")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        raise ConfigValidationError("Configuration root must be a mapping")

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    # Validate
    _validate_config(config_dict)

    try:
        database = DatabaseConfig(**_section(config_dict, "database"))

        price_dict = _section(config_dict, "price_source")
        if "timeout_seconds" in price_dict:
            price_dict["timeout_seconds"] = float(price_dict["timeout_seconds"])
        price_source = PriceSourceConfig(**price_dict)

        telegram = TelegramConfig(**_section(config_dict, "telegram"))

        sched_dict = _section(config_dict, "schedule")
        if "alert_check_seconds" in sched_dict:
            sched_dict["alert_check_seconds"] = float(sched_dict["alert_check_seconds"])
        schedule = ScheduleConfig(**sched_dict)

        health_dict = _section(config_dict, "health")
        if "port" in health_dict:
            health_dict["port"] = int(health_dict["port"])
        health = HealthConfig(**health_dict)

        advanced = AdvancedConfig(**_section(config_dict, "advanced"))
    except TypeError as e:
        # Unknown keys in a section
        raise ConfigValidationError(str(e)) from e
    except ValueError as e:
        raise ConfigValidationError(str(e)) from e

    return AppConfig(
        database=database,
        price_source=price_source,
        telegram=telegram,
        schedule=schedule,
        health=health,
        advanced=advanced,
    )
