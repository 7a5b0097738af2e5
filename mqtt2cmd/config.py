"""Configuration management with Pydantic validation.

Configuration is read from a YAML file. Environment variables fill in
values the file leaves unset (useful for Docker secrets), and string
values of the form ``${VAR}`` or ``$VAR`` are substituted from the
environment.
"""

import os
from pathlib import Path
from urllib.parse import urlsplit
from typing import Optional, Literal, List

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ConfigError
from .models.entities import (
    Entity,
    SwitchEntity,
    DisplayEntity,
    VCPCommand,
    RESERVED_NAME_CHARS,
)
from .models.registry import EntityRegistry
from .utils.duration import parse_duration

APP_NAME = "mqtt2cmd"

# Broker URL schemes accepted in place of a plain host name
BROKER_SCHEMES = ("tcp", "mqtt")


class MQTTConfig(BaseModel):
    """MQTT broker configuration."""

    host: str = Field(
        default="localhost",
        description="MQTT broker hostname or IP"
    )
    port: int = Field(
        default=1883,
        ge=1,
        le=65535,
        description="MQTT broker port"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username (optional)"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password (optional)"
    )
    qos: int = Field(
        default=1,
        ge=0,
        le=2,
        description="MQTT QoS level"
    )
    keepalive: int = Field(
        default=60,
        ge=5,
        description="Keep-alive interval in seconds"
    )
    reconnect_interval: float = Field(
        default=5.0,
        gt=0,
        description="Delay between reconnection attempts in seconds"
    )
    available_payload: str = Field(
        default="online",
        description="Availability payload for 'available'"
    )
    unavailable_payload: str = Field(
        default="offline",
        description="Availability payload for 'unavailable'"
    )

    @model_validator(mode="before")
    @classmethod
    def split_broker_url(cls, data):
        """Accept a broker URL such as tcp://host:1883 as the host.

        A port given in the URL replaces the configured port.
        """
        if not isinstance(data, dict):
            return data
        host = data.get("host")
        if not isinstance(host, str) or "://" not in host:
            return data

        url = urlsplit(host)
        if url.scheme not in BROKER_SCHEMES:
            raise ValueError(f"Unsupported broker URL scheme {url.scheme!r} (use tcp or mqtt)")
        if not url.hostname:
            raise ValueError(f"Broker URL {host!r} has no host")

        data = {**data, "host": url.hostname}
        if url.port is not None:
            data["port"] = url.port
        return data

    @field_validator("username", "password", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        """Convert empty strings to None."""
        if v == "":
            return None
        return v


class EngineConfig(BaseModel):
    """Synchronization engine timing."""

    refresh_period: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between refresh cycles"
    )
    settle_delay: float = Field(
        default=0.0,
        ge=0,
        description="Seconds to wait after toggle/SET before re-reading state"
    )
    command_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Maximum run time of a single command in seconds"
    )
    shell: str = Field(
        default="/bin/sh",
        description="Shell used to run commands"
    )

    @field_validator("refresh_period", "settle_delay", "command_timeout", mode="before")
    @classmethod
    def parse_seconds(cls, v):
        """Accept seconds or duration strings such as '10s'."""
        return parse_duration(v).total_seconds()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )
    file: Optional[Path] = Field(
        default=None,
        description="Log file path (optional)"
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v


class AppConfig(BaseModel):
    """Complete application configuration."""

    app_id: str = Field(
        default=APP_NAME,
        min_length=1,
        validation_alias=AliasChoices("app_id", "app-id"),
        description="Application ID, used as MQTT topic prefix"
    )
    mqtt: MQTTConfig = Field(
        default_factory=MQTTConfig,
        description="MQTT broker settings"
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Refresh and command timing"
    )
    switches: List[SwitchEntity] = Field(
        default_factory=list,
        description="Configured switches"
    )
    displays: List[DisplayEntity] = Field(
        default_factory=list,
        description="Configured displays"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging settings"
    )

    @field_validator("app_id")
    @classmethod
    def check_app_id(cls, v: str) -> str:
        """Reject IDs that would break topic structure."""
        for char in RESERVED_NAME_CHARS:
            if char in v:
                raise ValueError(f"app_id must not contain {char!r}")
        return v

    @model_validator(mode="after")
    def check_unique_names(self) -> "AppConfig":
        """Entity names must be unique per kind."""
        EntityRegistry(self.entities)
        return self

    @property
    def entities(self) -> List[Entity]:
        """All entities in configuration order."""
        return [*self.switches, *self.displays]

    def build_registry(self) -> EntityRegistry:
        """Build the entity registry for this configuration."""
        return EntityRegistry(self.entities)


# Environment variables used when the file leaves a value unset.
# (section, key[, converter]); section None means top level.
ENV_MAPPING = {
    "MQTT2CMD_APP_ID": (None, "app_id"),
    "MQTT2CMD_REFRESH_PERIOD": ("engine", "refresh_period"),

    # MQTT
    "MQTT_HOST": ("mqtt", "host"),
    "MQTT_BROKER": ("mqtt", "host"),
    "MQTT_PORT": ("mqtt", "port", int),
    "MQTT_USERNAME": ("mqtt", "username"),
    "MQTT_PASSWORD": ("mqtt", "password"),
    "MQTT_QOS": ("mqtt", "qos", int),

    # Logging
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "file"),
}


def _get_env_value(env_var: str, mapping: tuple):
    """Get environment variable value with optional type conversion."""
    value = os.environ.get(env_var)
    if value is None or value == "":
        return None

    # Apply type conversion if specified
    if len(mapping) > 2:
        converter = mapping[2]
        try:
            return converter(value)
        except (ValueError, TypeError):
            return value
    return value


def _apply_env_fallbacks(config: dict) -> dict:
    """Fill values missing from the file with environment variables."""
    for env_var, mapping in ENV_MAPPING.items():
        value = _get_env_value(env_var, mapping)
        if value is None:
            continue

        section, key = mapping[0], mapping[1]
        if section is None:
            target = config
            if key == "app_id" and "app-id" in config:
                continue
        else:
            target = config.setdefault(section, {})
            if target is None:
                target = config[section] = {}

        if target.get(key) in (None, ""):
            target[key] = value
    return config


def _validate(raw_config: dict, source: str) -> AppConfig:
    try:
        return AppConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {source}: {e}") from e


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables only.

    No entities are configured this way.

    Returns:
        AppConfig with values from environment (or defaults)
    """
    return _validate(_apply_env_fallbacks({}), "environment")


def load_config(config_path: str) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If the file cannot be parsed or validation fails
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    # Support environment variable substitution
    raw_config = _substitute_env_vars(raw_config)
    raw_config = _apply_env_fallbacks(raw_config)

    return _validate(raw_config, config_path)


def get_config(config_path: Optional[str] = None) -> AppConfig:
    """Get configuration from config file or environment variables.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Validated AppConfig instance
    """
    if config_path:
        return load_config(config_path)
    return load_config_from_env()


def _substitute_env_vars(config):
    """Recursively substitute environment variables in config values.

    Environment variables are referenced as ${VAR_NAME} or $VAR_NAME.
    """
    if isinstance(config, dict):
        return {k: _substitute_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_substitute_env_vars(item) for item in config]
    elif isinstance(config, str):
        # Handle ${VAR_NAME} format
        if config.startswith("${") and config.endswith("}"):
            var_name = config[2:-1]
            return os.environ.get(var_name, config)
        # Handle $VAR_NAME format
        elif config.startswith("$") and not config.startswith("${") and " " not in config:
            var_name = config[1:]
            return os.environ.get(var_name, config)
        return config
    else:
        return config


def create_default_config() -> str:
    """Generate an example configuration as YAML string."""
    config = AppConfig(
        switches=[
            SwitchEntity(
                name="lamp",
                turn_on="gpio write 17 1",
                turn_off="gpio write 17 0",
                get_state="test \"$(gpio read 17)\" = 1",
                refresh=60,
            ),
        ],
        displays=[
            DisplayEntity(
                name="monitor",
                refresh=60,
                command=VCPCommand(
                    name="input",
                    set_value="ddcutil setvcp 0x60 %s",
                    get_value="ddcutil getvcp 0x60 --terse",
                ),
            ),
        ],
    )
    return yaml.dump(
        config.model_dump(mode="json", exclude_none=True),
        default_flow_style=False,
        sort_keys=False,
    )


def print_env_help() -> str:
    """Generate help text for environment variables."""
    lines = [
        "Environment Variables (used when the config file leaves a value unset):",
        "",
        "  Application:",
        "    MQTT2CMD_APP_ID          Topic prefix / client ID base (default: mqtt2cmd)",
        "    MQTT2CMD_REFRESH_PERIOD  Seconds between refresh cycles (default: 10)",
        "",
        "  MQTT:",
        "    MQTT_HOST             Broker hostname/IP (default: localhost)",
        "    MQTT_BROKER           Broker URL, e.g. tcp://localhost:1883 (used if MQTT_HOST is unset)",
        "    MQTT_PORT             Broker port (default: 1883)",
        "    MQTT_USERNAME         Username (optional)",
        "    MQTT_PASSWORD         Password (optional)",
        "    MQTT_QOS              QoS level 0-2 (default: 1)",
        "",
        "  Logging:",
        "    LOG_LEVEL            DEBUG, INFO, WARNING, ERROR (default: INFO)",
        "    LOG_FILE             Log file path (optional)",
    ]
    return "\n".join(lines)
