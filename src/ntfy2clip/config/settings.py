"""Configuration settings using Pydantic for validation."""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import os
import re

from ..errors import ConfigError


VALID_SCHEMES = ("ws", "wss")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stderr", description="Log output destination: stdout, stderr or a file path")

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        if v.lower() not in ['json', 'text']:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class Ntfy2ClipSettings(BaseSettings):
    """
    Process-wide settings, resolved once at startup.

    Every field maps to an environment variable of the same name
    (``SERVER``, ``SCHEME``, ``TOPIC``, ``TOKEN``, ``TIMEOUT``, ``DEV``).
    Nested logging options use ``LOGGING__LEVEL`` style names.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Relay
    server: str = Field(default="ntfy.sh", description="ntfy server host (optionally host:port)")
    scheme: str = Field(default="wss", description="WebSocket scheme: ws or wss")
    topic: str = Field(..., description="Topic to subscribe to")
    token: str = Field(default="", description="Bearer token; empty disables the Authorization header")
    timeout: int = Field(default=120, gt=0, description="Idle timeout in seconds")

    # Diagnostics
    dev: bool = Field(default=False, description="Development mode: forces DEBUG logging when DEV is set to any value")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator('topic')
    @classmethod
    def validate_topic(cls, v):
        if not v.strip():
            raise ValueError("Topic must not be empty")
        if v != v.strip():
            raise ValueError("Topic must not have leading or trailing whitespace")
        if '/' in v:
            raise ValueError("Topic must not contain '/'")
        return v

    @field_validator('dev', mode='before')
    @classmethod
    def validate_dev(cls, v):
        # Any value read from the environment enables it, even "false"
        if isinstance(v, bool):
            return v
        return v is not None

    @field_validator('scheme')
    @classmethod
    def validate_scheme(cls, v):
        v = v.lower()
        if v not in VALID_SCHEMES:
            raise ValueError("Scheme must be 'ws' or 'wss'")
        return v

    @field_validator('server')
    @classmethod
    def validate_server(cls, v):
        v = v.strip().rstrip('/')
        if not v:
            raise ValueError("Server must not be empty")
        return v

    @property
    def ws_url(self) -> str:
        """WebSocket endpoint for the configured topic."""
        return f"{self.scheme}://{self.server}/{self.topic}/ws"

    @property
    def auth_headers(self) -> Dict[str, str]:
        """Headers to attach to the upgrade request."""
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.dev else self.logging.level.upper()


def substitute_env_vars(obj: Any) -> Any:
    """
    Recursively substitute environment variables in configuration objects.

    Supports syntax:
    - ${VAR_NAME} - Required variable (raises error if not found)
    - ${VAR_NAME:-default} - Optional variable with default value

    Raises:
        ConfigError: If required environment variable is not found
    """
    if isinstance(obj, dict):
        return {key: substitute_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value)

            var_name = var_expr.strip()
            value = os.getenv(var_name)
            if value is None:
                raise ConfigError(f"Required environment variable '{var_name}' is not set")
            return value

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    else:
        return obj


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        name = "__".join(str(part) for part in item["loc"]).upper() or "settings"
        problems.append(f"{name}: {item['msg']}")
    return "; ".join(problems)


def load_settings(config_file: Optional[str] = None) -> Ntfy2ClipSettings:
    """
    Load settings from an optional YAML file and the environment.

    The config file supports environment variable substitution using
    ${VAR_NAME} syntax. Values present in the file are passed to the
    settings model directly and therefore win over the environment.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        Ntfy2ClipSettings: Validated, immutable configuration

    Raises:
        ConfigError: If the file is missing or unreadable, a required
            variable is missing, or validation fails
    """
    config_data: Dict[str, Any] = {}

    if config_file:
        if not os.path.exists(config_file):
            raise ConfigError(f"Configuration file not found: {config_file}")

        import yaml

        try:
            with open(config_file, 'r') as f:
                raw_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read configuration file {config_file}: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigError(f"Configuration file {config_file} must contain a mapping")

        config_data = substitute_env_vars(raw_config)

    # env_ignore_empty would drop a bare DEV=
    if 'dev' not in config_data and any(name.upper() == "DEV" for name in os.environ):
        config_data['dev'] = True

    try:
        return Ntfy2ClipSettings(**config_data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {_describe_validation_error(e)}") from e
