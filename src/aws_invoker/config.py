"""Configuration for the invocation pipeline, read from the environment."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class RetrySettings(BaseModel):
    max_retries: int = Field(default=3, ge=0, le=20)
    base_delay: float = Field(default=0.1, ge=0.0, description="Seconds before the first retry")
    max_backoff: float = Field(default=20.0, ge=0.0, description="Upper bound on any single delay")


class ExecutionSettings(BaseModel):
    attempt_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-attempt timeout; unset means only the transport's own timeout applies.",
    )
    validate_requests: bool = Field(default=False)


class EndpointSettings(BaseModel):
    use_fips: bool = Field(default=False)
    use_dualstack: bool = Field(default=False)
    endpoint_url: str | None = Field(default=None)


class CredentialSettings(BaseModel):
    refresh_buffer_seconds: int = Field(default=300, ge=0, le=3600)


class AWSSettings(BaseModel):
    default_region: str | None = Field(default=None)
    default_profile: str | None = Field(default=None)


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    endpoints: EndpointSettings = Field(default_factory=EndpointSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)


ENV_KEYS = {
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "aws_region": "AWS_DEFAULT_REGION",
    "aws_profile": "AWS_PROFILE",
    "use_fips": "AWS_USE_FIPS_ENDPOINT",
    "use_dualstack": "AWS_USE_DUALSTACK_ENDPOINT",
    "endpoint_url": "AWS_ENDPOINT_URL",
    "max_retries": "AWS_INVOKER_MAX_RETRIES",
    "base_delay": "AWS_INVOKER_BASE_DELAY",
    "max_backoff": "AWS_INVOKER_MAX_BACKOFF",
    "attempt_timeout": "AWS_INVOKER_ATTEMPT_TIMEOUT",
    "validate_requests": "AWS_INVOKER_VALIDATE_REQUESTS",
    "refresh_buffer": "AWS_INVOKER_CREDENTIAL_REFRESH_BUFFER",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float | None) -> float | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_str(key: str) -> str | None:
    value = os.getenv(key)
    if value is None:
        return None
    return value.strip() or None


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=Path.cwd() / ".env")
    log_file_env = _env_str(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": str(Path(log_file_env).expanduser().resolve()) if log_file_env else None,
        },
        "retry": {
            "max_retries": _env_int(ENV_KEYS["max_retries"], RetrySettings().max_retries),
            "base_delay": _env_float(ENV_KEYS["base_delay"], RetrySettings().base_delay),
            "max_backoff": _env_float(ENV_KEYS["max_backoff"], RetrySettings().max_backoff),
        },
        "execution": {
            "attempt_timeout_seconds": _env_float(
                ENV_KEYS["attempt_timeout"],
                ExecutionSettings().attempt_timeout_seconds,
            ),
            "validate_requests": _env_bool(
                ENV_KEYS["validate_requests"],
                ExecutionSettings().validate_requests,
            ),
        },
        "endpoints": {
            "use_fips": _env_bool(ENV_KEYS["use_fips"], EndpointSettings().use_fips),
            "use_dualstack": _env_bool(ENV_KEYS["use_dualstack"], EndpointSettings().use_dualstack),
            "endpoint_url": _env_str(ENV_KEYS["endpoint_url"]),
        },
        "credentials": {
            "refresh_buffer_seconds": _env_int(
                ENV_KEYS["refresh_buffer"],
                CredentialSettings().refresh_buffer_seconds,
            ),
        },
        "aws": {
            "default_region": _env_str("AWS_REGION") or _env_str(ENV_KEYS["aws_region"]),
            "default_profile": _env_str(ENV_KEYS["aws_profile"]),
        },
    }

    try:
        return Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


def clear_settings_cache() -> None:
    _load_settings_cached.cache_clear()
