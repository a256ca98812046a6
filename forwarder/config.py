"""Configuration — frozen dataclass built from defaults, YAML, env vars, and CLI args."""

import logging
import os
from dataclasses import dataclass

import yaml

from forwarder.errors import ConfigError

logger = logging.getLogger(__name__)


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_bool(value: str) -> bool:
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    opensearch_url: str = ""
    loki_url: str = ""
    index: str = ""
    worker_count: int = 8
    page_size: int = 1000
    scroll_expiry: str = "1m"
    queue_size: int = 1000
    request_timeout: float = 30.0
    opensearch_user: str | None = None
    opensearch_password: str | None = None
    verify_certs: bool = True
    metrics_interval: float = 30.0
    log_level: str = "INFO"


# Config field -> (env var, converter)
_ENV_FIELDS = {
    "opensearch_url": ("FORWARDER_OPENSEARCH_URL", str),
    "loki_url": ("FORWARDER_LOKI_URL", str),
    "index": ("FORWARDER_INDEX", str),
    "worker_count": ("FORWARDER_WORKERS", int),
    "page_size": ("FORWARDER_PAGE_SIZE", int),
    "scroll_expiry": ("FORWARDER_SCROLL", str),
    "queue_size": ("FORWARDER_QUEUE_SIZE", int),
    "request_timeout": ("FORWARDER_REQUEST_TIMEOUT", float),
    "opensearch_user": ("FORWARDER_OPENSEARCH_USER", str),
    "opensearch_password": ("FORWARDER_OPENSEARCH_PASSWORD", str),
    "verify_certs": ("FORWARDER_VERIFY_CERTS", _parse_bool),
    "metrics_interval": ("FORWARDER_METRICS_INTERVAL", float),
    "log_level": ("FORWARDER_LOG_LEVEL", str),
}

# argparse dest -> Config field
_CLI_FIELDS = {
    "input": "opensearch_url",
    "output": "loki_url",
    "index": "index",
    "workers": "worker_count",
    "page_size": "page_size",
    "scroll": "scroll_expiry",
    "queue_size": "queue_size",
    "log_level": "log_level",
}


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def _convert(name: str, value, converter):
    try:
        return converter(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e


def load_config(args=None, yaml_data: dict | None = None) -> Config:
    """Build Config from defaults <- YAML <- env vars <- CLI args (highest priority)."""
    kwargs: dict = {}

    for key, value in (yaml_data or {}).items():
        if key not in _ENV_FIELDS:
            logger.warning("Ignoring unknown config key %r", key)
            continue
        kwargs[key] = _convert(key, value, _ENV_FIELDS[key][1])

    for key, (env_name, converter) in _ENV_FIELDS.items():
        raw = os.environ.get(env_name)
        if raw is not None and raw != "":
            kwargs[key] = _convert(env_name, raw, converter)

    if args is not None:
        for dest, key in _CLI_FIELDS.items():
            value = getattr(args, dest, None)
            if value is not None:
                kwargs[key] = _convert(key, value, _ENV_FIELDS[key][1])

    config = Config(**kwargs)
    validate(config)
    return config


def validate(config: Config):
    """Raise ConfigError if the config can't drive a run."""
    if not config.opensearch_url:
        raise ConfigError("OpenSearch URL is required")
    if not config.loki_url:
        raise ConfigError("Loki push URL is required")
    if not config.index:
        raise ConfigError("Source index is required")
    for name in ("worker_count", "page_size", "queue_size"):
        if getattr(config, name) < 1:
            raise ConfigError(f"{name} must be at least 1")
    if config.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")
    if config.metrics_interval < 0:
        raise ConfigError("metrics_interval must not be negative")
    if config.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(
            f"log_level must be one of {', '.join(LOG_LEVELS)}, got {config.log_level!r}"
        )
