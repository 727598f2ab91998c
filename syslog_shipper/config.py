"""Configuration module — frozen dataclasses loaded from a YAML file and env vars."""

import dataclasses
import logging
import os
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
RECORD_FORMATS = ("text", "json")
OVERFLOW_POLICIES = ("drop_newest", "drop_oldest", "block")

DEFAULT_CONFIG_FILE = "config.yml"
DEVELOPMENT_CONFIG_FILE = "config.development.yml"


class ConfigError(ValueError):
    """Raised when the configuration cannot be loaded or is invalid."""


@dataclass(frozen=True)
class ListenerConfig:
    host: str = "0.0.0.0"
    port: int = 514
    buffer_size: int = 8192
    receiver_identity: str = "syslog-shipper"
    record_format: str = "text"
    queue_size: int = 0
    overflow_policy: str = "drop_newest"


@dataclass(frozen=True)
class BatchConfig:
    limit_number_of_events: int = 1000
    limit_in_minutes: float = 5.0
    tick_interval_sec: float = 1.0
    batch_dir: str = "batches"
    table: str = "syslogRaw"
    mapping: str = "map"
    recover_on_startup: bool = True
    queue_size: int = 0
    overflow_policy: str = "drop_newest"


@dataclass(frozen=True)
class DeliveryConfig:
    cluster_name: str = ""
    database: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    max_retries: int = 3
    ms_between_retries: int = 5000
    settle_delay_ms: int = 10000
    dead_letter_dir: str = ""


@dataclass(frozen=True)
class Config:
    log_level: str = "INFO"
    dashboard_port: int = 0
    listener: ListenerConfig = field(default_factory=ListenerConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)


_SECTIONS = {
    "listener": ListenerConfig,
    "batch": BatchConfig,
    "delivery": DeliveryConfig,
}


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("true", "1", "yes", "on"):
        return True
    if normalized in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_int(value: str) -> int:
    return int(value.strip())


def _parse_float(value: str) -> float:
    return float(value.strip())


_PARSERS = {
    bool: _parse_bool,
    int: _parse_int,
    float: _parse_float,
    str: str,
}


def parse_value(name: str, value, target_type):
    """Coerce *value* (from YAML or the environment) to *target_type*.

    Raises ConfigError naming the option when the value cannot be parsed.
    """
    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value
    if target_type is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    try:
        return _PARSERS[target_type](str(value))
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {name}: {exc}") from exc


def _build_section(cls, prefix: str, file_values: dict, environ) -> object:
    unknown = set(file_values) - {f.name for f in dataclasses.fields(cls)}
    if unknown:
        raise ConfigError(f"Unknown option(s) in {prefix or 'top level'}: {sorted(unknown)}")

    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.name in _SECTIONS:
            continue
        option = f"{prefix}.{f.name}" if prefix else f.name
        if file_values.get(f.name) is not None:
            kwargs[f.name] = parse_value(option, file_values[f.name], f.type)

        env_name = option.replace(".", "_").upper()
        env_value = environ.get(env_name)
        if env_value is not None and env_value.strip() != "":
            kwargs[f.name] = parse_value(env_name, env_value, f.type)
    return cls(**kwargs)


def resolve_config_path(environ=None) -> str:
    """Pick the config file: $CONFIG_PATH, else the development file if present."""
    environ = os.environ if environ is None else environ
    explicit = environ.get("CONFIG_PATH")
    if explicit:
        return explicit
    if os.path.exists(DEVELOPMENT_CONFIG_FILE):
        return DEVELOPMENT_CONFIG_FILE
    return DEFAULT_CONFIG_FILE


def load_yaml(path: str) -> dict:
    """Load the YAML config file at *path*. Returns an empty dict if it does not exist."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    logger.info("Loaded config from %s", path)
    return data


def build_config(file_data: dict, environ=None) -> Config:
    """Build Config from parsed file data, then apply environment overrides."""
    environ = os.environ if environ is None else environ

    sections = {}
    for name, cls in _SECTIONS.items():
        section_data = file_data.get(name) or {}
        if not isinstance(section_data, dict):
            raise ConfigError(f"Section {name!r} must be a mapping")
        sections[name] = _build_section(cls, name, section_data, environ)

    top_level = {k: v for k, v in file_data.items() if k not in _SECTIONS}
    base = _build_section(Config, "", top_level, environ)
    config = dataclasses.replace(base, **sections)
    validate_config(config)
    return config


def load_config(path: str | None = None, environ=None) -> Config:
    """Load Config from the YAML file at *path* (or the resolved default) plus env vars."""
    environ = os.environ if environ is None else environ
    if path is None:
        path = resolve_config_path(environ)
    return build_config(load_yaml(path), environ)


def validate_config(config: Config) -> None:
    """Raise ConfigError if any option is out of range."""
    if config.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {LOG_LEVELS}")
    if not 0 <= config.dashboard_port <= 65535:
        raise ConfigError("dashboard_port must be between 0 and 65535")

    listener = config.listener
    if not 0 <= listener.port <= 65535:
        raise ConfigError("listener.port must be between 0 and 65535")
    if listener.buffer_size <= 0:
        raise ConfigError("listener.buffer_size must be positive")
    if listener.record_format not in RECORD_FORMATS:
        raise ConfigError(f"listener.record_format must be one of {RECORD_FORMATS}")

    batch = config.batch
    if batch.limit_number_of_events < 0:
        raise ConfigError("batch.limit_number_of_events must not be negative")
    if batch.limit_in_minutes <= 0:
        raise ConfigError("batch.limit_in_minutes must be positive")
    if batch.tick_interval_sec <= 0:
        raise ConfigError("batch.tick_interval_sec must be positive")
    if not batch.table:
        raise ConfigError("batch.table must not be empty")

    for section, queue_cfg in (("listener", listener), ("batch", batch)):
        if queue_cfg.queue_size < 0:
            raise ConfigError(f"{section}.queue_size must not be negative")
        if queue_cfg.overflow_policy not in OVERFLOW_POLICIES:
            raise ConfigError(f"{section}.overflow_policy must be one of {OVERFLOW_POLICIES}")

    delivery = config.delivery
    if delivery.max_retries < 1:
        raise ConfigError("delivery.max_retries must be at least 1")
    if delivery.ms_between_retries < 0:
        raise ConfigError("delivery.ms_between_retries must not be negative")
    if delivery.settle_delay_ms < 0:
        raise ConfigError("delivery.settle_delay_ms must not be negative")
