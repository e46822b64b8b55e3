"""Configuration loading from env vars and an optional YAML file."""

import logging
import os
from dataclasses import dataclass, field

import yaml

from stdio_tap.command import default_log_dir

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

ENV_PREFIX = "STDIO_TAP_"


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    log_dir: str = field(default_factory=default_log_dir)
    log_prefix: str = "stdio"
    chunk_size: int = 4096
    max_line_bytes: int = 64 * 1024
    use_shell: bool = True
    failure_exit_code: int = 255
    stdin_grace_seconds: float = 0.5
    fsync: bool = True
    diagnostic_level: str = "WARNING"

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_line_bytes <= 0:
            raise ValueError(f"max_line_bytes must be positive, got {self.max_line_bytes}")
        if not 1 <= self.failure_exit_code <= 255:
            raise ValueError(
                f"failure_exit_code must be in 1..255, got {self.failure_exit_code}"
            )
        if self.stdin_grace_seconds < 0:
            raise ValueError(
                f"stdin_grace_seconds must not be negative, got {self.stdin_grace_seconds}"
            )
        if self.diagnostic_level not in LOG_LEVELS:
            raise ValueError(f"unknown diagnostic_level {self.diagnostic_level!r}")


def load_yaml_config(path: str | None) -> dict:
    """Load overrides from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ValueError(f"config file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def _setting(name: str, yaml_data: dict, default):
    """Env var wins over YAML, YAML wins over the dataclass default."""
    raw = os.environ.get(ENV_PREFIX + name.upper())
    if raw is not None:
        return raw
    return yaml_data.get(name, default)


def load_config(config_path: str | None = None) -> Config:
    """Build Config from env vars, an optional YAML file and defaults."""
    yaml_data = load_yaml_config(config_path or os.environ.get(ENV_PREFIX + "CONFIG"))

    log_dir = _setting("log_dir", yaml_data, None)
    return Config(
        log_dir=log_dir if log_dir else default_log_dir(),
        log_prefix=str(_setting("log_prefix", yaml_data, Config.log_prefix)),
        chunk_size=int(_setting("chunk_size", yaml_data, Config.chunk_size)),
        max_line_bytes=int(_setting("max_line_bytes", yaml_data, Config.max_line_bytes)),
        use_shell=_parse_bool(_setting("use_shell", yaml_data, Config.use_shell)),
        failure_exit_code=int(
            _setting("failure_exit_code", yaml_data, Config.failure_exit_code)
        ),
        stdin_grace_seconds=float(
            _setting("stdin_grace_seconds", yaml_data, Config.stdin_grace_seconds)
        ),
        fsync=_parse_bool(_setting("fsync", yaml_data, Config.fsync)),
        diagnostic_level=str(
            _setting("diagnostic_level", yaml_data, Config.diagnostic_level)
        ).upper(),
    )
