"""Configuration resolution and logging setup."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path
import sys
import tomllib

import structlog
import yaml

from .client import APP_NAME, DEFAULT_API_HOST, DEFAULT_TIMEOUT, HoneybadgerError, parse_api_host

# Flags bind to PREFIX_<FLAG>, e.g. --favorite-color binds to HONEYBADGER_FAVORITE_COLOR.
ENV_PREFIX = "HONEYBADGER"

CONFIG_SUFFIXES = (".json", ".toml", ".yaml", ".yml")

MAX_TIMEOUT = 300.0


def env_var_for(flag_name: str) -> str:
    """Environment variable bound to a flag name."""
    return f"{ENV_PREFIX}_{flag_name.lstrip('-').replace('-', '_').upper()}"


def _candidate_config_paths(cwd: Path | None = None) -> list[Path]:
    base = Path.cwd() if cwd is None else cwd
    return [base / f"{APP_NAME}{suffix}" for suffix in CONFIG_SUFFIXES]


def _parse_config(path: Path, raw: str) -> object:
    if path.suffix == ".json":
        return json.loads(raw)
    if path.suffix == ".toml":
        return tomllib.loads(raw)
    return yaml.safe_load(raw)


def read_config_file(cwd: Path | None = None) -> tuple[dict, str | None]:
    """Read the first config file found in the working directory.

    A missing file is not an error; an unreadable or malformed one is.
    """
    for path in _candidate_config_paths(cwd):
        if not path.exists():
            continue
        try:
            parsed = _parse_config(path, path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise HoneybadgerError("CONFIG", f"Unable to read config file: {path}") from exc
        except (json.JSONDecodeError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
            raise HoneybadgerError("CONFIG", f"Invalid config file: {path}") from exc

        if parsed is None:
            return {}, str(path)
        if not isinstance(parsed, dict):
            raise HoneybadgerError("CONFIG", f"Config file must contain a mapping: {path}")
        return parsed, str(path)

    return {}, None


def lookup_config_value(file_config: dict, name: str):
    """Find a flag value in a config mapping by parameter or flag spelling."""
    for key in (name, name.replace("_", "-"), name.replace("-", "_")):
        if key in file_config:
            return file_config[key]
    return None


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one invocation."""

    api_key: str | None
    api_host: str = DEFAULT_API_HOST
    dry_run: bool = False
    timeout: float = DEFAULT_TIMEOUT
    verbose: bool = False

    def validate(self) -> None:
        """Fail fast on settings that would make every request fail."""
        if not self.api_key:
            raise HoneybadgerError(
                "CONFIG",
                f"No API key. Set {env_var_for('configkey')} or pass --configkey.",
            )
        parse_api_host(self.api_host)
        if not 0 < self.timeout <= MAX_TIMEOUT:
            raise HoneybadgerError("CONFIG", f"timeout must be > 0 and <= {MAX_TIMEOUT:g} seconds")


def setup_logging(verbose: bool = False) -> None:
    """Configure structlog for JSON lines on stderr."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(default=str),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO if verbose else logging.WARNING),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
