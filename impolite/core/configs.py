"""Configuration management for Impolite.

Loads greeter settings from ~/.config/impolite/config.cfg (or a ``.env``
file beside it) and the process environment, and freezes them into a
GreeterConfig that is handed to each component explicitly.
"""

import configparser
import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

# Default location for user configuration.
CONFIG_PATH = Path(
    os.environ.get("IMPOLITE_CONFIG")
    or Path.home() / ".config" / "impolite" / "config.cfg"
)

SOCKET_ENV = "GREETD_SOCK"
DEBUG_ENV = "IMPOLITE_DEBUG"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class GreeterConfig:
    socket_address: Optional[str] = None
    debug: bool = False
    default_command: List[str] = field(default_factory=list)
    default_env: List[str] = field(default_factory=list)
    log_level: str = "WARNING"
    log_file: Optional[Path] = None
    session_dirs: Optional[List[Path]] = None
    max_attempts: int = 3

    @property
    def log_level_number(self) -> int:
        return getattr(logging, self.log_level)


def load_raw_config(path: Path = CONFIG_PATH) -> Dict[str, str]:
    """
    Load configuration values from the standard config path.
    Values are returned with lowercase keys for convenience.

    When the .cfg file does not exist, a ``.env`` file in the same
    directory is used instead.
    """
    data: Dict[str, str] = {}

    if path.exists():
        cfg = configparser.ConfigParser(interpolation=None)
        cfg.read(path)
        data.update({k.lower(): v for k, v in cfg["DEFAULT"].items()})
        if "GREETER" in cfg:
            data.update({k.lower(): v for k, v in cfg["GREETER"].items()})
        return data

    env_path = path.with_name(".env")
    if env_path.exists():
        data.update(
            {k.lower(): v for k, v in dotenv_values(env_path).items() if v is not None}
        )

    return data


def _get_bool(raw: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = raw.get(key, "")
    if isinstance(value, bool):
        return value
    if value is None or str(value).strip() == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def get_greeter_config(
    raw: Optional[Dict[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides,
) -> GreeterConfig:
    """
    Build a GreeterConfig from raw configuration values and the environment.

    ``GREETD_SOCK`` takes precedence over the ``socket`` key, and
    ``IMPOLITE_DEBUG`` over ``debug``. Keyword overrides (from the CLI)
    win over both when not None.

    Raises ValueError for invalid values.
    """
    raw = load_raw_config() if raw is None else raw
    environ = os.environ if environ is None else environ

    socket_address = environ.get(SOCKET_ENV) or raw.get("socket") or None

    if environ.get(DEBUG_ENV, "").strip():
        debug = _get_bool(environ, DEBUG_ENV)
    else:
        debug = _get_bool(raw, "debug")

    log_level = raw.get("log_level", "WARNING").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid log_level '{log_level}'. Expected one of: {', '.join(LOG_LEVELS)}"
        )

    log_file = raw.get("log_file", "").strip()
    session_dirs = raw.get("session_dirs", "").strip()

    try:
        default_command = shlex.split(raw.get("command", ""))
    except ValueError as e:
        raise ValueError(f"Invalid command in configuration: {e}") from e

    try:
        max_attempts = int(raw.get("max_attempts", 3) or 3)
    except ValueError as e:
        raise ValueError(f"Invalid max_attempts: {raw.get('max_attempts')!r}") from e
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    values = dict(
        socket_address=socket_address,
        debug=debug,
        default_command=default_command,
        default_env=raw.get("env", "").split(),
        log_level=log_level,
        log_file=Path(log_file).expanduser() if log_file else None,
        session_dirs=[Path(p) for p in session_dirs.split(":") if p] or None,
        max_attempts=max_attempts,
    )
    values.update({k: v for k, v in overrides.items() if v is not None})
    return GreeterConfig(**values)
