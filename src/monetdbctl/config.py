"""Configuration loader for monetdbctl.

Settings are layered, later sources winning:

1. Built-in defaults.
2. ``~/.config/monetdbctl/config.yml``, or the file named by
   ``--config-file`` / ``MONETDBCTL_CONFIG_FILE``.
3. Environment variables ``MONETDBCTL_<KEY>``, e.g.::

       export MONETDBCTL_DEFAULT_PORT=50002
       export MONETDBCTL_SOCKET_DIR=/var/run/monetdb

4. Explicit overrides passed by the caller.

Environment values go through ``yaml.safe_load`` so numbers parse the same
way they would in the file.
"""
from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

import yaml

ENV_PREFIX = "MONETDBCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
DEFAULT_CONFIG_FILE = "~/.config/monetdbctl/config.yml"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for monetdbctl."""

    config_file: Path
    socket_dir: Path
    default_port: int
    logs_dir: Path
    terminal_width: int

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "socket_dir": str(self.socket_dir),
            "default_port": self.default_port,
            "logs_dir": str(self.logs_dir),
            "terminal_width": self.terminal_width,
        }


def _as_path(key: str, value: object) -> Path:
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str) and value:
        return Path(value).expanduser()
    raise ConfigError(f"{key} must be a filesystem path. Got {value!r}.")


def _as_int(key: str, value: object) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"{key} must be an integer. Got {value!r}.") from exc
    raise ConfigError(f"{key} must be an integer. Got {type(value).__name__}.")


def _port(key: str, value: object) -> int:
    port = _as_int(key, value)
    if not 0 < port < 65536:
        raise ConfigError(f"{key} must be between 1 and 65535. Got {port}.")
    return port


def _width(key: str, value: object) -> int:
    width = _as_int(key, value)
    if width <= 0:
        raise ConfigError(f"{key} must be greater than zero. Got {width}.")
    return width


# Key -> (default, converter). ``config_file`` is resolved separately.
_SETTINGS: dict[str, tuple[object, Callable[[str, object], object]]] = {
    "socket_dir": ("/tmp", _as_path),
    "default_port": (50001, _port),
    "logs_dir": ("~/.local/state/monetdbctl/logs", _as_path),
    "terminal_width": (80, _width),
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    environ = os.environ if env is None else env
    path = _config_path(config_file, environ)

    raw: dict[str, object] = {key: default for key, (default, _) in _SETTINGS.items()}
    for source in (_read_file(path), _read_env(environ), dict(overrides or {})):
        unknown = sorted(set(source) - set(_SETTINGS))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}.")
        raw.update(source)

    values = {key: convert(key, raw[key]) for key, (_, convert) in _SETTINGS.items()}
    return AppConfig(config_file=path, **values)  # type: ignore[arg-type]


def _config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR])
    return Path(DEFAULT_CONFIG_FILE).expanduser()


def _read_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return {str(key): value for key, value in data.items()}


def _read_env(env: Mapping[str, str]) -> dict[str, object]:
    values: dict[str, object] = {}
    for name, text in env.items():
        if not name.startswith(ENV_PREFIX) or name == CONFIG_ENV_VAR:
            continue
        key = name[len(ENV_PREFIX) :].lower()
        if key not in _SETTINGS:
            continue
        try:
            values[key] = yaml.safe_load(text.strip())
        except yaml.YAMLError:
            values[key] = text.strip()
    return values


__all__ = ["AppConfig", "ConfigError", "load_config"]
