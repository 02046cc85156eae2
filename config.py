"""Central configuration — resolved once from environment variables with sane defaults.

``from_env()`` is called a single time by ``server.py``; the resulting frozen
``Config`` is handed to every component that needs it.
"""

import logging
import os
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from modules.errors import ConfigurationError
from modules.keys import ensure_json_extension

BASE_DIR = Path(__file__).parent

ENV_PREFIX = "MOCKDOCK_"

_SIZE_RE = re.compile(r"^\s*(\d+)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}


@dataclass(frozen=True)
class Config:
    # ------------------------------------------------------------------
    # Filesystem layout
    # ------------------------------------------------------------------
    data_dir: Path = Path("/data")
    env_subdir: str = "environments"
    ui_dist_dir: Path = BASE_DIR / "ui" / "dist"

    # ------------------------------------------------------------------
    # Storage API
    # ------------------------------------------------------------------
    mode: str = ""
    api_prefix: str = "/storage"
    ui_port: int = 8080
    body_limit: int = 10 * 1024**2

    # ------------------------------------------------------------------
    # Mock engine
    # ------------------------------------------------------------------
    cli_binary: str = "mockoon-cli"
    cli_extra_args: tuple[str, ...] = ()
    disable_log_to_file: bool = True
    cli_watch: bool = True
    polling_interval: str | None = None

    # ------------------------------------------------------------------
    # Bootstrap defaults
    # ------------------------------------------------------------------
    data_files: tuple[str, ...] = ("environment.json",)
    default_port: int = 3000
    default_env_name: str = "Docker environment"
    env_names: tuple[str, ...] = field(default_factory=tuple)

    log_level: str = "INFO"

    @property
    def env_dir(self) -> Path:
        return self.data_dir / self.env_subdir

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"


def parse_arg_list(value: str | None) -> tuple[str, ...]:
    """Split a shell-style argument string, honouring double quotes."""
    if not value:
        return ()
    try:
        tokens = shlex.split(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid argument list {value!r}: {exc}") from exc
    return tuple(t for t in tokens if t)


def parse_data_file_names(value: str) -> tuple[str, ...]:
    """Comma list → sanitized ``.json`` file names (blank entries dropped)."""
    names = []
    for item in value.split(","):
        item = item.strip()
        if item:
            names.append(ensure_json_extension(item))
    return tuple(names)


def parse_size(value: str) -> int:
    """Parse ``"10mb"`` style byte sizes."""
    match = _SIZE_RE.match(value)
    if not match:
        raise ConfigurationError(f"Invalid size {value!r}")
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[(unit or "b").lower()]


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _get(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(ENV_PREFIX + name)
        if value:
            return value
    return None


def from_env(environ: Mapping[str, str] | None = None) -> Config:
    """Resolve the runtime configuration from ``environ`` (``os.environ`` by default)."""
    env = os.environ if environ is None else environ

    env_names = _get(env, "ENV_NAMES")
    log_level = (_get(env, "LOG_LEVEL") or "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"Unknown log level {log_level!r}")
    data_files = _get(env, "DATA_FILES", "DATA_FILE") or "environment.json"

    return Config(
        data_dir=Path(_get(env, "DATA_DIR") or "/data"),
        env_subdir=_get(env, "ENV_SUBDIR") or "environments",
        ui_dist_dir=Path(_get(env, "UI_DIST") or BASE_DIR / "ui" / "dist"),
        mode=(_get(env, "MODE") or "").lower(),
        api_prefix=_get(env, "API_PREFIX") or "/storage",
        ui_port=_int(env, "UI_PORT", 8080),
        body_limit=parse_size(_get(env, "API_BODY_LIMIT") or "10mb"),
        cli_binary=_get(env, "CLI_BINARY") or "mockoon-cli",
        cli_extra_args=parse_arg_list(_get(env, "CLI_EXTRA_ARGS")),
        disable_log_to_file=env.get(ENV_PREFIX + "DISABLE_LOG_TO_FILE") != "false",
        cli_watch=env.get(ENV_PREFIX + "CLI_WATCH") != "false",
        polling_interval=_get(env, "CLI_POLLING_INTERVAL", "POLLING_INTERVAL"),
        data_files=parse_data_file_names(data_files),
        default_port=_int(env, "DEFAULT_PORT", 3000),
        default_env_name=_get(env, "DEFAULT_ENV_NAME") or "Docker environment",
        env_names=tuple(n.strip() for n in env_names.split(",")) if env_names else (),
        log_level=log_level,
    )
