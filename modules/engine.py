"""Command line for the external mock engine, and the passthrough runner."""

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from config import Config
from modules.errors import ConfigurationError

logger = logging.getLogger(__name__)


def resolve_data_files(config: Config) -> list[Path]:
    return [config.env_dir / name for name in config.data_files]


def build_default_cli_args(config: Config, data_files: Sequence[Path] | None = None) -> list[str]:
    """``start --data <files...>`` plus the watch / logging / polling flags and extra args."""
    files = resolve_data_files(config) if data_files is None else list(data_files)
    if not files:
        raise ConfigurationError(
            "No data files configured. Set MOCKDOCK_DATA_FILE(S) or provide CLI arguments."
        )

    args = ["start", "--data", *(str(f) for f in files)]
    if config.cli_watch:
        args.append("--watch")
    if config.disable_log_to_file:
        args.append("--disable-log-to-file")
    if config.polling_interval:
        args.extend(["--polling-interval", str(config.polling_interval)])
    args.extend(config.cli_extra_args)
    return args


def exit_code_for(returncode: int | None) -> int:
    """Negative return codes mean the child died from a signal: report success."""
    if returncode is None or returncode < 0:
        return 0
    return returncode


def run_passthrough(config: Config, args: Sequence[str]) -> int:
    """Run the engine in the foreground with inherited stdio and return its exit code."""
    logger.info("Running %s %s", config.cli_binary, " ".join(args))
    proc = subprocess.Popen([config.cli_binary, *args])
    try:
        returncode = proc.wait()
    except KeyboardInterrupt:
        # SIGINT already reached the child through the shared process group.
        returncode = proc.wait()
    return exit_code_for(returncode)
