"""
mockdock — entry point.

Passthrough mode (arguments given, or MOCKDOCK_MODE=cli):
  run the mock engine in the foreground with those arguments and exit with its code.

Combined mode, startup order:
  1. Resolve configuration + logging
  2. Bootstrap the data directory (environment files + settings)
  3. Write the browser runtime config asset
  4. Build the FastAPI app (storage API + UI assets)
  5. Spawn the engine and serve, supervised until either side stops
"""

import asyncio
import logging
import sys

import config as config_module
from config import Config
from modules.bootstrap import ensure_initial_state
from modules.engine import build_default_cli_args, run_passthrough
from modules.errors import ConfigurationError, ValidationError
from modules.log import setup_logging
from modules.supervisor import Supervisor, UvicornListener, spawn_engine
from ui.main import create_app, write_runtime_config

logger = logging.getLogger("mockdock")


def start_combined_mode(config: Config) -> int:
    # ── 2. Bootstrap ──────────────────────────────────────────────────────────
    state = ensure_initial_state(config)

    # ── 3. Runtime config asset ───────────────────────────────────────────────
    write_runtime_config(config)

    # ── 4. App ────────────────────────────────────────────────────────────────
    app = create_app(config, state)

    # ── 5. Supervise ──────────────────────────────────────────────────────────
    listener = UvicornListener(app, host="0.0.0.0", port=config.ui_port)
    supervisor = Supervisor(
        listener,
        spawn_engine(config.cli_binary, build_default_cli_args(config, state.data_files)),
    )
    logger.info(
        "UI available on port %d, storage API exposed at %s", config.ui_port, config.api_prefix
    )
    return asyncio.run(supervisor.run())


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv

    # ── 1. Config + logging ───────────────────────────────────────────────────
    try:
        config = config_module.from_env()
    except ConfigurationError as exc:
        setup_logging()
        logger.error("Invalid configuration: %s", exc)
        return 1
    setup_logging(config.log_level)

    try:
        if args or config.mode == "cli":
            return run_passthrough(config, args or build_default_cli_args(config))
        return start_combined_mode(config)
    except (ConfigurationError, ValidationError, OSError) as exc:
        logger.error("Fatal error while starting runtime: %s", exc, exc_info=exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
