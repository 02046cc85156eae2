"""
Bootstrap reconciliation.

Runs once, before the storage API or the engine start, and brings the data
directory into a consistent state:

  1. ``<data_dir>/<env_subdir>/`` exists
  2. every configured environment file exists and carries a ``uuid``
     (missing files are created with a default document)
  3. ``<data_dir>/settings.json`` lists a descriptor for each of them

A second pass over unchanged inputs writes nothing.
"""

import json
import logging
import uuid as uuid_lib
from dataclasses import dataclass, field
from pathlib import Path

from config import Config
from modules.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TRANSACTION_LOGS = 100
DEFAULT_ENV_VARS_PREFIX = "MOCK_"


@dataclass
class InitialState:
    env_dir: Path
    settings_path: Path
    data_files: list[Path]
    descriptors: list[dict]
    written: list[Path] = field(default_factory=list)


def dump_json(data, pretty: bool = True) -> str:
    if pretty:
        return json.dumps(data, indent=2, ensure_ascii=False)
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _write_json(path: Path, data, written: list[Path]) -> None:
    path.write_text(dump_json(data), encoding="utf-8")
    written.append(path)


# ── Default documents ─────────────────────────────────────────────────────────

def build_environment(name: str, port: int) -> dict:
    """A fresh environment: JSON content type, CORS headers and one default route."""
    route_uuid = str(uuid_lib.uuid4())
    return {
        "uuid": str(uuid_lib.uuid4()),
        "name": name,
        "endpointPrefix": "",
        "latency": 0,
        "port": port,
        "hostname": "",
        "folders": [],
        "routes": [
            {
                "uuid": route_uuid,
                "type": "http",
                "documentation": "",
                "method": "get",
                "endpoint": "",
                "responses": [
                    {
                        "uuid": str(uuid_lib.uuid4()),
                        "body": "{}",
                        "latency": 0,
                        "statusCode": 200,
                        "label": "",
                        "headers": [],
                        "default": True,
                    }
                ],
            }
        ],
        "rootChildren": [{"type": "route", "uuid": route_uuid}],
        "proxyMode": False,
        "proxyHost": "",
        "cors": True,
        "headers": [{"key": "Content-Type", "value": "application/json"}],
        "proxyReqHeaders": [],
        "proxyResHeaders": [],
        "data": [],
        "callbacks": [],
    }


def build_default_settings(descriptors: list[dict]) -> dict:
    return {
        "welcomeShown": True,
        "maxLogsPerEnvironment": DEFAULT_MAX_TRANSACTION_LOGS,
        "truncateRouteName": True,
        "mainMenuSize": 100,
        "secondaryMenuSize": 200,
        "fakerLocale": "en",
        "fakerSeed": None,
        "lastChangelog": "0.0.0",
        "environments": [dict(d) for d in descriptors],
        "disabledRoutes": {},
        "collapsedFolders": {},
        "enableTelemetry": False,
        "storagePrettyPrint": True,
        "fileWatcherEnabled": "disabled",
        "dialogWorkingDir": "",
        "startEnvironmentsOnLoad": True,
        "logTransactions": False,
        "environmentsCategoriesOrder": ["local", "cloud"],
        "environmentsCategoriesCollapsed": {"local": False, "cloud": False},
        "envVarsPrefix": DEFAULT_ENV_VARS_PREFIX,
        "activeEnvironmentUuid": descriptors[0]["uuid"] if descriptors else None,
        "enableRandomLatency": False,
        "recentLocalEnvironments": [],
        "displayLogsIsoTimestamp": False,
        "deployPreferredRegion": None,
    }


def default_environment_name(config: Config, index: int) -> str:
    if index < len(config.env_names) and config.env_names[index]:
        return config.env_names[index]
    if index == 0:
        return config.default_env_name
    return f"{config.default_env_name} #{index + 1}"


# ── Environment files ─────────────────────────────────────────────────────────

def ensure_environment_file(
    config: Config, path: Path, file_name: str, index: int, written: list[Path]
) -> dict:
    """Load ``path`` or create it; returns the environment document."""
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        environment = build_environment(
            default_environment_name(config, index), config.default_port + index
        )
        _write_json(path, environment, written)
        logger.info("Created environment file %s (port %s)", file_name, environment["port"])
        return environment
    except UnicodeDecodeError as exc:
        raise ValidationError(file_name, f"could not be parsed: {exc}") from exc

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValidationError(file_name, f"could not be parsed: {exc}") from exc

    if not isinstance(parsed, dict) or not isinstance(parsed.get("uuid"), str) or not parsed["uuid"]:
        raise ValidationError(file_name, "is missing a valid uuid property.")

    return parsed


# ── Settings file ─────────────────────────────────────────────────────────────

def _read_settings(settings_path: Path) -> dict | None:
    try:
        content = settings_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError:
        logger.warning("Settings file %s is not valid UTF-8, rebuilding defaults", settings_path)
        return None

    if not content.strip():
        return None
    try:
        settings = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("Settings file %s is not valid JSON, rebuilding defaults", settings_path)
        return None
    return settings if isinstance(settings, dict) else None


def reconcile_settings(settings: dict, descriptors: list[dict]) -> bool:
    """Merge ``descriptors`` into ``settings`` in place. Returns True when anything changed."""
    changed = False

    environments = settings.get("environments")
    if not isinstance(environments, list):
        environments = settings["environments"] = []
        changed = True

    for descriptor in descriptors:
        existing = next(
            (item for item in environments if isinstance(item, dict) and item.get("uuid") == descriptor["uuid"]),
            None,
        )
        if existing is None:
            environments.append(dict(descriptor))
            changed = True
        elif existing.get("path") != descriptor["path"]:
            existing["path"] = descriptor["path"]
            changed = True

    if not settings.get("activeEnvironmentUuid") and descriptors:
        settings["activeEnvironmentUuid"] = descriptors[0]["uuid"]
        changed = True

    return changed


def ensure_settings_file(settings_path: Path, descriptors: list[dict], written: list[Path]) -> dict:
    settings = _read_settings(settings_path)

    if settings is None:
        settings = build_default_settings(descriptors)
        _write_json(settings_path, settings, written)
        logger.info("Created settings file with %d environment(s)", len(descriptors))
    elif reconcile_settings(settings, descriptors):
        _write_json(settings_path, settings, written)
        logger.info("Reconciled settings file %s", settings_path)

    return settings


# ── Entry point ───────────────────────────────────────────────────────────────

def ensure_initial_state(config: Config) -> InitialState:
    """Create directories, environment files and settings (idempotent)."""
    if not config.data_files:
        raise ConfigurationError(
            "No data files configured. Set MOCKDOCK_DATA_FILE(S) or provide CLI arguments."
        )

    env_dir = config.env_dir
    env_dir.mkdir(parents=True, exist_ok=True)

    state = InitialState(
        env_dir=env_dir,
        settings_path=config.settings_path,
        data_files=[env_dir / name for name in config.data_files],
        descriptors=[],
    )

    # Sequential: default names and ports depend on the file index.
    for index, (path, file_name) in enumerate(zip(state.data_files, config.data_files)):
        environment = ensure_environment_file(config, path, file_name, index, state.written)
        state.descriptors.append(
            {
                "uuid": environment["uuid"],
                "path": file_name,
                "cloud": False,
                "lastServerHash": None,
            }
        )

    ensure_settings_file(state.settings_path, state.descriptors, state.written)
    return state
