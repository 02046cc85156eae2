"""
Client command channels.

The authoring UI talks to its host through tagged commands. ``MainApi`` maps
every ``Channel`` to one handler; the map is built once and checked against
the enum when the object is created, so a channel without a handler fails at
startup instead of silently returning nothing at call time.

Channels:
  READ_ENVIRONMENT_DATA / WRITE_ENVIRONMENT_DATA / DELETE_ENVIRONMENT_DATA
  READ_SETTINGS_DATA / WRITE_SETTINGS_DATA
  BUILD_STORAGE_FILEPATH, GET_FILENAME, GET_HASH, GET_OS
"""

import enum
import logging
import re
import sys
from typing import Any, Callable

from modules.digest import content_hash
from modules.errors import ConfigurationError
from modules.keys import sanitize_storage_key
from modules.persistence import PersistenceBackend, StorageApiBackend

logger = logging.getLogger(__name__)

_JSON_SUFFIX = re.compile(r"\.json$", re.IGNORECASE)


class Channel(str, enum.Enum):
    READ_ENVIRONMENT_DATA = "APP_READ_ENVIRONMENT_DATA"
    WRITE_ENVIRONMENT_DATA = "APP_WRITE_ENVIRONMENT_DATA"
    DELETE_ENVIRONMENT_DATA = "APP_DELETE_ENVIRONMENT_DATA"
    READ_SETTINGS_DATA = "APP_READ_SETTINGS_DATA"
    WRITE_SETTINGS_DATA = "APP_WRITE_SETTINGS_DATA"
    BUILD_STORAGE_FILEPATH = "APP_BUILD_STORAGE_FILEPATH"
    GET_FILENAME = "APP_GET_FILENAME"
    GET_HASH = "APP_GET_HASH"
    GET_OS = "APP_GET_OS"


def extract_file_name(path: str) -> str:
    if not path:
        return ""
    return _JSON_SUFFIX.sub("", path.replace("\\", "/").split("/")[-1])


def platform_name(platform: str | None = None) -> str:
    """Map ``sys.platform`` onto the names the UI expects."""
    platform = (platform or sys.platform).lower()
    if platform.startswith("win") or platform == "cygwin":
        return "win32"
    if platform == "darwin":
        return "darwin"
    if platform.startswith("linux"):
        return "linux"
    return "unknown"


class MainApi:
    def __init__(self, backend: PersistenceBackend):
        self.backend = backend
        self._handlers = self._build_handlers()

        missing = [channel.value for channel in Channel if channel not in self._handlers]
        if missing:
            raise ConfigurationError(f"No handler registered for channel(s): {', '.join(missing)}")

    def _build_handlers(self) -> dict[Channel, Callable[..., Any]]:
        backend = self.backend
        return {
            Channel.READ_ENVIRONMENT_DATA: backend.read_environment,
            Channel.WRITE_ENVIRONMENT_DATA: backend.write_environment,
            Channel.DELETE_ENVIRONMENT_DATA: backend.delete_environment,
            Channel.READ_SETTINGS_DATA: backend.read_settings,
            Channel.WRITE_SETTINGS_DATA: backend.write_settings,
            Channel.BUILD_STORAGE_FILEPATH: self.build_storage_file_path,
            Channel.GET_FILENAME: extract_file_name,
            Channel.GET_HASH: content_hash,
            Channel.GET_OS: platform_name,
        }

    @property
    def channels(self) -> frozenset[Channel]:
        return frozenset(self._handlers)

    def invoke(self, channel: Channel | str, *args: Any) -> Any:
        try:
            tag = Channel(channel)
        except ValueError:
            raise ValueError(f"Unknown channel {channel!r}") from None
        return self._handlers[tag](*args)

    def send(self, channel: str, *args: Any) -> None:
        """Fire-and-forget messages; only ``APP_LOGS`` is understood."""
        if channel != "APP_LOGS" or not args:
            return
        entry = args[0] or {}
        level = logging.ERROR if entry.get("type") == "error" else logging.INFO
        logger.log(level, "%s", entry.get("message", ""), extra={"payload": entry.get("payload")})

    def build_storage_file_path(self, name: str) -> str:
        if isinstance(self.backend, StorageApiBackend):
            sanitized = _JSON_SUFFIX.sub("", sanitize_storage_key(name))
            return f"{sanitized or 'environment'}.json"
        return name
