"""
Client-side persistence.

One contract, two implementations, picked once by ``select_backend``:

  StorageApiBackend     — talks to the storage HTTP API (containerized runtime)
  LocalDatabaseBackend  — embedded SQLite database (desktop / standalone)

Reads of missing documents return ``None``; deletes return whether anything
was removed. Every failure is raised as ``StorageError`` (``TransportError``
for the HTTP backend).

Both backends are synchronous: a blocking ``httpx.Client`` and a scoped
``sqlite3`` connection per call. Nothing in this process awaits them; an
asyncio caller wraps them in ``run_in_threadpool`` the way the storage API
writes files.
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping
from urllib.parse import quote

import httpx

import db
from modules.errors import StorageError, TransportError
from modules.keys import sanitize_storage_key

logger = logging.getLogger(__name__)

SETTINGS_KEY = "appSettings"
DEFAULT_DB_PATH = Path.home() / ".mockdock" / "mockdock-db.sqlite"


class PersistenceBackend(ABC):
    @abstractmethod
    def read_environment(self, key: str) -> dict | None: ...

    @abstractmethod
    def write_environment(
        self, environment: dict, descriptor: Mapping | None = None, pretty: bool | None = None
    ) -> None: ...

    @abstractmethod
    def delete_environment(self, key: str) -> bool: ...

    @abstractmethod
    def read_settings(self) -> dict | None: ...

    @abstractmethod
    def write_settings(self, settings: dict, pretty: bool | None = None) -> None: ...


# ── Storage API ───────────────────────────────────────────────────────────────

def normalize_api_base(base: str | None) -> str | None:
    if not base:
        return None
    trimmed = base.strip()
    if not trimmed:
        return None
    return trimmed[:-1] if trimmed.endswith("/") else trimmed


class StorageApiBackend(PersistenceBackend):
    """Each operation is exactly one request against the storage API."""

    def __init__(self, base_url: str, client: httpx.Client | None = None, timeout: float = 30.0):
        self.base_url = base_url
        self._client = client if client is not None else httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _environment_url(self, key: str) -> str:
        return f"{self.base_url}/environments/{quote(sanitize_storage_key(key), safe='')}"

    def _settings_url(self) -> str:
        return f"{self.base_url}/settings"

    @staticmethod
    def _params(pretty: bool | None) -> dict:
        if pretty is None:
            return {}
        return {"pretty": "1" if pretty else "0"}

    def _request(self, action: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(
                method, url, headers={"Cache-Control": "no-store"}, **kwargs
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Unable to {action} ({exc})") from exc

        if response.status_code == 404 or response.is_success:
            return response
        raise TransportError(
            f"Unable to {action} ({response.reason_phrase or response.status_code})",
            response.status_code,
        )

    @staticmethod
    def _json(response: httpx.Response, action: str):
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Unable to {action} (invalid JSON response)", response.status_code) from exc

    def read_environment(self, key: str) -> dict | None:
        response = self._request("read environment", "GET", self._environment_url(key))
        if response.status_code == 404:
            return None
        return self._json(response, "read environment")

    def write_environment(
        self, environment: dict, descriptor: Mapping | None = None, pretty: bool | None = None
    ) -> None:
        target = (descriptor or {}).get("path") or environment.get("uuid")
        if not target:
            raise StorageError("Unable to write environment (no path or uuid)")

        response = self._request(
            "write environment",
            "PUT",
            self._environment_url(target),
            params=self._params(pretty),
            json=environment,
        )
        if response.status_code == 404:
            raise TransportError("Unable to write environment (Not Found)", 404)

    def delete_environment(self, key: str) -> bool:
        response = self._request("delete environment", "DELETE", self._environment_url(key))
        return response.status_code != 404

    def read_settings(self) -> dict | None:
        response = self._request("read settings", "GET", self._settings_url())
        if response.status_code == 404:
            return None
        return self._json(response, "read settings")

    def write_settings(self, settings: dict, pretty: bool | None = None) -> None:
        response = self._request(
            "write settings", "PUT", self._settings_url(), params=self._params(pretty), json=settings
        )
        if response.status_code == 404:
            raise TransportError("Unable to write settings (Not Found)", 404)


# ── Embedded database ─────────────────────────────────────────────────────────

class LocalDatabaseBackend(PersistenceBackend):
    """
    Environments keyed by ``uuid`` in one table; settings serialized under
    ``appSettings`` in a separate key/value table. Every call opens its own
    connection through ``db.connect`` which commits or rolls back and always
    closes. ``pretty`` has no meaning here and is ignored.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        try:
            db.init(self.db_path)
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Unable to open local database ({exc})") from exc

    def read_environment(self, key: str) -> dict | None:
        rows = self._fetch("read environment", f"SELECT body FROM {db.ENVIRONMENTS_TABLE} WHERE uuid = ?", (key,))
        return json.loads(rows[0]["body"]) if rows else None

    def write_environment(
        self, environment: dict, descriptor: Mapping | None = None, pretty: bool | None = None
    ) -> None:
        env_uuid = environment.get("uuid")
        if not env_uuid:
            raise StorageError("Unable to write environment (missing uuid)")
        self._modify(
            "write environment",
            f"""
            INSERT INTO {db.ENVIRONMENTS_TABLE} (uuid, body) VALUES (?, ?)
            ON CONFLICT(uuid) DO UPDATE SET
                body       = excluded.body,
                updated_at = datetime('now')
            """,
            (env_uuid, json.dumps(environment)),
        )

    def delete_environment(self, key: str) -> bool:
        deleted = self._modify(
            "delete environment", f"DELETE FROM {db.ENVIRONMENTS_TABLE} WHERE uuid = ?", (key,)
        )
        return deleted > 0

    def read_settings(self) -> dict | None:
        rows = self._fetch(
            "read settings", f"SELECT value FROM {db.SETTINGS_TABLE} WHERE key = ?", (SETTINGS_KEY,)
        )
        return json.loads(rows[0]["value"]) if rows else None

    def write_settings(self, settings: dict, pretty: bool | None = None) -> None:
        self._modify(
            "write settings",
            f"""
            INSERT INTO {db.SETTINGS_TABLE} (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (SETTINGS_KEY, json.dumps(settings)),
        )

    def _fetch(self, action: str, sql: str, params: tuple) -> list[sqlite3.Row]:
        try:
            with db.connect(self.db_path) as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to {action} ({exc})") from exc

    def _modify(self, action: str, sql: str, params: tuple) -> int:
        try:
            with db.connect(self.db_path) as conn:
                return conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to {action} ({exc})") from exc


# ── Selection ─────────────────────────────────────────────────────────────────

def select_backend(
    runtime_config: Mapping | None,
    db_path: Path = DEFAULT_DB_PATH,
    client: httpx.Client | None = None,
) -> PersistenceBackend:
    """A non-empty ``storageApiBase`` selects the storage API, anything else the local database."""
    base = normalize_api_base((runtime_config or {}).get("storageApiBase"))
    if base:
        logger.info("Using storage API at %s", base)
        return StorageApiBackend(base, client=client)
    logger.info("Using local database at %s", db_path)
    return LocalDatabaseBackend(db_path)
