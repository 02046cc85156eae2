import asyncio
import json
import sqlite3

import httpx
import pytest
from fastapi.concurrency import run_in_threadpool
from fastapi.testclient import TestClient

import db
from modules.bootstrap import ensure_initial_state
from modules.errors import StorageError, TransportError
from modules.persistence import LocalDatabaseBackend, StorageApiBackend, select_backend
from ui.main import create_app


@pytest.fixture
def cfg(make_config):
    return make_config()


@pytest.fixture
def api_backend(cfg):
    state = ensure_initial_state(cfg)
    cfg.settings_path.unlink()
    return StorageApiBackend("http://testserver/storage", client=TestClient(create_app(cfg, state)))


@pytest.fixture
def local_backend(tmp_path):
    return LocalDatabaseBackend(tmp_path / "local" / "db.sqlite")


def _run_sequence(backend) -> list:
    results = []
    results.append(backend.read_settings())
    results.append(backend.read_environment("env-1"))
    backend.write_environment({"uuid": "env-1", "name": "First", "port": 3000})
    results.append(backend.read_environment("env-1"))
    backend.write_environment({"uuid": "env-1", "name": "Renamed", "port": 3001}, pretty=False)
    results.append(backend.read_environment("env-1"))
    backend.write_environment({"uuid": "env-2", "routes": []})
    results.append(backend.delete_environment("env-1"))
    results.append(backend.delete_environment("env-1"))
    results.append(backend.read_environment("env-1"))
    results.append(backend.read_environment("env-2"))
    backend.write_settings({"environments": [], "activeEnvironmentUuid": None}, pretty=True)
    results.append(backend.read_settings())
    backend.write_settings({})
    results.append(backend.read_settings())
    return results


def test_backends_behave_identically(api_backend, local_backend) -> None:
    remote = _run_sequence(api_backend)
    local = _run_sequence(local_backend)

    assert remote == local
    assert local == [
        None,
        None,
        {"uuid": "env-1", "name": "First", "port": 3000},
        {"uuid": "env-1", "name": "Renamed", "port": 3001},
        True,
        False,
        None,
        {"uuid": "env-2", "routes": []},
        {"environments": [], "activeEnvironmentUuid": None},
        {},
    ]


def test_descriptor_path_selects_the_remote_file(api_backend, cfg) -> None:
    api_backend.write_environment({"uuid": "u"}, descriptor={"path": "../nested/orders.json"}, pretty=False)

    assert (cfg.env_dir / "orders.json").read_text() == '{"uuid":"u"}'
    assert api_backend.read_environment("orders.json") == {"uuid": "u"}


def test_remote_pretty_preference_is_sent(api_backend, cfg) -> None:
    api_backend.write_environment({"uuid": "p"}, pretty=True)

    assert (cfg.env_dir / "p.json").read_text() == '{\n  "uuid": "p"\n}'


def test_error_status_becomes_transport_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"message": "nope"}))
    backend = StorageApiBackend("http://api/storage", client=httpx.Client(transport=transport))

    with pytest.raises(TransportError) as info:
        backend.read_settings()

    assert info.value.status_code == 500
    assert str(info.value) == "Unable to read settings (Internal Server Error)"


def test_connection_failure_becomes_transport_error() -> None:
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = StorageApiBackend("http://api/storage", client=httpx.Client(transport=httpx.MockTransport(refuse)))

    with pytest.raises(TransportError, match="Unable to delete environment"):
        backend.delete_environment("x")


def test_local_backend_runs_from_a_worker_thread(local_backend) -> None:
    async def roundtrip():
        await run_in_threadpool(local_backend.write_environment, {"uuid": "env-t", "port": 3000})
        return await run_in_threadpool(local_backend.read_environment, "env-t")

    assert asyncio.run(roundtrip()) == {"uuid": "env-t", "port": 3000}


def test_local_write_requires_uuid(local_backend) -> None:
    with pytest.raises(StorageError):
        local_backend.write_environment({"name": "no id"})


def test_local_settings_live_outside_environment_table(local_backend) -> None:
    local_backend.write_settings({"a": 1})

    with sqlite3.connect(local_backend.db_path) as conn:
        assert conn.execute(f"SELECT COUNT(*) FROM {db.ENVIRONMENTS_TABLE}").fetchone()[0] == 0
        row = conn.execute(f"SELECT value FROM {db.SETTINGS_TABLE} WHERE key = 'appSettings'").fetchone()
    assert json.loads(row[0]) == {"a": 1}


def test_local_connections_are_closed_on_failure(local_backend, monkeypatch) -> None:
    opened = []
    raw_connect = db._raw_connect

    class Tracking:
        def __init__(self, conn):
            self._conn = conn
            self.closed = False

        def __getattr__(self, name):
            return getattr(self._conn, name)

        def close(self):
            self.closed = True
            self._conn.close()

    def tracking_connect(path):
        conn = Tracking(raw_connect(path))
        opened.append(conn)
        return conn

    monkeypatch.setattr(db, "_raw_connect", tracking_connect)

    local_backend.write_environment({"uuid": "ok"})
    with db.connect(local_backend.db_path) as conn:
        conn.execute(f"DROP TABLE {db.ENVIRONMENTS_TABLE}")

    with pytest.raises(StorageError):
        local_backend.read_environment("ok")

    assert len(opened) == 3
    assert all(conn.closed for conn in opened)


def test_select_backend(tmp_path) -> None:
    db_path = tmp_path / "db.sqlite"

    remote = select_backend({"storageApiBase": " http://host:8080/storage/ "}, db_path=db_path)
    assert isinstance(remote, StorageApiBackend)
    assert remote.base_url == "http://host:8080/storage"

    for runtime_config in (None, {}, {"storageApiBase": ""}, {"storageApiBase": "   "}):
        assert isinstance(select_backend(runtime_config, db_path=db_path), LocalDatabaseBackend)
