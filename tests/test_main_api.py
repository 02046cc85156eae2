import httpx
import pytest

from modules.errors import ConfigurationError
from modules.main_api import Channel, MainApi, extract_file_name, platform_name
from modules.persistence import LocalDatabaseBackend, StorageApiBackend


@pytest.fixture
def local_api(tmp_path):
    return MainApi(LocalDatabaseBackend(tmp_path / "db.sqlite"))


@pytest.fixture
def remote_api():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    return MainApi(StorageApiBackend("http://api/storage", client=httpx.Client(transport=transport)))


def test_every_channel_has_a_handler(local_api) -> None:
    assert local_api.channels == frozenset(Channel)


def test_missing_handler_fails_at_construction(tmp_path) -> None:
    class Incomplete(MainApi):
        def _build_handlers(self):
            handlers = super()._build_handlers()
            del handlers[Channel.GET_OS]
            return handlers

    with pytest.raises(ConfigurationError, match="APP_GET_OS"):
        Incomplete(LocalDatabaseBackend(tmp_path / "db.sqlite"))


def test_invoke_dispatches_by_tag_value(local_api) -> None:
    local_api.invoke("APP_WRITE_ENVIRONMENT_DATA", {"uuid": "e1", "name": "x"})

    assert local_api.invoke(Channel.READ_ENVIRONMENT_DATA, "e1") == {"uuid": "e1", "name": "x"}
    assert local_api.invoke("APP_READ_SETTINGS_DATA") is None
    assert local_api.invoke(Channel.GET_HASH, "abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"


def test_unknown_channel_raises(local_api) -> None:
    with pytest.raises(ValueError, match="APP_SHOW_OPEN_DIALOG"):
        local_api.invoke("APP_SHOW_OPEN_DIALOG")


def test_build_storage_file_path_depends_on_backend(local_api, remote_api) -> None:
    assert local_api.invoke(Channel.BUILD_STORAGE_FILEPATH, "/home/me/My Env.json") == "/home/me/My Env.json"
    assert remote_api.invoke(Channel.BUILD_STORAGE_FILEPATH, "/home/me/My Env.json") == "MyEnv.json"
    assert remote_api.invoke(Channel.BUILD_STORAGE_FILEPATH, "") == "environment.json"


def test_remote_absent_reads(remote_api) -> None:
    assert remote_api.invoke(Channel.READ_ENVIRONMENT_DATA, "nope") is None
    assert remote_api.invoke(Channel.DELETE_ENVIRONMENT_DATA, "nope") is False


@pytest.mark.parametrize(
    ("path", "expected"),
    [("C:\\envs\\demo.JSON", "demo"), ("/data/environments/api.json", "api"), ("plain", "plain"), ("", "")],
)
def test_extract_file_name(path, expected) -> None:
    assert extract_file_name(path) == expected


@pytest.mark.parametrize(
    ("platform", "expected"),
    [("win32", "win32"), ("cygwin", "win32"), ("darwin", "darwin"), ("linux", "linux"), ("freebsd14", "unknown")],
)
def test_platform_name(platform, expected) -> None:
    assert platform_name(platform) == expected


def test_send_logs_entries(local_api, caplog) -> None:
    with caplog.at_level("INFO", logger="modules.main_api"):
        local_api.send("APP_LOGS", {"type": "error", "message": "Route failed"})
        local_api.send("APP_WRITE_CLIPBOARD", "ignored")

    assert [(r.levelname, r.getMessage()) for r in caplog.records] == [("ERROR", "Route failed")]
