import pytest

from modules.keys import DEFAULT_FILE_NAME, ensure_json_extension, sanitize_storage_key


def test_traversal_is_reduced_to_last_segment() -> None:
    assert ensure_json_extension("../../etc/passwd") == "passwd.json"
    assert ensure_json_extension("..\\..\\windows\\win.ini") == "win.ini.json"


def test_unsafe_characters_are_stripped() -> None:
    assert sanitize_storage_key("my env (copy)!.json") == "myenvcopy.json"


def test_falls_back_to_raw_segment_when_everything_is_stripped() -> None:
    assert sanitize_storage_key("dir/%%%") == "%%%"
    assert ensure_json_extension("dir/%%%") == "%%%.json"


def test_existing_json_suffix_is_kept_case_insensitively() -> None:
    assert ensure_json_extension("Env.JSON") == "Env.JSON"
    assert ensure_json_extension("env") == "env.json"


@pytest.mark.parametrize("value", ["", None, "trailing/", "a\\b\\"])
def test_empty_keys_map_to_default_name(value) -> None:
    assert sanitize_storage_key(value) == ""
    assert ensure_json_extension(value) == DEFAULT_FILE_NAME


@pytest.mark.parametrize(
    "value",
    ["../x", "a/b/c", "..\\..\\", "/", "\\\\server\\share", "name with spaces", "ünïcødé/ö", "x" * 300],
)
def test_sanitized_names_never_contain_separators(value) -> None:
    result = ensure_json_extension(value)
    assert "/" not in result
    assert "\\" not in result
    assert result.lower().endswith(".json")
