"""
Storage key sanitizing.

Every identifier that arrives from outside the process (URL path segment,
descriptor path, configured data file name) is reduced to a bare file name
before it is joined onto the environments directory:

  sanitize_storage_key   — last path segment, restricted to [A-Za-z0-9_.-]
  ensure_json_extension  — the above, plus a guaranteed ``.json`` suffix
"""

import re

DEFAULT_FILE_NAME = "environment.json"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")


def sanitize_storage_key(value: str | None) -> str:
    if not value:
        return ""

    last_segment = value.replace("\\", "/").split("/")[-1]
    sanitized = _UNSAFE_CHARS.sub("", last_segment)

    return sanitized or last_segment


def ensure_json_extension(value: str | None) -> str:
    sanitized = sanitize_storage_key(value)

    if not sanitized:
        return DEFAULT_FILE_NAME

    if sanitized.lower().endswith(".json"):
        return sanitized
    return f"{sanitized}.json"
