"""
Storage HTTP API.

Environment documents live on disk under <data_dir>/<env_subdir>/<name>.json,
the settings document at <data_dir>/settings.json.

Routes registered (under the configured prefix):
  GET    /settings           — read settings (404 when absent)
  PUT    /settings           — replace settings
  GET    /environments/{id}  — read an environment document
  PUT    /environments/{id}  — replace an environment document (object body required)
  DELETE /environments/{id}  — delete an environment document

Writes honour the ``pretty`` query flag (absent → indented JSON). Request bodies are
counted as they stream in and refused with 413 past the configured limit.
Failures are logged here and answered with a fixed message only.
"""

import json
import logging
from pathlib import Path

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from modules.bootstrap import InitialState, dump_json
from modules.keys import ensure_json_extension

logger = logging.getLogger(__name__)

TOO_LARGE = "Request body too large"


def is_pretty(value: str | None) -> bool:
    if value is None:
        return True
    return value == "1" or value.lower() == "true"


def _server_error(exc: BaseException, message: str) -> JSONResponse:
    logger.error("storage API error: %s", message, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": message})


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


class BodyTooLarge(Exception):
    pass


async def _read_body(request: Request, limit: int | None) -> bytes:
    chunks = []
    total = 0
    async for chunk in request.stream():
        total += len(chunk)
        if limit is not None and total > limit:
            raise BodyTooLarge
        chunks.append(chunk)
    return b"".join(chunks)


def _parse_body(raw: bytes):
    """Decode a JSON request body; ``None`` for an empty body, ValueError if malformed."""
    if not raw.strip():
        return None
    return json.loads(raw)


def _write(path: Path, payload, pretty: bool) -> None:
    path.write_text(dump_json(payload, pretty), encoding="utf-8")


def register(app: FastAPI, prefix: str, state: InitialState, body_limit: int | None = None) -> None:
    router = APIRouter()
    env_dir = state.env_dir
    settings_path = state.settings_path

    def environment_path(env_id: str) -> tuple[str, Path | None]:
        file_name = ensure_json_extension(env_id)
        path = env_dir / file_name
        try:
            confined = path.resolve().parent == env_dir.resolve()
        except (OSError, ValueError):
            confined = False
        return file_name, path if confined else None

    # ── Settings ──────────────────────────────────────────────────────────────

    @router.get("/settings")
    def read_settings():
        try:
            content = settings_path.read_text(encoding="utf-8")
            return JSONResponse(content=json.loads(content))
        except FileNotFoundError:
            return Response(status_code=404)
        except Exception as exc:
            return _server_error(exc, "Unable to read settings file")

    @router.put("/settings")
    async def write_settings(request: Request, pretty: str | None = None):
        try:
            payload = _parse_body(await _read_body(request, body_limit))
        except BodyTooLarge:
            return _message(413, TOO_LARGE)
        except ValueError:
            return _message(400, "Settings payload is not valid JSON")

        try:
            await run_in_threadpool(
                _write, settings_path, {} if payload is None else payload, is_pretty(pretty)
            )
        except Exception as exc:
            return _server_error(exc, "Unable to write settings file")
        return Response(status_code=204)

    # ── Environments ──────────────────────────────────────────────────────────

    @router.get("/environments/{env_id}")
    def read_environment(env_id: str):
        file_name, path = environment_path(env_id)
        if path is None:
            return Response(status_code=404)

        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Response(status_code=404)
        except Exception as exc:
            return _server_error(exc, "Unable to read environment file")

        try:
            return JSONResponse(content=json.loads(content))
        except ValueError as exc:
            logger.error("Environment file %s is not valid JSON: %s", file_name, exc)
            return _message(500, f'Environment file "{file_name}" is not valid JSON')

    @router.put("/environments/{env_id}")
    async def write_environment(env_id: str, request: Request, pretty: str | None = None):
        _, path = environment_path(env_id)
        if path is None:
            return _message(400, "Invalid environment identifier")

        try:
            payload = _parse_body(await _read_body(request, body_limit))
        except BodyTooLarge:
            return _message(413, TOO_LARGE)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            return _message(400, "Environment payload is required")

        try:
            await run_in_threadpool(_write, path, payload, is_pretty(pretty))
        except Exception as exc:
            return _server_error(exc, "Unable to write environment file")
        return Response(status_code=204)

    @router.delete("/environments/{env_id}")
    def delete_environment(env_id: str):
        _, path = environment_path(env_id)
        if path is None:
            return Response(status_code=404)

        try:
            path.unlink()
        except FileNotFoundError:
            return Response(status_code=404)
        except Exception as exc:
            return _server_error(exc, "Unable to delete environment file")
        return Response(status_code=204)

    app.include_router(router, prefix=prefix)
