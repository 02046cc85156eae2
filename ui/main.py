"""FastAPI application: storage API under the configured prefix, UI assets for everything else."""

import json
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Config
from modules import storage_api
from modules.bootstrap import InitialState

logger = logging.getLogger(__name__)

RUNTIME_CONFIG_GLOBAL = "__MOCKDOCK_CONFIG__"


class SpaStaticFiles(StaticFiles):
    """Static files that answer unknown paths with ``index.html``."""

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


def write_runtime_config(config: Config) -> Path:
    """Write the ``assets/docker-config.js`` script the browser client reads its storage base from."""
    assets_dir = config.ui_dist_dir / "assets"
    assets_dir.mkdir(parents=True, exist_ok=True)
    target = assets_dir / "docker-config.js"

    payload = json.dumps({"storageApiBase": config.api_prefix})
    target.write_text(
        f"window.{RUNTIME_CONFIG_GLOBAL} = Object.assign({{}}, "
        f"window.{RUNTIME_CONFIG_GLOBAL} || {{}}, {payload});\n",
        encoding="utf-8",
    )
    return target


def create_app(config: Config, state: InitialState) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    app.add_middleware(GZipMiddleware)

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > config.body_limit:
            return JSONResponse(status_code=413, content={"message": storage_api.TOO_LARGE})
        return await call_next(request)

    storage_api.register(app, config.api_prefix, state, config.body_limit)

    if config.ui_dist_dir.is_dir():
        app.mount("/", SpaStaticFiles(directory=config.ui_dist_dir, html=True), name="ui")
    else:
        logger.warning("UI directory %s not found, serving the storage API only", config.ui_dist_dir)

    return app
