from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, build_store
from .errors import NotFound, PokemonApiError
from .kv import KvStore
from .models import ErrorResponse
from .resources import ResourceStore, parse_record_id

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _reject_constant(name: str):
    raise ValueError(f"non-finite number {name} is not valid JSON")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)


def create_app(settings: Settings | None = None, store: KvStore | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if store is None:
        store = build_store(settings)
    resources = ResourceStore(store, settings.collection)
    base = f"/{settings.collection}"

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("serving /%s from %s store", settings.collection, settings.backend)
        yield
        await store.aclose()

    app = FastAPI(title=f"{settings.collection}-api", lifespan=lifespan, redirect_slashes=False)
    app.state.resources = resources

    @app.middleware("http")
    async def cors_and_errors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("unhandled error on %s %s", request.method, request.url.path)
            response = error_response(500, "internal server error")
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(PokemonApiError)
    async def api_error(request: Request, exc: PokemonApiError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        # Unknown routes and unsupported methods on known routes are both "not found".
        if exc.status_code in (404, 405):
            return error_response(404, NotFound.message)
        return error_response(exc.status_code, str(exc.detail))

    @app.post(base, status_code=201)
    async def create_record(request: Request):
        try:
            body = json.loads(await request.body(), parse_constant=_reject_constant)
        except ValueError:
            body = None
        record = await resources.create(body)
        return JSONResponse(record, status_code=201)

    @app.get(base)
    async def list_records():
        return JSONResponse(await resources.list())

    # Only the exact /pokemon/{id} shape routes; deeper paths such as
    # /pokemon/1/moves fall through to 404 instead of resolving record 1.
    @app.get(base + "/{record_id}")
    async def get_record(record_id: str):
        return JSONResponse(await resources.get(parse_record_id(record_id)))

    @app.delete(base + "/{record_id}", status_code=204)
    async def delete_record(record_id: str):
        await resources.delete(parse_record_id(record_id))
        return Response(status_code=204)

    return app


app = create_app()
