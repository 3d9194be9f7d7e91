from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response

from polysearch.base import SearchRequest
from polysearch.cache import CacheConfig
from polysearch.config import Settings
from polysearch.engine import AggregationEngine
from polysearch.factory import build_engine

logger = logging.getLogger(__name__)

_RESERVED_SEARCH_PARAMS = frozenset({"q", "query", "page", "perPage", "cache"})


def create_app(settings: Settings, engine: AggregationEngine | None = None) -> FastAPI:
    http_client: httpx.AsyncClient | None = None
    if engine is None:
        http_client = httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
        )
        engine = build_engine(settings, http_client)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        if http_client is not None:
            await http_client.aclose()

    app = FastAPI(title="polysearch", version="0.1.0", lifespan=lifespan)
    app.include_router(build_router(engine, api_token=settings.api_token))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


def build_router(engine: AggregationEngine, *, api_token: str | None) -> APIRouter:
    router = APIRouter()

    async def authorize(authorization: str | None = Header(default=None)) -> None:
        if api_token is None:
            return
        expected = f"Bearer {api_token}"
        if authorization is None or not secrets.compare_digest(authorization, expected):
            logger.info("rejecting_unauthorized_request")
            raise HTTPException(status_code=401, detail="Unauthorized")

    @router.get("/search", dependencies=[Depends(authorize)])
    async def search(request: Request, response: Response) -> dict[str, Any]:
        params = request.query_params
        query = _require_query(params)
        page = _parse_int(params, "page")
        try:
            search_request = SearchRequest(
                query=query,
                page=1 if page is None else page,
                per_page=_parse_int(params, "perPage"),
                cache_override=_parse_cache_config(params.get("cache")),
                extra={
                    key: value
                    for key, value in params.items()
                    if key not in _RESERVED_SEARCH_PARAMS
                },
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        result = await engine.search(search_request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return result.to_dict()

    @router.get("/suggest", dependencies=[Depends(authorize)])
    async def suggest(request: Request, response: Response) -> dict[str, list[str]]:
        query = _require_query(request.query_params)
        suggestions = await engine.suggest(query)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return {"suggestions": suggestions}

    return router


def _require_query(params: Mapping[str, str]) -> str:
    query = params.get("q") or params.get("query")
    if not query:
        raise HTTPException(
            status_code=400,
            detail="Query parameter 'q' or 'query' is required",
        )
    return query


def _parse_int(params: Mapping[str, str], key: str) -> int | None:
    value = params.get(key)
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail=f"Query parameter '{key}' must be an integer"
        ) from exc


def _parse_cache_config(value: str | None) -> CacheConfig | None:
    if value is None:
        return None
    try:
        return CacheConfig.from_mapping(json.loads(value))
    except (ValueError, TypeError):
        logger.debug("ignoring_invalid_cache_param value_len=%d", len(value))
        return None


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    settings = Settings.from_env()
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
