from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import load_config
from .context import AppContext, build_context
from .errors import NewsdeskError
from .schemas import UnknownTool, parse_tool_request
from .services.sources_service import create_source, delete_source, update_source
from .tools import TOOL_CATALOG, ToolDispatcher, error_message, error_status, failure, success
from .utils import configure_logging, log_event

logger = logging.getLogger("newsdesk.api")

LIST_PARAMS = ("tags", "sources")


class SourceRequest(BaseModel):
    id: str | None = None
    name: str | None = None
    url: str | None = None
    kind: str | None = None
    category: str | None = None
    language: str | None = None
    is_active: bool | None = None


class ToolCallRequest(BaseModel):
    name: str
    arguments: dict[str, Any] | None = None


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("NEWSDESK_ADMIN_TOKEN")
    if not token:
        return
    if request.headers.get("X-Admin-Token") != token:
        raise HTTPException(status_code=401, detail="unauthorized")


async def _get_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        ctx = build_context(load_config(), logger=logger)
        request.app.state.ctx = ctx
        request.app.state.owns_ctx = True
    return ctx


def _query_arguments(request: Request, renames: dict[str, str] | None = None) -> dict[str, Any]:
    arguments: dict[str, Any] = {}
    for key, value in request.query_params.items():
        key = (renames or {}).get(key, key)
        if key in LIST_PARAMS:
            arguments[key] = [item.strip() for item in value.split(",") if item.strip()]
        else:
            arguments[key] = value
    return arguments


def _error_response(exc: BaseException) -> JSONResponse:
    status = error_status(exc)
    level = logging.ERROR if status >= 500 else logging.INFO
    log_event(logger, level, "request_failed", status=status, error=error_message(exc))
    return JSONResponse(failure(error_message(exc)), status_code=status)


async def _run_tool(ctx: AppContext, name: str, arguments: dict[str, Any]) -> Any:
    try:
        request = parse_tool_request(name, arguments)
        data = await ToolDispatcher(ctx).execute(request)
    except (ValidationError, UnknownTool, NewsdeskError, ValueError) as exc:
        return _error_response(exc)
    return success(data)


def create_app(ctx: AppContext | None = None, owns_context: bool = False) -> FastAPI:
    app = FastAPI(title="newsdesk API")
    app.state.ctx = ctx
    app.state.owns_ctx = owns_context

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        if app.state.owns_ctx and app.state.ctx is not None:
            await app.state.ctx.close()
            app.state.ctx = None

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {
            "ok": True,
            "version": _get_version(),
            "time": datetime.now(tz=timezone.utc).isoformat(),
        }

    @app.get("/api/news/latest")
    async def news_latest(request: Request, ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, "get_latest_ai_news", _query_arguments(request))

    @app.get("/api/news/search")
    async def news_search(request: Request, ctx: AppContext = Depends(_get_context)):
        arguments = _query_arguments(request, {"q": "query"})
        return await _run_tool(ctx, "search_ai_news", arguments)

    @app.get("/api/news/{news_id}/summary")
    async def news_summary(news_id: str, request: Request, ctx: AppContext = Depends(_get_context)):
        arguments = _query_arguments(request)
        arguments["newsId"] = news_id
        return await _run_tool(ctx, "get_news_summary", arguments)

    @app.get("/api/news/category/{category}")
    async def news_by_category(
        category: str,
        limit: int = Query(10, ge=1, le=100),
        ctx: AppContext = Depends(_get_context),
    ):
        articles = await ctx.aggregator.get_news_by_category(category, limit)
        return success([article.to_dict() for article in articles])

    @app.get("/api/news/source/{source_name}")
    async def news_by_source(
        source_name: str,
        limit: int = Query(10, ge=1, le=100),
        ctx: AppContext = Depends(_get_context),
    ):
        try:
            articles = await ctx.aggregator.get_news_by_source(source_name, limit)
        except NewsdeskError as exc:
            return _error_response(exc)
        return success([article.to_dict() for article in articles])

    @app.get("/api/trends")
    async def trends(request: Request, ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, "get_ai_trends", _query_arguments(request))

    @app.get("/api/trends/topics")
    async def trending_topics(request: Request, ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, "get_trending_topics", _query_arguments(request))

    @app.get("/api/sources")
    async def sources_list(request: Request, ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, "get_news_sources", _query_arguments(request))

    @app.post("/api/sources", dependencies=[Depends(_require_admin_token)])
    async def sources_create(payload: SourceRequest, ctx: AppContext = Depends(_get_context)):
        try:
            source = create_source(ctx.conn, payload.model_dump(exclude_none=True))
        except (NewsdeskError, ValueError) as exc:
            return _error_response(exc)
        return success(source.to_dict())

    @app.put("/api/sources/{source_id}", dependencies=[Depends(_require_admin_token)])
    async def sources_update(
        source_id: str, payload: SourceRequest, ctx: AppContext = Depends(_get_context)
    ):
        try:
            source = update_source(ctx.conn, source_id, payload.model_dump(exclude_unset=True))
        except (NewsdeskError, ValueError) as exc:
            return _error_response(exc)
        return success(source.to_dict())

    @app.delete("/api/sources/{source_id}", dependencies=[Depends(_require_admin_token)])
    async def sources_delete(source_id: str, ctx: AppContext = Depends(_get_context)):
        try:
            delete_source(ctx.conn, source_id)
        except (NewsdeskError, ValueError) as exc:
            return _error_response(exc)
        ctx.aggregator.clear_cache()
        return success({"id": source_id, "status": "deleted"})

    @app.post("/api/sync", dependencies=[Depends(_require_admin_token)])
    async def sync(request: Request, ctx: AppContext = Depends(_get_context)):
        body = await request.body()
        try:
            arguments = json.loads(body) if body else {}
        except ValueError:
            return JSONResponse(failure("request body must be JSON"), status_code=400)
        if not isinstance(arguments, dict):
            return JSONResponse(failure("request body must be an object"), status_code=400)
        return await _run_tool(ctx, "sync_news_data", arguments)

    @app.get("/api/sync/status")
    async def sync_status(ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, "get_sync_status", {})

    @app.get("/api/stats")
    async def stats(ctx: AppContext = Depends(_get_context)):
        response = await _run_tool(ctx, "get_database_stats", {})
        if isinstance(response, dict):
            response["data"]["cache"] = ctx.aggregator.cache_stats()
        return response

    @app.delete("/api/cleanup", dependencies=[Depends(_require_admin_token)])
    async def cleanup(request: Request, ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, "cleanup_old_data", _query_arguments(request))

    @app.get("/api/llm/status")
    async def llm_status(ctx: AppContext = Depends(_get_context)):
        summarizer = ctx.analyzer.external
        available = summarizer.is_available()
        reachable = await summarizer.test_connection() if available else False
        return success({"available": available, "reachable": reachable})

    @app.get("/api/mcp/tools")
    async def tools_list() -> dict[str, Any]:
        return success(TOOL_CATALOG)

    @app.post("/api/mcp/tools")
    async def tools_call(payload: ToolCallRequest, ctx: AppContext = Depends(_get_context)):
        return await _run_tool(ctx, payload.name, payload.arguments or {})

    return app


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("newsdesk")
    except Exception:  # noqa: BLE001
        return "unknown"


def serve(host: str | None = None, port: int | None = None, config_path: str | None = None) -> None:
    configure_logging("newsdesk.api")
    config = load_config(config_path)
    app = create_app(build_context(config, logger=logger), owns_context=True)
    log_event(logger, logging.INFO, "api_starting", host=host or config.http.host, port=port or config.http.port)
    uvicorn.run(app, host=host or config.http.host, port=port or config.http.port)


app = create_app()
