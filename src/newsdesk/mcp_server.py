from __future__ import annotations

import logging
import sys
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import load_config
from .context import AppContext, build_context
from .tools import TOOL_DESCRIPTIONS, ToolDispatcher
from .utils import configure_logging, json_dumps, log_event


def build_server(ctx: AppContext) -> FastMCP:
    """Expose every dispatcher tool over MCP; each returns the JSON envelope as text."""
    server = FastMCP("newsdesk")
    dispatcher = ToolDispatcher(ctx)

    async def call(name: str, arguments: dict[str, Any]) -> str:
        arguments = {key: value for key, value in arguments.items() if value is not None}
        return json_dumps(await dispatcher.dispatch(name, arguments))

    @server.tool(description=TOOL_DESCRIPTIONS["get_latest_ai_news"])
    async def get_latest_ai_news(limit: int = 10, category: str | None = None) -> str:
        return await call("get_latest_ai_news", {"limit": limit, "category": category})

    @server.tool(description=TOOL_DESCRIPTIONS["search_ai_news"])
    async def search_ai_news(
        query: str,
        limit: int = 10,
        dateRange: str = "week",
        category: str | None = None,
        source: str | None = None,
        tags: list[str] | None = None,
    ) -> str:
        return await call(
            "search_ai_news",
            {
                "query": query,
                "limit": limit,
                "dateRange": dateRange,
                "category": category,
                "source": source,
                "tags": tags,
            },
        )

    @server.tool(description=TOOL_DESCRIPTIONS["get_news_summary"])
    async def get_news_summary(
        newsId: str | None = None,
        articleId: str | None = None,
        includeKeyPoints: bool = True,
    ) -> str:
        return await call(
            "get_news_summary",
            {"newsId": newsId or articleId, "includeKeyPoints": includeKeyPoints},
        )

    @server.tool(description=TOOL_DESCRIPTIONS["get_ai_trends"])
    async def get_ai_trends(timeframe: str = "month", includeStats: bool = True) -> str:
        return await call("get_ai_trends", {"timeframe": timeframe, "includeStats": includeStats})

    @server.tool(description=TOOL_DESCRIPTIONS["get_trending_topics"])
    async def get_trending_topics(timeframe: str = "week") -> str:
        return await call("get_trending_topics", {"timeframe": timeframe})

    @server.tool(description=TOOL_DESCRIPTIONS["get_news_sources"])
    async def get_news_sources(includeStatus: bool = False) -> str:
        return await call("get_news_sources", {"includeStatus": includeStatus})

    @server.tool(description=TOOL_DESCRIPTIONS["sync_news_data"])
    async def sync_news_data(
        force: bool = False, sources: list[str] | None = None, maxAge: int | None = None
    ) -> str:
        return await call("sync_news_data", {"force": force, "sources": sources, "maxAge": maxAge})

    @server.tool(description=TOOL_DESCRIPTIONS["get_sync_status"])
    async def get_sync_status() -> str:
        return await call("get_sync_status", {})

    @server.tool(description=TOOL_DESCRIPTIONS["get_database_stats"])
    async def get_database_stats() -> str:
        return await call("get_database_stats", {})

    @server.tool(description=TOOL_DESCRIPTIONS["cleanup_old_data"])
    async def cleanup_old_data(daysOld: int = 30) -> str:
        return await call("cleanup_old_data", {"daysOld": daysOld})

    return server


def main(config_path: str | None = None) -> int:
    # stdout carries the MCP protocol; logs go to stderr.
    logger = configure_logging("newsdesk.mcp", stream=sys.stderr)
    config = load_config(config_path)
    ctx = build_context(config, logger=logger)
    log_event(logger, logging.INFO, "mcp_server_starting", db=config.paths.state_db)
    server = build_server(ctx)
    try:
        server.run(transport="stdio")
    finally:
        ctx.conn.close()
    return 0
