from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from .context import AppContext
from .errors import ArticleNotFound, NewsdeskError, PersistenceFailure, SourceNotFound
from .schemas import (
    TOOL_MODELS,
    CleanupOldData,
    GetAITrends,
    GetDatabaseStats,
    GetLatestNews,
    GetNewsSources,
    GetNewsSummary,
    GetSyncStatus,
    GetTrendingTopics,
    SearchNews,
    SyncNewsData,
    ToolRequest,
    UnknownTool,
    format_validation_error,
    input_schema,
    parse_tool_request,
)
from .services.sources_service import list_sources
from .utils import log_event

TOOL_DESCRIPTIONS: dict[str, str] = {
    "get_latest_ai_news": "Latest AI news articles, optionally restricted to one category.",
    "search_ai_news": "Search AI news by keywords within a date range, ranked by relevance.",
    "get_news_summary": "Summary, key points, sentiment and impact of one article.",
    "get_ai_trends": "Trend report: top topics, top sources, sentiment, emerging and declining topics.",
    "get_trending_topics": "The ten most frequent topic tags in a timeframe.",
    "get_news_sources": "Configured news sources, optionally with a live reachability check.",
    "sync_news_data": "Fetch sources into the database, skipping recently synced ones unless forced.",
    "get_sync_status": "Last sync time per source and source counts.",
    "get_database_stats": "Article and source counts, by category and by source.",
    "cleanup_old_data": "Delete articles published more than daysOld days ago.",
}

TOOL_CATALOG: list[dict[str, Any]] = [
    {
        "name": name,
        "description": TOOL_DESCRIPTIONS[name],
        "inputSchema": input_schema(model),
    }
    for name, model in TOOL_MODELS.items()
]


def success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def failure(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}


def error_status(exc: BaseException) -> int:
    if isinstance(exc, (ArticleNotFound, SourceNotFound)):
        return 404
    if isinstance(exc, ValueError) and str(exc) == "source_not_found":
        return 404
    if isinstance(exc, (ValidationError, UnknownTool, ValueError)):
        return 400
    return 500


def error_message(exc: BaseException) -> str:
    if isinstance(exc, ValidationError):
        return format_validation_error(exc)
    return str(exc)


class ToolDispatcher:
    """Validates tool arguments once and routes them to the core components."""

    def __init__(self, ctx: AppContext, logger: logging.Logger | None = None) -> None:
        self.ctx = ctx
        self.logger = logger or logging.getLogger("newsdesk.tools")

    async def dispatch(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            request = parse_tool_request(name, arguments)
            data = await self.execute(request)
        except (ValidationError, UnknownTool) as exc:
            log_event(self.logger, logging.INFO, "tool_rejected", tool=name, error=error_message(exc))
            return failure(error_message(exc))
        except (NewsdeskError, ValueError) as exc:
            level = logging.ERROR if isinstance(exc, PersistenceFailure) else logging.WARNING
            log_event(self.logger, level, "tool_failed", tool=name, error=str(exc))
            return failure(str(exc))
        log_event(self.logger, logging.DEBUG, "tool_completed", tool=name)
        return success(data)

    async def execute(self, request: ToolRequest) -> Any:
        ctx = self.ctx
        if isinstance(request, GetLatestNews):
            articles = await ctx.aggregator.get_latest(request.limit, request.category)
            return [article.to_dict() for article in articles]
        if isinstance(request, SearchNews):
            articles = await ctx.aggregator.search_news(
                request.query, request.limit, request.date_range, request.filters()
            )
            return [article.to_dict() for article in articles]
        if isinstance(request, GetNewsSummary):
            summary = await ctx.analyzer.get_summary(request.news_id, request.include_key_points)
            return summary.to_dict()
        if isinstance(request, GetAITrends):
            report = await ctx.analyzer.get_trends(request.timeframe, request.include_stats)
            return report.to_dict()
        if isinstance(request, GetTrendingTopics):
            return await ctx.aggregator.get_trending_topics(request.timeframe)
        if isinstance(request, GetNewsSources):
            sources = await list_sources(
                ctx.conn, request.include_status, probe=ctx.fetcher.probe
            )
            return [source.to_dict() for source in sources]
        if isinstance(request, SyncNewsData):
            result = await ctx.scheduler.sync_news(request.force, request.sources, request.max_age)
            return result.to_dict()
        if isinstance(request, GetSyncStatus):
            return ctx.scheduler.get_sync_status().to_dict()
        if isinstance(request, GetDatabaseStats):
            return ctx.scheduler.get_database_stats()
        if isinstance(request, CleanupOldData):
            deleted = await ctx.scheduler.cleanup_old_data(request.days_old)
            return {"deletedCount": deleted, "daysOld": request.days_old}
        raise UnknownTool(getattr(request, "name", "?"))
