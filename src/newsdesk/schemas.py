from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class GetLatestNews(ToolArguments):
    name: Literal["get_latest_ai_news"] = "get_latest_ai_news"
    limit: int = Field(10, ge=1, le=100)
    category: str | None = None


class SearchNews(ToolArguments):
    name: Literal["search_ai_news"] = "search_ai_news"
    query: str
    limit: int = Field(10, ge=1, le=100)
    date_range: Literal["today", "week", "month"] = Field(
        "week", validation_alias=AliasChoices("dateRange", "date_range")
    )
    category: str | None = None
    source: str | None = None
    tags: list[str] | None = None

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query is required")
        return value.strip()

    def filters(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in {
                "category": self.category,
                "source": self.source,
                "tags": list(self.tags) if self.tags else None,
            }.items()
            if value
        }


class GetNewsSummary(ToolArguments):
    name: Literal["get_news_summary"] = "get_news_summary"
    news_id: str = Field(
        validation_alias=AliasChoices("newsId", "articleId", "news_id", "article_id")
    )
    include_key_points: bool = Field(
        True, validation_alias=AliasChoices("includeKeyPoints", "include_key_points")
    )

    @field_validator("news_id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("newsId is required")
        return value.strip()


class GetAITrends(ToolArguments):
    name: Literal["get_ai_trends"] = "get_ai_trends"
    timeframe: Literal["week", "month", "quarter"] = "month"
    include_stats: bool = Field(True, validation_alias=AliasChoices("includeStats", "include_stats"))


class GetTrendingTopics(ToolArguments):
    name: Literal["get_trending_topics"] = "get_trending_topics"
    timeframe: Literal["today", "week", "month"] = "week"


class GetNewsSources(ToolArguments):
    name: Literal["get_news_sources"] = "get_news_sources"
    include_status: bool = Field(
        False, validation_alias=AliasChoices("includeStatus", "include_status")
    )


class SyncNewsData(ToolArguments):
    name: Literal["sync_news_data"] = "sync_news_data"
    force: bool = False
    sources: list[str] | None = None
    max_age: int | None = Field(None, ge=0, validation_alias=AliasChoices("maxAge", "max_age"))


class GetSyncStatus(ToolArguments):
    name: Literal["get_sync_status"] = "get_sync_status"


class GetDatabaseStats(ToolArguments):
    name: Literal["get_database_stats"] = "get_database_stats"


class CleanupOldData(ToolArguments):
    name: Literal["cleanup_old_data"] = "cleanup_old_data"
    days_old: int = Field(30, ge=1, validation_alias=AliasChoices("daysOld", "days_old"))


ToolRequest = Annotated[
    Union[
        GetLatestNews,
        SearchNews,
        GetNewsSummary,
        GetAITrends,
        GetTrendingTopics,
        GetNewsSources,
        SyncNewsData,
        GetSyncStatus,
        GetDatabaseStats,
        CleanupOldData,
    ],
    Field(discriminator="name"),
]

TOOL_REQUEST_ADAPTER: TypeAdapter[ToolRequest] = TypeAdapter(ToolRequest)

TOOL_MODELS: dict[str, type[ToolArguments]] = {
    "get_latest_ai_news": GetLatestNews,
    "search_ai_news": SearchNews,
    "get_news_summary": GetNewsSummary,
    "get_ai_trends": GetAITrends,
    "get_trending_topics": GetTrendingTopics,
    "get_news_sources": GetNewsSources,
    "sync_news_data": SyncNewsData,
    "get_sync_status": GetSyncStatus,
    "get_database_stats": GetDatabaseStats,
    "cleanup_old_data": CleanupOldData,
}


class UnknownTool(ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"unknown tool: {name}")
        self.name = name


def parse_tool_request(name: str, arguments: dict[str, Any] | None) -> ToolRequest:
    if name not in TOOL_MODELS:
        raise UnknownTool(name)
    payload = dict(arguments or {})
    payload["name"] = name
    return TOOL_REQUEST_ADAPTER.validate_python(payload)


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item not in TOOL_MODELS)
        message = str(error.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "invalid arguments"


def input_schema(model: type[ToolArguments]) -> dict[str, Any]:
    schema = model.model_json_schema(by_alias=True)
    properties = dict(schema.get("properties") or {})
    properties.pop("name", None)
    required = [item for item in schema.get("required") or [] if item != "name"]
    result: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        result["required"] = required
    return result
