from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

SOURCE_KINDS = ("feed", "api", "scrape")
SENTIMENTS = ("positive", "negative", "neutral")
IMPACTS = ("high", "medium", "low")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Source:
    id: str
    name: str
    url: str
    kind: str
    category: str
    language: str
    is_active: bool
    last_update: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "kind": self.kind,
            "category": self.category,
            "language": self.language,
            "isActive": self.is_active,
            "lastUpdate": _iso(self.last_update),
        }


@dataclass(frozen=True)
class Article:
    id: str
    title: str
    description: str
    url: str
    source_name: str
    published_at: datetime
    category: str
    tags: list[str] = field(default_factory=list)
    content: str | None = None
    image_url: str | None = None
    author: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "url": self.url,
            "sourceName": self.source_name,
            "publishedAt": _iso(self.published_at),
            "category": self.category,
            "tags": list(self.tags),
            "imageUrl": self.image_url,
            "author": self.author,
        }


@dataclass(frozen=True)
class Summary:
    article_id: str
    summary_text: str
    key_points: list[str]
    sentiment: str
    impact: str
    related_topics: list[str]
    generated_by: str = "rules"
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "articleId": self.article_id,
            "summary": self.summary_text,
            "keyPoints": list(self.key_points),
            "sentiment": self.sentiment,
            "impact": self.impact,
            "relatedTopics": list(self.related_topics),
            "generatedBy": self.generated_by,
            "createdAt": _iso(self.created_at),
        }


@dataclass(frozen=True)
class TopicTrend:
    topic: str
    frequency: int
    trend: str


@dataclass(frozen=True)
class SourceStat:
    source: str
    article_count: int
    avg_sentiment: float


@dataclass(frozen=True)
class TrendReport:
    timeframe: str
    top_topics: list[TopicTrend]
    top_sources: list[SourceStat]
    sentiment_distribution: dict[str, int]
    emerging_topics: list[str]
    declining_topics: list[str]
    stats: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timeframe": self.timeframe,
            "topTopics": [
                {"topic": item.topic, "frequency": item.frequency, "trend": item.trend}
                for item in self.top_topics
            ],
            "topSources": [
                {
                    "source": item.source,
                    "articleCount": item.article_count,
                    "avgSentiment": item.avg_sentiment,
                }
                for item in self.top_sources
            ],
            "sentimentDistribution": dict(self.sentiment_distribution),
            "emergingTopics": list(self.emerging_topics),
            "decliningTopics": list(self.declining_topics),
        }
        if self.stats is not None:
            payload["stats"] = dict(self.stats)
        return payload


@dataclass(frozen=True)
class SyncResult:
    sources_processed: int
    sources_skipped: int
    news_added: int
    errors: list[str]
    duration_ms: int

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "sourcesProcessed": self.sources_processed,
            "sourcesSkipped": self.sources_skipped,
            "newsAdded": self.news_added,
            "errors": list(self.errors),
            "duration": self.duration_ms,
        }


@dataclass(frozen=True)
class SyncStatus:
    last_sync_times: dict[str, datetime]
    total_sources: int
    active_sources: int
    periodic_running: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastSyncTimes": {key: value.isoformat() for key, value in self.last_sync_times.items()},
            "totalSources": self.total_sources,
            "activeSources": self.active_sources,
            "periodicRunning": self.periodic_running,
        }


@dataclass(frozen=True)
class Outcome:
    key: str
    ok: bool
    value: Any = None
    error: BaseException | None = None
