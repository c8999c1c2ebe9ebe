from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable

from . import storage
from .config import Config
from .errors import SourceNotFound
from .fanout import settle_all, successful_values
from .ingest import Fetcher
from .models import Article, Source
from .ranking import (
    apply_filters,
    compute_cutoff,
    filter_by_date_range,
    merge_unique,
    rank_articles,
    sort_newest_first,
)
from .services.sources_service import list_active_sources
from .utils import json_dumps, log_event, utc_now

Clock = Callable[[], datetime]


class TtlCache:
    def __init__(self, ttl_seconds: int, clock: Clock) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._entries: dict[str, tuple[datetime, list[Article]]] = {}

    def get(self, key: str) -> list[Article] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: list[Article]) -> None:
        self._entries[key] = (self._clock(), list(value))

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries.keys())


class Aggregator:
    """Layered read path over the article corpus: cache, then Store, then live fetch."""

    def __init__(
        self,
        conn: Any,
        fetcher: Fetcher,
        config: Config,
        logger: logging.Logger | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.conn = conn
        self.fetcher = fetcher
        self.config = config
        self.logger = logger or logging.getLogger("newsdesk.aggregator")
        self.clock = clock or utc_now
        self.cache = TtlCache(config.cache.ttl_seconds, self.clock)

    async def get_latest(self, limit: int = 10, category: str | None = None) -> list[Article]:
        cache_key = f"latest:{category or 'all'}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached[:limit]

        articles = storage.list_latest_articles(self.conn, limit, category)
        if len(articles) < limit:
            log_event(
                self.logger,
                logging.DEBUG,
                "latest_escalated",
                stored=len(articles),
                limit=limit,
                category=category,
            )
            live, _ = await self._fan_out()
            if category:
                live = [article for article in live if article.category == category]
            articles = sort_newest_first(merge_unique(articles, live))
        result = articles[:limit]
        self.cache.set(cache_key, result)
        return result

    async def search_news(
        self,
        query: str,
        limit: int = 10,
        date_range: str = "week",
        filters: dict[str, Any] | None = None,
    ) -> list[Article]:
        if not query.split():
            return []
        filters = {key: value for key, value in (filters or {}).items() if value}
        cache_key = f"search:{query}:{limit}:{date_range}:{json_dumps(filters)}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached[:limit]

        cutoff = compute_cutoff(date_range, self.clock())
        candidates = storage.search_articles(
            self.conn,
            query,
            self.config.search.candidate_limit,
            since=cutoff,
            category=filters.get("category"),
        )
        ranked = rank_articles(apply_filters(candidates, filters), query)
        if len(ranked) < limit:
            log_event(
                self.logger,
                logging.DEBUG,
                "search_escalated",
                query=query,
                stored=len(ranked),
                limit=limit,
            )
            live, _ = await self._fan_out()
            live = filter_by_date_range(live, date_range, self.clock())
            candidates = sort_newest_first(merge_unique(candidates, live))
            ranked = rank_articles(apply_filters(candidates, filters), query)

        result = ranked[:limit]
        self.cache.set(cache_key, result)
        log_event(
            self.logger,
            logging.INFO,
            "search_completed",
            query=query,
            date_range=date_range,
            results=len(result),
        )
        return result

    async def collect_corpus(self, timeframe: str, category: str | None = None) -> list[Article]:
        cutoff = compute_cutoff(timeframe, self.clock())
        articles = storage.list_articles_since(
            self.conn,
            cutoff,
            category=category,
            limit=self.config.search.candidate_limit,
        )
        if articles:
            return articles
        live, _ = await self._fan_out()
        if category:
            live = [article for article in live if article.category == category]
        return sort_newest_first(filter_by_date_range(live, timeframe, self.clock()))

    async def get_trending_topics(self, timeframe: str = "week") -> list[str]:
        corpus = await self.collect_corpus(timeframe)
        counts: Counter[str] = Counter()
        for article in corpus:
            counts.update(article.tags)
        return [tag for tag, _ in counts.most_common(10)]

    async def get_news_by_category(self, category: str, limit: int = 10) -> list[Article]:
        return await self.get_latest(limit, category)

    async def get_news_by_source(self, source_name: str, limit: int = 10) -> list[Article]:
        source = storage.get_source_by_name(self.conn, source_name)
        if source is None:
            raise SourceNotFound(source_name)
        stored = storage.list_articles_by_source(self.conn, source_name, limit)
        if stored:
            return stored
        live = await self.fetcher.fetch(source)
        self._persist(live)
        return sort_newest_first(live)[:limit]

    async def refresh_news(self) -> int:
        _, added = await self._fan_out()
        self.clear_cache()
        log_event(self.logger, logging.INFO, "news_refreshed", added=added)
        return added

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        keys = self.cache.keys()
        return {"size": len(keys), "keys": keys}

    async def _fan_out(self, sources: list[Source] | None = None) -> tuple[list[Article], int]:
        targets = sources if sources is not None else list_active_sources(self.conn)
        outcomes = await settle_all((source.name, self.fetcher.fetch(source)) for source in targets)
        failed = 0
        for outcome in outcomes:
            if not outcome.ok:
                failed += 1
                log_event(
                    self.logger,
                    logging.WARNING,
                    "source_fetch_failed",
                    source=outcome.key,
                    error=str(outcome.error),
                )
        articles = [article for batch in successful_values(outcomes) for article in batch]
        added = self._persist(articles)
        log_event(
            self.logger,
            logging.INFO,
            "fan_out_completed",
            sources=len(targets),
            failed=failed,
            fetched=len(articles),
            added=added,
        )
        return articles, added

    def _persist(self, articles: list[Article]) -> int:
        if not articles:
            return 0
        return storage.insert_articles(self.conn, articles)
