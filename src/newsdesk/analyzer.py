from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any

import aiohttp

from . import storage
from .aggregator import Aggregator
from .errors import AnalysisDegraded, ArticleNotFound
from .models import Summary, TrendReport
from .pipelines.summarize_llm import ExternalSummarizer
from .pipelines.summarize_rules import RuleBasedSummarizer
from .pipelines.trends import build_trend_report
from .ranking import compute_cutoff
from .utils import log_event

_EXTERNAL_ERRORS = (AnalysisDegraded, aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError)


class Analyzer:
    def __init__(
        self,
        conn: Any,
        aggregator: Aggregator,
        summarizer: ExternalSummarizer | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.conn = conn
        self.aggregator = aggregator
        self.external = summarizer
        self.rules = RuleBasedSummarizer()
        self.logger = logger or logging.getLogger("newsdesk.analyzer")

    async def get_summary(self, article_id: str, include_key_points: bool = True) -> Summary:
        summary = storage.get_summary(self.conn, article_id)
        if summary is None:
            article = storage.get_article(self.conn, article_id)
            if article is None:
                raise ArticleNotFound(article_id)
            summary = await self._generate(article)
            storage.upsert_summary(self.conn, summary)
            log_event(
                self.logger,
                logging.INFO,
                "summary_generated",
                article_id=article_id,
                generated_by=summary.generated_by,
            )
        if not include_key_points:
            return replace(summary, key_points=[])
        return summary

    async def _generate(self, article) -> Summary:
        if self.external is not None and self.external.is_available():
            try:
                return await self.external.summarize(article)
            except _EXTERNAL_ERRORS as exc:
                log_event(
                    self.logger,
                    logging.WARNING,
                    "analysis_degraded",
                    article_id=article.id,
                    error=str(exc),
                )
        return await self.rules.summarize(article)

    async def get_trends(self, timeframe: str = "month", include_stats: bool = True) -> TrendReport:
        now = self.aggregator.clock()
        corpus = await self.aggregator.collect_corpus(timeframe)
        report = build_trend_report(
            corpus,
            timeframe,
            now,
            include_stats=include_stats,
            cutoff=compute_cutoff(timeframe, now),
        )
        if corpus and self.external is not None and self.external.is_available():
            try:
                hints = await self.external.analyze_trends(corpus, timeframe)
            except _EXTERNAL_ERRORS as exc:
                log_event(self.logger, logging.WARNING, "trend_analysis_degraded", error=str(exc))
            else:
                report = replace(
                    report,
                    emerging_topics=hints["emergingTopics"],
                    declining_topics=hints["decliningTopics"],
                )
        log_event(
            self.logger,
            logging.INFO,
            "trends_computed",
            timeframe=timeframe,
            articles=len(corpus),
            topics=len(report.top_topics),
        )
        return report
