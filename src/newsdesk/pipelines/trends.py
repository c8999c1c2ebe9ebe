from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Iterable

from ..models import Article, SourceStat, TopicTrend, TrendReport
from ..utils import isoformat_utc
from .summarize_rules import analyze_sentiment, sentiment_score

RECENT_WINDOW = timedelta(days=7)
TOP_TOPICS_LIMIT = 10
TOP_SOURCES_LIMIT = 10
TOPIC_LIST_LIMIT = 5


def count_topics(articles: Iterable[Article]) -> Counter[str]:
    counts: Counter[str] = Counter()
    for article in articles:
        counts.update(article.tags)
    return counts


def _recent_counts(articles: list[Article], now: datetime) -> Counter[str]:
    since = now - RECENT_WINDOW
    return count_topics(article for article in articles if article.published_at >= since)


def determine_trend(recent: int, total: int) -> str:
    # Integer comparisons keep the 0.3 / 0.1 thresholds exact.
    if recent * 10 > total * 3:
        return "rising"
    if recent * 10 < total:
        return "declining"
    return "stable"


def top_topics(articles: list[Article], now: datetime) -> list[TopicTrend]:
    totals = count_topics(articles)
    recent = _recent_counts(articles, now)
    return [
        TopicTrend(topic=topic, frequency=count, trend=determine_trend(recent[topic], count))
        for topic, count in totals.most_common(TOP_TOPICS_LIMIT)
    ]


def top_sources(articles: list[Article]) -> list[SourceStat]:
    counts: dict[str, int] = {}
    sentiment_sums: dict[str, int] = {}
    for article in articles:
        counts[article.source_name] = counts.get(article.source_name, 0) + 1
        sentiment_sums[article.source_name] = (
            sentiment_sums.get(article.source_name, 0) + sentiment_score(article)
        )
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        SourceStat(
            source=source,
            article_count=count,
            avg_sentiment=sentiment_sums[source] / count,
        )
        for source, count in ordered[:TOP_SOURCES_LIMIT]
    ]


def sentiment_distribution(articles: list[Article]) -> dict[str, int]:
    """Integer percentages per sentiment that always add up to 100.

    Uses largest-remainder rounding; remainder ties go to positive, then
    negative, then neutral. An empty corpus yields all zeros.
    """
    labels = ("positive", "negative", "neutral")
    counts = {label: 0 for label in labels}
    for article in articles:
        counts[analyze_sentiment(article)] += 1
    total = len(articles)
    if total == 0:
        return counts
    shares = {label: counts[label] * 100 // total for label in labels}
    remainders = {label: counts[label] * 100 % total for label in labels}
    leftover = 100 - sum(shares.values())
    for label in sorted(labels, key=lambda value: remainders[value], reverse=True)[:leftover]:
        shares[label] += 1
    return shares


def classify_topics(articles: list[Article], now: datetime) -> tuple[list[str], list[str]]:
    totals = count_topics(articles)
    recent = _recent_counts(articles, now)
    emerging: list[str] = []
    declining: list[str] = []
    for topic, total in totals.most_common():
        recent_count = recent[topic]
        # recent/total > 0.4 and recent/total < 0.1, without float rounding.
        if recent_count * 10 > total * 4:
            emerging.append(topic)
        elif recent_count * 10 < total and total > 2:
            declining.append(topic)
    return emerging[:TOPIC_LIST_LIMIT], declining[:TOPIC_LIST_LIMIT]


def build_trend_report(
    articles: list[Article],
    timeframe: str,
    now: datetime,
    *,
    include_stats: bool = True,
    cutoff: datetime | None = None,
) -> TrendReport:
    emerging, declining = classify_topics(articles, now)
    stats: dict[str, Any] | None = None
    if include_stats:
        stats = {
            "totalArticles": len(articles),
            "uniqueTopics": len(count_topics(articles)),
            "uniqueSources": len({article.source_name for article in articles}),
            "cutoff": isoformat_utc(cutoff) if cutoff else None,
        }
    return TrendReport(
        timeframe=timeframe,
        top_topics=top_topics(articles, now),
        top_sources=top_sources(articles),
        sentiment_distribution=sentiment_distribution(articles),
        emerging_topics=emerging,
        declining_topics=declining,
        stats=stats,
    )
