from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from .models import Article

DATE_RANGES = ("today", "day", "week", "month", "quarter")


def _shift_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 - months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_cutoff(date_range: str | None, now: datetime) -> datetime | None:
    """Earliest publication time included by a named window, or None for all time.

    ``today``/``day`` start at local midnight. ``month`` and ``quarter`` step
    back whole calendar months, clamping the day to the target month's length.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    value = (date_range or "").strip().lower()
    if value in ("today", "day"):
        local = now.astimezone()
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)
    if value == "week":
        return now - timedelta(days=7)
    if value == "month":
        return _shift_months(now, 1)
    if value == "quarter":
        return _shift_months(now, 3)
    return None


def filter_by_date_range(articles: Iterable[Article], date_range: str | None, now: datetime) -> list[Article]:
    cutoff = compute_cutoff(date_range, now)
    if cutoff is None:
        return list(articles)
    return [article for article in articles if article.published_at >= cutoff]


def apply_filters(articles: Iterable[Article], filters: dict[str, Any] | None) -> list[Article]:
    items = list(articles)
    if not filters:
        return items
    category = filters.get("category")
    if category:
        items = [article for article in items if article.category == category]
    source = filters.get("source")
    if source:
        items = [article for article in items if article.source_name == source]
    tags = [str(tag).lower() for tag in filters.get("tags") or [] if tag]
    if tags:
        wanted = set(tags)
        items = [
            article
            for article in items
            if any(tag.lower() in wanted for tag in article.tags)
        ]
    return items


def tokenize(query: str) -> list[str]:
    return [term.lower() for term in query.split()]


def score_article(article: Article, terms: list[str]) -> int:
    title = article.title.lower()
    tags = [tag.lower() for tag in article.tags]
    searchable = f"{title} {article.description.lower()} {' '.join(tags)}"
    score = 0
    for term in terms:
        if term not in searchable:
            continue
        score += 1
        if term in title:
            score += 2
        if any(term in tag for tag in tags):
            score += 1
    return score


def rank_articles(articles: Iterable[Article], query: str) -> list[Article]:
    """Drop non-matching articles and order the rest by score, best first.

    The sort is stable, so equal scores keep the incoming order.
    """
    terms = tokenize(query)
    if not terms:
        return []
    scored = [(score_article(article, terms), article) for article in articles]
    matched = [(score, article) for score, article in scored if score > 0]
    matched.sort(key=lambda pair: pair[0], reverse=True)
    return [article for _, article in matched]


def sort_newest_first(articles: Iterable[Article]) -> list[Article]:
    return sorted(articles, key=lambda article: article.published_at, reverse=True)


def merge_unique(primary: Iterable[Article], extra: Iterable[Article]) -> list[Article]:
    seen: set[str] = set()
    merged: list[Article] = []
    for article in list(primary) + list(extra):
        if article.url in seen:
            continue
        seen.add(article.url)
        merged.append(article)
    return merged
