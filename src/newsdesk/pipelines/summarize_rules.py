from __future__ import annotations

import re

from ..models import Article, Summary
from ..utils import utc_now

TECH_TERMS = ("gpt", "llm", "neural network", "machine learning", "deep learning")
COMPANIES = ("openai", "google", "microsoft", "meta", "anthropic")
RELEASE_WORDS = ("release", "launch", "announce")
DEFAULT_KEY_POINT = "General AI technology development"

POSITIVE_WORDS = ("breakthrough", "improve", "advance", "success", "innovative", "revolutionary")
NEGATIVE_WORDS = ("problem", "issue", "concern", "risk", "threat", "failure")

HIGH_IMPACT_WORDS = ("breakthrough", "revolutionary", "game-changing", "major", "significant")
MEDIUM_IMPACT_WORDS = ("new", "update", "improve", "enhance", "release")

SENTIMENT_SCORES = {"positive": 1, "neutral": 0, "negative": -1}

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def _text(article: Article) -> str:
    return f"{article.title} {article.description}".lower()


def extract_summary(description: str) -> str:
    clauses = [part.strip() for part in _SENTENCE_SPLIT.split(description) if part.strip()]
    if len(clauses) >= 2:
        return ". ".join(clauses[:2]) + "."
    return description


def extract_key_points(article: Article) -> list[str]:
    text = _text(article)
    points = [f"Involves {term} technology" for term in TECH_TERMS if term in text]
    points.extend(f"{company} related news" for company in COMPANIES if company in text)
    if any(word in text for word in RELEASE_WORDS):
        points.append("New product release")
    return points or [DEFAULT_KEY_POINT]


def analyze_sentiment(article: Article) -> str:
    text = _text(article)
    positive = sum(1 for word in POSITIVE_WORDS if word in text)
    negative = sum(1 for word in NEGATIVE_WORDS if word in text)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def assess_impact(article: Article) -> str:
    text = _text(article)
    if any(word in text for word in HIGH_IMPACT_WORDS):
        return "high"
    if any(word in text for word in MEDIUM_IMPACT_WORDS):
        return "medium"
    return "low"


def sentiment_score(article: Article) -> int:
    return SENTIMENT_SCORES[analyze_sentiment(article)]


class RuleBasedSummarizer:
    """Keyword heuristics over title and description. Always available."""

    name = "rules"

    def is_available(self) -> bool:
        return True

    async def summarize(self, article: Article) -> Summary:
        return self.summarize_sync(article)

    def summarize_sync(self, article: Article) -> Summary:
        return Summary(
            article_id=article.id,
            summary_text=extract_summary(article.description),
            key_points=extract_key_points(article),
            sentiment=analyze_sentiment(article),
            impact=assess_impact(article),
            related_topics=list(article.tags[:5]),
            generated_by=self.name,
            created_at=utc_now(),
        )
