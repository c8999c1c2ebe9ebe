from __future__ import annotations

from typing import Iterable

AI_KEYWORDS: tuple[str, ...] = (
    "ai",
    "artificial intelligence",
    "machine learning",
    "ml",
    "deep learning",
    "neural network",
    "chatgpt",
    "gpt",
    "llm",
    "large language model",
    "computer vision",
    "nlp",
    "natural language processing",
    "robotics",
    "autonomous",
    "automation",
    "algorithm",
    "data science",
)


def normalize_tag(tag: str) -> str:
    return " ".join(tag.strip().lower().split())


def derive_tags(
    title: str | None, description: str | None, extra: Iterable[str] | None = None
) -> list[str]:
    """Infer AI topic tags from an article's text.

    Keywords match as case-insensitive substrings and come back in vocabulary
    order. Tags supplied by the source (``extra``) follow, minus duplicates.
    """
    text = f"{title or ''} {description or ''}".lower()
    tags: list[str] = [keyword for keyword in AI_KEYWORDS if keyword in text]
    seen = set(tags)
    for tag in extra or []:
        if not tag:
            continue
        value = normalize_tag(str(tag))
        if value and value not in seen:
            seen.add(value)
            tags.append(value)
    return tags
