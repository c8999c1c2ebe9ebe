from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable

from .. import storage
from ..models import SOURCE_KINDS, Source
from ..utils import log_event, utc_now

logger = logging.getLogger("newsdesk.sources")

Probe = Callable[[Source], Awaitable[bool]]

DEFAULT_SOURCES: list[dict[str, Any]] = [
    {
        "id": "techcrunch-ai",
        "name": "TechCrunch AI",
        "url": "https://techcrunch.com/tag/artificial-intelligence/feed/",
        "kind": "feed",
        "category": "general",
    },
    {
        "id": "venturebeat-ai",
        "name": "VentureBeat AI",
        "url": "https://venturebeat.com/category/ai/feed/",
        "kind": "feed",
        "category": "business",
    },
    {
        "id": "mit-tech-review",
        "name": "MIT Technology Review",
        "url": "https://www.technologyreview.com/topic/artificial-intelligence/feed",
        "kind": "feed",
        "category": "research",
    },
    {
        "id": "ai-news",
        "name": "AI News",
        "url": "https://artificialintelligence-news.com/feed/",
        "kind": "feed",
        "category": "general",
    },
    {
        "id": "the-verge-ai",
        "name": "The Verge AI",
        "url": "https://www.theverge.com/ai-artificial-intelligence/rss/index.xml",
        "kind": "feed",
        "category": "products",
    },
]


def seed_default_sources(conn: Any) -> int:
    written = 0
    for item in DEFAULT_SOURCES:
        storage.upsert_source(conn, {**item, "language": "en", "is_active": True})
        written += 1
    log_event(logger, logging.INFO, "sources_seeded", count=written)
    return written


def import_sources(conn: Any, items: list[dict[str, Any]]) -> int:
    count = 0
    for item in items:
        storage.upsert_source(conn, item)
        count += 1
    log_event(logger, logging.INFO, "sources_imported", count=count)
    return count


def _ensure_seeded(conn: Any) -> None:
    if storage.count_sources(conn) == 0:
        seed_default_sources(conn)


async def list_sources(
    conn: Any, include_live_status: bool = False, *, probe: Probe | None = None
) -> list[Source]:
    _ensure_seeded(conn)
    sources = storage.list_sources(conn)
    if not include_live_status or probe is None:
        return sources
    results = await asyncio.gather(*(probe(source) for source in sources), return_exceptions=True)
    checked_at = utc_now()
    with_status: list[Source] = []
    for source, result in zip(sources, results):
        reachable = result is True
        if isinstance(result, BaseException):
            log_event(
                logger, logging.DEBUG, "source_probe_failed", source=source.name, error=str(result)
            )
        with_status.append(replace(source, is_active=reachable, last_update=checked_at))
    return with_status


def list_active_sources(conn: Any) -> list[Source]:
    _ensure_seeded(conn)
    return storage.list_sources(conn, active_only=True)


def get_source(conn: Any, source_id: str) -> Source | None:
    return storage.get_source(conn, source_id)


def create_source(conn: Any, payload: dict[str, Any]) -> Source:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    url = str(payload.get("url") or "").strip()
    if not url:
        raise ValueError("url is required")
    kind = storage.normalize_kind(payload.get("kind"))
    if kind not in SOURCE_KINDS:
        raise ValueError(f"unsupported kind: {kind}")
    if storage.get_source_by_name(conn, name) is not None:
        raise ValueError(f"source already exists: {name}")
    source = storage.upsert_source(conn, {**payload, "name": name, "url": url, "kind": kind})
    log_event(logger, logging.INFO, "source_created", source_id=source.id, name=name)
    return source


def update_source(conn: Any, source_id: str, payload: dict[str, Any]) -> Source:
    current = storage.get_source(conn, source_id)
    if not current:
        raise ValueError("source_not_found")

    fields: dict[str, Any] = {}
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValueError("name is required")
        other = storage.get_source_by_name(conn, name)
        if other is not None and other.id != source_id:
            raise ValueError(f"source already exists: {name}")
        fields["name"] = name
    if "url" in payload:
        url = str(payload.get("url") or "").strip()
        if not url:
            raise ValueError("url is required")
        fields["url"] = url
    if "kind" in payload:
        kind = storage.normalize_kind(payload.get("kind"))
        if kind not in SOURCE_KINDS:
            raise ValueError(f"unsupported kind: {kind}")
        fields["kind"] = kind
    for key in ("category", "language"):
        if payload.get(key):
            fields[key] = str(payload[key])
    active = payload.get("is_active", payload.get("isActive"))
    if active is not None:
        fields["is_active"] = bool(active)

    storage.update_source_fields(conn, source_id, fields)
    log_event(logger, logging.INFO, "source_updated", source_id=source_id, fields=",".join(fields))
    return storage.get_source(conn, source_id)  # type: ignore[return-value]


def set_source_active(conn: Any, source_id: str, is_active: bool) -> Source:
    if not storage.get_source(conn, source_id):
        raise ValueError("source_not_found")
    storage.set_source_active(conn, source_id, is_active)
    return storage.get_source(conn, source_id)  # type: ignore[return-value]


def delete_source(conn: Any, source_id: str) -> None:
    if not storage.get_source(conn, source_id):
        raise ValueError("source_not_found")
    storage.delete_source(conn, source_id)
    log_event(logger, logging.INFO, "source_deleted", source_id=source_id)
