from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator

from .db import DBConn
from .errors import PersistenceFailure
from .models import SOURCE_KINDS, Article, Source, Summary
from .utils import isoformat_utc, log_event, parse_iso, slugify, utc_now, utc_now_iso

logger = logging.getLogger("newsdesk.storage")

_ARTICLE_COLUMNS = """
    id, title, description, url, source_name, published_at, category,
    tags_json, content, image_url, author
"""

_SOURCE_COLUMNS = "id, name, url, kind, category, language, is_active, last_update"

KIND_ALIASES = {"rss": "feed", "atom": "feed", "html": "scrape", "json": "api"}


@contextmanager
def _guard(operation: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        log_event(logger, logging.ERROR, "store_query_failed", operation=operation, error=str(exc))
        raise PersistenceFailure(f"{operation} failed: {exc}") from exc


def normalize_kind(kind: str | None) -> str:
    value = (kind or "feed").strip().lower()
    return KIND_ALIASES.get(value, value)


# Sources


def upsert_source(conn: DBConn, source_dict: dict[str, Any]) -> Source:
    name = str(source_dict.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    url = str(source_dict.get("url") or "").strip()
    if not url:
        raise ValueError("url is required")
    kind = normalize_kind(source_dict.get("kind") or source_dict.get("type"))
    if kind not in SOURCE_KINDS:
        raise ValueError(f"unsupported kind: {kind}")
    with _guard("upsert_source"):
        existing = get_source_by_name(conn, name)
        source_id = (
            existing.id
            if existing
            else _unique_source_id(conn, str(source_dict.get("id") or "").strip() or slugify(name))
        )
        now = utc_now_iso()
        is_active = source_dict.get("is_active", source_dict.get("isActive", source_dict.get("enabled", True)))
        conn.execute(
            """
            INSERT INTO sources
                (id, name, url, kind, category, language, is_active, last_update,
                 created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                url=excluded.url,
                kind=excluded.kind,
                category=excluded.category,
                language=excluded.language,
                is_active=excluded.is_active,
                updated_at=excluded.updated_at
            """,
            (
                source_id,
                name,
                url,
                kind,
                str(source_dict.get("category") or "general"),
                str(source_dict.get("language") or "en"),
                1 if is_active else 0,
                None,
                now,
                now,
            ),
        )
        conn.commit()
    return get_source_by_name(conn, name)  # type: ignore[return-value]


def _unique_source_id(conn: DBConn, base: str) -> str:
    candidate = base
    i = 2
    while get_source(conn, candidate) is not None:
        candidate = f"{base}-{i}"
        i += 1
    return candidate


def get_source(conn: DBConn, source_id: str) -> Source | None:
    with _guard("get_source"):
        row = conn.execute(
            f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = ?", (source_id,)
        ).fetchone()
    return _row_to_source(row) if row else None


def get_source_by_name(conn: DBConn, name: str) -> Source | None:
    with _guard("get_source_by_name"):
        row = conn.execute(
            f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE name = ?", (name,)
        ).fetchone()
    return _row_to_source(row) if row else None


def list_sources(conn: DBConn, active_only: bool = False) -> list[Source]:
    where = "WHERE is_active = 1" if active_only else ""
    with _guard("list_sources"):
        rows = conn.execute(
            f"SELECT {_SOURCE_COLUMNS} FROM sources {where} ORDER BY created_at, rowid"
        ).fetchall()
    return [_row_to_source(row) for row in rows]


def count_sources(conn: DBConn) -> int:
    with _guard("count_sources"):
        return int(conn.execute("SELECT COUNT(*) FROM sources").fetchone()[0])


def set_source_active(conn: DBConn, source_id: str, is_active: bool) -> None:
    with _guard("set_source_active"):
        conn.execute(
            "UPDATE sources SET is_active = ?, updated_at = ? WHERE id = ?",
            (1 if is_active else 0, utc_now_iso(), source_id),
        )
        conn.commit()


def touch_source(conn: DBConn, source_id: str, when: datetime | None = None) -> None:
    with _guard("touch_source"):
        conn.execute(
            "UPDATE sources SET last_update = ? WHERE id = ?",
            (isoformat_utc(when or utc_now()), source_id),
        )
        conn.commit()


def update_source_fields(conn: DBConn, source_id: str, fields: dict[str, Any]) -> None:
    allowed = {"name", "url", "kind", "category", "language", "is_active"}
    updates = {key: value for key, value in fields.items() if key in allowed}
    if not updates:
        return
    if "is_active" in updates:
        updates["is_active"] = 1 if updates["is_active"] else 0
    assignments = ", ".join(f"{key} = ?" for key in updates)
    with _guard("update_source"):
        conn.execute(
            f"UPDATE sources SET {assignments}, updated_at = ? WHERE id = ?",
            (*updates.values(), utc_now_iso(), source_id),
        )
        conn.commit()


def delete_source(conn: DBConn, source_id: str) -> None:
    with _guard("delete_source"):
        conn.execute(
            "DELETE FROM summaries WHERE article_id IN (SELECT id FROM articles WHERE source_id = ?)",
            (source_id,),
        )
        conn.execute("DELETE FROM articles WHERE source_id = ?", (source_id,))
        conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
        conn.commit()


# Articles


def article_exists(conn: DBConn, url: str) -> bool:
    with _guard("article_exists"):
        return conn.execute("SELECT 1 FROM articles WHERE url = ?", (url,)).fetchone() is not None


def insert_articles(conn: DBConn, articles: Iterable[Article]) -> int:
    inserted = 0
    source_ids: dict[str, str] = {}
    for article in articles:
        try:
            if article_exists(conn, article.url):
                continue
            source_id = source_ids.get(article.source_name)
            if source_id is None:
                source_id = _ensure_source_for_article(conn, article)
                source_ids[article.source_name] = source_id
            conn.execute(
                """
                INSERT INTO articles
                    (id, url, source_id, source_name, title, description, content,
                     published_at, category, tags_json, image_url, author, ingested_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    article.id,
                    article.url,
                    source_id,
                    article.source_name,
                    article.title,
                    article.description or "",
                    article.content,
                    isoformat_utc(article.published_at),
                    article.category,
                    json.dumps(list(article.tags), ensure_ascii=False),
                    article.image_url,
                    article.author,
                    utc_now_iso(),
                ),
            )
            conn.commit()
            inserted += 1
        except (sqlite3.Error, PersistenceFailure, TypeError, ValueError, AttributeError) as exc:
            conn.rollback()
            log_event(
                logger,
                logging.WARNING,
                "article_save_failed",
                url=getattr(article, "url", None),
                error=str(exc),
            )
    return inserted


def _ensure_source_for_article(conn: DBConn, article: Article) -> str:
    row = conn.execute("SELECT id FROM sources WHERE name = ?", (article.source_name,)).fetchone()
    if row:
        return row[0]
    source_id = _unique_source_id(conn, slugify(article.source_name))
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO sources
            (id, name, url, kind, category, language, is_active, last_update,
             created_at, updated_at)
        VALUES (?, ?, ?, 'feed', ?, 'en', 1, NULL, ?, ?)
        """,
        (source_id, article.source_name, "", article.category, now, now),
    )
    return source_id


def get_article(conn: DBConn, article_id: str) -> Article | None:
    with _guard("get_article"):
        row = conn.execute(
            f"SELECT {_ARTICLE_COLUMNS} FROM articles WHERE id = ?", (article_id,)
        ).fetchone()
    return _row_to_article(row) if row else None


def list_latest_articles(conn: DBConn, limit: int, category: str | None = None) -> list[Article]:
    with _guard("list_latest_articles"):
        if category:
            rows = conn.execute(
                f"""
                SELECT {_ARTICLE_COLUMNS} FROM articles
                WHERE category = ?
                ORDER BY published_at DESC, id
                LIMIT ?
                """,
                (category, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                f"""
                SELECT {_ARTICLE_COLUMNS} FROM articles
                ORDER BY published_at DESC, id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
    return [_row_to_article(row) for row in rows]


def list_articles_by_category(conn: DBConn, category: str, limit: int) -> list[Article]:
    return list_latest_articles(conn, limit, category)


def list_articles_by_source(conn: DBConn, source_name: str, limit: int) -> list[Article]:
    with _guard("list_articles_by_source"):
        rows = conn.execute(
            f"""
            SELECT {_ARTICLE_COLUMNS} FROM articles
            WHERE source_name = ?
            ORDER BY published_at DESC, id
            LIMIT ?
            """,
            (source_name, limit),
        ).fetchall()
    return [_row_to_article(row) for row in rows]


def list_articles_since(
    conn: DBConn,
    since: datetime | None,
    *,
    category: str | None = None,
    limit: int = 1000,
) -> list[Article]:
    clauses: list[str] = []
    params: list[Any] = []
    if since is not None:
        clauses.append("published_at >= ?")
        params.append(isoformat_utc(since))
    if category:
        clauses.append("category = ?")
        params.append(category)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    with _guard("list_articles_since"):
        rows = conn.execute(
            f"""
            SELECT {_ARTICLE_COLUMNS} FROM articles
            {where}
            ORDER BY published_at DESC, id
            LIMIT ?
            """,
            (*params, limit),
        ).fetchall()
    return [_row_to_article(row) for row in rows]


def search_articles(
    conn: DBConn,
    query: str,
    limit: int,
    *,
    since: datetime | None = None,
    category: str | None = None,
) -> list[Article]:
    """Case-insensitive substring search over title, description and tags.

    The query is split on whitespace and an article matches when any term
    appears in any of the three fields. Results are newest first.
    """
    terms = [term.lower() for term in query.split()]
    if not terms:
        return []
    term_clauses: list[str] = []
    params: list[Any] = []
    for term in terms:
        pattern = f"%{_escape_like(term)}%"
        term_clauses.append(
            "(PY_LOWER(title) LIKE ? ESCAPE '\\' OR PY_LOWER(description) LIKE ? ESCAPE '\\'"
            " OR PY_LOWER(tags_json) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern, pattern])
    clauses = [f"({' OR '.join(term_clauses)})"]
    if since is not None:
        clauses.append("published_at >= ?")
        params.append(isoformat_utc(since))
    if category:
        clauses.append("category = ?")
        params.append(category)
    with _guard("search_articles"):
        rows = conn.execute(
            f"""
            SELECT {_ARTICLE_COLUMNS} FROM articles
            WHERE {' AND '.join(clauses)}
            ORDER BY published_at DESC, id
            LIMIT ?
            """,
            (*params, limit),
        ).fetchall()
    return [_row_to_article(row) for row in rows]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def count_articles(conn: DBConn) -> int:
    with _guard("count_articles"):
        return int(conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0])


def delete_articles_older_than(conn: DBConn, days: int, *, now: datetime | None = None) -> int:
    cutoff = isoformat_utc((now or utc_now()) - timedelta(days=days))
    with _guard("delete_articles_older_than"):
        conn.execute(
            "DELETE FROM summaries WHERE article_id IN (SELECT id FROM articles WHERE published_at < ?)",
            (cutoff,),
        )
        cursor = conn.execute("DELETE FROM articles WHERE published_at < ?", (cutoff,))
        deleted = cursor.rowcount
        conn.commit()
    log_event(logger, logging.INFO, "articles_cleaned", days=days, cutoff=cutoff, deleted=deleted)
    return deleted


def get_article_stats(conn: DBConn) -> dict[str, Any]:
    with _guard("get_article_stats"):
        total_news = count_articles(conn)
        total_sources = conn.execute(
            "SELECT COUNT(*) FROM sources WHERE is_active = 1"
        ).fetchone()[0]
        by_category = conn.execute(
            """
            SELECT category, COUNT(*) FROM articles
            GROUP BY category ORDER BY COUNT(*) DESC, category
            """
        ).fetchall()
        by_source = conn.execute(
            """
            SELECT source_name, COUNT(*) FROM articles
            GROUP BY source_name ORDER BY COUNT(*) DESC, source_name
            """
        ).fetchall()
        total_summaries = conn.execute("SELECT COUNT(*) FROM summaries").fetchone()[0]
    return {
        "totalNews": int(total_news),
        "totalSources": int(total_sources),
        "totalSummaries": int(total_summaries),
        "newsByCategory": [
            {"category": category, "count": int(count)} for category, count in by_category
        ],
        "newsBySource": [
            {"source": source, "count": int(count)} for source, count in by_source
        ],
    }


# Summaries


def get_summary(conn: DBConn, article_id: str) -> Summary | None:
    with _guard("get_summary"):
        row = conn.execute(
            """
            SELECT article_id, summary, key_points_json, sentiment, impact,
                   related_topics_json, generated_by, created_at
            FROM summaries WHERE article_id = ?
            """,
            (article_id,),
        ).fetchone()
    if not row:
        return None
    (
        summary_article_id,
        summary_text,
        key_points_json,
        sentiment,
        impact,
        related_topics_json,
        generated_by,
        created_at,
    ) = row
    return Summary(
        article_id=summary_article_id,
        summary_text=summary_text,
        key_points=_parse_json_list(key_points_json),
        sentiment=sentiment,
        impact=impact,
        related_topics=_parse_json_list(related_topics_json),
        generated_by=generated_by,
        created_at=parse_iso(created_at) if created_at else None,
    )


def upsert_summary(conn: DBConn, summary: Summary) -> None:
    created_at = summary.created_at or utc_now()
    with _guard("upsert_summary"):
        conn.execute(
            """
            INSERT INTO summaries
                (article_id, summary, key_points_json, sentiment, impact,
                 related_topics_json, generated_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(article_id) DO UPDATE SET
                summary=excluded.summary,
                key_points_json=excluded.key_points_json,
                sentiment=excluded.sentiment,
                impact=excluded.impact,
                related_topics_json=excluded.related_topics_json,
                generated_by=excluded.generated_by
            """,
            (
                summary.article_id,
                summary.summary_text,
                json.dumps(list(summary.key_points), ensure_ascii=False),
                summary.sentiment,
                summary.impact,
                json.dumps(list(summary.related_topics), ensure_ascii=False),
                summary.generated_by,
                isoformat_utc(created_at),
            ),
        )
        conn.commit()


# Row mapping


def _row_to_source(row: tuple) -> Source:
    source_id, name, url, kind, category, language, is_active, last_update = row
    return Source(
        id=source_id,
        name=name,
        url=url,
        kind=kind,
        category=category,
        language=language,
        is_active=bool(is_active),
        last_update=parse_iso(last_update) if last_update else None,
    )


def _row_to_article(row: tuple) -> Article:
    (
        article_id,
        title,
        description,
        url,
        source_name,
        published_at,
        category,
        tags_json,
        content,
        image_url,
        author,
    ) = row
    return Article(
        id=article_id,
        title=title,
        description=description or "",
        url=url,
        source_name=source_name,
        published_at=parse_iso(published_at),
        category=category,
        tags=_parse_json_list(tags_json),
        content=content,
        image_url=image_url,
        author=author,
    )


def _parse_json_list(value: str | None) -> list[str]:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item) for item in parsed]
