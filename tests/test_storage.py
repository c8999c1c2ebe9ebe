import pytest

from conftest import NOW, make_article
from newsdesk import storage
from newsdesk.db import connect_db
from newsdesk.migrations import get_schema_version
from newsdesk.models import Summary


def test_insert_articles_skips_duplicate_urls(conn):
    articles = [
        make_article("One", "https://example.com/1"),
        make_article("One again", "https://example.com/1"),
        make_article("Two", "https://example.com/2"),
        make_article("Three", "https://example.com/3"),
        make_article("Two again", "https://example.com/2"),
    ]
    assert storage.insert_articles(conn, articles) == 3
    assert storage.insert_articles(conn, articles) == 0
    assert storage.count_articles(conn) == 3
    assert storage.get_article(conn, articles[0].id).title == "One"


def test_insert_articles_registers_unknown_source(conn):
    storage.insert_articles(conn, [make_article("One", "https://example.com/1", source_name="Wire")])
    source = storage.get_source_by_name(conn, "Wire")
    assert source is not None
    assert source.id == "wire"
    assert source.url == ""


def test_search_articles_is_case_insensitive_and_windowed(conn):
    storage.insert_articles(
        conn,
        [
            make_article("ChatGPT gets memory", "https://example.com/new", days_ago=1),
            make_article("Old chatgpt story", "https://example.com/old", days_ago=30),
            make_article("Robots", "https://example.com/robots", description="unrelated"),
        ],
    )
    found = storage.search_articles(conn, "CHATGPT", 10)
    assert [article.url for article in found] == [
        "https://example.com/new",
        "https://example.com/old",
    ]
    recent = storage.search_articles(conn, "chatgpt", 10, since=NOW.replace(day=1))
    assert [article.url for article in recent] == ["https://example.com/new"]


def test_search_articles_treats_like_wildcards_literally(conn):
    storage.insert_articles(conn, [make_article("Progress report", "https://example.com/p")])
    assert storage.search_articles(conn, "%", 10) == []
    assert storage.search_articles(conn, "   ", 10) == []


def test_list_latest_articles_orders_newest_first(conn):
    storage.insert_articles(
        conn,
        [
            make_article("Older", "https://example.com/a", days_ago=3, category="research"),
            make_article("Newest", "https://example.com/b", days_ago=0),
            make_article("Middle", "https://example.com/c", days_ago=1, category="research"),
        ],
    )
    titles = [article.title for article in storage.list_latest_articles(conn, 10)]
    assert titles == ["Newest", "Middle", "Older"]
    research = storage.list_latest_articles(conn, 1, "research")
    assert [article.title for article in research] == ["Middle"]


def test_delete_articles_older_than(conn):
    storage.insert_articles(
        conn,
        [
            make_article("Stale", "https://example.com/stale", days_ago=2),
            make_article("Fresh", "https://example.com/fresh"),
        ],
    )
    assert storage.delete_articles_older_than(conn, 1, now=NOW) == 1
    assert [article.title for article in storage.list_latest_articles(conn, 10)] == ["Fresh"]


def test_article_stats(conn):
    storage.upsert_source(conn, {"name": "Source A", "url": "https://a.example/feed"})
    storage.upsert_source(
        conn, {"name": "Idle", "url": "https://idle.example/feed", "is_active": False}
    )
    storage.insert_articles(
        conn,
        [
            make_article("One", "https://example.com/1", category="research"),
            make_article("Two", "https://example.com/2", category="research"),
            make_article("Three", "https://example.com/3", source_name="Source B"),
        ],
    )
    stats = storage.get_article_stats(conn)
    assert stats["totalNews"] == 3
    assert stats["totalSources"] == 2
    assert stats["totalSummaries"] == 0
    assert stats["newsByCategory"] == [
        {"category": "research", "count": 2},
        {"category": "general", "count": 1},
    ]
    assert stats["newsBySource"][0] == {"source": "Source A", "count": 2}


def test_upsert_source_normalizes_kind_and_keeps_id(conn):
    created = storage.upsert_source(
        conn, {"name": "Feed One", "url": "https://one.example/rss", "kind": "rss"}
    )
    assert created.id == "feed-one"
    assert created.kind == "feed"
    updated = storage.upsert_source(
        conn, {"name": "Feed One", "url": "https://one.example/atom", "kind": "atom"}
    )
    assert updated.id == "feed-one"
    assert updated.url == "https://one.example/atom"
    assert storage.count_sources(conn) == 1


def test_upsert_source_rejects_unknown_kind(conn):
    with pytest.raises(ValueError, match="unsupported kind: ftp"):
        storage.upsert_source(conn, {"name": "X", "url": "ftp://x", "kind": "ftp"})


def test_summary_upsert_round_trip(conn):
    article = make_article("One", "https://example.com/1")
    storage.insert_articles(conn, [article])
    storage.upsert_summary(
        conn,
        Summary(
            article_id=article.id,
            summary_text="first",
            key_points=["a"],
            sentiment="neutral",
            impact="low",
            related_topics=[],
        ),
    )
    storage.upsert_summary(
        conn,
        Summary(
            article_id=article.id,
            summary_text="second",
            key_points=["b", "c"],
            sentiment="positive",
            impact="high",
            related_topics=["gpt"],
            generated_by="llm",
        ),
    )
    summary = storage.get_summary(conn, article.id)
    assert summary.summary_text == "second"
    assert summary.key_points == ["b", "c"]
    assert summary.generated_by == "llm"
    assert summary.created_at is not None


def test_delete_source_removes_its_articles(conn):
    storage.insert_articles(conn, [make_article("One", "https://example.com/1")])
    source = storage.get_source_by_name(conn, "Source A")
    storage.delete_source(conn, source.id)
    assert storage.count_articles(conn) == 0
    assert storage.get_source(conn, source.id) is None


def test_connect_db_applies_migrations_once(tmp_path):
    path = str(tmp_path / "state.sqlite3")
    first = connect_db(path)
    first.close()
    second = connect_db(path)
    try:
        assert get_schema_version(second) == "0002_summaries"
        rows = second.execute("SELECT COUNT(*) FROM schema_migrations").fetchone()
        assert rows[0] == 2
    finally:
        second.close()


def test_list_articles_by_category(conn):
    storage.insert_articles(
        conn,
        [
            make_article("Paper", "https://example.com/paper", category="research", days_ago=1),
            make_article("Launch", "https://example.com/launch"),
        ],
    )
    found = storage.list_articles_by_category(conn, "research", 5)
    assert [article.title for article in found] == ["Paper"]
    assert storage.list_articles_by_category(conn, "policy", 5) == []


def test_search_articles_folds_non_ascii_case(conn):
    storage.insert_articles(conn, [make_article("Über KI", "https://example.de/ki")])
    found = storage.search_articles(conn, "über", 10)
    assert [article.title for article in found] == ["Über KI"]
    assert [article.title for article in storage.search_articles(conn, "ÜBER", 10)] == ["Über KI"]


def test_search_articles_matches_non_ascii_tags(conn):
    article = make_article("Weekly roundup", "https://example.cn/1", tags=["人工智能"])
    storage.insert_articles(conn, [article])
    found = storage.search_articles(conn, "人工智能", 10)
    assert [item.url for item in found] == ["https://example.cn/1"]
    assert storage.get_article(conn, article.id).tags == ["人工智能"]
