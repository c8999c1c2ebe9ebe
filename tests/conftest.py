from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from newsdesk.config import config_from_dict
from newsdesk.context import build_context
from newsdesk.db import connect_db
from newsdesk.models import Article
from newsdesk.tagger import derive_tags
from newsdesk.utils import stable_id_from_url

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_article(
    title: str,
    url: str,
    *,
    description: str = "",
    source_name: str = "Source A",
    category: str = "general",
    published_at: datetime | None = None,
    days_ago: float = 0,
    tags: list[str] | None = None,
) -> Article:
    return Article(
        id=stable_id_from_url(url),
        title=title,
        description=description,
        url=url,
        source_name=source_name,
        published_at=published_at or NOW - timedelta(days=days_ago),
        category=category,
        tags=tags if tags is not None else derive_tags(title, description),
    )


class FakeFetcher:
    """In-memory stand-in for ingest.Fetcher keyed by source name."""

    def __init__(self) -> None:
        self.articles: dict[str, list[Article]] = {}
        self.failures: dict[str, Exception] = {}
        self.reachable: dict[str, bool] = {}
        self.calls: list[str] = []
        self.closed = False

    async def fetch(self, source):
        return await self.fetch_strict(source)

    async def fetch_strict(self, source):
        self.calls.append(source.name)
        if source.name in self.failures:
            raise self.failures[source.name]
        return list(self.articles.get(source.name, []))

    async def probe(self, source):
        return self.reachable.get(source.name, False)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("NEWSDESK_CONFIG_PATH", raising=False)
    monkeypatch.delenv("NEWSDESK_ADMIN_TOKEN", raising=False)
    return config_from_dict(
        {
            "paths": {
                "data_dir": str(tmp_path),
                "state_db": str(tmp_path / "newsdesk.sqlite3"),
            },
            "fetch": {"max_retries": 0, "backoff_seconds": 0.0},
        }
    )


@pytest.fixture
def conn(config):
    connection = connect_db(config.paths.state_db)
    yield connection
    connection.close()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def ctx(config, conn, fetcher):
    return build_context(config, conn=conn, fetcher=fetcher, clock=lambda: NOW)
