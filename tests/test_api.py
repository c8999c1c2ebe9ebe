import pytest
from fastapi.testclient import TestClient

from conftest import make_article
from newsdesk import storage
from newsdesk.api import create_app


@pytest.fixture
def client(ctx):
    return TestClient(create_app(ctx))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_latest_news_envelope(client, conn):
    storage.insert_articles(
        conn,
        [make_article(f"Story {i}", f"https://example.com/{i}", days_ago=i) for i in range(3)],
    )
    response = client.get("/api/news/latest", params={"limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [item["title"] for item in body["data"]] == ["Story 0", "Story 1"]


def test_search_requires_query(client):
    response = client.get("/api/news/search")
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_search_with_query_and_tags(client, conn):
    storage.insert_articles(conn, [make_article("LLM roundup", "https://example.com/llm")])
    response = client.get("/api/news/search", params={"q": "llm", "tags": "llm,gpt"})
    assert response.status_code == 200
    assert [item["url"] for item in response.json()["data"]] == ["https://example.com/llm"]


def test_unknown_article_summary_is_404(client):
    response = client.get("/api/news/missing/summary")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "article_not_found: missing"}


def test_trends_endpoints(client, conn):
    storage.insert_articles(conn, [make_article("GPT news", "https://example.com/gpt")])
    trends = client.get("/api/trends", params={"timeframe": "week", "includeStats": "false"})
    assert trends.status_code == 200
    assert "stats" not in trends.json()["data"]
    topics = client.get("/api/trends/topics")
    assert topics.json()["data"] == ["gpt"]
    bad = client.get("/api/trends", params={"timeframe": "decade"})
    assert bad.status_code == 400


def test_source_admin_routes(client, monkeypatch):
    monkeypatch.setenv("NEWSDESK_ADMIN_TOKEN", "secret")
    payload = {"name": "Lab Blog", "url": "https://lab.example/feed", "kind": "rss"}
    assert client.post("/api/sources", json=payload).status_code == 401

    headers = {"X-Admin-Token": "secret"}
    created = client.post("/api/sources", json=payload, headers=headers)
    assert created.status_code == 200
    assert created.json()["data"]["id"] == "lab-blog"

    duplicate = client.post("/api/sources", json=payload, headers=headers)
    assert duplicate.status_code == 400

    updated = client.put("/api/sources/lab-blog", json={"category": "research"}, headers=headers)
    assert updated.json()["data"]["category"] == "research"

    missing = client.put("/api/sources/nope", json={"category": "x"}, headers=headers)
    assert missing.status_code == 404

    deleted = client.delete("/api/sources/lab-blog", headers=headers)
    assert deleted.json()["data"] == {"id": "lab-blog", "status": "deleted"}

    listed = client.get("/api/sources")
    assert "lab-blog" not in [item["id"] for item in listed.json()["data"]]


def test_sync_rejects_non_json_body(client):
    response = client.post(
        "/api/sync", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


def test_sync_and_status(client, conn, fetcher):
    storage.upsert_source(conn, {"name": "Alpha", "url": "https://alpha.example/feed"})
    fetcher.articles["Alpha"] = [
        make_article("Alpha one", "https://alpha.example/1", source_name="Alpha")
    ]
    sync = client.post("/api/sync", json={"force": True})
    assert sync.status_code == 200
    assert sync.json()["data"]["newsAdded"] == 1
    status = client.get("/api/sync/status")
    assert status.json()["data"]["lastSyncTimes"].keys() == {"alpha"}


def test_stats_include_cache(client):
    body = client.get("/api/stats").json()
    assert body["data"]["totalNews"] == 0
    assert body["data"]["cache"] == {"size": 0, "keys": []}


def test_cleanup_route(client, conn):
    storage.insert_articles(conn, [make_article("Old", "https://example.com/old", days_ago=10)])
    response = client.delete("/api/cleanup", params={"daysOld": 7})
    assert response.json()["data"] == {"deletedCount": 1, "daysOld": 7}


def test_tool_catalog_and_call(client):
    catalog = client.get("/api/mcp/tools").json()["data"]
    assert len(catalog) == 10
    call = client.post("/api/mcp/tools", json={"name": "get_sync_status", "arguments": {}})
    assert call.status_code == 200
    assert call.json()["success"] is True
    unknown = client.post("/api/mcp/tools", json={"name": "nope"})
    assert unknown.status_code == 400


def test_news_by_category_and_source(client, conn):
    storage.insert_articles(
        conn,
        [
            make_article("Paper", "https://example.com/paper", category="research"),
            make_article("Launch", "https://example.com/launch", source_name="Wire", days_ago=1),
        ],
    )
    research = client.get("/api/news/category/research", params={"limit": 5}).json()
    assert [item["title"] for item in research["data"]] == ["Paper"]

    wire = client.get("/api/news/source/Wire").json()
    assert [item["title"] for item in wire["data"]] == ["Launch"]

    missing = client.get("/api/news/source/Nowhere")
    assert missing.status_code == 404
    assert missing.json()["success"] is False


def test_llm_status_without_credentials(client, monkeypatch):
    for key in ("NEWSDESK_LLM_API_KEY", "DEEPSEEK_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    body = client.get("/api/llm/status").json()
    assert body["data"] == {"available": False, "reachable": False}
