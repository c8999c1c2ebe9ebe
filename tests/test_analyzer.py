import pytest

from conftest import make_article
from newsdesk import storage
from newsdesk.analyzer import Analyzer
from newsdesk.errors import AnalysisDegraded, ArticleNotFound
from newsdesk.models import Summary


class _StubExternal:
    def __init__(self, error=None, hints=None):
        self.error = error
        self.hints = hints
        self.calls = 0

    def is_available(self):
        return True

    async def summarize(self, article):
        self.calls += 1
        if self.error:
            raise self.error
        return Summary(
            article_id=article.id,
            summary_text="model summary",
            key_points=["one", "two", "three"],
            sentiment="neutral",
            impact="medium",
            related_topics=["gpt"],
            generated_by="llm",
        )

    async def analyze_trends(self, articles, timeframe):
        if self.error:
            raise self.error
        return self.hints


def _article():
    return make_article(
        "OpenAI announces breakthrough GPT model",
        "https://example.com/launch",
        description="The model is a major advance. It improves reasoning! Risks remain.",
    )


async def test_unknown_article(ctx):
    with pytest.raises(ArticleNotFound):
        await ctx.analyzer.get_summary("nope")


async def test_rules_summary_is_generated_and_stored(ctx, conn):
    article = _article()
    storage.insert_articles(conn, [article])

    summary = await ctx.analyzer.get_summary(article.id)
    assert summary.generated_by == "rules"
    assert summary.key_points[0] == "Involves gpt technology"
    assert storage.get_summary(conn, article.id).summary_text == summary.summary_text

    trimmed = await ctx.analyzer.get_summary(article.id, include_key_points=False)
    assert trimmed.key_points == []
    assert storage.get_summary(conn, article.id).key_points == summary.key_points


async def test_external_summary_preferred(ctx, conn):
    article = _article()
    storage.insert_articles(conn, [article])
    external = _StubExternal()
    analyzer = Analyzer(conn, ctx.aggregator, external)

    summary = await analyzer.get_summary(article.id)
    assert summary.generated_by == "llm"
    await analyzer.get_summary(article.id)
    assert external.calls == 1


async def test_external_failure_degrades_to_rules(ctx, conn):
    article = _article()
    storage.insert_articles(conn, [article])
    analyzer = Analyzer(conn, ctx.aggregator, _StubExternal(error=AnalysisDegraded("down")))

    summary = await analyzer.get_summary(article.id)
    assert summary.generated_by == "rules"
    assert summary.sentiment == "positive"


async def test_trends_from_store(ctx, conn):
    storage.insert_articles(
        conn,
        [
            make_article("One", "https://example.com/1", tags=["llm"], days_ago=1),
            make_article("Two", "https://example.com/2", tags=["llm"], days_ago=12),
        ],
    )
    report = await ctx.analyzer.get_trends("month", include_stats=True)
    payload = report.to_dict()
    assert payload["timeframe"] == "month"
    assert payload["topTopics"] == [{"topic": "llm", "frequency": 2, "trend": "rising"}]
    assert payload["stats"]["totalArticles"] == 2
    assert sum(payload["sentimentDistribution"].values()) == 100


async def test_trend_hints_override_topic_lists(ctx, conn):
    storage.insert_articles(conn, [make_article("One", "https://example.com/1", tags=["llm"])])
    hints = {"emergingTopics": ["agents"], "decliningTopics": ["nft"], "insights": []}
    analyzer = Analyzer(conn, ctx.aggregator, _StubExternal(hints=hints))
    report = await analyzer.get_trends("week", include_stats=False)
    assert report.emerging_topics == ["agents"]
    assert report.declining_topics == ["nft"]
    assert report.stats is None
