from conftest import NOW, make_article
from newsdesk.pipelines.trends import (
    build_trend_report,
    classify_topics,
    determine_trend,
    sentiment_distribution,
    top_sources,
)


def _tagged(index, tags, days_ago, source_name="Source A", title="Plain headline"):
    return make_article(
        title,
        f"https://example.com/{index}",
        days_ago=days_ago,
        tags=tags,
        source_name=source_name,
    )


def test_sentiment_distribution_is_zero_for_empty_corpus():
    assert sentiment_distribution([]) == {"positive": 0, "negative": 0, "neutral": 0}


def test_sentiment_distribution_sums_to_one_hundred():
    articles = [
        make_article("A breakthrough", "https://example.com/1"),
        make_article("A new risk", "https://example.com/2"),
        make_article("A memo", "https://example.com/3"),
    ]
    distribution = sentiment_distribution(articles)
    assert distribution == {"positive": 34, "negative": 33, "neutral": 33}
    assert sum(distribution.values()) == 100


def test_determine_trend_thresholds():
    assert determine_trend(4, 10) == "rising"
    assert determine_trend(3, 10) == "stable"
    assert determine_trend(1, 10) == "stable"
    assert determine_trend(0, 10) == "declining"


def test_recent_topic_is_emerging():
    articles = [_tagged(i, ["gpt-5"], days_ago=1) for i in range(3)]
    articles += [_tagged(10 + i, ["gpt-5"], days_ago=20) for i in range(2)]
    emerging, declining = classify_topics(articles, NOW)
    assert emerging == ["gpt-5"]
    assert declining == []


def test_exactly_forty_percent_recent_is_not_emerging():
    articles = [_tagged(i, ["vision"], days_ago=1) for i in range(2)]
    articles += [_tagged(10 + i, ["vision"], days_ago=20) for i in range(3)]
    emerging, declining = classify_topics(articles, NOW)
    assert emerging == []
    assert declining == []


def test_declining_needs_more_than_two_mentions():
    pair = [_tagged(i, ["robotics"], days_ago=20) for i in range(2)]
    assert classify_topics(pair, NOW) == ([], [])
    triple = pair + [_tagged(5, ["robotics"], days_ago=25)]
    assert classify_topics(triple, NOW) == ([], ["robotics"])


def test_top_sources_average_sentiment():
    articles = [
        _tagged(1, [], 1, source_name="Wire", title="Breakthrough in chips"),
        _tagged(2, [], 1, source_name="Wire", title="Plain memo"),
        _tagged(3, [], 1, source_name="Blog", title="Security risk found"),
    ]
    stats = top_sources(articles)
    assert [(item.source, item.article_count) for item in stats] == [("Wire", 2), ("Blog", 1)]
    assert stats[0].avg_sentiment == 0.5
    assert stats[1].avg_sentiment == -1.0


def test_trend_report_with_and_without_stats():
    articles = [_tagged(1, ["llm", "gpt"], 1), _tagged(2, ["llm"], 2, source_name="Wire")]
    report = build_trend_report(articles, "week", NOW, include_stats=True, cutoff=NOW)
    payload = report.to_dict()
    assert payload["timeframe"] == "week"
    assert payload["topTopics"][0] == {"topic": "llm", "frequency": 2, "trend": "rising"}
    assert payload["stats"]["totalArticles"] == 2
    assert payload["stats"]["uniqueTopics"] == 2
    assert payload["stats"]["uniqueSources"] == 2
    bare = build_trend_report(articles, "week", NOW, include_stats=False).to_dict()
    assert "stats" not in bare
