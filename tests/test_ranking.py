from datetime import datetime, timedelta, timezone

from conftest import NOW, make_article
from newsdesk.ranking import (
    apply_filters,
    compute_cutoff,
    filter_by_date_range,
    merge_unique,
    rank_articles,
    score_article,
)


def test_month_cutoff_clamps_to_shorter_month():
    now = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)
    assert compute_cutoff("month", now) == datetime(2025, 2, 28, 12, 0, tzinfo=timezone.utc)


def test_quarter_cutoff_crosses_year_boundary():
    now = datetime(2025, 1, 31, 8, 30, tzinfo=timezone.utc)
    assert compute_cutoff("quarter", now) == datetime(2024, 10, 31, 8, 30, tzinfo=timezone.utc)


def test_week_and_unknown_cutoffs():
    assert compute_cutoff("week", NOW) == NOW - timedelta(days=7)
    assert compute_cutoff("decade", NOW) is None
    assert compute_cutoff(None, NOW) is None


def test_today_cutoff_is_a_local_midnight():
    cutoff = compute_cutoff("today", NOW)
    local = cutoff.astimezone()
    assert (local.hour, local.minute, local.second) == (0, 0, 0)
    assert cutoff <= NOW


def test_filter_by_date_range():
    fresh = make_article("Fresh", "https://example.com/fresh", days_ago=2)
    stale = make_article("Stale", "https://example.com/stale", days_ago=10)
    assert filter_by_date_range([fresh, stale], "week", NOW) == [fresh]
    assert filter_by_date_range([fresh, stale], "all", NOW) == [fresh, stale]


def test_title_match_outranks_description_match():
    body = make_article("Quarterly update", "https://example.com/body", description="OpenAI partners")
    headline = make_article("OpenAI ships a model", "https://example.com/title")
    ranked = rank_articles([body, headline], "openai")
    assert ranked == [headline, body]
    assert score_article(headline, ["openai"]) > score_article(body, ["openai"])


def test_rank_drops_non_matching_and_keeps_order_on_ties():
    first = make_article("Robotics startup", "https://example.com/1")
    second = make_article("Robotics funding", "https://example.com/2")
    other = make_article("Weather", "https://example.com/3")
    assert rank_articles([first, other, second], "robotics") == [first, second]
    assert rank_articles([first], "   ") == []


def test_apply_filters():
    research = make_article(
        "Paper", "https://example.com/p", category="research", tags=["LLM", "nlp"]
    )
    product = make_article(
        "Launch", "https://example.com/l", source_name="Source B", tags=["robotics"]
    )
    items = [research, product]
    assert apply_filters(items, {"category": "research"}) == [research]
    assert apply_filters(items, {"source": "Source B"}) == [product]
    assert apply_filters(items, {"tags": ["llm"]}) == [research]
    assert apply_filters(items, {"tags": ["gpt"]}) == []
    assert apply_filters(items, None) == items


def test_merge_unique_prefers_primary():
    stored = make_article("Stored", "https://example.com/1")
    live_copy = make_article("Live copy", "https://example.com/1")
    live_new = make_article("Live new", "https://example.com/2")
    merged = merge_unique([stored], [live_copy, live_new])
    assert [article.title for article in merged] == ["Stored", "Live new"]
