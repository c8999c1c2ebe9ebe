import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path

from newsdesk.utils import (
    json_dumps,
    normalize_url,
    parse_date_value,
    slugify,
    stable_id_from_url,
    strip_html,
)


@dataclass
class Payload:
    value: str


def test_normalize_url_strips_tracking_and_sorts():
    url = "https://Example.com/path?utm_source=news&b=2&a=1"
    normalized = normalize_url(url, strip_tracking_params=True, tracking_params=["utm_source"])
    assert normalized == "https://example.com/path?a=1&b=2"


def test_normalize_url_keeps_tracking_when_disabled():
    url = "https://example.com/path?utm_source=news&b=2"
    normalized = normalize_url(url, strip_tracking_params=False, tracking_params=["utm_source"])
    assert normalized == "https://example.com/path?b=2&utm_source=news"


def test_stable_id_is_deterministic():
    assert stable_id_from_url("https://example.com/a") == stable_id_from_url("https://example.com/a")
    assert stable_id_from_url("https://example.com/a") != stable_id_from_url("https://example.com/b")


def test_slugify():
    assert slugify("MIT Technology Review") == "mit-technology-review"
    assert slugify("  !!! ") == "source"


def test_strip_html():
    assert strip_html("<p>Hello <em>world</em></p>") == "Hello world"
    assert strip_html("  plain\n text ") == "plain text"
    assert strip_html(None) == ""


def test_parse_date_value_formats():
    expected = datetime(2025, 6, 13, 9, 30, tzinfo=timezone.utc)
    assert parse_date_value("Fri, 13 Jun 2025 09:30:00 GMT") == expected
    assert parse_date_value("2025-06-13T09:30:00Z") == expected
    assert parse_date_value("2025-06-13T09:30:00") == expected
    assert parse_date_value("yesterday") is None
    assert parse_date_value(None) is None


def test_json_dumps_handles_supported_types():
    payload = {
        "dataclass": Payload(value="ok"),
        "datetime": datetime(2025, 1, 1, tzinfo=timezone.utc),
        "date": date(2025, 1, 2),
        "path": Path("/tmp/newsdesk"),
        "set": {"a", "b"},
    }
    decoded = json.loads(json_dumps(payload))
    assert decoded["dataclass"]["value"] == "ok"
    assert decoded["datetime"].startswith("2025-01-01T00:00:00")
    assert decoded["date"] == "2025-01-02"
    assert decoded["path"] == "/tmp/newsdesk"
    assert sorted(decoded["set"]) == ["a", "b"]
