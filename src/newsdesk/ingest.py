from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

import aiohttp
import feedparser
from bs4 import BeautifulSoup

from .config import Config
from .errors import NewsdeskError, SourceUnreachable, UnsupportedSourceKind
from .models import Article, Source
from .tagger import derive_tags
from .utils import (
    extract_published_at,
    log_event,
    normalize_url,
    parse_date_value,
    stable_id_from_url,
    strip_html,
    utc_now,
)

_IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)


class Fetcher:
    """Downloads one source and normalizes its entries into Articles."""

    def __init__(self, config: Config, logger: logging.Logger | None = None) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("newsdesk.ingest")
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.config.fetch.user_agent}
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            try:
                await self._session.close()
            finally:
                self._session = None

    async def fetch(self, source: Source) -> list[Article]:
        try:
            return await self.fetch_strict(source)
        except (
            NewsdeskError,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            ValueError,
            TypeError,
            KeyError,
            AttributeError,
        ) as exc:
            log_event(
                self.logger,
                logging.WARNING,
                "source_fetch_failed",
                source=source.name,
                kind=source.kind,
                error=str(exc),
            )
            return []

    async def fetch_strict(self, source: Source) -> list[Article]:
        if source.kind not in ("feed", "api", "scrape"):
            raise UnsupportedSourceKind(source.kind)
        payload = await self._get(source)
        fetched_at = utc_now()
        if source.kind == "feed":
            articles = parse_feed(source, payload, fetched_at, self.config)
        elif source.kind == "api":
            articles = parse_api_payload(source, payload, fetched_at, self.config)
        else:
            articles = parse_scrape_html(source, payload, fetched_at, self.config)
        log_event(
            self.logger,
            logging.INFO,
            "source_fetched",
            source=source.name,
            kind=source.kind,
            articles=len(articles),
        )
        return articles

    async def probe(self, source: Source) -> bool:
        timeout = aiohttp.ClientTimeout(total=self.config.fetch.probe_timeout_seconds)
        try:
            async with self._get_session().head(
                source.url, timeout=timeout, allow_redirects=True
            ) as response:
                return response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log_event(
                self.logger, logging.DEBUG, "source_probe_failed", source=source.name, error=str(exc)
            )
            return False

    async def _get(self, source: Source) -> bytes:
        fetch_cfg = self.config.fetch
        timeout = aiohttp.ClientTimeout(total=fetch_cfg.timeout_seconds)
        attempt = 0
        while True:
            try:
                async with self._get_session().get(source.url, timeout=timeout) as response:
                    if response.status >= 400:
                        raise SourceUnreachable(source.name, f"HTTP {response.status}")
                    return await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                if attempt >= fetch_cfg.max_retries:
                    reason = str(exc) or exc.__class__.__name__
                    raise SourceUnreachable(source.name, reason) from exc
                attempt += 1
                log_event(
                    self.logger,
                    logging.DEBUG,
                    "source_fetch_retry",
                    source=source.name,
                    attempt=attempt,
                    error=str(exc),
                )
                await asyncio.sleep(fetch_cfg.backoff_seconds * attempt)


def _canonical(url: str, config: Config) -> str:
    url_cfg = config.url_normalization
    return normalize_url(url, url_cfg.strip_tracking_params, url_cfg.tracking_params)


def _build_article(
    source: Source,
    config: Config,
    *,
    title: str,
    description: str,
    link: str,
    published_at: datetime,
    content: str | None = None,
    image_url: str | None = None,
    author: str | None = None,
    extra_tags: list[str] | None = None,
) -> Article:
    url = _canonical(link, config)
    return Article(
        id=stable_id_from_url(url),
        title=title,
        description=description,
        url=url,
        source_name=source.name,
        published_at=published_at,
        category=source.category,
        tags=derive_tags(title, description, extra_tags),
        content=content,
        image_url=image_url,
        author=author or None,
    )


def _dedupe(articles: list[Article]) -> list[Article]:
    seen: set[str] = set()
    unique: list[Article] = []
    for article in articles:
        if article.url in seen:
            continue
        seen.add(article.url)
        unique.append(article)
    return unique


def _entry_content(entry: Any) -> str | None:
    content = entry.get("content")
    if isinstance(content, list) and content:
        value = content[0].get("value")
        if value:
            return str(value)
    return None


def _entry_image(entry: Any, content: str | None) -> str | None:
    for key in ("media_content", "media_thumbnail"):
        items = entry.get(key)
        if isinstance(items, list):
            for item in items:
                if isinstance(item, dict) and item.get("url"):
                    return str(item["url"])
    for enclosure in entry.get("enclosures") or []:
        enclosure_type = str(enclosure.get("type") or "")
        href = enclosure.get("href") or enclosure.get("url")
        if href and enclosure_type.startswith("image/"):
            return str(href)
    for html in (content, entry.get("summary")):
        if html:
            match = _IMG_SRC_RE.search(str(html))
            if match:
                return match.group(1)
    return None


def parse_feed(source: Source, payload: bytes, fetched_at: datetime, config: Config) -> list[Article]:
    parsed = feedparser.parse(payload)
    if parsed.get("bozo") and not parsed.entries:
        raise ValueError(f"unparseable feed: {parsed.get('bozo_exception')}")
    articles: list[Article] = []
    for entry in parsed.entries:
        link = (entry.get("link") or "").strip()
        if not link:
            continue
        content = _entry_content(entry)
        raw_description = entry.get("summary") or entry.get("description") or content
        articles.append(
            _build_article(
                source,
                config,
                title=strip_html(entry.get("title")),
                description=strip_html(raw_description),
                link=link,
                published_at=extract_published_at(entry, fetched_at),
                content=content,
                image_url=_entry_image(entry, content),
                author=entry.get("author") or entry.get("dc_creator"),
            )
        )
    return _dedupe(articles)


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def parse_api_payload(
    source: Source, payload: bytes, fetched_at: datetime, config: Config
) -> list[Article]:
    data = json.loads(payload.decode("utf-8"))
    items = data.get("articles") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return []
    articles: list[Article] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        link = (_text(item.get("url")) or "").strip()
        if not link:
            continue
        tags = item.get("tags") if isinstance(item.get("tags"), list) else []
        articles.append(
            _build_article(
                source,
                config,
                title=(_text(item.get("title")) or "").strip(),
                description=strip_html(_text(item.get("description"))),
                link=link,
                published_at=parse_date_value(item.get("publishedAt")) or fetched_at,
                content=_text(item.get("content")),
                image_url=_text(item.get("urlToImage")),
                author=_text(item.get("author")),
                extra_tags=[str(tag) for tag in tags],
            )
        )
    return _dedupe(articles)


def parse_scrape_html(
    source: Source, payload: bytes, fetched_at: datetime, config: Config
) -> list[Article]:
    soup = BeautifulSoup(payload, "html.parser")
    articles: list[Article] = []
    for block in soup.select(".article"):
        anchor = block.select_one("a[href]")
        if anchor is None:
            continue
        title_el = block.select_one(".title")
        description_el = block.select_one(".description")
        author_el = block.select_one(".author")
        image_el = block.select_one("img[src]")
        articles.append(
            _build_article(
                source,
                config,
                title=title_el.get_text(" ", strip=True) if title_el else "",
                description=description_el.get_text(" ", strip=True) if description_el else "",
                link=urljoin(source.url, str(anchor["href"])),
                published_at=fetched_at,
                image_url=urljoin(source.url, str(image_el["src"])) if image_el else None,
                author=author_el.get_text(" ", strip=True) if author_el else None,
            )
        )
    return _dedupe(articles)
