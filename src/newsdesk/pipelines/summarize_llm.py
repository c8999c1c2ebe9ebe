from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any

import aiohttp
import jsonschema

from ..config import Config
from ..errors import AnalysisDegraded
from ..models import Article, Summary
from ..utils import log_event, utc_now

DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"
DEEPSEEK_MODEL = "deepseek-chat"
OPENAI_BASE_URL = "https://api.openai.com/v1"

SUMMARY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["summary", "keyPoints", "sentiment", "impact", "relatedTopics"],
    "properties": {
        "summary": {"type": "string", "minLength": 1},
        "keyPoints": {"type": "array", "items": {"type": "string"}},
        "sentiment": {"enum": ["positive", "negative", "neutral"]},
        "impact": {"enum": ["high", "medium", "low"]},
        "relatedTopics": {"type": "array", "items": {"type": "string"}},
    },
}

TREND_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["emergingTopics", "decliningTopics"],
    "properties": {
        "emergingTopics": {"type": "array", "items": {"type": "string"}},
        "decliningTopics": {"type": "array", "items": {"type": "string"}},
        "insights": {"type": "array", "items": {"type": "string"}},
    },
}

SUMMARY_SYSTEM_PROMPT = (
    "You are an AI news analyst. Extract the key facts of an article, judge its "
    "sentiment and estimate its impact. Respond with JSON only."
)
TREND_SYSTEM_PROMPT = (
    "You are an AI trend analyst. Identify emerging and declining topics in a set "
    "of news articles. Respond with JSON only."
)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class ExternalSummarizer:
    """OpenAI-compatible chat completion backend for summaries and trend hints."""

    name = "llm"

    def __init__(self, config: Config, logger: logging.Logger | None = None) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("newsdesk.llm")

    def _credentials(self) -> tuple[str, str, str] | None:
        llm = self.config.llm
        explicit_key = os.environ.get("NEWSDESK_LLM_API_KEY", "").strip()
        deepseek_key = os.environ.get("DEEPSEEK_API_KEY", "").strip()
        openai_key = os.environ.get("OPENAI_API_KEY", "").strip()
        if explicit_key:
            base_url, api_key, model = llm.base_url, explicit_key, llm.model
        elif deepseek_key:
            base_url, api_key, model = llm.base_url or DEEPSEEK_BASE_URL, deepseek_key, DEEPSEEK_MODEL
        elif openai_key:
            base_url, api_key, model = llm.base_url or OPENAI_BASE_URL, openai_key, llm.model
        else:
            return None
        if not base_url:
            return None
        return base_url.rstrip("/"), api_key, model

    def is_available(self) -> bool:
        return self.config.llm.enabled and self._credentials() is not None

    async def summarize(self, article: Article) -> Summary:
        prompt = (
            f"Title: {article.title}\n"
            f"Description: {article.description}\n"
            f"Content: {article.content or ''}\n\n"
            "Return a JSON object with keys: summary (under 100 words), keyPoints "
            "(3-5 strings), sentiment (positive|negative|neutral), impact "
            "(high|medium|low), relatedTopics (at most 5 strings)."
        )
        parsed = await self._complete(SUMMARY_SYSTEM_PROMPT, prompt, SUMMARY_SCHEMA)
        return Summary(
            article_id=article.id,
            summary_text=parsed["summary"],
            key_points=list(parsed["keyPoints"]),
            sentiment=parsed["sentiment"],
            impact=parsed["impact"],
            related_topics=list(parsed["relatedTopics"])[:5],
            generated_by=self.name,
            created_at=utc_now(),
        )

    async def analyze_trends(self, articles: list[Article], timeframe: str) -> dict[str, list[str]]:
        lines = []
        for article in articles[:50]:
            lines.append(
                f"Title: {article.title}\n"
                f"Description: {article.description}\n"
                f"Tags: {', '.join(article.tags)}\n"
                f"Published: {article.published_at.isoformat()}"
            )
        prompt = (
            f"Timeframe: {timeframe}\n\n"
            + "\n\n".join(lines)
            + "\n\nReturn a JSON object with keys: emergingTopics, decliningTopics, insights "
            "(each a list of strings)."
        )
        parsed = await self._complete(TREND_SYSTEM_PROMPT, prompt, TREND_SCHEMA)
        return {
            "emergingTopics": list(parsed["emergingTopics"])[:5],
            "decliningTopics": list(parsed["decliningTopics"])[:5],
            "insights": list(parsed.get("insights") or []),
        }

    async def test_connection(self) -> bool:
        credentials = self._credentials()
        if credentials is None:
            return False
        base_url, api_key, _ = credentials
        timeout = aiohttp.ClientTimeout(total=self.config.llm.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(
                    f"{base_url}/models", headers={"Authorization": f"Bearer {api_key}"}
                ) as response:
                    ok = response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log_event(self.logger, logging.WARNING, "llm_connection_failed", error=str(exc))
            return False
        log_event(self.logger, logging.INFO, "llm_connection_checked", ok=ok)
        return ok

    async def _complete(self, system: str, user: str, schema: dict[str, Any]) -> dict[str, Any]:
        credentials = self._credentials()
        if credentials is None:
            raise AnalysisDegraded("llm not configured")
        base_url, api_key, model = credentials
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.config.llm.temperature,
            "max_tokens": self.config.llm.max_tokens,
        }
        try:
            response = await self._post(f"{base_url}/chat/completions", api_key, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            log_event(self.logger, logging.WARNING, "llm_call_failed", model=model, error=str(exc))
            raise AnalysisDegraded(f"llm call failed: {exc}") from exc
        content = _read_openai(response)
        return _parse_and_validate(content, schema)

    async def _post(self, endpoint: str, api_key: str, payload: dict[str, Any]) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.config.llm.timeout_seconds)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(endpoint, json=payload, headers=headers) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise AnalysisDegraded(f"llm http {response.status}: {body[:200]}")
                return await response.json(content_type=None)


def _read_openai(response: Any) -> str:
    choices = response.get("choices") if isinstance(response, dict) else None
    if not choices:
        raise AnalysisDegraded("openai_missing_choices")
    content = (choices[0].get("message") or {}).get("content")
    if not content:
        raise AnalysisDegraded("openai_empty_content")
    return str(content)


def _parse_and_validate(content: str, schema: dict[str, Any]) -> dict[str, Any]:
    match = _JSON_BLOCK.search(content)
    if not match:
        raise AnalysisDegraded("llm response contained no JSON object")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AnalysisDegraded(f"llm response is not valid JSON: {exc}") from exc
    try:
        jsonschema.validate(parsed, schema)
    except jsonschema.ValidationError as exc:
        raise AnalysisDegraded(f"llm response failed validation: {exc.message}") from exc
    return parsed
