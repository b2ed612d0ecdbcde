"""AI overview of a day's entries using Gemini structured output."""

import json
import logging
from typing import Sequence

from ..core.exceptions import APIError
from ..core.http_client import AsyncHTTPClient
from ..models import AISummaryResult, ArticleContent
from ..utils.logging_config import log_operation
from .prompts import MAX_PROMPT_ARTICLES, SummaryPrompts

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY_LENGTH = 100

SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "overview": {"type": "string"},
        "articles": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "url": {"type": "string"},
                    "summary": {"type": "string"},
                },
                "required": ["title", "url", "summary"],
            },
        },
    },
    "required": ["overview", "articles"],
}


def build_fallback_summary(articles: Sequence[ArticleContent]) -> AISummaryResult:
    """Summary assembled from listing metadata only."""
    return AISummaryResult(
        overview=f"{len(articles)}件の人気エントリーがあります。",
        articles=[
            {
                "title": article.entry.title,
                "url": article.entry.url,
                "summary": article.entry.description[:FALLBACK_SUMMARY_LENGTH],
            }
            for article in articles
        ],
    )


class AISummarizer:
    """Client for the daily overview."""

    def __init__(self, http_client: AsyncHTTPClient, api_key: str, model: str, endpoint: str):
        self.http_client = http_client
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")

    async def generate(self, articles: Sequence[ArticleContent], date_str: str) -> AISummaryResult:
        """Structured summary, or the metadata fallback on any failure."""
        prompt = SummaryPrompts.daily_summary(articles, date_str)
        log_operation(logger, "generate_summary", "started",
                      articles=min(len(articles), MAX_PROMPT_ARTICLES), date=date_str)
        try:
            structured = await self._make_structured_request(prompt)
            result = AISummaryResult.model_validate(structured)
        except Exception as e:
            log_operation(logger, "generate_summary", "degraded", error=e)
            return build_fallback_summary(articles)

        log_operation(logger, "generate_summary", "completed", articles=len(result.articles))
        return result

    async def _make_structured_request(self, prompt: str) -> dict:
        url = f"{self.endpoint}/{self.model}:generateContent"
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": prompt}]
                }
            ],
            "generationConfig": {
                "temperature": 0.3,
                "responseMimeType": "application/json",
                "responseJsonSchema": SUMMARY_SCHEMA,
            }
        }

        response = await self.http_client.post(url, json=payload, params={"key": self.api_key})
        async with response:
            if response.status != 200:
                raise APIError(
                    f"Gemini request failed with status {response.status}",
                    status_code=response.status,
                    response_text=(await response.text())[:500],
                )
            raw = await response.json(content_type=None)

        candidates = (raw.get("candidates") or []) if isinstance(raw, dict) else []
        if not candidates:
            raise APIError("Empty Gemini response", status_code=200, response_text=str(raw)[:500])

        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts or "text" not in parts[0]:
            raise APIError(
                "Gemini structured response missing text",
                status_code=200,
                response_text=str(raw)[:500]
            )

        # Text should already be valid JSON according to the schema
        return json.loads(parts[0]["text"].strip())
