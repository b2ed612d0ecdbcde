"""Article body fetching through the Cloudflare Browser Rendering markdown API."""

import asyncio
import logging
from typing import List, Sequence

from aiohttp import ClientError

from ..core.http_client import AsyncHTTPClient
from ..models import ArticleContent, ListingEntry

logger = logging.getLogger(__name__)

RENDERING_ENDPOINT = "https://api.cloudflare.com/client/v4/accounts/{account_id}/browser-rendering/markdown"
MAX_BODY_LENGTH = 3000


class ArticleFetcher:
    """Best-effort body text for listing entries."""

    def __init__(self, http_client: AsyncHTTPClient, account_id: str, api_token: str,
                 max_body_length: int = MAX_BODY_LENGTH):
        self.http_client = http_client
        self.account_id = account_id
        self.api_token = api_token
        self.max_body_length = max_body_length

    async def fetch_markdown(self, url: str) -> str:
        """Rendered markdown of the page, truncated; empty string on any failure."""
        endpoint = RENDERING_ENDPOINT.format(account_id=self.account_id)
        headers = {"Authorization": f"Bearer {self.api_token}"}
        try:
            response = await self.http_client.post(endpoint, json={"url": url}, headers=headers)
            async with response:
                if response.status != 200:
                    logger.debug("Rendering %s answered %s", url, response.status)
                    return ""
                data = await response.json(content_type=None)
        except (ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug("Rendering %s failed: %s", url, e)
            return ""

        if isinstance(data, dict) and data.get("success") and isinstance(data.get("result"), str):
            return data["result"][:self.max_body_length]
        return ""

    async def fetch_article_contents(self, entries: Sequence[ListingEntry],
                                     max_articles: int = 20) -> List[ArticleContent]:
        """Fetch bodies for the first `max_articles` entries.

        Every fetch settles independently: an empty or failed fetch falls back
        to the entry's description.
        """
        targets = list(entries[:max_articles])
        results = await asyncio.gather(
            *(self.fetch_markdown(entry.url) for entry in targets),
            return_exceptions=True,
        )

        contents = []
        degraded = 0
        for entry, result in zip(targets, results):
            if isinstance(result, BaseException) or not result:
                degraded += 1
                contents.append(ArticleContent(entry=entry, body_text=entry.description))
            else:
                contents.append(ArticleContent(entry=entry, body_text=result))

        if degraded:
            logger.info("Article bodies: %d/%d fell back to descriptions", degraded, len(targets))
        return contents
