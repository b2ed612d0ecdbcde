"""Upstream hotentry listing fetch."""

import asyncio
import logging
from typing import List, Optional

from aiohttp import ClientError

from ..core.http_client import AsyncHTTPClient
from ..extraction import extract_entries
from ..models import ListingEntry

logger = logging.getLogger(__name__)

CHUNK_SIZE = 16 * 1024


class HatenaListingSource:
    """Fetches `<base>/<category>/<YYYYMMDD>` and streams it through the extractor."""

    def __init__(self, http_client: AsyncHTTPClient, base_url: str):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    def listing_url(self, category: str, date: str) -> str:
        return f"{self.base_url}/{category}/{date}"

    async def fetch_listing(self, category: str, date: str) -> Optional[List[ListingEntry]]:
        """Entries for one date, or None when the upstream did not answer OK.

        Timeouts and connection errors count as a non-OK answer.
        """
        url = self.listing_url(category, date)
        try:
            async with self.http_client.stream(url) as response:
                if response.status < 200 or response.status >= 300:
                    logger.warning("Listing %s answered %s", url, response.status)
                    return None
                entries = await extract_entries(response.content.iter_chunked(CHUNK_SIZE))
        except (ClientError, asyncio.TimeoutError) as e:
            logger.warning("Listing %s failed: %s", url, e)
            return None

        logger.info("Listing %s: %d entries", url, len(entries))
        return entries
