"""Request resolution: date lookback, tiered caching, enrichment and rendering."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from pydantic import ValidationError

from ..core.cache import (
    CacheKind,
    DataCache,
    FileStore,
    ResponseCache,
    cache_control_header,
    create_data_cache,
)
from ..core.exceptions import ConfigurationError, NoEntriesFoundError, UpstreamUnavailableError
from ..core.tasks import BackgroundTasks
from ..models import (
    AISummaryResult,
    ArticleContent,
    Category,
    ListingEntry,
    OutputFormat,
    RenderedResponse,
    SummaryMode,
)
from ..rendering.responses import build_error_response, render_feed_response, strip_cache_headers
from ..utils.logging_config import log_operation
from .article_fetcher import ArticleFetcher
from .dates import candidate_dates, format_date_for_display, yesterday_jst
from .listing_source import HatenaListingSource
from .summarizer import AISummarizer

logger = logging.getLogger(__name__)

UPSTREAM_UNAVAILABLE_MESSAGE = "データの取得に失敗しました"
NO_ENTRIES_MESSAGE = "エントリーが見つかりませんでした"
MISSING_CONFIG_MESSAGE = "AI要約の設定が不足しています"


@dataclass(frozen=True)
class PipelineConfig:
    """Constants fixed for the lifetime of a pipeline."""
    cache_ttl: int = 7 * 24 * 60 * 60
    data_cache_version: str = "2"
    lookback_days: int = 2
    max_articles: int = 20

    @classmethod
    def from_settings(cls, settings) -> "PipelineConfig":
        return cls(
            cache_ttl=settings.cache_ttl,
            data_cache_version=settings.data_cache_version,
            lookback_days=settings.entry_lookback_days,
            max_articles=settings.max_articles,
        )


@dataclass
class FeedRequest:
    category: Category
    date: Optional[str] = None
    format: OutputFormat = OutputFormat.RSS
    summary: Optional[SummaryMode] = None
    revalidate: bool = False
    base_url: str = "http://localhost"

    @property
    def want_summary(self) -> bool:
        return self.summary is not None


class FeedPipeline:
    """Answers one feed request.

    Entries are looked up in the `entries` tier for each candidate date
    before the upstream is asked, and the upstream is probed across the
    lookback window only when no date was pinned. Article bodies and the
    AI summary each sit behind their own tier. The rendered response is
    stored in the full-response cache keyed by the resolved date.
    """

    def __init__(
        self,
        config: PipelineConfig,
        listing_source: HatenaListingSource,
        tasks: BackgroundTasks,
        store: Optional[FileStore] = None,
        response_cache: Optional[ResponseCache] = None,
        article_fetcher: Optional[ArticleFetcher] = None,
        summarizer: Optional[AISummarizer] = None,
        missing_summary_settings: Sequence[str] = (),
        default_date: Callable[[], str] = yesterday_jst,
    ):
        self.config = config
        self.listing_source = listing_source
        self.tasks = tasks
        self.store = store
        self.response_cache = response_cache
        self.article_fetcher = article_fetcher
        self.summarizer = summarizer
        self.missing_summary_settings = list(missing_summary_settings)
        self.default_date = default_date

    def data_cache_for(self, base_url: str) -> DataCache:
        return create_data_cache(
            self.store,
            self.response_cache,
            base_url,
            self.config.data_cache_version,
            self.config.cache_ttl,
        )

    @staticmethod
    def response_cache_key(request: FeedRequest, date: str) -> str:
        params = {"date": date, "format": request.format.value}
        if request.summary is not None:
            params["summary"] = request.summary.value
        return f"{request.base_url.rstrip('/')}/{request.category.value}?{urlencode(params)}"

    async def handle(self, request: FeedRequest) -> RenderedResponse:
        """Resolve a request into a response; known failures become error bodies."""
        requested_date = request.date or self.default_date()
        try:
            return await self._resolve(request, requested_date)
        except ConfigurationError as e:
            return build_error_response(
                request.format,
                str(e),
                format_date_for_display(requested_date),
                request.category,
                500,
                details=[
                    f"不足している環境変数: {', '.join(e.missing)}",
                    "環境変数を設定するか、summary パラメータを外してアクセスしてください。",
                ],
                link_href=f"/{request.category.value}?format=html&date={requested_date}",
                link_label="AI要約なしで表示する",
            )
        except UpstreamUnavailableError as e:
            return build_error_response(request.format, str(e),
                                        format_date_for_display(e.requested_date), request.category, 502)
        except NoEntriesFoundError as e:
            return build_error_response(request.format, str(e),
                                        format_date_for_display(e.requested_date), request.category, 404)

    async def _resolve(self, request: FeedRequest, requested_date: str) -> RenderedResponse:
        category = request.category.value
        if request.want_summary and self.missing_summary_settings:
            raise ConfigurationError(MISSING_CONFIG_MESSAGE, missing=self.missing_summary_settings)

        if not request.revalidate:
            cached = await self._match_response(request, requested_date)
            if cached is not None:
                return cached

        data_cache = self.data_cache_for(request.base_url)
        log_operation(logger, "resolve_entries", "started", category=category,
                      date=requested_date, pinned=request.date is not None, revalidate=request.revalidate)
        entries, resolved_date, from_cache = await self._resolve_entries(request, requested_date, data_cache)
        log_operation(logger, "resolve_entries", "completed", category=category,
                      resolved=resolved_date, entries=len(entries), from_cache=from_cache)

        if resolved_date != requested_date and not request.revalidate:
            cached = await self._match_response(request, resolved_date)
            if cached is not None:
                return cached

        if request.revalidate:
            await self._invalidate(request, resolved_date, data_cache)

        if not from_cache:
            self._persist(data_cache, CacheKind.ENTRIES, category, resolved_date,
                          [entry.to_dict() for entry in entries])

        display_date = format_date_for_display(resolved_date)
        summary = None
        if request.want_summary:
            articles = await self._load_articles(request, resolved_date, entries, data_cache)
            summary = await self._load_summary(request, resolved_date, display_date, articles, data_cache)

        response = render_feed_response(
            entries,
            request.category,
            resolved_date,
            display_date,
            request.format,
            request.base_url.rstrip("/"),
            summary=summary,
            summary_mode=request.summary,
            pinned_date=request.date,
        )

        if self.response_cache is not None:
            cacheable = response.with_header("Cache-Control", cache_control_header(self.config.cache_ttl))
            self.tasks.schedule(
                self.response_cache.put(self.response_cache_key(request, resolved_date), cacheable),
                name="put response",
            )
        return response

    async def _match_response(self, request: FeedRequest, date: str) -> Optional[RenderedResponse]:
        if self.response_cache is None:
            return None
        cached = await self.response_cache.match(self.response_cache_key(request, date))
        if cached is None:
            return None
        logger.debug("Full response cache hit for %s/%s", request.category.value, date)
        return strip_cache_headers(cached)

    async def _resolve_entries(self, request: FeedRequest, requested_date: str,
                               data_cache: DataCache) -> Tuple[List[ListingEntry], str, bool]:
        """Entries, the date they belong to, and whether they came from the entries tier."""
        category = request.category.value
        dates = candidate_dates(requested_date, request.date is None, self.config.lookback_days)

        if not request.revalidate:
            for date in dates:
                entries = await self._load_cached_list(data_cache, CacheKind.ENTRIES, category, date,
                                                       ListingEntry.from_dict)
                if entries:
                    return entries, date, True

        answered = False
        for date in dates:
            entries = await self.listing_source.fetch_listing(category, date)
            if entries is None:
                continue
            answered = True
            if entries:
                return entries, date, False

        if not answered:
            log_operation(logger, "resolve_entries", "failed", category=category,
                          date=requested_date, reason="upstream unavailable")
            raise UpstreamUnavailableError(UPSTREAM_UNAVAILABLE_MESSAGE, requested_date)
        log_operation(logger, "resolve_entries", "failed", category=category,
                      date=requested_date, reason="no entries")
        raise NoEntriesFoundError(NO_ENTRIES_MESSAGE, requested_date)

    async def _invalidate(self, request: FeedRequest, date: str, data_cache: DataCache) -> None:
        category = request.category.value
        deletes = [data_cache.delete(kind, category, date) for kind in CacheKind]
        if self.response_cache is not None:
            deletes.append(self.response_cache.delete(self.response_cache_key(request, date)))
        await asyncio.gather(*deletes)
        logger.info("Revalidating %s/%s", category, date)

    async def _load_articles(self, request: FeedRequest, date: str, entries: Sequence[ListingEntry],
                             data_cache: DataCache) -> List[ArticleContent]:
        category = request.category.value
        if not request.revalidate:
            articles = await self._load_cached_list(data_cache, CacheKind.ARTICLES, category, date,
                                                    ArticleContent.from_dict)
            if articles:
                return articles

        articles = await self.article_fetcher.fetch_article_contents(entries, self.config.max_articles)
        self._persist(data_cache, CacheKind.ARTICLES, category, date,
                      [article.to_dict() for article in articles])
        return articles

    async def _load_summary(self, request: FeedRequest, date: str, display_date: str,
                            articles: Sequence[ArticleContent], data_cache: DataCache) -> AISummaryResult:
        category = request.category.value
        if not request.revalidate:
            cached = await data_cache.get(CacheKind.AI_SUMMARY, category, date)
            if cached:
                try:
                    return AISummaryResult.model_validate(cached)
                except ValidationError:
                    logger.warning("Dropping invalid cached summary for %s/%s", category, date)
                    self.tasks.schedule(data_cache.delete(CacheKind.AI_SUMMARY, category, date),
                                        name="delete ai-summary")

        summary = await self.summarizer.generate(articles, display_date)
        self._persist(data_cache, CacheKind.AI_SUMMARY, category, date, summary.model_dump())
        return summary

    def _persist(self, data_cache: DataCache, kind: CacheKind, category: str, date: str, payload: Any) -> None:
        self.tasks.schedule(data_cache.put(kind, category, date, payload), name=f"put {kind.value}")

    async def _load_cached_list(self, data_cache: DataCache, kind: CacheKind, category: str, date: str,
                                decode: Callable[[Any], Any]) -> list:
        """Decode a cached list; a malformed payload is deleted and counts as a miss."""
        cached = await data_cache.get(kind, category, date)
        if cached is None:
            return []
        try:
            if not isinstance(cached, list):
                raise ValueError(f"expected a list, got {type(cached).__name__}")
            return [decode(item) for item in cached]
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Dropping invalid cached %s for %s/%s: %s", kind.value, category, date, e)
            self.tasks.schedule(data_cache.delete(kind, category, date), name=f"delete {kind.value}")
            return []
