import tempfile
import unittest
import xml.etree.ElementTree as ET

from hinichi.core.cache import CacheKind, FileStore, ResponseCache, create_data_cache
from hinichi.core.tasks import BackgroundTasks
from hinichi.models import Category, OutputFormat, SummaryMode
from hinichi.services.listing_source import HatenaListingSource
from hinichi.services.pipeline import FeedPipeline, FeedRequest, PipelineConfig

from tests.fakes import (
    SAMPLE_HTML,
    FakeArticleFetcher,
    FakeHTTPClient,
    FakeListingSource,
    FakeResponse,
    FakeSummarizer,
    make_entry,
)

BASE_URL = "http://localhost"


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.listing = FakeListingSource()
        self.fetcher = FakeArticleFetcher()
        self.summarizer = FakeSummarizer()
        self.tasks = BackgroundTasks()
        self.response_cache = ResponseCache()
        self.pipeline = self.make_pipeline()

    def make_pipeline(self, **overrides) -> FeedPipeline:
        options = dict(
            config=PipelineConfig(),
            listing_source=self.listing,
            tasks=self.tasks,
            response_cache=self.response_cache,
            article_fetcher=self.fetcher,
            summarizer=self.summarizer,
            default_date=lambda: "20260210",
        )
        options.update(overrides)
        return FeedPipeline(**options)

    async def handle(self, pipeline=None, **kwargs):
        kwargs.setdefault("category", Category.IT)
        kwargs.setdefault("base_url", BASE_URL)
        response = await (pipeline or self.pipeline).handle(FeedRequest(**kwargs))
        await self.tasks.drain()
        return response


class ResolveEntriesTests(PipelineTestCase):
    async def test_json_feed_for_pinned_date(self):
        self.listing.listings["20260210"] = [make_entry(1), make_entry(2)]
        response = await self.handle(date="20260210", format=OutputFormat.JSON)

        self.assertEqual(response.status, 200)
        self.assertEqual(response.content_type, "application/feed+json; charset=utf-8")
        feed = response.json()
        self.assertEqual([item["title"] for item in feed["items"]], ["記事1", "記事2"])
        self.assertEqual(feed["title"], "はてなブックマーク - テクノロジー - 2026-02-10")

    async def test_content_type_per_format(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        expected = {
            OutputFormat.RSS: "application/rss+xml; charset=utf-8",
            OutputFormat.ATOM: "application/atom+xml; charset=utf-8",
            OutputFormat.HTML: "text/html; charset=utf-8",
        }
        for output_format, content_type in expected.items():
            with self.subTest(format=output_format):
                response = await self.handle(date="20260210", format=output_format)
                self.assertEqual(response.content_type, content_type)

    async def test_rss_is_well_formed(self):
        self.listing.listings["20260210"] = [make_entry(1, description="<b>&</b>")]
        response = await self.handle(date="20260210", format=OutputFormat.RSS)
        root = ET.fromstring(response.body.encode("utf-8"))
        items = root.findall("./channel/item")
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].findtext("description"), "<b>&</b>")

    async def test_no_ok_response_is_502(self):
        response = await self.handle(date="20260210", format=OutputFormat.JSON)
        self.assertEqual(response.status, 502)
        self.assertEqual(response.content_type, "application/json; charset=utf-8")
        self.assertEqual(response.json(), {
            "error": "データの取得に失敗しました",
            "date": "2026-02-10",
            "category": "it",
        })

    async def test_only_empty_listings_is_404_for_requested_date(self):
        for date in ("20260210", "20260209", "20260208"):
            self.listing.listings[date] = []
        response = await self.handle(format=OutputFormat.JSON)

        self.assertEqual(response.status, 404)
        self.assertEqual(response.json()["error"], "エントリーが見つかりませんでした")
        self.assertEqual(response.json()["date"], "2026-02-10")
        self.assertEqual([date for _, date in self.listing.calls], ["20260210", "20260209", "20260208"])

    async def test_one_failed_and_one_empty_listing_is_404(self):
        self.listing.listings["20260209"] = []
        response = await self.handle(format=OutputFormat.JSON)
        self.assertEqual(response.status, 404)

    async def test_lookback_resolves_earlier_date(self):
        self.listing.listings["20260209"] = [make_entry(1)]
        response = await self.handle(format=OutputFormat.JSON)
        self.assertEqual(response.status, 200)
        self.assertIn("2026-02-09", response.json()["title"])

    async def test_pinned_date_never_looks_back(self):
        self.listing.listings["20260209"] = [make_entry(1)]
        response = await self.handle(date="20260210", format=OutputFormat.JSON)
        self.assertEqual(response.status, 502)
        self.assertEqual(self.listing.calls, [("it", "20260210")])

    async def test_error_feed_has_single_item(self):
        response = await self.handle(date="20260210", format=OutputFormat.RSS)
        self.assertEqual(response.status, 502)
        root = ET.fromstring(response.body.encode("utf-8"))
        items = root.findall("./channel/item")
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].findtext("title"), "データの取得に失敗しました")
        self.assertEqual(items[0].findtext("link"), "https://b.hatena.ne.jp/hotentry/it")

    async def test_error_page_for_html(self):
        response = await self.handle(date="20260210", format=OutputFormat.HTML)
        self.assertEqual(response.status, 502)
        self.assertIn("データの取得に失敗しました", response.body)
        self.assertIn("テクノロジー カテゴリの 2026-02-10", response.body)


class CachingTests(PipelineTestCase):
    async def test_entries_tier_is_used_before_upstream(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        await self.handle(date="20260210", format=OutputFormat.JSON)
        response = await self.handle(date="20260210", format=OutputFormat.ATOM)

        self.assertEqual(response.status, 200)
        self.assertEqual(len(self.listing.calls), 1)

    async def test_entries_tier_checked_for_each_candidate(self):
        data_cache = create_data_cache(None, self.response_cache, BASE_URL, "2", 60)
        await data_cache.put(CacheKind.ENTRIES, "it", "20260208", [make_entry(9).to_dict()])
        response = await self.handle(format=OutputFormat.JSON)

        self.assertEqual(response.status, 200)
        self.assertEqual(self.listing.calls, [])
        self.assertIn("2026-02-08", response.json()["title"])

    async def test_cached_response_has_cache_headers_stripped(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        first = await self.handle(date="20260210", format=OutputFormat.RSS)
        self.assertNotIn("cache-control", first.headers)

        key = self.pipeline.response_cache_key(
            FeedRequest(category=Category.IT, date="20260210", format=OutputFormat.RSS, base_url=BASE_URL),
            "20260210",
        )
        stored = await self.response_cache.match(key)
        self.assertEqual(stored.headers["cache-control"], "public, max-age=604800")

        self.listing.listings["20260210"] = [make_entry(2)]
        second = await self.handle(date="20260210", format=OutputFormat.RSS)
        self.assertEqual(second.body, first.body)
        for header in ("cache-control", "age", "expires", "last-modified", "etag"):
            self.assertNotIn(header, second.headers)

    async def test_revalidate_refetches_and_replaces_cache(self):
        self.listing.listings["20260210"] = [make_entry(1, title="古い記事")]
        await self.handle(date="20260210", format=OutputFormat.JSON)

        self.listing.listings["20260210"] = [make_entry(1, title="新しい記事")]
        refreshed = await self.handle(date="20260210", format=OutputFormat.JSON, revalidate=True)
        self.assertEqual(refreshed.json()["items"][0]["title"], "新しい記事")

        again = await self.handle(date="20260210", format=OutputFormat.JSON)
        self.assertEqual(again.json()["items"][0]["title"], "新しい記事")
        self.assertEqual(len(self.listing.calls), 2)

    async def test_durable_store_shared_between_pipelines(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = FileStore(tmp, default_ttl=60)
            self.listing.listings["20260210"] = [make_entry(1)]
            first = self.make_pipeline(store=store, response_cache=None)
            await self.handle(pipeline=first, date="20260210", format=OutputFormat.JSON)

            second = self.make_pipeline(store=store, response_cache=None, listing_source=FakeListingSource())
            response = await self.handle(pipeline=second, date="20260210", format=OutputFormat.JSON)
            self.assertEqual(response.status, 200)
            self.assertEqual(response.json()["items"][0]["title"], "記事1")

    async def test_malformed_cached_entries_are_dropped(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        data_cache = create_data_cache(None, self.response_cache, BASE_URL, "2", 60)
        malformed = {
            "users not a number": [{"title": "a", "url": "https://e.com/a", "users": "lots"}],
            "missing title and url": [{}],
            "not a list": {"title": "a"},
        }
        for label, payload in malformed.items():
            with self.subTest(label):
                self.listing.calls.clear()
                await data_cache.put(CacheKind.ENTRIES, "it", "20260210", payload)
                await self.response_cache.delete(self.pipeline.response_cache_key(
                    FeedRequest(category=Category.IT, date="20260210", format=OutputFormat.JSON,
                                base_url=BASE_URL),
                    "20260210",
                ))

                response = await self.handle(date="20260210", format=OutputFormat.JSON)
                self.assertEqual(response.status, 200)
                self.assertEqual([item["title"] for item in response.json()["items"]], ["記事1"])
                self.assertEqual(self.listing.calls, [("it", "20260210")])
                stored = await data_cache.get(CacheKind.ENTRIES, "it", "20260210")
                self.assertEqual(stored[0]["title"], "記事1")

    async def test_works_without_any_cache_backend(self):
        pipeline = self.make_pipeline(response_cache=None)
        self.listing.listings["20260210"] = [make_entry(1)]
        await self.handle(pipeline=pipeline, date="20260210", format=OutputFormat.JSON)
        await self.handle(pipeline=pipeline, date="20260210", format=OutputFormat.JSON)
        self.assertEqual(len(self.listing.calls), 2)


class SummaryTests(PipelineTestCase):
    async def test_summary_item_appended_to_feed(self):
        self.listing.listings["20260210"] = [make_entry(1), make_entry(2)]
        response = await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI)

        items = response.json()["items"]
        self.assertEqual(len(items), 3)
        summary_item = items[-1]
        self.assertEqual(summary_item["title"], "[要約] 2026-02-10 の it まとめ")
        self.assertEqual(summary_item["id"], "http://localhost/it/summary/20260210")
        self.assertEqual(summary_item["url"], "http://localhost/it?format=html&summary=ai&date=20260210")
        self.assertIn("今日の概要です。", summary_item["content_html"])

    async def test_summary_only_omits_entries(self):
        self.listing.listings["20260210"] = [make_entry(1), make_entry(2)]
        response = await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI_ONLY)
        items = response.json()["items"]
        self.assertEqual(len(items), 1)
        self.assertTrue(items[0]["title"].startswith("[要約]"))

    async def test_summary_only_html_has_no_entry_list(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        response = await self.handle(date="20260210", format=OutputFormat.HTML, summary=SummaryMode.AI_ONLY)
        self.assertIn("今日の概要です。", response.body)
        self.assertNotIn("<article>", response.body)

    async def test_enrichment_tiers_are_reused(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI)
        await self.handle(date="20260210", format=OutputFormat.RSS, summary=SummaryMode.AI)
        self.assertEqual(self.fetcher.calls, 1)
        self.assertEqual(self.summarizer.calls, 1)

    async def test_no_summary_skips_enrichment(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        await self.handle(date="20260210", format=OutputFormat.JSON)
        self.assertEqual(self.fetcher.calls, 0)
        self.assertEqual(self.summarizer.calls, 0)

    async def test_invalid_cached_summary_is_regenerated(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        data_cache = create_data_cache(None, self.response_cache, BASE_URL, "2", 60)
        await data_cache.put(CacheKind.AI_SUMMARY, "it", "20260210", {"overview": 1})

        response = await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI)
        self.assertEqual(response.status, 200)
        self.assertEqual(self.summarizer.calls, 1)
        stored = await data_cache.get(CacheKind.AI_SUMMARY, "it", "20260210")
        self.assertEqual(stored["overview"], "今日の概要です。")

    async def test_malformed_cached_articles_are_refetched(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        data_cache = create_data_cache(None, self.response_cache, BASE_URL, "2", 60)
        await data_cache.put(CacheKind.ARTICLES, "it", "20260210", [{"entry": "oops", "bodyText": "x"}])

        response = await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI)
        self.assertEqual(response.status, 200)
        self.assertEqual(len(response.json()["items"]), 2)
        self.assertEqual(self.fetcher.calls, 1)
        stored = await data_cache.get(CacheKind.ARTICLES, "it", "20260210")
        self.assertEqual(stored[0]["bodyText"], "本文 https://example.com/1")

    async def test_missing_settings_is_500(self):
        pipeline = self.make_pipeline(missing_summary_settings=["GOOGLE_AI_API_KEY", "BROWSER_RENDERING_API_TOKEN"])
        response = await self.handle(pipeline=pipeline, date="20260210",
                                     format=OutputFormat.JSON, summary=SummaryMode.AI)
        self.assertEqual(response.status, 500)
        body = response.json()
        self.assertEqual(body["error"], "AI要約の設定が不足しています")
        self.assertIn("GOOGLE_AI_API_KEY, BROWSER_RENDERING_API_TOKEN", body["details"][0])
        self.assertEqual(self.listing.calls, [])

    async def test_missing_settings_page_links_to_plain_view(self):
        pipeline = self.make_pipeline(missing_summary_settings=["GOOGLE_AI_API_KEY"])
        response = await self.handle(pipeline=pipeline, date="20260210",
                                     format=OutputFormat.HTML, summary=SummaryMode.AI)
        self.assertEqual(response.status, 500)
        self.assertIn('href="/it?format=html&amp;date=20260210"', response.body)
        self.assertIn("AI要約なしで表示する", response.body)

    async def test_missing_settings_do_not_affect_plain_requests(self):
        pipeline = self.make_pipeline(missing_summary_settings=["GOOGLE_AI_API_KEY"])
        self.listing.listings["20260210"] = [make_entry(1)]
        response = await self.handle(pipeline=pipeline, date="20260210", format=OutputFormat.JSON)
        self.assertEqual(response.status, 200)

    async def test_revalidate_regenerates_summary(self):
        self.listing.listings["20260210"] = [make_entry(1)]
        await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI)
        await self.handle(date="20260210", format=OutputFormat.JSON, summary=SummaryMode.AI, revalidate=True)
        self.assertEqual(self.fetcher.calls, 2)
        self.assertEqual(self.summarizer.calls, 2)


class UpstreamListingTests(PipelineTestCase):
    """Listing HTML travels through the extractor and pipeline into a feed."""

    def setUp(self):
        super().setUp()
        self.http = FakeHTTPClient()
        self.listing = HatenaListingSource(self.http, "https://b.hatena.ne.jp/hotentry/")
        self.pipeline = self.make_pipeline()

    async def test_listing_blocks_become_feed_items(self):
        data = SAMPLE_HTML.encode("utf-8")
        chunks = [data[i:i + 64] for i in range(0, len(data), 64)]
        self.http.route("https://b.hatena.ne.jp/hotentry/it/20260210", FakeResponse(chunks=chunks))

        response = await self.handle(date="20260210", format=OutputFormat.JSON)
        self.assertEqual(response.status, 200)
        items = response.json()["items"]
        self.assertEqual([item["title"] for item in items], ["テスト記事タイトル1", "テスト記事タイトル2"])
        self.assertEqual(items[0]["url"], "https://example.com/article1")

    async def test_upstream_server_error_is_502(self):
        self.http.route("https://b.hatena.ne.jp/hotentry/it/", FakeResponse(status=500))

        response = await self.handle(format=OutputFormat.JSON)
        self.assertEqual(response.status, 502)
        self.assertEqual(response.json()["error"], "データの取得に失敗しました")
        self.assertEqual([r["url"] for r in self.http.requests], [
            "https://b.hatena.ne.jp/hotentry/it/20260210",
            "https://b.hatena.ne.jp/hotentry/it/20260209",
            "https://b.hatena.ne.jp/hotentry/it/20260208",
        ])


if __name__ == "__main__":
    unittest.main()
