"""RSS 2.0, Atom 1.0 and JSON Feed 1.1 documents."""

import html
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Dict, List, Optional, Sequence
from urllib.parse import quote, urlparse
from xml.etree.ElementTree import Element, SubElement, tostring

from ..models import AISummaryResult, Category, ListingEntry

JST = timezone(timedelta(hours=9))
ENTRY_DATE_PATTERN = re.compile(r"(\d{4})/(\d{2})/(\d{2})\s+(\d{2}):(\d{2})")
GENERATOR = "hinichi"
XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'


@dataclass
class FeedItem:
    title: str
    id: str
    link: str
    description: str
    date: datetime
    content: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    image: Optional[str] = None


@dataclass
class Feed:
    """Format-independent feed that can be serialized three ways."""
    title: str
    description: str
    id: str
    link: str
    feed_links: Dict[str, str]
    updated: datetime
    language: str = "ja"
    items: List[FeedItem] = field(default_factory=list)

    def add_item(self, item: FeedItem) -> None:
        self.items.append(item)

    def rss2(self) -> str:
        rss = Element("rss", version="2.0")
        rss.set("xmlns:content", "http://purl.org/rss/1.0/modules/content/")
        rss.set("xmlns:atom", "http://www.w3.org/2005/Atom")
        channel = SubElement(rss, "channel")

        SubElement(channel, "title").text = self.title
        SubElement(channel, "link").text = self.link
        SubElement(channel, "description").text = self.description
        SubElement(channel, "language").text = self.language
        SubElement(channel, "lastBuildDate").text = format_datetime(self.updated)
        SubElement(channel, "generator").text = GENERATOR
        SubElement(channel, "atom:link", href=self.feed_links["rss"], rel="self", type="application/rss+xml")

        for item in self.items:
            node = SubElement(channel, "item")
            SubElement(node, "title").text = item.title
            SubElement(node, "link").text = item.link
            SubElement(node, "guid", isPermaLink="false").text = item.id
            SubElement(node, "pubDate").text = format_datetime(item.date)
            SubElement(node, "description").text = item.description
            if item.content:
                SubElement(node, "content:encoded").text = item.content
            for name in item.categories:
                SubElement(node, "category").text = name
            if item.image:
                SubElement(node, "enclosure", url=item.image, length="0", type="image/jpeg")

        return XML_DECLARATION + tostring(rss, encoding="unicode")

    def atom1(self) -> str:
        feed = Element("feed", xmlns="http://www.w3.org/2005/Atom")
        feed.set("xml:lang", self.language)
        SubElement(feed, "id").text = self.id
        SubElement(feed, "title").text = self.title
        SubElement(feed, "updated").text = self.updated.isoformat()
        SubElement(feed, "generator").text = GENERATOR
        SubElement(feed, "subtitle").text = self.description
        SubElement(feed, "link", rel="alternate", href=self.link)
        SubElement(feed, "link", rel="self", href=self.feed_links["atom"])

        for item in self.items:
            entry = SubElement(feed, "entry")
            SubElement(entry, "title", type="html").text = item.title
            SubElement(entry, "id").text = item.id
            SubElement(entry, "link", href=item.link)
            SubElement(entry, "updated").text = item.date.isoformat()
            SubElement(entry, "summary", type="html").text = item.description
            if item.content:
                SubElement(entry, "content", type="html").text = item.content
            for name in item.categories:
                SubElement(entry, "category", term=name, label=name)

        return XML_DECLARATION + tostring(feed, encoding="unicode")

    def json1(self) -> str:
        document = {
            "version": "https://jsonfeed.org/version/1.1",
            "title": self.title,
            "home_page_url": self.link,
            "feed_url": self.feed_links["json"],
            "description": self.description,
            "language": self.language,
            "items": [],
        }
        for item in self.items:
            payload = {
                "id": item.id,
                "url": item.link,
                "title": item.title,
                "summary": item.description,
                "date_modified": item.date.isoformat(),
            }
            if item.content:
                payload["content_html"] = item.content
            if item.categories:
                payload["tags"] = list(item.categories)
            if item.image:
                payload["image"] = item.image
            document["items"].append(payload)
        return json.dumps(document, ensure_ascii=False, indent=2)


def escape_html(value: str) -> str:
    return html.escape(value, quote=True)


def build_bookmark_comment_url(url: str) -> str:
    """Bookmark comment page for an article URL."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return f"https://b.hatena.ne.jp/entry/{url}"
    query = f"?{parsed.query}" if parsed.query else ""
    prefix = "/entry/s/" if parsed.scheme == "https" else "/entry/"
    return f"https://b.hatena.ne.jp{prefix}{parsed.netloc}{parsed.path}{query}"


def build_content_encoded(entry: ListingEntry) -> str:
    esc = escape_html
    favicon_url = f"https://cdn-ak2.favicon.st-hatena.com/64?url={quote(entry.url, safe='')}"
    bookmark_page_url = build_bookmark_comment_url(entry.url)
    bookmark_badge_url = f"https://b.hatena.ne.jp/entry/image/{entry.url}"

    parts = [
        f'<blockquote cite="{esc(entry.url)}" title="{esc(entry.title)}">',
        f'<cite><img src="{esc(favicon_url)}" alt="" /> <a href="{esc(entry.url)}">{esc(entry.title)}</a></cite>',
    ]
    if entry.image_url:
        parts.append(
            f'<p><a href="{esc(entry.url)}"><img src="{esc(entry.image_url)}" alt="{esc(entry.title)}" '
            f'title="{esc(entry.title)}" class="entry-image" /></a></p>'
        )
    if entry.description:
        parts.append(f"<p>{esc(entry.description)}</p>")
    parts.extend([
        "<p>",
        f'<a href="{esc(bookmark_page_url)}"><img src="{esc(bookmark_badge_url)}" '
        f'alt="はてなブックマーク - {esc(entry.title)}" title="はてなブックマーク - {esc(entry.title)}" '
        f'border="0" style="border: none" /></a>',
        f' <a href="{esc(bookmark_page_url)}"><img src="https://b.st-hatena.com/images/append.gif" '
        f'border="0" alt="はてなブックマークに追加" title="はてなブックマークに追加" /></a>',
        "</p>",
        "</blockquote>",
    ])
    return "".join(parts)


def parse_entry_date(date_field: str, fallback_date_str: str) -> datetime:
    """"2026/02/10 01:17" in JST; otherwise midnight JST of the listing date."""
    match = ENTRY_DATE_PATTERN.search(date_field)
    if match:
        year, month, day, hour, minute = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day, hour, minute, tzinfo=JST)
        except ValueError:
            pass
    digits = fallback_date_str.replace("-", "")
    try:
        return datetime.strptime(digits, "%Y%m%d").replace(tzinfo=JST)
    except ValueError:
        return datetime.now(timezone.utc)


def generate_feed(entries: Sequence[ListingEntry], category: Category, date_str: str, base_url: str) -> Feed:
    """Feed of the listing; `date_str` is the display date (YYYY-MM-DD)."""
    label = category.label
    feed_url = f"{base_url}/{category.value}"

    feed = Feed(
        title=f"はてなブックマーク - {label} - {date_str}",
        description=f"はてなブックマーク {label} カテゴリの人気エントリー（{date_str}）",
        id=feed_url,
        link=f"https://b.hatena.ne.jp/hotentry/{category.value}/{date_str.replace('-', '')}",
        feed_links={
            "atom": f"{feed_url}?format=atom",
            "rss": f"{feed_url}?format=rss",
            "json": f"{feed_url}?format=json",
        },
        updated=datetime.now(timezone.utc),
    )

    for entry in entries:
        feed.add_item(FeedItem(
            title=entry.title,
            id=entry.url,
            link=entry.url,
            description=entry.description,
            content=build_content_encoded(entry),
            date=parse_entry_date(entry.date, date_str),
            categories=list(entry.tags),
            image=entry.image_url,
        ))

    return feed


def build_summary_html(summary: AISummaryResult) -> str:
    esc = escape_html
    article_list_html = "\n".join(
        f'<li><a href="{esc(a.url)}">{esc(a.title)}</a>: {esc(a.summary)}</li>'
        for a in summary.articles
    )
    return (
        "<h3>今日のトレンド</h3>\n"
        f"<p>{esc(summary.overview)}</p>\n"
        "<h3>記事サマリ</h3>\n"
        f"<ul>{article_list_html}</ul>"
    )
