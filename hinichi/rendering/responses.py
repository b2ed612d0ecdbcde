"""Turns entries, summaries and errors into RenderedResponse objects."""

import json
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..models import AISummaryResult, Category, ListingEntry, OutputFormat, RenderedResponse, SummaryMode
from .feeds import FeedItem, build_summary_html, generate_feed
from .pages import render_error_page, render_html_page

CONTENT_TYPES = {
    OutputFormat.RSS: "application/rss+xml; charset=utf-8",
    OutputFormat.ATOM: "application/atom+xml; charset=utf-8",
    OutputFormat.JSON: "application/feed+json; charset=utf-8",
    OutputFormat.HTML: "text/html; charset=utf-8",
}
ERROR_JSON_CONTENT_TYPE = "application/json; charset=utf-8"

# Never forwarded to clients from a cached response
CACHE_HEADERS_TO_STRIP = ("cache-control", "age", "expires", "last-modified", "etag")


def strip_cache_headers(response: RenderedResponse) -> RenderedResponse:
    return response.without_headers(CACHE_HEADERS_TO_STRIP)


def build_error_response(
    output_format: OutputFormat,
    message: str,
    date_str: str,
    category: Category,
    status: int,
    details: Optional[List[str]] = None,
    link_href: Optional[str] = None,
    link_label: Optional[str] = None,
) -> RenderedResponse:
    """Error body in the requested format; `date_str` is the display date."""
    output_format = OutputFormat(output_format)

    if output_format == OutputFormat.HTML:
        body = render_error_page(message, date_str, category, details=details,
                                 link_href=link_href, link_label=link_label)
        return RenderedResponse(body=body, status=status,
                                headers={"Content-Type": CONTENT_TYPES[OutputFormat.HTML]})

    if output_format == OutputFormat.JSON:
        payload = {"error": message, "date": date_str, "category": category.value}
        if details:
            payload["details"] = list(details)
        return RenderedResponse(body=json.dumps(payload, ensure_ascii=False), status=status,
                                headers={"Content-Type": ERROR_JSON_CONTENT_TYPE})

    description = f"{category.label} ({date_str}): {message}"
    if details:
        description += "\n" + " / ".join(details)

    feed = generate_feed([], category, date_str, "")
    feed.add_item(FeedItem(
        title=message,
        id=f"error-{category.value}-{date_str}",
        link=f"https://b.hatena.ne.jp/hotentry/{category.value}",
        description=description,
        date=datetime.now(timezone.utc),
    ))

    body = feed.atom1() if output_format == OutputFormat.ATOM else feed.rss2()
    return RenderedResponse(body=body, status=status,
                            headers={"Content-Type": CONTENT_TYPES[output_format]})


def render_feed_response(
    entries: Sequence[ListingEntry],
    category: Category,
    resolved_date: str,
    display_date: str,
    output_format: OutputFormat,
    base_url: str,
    summary: Optional[AISummaryResult] = None,
    summary_mode: Optional[SummaryMode] = None,
    pinned_date: Optional[str] = None,
) -> RenderedResponse:
    """Successful response body for a resolved listing.

    With the aiOnly mode the entry list is left out and only the summary is
    rendered.
    """
    output_format = OutputFormat(output_format)
    visible = [] if summary_mode == SummaryMode.AI_ONLY else list(entries)
    headers = {"Content-Type": CONTENT_TYPES[output_format]}

    if output_format == OutputFormat.HTML:
        body = render_html_page(
            visible,
            category,
            display_date,
            current_format=output_format.value,
            current_date=pinned_date or resolved_date,
            current_summary=summary_mode.value if summary_mode else None,
            summary=summary,
        )
        return RenderedResponse(body=body, headers=headers)

    feed = generate_feed(visible, category, display_date, base_url)
    if summary is not None:
        feed.add_item(FeedItem(
            title=f"[要約] {display_date} の {category.value} まとめ",
            id=f"{base_url}/{category.value}/summary/{resolved_date}",
            link=f"{base_url}/{category.value}?format=html&summary=ai&date={resolved_date}",
            description=summary.overview,
            content=build_summary_html(summary),
            date=datetime.now(timezone.utc),
        ))

    if output_format == OutputFormat.ATOM:
        body = feed.atom1()
    elif output_format == OutputFormat.JSON:
        body = feed.json1()
    else:
        body = feed.rss2()
    return RenderedResponse(body=body, headers=headers)
