"""Feed, page and error response rendering."""

from .feeds import Feed, FeedItem, build_summary_html, generate_feed
from .pages import render_error_page, render_html_page
from .responses import (
    CACHE_HEADERS_TO_STRIP,
    CONTENT_TYPES,
    build_error_response,
    render_feed_response,
    strip_cache_headers,
)

__all__ = [
    'Feed',
    'FeedItem',
    'build_summary_html',
    'generate_feed',
    'render_error_page',
    'render_html_page',
    'CACHE_HEADERS_TO_STRIP',
    'CONTENT_TYPES',
    'build_error_response',
    'render_feed_response',
    'strip_cache_headers',
]
