"""Services module."""

from .article_fetcher import ArticleFetcher
from .dates import candidate_dates, format_date_for_display, subtract_days, yesterday_jst
from .listing_source import HatenaListingSource
from .pipeline import FeedPipeline, FeedRequest, PipelineConfig
from .summarizer import AISummarizer, build_fallback_summary

__all__ = [
    'ArticleFetcher',
    'candidate_dates',
    'format_date_for_display',
    'subtract_days',
    'yesterday_jst',
    'HatenaListingSource',
    'FeedPipeline',
    'FeedRequest',
    'PipelineConfig',
    'AISummarizer',
    'build_fallback_summary',
]
