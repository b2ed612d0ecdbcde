"""Listing page extraction for hinichi."""

from .entry_extractor import (
    Collector,
    ListingExtractor,
    extract_entries,
    iter_entries,
    parse_entries,
    parse_users,
    split_category_date,
)

__all__ = [
    'Collector',
    'ListingExtractor',
    'extract_entries',
    'iter_entries',
    'parse_entries',
    'parse_users',
    'split_category_date',
]
