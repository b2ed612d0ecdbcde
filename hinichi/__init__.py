"""hinichi - daily Hatena Bookmark hotentry feeds."""

__version__ = "1.0.0"
