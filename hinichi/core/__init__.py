"""Core infrastructure: caching, HTTP, errors and background scheduling."""
