"""Sitemap generator for multi-locale sites on a remote content server."""

__version__ = "0.3.0"
