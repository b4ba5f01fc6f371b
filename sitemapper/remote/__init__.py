"""Remote data access for sitemap generation."""

from .base import SiteFetcher
from .rest import RestSiteFetcher

__all__ = ["RestSiteFetcher", "SiteFetcher"]
