"""Sitemap generation engine."""

from .aggregator import SiteModelAggregator
from .changefreq import ChangeFrequencyEstimator
from .errors import (
    ConfigurationError,
    LocaleNotFoundError,
    OutputWriteError,
    RemoteDataError,
    SitemapError,
)
from .models import OutputFormat, SitemapOptions, SitemapURLEntry, SiteModel, SourceKind
from .resolver import MasterItemResolver
from .serializer import RenderedFile, SitemapSerializer
from .synthesizer import URLSynthesizer, apply_locale_aliases

__all__ = [
    "ChangeFrequencyEstimator",
    "ConfigurationError",
    "LocaleNotFoundError",
    "MasterItemResolver",
    "OutputFormat",
    "OutputWriteError",
    "RemoteDataError",
    "RenderedFile",
    "SiteModel",
    "SiteModelAggregator",
    "SitemapError",
    "SitemapOptions",
    "SitemapSerializer",
    "SitemapURLEntry",
    "SourceKind",
    "URLSynthesizer",
    "apply_locale_aliases",
]
