"""Settings package exports."""

from .loader import (
    DEFAULT_MAX_SHARD_BYTES,
    AppConfig,
    BatchSettings,
    ConfigFileError,
    HttpSettings,
    PathSettings,
    ServerSettings,
    SitemapDefaults,
    load_config,
)

__all__ = [
    "DEFAULT_MAX_SHARD_BYTES",
    "AppConfig",
    "BatchSettings",
    "ConfigFileError",
    "HttpSettings",
    "PathSettings",
    "ServerSettings",
    "SitemapDefaults",
    "load_config",
]
