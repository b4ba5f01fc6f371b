"""Exception hierarchy for sitemap generation."""

from __future__ import annotations

import json
from typing import Any, Mapping


class SitemapError(RuntimeError):
    """Base class for every failure surfaced by the sitemap pipeline."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.details:
            return base
        try:
            detail_repr = json.dumps(self.details, ensure_ascii=False, sort_keys=True)
        except TypeError:
            detail_repr = str(self.details)
        return f"{base} | details: {detail_repr}"


class ConfigurationError(SitemapError):
    """Invalid invocation; raised before any remote call is made."""


class LocaleNotFoundError(ConfigurationError):
    """A requested locale has neither a translation nor a usable fallback."""

    def __init__(self, locale: str, *, available: list[str] | None = None) -> None:
        super().__init__(
            f"site does not have translation for {locale}",
            details={"locale": locale, "available": sorted(available or [])},
        )
        self.locale = locale


class RemoteDataError(SitemapError):
    """Site, structure, page or item data could not be retrieved."""


class OutputWriteError(SitemapError):
    """Rendered files could not be written; earlier output is left as it was."""


__all__ = [
    "ConfigurationError",
    "LocaleNotFoundError",
    "OutputWriteError",
    "RemoteDataError",
    "SitemapError",
]
