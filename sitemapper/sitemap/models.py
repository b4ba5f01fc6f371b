"""Data model shared by the sitemap pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

CHANGEFREQ_VALUES = ("always", "hourly", "daily", "weekly", "monthly", "yearly", "never")
AUTO_CHANGEFREQ = "auto"
# Used when automatic mode cannot classify a page.
AUTO_FALLBACK_CHANGEFREQ = "monthly"

ITEM_TYPES_ALL = "all"
ITEM_TYPES_FROM_PAGES = "pages"


class OutputFormat(str, Enum):
    TEXT = "text"
    XML = "xml"
    XML_VARIANTS = "xml-variants"

    @property
    def extension(self) -> str:
        return ".txt" if self is OutputFormat.TEXT else ".xml"


class SourceKind(str, Enum):
    PAGE = "page"
    ITEM = "item"


class ItemSource(str, Enum):
    """How a content item was discovered."""

    PAGE = "page"
    CONTENT_LIST = "list"
    TYPE_QUERY = "query"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse the timestamp shapes returned by the content APIs.

    Accepts ISO-8601 strings (``Z`` suffix allowed), ``{"value": ...}``
    wrappers and epoch milliseconds. Naive values are taken as UTC.
    """

    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        return parse_timestamp(value.get("value"))
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def locale_segment(locale: str) -> str:
    return locale.lower()


@dataclass(slots=True, frozen=True)
class Site:
    id: str
    name: str
    default_language: str
    repository_id: str | None = None
    channel_id: str | None = None
    channel_token: str | None = None
    locale_fallbacks: Mapping[str, str] = field(default_factory=dict)
    locale_aliases: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class LocalizationPolicy:
    required_locales: tuple[str, ...] = ()
    optional_locales: tuple[str, ...] = ()

    @property
    def locales(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for locale in (*self.required_locales, *self.optional_locales):
            seen.setdefault(locale, None)
        return tuple(seen)


@dataclass(slots=True, frozen=True)
class StructurePage:
    """A node of the master page tree."""

    id: str
    parent_id: str | None
    name: str
    page_url: str
    is_detail_page: bool = False
    link_url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StructurePage":
        parent = data.get("parentId")
        return cls(
            id=str(data["id"]),
            parent_id=str(parent) if parent not in (None, "") else None,
            name=str(data.get("name") or ""),
            page_url=str(data.get("pageUrl") or ""),
            is_detail_page=bool(data.get("isDetailPage", False)),
            link_url=(data.get("linkUrl") or None) if data.get("overrideUrl", True) else None,
        )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(slots=True, frozen=True)
class EffectivePage:
    """A page as seen from one locale, after the master overlay."""

    id: str
    locale: str
    parent_id: str | None
    name: str
    page_url: str
    is_detail_page: bool
    link_url: str | None
    translated: bool

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


def resolve_page(
    master: StructurePage, override: Mapping[str, Any] | None, locale: str
) -> EffectivePage:
    """Overlay a locale's structure entry on the master page.

    Only the translated ``name`` and ``pageUrl`` come from the locale; the tree
    position, detail-page flag and external link always follow the master.
    """

    override = override or {}
    return EffectivePage(
        id=master.id,
        locale=locale,
        parent_id=master.parent_id,
        name=str(override.get("name") or master.name),
        page_url=str(override.get("pageUrl") or master.page_url),
        is_detail_page=master.is_detail_page,
        link_url=master.link_url,
        translated=bool(override),
    )


@dataclass(slots=True, frozen=True)
class DetailPageBinding:
    page: StructurePage
    content_types: tuple[str, ...] = ()

    def permits(self, content_type: str) -> bool:
        return not self.content_types or content_type in self.content_types


@dataclass(slots=True, frozen=True)
class PageBinding:
    """Content ids placed on a page, optionally tied to a specific detail page."""

    page_id: str
    detail_page_id: str | None
    content_ids: tuple[str, ...]
    locale: str | None = None


@dataclass(slots=True, frozen=True)
class ContentListQuery:
    page_id: str
    content_type: str | None
    limit: int | None = None
    offset: int | None = None
    order_by: str | None = None
    detail_page_id: str | None = None


@dataclass(slots=True, frozen=True)
class ContentQuery:
    """A delivery API query; ``limit=None`` asks the fetcher for every page."""

    q: str | None
    limit: int | None = None
    offset: int | None = None
    order_by: str | None = None


@dataclass(slots=True, frozen=True)
class ContentItem:
    id: str
    type: str
    slug: str | None
    locale: str
    updated: datetime | None
    page_id: str | None
    detail_page_id: str | None
    source: ItemSource = ItemSource.PAGE

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        query_locale: str,
        page_id: str | None,
        detail_page_id: str | None,
        source: ItemSource,
    ) -> "ContentItem":
        language = data.get("language")
        translatable = data.get("translatable", True)
        if isinstance(translatable, str):
            translatable = translatable.lower() != "false"
        locale = str(language) if language and translatable else query_locale
        return cls(
            id=str(data["id"]),
            type=str(data.get("type") or ""),
            slug=data.get("slug") or None,
            locale=locale,
            updated=parse_timestamp(data.get("updatedDate") or data.get("updatedDateTime")),
            page_id=page_id,
            detail_page_id=detail_page_id or None,
            source=source,
        )


@dataclass(slots=True, frozen=True)
class PageFile:
    """The stored JSON document of one page in one locale."""

    id: str
    name: str
    last_modified: datetime | None = None

    @staticmethod
    def name_for(page_id: str, locale: str | None) -> str:
        return f"{locale}_{page_id}.json" if locale else f"{page_id}.json"


@dataclass(slots=True, frozen=True)
class FileRevision:
    version: int
    modified: datetime


@dataclass(slots=True, frozen=True)
class SitemapURLEntry:
    loc: str
    lastmod: date | None
    priority: float
    changefreq: str
    locale: str
    kind: SourceKind
    link_id: str

    @property
    def group_key(self) -> tuple[str, str]:
        return (self.kind.value, self.link_id)


@dataclass(slots=True, frozen=True)
class LocalePlan:
    """Which locales are fetched and which ones reach the output.

    ``fallbacks`` maps an output locale that has no translation of its own to
    the fetched locale whose data it reuses.
    """

    default: str
    translations: tuple[str, ...]
    fetched: tuple[str, ...]
    output: tuple[str, ...]
    fallbacks: Mapping[str, str] = field(default_factory=dict)

    def fallback_sources_for(self, locale: str) -> list[str]:
        return [source for source, target in self.fallbacks.items() if target == locale]


@dataclass(slots=True)
class SitemapOptions:
    site: str
    site_url: str
    format: OutputFormat = OutputFormat.XML
    changefreq: str = "monthly"
    languages: tuple[str, ...] = ()
    exclude_languages: tuple[str, ...] = ()
    top_priority: float = 1.0
    legacy_detail_links: bool = False
    query_string: str | None = None
    page_query_strings: Mapping[str, str] = field(default_factory=dict)
    no_default_locale: bool = False
    default_locale_segment: bool = False
    multiple_files: bool = False
    item_types: str | tuple[str, ...] | None = None
    no_default_detail_page_link: bool = False
    locale_aliases: Mapping[str, str] = field(default_factory=dict)
    output_file: Path = Path("sitemap.xml")
    max_shard_bytes: int = 48_000_000

    @property
    def auto_changefreq(self) -> bool:
        return self.changefreq == AUTO_CHANGEFREQ

    @property
    def default_changefreq(self) -> str:
        return AUTO_FALLBACK_CHANGEFREQ if self.auto_changefreq else self.changefreq

    @property
    def base_url(self) -> str:
        return self.site_url.rstrip("/")


@dataclass(slots=True)
class SiteModel:
    """Everything the synthesizer needs, fetched once per run."""

    site: Site
    locales: LocalePlan
    master_pages: tuple[StructurePage, ...]
    children: Mapping[str, tuple[str, ...]]
    pages: Mapping[tuple[str, str], EffectivePage]
    no_index: frozenset[tuple[str, str]]
    detail_pages: tuple[DetailPageBinding, ...]
    default_detail_page: DetailPageBinding | None
    content_types: tuple[str, ...]
    page_bindings: tuple[PageBinding, ...] = ()
    content_list_queries: tuple[ContentListQuery, ...] = ()
    items: tuple[ContentItem, ...] = ()
    page_files: tuple[PageFile, ...] = ()

    def master_page(self, page_id: str) -> StructurePage | None:
        for page in self.master_pages:
            if page.id == page_id:
                return page
        return None

    def effective_page(self, page_id: str, locale: str) -> EffectivePage | None:
        return self.pages.get((locale, page_id))

    def detail_binding(self, page_id: str | None) -> DetailPageBinding | None:
        if not page_id:
            return None
        for binding in self.detail_pages:
            if binding.page.id == page_id:
                return binding
        return None


__all__ = [
    "AUTO_CHANGEFREQ",
    "AUTO_FALLBACK_CHANGEFREQ",
    "CHANGEFREQ_VALUES",
    "ITEM_TYPES_ALL",
    "ITEM_TYPES_FROM_PAGES",
    "ContentItem",
    "ContentListQuery",
    "ContentQuery",
    "DetailPageBinding",
    "EffectivePage",
    "FileRevision",
    "ItemSource",
    "LocalePlan",
    "LocalizationPolicy",
    "OutputFormat",
    "PageBinding",
    "PageFile",
    "Site",
    "SiteModel",
    "SitemapOptions",
    "SitemapURLEntry",
    "SourceKind",
    "StructurePage",
    "locale_segment",
    "parse_timestamp",
    "resolve_page",
]
