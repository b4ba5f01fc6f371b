"""Turn the site model into an ordered, de-duplicated list of sitemap entries."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Mapping
from urllib.parse import urlsplit

from ..utils.logging import get_logger
from .models import (
    ContentItem,
    DetailPageBinding,
    EffectivePage,
    ItemSource,
    PageFile,
    SiteModel,
    SitemapOptions,
    SitemapURLEntry,
    SourceKind,
    StructurePage,
    locale_segment,
)

LOGGER = get_logger(__name__)


def path_depth(page_url: str) -> int:
    return len([segment for segment in page_url.split("/") if segment])


def page_priority(page: StructurePage | EffectivePage, top_priority: float) -> float:
    if page.is_root:
        return 1.0
    return top_priority / 2 ** path_depth(page.page_url)


def detail_path(page_url: str) -> str:
    return page_url.strip("/").removesuffix(".html")


def _host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def apply_locale_aliases(
    entries: Iterable[SitemapURLEntry],
    aliases: Mapping[str, str],
    base_url: str,
) -> list[SitemapURLEntry]:
    """Replace the locale URL segment with its alias; nothing else changes.

    ``aliases`` maps alias to real locale.
    """

    by_locale = {locale: alias for alias, locale in aliases.items()}
    result: list[SitemapURLEntry] = []
    for entry in entries:
        alias = by_locale.get(entry.locale)
        if alias:
            prefix = f"{base_url}/{locale_segment(entry.locale)}"
            rest = entry.loc[len(prefix):]
            if entry.loc.startswith(prefix) and (not rest or rest[0] in "/?"):
                entry = replace(entry, loc=f"{base_url}/{alias}{rest}")
        result.append(entry)
    return result


@dataclass(slots=True)
class _EntrySet:
    """Entries in insertion order, unique by ``loc``."""

    entries: list[SitemapURLEntry] = field(default_factory=list)
    seen: set[str] = field(default_factory=set)

    def add(self, entry: SitemapURLEntry) -> bool:
        if entry.loc in self.seen:
            return False
        self.seen.add(entry.loc)
        self.entries.append(entry)
        return True


class URLSynthesizer:
    def __init__(
        self,
        model: SiteModel,
        options: SitemapOptions,
        changefreqs: Mapping[str, str] | None = None,
    ) -> None:
        self._model = model
        self._options = options
        self._changefreqs = dict(changefreqs or {})
        self._files = {page_file.name: page_file for page_file in model.page_files}
        self._base = options.base_url
        self._site_host = _host(options.site_url)

    def synthesize(self) -> list[SitemapURLEntry]:
        result = _EntrySet()
        self._add_pages(result)
        self._add_items(result)
        aliases = {**self._model.site.locale_aliases, **self._options.locale_aliases}
        entries = apply_locale_aliases(result.entries, aliases, self._base)
        LOGGER.info(
            "Synthesized sitemap entries",
            extra={
                "event": "urls.synthesized",
                "entries": len(entries),
                "pages": sum(1 for entry in entries if entry.kind is SourceKind.PAGE),
                "items": sum(1 for entry in entries if entry.kind is SourceKind.ITEM),
            },
        )
        return entries

    def locale_prefix(self, locale: str) -> str:
        if locale == self._model.locales.default and not self._options.default_locale_segment:
            return ""
        return f"/{locale_segment(locale)}"

    def _loc(self, locale: str, path: str, page_id: str) -> str:
        loc = f"{self._base}{self.locale_prefix(locale)}"
        if path:
            loc = f"{loc}/{path}"
        query = self._options.page_query_strings.get(page_id) or self._options.query_string
        if query:
            loc = f"{loc}?{query.lstrip('?')}"
        return loc

    def _page_loc(self, page: EffectivePage, locale: str) -> str:
        path = "" if page.is_root else page.page_url.strip("/")
        return self._loc(locale, path, page.id)

    def _indexable(self, page: EffectivePage) -> bool:
        if page.is_detail_page or not (page.is_root or page.page_url):
            return False
        if (page.locale, page.id) in self._model.no_index:
            return False
        if page.link_url and _host(page.link_url) and _host(page.link_url) != self._site_host:
            return False
        return True

    def _changefreq(self, page_id: str, locale: str) -> str:
        if not self._options.auto_changefreq:
            return self._options.changefreq
        for name in self._file_names(page_id, locale):
            if name in self._changefreqs:
                return self._changefreqs[name]
        return self._options.default_changefreq

    def _lastmod(self, page_id: str, locale: str) -> date | None:
        for name in self._file_names(page_id, locale):
            page_file = self._files.get(name)
            if page_file and page_file.last_modified:
                return page_file.last_modified.date()
        return None

    def _file_names(self, page_id: str, locale: str) -> list[str]:
        names = [PageFile.name_for(page_id, None)]
        if locale != self._model.locales.default:
            names.insert(0, PageFile.name_for(page_id, locale))
        return names

    def _emit(self, result: _EntrySet, entry: SitemapURLEntry, path: str, page_id: str) -> None:
        """Add ``entry`` and its copies for every output locale that falls back to it."""

        plan = self._model.locales
        if entry.locale in plan.output and entry.locale not in plan.fallbacks:
            result.add(entry)
        for source in plan.fallback_sources_for(entry.locale):
            result.add(replace(entry, loc=self._loc(source, path, page_id), locale=source))

    def _add_pages(self, result: _EntrySet) -> None:
        top = self._options.top_priority
        for locale in self._model.locales.fetched:
            for master in self._model.master_pages:
                page = self._model.effective_page(master.id, locale)
                if page is None or not self._indexable(page):
                    continue
                entry = SitemapURLEntry(
                    loc=self._page_loc(page, locale),
                    lastmod=self._lastmod(page.id, locale),
                    priority=page_priority(page, top),
                    changefreq=self._changefreq(page.id, locale),
                    locale=locale,
                    kind=SourceKind.PAGE,
                    link_id=page.id,
                )
                path = "" if page.is_root else page.page_url.strip("/")
                self._emit(result, entry, path, page.id)

    def _binding_for(self, item: ContentItem) -> DetailPageBinding | None:
        model = self._model
        if item.source is ItemSource.TYPE_QUERY:
            candidates = [model.default_detail_page] if model.default_detail_page else []
            candidates.extend(b for b in model.detail_pages if b is not model.default_detail_page)
            return next((b for b in candidates if b.permits(item.type)), None)

        if item.detail_page_id:
            binding = model.detail_binding(item.detail_page_id)
        elif self._options.no_default_detail_page_link:
            return None
        else:
            binding = model.default_detail_page
        if binding is None or not binding.permits(item.type):
            return None
        return binding

    def _add_items(self, result: _EntrySet) -> None:
        top = self._options.top_priority
        skipped = 0
        for item in self._model.items:
            binding = self._binding_for(item)
            if binding is None:
                skipped += 1
                continue
            detail = self._model.effective_page(binding.page.id, item.locale) or binding.page
            slug = item.slug or item.id
            base_path = detail_path(detail.page_url)
            if self._options.legacy_detail_links:
                path = f"{base_path}/{item.type}/{item.id}/{slug}"
            else:
                path = f"{base_path}/{slug}"
            path = path.lstrip("/")

            found_on = None
            if item.page_id:
                found_on = self._model.effective_page(item.page_id, item.locale) or self._model.master_page(
                    item.page_id
                )
            source_page = found_on or detail
            entry = SitemapURLEntry(
                loc=self._loc(item.locale, path, binding.page.id),
                lastmod=item.updated.date() if item.updated else None,
                priority=page_priority(source_page, top),
                changefreq=self._changefreq(source_page.id, item.locale),
                locale=item.locale,
                kind=SourceKind.ITEM,
                link_id=item.id,
            )
            self._emit(result, entry, path, binding.page.id)
        if skipped:
            LOGGER.debug(
                "Items without a usable detail page were skipped",
                extra={"event": "items.skipped", "count": skipped},
            )


__all__ = [
    "URLSynthesizer",
    "apply_locale_aliases",
    "detail_path",
    "page_priority",
    "path_depth",
]
