"""Build the in-memory site model from the remote fetcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..core.batching import chunked, gather_in_batches
from ..settings import BatchSettings
from ..utils.logging import get_logger
from .errors import ConfigurationError, LocaleNotFoundError, RemoteDataError
from .models import (
    ITEM_TYPES_ALL,
    ITEM_TYPES_FROM_PAGES,
    ContentItem,
    ContentListQuery,
    ContentQuery,
    DetailPageBinding,
    EffectivePage,
    ItemSource,
    LocalePlan,
    LocalizationPolicy,
    PageBinding,
    PageFile,
    Site,
    SiteModel,
    SitemapOptions,
    StructurePage,
    resolve_page,
)

if TYPE_CHECKING:
    from ..remote.base import SiteFetcher

LOGGER = get_logger(__name__)

CONTENT_LIST_COMPONENT = "scs-contentlist"
CONTENT_PLACEHOLDER_COMPONENT = "scs-contentplaceholder"


@dataclass(slots=True)
class PageScan:
    """What one page's component instances reference."""

    content_types: list[str] = field(default_factory=list)
    placeholder_types: list[str] = field(default_factory=list)
    bindings: list[PageBinding] = field(default_factory=list)
    content_lists: list[ContentListQuery] = field(default_factory=list)


def _append_unique(target: list[str], values: Iterable[Any]) -> None:
    for value in values:
        if value and str(value) not in target:
            target.append(str(value))


def _optional_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def scan_components(page_id: str, page_data: Mapping[str, Any], locale: str | None = None) -> PageScan:
    """Collect content references from a page's component instances."""

    scan = PageScan()
    grouped: dict[str | None, list[str]] = {}
    instances = page_data.get("componentInstances") or {}
    for instance in instances.values():
        if not isinstance(instance, Mapping):
            continue
        data = instance.get("data") or {}
        kinds = {instance.get("type"), instance.get("id")}
        content_types = data.get("contentTypes") or []
        _append_unique(scan.content_types, content_types)

        if CONTENT_PLACEHOLDER_COMPONENT in kinds:
            _append_unique(scan.placeholder_types, content_types)

        if CONTENT_LIST_COMPONENT in kinds:
            order_by = data.get("sortOrder") or None
            if order_by:
                order_by = order_by.replace("updateddate", "updatedDate")
            scan.content_lists.append(
                ContentListQuery(
                    page_id=page_id,
                    content_type=str(content_types[0]) if content_types else None,
                    limit=_optional_int(data.get("maxResults")),
                    offset=_optional_int(data.get("firstItem")),
                    order_by=order_by,
                    detail_page_id=str(data["detailPageId"]) if data.get("detailPageId") else None,
                )
            )
            continue

        content_ids = data.get("contentIds") or []
        if content_ids:
            detail_page = str(data["detailPageId"]) if data.get("detailPageId") else None
            _append_unique(grouped.setdefault(detail_page, []), content_ids)

    scan.bindings = [
        PageBinding(page_id=page_id, detail_page_id=detail, content_ids=tuple(ids), locale=locale)
        for detail, ids in grouped.items()
    ]
    return scan


def build_children(pages: Iterable[StructurePage]) -> dict[str, tuple[str, ...]]:
    """Return a ``parent id -> child ids`` adjacency list in structure order."""

    children: dict[str, list[str]] = {}
    for page in pages:
        if page.parent_id is not None:
            children.setdefault(page.parent_id, []).append(page.id)
    return {parent: tuple(ids) for parent, ids in children.items()}


def preorder(pages: Iterable[StructurePage], children: Mapping[str, tuple[str, ...]]) -> list[str]:
    """Page ids in pre-order from the parentless root(s)."""

    pages = list(pages)
    stack = [page.id for page in reversed(pages) if page.parent_id is None]
    ordered: list[str] = []
    seen: set[str] = set()
    while stack:
        page_id = stack.pop()
        if page_id in seen:
            continue
        seen.add(page_id)
        ordered.append(page_id)
        stack.extend(reversed(children.get(page_id, ())))
    return ordered


def plan_locales(
    site: Site,
    translations: Iterable[str],
    options: SitemapOptions,
) -> LocalePlan:
    """Validate requested locales and decide which ones are fetched and emitted."""

    default = site.default_language
    translations = tuple(locale for locale in translations if locale != default)
    known = {default, *translations}
    fallbacks = {
        source: target
        for source, target in site.locale_fallbacks.items()
        if source not in known and target in known
    }

    for locale in options.languages:
        if locale not in known and locale not in fallbacks:
            raise LocaleNotFoundError(locale, available=[*known, *fallbacks])

    def wanted(locale: str) -> bool:
        if options.languages and locale not in options.languages:
            return False
        return locale not in options.exclude_languages

    output: list[str] = []
    if wanted(default) and not options.no_default_locale:
        output.append(default)
    output.extend(locale for locale in translations if wanted(locale))
    output_fallbacks = {source: target for source, target in fallbacks.items() if wanted(source)}
    output.extend(output_fallbacks)
    if not output:
        raise ConfigurationError(
            "no locale left to generate a sitemap for",
            details={
                "languages": list(options.languages),
                "exclude_languages": list(options.exclude_languages),
            },
        )

    needed = {default, *output, *output_fallbacks.values()}
    fetched = tuple(locale for locale in (default, *translations) if locale in needed)
    return LocalePlan(
        default=default,
        translations=translations,
        fetched=fetched,
        output=tuple(output),
        fallbacks=output_fallbacks,
    )


class SiteModelAggregator:
    """Fetch and merge the per-locale data of one site into a :class:`SiteModel`."""

    def __init__(
        self,
        fetcher: SiteFetcher,
        options: SitemapOptions,
        batches: BatchSettings | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._options = options
        self._batches = batches or BatchSettings()

    async def build(self) -> SiteModel:
        fetcher = self._fetcher
        site = await fetcher.get_site(self._options.site)
        policy = (
            await fetcher.get_localization_policy(site.channel_id)
            if site.channel_id
            else LocalizationPolicy()
        )

        master_raw = await fetcher.get_site_structure(site.name, None)
        if not master_raw:
            raise RemoteDataError("no page found in site structure", details={"site": site.name})
        master_pages = tuple(StructurePage.from_dict(entry) for entry in master_raw)

        candidates = [locale for locale in policy.locales if locale != site.default_language]
        structures = dict(
            zip(
                candidates,
                await gather_in_batches(
                    candidates,
                    self._batches.page_data,
                    lambda locale: fetcher.get_site_structure(site.name, locale),
                ),
            )
        )
        structures[site.default_language] = list(master_raw)
        translations = [locale for locale in candidates if structures.get(locale) is not None]
        plan = plan_locales(site, translations, self._options)
        LOGGER.info(
            "Resolved locales",
            extra={
                "event": "locales.resolved",
                "default": plan.default,
                "output": list(plan.output),
                "fetched": list(plan.fetched),
                "fallbacks": dict(plan.fallbacks),
            },
        )

        children = build_children(master_pages)
        order = preorder(master_pages, children)
        pages, page_data = await self._load_pages(site, plan, master_pages, structures)

        no_index = frozenset(
            key
            for key, data in page_data.items()
            if (data.get("properties") or {}).get("noIndex")
        )

        content_types: list[str] = []
        bindings: list[PageBinding] = []
        content_lists: list[ContentListQuery] = []
        placeholders: dict[str, list[str]] = {}
        for locale in plan.fetched:
            for page in master_pages:
                scan = scan_components(page.id, page_data.get((locale, page.id), {}), locale)
                bindings.extend(scan.bindings)
                if locale != plan.default:
                    continue
                _append_unique(content_types, scan.content_types)
                content_lists.extend(scan.content_lists)
                placeholders[page.id] = scan.placeholder_types

        by_id = {page.id: page for page in master_pages}
        detail_pages = tuple(
            DetailPageBinding(page=by_id[page_id], content_types=tuple(placeholders.get(page_id, ())))
            for page_id in order
            if by_id[page_id].is_detail_page
        )
        default_detail = detail_pages[0] if detail_pages else None

        items = await self._load_items(site, plan, bindings, content_lists, content_types)
        page_files = await self._load_page_files(site)

        LOGGER.info(
            "Site model ready",
            extra={
                "event": "model.built",
                "site": site.name,
                "pages": len(master_pages),
                "detail_pages": len(detail_pages),
                "items": len(items),
                "content_types": content_types,
            },
        )
        return SiteModel(
            site=site,
            locales=plan,
            master_pages=master_pages,
            children=children,
            pages=pages,
            no_index=no_index,
            detail_pages=detail_pages,
            default_detail_page=default_detail,
            content_types=tuple(content_types),
            page_bindings=tuple(bindings),
            content_list_queries=tuple(content_lists),
            items=tuple(items),
            page_files=tuple(page_files),
        )

    async def _load_pages(
        self,
        site: Site,
        plan: LocalePlan,
        master_pages: tuple[StructurePage, ...],
        structures: Mapping[str, list[dict[str, Any]] | None],
    ) -> tuple[dict[tuple[str, str], EffectivePage], dict[tuple[str, str], dict[str, Any]]]:
        pages: dict[tuple[str, str], EffectivePage] = {}
        requests: list[tuple[str, str, str | None]] = []
        for locale in plan.fetched:
            overrides = {str(entry.get("id")): entry for entry in structures.get(locale) or []}
            for page in master_pages:
                override = overrides.get(page.id)
                pages[(locale, page.id)] = resolve_page(page, override, locale)
                if locale == plan.default:
                    requests.append((locale, page.id, None))
                elif override is not None:
                    requests.append((locale, page.id, locale))

        results = await gather_in_batches(
            requests,
            self._batches.page_data,
            lambda request: self._fetcher.get_page_data(site.name, request[1], request[2]),
        )
        page_data = {
            (locale, page_id): data for (locale, page_id, _), data in zip(requests, results)
        }
        # Untranslated pages reuse the master document.
        for locale in plan.fetched:
            for page in master_pages:
                page_data.setdefault((locale, page.id), page_data.get((plan.default, page.id), {}))
        LOGGER.debug(
            "Fetched page data",
            extra={"event": "pages.fetched", "documents": len(requests)},
        )
        return pages, page_data

    async def _load_items(
        self,
        site: Site,
        plan: LocalePlan,
        bindings: list[PageBinding],
        content_lists: list[ContentListQuery],
        content_types: list[str],
    ) -> list[ContentItem]:
        item_locales = [
            locale
            for locale in plan.fetched
            if locale in plan.output or locale in plan.fallbacks.values()
        ]
        jobs: list[tuple[ContentQuery, str, str | None, str | None, ItemSource]] = []
        for binding in bindings:
            if binding.locale not in item_locales:
                continue
            for ids in chunked(list(binding.content_ids), self._batches.ids_per_query):
                q = " or ".join(f'id eq "{item_id}"' for item_id in ids)
                jobs.append(
                    (
                        ContentQuery(q=f"({q})", limit=len(ids)),
                        binding.locale,
                        binding.page_id,
                        binding.detail_page_id,
                        ItemSource.PAGE,
                    )
                )
        for locale in item_locales:
            for listing in content_lists:
                q = f'type eq "{listing.content_type}"' if listing.content_type else None
                jobs.append(
                    (
                        ContentQuery(
                            q=q, limit=listing.limit, offset=listing.offset, order_by=listing.order_by
                        ),
                        locale,
                        listing.page_id,
                        listing.detail_page_id,
                        ItemSource.CONTENT_LIST,
                    )
                )
            for q in self._type_queries(content_types):
                jobs.append((ContentQuery(q=q), locale, None, None, ItemSource.TYPE_QUERY))

        async def run(job: tuple[ContentQuery, str, str | None, str | None, ItemSource]) -> list[ContentItem]:
            query, locale, page_id, detail_page_id, source = job
            rows = await self._fetcher.query_content_items(site.channel_token, query, locale)
            return [
                ContentItem.from_dict(
                    row,
                    query_locale=locale,
                    page_id=page_id,
                    detail_page_id=detail_page_id,
                    source=source,
                )
                for row in rows
                if row.get("id")
            ]

        results = await gather_in_batches(jobs, self._batches.content_query, run)
        items = [item for batch in results for item in batch]
        LOGGER.debug(
            "Queried content items",
            extra={"event": "items.fetched", "queries": len(jobs), "items": len(items)},
        )
        return items

    def _type_queries(self, content_types: list[str]) -> list[str | None]:
        item_types = self._options.item_types
        if not item_types:
            return []
        if item_types == ITEM_TYPES_ALL:
            return [None]
        types = content_types if item_types == ITEM_TYPES_FROM_PAGES else list(item_types)
        return [f'type eq "{content_type}"' for content_type in types]

    async def _load_page_files(self, site: Site) -> list[PageFile]:
        try:
            return await self._fetcher.get_page_files(site.name)
        except RemoteDataError as exc:
            LOGGER.warning(
                "Failed to list page files; lastmod and revision data unavailable",
                extra={"event": "page_files.failed", "site": site.name, "error": str(exc)},
            )
            return []


__all__ = [
    "PageScan",
    "SiteModelAggregator",
    "build_children",
    "plan_locales",
    "preorder",
    "scan_components",
]
