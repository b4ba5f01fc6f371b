"""Tests for site model aggregation."""

from __future__ import annotations

import asyncio

import pytest

from sitemapper.settings import BatchSettings
from sitemapper.sitemap.aggregator import (
    SiteModelAggregator,
    build_children,
    plan_locales,
    preorder,
    scan_components,
)
from sitemapper.sitemap.errors import ConfigurationError, LocaleNotFoundError, RemoteDataError
from sitemapper.sitemap.models import (
    ItemSource,
    LocalizationPolicy,
    Site,
    SitemapOptions,
    StructurePage,
    resolve_page,
)
from tests.stubs import StubFetcher, page


def _site(**overrides) -> Site:
    values = {"id": "s1", "name": "Demo", "default_language": "en", "channel_id": "CH1"}
    values.update(overrides)
    return Site(**values)


def _options(**overrides) -> SitemapOptions:
    values = {"site": "Demo", "site_url": "https://example.com"}
    values.update(overrides)
    return SitemapOptions(**values)


def test_resolve_page_only_takes_name_and_url_from_locale() -> None:
    master = StructurePage(
        id="2", parent_id="1", name="About", page_url="about.html", link_url="https://x.test/"
    )
    effective = resolve_page(master, {"name": "À propos", "pageUrl": "a-propos.html", "parentId": "9"}, "fr")

    assert effective.name == "À propos"
    assert effective.page_url == "a-propos.html"
    assert effective.parent_id == "1"
    assert effective.link_url == "https://x.test/"
    assert effective.translated is True
    assert master.page_url == "about.html"


def test_resolve_page_without_override_inherits_master() -> None:
    master = StructurePage(id="2", parent_id="1", name="About", page_url="about.html")
    effective = resolve_page(master, None, "de")

    assert effective.page_url == "about.html"
    assert effective.locale == "de"
    assert effective.translated is False


def test_preorder_finds_first_detail_page_depth_first() -> None:
    pages = [
        StructurePage(id="1", parent_id=None, name="Home", page_url="index.html"),
        StructurePage(id="2", parent_id="1", name="Blog", page_url="blog.html"),
        StructurePage(id="4", parent_id="1", name="Detail B", page_url="b.html", is_detail_page=True),
        StructurePage(id="3", parent_id="2", name="Detail A", page_url="blog/a.html", is_detail_page=True),
    ]
    order = preorder(pages, build_children(pages))

    assert order == ["1", "2", "3", "4"]


def test_scan_components_groups_ids_by_detail_page() -> None:
    data = {
        "componentInstances": {
            "a": {"type": "scs-component", "data": {"contentIds": ["I1", "I2"], "contentTypes": ["Blog"]}},
            "b": {"type": "scs-component", "data": {"contentIds": ["I3"], "detailPageId": 300}},
            "c": {"type": "scs-component", "data": {"contentIds": ["I2"]}},
            "d": {
                "type": "scs-contentlist",
                "data": {
                    "contentTypes": ["News"],
                    "maxResults": "5",
                    "firstItem": 0,
                    "sortOrder": "updateddate:desc",
                },
            },
            "e": {"type": "scs-contentplaceholder", "data": {"contentTypes": ["Blog", "News"]}},
        }
    }
    scan = scan_components("200", data, "en")

    assert scan.content_types == ["Blog", "News"]
    assert scan.placeholder_types == ["Blog", "News"]
    assert [(b.detail_page_id, b.content_ids) for b in scan.bindings] == [
        (None, ("I1", "I2")),
        ("300", ("I3",)),
    ]
    listing = scan.content_lists[0]
    assert listing.content_type == "News"
    assert listing.limit == 5
    assert listing.offset is None
    assert listing.order_by == "updatedDate:desc"


def test_plan_locales_adds_fallback_sources() -> None:
    site = _site(locale_fallbacks={"fr-CA": "fr", "de-AT": "de"})
    plan = plan_locales(site, ["fr"], _options(languages=("fr", "fr-CA")))

    assert plan.output == ("fr", "fr-CA")
    assert plan.fetched == ("en", "fr")
    assert dict(plan.fallbacks) == {"fr-CA": "fr"}


def test_plan_locales_rejects_unknown_locale() -> None:
    with pytest.raises(LocaleNotFoundError) as excinfo:
        plan_locales(_site(), ["fr"], _options(languages=("de",)))

    assert excinfo.value.locale == "de"
    assert "site does not have translation for de" in str(excinfo.value)


def test_plan_locales_requires_some_output() -> None:
    with pytest.raises(ConfigurationError):
        plan_locales(_site(), [], _options(no_default_locale=True))


def test_plan_locales_honours_exclusions() -> None:
    plan = plan_locales(_site(), ["fr", "de"], _options(exclude_languages=("de",)))

    assert plan.output == ("en", "fr")
    assert plan.fetched == ("en", "fr")


def test_build_collects_translations_bindings_and_items() -> None:
    structure = [
        page("100", None, "index.html"),
        page("200", "100", "blog.html"),
        page("300", "100", "blog-detail.html", isDetailPage=True),
    ]
    fetcher = StubFetcher(
        site=_site(),
        policy=LocalizationPolicy(required_locales=("en",), optional_locales=("fr", "de")),
        structures={None: structure, "fr": [page("200", "100", "blogue.html")]},
        page_data={
            (None, "200"): {
                "componentInstances": {
                    "list": {"type": "scs-component", "data": {"contentIds": ["I1"]}}
                }
            },
            (None, "300"): {
                "componentInstances": {
                    "ph": {"type": "scs-contentplaceholder", "data": {"contentTypes": ["Blog"]}}
                }
            },
        },
        items={
            "en": [{"id": "I1", "type": "Blog", "slug": "hello", "language": "en"}],
            "fr": [{"id": "I1", "type": "Blog", "slug": "hello", "language": "en"}],
        },
    )
    model = asyncio.run(SiteModelAggregator(fetcher, _options(), BatchSettings(page_data=2)).build())

    assert model.locales.translations == ("fr",)
    assert model.locales.output == ("en", "fr")
    assert model.pages[("fr", "200")].page_url == "blogue.html"
    assert model.pages[("fr", "300")].page_url == "blog-detail.html"
    assert model.default_detail_page is not None
    assert model.default_detail_page.page.id == "300"
    assert model.default_detail_page.content_types == ("Blog",)
    assert [(item.id, item.locale, item.page_id, item.source) for item in model.items] == [
        ("I1", "en", "200", ItemSource.PAGE)
    ]
    # Only pages present in the fr structure get their own page document.
    assert ("page", ("fr", "200")) in fetcher.calls
    assert ("page", ("fr", "300")) not in fetcher.calls


def test_build_validates_locales_before_page_fetches() -> None:
    fetcher = StubFetcher(
        site=_site(),
        policy=LocalizationPolicy(required_locales=("en", "fr")),
        structures={None: [page("100", None, "index.html")], "fr": [page("100", None, "index.html")]},
    )

    with pytest.raises(LocaleNotFoundError):
        asyncio.run(SiteModelAggregator(fetcher, _options(languages=("de",))).build())

    assert not [call for call in fetcher.calls if call[0] == "page"]


def test_build_without_pages_is_remote_error() -> None:
    fetcher = StubFetcher(site=_site(channel_id=None), structures={None: []})

    with pytest.raises(RemoteDataError):
        asyncio.run(SiteModelAggregator(fetcher, _options()).build())


def test_item_type_queries_follow_option() -> None:
    structure = [page("100", None, "index.html"), page("300", "100", "detail.html", isDetailPage=True)]
    fetcher = StubFetcher(
        site=_site(channel_id=None),
        structures={None: structure},
        page_data={
            (None, "100"): {
                "componentInstances": {"x": {"type": "scs-component", "data": {"contentTypes": ["News"]}}}
            }
        },
    )
    asyncio.run(SiteModelAggregator(fetcher, _options(item_types="pages")).build())
    assert [query.q for query, _ in fetcher.queries] == ['type eq "News"']

    fetcher.queries.clear()
    asyncio.run(SiteModelAggregator(fetcher, _options(item_types="all")).build())
    assert [query.q for query, _ in fetcher.queries] == [None]

    fetcher.queries.clear()
    asyncio.run(SiteModelAggregator(fetcher, _options(item_types=("A", "B"))).build())
    assert [query.q for query, _ in fetcher.queries] == ['type eq "A"', 'type eq "B"']


def test_id_queries_are_split_by_batch_size() -> None:
    structure = [page("100", None, "index.html")]
    ids = [f"I{n}" for n in range(5)]
    fetcher = StubFetcher(
        site=_site(channel_id=None),
        structures={None: structure},
        page_data={
            (None, "100"): {"componentInstances": {"x": {"data": {"contentIds": ids}}}}
        },
    )
    asyncio.run(SiteModelAggregator(fetcher, _options(), BatchSettings(ids_per_query=2)).build())

    assert [query.limit for query, _ in fetcher.queries] == [2, 2, 1]
    assert fetcher.queries[0][0].q == '(id eq "I0" or id eq "I1")'
    assert all(locale == "en" for _, locale in fetcher.queries)
