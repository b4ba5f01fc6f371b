"""Tests for URL synthesis from the aggregated site model."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

from sitemapper.sitemap.aggregator import SiteModelAggregator
from sitemapper.sitemap.models import (
    LocalizationPolicy,
    PageFile,
    Site,
    SitemapOptions,
    SitemapURLEntry,
    SourceKind,
)
from sitemapper.sitemap.synthesizer import (
    URLSynthesizer,
    apply_locale_aliases,
    detail_path,
    path_depth,
)
from tests.stubs import StubFetcher, page

SITE_URL = "https://example.com"


def _site(**overrides) -> Site:
    values = {"id": "s1", "name": "Demo", "default_language": "en", "channel_id": "CH1"}
    values.update(overrides)
    return Site(**values)


def _entries(fetcher: StubFetcher, changefreqs=None, **options) -> list[SitemapURLEntry]:
    opts = SitemapOptions(site="Demo", site_url=SITE_URL, **options)
    model = asyncio.run(SiteModelAggregator(fetcher, opts).build())
    return URLSynthesizer(model, opts, changefreqs).synthesize()


def _blog_fetcher(**overrides) -> StubFetcher:
    structure = [
        page("100", None, "index.html"),
        page("200", "100", "blog.html"),
        page("300", "100", "blog-detail.html", isDetailPage=True),
        page("400", "100", "any-detail.html", isDetailPage=True),
    ]
    values = dict(
        site=_site(channel_id=None),
        structures={None: structure},
        page_data={
            (None, "200"): {
                "componentInstances": {"c": {"type": "scs-component", "data": {"contentIds": ["I1", "I2"]}}}
            },
            (None, "300"): {
                "componentInstances": {
                    "ph": {"type": "scs-contentplaceholder", "data": {"contentTypes": ["Blog"]}}
                }
            },
        },
        items={
            "en": [
                {
                    "id": "I1",
                    "type": "Blog",
                    "slug": "first-post",
                    "language": "en",
                    "updatedDate": {"value": "2024-03-01T10:00:00Z"},
                },
                {"id": "I2", "type": "Event", "slug": "party", "language": "en"},
            ]
        },
    )
    values.update(overrides)
    return StubFetcher(**values)


def test_path_depth_and_detail_path() -> None:
    assert path_depth("about") == 1
    assert path_depth("/products/shoes.html") == 2
    assert path_depth("") == 0
    assert detail_path("/blog/detail.html") == "blog/detail"


def test_single_root_page_produces_site_url() -> None:
    fetcher = StubFetcher(site=_site(channel_id=None), structures={None: [page("100", None, "index.html")]})

    entries = _entries(fetcher)

    assert len(entries) == 1
    assert entries[0].loc == SITE_URL
    assert entries[0].priority == 1.0
    assert entries[0].kind is SourceKind.PAGE


def test_root_without_page_url_is_still_listed() -> None:
    structure = [page("100", None, ""), page("200", "100", "")]
    fetcher = StubFetcher(site=_site(channel_id=None), structures={None: structure})

    entries = _entries(fetcher)

    assert [entry.loc for entry in entries] == [SITE_URL]


def test_translated_locale_gets_prefixed_urls() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "about")]
    fetcher = StubFetcher(
        site=_site(),
        policy=LocalizationPolicy(required_locales=("en", "fr")),
        structures={None: structure, "fr": structure},
    )

    entries = {entry.loc: entry for entry in _entries(fetcher)}

    assert entries[f"{SITE_URL}/about"].priority == 0.5
    assert entries[f"{SITE_URL}/about"].locale == "en"
    assert entries[f"{SITE_URL}/fr/about"].locale == "fr"
    assert entries[f"{SITE_URL}/fr"].priority == 1.0


def test_fallback_locale_reuses_target_pages() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "about")]
    fetcher = StubFetcher(
        site=_site(locale_fallbacks={"fr-CA": "fr"}),
        policy=LocalizationPolicy(required_locales=("en", "fr"), optional_locales=("fr-CA",)),
        structures={None: structure, "fr": structure},
    )

    entries = _entries(fetcher, languages=("fr", "fr-CA"))
    locs = [entry.loc for entry in entries]

    assert f"{SITE_URL}/fr/about" in locs
    assert f"{SITE_URL}/fr-ca/about" in locs
    assert f"{SITE_URL}/about" not in locs
    synthesized = next(entry for entry in entries if entry.loc == f"{SITE_URL}/fr-ca/about")
    assert synthesized.locale == "fr-CA"
    assert synthesized.link_id == "200"


def test_detail_pages_are_never_listed_and_items_use_slug() -> None:
    entries = _entries(_blog_fetcher())
    by_loc = {entry.loc: entry for entry in entries}

    assert f"{SITE_URL}/blog-detail.html" not in by_loc
    assert f"{SITE_URL}/any-detail.html" not in by_loc
    item = by_loc[f"{SITE_URL}/blog-detail/first-post"]
    assert item.kind is SourceKind.ITEM
    assert item.link_id == "I1"
    assert item.priority == 0.5
    assert item.lastmod == date(2024, 3, 1)
    # Event is not permitted by the default detail page.
    assert not any("party" in loc for loc in by_loc)


def test_legacy_detail_links() -> None:
    locs = [entry.loc for entry in _entries(_blog_fetcher(), legacy_detail_links=True)]

    assert f"{SITE_URL}/blog-detail/Blog/I1/first-post" in locs


def test_type_queries_use_first_permitting_detail_page() -> None:
    locs = [entry.loc for entry in _entries(_blog_fetcher(), item_types="all")]

    assert locs.count(f"{SITE_URL}/blog-detail/first-post") == 1
    assert f"{SITE_URL}/any-detail/party" in locs


def test_no_default_detail_page_link_skips_unbound_items() -> None:
    entries = _entries(_blog_fetcher(), no_default_detail_page_link=True)

    assert all(entry.kind is SourceKind.PAGE for entry in entries)


def test_no_index_and_foreign_links_are_excluded() -> None:
    structure = [
        page("100", None, "index.html"),
        page("200", "100", "hidden.html"),
        page("300", "100", "elsewhere.html", linkUrl="https://other.example.org/x"),
        page("400", "100", "local.html", linkUrl="https://example.com/local"),
    ]
    fetcher = StubFetcher(
        site=_site(channel_id=None),
        structures={None: structure},
        page_data={(None, "200"): {"properties": {"noIndex": True}}},
    )

    locs = [entry.loc for entry in _entries(fetcher)]

    assert locs == [SITE_URL, f"{SITE_URL}/local.html"]


def test_priority_halves_per_segment() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "products/shoes.html")]
    fetcher = StubFetcher(site=_site(channel_id=None), structures={None: structure})

    entries = _entries(fetcher, top_priority=0.8)

    assert entries[0].priority == 1.0
    assert entries[1].priority == 0.2


def test_query_strings_and_default_segment() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "a.html"), page("300", "100", "b.html")]
    fetcher = StubFetcher(site=_site(channel_id=None), structures={None: structure})

    locs = [
        entry.loc
        for entry in _entries(
            fetcher,
            query_string="src=map",
            page_query_strings={"300": "?b=1"},
            default_locale_segment=True,
        )
    ]

    assert locs == [
        f"{SITE_URL}/en?src=map",
        f"{SITE_URL}/en/a.html?src=map",
        f"{SITE_URL}/en/b.html?b=1",
    ]


def test_auto_changefreq_and_lastmod_come_from_page_files() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "a.html")]
    fetcher = StubFetcher(
        site=_site(channel_id=None),
        structures={None: structure},
        page_files=[PageFile(id="F1", name="200.json", last_modified=datetime(2024, 5, 2, tzinfo=timezone.utc))],
    )

    entries = _entries(fetcher, changefreqs={"200.json": "daily"}, changefreq="auto")

    assert [entry.changefreq for entry in entries] == ["monthly", "daily"]
    assert entries[1].lastmod == date(2024, 5, 2)
    assert entries[0].lastmod is None


def test_locale_aliases_only_touch_the_segment() -> None:
    entries = [
        SitemapURLEntry(f"{SITE_URL}/fr-ca/about", None, 0.5, "monthly", "fr-CA", SourceKind.PAGE, "2"),
        SitemapURLEntry(f"{SITE_URL}/fr-ca", None, 1.0, "monthly", "fr-CA", SourceKind.PAGE, "1"),
        SitemapURLEntry(f"{SITE_URL}/fr-cab/x", None, 0.5, "monthly", "fr-CA", SourceKind.PAGE, "3"),
        SitemapURLEntry(f"{SITE_URL}/fr/about", None, 0.5, "monthly", "fr", SourceKind.PAGE, "2"),
    ]

    aliased = apply_locale_aliases(entries, {"canada": "fr-CA"}, SITE_URL)

    assert [entry.loc for entry in aliased] == [
        f"{SITE_URL}/canada/about",
        f"{SITE_URL}/canada",
        f"{SITE_URL}/fr-cab/x",
        f"{SITE_URL}/fr/about",
    ]
    assert [entry.locale for entry in aliased] == [entry.locale for entry in entries]
    assert len(aliased) == len(entries)


def test_site_aliases_apply_during_synthesis() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "about")]
    fetcher = StubFetcher(
        site=_site(locale_aliases={"francais": "fr"}),
        policy=LocalizationPolicy(required_locales=("en", "fr")),
        structures={None: structure, "fr": structure},
    )

    locs = [entry.loc for entry in _entries(fetcher)]

    assert f"{SITE_URL}/francais/about" in locs
    assert f"{SITE_URL}/fr/about" not in locs
    assert len(locs) == 4


def test_locs_are_unique() -> None:
    structure = [page("100", None, "index.html"), page("200", "100", "a.html"), page("300", "100", "a.html")]
    fetcher = StubFetcher(site=_site(channel_id=None), structures={None: structure})

    locs = [entry.loc for entry in _entries(fetcher)]

    assert len(locs) == len(set(locs)) == 2
