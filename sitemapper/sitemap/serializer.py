"""Render sitemap entries as text, XML or sharded XML with language alternates."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence
from xml.etree.ElementTree import Element, SubElement, tostring

from ..utils.file_helper import write_texts_atomic
from ..utils.logging import get_logger
from .errors import OutputWriteError
from .models import OutputFormat, SitemapOptions, SitemapURLEntry, locale_segment

LOGGER = get_logger(__name__)

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
XHTML_NS = "http://www.w3.org/1999/xhtml"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


@dataclass(slots=True, frozen=True)
class RenderedFile:
    name: str
    content: str

    @property
    def size(self) -> int:
        return len(self.content.encode("utf-8"))


def format_priority(priority: float) -> str:
    return f"{priority:.6f}".rstrip("0").rstrip(".")


def group_entries(entries: Iterable[SitemapURLEntry]) -> list[list[SitemapURLEntry]]:
    """Group entries by linkage id, keeping first-appearance order."""

    groups: dict[tuple[str, str], list[SitemapURLEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.group_key, []).append(entry)
    return list(groups.values())


def canonical_entry(group: Sequence[SitemapURLEntry], default_locale: str) -> SitemapURLEntry:
    return next((entry for entry in group if entry.locale == default_locale), group[0])


def _url_element(entry: SitemapURLEntry, alternates: Sequence[SitemapURLEntry] = ()) -> Element:
    url = Element("url")
    SubElement(url, "loc").text = entry.loc
    if entry.lastmod:
        SubElement(url, "lastmod").text = entry.lastmod.isoformat()
    SubElement(url, "changefreq").text = entry.changefreq
    SubElement(url, "priority").text = format_priority(entry.priority)
    for alternate in alternates:
        SubElement(
            url,
            "xhtml:link",
            {"rel": "alternate", "hreflang": alternate.locale, "href": alternate.loc},
        )
    return url


def _block(element: Element) -> str:
    return tostring(element, encoding="unicode") + "\n"


def _urlset_open(with_alternates: bool) -> str:
    if with_alternates:
        return f'<urlset xmlns="{SITEMAP_NS}" xmlns:xhtml="{XHTML_NS}">\n'
    return f'<urlset xmlns="{SITEMAP_NS}">\n'


def _urlset(blocks: Iterable[str], *, with_alternates: bool) -> str:
    return XML_DECLARATION + _urlset_open(with_alternates) + "".join(blocks) + "</urlset>\n"


def pack_blocks(blocks: Sequence[str], max_bytes: int, overhead: int) -> list[list[str]]:
    """Greedily pack blocks so each shard document stays within ``max_bytes``.

    A single block bigger than the limit still gets a shard of its own.
    """

    shards: list[list[str]] = []
    current: list[str] = []
    size = overhead
    for block in blocks:
        block_size = len(block.encode("utf-8"))
        if current and size + block_size > max_bytes:
            shards.append(current)
            current, size = [], overhead
        current.append(block)
        size += block_size
    if current or not shards:
        shards.append(current)
    return shards


def sitemap_index(locations: Iterable[str]) -> str:
    root = Element("sitemapindex", {"xmlns": SITEMAP_NS})
    for location in locations:
        SubElement(SubElement(root, "sitemap"), "loc").text = location
    blocks = "".join(_block(child) for child in root)
    return f'{XML_DECLARATION}<sitemapindex xmlns="{SITEMAP_NS}">\n{blocks}</sitemapindex>\n'


class SitemapSerializer:
    """Render the final entry list into one or more files.

    ``render`` is pure; ``write`` persists the rendered files atomically.
    """

    def __init__(
        self,
        options: SitemapOptions,
        *,
        default_locale: str,
        locales: Sequence[str],
    ) -> None:
        self._options = options
        self._default_locale = default_locale
        self._locales = list(locales)
        output = options.output_file
        self._stem = output.stem
        self._extension = options.format.extension
        self._main_name = f"{self._stem}{self._extension}"

    @property
    def main_name(self) -> str:
        return self._main_name

    def render(self, entries: Sequence[SitemapURLEntry]) -> list[RenderedFile]:
        if self._options.multiple_files:
            return self._render_per_locale(entries)
        fmt = self._options.format
        if fmt is OutputFormat.TEXT:
            return [RenderedFile(self._main_name, self._text(entries))]
        if fmt is OutputFormat.XML:
            blocks = [_block(_url_element(entry)) for entry in entries]
            return [RenderedFile(self._main_name, _urlset(blocks, with_alternates=False))]
        return self._render_variants(entries)

    def write(self, files: Iterable[RenderedFile], directory: Path | None = None) -> list[Path]:
        directory = directory or self._options.output_file.parent
        files = list(files)
        try:
            written = write_texts_atomic([(directory / f.name, f.content) for f in files])
        except OSError as exc:
            raise OutputWriteError(
                "failed to write sitemap files",
                details={"directory": str(directory), "error": str(exc)},
            ) from exc
        for rendered, path in zip(files, written):
            LOGGER.info(
                "Wrote sitemap file",
                extra={"event": "sitemap.written", "path": str(path), "bytes": rendered.size},
            )
        return written

    def _text(self, entries: Iterable[SitemapURLEntry]) -> str:
        lines = [entry.loc for entry in entries]
        return "\n".join(lines) + "\n" if lines else ""

    def _variant_blocks(self, entries: Sequence[SitemapURLEntry]) -> list[str]:
        blocks = []
        for group in group_entries(entries):
            canonical = canonical_entry(group, self._default_locale)
            blocks.append(_block(_url_element(canonical, group)))
        return blocks

    def _render_variants(self, entries: Sequence[SitemapURLEntry]) -> list[RenderedFile]:
        blocks = self._variant_blocks(entries)
        overhead = len(_urlset([], with_alternates=True).encode("utf-8"))
        shards = pack_blocks(blocks, self._options.max_shard_bytes, overhead)
        if len(shards) == 1:
            return [RenderedFile(self._main_name, _urlset(shards[0], with_alternates=True))]

        files = [
            RenderedFile(
                f"{self._stem}-{number}{self._extension}",
                _urlset(shard, with_alternates=True),
            )
            for number, shard in enumerate(shards, start=1)
        ]
        LOGGER.info(
            "Sitemap split into shards",
            extra={"event": "sitemap.sharded", "shards": len(files)},
        )
        return [*files, self._index(files)]

    def _render_per_locale(self, entries: Sequence[SitemapURLEntry]) -> list[RenderedFile]:
        fmt = self._options.format
        groups = group_entries(entries) if fmt is OutputFormat.XML_VARIANTS else []
        files: list[RenderedFile] = []
        for locale in self._locales:
            name = f"{self._stem}-{locale_segment(locale)}{self._extension}"
            own = [entry for entry in entries if entry.locale == locale]
            if fmt is OutputFormat.TEXT:
                files.append(RenderedFile(name, self._text(own)))
            elif fmt is OutputFormat.XML:
                blocks = [_block(_url_element(entry)) for entry in own]
                files.append(RenderedFile(name, _urlset(blocks, with_alternates=False)))
            else:
                blocks = [
                    _block(_url_element(entry, group))
                    for group in groups
                    for entry in group
                    if entry.locale == locale
                ]
                files.append(RenderedFile(name, _urlset(blocks, with_alternates=True)))
        if fmt is OutputFormat.TEXT:
            return files
        return [*files, self._index(files)]

    def _index(self, files: Sequence[RenderedFile]) -> RenderedFile:
        base = self._options.base_url
        return RenderedFile(self._main_name, sitemap_index(f"{base}/{f.name}" for f in files))


__all__ = [
    "RenderedFile",
    "SitemapSerializer",
    "canonical_entry",
    "format_priority",
    "group_entries",
    "pack_blocks",
    "sitemap_index",
]
