"""Re-link translated item entries to their master item id."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Iterable

from ..core.batching import gather_in_batches
from ..utils.logging import get_logger
from .models import SitemapURLEntry, SourceKind

if TYPE_CHECKING:
    from ..remote.base import SiteFetcher

LOGGER = get_logger(__name__)


class MasterItemResolver:
    def __init__(self, fetcher: SiteFetcher, *, batch_size: int = 10) -> None:
        self._fetcher = fetcher
        self._batch_size = batch_size

    async def resolve(self, entries: Iterable[SitemapURLEntry]) -> list[SitemapURLEntry]:
        """Group item variants under one id; items without variations keep their own."""

        entries = list(entries)
        item_ids = list(
            dict.fromkeys(entry.link_id for entry in entries if entry.kind is SourceKind.ITEM)
        )
        masters = await gather_in_batches(
            item_ids, self._batch_size, self._fetcher.get_item_variations
        )
        mapping = {
            item_id: master for item_id, master in zip(item_ids, masters) if master and master != item_id
        }
        LOGGER.info(
            "Resolved master items",
            extra={"event": "items.masters", "items": len(item_ids), "relinked": len(mapping)},
        )
        return [
            replace(entry, link_id=mapping[entry.link_id])
            if entry.kind is SourceKind.ITEM and entry.link_id in mapping
            else entry
            for entry in entries
        ]


__all__ = ["MasterItemResolver"]
