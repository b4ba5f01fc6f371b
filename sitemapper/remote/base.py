"""Contract for retrieving site data from the content service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..sitemap.models import ContentQuery, FileRevision, LocalizationPolicy, PageFile, Site


class SiteFetcher(ABC):
    """Asynchronous source of everything the sitemap pipeline reads.

    Implementations raise ``RemoteDataError`` when data cannot be retrieved.
    Passing ``locale=None`` addresses the master (default-language) copy.
    """

    @abstractmethod
    async def get_site(self, name: str) -> Site:
        ...

    @abstractmethod
    async def get_localization_policy(self, channel_id: str) -> LocalizationPolicy:
        ...

    @abstractmethod
    async def get_site_structure(
        self, site: str, locale: str | None = None
    ) -> list[dict[str, Any]] | None:
        """Return the page list, or ``None`` when the locale is not translated."""

    @abstractmethod
    async def get_page_data(
        self, site: str, page_id: str, locale: str | None = None
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def query_content_items(
        self, channel_token: str | None, query: ContentQuery, locale: str | None = None
    ) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def get_item_variations(self, item_id: str) -> str | None:
        """Return the master item id of a language variation set, if any."""

    @abstractmethod
    async def get_page_files(self, site: str) -> list[PageFile]:
        ...

    @abstractmethod
    async def get_file_revisions(self, file_id: str) -> list[FileRevision]:
        """Return revisions ordered newest first."""

    async def aclose(self) -> None:
        return None


__all__ = ["SiteFetcher"]
