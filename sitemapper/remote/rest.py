"""REST implementation of :class:`SiteFetcher` for the content server."""

from __future__ import annotations

from typing import Any, Mapping

from ..core import HttpClient, HttpClientError
from ..sitemap.errors import RemoteDataError
from ..sitemap.models import (
    ContentQuery,
    FileRevision,
    LocalizationPolicy,
    PageFile,
    Site,
    parse_timestamp,
)
from ..utils.logging import get_logger
from .base import SiteFetcher

LOGGER = get_logger(__name__)

_IDC_PATH = "/documents/web"
_MANAGEMENT_API = "/content/management/api/v1.1"
_DELIVERY_API = "/content/published/api/v1.1"
_DOCUMENTS_API = "/documents/api/1.2"
_SITE_NOT_FOUND = "-32"
_PAGE_SIZE = 100


def result_set_rows(data: Mapping[str, Any], name: str) -> list[dict[str, Any]]:
    """Turn an IdcService ``fields``/``rows`` result set into dictionaries."""

    result_set = (data.get("ResultSets") or {}).get(name) or {}
    fields = [field.get("name") for field in result_set.get("fields") or []]
    return [dict(zip(fields, row)) for row in result_set.get("rows") or []]


def select_channel_token(tokens: list[Mapping[str, Any]] | None) -> str | None:
    """Prefer the token named ``defaultToken``; otherwise take the first one."""

    tokens = tokens or []
    for token in tokens:
        if token.get("name") == "defaultToken":
            return token.get("value") or token.get("token")
    if tokens:
        return tokens[0].get("value") or tokens[0].get("token")
    return None


def localize_query(q: str | None, locale: str | None) -> str | None:
    if not locale:
        return q
    clause = f'(language eq "{locale}" or translatable eq "false")'
    return f"({q}) and {clause}" if q else clause


class RestSiteFetcher(SiteFetcher):
    """Fetch site, content and document data over the server's REST APIs."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_site(self, name: str) -> Site:
        data = await self._idc("SCS_GET_SITE_INFO_FILE", {"siteId": name}, what="site info")
        properties = (data.get("base") or {}).get("properties") or {}
        if not properties:
            raise RemoteDataError("site info is empty", details={"site": name})
        default_language = properties.get("defaultLanguage")
        if not default_language:
            raise RemoteDataError("site has no default language", details={"site": name})
        site = Site(
            id=str(properties.get("siteId") or name),
            name=name,
            default_language=str(default_language),
            repository_id=properties.get("repositoryId") or None,
            channel_id=properties.get("channelId") or None,
            channel_token=select_channel_token(properties.get("channelAccessTokens")),
            locale_fallbacks=dict(properties.get("localeFallbacks") or {}),
            locale_aliases=dict(properties.get("localeAliases") or {}),
        )
        LOGGER.info(
            "Loaded site info",
            extra={
                "event": "site.loaded",
                "site": name,
                "default_language": site.default_language,
                "channel": site.channel_id,
            },
        )
        return site

    async def get_localization_policy(self, channel_id: str) -> LocalizationPolicy:
        channel = await self._get(f"{_MANAGEMENT_API}/channels/{channel_id}", what="channel")
        policy_id = channel.get("localizationPolicy")
        if not policy_id:
            return LocalizationPolicy()
        policy = await self._get(f"{_MANAGEMENT_API}/policy/{policy_id}", what="localization policy")
        return LocalizationPolicy(
            required_locales=tuple(policy.get("requiredValues") or ()),
            optional_locales=tuple(policy.get("optionalValues") or ()),
        )

    async def get_site_structure(
        self, site: str, locale: str | None = None
    ) -> list[dict[str, Any]] | None:
        params = {"siteId": site}
        if locale:
            params["locale"] = locale
        try:
            data = await self._idc("SCS_GET_STRUCTURE", params, what="site structure")
        except RemoteDataError:
            if locale:
                LOGGER.debug(
                    "No structure for locale",
                    extra={"event": "structure.missing", "site": site, "locale": locale},
                )
                return None
            raise
        pages = (data.get("base") or {}).get("pages")
        if pages is None and locale:
            return None
        return list(pages or [])

    async def get_page_data(
        self, site: str, page_id: str, locale: str | None = None
    ) -> dict[str, Any]:
        key = PageFile.name_for(page_id, locale).removesuffix(".json")
        data = await self._idc(
            "SCS_GET_PAGE_DATA", {"siteId": site, "pageIds": key}, what="page data"
        )
        entry = data.get(key) or data.get(page_id) or {}
        return dict(entry.get("base") or {})

    async def query_content_items(
        self, channel_token: str | None, query: ContentQuery, locale: str | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"fields": "ALL"}
        q = localize_query(query.q, locale)
        if q:
            params["q"] = q
        if query.order_by:
            params["orderBy"] = query.order_by
        if channel_token:
            params["channelToken"] = channel_token

        offset = query.offset or 0
        remaining = query.limit
        items: list[dict[str, Any]] = []
        while True:
            page_size = _PAGE_SIZE if remaining is None else min(remaining, _PAGE_SIZE)
            page = await self._get(
                f"{_DELIVERY_API}/items",
                params={**params, "limit": page_size, "offset": offset},
                what="content items",
            )
            batch = list(page.get("items") or [])
            items.extend(batch)
            offset += len(batch)
            if remaining is not None:
                remaining -= len(batch)
                if remaining <= 0:
                    break
            if not batch or not page.get("hasMore"):
                break
        return items

    async def get_item_variations(self, item_id: str) -> str | None:
        data = await self._get(
            f"{_MANAGEMENT_API}/items/{item_id}/variations/language", what="item variations"
        )
        for variation in data.get("data") or []:
            if variation.get("varType", "language") == "language" and variation.get("masterItem"):
                return str(variation["masterItem"])
        return None

    async def get_page_files(self, site: str) -> list[PageFile]:
        sites = await self._idc("SCS_BROWSE_SITES", {}, what="site folders")
        site_folder = next(
            (
                row.get("fFolderGUID")
                for row in result_set_rows(sites, "SiteInfo")
                if str(row.get("fFolderName", "")).lower() == site.lower()
            ),
            None,
        )
        if not site_folder:
            raise RemoteDataError("site folder not found", details={"site": site})

        folders = await self._idc(
            "FLD_BROWSE",
            {"itemType": "Folder", "item": f"fFolderGUID:{site_folder}"},
            what="site folder",
        )
        pages_folder = next(
            (
                row.get("fFolderGUID")
                for row in result_set_rows(folders, "ChildFolders")
                if row.get("fFolderName") == "pages"
            ),
            None,
        )
        if not pages_folder:
            LOGGER.warning(
                "Site has no pages folder",
                extra={"event": "page_files.missing", "site": site},
            )
            return []

        files = await self._idc(
            "FLD_BROWSE",
            {"itemType": "File", "item": f"fFolderGUID:{pages_folder}"},
            what="page files",
        )
        return [
            PageFile(
                id=str(row["fFileGUID"]),
                name=str(row.get("fFileName") or ""),
                last_modified=parse_timestamp(row.get("fLastModifiedDate")),
            )
            for row in result_set_rows(files, "ChildFiles")
            if row.get("fFileGUID")
        ]

    async def get_file_revisions(self, file_id: str) -> list[FileRevision]:
        data = await self._get(f"{_DOCUMENTS_API}/files/{file_id}/versions", what="file versions")
        revisions: list[FileRevision] = []
        for entry in data.get("items") or []:
            modified = parse_timestamp(entry.get("modifiedTime") or entry.get("createdTime"))
            if modified is None:
                continue
            try:
                version = int(entry.get("version") or entry.get("revision") or 0)
            except (TypeError, ValueError):
                version = 0
            revisions.append(FileRevision(version=version, modified=modified))
        revisions.sort(key=lambda revision: (revision.version, revision.modified), reverse=True)
        return revisions

    async def _get(
        self, path: str, *, params: Mapping[str, Any] | None = None, what: str
    ) -> dict[str, Any]:
        try:
            data = await self._client.get_json(path, params=params)
        except HttpClientError as exc:
            raise RemoteDataError(
                f"failed to get {what}", details={"url": exc.url, "status": exc.status}
            ) from exc
        if not isinstance(data, dict):
            raise RemoteDataError(f"unexpected {what} response", details={"path": path})
        return data

    async def _idc(self, service: str, params: Mapping[str, Any], *, what: str) -> dict[str, Any]:
        data = await self._get(
            _IDC_PATH,
            params={"IdcService": service, **params, "IsJson": 1},
            what=what,
        )
        # LocalData carries a status only on failure for the SCS_* services.
        status = (data.get("LocalData") or {}).get("StatusCode")
        if status == _SITE_NOT_FOUND:
            raise RemoteDataError("site does not exist", details={"service": service, **params})
        if status not in (None, "0"):
            raise RemoteDataError(
                f"failed to get {what}",
                details={
                    "service": service,
                    "status": status,
                    "message": (data.get("LocalData") or {}).get("StatusMessage"),
                },
            )
        return data


__all__ = ["RestSiteFetcher", "localize_query", "result_set_rows", "select_channel_token"]
