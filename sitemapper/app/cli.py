"""Command-line interface for sitemap generation."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Sequence
from urllib.parse import urlsplit

from ..core import HttpClient, build_auth
from ..remote import RestSiteFetcher, SiteFetcher
from ..security import default_secret_provider
from ..settings import AppConfig, ConfigFileError, load_config
from ..sitemap import ConfigurationError, OutputFormat, SitemapError, SitemapOptions
from ..sitemap.models import (
    AUTO_CHANGEFREQ,
    CHANGEFREQ_VALUES,
    ITEM_TYPES_ALL,
    ITEM_TYPES_FROM_PAGES,
)
from ..utils.file_helper import is_writable_dir
from ..utils.logging import configure_logging, get_logger
from .pipeline import PipelineContext, PipelineHooks, PipelineRunner, build_default_runner

LOGGER = get_logger(__name__)

EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        structured=not args.log_plain,
    )

    handler: Callable[[argparse.Namespace], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help(sys.stderr)
        return 1
    return handler(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sitemapper", description="Site map generator CLI")
    parser.add_argument("--config", help="Path to configuration file", default=None)
    parser.add_argument(
        "--log-plain",
        action="store_true",
        help="Use plain-text logs instead of JSON",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    _add_sitemap_commands(subparsers)
    return parser


def _add_sitemap_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    sitemap_parser = subparsers.add_parser("sitemap", help="Generate site maps")
    sitemap_subparsers = sitemap_parser.add_subparsers(dest="sitemap_command", required=True)

    create = sitemap_subparsers.add_parser("create", help="Create a site map for a site")
    create.add_argument("site", nargs="?", help="Site name; defaults to [app] default_site")
    create.add_argument("--url", "-u", dest="url", help="Site URL used as the prefix of every loc")
    create.add_argument("--server", help="Content server URL; overrides [server] url")
    create.add_argument(
        "--format",
        "-f",
        choices=[fmt.value for fmt in OutputFormat],
        default=None,
        help="Output format (default from config, else xml)",
    )
    create.add_argument(
        "--changefreq",
        "-c",
        default=None,
        help=f"One of {', '.join((*CHANGEFREQ_VALUES, AUTO_CHANGEFREQ))}",
    )
    create.add_argument("--file", help="Output file name; default <site>SiteMap.<ext>")
    create.add_argument("--output-dir", help="Directory the site map files are written to")
    create.add_argument("--languages", "-l", help="Comma separated locales to include")
    create.add_argument("--exclude-languages", help="Comma separated locales to leave out")
    create.add_argument("--top-priority", type=float, default=None, help="Priority of top level pages")
    create.add_argument(
        "--legacy-detail-links",
        action="store_true",
        help="Use /<detail>/<type>/<id>/<slug> item URLs",
    )
    create.add_argument("--query-string", help="Query string appended to every loc")
    create.add_argument(
        "--page-query-string",
        action="append",
        default=[],
        metavar="PAGE=QS",
        help="Query string for one page id (repeatable)",
    )
    create.add_argument(
        "--no-default-locale",
        action="store_true",
        help="Leave the default locale out of the site map",
    )
    create.add_argument(
        "--default-locale-segment",
        action="store_true",
        help="Prefix default locale URLs with the locale segment",
    )
    create.add_argument(
        "--multiple-files",
        action="store_true",
        help="Write one file per locale plus an index",
    )
    create.add_argument(
        "--item-types",
        help=f"Query items by type: '{ITEM_TYPES_ALL}', '{ITEM_TYPES_FROM_PAGES}' or T1,T2",
    )
    create.add_argument(
        "--no-default-detail-page-link",
        action="store_true",
        help="Skip items that are not tied to a specific detail page",
    )
    create.set_defaults(handler=_handle_sitemap_create)


def _handle_sitemap_create(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
        options = build_options(args, config)
        fetcher = build_fetcher(config, server_url=args.server)
    except (ConfigFileError, ConfigurationError) as exc:
        LOGGER.error(
            "Invalid sitemap invocation: %s",
            exc,
            extra={"event": "cli.error", "command": "sitemap.create"},
        )
        return EXIT_CONFIG_ERROR

    runner, context = build_default_runner(config, options, fetcher)
    LOGGER.info(
        "Sitemap generation started",
        extra={
            "event": "cli.command",
            "command": "sitemap.create",
            "site": options.site,
            "format": options.format.value,
            "steps": runner.step_names,
        },
    )
    try:
        asyncio.run(_run_pipeline(runner, context))
    except ConfigurationError as exc:
        LOGGER.error(
            "Sitemap generation rejected: %s",
            exc,
            extra={"event": "cli.error", "command": "sitemap.create", "site": options.site},
        )
        return EXIT_CONFIG_ERROR
    except SitemapError as exc:
        LOGGER.error(
            "Sitemap generation failed: %s",
            exc,
            extra={"event": "cli.error", "command": "sitemap.create", "site": options.site},
        )
        return EXIT_RUNTIME_ERROR

    for path in context.written:
        print(path)
    LOGGER.info(
        "Sitemap generation finished",
        extra={
            "event": "cli.command",
            "command": "sitemap.create",
            "site": options.site,
            "urls": len(context.entries),
            "files": [str(path) for path in context.written],
        },
    )
    return 0


async def _run_pipeline(runner: PipelineRunner, context: PipelineContext) -> None:
    try:
        await runner.run(context, hooks=_build_hooks())
    finally:
        await context.fetcher.aclose()


def _build_hooks() -> PipelineHooks:
    started: dict[str, float] = {}

    def before(step: str, _: PipelineContext) -> None:
        started[step] = time.monotonic()

    def after(step: str, _: PipelineContext) -> None:
        LOGGER.debug(
            "Step finished",
            extra={
                "event": "pipeline.step_done",
                "step": step,
                "elapsed": round(time.monotonic() - started.get(step, time.monotonic()), 3),
            },
        )

    def error(step: str, _: PipelineContext, exc: BaseException) -> None:
        LOGGER.debug(
            "Exception captured",
            extra={"event": "pipeline.error", "step": step, "error_type": type(exc).__name__},
        )

    return PipelineHooks(before_step=before, after_step=after, on_error=error)


def split_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def parse_page_query_strings(values: Sequence[str]) -> dict[str, str]:
    result: dict[str, str] = {}
    for value in values:
        page_id, sep, query = value.partition("=")
        if not sep or not page_id.strip() or not query:
            raise ConfigurationError(
                "page query string must look like PAGE=QUERY", details={"value": value}
            )
        result[page_id.strip()] = query
    return result


def parse_item_types(value: str | None) -> str | tuple[str, ...] | None:
    if not value:
        return None
    if value.strip().lower() in (ITEM_TYPES_ALL, ITEM_TYPES_FROM_PAGES):
        return value.strip().lower()
    return split_list(value)


def default_file_name(site: str, fmt: OutputFormat) -> str:
    return f"{site}SiteMap{fmt.extension}"


def build_options(args: argparse.Namespace, config: AppConfig) -> SitemapOptions:
    """Validate the invocation and turn it into :class:`SitemapOptions`."""

    site = args.site or config.default_site
    if not site:
        raise ConfigurationError("site name is required")

    site_url = args.url or config.sitemap.site_url
    if not site_url:
        raise ConfigurationError("site URL is required", details={"site": site})
    if urlsplit(site_url).scheme not in ("http", "https") or not urlsplit(site_url).netloc:
        raise ConfigurationError("site URL must be an http(s) URL", details={"url": site_url})

    try:
        fmt = OutputFormat(args.format or config.sitemap.format)
    except ValueError as exc:
        raise ConfigurationError(
            "unknown output format", details={"format": args.format or config.sitemap.format}
        ) from exc

    changefreq = (args.changefreq or config.sitemap.changefreq).lower()
    if changefreq not in (*CHANGEFREQ_VALUES, AUTO_CHANGEFREQ):
        raise ConfigurationError("invalid changefreq", details={"changefreq": changefreq})

    top_priority = args.top_priority if args.top_priority is not None else config.sitemap.top_priority
    if not 0 < top_priority <= 1:
        raise ConfigurationError(
            "top priority must be greater than 0 and at most 1",
            details={"top_priority": top_priority},
        )

    output_dir = Path(args.output_dir).expanduser() if args.output_dir else config.paths.output_dir
    file_name = args.file or default_file_name(site, fmt)
    output_file = Path(file_name).expanduser()
    if not output_file.is_absolute():
        output_file = output_dir / output_file
    output_file = output_file.with_suffix(fmt.extension)
    if not is_writable_dir(output_file.parent):
        raise ConfigurationError(
            "output directory is not writable", details={"path": str(output_file.parent)}
        )

    return SitemapOptions(
        site=site,
        site_url=site_url,
        format=fmt,
        changefreq=changefreq,
        languages=split_list(args.languages),
        exclude_languages=split_list(args.exclude_languages),
        top_priority=top_priority,
        legacy_detail_links=args.legacy_detail_links,
        query_string=args.query_string or None,
        page_query_strings=parse_page_query_strings(args.page_query_string),
        no_default_locale=args.no_default_locale,
        default_locale_segment=args.default_locale_segment,
        multiple_files=args.multiple_files,
        item_types=parse_item_types(args.item_types),
        no_default_detail_page_link=args.no_default_detail_page_link,
        locale_aliases=dict(config.sitemap.locale_aliases),
        output_file=output_file,
        max_shard_bytes=config.sitemap.max_shard_bytes,
    )


def build_fetcher(config: AppConfig, *, server_url: str | None = None) -> SiteFetcher:
    url = server_url or config.server.url
    if not url:
        raise ConfigurationError("no content server configured; set [server] url or --server")
    secrets = default_secret_provider(config.paths.secrets_file)
    auth = build_auth(
        username=config.server.username,
        password=secrets.find_secret(config.server.password_key),
        token=secrets.find_secret(config.server.token_key),
    )
    if auth is None:
        LOGGER.warning(
            "No server credentials found; requests are sent anonymously",
            extra={"event": "cli.auth", "server": url},
        )
    client = HttpClient(base_url=url, http_settings=config.http, auth=auth)
    return RestSiteFetcher(client)


__all__ = ["build_fetcher", "build_options", "main"]
