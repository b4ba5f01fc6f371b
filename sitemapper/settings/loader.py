"""Helpers for loading configuration from TOML."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_NAME = "config.toml"
CONFIG_ENV_VAR = "SITEMAPPER_CONFIG"

DEFAULT_MAX_SHARD_BYTES = 48_000_000


class ConfigFileError(ValueError):
    """Raised when the configuration file is missing or malformed."""


@dataclass(slots=True)
class ServerSettings:
    url: str | None = None
    username: str | None = None
    password_key: str = "server.password"
    token_key: str = "server.token"

    @property
    def configured(self) -> bool:
        return bool(self.url)


@dataclass(slots=True)
class HttpSettings:
    timeout: float = 30.0
    min_delay: float = 0.0
    max_delay: float = 0.0
    max_attempts: int = 3
    backoff_factor: float = 1.5


@dataclass(slots=True)
class PathSettings:
    output_dir: Path
    secrets_file: Path


@dataclass(slots=True)
class BatchSettings:
    """Fan-out sizes used to bound concurrent requests per stage."""

    page_data: int = 20
    content_query: int = 10
    ids_per_query: int = 30
    revisions: int = 20
    variations: int = 10

    def __post_init__(self) -> None:
        for name in ("page_data", "content_query", "ids_per_query", "revisions", "variations"):
            if getattr(self, name) < 1:
                raise ConfigFileError(f"batch size '{name}' must be a positive integer")


@dataclass(slots=True)
class SitemapDefaults:
    site_url: str | None = None
    format: str = "xml"
    changefreq: str = "monthly"
    top_priority: float = 1.0
    max_shard_bytes: int = DEFAULT_MAX_SHARD_BYTES
    locale_aliases: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class AppConfig:
    default_site: str | None
    server: ServerSettings
    http: HttpSettings
    paths: PathSettings
    batches: BatchSettings
    sitemap: SitemapDefaults
    source: Path | None = None


def _to_path(value: str | None, *, fallback: Path) -> Path:
    if not value:
        return fallback
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _config_path(explicit: str | os.PathLike[str] | None = None) -> tuple[Path, bool]:
    if explicit:
        candidate, required = Path(explicit), True
    else:
        env_value = os.environ.get(CONFIG_ENV_VAR)
        if env_value:
            candidate, required = Path(env_value), True
        else:
            candidate, required = PROJECT_ROOT / DEFAULT_CONFIG_NAME, False
    if not candidate.is_absolute():
        candidate = Path.cwd() / candidate
    return candidate, required


def _load_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigFileError(f"Config file not found: {path}")
        return {}
    try:
        with path.open("rb") as fp:
            return tomllib.load(fp)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFileError(f"Invalid TOML in {path}: {exc}") from exc


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigFileError(f"[{name}] must be a table")
    return value


def _build_batches(section: dict[str, Any]) -> BatchSettings:
    defaults = BatchSettings()
    return BatchSettings(
        page_data=int(section.get("page_data", defaults.page_data)),
        content_query=int(section.get("content_query", defaults.content_query)),
        ids_per_query=int(section.get("ids_per_query", defaults.ids_per_query)),
        revisions=int(section.get("revisions", defaults.revisions)),
        variations=int(section.get("variations", defaults.variations)),
    )


def _build_sitemap_defaults(section: dict[str, Any]) -> SitemapDefaults:
    aliases = section.get("locale_aliases", {})
    if not isinstance(aliases, dict):
        raise ConfigFileError("[sitemap.locale_aliases] must be a table of alias = locale")
    return SitemapDefaults(
        site_url=section.get("site_url"),
        format=str(section.get("format", "xml")),
        changefreq=str(section.get("changefreq", "monthly")),
        top_priority=float(section.get("top_priority", 1.0)),
        max_shard_bytes=int(section.get("max_shard_bytes", DEFAULT_MAX_SHARD_BYTES)),
        locale_aliases={str(alias): str(locale) for alias, locale in aliases.items()},
    )


def load_config(config_path: str | os.PathLike[str] | None = None) -> AppConfig:
    path, required = _config_path(config_path)
    data = _load_toml(path, required=required)

    app_section = _section(data, "app")
    server_section = _section(data, "server")
    http_section = _section(data, "http")
    paths_section = _section(data, "paths")
    sitemap_section = _section(data, "sitemap")
    batches_section = sitemap_section.pop("batches", {})
    if not isinstance(batches_section, dict):
        raise ConfigFileError("[sitemap.batches] must be a table")

    output_dir = _to_path(paths_section.get("output_dir"), fallback=Path.cwd())
    secrets_file = _to_path(
        paths_section.get("secrets_file"), fallback=PROJECT_ROOT / "secrets.ini"
    )

    server_defaults = ServerSettings()
    server = ServerSettings(
        url=(server_section.get("url") or None),
        username=server_section.get("username"),
        password_key=str(server_section.get("password_key", server_defaults.password_key)),
        token_key=str(server_section.get("token_key", server_defaults.token_key)),
    )

    http_settings = HttpSettings(
        timeout=float(http_section.get("timeout", 30)),
        min_delay=float(http_section.get("min_delay", 0)),
        max_delay=float(http_section.get("max_delay", 0)),
        max_attempts=max(1, int(http_section.get("max_attempts", 3))),
        backoff_factor=float(http_section.get("backoff_factor", 1.5)),
    )

    return AppConfig(
        default_site=app_section.get("default_site"),
        server=server,
        http=http_settings,
        paths=PathSettings(output_dir=output_dir, secrets_file=secrets_file),
        batches=_build_batches(batches_section),
        sitemap=_build_sitemap_defaults(sitemap_section),
        source=path if path.exists() else None,
    )
