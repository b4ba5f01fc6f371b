"""Secret resolution for content-server credentials."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from configparser import ConfigParser
from pathlib import Path
from typing import Iterable, Mapping


class SecretNotFoundError(KeyError):
    """Raised when a secret cannot be resolved."""


class SecretProvider(ABC):
    """Abstract secret lookup contract.

    Keys are dotted ``section.option`` names such as ``server.password``.
    """

    @abstractmethod
    def get_secret(self, key: str) -> str:
        """Return the secret associated with ``key``."""

    def find_secret(self, key: str) -> str | None:
        try:
            return self.get_secret(key)
        except SecretNotFoundError:
            return None


class EnvSecretProvider(SecretProvider):
    """Reads ``SITEMAPPER_SERVER_PASSWORD`` style environment variables."""

    def __init__(self, prefix: str = "", env: Mapping[str, str] | None = None) -> None:
        self._env = env if env is not None else os.environ
        self._prefix = prefix

    def get_secret(self, key: str) -> str:
        compound = f"{self._prefix}{key}" if self._prefix else key
        name = compound.upper().replace(".", "_")
        value = self._env.get(name)
        if not value:
            raise SecretNotFoundError(name)
        return value


class FileSecretProvider(SecretProvider):
    """Loads secrets from an INI file (``[server]`` / ``password = ...``)."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._parser = ConfigParser()
        if path.exists():
            self._parser.read(path, encoding="utf-8")

    def get_secret(self, key: str) -> str:
        section, _, option = key.partition(".")
        if not section or not option:
            raise SecretNotFoundError(key)
        if self._parser.has_option(section, option):
            value = self._parser.get(section, option)
            if value:
                return value
        raise SecretNotFoundError(key)


class MappingSecretProvider(SecretProvider):
    """Wraps a plain dictionary."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping = mapping

    def get_secret(self, key: str) -> str:
        try:
            return self._mapping[key]
        except KeyError as exc:
            raise SecretNotFoundError(key) from exc


class ChainedSecretProvider(SecretProvider):
    """Tries multiple providers until one returns a secret."""

    def __init__(self, providers: Iterable[SecretProvider]) -> None:
        self._providers = tuple(providers)

    def get_secret(self, key: str) -> str:
        for provider in self._providers:
            try:
                return provider.get_secret(key)
            except SecretNotFoundError:
                continue
        raise SecretNotFoundError(key)


def default_secret_provider(secrets_file: Path, *, env_prefix: str = "SITEMAPPER_") -> SecretProvider:
    return ChainedSecretProvider(
        [EnvSecretProvider(prefix=env_prefix), FileSecretProvider(secrets_file)]
    )


__all__ = [
    "ChainedSecretProvider",
    "EnvSecretProvider",
    "FileSecretProvider",
    "MappingSecretProvider",
    "SecretNotFoundError",
    "SecretProvider",
    "default_secret_provider",
]
