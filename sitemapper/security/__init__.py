"""Security-related helpers."""

from .credential_provider import (
    ChainedSecretProvider,
    EnvSecretProvider,
    FileSecretProvider,
    MappingSecretProvider,
    SecretNotFoundError,
    SecretProvider,
    default_secret_provider,
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
