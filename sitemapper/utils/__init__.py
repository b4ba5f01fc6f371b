"""Utility exports."""

from .file_helper import ensure_parent, is_writable_dir, write_texts_atomic
from .logging import configure_logging, get_logger

__all__ = [
    "ensure_parent",
    "is_writable_dir",
    "write_texts_atomic",
    "configure_logging",
    "get_logger",
]
