"""Utility exports for filesystem helpers."""

from proto_toolchain.utils.fs import atomic_write, ensure_directory, is_within, safe_delete

__all__ = [
    "atomic_write",
    "ensure_directory",
    "is_within",
    "safe_delete",
]
