"""Platform abstraction layer."""

from .files import atomic_write_bytes, atomic_write_text
from .paths import PathError, relative_to_root, resolve_within
from .process import ProcessError, run

__all__ = [
    # files
    "atomic_write_bytes",
    "atomic_write_text",
    # paths
    "PathError",
    "relative_to_root",
    "resolve_within",
    # process
    "ProcessError",
    "run",
]
