"""Path confinement for files touched during a release.

Every path a release reads, writes, snapshots or restores is checked here
first. Traversal segments are rejected lexically, so a hostile path like
``../../etc/passwd`` never reaches the filesystem at all.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath

from nagare.core.result import Err, Ok, Result

__all__ = ["PathError", "relative_to_root", "resolve_within"]


@dataclass(frozen=True, slots=True)
class PathError:
    """A path was rejected before any filesystem access."""

    message: str
    path: str


def _has_traversal(candidate: str) -> bool:
    # Check both separator styles; a backslash path is hostile on any OS.
    parts = set(PurePosixPath(candidate).parts) | set(PureWindowsPath(candidate).parts)
    return ".." in parts


def resolve_within(root: Path, candidate: str | Path) -> Result[Path, PathError]:
    """Return the absolute path for ``candidate`` if it stays inside ``root``.

    Relative candidates are taken relative to ``root``. Absolute candidates
    are accepted only when they already point inside ``root``. Symlinks that
    lead outside ``root`` are rejected as well.
    """
    raw = str(candidate)
    if not raw.strip() or "\x00" in raw:
        return Err(PathError("invalid file path", path=raw))
    if _has_traversal(raw):
        return Err(PathError(f"path traversal rejected: {raw}", path=raw))

    base = Path(os.path.abspath(root))
    target = Path(os.path.normpath(base / raw))
    if target != base and base not in target.parents:
        return Err(PathError(f"path escapes the working root: {raw}", path=raw))

    real_base = base.resolve()
    real_target = target.resolve()
    if real_target != real_base and real_base not in real_target.parents:
        return Err(PathError(f"path escapes the working root via symlink: {raw}", path=raw))

    return Ok(target)


def relative_to_root(root: Path, path: Path) -> Path:
    """Path of ``path`` relative to ``root`` (both made absolute first)."""
    return Path(os.path.abspath(path)).relative_to(Path(os.path.abspath(root)))
