from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal


BumpKind = Literal["major", "minor", "patch"]


class Severity(IntEnum):
    """Ordering used to resolve bump conflicts: MAJOR > MINOR > PATCH."""

    PATCH = 1
    MINOR = 2
    MAJOR = 3

    @property
    def bump(self) -> BumpKind:
        match self:
            case Severity.MAJOR:
                return "major"
            case Severity.MINOR:
                return "minor"
            case Severity.PATCH:
                return "patch"
            case _:
                raise AssertionError(f"unexpected severity: {self}")

    @classmethod
    def of(cls, bump: BumpKind) -> Severity:
        return cls[bump.upper()]


@dataclass(frozen=True, slots=True)
class FileChange:
    """One line a file update would rewrite."""

    line: int  # 1-based
    original: str
    updated: str


@dataclass(frozen=True, slots=True)
class FileUpdateResult:
    """Outcome of computing new content for a file.

    Computing never writes. ``valid`` is None when the handler has no
    validator; otherwise it reports the post-update structural check, which
    callers may treat as a reason to stop even though ``success`` is True.
    """

    success: bool
    content: str | None = None
    error: str | None = None
    error_kind: str | None = None
    match_count: int = 0
    valid: bool | None = None
    validation_error: str | None = None


@dataclass(frozen=True, slots=True)
class ReleaseNotes:
    version: str
    date: str
    added: tuple[str, ...] = ()
    changed: tuple[str, ...] = ()
    deprecated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    fixed: tuple[str, ...] = ()
    security: tuple[str, ...] = ()

    def sections(self) -> tuple[tuple[str, tuple[str, ...]], ...]:
        return (
            ("Added", self.added),
            ("Changed", self.changed),
            ("Deprecated", self.deprecated),
            ("Removed", self.removed),
            ("Fixed", self.fixed),
            ("Security", self.security),
        )

    @property
    def is_empty(self) -> bool:
        return not any(items for _, items in self.sections())
