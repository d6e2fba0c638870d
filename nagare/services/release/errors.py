from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from nagare.git.commits import Commit
from nagare.services.release.model import BumpKind


ReleaseErrorKind = Literal[
    "invalid_version",
    "invalid_input",
    "invalid_environment",
    "no_handler",
    "no_pattern_defined",
    "no_matches_found",
    "path_traversal",
    "read_failed",
    "write_failed",
    "custom_update_failed",
    "file_update_failed",
    "backup_create_failed",
    "restore_failed",
    "rollback_partial_failure",
    "git_failed",
    "release_failed",
    "gh_missing",
    "gh_auth_required",
    "cancelled",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


@dataclass(frozen=True, slots=True)
class VersionConflict:
    """An explicit bump is smaller than what the commits require."""

    requested: BumpKind
    required: BumpKind
    offending: tuple[Commit, ...]

    @property
    def kind(self) -> Literal["version_conflict"]:
        return "version_conflict"

    @property
    def message(self) -> str:
        return (
            f"requested {self.requested} bump but commits require {self.required}: "
            + ", ".join(c.summary for c in self.offending)
        )

    @property
    def hint(self) -> str:
        return f"Use --{self.required} or drop the explicit bump."

    def pretty(self) -> str:
        return f"{self.message} (hint: {self.hint})"
