from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from nagare.core.result import Err, Ok, Result
from nagare.git.commits import Commit
from nagare.services.release.errors import ReleaseError, VersionConflict
from nagare.services.release.model import BumpKind, Severity


_VERSION_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True, slots=True)
class Version:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base

    def bump(self, kind: BumpKind) -> Version:
        """Next version; a prerelease suffix never survives a bump."""
        match kind:
            case "major":
                return Version(self.major + 1, 0, 0)
            case "minor":
                return Version(self.major, self.minor + 1, 0)
            case "patch":
                return Version(self.major, self.minor, self.patch + 1)
            case _:
                raise AssertionError(f"unexpected bump kind: {kind}")


def parse_version(text: str) -> Result[Version, ReleaseError]:
    """Parse ``[v]MAJOR.MINOR.PATCH[-PRERELEASE][+BUILD]``.

    The leading ``v`` is accepted and dropped. Build metadata is ignored.
    """
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"invalid version: {text!r}",
                hint="Expected MAJOR.MINOR.PATCH, e.g. 1.2.3 or 1.2.3-beta.1",
            )
        )
    return Ok(Version(int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4)))


def validate_version(text: str) -> Result[str, ReleaseError]:
    """Strict grammar check for versions that end up in git arguments."""
    parsed = parse_version(text)
    if isinstance(parsed, Err):
        return parsed
    return Ok(text.strip().removeprefix("v"))


def commit_severity(commit: Commit) -> Severity:
    if commit.breaking_change:
        return Severity.MAJOR
    if commit.is_feature:
        return Severity.MINOR
    return Severity.PATCH


def required_severity(commits: Sequence[Commit]) -> Severity:
    """Highest severity across ``commits``; PATCH for an empty set."""
    return max((commit_severity(c) for c in commits), default=Severity.PATCH)


def calculate_new_version(
    current: str,
    commits: Sequence[Commit],
    bump: BumpKind | None = None,
) -> Result[str, ReleaseError | VersionConflict]:
    """Next ``major.minor.patch`` for ``current`` given ``commits``.

    An explicit ``bump`` may exceed what the commits require but never fall
    below it: under-versioning a breaking change fails with a
    ``VersionConflict`` naming the commits that need more.
    """
    parsed = parse_version(current)
    if isinstance(parsed, Err):
        return parsed

    required = required_severity(commits)
    if bump is None:
        return Ok(str(parsed.value.bump(required.bump)))

    requested = Severity.of(bump)
    if requested < required:
        offending = tuple(c for c in commits if commit_severity(c) > requested)
        return Err(VersionConflict(requested=bump, required=required.bump, offending=offending))

    return Ok(str(parsed.value.bump(bump)))
