"""Conventional-commit parsing.

Commits are read with ``git log --format=LOG_FORMAT``: fields separated by
the ASCII unit separator, records by the record separator, so subjects and
bodies can contain any printable text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

__all__ = [
    "Commit",
    "LOG_FORMAT",
    "RELEASE_COMMIT_PREFIX",
    "parse_log",
    "parse_subject",
    "release_commit_message",
]

FIELD_SEP = "\x1f"
RECORD_SEP = "\x1e"
LOG_FORMAT = f"%H{FIELD_SEP}%cI{FIELD_SEP}%s{FIELD_SEP}%b{RECORD_SEP}"

RELEASE_COMMIT_PREFIX = "chore(release): bump version to "

_CONVENTIONAL_RE = re.compile(
    r"^(?P<type>[a-zA-Z]+)(?:\((?P<scope>[^)]+)\))?(?P<bang>!)?:\s*(?P<description>.+)$"
)
_MAX_DESCRIPTION = 100


@dataclass(frozen=True, slots=True)
class Commit:
    type: str
    description: str
    hash: str
    date: str
    scope: str | None = None
    breaking_change: bool = False
    body: str = ""

    @property
    def short_hash(self) -> str:
        return self.hash[:7]

    @property
    def is_feature(self) -> bool:
        return self.type == "feat"

    @property
    def summary(self) -> str:
        scope = f"({self.scope})" if self.scope else ""
        bang = "!" if self.breaking_change else ""
        return f"{self.short_hash} {self.type}{scope}{bang}: {self.description}"


def release_commit_message(version: str) -> str:
    return f"{RELEASE_COMMIT_PREFIX}{version}"


def parse_subject(
    subject: str,
    *,
    hash: str = "",
    date: str = "",
    body: str = "",
) -> Commit:
    """Parse a commit subject line.

    Non-conventional subjects become ``chore`` commits so they still count
    towards a patch bump.
    """
    subject = subject.strip().splitlines()[0] if subject.strip() else ""
    body_breaking = "BREAKING CHANGE" in body or "BREAKING-CHANGE" in body

    m = _CONVENTIONAL_RE.match(subject)
    if m is None:
        return Commit(
            type="chore",
            description=subject[:_MAX_DESCRIPTION],
            hash=hash,
            date=date,
            breaking_change=body_breaking or "BREAKING CHANGE" in subject,
            body=body.strip(),
        )

    return Commit(
        type=m.group("type").lower(),
        scope=m.group("scope"),
        description=m.group("description").strip()[:_MAX_DESCRIPTION],
        hash=hash,
        date=date,
        breaking_change=bool(m.group("bang")) or body_breaking,
        body=body.strip(),
    )


def parse_log(output: str) -> list[Commit]:
    """Parse ``git log --format=LOG_FORMAT`` output, newest first."""
    commits: list[Commit] = []
    for record in output.split(RECORD_SEP):
        record = record.strip("\n")
        if not record.strip():
            continue
        parts = record.split(FIELD_SEP)
        if len(parts) < 3:
            continue
        hash_, date, subject = parts[0].strip(), parts[1].strip(), parts[2]
        body = parts[3] if len(parts) > 3 else ""
        if not hash_ or not subject.strip():
            continue
        commits.append(parse_subject(subject, hash=hash_, date=date[:10], body=body))
    return commits
