from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date as Date

from nagare.git.commits import Commit
from nagare.services.release.model import ReleaseNotes


DEFAULT_COMMIT_SECTIONS: Mapping[str, str] = {
    "feat": "added",
    "fix": "fixed",
    "docs": "changed",
    "style": "changed",
    "refactor": "changed",
    "perf": "changed",
    "test": "changed",
    "build": "changed",
    "ci": "changed",
    "chore": "changed",
    "revert": "changed",
    "security": "security",
    "deprecate": "deprecated",
    "remove": "removed",
}

CHANGELOG_HEADER = """# Changelog

All notable changes to this project will be documented in this file.

The format is based on [Keep a Changelog](https://keepachangelog.com/en/1.0.0/),
and this project adheres to [Semantic Versioning](https://semver.org/spec/v2.0.0.html).

"""

_MAX_ENTRY = 100


def _entry(commit: Commit, *, include_hash: bool) -> str:
    text = commit.description
    if len(text) > _MAX_ENTRY:
        text = text[: _MAX_ENTRY - 3] + "..."
    if commit.scope:
        text = f"**{commit.scope}:** {text}"
    if include_hash and commit.hash:
        text += f" ({commit.short_hash})"
    if commit.breaking_change:
        text = f"BREAKING: {text}"
    return text


def build_release_notes(
    version: str,
    commits: Sequence[Commit],
    *,
    today: Date | None = None,
    include_hashes: bool = True,
    sections: Mapping[str, str] = DEFAULT_COMMIT_SECTIONS,
) -> ReleaseNotes:
    """Group ``commits`` into Keep-a-Changelog sections.

    Release commits are skipped; unknown commit types land in "changed".
    """
    grouped: dict[str, list[str]] = {
        "added": [],
        "changed": [],
        "deprecated": [],
        "removed": [],
        "fixed": [],
        "security": [],
    }
    for commit in commits:
        if commit.type == "chore" and commit.scope == "release":
            continue
        section = sections.get(commit.type, "changed")
        grouped.get(section, grouped["changed"]).append(
            _entry(commit, include_hash=include_hashes)
        )

    return ReleaseNotes(
        version=version,
        date=(today or Date.today()).isoformat(),
        added=tuple(grouped["added"]),
        changed=tuple(grouped["changed"]),
        deprecated=tuple(grouped["deprecated"]),
        removed=tuple(grouped["removed"]),
        fixed=tuple(grouped["fixed"]),
        security=tuple(grouped["security"]),
    )


def render_sections(notes: ReleaseNotes) -> str:
    """Markdown body used for the hosted release."""
    lines: list[str] = []
    for title, items in notes.sections():
        if not items:
            continue
        lines.append(f"### {title}")
        lines.extend(f"- {item}" for item in items)
        lines.append("")
    if not lines:
        return "No notable changes.\n"
    return "\n".join(lines).rstrip() + "\n"


def changelog_entry(notes: ReleaseNotes) -> str:
    return f"## [{notes.version}] - {notes.date}\n\n{render_sections(notes)}\n"


def insert_changelog_entry(existing: str | None, notes: ReleaseNotes) -> str:
    """Insert the entry for ``notes`` above the newest existing release."""
    content = existing if existing is not None and existing.strip() else CHANGELOG_HEADER
    entry = changelog_entry(notes)
    if content.startswith("## "):
        return entry + content
    marker = content.find("\n## ")
    if marker == -1:
        if not content.endswith("\n"):
            content += "\n"
        if not content.endswith("\n\n"):
            content += "\n"
        return content + entry
    return content[: marker + 1] + entry + content[marker + 1 :]
